"""
AI Ambassador Models

Chat history uses the ``role``/``parts`` shape the public federation page
sends: ``{"role": "user" | "model", "parts": [{"text": ...}]}``.
"""

from typing import Literal

from pydantic import Field

from teoverse.models.base import TeoModel


class ChatPart(TeoModel):
    text: str = Field(max_length=4000)


class ChatTurn(TeoModel):
    role: Literal["user", "model"]
    parts: list[ChatPart] = Field(default_factory=list, max_length=20)

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts)


class AmbassadorRequest(TeoModel):
    question: str = Field(min_length=1, max_length=2000)
    history: list[ChatTurn] = Field(default_factory=list, max_length=50)


class AmbassadorResponse(TeoModel):
    answer: str
