"""
Text model access for the AI ambassador and the documentation generator.

Providers speak their vendor's HTTP API through httpx: OpenAI chat
completions (the default), Anthropic messages, a local Ollama server,
and a mock that echoes the prompt back for development and tests.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

from teoverse.config import get_settings
from teoverse.monitoring.metrics import llm_requests_total

logger = structlog.get_logger(__name__)


class LLMProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"
    MOCK = "mock"


@dataclass
class LLMConfig:
    provider: LLMProvider = LLMProvider.OPENAI
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    api_base: str | None = None
    max_tokens: int = 2000
    temperature: float = 0.4
    timeout_seconds: float = 60.0
    max_retries: int = 3

    @classmethod
    def from_settings(cls) -> LLMConfig:
        settings = get_settings()
        return cls(
            provider=LLMProvider(settings.llm_provider),
            model=settings.llm_model,
            api_key=settings.llm_api_key,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
        )


@dataclass
class LLMMessage:
    role: str  # system, user or assistant
    content: str


@dataclass
class LLMResponse:
    content: str
    model: str
    tokens_used: int = 0
    finish_reason: str = "stop"
    latency_ms: float = 0.0


class LLMConfigurationError(Exception):
    """The configured provider cannot be built (unknown name, missing key)."""


class LLMProviderBase(ABC):
    """
    One vendor API.

    Subclasses describe a request (``_endpoint``, ``_headers``,
    ``_payload``) and how to read the reply (``_parse``); the round trip,
    status check and latency measurement are shared.
    """

    def __init__(self, model: str = "mock", timeout: float = 60.0):
        self._model = model
        self._timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @abstractmethod
    def _endpoint(self) -> str: ...

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    @abstractmethod
    def _payload(self, messages: list[LLMMessage], max_tokens: int, temperature: float | None) -> dict[str, Any]: ...

    @abstractmethod
    def _parse(self, data: dict[str, Any]) -> tuple[str, int, str]:
        """Return (text, tokens used, finish reason)."""

    async def complete(
        self,
        messages: list[LLMMessage],
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        started = time.monotonic()
        response = await self._get_client().post(
            self._endpoint(),
            headers=self._headers(),
            json=self._payload(messages, max_tokens or 2000, temperature),
        )
        response.raise_for_status()
        text, tokens, finish_reason = self._parse(response.json())
        return LLMResponse(
            content=text,
            model=self._model,
            tokens_used=tokens,
            finish_reason=finish_reason or "stop",
            latency_ms=(time.monotonic() - started) * 1000,
        )


def _as_dicts(messages: list[LLMMessage]) -> list[dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


class OpenAIProvider(LLMProviderBase):

    def __init__(self, api_key: str, model: str, api_base: str | None = None, timeout: float = 60.0):
        super().__init__(model, timeout)
        self._api_key = api_key
        self._api_base = api_base or "https://api.openai.com/v1"

    def _endpoint(self) -> str:
        return f"{self._api_base}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {**super()._headers(), "Authorization": f"Bearer {self._api_key}"}

    def _payload(self, messages: list[LLMMessage], max_tokens: int, temperature: float | None) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self._model, "messages": _as_dicts(messages), "max_tokens": max_tokens}
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    def _parse(self, data: dict[str, Any]) -> tuple[str, int, str]:
        choice = (data.get("choices") or [{}])[0]
        text = choice.get("message", {}).get("content") or ""
        return text, data.get("usage", {}).get("total_tokens", 0), choice.get("finish_reason")


class AnthropicProvider(LLMProviderBase):

    def __init__(self, api_key: str, model: str, api_base: str | None = None, timeout: float = 60.0):
        super().__init__(model, timeout)
        self._api_key = api_key
        self._api_base = api_base or "https://api.anthropic.com"

    def _endpoint(self) -> str:
        return f"{self._api_base}/v1/messages"

    def _headers(self) -> dict[str, str]:
        return {**super()._headers(), "x-api-key": self._api_key, "anthropic-version": "2023-06-01"}

    def _payload(self, messages: list[LLMMessage], max_tokens: int, temperature: float | None) -> dict[str, Any]:
        # System prompts go in a top-level field
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": _as_dicts([m for m in messages if m.role != "system"]),
            "max_tokens": max_tokens,
        }
        if system:
            payload["system"] = system
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    def _parse(self, data: dict[str, Any]) -> tuple[str, int, str]:
        text = "".join(b.get("text", "") for b in data.get("content", []) if b.get("type") == "text")
        usage = data.get("usage", {})
        return text, usage.get("input_tokens", 0) + usage.get("output_tokens", 0), data.get("stop_reason")


class OllamaProvider(LLMProviderBase):

    def __init__(self, model: str, api_base: str = "http://localhost:11434", timeout: float = 120.0):
        super().__init__(model, timeout)
        self._api_base = api_base

    def _endpoint(self) -> str:
        return f"{self._api_base}/api/chat"

    def _payload(self, messages: list[LLMMessage], max_tokens: int, temperature: float | None) -> dict[str, Any]:
        options: dict[str, Any] = {"num_predict": max_tokens}
        if temperature is not None:
            options["temperature"] = temperature
        return {"model": self._model, "messages": _as_dicts(messages), "stream": False, "options": options}

    def _parse(self, data: dict[str, Any]) -> tuple[str, int, str]:
        tokens = data.get("eval_count", 0) + data.get("prompt_eval_count", 0)
        return data.get("message", {}).get("content", ""), tokens, data.get("done_reason")


class MockLLMProvider(LLMProviderBase):
    """Placeholder answers that quote the question. Not for production."""

    def __init__(self) -> None:
        super().__init__("mock")
        logger.warning(
            "mock_llm_provider_initialized",
            hint="Set LLM_PROVIDER and LLM_API_KEY for real responses.",
        )

    def _endpoint(self) -> str:
        return ""

    def _payload(self, messages: list[LLMMessage], max_tokens: int, temperature: float | None) -> dict[str, Any]:
        return {}

    def _parse(self, data: dict[str, Any]) -> tuple[str, int, str]:
        return "", 0, "stop"

    async def complete(
        self,
        messages: list[LLMMessage],
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        question = next((m.content for m in reversed(messages) if m.role == "user"), "")
        content = (
            "[MOCK LLM RESPONSE]\n"
            "This is a placeholder answer. Configure a real text model to get real output.\n"
            f"Your query: '{question[:100]}'"
        )
        return LLMResponse(content=content, model="mock")


class LLMService:
    """
    Retrying front for the configured provider.

        service = LLMService(LLMConfig(provider=LLMProvider.ANTHROPIC, api_key="sk-ant-..."))
        answer = await service.complete_text("Summarize this", system_prompt="Be brief")
    """

    def __init__(self, config: LLMConfig | None = None, provider: LLMProviderBase | None = None):
        self._config = config or LLMConfig.from_settings()
        self._provider = provider or self._create_provider()
        logger.info("llm_service_initialized", provider=self.provider_name, model=self._config.model)

    @property
    def provider_name(self) -> str:
        return self._config.provider.value

    def _create_provider(self) -> LLMProviderBase:
        cfg = self._config
        if cfg.provider is LLMProvider.MOCK:
            return MockLLMProvider()
        if cfg.provider is LLMProvider.OLLAMA:
            return OllamaProvider(cfg.model, cfg.api_base or "http://localhost:11434", cfg.timeout_seconds)

        hosted: dict[LLMProvider, type[OpenAIProvider] | type[AnthropicProvider]] = {
            LLMProvider.OPENAI: OpenAIProvider,
            LLMProvider.ANTHROPIC: AnthropicProvider,
        }
        provider_class = hosted.get(cfg.provider)
        if provider_class is None:
            raise LLMConfigurationError(
                f"Unsupported LLM provider: {cfg.provider}. Supported providers: openai, anthropic, ollama, mock."
            )
        if not cfg.api_key:
            raise LLMConfigurationError(f"API key required for {cfg.provider.value} provider")
        return provider_class(cfg.api_key, cfg.model, cfg.api_base, cfg.timeout_seconds)

    async def complete(
        self,
        messages: list[LLMMessage],
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Complete ``messages``; HTTP failures are retried with 1s, 2s, 4s... pauses."""
        max_tokens = max_tokens or self._config.max_tokens
        if temperature is None:
            temperature = self._config.temperature
        labels = {"provider": self.provider_name, "model": self._config.model}

        attempt = 0
        while True:
            try:
                response = await self._provider.complete(messages, max_tokens=max_tokens, temperature=temperature)
                break
            except httpx.HTTPError as e:
                attempt += 1
                if attempt >= self._config.max_retries:
                    llm_requests_total.inc(status="error", **labels)
                    raise
                logger.warning("llm_retry", attempt=attempt, error=str(e))
                await asyncio.sleep(2 ** (attempt - 1))

        llm_requests_total.inc(status="success", **labels)
        logger.debug("llm_completion", model=response.model, usage=response.tokens_used, latency_ms=response.latency_ms)
        return response

    async def complete_text(
        self,
        prompt: str,
        system_prompt: str | None = None,
        history: list[LLMMessage] | None = None,
    ) -> str:
        messages = [LLMMessage("system", system_prompt)] if system_prompt else []
        messages += history or []
        messages.append(LLMMessage("user", prompt))
        return (await self.complete(messages)).content

    async def close(self) -> None:
        await self._provider.close()
        logger.info("llm_service_closed")


_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service


def init_llm_service(config: LLMConfig | None = None) -> LLMService:
    global _llm_service
    _llm_service = LLMService(config)
    return _llm_service


async def shutdown_llm_service() -> None:
    global _llm_service
    if _llm_service is not None:
        await _llm_service.close()
        _llm_service = None


__all__ = [
    "LLMProvider",
    "LLMConfig",
    "LLMConfigurationError",
    "LLMMessage",
    "LLMResponse",
    "LLMService",
    "get_llm_service",
    "init_llm_service",
    "shutdown_llm_service",
]
