"""
Prompt Injection Prevention

User text that ends up in an LLM prompt (ambassador questions, chat
history, documentation topics) is wrapped in XML-style delimiters and has
common instruction-override phrases neutralized.
"""

import json
import re
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


INJECTION_PATTERNS = [
    # Instruction override
    r"ignore\s+(previous|above|all)\s+(instructions?|prompts?)",
    r"disregard\s+(previous|above|all)",
    r"forget\s+(everything|all|previous)",
    r"new\s+instructions?:",
    r"system\s*:",
    # Role manipulation
    r"you\s+are\s+(now|actually)",
    r"pretend\s+(to\s+be|you\s+are)",
    r"roleplay\s+as",
    # Jailbreaks
    r"do\s+anything\s+now",
    r"developer\s+mode",
    r"bypass\s+(restrictions?|filters?|safety)",
]

_INJECTION_REGEX = re.compile(
    "|".join(f"(?:{p})" for p in INJECTION_PATTERNS),
    re.IGNORECASE | re.MULTILINE,
)


def contains_injection(text: str) -> bool:
    return bool(_INJECTION_REGEX.search(text or ""))


def neutralize(text: str) -> str:
    """Mark injection phrases as filtered without wrapping the text."""
    return _INJECTION_REGEX.sub(lambda m: f"[FILTERED: {m.group(0)}]", text)


def sanitize_for_prompt(
    user_input: str,
    max_length: int = 10000,
    field_name: str = "user_content",
    strict: bool = False,
) -> str:
    """
    Sanitize user input before including it in an LLM prompt.

    Args:
        user_input: Raw user-provided string
        max_length: Longer input is truncated
        field_name: Name of the XML delimiter
        strict: Reject (``ValueError``) instead of neutralizing injection phrases

    Returns:
        The sanitized text wrapped in ``<field_name>`` delimiters
    """
    if not user_input:
        return f"<{field_name}></{field_name}>"

    if len(user_input) > max_length:
        logger.warning(
            "prompt_input_truncated",
            field_name=field_name,
            original_length=len(user_input),
            max_length=max_length,
        )
        user_input = user_input[:max_length] + "... [TRUNCATED]"

    if contains_injection(user_input):
        logger.warning("potential_prompt_injection_detected", field_name=field_name)
        if strict:
            raise ValueError(f"Potential prompt injection detected in {field_name}")
        user_input = neutralize(user_input)

    user_input = user_input.replace("<", "&lt;").replace(">", "&gt;")
    return f"<{field_name}>\n{user_input}\n</{field_name}>"


def sanitize_dict_for_prompt(data: dict[str, Any], max_total_length: int = 20000) -> str:
    """Neutralize every string value and render the data as delimited JSON."""

    def sanitize_value(v: Any) -> Any:
        if isinstance(v, str):
            return neutralize(v) if contains_injection(v) else v
        if isinstance(v, dict):
            return {k: sanitize_value(vv) for k, vv in v.items()}
        if isinstance(v, list):
            return [sanitize_value(vv) for vv in v]
        return v

    json_str = json.dumps(sanitize_value(data), indent=2, default=str)

    if len(json_str) > max_total_length:
        logger.warning(
            "prompt_dict_truncated",
            original_length=len(json_str),
            max_length=max_total_length,
        )
        json_str = json_str[:max_total_length] + "\n... [TRUNCATED]"

    return f"<context_data>\n{json_str}\n</context_data>"
