"""Centralized OpenAI client for structured generation.

Both generative stages (gap synthesis and skeptic verification) MUST go
through ``generate_structured()``. This ensures:
  - Model, temperature, timeout, and token limits are read from env.
  - Markdown code fences are stripped before JSON decoding.
  - Every failure surfaces as a ``StructuredGenerationError`` carrying a
    machine-readable ``reason``; callers decide whether it is fatal.
  - Consistent logging across both stages.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from ..http_client import RetryConfig, is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants — all read from environment with safe defaults
# ---------------------------------------------------------------------------
_OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_openai_key() -> str:
    """Read OPENAI_API_KEY from the environment. Raises EnvironmentError if missing."""
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        logger.error("[OPENAI] API key missing (OPENAI_API_KEY)")
        raise EnvironmentError("OPENAI_API_KEY environment variable not set")
    return key


def get_openai_model() -> str:
    """Read OPENAI_MODEL from the environment (default: gpt-4.1)."""
    return os.getenv("OPENAI_MODEL", "gpt-4.1").strip()


def _get_temperature() -> float:
    return _env_float("OPENAI_TEMPERATURE", 0.4)


def _get_timeout() -> float:
    return _env_float("OPENAI_REQUEST_TIMEOUT", 120.0)


def _get_default_max_tokens() -> int:
    return _env_int("OPENAI_MAX_COMPLETION_TOKENS", 16000)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class StructuredGenerationError(RuntimeError):
    """A generative call could not produce a usable structured result.

    ``reason`` is one of: ``missing_key``, ``http_status``, ``empty_body``,
    ``invalid_json``, ``unexpected_shape``, ``timeout``, ``transport``.
    """

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


# ---------------------------------------------------------------------------
# Fence stripping
# ---------------------------------------------------------------------------
def strip_code_fences(raw: str) -> str:
    """Remove an optional markdown fence (```json ... ```) around *raw*.

    Text without a fence is returned stripped but otherwise untouched.
    """
    text = raw.strip().lstrip("\ufeff")
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def build_payload(
    *,
    model: str,
    messages: List[Dict[str, str]],
    max_completion_tokens: int,
    temperature: float,
    json_object: bool,
) -> Dict[str, Any]:
    """Build an OpenAI chat completions payload.

    ``response_format: json_object`` is only requested when the caller
    expects a top-level object; array responses cannot use it.
    """
    payload: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_completion_tokens,
        "temperature": temperature,
    }
    if json_object:
        payload["response_format"] = {"type": "json_object"}

    logger.info("[OPENAI] Model: %s, tokens requested: %d", model, max_completion_tokens)
    return payload


# ---------------------------------------------------------------------------
# Raw chat call
# ---------------------------------------------------------------------------
async def call_openai_chat_async(
    *,
    messages: List[Dict[str, str]],
    max_completion_tokens: int = 0,
    json_object: bool = False,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> str:
    """Call OpenAI chat completions and return the raw message content.

    Retries once on timeout or a retryable HTTP status, then raises
    ``StructuredGenerationError``.
    """
    if api_key is None:
        try:
            api_key = get_openai_key()
        except EnvironmentError as exc:
            raise StructuredGenerationError("missing_key", str(exc)) from exc
    if model is None:
        model = get_openai_model()
    if max_completion_tokens <= 0:
        max_completion_tokens = _get_default_max_tokens()

    timeout = _get_timeout()
    max_retries = RetryConfig.MAX_RETRIES

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    payload = build_payload(
        model=model,
        messages=messages,
        max_completion_tokens=max_completion_tokens,
        temperature=_get_temperature(),
        json_object=json_object,
    )

    last_error: Optional[StructuredGenerationError] = None
    for attempt in range(max_retries + 1):
        t0 = time.time()
        try:
            logger.info("[OPENAI] Calling %s (attempt %d/%d)", model, attempt + 1, max_retries + 1)
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(_OPENAI_API_URL, headers=headers, json=payload)
        except httpx.TimeoutException:
            logger.warning("[OPENAI] Timeout after %.1fs", time.time() - t0)
            last_error = StructuredGenerationError("timeout", f"OpenAI request timed out after {timeout:.0f}s")
            continue
        except httpx.HTTPError as exc:
            logger.warning("[OPENAI] Transport error: %s", exc)
            raise StructuredGenerationError("transport", f"OpenAI transport error: {exc}") from exc

        logger.info("[OPENAI] HTTP %d (%.1fs)", response.status_code, time.time() - t0)

        if not response.is_success:
            logger.warning("[OPENAI] Error response: %s", response.text[:400])
            last_error = StructuredGenerationError(
                "http_status", f"OpenAI returned HTTP {response.status_code}"
            )
            if is_retryable_error(response.status_code) and attempt < max_retries:
                logger.info("[OPENAI] Retrying...")
                continue
            raise last_error

        try:
            data = response.json()
            raw_content = (data["choices"][0]["message"]["content"] or "").strip()
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise StructuredGenerationError("empty_body", f"OpenAI response had no message content: {exc}") from exc

        usage = data.get("usage")
        if usage:
            logger.info(
                "[OPENAI] Tokens used: prompt=%s, completion=%s, total=%s",
                usage.get("prompt_tokens", "?"),
                usage.get("completion_tokens", "?"),
                usage.get("total_tokens", "?"),
            )

        if not raw_content:
            raise StructuredGenerationError("empty_body", "OpenAI returned an empty message")

        logger.info("[OPENAI] Raw output length: %d chars", len(raw_content))
        return raw_content

    if last_error is None:
        last_error = StructuredGenerationError(
            "timeout", f"OpenAI request gave no response after {max_retries + 1} attempts"
        )
    raise last_error


# ---------------------------------------------------------------------------
# Structured generation
# ---------------------------------------------------------------------------
async def generate_structured(
    *,
    messages: List[Dict[str, str]],
    validator: Callable[[Any], T],
    expect: type = list,
    max_completion_tokens: int = 0,
    context: str = "OPENAI",
) -> T:
    """Run one generative call and hand the decoded JSON to *validator*.

    Parameters
    ----------
    messages : list[dict]
        The messages array (system + user).
    validator : callable
        Receives the decoded JSON value (already checked to be an instance
        of *expect*) and returns the typed result.
    expect : type
        ``list`` or ``dict``: the required top-level JSON shape.
    context : str
        Log tag of the calling stage.

    Raises
    ------
    StructuredGenerationError
        On any transport, status, decoding or shape failure.
    """
    raw = await call_openai_chat_async(
        messages=messages,
        max_completion_tokens=max_completion_tokens,
        json_object=expect is dict,
    )

    text = strip_code_fences(raw)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.warning("[%s] JSON parse failed: %s; raw (first 300 chars): %s", context, exc, raw[:300])
        raise StructuredGenerationError("invalid_json", f"Response is not valid JSON: {exc}") from exc

    if not isinstance(parsed, expect):
        raise StructuredGenerationError(
            "unexpected_shape",
            f"Expected a JSON {expect.__name__}, got {type(parsed).__name__}",
        )

    return validator(parsed)
