"""
LLM client for OpenAI-compatible chat-completions endpoints.

Features:
  - Reusable client (connection pooling)
  - Provider selection (openai / gemini / aiml) via FF_LLM_PROVIDER
  - Structured JSON replies (response_format=json_object)
  - Latency + token usage logging

One request per call. No retries, no provider fallback: the caller decides
how to degrade when the service fails.
"""

import json
import logging
import time
from typing import Any, Optional

import httpx

from ..core.config import get_settings
from ..core.exceptions import AIServiceError
from ..core.flags import get_flags

logger = logging.getLogger(__name__)

# ── Reusable client (connection pool) ────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        settings = get_settings()
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=settings.llm_timeout_seconds, write=30, pool=10),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )
    return _client


async def close_client():
    """Close the shared HTTP client. Call on app shutdown."""
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Provider config ──────────────────────────────────────────────────

def _get_provider_config(provider: Optional[str] = None) -> tuple[str, str, str]:
    """Returns (base_url, api_key, default_model) for a provider."""
    settings = get_settings()
    p = (provider or get_flags().llm_provider).lower()

    if p == "gemini":
        return (
            "https://generativelanguage.googleapis.com/v1beta/openai",
            settings.gemini_api_key,
            settings.default_llm_model,
        )
    elif p == "aiml":
        return settings.aiml_base_url, settings.aiml_api_key, settings.default_llm_model
    else:  # openai
        return settings.openai_base_url, settings.openai_api_key, settings.default_llm_model


# ── Chat completion ──────────────────────────────────────────────────

async def chat(
    messages: list[dict],
    temperature: float = 0.7,
    response_format: Optional[dict] = None,
    model: Optional[str] = None,
    max_tokens: Optional[int] = None,
) -> dict:
    """
    Single chat completion round trip. Returns the full API response as dict.
    Raises AIServiceError on missing credentials, transport or HTTP errors.
    """
    settings = get_settings()
    provider = get_flags().llm_provider.lower()
    base_url, api_key, default_model = _get_provider_config(provider)

    if not api_key:
        raise AIServiceError(
            f"No API key for LLM provider '{provider}'. "
            "Set OPENAI_API_KEY, GEMINI_API_KEY, or AIML_API_KEY."
        )

    payload: dict[str, Any] = {
        "model": model or default_model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens or settings.default_llm_max_tokens,
    }
    if response_format:
        payload["response_format"] = response_format

    url = f"{base_url.rstrip('/')}/chat/completions"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    start = time.monotonic()
    client = _get_client()

    try:
        resp = await client.post(url, json=payload, headers=headers)
        if resp.status_code >= 400:
            logger.error("LLM API error %d: %s", resp.status_code, resp.text[:500])
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        elapsed = time.monotonic() - start
        logger.error("LLM failed after %.1fs: %s", elapsed, e)
        raise AIServiceError() from e

    elapsed = time.monotonic() - start
    usage = data.get("usage") or {}
    logger.info(
        "LLM chat: %dms | in=%d out=%d tokens | model=%s",
        int(elapsed * 1000),
        usage.get("prompt_tokens", 0),
        usage.get("completion_tokens", 0),
        payload["model"],
    )
    return data


def message_content(response: dict) -> str:
    """Pull the assistant text out of a chat-completions response."""
    try:
        return response["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as e:
        raise AIServiceError() from e


def total_tokens(response: dict, fallback_text: str = "") -> int:
    usage = response.get("usage") or {}
    if usage.get("total_tokens"):
        return int(usage["total_tokens"])
    return estimate_tokens(fallback_text)


async def chat_json(
    system: str,
    prompt: str,
    temperature: float = 0.3,
) -> tuple[dict, int]:
    """Send a prompt expecting a JSON object back. Returns (parsed, tokens_used)."""
    response = await chat(
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        temperature=temperature,
        response_format={"type": "json_object"},
    )
    content = message_content(response)
    try:
        parsed = json.loads(content or "{}")
    except json.JSONDecodeError as e:
        logger.error("LLM returned invalid JSON: %s", content[:200])
        raise AIServiceError() from e
    if not isinstance(parsed, dict):
        raise AIServiceError()
    return parsed, total_tokens(response, prompt + content)


async def chat_text(
    system: str,
    prompt: str,
    temperature: float = 0.2,
) -> tuple[str, int]:
    """Send a prompt, get plain text back. Returns (text, tokens_used)."""
    response = await chat(
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        temperature=temperature,
    )
    content = message_content(response)
    return content, total_tokens(response, prompt + content)


# ── Token estimation ─────────────────────────────────────────────────

def estimate_tokens(text: str) -> int:
    """
    Estimate token count without tiktoken dependency.
    Rule of thumb: ~4 chars per token for English.
    """
    return max(1, len(text) // 4)
