"""
LLM client for an OpenAI-compatible /chat/completions endpoint.

Features:
  - Retry with exponential backoff + jitter (handles 429, 500, 502, 503, 504)
  - Streaming support (SSE async generator, fragments forwarded as they arrive)
  - Provider fallback for single-shot calls (primary → fallback)
  - Reusable client (connection pooling)
  - Normalised replies: text and complete tool-call requests, nothing provider-specific

Two call shapes are exposed through ModelClient:
  complete(messages, tools) -> ModelReply
  stream(messages, tools)   -> async iterator of ModelFragment
Tool-call deltas are accumulated here, so a ToolCallRequest always reaches
the caller complete, in the last fragment of the stream.
"""

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, AsyncGenerator, AsyncIterator, Optional

import httpx

from ..core.config import get_settings
from ..core.flags import get_flags
from ..orchestrator.errors import ModelError

logger = logging.getLogger(__name__)

# ── Reusable client (connection pool) ────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=120, write=30, pool=10),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )
    return _client


async def close_client():
    """Close the shared HTTP client. Call on app shutdown."""
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Normalised reply types ───────────────────────────────────────────

@dataclass
class ToolCallRequest:
    """One tool invocation requested by the model. `id` is opaque and only
    meaningful inside the reply that produced it."""

    id: str
    name: str
    args: Any  # dict when the model sent valid JSON, the raw string otherwise
    arguments: str = "{}"
    extra: Optional[dict] = None  # provider extras (e.g. Gemini thought signatures)

    def to_openai(self) -> dict:
        call = {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }
        if self.extra:
            call["extra_content"] = self.extra
        return call


@dataclass
class ModelReply:
    text: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)


@dataclass
class ModelFragment:
    text: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)


def _parse_tool_call(raw: dict) -> ToolCallRequest:
    func = raw.get("function") or {}
    arguments = func.get("arguments") or "{}"
    try:
        args = json.loads(arguments)
    except json.JSONDecodeError:
        args = arguments
    return ToolCallRequest(
        id=raw.get("id") or "",
        name=func.get("name") or "",
        args=args,
        arguments=arguments,
        extra=raw.get("extra_content"),
    )


# ── Provider config ──────────────────────────────────────────────────

def _get_provider_config(provider: Optional[str] = None) -> tuple[str, str, str]:
    """Returns (base_url, api_key, default_model) for a provider."""
    settings = get_settings()
    p = (provider or get_flags().llm_provider).lower()

    if p == "gemini":
        return settings.gemini_base_url, settings.gemini_api_key, settings.default_llm_model
    return settings.openai_base_url, settings.openai_api_key, settings.openai_llm_model


def _get_fallback_provider(primary: str) -> Optional[str]:
    """Get fallback provider. Returns None if no fallback available."""
    settings = get_settings()
    if primary != "gemini" and settings.gemini_api_key:
        return "gemini"
    if primary != "openai" and settings.openai_api_key:
        return "openai"
    return None


def _build_payload(
    model: str,
    messages: list[dict],
    tools: Optional[list[dict]],
    temperature: Optional[float],
    max_tokens: Optional[int],
    provider: str,
) -> dict[str, Any]:
    settings = get_settings()
    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature if temperature is not None else settings.default_llm_temperature,
        "max_tokens": max_tokens or settings.default_llm_max_tokens,
    }
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = "auto"
        # Gemini supports parallel tool calls natively; only OpenAI needs this param
        if provider != "gemini":
            payload["parallel_tool_calls"] = True
    return payload


# ── Retry logic ──────────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 16.0


def _backoff(attempt: int) -> float:
    return min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))


async def _retry_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Execute request with exponential backoff + jitter."""
    last_exc: Optional[Exception] = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            resp = await client.request(method, url, **kwargs)

            if resp.status_code not in RETRYABLE_STATUS:
                if resp.status_code >= 400:
                    logger.error("LLM API error %d: %s", resp.status_code, resp.text[:500])
                resp.raise_for_status()
                return resp

            retry_after = resp.headers.get("retry-after")
            delay = float(retry_after) if retry_after else _backoff(attempt)
            logger.warning(
                "LLM %d (attempt %d/%d) — retrying in %.1fs",
                resp.status_code, attempt + 1, MAX_RETRIES + 1, delay,
            )
            last_exc = httpx.HTTPStatusError(
                f"{resp.status_code}", request=resp.request, response=resp
            )

        except httpx.HTTPStatusError:
            raise  # Non-retryable HTTP errors
        except httpx.TransportError as e:
            delay = _backoff(attempt)
            logger.warning(
                "LLM transport error (attempt %d/%d): %s — retrying in %.1fs",
                attempt + 1, MAX_RETRIES + 1, e, delay,
            )
            last_exc = e

        if attempt < MAX_RETRIES:
            await asyncio.sleep(delay)

    raise last_exc or RuntimeError("LLM request failed after retries")


# ── Single-shot ──────────────────────────────────────────────────────

async def chat(
    messages: list[dict],
    tools: Optional[list[dict]] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    provider: Optional[str] = None,
) -> dict:
    """
    Chat completion with retry + optional provider fallback.
    Returns the full API response as dict.
    """
    active_provider = (provider or get_flags().llm_provider).lower()
    base_url, api_key, default_model = _get_provider_config(active_provider)

    if not api_key:
        raise ModelError(
            f"No API key for LLM provider '{active_provider}'. "
            "Set GEMINI_API_KEY or OPENAI_API_KEY."
        )

    payload = _build_payload(
        model or default_model, messages, tools, temperature, max_tokens, active_provider,
    )
    url = f"{base_url.rstrip('/')}/chat/completions"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }

    start = time.monotonic()
    try:
        resp = await _retry_request(_get_client(), "POST", url, json=payload, headers=headers)
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        elapsed = time.monotonic() - start
        logger.error("LLM failed after %.1fs: %s", elapsed, e)

        fallback = _get_fallback_provider(active_provider)
        if fallback and not provider:  # Only fallback once
            logger.info("Falling back to %s", fallback)
            return await chat(
                messages=messages, tools=tools, temperature=temperature,
                max_tokens=max_tokens, provider=fallback,
            )
        raise ModelError(f"LLM call failed: {e}") from e

    usage = data.get("usage") or {}
    first = (data.get("choices") or [{}])[0]
    logger.info(
        "LLM %s: %dms | in=%d out=%d tokens | model=%s",
        "tool_call" if (first.get("message") or {}).get("tool_calls") else "chat",
        int((time.monotonic() - start) * 1000),
        usage.get("prompt_tokens", 0),
        usage.get("completion_tokens", 0),
        payload["model"],
    )
    return data


# ── Streaming ────────────────────────────────────────────────────────

STREAM_MAX_ATTEMPTS = 2


class _RetryableStreamStatus(Exception):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        super().__init__(f"{status_code}: {body}")


async def chat_stream(
    messages: list[dict],
    tools: Optional[list[dict]] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> AsyncGenerator[ModelFragment, None]:
    """
    Streaming chat completion. Text fragments are yielded as soon as they
    arrive; accumulated tool calls come last, complete, in one fragment.

    A transient failure (429/5xx, network) is retried only while nothing has
    been yielded yet — once a token reached the caller it can't be un-yielded.
    """
    active_provider = get_flags().llm_provider.lower()
    base_url, api_key, default_model = _get_provider_config(active_provider)

    if not api_key:
        raise ModelError(
            f"No API key for LLM provider '{active_provider}'. "
            "Set GEMINI_API_KEY or OPENAI_API_KEY."
        )

    payload = _build_payload(
        model or default_model, messages, tools, temperature, max_tokens, active_provider,
    )
    payload["stream"] = True

    for attempt in range(STREAM_MAX_ATTEMPTS):
        delivered = False
        try:
            async for fragment in _stream_once(base_url, api_key, payload):
                delivered = True
                yield fragment
            return
        except (_RetryableStreamStatus, httpx.TransportError) as e:
            if delivered or attempt == STREAM_MAX_ATTEMPTS - 1:
                logger.error("LLM stream failed (model=%s): %s", payload["model"], e)
                raise ModelError(f"LLM stream failed: {e}") from e
            delay = 1.0 + random.uniform(0, 0.5)
            logger.warning("LLM stream attempt %d failed (%s) — retrying in %.1fs", attempt + 1, e, delay)
            await asyncio.sleep(delay)


async def _stream_once(
    base_url: str,
    api_key: str,
    payload: dict,
) -> AsyncGenerator[ModelFragment, None]:
    """Execute a single streaming request, yielding normalised fragments."""
    url = f"{base_url.rstrip('/')}/chat/completions"
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    model = payload["model"]
    accumulated_tool_calls: dict[int, dict] = {}
    total_content = 0

    logger.info("LLM stream start: model=%s messages=%d tools=%d",
                model, len(payload["messages"]), len(payload.get("tools") or []))

    async with _get_client().stream("POST", url, json=payload, headers=headers) as resp:
        if resp.status_code >= 400:
            error_body = await resp.aread()
            error_text = error_body.decode("utf-8", errors="replace")[:500]
            if resp.status_code in RETRYABLE_STATUS:
                raise _RetryableStreamStatus(resp.status_code, error_text)
            logger.error("LLM stream error %d (model=%s): %s", resp.status_code, model, error_text)
            raise ModelError(f"LLM stream error {resp.status_code}: {error_text}")

        async for line in resp.aiter_lines():
            if not line.startswith("data: "):
                continue

            data_str = line[6:].strip()
            if data_str == "[DONE]":
                break

            try:
                chunk = json.loads(data_str)
            except json.JSONDecodeError:
                continue

            delta = (chunk.get("choices") or [{}])[0].get("delta") or {}

            # ── Accumulate tool calls (never forwarded partially) ──
            for tc in delta.get("tool_calls") or []:
                idx = tc.get("index", 0)
                entry = accumulated_tool_calls.setdefault(idx, {
                    "id": "",
                    "type": "function",
                    "function": {"name": "", "arguments": ""},
                })
                if tc.get("id"):
                    entry["id"] = tc["id"]
                func = tc.get("function") or {}
                if func.get("name"):
                    entry["function"]["name"] = func["name"]
                if func.get("arguments"):
                    entry["function"]["arguments"] += func["arguments"]
                if tc.get("extra_content"):
                    entry["extra_content"] = tc["extra_content"]

            # ── Forward content right away ─────────────────────────
            content = delta.get("content")
            if content:
                total_content += len(content)
                yield ModelFragment(text=content)

    if accumulated_tool_calls:
        calls = [_parse_tool_call(accumulated_tool_calls[i]) for i in sorted(accumulated_tool_calls)]
        logger.info("LLM stream finish: tool_calls=%s model=%s", [c.name for c in calls], model)
        yield ModelFragment(tool_calls=calls)
    else:
        logger.info("LLM stream finish: stop | model=%s content=%d chars", model, total_content)


# ── Process-wide model handle ────────────────────────────────────────

class ModelClient:
    """The two call shapes the agent loop depends on."""

    async def complete(self, messages: list[dict], tools: Optional[list[dict]] = None) -> ModelReply:
        data = await chat(messages=messages, tools=tools)
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelError("LLM response has no message") from e
        return ModelReply(
            text=message.get("content") or "",
            tool_calls=[_parse_tool_call(tc) for tc in message.get("tool_calls") or []],
        )

    def stream(self, messages: list[dict], tools: Optional[list[dict]] = None) -> AsyncIterator[ModelFragment]:
        return chat_stream(messages=messages, tools=tools)


@lru_cache
def get_model() -> ModelClient:
    """Process-wide model client. Stateless, so sharing it across turns is safe."""
    return ModelClient()
