""" LLM client ports and adapters.

Adapters translate chat-style messages to one provider SDK and return either a
complete completion (`chat`) or its text deltas (`stream`). They never retry:
transport and auth failures propagate to the caller, which owns retry policy.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, AsyncIterator, Callable, Optional, Protocol

from anthropic import AsyncAnthropic
import google.generativeai as genai
from openai import AsyncOpenAI

from core.config import get_config_value, get_timeout_seconds
from core.obs import Logger, NullLogger, with_span

logger = logging.getLogger(__name__)


def _ensure_req_id(_args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
    req_id = kwargs.get("req_id")
    if not isinstance(req_id, str) or not req_id:
        kwargs["req_id"] = str(uuid.uuid4())


def _llm_span_fields(*args: Any, **kwargs: Any) -> dict[str, Any]:
    model = kwargs.get("model")
    if model is None and len(args) >= 3:
        model = args[2]
    return {"req_id": kwargs.get("req_id"), "model": model}


def _llm_span(provider: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    return with_span(
        "llm.chat",
        logger_attr="_logger",
        fields={"provider": provider},
        fields_fn=_llm_span_fields,
        pre=_ensure_req_id,
    )


def _is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _log_content_enabled() -> bool:
    """Whether logs may include prompt/response text previews.

    Defaults to enabled; disable by setting `LLM_LOG_CONTENT=0` in config/.env.
    """

    raw = get_config_value("LLM_LOG_CONTENT")
    if raw is None:
        return True
    return _is_truthy(raw)


def _safe_text_preview(text: str, limit: int = 1000) -> str:
    return (text or "")[:limit]


def _safe_messages(messages: list[dict[str, Any]], *, log_content: bool) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []
    for m in messages:
        content = m.get("content")
        if content is None:
            content = "\n".join(str(p or "") for p in m.get("parts") or [])
        entry: dict[str, Any] = {"role": m.get("role")}
        if log_content:
            entry["content"] = _safe_text_preview(content)
        else:
            entry["content_len"] = len(content)
        out.append(entry)
    return out


def _timeout_or_default(timeout: float | None) -> float:
    return float(timeout) if timeout is not None else get_timeout_seconds()


# ---------- Async port ----------


class AsyncLLMClient(Protocol):
    """Port interface for async LLM calls."""

    async def chat(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.0,
    ) -> str:
        """
        Send chat messages to an LLM and return the assistant's content.
        """
        ...

    def stream(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float = 0.0,
    ) -> AsyncIterator[str]:
        """
        Send chat messages and yield the assistant's content as text deltas.
        """
        ...


class _ClientBase:
    provider = "base"
    _logger: Logger

    def _log_request(self, req_id: str, model: str, messages: list[dict[str, Any]], **extra: Any) -> None:
        self._logger.info(
            "llm.request",
            req_id=req_id,
            provider=self.provider,
            model=model,
            message_count=len(messages),
            messages=_safe_messages(messages, log_content=_log_content_enabled()),
            **extra,
        )

    def _log_response(self, req_id: str, model: str, content: str, usage: Any = None, **extra: Any) -> None:
        resp_fields: dict[str, Any] = {
            "req_id": req_id,
            "provider": self.provider,
            "model": model,
            "usage": getattr(usage, "__dict__", None) if usage else None,
            "content_len": len(content or ""),
            **extra,
        }
        if _log_content_enabled():
            resp_fields["preview"] = _safe_text_preview(content or "")
        self._logger.info("llm.response", **resp_fields)


# ---------- OpenAI-compatible ----------


class AsyncOpenAILLMClient(_ClientBase):
    """OpenAI chat-completions client; `base_url` points it at any compatible server."""

    provider = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        logger: Optional[Logger] = None,
    ):
        self._timeout = _timeout_or_default(timeout)
        api_key = api_key or get_config_value("OPENAI_API_KEY")
        # max_retries=0: retry policy belongs to the critique loop, not the gateway.
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self._logger: Logger = logger or NullLogger()

    @_llm_span("openai")
    async def chat(self, messages, model, temperature=0.0, **kwargs) -> str:
        req_id = kwargs.pop("req_id", str(uuid.uuid4()))
        self._log_request(req_id, model, messages, temperature=temperature, kwargs=kwargs)
        resp = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            timeout=self._timeout,
            temperature=temperature,
            **kwargs,
        )
        content = resp.choices[0].message.content or ""
        self._log_response(req_id, model, content, getattr(resp, "usage", None))
        return content

    async def stream(self, messages, model, temperature=0.0, **kwargs) -> AsyncIterator[str]:
        req_id = kwargs.pop("req_id", str(uuid.uuid4()))
        self._log_request(req_id, model, messages, temperature=temperature, stream=True)
        resp = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            timeout=self._timeout,
            temperature=temperature,
            stream=True,
            **kwargs,
        )
        parts: list[str] = []
        async for chunk in resp:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                parts.append(delta)
                yield delta
        self._log_response(req_id, model, "".join(parts), stream=True)


# ---------- Google Gemini ----------


def _split_gemini_messages(messages: list[dict[str, str]]):
    system = None
    converted = []
    for m in messages:
        role = m.get("role")
        content = m.get("content", "")
        if role == "system" and system is None:
            system = content
            continue
        if role == "assistant":
            converted.append({"role": "model", "parts": [content]})
        else:
            converted.append({"role": "user", "parts": [content]})
    return system, converted


def _finish_reason_to_str(reason: object) -> str:
    name = getattr(reason, "name", None)
    if isinstance(name, str) and name:
        return name
    return str(reason)


def _extract_gemini_text(resp: object) -> str:
    """Best-effort extraction of text from Gemini responses.

    `google.generativeai` exposes a `response.text` accessor, but it raises if the
    response contains no text `Part` (e.g., blocked output, tool-only parts, etc).
    """
    try:
        # `GenerateContentResponse.text` may raise; keep it in a narrow try block.
        text = getattr(resp, "text")
        return (text or "").strip()
    except (ValueError, AttributeError):
        candidates = getattr(resp, "candidates", None) or []
        if candidates:
            cand0 = candidates[0]
            content = getattr(cand0, "content", None)
            parts = getattr(content, "parts", None) or []
            texts = [str(t) for t in (getattr(part, "text", None) for part in parts) if t]
            if texts:
                return "\n".join(texts).strip()
            finish_reason = getattr(cand0, "finish_reason", None)
            raise RuntimeError(
                "Gemini returned no text parts (candidate finish_reason="
                f"{_finish_reason_to_str(finish_reason)})."
            )
        raise RuntimeError("Gemini returned no candidates / no text parts")


class AsyncGeminiLLMClient(_ClientBase):
    provider = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        logger: Optional[Logger] = None,
        max_output_tokens: int | None = None,
    ):
        self._logger: Logger = logger or NullLogger()
        api_key = api_key or get_config_value("GOOGLE_API_KEY")
        client_options = {"api_endpoint": base_url} if base_url else None
        genai.configure(api_key=api_key, client_options=client_options)
        self._max_tokens = max_output_tokens or 8192
        self._timeout = _timeout_or_default(timeout)

    def _prepare(self, messages, model, temperature, kwargs):
        system, converted = _split_gemini_messages(messages)
        gen_config = {"temperature": temperature, "max_output_tokens": kwargs.pop("max_output_tokens", self._max_tokens)}
        gm = genai.GenerativeModel(model_name=model, system_instruction=system)
        request_options = genai.types.RequestOptions(timeout=self._timeout) if self._timeout else None
        return gm, converted, gen_config, request_options

    @_llm_span("gemini")
    async def chat(self, messages, model, temperature=1.0, **kwargs) -> str:
        req_id = kwargs.pop("req_id", str(uuid.uuid4()))
        gm, converted, gen_config, request_options = self._prepare(messages, model, temperature, kwargs)
        self._log_request(req_id, model, messages, temperature=temperature)
        resp = await gm.generate_content_async(converted, generation_config=gen_config, request_options=request_options)
        content = _extract_gemini_text(resp)
        self._log_response(req_id, model, content, getattr(resp, "usage_metadata", None))
        return content

    async def stream(self, messages, model, temperature=1.0, **kwargs) -> AsyncIterator[str]:
        req_id = kwargs.pop("req_id", str(uuid.uuid4()))
        gm, converted, gen_config, request_options = self._prepare(messages, model, temperature, kwargs)
        self._log_request(req_id, model, messages, temperature=temperature, stream=True)
        resp = await gm.generate_content_async(
            converted,
            generation_config=gen_config,
            request_options=request_options,
            stream=True,
        )
        parts: list[str] = []
        async for chunk in resp:
            text = getattr(chunk, "text", "") or ""
            if text:
                parts.append(text)
                yield text
        self._log_response(req_id, model, "".join(parts), stream=True)


# ---------- Anthropic Claude ----------


def _split_anthropic_messages(messages: list[dict[str, str]]):
    system = None
    converted: list[dict[str, str]] = []
    for m in messages:
        role = m.get("role")
        content = m.get("content", "")
        if role == "system" and system is None:
            system = content
            continue
        if role == "assistant":
            converted.append({"role": "assistant", "content": content})
        else:
            converted.append({"role": "user", "content": content})
    return system, converted


class AsyncClaudeLLMClient(_ClientBase):
    """Async Claude client implementing the AsyncLLMClient protocol."""

    provider = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        logger: Optional[Logger] = None,
        max_tokens: int | None = None,
    ):
        api_key = api_key or get_config_value("ANTHROPIC_API_KEY")
        self._client = AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            timeout=_timeout_or_default(timeout),
            max_retries=0,
        )
        self._logger: Logger = logger or NullLogger()
        self._max_tokens = max_tokens or 1024

    def _payload(self, messages, model, temperature, kwargs) -> dict[str, Any]:
        system, converted = _split_anthropic_messages(messages)
        payload: dict[str, Any] = {
            "model": model,
            "messages": converted,
            "max_tokens": kwargs.pop("max_tokens", self._max_tokens),
            "temperature": temperature,
        }
        if system:
            payload["system"] = system
        return payload

    @_llm_span("anthropic")
    async def chat(self, messages, model, temperature=1.0, **kwargs) -> str:
        req_id = kwargs.pop("req_id", str(uuid.uuid4()))
        payload = self._payload(messages, model, temperature, kwargs)
        self._log_request(req_id, model, messages, temperature=temperature)
        resp = await self._client.messages.create(**payload)
        content = resp.content[0].text if resp.content else ""
        self._log_response(req_id, model, content, getattr(resp, "usage", None))
        return content

    async def stream(self, messages, model, temperature=1.0, **kwargs) -> AsyncIterator[str]:
        req_id = kwargs.pop("req_id", str(uuid.uuid4()))
        payload = self._payload(messages, model, temperature, kwargs)
        self._log_request(req_id, model, messages, temperature=temperature, stream=True)
        parts: list[str] = []
        async with self._client.messages.stream(**payload) as stream:
            async for text in stream.text_stream:
                if text:
                    parts.append(text)
                    yield text
        self._log_response(req_id, model, "".join(parts), stream=True)


__all__ = [
    "AsyncLLMClient",
    "AsyncOpenAILLMClient",
    "AsyncGeminiLLMClient",
    "AsyncClaudeLLMClient",
]
