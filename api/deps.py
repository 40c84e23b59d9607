"""Shared FastAPI dependencies and error mapping for the routers."""

from __future__ import annotations

from typing import Any, Awaitable, Optional, TypeVar

from fastapi import HTTPException, Request

from agents.runtime import StageError
from core.agent import AgentInputError
from core.critique_loop import CritiqueLoopError
from core.llm_client import AsyncLLMClient
from core.models import AgentConfig
from core.obs import Logger, NullLogger

T = TypeVar("T")

# Errors caused by the request or by unusable model output.
CLIENT_ERRORS: tuple[type[Exception], ...] = (CritiqueLoopError, AgentInputError, StageError)


def get_logger(request: Request) -> Logger:
    return getattr(request.app.state, "logger", None) or NullLogger()


def get_llm(request: Request) -> Optional[AsyncLLMClient]:
    """Client override (tests, shared proxies); None builds one per request config."""
    return getattr(request.app.state, "llm", None)


def resolve_config(config: Optional[AgentConfig]) -> AgentConfig:
    if config is not None:
        return config
    try:
        return AgentConfig.from_env()
    except (RuntimeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"No agent_config given and none configured: {exc}") from exc


def error_payload(exc: BaseException) -> dict[str, Any]:
    return {"error": str(exc), "type": exc.__class__.__name__}


async def guarded(call: Awaitable[T], logger: Logger, route: str) -> T:
    """Await a stage/pipeline call, mapping failures to HTTP errors."""
    try:
        return await call
    except CLIENT_ERRORS as exc:
        logger.warn("http.stage_rejected", route=route, **error_payload(exc))
        raise HTTPException(status_code=422, detail=error_payload(exc)) from exc
    except HTTPException:
        raise
    except Exception as exc:
        # Transport/auth failures from the generation backend.
        logger.error("http.upstream_failed", route=route, **error_payload(exc))
        raise HTTPException(status_code=502, detail=error_payload(exc)) from exc
