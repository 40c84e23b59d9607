"""Structured JSON-line logging, spans and request/run-scoped log context."""

from __future__ import annotations

import contextlib
import contextvars
import datetime
import functools
import inspect
import json
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Protocol

from core.config import get_config_value

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_LOG_DIR = REPO_ROOT / "logs"

LEVELS = {"info": 10, "warn": 20, "error": 30}

_FILE_LOCKS: dict[Path, threading.Lock] = {}
_FILE_LOCKS_GUARD = threading.Lock()

# Fields bound for the current task/request (run_id, req_id, span, ...).
_LOG_CONTEXT: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


@contextlib.contextmanager
def bind_log_context(**fields: Any) -> Iterator[None]:
    """Attach fields to every record emitted inside the block.

    Uses a ContextVar, so concurrently running asyncio tasks keep their own
    bindings (tasks copy the context at creation time).
    """
    token = _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), **fields})
    try:
        yield
    finally:
        _LOG_CONTEXT.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_LOG_CONTEXT.get())


class Logger(Protocol):
    def info(self, event: str, **fields: Any) -> None: ...
    def warn(self, event: str, **fields: Any) -> None: ...
    def error(self, event: str, **fields: Any) -> None: ...


class NullLogger:
    def info(self, event: str, **fields): pass
    def warn(self, event: str, **fields): pass
    def error(self, event: str, **fields): pass


def _configured_level() -> int:
    raw = (get_config_value("OBS_LOG_LEVEL", "info") or "info").strip().lower()
    return LEVELS.get(raw, LEVELS["info"])


def _append_line(path: Path, line: str) -> None:
    with _FILE_LOCKS_GUARD:
        lock = _FILE_LOCKS.setdefault(path, threading.Lock())
    with lock:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")


def _utc_now() -> str:
    return (
        datetime.datetime.now(datetime.timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class JsonStdoutLogger:
    """One JSON object per line on stdout (errors on stderr), optionally mirrored to a file.

    Records below OBS_LOG_LEVEL are dropped. Bound log context is merged in
    before the call's own fields, so explicit fields win.
    """

    def __init__(self, service: str = "tailor", env: str = "dev", log_path: str | Path | None = None):
        self.service = service
        self.env = env
        self.log_path = Path(log_path).expanduser() if log_path else None
        self.min_level = _configured_level()

    def record(self, level: str, event: str, **fields: Any) -> dict[str, Any]:
        return {
            "ts": _utc_now(),
            "level": level,
            "event": event,
            "service": self.service,
            "env": self.env,
            **_LOG_CONTEXT.get(),
            **fields,
        }

    def _emit(self, level: str, event: str, **fields: Any) -> None:
        if LEVELS[level] < self.min_level:
            return
        line = json.dumps(self.record(level, event, **fields), default=str)
        print(line, file=sys.stderr if level == "error" else sys.stdout)
        if self.log_path:
            _append_line(self.log_path, line)

    def info(self, event, **fields): self._emit("info", event, **fields)
    def warn(self, event, **fields): self._emit("warn", event, **fields)
    def error(self, event, **fields): self._emit("error", event, **fields)


class JsonRepoLogger(JsonStdoutLogger):
    """JSON logger that also appends to ``logs/<service>.log`` (or OBS_LOG_FILE)."""

    def __init__(
        self,
        service: str = "tailor",
        env: str = "dev",
        log_dir: str | Path | None = None,
        filename: str | None = None,
    ):
        override = get_config_value("OBS_LOG_FILE")
        if override and not filename:
            path = Path(override).expanduser()
            if not path.is_absolute():
                path = REPO_ROOT / path
        else:
            base = Path(log_dir).expanduser() if log_dir else DEFAULT_LOG_DIR
            path = base / (filename or f"{service}.log")
        super().__init__(service=service, env=env, log_path=path)


def redact(value: str | None, *secrets: str | None) -> str | None:
    """Mask every non-empty secret occurring in value."""
    if not isinstance(value, str) or not value:
        return value
    for secret in secrets:
        if secret:
            value = value.replace(secret, "***")
    return value


@dataclass(slots=True)
class Span:
    """Timed block: logs ``<event>.start`` and ``<event>.end`` / ``<event>.error``.

    While open, the event name is bound as ``span`` in the log context, so
    records from nested agents and LLM calls name their enclosing stage.
    """

    logger: Logger
    event: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    start_ns: int = 0
    _token: contextvars.Token | None = None

    def __enter__(self) -> "Span":
        self.start_ns = time.perf_counter_ns()
        self.logger.info(self.event + ".start", **self.fields)
        self._token = _LOG_CONTEXT.set({**_LOG_CONTEXT.get(), "span": self.event})
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._token is not None:
            _LOG_CONTEXT.reset(self._token)
            self._token = None
        duration_ms = round((time.perf_counter_ns() - self.start_ns) / 1e6, 3)
        if exc is None:
            self.logger.info(self.event + ".end", duration_ms=duration_ms, **self.fields)
            return
        self.logger.error(
            self.event + ".error",
            duration_ms=duration_ms,
            error_type=type(exc).__name__,
            error=str(exc),
            **self.fields,
        )


def with_span(
    event: str,
    *,
    logger_attr: str = "_logger",
    fields: Mapping[str, Any] | None = None,
    fields_fn: Callable[..., Mapping[str, Any]] | None = None,
    pre: Callable[[tuple[Any, ...], dict[str, Any]], None] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator that wraps a method in a `Span`, using ``self.<logger_attr>`` as logger."""

    def _open(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Span:
        if pre:
            pre(args, kwargs)
        logger = getattr(args[0], logger_attr, None) if args else None
        merged = dict(fields or {})
        if fields_fn:
            merged.update(fields_fn(*args, **kwargs))
        return Span(logger or NullLogger(), event, merged)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with _open(args, kwargs):
                    return await fn(*args, **kwargs)

            return async_wrapper

        @functools.wraps(fn)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with _open(args, kwargs):
                return fn(*args, **kwargs)

        return sync_wrapper

    return decorator
