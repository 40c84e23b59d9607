"""Settings lookup for the tailoring pipeline (process env first, then .env)."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Callable, TypeVar

from core.config_adapter import (
    ConfigAdapter,
    ConfigSource,
    DotEnvConfigSource,
    EnvConfigSource,
)

N = TypeVar("N", int, float)


@lru_cache
def _config_adapter() -> ConfigAdapter:
    dotenv_path = Path(os.getenv("DOTENV_PATH", ".env"))
    sources: tuple[ConfigSource, ...] = (EnvConfigSource(), DotEnvConfigSource(path=dotenv_path))
    return ConfigAdapter(sources)


def get_config_value(key: str, default: str | None = None) -> str | None:
    return _config_adapter().get(key, default)


def _numeric(key: str, cast: Callable[[str], N], fallback: N | None) -> N | None:
    raw = get_config_value(key)
    if not raw:
        return fallback
    try:
        return cast(raw.strip())
    except ValueError:
        return fallback


def get_default_model() -> str:
    """Return LLM_MODEL. There is no built-in default model."""
    value = get_config_value("LLM_MODEL")
    if not value:
        raise RuntimeError("LLM_MODEL is not configured; set it in your config/.env")
    return value


def get_timeout_seconds() -> float:
    """Per-request timeout handed to the provider SDKs."""
    return _numeric("LLM_TIMEOUT_SECONDS", float, 120.0)


def get_max_iterations() -> int:
    """Critique rounds allowed after the first draft (default 2 → 3 drafts)."""
    return max(_numeric("CRITIQUE_MAX_ITERATIONS", int, 2), 0)


def get_stage_timeout_seconds() -> float | None:
    """Wall-clock budget for one critique loop; unset or <= 0 disables it."""
    value = _numeric("STAGE_TIMEOUT_SECONDS", float, None)
    return value if value is not None and value > 0 else None
