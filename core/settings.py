"""Settings for the HTTP service, read once from config (env → .env)."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from core.config import get_config_value

_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class AppSettings:
    app_env: str = "dev"
    service_name: str = "tailor-api"
    app_version: str = "0.1.0"
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)
    log_dir: Path | None = None
    # Per-stage routes let a client rerun one stage without the whole pipeline.
    stage_endpoints: bool = True

    def cors_allowlist(self) -> list[str]:
        if not self.cors_origins and self.app_env == "dev":
            return ["*"]
        return list(self.cors_origins)

    @classmethod
    def from_config(cls) -> "AppSettings":
        defaults = cls()
        origins = get_config_value("CORS_ORIGINS")
        log_dir = get_config_value("LOG_DIR")
        stage_flag = (get_config_value("STAGE_ENDPOINTS") or "").strip().lower()
        return cls(
            app_env=get_config_value("APP_ENV") or defaults.app_env,
            service_name=get_config_value("SERVICE_NAME") or defaults.service_name,
            app_version=get_config_value("APP_VERSION") or defaults.app_version,
            cors_origins=(
                tuple(o.strip() for o in origins.split(",") if o.strip())
                if origins is not None
                else defaults.cors_origins
            ),
            log_dir=Path(log_dir).expanduser() if log_dir else None,
            stage_endpoints=stage_flag not in _FALSE,
        )


@lru_cache
def get_app_settings() -> AppSettings:
    return AppSettings.from_config()
