"""Sanity-check the configured LLM provider/model without leaking secrets.

Usage:
  python -m scripts.check_llm_config
  python -m scripts.check_llm_config --ping
"""

from __future__ import annotations

import argparse
import os

import anyio

from core.config import get_timeout_seconds
from core.llm_factory import get_async_llm_client
from core.models import PLACEHOLDER_API_KEY, AgentConfig, get_provider_by_url
from core.obs import NullLogger, redact


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--ping",
        action="store_true",
        help="Make a live LLM call (requires network + valid API key).",
    )
    args = parser.parse_args()

    config = AgentConfig.from_env()
    print(f"LLM_PROVIDER={config.provider.value}")
    print(f"LLM_MODEL={config.model}")
    print(f"LLM_TIMEOUT_SECONDS={get_timeout_seconds()}")
    print(f"LLM_BASE_URL={config.endpoint or '(provider default)'}")
    if config.endpoint:
        preset = get_provider_by_url(config.endpoint)
        print(f"preset={preset.name if preset else 'custom'}")

    key = config.resolved_api_key()
    print(f"api_key: configured={key != PLACEHOLDER_API_KEY} env_set={bool(os.getenv('LLM_API_KEY'))}")

    llm = get_async_llm_client(config, logger=NullLogger())
    print(f"LLM client: {llm.__class__.__name__}")

    if args.ping:

        async def _ping() -> str:
            return await llm.chat(
                messages=[
                    {"role": "system", "content": "Reply with a single word."},
                    {"role": "user", "content": "ping"},
                ],
                model=config.model,
                temperature=1.0,
            )

        try:
            resp = anyio.run(_ping)
        except Exception as exc:
            print("Ping failed:", redact(f"{exc.__class__.__name__}: {exc}", config.api_key))
            return 1
        print("Ping response preview:", (resp or "").strip()[:100])

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
