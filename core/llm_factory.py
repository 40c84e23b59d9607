"""Factory functions to get LLM clients based on an AgentConfig."""

from __future__ import annotations

from typing import Callable, Dict

from core.llm_client import (
    AsyncClaudeLLMClient,
    AsyncGeminiLLMClient,
    AsyncLLMClient,
    AsyncOpenAILLMClient,
)
from core.models import AgentConfig, ProviderKind
from core.obs import JsonRepoLogger, Logger


def _gemini_base_url(endpoint: str | None) -> str | None:
    # Gemini uses its own default unless a proxy/custom endpoint is configured;
    # an OpenAI URL left over from the settings form is ignored.
    if not endpoint or endpoint.rstrip("/") == "https://api.openai.com/v1":
        return None
    return endpoint


# Provider registry for simple DI. Extend as new adapters are added.
_ASYNC_PROVIDERS: Dict[ProviderKind, Callable[[AgentConfig, Logger], AsyncLLMClient]] = {
    ProviderKind.OPENAI: lambda cfg, logger: AsyncOpenAILLMClient(
        api_key=cfg.resolved_api_key(), base_url=cfg.endpoint, logger=logger
    ),
    ProviderKind.GEMINI: lambda cfg, logger: AsyncGeminiLLMClient(
        api_key=cfg.resolved_api_key(), base_url=_gemini_base_url(cfg.endpoint), logger=logger
    ),
    ProviderKind.CLAUDE: lambda cfg, logger: AsyncClaudeLLMClient(
        api_key=cfg.resolved_api_key(), base_url=cfg.endpoint, logger=logger
    ),
}


def get_async_llm_client(config: AgentConfig, logger: Logger | None = None) -> AsyncLLMClient:
    # Use a shared JSON repo logger by default so all LLM calls are observable.
    logger = logger or JsonRepoLogger(service="llm")
    try:
        factory = _ASYNC_PROVIDERS[ProviderKind(config.provider)]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown async LLM provider '{config.provider}'") from exc
    return factory(config, logger)
