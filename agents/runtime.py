"""Per-call wiring shared by every stage: client, loop policy, logger."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from core.agent import Agent
from core.critique_loop import CritiqueLoop, LoopPolicy
from core.llm_client import AsyncLLMClient
from core.llm_factory import get_async_llm_client
from core.models import AgentConfig, AgentRole, StageProgress
from core.obs import Logger, NullLogger, Span

ProgressFn = Callable[[StageProgress], None]


class StageError(RuntimeError):
    """Base class for stage input errors."""


def report(on_progress: Optional[ProgressFn], content: str, *, done: bool = False) -> None:
    if on_progress:
        on_progress(StageProgress(content=content, done=done))


@dataclass(slots=True)
class StageRuntime:
    config: AgentConfig
    llm: AsyncLLMClient
    policy: LoopPolicy
    logger: Logger
    on_progress: Optional[ProgressFn] = None

    @classmethod
    def resolve(
        cls,
        config: AgentConfig,
        on_progress: Optional[ProgressFn] = None,
        *,
        llm: Optional[AsyncLLMClient] = None,
        policy: Optional[LoopPolicy] = None,
        logger: Optional[Logger] = None,
    ) -> "StageRuntime":
        return cls(
            config=config,
            llm=llm or get_async_llm_client(config, logger=logger),
            policy=policy or LoopPolicy.from_config(),
            logger=logger or NullLogger(),
            on_progress=on_progress,
        )

    def agent(self, role: AgentRole, instruction: str, *, temperature: float = 0.2) -> Agent:
        return Agent(
            role=role,
            instruction=instruction,
            llm=self.llm,
            model=self.config.model,
            temperature=temperature,
            logger=self.logger,
        )

    def loop(self, name: str, **kwargs: Any) -> CritiqueLoop[Any]:
        kwargs.setdefault("policy", self.policy)
        kwargs.setdefault("on_progress", self.on_progress)
        kwargs.setdefault("logger", self.logger)
        return CritiqueLoop(name=name, **kwargs)

    def span(self, stage: str, **fields: Any) -> Span:
        return Span(self.logger, "stage." + stage, {"model": self.config.model, **fields})

    def report(self, content: str, *, done: bool = False) -> None:
        report(self.on_progress, content, done=done)
