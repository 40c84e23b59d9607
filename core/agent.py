"""Role-bound agent on top of an AsyncLLMClient.

An Agent is one instruction text bound to one AgentRole at construction. It
is stateless: callers that need a multi-turn exchange (the critique loop)
pass the prior turns in as `history`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Sequence

from core.llm_client import AsyncLLMClient
from core.models import AgentRole, StageProgress
from core.obs import Logger, NullLogger, Span


class AgentInputError(RuntimeError):
    """Raised when an agent is invoked with an empty prompt."""


@dataclass(frozen=True, slots=True)
class StreamChunk:
    text: str
    done: bool = False


Message = dict[str, str]


@dataclass(slots=True)
class Agent:
    role: AgentRole
    instruction: str
    llm: AsyncLLMClient
    model: str
    temperature: float = 0.2
    logger: Logger = field(default_factory=NullLogger)

    def _messages(self, prompt: str, history: Sequence[Message]) -> list[Message]:
        if not prompt or not prompt.strip():
            raise AgentInputError(f"{self.role.value} agent requires a non-empty prompt")
        return [
            {"role": "system", "content": self.instruction},
            *history,
            {"role": "user", "content": prompt},
        ]

    async def invoke(self, prompt: str, history: Sequence[Message] = ()) -> str:
        """Run one blocking completion and return the stripped text."""
        messages = self._messages(prompt, history)
        with Span(self.logger, "agent.invoke", {"role": self.role.value, "model": self.model}):
            raw = await self.llm.chat(messages=messages, model=self.model, temperature=self.temperature)
        return (raw or "").strip()

    async def stream(self, prompt: str, history: Sequence[Message] = ()) -> AsyncIterator[StreamChunk]:
        """Yield text deltas, then a single terminal chunk with done=True."""
        messages = self._messages(prompt, history)
        self.logger.info("agent.stream.start", role=self.role.value, model=self.model)
        async for delta in self.llm.stream(messages=messages, model=self.model, temperature=self.temperature):
            if delta:
                yield StreamChunk(delta)
        self.logger.info("agent.stream.end", role=self.role.value, model=self.model)
        yield StreamChunk("", done=True)


async def collect_stream(
    chunks: AsyncIterator[StreamChunk],
    on_progress: Callable[[StageProgress], None] | None = None,
    *,
    silent_text: bool = False,
) -> str:
    """Concatenate a stream; forward deltas to on_progress unless silent_text."""
    parts: list[str] = []
    async for chunk in chunks:
        if chunk.done:
            break
        parts.append(chunk.text)
        if on_progress and not silent_text:
            on_progress(StageProgress(content=chunk.text))
    return "".join(parts).strip()
