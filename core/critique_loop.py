"""Bounded producer/reviewer convergence loop.

One primitive covers both variants used by the stages:

* 2-agent: a producer drafts, a reviewer approves or critiques; on critique the
  producer gets its previous draft plus the critique and redrafts.
* 3-agent: an analyst runs exactly once and its plan seeds the first producer
  prompt; the producer emits a structured artifact that a validator checks.

The loop stops on approval (parsed output returned) or after
``policy.max_iterations + 1`` producer attempts, in which case the last draft
is returned as a best-effort result. Only a final draft that fails to parse
is an error. Transport errors from any agent propagate untouched.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from core.agent import Agent, Message
from core.config import get_max_iterations, get_stage_timeout_seconds
from core.models import StageProgress
from core.obs import Logger, NullLogger
from core.state_machine import SimpleStateMachine, transition

T = TypeVar("T")

APPROVAL_TOKEN = "APPROVED"
CRITIQUE_TOKEN = "CRITIQUE"


class CritiqueLoopError(RuntimeError):
    """Raised when no attempt produced output that passes parsing."""


class CritiqueLoopTimeout(CritiqueLoopError):
    """Raised when the stage budget ran out before any draft existed."""


class OutputParseError(ValueError):
    """Producer output does not have the expected shape."""


class _StageTimedOut(Exception):
    pass


# ---------- Verdicts ----------


@dataclass(frozen=True, slots=True)
class Approved:
    kind: str = "approved"


@dataclass(frozen=True, slots=True)
class Critique:
    text: str
    # True when the reviewer used neither token, or the output failed to parse.
    implicit: bool = False
    kind: str = "critique"


Verdict = Union[Approved, Critique]


def parse_verdict(text: str) -> Verdict:
    """Map reviewer text to a verdict; anything unrecognised is a critique."""
    stripped = (text or "").strip()
    if stripped.startswith(APPROVAL_TOKEN):
        return Approved()
    if stripped.startswith(CRITIQUE_TOKEN):
        body = stripped[len(CRITIQUE_TOKEN) :].lstrip().removeprefix(":").strip()
        return Critique(text=body or stripped)
    return Critique(text=stripped or "Reviewer returned an empty response.", implicit=True)


# ---------- Policy & state ----------


@dataclass(frozen=True, slots=True)
class LoopPolicy:
    max_iterations: int = 2
    stage_timeout: Optional[float] = None

    def __post_init__(self) -> None:
        if self.max_iterations < 0:
            raise ValueError("max_iterations must be >= 0")
        if self.stage_timeout is not None and self.stage_timeout <= 0:
            raise ValueError("stage_timeout must be positive when set")

    @property
    def max_attempts(self) -> int:
        return self.max_iterations + 1

    @classmethod
    def from_config(cls) -> "LoopPolicy":
        return cls(max_iterations=get_max_iterations(), stage_timeout=get_stage_timeout_seconds())


class LoopStatus(str, Enum):
    DRAFT = "draft"
    REVIEWING = "reviewing"
    CRITIQUED = "critiqued"
    APPROVED = "approved"
    EXHAUSTED = "exhausted"


_LOOP_TRANSITIONS = (
    transition("submit", LoopStatus.DRAFT, LoopStatus.REVIEWING),
    transition("approve", LoopStatus.REVIEWING, LoopStatus.APPROVED),
    transition("critique", LoopStatus.REVIEWING, LoopStatus.CRITIQUED),
    transition("retry", LoopStatus.CRITIQUED, LoopStatus.DRAFT),
    transition(
        "exhaust",
        (LoopStatus.DRAFT, LoopStatus.REVIEWING, LoopStatus.CRITIQUED),
        LoopStatus.EXHAUSTED,
    ),
)


class CritiqueLoopState:
    """Iteration bookkeeping; status changes go through a SimpleStateMachine."""

    def __init__(self) -> None:
        self.iteration = 0
        self.last_output: str | None = None
        self.last_critique: str | None = None
        self._fsm: SimpleStateMachine[LoopStatus] = SimpleStateMachine(LoopStatus.DRAFT, _LOOP_TRANSITIONS)

    @property
    def status(self) -> LoopStatus:
        return self._fsm.state

    @property
    def path(self) -> list[str]:
        return [s.value for s in self._fsm.history]

    def submit(self, output: str) -> None:
        self._fsm.trigger("submit")
        self.iteration += 1
        self.last_output = output

    def approve(self) -> None:
        self._fsm.trigger("approve")

    def critique(self, text: str) -> None:
        self._fsm.trigger("critique")
        self.last_critique = text

    def retry(self) -> None:
        self._fsm.trigger("retry")

    def exhaust(self) -> None:
        self._fsm.trigger("exhaust")


@dataclass(slots=True)
class LoopOutcome(Generic[T]):
    value: T
    state: CritiqueLoopState

    @property
    def approved(self) -> bool:
        return self.state.status is LoopStatus.APPROVED


class Transcript:
    """Per-agent conversation turns for one loop run."""

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def record(self, prompt: str, reply: str) -> None:
        self._messages.append({"role": "user", "content": prompt})
        self._messages.append({"role": "assistant", "content": reply})

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages) // 2


# ---------- Prompt helpers ----------


def default_retry_prompt(draft: str, critique: str) -> str:
    return (
        f"Your previous draft:\n{draft}\n\n"
        f"Critique from the reviewer:\n{critique}\n\n"
        "Correct the draft so that it addresses every point of the critique. "
        "Return only the corrected result."
    )


def parse_text(raw: str) -> str:
    text = (raw or "").strip()
    if not text:
        raise OutputParseError("Producer returned an empty response")
    return text


ReviewFn = Callable[[str], Union[Verdict, Awaitable[Verdict]]]
ProgressFn = Callable[[StageProgress], None]


def _label(agent: Agent) -> str:
    return agent.role.value.replace("_", " ").title()


@dataclass(slots=True)
class CritiqueLoop(Generic[T]):
    """Configured loop for one stage run. Create a new instance per run."""

    name: str
    producer: Agent
    reviewer: Union[Agent, ReviewFn]
    first_prompt: Union[str, Callable[[str], str]]
    review_prompt: Callable[[str], str] = lambda draft: f"Review this output:\n\n{draft}"
    retry_prompt: Callable[[str, str], str] = default_retry_prompt
    parse: Callable[[str], T] = parse_text  # type: ignore[assignment]
    analyst: Optional[Agent] = None
    analyst_prompt: Optional[str] = None
    policy: LoopPolicy = field(default_factory=LoopPolicy)
    on_progress: Optional[ProgressFn] = None
    logger: Logger = field(default_factory=NullLogger)
    producer_label: str = "Drafting..."
    reviewer_label: str = "Reviewing..."
    retry_label: Optional[str] = None
    _deadline: Optional[float] = field(default=None, init=False)
    _producer_turns: Transcript = field(default_factory=Transcript, init=False)
    _reviewer_turns: Transcript = field(default_factory=Transcript, init=False)

    def _emit(self, content: str) -> None:
        if self.on_progress:
            self.on_progress(StageProgress(content=content, done=False))

    async def _bounded(self, call: Callable[[], Awaitable[Any]]) -> Any:
        if self._deadline is None:
            return await call()
        remaining = self._deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise _StageTimedOut()
        try:
            return await asyncio.wait_for(call(), timeout=remaining)
        except asyncio.TimeoutError as exc:
            raise _StageTimedOut() from exc

    async def _ask(self, agent: Agent, prompt: str, transcript: Transcript) -> str:
        reply = await self._bounded(lambda: agent.invoke(prompt, history=transcript.messages))
        transcript.record(prompt, reply)
        return reply

    async def _review(self, draft: str) -> Verdict:
        if isinstance(self.reviewer, Agent):
            text = await self._ask(self.reviewer, self.review_prompt(draft), self._reviewer_turns)
            return parse_verdict(text)

        async def _call() -> Verdict:
            result = self.reviewer(draft)
            if inspect.isawaitable(result):
                result = await result
            return result

        return await self._bounded(_call)

    def _try_parse(self, raw: str) -> tuple[bool, Any, str]:
        try:
            return True, self.parse(raw), ""
        except (OutputParseError, ValueError) as exc:
            return False, None, str(exc) or exc.__class__.__name__

    async def run(self) -> LoopOutcome[T]:
        state = CritiqueLoopState()
        if self.policy.stage_timeout is not None:
            self._deadline = asyncio.get_running_loop().time() + self.policy.stage_timeout
        self.logger.info(
            "critique_loop.start",
            stage=self.name,
            max_iterations=self.policy.max_iterations,
            three_agent=self.analyst is not None,
        )

        try:
            if self.analyst is not None:
                self._emit(f"[{_label(self.analyst)}] Analyzing...")
                plan = await self._ask(self.analyst, self.analyst_prompt or "", Transcript())
                prompt = self.first_prompt(plan) if callable(self.first_prompt) else self.first_prompt
            else:
                prompt = self.first_prompt if isinstance(self.first_prompt, str) else self.first_prompt("")

            while True:
                label = self.retry_label if state.iteration and self.retry_label else self.producer_label
                self._emit(f"[{_label(self.producer)}] (Iteration {state.iteration + 1}) {label}")
                raw = await self._ask(self.producer, prompt, self._producer_turns)
                state.submit(raw)

                self._emit(f"[{_label_of(self.reviewer)}] {self.reviewer_label}")
                verdict = await self._review(raw)
                if isinstance(verdict, Approved):
                    ok, value, error = self._try_parse(raw)
                    if ok:
                        state.approve()
                        self._emit(f"Approved after {state.iteration} iteration(s).")
                        self.logger.info("critique_loop.approved", stage=self.name, iteration=state.iteration)
                        return LoopOutcome(value=value, state=state)
                    verdict = Critique(text=f"The output could not be parsed: {error}", implicit=True)

                state.critique(verdict.text)
                self._emit(f"Feedback: {verdict.text}")
                self.logger.info(
                    "critique_loop.critiqued",
                    stage=self.name,
                    iteration=state.iteration,
                    implicit=verdict.implicit,
                )
                if state.iteration >= self.policy.max_attempts:
                    break
                state.retry()
                prompt = self.retry_prompt(raw, verdict.text)
        except _StageTimedOut as exc:
            self.logger.warn("critique_loop.timeout", stage=self.name, iteration=state.iteration)
            if state.last_output is None:
                raise CritiqueLoopTimeout(
                    f"{self.name}: stage timed out after {self.policy.stage_timeout}s before any draft"
                ) from exc

        state.exhaust()
        self._emit(f"Reached max iterations ({self.policy.max_iterations}). Finalizing.")
        self.logger.warn("critique_loop.exhausted", stage=self.name, iteration=state.iteration, path=state.path)
        ok, value, error = self._try_parse(state.last_output or "")
        if not ok:
            raise CritiqueLoopError(
                f"{self.name}: failed to produce a valid result after {state.iteration} attempts ({error})"
            )
        return LoopOutcome(value=value, state=state)


def _label_of(reviewer: Union[Agent, ReviewFn]) -> str:
    return _label(reviewer) if isinstance(reviewer, Agent) else "Validator"


async def run_critique_loop(**kwargs: Any) -> T:
    """Build a CritiqueLoop from keyword arguments, run it and return only the value."""
    outcome = await CritiqueLoop(**kwargs).run()
    return outcome.value
