"""Progress fan-in for a pipeline run.

Stages report `StageProgress` through a per-step reporter; the scheduler
announces phases directly. Everything funnels into one callback as
`ProgressEvent`s carrying the partial result accumulated so far.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from pydantic import BaseModel

from core.models import PipelineResult, ProgressEvent, StageProgress
from core.obs import Logger, NullLogger

ProgressCallback = Callable[[ProgressEvent], None]
StageReporter = Callable[[StageProgress], None]


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class ProgressAggregator:
    """Serialises phase announcements and stage progress into one stream.

    Events are emitted synchronously in call order. Exactly one terminal
    event (done=True) is emitted by `finish`; nothing may follow it.
    Exceptions raised by the callback propagate to the caller.
    """

    def __init__(
        self,
        total_steps: int,
        callback: Optional[ProgressCallback] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        if total_steps < 1:
            raise ValueError("total_steps must be >= 1")
        self.total_steps = total_steps
        self._callback = callback
        self._logger = logger or NullLogger()
        self._snapshot: dict[str, Any] = {}
        self._last_announced = 0
        self._finished = False

    @property
    def snapshot(self) -> dict[str, Any]:
        return dict(self._snapshot)

    @property
    def finished(self) -> bool:
        return self._finished

    def _emit(self, step: int, message: str, *, done: bool = False) -> None:
        if self._finished:
            raise RuntimeError("Progress already finished; no events may follow the terminal event")
        if self._callback is None:
            return
        self._callback(
            ProgressEvent(
                step_index=step,
                total_steps=self.total_steps,
                message=message,
                done=done,
                partial_result=dict(self._snapshot),
            )
        )

    def update(self, **partial: Any) -> None:
        self._snapshot.update({k: _plain(v) for k, v in partial.items()})

    def announce(self, step: int, message: str, **partial: Any) -> None:
        if step < self._last_announced:
            raise ValueError(f"Step {step} announced after step {self._last_announced}")
        self._last_announced = step
        self.update(**partial)
        self._logger.info("pipeline.progress", step=step, total_steps=self.total_steps, message=message)
        self._emit(step, message)

    def reporter(self, step: int) -> StageReporter:
        """Stage callback bound to `step`: only non-empty, not-done content is forwarded."""

        def _report(progress: StageProgress) -> None:
            if progress.done or not progress.content:
                return
            self._emit(step, progress.content)

        return _report

    def finish(self, message: str, result: PipelineResult) -> None:
        self._snapshot = result.model_dump()
        self._logger.info("pipeline.progress", step=self.total_steps, total_steps=self.total_steps, done=True)
        self._emit(self.total_steps, message, done=True)
        self._finished = True


_END = object()


class ProgressChannel:
    """Async iterator over the progress events of one background run.

    ``runner`` receives the publish callback and returns the run's result.
    The run starts when iteration starts. Leaving the loop early (``break``,
    an exception in the loop body, ``aclose()`` or the ``async with`` block)
    cancels it; a failed run re-raises its error from the iterator once
    queued events are drained.

    The queue is unbounded, so there is no backpressure on the run: stages
    publish through a synchronous callback and never wait for the consumer.
    """

    def __init__(self, runner: Callable[[ProgressCallback], Awaitable[PipelineResult]]) -> None:
        self._runner = runner
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._task: Optional[asyncio.Task[PipelineResult]] = None
        self._closed = False
        self.result: Optional[PipelineResult] = None

    def _publish(self, event: ProgressEvent) -> None:
        self._queue.put_nowait(event)

    def _start(self) -> asyncio.Task[PipelineResult]:
        if self._task is None:
            self._task = asyncio.ensure_future(self._runner(self._publish))
            self._task.add_done_callback(lambda _t: self._queue.put_nowait(_END))
        return self._task

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[ProgressEvent]:
        # The loop closes an abandoned generator, so a plain `break` reaches the finally.
        if self._closed:
            return
        task = self._start()
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    self._closed = True
                    self.result = task.result()
                    return
                yield item
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        self._closed = True
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def __aenter__(self) -> "ProgressChannel":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
