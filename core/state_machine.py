from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

S = TypeVar("S", bound=Hashable)


class IllegalTransition(RuntimeError):
    """Trigger not allowed from the current state."""


@dataclass(frozen=True, slots=True)
class Transition(Generic[S]):
    trigger: str
    sources: frozenset[S]
    dest: S


def transition(trigger: str, sources: S | Iterable[S], dest: S) -> Transition[S]:
    """Build a Transition; `sources` is one state or several."""
    if isinstance(sources, (str, bytes)) or not isinstance(sources, Iterable):
        return Transition(trigger, frozenset([sources]), dest)
    return Transition(trigger, frozenset(sources), dest)


class SimpleStateMachine(Generic[S]):
    """
    In-process FSM over a fixed transition table.
    Each trigger name maps to one destination. Not thread-safe.
    """

    def __init__(self, initial: S, transitions: Iterable[Transition[S]]) -> None:
        self._table: dict[str, Transition[S]] = {}
        for t in transitions:
            if t.trigger in self._table:
                raise ValueError(f"Duplicate trigger {t.trigger!r}")
            self._table[t.trigger] = t
        self._state = initial
        self._history: list[S] = [initial]

    @property
    def state(self) -> S:
        return self._state

    @property
    def history(self) -> tuple[S, ...]:
        """Every state entered so far, starting with the initial one."""
        return tuple(self._history)

    def can(self, trigger: str) -> bool:
        t = self._table.get(trigger)
        return t is not None and self._state in t.sources

    def allowed_triggers(self) -> list[str]:
        return sorted(name for name in self._table if self.can(name))

    def trigger(self, trigger: str) -> S:
        t = self._table.get(trigger)
        if t is None:
            raise ValueError(f"Unknown trigger {trigger!r}")
        if self._state not in t.sources:
            raise IllegalTransition(f"No transition for trigger '{trigger}' from state '{self._state}'")
        self._state = t.dest
        self._history.append(t.dest)
        return t.dest
