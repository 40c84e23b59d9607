"""Write-once store for intermediate results shared across pipeline phases."""

from __future__ import annotations

from typing import Any

from core.models import KeywordExtractionResult


class ContextFieldAlreadySet(RuntimeError):
    """A write-once field was written a second time."""


class ContextFrozen(RuntimeError):
    """The store was frozen before a dependent phase started."""


_FIELDS: dict[str, type | tuple[type, ...]] = {
    "refined_job_description": str,
    "extracted_keywords": KeywordExtractionResult,
    "extracted_skills": str,
    "job_title": str,
}


class OptimizationContext:
    """Intermediate results of one pipeline run.

    Every field starts unset (None) and may be written exactly once. After
    ``freeze()`` no further writes are accepted; readers always get the
    value that was set, or None.
    """

    __slots__ = ("_values", "_frozen")

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._frozen = False

    @staticmethod
    def fields() -> tuple[str, ...]:
        return tuple(_FIELDS)

    def set(self, name: str, value: Any) -> None:
        if name not in _FIELDS:
            raise KeyError(f"Unknown context field: {name}")
        if self._frozen:
            raise ContextFrozen(f"Context is frozen; cannot set {name}")
        if name in self._values:
            raise ContextFieldAlreadySet(f"Context field {name} is already set")
        if not isinstance(value, _FIELDS[name]):
            raise TypeError(f"{name} expects {_FIELDS[name]}, got {type(value).__name__}")
        self._values[name] = value

    def get(self, name: str) -> Any:
        if name not in _FIELDS:
            raise KeyError(f"Unknown context field: {name}")
        return self._values.get(name)

    def is_set(self, name: str) -> bool:
        return name in self._values

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def refined_job_description(self) -> str | None:
        return self._values.get("refined_job_description")

    @property
    def extracted_keywords(self) -> KeywordExtractionResult | None:
        return self._values.get("extracted_keywords")

    @property
    def extracted_skills(self) -> str | None:
        return self._values.get("extracted_skills")

    @property
    def job_title(self) -> str | None:
        return self._values.get("job_title")

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)
