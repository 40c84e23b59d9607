from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(raw: str) -> str:
    """Remove markdown code fences models like to wrap JSON in."""
    return _FENCE_RE.sub("", raw or "").strip()


def parse_json_object(raw: str, error_cls: type[Exception]) -> dict[str, Any]:
    """Extract JSON object from a raw model string, raising error_cls on failure.

    Tries full-string JSON parse first, then extracts the first {...} block. On failure,
    raises error_cls with the original exception chained.
    """

    raw = strip_code_fences(raw)
    try:
        data = json.loads(raw)
        if isinstance(data, dict):
            return data
        raise error_cls("Expected JSON object in model output")
    except json.JSONDecodeError as exc:
        start, end = raw.find("{"), raw.rfind("}")
        if start == -1 or end == -1:
            raise error_cls("No JSON detected in model output") from exc
        try:
            data = json.loads(raw[start : end + 1])
            if isinstance(data, dict):
                return data
            raise error_cls("Expected JSON object in model output")
        except json.JSONDecodeError as exc2:
            raise error_cls("Malformed JSON in model output") from exc2


def parse_json_array(raw: str, error_cls: type[Exception]) -> list[Any]:
    """Same contract as parse_json_object, for a top-level [...] value."""

    raw = strip_code_fences(raw)
    try:
        data = json.loads(raw)
        if isinstance(data, list):
            return data
        raise error_cls("Expected JSON array in model output")
    except json.JSONDecodeError as exc:
        start, end = raw.find("["), raw.rfind("]")
        if start == -1 or end == -1:
            raise error_cls("No JSON array detected in model output") from exc
        try:
            data = json.loads(raw[start : end + 1])
            if isinstance(data, list):
                return data
            raise error_cls("Expected JSON array in model output")
        except json.JSONDecodeError as exc2:
            raise error_cls("Malformed JSON in model output") from exc2
