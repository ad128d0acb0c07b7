"""Deterministic JSON used for cache-key and event payload fingerprints."""

from __future__ import annotations

import json
import math
from typing import Any


class CanonicalJsonTypeError(TypeError):
    """Raised when an object cannot be serialized to canonical JSON."""


def _sort_key(item: Any) -> str:
    return json.dumps(item, sort_keys=True, ensure_ascii=False)


def _normalize(obj: Any, path: str = "$") -> Any:
    """Return a JSON-ready copy of ``obj``.

    Permission grants arrive as sets and identities as tuples, so both are
    accepted: tuples become lists, sets become lists sorted by their JSON
    text.
    """
    if obj is None or isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, float):
        if math.isfinite(obj):
            return obj
        raise ValueError(f"Non-finite float at {path}: {obj!r}")
    if isinstance(obj, dict):
        bad = [k for k in obj if not isinstance(k, str)]
        if bad:
            raise CanonicalJsonTypeError(f"Unsupported key type at {path}: {type(bad[0]).__name__}")
        return {key: _normalize(value, f"{path}.{key}") for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_normalize(item, f"{path}[{idx}]") for idx, item in enumerate(obj)]
    if isinstance(obj, (set, frozenset)):
        return sorted((_normalize(item, f"{path}[]") for item in obj), key=_sort_key)
    raise CanonicalJsonTypeError(f"Unsupported type at {path}: {type(obj).__name__}")


def canonical_dumps(obj: Any) -> str:
    """Serialize ``obj`` with sorted keys, no whitespace and non-ASCII kept."""
    return json.dumps(
        _normalize(obj),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )
