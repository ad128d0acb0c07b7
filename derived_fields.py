"""Computed attributes added on top of the raw stock record."""

from __future__ import annotations

from typing import Any, Mapping


def _as_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def available_stock(quantity: float, allocated: float) -> float:
    return max(0, quantity - allocated)


def derive_fields(record: Mapping[str, Any] | None) -> dict | None:
    """Return a new record with ``available_stock`` added.

    Returns ``None`` when the record is not ready yet (no payload, or
    ``quantity`` / ``allocated`` missing or non-numeric). The input mapping is
    never modified.
    """
    if not record:
        return None
    quantity = _as_number(record.get("quantity"))
    allocated = _as_number(record.get("allocated"))
    if quantity is None or allocated is None:
        return None
    augmented = dict(record)
    augmented["available_stock"] = available_stock(quantity, allocated)
    return augmented
