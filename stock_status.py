"""Stock status codes and their display attributes."""

from __future__ import annotations

from typing import Any, Dict


STOCK_STATUS: Dict[int, Dict[str, str]] = {
    10: {"key": "OK", "label": "OK", "color": "green"},
    50: {"key": "ATTENTION", "label": "Attention needed", "color": "yellow"},
    55: {"key": "DAMAGED", "label": "Damaged", "color": "red"},
    60: {"key": "DESTROYED", "label": "Destroyed", "color": "red"},
    65: {"key": "REJECTED", "label": "Rejected", "color": "red"},
    70: {"key": "LOST", "label": "Lost", "color": "dark"},
    75: {"key": "QUARANTINED", "label": "Quarantined", "color": "blue"},
    85: {"key": "RETURNED", "label": "Returned", "color": "blue"},
}

_UNKNOWN = {"key": "UNKNOWN", "label": "Unknown", "color": "gray"}


def status_info(code: Any) -> dict:
    try:
        return dict(STOCK_STATUS.get(int(code), _UNKNOWN))
    except (TypeError, ValueError):
        return dict(_UNKNOWN)
