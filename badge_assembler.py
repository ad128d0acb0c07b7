"""Status badges shown in the page header."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping

from predicates import field_truthy
from stock_status import status_info


@dataclass(frozen=True)
class Badge:
    label: str
    color: str
    visible: bool
    kind: str = "badge"

    def to_dict(self) -> dict:
        return {"label": self.label, "color": self.color, "visible": self.visible, "kind": self.kind}


def assemble_badges(record: Mapping[str, Any] | None, loading: bool) -> List[Badge]:
    """Serial, quantity, batch and status badges, in that order.

    Nothing is shown while the record is loading. The serial and quantity
    badges share one predicate, so exactly one of them is visible.
    """
    if loading or record is None:
        return []
    serialized = field_truthy("serial").evaluate(record)
    status = status_info(record.get("status"))
    return [
        Badge(f"Serial Number: {record.get('serial')}", "blue", serialized),
        Badge(f"Quantity: {record.get('quantity')}", "blue", not serialized),
        Badge(f"Batch Code: {record.get('batch')}", "blue", field_truthy("batch").evaluate(record)),
        Badge(status["label"], status["color"], True, kind="status"),
    ]
