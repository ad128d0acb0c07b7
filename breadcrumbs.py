"""Breadcrumb trail and the location tree it opens."""

from __future__ import annotations

from typing import Any, List, Mapping


ROOT_CRUMB = {"name": "Stock", "url": "/stock", "ref": None}


def location_url(pk: Any) -> str:
    return f"/stock/location/{pk}/"


def build_breadcrumbs(record: Mapping[str, Any] | None) -> List[dict]:
    crumbs = [dict(ROOT_CRUMB)]
    path = (record or {}).get("location_path") or []
    for entry in path:
        if not isinstance(entry, Mapping) or entry.get("pk") is None:
            continue
        crumbs.append(
            {
                "name": entry.get("name") or str(entry.get("pk")),
                "url": location_url(entry["pk"]),
                "ref": {"model": "stocklocation", "pk": entry["pk"]},
            }
        )
    return crumbs


class LocationTreeState:
    """Open/closed state of the auxiliary location tree."""

    def __init__(self) -> None:
        self.opened = False
        self.selected_location: Any = None

    def open(self, record: Mapping[str, Any] | None) -> None:
        self.opened = True
        self.selected_location = (record or {}).get("location")

    def close(self) -> None:
        self.opened = False

    def to_dict(self) -> dict:
        return {"opened": self.opened, "selected_location": self.selected_location}
