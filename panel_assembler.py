"""Content panels for the stock detail page."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from derived_fields import derive_fields
from field_groups import render_field_groups
from predicates import ALWAYS, Predicate, any_of, field_gt, field_truthy


logger = logging.getLogger("stockview.panels")

PENDING_PLACEHOLDER: Dict[str, Any] = {"kind": "pending"}


@dataclass(frozen=True)
class ContentProvider:
    """Lazy panel content bound to record identity.

    ``source`` names a listing on the stock backend; ``params`` are the
    arguments it is called with. Content is pending while any param is
    unknown.
    """

    source: str
    params: Tuple[Tuple[str, Any], ...] = ()
    initial: Any = None
    editable: bool = False

    def kwargs(self) -> Dict[str, Any]:
        return dict(self.params)

    @property
    def ready(self) -> bool:
        return all(value is not None for _, value in self.params)

    def describe(self) -> dict:
        if not self.ready:
            return dict(PENDING_PLACEHOLDER)
        out = {"kind": "lazy", "source": self.source, "params": self.kwargs()}
        if self.initial is not None:
            out["initial"] = self.initial
        if self.editable:
            out["editable"] = True
        return out


@dataclass(frozen=True)
class Panel:
    key: str
    label: str
    icon: str
    visible: Predicate = field(default=ALWAYS)
    content: ContentProvider | None = None


_SOURCES = {
    "tracking": "list_tracking",
    "test_results": "list_test_results",
    "installed_items": "list_installed_items",
    "child_items": "list_child_items",
    "attachments": "list_attachments",
    "notes": "get_notes",
}


def assemble_panels(record: Mapping[str, Any] | None) -> List[Panel]:
    record = record or {}
    pk = record.get("pk")
    return [
        Panel("details", "Stock Details", "info", content=ContentProvider("details", (("pk", pk),))),
        Panel("tracking", "Stock Tracking", "history", content=ContentProvider("tracking", (("item", pk),))),
        Panel(
            "allocations",
            "Allocations",
            "bookmark",
            visible=any_of(field_truthy("part_detail.salable"), field_truthy("part_detail.component")),
        ),
        Panel(
            "testdata",
            "Test Data",
            "checklist",
            visible=field_truthy("part_detail.trackable"),
            content=ContentProvider("test_results", (("stock_item", pk), ("part", record.get("part")))),
        ),
        Panel(
            "installed_items",
            "Installed Items",
            "box_padding",
            visible=field_truthy("part_detail.assembly"),
            content=ContentProvider("installed_items", (("parent", pk),)),
        ),
        Panel(
            "child_items",
            "Child Items",
            "sitemap",
            visible=field_gt("child_items", 0),
            content=ContentProvider("child_items", (("ancestor", pk),)),
        ),
        Panel(
            "attachments",
            "Attachments",
            "paperclip",
            content=ContentProvider("attachments", (("model", "stockitem"), ("pk", pk))),
        ),
        Panel(
            "notes",
            "Notes",
            "notes",
            content=ContentProvider("notes", (("pk", pk),), initial=record.get("notes") or "", editable=True),
        ),
    ]


def details_content(record: Mapping[str, Any] | None) -> dict:
    augmented = derive_fields(record)
    if augmented is None:
        return dict(PENDING_PLACEHOLDER)
    part = augmented.get("part_detail") or {}
    return {
        "kind": "details",
        "layout": "quadrants",
        "image": {
            "src": part.get("image") or part.get("thumbnail"),
            "pk": augmented.get("part"),
            "model": "part",
        },
        "groups": render_field_groups(augmented),
    }


def render_panel(panel: Panel, record: Mapping[str, Any] | None) -> dict:
    if panel.content is None:
        content = dict(PENDING_PLACEHOLDER)
    elif panel.content.source == "details":
        content = details_content(record)
    else:
        content = panel.content.describe()
    return {
        "key": panel.key,
        "label": panel.label,
        "icon": panel.icon,
        "visible": panel.visible.evaluate(record),
        "content": content,
    }


def render_panels(record: Mapping[str, Any] | None, panels: List[Panel] | None = None) -> List[dict]:
    panels = panels if panels is not None else assemble_panels(record)
    return [render_panel(panel, record) for panel in panels]


def find_panel(panels: List[Panel], key: str) -> Panel | None:
    for panel in panels:
        if panel.key == key:
            return panel
    return None


async def load_panel_content(panel: Panel, backend: Any, record: Mapping[str, Any] | None = None) -> Any:
    """Resolve a panel's lazy content from the stock backend.

    The details panel is built from ``record`` rather than fetched. Returns
    the pending placeholder when the panel has no provider or the identities
    it needs are not known yet.
    """
    provider = panel.content
    if provider is None or not provider.ready:
        return dict(PENDING_PLACEHOLDER)
    if provider.source == "details":
        return details_content(record)
    method_name = _SOURCES.get(provider.source)
    if method_name is None:
        raise KeyError(f"Unknown panel source: {provider.source}")
    loader = getattr(backend, method_name)
    logger.debug("panel_load key=%s source=%s", panel.key, provider.source)
    return await loader(**provider.kwargs())
