"""Field descriptor groups for the stock details panel.

The details panel is split into four quadrants: identity (top left),
quantity (top right), relations (bottom left) and misc (bottom right).
Descriptor order inside a group is fixed here and never sorted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Tuple

from predicates import ALWAYS, Predicate, field_truthy
from stock_status import status_info


Formatter = Callable[[Any], str]

FIELD_KINDS = {"text", "link", "status"}
GROUP_NAMES = ("identity", "quantity", "relations", "misc")


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    label: str
    kind: str = "text"
    icon: str | None = None
    target_model: str | None = None
    target_field: str | None = None
    formatter: Formatter | None = None
    visible: Predicate = field(default=ALWAYS)

    def __post_init__(self) -> None:
        if self.kind not in FIELD_KINDS:
            raise ValueError(f"Unsupported field kind: {self.kind}")

    def is_visible(self, record: Mapping[str, Any] | None) -> bool:
        return self.visible.evaluate(record)


@dataclass(frozen=True)
class FieldGroups:
    identity: Tuple[FieldDescriptor, ...]
    quantity: Tuple[FieldDescriptor, ...]
    relations: Tuple[FieldDescriptor, ...]
    misc: Tuple[FieldDescriptor, ...]

    def items(self) -> List[Tuple[str, Tuple[FieldDescriptor, ...]]]:
        return [(name, getattr(self, name)) for name in GROUP_NAMES]


def installed_in_label(parent: Any) -> str:
    """Label for the parent unit a stock item is installed in."""
    if not isinstance(parent, Mapping):
        return "" if parent is None else str(parent)
    part = parent.get("part_detail") or {}
    text = part.get("full_name") or part.get("name") or parent.get("name") or ""
    serial = parent.get("serial")
    if serial and parent.get("quantity") == 1:
        text += f"# {serial}"
    return text


def build_field_groups() -> FieldGroups:
    identity = (
        FieldDescriptor("part", "Base Part", kind="link", target_model="part"),
        FieldDescriptor("status", "Stock Status", kind="status", target_model="stockitem"),
        FieldDescriptor(
            "tests",
            "Completed Tests",
            icon="progress",
            visible=field_truthy("part_detail.trackable"),
        ),
        FieldDescriptor("updated", "Last Updated", icon="calendar"),
        FieldDescriptor(
            "stocktake",
            "Last Stocktake",
            icon="calendar",
            visible=field_truthy("stocktake"),
        ),
    )
    quantity = (
        FieldDescriptor("quantity", "Quantity"),
        FieldDescriptor("serial", "Serial Number", visible=field_truthy("serial")),
        FieldDescriptor("available_stock", "Available", icon="quantity"),
    )
    relations = (
        FieldDescriptor(
            "supplier_part",
            "Supplier Part",
            kind="link",
            target_model="supplierpart",
            visible=field_truthy("supplier_part"),
        ),
        FieldDescriptor(
            "location",
            "Location",
            kind="link",
            target_model="stocklocation",
            visible=field_truthy("location"),
        ),
        FieldDescriptor(
            "belongs_to",
            "Installed In",
            kind="link",
            icon="stock",
            target_model="stockitem",
            formatter=installed_in_label,
            visible=field_truthy("belongs_to"),
        ),
        FieldDescriptor(
            "consumed_by",
            "Consumed By",
            kind="link",
            icon="build",
            target_model="build",
            target_field="reference",
            visible=field_truthy("consumed_by"),
        ),
        FieldDescriptor(
            "build",
            "Build Order",
            kind="link",
            target_model="build",
            target_field="reference",
            visible=field_truthy("build"),
        ),
        FieldDescriptor(
            "sales_order",
            "Sales Order",
            kind="link",
            icon="sales_orders",
            target_model="salesorder",
            target_field="reference",
            visible=field_truthy("sales_order"),
        ),
        FieldDescriptor(
            "customer",
            "Customer",
            kind="link",
            target_model="company",
            visible=field_truthy("customer"),
        ),
    )
    misc = (
        FieldDescriptor(
            "packaging",
            "Packaging",
            icon="part",
            visible=field_truthy("packaging"),
        ),
    )
    return FieldGroups(identity=identity, quantity=quantity, relations=relations, misc=misc)


def _link_value(descriptor: FieldDescriptor, record: Mapping[str, Any]) -> dict:
    pk = record.get(descriptor.name)
    detail = record.get(f"{descriptor.name}_detail")
    if descriptor.formatter is not None:
        text = descriptor.formatter(detail if detail is not None else pk)
    elif isinstance(detail, Mapping):
        key = descriptor.target_field or "name"
        text = detail.get(key) or detail.get("full_name") or detail.get("name")
    else:
        text = None
    return {
        "model": descriptor.target_model,
        "pk": pk,
        "field": descriptor.target_field,
        "text": text if text not in (None, "") else (None if pk is None else str(pk)),
    }


def render_field(descriptor: FieldDescriptor, record: Mapping[str, Any]) -> Dict[str, Any]:
    if descriptor.kind == "link":
        value: Any = _link_value(descriptor, record)
    elif descriptor.kind == "status":
        code = record.get(descriptor.name)
        value = {"code": code, **status_info(code)}
    else:
        value = record.get(descriptor.name)
    return {
        "name": descriptor.name,
        "label": descriptor.label,
        "kind": descriptor.kind,
        "icon": descriptor.icon,
        "value": value,
    }


def render_field_groups(record: Mapping[str, Any] | None, groups: FieldGroups | None = None) -> Dict[str, List[dict]]:
    """Evaluate visibility against ``record`` and resolve visible fields."""
    groups = groups or build_field_groups()
    record = record or {}
    out: Dict[str, List[dict]] = {}
    for name, descriptors in groups.items():
        out[name] = [render_field(d, record) for d in descriptors if d.is_visible(record)]
    return out
