"""In-memory stock backend for local runs and tests."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List

from mutation_workflow import MutationFailure
from record_store import NotFound


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class InMemoryStockBackend:
    """Implements the ``StockApiClient`` contract over plain dicts."""

    def __init__(self) -> None:
        self._items: Dict[int, dict] = {}
        self._parts: Dict[int, dict] = {}
        self._locations: Dict[int, dict] = {}
        self._tests: List[dict] = []
        self._attachments: List[dict] = []
        self._tracking: List[dict] = []
        self._next_pk = 1
        self.calls: List[tuple] = []

    # -- seeding --

    def add_part(self, pk: int, name: str, **flags: Any) -> dict:
        part = {"pk": pk, "name": name, "full_name": flags.pop("full_name", name), **flags}
        self._parts[pk] = part
        return copy.deepcopy(part)

    def add_location(self, pk: int, name: str, parent: int | None = None) -> dict:
        loc = {"pk": pk, "name": name, "parent": parent}
        self._locations[pk] = loc
        return copy.deepcopy(loc)

    def add_item(self, **values: Any) -> dict:
        pk = values.pop("pk", None) or self._next_pk
        self._next_pk = max(self._next_pk, pk) + 1
        item = {
            "pk": pk,
            "quantity": 0,
            "allocated": 0,
            "serial": None,
            "batch": None,
            "status": 10,
            "location": None,
            "part": None,
            "parent": None,
            "belongs_to": None,
            "notes": "",
            "updated": _now(),
            "barcode_hash": "",
        }
        item.update(values)
        self._items[pk] = item
        return copy.deepcopy(item)

    def add_test_result(self, stock_item: int, test: str, result: bool = True) -> None:
        self._tests.append({"stock_item": stock_item, "test": test, "result": result})

    def add_attachment(self, model: str, pk: int, filename: str) -> None:
        self._attachments.append({"model_type": model, "model_id": pk, "filename": filename})

    # -- reads --

    def _require(self, pk: Any) -> dict:
        try:
            return self._items[int(pk)]
        except (KeyError, TypeError, ValueError):
            raise NotFound(identity=pk) from None

    def _location_path(self, location: Any) -> List[dict]:
        path: List[dict] = []
        seen = set()
        current = self._locations.get(location) if location is not None else None
        while current is not None and current["pk"] not in seen:
            seen.add(current["pk"])
            path.insert(0, {"pk": current["pk"], "name": current["name"]})
            current = self._locations.get(current.get("parent"))
        return path

    async def get_record(self, pk: Any, params: Dict[str, Any] | None = None) -> dict:
        params = params or {}
        self.calls.append(("get_record", pk))
        item = copy.deepcopy(self._require(pk))
        item["child_items"] = sum(1 for other in self._items.values() if other.get("parent") == item["pk"])
        item["tests"] = sum(1 for t in self._tests if t["stock_item"] == item["pk"] and t["result"])
        if params.get("part_detail") and item.get("part") in self._parts:
            item["part_detail"] = copy.deepcopy(self._parts[item["part"]])
        if params.get("location_detail") and item.get("location") in self._locations:
            item["location_detail"] = copy.deepcopy(self._locations[item["location"]])
        if params.get("path_detail"):
            item["location_path"] = self._location_path(item.get("location"))
        parent = self._items.get(item.get("belongs_to"))
        if parent is not None:
            parent_detail = copy.deepcopy(parent)
            parent_detail["part_detail"] = copy.deepcopy(self._parts.get(parent.get("part")) or {})
            item["belongs_to_detail"] = parent_detail
        return item

    async def get_notes(self, pk: Any) -> str:
        return self._require(pk).get("notes") or ""

    async def list_attachments(self, model: str, pk: Any) -> List[dict]:
        return [copy.deepcopy(a) for a in self._attachments if a["model_type"] == model and a["model_id"] == pk]

    async def list_test_results(self, stock_item: Any, part: Any) -> List[dict]:
        return [copy.deepcopy(t) for t in self._tests if t["stock_item"] == stock_item]

    async def list_installed_items(self, parent: Any) -> List[dict]:
        return [copy.deepcopy(i) for i in self._items.values() if i.get("belongs_to") == parent]

    async def list_child_items(self, ancestor: Any) -> List[dict]:
        out = []
        for item in self._items.values():
            current = item.get("parent")
            while current is not None:
                if current == ancestor:
                    out.append(copy.deepcopy(item))
                    break
                current = (self._items.get(current) or {}).get("parent")
        return out

    async def list_tracking(self, item: Any) -> List[dict]:
        return [copy.deepcopy(t) for t in self._tracking if t["item"] == item]

    # -- mutations --

    def _track(self, pk: int, kind: str, detail: dict) -> None:
        self._tracking.append({"item": pk, "kind": kind, "date": _now(), "detail": detail})

    def _line(self, request: dict) -> tuple:
        items = request.get("items") or []
        if len(items) != 1:
            raise MutationFailure("MUTATION_INVALID", "Exactly one item expected")
        line = items[0]
        try:
            item = self._require(line.get("pk"))
        except NotFound:
            raise MutationFailure("MUTATION_INVALID", "Stock item does not exist") from None
        return item, line.get("quantity")

    async def count_stock(self, request: dict) -> dict:
        self.calls.append(("count", request))
        item, quantity = self._line(request)
        item["quantity"] = quantity
        item["stocktake"] = _now()
        item["updated"] = _now()
        self._track(item["pk"], "count", {"quantity": quantity})
        return {"items": [copy.deepcopy(item)]}

    async def add_stock(self, request: dict) -> dict:
        self.calls.append(("add", request))
        item, quantity = self._line(request)
        if item.get("serial"):
            raise MutationFailure("MUTATION_INVALID", "Serialized stock cannot be added to")
        item["quantity"] = item["quantity"] + quantity
        item["updated"] = _now()
        self._track(item["pk"], "add", {"added": quantity})
        return {"items": [copy.deepcopy(item)]}

    async def remove_stock(self, request: dict) -> dict:
        self.calls.append(("remove", request))
        item, quantity = self._line(request)
        if quantity > item["quantity"]:
            raise MutationFailure("MUTATION_INVALID", "Quantity exceeds available stock", {"quantity": item["quantity"]})
        item["quantity"] = item["quantity"] - quantity
        item["updated"] = _now()
        self._track(item["pk"], "remove", {"removed": quantity})
        return {"items": [copy.deepcopy(item)]}

    async def transfer_stock(self, request: dict) -> dict:
        self.calls.append(("transfer", request))
        item, quantity = self._line(request)
        location = request.get("location")
        if location not in self._locations:
            raise MutationFailure("MUTATION_INVALID", "Destination location does not exist", {"location": location})
        if quantity is None or quantity >= item["quantity"]:
            item["location"] = location
            item["updated"] = _now()
            self._track(item["pk"], "transfer", {"location": location})
            return {"items": [copy.deepcopy(item)]}
        item["quantity"] = item["quantity"] - quantity
        moved = self.add_item(
            part=item.get("part"),
            quantity=quantity,
            location=location,
            parent=item["pk"],
            batch=item.get("batch"),
            status=item.get("status"),
        )
        self._track(item["pk"], "split", {"child": moved["pk"], "quantity": quantity})
        return {"items": [copy.deepcopy(item), moved]}

    async def edit_record(self, pk: Any, changes: dict) -> dict:
        self.calls.append(("edit", pk, changes))
        try:
            item = self._require(pk)
        except NotFound:
            raise MutationFailure("MUTATION_INVALID", "Stock item does not exist") from None
        item.update(copy.deepcopy(changes))
        item["updated"] = _now()
        self._track(item["pk"], "edit", {"fields": sorted(changes)})
        return copy.deepcopy(item)

    async def save_notes(self, pk: Any, text: str) -> dict:
        self.calls.append(("save_notes", pk))
        item = self._require(pk)
        item["notes"] = text
        return {"pk": item["pk"], "notes": text}
