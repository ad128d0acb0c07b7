import asyncio
import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from app.stores import InMemoryStockBackend
from panel_assembler import (
    PENDING_PLACEHOLDER,
    Panel,
    assemble_panels,
    find_panel,
    load_panel_content,
    render_panels,
)


def _record(**overrides) -> dict:
    record = {
        "pk": 42,
        "part": 7,
        "quantity": 10,
        "allocated": 2,
        "status": 10,
        "child_items": 0,
        "notes": "fragile",
        "part_detail": {"name": "Widget", "trackable": False, "assembly": False, "salable": False, "component": False},
    }
    record.update(overrides)
    return record


def _visible(panels: list) -> dict:
    return {p["key"]: p["visible"] for p in panels}


class TestPanelAssembler(unittest.TestCase):
    def test_panel_order_is_fixed(self) -> None:
        keys = [p.key for p in assemble_panels(_record())]
        self.assertEqual(
            keys,
            ["details", "tracking", "allocations", "testdata", "installed_items", "child_items", "attachments", "notes"],
        )
        self.assertEqual(len(set(keys)), len(keys))

    def test_always_visible_panels(self) -> None:
        visible = _visible(render_panels(_record()))
        for key in ("details", "tracking", "attachments", "notes"):
            self.assertTrue(visible[key], key)

    def test_child_items_visible_iff_positive(self) -> None:
        self.assertFalse(_visible(render_panels(_record(child_items=0)))["child_items"])
        self.assertTrue(_visible(render_panels(_record(child_items=2)))["child_items"])
        record = _record()
        record.pop("child_items")
        self.assertFalse(_visible(render_panels(record))["child_items"])

    def test_allocations_visible_iff_salable_or_component(self) -> None:
        for salable in (False, True):
            for component in (False, True):
                part = {"salable": salable, "component": component}
                visible = _visible(render_panels(_record(part_detail=part)))
                self.assertEqual(visible["allocations"], salable or component)

    def test_part_flag_panels(self) -> None:
        part = {"trackable": True, "assembly": True}
        visible = _visible(render_panels(_record(part_detail=part)))
        self.assertTrue(visible["testdata"])
        self.assertTrue(visible["installed_items"])
        visible = _visible(render_panels(_record(part_detail={})))
        self.assertFalse(visible["testdata"])
        self.assertFalse(visible["installed_items"])

    def test_content_bound_to_identity(self) -> None:
        panels = {p["key"]: p for p in render_panels(_record(child_items=1))}
        self.assertEqual(panels["testdata"]["content"]["params"], {"stock_item": 42, "part": 7})
        self.assertEqual(panels["child_items"]["content"]["params"], {"ancestor": 42})
        self.assertEqual(panels["notes"]["content"]["params"], {"pk": 42})
        self.assertEqual(panels["notes"]["content"]["initial"], "fragile")
        self.assertTrue(panels["notes"]["content"]["editable"])
        self.assertEqual(panels["allocations"]["content"], PENDING_PLACEHOLDER)

    def test_details_content(self) -> None:
        details = render_panels(_record())[0]["content"]
        self.assertEqual(details["kind"], "details")
        self.assertEqual(details["layout"], "quadrants")
        self.assertEqual(set(details["groups"]), {"identity", "quantity", "relations", "misc"})
        self.assertEqual(details["image"]["pk"], 7)

    def test_pending_placeholder_without_identity(self) -> None:
        record = _record()
        record.pop("pk")
        panels = {p["key"]: p for p in render_panels(record)}
        self.assertEqual(panels["testdata"]["content"], PENDING_PLACEHOLDER)
        self.assertEqual(panels["child_items"]["content"], PENDING_PLACEHOLDER)
        self.assertEqual(panels["attachments"]["content"], PENDING_PLACEHOLDER)

    def test_details_pending_while_loading(self) -> None:
        panels = render_panels(None)
        self.assertEqual(panels[0]["content"], PENDING_PLACEHOLDER)
        self.assertEqual(len(panels), 8)

    def test_render_does_not_mutate_record(self) -> None:
        record = _record()
        render_panels(record)
        self.assertNotIn("available_stock", record)


class TestPanelContentLoading(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = InMemoryStockBackend()
        self.backend.add_part(7, "Widget", trackable=True)
        self.backend.add_item(pk=42, part=7, quantity=10)
        self.backend.add_item(pk=43, part=7, quantity=1, parent=42)
        self.backend.add_test_result(42, "Voltage")
        self.backend.add_attachment("stockitem", 42, "datasheet.pdf")

    def _load(self, key: str, record: dict):
        panel = find_panel(assemble_panels(record), key)
        return asyncio.run(load_panel_content(panel, self.backend))

    def test_loads_listings(self) -> None:
        record = _record(child_items=1)
        self.assertEqual([t["test"] for t in self._load("testdata", record)], ["Voltage"])
        self.assertEqual([i["pk"] for i in self._load("child_items", record)], [43])
        self.assertEqual([a["filename"] for a in self._load("attachments", record)], ["datasheet.pdf"])

    def test_details_built_from_record(self) -> None:
        record = _record()
        panel = find_panel(assemble_panels(record), "details")
        details = asyncio.run(load_panel_content(panel, self.backend, record))
        self.assertEqual(details["kind"], "details")
        self.assertEqual(details["groups"]["quantity"][-1]["value"], 8)

    def test_pending_without_provider_or_identity(self) -> None:
        self.assertEqual(self._load("allocations", _record()), PENDING_PLACEHOLDER)
        record = _record()
        record.pop("pk")
        self.assertEqual(self._load("child_items", record), PENDING_PLACEHOLDER)

    def test_unknown_source_raises(self) -> None:
        from panel_assembler import ContentProvider

        panel = Panel("odd", "Odd", "x", content=ContentProvider("odd", (("pk", 1),)))
        with self.assertRaises(KeyError):
            asyncio.run(load_panel_content(panel, self.backend))


if __name__ == "__main__":
    unittest.main()
