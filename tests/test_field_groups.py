import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from derived_fields import derive_fields
from field_groups import FieldDescriptor, build_field_groups, installed_in_label, render_field_groups
from predicates import Predicate


def _names(fields: list) -> list:
    return [f["name"] for f in fields]


class TestFieldGroups(unittest.TestCase):
    def setUp(self) -> None:
        self.record = derive_fields(
            {
                "pk": 42,
                "part": 7,
                "part_detail": {"pk": 7, "name": "Resistor", "full_name": "Resistor 10k", "trackable": False},
                "status": 10,
                "quantity": 10,
                "allocated": 15,
                "serial": None,
                "tests": 3,
                "updated": "2026-01-01T00:00:00Z",
                "stocktake": None,
                "location": 5,
                "location_detail": {"pk": 5, "name": "Shelf A"},
            }
        )

    def test_group_order_is_fixed(self) -> None:
        groups = build_field_groups()
        self.assertEqual([name for name, _ in groups.items()], ["identity", "quantity", "relations", "misc"])
        self.assertEqual(
            [d.name for d in groups.identity],
            ["part", "status", "tests", "updated", "stocktake"],
        )
        self.assertEqual([d.name for d in groups.quantity], ["quantity", "serial", "available_stock"])
        self.assertEqual(
            [d.name for d in groups.relations],
            ["supplier_part", "location", "belongs_to", "consumed_by", "build", "sales_order", "customer"],
        )
        self.assertEqual([d.name for d in groups.misc], ["packaging"])

    def test_completed_tests_hidden_when_not_trackable(self) -> None:
        rendered = render_field_groups(self.record)
        self.assertNotIn("tests", _names(rendered["identity"]))
        trackable = dict(self.record, part_detail=dict(self.record["part_detail"], trackable=True))
        self.assertIn("tests", _names(render_field_groups(trackable)["identity"]))

    def test_optional_fields_hidden_when_absent(self) -> None:
        rendered = render_field_groups(self.record)
        self.assertEqual(_names(rendered["identity"]), ["part", "status", "updated"])
        self.assertEqual(_names(rendered["quantity"]), ["quantity", "available_stock"])
        self.assertEqual(_names(rendered["relations"]), ["location"])
        self.assertEqual(rendered["misc"], [])

    def test_falsy_values_hide_optional_fields(self) -> None:
        record = dict(self.record, location=0, serial=0, customer=False, packaging="")
        rendered = render_field_groups(record)
        self.assertEqual(_names(rendered["quantity"]), ["quantity", "available_stock"])
        self.assertEqual(_names(rendered["relations"]), [])
        self.assertEqual(rendered["misc"], [])

    def test_serial_and_stocktake_visible_when_set(self) -> None:
        record = dict(self.record, serial="SN-1", stocktake="2026-02-01", packaging="Reel")
        rendered = render_field_groups(record)
        self.assertIn("serial", _names(rendered["quantity"]))
        self.assertIn("stocktake", _names(rendered["identity"]))
        self.assertEqual(_names(rendered["misc"]), ["packaging"])

    def test_available_stock_value(self) -> None:
        rendered = render_field_groups(self.record)
        available = [f for f in rendered["quantity"] if f["name"] == "available_stock"][0]
        self.assertEqual(available["value"], 0)

    def test_link_and_status_values(self) -> None:
        rendered = render_field_groups(self.record)
        location = rendered["relations"][0]
        self.assertEqual(location["value"]["model"], "stocklocation")
        self.assertEqual(location["value"]["pk"], 5)
        self.assertEqual(location["value"]["text"], "Shelf A")
        status = rendered["identity"][1]
        self.assertEqual(status["value"]["label"], "OK")

    def test_relations_follow_source_fields(self) -> None:
        record = dict(self.record, build=3, sales_order=9, customer=2, consumed_by=4, supplier_part=8)
        rendered = render_field_groups(record)
        self.assertEqual(
            _names(rendered["relations"]),
            ["supplier_part", "location", "consumed_by", "build", "sales_order", "customer"],
        )
        build = [f for f in rendered["relations"] if f["name"] == "build"][0]
        self.assertEqual(build["value"]["field"], "reference")

    def test_installed_in_label(self) -> None:
        parent = {"pk": 1, "serial": "77", "quantity": 1, "part_detail": {"full_name": "Chassis"}}
        self.assertEqual(installed_in_label(parent), "Chassis# 77")
        self.assertEqual(installed_in_label(dict(parent, quantity=2)), "Chassis")
        self.assertEqual(installed_in_label(dict(parent, serial=None)), "Chassis")
        self.assertEqual(installed_in_label(None), "")
        self.assertEqual(installed_in_label(12), "12")

    def test_installed_in_uses_parent_detail(self) -> None:
        record = dict(
            self.record,
            belongs_to=1,
            belongs_to_detail={"pk": 1, "serial": "77", "quantity": 1, "part_detail": {"full_name": "Chassis"}},
        )
        rendered = render_field_groups(record)
        installed = [f for f in rendered["relations"] if f["name"] == "belongs_to"][0]
        self.assertEqual(installed["value"]["text"], "Chassis# 77")

    def test_visibility_follows_latest_snapshot(self) -> None:
        groups = build_field_groups()
        serial = groups.quantity[1]
        self.assertFalse(serial.is_visible(self.record))
        self.assertTrue(serial.is_visible(dict(self.record, serial="SN-2")))

    def test_bad_predicate_hides_field(self) -> None:
        descriptor = FieldDescriptor("quantity", "Quantity", visible=Predicate({"op": "bogus"}))
        self.assertFalse(descriptor.is_visible(self.record))

    def test_unknown_kind_rejected(self) -> None:
        with self.assertRaises(ValueError):
            FieldDescriptor("x", "X", kind="image")

    def test_render_tolerates_missing_record(self) -> None:
        rendered = render_field_groups(None)
        self.assertEqual(_names(rendered["identity"]), ["part", "status", "updated"])


if __name__ == "__main__":
    unittest.main()
