import copy
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


class TestDerivedFields(unittest.TestCase):
    def test_available_stock(self) -> None:
        out = derive_fields({"pk": 1, "quantity": 10, "allocated": 4})
        self.assertEqual(out["available_stock"], 6)

    def test_available_stock_clamped_when_over_allocated(self) -> None:
        out = derive_fields({"pk": 1, "quantity": 10, "allocated": 15})
        self.assertEqual(out["available_stock"], 0)

    def test_available_stock_matches_formula(self) -> None:
        for quantity, allocated in [(0, 0), (5, 5), (2.5, 1), (3, 7.5), (100, 0)]:
            out = derive_fields({"quantity": quantity, "allocated": allocated})
            self.assertEqual(out["available_stock"], max(0, quantity - allocated))
            self.assertGreaterEqual(out["available_stock"], 0)

    def test_input_not_mutated(self) -> None:
        record = {"pk": 1, "quantity": 10, "allocated": 15, "part_detail": {"name": "R1"}}
        before = copy.deepcopy(record)
        out = derive_fields(record)
        self.assertEqual(record, before)
        self.assertNotIn("available_stock", record)
        self.assertIsNot(out, record)

    def test_not_ready_while_loading(self) -> None:
        self.assertIsNone(derive_fields(None))
        self.assertIsNone(derive_fields({}))
        self.assertIsNone(derive_fields({"pk": 1, "quantity": 10}))
        self.assertIsNone(derive_fields({"pk": 1, "allocated": 1}))
        self.assertIsNone(derive_fields({"pk": 1, "quantity": "n/a", "allocated": 0}))

    def test_numeric_strings_accepted(self) -> None:
        out = derive_fields({"quantity": "10.5", "allocated": "0.5"})
        self.assertEqual(out["available_stock"], 10.0)


if __name__ == "__main__":
    unittest.main()
