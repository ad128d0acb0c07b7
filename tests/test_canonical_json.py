import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from stockview.canonical_json import CanonicalJsonTypeError, canonical_dumps
from stockview.fingerprint import context_hash


class TestCanonicalJson(unittest.TestCase):
    def test_key_ordering_is_deterministic(self) -> None:
        self.assertEqual(canonical_dumps({"b": 1, "a": 2}), canonical_dumps({"a": 2, "b": 1}))

    def test_nested_dict_ordering(self) -> None:
        obj = {"b": 1, "a": {"d": 4, "c": 3}}
        self.assertEqual(canonical_dumps(obj), '{"a":{"c":3,"d":4},"b":1}')

    def test_list_order_preserved(self) -> None:
        self.assertEqual(canonical_dumps({"list": [2, 1, 3]}), '{"list":[2,1,3]}')

    def test_sets_are_sorted(self) -> None:
        self.assertEqual(canonical_dumps({"roles": {"b", "a"}}), '{"roles":["a","b"]}')
        self.assertEqual(
            canonical_dumps({"roles": frozenset({"stock.view", "stock.change"})}),
            canonical_dumps({"roles": ["stock.change", "stock.view"]}),
        )

    def test_tuples_become_lists(self) -> None:
        self.assertEqual(canonical_dumps({"pair": (1, 2)}), '{"pair":[1,2]}')

    def test_non_ascii_preserved(self) -> None:
        out = canonical_dumps({"name": "café"})
        self.assertIn("café", out)
        self.assertNotIn("\\u", out)

    def test_unsupported_type_raises(self) -> None:
        with self.assertRaises(CanonicalJsonTypeError):
            canonical_dumps({"bad": object()})

    def test_reject_nan_and_inf(self) -> None:
        for value in (float("nan"), float("inf"), float("-inf")):
            with self.assertRaises(ValueError):
                canonical_dumps({"bad": value})

    def test_context_hash_is_stable(self) -> None:
        a = context_hash({"id": "u1", "grants": ["stock.view"]})
        b = context_hash({"grants": ["stock.view"], "id": "u1"})
        self.assertEqual(a, b)
        self.assertTrue(a.startswith("sha256:"))
        self.assertNotEqual(a, context_hash({"id": "u2", "grants": ["stock.view"]}))


if __name__ == "__main__":
    unittest.main()
