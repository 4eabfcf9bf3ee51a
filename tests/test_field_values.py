from __future__ import annotations

from datetime import datetime, timezone
import unittest

from google.cloud.firestore_v1.transforms import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    Increment,
    Maximum,
    Minimum,
)

from firestore_double.errors import InvalidArgumentError
from firestore_double.field_values import (
    compare_values,
    copy_value,
    merge_into,
    parse_field_path,
    set_at,
    values_equal,
)

NOW = datetime(2026, 2, 12, tzinfo=timezone.utc)


class ParseFieldPathTest(unittest.TestCase):
    def test_dotted_and_quoted_paths(self) -> None:
        self.assertEqual(parse_field_path("address.city"), ("address", "city"))
        self.assertEqual(parse_field_path("`a.b`.c"), ("a.b", "c"))
        self.assertEqual(parse_field_path("name"), ("name",))

    def test_invalid_paths_raise(self) -> None:
        for raw in ("", "a..b", ".a", "a.", "`a"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidArgumentError):
                    parse_field_path(raw)


class TransformTest(unittest.TestCase):
    def test_set_at_creates_intermediate_maps(self) -> None:
        data: dict = {"address": {"city": "LA"}}
        set_at(data, ("address", "zip"), "90001", NOW)
        set_at(data, ("stats", "visits"), Increment(2), NOW)

        self.assertEqual(data, {"address": {"city": "LA", "zip": "90001"}, "stats": {"visits": 2}})

    def test_transforms_combine_with_current_values(self) -> None:
        data: dict = {"count": 3, "tags": ["a", "b"], "low": 5, "high": 5, "gone": True}
        set_at(data, ("count",), Increment(2), NOW)
        set_at(data, ("tags",), ArrayUnion(["b", "c"]), NOW)
        set_at(data, ("low",), Minimum(1), NOW)
        set_at(data, ("high",), Maximum(1), NOW)
        set_at(data, ("gone",), DELETE_FIELD, NOW)
        set_at(data, ("seen_at",), SERVER_TIMESTAMP, NOW)

        self.assertEqual(
            data,
            {"count": 5, "tags": ["a", "b", "c"], "low": 1, "high": 5, "seen_at": NOW},
        )

        set_at(data, ("tags",), ArrayRemove(["a", "c"]), NOW)
        self.assertEqual(data["tags"], ["b"])

    def test_merge_into_merges_nested_maps(self) -> None:
        data: dict = {"address": {"city": "LA", "state": "CA"}, "name": "Los Angeles"}
        merge_into(data, {"address": {"city": "San Francisco"}, "capital": False}, NOW)

        self.assertEqual(
            data,
            {
                "address": {"city": "San Francisco", "state": "CA"},
                "name": "Los Angeles",
                "capital": False,
            },
        )

    def test_copy_value_is_deep_for_containers(self) -> None:
        original = {"nested": {"items": [1, {"x": 1}]}}
        copied = copy_value(original)
        copied["nested"]["items"][1]["x"] = 2

        self.assertEqual(original["nested"]["items"][1]["x"], 1)


class CompareValuesTest(unittest.TestCase):
    def test_cross_type_order(self) -> None:
        ordered = [None, False, True, -1, 2.5, NOW, "a", b"a", [1], {"a": 1}]
        for left, right in zip(ordered, ordered[1:]):
            with self.subTest(left=left, right=right):
                self.assertLess(compare_values(left, right), 0)
                self.assertGreater(compare_values(right, left), 0)

    def test_booleans_and_numbers_are_distinct(self) -> None:
        self.assertFalse(values_equal(1, True))
        self.assertFalse(values_equal(0, False))
        self.assertTrue(values_equal(1, 1.0))

    def test_naive_and_aware_timestamps_compare(self) -> None:
        naive = datetime(2026, 2, 12)
        self.assertEqual(compare_values(naive, NOW), 0)


if __name__ == "__main__":
    unittest.main()
