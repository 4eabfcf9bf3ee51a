from __future__ import annotations

import random
import unittest

from firestore_double.errors import InvalidPathError
from firestore_double.paths import (
    IdGenerator,
    collection_path,
    document_path,
    is_document_path,
    split_path,
)


class SplitPathTest(unittest.TestCase):
    def test_components_are_joined_and_split(self) -> None:
        self.assertEqual(split_path("users", "123abc/cities"), ("users", "123abc", "cities"))
        self.assertEqual(split_path("/cities/LA/"), ("cities", "LA"))

    def test_empty_segments_raise(self) -> None:
        for raw in ("", "cities//LA", "/"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidPathError):
                    split_path(raw)

    def test_reserved_segments_raise(self) -> None:
        for raw in ("cities/.", "cities/..", "cities/__name__"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidPathError):
                    split_path(raw)

    def test_collection_and_document_paths_alternate(self) -> None:
        self.assertEqual(collection_path("users/123abc/cities"), ("users", "123abc", "cities"))
        self.assertEqual(document_path("cities", "LA"), ("cities", "LA"))
        with self.assertRaises(InvalidPathError):
            collection_path("cities/LA")
        with self.assertRaises(InvalidPathError):
            document_path("cities")
        self.assertTrue(is_document_path(("cities", "LA")))
        self.assertFalse(is_document_path(()))

    def test_invalid_path_error_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            document_path("cities")


class IdGeneratorTest(unittest.TestCase):
    def test_pool_is_used_first_and_skips_taken_ids(self) -> None:
        generator = IdGenerator(["abc123", "def456", "ghi789"])

        self.assertEqual(generator.next_id(), "abc123")
        self.assertEqual(generator.next_id(lambda candidate: candidate == "def456"), "ghi789")
        self.assertEqual(generator.remaining_pool, ())

    def test_random_ids_have_configured_length(self) -> None:
        generator = IdGenerator(length=8, rng=random.Random(7))

        first = generator.next_id()
        second = generator.next_id(lambda candidate: candidate == first)

        self.assertEqual(len(first), 8)
        self.assertTrue(first.isalnum())
        self.assertNotEqual(first, second)

    def test_invalid_pool_entry_raises(self) -> None:
        with self.assertRaises(InvalidPathError):
            IdGenerator(["a/b"])


if __name__ == "__main__":
    unittest.main()
