from __future__ import annotations

import json
from pathlib import Path
import tempfile
import unittest

from google.cloud.firestore_v1.transforms import DELETE_FIELD

from firestore_double.errors import InvalidArgumentError
from firestore_double.paths import IdGenerator
from firestore_double.storage.seed import apply_seed, build_seed_operations, dump_tree, read_seed_file
from firestore_double.storage.tree import DocumentTree

DATABASE = {
    "users": [
        {
            "id": "123abc",
            "first": "Blues",
            "last": "builder",
            "_collections": {"cities": [{"id": "LA", "name": "Los Angeles"}]},
        },
        {"id": "ghost", "_missing": True, "_collections": {"cities": [{"id": "SF", "name": "San Francisco"}]}},
        {"first": "Bob", "last": "builder"},
    ],
    "empty": [],
}


class BuildSeedOperationsTest(unittest.TestCase):
    def test_parents_come_before_children(self) -> None:
        ops = build_seed_operations(DATABASE, id_for=lambda collection: "generated")

        self.assertEqual(
            [op.path for op in ops],
            [
                ("users", "123abc"),
                ("users", "123abc", "cities", "LA"),
                ("users", "ghost"),
                ("users", "ghost", "cities", "SF"),
                ("users", "generated"),
            ],
        )
        self.assertEqual(ops[0].data, {"first": "Blues", "last": "builder"})
        self.assertIsNone(ops[2].data)

    def test_invalid_shapes_raise(self) -> None:
        for database in ({"users": {"id": "x"}}, {"users": ["x"]}, {"a/b": []}):
            with self.subTest(database=database):
                with self.assertRaises(InvalidArgumentError):
                    build_seed_operations(database, id_for=lambda collection: "x")


class ApplySeedTest(unittest.TestCase):
    def test_apply_and_dump(self) -> None:
        tree = DocumentTree(id_generator=IdGenerator(["bob1"]))

        count = apply_seed(tree, DATABASE)

        self.assertEqual(count, 4)
        self.assertEqual(tree.list_collection_ids(), ["users", "empty"])
        self.assertFalse(tree.get(("users", "ghost")).exists)
        self.assertEqual(tree.get(("users", "bob1")).data, {"first": "Bob", "last": "builder"})

        dumped = dump_tree(tree)
        self.assertEqual(dumped["empty"], [])
        self.assertEqual(
            dumped["users"][1],
            {"id": "ghost", "_missing": True, "_collections": {"cities": [{"id": "SF", "name": "San Francisco"}]}},
        )
        self.assertEqual(dump_tree(DocumentTree()), {})

    def test_dump_keeps_document_id_over_id_field(self) -> None:
        tree = DocumentTree()
        tree.set(("users", "u1"), {"id": 42, "_missing": True, "name": "Ada"})

        with self.assertLogs("firestore_double.storage.seed", level="WARNING"):
            dumped = dump_tree(tree)

        self.assertEqual(dumped, {"users": [{"id": "u1", "name": "Ada"}]})
        reseeded = DocumentTree()
        apply_seed(reseeded, dumped)
        self.assertEqual(reseeded.get(("users", "u1")).data, {"name": "Ada"})

    def test_failed_seed_leaves_tree_untouched(self) -> None:
        tree = DocumentTree(id_generator=IdGenerator(["abc123"]))

        with self.assertRaises(InvalidArgumentError):
            apply_seed(tree, {"users": [{"first": "Bob"}, {"id": "x", "first": DELETE_FIELD}]})

        self.assertEqual(tree.list_collection_ids(), [])
        self.assertEqual(tree.add(("users",), {"first": "Bob"}), ("users", "abc123"))

    def test_read_seed_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            seed = Path(tmpdir) / "seed.json"
            seed.write_text(json.dumps({"cities": [{"id": "LA"}]}), encoding="utf-8")
            broken = Path(tmpdir) / "broken.json"
            broken.write_text("{", encoding="utf-8")
            listed = Path(tmpdir) / "list.json"
            listed.write_text("[]", encoding="utf-8")

            self.assertEqual(read_seed_file(seed), {"cities": [{"id": "LA"}]})
            with self.assertRaises(InvalidArgumentError):
                read_seed_file(broken)
            with self.assertRaises(InvalidArgumentError):
                read_seed_file(listed)


if __name__ == "__main__":
    unittest.main()
