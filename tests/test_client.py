from __future__ import annotations

from pathlib import Path
import json
import tempfile
import unittest

from firestore_double.client import FakeFirestore
from firestore_double.errors import InvalidArgumentError, InvalidPathError
from firestore_double.references import CollectionReference, DocumentReference
from firestore_double.settings import EmulatorSettings
from firestore_double.snapshots import DocumentSnapshot, QuerySnapshot

DATABASE = {
    "users": [
        {"id": "abc123", "first": "Bob", "last": "builder", "born": 1998},
        {
            "id": "123abc",
            "first": "Blues",
            "last": "builder",
            "born": 1996,
            "_collections": {
                "cities": [{"id": "LA", "name": "Los Angeles", "state": "CA", "country": "USA", "visited": True}]
            },
        },
    ],
    "cities": [
        {"id": "LA", "name": "Los Angeles", "state": "CA", "country": "USA"},
        {"id": "DC", "name": "Disctric of Columbia", "state": "DC", "country": "USA"},
    ],
}


def _client(**kwargs) -> FakeFirestore:
    return FakeFirestore(settings=EmulatorSettings(listener_delivery="manual"), **kwargs)


class FakeFirestoreTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = _client(database=DATABASE, id_pool=["abc456"])

    def test_get_all_users(self) -> None:
        snapshot = self.client.collection("users").get()

        self.assertIsInstance(snapshot, QuerySnapshot)
        self.assertEqual(snapshot.size, 2)
        self.assertEqual(len(snapshot.docs), snapshot.size)
        for doc in snapshot.docs:
            self.assertTrue(doc.exists)
            self.assertTrue(doc.to_dict())
            self.assertNotIn("id", doc.to_dict())

        visited = []
        snapshot.for_each(lambda doc: visited.append(doc.id))
        self.assertEqual(visited, ["abc123", "123abc"])

    def test_collection_group_at_root(self) -> None:
        snapshot = self.client.collection_group("users").where("last", "==", "builder").get()
        self.assertEqual(snapshot.size, 2)

    def test_collection_group_with_subcollections(self) -> None:
        snapshot = self.client.collection_group("cities").get()

        self.assertEqual(snapshot.size, 3)
        self.assertEqual(
            [doc.reference.path for doc in snapshot],
            ["cities/LA", "cities/DC", "users/123abc/cities/LA"],
        )
        self.assertEqual(self.client.collection_group("cities").where("visited", "==", True).get().size, 1)

    def test_add_uses_id_pool(self) -> None:
        ref = self.client.collection("users").add({"first": "Ada", "last": "Lovelace", "born": 1815})

        self.assertIsInstance(ref, DocumentReference)
        self.assertEqual(ref.id, "abc456")
        self.assertEqual(ref.get().to_dict()["first"], "Ada")

    def test_new_document_reference_does_not_exist(self) -> None:
        ref = _client(id_pool=["abc123"]).collection("cities").document()
        snapshot = ref.get()

        self.assertEqual(ref.id, "abc123")
        self.assertIsInstance(snapshot, DocumentSnapshot)
        self.assertFalse(snapshot.exists)
        self.assertIsNone(snapshot.to_dict())

    def test_set_and_update_a_city(self) -> None:
        ref = self.client.collection("cities").document("LA")
        ref.set({"name": "Los Angeles", "state": "CA", "country": "USA"})
        result = ref.update({"capital": True})

        snapshot = ref.get()
        self.assertEqual(snapshot.get("capital"), True)
        self.assertEqual(snapshot.update_time, result.update_time)
        self.assertLess(snapshot.create_time, snapshot.update_time)

    def test_reference_navigation(self) -> None:
        city = self.client.document("users/123abc/cities/LA")

        self.assertEqual(city.parent, CollectionReference(self.client, ("users", "123abc", "cities")))
        self.assertEqual(city.parent.parent, self.client.document("users", "123abc"))
        self.assertIsNone(self.client.collection("users").parent)
        self.assertEqual([c.id for c in self.client.document("users/123abc").collections()], ["cities"])
        self.assertEqual([c.id for c in self.client.collections()], ["users", "cities"])

    def test_invalid_paths_raise(self) -> None:
        with self.assertRaises(InvalidPathError):
            self.client.collection("users/abc123")
        with self.assertRaises(InvalidPathError):
            self.client.document("users")
        with self.assertRaises(InvalidPathError):
            self.client.collection_group("users/abc123")

    def test_get_all_keeps_order(self) -> None:
        refs = [self.client.document("cities/DC"), self.client.document("cities/NYC"), self.client.document("cities/LA")]

        snapshots = self.client.get_all(refs)

        self.assertEqual([snapshot.exists for snapshot in snapshots], [True, False, True])
        self.assertEqual(len({snapshot.read_time for snapshot in snapshots}), 1)

    def test_list_documents_includes_missing_parents(self) -> None:
        self.client.document("users/ghost/cities/SF").set({"name": "San Francisco"})

        ids = [ref.id for ref in self.client.collection("users").list_documents()]

        self.assertEqual(ids, ["abc123", "123abc", "ghost"])
        self.assertEqual(self.client.collection("users").get().size, 2)

    def test_recursive_delete(self) -> None:
        deleted = self.client.recursive_delete(self.client.document("users/123abc"))

        self.assertEqual(deleted, 2)
        self.assertEqual(self.client.collection_group("cities").get().size, 2)
        with self.assertRaises(InvalidArgumentError):
            self.client.recursive_delete("users/123abc")

    def test_dump_and_reset(self) -> None:
        dumped = self.client.dump()
        self.assertEqual([doc["id"] for doc in dumped["users"]], ["abc123", "123abc"])

        self.client.reset()

        self.assertEqual(self.client.dump(), {})
        self.assertTrue(self.client.collection("users").get().empty)

    def test_seed_path_setting_is_loaded(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            seed = Path(tmpdir) / "seed.json"
            seed.write_text(json.dumps({"cities": [{"id": "LA", "name": "Los Angeles"}]}), encoding="utf-8")

            client = FakeFirestore(settings=EmulatorSettings(listener_delivery="manual", seed_path=str(seed)))

        self.assertEqual(client.document("cities/LA").get().to_dict(), {"name": "Los Angeles"})
        self.assertEqual(client.project, "fake-project")


if __name__ == "__main__":
    unittest.main()
