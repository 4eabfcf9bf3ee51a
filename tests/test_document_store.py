from __future__ import annotations

import unittest

from google.api_core import exceptions

from firestore_double.client import FakeFirestore
from firestore_double.settings import EmulatorSettings
from firestore_double.storage.document_store import FirestoreDocumentStore


def _store() -> tuple[FirestoreDocumentStore, FakeFirestore]:
    client = FakeFirestore(settings=EmulatorSettings(listener_delivery="manual"), id_pool=["abc123"])
    return FirestoreDocumentStore(client), client


class FirestoreDocumentStoreTest(unittest.TestCase):
    def test_get_and_set_document(self) -> None:
        store, _ = _store()

        store.set_document("cities/LA", {"name": "Los Angeles"})
        store.set_document("cities/LA", {"state": "CA"}, merge=True)

        self.assertEqual(store.get_document("cities/LA"), {"name": "Los Angeles", "state": "CA"})
        self.assertIsNone(store.get_document("cities/SF"))

    def test_nested_paths(self) -> None:
        store, client = _store()

        store.set_document("users/123abc/cities/LA", {"name": "Los Angeles"})

        self.assertTrue(client.document("users", "123abc", "cities", "LA").get().exists)
        self.assertEqual(store.get_document("users/123abc/cities/LA"), {"name": "Los Angeles"})

    def test_invalid_path_raises(self) -> None:
        store, _ = _store()
        with self.assertRaises(ValueError):
            store.get_document("cities")
        with self.assertRaises(ValueError):
            store.add_document("cities/LA", {})

    def test_create_document_reports_existing(self) -> None:
        store, _ = _store()

        self.assertTrue(store.create_document("cities/LA", {"name": "Los Angeles"}))
        self.assertFalse(store.create_document("cities/LA", {"name": "again"}))
        self.assertEqual(store.get_document("cities/LA"), {"name": "Los Angeles"})

    def test_update_and_delete(self) -> None:
        store, _ = _store()
        store.set_document("cities/LA", {"name": "Los Angeles"})

        store.update_document("cities/LA", {"population": 3900000})
        self.assertEqual(store.get_document("cities/LA"), {"name": "Los Angeles", "population": 3900000})

        store.delete_document("cities/LA")
        self.assertIsNone(store.get_document("cities/LA"))
        with self.assertRaises(exceptions.NotFound):
            store.update_document("cities/LA", {"population": 1})

    def test_add_document_returns_path(self) -> None:
        store, _ = _store()

        path = store.add_document("users/123abc/cities", {"name": "Los Angeles"})

        self.assertEqual(path, "users/123abc/cities/abc123")
        self.assertEqual(store.get_document(path), {"name": "Los Angeles"})


if __name__ == "__main__":
    unittest.main()
