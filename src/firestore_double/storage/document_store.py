from __future__ import annotations

from typing import Any, Mapping

from google.api_core import exceptions

from firestore_double.paths import collection_path, document_path, join_path


class FirestoreDocumentStore:
    """Path-string adapter over any client with the Firestore reference API.

    Works the same on ``FakeFirestore`` and on ``google.cloud.firestore.Client``.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    def _document_ref(self, path: str) -> Any:
        parts = document_path(path)
        ref: Any = self._client
        for index in range(0, len(parts), 2):
            ref = ref.collection(parts[index]).document(parts[index + 1])
        return ref

    def _collection_ref(self, path: str) -> Any:
        parts = collection_path(path)
        ref: Any = self._client.collection(parts[0])
        for index in range(1, len(parts), 2):
            ref = ref.document(parts[index]).collection(parts[index + 1])
        return ref

    def get_document(self, path: str) -> Mapping[str, Any] | None:
        snapshot = self._document_ref(path).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict()
        return data if data is not None else {}

    def set_document(self, path: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        self._document_ref(path).set(dict(data), merge=merge)

    def create_document(self, path: str, data: Mapping[str, Any]) -> bool:
        """Create a document. Returns False when it already exists."""

        try:
            self._document_ref(path).create(dict(data))
        except exceptions.AlreadyExists:
            return False
        return True

    def update_document(self, path: str, data: Mapping[str, Any]) -> None:
        """Update fields of an existing document; raises NotFound when absent."""

        self._document_ref(path).update(dict(data))

    def delete_document(self, path: str) -> None:
        self._document_ref(path).delete()

    def add_document(self, collection: str, data: Mapping[str, Any]) -> str:
        ref = self._collection_ref(collection).document()
        ref.create(dict(data))
        return join_path((*collection_path(collection), ref.id))
