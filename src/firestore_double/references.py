from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping, Sequence

from firestore_double.converter import Converter, to_store_payload
from firestore_double.paths import Path, PathReference, collection_path, document_path
from firestore_double.query import Query, QueryState
from firestore_double.snapshots import DocumentSnapshot, QuerySnapshot

if TYPE_CHECKING:
    from firestore_double.batch import WriteResult
    from firestore_double.client import FakeFirestore
    from firestore_double.listeners import ListenerRegistration


class DocumentReference(PathReference):
    """Handle to one document path; the data itself lives in the client's tree."""

    def __init__(self, client: FakeFirestore, path: Path, *, converter: Converter | None = None) -> None:
        super().__init__(path)
        self._client = client
        self._converter = converter

    @property
    def parent(self) -> CollectionReference:
        return CollectionReference(self._client, self._path[:-1], converter=self._converter)

    @property
    def converter(self) -> Converter | None:
        return self._converter

    def collection(self, collection_id: str) -> CollectionReference:
        return CollectionReference(self._client, collection_path(self.path, collection_id))

    def collections(self) -> list[CollectionReference]:
        return [
            CollectionReference(self._client, self._path + (name,))
            for name in self._client._tree.list_collection_ids(self._path)
        ]

    def with_converter(self, converter: Converter | None) -> DocumentReference:
        return DocumentReference(self._client, self._path, converter=converter)

    def get(self) -> DocumentSnapshot:
        return self._snapshot()

    def set(self, document_data: Any, merge: bool | Sequence[str] = False) -> WriteResult:
        payload = to_store_payload(self._converter, document_data)
        return self._client._write_result(self._client._tree.set(self._path, payload, merge=merge))

    def create(self, document_data: Any) -> WriteResult:
        payload = to_store_payload(self._converter, document_data)
        return self._client._write_result(self._client._tree.create(self._path, payload))

    def update(self, field_updates: Mapping[str, Any]) -> WriteResult:
        return self._client._write_result(self._client._tree.update(self._path, field_updates))

    def delete(self) -> WriteResult:
        return self._client._write_result(self._client._tree.delete(self._path))

    def on_snapshot(
        self,
        callback: Callable[[DocumentSnapshot], Any],
        *,
        include_metadata_changes: bool = False,
    ) -> ListenerRegistration:
        return self._client._listeners.register(
            self,
            callback,
            include_metadata_changes=include_metadata_changes,
        )

    def _snapshot(self, previous: DocumentSnapshot | None = None) -> DocumentSnapshot:
        record = self._client._tree.get(self._path)
        return self._client._document_snapshot(
            record,
            read_time=self._client._read_time(),
            converter=self._converter,
        )

    def _affected_by(self, changed_paths: frozenset) -> bool:
        return self._path in changed_paths


class CollectionReference(PathReference):
    """Handle to one collection path; queries start here."""

    def __init__(self, client: FakeFirestore, path: Path, *, converter: Converter | None = None) -> None:
        super().__init__(path)
        self._client = client
        self._converter = converter

    @property
    def parent(self) -> DocumentReference | None:
        if len(self._path) == 1:
            return None
        return DocumentReference(self._client, self._path[:-1])

    @property
    def converter(self) -> Converter | None:
        return self._converter

    def document(self, document_id: str | None = None) -> DocumentReference:
        if document_id is None:
            document_id = self._client._tree.generate_id(self._path)
        return DocumentReference(
            self._client,
            document_path(self.path, document_id),
            converter=self._converter,
        )

    def add(self, document_data: Any, document_id: str | None = None) -> DocumentReference:
        payload = to_store_payload(self._converter, document_data)
        if document_id is None:
            path = self._client._tree.add(self._path, payload)
        else:
            path = document_path(self.path, document_id)
            self._client._tree.create(path, payload)
        return DocumentReference(self._client, path, converter=self._converter)

    def list_documents(self) -> list[DocumentReference]:
        """Return references to every document, including missing ones with subcollections."""

        return [
            DocumentReference(self._client, record.path, converter=self._converter)
            for record in self._client._tree.list_documents(self._path, include_missing=True)
        ]

    def with_converter(self, converter: Converter | None) -> CollectionReference:
        return CollectionReference(self._client, self._path, converter=converter)

    def _query(self) -> Query:
        return Query(self._client, QueryState(collection_path=self._path), converter=self._converter)

    def where(self, *args: Any, **kwargs: Any) -> Query:
        return self._query().where(*args, **kwargs)

    def order_by(self, field_path: str, direction: str = Query.ASCENDING) -> Query:
        return self._query().order_by(field_path, direction=direction)

    def limit(self, count: int) -> Query:
        return self._query().limit(count)

    def limit_to_last(self, count: int) -> Query:
        return self._query().limit_to_last(count)

    def offset(self, num_to_skip: int) -> Query:
        return self._query().offset(num_to_skip)

    def start_at(self, document_fields_or_snapshot: Any) -> Query:
        return self._query().start_at(document_fields_or_snapshot)

    def start_after(self, document_fields_or_snapshot: Any) -> Query:
        return self._query().start_after(document_fields_or_snapshot)

    def end_at(self, document_fields_or_snapshot: Any) -> Query:
        return self._query().end_at(document_fields_or_snapshot)

    def end_before(self, document_fields_or_snapshot: Any) -> Query:
        return self._query().end_before(document_fields_or_snapshot)

    def get(self) -> QuerySnapshot:
        return self._query().get()

    def stream(self) -> Iterator[DocumentSnapshot]:
        return self._query().stream()

    def on_snapshot(
        self,
        callback: Callable[[QuerySnapshot], Any],
        *,
        include_metadata_changes: bool = False,
    ) -> ListenerRegistration:
        return self._query().on_snapshot(callback, include_metadata_changes=include_metadata_changes)
