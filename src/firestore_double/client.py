from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Iterable, Mapping

from firestore_double.batch import WriteBatch, WriteResult
from firestore_double.converter import Converter
from firestore_double.errors import InvalidArgumentError
from firestore_double.listeners import ListenerDispatcher
from firestore_double.paths import IdGenerator, collection_path, document_path
from firestore_double.query import Query, QueryState
from firestore_double.references import CollectionReference, DocumentReference
from firestore_double.settings import EmulatorSettings, load_settings
from firestore_double.snapshots import DocumentSnapshot
from firestore_double.storage.collection_group import validate_collection_id
from firestore_double.storage.seed import apply_seed, dump_tree, read_seed_file
from firestore_double.storage.tree import DocumentRecord, DocumentTree

LOGGER = logging.getLogger(__name__)


class FakeFirestore:
    """In-memory stand-in for ``google.cloud.firestore.Client``.

    ``database`` seeds the tree at start (see ``firestore_double.storage.seed``
    for the format). ``id_pool`` overrides the configured pool of IDs handed
    out by ``add()`` and ``document()``.
    """

    def __init__(
        self,
        *,
        database: Mapping[str, Any] | None = None,
        settings: EmulatorSettings | None = None,
        id_pool: Iterable[str] | None = None,
    ) -> None:
        self._settings = settings if settings is not None else load_settings()
        pool = tuple(id_pool) if id_pool is not None else self._settings.id_pool
        self._tree = DocumentTree(
            id_generator=IdGenerator(pool, length=self._settings.auto_id_length),
        )
        self._listeners = ListenerDispatcher(delivery=self._settings.listener_delivery)
        self._tree.add_observer(self._listeners.notify)

        if self._settings.seed_path:
            LOGGER.info("Seeding from %s", self._settings.seed_path)
            self.seed(read_seed_file(self._settings.seed_path))
        if database is not None:
            self.seed(database)

    @property
    def project(self) -> str:
        return self._settings.project_id

    @property
    def database(self) -> str:
        return self._settings.database

    @property
    def settings(self) -> EmulatorSettings:
        return self._settings

    # References ------------------------------------------------------------

    def collection(self, *collection_path_parts: str) -> CollectionReference:
        path = collection_path(*collection_path_parts)
        if len(path) == 1:
            self._tree.ensure_collection(path)
        return CollectionReference(self, path)

    def document(self, *document_path_parts: str) -> DocumentReference:
        return DocumentReference(self, document_path(*document_path_parts))

    def collection_group(self, collection_id: str) -> Query:
        validate_collection_id(collection_id)
        return Query(self, QueryState(collection_path=(collection_id,), all_descendants=True))

    def collections(self) -> list[CollectionReference]:
        return [CollectionReference(self, (name,)) for name in self._tree.list_collection_ids()]

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def get_all(self, references: Iterable[DocumentReference]) -> list[DocumentSnapshot]:
        read_time = self._read_time()
        return [
            self._document_snapshot(self._tree.get(ref._path), read_time=read_time, converter=ref.converter)
            for ref in references
        ]

    def recursive_delete(self, reference: CollectionReference | DocumentReference) -> int:
        """Delete a document or collection and every document below it."""

        if not isinstance(reference, (CollectionReference, DocumentReference)):
            raise InvalidArgumentError(f"Unsupported reference: {reference!r}")
        deleted = self._tree.delete_tree(reference._path)
        LOGGER.debug("Recursively deleted %s document(s) under %s", deleted, reference.path)
        return deleted

    # Test helpers ----------------------------------------------------------

    def seed(self, database: Mapping[str, Any]) -> int:
        return apply_seed(self._tree, database)

    def dump(self) -> dict[str, list[dict[str, Any]]]:
        return dump_tree(self._tree)

    def flush(self) -> int:
        """Deliver queued snapshot listener callbacks. Returns the invocation count."""

        return self._listeners.drain()

    def reset(self) -> None:
        """Drop all documents, collections and listeners."""

        self._listeners.clear()
        self._tree.clear()

    # Internals -------------------------------------------------------------

    def _document_snapshot(
        self,
        record: DocumentRecord,
        *,
        read_time: datetime,
        converter: Converter | None,
    ) -> DocumentSnapshot:
        return DocumentSnapshot(
            DocumentReference(self, record.path, converter=converter),
            record.data,
            exists=record.exists,
            read_time=read_time,
            create_time=record.create_time,
            update_time=record.update_time,
            converter=converter,
        )

    def _write_result(self, update_time: datetime) -> WriteResult:
        return WriteResult(update_time=update_time)

    def _read_time(self) -> datetime:
        return datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return f"FakeFirestore(project={self.project!r})"
