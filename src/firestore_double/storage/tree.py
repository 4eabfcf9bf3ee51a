from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from typing import Any, Callable, Mapping, Sequence

from firestore_double.errors import (
    AlreadyExistsError,
    InvalidArgumentError,
    InvalidPathError,
    NotFoundError,
)
from firestore_double.field_values import (
    contains_delete_sentinel,
    copy_value,
    has_field,
    lookup,
    merge_into,
    parse_field_path,
    set_at,
)
from firestore_double.paths import IdGenerator, Path, is_document_path, join_path

LOGGER = logging.getLogger(__name__)

ChangeObserver = Callable[[frozenset, datetime], None]


class WriteKind(str, Enum):
    SET = "SET"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class Write:
    kind: WriteKind
    path: Path
    data: Mapping[str, Any] | None = None
    merge: bool | Sequence[str] = False


@dataclass(frozen=True)
class DocumentRecord:
    """Point-in-time copy of one stored document."""

    path: Path
    exists: bool
    data: Mapping[str, Any] | None = None
    create_time: datetime | None = None
    update_time: datetime | None = None

    @property
    def id(self) -> str:
        return self.path[-1]


@dataclass
class _CollectionNode:
    name: str
    parent: int | None
    documents: dict[str, int] = field(default_factory=dict)


@dataclass
class _DocumentNode:
    doc_id: str
    parent: int
    fields: dict[str, Any] | None = None
    create_time: datetime | None = None
    update_time: datetime | None = None
    collections: dict[str, int] = field(default_factory=dict)


class DocumentTree:
    """In-memory tree of collections and documents.

    Nodes live in an arena keyed by integer handles. A document node without
    fields is a *missing* document: it is kept only while it owns
    subcollections and is never returned as existing.
    """

    def __init__(
        self,
        *,
        id_generator: IdGenerator | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._id_generator = id_generator or IdGenerator()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._nodes: dict[int, _CollectionNode | _DocumentNode] = {}
        self._roots: dict[str, int] = {}
        # IDs handed out or written per collection path; kept after deletes.
        self._used_ids: dict[Path, set[str]] = {}
        self._next_handle = 1
        self._last_commit: datetime | None = None
        self._observers: list[ChangeObserver] = []

    # Observers -------------------------------------------------------------

    def add_observer(self, observer: ChangeObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: ChangeObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # Reads -----------------------------------------------------------------

    def get(self, path: Path) -> DocumentRecord:
        _require_document_path(path)
        handle = self._find_document(path)
        if handle is None:
            return DocumentRecord(path=path, exists=False)
        return self._record(path, self._document(handle))

    def list_documents(self, collection_path: Path, *, include_missing: bool = False) -> list[DocumentRecord]:
        _require_collection_path(collection_path)
        handle = self._find_collection(collection_path)
        if handle is None:
            return []
        records = []
        for doc_id, doc_handle in self._collection(handle).documents.items():
            node = self._document(doc_handle)
            if node.fields is None and not include_missing:
                continue
            records.append(self._record(collection_path + (doc_id,), node))
        return records

    def list_collection_ids(self, document_path: Path = ()) -> list[str]:
        if not document_path:
            return list(self._roots)
        _require_document_path(document_path)
        handle = self._find_document(document_path)
        if handle is None:
            return []
        return list(self._document(handle).collections)

    def id_in_use(self, collection_path: Path, doc_id: str) -> bool:
        if doc_id in self._used_ids.get(collection_path, ()):
            return True
        handle = self._find_collection(collection_path)
        return handle is not None and doc_id in self._collection(handle).documents

    # Writes ----------------------------------------------------------------

    def ensure_collection(self, collection_path: Path) -> None:
        _require_collection_path(collection_path)
        self._find_collection(collection_path, create=True)

    def generate_id(self, collection_path: Path) -> str:
        _require_collection_path(collection_path)
        doc_id = self._id_generator.next_id(lambda candidate: self.id_in_use(collection_path, candidate))
        self._used_ids.setdefault(collection_path, set()).add(doc_id)
        return doc_id

    def set(self, path: Path, data: Mapping[str, Any], *, merge: bool | Sequence[str] = False) -> datetime:
        return self.apply([Write(WriteKind.SET, path, data, merge)])[0]

    def create(self, path: Path, data: Mapping[str, Any]) -> datetime:
        return self.apply([Write(WriteKind.CREATE, path, data)])[0]

    def update(self, path: Path, data: Mapping[str, Any]) -> datetime:
        return self.apply([Write(WriteKind.UPDATE, path, data)])[0]

    def delete(self, path: Path) -> datetime:
        return self.apply([Write(WriteKind.DELETE, path)])[0]

    def add(self, collection_path: Path, data: Mapping[str, Any]) -> Path:
        path = collection_path + (self.generate_id(collection_path),)
        self.apply([Write(WriteKind.CREATE, path, data)])
        return path

    def apply(self, writes: Sequence[Write]) -> list[datetime]:
        """Apply writes as one unit.

        Every write is validated against the tree (and the earlier writes of the
        same group) before the first one takes effect.
        """

        if not writes:
            return []
        self.validate(writes)

        commit_time = self._next_commit_time()
        for write in writes:
            self._apply_one(write, commit_time)
        LOGGER.debug("Committed %s write(s) at %s", len(writes), commit_time.isoformat())

        changed = frozenset(write.path for write in writes)
        for observer in list(self._observers):
            observer(changed, commit_time)
        return [commit_time] * len(writes)

    def delete_tree(self, path: Path) -> int:
        """Delete a document or collection together with everything below it."""

        doc_paths = [record.path for record in self._walk(path) if record.exists]
        if doc_paths:
            self.apply([Write(WriteKind.DELETE, doc_path) for doc_path in doc_paths])
        self._detach(path)
        return len(doc_paths)

    def clear(self) -> None:
        self._nodes.clear()
        self._roots.clear()
        self._used_ids.clear()

    def validate(self, writes: Sequence[Write]) -> None:
        """Raise the error the first invalid write of the group would cause."""

        exists: dict[Path, bool] = {}
        for write in writes:
            _require_document_path(write.path)
            current = exists.get(write.path)
            if current is None:
                handle = self._find_document(write.path)
                current = handle is not None and self._document(handle).fields is not None

            if write.kind is WriteKind.UPDATE:
                if not current:
                    raise NotFoundError(f"No document to update: {join_path(write.path)}")
                if not write.data:
                    raise InvalidArgumentError("update requires at least one field.")
                for key in write.data:
                    parse_field_path(key)
            elif write.kind is WriteKind.CREATE:
                if current:
                    raise AlreadyExistsError(f"Document already exists: {join_path(write.path)}")
                _require_mapping(write.data)
                if contains_delete_sentinel(write.data):
                    raise InvalidArgumentError("DELETE_FIELD is not allowed in create().")
            elif write.kind is WriteKind.SET:
                _require_mapping(write.data)
                if write.merge is False and contains_delete_sentinel(write.data):
                    raise InvalidArgumentError("DELETE_FIELD requires set(..., merge=True).")
                if not isinstance(write.merge, bool):
                    for field_path in write.merge:
                        if not has_field(write.data, parse_field_path(field_path)):
                            raise InvalidArgumentError(f"Merge field is missing from data: {field_path}")
            exists[write.path] = write.kind is not WriteKind.DELETE

    # Internals -------------------------------------------------------------

    def _apply_one(self, write: Write, commit_time: datetime) -> None:
        if write.kind is WriteKind.DELETE:
            self._remove_document(write.path)
            return

        handle = self._find_document(write.path, create=True)
        node = self._document(handle)
        current = copy_value(node.fields) if node.fields is not None else {}

        if write.kind is WriteKind.UPDATE:
            fields = current
            for key, value in write.data.items():
                set_at(fields, parse_field_path(key), value, commit_time)
        elif write.kind is WriteKind.SET and write.merge is True:
            fields = current
            merge_into(fields, write.data, commit_time)
        elif write.kind is WriteKind.SET and write.merge:
            fields = current
            for field_path in write.merge:
                parts = parse_field_path(field_path)
                set_at(fields, parts, lookup(write.data, parts), commit_time)
        else:
            fields = {}
            merge_into(fields, write.data, commit_time)

        if node.fields is None:
            node.create_time = commit_time
        node.fields = fields
        node.update_time = commit_time
        self._used_ids.setdefault(write.path[:-1], set()).add(node.doc_id)

    def _remove_document(self, path: Path) -> None:
        handle = self._find_document(path)
        if handle is None:
            return
        node = self._document(handle)
        node.fields = None
        node.create_time = None
        node.update_time = None
        if not node.collections:
            del self._collection(node.parent).documents[node.doc_id]
            del self._nodes[handle]

    def _walk(self, path: Path) -> list[DocumentRecord]:
        if is_document_path(path):
            handle = self._find_document(path)
            if handle is None:
                return []
            records = [self._record(path, self._document(handle))]
            for name in self._document(handle).collections:
                records.extend(self._walk(path + (name,)))
            return records
        records = []
        for record in self.list_documents(path, include_missing=True):
            records.extend(self._walk(record.path))
        return records

    def _detach(self, path: Path) -> None:
        if is_document_path(path):
            handle = self._find_document(path)
            if handle is None:
                return
            del self._collection(self._document(handle).parent).documents[path[-1]]
        else:
            handle = self._find_collection(path)
            if handle is None:
                return
            parent = self._collection(handle).parent
            if parent is None:
                del self._roots[path[-1]]
            else:
                del self._document(parent).collections[path[-1]]
        self._drop_subtree(handle)

    def _drop_subtree(self, handle: int) -> None:
        pending = [handle]
        while pending:
            current = pending.pop()
            node = self._nodes.pop(current)
            if isinstance(node, _CollectionNode):
                pending.extend(node.documents.values())
            else:
                pending.extend(node.collections.values())

    def _find_collection(self, path: Path, *, create: bool = False) -> int | None:
        handle = self._roots.get(path[0])
        if handle is None:
            if not create:
                return None
            handle = self._new_node(_CollectionNode(name=path[0], parent=None))
            self._roots[path[0]] = handle
        for index in range(1, len(path), 2):
            doc_handle = self._child_document(handle, path[index], create=create)
            if doc_handle is None:
                return None
            doc_node = self._document(doc_handle)
            handle = doc_node.collections.get(path[index + 1])
            if handle is None:
                if not create:
                    return None
                handle = self._new_node(_CollectionNode(name=path[index + 1], parent=doc_handle))
                doc_node.collections[path[index + 1]] = handle
        return handle

    def _find_document(self, path: Path, *, create: bool = False) -> int | None:
        collection_handle = self._find_collection(path[:-1], create=create)
        if collection_handle is None:
            return None
        return self._child_document(collection_handle, path[-1], create=create)

    def _child_document(self, collection_handle: int, doc_id: str, *, create: bool) -> int | None:
        collection = self._collection(collection_handle)
        handle = collection.documents.get(doc_id)
        if handle is None and create:
            handle = self._new_node(_DocumentNode(doc_id=doc_id, parent=collection_handle))
            collection.documents[doc_id] = handle
        return handle

    def _new_node(self, node: _CollectionNode | _DocumentNode) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._nodes[handle] = node
        return handle

    def _collection(self, handle: int) -> _CollectionNode:
        node = self._nodes[handle]
        assert isinstance(node, _CollectionNode)
        return node

    def _document(self, handle: int) -> _DocumentNode:
        node = self._nodes[handle]
        assert isinstance(node, _DocumentNode)
        return node

    def _record(self, path: Path, node: _DocumentNode) -> DocumentRecord:
        if node.fields is None:
            return DocumentRecord(path=path, exists=False)
        return DocumentRecord(
            path=path,
            exists=True,
            data=copy_value(node.fields),
            create_time=node.create_time,
            update_time=node.update_time,
        )

    def _next_commit_time(self) -> datetime:
        # Commit times are strictly increasing so update_time identifies a write.
        now = self._clock()
        if self._last_commit is not None and now <= self._last_commit:
            now = self._last_commit + timedelta(microseconds=1)
        self._last_commit = now
        return now


def _require_document_path(path: Path) -> None:
    if not is_document_path(path):
        raise InvalidPathError(f"Document path must have even segments: {join_path(path)}")


def _require_collection_path(path: Path) -> None:
    if len(path) % 2 != 1:
        raise InvalidPathError(f"Collection path must have odd segments: {join_path(path)}")


def _require_mapping(data: Any) -> None:
    if not isinstance(data, Mapping):
        raise InvalidArgumentError(f"Document data must be a mapping: {type(data).__name__}")
