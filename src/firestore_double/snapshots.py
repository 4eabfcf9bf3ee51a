from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterator, Sequence

from firestore_double.converter import Converter
from firestore_double.field_values import copy_value, lookup, parse_field_path


@dataclass(frozen=True)
class SnapshotMetadata:
    has_pending_writes: bool = False
    from_cache: bool = False


class DocumentSnapshot:
    """Immutable capture of one document at read time."""

    def __init__(
        self,
        reference: Any,
        data: dict[str, Any] | None,
        *,
        exists: bool,
        read_time: datetime,
        create_time: datetime | None = None,
        update_time: datetime | None = None,
        converter: Converter | None = None,
    ) -> None:
        self._reference = reference
        self._data = copy_value(data) if exists and data is not None else None
        self._exists = exists
        self._read_time = read_time
        self._create_time = create_time
        self._update_time = update_time
        self._converter = converter
        self._metadata = SnapshotMetadata()

    @property
    def id(self) -> str:
        return self._reference.id

    @property
    def reference(self) -> Any:
        return self._reference

    @property
    def exists(self) -> bool:
        return self._exists

    @property
    def metadata(self) -> SnapshotMetadata:
        return self._metadata

    @property
    def read_time(self) -> datetime:
        return self._read_time

    @property
    def create_time(self) -> datetime | None:
        return self._create_time

    @property
    def update_time(self) -> datetime | None:
        return self._update_time

    def to_dict(self) -> dict[str, Any] | None:
        """Return a copy of the raw stored fields, or None when absent."""

        if self._data is None:
            return None
        return copy_value(self._data)

    def data(self) -> Any:
        """Return the fields, passed through the reference's converter if any."""

        raw = self.to_dict()
        if raw is None or self._converter is None:
            return raw
        return self._converter.from_store(raw)

    def get(self, field_path: str) -> Any:
        if self._data is None:
            raise KeyError(field_path)
        return copy_value(lookup(self._data, parse_field_path(field_path)))

    def same_content(self, other: DocumentSnapshot | None) -> bool:
        if other is None:
            return False
        return (
            self._reference == other._reference
            and self._exists == other._exists
            and self._data == other._data
        )

    def __repr__(self) -> str:
        return f"DocumentSnapshot({self._reference.path!r}, exists={self._exists})"


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class DocumentChange:
    type: ChangeType
    document: DocumentSnapshot
    old_index: int
    new_index: int


class QuerySnapshot:
    """Immutable, ordered result of a query."""

    def __init__(
        self,
        query: Any,
        docs: Sequence[DocumentSnapshot],
        *,
        read_time: datetime,
        previous: QuerySnapshot | None = None,
    ) -> None:
        self._query = query
        self._docs = tuple(docs)
        self._read_time = read_time
        self._previous_docs = previous._docs if previous is not None else ()
        self._changes: tuple[DocumentChange, ...] | None = None
        self._metadata = SnapshotMetadata()

    @property
    def query(self) -> Any:
        return self._query

    @property
    def docs(self) -> list[DocumentSnapshot]:
        return list(self._docs)

    @property
    def size(self) -> int:
        return len(self._docs)

    @property
    def empty(self) -> bool:
        return not self._docs

    @property
    def read_time(self) -> datetime:
        return self._read_time

    @property
    def metadata(self) -> SnapshotMetadata:
        return self._metadata

    def for_each(self, callback: Callable[[DocumentSnapshot], Any]) -> None:
        for doc in self._docs:
            callback(doc)

    def doc_changes(self) -> list[DocumentChange]:
        if self._changes is None:
            self._changes = tuple(_diff(self._previous_docs, self._docs))
        return list(self._changes)

    def same_content(self, other: QuerySnapshot | None) -> bool:
        if other is None or len(self._docs) != len(other._docs):
            return False
        return all(left.same_content(right) for left, right in zip(self._docs, other._docs))

    def __iter__(self) -> Iterator[DocumentSnapshot]:
        return iter(self._docs)

    def __len__(self) -> int:
        return len(self._docs)

    def __getitem__(self, index: int) -> DocumentSnapshot:
        return self._docs[index]


def _diff(
    previous: Sequence[DocumentSnapshot],
    current: Sequence[DocumentSnapshot],
) -> list[DocumentChange]:
    current_paths = {doc.reference.path for doc in current}
    changes: list[DocumentChange] = []

    # Removals are indexed against the list as it shrinks, like the real client.
    remaining: list[DocumentSnapshot] = []
    for doc in previous:
        if doc.reference.path in current_paths:
            remaining.append(doc)
            continue
        changes.append(DocumentChange(ChangeType.REMOVED, doc, len(remaining), -1))

    remaining_index = {doc.reference.path: index for index, doc in enumerate(remaining)}
    for new_index, doc in enumerate(current):
        old_index = remaining_index.get(doc.reference.path)
        if old_index is None:
            changes.append(DocumentChange(ChangeType.ADDED, doc, -1, new_index))
            continue
        old_doc = remaining[old_index]
        if not doc.same_content(old_doc) or old_doc.update_time != doc.update_time:
            changes.append(DocumentChange(ChangeType.MODIFIED, doc, old_index, new_index))
    return changes
