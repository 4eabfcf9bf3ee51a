from __future__ import annotations

from collections import deque
from typing import Iterator

from firestore_double.errors import InvalidPathError
from firestore_double.paths import Path
from firestore_double.storage.tree import DocumentRecord, DocumentTree


def iter_collection_group(tree: DocumentTree, collection_id: str) -> Iterator[DocumentRecord]:
    """Yield every existing document whose parent collection is named ``collection_id``.

    The walk is breadth first over an explicit work list: root collections
    come before nested ones and siblings keep insertion order. Subcollections
    of missing documents are visited too.
    """

    validate_collection_id(collection_id)

    pending: deque[Path] = deque((name,) for name in tree.list_collection_ids())
    while pending:
        collection_path = pending.popleft()
        matches_group = collection_path[-1] == collection_id
        for record in tree.list_documents(collection_path, include_missing=True):
            if matches_group and record.exists:
                yield record
            for name in tree.list_collection_ids(record.path):
                pending.append(record.path + (name,))


def validate_collection_id(collection_id: str) -> None:
    if not isinstance(collection_id, str) or not collection_id or "/" in collection_id:
        raise InvalidPathError(f"Collection group ID must be a single segment: {collection_id!r}")


def scan_collection_group(tree: DocumentTree, collection_id: str) -> list[DocumentRecord]:
    return list(iter_collection_group(tree, collection_id))
