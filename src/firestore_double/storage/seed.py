"""Seed data in the mock-database format and the matching tree dump.

Format::

    {
        "users": [
            {"id": "123abc", "first": "Blues", "_collections": {"cities": [{"id": "LA"}]}},
        ],
    }

``id`` and ``_collections`` are not stored as fields. Documents without ``id``
get a generated one. ``"_missing": true`` marks a document that only holds
subcollections.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from pathlib import Path as FilePath
from typing import Any, Callable, Mapping

from firestore_double.errors import InvalidArgumentError
from firestore_double.field_values import copy_value
from firestore_double.paths import Path, join_path, split_path
from firestore_double.storage.tree import DocumentTree, Write, WriteKind

LOGGER = logging.getLogger(__name__)

SEED_ID_KEY = "id"
SEED_COLLECTIONS_KEY = "_collections"
SEED_MISSING_KEY = "_missing"
RESERVED_SEED_KEYS = (SEED_ID_KEY, SEED_COLLECTIONS_KEY, SEED_MISSING_KEY)


@dataclass(frozen=True)
class SeedOperation:
    path: Path
    data: dict[str, Any] | None


def build_seed_operations(
    database: Mapping[str, Any],
    *,
    id_for: Callable[[Path], str],
    parent: Path = (),
) -> list[SeedOperation]:
    """Flatten a seed description into document writes, parents before children."""

    if not isinstance(database, Mapping):
        raise InvalidArgumentError(f"Seed collections must be a mapping: {type(database).__name__}")

    ops: list[SeedOperation] = []
    for collection_name, documents in database.items():
        collection = parent + _single_segment(collection_name)
        if not isinstance(documents, list):
            raise InvalidArgumentError(f"Seed collection must be a list: {join_path(collection)}")
        for document in documents:
            if not isinstance(document, Mapping):
                raise InvalidArgumentError(f"Seed document must be a mapping in {join_path(collection)}")
            raw_id = document.get(SEED_ID_KEY)
            doc_id = str(raw_id) if raw_id is not None else id_for(collection)
            path = collection + _single_segment(doc_id)
            if document.get(SEED_MISSING_KEY):
                data = None
            else:
                data = {key: copy_value(value) for key, value in document.items() if key not in RESERVED_SEED_KEYS}
            ops.append(SeedOperation(path=path, data=data))
            ops.extend(
                build_seed_operations(
                    document.get(SEED_COLLECTIONS_KEY) or {},
                    id_for=id_for,
                    parent=path,
                )
            )
    return ops


def apply_seed(tree: DocumentTree, database: Mapping[str, Any]) -> int:
    """Write a seed description into the tree as one unit. Returns the document count."""

    # A dry run with placeholder IDs rejects a bad seed before any ID is handed out.
    tree.validate(_seed_writes(build_seed_operations(database, id_for=lambda collection: "pending")))

    writes = _seed_writes(build_seed_operations(database, id_for=tree.generate_id))
    tree.apply(writes)
    for collection_name in database:
        tree.ensure_collection(_single_segment(collection_name))
    LOGGER.debug("Seeded %s document(s)", len(writes))
    return len(writes)


def dump_tree(tree: DocumentTree, parent: Path = ()) -> dict[str, list[dict[str, Any]]]:
    """Return the tree in seed format."""

    dumped: dict[str, list[dict[str, Any]]] = {}
    for collection_name in tree.list_collection_ids(parent):
        collection = parent + (collection_name,)
        documents = []
        for record in tree.list_documents(collection, include_missing=True):
            entry: dict[str, Any] = {SEED_ID_KEY: record.id}
            if record.exists:
                for key, value in record.data.items():
                    if key in RESERVED_SEED_KEYS:
                        LOGGER.warning(
                            "Dropping field %r of %s from the dump: reserved seed key",
                            key,
                            join_path(record.path),
                        )
                        continue
                    entry[key] = copy_value(value)
            else:
                entry[SEED_MISSING_KEY] = True
            children = dump_tree(tree, record.path)
            if children:
                entry[SEED_COLLECTIONS_KEY] = children
            documents.append(entry)
        dumped[collection_name] = documents
    return dumped


def _seed_writes(ops: list[SeedOperation]) -> list[Write]:
    # Missing documents come into being as parents of their children's writes.
    return [Write(WriteKind.SET, op.path, op.data) for op in ops if op.data is not None]


def read_seed_file(seed_path: str | FilePath) -> dict[str, Any]:
    path = FilePath(seed_path)
    try:
        database = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidArgumentError(f"Seed file is not valid JSON: {path}") from exc
    if not isinstance(database, dict):
        raise InvalidArgumentError(f"Seed file must hold a JSON object: {path}")
    return database


def _single_segment(name: Any) -> Path:
    segments = split_path(str(name))
    if len(segments) != 1:
        raise InvalidArgumentError(f"Seed names must be single path segments: {name}")
    return segments
