from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any, Mapping, Sequence

from firestore_double.converter import to_store_payload
from firestore_double.errors import InvalidArgumentError, InvalidStateError
from firestore_double.field_values import copy_value
from firestore_double.storage.tree import Write, WriteKind

if TYPE_CHECKING:
    from firestore_double.client import FakeFirestore
    from firestore_double.references import DocumentReference

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteResult:
    update_time: datetime


class BatchState(str, Enum):
    PENDING = "PENDING"
    COMMITTED = "COMMITTED"


class WriteBatch:
    """Queued writes applied together on ``commit()``.

    A batch commits once. It can be used as a context manager, which commits
    when the block exits without an exception.
    """

    def __init__(self, client: FakeFirestore) -> None:
        self._client = client
        self._writes: list[Write] = []
        self._state = BatchState.PENDING

    @property
    def committed(self) -> bool:
        return self._state is BatchState.COMMITTED

    def __len__(self) -> int:
        return len(self._writes)

    def set(
        self,
        reference: DocumentReference,
        document_data: Any,
        merge: bool | Sequence[str] = False,
    ) -> WriteBatch:
        payload = copy_value(to_store_payload(reference.converter, document_data))
        if not isinstance(merge, bool):
            merge = tuple(merge)
        return self._queue(Write(WriteKind.SET, self._path_of(reference), payload, merge))

    def create(self, reference: DocumentReference, document_data: Any) -> WriteBatch:
        payload = copy_value(to_store_payload(reference.converter, document_data))
        return self._queue(Write(WriteKind.CREATE, self._path_of(reference), payload))

    def update(self, reference: DocumentReference, field_updates: Mapping[str, Any]) -> WriteBatch:
        return self._queue(Write(WriteKind.UPDATE, self._path_of(reference), copy_value(field_updates)))

    def delete(self, reference: DocumentReference) -> WriteBatch:
        return self._queue(Write(WriteKind.DELETE, self._path_of(reference)))

    def commit(self) -> list[WriteResult]:
        self._require_pending()
        # Consumed before applying: a failed commit cannot be retried either.
        self._state = BatchState.COMMITTED
        writes, self._writes = self._writes, []
        commit_times = self._client._tree.apply(writes)
        LOGGER.debug("Batch committed with %s write(s)", len(writes))
        return [WriteResult(update_time=commit_time) for commit_time in commit_times]

    def __enter__(self) -> WriteBatch:
        self._require_pending()
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        if exc_type is None:
            self.commit()

    def _queue(self, write: Write) -> WriteBatch:
        self._require_pending()
        self._writes.append(write)
        return self

    def _path_of(self, reference: DocumentReference) -> tuple[str, ...]:
        if getattr(reference, "_client", None) is not self._client:
            raise InvalidArgumentError(f"Reference belongs to another client: {reference!r}")
        return reference._path

    def _require_pending(self) -> None:
        if self._state is not BatchState.PENDING:
            raise InvalidStateError("This batch has already been committed.")
