from __future__ import annotations

from dataclasses import dataclass, replace
from functools import cmp_to_key
from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping

from google.cloud.firestore_v1.base_query import And, BaseCompositeFilter, FieldFilter, Or

from firestore_double.converter import Converter
from firestore_double.errors import InvalidArgumentError
from firestore_double.field_values import (
    FieldParts,
    compare_values,
    has_field,
    lookup,
    parse_field_path,
    same_type,
    values_equal,
)
from firestore_double.paths import Path, join_path
from firestore_double.snapshots import DocumentSnapshot, QuerySnapshot
from firestore_double.storage.collection_group import scan_collection_group
from firestore_double.storage.tree import DocumentRecord

if TYPE_CHECKING:
    from firestore_double.client import FakeFirestore
    from firestore_double.listeners import ListenerRegistration


OPERATORS = frozenset(
    {"==", "!=", "<", "<=", ">", ">=", "array-contains", "array-contains-any", "in", "not-in"}
)
LIST_OPERATORS = frozenset({"array-contains-any", "in", "not-in"})


def normalize_operator(op_string: str) -> str:
    if not isinstance(op_string, str):
        raise InvalidArgumentError(f"Operator must be a string: {op_string!r}")
    normalized = op_string.strip().lower().replace("_", "-")
    if normalized not in OPERATORS:
        raise InvalidArgumentError(f"Unsupported filter operator: {op_string}")
    return normalized


@dataclass(frozen=True)
class FieldCondition:
    field: FieldParts
    op: str
    value: Any

    def matches(self, data: Mapping[str, Any]) -> bool:
        try:
            actual = lookup(data, self.field)
        except KeyError:
            return False

        op = self.op
        if op == "==":
            return values_equal(actual, self.value)
        if op == "!=":
            return actual is not None and not values_equal(actual, self.value)
        if op == "in":
            return any(values_equal(actual, candidate) for candidate in self.value)
        if op == "not-in":
            return actual is not None and not any(values_equal(actual, candidate) for candidate in self.value)
        if op == "array-contains":
            return isinstance(actual, list) and any(values_equal(item, self.value) for item in actual)
        if op == "array-contains-any":
            return isinstance(actual, list) and any(
                values_equal(item, candidate) for item in actual for candidate in self.value
            )

        # Range comparisons only match values of the same type.
        if not same_type(actual, self.value):
            return False
        result = compare_values(actual, self.value)
        if op == "<":
            return result < 0
        if op == "<=":
            return result <= 0
        if op == ">":
            return result > 0
        return result >= 0


@dataclass(frozen=True)
class CompositeCondition:
    operator: str
    conditions: tuple[FieldCondition | CompositeCondition, ...]

    def matches(self, data: Mapping[str, Any]) -> bool:
        if self.operator == "OR":
            return any(condition.matches(data) for condition in self.conditions)
        return all(condition.matches(data) for condition in self.conditions)


Condition = FieldCondition | CompositeCondition


@dataclass(frozen=True)
class Order:
    field: FieldParts
    descending: bool = False


@dataclass(frozen=True)
class Cursor:
    values: tuple[Any, ...]
    inclusive: bool


@dataclass(frozen=True)
class QueryState:
    collection_path: Path
    all_descendants: bool = False
    conditions: tuple[Condition, ...] = ()
    orders: tuple[Order, ...] = ()
    limit: int | None = None
    limit_to_last: bool = False
    offset: int = 0
    start: Cursor | None = None
    end: Cursor | None = None


class Query:
    """Immutable query over one collection or a collection group."""

    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"

    def __init__(
        self,
        client: FakeFirestore,
        state: QueryState,
        *,
        converter: Converter | None = None,
    ) -> None:
        self._client = client
        self._state = state
        self._converter = converter

    @property
    def converter(self) -> Converter | None:
        return self._converter

    def _copy(self, **changes: Any) -> Query:
        return Query(self._client, replace(self._state, **changes), converter=self._converter)

    # Builders --------------------------------------------------------------

    def where(
        self,
        field_path: str | None = None,
        op_string: str | None = None,
        value: Any = None,
        *,
        filter: FieldFilter | BaseCompositeFilter | None = None,
    ) -> Query:
        if filter is not None:
            if field_path is not None or op_string is not None:
                raise InvalidArgumentError("Pass either a filter or field_path/op_string, not both.")
            condition = _condition_from_filter(filter)
        else:
            if field_path is None or op_string is None:
                raise InvalidArgumentError("where() requires field_path and op_string.")
            condition = _field_condition(field_path, op_string, value)
        return self._copy(conditions=self._state.conditions + (condition,))

    def order_by(self, field_path: str, direction: str = ASCENDING) -> Query:
        normalized = str(direction).strip().upper()
        if normalized in {"ASC", "ASCENDING"}:
            descending = False
        elif normalized in {"DESC", "DESCENDING"}:
            descending = True
        else:
            raise InvalidArgumentError(f"Unsupported order direction: {direction}")
        order = Order(field=parse_field_path(field_path), descending=descending)
        return self._copy(orders=self._state.orders + (order,))

    def limit(self, count: int) -> Query:
        return self._copy(limit=_require_count(count, "limit"), limit_to_last=False)

    def limit_to_last(self, count: int) -> Query:
        return self._copy(limit=_require_count(count, "limit_to_last"), limit_to_last=True)

    def offset(self, num_to_skip: int) -> Query:
        if num_to_skip < 0:
            raise InvalidArgumentError("offset must be >= 0.")
        return self._copy(offset=num_to_skip)

    def start_at(self, document_fields_or_snapshot: Any) -> Query:
        return self._copy(start=self._cursor(document_fields_or_snapshot, inclusive=True))

    def start_after(self, document_fields_or_snapshot: Any) -> Query:
        return self._copy(start=self._cursor(document_fields_or_snapshot, inclusive=False))

    def end_at(self, document_fields_or_snapshot: Any) -> Query:
        return self._copy(end=self._cursor(document_fields_or_snapshot, inclusive=True))

    def end_before(self, document_fields_or_snapshot: Any) -> Query:
        return self._copy(end=self._cursor(document_fields_or_snapshot, inclusive=False))

    # Reads -----------------------------------------------------------------

    def get(self) -> QuerySnapshot:
        return self._snapshot()

    def stream(self) -> Iterator[DocumentSnapshot]:
        yield from self._snapshot()

    def on_snapshot(
        self,
        callback: Callable[[QuerySnapshot], Any],
        *,
        include_metadata_changes: bool = False,
    ) -> ListenerRegistration:
        return self._client._listeners.register(
            self,
            callback,
            include_metadata_changes=include_metadata_changes,
        )

    # Listener target protocol -------------------------------------------------

    def _snapshot(self, previous: QuerySnapshot | None = None) -> QuerySnapshot:
        read_time = self._client._read_time()
        docs = [
            self._client._document_snapshot(record, read_time=read_time, converter=self._converter)
            for record in self._execute()
        ]
        return QuerySnapshot(self, docs, read_time=read_time, previous=previous)

    def _affected_by(self, changed_paths: frozenset) -> bool:
        state = self._state
        for path in changed_paths:
            parent = path[:-1]
            if state.all_descendants and parent[-1] == state.collection_path[-1]:
                return True
            if not state.all_descendants and parent == state.collection_path:
                return True
        return False

    def _execute(self) -> list[DocumentRecord]:
        state = self._state
        tree = self._client._tree
        if state.all_descendants:
            records = scan_collection_group(tree, state.collection_path[-1])
        else:
            records = tree.list_documents(state.collection_path)

        records = [record for record in records if all(c.matches(record.data) for c in state.conditions)]

        if state.orders:
            records = [
                record
                for record in records
                if all(has_field(record.data, order.field) for order in state.orders)
            ]
            # Stable sorts from the last key to the first keep insertion order on ties.
            for order in reversed(state.orders):
                records.sort(key=_order_key(order.field), reverse=order.descending)

        if state.start is not None:
            records = [record for record in records if self._after_start(record, state.start)]
        if state.end is not None:
            records = [record for record in records if self._before_end(record, state.end)]

        if state.offset:
            records = records[state.offset :]
        if state.limit is not None:
            if state.limit_to_last:
                records = records[max(len(records) - state.limit, 0) :]
            else:
                records = records[: state.limit]
        return records

    def _cursor(self, document_fields_or_snapshot: Any, *, inclusive: bool) -> Cursor:
        orders = self._state.orders
        if not orders:
            raise InvalidArgumentError("Query cursors require order_by().")
        source = document_fields_or_snapshot
        if isinstance(source, DocumentSnapshot):
            if not source.exists:
                raise InvalidArgumentError(f"Cursor snapshot does not exist: {source.reference.path}")
            values = _cursor_values(source.to_dict() or {}, orders)
        elif isinstance(source, Mapping):
            values = _cursor_values(source, orders)
        elif isinstance(source, (list, tuple)):
            values = tuple(source)
        else:
            values = (source,)
        if len(values) > len(orders):
            raise InvalidArgumentError("Too many cursor values for the query's order_by fields.")
        return Cursor(values=values, inclusive=inclusive)

    def _cursor_compare(self, record: DocumentRecord, cursor: Cursor) -> int:
        for order, cursor_value in zip(self._state.orders, cursor.values):
            result = compare_values(lookup(record.data, order.field), cursor_value)
            if order.descending:
                result = -result
            if result != 0:
                return result
        return 0

    def _after_start(self, record: DocumentRecord, cursor: Cursor) -> bool:
        result = self._cursor_compare(record, cursor)
        return result > 0 or (result == 0 and cursor.inclusive)

    def _before_end(self, record: DocumentRecord, cursor: Cursor) -> bool:
        result = self._cursor_compare(record, cursor)
        return result < 0 or (result == 0 and cursor.inclusive)

    def __repr__(self) -> str:
        kind = "collection_group" if self._state.all_descendants else "collection"
        return f"Query({kind}={join_path(self._state.collection_path)!r})"


def _field_condition(field_path: Any, op_string: str, value: Any) -> FieldCondition:
    op = normalize_operator(op_string)
    if op in LIST_OPERATORS:
        if not isinstance(value, (list, tuple)) or not value:
            raise InvalidArgumentError(f"'{op}' requires a non-empty list value.")
        value = tuple(value)
    return FieldCondition(field=parse_field_path(field_path), op=op, value=value)


def _condition_from_filter(filter_: Any) -> Condition:
    if isinstance(filter_, FieldFilter):
        return _field_condition(filter_.field_path, filter_.op_string, filter_.value)
    if isinstance(filter_, (And, Or)):
        operator = "OR" if isinstance(filter_, Or) else "AND"
        return CompositeCondition(
            operator=operator,
            conditions=tuple(_condition_from_filter(item) for item in filter_.filters),
        )
    raise InvalidArgumentError(f"Unsupported filter type: {type(filter_).__name__}")


def _cursor_values(data: Mapping[str, Any], orders: tuple[Order, ...]) -> tuple[Any, ...]:
    try:
        return tuple(lookup(data, order.field) for order in orders)
    except KeyError as exc:
        raise InvalidArgumentError(f"Cursor is missing order_by field: {exc.args[0]}") from exc


def _order_key(field: FieldParts) -> Callable[[DocumentRecord], Any]:
    return cmp_to_key(
        lambda left, right: compare_values(lookup(left.data, field), lookup(right.data, field))
    )


def _require_count(count: int, name: str) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise InvalidArgumentError(f"{name} must be an integer >= 0: {count!r}")
    return count
