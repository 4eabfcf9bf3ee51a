from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Mapping, Protocol, TypeVar

from pydantic import BaseModel

from firestore_double.errors import InvalidArgumentError

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


class Converter(Protocol):
    def to_store(self, value: Any) -> Mapping[str, Any]:
        """Map an application object to the fields that get stored."""

    def from_store(self, data: Mapping[str, Any]) -> Any:
        """Map stored fields back to an application object."""


@dataclass(frozen=True)
class FunctionConverter(Generic[T]):
    to_store_fn: Callable[[T], Mapping[str, Any]]
    from_store_fn: Callable[[Mapping[str, Any]], T]

    def to_store(self, value: T) -> Mapping[str, Any]:
        return self.to_store_fn(value)

    def from_store(self, data: Mapping[str, Any]) -> T:
        return self.from_store_fn(data)


@dataclass(frozen=True)
class ModelConverter(Generic[ModelT]):
    """Store pydantic models as plain field maps."""

    model: type[ModelT]
    exclude_none: bool = False

    def to_store(self, value: ModelT) -> Mapping[str, Any]:
        if not isinstance(value, self.model):
            raise InvalidArgumentError(
                f"Expected {self.model.__name__}, got {type(value).__name__}"
            )
        return value.model_dump(mode="python", exclude_none=self.exclude_none)

    def from_store(self, data: Mapping[str, Any]) -> ModelT:
        return self.model.model_validate(dict(data))


def to_store_payload(converter: Converter | None, value: Any) -> Mapping[str, Any]:
    if converter is None:
        return value
    stored = converter.to_store(value)
    if not isinstance(stored, Mapping):
        raise InvalidArgumentError(
            f"Converter must return a mapping from to_store(): {type(stored).__name__}"
        )
    return stored
