from __future__ import annotations

from typing import Callable, Iterable, Sequence
import random
import re
import string

from firestore_double.errors import InvalidPathError


AUTO_ID_ALPHABET = string.ascii_letters + string.digits
AUTO_ID_LENGTH = 20

RESERVED_ID_PATTERN = re.compile(r"^__.*__$")

Path = tuple[str, ...]


def split_path(*parts: str) -> Path:
    """Join path components and split them into validated segments.

    Each component may itself contain ``/`` separators, so
    ``split_path("users", "123abc/cities")`` equals ``split_path("users/123abc/cities")``.
    """

    segments: list[str] = []
    for part in parts:
        if not isinstance(part, str):
            raise InvalidPathError(f"Path components must be strings: {part!r}")
        stripped = part.strip("/")
        if not stripped:
            raise InvalidPathError(f"Path component must not be empty: {part!r}")
        for segment in stripped.split("/"):
            _validate_segment(segment, raw="/".join(parts))
            segments.append(segment)
    return tuple(segments)


def collection_path(*parts: str) -> Path:
    segments = split_path(*parts)
    if len(segments) % 2 != 1:
        raise InvalidPathError(f"Collection path must have odd segments: {'/'.join(segments)}")
    return segments


def document_path(*parts: str) -> Path:
    segments = split_path(*parts)
    if len(segments) % 2 != 0:
        raise InvalidPathError(f"Document path must have even segments: {'/'.join(segments)}")
    return segments


def is_document_path(path: Sequence[str]) -> bool:
    return len(path) > 0 and len(path) % 2 == 0


def join_path(path: Iterable[str]) -> str:
    return "/".join(path)


def _validate_segment(segment: str, *, raw: str) -> None:
    if not segment:
        raise InvalidPathError(f"Path must not contain empty segments: {raw}")
    if segment in {".", ".."}:
        raise InvalidPathError(f"Path segment is not allowed: {segment!r} in {raw}")
    if RESERVED_ID_PATTERN.match(segment):
        raise InvalidPathError(f"Path segment is reserved: {segment!r} in {raw}")


class PathReference:
    """Common identity of collection and document references."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def id(self) -> str:
        return self._path[-1]

    @property
    def path(self) -> str:
        return join_path(self._path)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PathReference):
            return NotImplemented
        return type(self) is type(other) and self._path == other._path

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._path))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"


class IdGenerator:
    """Hands out document IDs, first from a configured pool, then at random."""

    def __init__(
        self,
        pool: Sequence[str] = (),
        *,
        length: int = AUTO_ID_LENGTH,
        rng: random.Random | None = None,
    ) -> None:
        if length <= 0:
            raise ValueError("length must be > 0.")
        for candidate in pool:
            _validate_segment(candidate, raw=candidate)
            if "/" in candidate:
                raise InvalidPathError(f"Pooled ID must not contain '/': {candidate}")
        self._pool = list(pool)
        self._length = length
        self._rng = rng or random.SystemRandom()

    @property
    def remaining_pool(self) -> tuple[str, ...]:
        return tuple(self._pool)

    def next_id(self, is_taken: Callable[[str], bool] = lambda _: False) -> str:
        while self._pool:
            candidate = self._pool.pop(0)
            if not is_taken(candidate):
                return candidate
        while True:
            candidate = "".join(self._rng.choice(AUTO_ID_ALPHABET) for _ in range(self._length))
            if not is_taken(candidate):
                return candidate
