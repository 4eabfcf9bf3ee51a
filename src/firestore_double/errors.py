from __future__ import annotations

from google.api_core import exceptions


class EmulatorError(Exception):
    """Base error raised by the in-memory Firestore emulator."""


class InvalidPathError(EmulatorError, ValueError):
    """Raised when a path does not alternate collection/document segments."""


class InvalidArgumentError(EmulatorError, ValueError):
    """Raised when an operation receives an unusable argument."""


class InvalidStateError(EmulatorError, RuntimeError):
    """Raised when a single-use handle is used again."""


class NotFoundError(EmulatorError, exceptions.NotFound):
    """Raised when updating a document that does not exist."""


class AlreadyExistsError(EmulatorError, exceptions.AlreadyExists):
    """Raised when creating a document that already exists."""
