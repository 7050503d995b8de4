from __future__ import annotations

from typing import Any


class StorageError(Exception):
    """Base class for every failure raised by the storage adapter."""


class BackendError(StorageError):
    """The backend answered with an error."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class BackendUnavailableError(BackendError):
    """The backend could not be reached."""


class MalformedResultError(StorageError):
    """The backend acknowledged a request in a way the adapter does not understand."""

    def __init__(self, message: str, response: Any = None) -> None:
        super().__init__(f"{message}: {response!r}")
        self.response = response


class InvalidOperationError(StorageError, ValueError):
    pass
