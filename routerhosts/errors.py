"""Command failures and their mapping onto RPC status codes."""

from __future__ import annotations

from enum import IntEnum


class CommandError(Exception):
    """Base class for failures raised by the command layer."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationFailed(CommandError):
    """Input did not pass validation (bad IP address, hostname, ...)."""


class DuplicateEntry(CommandError):
    """An entry with the same IP address and hostname already exists."""


class NotFound(CommandError):
    """The requested entry does not exist."""


class VersionConflict(CommandError):
    """Optimistic concurrency check failed."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"Version conflict: expected {expected}, actual {actual}")
        self.expected = expected
        self.actual = actual


class DatabaseError(CommandError):
    """The storage layer reported a failure."""


class FileGenerationError(CommandError):
    """The hosts file could not be regenerated."""


class InternalError(CommandError):
    """Unexpected internal failure (queue closed, timeout, ...)."""


class StatusCode(IntEnum):
    """RPC status codes used by the service layer."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class ServiceError(Exception):
    """A failure reported to a client, carrying a status code and message."""

    def __init__(self, code: StatusCode, message: str) -> None:
        super().__init__(message)
        self.code = StatusCode(code)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"ServiceError({self.code.name}, {self.message!r})"


def to_status(error: CommandError) -> ServiceError:
    """Map a command failure onto the status a client receives."""
    match error:
        case ValidationFailed():
            return ServiceError(StatusCode.INVALID_ARGUMENT, error.message)
        case DuplicateEntry():
            return ServiceError(StatusCode.ALREADY_EXISTS, error.message)
        case NotFound():
            return ServiceError(StatusCode.NOT_FOUND, error.message)
        case VersionConflict():
            return ServiceError(
                StatusCode.ABORTED,
                f"Version conflict: expected {error.expected}, actual {error.actual}",
            )
        case DatabaseError():
            return ServiceError(StatusCode.INTERNAL, f"Database error: {error.message}")
        case FileGenerationError():
            return ServiceError(
                StatusCode.INTERNAL, f"File generation error: {error.message}"
            )
        case _:
            return ServiceError(StatusCode.INTERNAL, error.message)