"""
Result values and exceptions.

Rules, the placement resolver and the engine never raise for an expected
rejection: they return an Outcome (or a subclass carrying extra data).
The board service turns a failed Outcome into one of the exceptions below
with raise_for_error() before any store write happens.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Why an operation was rejected."""
    VALIDATION = "validation"    # A bucket rule would be broken
    CAPACITY = "capacity"        # No bucket has room for the tasks
    NOT_FOUND = "not_found"      # Id missing from the snapshot


class BoardError(Exception):
    """Base class for board failures surfaced to the calling layer."""

    kind: Optional[ErrorKind] = None

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BoardRuleError(BoardError):
    """Raised when a bucket rule rejects an operation."""
    kind = ErrorKind.VALIDATION


class CapacityError(BoardError):
    """Raised when no bucket can take the tasks being placed."""
    kind = ErrorKind.CAPACITY


class NotFoundError(BoardError):
    """Raised when a bucket or task id is not in the snapshot."""
    kind = ErrorKind.NOT_FOUND


class StoreError(Exception):
    """Raised when the backing store fails to read or write."""
    pass


_ERRORS_BY_KIND = {
    ErrorKind.VALIDATION: BoardRuleError,
    ErrorKind.CAPACITY: CapacityError,
    ErrorKind.NOT_FOUND: NotFoundError,
}


@dataclass(frozen=True)
class Outcome:
    """Success marker or failure with a human-readable reason."""
    ok: bool = True
    message: str = ""
    kind: Optional[ErrorKind] = None

    def __bool__(self) -> bool:
        return self.ok

    @property
    def is_valid(self) -> bool:
        return self.ok

    def raise_for_error(self) -> None:
        """Raise the BoardError matching this outcome's kind, if it failed."""
        if self.ok:
            return
        error_cls = _ERRORS_BY_KIND.get(self.kind, BoardError)
        raise error_cls(self.message)
