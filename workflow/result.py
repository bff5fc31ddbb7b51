"""
workflow/result.py

Typed results returned by the clinic workflow engine.

Expected failures (unknown IDs, operations attempted from the wrong status,
bad arguments, a store that could not be saved) are returned as values
rather than raised, so callers can branch on ``result.ok`` /
``result.error.kind``.  ``unwrap()`` is there for callers that want an
exception instead.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INVALID_ARGUMENT = "invalid_argument"
    STORAGE_ERROR = "storage_error"


class WorkflowError(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str


class WorkflowFailure(Exception):
    """Raised by :meth:`WorkflowResult.unwrap` on a failed result."""

    def __init__(self, error: WorkflowError):
        super().__init__(error.message)
        self.error = error

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


class WorkflowResult(BaseModel, Generic[T]):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Any = None
    error: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Any = None) -> WorkflowResult:
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> WorkflowResult:
        return cls(error=WorkflowError(kind=kind, message=message))

    def unwrap(self) -> T:
        if self.error is not None:
            raise WorkflowFailure(self.error)
        return self.value


def not_found(message: str) -> WorkflowResult:
    return WorkflowResult.failure(ErrorKind.NOT_FOUND, message)


def invalid_state(message: str) -> WorkflowResult:
    return WorkflowResult.failure(ErrorKind.INVALID_STATE, message)


def invalid_argument(message: str) -> WorkflowResult:
    return WorkflowResult.failure(ErrorKind.INVALID_ARGUMENT, message)


def storage_error(message: str) -> WorkflowResult:
    return WorkflowResult.failure(ErrorKind.STORAGE_ERROR, message)
