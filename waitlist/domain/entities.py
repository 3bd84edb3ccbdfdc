from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure classes shared by every layer that talks to the backend."""
    VALIDATION_ERROR = "ValidationError"
    DUPLICATE_EMAIL  = "DuplicateEmail"
    INVALID_RESPONSE = "InvalidResponse"
    BACKEND_ERROR    = "BackendError"
    NETWORK_ERROR    = "NetworkError"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.BACKEND_ERROR, ErrorKind.NETWORK_ERROR)


class SubmissionState(str, Enum):
    IDLE       = "idle"
    SUBMITTING = "submitting"
    SUCCESS    = "success"
    ERROR      = "error"


class CounterPhase(str, Enum):
    LOADING  = "loading"
    READY    = "ready"
    RETRYING = "retrying"
    ERROR    = "error"


@dataclass(frozen=True)
class SignupRequest:
    """
    Raw signup form input, exactly as the user typed it.

    `subscribed` is None when the form did not send the opt-in flag.
    Validation is the only place that turns it into a bool.
    """
    name:       str | None
    email:      str | None
    subscribed: bool | None = None


@dataclass(frozen=True)
class SignupRecord:
    """
    A row of the signups table as the backend returns it.

    Field names match the table columns; the gateway's anti-corruption
    layer builds these from raw JSON rows.
    """
    id:                    str
    full_name:             str
    email:                 str
    subscribed_to_updates: bool
    created_at:            datetime | None


@dataclass(frozen=True)
class CountCacheEntry:
    count:      int
    fetched_at: float


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Outcome of any backend-facing operation.

    Either ok=True with a value (and an optional message), or ok=False with
    an error kind and message. Never both.
    """
    ok:            bool
    value:         T | None = None
    message:       str | None = None
    error_kind:    ErrorKind | None = None
    error_message: str | None = None
    details:       tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.ok and (self.error_kind is not None or self.error_message is not None):
            raise ValueError("successful result cannot carry an error")
        if not self.ok and (self.error_kind is None or self.value is not None):
            raise ValueError("failed result needs an error kind and no value")

    @classmethod
    def success(cls, value: T | None = None, message: str | None = None) -> OperationResult[T]:
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, details: tuple[str, ...] = ()) -> OperationResult[T]:
        return cls(ok=False, error_kind=kind, error_message=message, details=tuple(details) or (message,))


@dataclass(frozen=True)
class CounterDisplayState:
    """
    Snapshot of what the counter widget should render.

    committed_count is the last value confirmed by the backend;
    displayed_count trails it while an animation is running.
    """
    committed_count: int | None
    displayed_count: int
    phase:           CounterPhase
    error_message:   str | None = None
