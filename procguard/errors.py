"""
Error taxonomy and the per-call result type returned by the public client.

Internal layers raise the exceptions below; the client facade catches them at
its boundary and hands each caller its own `Result`, so no error state is ever
shared between threads.
"""
from enum import Enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ProcessGuardError(Exception):
    """Base class for every failure reported by the client."""


class ChannelConnectionError(ProcessGuardError):
    """The channel could not be opened, or a write/read on it failed."""


class ChannelUnavailableError(ChannelConnectionError):
    """The channel could not be opened within the connect timeout."""


class ProtocolError(ProcessGuardError):
    """A response payload could not be decoded or exceeded the size bound."""


class ApplicationError(ProcessGuardError):
    """The supervisor rejected a request, or the request failed validation."""


class ServiceErrorKind(Enum):
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    ACCESS_DENIED = "access_denied"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    OTHER = "other"


class ServiceManagementError(ProcessGuardError):
    """A service-manager primitive failed."""

    def __init__(self, kind: ServiceErrorKind, message: str, code: int = 0) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code


class PipeBusyError(OSError):
    """Every instance of the named pipe is currently serving another client."""


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a single client operation.

    Truthy when the operation succeeded. `decode_error` is set when a list or
    status response contained entries that were skipped; the operation itself
    still succeeded in that case.
    """
    ok: bool
    value: Optional[T] = None
    error: Optional[ProcessGuardError] = None
    decode_error: Optional[ProtocolError] = None

    def __bool__(self) -> bool:
        return self.ok

    @property
    def message(self) -> str:
        """The error description, or an empty string on success."""
        return str(self.error) if self.error is not None else ""

    @classmethod
    def success(cls, value: Optional[T] = None, decode_error: Optional[ProtocolError] = None) -> "Result[T]":
        return cls(ok=True, value=value, decode_error=decode_error)

    @classmethod
    def failure(cls, error: ProcessGuardError, value: Optional[T] = None) -> "Result[T]":
        return cls(ok=False, value=value, error=error)
