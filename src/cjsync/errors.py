"""
Error taxonomy for the sync engine.

Every failure a caller can see maps to one ErrorKind. The codec, crypto
and diff layers raise these directly; only the orchestrator catches
broadly, and only to run compensation.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Stable, user-facing failure categories."""

    MALFORMED_INPUT = "malformed_input"
    PASSWORD_REQUIRED = "password_required"
    INVALID_PASSWORD = "invalid_password"
    MISSING_TIMESTAMP = "missing_timestamp"
    UNSUPPORTED_VERSION = "unsupported_version"
    UNKNOWN_MODE = "unknown_mode"
    STORAGE_QUOTA_EXCEEDED = "storage_quota_exceeded"
    ROLLBACK_FAILURE = "rollback_failure"
    BUSY = "busy"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


class SyncError(Exception):
    """Base class for every sync engine failure.

    Attributes:
        kind: The taxonomy entry this failure belongs to.
    """

    kind: ErrorKind = ErrorKind.MALFORMED_INPUT

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value)

    @property
    def recoverable(self) -> bool:
        """Whether the caller can retry, e.g. by re-prompting for a password."""
        return self.kind in (ErrorKind.PASSWORD_REQUIRED, ErrorKind.INVALID_PASSWORD)


class MalformedInput(SyncError):
    """Input is not valid JSON or does not have the expected shape."""

    kind = ErrorKind.MALFORMED_INPUT


class PasswordRequired(SyncError):
    """The payload is encrypted and no password was supplied."""

    kind = ErrorKind.PASSWORD_REQUIRED


class InvalidPassword(SyncError):
    """Authenticated decryption failed.

    Raised for a wrong password and for tampered ciphertext alike.
    """

    kind = ErrorKind.INVALID_PASSWORD


class MissingTimestamp(SyncError):
    """The payload has no numeric timestamp."""

    kind = ErrorKind.MISSING_TIMESTAMP


class UnsupportedVersion(SyncError):
    """The payload or backup was written by an unsupported format version."""

    kind = ErrorKind.UNSUPPORTED_VERSION

    def __init__(self, message: str = "", version: object = None) -> None:
        super().__init__(message)
        self.version = version


class UnknownMode(SyncError):
    """The payload names an export mode this reader does not know."""

    kind = ErrorKind.UNKNOWN_MODE


class StorageQuotaExceeded(SyncError):
    """The blob store refused a write because it is full."""

    kind = ErrorKind.STORAGE_QUOTA_EXCEEDED


class RollbackFailure(SyncError):
    """Compensation after a failed apply did not complete.

    The one condition the engine cannot heal on its own: live state
    may be partially written.
    """

    kind = ErrorKind.ROLLBACK_FAILURE


class SyncBusy(SyncError):
    """Another apply, merge or restore is already in flight."""

    kind = ErrorKind.BUSY


class SnapshotNotFound(SyncError, LookupError):
    """No snapshot with the requested id exists."""

    kind = ErrorKind.NOT_FOUND


class BrokerTimeout(SyncError, TimeoutError):
    """A background request did not answer within its deadline."""

    kind = ErrorKind.TIMEOUT


_BY_KIND = {
    cls.kind: cls
    for cls in (
        MalformedInput, PasswordRequired, InvalidPassword, MissingTimestamp,
        UnsupportedVersion, UnknownMode, StorageQuotaExceeded, RollbackFailure,
        SyncBusy, SnapshotNotFound, BrokerTimeout,
    )
}


def error_for_kind(kind: str, message: str = "") -> SyncError:
    """Rebuild a typed error from its wire form (kind + message)."""
    try:
        cls = _BY_KIND[ErrorKind(kind)]
    except ValueError:
        return SyncError(message or kind)
    return cls(message)
