"""Exception taxonomy for the sync engine."""
from typing import Optional


class OfflineError(RuntimeError):
    """Raised when the device has no connectivity."""


class UnreachableError(RuntimeError):
    """Raised when the authoritative store does not answer the health check."""


class RemoteError(RuntimeError):
    """Raised when the authoritative store rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteNotFoundError(RemoteError):
    """Raised when the authoritative store has no record for a remote id."""


class EntryFailure(RuntimeError):
    """A single queue entry could not be applied. Retried by default."""

    retryable = True


class MissingRecordError(EntryFailure):
    """The local record a create refers to no longer exists. Never retried."""

    retryable = False


class OrderingError(EntryFailure):
    """An update arrived before its create landed. Retried on a later cycle."""


class SyncBusyError(RuntimeError):
    """Raised by force_sync() when another sync cycle holds the session."""
