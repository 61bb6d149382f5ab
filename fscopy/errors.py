"""Exception hierarchy for fscopy.

Every error raised by the library derives from :class:`FsError`, so callers
can catch the whole family at the top level while still telling the kinds
apart.
"""

from __future__ import annotations

from enum import Enum, auto


class FsError(Exception):
    """Base class for all fscopy errors."""


class LocatorParseError(FsError, ValueError):
    """Raised when a locator string cannot be parsed."""


class UnknownSchemeError(FsError, LookupError):
    """Raised when no provider is registered for a locator's scheme."""

    def __init__(self, scheme: str) -> None:
        super().__init__(f"unknown scheme: {scheme!r}")
        self.scheme = scheme


# ---------------------------------------------------------------------------
# Remote (HTTP) failures
# ---------------------------------------------------------------------------


class FailureReason(Enum):
    """Why a remote request failed."""

    NETWORK = auto()    # the HTTP call itself failed
    STATUS = auto()     # the server answered with a non-2xx status
    MALFORMED = auto()  # the response body was not what we expected


class RemoteError(FsError):
    """A request against a remote provider failed.

    Attributes:
        action: What was being attempted (``"upload"``, ``"download"``,
            ``"stat"``...).
        reason: A :class:`FailureReason`.
        status_code: The HTTP status code for ``STATUS`` failures.
    """

    def __init__(
        self,
        action: str,
        reason: FailureReason,
        status_code: int | None = None,
        detail: str = "",
    ) -> None:
        self.action = action
        self.reason = reason
        self.status_code = status_code
        self.detail = detail
        super().__init__(self._format())

    def _format(self) -> str:
        if self.reason is FailureReason.STATUS:
            message = f"unexpected {self.action} status code: {self.status_code}"
        elif self.reason is FailureReason.MALFORMED:
            message = f"invalid {self.action} response"
        else:
            message = f"{self.action} request failed"
        if self.detail:
            message = f"{message}: {self.detail}"
        return message


class LinkResolutionError(RemoteError):
    """Resolving an upload/download link failed."""


class MetadataError(RemoteError):
    """Fetching file metadata failed."""


class TransferError(RemoteError):
    """The actual upload or download exchange failed."""


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancellationError(FsError):
    """The governing context was cancelled or its deadline passed."""


class ContextCanceled(CancellationError):
    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(CancellationError):
    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


class LocalIOError(FsError):
    """An operating-system call on a local file failed.

    The original :class:`OSError` is available as ``__cause__``.
    """

    def __init__(self, operation: str, path: str, message: str = "") -> None:
        self.operation = operation
        self.path = path
        text = f"{operation} {path!r} failed"
        if message:
            text = f"{text}: {message}"
        super().__init__(text)
