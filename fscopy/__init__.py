"""fscopy: copy byte streams between local files and remote storage APIs.

Typical use::

    from fscopy import Context, Copier, default_registry

    copier = Copier(default_registry())
    with Context.background().with_timeout(600) as ctx:
        copier.copy(ctx, "file:///tmp/out", "yandex:///doc.txt")
"""

from __future__ import annotations

from fscopy.context import Context
from fscopy.copier import Copier
from fscopy.errors import (
    CancellationError,
    ContextCanceled,
    DeadlineExceeded,
    FailureReason,
    FsError,
    LinkResolutionError,
    LocalIOError,
    LocatorParseError,
    MetadataError,
    RemoteError,
    TransferError,
    UnknownSchemeError,
)
from fscopy.locator import Locator
from fscopy.providers.base import FileInfo, FileSystem
from fscopy.registry import Registry, default_registry

__version__ = "0.1.0"

__all__ = [
    "CancellationError",
    "Context",
    "ContextCanceled",
    "Copier",
    "DeadlineExceeded",
    "FailureReason",
    "FileInfo",
    "FileSystem",
    "FsError",
    "LinkResolutionError",
    "LocalIOError",
    "Locator",
    "LocatorParseError",
    "MetadataError",
    "Registry",
    "RemoteError",
    "TransferError",
    "UnknownSchemeError",
    "default_registry",
]
