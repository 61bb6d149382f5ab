"""Capability provider interface shared by every scheme."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Protocol

from fscopy.context import Context
from fscopy.locator import Locator


@dataclass(frozen=True)
class FileInfo:
    """Metadata returned by ``stat``.  Never cached."""

    name: str
    size: int
    modified_at: datetime
    is_directory: bool = False


class FileSystem(Protocol):
    """Open/create/stat for one locator scheme.

    Streams returned by ``open``/``create`` must be closed by the caller;
    ``close()`` raises if the transfer failed.  A writable stream may also
    offer ``abort()``, which releases it without committing what was
    written so far.
    """

    def create(self, ctx: Context, locator: Locator) -> BinaryIO: ...

    def open(self, ctx: Context, locator: Locator) -> BinaryIO: ...

    def stat(self, ctx: Context, locator: Locator) -> FileInfo: ...


__all__ = ["FileInfo", "FileSystem"]
