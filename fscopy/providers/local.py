"""Local filesystem provider (``file://`` locators)."""

from __future__ import annotations

import logging
import stat
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from fscopy.context import Context
from fscopy.errors import LocalIOError
from fscopy.locator import Locator
from fscopy.providers.base import FileInfo
from fscopy.utils.path_helpers import normalize_local_path

logger = logging.getLogger(__name__)

SCHEME = "file"


def _local_path(locator: Locator) -> Path:
    path = locator.path
    # file://relative/name puts the first segment in the authority.
    if locator.host and locator.host != "localhost":
        path = locator.host + path
    return normalize_local_path(path)


class LocalFile:
    """An OS file that checks its context before every read and write."""

    def __init__(self, ctx: Context, handle: BinaryIO, path: Path, created: bool = False) -> None:
        self._ctx = ctx
        self._handle = handle
        self._path = path
        self._created = created

    @property
    def name(self) -> str:
        return str(self._path)

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def read(self, size: int = -1) -> bytes:
        self._ctx.raise_if_done()
        try:
            return self._handle.read(size)
        except OSError as exc:
            raise LocalIOError("read", str(self._path), exc.strerror or str(exc)) from exc

    def write(self, data: bytes) -> int:
        self._ctx.raise_if_done()
        try:
            return self._handle.write(data)
        except OSError as exc:
            raise LocalIOError("write", str(self._path), exc.strerror or str(exc)) from exc

    def close(self) -> None:
        try:
            self._handle.close()
        except OSError as exc:
            raise LocalIOError("close", str(self._path), exc.strerror or str(exc)) from exc

    def abort(self) -> None:
        """Close the file; a file this handle created is removed again."""
        self._handle.close()
        if self._created:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise LocalIOError("remove", str(self._path), exc.strerror or str(exc)) from exc
            logger.debug("Removed incomplete local file %s", self._path)

    def __enter__(self) -> LocalFile:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class LocalFileSystem:
    """Delegates directly to the operating system's file APIs."""

    def create(self, ctx: Context, locator: Locator) -> LocalFile:
        """Create (or truncate) the file, making missing parent directories."""
        ctx.raise_if_done()
        path = _local_path(locator)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(path, "wb")
        except OSError as exc:
            raise LocalIOError("create", str(path), exc.strerror or str(exc)) from exc
        logger.debug("Created local file %s", path)
        return LocalFile(ctx, handle, path, created=True)

    def open(self, ctx: Context, locator: Locator) -> LocalFile:
        ctx.raise_if_done()
        path = _local_path(locator)
        try:
            handle = open(path, "rb")
        except OSError as exc:
            raise LocalIOError("open", str(path), exc.strerror or str(exc)) from exc
        logger.debug("Opened local file %s", path)
        return LocalFile(ctx, handle, path)

    def stat(self, ctx: Context, locator: Locator) -> FileInfo:
        ctx.raise_if_done()
        path = _local_path(locator)
        try:
            st = path.stat()
        except OSError as exc:
            raise LocalIOError("stat", str(path), exc.strerror or str(exc)) from exc
        return FileInfo(
            name=path.name,
            size=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            is_directory=stat.S_ISDIR(st.st_mode),
        )
