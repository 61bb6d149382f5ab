"""Copy orchestration.

:class:`Copier` resolves source and destination providers through a
:class:`~fscopy.registry.Registry`, opens both, streams bytes between them,
and closes both on every exit path.  The earliest error wins: cleanup errors
are only reported when nothing failed before them.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Optional

from fscopy.context import Context
from fscopy.locator import Locator
from fscopy.progress import ProgressFunc, ProgressReader
from fscopy.providers.base import FileInfo
from fscopy.registry import Registry

logger = logging.getLogger(__name__)

CHUNK_SIZE = 32 * 1024  # 32 KB per read/write call


def _as_locator(locator: Locator | str) -> Locator:
    return locator if isinstance(locator, Locator) else Locator.parse(locator)


def _abort_quietly(stream: BinaryIO, role: str) -> None:
    """Abort *stream* so an unfinished destination is not committed."""
    abort = getattr(stream, "abort", None)
    if abort is None:
        _close_quietly(stream, role)
        return
    try:
        abort()
    except Exception as exc:
        logger.debug("Ignoring %s abort error after earlier failure: %s", role, exc)


def _close_quietly(stream: BinaryIO, role: str) -> None:
    """Close *stream* after an earlier failure, discarding its own error."""
    try:
        stream.close()
    except Exception as exc:
        logger.debug("Ignoring %s close error after earlier failure: %s", role, exc)


class Copier:
    """Copies streams between any two registered schemes."""

    def __init__(self, registry: Registry, chunk_size: int = CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._registry = registry
        self._chunk_size = chunk_size

    @property
    def registry(self) -> Registry:
        return self._registry

    # ------------------------------------------------------------------
    # Single-endpoint operations
    # ------------------------------------------------------------------

    def open(self, ctx: Context, locator: Locator | str) -> BinaryIO:
        """Open *locator* for reading."""
        locator = _as_locator(locator)
        return self._registry.resolve(locator).open(ctx, locator)

    def create(self, ctx: Context, locator: Locator | str) -> BinaryIO:
        """Create (or overwrite) *locator* for writing."""
        locator = _as_locator(locator)
        return self._registry.resolve(locator).create(ctx, locator)

    def stat(self, ctx: Context, locator: Locator | str) -> FileInfo:
        locator = _as_locator(locator)
        return self._registry.resolve(locator).stat(ctx, locator)

    # ------------------------------------------------------------------
    # Copy
    # ------------------------------------------------------------------

    def copy(
        self,
        ctx: Context,
        dst: Locator | str,
        src: Locator | str,
        progress: Optional[ProgressFunc] = None,
    ) -> int:
        """Copy *src* to *dst* and return the number of bytes copied.

        Both endpoints are closed exactly once whatever happens.  A failure
        while streaming aborts the destination, so no partial file is
        committed, and is re-raised after both ends were released; a failure
        closing the source is raised after the destination was closed.

        Args:
            ctx: Context governing the whole transfer.
            dst: Destination locator.
            src: Source locator.
            progress: Called with the size of every chunk read.
        """
        dst = _as_locator(dst)
        src = _as_locator(src)

        try:
            source = self.open(ctx, src)
        except Exception:
            logger.error("Error opening source %s", src.redacted())
            raise

        try:
            destination = self.create(ctx, dst)
        except Exception:
            logger.error("Error opening destination %s", dst.redacted())
            _close_quietly(source, "source")
            raise

        try:
            copied = self._stream(ProgressReader(source, progress), destination)
        except Exception:
            logger.error("Error copying from %s to %s", src.redacted(), dst.redacted())
            _close_quietly(source, "source")
            _abort_quietly(destination, "destination")
            raise

        try:
            source.close()
        except Exception:
            logger.error("Error closing source %s", src.redacted())
            _close_quietly(destination, "destination")
            raise

        try:
            destination.close()
        except Exception:
            logger.error("Error closing destination %s", dst.redacted())
            raise

        logger.info("Copied %d bytes: %s -> %s", copied, src.redacted(), dst.redacted())
        return copied

    def _stream(self, reader: ProgressReader, writer: BinaryIO) -> int:
        total = 0
        while True:
            chunk = reader.read(self._chunk_size)
            if not chunk:
                return total
            writer.write(chunk)
            total += len(chunk)
