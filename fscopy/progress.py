"""Progress reporting for byte streams."""

from __future__ import annotations

import logging
from typing import BinaryIO, Callable, Optional

logger = logging.getLogger(__name__)

# Called with the number of bytes just read (not a running total).
ProgressFunc = Callable[[int], None]


def noop_progress(add: int) -> None:
    """Progress callback that ignores every update."""


def progress_or_noop(progress: Optional[ProgressFunc]) -> ProgressFunc:
    """Return *progress*, or :func:`noop_progress` when it is ``None``."""
    return progress if progress is not None else noop_progress


class ProgressReader:
    """Wrap a readable stream and report every read to a callback.

    A failing callback is logged and otherwise ignored; progress display
    must never abort a transfer.
    """

    def __init__(self, reader: BinaryIO, progress: Optional[ProgressFunc] = None) -> None:
        self._reader = reader
        self._progress = progress_or_noop(progress)

    def read(self, size: int = -1) -> bytes:
        data = self._reader.read(size)
        try:
            self._progress(len(data))
        except Exception:
            logger.exception("Exception in progress callback")
        return data
