"""Synchronous in-memory pipe.

A :class:`Pipe` hands bytes from one thread to another without buffering:
``write`` blocks until readers have consumed everything it was given, and
``read`` blocks until a writer offers data.  Either end can be closed,
optionally with an error that the other end then observes.
"""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class Pipe:
    """Zero-capacity, thread-safe byte pipe.

    Concurrent writers are serialised so that the bytes of one ``write``
    call are never interleaved with another's.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._write_lock = threading.Lock()
        self._pending: memoryview | None = None

        self._reader_closed = False
        self._writer_closed = False
        # Errors observed by the *other* end once an end is closed.
        self._reader_error: BaseException | None = None
        self._writer_error: BaseException | None = None
        self._abort_error: BaseException | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def read(self, size: int) -> bytes:
        """Return up to *size* bytes, or ``b""`` at end of stream.

        Raises:
            ValueError: The read side has been closed.
            BaseException: The error the writer closed the pipe with.
        """
        if size == 0:
            return b""
        with self._cond:
            while True:
                if self._reader_closed:
                    if self._abort_error is not None:
                        raise self._abort_error
                    raise ValueError("I/O operation on closed pipe")
                if self._pending is not None:
                    break
                if self._writer_closed:
                    if self._writer_error is not None:
                        raise self._writer_error
                    return b""
                self._cond.wait()

            pending = self._pending
            if size < 0 or size >= len(pending):
                chunk = bytes(pending)
                self._pending = None
            else:
                chunk = bytes(pending[:size])
                self._pending = pending[size:]
            self._cond.notify_all()
            return chunk

    def close_reader(self, error: BaseException | None = None) -> None:
        """Close the read side.

        Pending and future writes fail with *error*, or with
        :class:`BrokenPipeError` when no error is given.
        """
        with self._cond:
            if self._reader_closed:
                return
            self._reader_closed = True
            self._reader_error = error or BrokenPipeError("write on closed pipe")
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def write(self, data: bytes) -> int:
        """Hand *data* to readers, blocking until all of it was consumed.

        Returns the number of bytes written.

        Raises:
            ValueError: The write side has been closed.
            BaseException: The error the reader closed the pipe with.
        """
        view = memoryview(data).cast("B")
        if not len(view):
            return 0
        with self._write_lock, self._cond:
            if self._writer_closed:
                if self._abort_error is not None:
                    raise self._abort_error
                raise ValueError("I/O operation on closed pipe")
            if self._reader_closed:
                raise self._reader_error  # type: ignore[misc]

            self._pending = view
            self._cond.notify_all()
            while self._pending is not None:
                if self._reader_closed:
                    self._pending = None
                    raise self._reader_error  # type: ignore[misc]
                if self._abort_error is not None:
                    self._pending = None
                    raise self._abort_error
                self._cond.wait()
            return len(view)

    def close_writer(self, error: BaseException | None = None) -> None:
        """Close the write side.

        Readers see end of stream once drained, or *error* if one is given.
        """
        with self._cond:
            if self._writer_closed:
                return
            self._writer_closed = True
            self._writer_error = error
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # Both
    # ------------------------------------------------------------------

    def abort(self, error: BaseException) -> None:
        """Close both ends so that every waiter fails with *error*."""
        with self._cond:
            if self._abort_error is None:
                self._abort_error = error
            if not self._reader_closed:
                self._reader_closed = True
                self._reader_error = error
            if not self._writer_closed:
                self._writer_closed = True
                self._writer_error = error
            self._cond.notify_all()
        logger.debug("Pipe aborted: %s", error)
