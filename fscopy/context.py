"""Cancellation contexts for transfers.

A :class:`Context` is a thread-safe token that one transfer is bound to.
Cancelling it (explicitly, through a parent, or when a deadline passes)
fires every registered callback exactly once; streaming adapters use this to
abort their pipes so that blocked reads and writes return immediately.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from fscopy.errors import CancellationError, ContextCanceled, DeadlineExceeded

logger = logging.getLogger(__name__)

DoneCallback = Callable[[CancellationError], None]


class Context:
    """Cancellable context with optional deadline.

    Use :meth:`background` for a root that is never cancelled, and derive
    children with :meth:`with_cancel` / :meth:`with_timeout`.  Children are
    cancelled together with their parent, never the other way round.
    """

    def __init__(self, parent: Context | None = None, timeout: float | None = None) -> None:
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._error: CancellationError | None = None
        self._callbacks: dict[int, DoneCallback] = {}
        self._next_id = 0
        self._timer: threading.Timer | None = None
        self._unregister_parent: Callable[[], None] | None = None

        if parent is not None:
            self._unregister_parent = parent.on_done(self.cancel)

        if timeout is not None:
            if timeout <= 0:
                self.cancel(DeadlineExceeded())
            else:
                self._timer = threading.Timer(timeout, self._expire)
                self._timer.daemon = True
                self._timer.start()

    @classmethod
    def background(cls) -> Context:
        """Return a root context that is only cancelled explicitly."""
        return cls()

    def with_cancel(self) -> Context:
        """Return a child context that can be cancelled independently."""
        return Context(parent=self)

    def with_timeout(self, seconds: float) -> Context:
        """Return a child context cancelled with DeadlineExceeded after *seconds*."""
        return Context(parent=self, timeout=seconds)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def error(self) -> CancellationError | None:
        """The cancellation error, or ``None`` while the context is live."""
        with self._lock:
            return self._error

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the context is done; return True if it is."""
        return self._done.wait(timeout)

    def raise_if_done(self) -> None:
        """Raise the cancellation error if the context is done."""
        error = self.error
        if error is not None:
            raise error

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, error: CancellationError | None = None) -> None:
        """Cancel the context.  Only the first call has any effect."""
        with self._lock:
            if self._error is not None:
                return
            self._error = error or ContextCanceled()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
            self._done.set()
        self._release()

        logger.debug("Context cancelled: %s", self._error)
        for callback in callbacks:
            try:
                callback(self._error)
            except Exception:
                logger.exception("Exception in context done callback")

    def on_done(self, callback: DoneCallback) -> Callable[[], None]:
        """Register *callback* to run once when the context is cancelled.

        If the context is already done the callback runs immediately.
        Returns a function that unregisters the callback.
        """
        with self._lock:
            error = self._error
            if error is None:
                key = self._next_id
                self._next_id += 1
                self._callbacks[key] = callback

                def unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(key, None)

                return unregister

        callback(error)
        return lambda: None

    def close(self) -> None:
        """Release the deadline timer and detach from the parent."""
        self._release()

    def _expire(self) -> None:
        self.cancel(DeadlineExceeded())

    def _release(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        if self._unregister_parent is not None:
            self._unregister_parent()
            self._unregister_parent = None

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
