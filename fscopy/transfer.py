"""Streaming transfer adapters for fscopy.

Bridges a blocking ``read``/``write`` interface to a single HTTP exchange
running on a background thread:

- :class:`InboundAdapter` (download) streams a response body into a pipe
  that the caller reads from.
- :class:`OutboundAdapter` (upload) streams the request body out of a pipe
  that the caller writes to; ``close()`` completes the upload.

Both variants capture exactly one terminal error, report it on every
``close()``, and abort immediately when their :class:`Context` is cancelled.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum, auto
from typing import Iterator

import httpx

from fscopy.context import Context
from fscopy.errors import CancellationError, FailureReason, TransferError
from fscopy.pipe import Pipe

logger = logging.getLogger(__name__)

CHUNK_SIZE = 256 * 1024  # 256 KB per pipe hand-off

# Hop-by-hop and body-framing headers that must not be copied onto a
# request whose body is replaced by a stream.
_BODY_HEADERS = ("content-length", "transfer-encoding")


class AdapterState(Enum):
    """Lifecycle state of a streaming adapter."""

    CREATED = auto()  # background thread launched, pipe open
    ACTIVE = auto()   # foreground reads/writes are flowing
    CLOSED = auto()   # pipe closed, background joined, error final


# ---------------------------------------------------------------------------
# Shared machinery
# ---------------------------------------------------------------------------


class _StreamingAdapter:
    """Pipe + background thread + once-only captured result."""

    _direction = "transfer"

    def __init__(self, ctx: Context, client: httpx.Client, request: httpx.Request) -> None:
        self._ctx = ctx
        self._client = client
        self._request = request
        self._pipe = Pipe()

        self._state = AdapterState.CREATED
        self._close_lock = threading.Lock()
        self._result_lock = threading.Lock()
        self._error: BaseException | None = None
        self._result_recorded = False
        # Set when the worker ended; _settled also when the context is done.
        self._finished = threading.Event()
        self._settled = threading.Event()
        self._response: httpx.Response | None = None

        self._unregister_cancel = ctx.on_done(self._on_cancel)
        self._worker = threading.Thread(
            target=self._worker_main,
            name=f"fscopy-{self._direction}",
            daemon=True,
        )
        # Query strings may carry credentials; keep them out of the log.
        logger.debug(
            "Starting %s: %s %s://%s%s",
            self._direction,
            request.method,
            request.url.scheme,
            request.url.host,
            request.url.path,
        )
        self._worker.start()

    @property
    def state(self) -> AdapterState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is AdapterState.CLOSED

    def _mark_active(self) -> None:
        if self._state is AdapterState.CREATED:
            self._state = AdapterState.ACTIVE

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _worker_main(self) -> None:
        error: BaseException | None = None
        try:
            self._ctx.raise_if_done()
            self._exchange()
        except httpx.HTTPError as exc:
            error = TransferError(self._direction, FailureReason.NETWORK, detail=str(exc))
            error.__cause__ = exc
        except Exception as exc:
            error = exc

        # Once cancelled, whatever the exchange died of is a cancellation.
        if error is not None and self._ctx.done:
            error = self._ctx.error
        error = self._filter_error(error)
        recorded = self._record(error)
        self._finish(error)
        self._finished.set()
        self._settled.set()

        name = self._direction.capitalize()
        if not recorded:
            logger.debug("%s worker ended after the adapter was closed", name)
        elif error is None:
            logger.debug("%s finished", name)
        elif isinstance(error, CancellationError):
            logger.info("%s cancelled: %s", name, error)
        else:
            logger.error("%s failed: %s", name, error)

    def _record(self, error: BaseException | None) -> bool:
        """Store the terminal result unless one was stored already."""
        with self._result_lock:
            if self._result_recorded:
                return False
            self._error = error
            self._result_recorded = True
            return True

    def _track_response(self, response: httpx.Response) -> None:
        """Remember the in-flight response so cancellation can close it."""
        with self._result_lock:
            self._response = response
            cancelled = self._ctx.done
        if cancelled:
            response.close()
            self._ctx.raise_if_done()

    def _on_cancel(self, error: CancellationError) -> None:
        self._pipe.abort(error)
        with self._result_lock:
            response = self._response
        if response is not None:
            # Tears down the connection under a worker blocked in a read.
            try:
                response.close()
            except Exception as exc:
                logger.debug("Ignoring error closing cancelled %s response: %s", self._direction, exc)
        self._settled.set()

    def _filter_error(self, error: BaseException | None) -> BaseException | None:
        return error

    def _check_status(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise TransferError(
                self._direction, FailureReason.STATUS, status_code=response.status_code
            )

    def _exchange(self) -> None:
        raise NotImplementedError

    def _finish(self, error: BaseException | None) -> None:
        """Release the foreground end of the pipe once the exchange ended."""
        raise NotImplementedError

    def _close_local_end(self) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Finish the exchange and raise its error, if any.

        Closes the local end of the pipe and waits for the background
        thread, then captures its result.  Once the context is cancelled
        the wait ends at once; a worker still blocked inside the HTTP
        client is left to die on its own and the cancellation is the
        result.  Every later call raises the same error.
        """
        with self._close_lock:
            if self._state is not AdapterState.CLOSED:
                self._close_local_end()
                self._settled.wait()
                if self._finished.is_set():
                    self._worker.join()
                elif self._record(self._ctx.error):
                    logger.debug("%s worker still blocked, detaching", self._direction.capitalize())
                self._unregister_cancel()
                self._state = AdapterState.CLOSED
                logger.debug("%s adapter closed", self._direction.capitalize())
        if self._error is not None:
            raise self._error

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        # Already failing: still release everything, keep the original error.
        try:
            self.close()
        except Exception:
            logger.debug("Suppressed close error after %s", exc_type.__name__)


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------


class InboundAdapter(_StreamingAdapter):
    """Readable stream over an HTTP response body.

    The request is sent on a background thread as soon as the adapter is
    created.  A non-2xx status fails the transfer without forwarding any
    bytes.
    """

    _direction = "download"

    def __init__(self, ctx: Context, client: httpx.Client, request: httpx.Request) -> None:
        self._abandoned = BrokenPipeError("download closed by reader")
        super().__init__(ctx, client, request)

    def _exchange(self) -> None:
        response = self._client.send(self._request, stream=True)
        try:
            self._track_response(response)
            self._check_status(response)
            for chunk in response.iter_bytes(CHUNK_SIZE):
                self._pipe.write(chunk)
        finally:
            response.close()

    def _filter_error(self, error: BaseException | None) -> BaseException | None:
        # A caller that stops reading early and closes is not a failure.
        if error is self._abandoned:
            return None
        return error

    def _finish(self, error: BaseException | None) -> None:
        self._pipe.close_writer(error)

    def _close_local_end(self) -> None:
        self._pipe.close_reader(self._abandoned)

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        """Read up to *size* bytes; ``b""`` means the body is exhausted.

        With a negative *size* the rest of the body is returned.
        """
        self._mark_active()
        if size is not None and size >= 0:
            return self._pipe.read(size)
        parts = []
        while True:
            chunk = self._pipe.read(CHUNK_SIZE)
            if not chunk:
                return b"".join(parts)
            parts.append(chunk)

    def readinto(self, buffer) -> int:
        view = memoryview(buffer).cast("B")
        data = self.read(len(view))
        view[: len(data)] = data
        return len(data)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class OutboundAdapter(_StreamingAdapter):
    """Writable stream feeding an HTTP request body.

    The request is rebuilt with a streaming body read from the pipe;
    ``close()`` signals the end of the body and waits for the response.
    The response body is drained and discarded.
    """

    _direction = "upload"

    def __init__(self, ctx: Context, client: httpx.Client, request: httpx.Request) -> None:
        headers = [
            (name, value)
            for name, value in request.headers.multi_items()
            if name.lower() not in _BODY_HEADERS
        ]
        streaming = httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=self._body(),
            extensions=request.extensions,
        )
        super().__init__(ctx, client, streaming)

    def _body(self) -> Iterator[bytes]:
        while True:
            chunk = self._pipe.read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk

    def _exchange(self) -> None:
        response = self._client.send(self._request, stream=True)
        try:
            self._track_response(response)
            self._check_status(response)
            response.read()
        finally:
            response.close()

    def _finish(self, error: BaseException | None) -> None:
        # Unblocks a pending write when the server stopped consuming early.
        self._pipe.close_reader(error)

    def _close_local_end(self) -> None:
        self._pipe.close_writer()

    def readable(self) -> bool:
        return False

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        """Hand *data* to the upload, blocking until it was consumed."""
        self._mark_active()
        return self._pipe.write(data)

    def abort(self, error: BaseException | None = None) -> None:
        """Fail the upload so the server never sees a complete body.

        The request body ends with *error* instead of end-of-stream, then
        the adapter is closed and the resulting error raised like
        :meth:`close` does.
        """
        with self._close_lock:
            if self._state is not AdapterState.CLOSED:
                logger.debug("Aborting upload")
                self._pipe.close_writer(error or ConnectionAbortedError("upload aborted"))
        self.close()
