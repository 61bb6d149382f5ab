"""Plain HTTP(S) provider and request helpers shared by remote providers.

``http://`` and ``https://`` locators are read with a streamed ``GET``,
written with a streamed ``PUT`` and stat'ed with ``HEAD``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import PurePosixPath
from typing import Type

import httpx

from fscopy.context import Context
from fscopy.errors import FailureReason, MetadataError, RemoteError
from fscopy.locator import ACCESS_TOKEN_PARAM, Locator
from fscopy.providers.base import FileInfo
from fscopy.transfer import InboundAdapter, OutboundAdapter

logger = logging.getLogger(__name__)

SCHEMES = ("http", "https")
DEFAULT_TIMEOUT = 30.0

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def strip_access_token(url: httpx.URL | str) -> tuple[httpx.URL, str]:
    """Remove ``access_token`` from *url*'s query.

    Returns the cleaned URL and the token (``""`` when absent).
    """
    url = httpx.URL(url)
    token = url.params.get(ACCESS_TOKEN_PARAM, "")
    if token:
        url = url.copy_remove_param(ACCESS_TOKEN_PARAM)
    return url, token


def send_checked(
    ctx: Context,
    client: httpx.Client,
    request: httpx.Request,
    action: str,
    error_cls: Type[RemoteError],
) -> httpx.Response:
    """Send *request*, read the body, and fail on network errors or non-2xx.

    Raises:
        CancellationError: *ctx* was already cancelled.
        RemoteError: An ``error_cls`` with reason ``NETWORK`` or ``STATUS``.
    """
    ctx.raise_if_done()
    logger.debug("%s %s://%s%s", request.method, request.url.scheme, request.url.host, request.url.path)
    try:
        response = client.send(request)
    except httpx.HTTPError as exc:
        raise error_cls(action, FailureReason.NETWORK, detail=str(exc)) from exc
    # The call could not be interrupted; honour a cancellation that came in meanwhile.
    ctx.raise_if_done()
    if not response.is_success:
        raise error_cls(action, FailureReason.STATUS, status_code=response.status_code)
    return response


def _last_modified(value: str | None) -> datetime:
    if not value:
        return _EPOCH
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Unparseable Last-Modified header: %r", value)
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# HTTPFileSystem
# ---------------------------------------------------------------------------


class HTTPFileSystem:
    """Treats an HTTP URL as a file.

    An ``access_token`` query parameter is removed from the URL and sent as
    a bearer token instead; *access_token* is the default when the locator
    has none.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        access_token: str = "",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._access_token = access_token

    def _request(self, method: str, locator: Locator) -> httpx.Request:
        url, token = strip_access_token(str(locator))
        token = token or self._access_token
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        return self._client.build_request(method, url, headers=headers)

    def open(self, ctx: Context, locator: Locator) -> InboundAdapter:
        ctx.raise_if_done()
        return InboundAdapter(ctx, self._client, self._request("GET", locator))

    def create(self, ctx: Context, locator: Locator) -> OutboundAdapter:
        ctx.raise_if_done()
        return OutboundAdapter(ctx, self._client, self._request("PUT", locator))

    def stat(self, ctx: Context, locator: Locator) -> FileInfo:
        response = send_checked(
            ctx, self._client, self._request("HEAD", locator), "stat", MetadataError
        )
        length = response.headers.get("content-length")
        try:
            size = int(length)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            raise MetadataError(
                "stat", FailureReason.MALFORMED, detail=f"bad Content-Length {length!r}"
            ) from None
        if size < 0:
            raise MetadataError("stat", FailureReason.MALFORMED, detail=f"bad Content-Length {length!r}")

        return FileInfo(
            name=PurePosixPath(locator.path).name,
            size=size,
            modified_at=_last_modified(response.headers.get("last-modified")),
        )
