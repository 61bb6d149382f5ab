"""Yandex.Disk provider (``yandex://`` locators).

Uploads and downloads are two-step: a link-resolution call
(``GET /v1/disk/resources/{upload|download}``) returns a one-time transfer
link, which is then used for the actual streamed transfer.  Every request
carries ``Authorization: OAuth <token>``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from fscopy.config import get_access_token
from fscopy.context import Context
from fscopy.errors import (
    FailureReason,
    LinkResolutionError,
    LocatorParseError,
    MetadataError,
    RemoteError,
)
from fscopy.locator import ACCESS_TOKEN_PARAM, Locator
from fscopy.providers.base import FileInfo
from fscopy.providers.http import DEFAULT_TIMEOUT, send_checked, strip_access_token
from fscopy.transfer import InboundAdapter, OutboundAdapter
from fscopy.utils.path_helpers import validate_remote_path

logger = logging.getLogger(__name__)

SCHEME = "yandex"
DEFAULT_BASE_URL = "https://cloud-api.yandex.net/"


@dataclass(frozen=True)
class TransferLink:
    """One-time endpoint returned by link resolution.  Never reused."""

    method: str
    url: str


def _parse_timestamp(value: str) -> datetime:
    # Python < 3.11 does not accept a trailing "Z".
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


class YandexDiskFileSystem:
    """Files on Yandex.Disk, addressed as ``yandex:///path/on/disk``.

    Args:
        access_token: Default OAuth token; a locator's ``access_token``
            query parameter overrides it for that call.  When ``None`` the
            token comes from the environment or the keyring.
        base_url: REST API root.
        client: HTTP client to use; one is created when omitted.
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._access_token = access_token if access_token is not None else get_access_token(SCHEME)
        self._base_url = httpx.URL(base_url)
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: httpx.URL | str,
        token: str = "",
        params: dict[str, str] | None = None,
    ) -> httpx.Request:
        """Build a request carrying the OAuth header and no token in the URL."""
        url, url_token = strip_access_token(url)
        token = token or url_token or self._access_token
        return self._client.build_request(
            method, url, params=params, headers={"Authorization": f"OAuth {token}"}
        )

    def _api_params(self, locator: Locator) -> tuple[dict[str, str], str]:
        if not validate_remote_path(locator.path):
            raise LocatorParseError(f"invalid remote path: {locator.path!r}")
        token = locator.get(ACCESS_TOKEN_PARAM) or ""
        params = dict(locator.without_query(ACCESS_TOKEN_PARAM).query)
        params["path"] = locator.path
        return params, token

    def _json(self, response: httpx.Response, action: str, error_cls: type[RemoteError]) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise error_cls(action, FailureReason.MALFORMED, detail=str(exc)) from exc
        if not isinstance(payload, dict):
            raise error_cls(action, FailureReason.MALFORMED, detail="expected a JSON object")
        return payload

    def resolve_link(self, ctx: Context, action: str, locator: Locator) -> TransferLink:
        """Ask the API for a one-time ``upload`` or ``download`` link.

        Raises:
            LinkResolutionError: The call failed, returned non-2xx, or did
                not return JSON with string ``href`` and ``method`` fields.
        """
        params, token = self._api_params(locator)
        if action == "upload":
            params["overwrite"] = "true"
        url = self._base_url.join(f"/v1/disk/resources/{action}")
        request = self._request("GET", url, token=token, params=params)

        response = send_checked(ctx, self._client, request, action, LinkResolutionError)
        payload = self._json(response, action, LinkResolutionError)
        href, method = payload.get("href"), payload.get("method")
        if not isinstance(href, str) or not href or not isinstance(method, str) or not method:
            raise LinkResolutionError(
                action, FailureReason.MALFORMED, detail="missing 'href' or 'method'"
            )
        logger.debug("Resolved %s link for %s", action, locator.path)
        return TransferLink(method=method.upper(), url=href)

    # ------------------------------------------------------------------
    # FileSystem
    # ------------------------------------------------------------------

    def create(self, ctx: Context, locator: Locator) -> OutboundAdapter:
        link = self.resolve_link(ctx, "upload", locator)
        token = locator.get(ACCESS_TOKEN_PARAM) or ""
        request = self._request(link.method, link.url, token=token)
        logger.info("Uploading to yandex:%s", locator.path)
        return OutboundAdapter(ctx, self._client, request)

    def open(self, ctx: Context, locator: Locator) -> InboundAdapter:
        link = self.resolve_link(ctx, "download", locator)
        token = locator.get(ACCESS_TOKEN_PARAM) or ""
        request = self._request(link.method, link.url, token=token)
        logger.info("Downloading from yandex:%s", locator.path)
        return InboundAdapter(ctx, self._client, request)

    def stat(self, ctx: Context, locator: Locator) -> FileInfo:
        """Fetch metadata for *locator*.

        Raises:
            MetadataError: The call failed, returned non-2xx, or the JSON
                lacked a string ``name``, an integer ``size`` (files only)
                or an ISO-8601 ``modified`` timestamp.
        """
        params, token = self._api_params(locator)
        url = self._base_url.join("/v1/disk/resources")
        request = self._request("GET", url, token=token, params=params)

        response = send_checked(ctx, self._client, request, "stat", MetadataError)
        payload = self._json(response, "stat", MetadataError)

        name = payload.get("name")
        is_directory = payload.get("type") == "dir"
        size = payload.get("size", 0 if is_directory else None)
        modified = payload.get("modified")
        if not isinstance(name, str):
            raise MetadataError("stat", FailureReason.MALFORMED, detail="missing 'name'")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise MetadataError("stat", FailureReason.MALFORMED, detail="missing or invalid 'size'")
        if not isinstance(modified, str):
            raise MetadataError("stat", FailureReason.MALFORMED, detail="missing 'modified'")
        try:
            modified_at = _parse_timestamp(modified)
        except ValueError as exc:
            raise MetadataError("stat", FailureReason.MALFORMED, detail=str(exc)) from exc

        return FileInfo(name=name, size=size, modified_at=modified_at, is_directory=is_directory)
