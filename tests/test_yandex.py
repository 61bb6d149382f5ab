"""Tests for fscopy/providers/yandex.py.

A fake Yandex.Disk is served through ``httpx.MockTransport``: the REST API
under ``https://api.test/`` and one-time transfer links under
``https://transfer.test/``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import httpx
import pytest

from fscopy.context import Context
from fscopy.errors import (
    ContextCanceled,
    FailureReason,
    LinkResolutionError,
    LocatorParseError,
    MetadataError,
    TransferError,
)
from fscopy.locator import Locator
from fscopy.providers.yandex import TransferLink, YandexDiskFileSystem

API = "https://api.test/"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


class FakeDisk:
    """In-memory Yandex.Disk that records every request it sees."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self.link_status = 200
        self.link_payload: Optional[dict] = None
        self.transfer_status: Optional[int] = None
        self.meta_payload: Optional[object] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(request.read())
        url = request.url
        if url.host == "api.test":
            path = url.params.get("path", "")
            if url.path in ("/v1/disk/resources/upload", "/v1/disk/resources/download"):
                if self.link_status != 200:
                    return httpx.Response(self.link_status, json={"error": "nope"})
                if self.link_payload is not None:
                    return httpx.Response(200, json=self.link_payload)
                action = url.path.rsplit("/", 1)[1]
                method = "put" if action == "upload" else "GET"
                return httpx.Response(
                    200, json={"href": f"https://transfer.test/{action}{path}", "method": method}
                )
            if url.path == "/v1/disk/resources":
                if self.meta_payload is not None:
                    return httpx.Response(200, json=self.meta_payload)
                if path not in self.files:
                    return httpx.Response(404, json={"error": "DiskNotFoundError"})
                return httpx.Response(
                    200,
                    json={
                        "name": path.rsplit("/", 1)[1],
                        "size": len(self.files[path]),
                        "modified": "2024-03-01T10:20:30+00:00",
                        "type": "file",
                    },
                )
            return httpx.Response(404)

        if self.transfer_status is not None:
            return httpx.Response(self.transfer_status)
        if url.path.startswith("/upload"):
            self.files[url.path[len("/upload"):]] = self.bodies[-1]
            return httpx.Response(201)
        if url.path.startswith("/download"):
            data = self.files.get(url.path[len("/download"):])
            if data is None:
                return httpx.Response(404)
            return httpx.Response(200, content=data)
        return httpx.Response(404)

    def requests_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]


@pytest.fixture()
def disk() -> FakeDisk:
    return FakeDisk()


@pytest.fixture()
def fs(disk: FakeDisk) -> YandexDiskFileSystem:
    client = httpx.Client(transport=httpx.MockTransport(disk))
    return YandexDiskFileSystem(access_token="DEFAULT", base_url=API, client=client)


@pytest.fixture()
def ctx() -> Context:
    return Context.background().with_cancel()


# ---------------------------------------------------------------------------
# Link resolution
# ---------------------------------------------------------------------------


class TestResolveLink:
    def test_upload_link(self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context) -> None:
        link = fs.resolve_link(ctx, "upload", Locator.parse("yandex:///doc.txt"))
        assert link == TransferLink(method="PUT", url="https://transfer.test/upload/doc.txt")

        request = disk.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/v1/disk/resources/upload"
        assert request.url.params["path"] == "/doc.txt"
        assert request.url.params["overwrite"] == "true"
        assert request.headers["authorization"] == "OAuth DEFAULT"

    def test_download_link_has_no_overwrite(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        fs.resolve_link(ctx, "download", Locator.parse("yandex:///doc.txt"))
        assert "overwrite" not in disk.requests[0].url.params

    def test_locator_token_overrides_default(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        fs.resolve_link(ctx, "download", Locator.parse("yandex:///doc.txt?access_token=T&fields=x"))
        request = disk.requests[0]
        assert request.headers["authorization"] == "OAuth T"
        assert "access_token" not in request.url.params
        assert request.url.params["fields"] == "x"

    def test_non_2xx(self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context) -> None:
        disk.link_status = 401
        with pytest.raises(LinkResolutionError) as exc_info:
            fs.resolve_link(ctx, "upload", Locator.parse("yandex:///doc.txt"))
        assert exc_info.value.reason is FailureReason.STATUS
        assert str(exc_info.value) == "unexpected upload status code: 401"

    @pytest.mark.parametrize(
        "payload",
        [{"href": "https://transfer.test/x"}, {"method": "GET"}, {"href": 1, "method": "GET"}],
    )
    def test_missing_fields(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context, payload: dict
    ) -> None:
        disk.link_payload = payload
        with pytest.raises(LinkResolutionError) as exc_info:
            fs.resolve_link(ctx, "download", Locator.parse("yandex:///doc.txt"))
        assert exc_info.value.reason is FailureReason.MALFORMED

    def test_traversal_path_rejected(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        with pytest.raises(LocatorParseError):
            fs.resolve_link(ctx, "download", Locator.parse("yandex:///a/../b"))
        assert disk.requests == []

    def test_cancelled_before_request(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        ctx.cancel()
        with pytest.raises(ContextCanceled):
            fs.resolve_link(ctx, "download", Locator.parse("yandex:///doc.txt"))
        assert disk.requests == []


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


class TestTransfers:
    def test_upload_then_download(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        with fs.create(ctx, Locator.parse("yandex:///doc.txt")) as writer:
            writer.write(b"hello ")
            writer.write(b"disk")
        assert disk.files["/doc.txt"] == b"hello disk"

        with fs.open(ctx, Locator.parse("yandex:///doc.txt")) as reader:
            assert reader.read() == b"hello disk"

    def test_transfer_uses_link_method_and_auth(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        fs.create(ctx, Locator.parse("yandex:///doc.txt?access_token=T")).close()
        transfer = disk.requests_to("transfer.test")[0]
        assert transfer.method == "PUT"
        assert transfer.headers["authorization"] == "OAuth T"

    def test_no_transfer_after_failed_resolution(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        disk.link_status = 500
        with pytest.raises(LinkResolutionError):
            fs.open(ctx, Locator.parse("yandex:///doc.txt"))
        assert disk.requests_to("transfer.test") == []

    def test_download_error_status(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        disk.transfer_status = 503
        reader = fs.open(ctx, Locator.parse("yandex:///doc.txt"))
        with pytest.raises(TransferError) as exc_info:
            reader.read(10)
        assert exc_info.value.status_code == 503
        with pytest.raises(TransferError):
            reader.close()

    def test_upload_error_status_reported_on_close(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        disk.transfer_status = 413
        writer = fs.create(ctx, Locator.parse("yandex:///big.bin"))
        writer.write(b"x" * 1000)
        with pytest.raises(TransferError, match="413"):
            writer.close()


# ---------------------------------------------------------------------------
# Stat
# ---------------------------------------------------------------------------


class TestStat:
    def test_file(self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context) -> None:
        disk.files["/docs/a.txt"] = b"12345"
        info = fs.stat(ctx, Locator.parse("yandex:///docs/a.txt"))
        assert info.name == "a.txt"
        assert info.size == 5
        assert info.modified_at == datetime(2024, 3, 1, 10, 20, 30, tzinfo=timezone.utc)
        assert not info.is_directory
        request = disk.requests[0]
        assert request.url.path == "/v1/disk/resources"
        assert request.headers["authorization"] == "OAuth DEFAULT"

    def test_encoded_path_is_sent_decoded(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        disk.files["/a b.txt"] = b"x"
        info = fs.stat(ctx, Locator.parse("yandex:///a%20b.txt"))
        assert info.name == "a b.txt"
        assert disk.requests[0].url.params["path"] == "/a b.txt"

    def test_directory_without_size(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context
    ) -> None:
        disk.meta_payload = {"name": "docs", "type": "dir", "modified": "2024-03-01T10:20:30Z"}
        info = fs.stat(ctx, Locator.parse("yandex:///docs"))
        assert info.is_directory
        assert info.size == 0

    def test_not_found(self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context) -> None:
        with pytest.raises(MetadataError) as exc_info:
            fs.stat(ctx, Locator.parse("yandex:///missing"))
        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "unexpected stat status code: 404"

    @pytest.mark.parametrize(
        "payload",
        [
            ["not", "an", "object"],
            {"size": 1, "modified": "2024-03-01T10:20:30Z"},
            {"name": "a", "size": "1", "modified": "2024-03-01T10:20:30Z"},
            {"name": "a", "size": True, "modified": "2024-03-01T10:20:30Z"},
            {"name": "a", "size": -1, "modified": "2024-03-01T10:20:30Z"},
            {"name": "a", "size": 1},
            {"name": "a", "size": 1, "modified": "yesterday"},
        ],
    )
    def test_malformed(
        self, fs: YandexDiskFileSystem, disk: FakeDisk, ctx: Context, payload: object
    ) -> None:
        disk.meta_payload = payload
        with pytest.raises(MetadataError) as exc_info:
            fs.stat(ctx, Locator.parse("yandex:///a"))
        assert exc_info.value.reason is FailureReason.MALFORMED


class TestDefaultToken:
    def test_token_from_environment(self, monkeypatch: pytest.MonkeyPatch, disk: FakeDisk) -> None:
        monkeypatch.setenv("YANDEX_ACCESS_TOKEN", "ENV")
        client = httpx.Client(transport=httpx.MockTransport(disk))
        fs = YandexDiskFileSystem(base_url=API, client=client)
        fs.resolve_link(Context.background(), "download", Locator.parse("yandex:///x"))
        assert disk.requests[0].headers["authorization"] == "OAuth ENV"
