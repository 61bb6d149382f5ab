"""Capability providers, one per locator scheme."""

from __future__ import annotations

from fscopy.providers.base import FileInfo, FileSystem
from fscopy.providers.http import HTTPFileSystem
from fscopy.providers.local import LocalFileSystem
from fscopy.providers.yandex import YandexDiskFileSystem

__all__ = [
    "FileInfo",
    "FileSystem",
    "HTTPFileSystem",
    "LocalFileSystem",
    "YandexDiskFileSystem",
]
