"""Scheme → provider registry.

A :class:`Registry` is an explicit object rather than process-wide state:
build one at startup with :func:`default_registry` (or by hand in tests)
and hand it to a :class:`~fscopy.copier.Copier`.
"""

from __future__ import annotations

import functools
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Mapping

import httpx

from fscopy.config import DEFAULT_CONFIG, ConfigManager
from fscopy.errors import UnknownSchemeError
from fscopy.locator import Locator
from fscopy.providers.base import FileSystem
from fscopy.providers.http import SCHEMES as HTTP_SCHEMES, HTTPFileSystem
from fscopy.providers.local import SCHEME as FILE_SCHEME, LocalFileSystem
from fscopy.providers.yandex import SCHEME as YANDEX_SCHEME, YandexDiskFileSystem

logger = logging.getLogger(__name__)

Factory = Callable[[], FileSystem]


class _ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            # Waiting writers go first so registration cannot starve.
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class Registry:
    """Maps locator schemes to provider factories.

    Every :meth:`resolve` builds a fresh provider; the most recent
    registration for a scheme wins.  Safe for concurrent use.
    """

    def __init__(self, factories: Mapping[str, Factory] | None = None) -> None:
        self._lock = _ReadWriteLock()
        self._factories: dict[str, Factory] = {}
        for scheme, factory in (factories or {}).items():
            self.register(scheme, factory)

    def register(self, scheme: str, factory: Factory) -> None:
        """Insert or replace the factory for *scheme*."""
        scheme = scheme.lower()
        with self._lock.write():
            replaced = scheme in self._factories
            self._factories[scheme] = factory
        logger.debug("%s provider for scheme %r", "Replaced" if replaced else "Registered", scheme)

    def unregister(self, scheme: str) -> bool:
        """Remove *scheme*; return True if it was registered."""
        with self._lock.write():
            return self._factories.pop(scheme.lower(), None) is not None

    def schemes(self) -> list[str]:
        with self._lock.read():
            return sorted(self._factories)

    def resolve(self, locator: Locator | str) -> FileSystem:
        """Return a new provider for *locator*'s scheme.

        Raises:
            UnknownSchemeError: Nothing is registered for the scheme.
        """
        scheme = locator.scheme if isinstance(locator, Locator) else Locator.parse(locator).scheme
        with self._lock.read():
            factory = self._factories.get(scheme)
        if factory is None:
            raise UnknownSchemeError(scheme)
        return factory()

    def __contains__(self, scheme: str) -> bool:
        with self._lock.read():
            return scheme.lower() in self._factories


def default_registry(
    config: ConfigManager | None = None,
    client: httpx.Client | None = None,
) -> Registry:
    """Build a registry with every built-in provider.

    Args:
        config: Settings source; built-in defaults are used when omitted.
        client: HTTP client shared by the remote providers.  The caller
            owns it and closes it when done; when omitted one is created
            for the lifetime of the registry.
    """
    settings = config.get_all() if config is not None else dict(DEFAULT_CONFIG)
    timeout = float(settings.get("http_timeout", DEFAULT_CONFIG["http_timeout"]))
    if client is None:
        client = httpx.Client(timeout=timeout, follow_redirects=True)

    registry = Registry()
    registry.register(FILE_SCHEME, LocalFileSystem)
    registry.register(
        YANDEX_SCHEME,
        functools.partial(
            YandexDiskFileSystem,
            base_url=settings.get("yandex_base_url", DEFAULT_CONFIG["yandex_base_url"]),
            client=client,
        ),
    )
    for scheme in HTTP_SCHEMES:
        registry.register(scheme, functools.partial(HTTPFileSystem, client=client))
    return registry
