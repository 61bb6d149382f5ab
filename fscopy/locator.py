"""Parsed, scheme-qualified file references."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit

from fscopy.errors import LocatorParseError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_PARAM = "access_token"

# Path characters left as-is when rendering a locator back to text.
_PATH_SAFE = "/:@!$&'()*+,;="


@dataclass(frozen=True)
class Locator:
    """A file reference such as ``yandex:///doc.txt?access_token=T``.

    ``host`` is the URI authority; it is empty for ``file:///tmp/x`` style
    locators.  ``path`` is percent-decoded; ``str()`` encodes it again.
    ``query`` is read-only.  When a query key is repeated the
    first value wins.
    """

    scheme: str
    path: str
    query: Mapping[str, str] = field(default_factory=dict)
    host: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "scheme", self.scheme.lower())
        object.__setattr__(self, "query", MappingProxyType(dict(self.query)))

    @classmethod
    def parse(cls, raw: str, default_scheme: str | None = None) -> Locator:
        """Parse *raw* into a Locator.

        Args:
            raw: The locator string.
            default_scheme: Scheme to assume when *raw* has none (e.g. a bare
                filesystem path).  Without it a missing scheme is an error.

        Raises:
            LocatorParseError: *raw* is empty, has no scheme, or has a
                malformed authority.
        """
        if not raw or not raw.strip():
            raise LocatorParseError("empty locator")

        try:
            parts = urlsplit(raw)
            # Accessing the port validates the authority.
            parts.port
        except ValueError as exc:
            raise LocatorParseError(f"invalid locator {raw!r}: {exc}") from exc

        scheme = parts.scheme
        # A single letter "scheme" is a Windows drive, not a URI scheme.
        if len(scheme) == 1:
            scheme = ""
        if not scheme:
            if default_scheme is None:
                raise LocatorParseError(f"locator {raw!r} has no scheme")
            return cls(scheme=default_scheme, path=raw)

        query: dict[str, str] = {}
        for key, value in parse_qsl(parts.query, keep_blank_values=True):
            query.setdefault(key, value)

        return cls(scheme=scheme, path=unquote(parts.path), query=query, host=parts.netloc)

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return the query value for *key*."""
        return self.query.get(key, default)

    def without_query(self, *keys: str) -> Locator:
        """Return a copy with the given query keys removed."""
        query = {k: v for k, v in self.query.items() if k not in keys}
        return Locator(scheme=self.scheme, path=self.path, query=query, host=self.host)

    def redacted(self) -> str:
        """Render the locator with any access token masked, for logs."""
        if ACCESS_TOKEN_PARAM not in self.query:
            return str(self)
        query = dict(self.query)
        query[ACCESS_TOKEN_PARAM] = "***"
        return str(Locator(scheme=self.scheme, path=self.path, query=query, host=self.host))

    def __str__(self) -> str:
        text = f"{self.scheme}://{self.host}{quote(self.path, safe=_PATH_SAFE)}"
        if self.query:
            text = f"{text}?{urlencode(dict(self.query))}"
        return text
