"""Request, storage and decode option types for jsonfetch.

This module provides the dataclasses describing where a request goes, where
its response body is stored and how that body is decoded.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any

from aiohttp import hdrs
from yarl import URL

# HTTP method type - reuses aiohttp's method string constants
HttpMethod = str


@dataclass(frozen=True)
class Location:
    """A request target given as its parts rather than as a URL string.

    Attributes:
        host: Host name or IP address.
        port: Port number, or None for the scheme default.
        scheme: URL scheme, usually ``http`` or ``https``.
        path: Absolute request path.
        query: Optional query parameters.

    """

    host: str
    port: int | None = None
    scheme: str = "http"
    path: str = "/"
    query: dict[str, str] | None = None

    def to_url(self) -> URL:
        """Build the equivalent URL."""
        return URL.build(
            scheme=self.scheme,
            host=self.host,
            port=self.port,
            path=self.path,
            query=self.query,
        )


Target = str | URL | Location


def resolve_target(target: Target) -> URL:
    """Resolve any supported target form into a URL.

    Raises:
        TypeError: If ``target`` is not a string, URL or Location.

    """
    if isinstance(target, Location):
        return target.to_url()
    if isinstance(target, URL):
        return target
    if isinstance(target, str):
        return URL(target)
    msg = f"Unsupported request target: {target!r}"
    raise TypeError(msg)


@dataclass
class DynamicStorage:
    """Caller-owned growable response buffer.

    The response body is appended to ``buffer``; existing contents are left
    in place and only the appended bytes are decoded.
    """

    buffer: bytearray


@dataclass
class StaticStorage:
    """Caller-owned fixed-capacity response buffer.

    At most ``len(buffer)`` bytes are written starting at offset 0, the rest
    of the body is discarded.

    Attributes:
        buffer: Writable buffer whose length is its capacity.
        written: Number of bytes written by the most recent request.
        truncated: Whether the most recent response was longer than the buffer.

    """

    buffer: bytearray | memoryview
    written: int = 0
    truncated: bool = False

    @property
    def capacity(self) -> int:
        """Number of bytes the buffer can hold."""
        return len(self.buffer)


# None means "unspecified": the fetcher allocates and owns a buffer itself.
ResponseStorage = DynamicStorage | StaticStorage | None


@dataclass
class FetchOptions:
    """Per-request options.

    Everything but ``location`` and ``storage`` is handed to aiohttp as is.

    Attributes:
        location: Where to send the request.
        method: HTTP method to use (defaults to GET).
        headers: Additional headers to merge with the client's default headers.
        params: Query parameters to append to the URL.
        data: Request body data.
        json: JSON body data (will be serialized).
        timeout: Request timeout in seconds, overriding the client default.
        allow_redirects: Whether to follow redirects.
        storage: Where the response body is written.

    """

    location: Target
    method: HttpMethod = hdrs.METH_GET
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] | None = None
    data: bytes | str | None = None
    json: Any | None = None
    timeout: float | None = None
    allow_redirects: bool = True
    storage: ResponseStorage = None


class Allocate(enum.Enum):
    """How the decoder may use the response bytes.

    Attributes:
        ALWAYS: Decode from a private immutable copy of the body.
        IF_NEEDED: Decode straight from the storage buffer when possible.

    """

    ALWAYS = "always"
    IF_NEEDED = "if_needed"


@dataclass(frozen=True)
class ParseOptions:
    """Decode settings.

    Attributes:
        ignore_unknown_fields: Tolerate source fields the target shape lacks.
        allocate: Whether the decoder must work on a copy of the body.

    """

    ignore_unknown_fields: bool = False
    allocate: Allocate = Allocate.IF_NEEDED

    def with_allocate(self, allocate: Allocate) -> ParseOptions:
        """Return a copy of these options with a different allocation strategy."""
        if allocate is self.allocate:
            return self
        return replace(self, allocate=allocate)
