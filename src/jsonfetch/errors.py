"""Error hierarchy for jsonfetch.

Every failure of a fetch is reported as one of four kinds rooted at
:class:`FetchError`. The kinds are deliberately coarse: the underlying
aiohttp or pydantic exception is logged at debug level and is not attached
to the raised error.
"""

from __future__ import annotations


class FetchError(Exception):
    """Base exception for all jsonfetch errors.

    Attributes:
        message: Human-readable error description.
        url: The URL that was being fetched when the error occurred.

    """

    def __init__(self, message: str, *, url: str | None = None) -> None:
        """Initialize FetchError.

        Args:
            message: Human-readable error description.
            url: The URL that was being fetched when the error occurred.

        """
        super().__init__(message)
        self.message = message
        self.url = url

    def __str__(self) -> str:
        """Return a string representation of the error."""
        parts = [self.message]
        if self.url:
            parts.append(f"URL: {self.url}")
        return " | ".join(parts)


class OutOfMemoryError(FetchError):
    """Allocation failed while growing the response buffer or decoding."""


class HttpFetchError(FetchError):
    """The request could not be completed.

    Covers DNS failures, refused connections, timeouts and protocol errors.
    """


class HttpStatusError(FetchError):
    """The server answered with a status other than 200 OK.

    The status itself is not kept; use ``fetch_json_with_status`` to see it.
    """


class JsonParseError(FetchError):
    """The response body could not be decoded into the target shape.

    This includes malformed JSON, missing or unexpected fields, type
    mismatches and bodies truncated by a too-small static buffer.
    """
