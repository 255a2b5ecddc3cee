"""Fetch a URL and decode its JSON body in one call."""

from __future__ import annotations

import http
import typing as t
from dataclasses import replace

import aiohttp
import pydantic

from .decoding import Parsed, decode
from .errors import HttpFetchError, HttpStatusError, JsonParseError, OutOfMemoryError
from .types import (
    Allocate,
    DynamicStorage,
    FetchOptions,
    ParseOptions,
    StaticStorage,
    resolve_target,
)

if t.TYPE_CHECKING:
    import logging

    from .client import JsonClient
    from .types import ResponseStorage

T = t.TypeVar("T")


class JsonResult(t.Generic[T]):
    """Response status together with the decoded body, if there is one.

    ``parsed`` is None when the server answered with anything but 200 OK.
    Like :class:`Parsed`, the result must be released exactly once.
    """

    __slots__ = ("_released", "parsed", "status")

    def __init__(self, status: int, parsed: Parsed[T] | None = None) -> None:
        self.status = status
        self.parsed = parsed
        self._released = False

    @property
    def value(self) -> T | None:
        """The decoded value, or None for a non-OK response."""
        if self.parsed is None:
            return None
        return self.parsed.value

    @property
    def released(self) -> bool:
        """Whether :meth:`release` has been called."""
        return self._released

    def release(self) -> None:
        """Release the decoded value, if any.

        Raises:
            RuntimeError: If the result has already been released.

        """
        if self._released:
            msg = "JsonResult has already been released"
            raise RuntimeError(msg)
        self._released = True
        if self.parsed is not None:
            self.parsed.release()

    def __enter__(self) -> JsonResult[T]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def _response_bytes(storage: DynamicStorage | StaticStorage, start: int) -> bytes | bytearray:
    """Return the bytes the last request wrote into ``storage``."""
    if isinstance(storage, StaticStorage):
        return memoryview(storage.buffer)[: storage.written].tobytes()
    if start == 0:
        return storage.buffer
    return storage.buffer[start:]


def _resolve_url(options: FetchOptions, logger: logging.Logger) -> str:
    try:
        return str(resolve_target(options.location))
    except ValueError as e:
        logger.debug("Invalid request target %r: %s", options.location, e)
        msg = "Invalid request target"
        raise HttpFetchError(msg, url=str(options.location)) from None


async def _execute(
    client: JsonClient,
    options: FetchOptions,
    url: str,
    logger: logging.Logger,
) -> int:
    try:
        return await client.execute(options)
    except MemoryError:
        logger.debug("Out of memory while reading response: %s %s", options.method, url)
        msg = "Out of memory while reading response body"
        raise OutOfMemoryError(msg, url=url) from None
    except (aiohttp.ClientError, TimeoutError, OSError) as e:
        logger.debug(
            "Request error: %s %s -> %s: %s",
            options.method,
            url,
            type(e).__name__,
            e,
        )
        msg = "HTTP request failed"
        raise HttpFetchError(msg, url=url) from None


def _decode(
    shape: type[T],
    storage: DynamicStorage | StaticStorage,
    start: int,
    parse_options: ParseOptions,
    url: str,
    logger: logging.Logger,
) -> Parsed[T]:
    msg = f"Failed to parse JSON response as {getattr(shape, '__name__', shape)}"
    if isinstance(storage, StaticStorage) and storage.truncated:
        logger.debug(
            "Response from %s does not fit into %d byte buffer",
            url,
            storage.capacity,
        )
        raise JsonParseError(msg, url=url)

    try:
        return decode(shape, _response_bytes(storage, start), parse_options)
    except MemoryError:
        logger.debug("Out of memory while decoding response from %s", url)
        msg = "Out of memory while decoding response body"
        raise OutOfMemoryError(msg, url=url) from None
    except pydantic.ValidationError as e:
        logger.debug("Failed to decode response from %s: %s", url, e)
        raise JsonParseError(msg, url=url) from None


async def _fetch(
    client: JsonClient,
    shape: type[T],
    options: FetchOptions,
    parse_options: ParseOptions | None,
    *,
    raise_for_status: bool,
) -> JsonResult[T]:
    logger = client.logger
    parse_options = parse_options or ParseOptions()
    url = _resolve_url(options, logger)

    storage: ResponseStorage = options.storage
    owned: bytearray | None = None
    if storage is None:
        try:
            owned = client.config.buffer_factory()
        except MemoryError:
            msg = "Out of memory while allocating response buffer"
            raise OutOfMemoryError(msg, url=url) from None
        storage = DynamicStorage(owned)
        options = replace(options, storage=storage)
        # The buffer is gone once we return, so the decoder gets its own copy.
        parse_options = parse_options.with_allocate(Allocate.ALWAYS)

    start = len(storage.buffer) if isinstance(storage, DynamicStorage) else 0

    try:
        status = await _execute(client, options, url, logger)

        if status != http.HTTPStatus.OK:
            logger.warning("Non-OK response: %s %s -> %d", options.method, url, status)
            if raise_for_status:
                msg = f"Unexpected HTTP status {status}"
                raise HttpStatusError(msg, url=url)
            return JsonResult(status)

        return JsonResult(status, _decode(shape, storage, start, parse_options, url, logger))
    finally:
        if owned is not None:
            owned.clear()


async def fetch_json(
    client: JsonClient,
    shape: type[T],
    options: FetchOptions,
    parse_options: ParseOptions | None = None,
) -> Parsed[T]:
    """Request ``options.location`` and decode the body into ``shape``.

    When ``options.storage`` is None a buffer is allocated for the duration of
    the call and the decoder is made to work on a copy of it. A caller-owned
    storage is only written to, never cleared.

    Args:
        client: An open JsonClient. May be shared by concurrent tasks.
        shape: The type the response body must decode into.
        options: Request options.
        parse_options: Decode settings. Defaults to ``ParseOptions()``.

    Returns:
        Parsed: Owning handle for the decoded value. The caller must release
        it exactly once.

    Raises:
        HttpFetchError: If the request could not be completed.
        HttpStatusError: If the response status is not 200 OK.
        JsonParseError: If the body does not decode into ``shape``,
            or does not fit into a caller-supplied static buffer.
        OutOfMemoryError: If an allocation failed.

    """
    result = await _fetch(client, shape, options, parse_options, raise_for_status=True)
    assert result.parsed is not None
    return result.parsed


async def fetch_json_with_status(
    client: JsonClient,
    shape: type[T],
    options: FetchOptions,
    parse_options: ParseOptions | None = None,
) -> JsonResult[T]:
    """Like :func:`fetch_json`, but report a non-OK status instead of raising.

    Returns:
        JsonResult: The status and, for 200 OK, the decoded body. The caller
        must release it exactly once.

    Raises:
        HttpFetchError: If the request could not be completed.
        JsonParseError: If a 200 OK body does not decode into ``shape``.
        OutOfMemoryError: If an allocation failed.

    """
    return await _fetch(client, shape, options, parse_options, raise_for_status=False)
