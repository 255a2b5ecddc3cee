"""HTTP client handle used by the fetch functions."""

from __future__ import annotations

import logging
import typing as t

import aiohttp

from .config import BUFFER_CAPACITY_HINT, ClientConfig
from .types import DynamicStorage, FetchOptions, StaticStorage, resolve_target

if t.TYPE_CHECKING:
    from types import TracebackType

    from .types import ResponseStorage

# Module-level logger for structured logging
_logger = logging.getLogger("jsonfetch")


class JsonClient:
    """Reusable asynchronous HTTP client.

    Wraps one ``aiohttp.ClientSession`` whose connection pool is shared by
    every request, so a single instance can serve many concurrent tasks.
    It must be used as an async context manager.

    Attributes:
        config: Configuration object with default headers, timeout and logger.

    """

    def __init__(self, config: ClientConfig | None = None) -> None:
        """Initialize the client with configuration settings.

        Args:
            config: Configuration object for the client. If None, uses the
                   default configuration.

        """
        self.config = config or ClientConfig()
        self._session: aiohttp.ClientSession | None = None
        self.logger = self.config.logger or _logger

    def _headers_for(self, options: FetchOptions) -> dict[str, str] | None:
        """Return the client's default headers overlaid with the request's own.

        None when neither side sets any header, so aiohttp applies its defaults.
        """
        headers = {**self.config.default_headers, **options.headers}
        return headers or None

    def _timeout_for(self, options: FetchOptions) -> aiohttp.ClientTimeout | None:
        """Return the total timeout for a request.

        A timeout set on the request replaces ``ClientConfig.timeout``; with
        neither set the request may take as long as it needs.
        """
        seconds = self.config.timeout if options.timeout is None else options.timeout
        return None if seconds is None else aiohttp.ClientTimeout(total=seconds)

    def _request_kwargs(self, options: FetchOptions) -> dict[str, t.Any]:
        """Translate request options into ``ClientSession.request`` arguments.

        Body and query settings are only passed when set.
        """
        kwargs: dict[str, t.Any] = {
            "headers": self._headers_for(options),
            "allow_redirects": options.allow_redirects,
        }
        timeout = self._timeout_for(options)
        if timeout is not None:
            kwargs["timeout"] = timeout
        passthrough = {"data": options.data, "json": options.json, "params": options.params}
        kwargs.update((name, value) for name, value in passthrough.items() if value is not None)
        return kwargs

    async def _read_into(
        self,
        response: aiohttp.ClientResponse,
        storage: ResponseStorage,
    ) -> None:
        """Stream the response body into the given storage.

        A static buffer is filled up to its capacity and the remainder of the
        body is read and dropped so the connection can be reused.
        """
        chunks = response.content.iter_chunked(BUFFER_CAPACITY_HINT)

        if storage is None:
            async for _ in chunks:
                pass
            return

        if isinstance(storage, DynamicStorage):
            async for chunk in chunks:
                storage.buffer.extend(chunk)
            return

        view = memoryview(storage.buffer)
        written = 0
        dropped = 0
        async for chunk in chunks:
            room = storage.capacity - written
            taken = min(room, len(chunk))
            if taken:
                view[written : written + taken] = chunk[:taken]
                written += taken
            dropped += len(chunk) - taken
        storage.written = written
        storage.truncated = dropped > 0
        if dropped:
            self.logger.debug(
                "Response body truncated: %d bytes did not fit into %d byte buffer",
                dropped,
                storage.capacity,
            )

    async def execute(self, options: FetchOptions) -> int:
        """Send a request and write its body into ``options.storage``.

        Args:
            options: Request options, including where to store the body.

        Returns:
            int: The HTTP status code of the response.

        Raises:
            RuntimeError: If called outside of an async context manager.
            aiohttp.ClientError: If the request fails at the transport level.
            TimeoutError: If the request times out.

        """
        if self._session is None:
            msg = "JsonClient must be used as async context manager"
            raise RuntimeError(msg)

        url = resolve_target(options.location)
        kwargs = self._request_kwargs(options)

        self.logger.debug("Starting request: %s %s", options.method, url)
        async with self._session.request(options.method, url, **kwargs) as response:
            await self._read_into(response, options.storage)
            self.logger.debug(
                "Request completed: %s %s -> %d",
                options.method,
                url,
                response.status,
            )
            return response.status

    async def __aenter__(self) -> t.Self:
        """Enter the async context manager and open the HTTP session."""
        self._session = aiohttp.ClientSession()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the async context manager and close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
