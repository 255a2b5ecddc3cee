"""Common test fixtures for the jsonfetch project."""

from __future__ import annotations

import typing as t

import pytest
from pytest_httpserver import HTTPServer
from yarl import URL

from jsonfetch import ClientConfig, JsonClient

COSTANZA = {
    "name": "George Costanza",
    "age": 38,
    "aliases": ["Art Vandalay", "Buck Naked"],
}


class CountingBufferFactory:
    """Buffer factory that remembers every buffer it handed out."""

    def __init__(self) -> None:
        self.buffers: list[bytearray] = []

    def __call__(self) -> bytearray:
        buffer = bytearray()
        self.buffers.append(buffer)
        return buffer

    @property
    def outstanding(self) -> int:
        """Number of buffers that still hold data."""
        return sum(1 for buffer in self.buffers if buffer)


@pytest.fixture
def buffer_factory() -> CountingBufferFactory:
    """Test fixture providing a buffer factory that tracks its buffers."""
    return CountingBufferFactory()


@pytest.fixture
async def client(buffer_factory: CountingBufferFactory) -> t.AsyncGenerator[JsonClient]:
    """Test fixture providing an open JsonClient."""
    config = ClientConfig(buffer_factory=buffer_factory)
    async with JsonClient(config) as client:
        yield client


@pytest.fixture
def costanza() -> dict[str, t.Any]:
    """Test fixture providing the record served by person_url."""
    return dict(COSTANZA)


@pytest.fixture
def person_url(httpserver: HTTPServer) -> URL:
    """Test fixture providing a URL that returns the Costanza record."""
    url = URL(f"http://localhost:{httpserver.port}/person")
    httpserver.expect_request(url.path).respond_with_json(COSTANZA)
    return url


@pytest.fixture
def unreachable_url() -> URL:
    """Test fixture providing a URL on a port nothing listens on."""
    server = HTTPServer(host="127.0.0.1", port=0)
    server.start()
    port = server.port
    server.stop()
    return URL(f"http://127.0.0.1:{port}/person")
