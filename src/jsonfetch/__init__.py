"""Fetch JSON over HTTP and decode it into typed values in one call."""

from .client import JsonClient
from .config import ClientConfig
from .decoding import Parsed, decode
from .errors import (
    FetchError,
    HttpFetchError,
    HttpStatusError,
    JsonParseError,
    OutOfMemoryError,
)
from .fetch import JsonResult, fetch_json, fetch_json_with_status
from .types import (
    Allocate,
    DynamicStorage,
    FetchOptions,
    HttpMethod,
    Location,
    ParseOptions,
    StaticStorage,
)

__all__ = [
    "Allocate",
    "ClientConfig",
    "DynamicStorage",
    "FetchError",
    "FetchOptions",
    "HttpFetchError",
    "HttpMethod",
    "HttpStatusError",
    "JsonClient",
    "JsonParseError",
    "JsonResult",
    "Location",
    "OutOfMemoryError",
    "ParseOptions",
    "Parsed",
    "StaticStorage",
    "decode",
    "fetch_json",
    "fetch_json_with_status",
]
__version__ = "0.1.0"
