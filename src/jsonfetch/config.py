"""Configuration settings for jsonfetch."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import logging
    from collections.abc import Callable

# Read size used when streaming a response body into a buffer.
BUFFER_CAPACITY_HINT = 1024


@dataclass
class ClientConfig:
    """Configuration for a JsonClient.

    Attributes:
        default_headers: Default headers to include with every request.
        timeout: Default request timeout in seconds. None means no timeout.
        logger: Logger instance for structured logging. If None, uses module logger.
        buffer_factory: Creates the response buffer when a request specifies
            no storage of its own.

    """

    default_headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    logger: logging.Logger | None = None
    buffer_factory: Callable[[], bytearray] = bytearray
