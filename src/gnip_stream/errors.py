"""
Error Taxonomy
==============

Exceptions raised or published by the stream client and the API clients.

Propagation:
    - ConfigurationError is raised synchronously by StreamClient.start()
      before any network I/O.
    - ProtocolError and TransportError (and subclasses) are published on the
      "error" channel and always followed by teardown.
    - ContentError covers a single malformed value; the stream continues.
    - UpstreamError is an "error" object delivered by the stream itself;
      it is an event, not a fault.
"""

from typing import Any, Optional


class GnipError(Exception):
    """Base class for all gnip_stream errors."""
    pass


class ConfigurationError(GnipError):
    """Raised when the client configuration is invalid."""
    pass


class ProtocolError(GnipError):
    """Raised when the server answers with a non-2xx status."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        self.status_code = status_code
        self.reason = reason
        message = f"Response error. HTTP status code: {status_code}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class TransportError(GnipError):
    """Socket, TLS or stream-level failure."""
    pass


class DecompressionError(TransportError):
    """Raised when the compressed stream is corrupt or uses an unknown encoding."""
    pass


class IdleTimeoutError(TransportError):
    """Raised when no bytes arrive within the idle timeout."""

    def __init__(self, message: str = "Connection Timeout") -> None:
        super().__init__(message)


class ContentError(GnipError):
    """
    A single malformed JSON value.

    Attributes:
        raw: The offending bytes (may be truncated by the caller)
    """

    def __init__(self, message: str, raw: bytes = b"") -> None:
        self.raw = raw
        super().__init__(message)


class UpstreamError(GnipError):
    """An error object reported inside the stream."""

    def __init__(self, message: str, value: Optional[Any] = None) -> None:
        self.value = value
        super().__init__(f"Stream response error: {message}")
