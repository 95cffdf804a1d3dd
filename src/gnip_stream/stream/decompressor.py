"""
Decompressor
============

Streaming gzip decoding of the raw response body.

Design Rules:
    - Output preserves input order; chunk boundaries carry no meaning
    - Concatenated gzip members decode back to back
    - Corruption raises DecompressionError; there is no mid-stream recovery
"""

import logging
import zlib
from typing import List, Optional

from gnip_stream.errors import DecompressionError


logger = logging.getLogger(__name__)


# zlib window bits selecting the gzip container
GZIP_WBITS = 16 + zlib.MAX_WBITS

GZIP_ENCODINGS = frozenset({"gzip", "x-gzip"})
IDENTITY_ENCODINGS = frozenset({"", "identity"})


class Decompressor:
    """
    Incremental decoder for one response body.

    Attributes:
        encoding: "gzip" or "identity"
        bytes_in: Compressed bytes consumed
        bytes_out: Decompressed bytes produced

    Example:
        decompressor = Decompressor.for_encoding(response.headers.get("content-encoding"))
        async for chunk in response.aiter_raw():
            parser.feed(decompressor.decompress(chunk))
        parser.feed(decompressor.flush())
    """

    def __init__(self, encoding: str = "gzip") -> None:
        if encoding not in ("gzip", "identity"):
            raise DecompressionError(f"Unsupported content encoding: {encoding!r}")
        self.encoding = encoding
        self.bytes_in: int = 0
        self.bytes_out: int = 0
        self._codec: Optional["zlib._Decompress"] = (
            zlib.decompressobj(GZIP_WBITS) if encoding == "gzip" else None
        )

    @classmethod
    def for_encoding(cls, content_encoding: Optional[str]) -> "Decompressor":
        """
        Pick a decoder for a Content-Encoding header value.

        Raises:
            DecompressionError: For encodings other than gzip or identity
        """
        name = (content_encoding or "").strip().lower()
        if name in GZIP_ENCODINGS:
            return cls("gzip")
        if name in IDENTITY_ENCODINGS:
            logger.warning("Response is not gzip-encoded, passing bytes through")
            return cls("identity")
        raise DecompressionError(f"Unsupported content encoding: {content_encoding!r}")

    def decompress(self, data: bytes) -> bytes:
        """
        Decode the next chunk of the body.

        Returns:
            Whatever decompressed bytes are available (possibly empty)

        Raises:
            DecompressionError: If the compressed stream is corrupt
        """
        self.bytes_in += len(data)
        if self._codec is None:
            self.bytes_out += len(data)
            return bytes(data)

        output: List[bytes] = []
        while data:
            try:
                output.append(self._codec.decompress(data))
            except zlib.error as e:
                raise DecompressionError(f"Corrupt gzip stream: {e}") from e
            if not self._codec.eof:
                break
            # Start of another gzip member, if anything follows
            data = self._codec.unused_data
            self._codec = zlib.decompressobj(GZIP_WBITS)

        result = b"".join(output)
        self.bytes_out += len(result)
        return result

    def flush(self) -> bytes:
        """Drain anything the codec still holds at end of stream."""
        if self._codec is None:
            return b""
        try:
            result = self._codec.flush()
        except zlib.error as e:
            raise DecompressionError(f"Corrupt gzip stream: {e}") from e
        self.bytes_out += len(result)
        return result
