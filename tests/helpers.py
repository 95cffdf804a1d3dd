"""
Test Helpers
============

In-memory HTTP bodies and event recorders shared by the test modules.
"""

import asyncio
import gzip
import json
from typing import Callable, List, Optional

import httpx


STREAM_URL = "https://stream.example.com/accounts/acme/publishers/twitter/prod.json"


class ChunkStream(httpx.AsyncByteStream):
    """Response body that yields fixed chunks, then optionally fails or hangs."""

    def __init__(
        self,
        chunks: List[bytes],
        error: Optional[Exception] = None,
        hold: Optional[asyncio.Event] = None,
    ) -> None:
        self._chunks = chunks
        self._error = error
        self._hold = hold
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
            await asyncio.sleep(0)
        if self._error is not None:
            raise self._error
        if self._hold is not None:
            await self._hold.wait()

    async def aclose(self) -> None:
        self.closed = True


def gzip_chunks(payload: bytes, size: int = 7) -> List[bytes]:
    """Gzip `payload` and split the result into `size`-byte chunks."""
    compressed = gzip.compress(payload)
    return [compressed[i:i + size] for i in range(0, len(compressed), size)]


def ndjson(*values) -> bytes:
    """Encode values the way the stream does: CRLF-delimited JSON."""
    return b"".join(json.dumps(value).encode("utf-8") + b"\r\n" for value in values)


def gzip_response(chunks: List[bytes], **kwargs) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"Content-Encoding": "gzip"},
        stream=ChunkStream(chunks, **kwargs),
    )


def mock_client(handler: Callable) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


ALL_EVENTS = ("ready", "data", "object", "tweet", "delete", "info", "error", "end")


def record(client, names=ALL_EVENTS) -> list:
    """Subscribe to `names` and collect (name, payload) tuples."""
    events = []
    for name in names:
        client.on(name, lambda *args, name=name: events.append((name, args[0] if args else None)))
    return events


def names(events, skip=("data",)) -> list:
    return [name for name, _ in events if name not in skip]


def payloads(events, name) -> list:
    return [payload for event, payload in events if event == name]
