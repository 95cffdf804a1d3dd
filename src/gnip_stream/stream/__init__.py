"""
Stream Module
=============

Stream ingestion pipeline.

This module provides:
    - FramingParser: Incremental JSON value framing over byte chunks
    - Decompressor: Streaming gzip decoding of the response body
    - classify: Maps a parsed value to its EventKind
    - StreamClient: Connection lifecycle, idle timeout and event dispatch
    - EventBuffer: Optional bounded queue for pull-style consumers

Example:
    from gnip_stream.stream import EventBuffer, StreamClient

    client = StreamClient(settings.stream)
    buffer = EventBuffer(maxsize=1000)
    buffer.attach(client)

    client.start()
    while True:
        event = await buffer.get()
        process(event)
"""

from gnip_stream.stream.parser import FramingParser, loads
from gnip_stream.stream.decompressor import Decompressor
from gnip_stream.stream.classifier import classify
from gnip_stream.stream.emitter import EventEmitter
from gnip_stream.stream.client import (
    Connection,
    ConnectionState,
    StreamClient,
    StreamMetrics,
    build_request,
    validate_config,
)
from gnip_stream.stream.buffer import EventBuffer


__all__ = [
    "FramingParser",
    "loads",
    "Decompressor",
    "classify",
    "EventEmitter",
    "Connection",
    "ConnectionState",
    "StreamClient",
    "StreamMetrics",
    "build_request",
    "validate_config",
    "EventBuffer",
]
