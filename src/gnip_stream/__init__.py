"""
gnip_stream
===========

Streaming client for gzip-compressed, newline-delimited JSON activity streams.

This package opens a persistent HTTPS connection, decompresses and frames
the byte stream into JSON values, classifies each value and publishes it as
an event.

Components:
    - stream: Framing parser, decompressor, classifier and StreamClient
    - api: Search, rules and usage clients with a shared rate limiter
    - models: Event kinds and the StreamEvent type
    - config: Settings from YAML and environment variables
    - main: FastAPI service running one stream

Example:
    from gnip_stream.config import get_settings
    from gnip_stream.stream import StreamClient

    client = StreamClient(get_settings().stream)
    client.on("tweet", handle_tweet)
    await client.run()
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
