"""
Stream Client
=============

Async HTTPS client for a gzip-compressed, newline-delimited JSON stream.

This client:
    - Builds the authenticated stream request (Basic auth, gzip, keep-alive)
    - Runs one connection at a time as an asyncio task
    - Pipes raw bytes through Decompressor -> FramingParser -> classify()
    - Publishes events through a per-instance subscription table
    - Tears the connection down on any terminal condition

Connection states:

    IDLE -> CONNECTING -> STREAMING -> ENDED

    start() from any state tears the previous connection down and enters
    CONNECTING again.

Terminal conditions (each yields exactly one "end"):
    - non-2xx status    -> "error" (ProtocolError), then "end"
    - transport failure -> "error" (TransportError), then "end"
    - idle timeout      -> "error" (IdleTimeoutError), then "end"
    - server closes     -> "end"
    - end()             -> "end"

Example:
    from gnip_stream.config import StreamConfig
    from gnip_stream.stream import StreamClient

    client = StreamClient(StreamConfig(url=URL, user="me", password="secret"))
    client.on("tweet", lambda tweet: print(tweet["body"]))
    client.on("error", lambda err: print(f"stream error: {err}"))

    async with client:
        await asyncio.sleep(60)

Design Rules:
    - Configuration errors raise from start() before any I/O
    - After end() returns, no further event of that connection is dispatched
    - No reconnect: retry policy belongs to the caller
    - The non-2xx response body is not read; only status and reason are reported
"""

import asyncio
import base64
import logging
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import httpx

from gnip_stream.config import MIN_TIMEOUT_MS, StreamConfig
from gnip_stream.errors import (
    ConfigurationError,
    ContentError,
    GnipError,
    IdleTimeoutError,
    ProtocolError,
    TransportError,
    UpstreamError,
)
from gnip_stream.models.events import EventKind
from gnip_stream.stream.classifier import classify
from gnip_stream.stream.decompressor import Decompressor
from gnip_stream.stream.emitter import EventEmitter, Handler
from gnip_stream.stream.parser import FramingParser


logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle states of a stream connection."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    ENDED = "ENDED"


class StreamMetrics:
    """Metrics for StreamClient observability."""

    __slots__ = (
        "connections",
        "bytes_received",
        "bytes_decompressed",
        "objects_received",
        "tweets",
        "deletes",
        "infos",
        "upstream_errors",
        "parse_errors",
        "last_status_code",
    )

    def __init__(self) -> None:
        self.connections: int = 0
        self.bytes_received: int = 0
        self.bytes_decompressed: int = 0
        self.objects_received: int = 0
        self.tweets: int = 0
        self.deletes: int = 0
        self.infos: int = 0
        self.upstream_errors: int = 0
        self.parse_errors: int = 0
        self.last_status_code: Optional[int] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class Connection:
    """
    State of one start() call.

    Attributes:
        connection_id: Sequence number within the owning client
        url: Request URL including query overrides
        headers: Request headers
        state: Current ConnectionState
        closed: Set once teardown has run
        status_code: HTTP status of the response, once received
        task: asyncio task driving the connection
        ended: Set when teardown completes
    """

    def __init__(
        self,
        connection_id: int,
        url: httpx.URL,
        headers: Dict[str, str],
    ) -> None:
        self.connection_id = connection_id
        self.url = url
        self.headers = headers
        self.state = ConnectionState.CONNECTING
        self.closed = False
        self.status_code: Optional[int] = None
        self.parser: Optional[FramingParser] = None
        self.task: Optional[asyncio.Task] = None
        self.ended = asyncio.Event()

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id}, "
            f"state={self.state.value}, "
            f"status={self.status_code})"
        )


def validate_config(config: StreamConfig) -> None:
    """
    Check a StreamConfig against the connection rules.

    Raises:
        ConfigurationError: If the endpoint is missing or malformed, or an
            explicit timeout is not above 30 seconds
    """
    if not config.url:
        raise ConfigurationError("Invalid end point specified!")
    if config.timeout_ms is not None and config.timeout_ms <= MIN_TIMEOUT_MS:
        raise ConfigurationError(
            f"Timeout must be beyond {MIN_TIMEOUT_MS // 1000}s, got {config.timeout_ms}ms"
        )
    try:
        httpx.URL(config.url)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"Invalid end point specified: {e}") from e


def build_request(config: StreamConfig) -> Tuple[httpx.URL, Dict[str, str]]:
    """
    Build the stream request URL and headers.

    The endpoint's own query string is kept; backfillMinutes and partition
    are merged into it and win on conflict.

    Returns:
        (url, headers)
    """
    url = httpx.URL(config.url)
    if config.backfill_minutes:
        url = url.copy_set_param("backfillMinutes", str(config.backfill_minutes))
    if config.partition:
        url = url.copy_set_param("partition", str(config.partition))

    credentials = f"{config.user}:{config.password}".encode("utf-8")
    headers = {
        "Accept-Encoding": "gzip",
        "Connection": "keep-alive",
        "Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}",
    }
    if config.user_agent:
        headers["User-Agent"] = config.user_agent

    return url, headers


class StreamClient:
    """
    Streaming API client.

    Provides subscribe/unsubscribe on named events plus the stream
    lifecycle operations. Each instance owns its own subscription table
    and at most one live connection.

    Attributes:
        config: Stream configuration (frozen)
        metrics: Operational metrics, cumulative across connections
        state: ConnectionState of the current or last connection
    """

    def __init__(
        self,
        config: StreamConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize stream client.

        Args:
            config: Stream configuration
            http_client: Shared client to issue requests with. When omitted,
                each connection opens and closes a private client.
        """
        self.config = config
        self.metrics = StreamMetrics()

        self._events = EventEmitter()
        self._http_client = http_client
        self._connection: Optional[Connection] = None
        self._latest: Optional[Connection] = None
        self._sequence: int = 0

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def on(self, event: Union[str, EventKind], handler: Handler) -> Handler:
        """Subscribe to an event. See gnip_stream.models.events for names."""
        return self._events.on(event, handler)

    def once(self, event: Union[str, EventKind], handler: Handler) -> Handler:
        """Subscribe to the next occurrence of an event."""
        return self._events.once(event, handler)

    def off(self, event: Union[str, EventKind], handler: Optional[Handler] = None) -> None:
        """Unsubscribe a handler, or all handlers of an event."""
        self._events.off(event, handler)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        connection = self._connection or self._latest
        if connection is None:
            return ConnectionState.IDLE
        return connection.state

    @property
    def connected(self) -> bool:
        """Whether a connection is currently streaming."""
        return self.state is ConnectionState.STREAMING

    @property
    def connection(self) -> Optional[Connection]:
        """The live connection, if any."""
        return self._connection

    def start(self) -> Connection:
        """
        Open a new stream connection.

        Must be called from a running event loop. Any live connection is
        torn down first. If an "end" handler starts a connection during that
        teardown, that connection is returned instead of opening another.

        Returns:
            The new Connection

        Raises:
            ConfigurationError: If the configuration is invalid (no I/O is
                attempted and the current connection is left alone)
        """
        validate_config(self.config)
        url, headers = build_request(self.config)

        if self._connection is not None:
            self.end()
            if self._connection is not None:
                # An "end" handler already opened the replacement
                return self._connection

        self._sequence += 1
        connection = Connection(self._sequence, url, headers)
        connection.parser = FramingParser(
            on_value=lambda value: self._on_value(connection, value),
            on_error=lambda error: self._on_parse_error(connection, error),
            max_value_bytes=self.config.max_value_bytes,
        )
        self._connection = connection
        self._latest = connection
        self.metrics.connections += 1

        logger.info(f"Starting stream connection #{connection.connection_id}: {url}")
        logger.debug(f"Request headers: {sorted(headers)}")

        connection.task = asyncio.get_running_loop().create_task(
            self._run(connection),
            name=f"gnip-stream-{connection.connection_id}",
        )
        return connection

    def end(self) -> None:
        """
        Abort the live connection, if any, and publish "end".

        Safe to call repeatedly; without a live connection it does nothing.
        """
        connection = self._connection
        if connection is None:
            return

        logger.info(f"Ending stream connection #{connection.connection_id}")
        if connection.task is not None and not connection.task.done():
            connection.task.cancel()
        self._teardown(connection)

    async def wait_closed(self) -> None:
        """Wait until the most recent connection has ended and released its socket."""
        connection = self._latest
        if connection is None:
            return
        await connection.ended.wait()
        task = connection.task
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task})

    async def run(self) -> None:
        """Start a connection and wait for it to end."""
        self.start()
        await self.wait_closed()

    async def __aenter__(self) -> "StreamClient":
        """Async context manager entry."""
        self.start()
        return self

    async def __aexit__(self, *args) -> None:
        """Async context manager exit."""
        self.end()
        await self.wait_closed()

    # -------------------------------------------------------------------------
    # Connection task
    # -------------------------------------------------------------------------

    async def _run(self, connection: Connection) -> None:
        """Drive one connection until a terminal condition."""
        http_client = self._http_client
        owns_client = http_client is None
        if owns_client:
            http_client = httpx.AsyncClient()

        # The read timeout is the idle timeout: it fires when no bytes arrive
        timeout = httpx.Timeout(self.config.idle_timeout_seconds)
        error: Optional[BaseException] = None

        try:
            async with http_client.stream(
                "GET",
                connection.url,
                headers=connection.headers,
                timeout=timeout,
            ) as response:
                await self._consume(connection, response)
        except asyncio.CancelledError:
            raise
        except httpx.ReadTimeout:
            error = IdleTimeoutError()
        except httpx.HTTPError as e:
            error = TransportError(f"{type(e).__name__}: {e}")
            error.__cause__ = e
        except GnipError as e:
            error = e
        except Exception as e:
            logger.exception(f"Unexpected failure in stream connection #{connection.connection_id}")
            error = e
        finally:
            self._teardown(connection, error)
            if owns_client:
                await http_client.aclose()

    async def _consume(self, connection: Connection, response: httpx.Response) -> None:
        """Pump the response body through the pipeline."""
        connection.status_code = response.status_code
        self.metrics.last_status_code = response.status_code

        if not response.is_success:
            raise ProtocolError(response.status_code, response.reason_phrase)

        decompressor = Decompressor.for_encoding(response.headers.get("content-encoding"))

        connection.state = ConnectionState.STREAMING
        logger.info(
            f"Stream connection #{connection.connection_id} ready "
            f"(status {response.status_code})"
        )
        self._emit(connection, EventKind.READY)

        async for chunk in response.aiter_raw():
            if connection.closed:
                return
            self.metrics.bytes_received += len(chunk)
            self._receive(connection, decompressor.decompress(chunk))

        if not connection.closed:
            self._receive(connection, decompressor.flush())
            logger.info(f"Stream connection #{connection.connection_id} closed by server")

    def _receive(self, connection: Connection, data: bytes) -> None:
        if not data or connection.closed:
            return
        self.metrics.bytes_decompressed += len(data)
        connection.parser.feed(data)
        self._emit(connection, EventKind.DATA, data)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _emit(self, connection: Connection, kind: EventKind, *args: Any) -> None:
        """Publish an event unless its connection has been torn down."""
        if connection.closed:
            return
        self._events.emit(kind, *args)

    def _on_value(self, connection: Connection, value: Any) -> None:
        if connection.closed:
            return
        self.metrics.objects_received += 1
        self._emit(connection, EventKind.OBJECT, value)

        event = classify(value)
        if event.kind is EventKind.ERROR:
            self.metrics.upstream_errors += 1
            logger.warning(f"Stream reported an error: {event.message}")
            self._emit(connection, EventKind.ERROR, UpstreamError(event.message, value))
        elif event.kind is EventKind.DELETE:
            self.metrics.deletes += 1
            self._emit(connection, EventKind.DELETE, value)
        elif event.kind is EventKind.TWEET:
            self.metrics.tweets += 1
            self._emit(connection, EventKind.TWEET, value)
        elif event.kind is EventKind.INFO:
            self.metrics.infos += 1
            self._emit(connection, EventKind.INFO, value)

    def _on_parse_error(self, connection: Connection, error: ContentError) -> None:
        self.metrics.parse_errors += 1
        logger.warning(f"Skipping malformed value ({len(error.raw)} bytes): {error}")
        self._emit(connection, EventKind.ERROR, error)

    def _teardown(self, connection: Connection, error: Optional[BaseException] = None) -> None:
        """Close a connection once: publish its error (if any), then "end"."""
        if connection.closed:
            return
        connection.closed = True
        connection.state = ConnectionState.ENDED
        if self._connection is connection:
            self._connection = None
        if connection.parser is not None:
            connection.parser.reset()

        if error is not None:
            logger.error(f"Stream connection #{connection.connection_id} failed: {error}")
            self._events.emit(EventKind.ERROR, error)

        logger.info(f"Stream connection #{connection.connection_id} ended")
        self._events.emit(EventKind.END)
        connection.ended.set()
