"""
Event Buffer
============

Async-safe bounded queue of classified stream events.

StreamClient dispatches synchronously and keeps nothing. EventBuffer is the
opt-in bridge for consumers that prefer to pull events from a coroutine.

Design Rules:
    - Fixed maximum size (drops oldest on overflow)
    - Every drop is counted and logged
    - Does NOT modify events
"""

import asyncio
import logging
from typing import Iterable, Optional, Union

from gnip_stream.errors import GnipError
from gnip_stream.models.events import EventKind, StreamEvent, event_name


logger = logging.getLogger(__name__)


DEFAULT_KINDS = (
    EventKind.TWEET,
    EventKind.DELETE,
    EventKind.INFO,
    EventKind.ERROR,
)


class EventBuffer:
    """
    Async-safe bounded queue for StreamEvents.

    Uses a drop-oldest policy when the buffer is full to prevent memory
    growth.

    Attributes:
        maxsize: Maximum number of events to buffer
        dropped_count: Number of events dropped due to overflow

    Example:
        buffer = EventBuffer(maxsize=1000)
        buffer.attach(client)

        event = await buffer.get()
    """

    def __init__(self, maxsize: int = 1000) -> None:
        """
        Initialize event buffer.

        Args:
            maxsize: Maximum events to buffer. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of events in buffer."""
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def total_put(self) -> int:
        return self._total_put

    def attach(
        self,
        client,
        kinds: Iterable[Union[str, EventKind]] = DEFAULT_KINDS,
    ) -> None:
        """
        Subscribe this buffer to a StreamClient.

        Args:
            client: StreamClient (or anything with an on() method)
            kinds: Event kinds to buffer
        """
        for kind in kinds:
            kind = EventKind(event_name(kind))
            client.on(kind, self._collector(kind))

    def _collector(self, kind: EventKind):
        def collect(payload=None) -> None:
            if kind is EventKind.ERROR:
                event = _error_event(payload)
            else:
                event = StreamEvent(kind=kind, value=payload)
            self.put_nowait(event)

        return collect

    def put_nowait(self, event: StreamEvent) -> bool:
        """Queue an event. Returns False when the oldest one was evicted for it."""
        self._total_put += 1
        evicted = self._queue.full()
        if evicted:
            self._queue.get_nowait()
            self._dropped_count += 1
            logger.warning(
                f"Event buffer at capacity ({self._maxsize}), evicted oldest "
                f"({self._dropped_count} evicted so far)"
            )
        self._queue.put_nowait(event)
        return not evicted

    async def get(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """Wait for the next event; None once `timeout` seconds pass without one."""
        if timeout is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def get_nowait(self) -> Optional[StreamEvent]:
        if self._queue.empty():
            return None
        return self._queue.get_nowait()

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with size, maxsize, dropped_count, total_put
        """
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }


def _error_event(error: Optional[BaseException]) -> StreamEvent:
    value = getattr(error, "value", None) if isinstance(error, GnipError) else None
    return StreamEvent(kind=EventKind.ERROR, value=value, message=str(error))
