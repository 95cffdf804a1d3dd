"""
Event Emitter
=============

Per-instance publish/subscribe table keyed by event name.

Design Rules:
    - Handlers run synchronously, in registration order
    - A raising handler is logged and does not stop the others
    - An "error" with no subscriber is logged instead of being lost
"""

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Optional, Union

from gnip_stream.models.events import EventKind, event_name


logger = logging.getLogger(__name__)


Handler = Callable[..., Any]


class EventEmitter:
    """
    Callback registration table.

    Example:
        emitter = EventEmitter()
        emitter.on("tweet", handle_tweet)
        emitter.emit("tweet", {"id": 1, "body": "hello"})
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def on(self, event: Union[str, EventKind], handler: Handler) -> Handler:
        """Subscribe `handler` to `event`. Returns the handler."""
        self._handlers[event_name(event)].append(handler)
        return handler

    def once(self, event: Union[str, EventKind], handler: Handler) -> Handler:
        """Subscribe `handler` for a single delivery. Returns the wrapper."""
        name = event_name(event)

        def wrapper(*args: Any) -> Any:
            self.off(name, wrapper)
            return handler(*args)

        self._handlers[name].append(wrapper)
        return wrapper

    def off(self, event: Union[str, EventKind], handler: Optional[Handler] = None) -> None:
        """Unsubscribe one handler, or every handler when none is given."""
        name = event_name(event)
        if handler is None:
            self._handlers.pop(name, None)
            return
        handlers = self._handlers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: Union[str, EventKind]) -> int:
        return len(self._handlers.get(event_name(event), ()))

    def emit(self, event: Union[str, EventKind], *args: Any) -> bool:
        """
        Deliver `args` to every subscriber of `event`.

        Returns:
            True if at least one handler was called
        """
        name = event_name(event)
        handlers = list(self._handlers.get(name, ()))

        if not handlers:
            if name == EventKind.ERROR.value:
                logger.error(f"Unhandled stream error: {args[0] if args else None}")
            return False

        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception(f"Handler for {name!r} event raised")
        return True
