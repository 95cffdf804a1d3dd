"""
Stream Event Model
==================

Typed events produced by the classifier and published by StreamClient.

Event names are plain strings on the wire of the subscription table:

    data     - raw decompressed bytes
    object   - every parsed JSON value, unclassified
    tweet    - content item (alias: "contentItem")
    delete   - deletion notice
    info     - informational message
    error    - any error (see gnip_stream.errors)
    ready    - connection accepted (2xx)
    end      - connection torn down, any reason

Design Rules:
    - StreamEvent is immutable and carries the parsed value unchanged
    - The core does not retain events after dispatch
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union


class EventKind(str, Enum):
    """Names of the events a StreamClient publishes."""

    DATA = "data"
    OBJECT = "object"
    TWEET = "tweet"
    DELETE = "delete"
    INFO = "info"
    ERROR = "error"
    READY = "ready"
    END = "end"


# Alternate subscription names
EVENT_ALIASES = {
    "contentItem": EventKind.TWEET.value,
}


def event_name(event: Union[str, EventKind]) -> str:
    """Normalize an event name or EventKind to its canonical string."""
    if isinstance(event, EventKind):
        return event.value
    return EVENT_ALIASES.get(event, event)


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """
    A classified value from the stream.

    Attributes:
        kind: Semantic kind assigned by the classifier
        value: The parsed JSON value, unchanged
        message: Error message for EventKind.ERROR, None otherwise
    """

    kind: EventKind
    value: Any
    message: Optional[str] = None

    def to_dict(self) -> dict:
        """Export as a JSON-friendly dict."""
        payload = {"kind": self.kind.value, "value": self.value}
        if self.message is not None:
            payload["message"] = self.message
        return payload

    def to_json(self) -> str:
        """Serialize; Decimal values are written as strings to keep their digits."""
        return json.dumps(self.to_dict(), default=_json_default)

    def __repr__(self) -> str:
        return f"StreamEvent(kind={self.kind.value})"


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (bytes, bytearray)):
        return obj.decode("utf-8", errors="replace")
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
