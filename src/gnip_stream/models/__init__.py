"""
Data Models
===========

Models:
    - EventKind: Names of published events
    - StreamEvent: Classified value from the stream
"""

from gnip_stream.models.events import EVENT_ALIASES, EventKind, StreamEvent, event_name

__all__ = [
    "EVENT_ALIASES",
    "EventKind",
    "StreamEvent",
    "event_name",
]
