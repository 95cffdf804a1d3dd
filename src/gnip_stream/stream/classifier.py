"""
Event Classifier
================

Assigns each parsed value a semantic EventKind.

Precedence (first match wins):
    1. "error"          -> ERROR (message from error.message, else "-")
    2. "delete"         -> DELETE
    3. "body" or "text" -> TWEET
    4. "info"           -> INFO
    5. anything else    -> OBJECT

Fields count only when truthy, so {"delete": null} is a plain object.
Values that are not JSON objects are always OBJECT.
"""

from typing import Any

from gnip_stream.models.events import EventKind, StreamEvent


UNKNOWN_ERROR_MESSAGE = "-"


def classify(value: Any) -> StreamEvent:
    """Classify one parsed JSON value."""
    if not isinstance(value, dict):
        return StreamEvent(kind=EventKind.OBJECT, value=value)

    error = value.get("error")
    if error:
        message = None
        if isinstance(error, dict):
            message = error.get("message")
        return StreamEvent(
            kind=EventKind.ERROR,
            value=value,
            message=str(message) if message else UNKNOWN_ERROR_MESSAGE,
        )

    if value.get("delete"):
        return StreamEvent(kind=EventKind.DELETE, value=value)

    if value.get("body") or value.get("text"):
        return StreamEvent(kind=EventKind.TWEET, value=value)

    if value.get("info"):
        return StreamEvent(kind=EventKind.INFO, value=value)

    return StreamEvent(kind=EventKind.OBJECT, value=value)
