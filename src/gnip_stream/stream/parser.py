"""
Framing Parser
==============

Incremental JSON value framing over arbitrarily chunked bytes.

The server sends an unbounded sequence of JSON objects separated by
whitespace (usually CRLF, with bare CRLF keep-alives in between). Network
reads split those objects at arbitrary byte offsets, so the parser keeps the
incomplete tail of the buffer across feed() calls and emits each value as
soon as its closing delimiter arrives.

Value boundaries are found by delimiter balance:
    - Objects and arrays end when the delimiter stack empties
    - Strings end at an unescaped quote
    - Bare scalars (numbers, true/false/null) end at whitespace or a
      structural character

Numbers:
    Integers decode to Python int, which is exact at any size. Floats whose
    literal carries more than 15 significant digits decode to Decimal so
    64-bit identifiers and long fractions never pass through a double.

Design Rules:
    - Values are delivered synchronously, in arrival order
    - One malformed value is reported through on_error and skipped
    - After a framing error (stray or mismatched delimiter) the rest of
      the line is dropped and scanning resumes after the next newline
    - A value over max_value_bytes is reported once, then followed to its
      end without being buffered
    - Every other byte ends up pending, inside an emitted value, or inside
      a span reported as a ContentError
    - No backpressure: the caller is expected to keep up
"""

import json
import logging
import re
from decimal import Decimal
from typing import Any, Callable, List, Optional, Union

from gnip_stream.errors import ContentError


logger = logging.getLogger(__name__)


# Floats with more digits than this do not survive a round trip through a double
MAX_SAFE_DIGITS = 15

_WHITESPACE = frozenset(b" \t\r\n")
_CLOSER_FOR = {ord("{"): ord("}"), ord("["): ord("]")}
_CLOSERS = frozenset(b"}]")
_STRUCTURAL = frozenset(b'{}[]",:')
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_STRING_SPECIAL = re.compile(rb'["\\]')


ValueHandler = Callable[[Any], None]
ErrorHandler = Callable[[ContentError], None]


def parse_float(literal: str) -> Union[float, Decimal]:
    """Decode a JSON float literal, keeping long literals exact."""
    mantissa = literal.lstrip("-").split("e")[0].split("E")[0]
    digits = mantissa.replace(".", "").lstrip("0").rstrip("0")
    if len(digits) > MAX_SAFE_DIGITS:
        return Decimal(literal)
    return float(literal)


def loads(raw: Union[bytes, str]) -> Any:
    """
    Decode one JSON value without losing numeric precision.

    Args:
        raw: UTF-8 bytes or text of exactly one JSON value

    Raises:
        ValueError: On invalid UTF-8 or invalid JSON
    """
    text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
    return json.loads(text, parse_float=parse_float)


class FramingParser:
    """
    Incremental parser emitting complete JSON values from a byte stream.

    Attributes:
        pending: Number of buffered bytes not yet emitted or rejected
        values_emitted: Total values delivered to on_value
        errors_reported: Total ContentErrors delivered to on_error

    Example:
        parser = FramingParser(on_value=print)
        parser.feed(b'{"id": 1')
        parser.feed(b'}\\r\\n{"id"')   # prints {'id': 1}
    """

    def __init__(
        self,
        on_value: ValueHandler,
        on_error: Optional[ErrorHandler] = None,
        max_value_bytes: Optional[int] = None,
        decoder: Callable[[bytes], Any] = loads,
    ) -> None:
        """
        Initialize parser.

        Args:
            on_value: Called with each decoded value
            on_error: Called with a ContentError for each rejected span.
                When omitted, rejected spans are logged.
            max_value_bytes: Reject a pending value once it grows beyond
                this many bytes (None = unbounded)
            decoder: Turns the bytes of one bounded value into a value
        """
        if max_value_bytes is not None and max_value_bytes < 1:
            raise ValueError("max_value_bytes must be >= 1")

        self._on_value = on_value
        self._on_error = on_error
        self._max_value_bytes = max_value_bytes
        self._decoder = decoder

        self.values_emitted: int = 0
        self.errors_reported: int = 0

        self._generation = 0
        self.reset()

    @property
    def pending(self) -> int:
        """Bytes held for a value that is not complete yet."""
        return len(self._buffer)

    def reset(self) -> None:
        """Discard all partial state."""
        self._generation += 1
        self._buffer = bytearray()
        self._scan_pos = 0
        self._value_start: Optional[int] = None
        self._stack: List[int] = []
        self._in_string = False
        self._escape = False
        self._bare = False
        self._skipping = False
        self._discarding = False

    def feed(self, data: bytes) -> int:
        """
        Append bytes and emit every value they complete.

        Args:
            data: Next chunk of the decompressed stream

        Returns:
            Number of values emitted by this call
        """
        if not data:
            return 0

        generation = self._generation
        buf = self._buffer
        buf.extend(data)
        n = len(buf)
        i = self._scan_pos
        emitted = 0

        try:
            while i < n:
                if self._skipping:
                    newline = buf.find(b"\n", i)
                    if newline < 0:
                        i = n
                        continue
                    i = newline + 1
                    self._skipping = False
                    continue

                if self._value_start is None:
                    c = buf[i]
                    if c in _WHITESPACE:
                        i += 1
                        continue
                    self._value_start = i
                    if c in _CLOSER_FOR:
                        self._stack.append(_CLOSER_FOR[c])
                    elif c == _QUOTE:
                        self._in_string = True
                    elif c in _STRUCTURAL:
                        i += 1
                        self._finish(i, reason=f"Unexpected {chr(c)!r} between values")
                        if self._generation != generation:
                            return emitted
                        continue
                    else:
                        self._bare = True
                    i += 1
                    continue

                if self._in_string:
                    if self._escape:
                        self._escape = False
                        i += 1
                        continue
                    match = _STRING_SPECIAL.search(buf, i)
                    if match is None:
                        i = n
                        continue
                    i = match.start()
                    if buf[i] == _BACKSLASH:
                        self._escape = True
                        i += 1
                        continue
                    self._in_string = False
                    i += 1
                    if not self._stack:
                        emitted += self._finish(i)
                        if self._generation != generation:
                            return emitted
                    continue

                c = buf[i]

                if self._bare:
                    if c in _WHITESPACE or c in _STRUCTURAL:
                        # The terminator belongs to whatever comes next
                        emitted += self._finish(i)
                        if self._generation != generation:
                            return emitted
                        continue
                    i += 1
                    continue

                if c == _QUOTE:
                    self._in_string = True
                elif c in _CLOSER_FOR:
                    self._stack.append(_CLOSER_FOR[c])
                elif c in _CLOSERS:
                    i += 1
                    if c != self._stack[-1]:
                        self._finish(
                            i,
                            reason=f"Mismatched {chr(c)!r}, expected {chr(self._stack[-1])!r}",
                        )
                        if self._generation != generation:
                            return emitted
                        continue
                    self._stack.pop()
                    if not self._stack:
                        emitted += self._finish(i)
                        if self._generation != generation:
                            return emitted
                    continue
                i += 1

            if (
                self._max_value_bytes is not None
                and self._value_start is not None
                and not self._discarding
                and n - self._value_start > self._max_value_bytes
            ):
                # Keep following the value's structure, but stop buffering it
                self._discarding = True
                self._reject(
                    f"Value exceeds {self._max_value_bytes} bytes without completing",
                    bytes(buf[self._value_start:n]),
                )
            return emitted
        finally:
            if self._generation == generation:
                self._compact(i)

    def _finish(self, end: int, reason: Optional[str] = None) -> int:
        """Close the current span at `end`, then emit or reject it."""
        start = self._value_start
        raw = bytes(self._buffer[start:end])
        discarded = self._discarding
        self._value_start = None
        self._stack = []
        self._in_string = False
        self._escape = False
        self._bare = False
        self._discarding = False

        if reason is not None:
            # Resynchronize on the next record delimiter
            self._skipping = True
            self._reject(reason, raw)
            return 0
        if discarded:
            return 0
        if self._max_value_bytes is not None and len(raw) > self._max_value_bytes:
            self._reject(f"Value exceeds {self._max_value_bytes} bytes", raw)
            return 0

        try:
            value = self._decoder(raw)
        except RecursionError:
            self._reject("Value nests too deeply to decode", raw)
            return 0
        except ValueError as e:
            self._reject(f"Malformed JSON value: {e}", raw)
            return 0

        self.values_emitted += 1
        self._on_value(value)
        return 1

    def _reject(self, reason: str, raw: bytes) -> None:
        self.errors_reported += 1
        error = ContentError(reason, raw)
        if self._on_error is None:
            logger.warning(f"Dropping malformed stream value ({len(raw)} bytes): {reason}")
            return
        self._on_error(error)

    def _compact(self, scanned: int) -> None:
        """Drop settled bytes from the front of the buffer."""
        if self._value_start is not None and not self._discarding:
            base = self._value_start
        else:
            base = scanned
        if base:
            del self._buffer[:base]
        self._scan_pos = scanned - base
        if self._value_start is not None:
            self._value_start = 0
