"""Streaming structural navigation over a JSON token stream.

This module walks ``ijson`` parse events with one-token lookahead to find
named array fields inside a top-level object. Values of other fields are
skipped by depth tracking and never interpreted, so memory stays bounded
by a single array element regardless of document size.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, BinaryIO, Iterator, NamedTuple

import ijson

from core.errors import ConceptFeedIngestError

_OPENERS = {"start_map": "end_map", "start_array": "end_array"}
_CLOSERS = frozenset(_OPENERS.values())


class JsonToken(NamedTuple):
    """One parse event and its scalar value, if any."""

    event: str
    value: Any


class NavigationResult(Enum):
    """Outcome of locating a named array field."""

    ARRAY_START = "array_start"
    STOP_FIELD = "stop_field"
    END_OF_OBJECT = "end_of_object"


class JsonTokenCursor:
    """Pull-based cursor over ``ijson.basic_parse`` events."""

    def __init__(self, stream: BinaryIO) -> None:
        self._events = ijson.basic_parse(stream, use_float=True)
        self._peeked: JsonToken | None = None
        self._exhausted = False

    def peek(self) -> JsonToken | None:
        """Return the next token without consuming it, ``None`` at end of stream."""
        if self._peeked is None and not self._exhausted:
            self._peeked = self._pull()
        return self._peeked

    def next(self) -> JsonToken | None:
        """Consume and return the next token, ``None`` at end of stream."""
        token = self.peek()
        self._peeked = None
        return token

    def _pull(self) -> JsonToken | None:
        try:
            event, value = next(self._events)
        except StopIteration:
            self._exhausted = True
            return None
        except ijson.JSONError as error:
            self._exhausted = True
            raise ConceptFeedIngestError(f"Malformed JSON document: {error}") from error
        return JsonToken(event=event, value=value)


def open_object(cursor: JsonTokenCursor) -> None:
    """Consume the opening token of a document that must be an object.

    Raises:
        ConceptFeedIngestError: If the document does not start with an object.
    """
    token = cursor.next()
    if token is None or token.event != "start_map":
        found = "end of stream" if token is None else token.event
        raise ConceptFeedIngestError(f"JSON must start from an object, found {found}.")


def advance_to_list_of(
    cursor: JsonTokenCursor,
    field: str,
    stop_at_field: str | None = None,
) -> NavigationResult:
    """Advance the cursor to the array value of ``field``.

    Args:
        cursor: Cursor positioned inside an object, or on its opening token.
        field: Name of the array field to locate.
        stop_at_field: Optional sibling name that ends the search early.

    Returns:
        ``ARRAY_START`` with the array opened, ``STOP_FIELD`` with the stop
        field's key left unconsumed, or ``END_OF_OBJECT`` with the closing
        token left unconsumed.

    Raises:
        ConceptFeedIngestError: If ``field`` is not an array or the document
            is truncated.
    """
    while True:
        token = cursor.peek()
        if token is None:
            raise ConceptFeedIngestError(
                f"Unexpected end of stream while looking for '{field}': missing end of object."
            )
        if token.event == "end_map":
            return NavigationResult.END_OF_OBJECT
        if token.event == "start_map":
            cursor.next()
            continue
        if token.event != "map_key":
            raise ConceptFeedIngestError(
                f"Unexpected {token.event} while looking for '{field}': expected a field name."
            )
        if token.value == field:
            cursor.next()
            opener = cursor.next()
            if opener is None or opener.event != "start_array":
                raise ConceptFeedIngestError(f"{field} must be a list.")
            return NavigationResult.ARRAY_START
        if stop_at_field is not None and token.value == stop_at_field:
            return NavigationResult.STOP_FIELD
        cursor.next()
        skip_value(cursor, str(token.value))


def skip_value(cursor: JsonTokenCursor, field: str) -> None:
    """Consume one value, including any nested objects and arrays.

    Raises:
        ConceptFeedIngestError: If the value is truncated or mismatched.
    """
    token = cursor.next()
    if token is None:
        raise ConceptFeedIngestError(f"Missing value of '{field}': unexpected end of stream.")
    if token.event not in _OPENERS:
        return
    expected_closers = [_OPENERS[token.event]]
    while expected_closers:
        token = cursor.next()
        if token is None:
            kind = "object" if expected_closers[-1] == "end_map" else "array"
            raise ConceptFeedIngestError(f"Missing end of {kind}: {field}")
        if token.event in _OPENERS:
            expected_closers.append(_OPENERS[token.event])
        elif token.event in _CLOSERS:
            if token.event != expected_closers.pop():
                raise ConceptFeedIngestError(f"Mismatched {token.event} inside '{field}'.")


def read_value(cursor: JsonTokenCursor) -> Any:
    """Build the Python value starting at the cursor.

    Raises:
        ConceptFeedIngestError: If the value is truncated.
    """
    token = cursor.next()
    if token is None:
        raise ConceptFeedIngestError("Expected a JSON value, found end of stream.")
    builder = ijson.ObjectBuilder()
    builder.event(token.event, token.value)
    depth = 1 if token.event in _OPENERS else 0
    while depth:
        token = cursor.next()
        if token is None:
            raise ConceptFeedIngestError("Missing end of array element: unexpected end of stream.")
        builder.event(token.event, token.value)
        if token.event in _OPENERS:
            depth += 1
        elif token.event in _CLOSERS:
            depth -= 1
    return builder.value


def iter_array_values(cursor: JsonTokenCursor) -> Iterator[Any]:
    """Yield elements of an opened array one at a time, consuming its end.

    Raises:
        ConceptFeedIngestError: If the array is truncated.
    """
    while True:
        token = cursor.peek()
        if token is None:
            raise ConceptFeedIngestError("Missing end of array: unexpected end of stream.")
        if token.event == "end_array":
            cursor.next()
            return
        yield read_value(cursor)
