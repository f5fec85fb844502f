"""Payload parsing for persisted import runs and items.

This module converts run and item JSON payloads into typed models and
validates lifecycle states read back from disk.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import cast, get_args

from core.errors import ConceptFeedStoreError
from core.types import ImportItem, ImportRun, ItemKind, ItemState, RunStatus, SourceKind

RUN_STATUSES: tuple[RunStatus, ...] = get_args(RunStatus)
ITEM_STATES: tuple[ItemState, ...] = get_args(ItemState)
ITEM_KINDS: tuple[ItemKind, ...] = get_args(ItemKind)
SOURCE_KINDS: tuple[SourceKind, ...] = get_args(SourceKind)


def run_to_payload(run: ImportRun) -> dict[str, object]:
    """Serialize a run record into a JSON-safe payload."""
    return asdict(run)


def item_to_payload(item: ImportItem) -> dict[str, object]:
    """Serialize an item record into a JSON-safe payload."""
    return asdict(item)


def run_from_payload(payload: dict[str, object], payload_path: Path) -> ImportRun:
    """Deserialize a run payload from JSON."""
    status = _parse_choice(payload.get("status"), RUN_STATUSES, "status", payload_path)
    source_kind = _parse_choice(
        payload.get("source_kind"), SOURCE_KINDS, "source_kind", payload_path
    )
    try:
        return ImportRun(
            run_id=str(payload["run_id"]),
            local_date_started=str(payload["local_date_started"]),
            status=cast(RunStatus, status),
            source_kind=cast(SourceKind, source_kind),
            started_by=str(payload["started_by"]),
            local_date_stopped=optional_string(payload.get("local_date_stopped")),
            feed_date_started=optional_string(payload.get("feed_date_started")),
            release_version=optional_string(payload.get("release_version")),
            subscription_url=optional_string(payload.get("subscription_url")),
            error_message=optional_string(payload.get("error_message")),
        )
    except KeyError as error:
        raise ConceptFeedStoreError(
            f"Invalid run state at {payload_path}: missing required field {error.args[0]!r}."
        ) from error


def item_from_payload(payload: dict[str, object], payload_path: Path) -> ImportItem:
    """Deserialize one item row from JSONL."""
    kind = _parse_choice(payload.get("kind"), ITEM_KINDS, "kind", payload_path)
    state = _parse_choice(payload.get("state"), ITEM_STATES, "state", payload_path)
    return ImportItem(
        run_id=str(payload.get("run_id", "")),
        kind=cast(ItemKind, kind),
        state=cast(ItemState, state),
        uuid=optional_string(payload.get("uuid")),
        url=optional_string(payload.get("url")),
        version_url=optional_string(payload.get("version_url")),
        error_message=optional_string(payload.get("error_message")),
        created_at=optional_string(payload.get("created_at")),
    )


def _parse_choice(
    raw_value: object,
    allowed: tuple[str, ...],
    field_name: str,
    payload_path: Path,
) -> str:
    if isinstance(raw_value, str) and raw_value in allowed:
        return raw_value
    raise ConceptFeedStoreError(
        f"Invalid {field_name} at {payload_path}: expected one of {', '.join(allowed)}."
    )


def optional_string(raw_value: object) -> str | None:
    """Convert optional payload field to string when present."""
    if raw_value is None:
        return None
    if isinstance(raw_value, str):
        return raw_value
    return str(raw_value)
