"""JSON I/O helpers for run, item and dictionary documents."""

from __future__ import annotations

import json
import os
from pathlib import Path
import threading

from core.errors import ConceptFeedStoreError


def read_json_file(payload_path: Path, default_value: object | None = None) -> object:
    """Read JSON payload from disk with optional default when missing."""
    if default_value is not None and not payload_path.exists():
        return default_value
    try:
        return json.loads(payload_path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise ConceptFeedStoreError(
            f"Missing required store document at {payload_path}. Run may be incomplete."
        ) from error
    except json.JSONDecodeError as error:
        raise ConceptFeedStoreError(f"Failed to parse JSON at {payload_path}: {error.msg}.") from error
    except OSError as error:
        raise ConceptFeedStoreError(f"Failed to read store file {payload_path}: {error}.") from error


def write_json_file(payload_path: Path, payload: object) -> None:
    """Write one JSON payload to disk, replacing the previous file atomically.

    Readers in other threads or processes see either the old or the new
    document, never a partially written one.
    """
    staging_path = payload_path.with_name(f".{payload_path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        staging_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        os.replace(staging_path, payload_path)
    except OSError as error:
        staging_path.unlink(missing_ok=True)
        raise ConceptFeedStoreError(f"Failed to write store file {payload_path}: {error}.") from error


def append_json_line(payload_path: Path, payload: object) -> None:
    """Append one JSON line to a JSONL audit file."""
    try:
        with payload_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, sort_keys=True) + "\n")
    except OSError as error:
        raise ConceptFeedStoreError(f"Failed to append to {payload_path}: {error}.") from error


def read_json_lines(payload_path: Path) -> list[dict[str, object]]:
    """Read all object rows from a JSONL file, empty when missing."""
    if not payload_path.exists():
        return []
    rows: list[dict[str, object]] = []
    try:
        lines = payload_path.read_text(encoding="utf-8").splitlines()
    except OSError as error:
        raise ConceptFeedStoreError(f"Failed to read store file {payload_path}: {error}.") from error
    for line_number, line in enumerate(lines, 1):
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as error:
            raise ConceptFeedStoreError(
                f"Failed to parse JSONL row at {payload_path}:{line_number}: {error.msg}."
            ) from error
        if not isinstance(payload, dict):
            raise ConceptFeedStoreError(
                f"Invalid JSONL row at {payload_path}:{line_number}: expected object."
            )
        rows.append(payload)
    return rows
