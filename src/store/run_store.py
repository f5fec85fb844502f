"""Import run lifecycle and item audit persistence.

This module stores one JSON record per import run plus a JSONL audit trail
of item outcomes under the configured data-root, so the status, duration and
per-item errors of every run remain queryable after the fact.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from pathlib import Path
import threading
from typing import Iterable
from uuid import uuid4

from core.constants import (
    RUN_INDEX_FILE_NAME,
    RUN_ITEMS_FILE_NAME,
    RUN_LOCK_FILE_NAME,
    RUN_STATE_FILE_NAME,
    RUNS_DIR_NAME,
)
from core.errors import ConceptFeedStoreError
from core.types import ExecutionContext, ImportItem, ImportRun, ItemState, SourceKind
from store.json_io import append_json_line, read_json_file, read_json_lines, write_json_file
from store.run_types import item_from_payload, item_to_payload, run_from_payload, run_to_payload


class RunStore:
    """Persistent registry of import runs and their items."""

    def __init__(self, data_root: Path) -> None:
        self._runs_root = data_root.expanduser().resolve() / RUNS_DIR_NAME
        self._runs_root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    @property
    def lock_path(self) -> Path:
        """File marking the run that is open across processes."""
        return self._runs_root / RUN_LOCK_FILE_NAME

    def start_run(
        self,
        context: ExecutionContext,
        source_kind: SourceKind = "subscription",
    ) -> ImportRun:
        """Create a new running import record and register it in the index."""
        run = ImportRun(
            run_id=_build_run_id(),
            local_date_started=local_now_iso(),
            status="running",
            source_kind=source_kind,
            started_by=context.actor,
        )
        with self._lock:
            self._write_run(run)
            self._append_index_row(run.run_id)
        return run

    def update_subscription_url(self, run_id: str, subscription_url: str) -> ImportRun:
        """Record where the run's content is loaded from."""
        return self._update(run_id, subscription_url=subscription_url)

    def update_release_version(self, run_id: str, release_version: str | None) -> ImportRun:
        """Record the feed release version imported by the run."""
        return self._update(run_id, release_version=release_version)

    def update_feed_date_started(self, run_id: str, feed_date: datetime | None) -> ImportRun:
        """Record the feed timestamp the fetched content is current to."""
        feed_date_text = feed_date.replace(microsecond=0).isoformat() if feed_date else None
        return self._update(run_id, feed_date_started=feed_date_text)

    def fail_run(self, run_id: str, message: str) -> ImportRun:
        """Mark a completed run as failed because items failed."""
        return self._update(run_id, status="failed", error_message=message)

    def abort_run(self, run_id: str, message: str) -> ImportRun:
        """Mark a run as aborted by a fatal fault."""
        return self._update(run_id, status="aborted", error_message=message)

    def stop_run(self, run_id: str, message: str | None = None) -> ImportRun:
        """Finalize a run, deciding success when no failure was recorded."""
        with self._lock:
            run = self.load_run(run_id)
            if run.stopped:
                return run
            status = "succeeded" if run.status == "running" else run.status
            error_message = run.error_message
            if message is not None:
                status = "aborted" if run.status == "running" else run.status
                error_message = message
            stopped_run = replace(
                run,
                status=status,
                error_message=error_message,
                local_date_stopped=local_now_iso(),
            )
            self._write_run(stopped_run)
            return stopped_run

    def append_item(self, item: ImportItem) -> None:
        """Append one item outcome to the run's audit trail."""
        if item.created_at is None:
            item = replace(item, created_at=local_now_iso())
        with self._lock:
            append_json_line(self._items_path(item.run_id), item_to_payload(item))

    def list_items(self, run_id: str) -> tuple[ImportItem, ...]:
        """Load every item recorded for a run in append order."""
        items_path = self._items_path(run_id)
        with self._lock:
            rows = read_json_lines(items_path)
        return tuple(item_from_payload(row, items_path) for row in rows)

    def count_items(self, run_id: str, states: Iterable[ItemState]) -> int:
        """Count items of a run that are in one of the given states."""
        wanted_states = set(states)
        return sum(1 for item in self.list_items(run_id) if item.state in wanted_states)

    def load_run(self, run_id: str) -> ImportRun:
        """Load one run record by ID."""
        state_path = self._runs_root / run_id / RUN_STATE_FILE_NAME
        with self._lock:
            payload = read_json_file(state_path)
        if not isinstance(payload, dict):
            raise ConceptFeedStoreError(f"Invalid run state payload at {state_path}: expected object.")
        return run_from_payload(payload, state_path)

    def list_runs(self) -> tuple[str, ...]:
        """List run IDs from the index in start order."""
        index_path = self._runs_root / RUN_INDEX_FILE_NAME
        with self._lock:
            payload = read_json_file(index_path, default_value={"runs": []})
        if not isinstance(payload, dict) or not isinstance(payload.get("runs"), list):
            raise ConceptFeedStoreError(f"Invalid run index format at {index_path}: expected runs list.")
        return tuple(str(item) for item in payload["runs"])

    def get_last_run(self) -> ImportRun | None:
        """Return the most recently started run, if any."""
        with self._lock:
            run_ids = self.list_runs()
            if not run_ids:
                return None
            return self.load_run(run_ids[-1])

    def get_last_successful_subscription_run(self) -> ImportRun | None:
        """Return the newest succeeded run that read the subscription feed."""
        for run_id in reversed(self.list_runs()):
            run = self.load_run(run_id)
            if run.status == "succeeded" and run.source_kind == "subscription":
                return run
        return None

    def _update(self, run_id: str, **changes: object) -> ImportRun:
        with self._lock:
            run = self.load_run(run_id)
            updated_run = replace(run, **changes)  # type: ignore[arg-type]
            self._write_run(updated_run)
            return updated_run

    def _write_run(self, run: ImportRun) -> None:
        run_dir = self._runs_root / run.run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        write_json_file(run_dir / RUN_STATE_FILE_NAME, run_to_payload(run))

    def _append_index_row(self, run_id: str) -> None:
        index_path = self._runs_root / RUN_INDEX_FILE_NAME
        payload = read_json_file(index_path, default_value={"runs": []})
        if not isinstance(payload, dict) or not isinstance(payload.get("runs"), list):
            raise ConceptFeedStoreError(f"Invalid run index format at {index_path}: expected runs list.")
        run_ids = payload["runs"]
        if run_id not in run_ids:
            run_ids.append(run_id)
            write_json_file(index_path, payload)

    def _items_path(self, run_id: str) -> Path:
        run_dir = self._runs_root / run_id
        if not run_dir.is_dir():
            raise ConceptFeedStoreError(f"Unknown import run {run_id!r} under {self._runs_root}.")
        return run_dir / RUN_ITEMS_FILE_NAME


def _build_run_id() -> str:
    timestamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
    return f"import-{timestamp}-{uuid4().hex[:8]}"


def local_now_iso() -> str:
    """Return the local wall-clock time as an ISO string without offset."""
    return datetime.now().replace(microsecond=0).isoformat()
