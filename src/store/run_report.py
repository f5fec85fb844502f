"""Run history summaries for presentation layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from core.errors import ConceptFeedStoreError
from core.types import ImportItem, ImportRun
from store.run_store import RunStore


@dataclass(frozen=True)
class RunReport:
    """Status, timing and item audit trail of one import run."""

    run: ImportRun
    items: tuple[ImportItem, ...]
    error_count: int
    duration: str


def build_run_report(run_store: RunStore, run_id: str | None = None) -> RunReport:
    """Summarize a run, defaulting to the most recent one.

    Raises:
        ConceptFeedStoreError: If no run exists.
    """
    run = run_store.load_run(run_id) if run_id else run_store.get_last_run()
    if run is None:
        raise ConceptFeedStoreError("No import runs recorded yet. Run an import first.")
    items = run_store.list_items(run.run_id)
    error_count = sum(1 for item in items if item.state == "error")
    return RunReport(
        run=run,
        items=items,
        error_count=error_count,
        duration=format_duration(elapsed_seconds(run)),
    )


def elapsed_seconds(run: ImportRun, now: datetime | None = None) -> int:
    """Return seconds between run start and stop, or until ``now`` while open."""
    started = datetime.fromisoformat(run.local_date_started)
    if run.local_date_stopped:
        ended = datetime.fromisoformat(run.local_date_stopped)
    else:
        ended = now or datetime.now()
    return max(0, int((ended - started).total_seconds()))


def format_duration(seconds: int) -> str:
    """Render a duration the way run history displays it."""
    if seconds < 60:
        return f"{seconds} seconds"
    return f"{seconds // 60} minutes {seconds % 60} seconds"
