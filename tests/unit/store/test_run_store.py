"""Unit tests for import run persistence."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
import threading

import pytest

from core.errors import ConceptFeedStoreError
from core.types import ExecutionContext, ImportItem
from store.run_store import RunStore


def test_start_run_registers_running_record(tmp_path: Path) -> None:
    """New runs should be running, attributed and listed in the index."""
    store = RunStore(tmp_path)

    run = store.start_run(ExecutionContext(actor="admin"), source_kind="file")

    assert (
        run.status == "running"
        and run.started_by == "admin"
        and run.source_kind == "file"
        and store.list_runs() == (run.run_id,)
        and store.get_last_run() == run
    )


def test_stop_run_decides_success_once(tmp_path: Path) -> None:
    """Stopping a running run should mark it succeeded and be idempotent."""
    store = RunStore(tmp_path)
    run = store.start_run(ExecutionContext())

    stopped = store.stop_run(run.run_id)
    stopped_again = store.stop_run(run.run_id, "late message")

    assert stopped.status == "succeeded" and stopped.stopped and stopped_again == stopped


def test_failed_run_keeps_failure_after_stop(tmp_path: Path) -> None:
    """A failed run should stay failed with its message after stopping."""
    store = RunStore(tmp_path)
    run = store.start_run(ExecutionContext())
    store.fail_run(run.run_id, "2 item(s) failed to import")

    stopped = store.stop_run(run.run_id)

    assert stopped.status == "failed" and stopped.error_message == "2 item(s) failed to import"


def test_items_are_appended_and_counted_by_state(tmp_path: Path) -> None:
    """Items should be kept in append order and counted per state."""
    store = RunStore(tmp_path)
    run = store.start_run(ExecutionContext())
    for state in ("added", "error", "up_to_date", "error"):
        store.append_item(
            ImportItem(run_id=run.run_id, kind="CONCEPT", state=state, uuid=None, url=None, version_url=None)  # type: ignore[arg-type]
        )

    items = store.list_items(run.run_id)

    assert (
        [item.state for item in items] == ["added", "error", "up_to_date", "error"]
        and all(item.created_at for item in items)
        and store.count_items(run.run_id, ("error",)) == 2
    )


def test_last_successful_subscription_run_skips_file_and_failed_runs(tmp_path: Path) -> None:
    """Only succeeded subscription runs should seed the next feed fetch."""
    store = RunStore(tmp_path)
    subscription_run = store.start_run(ExecutionContext())
    store.update_feed_date_started(subscription_run.run_id, datetime(2024, 3, 1, 10, 0, 0, 500))
    store.stop_run(subscription_run.run_id)
    file_run = store.start_run(ExecutionContext(), source_kind="file")
    store.stop_run(file_run.run_id)
    failed_run = store.start_run(ExecutionContext())
    store.fail_run(failed_run.run_id, "1 item(s) failed to import")
    store.stop_run(failed_run.run_id)

    last = store.get_last_successful_subscription_run()

    assert last is not None and last.run_id == subscription_run.run_id and last.feed_date_started == "2024-03-01T10:00:00"


def test_list_items_rejects_unknown_run(tmp_path: Path) -> None:
    """Reading items of an unknown run should fail with a store error."""
    with pytest.raises(ConceptFeedStoreError):
        RunStore(tmp_path).list_items("import-missing")


def test_reads_from_other_stores_never_see_partial_run_records(tmp_path: Path) -> None:
    """A reader on another store should always load a whole run record while it is rewritten."""
    writer = RunStore(tmp_path)
    reader = RunStore(tmp_path)
    run = writer.start_run(ExecutionContext())
    errors: list[Exception] = []
    done = threading.Event()

    def _read_until_done() -> None:
        while not done.is_set():
            try:
                reader.load_run(run.run_id)
                reader.get_last_run()
            except ConceptFeedStoreError as error:
                errors.append(error)

    reading = threading.Thread(target=_read_until_done)
    reading.start()
    for index in range(200):
        writer.update_release_version(run.run_id, f"v{index}")
    done.set()
    reading.join(5)

    assert (
        errors == []
        and reader.load_run(run.run_id).release_version == "v199"
        and not list(tmp_path.rglob("*.tmp"))
    )
