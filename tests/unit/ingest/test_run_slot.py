"""Unit tests for the single active run slot."""

from __future__ import annotations

from dataclasses import replace
import os
from pathlib import Path

import pytest

from core.errors import ConceptFeedRunActiveError
from core.types import ImportRun
from ingest.run_slot import ActiveRunSlot


def _run(run_id: str) -> ImportRun:
    return ImportRun(
        run_id=run_id,
        local_date_started="2024-03-01T10:00:00",
        status="running",
        source_kind="subscription",
        started_by="daemon",
    )


def test_begin_rejects_second_run_until_end() -> None:
    """Only one run should occupy the slot at a time."""
    slot = ActiveRunSlot()
    slot.begin(lambda: _run("first"))

    with pytest.raises(ConceptFeedRunActiveError):
        slot.begin(lambda: _run("second"))

    slot.end()
    assert slot.begin(lambda: _run("third")).run_id == "third"


def test_begin_does_not_create_run_when_occupied() -> None:
    """The run factory should not be called while the slot is occupied."""
    created: list[str] = []
    slot = ActiveRunSlot()
    slot.begin(lambda: _run("first"))

    def _factory() -> ImportRun:
        created.append("second")
        return _run("second")

    with pytest.raises(ConceptFeedRunActiveError):
        slot.begin(_factory)

    assert created == []


def test_replace_ignores_other_runs() -> None:
    """Replacing should only refresh the run currently in the slot."""
    slot = ActiveRunSlot()
    current = slot.begin(lambda: _run("first"))
    slot.replace(replace(_run("other"), release_version="v9"))
    slot.replace(replace(current, release_version="v2"))

    assert slot.current is not None and slot.current.release_version == "v2"


def test_lock_file_admits_one_slot_per_data_root(tmp_path: Path) -> None:
    """Slots sharing a lock file should see each other's run."""
    lock_path = tmp_path / "runs" / "active.lock"
    first = ActiveRunSlot(lock_path)
    second = ActiveRunSlot(lock_path)
    first.begin(lambda: _run("first"))

    with pytest.raises(ConceptFeedRunActiveError):
        second.begin(lambda: _run("second"))
    held = second.is_open() and lock_path.read_text(encoding="utf-8") == str(os.getpid())
    first.end()

    assert held and not lock_path.exists() and not second.is_open()


def test_idle_callback_runs_only_when_no_slot_is_held(tmp_path: Path) -> None:
    """The idle callback should not run while another slot holds the lock."""
    lock_path = tmp_path / "active.lock"
    holder = ActiveRunSlot(lock_path)
    observer = ActiveRunSlot(lock_path)
    calls: list[str] = []
    holder.begin(lambda: _run("first"))
    observer.is_open(on_idle=lambda: calls.append("held"))
    holder.end()
    observer.is_open(on_idle=lambda: calls.append("idle"))

    assert calls == ["idle"] and not lock_path.exists()


def test_stale_lock_of_dead_process_is_taken_over(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A lock left by a process that no longer exists should not block new runs."""
    lock_path = tmp_path / "active.lock"
    lock_path.write_text("999999", encoding="utf-8")
    monkeypatch.setattr("ingest.run_slot._is_process_alive", lambda pid: False)
    slot = ActiveRunSlot(lock_path)

    run = slot.begin(lambda: _run("first"))
    owner = lock_path.read_text(encoding="utf-8")
    slot.end()

    assert run.run_id == "first" and owner == str(os.getpid()) and not lock_path.exists()
