"""Guarded single-slot registry of the open import run.

The slot is held in memory for the owning importer and, when a lock path is
given, as a lock file under the run store so that importers in other threads
or processes sharing the same data root see the run as well. The lock file
records the owner's process id; a lock left behind by a dead process is
treated as stale and taken over.
"""

from __future__ import annotations

import os
from pathlib import Path
import threading
from typing import Callable

from core.errors import ConceptFeedRunActiveError
from core.logging_config import get_logger
from core.types import ImportRun

_LOGGER = get_logger(__name__)


class ActiveRunSlot:
    """Hold at most one open import run.

    ``begin`` rejects a second run while one is open; ``end`` always clears
    the slot regardless of how the run finished.
    """

    def __init__(self, lock_path: Path | None = None) -> None:
        self._lock = threading.Lock()
        self._lock_path = lock_path
        self._holds_lock_file = False
        self._run: ImportRun | None = None

    @property
    def current(self) -> ImportRun | None:
        return self._run

    def begin(self, create_run: Callable[[], ImportRun]) -> ImportRun:
        """Create and install a run unless one is already open.

        Raises:
            ConceptFeedRunActiveError: If another run occupies the slot.
        """
        with self._lock:
            if self._run is not None:
                raise ConceptFeedRunActiveError(
                    f"Import {self._run.run_id} is still running. "
                    "Wait for it to finish before starting another import."
                )
            if not self._acquire_lock_file():
                raise ConceptFeedRunActiveError(
                    f"Another import holds the run lock {self._lock_path}. "
                    "Wait for it to finish before starting another import."
                )
            try:
                self._run = create_run()
            except BaseException:
                self._release_lock_file()
                raise
            return self._run

    def is_open(self, on_idle: Callable[[], None] | None = None) -> bool:
        """Return whether any importer holds the slot.

        When it is free, ``on_idle`` runs while the slot is held, so no run can
        start in the meantime.
        """
        with self._lock:
            if self._run is not None:
                return True
            if not self._acquire_lock_file():
                return True
            try:
                if on_idle is not None:
                    on_idle()
            finally:
                self._release_lock_file()
            return False

    def replace(self, run: ImportRun) -> None:
        """Refresh the slot with an updated record of the open run."""
        with self._lock:
            if self._run is not None and self._run.run_id == run.run_id:
                self._run = run

    def end(self) -> None:
        """Clear the slot."""
        with self._lock:
            self._run = None
            self._release_lock_file()

    def _acquire_lock_file(self) -> bool:
        lock_path = self._lock_path
        if lock_path is None:
            return True
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            if _create_lock_file(lock_path):
                self._holds_lock_file = True
                return True
            owner_pid = _read_owner_pid(lock_path)
            if owner_pid is not None and _is_process_alive(owner_pid):
                return False
            _LOGGER.warning("run_lock_stale", lock_path=str(lock_path), owner_pid=owner_pid)
            lock_path.unlink(missing_ok=True)
        return False

    def _release_lock_file(self) -> None:
        if self._lock_path is None or not self._holds_lock_file:
            return
        self._holds_lock_file = False
        self._lock_path.unlink(missing_ok=True)


def _create_lock_file(lock_path: Path) -> bool:
    """Atomically create ``lock_path`` holding this process id."""
    staging_path = lock_path.with_name(f"{lock_path.name}.{os.getpid()}.{threading.get_ident()}")
    staging_path.write_text(str(os.getpid()), encoding="utf-8")
    try:
        os.link(staging_path, lock_path)
    except FileExistsError:
        return False
    finally:
        staging_path.unlink(missing_ok=True)
    return True


def _read_owner_pid(lock_path: Path) -> int | None:
    try:
        return int(lock_path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def _is_process_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True
