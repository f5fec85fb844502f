"""Progress estimation for a running import.

Download progress fills the first 30 percent and parse progress the rest.
When a total is unknown, time-based curves approach the next phase boundary
without reaching it until real byte counts arrive.
"""

from __future__ import annotations

from dataclasses import dataclass

DOWNLOAD_PHASE_END = 30.0
_DOWNLOAD_SIMULATED_END = 10.0


@dataclass(frozen=True)
class ProgressSnapshot:
    """Telemetry sampled from the import controller at one instant."""

    elapsed_seconds: float
    is_downloaded: bool
    bytes_downloaded: int
    total_bytes_to_download: int
    bytes_processed: int
    total_bytes_to_process: int


def is_processed(snapshot: ProgressSnapshot) -> bool:
    """Return whether every known byte of input has been parsed."""
    return (
        snapshot.total_bytes_to_process >= 0
        and snapshot.bytes_processed >= snapshot.total_bytes_to_process
    )


def estimate_progress(snapshot: ProgressSnapshot) -> int:
    """Estimate integer progress in [0, 100] for a running import."""
    elapsed = max(0.0, snapshot.elapsed_seconds)
    if not snapshot.is_downloaded:
        progress = _download_progress(snapshot, elapsed)
    elif not is_processed(snapshot):
        progress = _parse_progress(snapshot, elapsed)
    else:
        progress = 100.0
    return int(min(100.0, max(0.0, progress)))


def _download_progress(snapshot: ProgressSnapshot, elapsed: float) -> float:
    if snapshot.bytes_downloaded == 0:
        return _asymptote(elapsed, 5.0) * _DOWNLOAD_SIMULATED_END
    download_span = DOWNLOAD_PHASE_END - _DOWNLOAD_SIMULATED_END
    if snapshot.total_bytes_to_download < 0:
        return _DOWNLOAD_SIMULATED_END + _asymptote(elapsed, 100.0) * download_span
    fraction = _fraction(snapshot.bytes_downloaded, snapshot.total_bytes_to_download)
    return _DOWNLOAD_SIMULATED_END + fraction * download_span


def _parse_progress(snapshot: ProgressSnapshot, elapsed: float) -> float:
    parse_span = 100.0 - DOWNLOAD_PHASE_END
    if snapshot.total_bytes_to_process < 0:
        return DOWNLOAD_PHASE_END + _asymptote(elapsed, 100.0) * parse_span
    fraction = _fraction(snapshot.bytes_processed, snapshot.total_bytes_to_process)
    return DOWNLOAD_PHASE_END + fraction * parse_span


def _asymptote(elapsed: float, scale: float) -> float:
    return elapsed / (elapsed + scale)


def _fraction(done: int, total: int) -> float:
    if total <= 0:
        return 1.0
    return min(1.0, max(0.0, done / total))
