"""Runtime configuration model for ConceptFeed.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DATA_ROOT,
    DEFAULT_DRAIN_TIMEOUT_SECONDS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_QUEUE_CAPACITY,
    DEFAULT_WORKER_COUNT,
    INTAKE_DIR_PARTS,
    PROCESSED_DIR_NAME,
)
from core.errors import ConceptFeedConfigError


@dataclass(frozen=True)
class ConceptFeedConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for runs, dictionary and subscription.
        intake_dir: Directory scanned for an archive to load at start-up.
        processed_dir: Directory that receives consumed local archives.
        batch_size: Records per dispatched batch.
        worker_count: Maximum concurrent batch workers per phase.
        queue_capacity: Pending batches held before submission blocks.
        drain_timeout_seconds: Time allowed for one phase's pool to drain.
        http_timeout_seconds: Connect/read timeout for feed requests.
        s3_region: Optional default AWS region for S3 archive downloads.
        s3_profile: Optional AWS profile for boto3 session initialization.
    """

    data_root: Path
    intake_dir: Path
    processed_dir: Path
    batch_size: int = DEFAULT_BATCH_SIZE
    worker_count: int = DEFAULT_WORKER_COUNT
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    drain_timeout_seconds: float = DEFAULT_DRAIN_TIMEOUT_SECONDS
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    s3_region: str | None = None
    s3_profile: str | None = None

    @classmethod
    def from_env(cls) -> "ConceptFeedConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            ConceptFeedConfigError: If environment values are invalid.
        """
        data_root = _resolve_path(os.getenv("CONCEPTFEED_DATA_ROOT", str(DEFAULT_DATA_ROOT)))
        return cls.for_data_root(
            data_root,
            intake_dir=_optional_path(os.getenv("CONCEPTFEED_INTAKE_DIR")),
            processed_dir=_optional_path(os.getenv("CONCEPTFEED_PROCESSED_DIR")),
            batch_size=_parse_positive_int("CONCEPTFEED_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            worker_count=_parse_positive_int("CONCEPTFEED_WORKERS", DEFAULT_WORKER_COUNT),
            queue_capacity=_parse_positive_int(
                "CONCEPTFEED_QUEUE_CAPACITY", DEFAULT_QUEUE_CAPACITY
            ),
            drain_timeout_seconds=_parse_positive_int(
                "CONCEPTFEED_DRAIN_TIMEOUT_SECONDS", DEFAULT_DRAIN_TIMEOUT_SECONDS
            ),
            http_timeout_seconds=_parse_positive_int(
                "CONCEPTFEED_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS
            ),
            s3_region=os.getenv("CONCEPTFEED_S3_REGION"),
            s3_profile=os.getenv("CONCEPTFEED_S3_PROFILE"),
        )

    @classmethod
    def for_data_root(
        cls,
        data_root: Path,
        intake_dir: Path | None = None,
        processed_dir: Path | None = None,
        **overrides: object,
    ) -> "ConceptFeedConfig":
        """Build config rooted at one data directory.

        Intake and processed directories default to locations under the root.
        """
        resolved_root = data_root.expanduser().resolve()
        return cls(
            data_root=resolved_root,
            intake_dir=intake_dir or resolved_root.joinpath(*INTAKE_DIR_PARTS),
            processed_dir=processed_dir or resolved_root / PROCESSED_DIR_NAME,
            **overrides,  # type: ignore[arg-type]
        )


def _resolve_path(raw_value: str) -> Path:
    return Path(raw_value).expanduser().resolve()


def _optional_path(raw_value: str | None) -> Path | None:
    if not raw_value:
        return None
    return _resolve_path(raw_value)


def _parse_positive_int(env_name: str, default_value: int) -> int:
    """Parse one positive integer environment value.

    Args:
        env_name: Environment variable name.
        default_value: Value used when the variable is unset.

    Returns:
        Parsed integer.

    Raises:
        ConceptFeedConfigError: If value is not a positive integer.
    """
    raw_value = os.getenv(env_name)
    if raw_value is None or not raw_value.strip():
        return default_value
    try:
        parsed_value = int(raw_value)
    except ValueError as error:
        raise ConceptFeedConfigError(
            f"Invalid {env_name} value: expected integer, got '{raw_value}'. "
            f"Set {env_name} to a positive numeric value."
        ) from error
    if parsed_value <= 0:
        raise ConceptFeedConfigError(
            f"Invalid {env_name} value: expected a positive integer, got {parsed_value}."
        )
    return parsed_value
