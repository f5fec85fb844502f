"""S3 URI parsing helpers.

This module validates ``s3://bucket/key`` archive locations before
any download is attempted.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath

from core.errors import ConceptFeedConfigError


@dataclass(frozen=True)
class S3Location:
    """Parsed S3 object location."""

    bucket: str
    key: str

    @property
    def file_name(self) -> str:
        """Return the final path segment of the object key."""
        return PurePosixPath(self.key).name


def is_s3_uri(uri: str) -> bool:
    """Return whether a location string uses the ``s3://`` scheme."""
    return uri.startswith("s3://")


def parse_s3_uri(uri: str) -> S3Location:
    """Parse and validate an S3 object URI.

    Args:
        uri: URI in format ``s3://bucket/key``.

    Returns:
        Parsed bucket and key pair.

    Raises:
        ConceptFeedConfigError: If bucket or key is missing.
    """
    stripped_uri = uri.removeprefix("s3://")
    bucket, _, key = stripped_uri.partition("/")
    if not bucket or not key or key.endswith("/"):
        raise ConceptFeedConfigError(
            f"Invalid S3 URI '{uri}': expected s3://bucket/key. "
            "Point at a single .zip or .json archive object."
        )
    return S3Location(bucket=bucket, key=key)
