"""Local archive inputs for file-based imports.

This module opens ``.zip`` and ``.json`` exports as byte streams, checks the
start-up intake directory, moves consumed archives aside and downloads
archives stored in S3.
"""

from __future__ import annotations

from pathlib import Path
import shutil
from typing import Any, BinaryIO
import zipfile

from core.config import ConceptFeedConfig
from core.constants import SUPPORTED_ARCHIVE_EXTENSIONS
from core.errors import ConceptFeedConfigError, ConceptFeedDependencyError, ConceptFeedIngestError
from core.s3_uri import parse_s3_uri


def validate_archive_path(archive_path: Path) -> None:
    """Check that an archive has a supported extension.

    Raises:
        ConceptFeedConfigError: If the file is neither a zip nor a json file.
    """
    if archive_path.suffix.lower() not in SUPPORTED_ARCHIVE_EXTENSIONS:
        raise ConceptFeedConfigError(
            f"Import file {archive_path.name} must be either a zip or json file."
        )


def check_import_file(import_file: Path) -> None:
    """Check an import file before a run is started for it.

    Raises:
        ConceptFeedConfigError: If the file has an unsupported extension or
            does not exist.
    """
    validate_archive_path(import_file)
    if not import_file.expanduser().is_file():
        raise ConceptFeedConfigError(
            f"Import file {import_file} does not exist. Provide an existing .zip or .json file."
        )


def open_archive(archive_path: Path) -> tuple[BinaryIO, int]:
    """Open an export as a binary stream of its JSON document.

    Args:
        archive_path: ``.zip`` holding one JSON member, or a ``.json`` file.

    Returns:
        The document stream and its size in bytes.

    Raises:
        ConceptFeedConfigError: If the extension is unsupported.
        ConceptFeedIngestError: If the file is missing or the zip is invalid.
    """
    validate_archive_path(archive_path)
    if not archive_path.is_file():
        raise ConceptFeedIngestError(
            f"Import file {archive_path} does not exist. Provide an existing .zip or .json file."
        )
    if archive_path.suffix.lower() == ".json":
        return archive_path.open("rb"), archive_path.stat().st_size
    return _open_zip_member(archive_path)


def _open_zip_member(archive_path: Path) -> tuple[BinaryIO, int]:
    try:
        with zipfile.ZipFile(archive_path) as archive:
            members = [info for info in archive.infolist() if not info.is_dir()]
            if len(members) != 1:
                raise ConceptFeedIngestError(
                    f"Zip archive {archive_path.name} must contain exactly one export file, "
                    f"found {len(members)}."
                )
            member = members[0]
            return archive.open(member), member.file_size
    except zipfile.BadZipFile as error:
        raise ConceptFeedIngestError(f"Failed to open zip archive {archive_path}: {error}.") from error


def find_intake_file(intake_dir: Path) -> Path | None:
    """Return the single archive waiting in the intake directory, if any.

    Raises:
        ConceptFeedConfigError: If more than one file is present or the file
            has an unsupported extension.
    """
    intake_dir.mkdir(parents=True, exist_ok=True)
    files = sorted(path for path in intake_dir.iterdir() if path.is_file())
    if len(files) > 1:
        raise ConceptFeedConfigError(
            f"There is more than one file in the intake directory {intake_dir}. "
            "Ensure that there is only one file."
        )
    if not files:
        return None
    validate_archive_path(files[0])
    return files[0]


def move_to_processed(archive_path: Path, processed_dir: Path) -> Path:
    """Move a consumed archive into the processed-files directory."""
    processed_dir.mkdir(parents=True, exist_ok=True)
    destination = processed_dir / archive_path.name
    if destination.resolve() == archive_path.resolve():
        return destination
    shutil.move(str(archive_path), str(destination))
    return destination


def download_s3_archive(uri: str, target_dir: Path, config: ConceptFeedConfig) -> Path:
    """Download an ``s3://bucket/key`` archive into ``target_dir``.

    Returns:
        Local path of the downloaded archive.

    Raises:
        ConceptFeedConfigError: If the URI or extension is invalid.
        ConceptFeedDependencyError: If boto3 is missing.
        ConceptFeedIngestError: If the download fails.
    """
    location = parse_s3_uri(uri)
    target_path = target_dir / location.file_name
    validate_archive_path(target_path)
    target_dir.mkdir(parents=True, exist_ok=True)
    s3_client = _create_s3_client(config)
    try:
        s3_client.download_file(location.bucket, location.key, str(target_path))
    except Exception as error:
        raise ConceptFeedIngestError(
            f"Failed to download {uri}: {error}. Check AWS credentials and the object key."
        ) from error
    return target_path


def _create_s3_client(config: ConceptFeedConfig) -> Any:
    try:
        import boto3
    except ImportError as error:
        raise ConceptFeedDependencyError(
            "S3 archives require boto3, but it is not installed. "
            "Install the 's3' extra to import from s3:// locations."
        ) from error
    session_kwargs: dict[str, str] = {}
    if config.s3_profile:
        session_kwargs["profile_name"] = config.s3_profile
    if config.s3_region:
        session_kwargs["region_name"] = config.s3_region
    session = boto3.session.Session(**session_kwargs)
    return session.client("s3")
