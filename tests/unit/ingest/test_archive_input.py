"""Unit tests for local archive inputs."""

from __future__ import annotations

from pathlib import Path
import sys
import zipfile

import pytest

from core.errors import ConceptFeedConfigError, ConceptFeedDependencyError, ConceptFeedIngestError
from ingest.archive_input import download_s3_archive, find_intake_file, move_to_processed, open_archive
from ingest.counting_reader import CountingReader
from tests.fixture_paths import fixture_path
from tests.import_fakes import build_config


def test_open_archive_reads_json_file_with_size() -> None:
    """A JSON export should open directly with its file size as total."""
    source = fixture_path("feeds/collection.json")

    stream, total_bytes = open_archive(source)
    with CountingReader(stream) as reader:
        content = reader.read()

    assert total_bytes == source.stat().st_size and reader.byte_count == len(content) == total_bytes


def test_open_archive_reads_single_zip_member(tmp_path: Path) -> None:
    """A zip export should expose its single member and uncompressed size."""
    payload = fixture_path("feeds/collection.json").read_bytes()
    archive_path = tmp_path / "export.zip"
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("export.json", payload)

    stream, total_bytes = open_archive(archive_path)
    try:
        content = stream.read()
    finally:
        stream.close()

    assert content == payload and total_bytes == len(payload)


def test_open_archive_rejects_zip_with_many_members(tmp_path: Path) -> None:
    """Zip exports must contain exactly one file."""
    archive_path = tmp_path / "export.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("a.json", "{}")
        archive.writestr("b.json", "{}")

    with pytest.raises(ConceptFeedIngestError):
        open_archive(archive_path)


def test_open_archive_rejects_unsupported_extension(tmp_path: Path) -> None:
    """Only zip and json exports should be accepted."""
    text_path = tmp_path / "export.txt"
    text_path.write_text("{}", encoding="utf-8")

    with pytest.raises(ConceptFeedConfigError):
        open_archive(text_path)


def test_find_intake_file_handles_empty_single_and_many(tmp_path: Path) -> None:
    """Intake lookup should return nothing, the file, or fail for several files."""
    intake_dir = tmp_path / "intake"
    empty_result = find_intake_file(intake_dir)
    (intake_dir / "a.json").write_text("{}", encoding="utf-8")
    single_result = find_intake_file(intake_dir)
    (intake_dir / "b.json").write_text("{}", encoding="utf-8")

    with pytest.raises(ConceptFeedConfigError):
        find_intake_file(intake_dir)

    assert empty_result is None and single_result == intake_dir / "a.json"


def test_move_to_processed_relocates_archive(tmp_path: Path) -> None:
    """Consumed archives should move into the processed directory."""
    source = tmp_path / "intake" / "export.json"
    source.parent.mkdir()
    source.write_text("{}", encoding="utf-8")

    destination = move_to_processed(source, tmp_path / "imported")

    assert destination.exists() and not source.exists()


def test_download_s3_archive_requires_boto3(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """S3 downloads should explain how to install boto3 when it is missing."""
    monkeypatch.setitem(sys.modules, "boto3", None)

    with pytest.raises(ConceptFeedDependencyError):
        download_s3_archive("s3://bucket/export.zip", tmp_path, build_config(tmp_path))


def test_download_s3_archive_uses_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """S3 downloads should fetch the object into the target directory."""
    calls: list[tuple[str, str, str]] = []

    class _FakeS3Client:
        def download_file(self, bucket: str, key: str, target: str) -> None:
            calls.append((bucket, key, target))
            Path(target).write_text("{}", encoding="utf-8")

    monkeypatch.setattr("ingest.archive_input._create_s3_client", lambda config: _FakeS3Client())
    target = download_s3_archive("s3://bucket/dumps/export.json", tmp_path / "downloads", build_config(tmp_path))

    assert target.read_text(encoding="utf-8") == "{}" and calls[0][:2] == ("bucket", "dumps/export.json")
