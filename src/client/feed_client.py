"""HTTP client for subscription feed exports.

This module queries the latest released version of a subscribed collection
and downloads full or incremental exports. Export bodies are spooled to a
temporary file while download bytes are counted, then handed to the ingest
pipeline as a stream of the JSON document.
"""

from __future__ import annotations

from datetime import datetime
from email.utils import parsedate_to_datetime
import tempfile
import threading
from typing import IO, Any, BinaryIO
import zipfile

import requests

from core.constants import DEFAULT_HTTP_TIMEOUT_SECONDS, DOWNLOAD_CHUNK_SIZE, FEED_DATE_FORMAT, UNRELEASED_VERSION
from core.errors import ConceptFeedFeedError
from core.logging_config import get_logger
from core.types import FeedResponse

_LOGGER = get_logger(__name__)


class FeedClient:
    """Fetch exports from a feed endpoint with download telemetry.

    Counters are reset at the start of every fetch and may be read from
    other threads while a download is in progress.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._lock = threading.Lock()
        self.bytes_downloaded = 0
        self.total_bytes_to_download = -1
        self.is_download_complete = False

    def get_release_version(self, url: str, token: str | None) -> str | None:
        """Return the ID of the latest released version, if any.

        Raises:
            ConceptFeedFeedError: If the request fails or the body is invalid.
        """
        versions_url = f"{_strip_slash(url)}/versions/"
        params = {"released": "true", "limit": "1", "verbose": "false"}
        try:
            response = self._session.get(
                versions_url,
                params=params,
                headers=_auth_headers(token),
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as error:
            raise ConceptFeedFeedError(
                f"Failed to query released versions at {versions_url}: {error}. "
                "Check the subscription URL and token."
            ) from error
        except ValueError as error:
            raise ConceptFeedFeedError(
                f"Invalid versions response from {versions_url}: expected JSON list."
            ) from error
        if not isinstance(payload, list):
            raise ConceptFeedFeedError(
                f"Invalid versions response from {versions_url}: expected JSON list."
            )
        if not payload:
            return None
        first_version = payload[0]
        if not isinstance(first_version, dict) or first_version.get("id") is None:
            raise ConceptFeedFeedError(
                f"Invalid versions response from {versions_url}: missing version id."
            )
        return str(first_version["id"])

    def fetch_full(
        self,
        url: str,
        token: str | None,
        last_release_version: str | None = None,
    ) -> FeedResponse | None:
        """Download the full export of the latest released version.

        Args:
            url: Subscription endpoint.
            token: Optional API token.
            last_release_version: Version imported by the previous run.

        Returns:
            The export, or ``None`` when the latest release was already imported.

        Raises:
            ConceptFeedFeedError: If a request fails.
        """
        self._reset_counters()
        release_version = self.get_release_version(url, token)
        if last_release_version is not None and release_version == last_release_version:
            _LOGGER.info("feed_release_unchanged", url=url, release_version=release_version)
            self._mark_complete()
            return None
        export_url = f"{_strip_slash(url)}/{release_version or UNRELEASED_VERSION}/export/"
        return self._download(export_url, token, params=None, release_version=release_version)

    def fetch_incremental(self, url: str, token: str | None, since: datetime) -> FeedResponse:
        """Download changes of the unreleased head since a feed timestamp.

        Raises:
            ConceptFeedFeedError: If the request fails.
        """
        self._reset_counters()
        export_url = f"{_strip_slash(url)}/{UNRELEASED_VERSION}/export/"
        params = {"updatedSince": since.strftime(FEED_DATE_FORMAT)}
        return self._download(export_url, token, params=params)

    def _download(
        self,
        export_url: str,
        token: str | None,
        params: dict[str, str] | None,
        release_version: str | None = None,
    ) -> FeedResponse:
        spool = tempfile.TemporaryFile()
        try:
            updated_to = self._stream_to_spool(export_url, token, params, spool)
        except BaseException:
            spool.close()
            raise
        self._mark_complete()
        _LOGGER.info(
            "feed_export_downloaded",
            url=export_url,
            bytes_downloaded=self.bytes_downloaded,
            release_version=release_version,
        )
        stream, content_length = _open_export(spool, export_url)
        return FeedResponse(
            stream=stream,
            content_length=content_length,
            updated_to=updated_to,
            release_version=release_version,
        )

    def _stream_to_spool(
        self,
        export_url: str,
        token: str | None,
        params: dict[str, str] | None,
        spool: IO[bytes],
    ) -> datetime:
        try:
            with self._session.get(
                export_url,
                params=params,
                headers=_auth_headers(token),
                stream=True,
                timeout=self._timeout_seconds,
            ) as response:
                response.raise_for_status()
                self.total_bytes_to_download = _content_length(response.headers)
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if not chunk:
                        continue
                    spool.write(chunk)
                    with self._lock:
                        self.bytes_downloaded += len(chunk)
                return _updated_to(response.headers.get("Date"))
        except requests.RequestException as error:
            raise ConceptFeedFeedError(
                f"Failed to download export from {export_url}: {error}. "
                "Check the subscription URL, token and network access."
            ) from error

    def _reset_counters(self) -> None:
        with self._lock:
            self.bytes_downloaded = 0
            self.total_bytes_to_download = -1
            self.is_download_complete = False

    def _mark_complete(self) -> None:
        with self._lock:
            self.is_download_complete = True


class _ZipMemberStream:
    """Read one zip member and close the spooled archive with it."""

    def __init__(self, spool: IO[bytes], archive: zipfile.ZipFile, member: IO[bytes]) -> None:
        self._spool = spool
        self._archive = archive
        self._member = member

    def read(self, size: int = -1) -> bytes:
        return self._member.read(size)

    def close(self) -> None:
        self._member.close()
        self._archive.close()
        self._spool.close()


def _open_export(spool: IO[bytes], export_url: str) -> tuple[BinaryIO, int]:
    """Return the JSON document stream of a spooled export body."""
    size = spool.seek(0, 2)
    spool.seek(0)
    if not zipfile.is_zipfile(spool):
        spool.seek(0)
        return spool, size  # type: ignore[return-value]
    spool.seek(0)
    try:
        archive = zipfile.ZipFile(spool)
        members = [info for info in archive.infolist() if not info.is_dir()]
        if len(members) != 1:
            archive.close()
            raise ConceptFeedFeedError(
                f"Export from {export_url} must contain exactly one file, found {len(members)}."
            )
        member = members[0]
        stream = _ZipMemberStream(spool, archive, archive.open(member))
    except zipfile.BadZipFile as error:
        spool.close()
        raise ConceptFeedFeedError(f"Invalid zip export from {export_url}: {error}.") from error
    except ConceptFeedFeedError:
        spool.close()
        raise
    return stream, member.file_size  # type: ignore[return-value]


def _auth_headers(token: str | None) -> dict[str, str]:
    if not token:
        return {}
    return {"Authorization": f"Token {token}"}


def _content_length(headers: Any) -> int:
    raw_value = headers.get("Content-Length")
    if not raw_value:
        return -1
    try:
        return int(raw_value)
    except ValueError:
        return -1


def _updated_to(date_header: str | None) -> datetime:
    """Convert a response ``Date`` header to naive local time."""
    if date_header:
        try:
            return parsedate_to_datetime(date_header).astimezone().replace(tzinfo=None)
        except (TypeError, ValueError):
            _LOGGER.warning("feed_date_header_invalid", date_header=date_header)
    return datetime.now().replace(microsecond=0)


def _strip_slash(url: str) -> str:
    return url.rstrip("/")
