"""Shared fakes and builders for import tests."""

from __future__ import annotations

from datetime import datetime
import io
from pathlib import Path

from core.config import ConceptFeedConfig
from core.types import FeedResponse
from ingest.importer import Importer
from store.dictionary_store import DictionaryStore
from store.run_store import RunStore
from store.subscription_store import SubscriptionStore


class FakeFeedClient:
    """In-memory feed client that records every call it receives."""

    def __init__(
        self,
        body: bytes = b'{"concepts": [], "mappings": []}',
        release_version: str | None = "v1",
        updated_to: datetime = datetime(2024, 3, 1, 10, 0, 0),
    ) -> None:
        self.body = body
        self.release_version = release_version
        self.updated_to = updated_to
        self.calls: list[tuple[str, ...]] = []
        self.bytes_downloaded = 0
        self.total_bytes_to_download = -1
        self.is_download_complete = False

    def get_release_version(self, url: str, token: str | None) -> str | None:
        self.calls.append(("release", url))
        return self.release_version

    def fetch_full(
        self,
        url: str,
        token: str | None,
        last_release_version: str | None = None,
    ) -> FeedResponse | None:
        self.calls.append(("full", url, str(last_release_version)))
        release_version = self.get_release_version(url, token)
        if last_release_version is not None and last_release_version == release_version:
            self.is_download_complete = True
            return None
        return self._respond(release_version)

    def fetch_incremental(self, url: str, token: str | None, since: datetime) -> FeedResponse:
        self.calls.append(("incremental", url, since.isoformat()))
        return self._respond()

    def _respond(self, release_version: str | None = None) -> FeedResponse:
        self.bytes_downloaded = len(self.body)
        self.total_bytes_to_download = len(self.body)
        self.is_download_complete = True
        return FeedResponse(
            stream=io.BytesIO(self.body),
            content_length=len(self.body),
            updated_to=self.updated_to,
            release_version=release_version,
        )


def build_config(data_root: Path, **overrides: object) -> ConceptFeedConfig:
    """Build a config rooted at a temporary directory."""
    return ConceptFeedConfig.for_data_root(data_root, **overrides)


def build_importer(
    data_root: Path,
    feed_client: FakeFeedClient | None = None,
    **overrides: object,
) -> Importer:
    """Build an importer over fresh stores under ``data_root``."""
    config = build_config(data_root, **overrides)
    return Importer(
        config=config,
        run_store=RunStore(config.data_root),
        dictionary_store=DictionaryStore(config.data_root),
        subscription_store=SubscriptionStore(config.data_root),
        feed_client=feed_client or FakeFeedClient(),  # type: ignore[arg-type]
    )
