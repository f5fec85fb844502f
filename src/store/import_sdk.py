"""Python SDK for concept dictionary imports.

This module exposes high-level APIs for subscribing to a feed, running
imports and inspecting run history backed by the local stores.
"""

from __future__ import annotations

from pathlib import Path

from client.feed_client import FeedClient
from core.config import ConceptFeedConfig
from core.constants import DOWNLOADS_DIR_NAME
from core.logging_config import get_logger
from core.s3_uri import is_s3_uri
from core.types import ImportProgress, ImportRun, Subscription
from ingest.archive_input import download_s3_archive, find_intake_file
from ingest.importer import Importer
from store.dictionary_store import DictionaryStore
from store.run_report import RunReport, build_run_report
from store.run_store import RunStore
from store.subscription_store import SubscriptionStore

_LOGGER = get_logger(__name__)


class ConceptFeedClient:
    """Primary SDK entry point for import workflows."""

    def __init__(
        self,
        config: ConceptFeedConfig | None = None,
        feed_client: FeedClient | None = None,
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
            feed_client: Optional feed client, e.g. with a custom HTTP session.
        """
        self._config = config or ConceptFeedConfig.from_env()
        self._run_store = RunStore(self._config.data_root)
        self._dictionary_store = DictionaryStore(self._config.data_root)
        self._subscription_store = SubscriptionStore(self._config.data_root)
        self._importer = Importer(
            config=self._config,
            run_store=self._run_store,
            dictionary_store=self._dictionary_store,
            subscription_store=self._subscription_store,
            feed_client=feed_client or FeedClient(self._config.http_timeout_seconds),
        )

    @property
    def importer(self) -> Importer:
        return self._importer

    @property
    def dictionary(self) -> DictionaryStore:
        return self._dictionary_store

    def import_collection(self, import_file: str | Path | None = None) -> ImportRun:
        """Import a collection from a file, the intake directory or the feed.

        Args:
            import_file: Local path or ``s3://`` URI of an export. When
                omitted, a file waiting in the intake directory is imported,
                otherwise the subscription feed is fetched.

        Returns:
            The stopped run.

        Raises:
            ConceptFeedConfigError: If the input cannot be resolved.
            ConceptFeedRunActiveError: If another import is running.
            ConceptFeedImportError: If the run was aborted.
        """
        resolved_file = self._resolve_import_file(import_file)
        if resolved_file is None:
            resolved_file = find_intake_file(self._config.intake_dir)
            if resolved_file is not None:
                _LOGGER.info("intake_file_found", import_file=str(resolved_file))
        return self._importer.import_collection(resolved_file)

    def import_single_concept(self, import_file: str | Path) -> ImportRun:
        """Import one exported concept and its mappings.

        Raises:
            ConceptFeedRunActiveError: If another import is running.
            ConceptFeedImportError: If the run was aborted.
        """
        resolved_file = self._resolve_import_file(import_file)
        assert resolved_file is not None
        return self._importer.import_single_concept(resolved_file)

    def subscribe(self, url: str, token: str | None = None, snapshot: bool = False) -> Subscription:
        """Store the feed subscription followed by later imports."""
        subscription = Subscription(url=url, token=token, subscribed_to_snapshot=snapshot)
        self._subscription_store.save_subscription(subscription)
        _LOGGER.info("subscription_saved", url=url, subscribed_to_snapshot=snapshot)
        return subscription

    def unsubscribe(self) -> bool:
        """Remove the feed subscription; return whether one existed."""
        return self._subscription_store.unsubscribe()

    def subscription(self) -> Subscription | None:
        return self._subscription_store.get_subscription()

    def is_running(self) -> bool:
        return self._importer.is_running()

    def progress(self, run_id: str | None = None) -> ImportProgress:
        return self._importer.get_progress(run_id)

    def run_report(self, run_id: str | None = None) -> RunReport:
        """Summarize one run, defaulting to the latest."""
        return build_run_report(self._run_store, run_id)

    def list_runs(self) -> list[ImportRun]:
        """Return every recorded run in start order."""
        return [self._run_store.load_run(run_id) for run_id in self._run_store.list_runs()]

    def _resolve_import_file(self, import_file: str | Path | None) -> Path | None:
        if import_file is None:
            return None
        if isinstance(import_file, str) and is_s3_uri(import_file):
            download_dir = self._config.data_root / DOWNLOADS_DIR_NAME
            return download_s3_archive(import_file, download_dir, self._config)
        return Path(import_file).expanduser()
