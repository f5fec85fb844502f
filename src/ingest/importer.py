"""Import run controller.

This module owns the single in-flight import run. It opens the input (a
local archive or a subscription feed export), walks the ``concepts`` and
then the ``mappings`` array of the document, dispatches fixed-size batches
to a bounded worker pool and finalizes the run whatever the outcome.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
import threading
import traceback
from typing import BinaryIO, Callable, Iterable, TypeVar

from client.feed_client import FeedClient
from core.config import ConceptFeedConfig
from core.constants import (
    CONCEPTS_FIELD,
    MAPPINGS_FIELD,
    MAX_ERROR_MESSAGE_LENGTH,
    ROOT_CAUSE_FRAME_LIMIT,
    TERMINATED_RUN_MESSAGE,
)
from core.errors import ConceptFeedConfigError, ConceptFeedError, ConceptFeedImportError
from core.logging_config import get_logger
from core.types import (
    SYSTEM_CONTEXT,
    ConceptRecord,
    ExecutionContext,
    FeedResponse,
    ImportProgress,
    ImportRun,
    MappingRecord,
    SourceKind,
    Subscription,
)
from ingest.archive_input import check_import_file, move_to_processed, open_archive
from ingest.batcher import RecordBatcher, build_single_concept_exclusion, iter_batches
from ingest.counting_reader import CountingReader
from ingest.import_task import ImportTask
from ingest.json_navigator import (
    JsonTokenCursor,
    NavigationResult,
    advance_to_list_of,
    open_object,
    read_value,
)
from ingest.progress import ProgressSnapshot, estimate_progress, is_processed
from ingest.record_decoder import build_base_url, decode_concept, iter_concepts, iter_mappings
from ingest.run_slot import ActiveRunSlot
from ingest.worker_pool import BoundedWorkerPool
from store.dictionary_store import DictionaryStore
from store.lookup_cache import LookupCache
from store.run_report import elapsed_seconds
from store.run_store import RunStore
from store.saver import DictionarySaver
from store.subscription_store import SubscriptionStore

_LOGGER = get_logger(__name__)

IMPORT_THREAD_NAME = "conceptfeed-import"

ResultT = TypeVar("ResultT")
RecordT = TypeVar("RecordT")


class Importer:
    """Run imports one at a time and report their progress."""

    def __init__(
        self,
        config: ConceptFeedConfig,
        run_store: RunStore,
        dictionary_store: DictionaryStore,
        subscription_store: SubscriptionStore,
        feed_client: FeedClient,
        run_slot: ActiveRunSlot | None = None,
        context: ExecutionContext = SYSTEM_CONTEXT,
    ) -> None:
        self._config = config
        self._run_store = run_store
        self._dictionary_store = dictionary_store
        self._saver = DictionarySaver(dictionary_store)
        self._subscription_store = subscription_store
        self._feed_client = feed_client
        self._slot = run_slot or ActiveRunSlot(run_store.lock_path)
        self._context = context
        self.import_file: Path | None = None
        self._reader: CountingReader | None = None
        self._total_bytes_to_process = -1
        self._is_local_input = False

    @property
    def bytes_downloaded(self) -> int:
        if self._is_local_input:
            return max(0, self._total_bytes_to_process)
        return self._feed_client.bytes_downloaded

    @property
    def total_bytes_to_download(self) -> int:
        if self._is_local_input:
            return self._total_bytes_to_process
        return self._feed_client.total_bytes_to_download

    @property
    def is_downloaded(self) -> bool:
        return self._is_local_input or self._feed_client.is_download_complete

    @property
    def bytes_processed(self) -> int:
        reader = self._reader
        return reader.byte_count if reader is not None else 0

    @property
    def total_bytes_to_process(self) -> int:
        return self._total_bytes_to_process

    @property
    def is_processed(self) -> bool:
        return is_processed(self._snapshot(0.0))

    def import_collection(self, import_file: Path | None = None) -> ImportRun:
        """Import a full collection document and wait for the run to finish.

        Args:
            import_file: Local ``.zip`` or ``.json`` export. When omitted the
                subscription feed is fetched.

        Returns:
            The stopped run, ``succeeded`` or ``failed``.

        Raises:
            ConceptFeedConfigError: If no input can be resolved or the import
                file is missing or not a zip or json file.
            ConceptFeedRunActiveError: If another import is running.
            ConceptFeedImportError: If the run was aborted by a fatal fault.
        """
        subscription = self._subscription_store.get_subscription()
        if import_file is None and subscription is None:
            raise ConceptFeedConfigError(
                "No subscription configured and no import file given. "
                "Subscribe to a feed or pass an export file."
            )
        if import_file is not None:
            check_import_file(import_file)
        base_url = build_base_url(subscription.url if subscription else None)
        source_kind: SourceKind = "file" if import_file is not None else "subscription"
        return _run_in_import_thread(
            lambda: self._run(
                source_kind,
                import_file,
                lambda run_id: self._import_document(run_id, import_file, subscription, base_url),
            )
        )

    def import_single_concept(self, import_file: Path) -> ImportRun:
        """Import one exported concept together with its embedded mappings.

        Raises:
            ConceptFeedConfigError: If the file is missing or not a zip or json file.
            ConceptFeedRunActiveError: If another import is running.
            ConceptFeedImportError: If the run was aborted by a fatal fault.
        """
        check_import_file(import_file)
        subscription = self._subscription_store.get_subscription()
        base_url = build_base_url(subscription.url if subscription else None)
        return _run_in_import_thread(
            lambda: self._run(
                "file",
                import_file,
                lambda run_id: self._import_concept_file(run_id, import_file, base_url),
            )
        )

    def is_running(self) -> bool:
        """Return whether a run is open, stopping a run left open by a crash."""
        return self._slot.is_open(on_idle=self._heal_abandoned_run)

    def _heal_abandoned_run(self) -> None:
        last_run = self._run_store.get_last_run()
        if last_run is not None and not last_run.stopped:
            _LOGGER.warning("import_run_healed", run_id=last_run.run_id)
            self._run_store.stop_run(last_run.run_id, TERMINATED_RUN_MESSAGE)

    def get_progress(self, run_id: str | None = None) -> ImportProgress:
        """Return elapsed seconds and estimated percent of a run.

        Defaults to the open run, then to the most recent run.
        """
        run = self._resolve_run(run_id)
        if run is None:
            return ImportProgress(time_seconds=0, progress=0)
        time_seconds = elapsed_seconds(run)
        current = self._slot.current
        if run.stopped or current is None or current.run_id != run.run_id:
            return ImportProgress(time_seconds=time_seconds, progress=100)
        progress = estimate_progress(self._snapshot(float(time_seconds)))
        return ImportProgress(time_seconds=time_seconds, progress=progress)

    def _resolve_run(self, run_id: str | None) -> ImportRun | None:
        if run_id is not None:
            return self._run_store.load_run(run_id)
        current = self._slot.current
        if current is not None:
            return self._run_store.load_run(current.run_id)
        return self._run_store.get_last_run()

    def _snapshot(self, elapsed: float) -> ProgressSnapshot:
        return ProgressSnapshot(
            elapsed_seconds=elapsed,
            is_downloaded=self.is_downloaded,
            bytes_downloaded=self.bytes_downloaded,
            total_bytes_to_download=self.total_bytes_to_download,
            bytes_processed=self.bytes_processed,
            total_bytes_to_process=self.total_bytes_to_process,
        )

    def _run(
        self,
        source_kind: SourceKind,
        import_file: Path | None,
        task: Callable[[str], None],
    ) -> ImportRun:
        run = self._slot.begin(lambda: self._run_store.start_run(self._context, source_kind))
        _LOGGER.info("import_started", run_id=run.run_id, source_kind=source_kind, actor=self._context.actor)
        self._reset_telemetry(import_file)
        try:
            task(run.run_id)
            return self._complete(run.run_id)
        except Exception as error:
            message = build_error_message(error)
            self._run_store.abort_run(run.run_id, message)
            _LOGGER.error("import_run_aborted", run_id=run.run_id, error=str(error))
            raise ConceptFeedImportError(f"Import {run.run_id} aborted: {error}") from error
        finally:
            self._finalize(run.run_id)

    def _complete(self, run_id: str) -> ImportRun:
        error_count = self._run_store.count_items(run_id, ("error",))
        if error_count:
            self._run_store.fail_run(run_id, f"{error_count} item(s) failed to import")
        run = self._run_store.stop_run(run_id)
        _LOGGER.info("import_completed", run_id=run_id, status=run.status, error_items=error_count)
        return run

    def _finalize(self, run_id: str) -> None:
        self._close_input()
        import_file = self.import_file
        if import_file is not None:
            try:
                move_to_processed(import_file, self._config.processed_dir)
            except OSError as error:
                _LOGGER.error(
                    "import_file_move_failed",
                    import_file=str(import_file),
                    processed_dir=str(self._config.processed_dir),
                    error=str(error),
                )
        self.import_file = None
        try:
            self._run_store.stop_run(run_id)
        except (ConceptFeedError, OSError) as error:
            _LOGGER.error("import_run_stop_failed", run_id=run_id, error=str(error))
        self._slot.end()

    def _reset_telemetry(self, import_file: Path | None) -> None:
        self.import_file = import_file
        self._reader = None
        self._total_bytes_to_process = -1
        self._is_local_input = import_file is not None

    def _close_input(self) -> None:
        reader = self._reader
        if reader is None:
            return
        try:
            reader.close()
        except OSError as error:
            _LOGGER.error("import_input_close_failed", error=str(error))

    def _import_document(
        self,
        run_id: str,
        import_file: Path | None,
        subscription: Subscription | None,
        base_url: str,
    ) -> None:
        if import_file is not None:
            stream = self._open_local(run_id, import_file)
        else:
            assert subscription is not None
            stream = self._open_feed(run_id, subscription)
        if stream is None:
            return
        reader = CountingReader(stream)
        self._reader = reader
        cursor = JsonTokenCursor(reader)
        open_object(cursor)
        result = advance_to_list_of(cursor, CONCEPTS_FIELD, stop_at_field=MAPPINGS_FIELD)
        if result is NavigationResult.END_OF_OBJECT:
            return
        if result is NavigationResult.ARRAY_START:
            self._dispatch_concepts(run_id, iter_concepts(cursor, base_url))
        result = advance_to_list_of(cursor, MAPPINGS_FIELD)
        if result is NavigationResult.ARRAY_START:
            self._dispatch_mappings(run_id, iter_mappings(cursor, base_url))

    def _import_concept_file(self, run_id: str, import_file: Path, base_url: str) -> None:
        with CountingReader(self._open_local(run_id, import_file)) as reader:
            concept = decode_concept(read_value(JsonTokenCursor(reader)), base_url)
        self._dispatch_concepts(run_id, (concept,))
        reader = CountingReader(self._open_local(run_id, import_file))
        self._reader = reader
        cursor = JsonTokenCursor(reader)
        open_object(cursor)
        if advance_to_list_of(cursor, MAPPINGS_FIELD) is NavigationResult.ARRAY_START:
            self._dispatch_mappings(
                run_id,
                iter_mappings(cursor, base_url),
                exclude=build_single_concept_exclusion(concept),
            )

    def _open_local(self, run_id: str, import_file: Path) -> BinaryIO:
        absolute_path = import_file.expanduser().resolve()
        self._slot.replace(self._run_store.update_subscription_url(run_id, str(absolute_path)))
        stream, total_bytes = open_archive(absolute_path)
        self._total_bytes_to_process = total_bytes
        _LOGGER.info("import_file_opened", run_id=run_id, import_file=str(absolute_path), bytes=total_bytes)
        return stream

    def _open_feed(self, run_id: str, subscription: Subscription) -> BinaryIO | None:
        last_run = self._run_store.get_last_successful_subscription_run()
        updated_since = _feed_date(last_run.feed_date_started) if last_run else None
        response: FeedResponse | None
        if last_run is None or updated_since is None:
            response = self._feed_client.fetch_full(subscription.url, subscription.token)
            self._run_store.update_release_version(run_id, response.release_version if response else None)
        elif subscription.subscribed_to_snapshot:
            response = self._feed_client.fetch_incremental(
                subscription.url, subscription.token, updated_since
            )
        else:
            response = self._feed_client.fetch_full(
                subscription.url, subscription.token, last_run.release_version
            )
            release_version = response.release_version if response else last_run.release_version
            self._run_store.update_release_version(run_id, release_version)
        if response is None:
            _LOGGER.info("import_feed_up_to_date", run_id=run_id, url=subscription.url)
            return None
        self._run_store.update_feed_date_started(run_id, response.updated_to)
        self._slot.replace(self._run_store.update_subscription_url(run_id, subscription.url))
        self._total_bytes_to_process = response.content_length
        return response.stream

    def _dispatch_concepts(self, run_id: str, concepts: Iterable[ConceptRecord]) -> None:
        def build_task(batch: list[ConceptRecord]) -> ImportTask:
            task = self._new_task(run_id)
            task.set_concepts(batch)
            return task

        self._dispatch(run_id, CONCEPTS_FIELD, iter_batches(concepts, self._config.batch_size), build_task)

    def _dispatch_mappings(
        self,
        run_id: str,
        mappings: Iterable[MappingRecord],
        exclude: Callable[[MappingRecord], bool] | None = None,
    ) -> None:
        def build_task(batch: list[MappingRecord]) -> ImportTask:
            task = self._new_task(run_id)
            task.set_mappings(batch)
            return task

        batcher: RecordBatcher[MappingRecord] = RecordBatcher(self._config.batch_size, exclude)
        self._dispatch(run_id, MAPPINGS_FIELD, batcher.batches(mappings), build_task)
        if batcher.skipped_count:
            _LOGGER.info("import_mappings_skipped", run_id=run_id, skipped=batcher.skipped_count)

    def _dispatch(
        self,
        run_id: str,
        phase: str,
        batches: Iterable[list[RecordT]],
        build_task: Callable[[list[RecordT]], ImportTask],
    ) -> None:
        pool = BoundedWorkerPool(
            max_workers=self._config.worker_count,
            queue_capacity=self._config.queue_capacity,
            drain_timeout_seconds=self._config.drain_timeout_seconds,
        )
        with pool:
            for batch in batches:
                pool.submit(build_task(batch))
                _LOGGER.debug("import_batch_submitted", run_id=run_id, phase=phase, records=len(batch))
        _LOGGER.info("import_phase_drained", run_id=run_id, phase=phase, batches=pool.submitted_count)

    def _new_task(self, run_id: str) -> ImportTask:
        cache = LookupCache(self._dictionary_store)
        return ImportTask(self._saver, cache, self._run_store, run_id, self._context)


def build_error_message(error: BaseException) -> str:
    """Describe a fatal fault with the head of its root cause's traceback.

    The result is the error text, a ``caused by`` marker and up to five
    formatted traceback lines of the innermost cause, capped at 1024
    characters.
    """
    root_cause = error
    while root_cause.__cause__ is not None:
        root_cause = root_cause.__cause__
    frames = "".join(traceback.format_exception(type(root_cause), root_cause, root_cause.__traceback__))
    frame_lines = frames.splitlines()[:ROOT_CAUSE_FRAME_LIMIT]
    message = f"{error}\n caused by: " + "\n".join(frame_lines)
    return message[:MAX_ERROR_MESSAGE_LENGTH]


def _feed_date(raw_value: str | None) -> datetime | None:
    if not raw_value:
        return None
    return datetime.fromisoformat(raw_value)


def _run_in_import_thread(target: Callable[[], ResultT]) -> ResultT:
    """Execute ``target`` on the dedicated import thread and wait for it."""
    outcome: dict[str, object] = {}

    def run_target() -> None:
        try:
            outcome["result"] = target()
        except BaseException as error:  # re-raised on the calling thread
            outcome["error"] = error

    thread = threading.Thread(target=run_target, name=IMPORT_THREAD_NAME)
    thread.start()
    thread.join()
    if "error" in outcome:
        raise outcome["error"]  # type: ignore[misc]
    return outcome["result"]  # type: ignore[return-value]
