"""Batch unit that persists records and audits each outcome.

One ``ImportTask`` handles one batch of concepts or mappings inside a worker
pool slot. Every record yields exactly one item on the run; a record that
fails to save becomes an error item and the batch moves on.
"""

from __future__ import annotations

from typing import Sequence

from core.constants import MAX_ERROR_MESSAGE_LENGTH
from core.logging_config import get_logger
from core.types import ConceptRecord, ExecutionContext, ImportItem, ItemKind, ItemState, MappingRecord
from store.lookup_cache import LookupCache
from store.run_store import RunStore
from store.saver import DictionarySaver

_LOGGER = get_logger(__name__)


class ImportTask:
    """Persist one batch of records through the saver."""

    def __init__(
        self,
        saver: DictionarySaver,
        cache: LookupCache,
        run_store: RunStore,
        run_id: str,
        context: ExecutionContext,
    ) -> None:
        self._saver = saver
        self._cache = cache
        self._run_store = run_store
        self._run_id = run_id
        self._context = context
        self._concepts: Sequence[ConceptRecord] = ()
        self._mappings: Sequence[MappingRecord] = ()

    def set_concepts(self, concepts: Sequence[ConceptRecord]) -> None:
        self._concepts = tuple(concepts)

    def set_mappings(self, mappings: Sequence[MappingRecord]) -> None:
        self._mappings = tuple(mappings)

    def __call__(self) -> None:
        self.run()

    def run(self) -> None:
        """Save every record in decode order, recording one item each."""
        for concept in self._concepts:
            self._import_concept(concept)
        for mapping in self._mappings:
            self._import_mapping(mapping)
        _LOGGER.debug(
            "import_batch_completed",
            run_id=self._run_id,
            concepts=len(self._concepts),
            mappings=len(self._mappings),
            cache_hits=self._cache.hits,
            cache_misses=self._cache.misses,
        )

    def _import_concept(self, concept: ConceptRecord) -> None:
        try:
            state = self._saver.save_concept(concept, self._cache, self._context)
        except Exception as error:
            self._record_failure("CONCEPT", concept.external_id or concept.url, concept.url,
                                 concept.version_url, error)
            return
        self._record("CONCEPT", concept.external_id or concept.url, concept.url,
                     concept.version_url, state)

    def _import_mapping(self, mapping: MappingRecord) -> None:
        try:
            state = self._saver.save_mapping(mapping, self._cache, self._context)
        except Exception as error:
            self._record_failure("MAPPING", mapping.external_id or mapping.url, mapping.url,
                                 mapping.version_url, error)
            return
        self._record("MAPPING", mapping.external_id or mapping.url, mapping.url,
                     mapping.version_url, state)

    def _record(
        self,
        kind: ItemKind,
        uuid: str | None,
        url: str | None,
        version_url: str | None,
        state: ItemState,
        error_message: str | None = None,
    ) -> None:
        self._run_store.append_item(
            ImportItem(
                run_id=self._run_id,
                kind=kind,
                state=state,
                uuid=uuid,
                url=url,
                version_url=version_url,
                error_message=error_message,
            )
        )

    def _record_failure(
        self,
        kind: ItemKind,
        uuid: str | None,
        url: str | None,
        version_url: str | None,
        error: Exception,
    ) -> None:
        message = f"{type(error).__name__}: {error}"[:MAX_ERROR_MESSAGE_LENGTH]
        _LOGGER.warning("import_item_failed", run_id=self._run_id, kind=kind, url=url, error=message)
        self._record(kind, uuid, url, version_url, "error", message)
