"""Create-or-update persistence for decoded feed records.

This module turns concept and mapping records into dictionary documents.
It decides per record whether the entity is new, changed or already current
and raises ``ConceptFeedSaveError`` when one record cannot be stored.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from core.constants import SAME_AS_MAP_TYPE
from core.errors import ConceptFeedSaveError
from core.types import ConceptRecord, ExecutionContext, ItemState, MappingRecord
from store.dictionary_store import DictionaryStore
from store.lookup_cache import LookupCache


class DictionarySaver:
    """Persist concepts and mappings into a ``DictionaryStore``."""

    def __init__(self, store: DictionaryStore) -> None:
        self._store = store

    def save_concept(
        self,
        record: ConceptRecord,
        cache: LookupCache,
        context: ExecutionContext,
    ) -> ItemState:
        """Create or update one concept.

        Args:
            record: Decoded concept.
            cache: Lookup cache of the calling import task.
            context: Privilege context recorded on the document.

        Returns:
            Item state describing what happened.

        Raises:
            ConceptFeedSaveError: If the concept cannot be stored.
        """
        if not record.url:
            raise ConceptFeedSaveError(f"Concept {record.id!r} has no url and cannot be identified.")
        existing = cache.get_concept(record.url)
        if existing is None and record.retired:
            return "up_to_date"
        if not record.retired and not record.names:
            raise ConceptFeedSaveError(
                f"Concept {record.url} has no names. At least one name is required."
            )
        if existing is not None and _is_current(existing, record.version_url, record.retired):
            return "up_to_date"
        if record.source:
            cache.get_source(record.source, record.owner)
        document = _concept_document(record, context)
        self._store.save_concept(document)
        cache.put_concept(document)
        return "added" if existing is None else "updated"

    def save_mapping(
        self,
        record: MappingRecord,
        cache: LookupCache,
        context: ExecutionContext,
    ) -> ItemState:
        """Create or update one mapping.

        Raises:
            ConceptFeedSaveError: If the source concept is unknown or the
                target cannot be resolved.
        """
        if not record.url:
            raise ConceptFeedSaveError(f"Mapping {record.id!r} has no url and cannot be identified.")
        from_concept = cache.get_concept(record.from_concept_url)
        if from_concept is None:
            raise ConceptFeedSaveError(
                f"Cannot create mapping from concept with URL {record.from_concept_url}, "
                "because the concept has not been imported."
            )
        to_concept = cache.get_concept(record.to_concept_url)
        if to_concept is None and not (record.to_source_name and record.to_concept_code):
            raise ConceptFeedSaveError(
                f"Cannot create mapping {record.url}: target concept {record.to_concept_url} "
                "has not been imported and no target source and code are given."
            )
        existing = self._store.get_mapping(record.url)
        if existing is None and record.retired:
            return "up_to_date"
        if existing is not None and _is_current(existing, record.version_url, record.retired):
            return "up_to_date"
        if record.to_source_name and to_concept is None:
            cache.get_source(record.to_source_name, None)
        document = _mapping_document(record, to_concept, context)
        self._store.save_mapping(document)
        return "added" if existing is None else "updated"


def _is_current(existing: dict[str, Any], version_url: str | None, retired: bool) -> bool:
    return existing.get("version_url") == version_url and bool(existing.get("retired")) == retired


def _concept_document(record: ConceptRecord, context: ExecutionContext) -> dict[str, Any]:
    document = asdict(record)
    document["updated_on"] = record.updated_on.isoformat() if record.updated_on else None
    document["extras"] = dict(record.extras)
    document["reference_terms"] = [
        {"map_type": SAME_AS_MAP_TYPE, "source": record.source, "code": record.id}
    ] if record.source and record.id else []
    document["updated_by"] = context.actor
    return document


def _mapping_document(
    record: MappingRecord,
    to_concept: dict[str, Any] | None,
    context: ExecutionContext,
) -> dict[str, Any]:
    document = asdict(record)
    document["updated_on"] = record.updated_on.isoformat() if record.updated_on else None
    document["to_concept_resolved"] = to_concept is not None
    document["updated_by"] = context.actor
    return document
