"""Unit tests for dictionary create-or-update persistence."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from core.errors import ConceptFeedSaveError
from core.types import ConceptName, ConceptRecord, ExecutionContext, MappingRecord
from store.dictionary_store import DictionaryStore
from store.lookup_cache import LookupCache
from store.saver import DictionarySaver

CONTEXT = ExecutionContext(actor="daemon")


def _concept(code: str, version: str = "1") -> ConceptRecord:
    return ConceptRecord(
        id=code,
        url=f"/sources/MyDict/concepts/{code}/",
        version_url=f"/sources/MyDict/concepts/{code}/{version}/",
        source="MyDict",
        owner="MyOrg",
        names=(ConceptName(name=f"Concept {code}", locale="en"),),
    )


def _saver(tmp_path: Path) -> tuple[DictionarySaver, DictionaryStore]:
    store = DictionaryStore(tmp_path)
    return DictionarySaver(store), store


def test_save_concept_adds_then_updates_then_skips(tmp_path: Path) -> None:
    """Concepts should be added, updated on a new version and skipped when current."""
    saver, store = _saver(tmp_path)

    states = [
        saver.save_concept(_concept("1"), LookupCache(store), CONTEXT),
        saver.save_concept(_concept("1", version="2"), LookupCache(store), CONTEXT),
        saver.save_concept(_concept("1", version="2"), LookupCache(store), CONTEXT),
    ]

    assert states == ["added", "updated", "up_to_date"] and store.count_concepts() == 1


def test_save_concept_records_own_reference_and_source(tmp_path: Path) -> None:
    """Saved concepts should carry their SAME-AS reference and register the source."""
    saver, store = _saver(tmp_path)

    saver.save_concept(_concept("1"), LookupCache(store), CONTEXT)
    document = store.get_concept("/sources/MyDict/concepts/1/")

    assert (
        document is not None
        and document["reference_terms"] == [{"map_type": "SAME-AS", "source": "MyDict", "code": "1"}]
        and document["updated_by"] == "daemon"
        and store.get_source("MyDict") == {"name": "MyDict", "owner": "MyOrg"}
    )


def test_save_concept_requires_names(tmp_path: Path) -> None:
    """Active concepts without names should be rejected."""
    saver, store = _saver(tmp_path)

    with pytest.raises(ConceptFeedSaveError):
        saver.save_concept(replace(_concept("1"), names=()), LookupCache(store), CONTEXT)


def test_save_retired_unknown_concept_is_up_to_date(tmp_path: Path) -> None:
    """Retired concepts that were never imported should not be created."""
    saver, store = _saver(tmp_path)

    state = saver.save_concept(replace(_concept("1"), retired=True, names=()), LookupCache(store), CONTEXT)

    assert state == "up_to_date" and store.count_concepts() == 0


def test_save_mapping_requires_imported_from_concept(tmp_path: Path) -> None:
    """Mappings from unknown concepts should be rejected."""
    saver, store = _saver(tmp_path)
    mapping = MappingRecord(
        map_type="SAME-AS",
        url="/mappings/1/",
        from_concept_url="/sources/MyDict/concepts/404/",
        to_source_name="CIEL",
        to_concept_code="1",
    )

    with pytest.raises(ConceptFeedSaveError):
        saver.save_mapping(mapping, LookupCache(store), CONTEXT)


def test_save_mapping_resolves_internal_and_external_targets(tmp_path: Path) -> None:
    """Mappings to imported concepts or to source and code pairs should be saved."""
    saver, store = _saver(tmp_path)
    for code in ("1", "2"):
        saver.save_concept(_concept(code), LookupCache(store), CONTEXT)
    internal = MappingRecord(
        map_type="Q-AND-A",
        url="/mappings/1/",
        from_concept_url="/sources/MyDict/concepts/1/",
        to_concept_url="/sources/MyDict/concepts/2/",
    )
    external = MappingRecord(
        map_type="SAME-AS",
        url="/mappings/2/",
        from_concept_url="/sources/MyDict/concepts/1/",
        to_source_name="ICD-10-WHO",
        to_concept_code="B54",
    )
    unresolved = MappingRecord(
        map_type="SAME-AS",
        url="/mappings/3/",
        from_concept_url="/sources/MyDict/concepts/1/",
        to_concept_url="/sources/MyDict/concepts/404/",
    )
    cache = LookupCache(store)

    states = [saver.save_mapping(internal, cache, CONTEXT), saver.save_mapping(external, cache, CONTEXT)]
    with pytest.raises(ConceptFeedSaveError):
        saver.save_mapping(unresolved, cache, CONTEXT)

    assert states == ["added", "added"] and store.count_mappings() == 2
