"""Unit tests for record batching and single-concept exclusions."""

from __future__ import annotations

import math

import pytest

from core.types import ConceptRecord, MappingRecord
from ingest.batcher import RecordBatcher, build_single_concept_exclusion, iter_batches


@pytest.mark.parametrize(("record_count", "batch_size"), [(0, 128), (1, 128), (128, 128), (300, 128), (7, 3)])
def test_iter_batches_emits_ceil_batches_with_every_record_once(record_count: int, batch_size: int) -> None:
    """N records should yield ceil(N/B) batches covering each record exactly once."""
    batches = list(iter_batches(range(record_count), batch_size))
    flattened = [record for batch in batches for record in batch]

    assert (
        len(batches) == math.ceil(record_count / batch_size)
        and flattened == list(range(record_count))
        and all(len(batch) <= batch_size for batch in batches)
    )


def test_batcher_emits_full_batch_then_remainder() -> None:
    """Full batches should be returned from add, the remainder from flush."""
    batcher: RecordBatcher[int] = RecordBatcher(2)

    emitted = [batcher.add(value) for value in (1, 2, 3)]

    assert emitted == [None, [1, 2], None] and batcher.flush() == [3] and batcher.flush() is None


def test_batcher_rejects_non_positive_size() -> None:
    """A zero batch size should be rejected."""
    with pytest.raises(ValueError):
        RecordBatcher(0)


def test_single_concept_exclusion_skips_answers_and_own_reference() -> None:
    """Mappings answering with the concept or pointing at its own code should be skipped."""
    concept = ConceptRecord(id="9001", url="/concepts/9001/", source="MyDict")
    exclude = build_single_concept_exclusion(concept)
    answer = MappingRecord(map_type="Q-AND-A", url="/m/1/", to_concept_url="/concepts/9001/")
    own_reference = MappingRecord(
        map_type="SAME-AS", url="/m/2/", to_source_name="MyDict", to_concept_code="9001"
    )
    external = MappingRecord(
        map_type="SAME-AS", url="/m/3/", to_source_name="SNOMED-CT", to_concept_code="77386006"
    )

    batches = list(iter_batches([answer, own_reference, external], 128, exclude))

    assert batches == [[external]]


def test_batcher_counts_excluded_records() -> None:
    """Excluded records should be counted and left out of every batch."""
    batcher: RecordBatcher[int] = RecordBatcher(2, exclude=lambda value: value % 3 == 0)

    batches = list(batcher.batches(range(1, 8)))

    assert batches == [[1, 2], [4, 5], [7]] and batcher.skipped_count == 2
