"""Fixed-size batching of decoded records.

This module groups records into batches handed to the worker pool and
holds the exclusion rules applied to mappings of a single-concept import.
"""

from __future__ import annotations

from typing import Callable, Generic, Iterable, Iterator, TypeVar

from core.constants import QUESTION_ANSWER_MAP_TYPE
from core.logging_config import get_logger
from core.types import ConceptRecord, MappingRecord

_LOGGER = get_logger(__name__)

RecordT = TypeVar("RecordT")


class RecordBatcher(Generic[RecordT]):
    """Accumulate records and emit them in groups of ``batch_size``."""

    def __init__(
        self,
        batch_size: int,
        exclude: Callable[[RecordT], bool] | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self._batch_size = batch_size
        self._exclude = exclude
        self._pending: list[RecordT] = []
        self.skipped_count = 0

    def add(self, record: RecordT) -> list[RecordT] | None:
        """Add one record; return a full batch when capacity is reached."""
        if self._exclude is not None and self._exclude(record):
            self.skipped_count += 1
            return None
        self._pending.append(record)
        if len(self._pending) < self._batch_size:
            return None
        batch = self._pending
        self._pending = []
        return batch

    def flush(self) -> list[RecordT] | None:
        """Return the non-empty remainder at end of input."""
        if not self._pending:
            return None
        batch = self._pending
        self._pending = []
        return batch

    def batches(self, records: Iterable[RecordT]) -> Iterator[list[RecordT]]:
        """Yield full batches while consuming ``records``, then the remainder."""
        for record in records:
            batch = self.add(record)
            if batch is not None:
                yield batch
        remainder = self.flush()
        if remainder is not None:
            yield remainder


def iter_batches(
    records: Iterable[RecordT],
    batch_size: int,
    exclude: Callable[[RecordT], bool] | None = None,
) -> Iterator[list[RecordT]]:
    """Yield full batches of ``records`` followed by the remainder."""
    return RecordBatcher(batch_size, exclude).batches(records)


def build_single_concept_exclusion(concept: ConceptRecord) -> Callable[[MappingRecord], bool]:
    """Build the mapping filter used when importing one concept.

    Excluded are Q-AND-A mappings that answer with the imported concept
    itself, and mappings to the concept's own source and code, which the
    saver already records as the concept's SAME-AS reference.
    """

    def exclude(mapping: MappingRecord) -> bool:
        is_question_answer = mapping.map_type == QUESTION_ANSWER_MAP_TYPE
        if is_question_answer and mapping.to_concept_url == concept.url:
            _LOGGER.debug(
                "mapping_skipped_answer_of_imported_concept",
                mapping_url=mapping.url,
                concept_url=concept.url,
            )
            return True
        if (
            mapping.to_source_name is not None
            and mapping.to_source_name == concept.source
            and mapping.to_concept_code == concept.id
        ):
            _LOGGER.debug(
                "mapping_skipped_own_reference",
                mapping_url=mapping.url,
                concept_url=concept.url,
            )
            return True
        return False

    return exclude
