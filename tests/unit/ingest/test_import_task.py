"""Unit tests for batch import tasks."""

from __future__ import annotations

from pathlib import Path

from core.errors import ConceptFeedSaveError
from core.types import SYSTEM_CONTEXT, ConceptName, ConceptRecord, ExecutionContext, ItemState
from ingest.import_task import ImportTask
from store.dictionary_store import DictionaryStore
from store.lookup_cache import LookupCache
from store.run_store import RunStore
from store.saver import DictionarySaver


class _FlakySaver:
    """Saver stand-in that fails for chosen concept codes."""

    def __init__(self, failing_ids: set[str]) -> None:
        self.failing_ids = failing_ids
        self.saved: list[str] = []

    def save_concept(
        self,
        record: ConceptRecord,
        cache: LookupCache,
        context: ExecutionContext,
    ) -> ItemState:
        if record.id in self.failing_ids:
            raise ConceptFeedSaveError(f"cannot save {record.id}")
        self.saved.append(str(record.id))
        return "added"


def _concept(code: str) -> ConceptRecord:
    return ConceptRecord(
        id=code,
        url=f"/concepts/{code}/",
        version_url=f"/concepts/{code}/1/",
        external_id=f"{code}-uuid",
        source="MyDict",
        names=(ConceptName(name=f"Concept {code}"),),
    )


def test_import_task_isolates_failing_record(tmp_path: Path) -> None:
    """A failing record should become an error item and the batch should continue."""
    run_store = RunStore(tmp_path)
    run = run_store.start_run(SYSTEM_CONTEXT)
    saver = _FlakySaver({"2"})
    task = ImportTask(
        saver,  # type: ignore[arg-type]
        LookupCache(DictionaryStore(tmp_path)),
        run_store,
        run.run_id,
        SYSTEM_CONTEXT,
    )
    task.set_concepts([_concept("1"), _concept("2"), _concept("3")])

    task()
    items = run_store.list_items(run.run_id)

    assert (
        [item.state for item in items] == ["added", "error", "added"]
        and saver.saved == ["1", "3"]
        and items[1].uuid == "2-uuid"
        and "cannot save 2" in str(items[1].error_message)
    )


def test_import_task_truncates_long_error_messages(tmp_path: Path) -> None:
    """Error descriptions should be capped at 1024 characters."""
    run_store = RunStore(tmp_path)
    run = run_store.start_run(SYSTEM_CONTEXT)

    class _VerboseSaver:
        def save_concept(self, record: ConceptRecord, cache: LookupCache, context: ExecutionContext) -> ItemState:
            raise ValueError("x" * 5000)

    task = ImportTask(
        _VerboseSaver(),  # type: ignore[arg-type]
        LookupCache(DictionaryStore(tmp_path)),
        run_store,
        run.run_id,
        SYSTEM_CONTEXT,
    )
    task.set_concepts([_concept("1")])
    task.run()

    assert len(str(run_store.list_items(run.run_id)[0].error_message)) == 1024


def test_import_task_records_up_to_date_on_reimport(tmp_path: Path) -> None:
    """Re-importing an unchanged concept should record an up_to_date item."""
    run_store = RunStore(tmp_path)
    dictionary_store = DictionaryStore(tmp_path)
    saver = DictionarySaver(dictionary_store)
    run = run_store.start_run(SYSTEM_CONTEXT)
    for _ in range(2):
        task = ImportTask(saver, LookupCache(dictionary_store), run_store, run.run_id, SYSTEM_CONTEXT)
        task.set_concepts([_concept("1")])
        task.run()

    states = [item.state for item in run_store.list_items(run.run_id)]

    assert states == ["added", "up_to_date"]
