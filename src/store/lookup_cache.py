"""Per-batch lookup memo over the dictionary store."""

from __future__ import annotations

from typing import Any

from store.dictionary_store import DictionaryStore

_MISSING: dict[str, Any] = {}


class LookupCache:
    """Memoize concept and source lookups while one batch is resolved.

    An instance belongs to exactly one import task and is discarded with it,
    so it is never read or written from two threads.
    """

    def __init__(self, store: DictionaryStore) -> None:
        self._store = store
        self._concepts: dict[str, dict[str, Any]] = {}
        self._sources: dict[str, dict[str, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get_concept(self, url: str | None) -> dict[str, Any] | None:
        """Return a stored concept by URL, consulting the store on a miss."""
        if not url:
            return None
        cached = self._concepts.get(url)
        if cached is not None:
            self.hits += 1
            return None if cached is _MISSING else cached
        self.misses += 1
        document = self._store.get_concept(url)
        self._concepts[url] = document if document is not None else _MISSING
        return document

    def put_concept(self, document: dict[str, Any]) -> None:
        """Remember a concept the current batch has just written."""
        self._concepts[str(document["url"])] = document

    def get_source(self, name: str, owner: str | None) -> dict[str, Any]:
        """Return the source entry by name, registering it on first sight."""
        cached = self._sources.get(name)
        if cached is not None:
            self.hits += 1
            return cached
        self.misses += 1
        source = self._store.get_source(name) or self._store.save_source(name, owner)
        self._sources[name] = source
        return source
