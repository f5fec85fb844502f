"""File-backed concept dictionary.

This module persists imported concepts and mappings as one JSON document
per entity, keyed by a digest of the entity's canonical URL, plus a small
index of the sources those concepts belong to.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
import threading
from typing import Any

from core.constants import CONCEPTS_DIR_NAME, DICTIONARY_DIR_NAME, MAPPINGS_DIR_NAME, SOURCES_FILE_NAME
from core.errors import ConceptFeedStoreError
from store.json_io import read_json_file, write_json_file


class DictionaryStore:
    """Concept and mapping documents under ``<data_root>/dictionary``."""

    def __init__(self, data_root: Path) -> None:
        dictionary_root = data_root.expanduser().resolve() / DICTIONARY_DIR_NAME
        self._concepts_dir = dictionary_root / CONCEPTS_DIR_NAME
        self._mappings_dir = dictionary_root / MAPPINGS_DIR_NAME
        self._sources_path = dictionary_root / SOURCES_FILE_NAME
        self._concepts_dir.mkdir(parents=True, exist_ok=True)
        self._mappings_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def get_concept(self, url: str) -> dict[str, Any] | None:
        """Load a concept document by canonical URL."""
        return _load_document(self._concepts_dir, url)

    def save_concept(self, document: dict[str, Any]) -> None:
        """Write a concept document keyed by its ``url``."""
        self._save_document(self._concepts_dir, document)

    def get_mapping(self, url: str) -> dict[str, Any] | None:
        """Load a mapping document by canonical URL."""
        return _load_document(self._mappings_dir, url)

    def save_mapping(self, document: dict[str, Any]) -> None:
        """Write a mapping document keyed by its ``url``."""
        self._save_document(self._mappings_dir, document)

    def get_source(self, name: str) -> dict[str, Any] | None:
        """Load a registered source entry by name."""
        source = self._read_sources().get(name)
        return source if isinstance(source, dict) else None

    def save_source(self, name: str, owner: str | None) -> dict[str, Any]:
        """Register a source name once and return its entry."""
        with self._lock:
            sources = self._read_sources()
            existing = sources.get(name)
            if isinstance(existing, dict):
                return existing
            entry: dict[str, Any] = {"name": name, "owner": owner}
            sources[name] = entry
            write_json_file(self._sources_path, sources)
            return entry

    def count_concepts(self) -> int:
        """Return the number of stored concept documents."""
        return sum(1 for _ in self._concepts_dir.glob("*.json"))

    def count_mappings(self) -> int:
        """Return the number of stored mapping documents."""
        return sum(1 for _ in self._mappings_dir.glob("*.json"))

    def _save_document(self, directory: Path, document: dict[str, Any]) -> None:
        url = document.get("url")
        if not isinstance(url, str) or not url:
            raise ConceptFeedStoreError(
                f"Cannot store document without a url under {directory}: {document!r:.200}"
            )
        with self._lock:
            write_json_file(_document_path(directory, url), document)

    def _read_sources(self) -> dict[str, Any]:
        payload = read_json_file(self._sources_path, default_value={})
        if not isinstance(payload, dict):
            raise ConceptFeedStoreError(f"Invalid source index at {self._sources_path}: expected object.")
        return payload


def _load_document(directory: Path, url: str) -> dict[str, Any] | None:
    document_path = _document_path(directory, url)
    if not document_path.exists():
        return None
    payload = read_json_file(document_path)
    if not isinstance(payload, dict):
        raise ConceptFeedStoreError(f"Invalid dictionary document at {document_path}: expected object.")
    return payload


def _document_path(directory: Path, url: str) -> Path:
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
    return directory / f"{digest}.json"
