"""Public SDK surface for ConceptFeed.

This module provides a stable import path for library users.
It re-exports the primary client and typed models.
"""

from __future__ import annotations

from client.feed_client import FeedClient
from core.config import ConceptFeedConfig
from core.types import (
    ConceptRecord,
    ExecutionContext,
    ImportItem,
    ImportProgress,
    ImportRun,
    MappingRecord,
    Subscription,
)
from ingest.importer import Importer, build_error_message
from store.import_sdk import ConceptFeedClient
from store.run_report import RunReport

__all__ = [
    "ConceptFeedClient",
    "ConceptFeedConfig",
    "ConceptRecord",
    "ExecutionContext",
    "FeedClient",
    "ImportItem",
    "ImportProgress",
    "ImportRun",
    "Importer",
    "MappingRecord",
    "RunReport",
    "Subscription",
    "build_error_message",
]
