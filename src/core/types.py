"""Shared typed models.

This module defines immutable data models used by the ingest, store,
client and CLI layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Literal, Mapping

from core.constants import DAEMON_ACTOR

ItemKind = Literal["CONCEPT", "MAPPING"]
ItemState = Literal["added", "updated", "up_to_date", "error"]
RunStatus = Literal["running", "succeeded", "failed", "aborted"]
SourceKind = Literal["subscription", "file"]
SUCCESS_ITEM_STATES: tuple[ItemState, ...] = ("added", "updated", "up_to_date")


@dataclass(frozen=True)
class ExecutionContext:
    """Privilege context an import runs under.

    Attributes:
        actor: Identity recorded on runs and persisted documents.
    """

    actor: str = DAEMON_ACTOR


SYSTEM_CONTEXT = ExecutionContext()


@dataclass(frozen=True)
class ConceptName:
    """One localized name of a concept."""

    name: str
    locale: str | None = None
    locale_preferred: bool = False
    name_type: str | None = None
    external_id: str | None = None


@dataclass(frozen=True)
class ConceptDescription:
    """One localized description of a concept."""

    description: str
    locale: str | None = None
    locale_preferred: bool = False
    external_id: str | None = None


@dataclass(frozen=True)
class ConceptRecord:
    """Decoded concept element of a feed document.

    Attributes:
        id: Concept code inside its source.
        url: Canonical concept reference, absolute after decoding.
        version_url: Reference to this concept version, absolute after decoding.
        source: Owning source name.
        external_id: Stable external identity used for audit items.
        retired: Whether the concept is retired in the feed.
        names: Localized names.
        descriptions: Localized descriptions.
        extras: Free-form extra attributes.
        updated_on: Feed modification timestamp.
    """

    id: str | None
    url: str | None
    version_url: str | None = None
    uuid: str | None = None
    external_id: str | None = None
    concept_class: str | None = None
    datatype: str | None = None
    source: str | None = None
    owner: str | None = None
    display_name: str | None = None
    retired: bool = False
    names: tuple[ConceptName, ...] = ()
    descriptions: tuple[ConceptDescription, ...] = ()
    extras: Mapping[str, object] = field(default_factory=dict)
    updated_on: datetime | None = None


@dataclass(frozen=True)
class MappingRecord:
    """Decoded mapping element of a feed document.

    Attributes:
        map_type: Relationship type, e.g. ``SAME-AS`` or ``Q-AND-A``.
        url: Canonical mapping reference, absolute after decoding.
        from_concept_url: Reference to the concept the mapping belongs to.
        to_concept_url: Reference to the target concept when it is in a feed.
        to_source_name: Target source name for external references.
        to_concept_code: Target code for external references.
    """

    map_type: str | None
    url: str | None
    id: str | None = None
    uuid: str | None = None
    external_id: str | None = None
    version_url: str | None = None
    retired: bool = False
    from_source_url: str | None = None
    from_concept_url: str | None = None
    from_concept_code: str | None = None
    to_source_name: str | None = None
    to_concept_code: str | None = None
    to_concept_url: str | None = None
    to_concept_name: str | None = None
    updated_on: datetime | None = None


@dataclass(frozen=True)
class Subscription:
    """Feed subscription settings.

    Attributes:
        url: Feed collection or source endpoint.
        token: Optional API token.
        subscribed_to_snapshot: Use incremental ``updatedSince`` fetches.
    """

    url: str
    token: str | None = None
    subscribed_to_snapshot: bool = False


@dataclass(frozen=True)
class ImportRun:
    """Persisted lifecycle record of one import attempt."""

    run_id: str
    local_date_started: str
    status: RunStatus
    source_kind: SourceKind
    started_by: str
    local_date_stopped: str | None = None
    feed_date_started: str | None = None
    release_version: str | None = None
    subscription_url: str | None = None
    error_message: str | None = None

    @property
    def stopped(self) -> bool:
        """Return whether the run has been finalized."""
        return self.local_date_stopped is not None


@dataclass(frozen=True)
class ImportItem:
    """Audit entry for one ingested record."""

    run_id: str
    kind: ItemKind
    state: ItemState
    uuid: str | None
    url: str | None
    version_url: str | None
    error_message: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class ImportProgress:
    """Elapsed time and progress estimate of a run."""

    time_seconds: int
    progress: int


@dataclass
class FeedResponse:
    """Content stream returned by a feed fetch.

    Attributes:
        stream: Binary stream positioned at the JSON document start.
        content_length: Bytes to process from the stream, -1 when unknown.
        updated_to: Feed timestamp the content is current to.
        release_version: Release the export belongs to, ``None`` for the
            unreleased head or an incremental fetch.
    """

    stream: BinaryIO
    content_length: int
    updated_to: datetime | None
    release_version: str | None = None
