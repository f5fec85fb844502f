"""ConceptFeed exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class ConceptFeedError(Exception):
    """Base exception for all ConceptFeed failures."""


class ConceptFeedConfigError(ConceptFeedError):
    """Raised for invalid runtime configuration or intake contents."""


class ConceptFeedIngestError(ConceptFeedError):
    """Raised for structural and decode failures of a feed document."""


class ConceptFeedTimeoutError(ConceptFeedIngestError):
    """Raised when a worker pool does not drain within its timeout."""


class ConceptFeedFeedError(ConceptFeedError):
    """Raised for remote feed fetch failures."""


class ConceptFeedStoreError(ConceptFeedError):
    """Raised for run store and dictionary store failures."""


class ConceptFeedSaveError(ConceptFeedError):
    """Raised when one decoded record cannot be persisted."""


class ConceptFeedRunActiveError(ConceptFeedError):
    """Raised when an import is started while another one is open."""


class ConceptFeedImportError(ConceptFeedError):
    """Raised to the trigger when an import run aborts on a fatal fault."""


class ConceptFeedDependencyError(ConceptFeedError):
    """Raised when an optional runtime dependency is missing."""
