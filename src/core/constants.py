"""Core constants used across ConceptFeed modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".conceptfeed")
INTAKE_DIR_PARTS = ("configuration", "loadAtStartup")
PROCESSED_DIR_NAME = "imported"
RUNS_DIR_NAME = "runs"
RUN_INDEX_FILE_NAME = "index.json"
RUN_LOCK_FILE_NAME = "active.lock"
RUN_STATE_FILE_NAME = "run.json"
RUN_ITEMS_FILE_NAME = "items.jsonl"
DICTIONARY_DIR_NAME = "dictionary"
CONCEPTS_DIR_NAME = "concepts"
MAPPINGS_DIR_NAME = "mappings"
SOURCES_FILE_NAME = "sources.json"
SUBSCRIPTION_FILE_NAME = "subscription.yaml"
DOWNLOADS_DIR_NAME = "downloads"
DEFAULT_BATCH_SIZE = 128
DEFAULT_WORKER_COUNT = 16
DEFAULT_QUEUE_CAPACITY = DEFAULT_WORKER_COUNT // 2
DEFAULT_DRAIN_TIMEOUT_SECONDS = 300
DEFAULT_HTTP_TIMEOUT_SECONDS = 60
DOWNLOAD_CHUNK_SIZE = 64 * 1024
MAX_ERROR_MESSAGE_LENGTH = 1024
ROOT_CAUSE_FRAME_LIMIT = 5
FEED_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
CONCEPTS_FIELD = "concepts"
MAPPINGS_FIELD = "mappings"
QUESTION_ANSWER_MAP_TYPE = "Q-AND-A"
SAME_AS_MAP_TYPE = "SAME-AS"
SUPPORTED_ARCHIVE_EXTENSIONS = (".zip", ".json")
UNRELEASED_VERSION = "HEAD"
DAEMON_ACTOR = "daemon"
TERMINATED_RUN_MESSAGE = "Process terminated before completion"
