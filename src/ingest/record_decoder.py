"""Decode feed array elements into typed records.

This module turns one parsed concept or mapping element into an immutable
record and resolves its relative reference URLs against the subscription's
base URL. Any malformed element is fatal to the run.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterator, Mapping
from urllib.parse import urlsplit

from core.constants import FEED_DATE_FORMAT
from core.errors import ConceptFeedConfigError, ConceptFeedIngestError
from core.types import ConceptDescription, ConceptName, ConceptRecord, MappingRecord
from ingest.json_navigator import JsonTokenCursor, iter_array_values

_FEED_DATE_LENGTH = len("2000-01-01T00:00:00")


def build_base_url(subscription_url: str | None) -> str:
    """Derive ``scheme://host[:port]`` from a subscription endpoint.

    Args:
        subscription_url: Subscription URL, or ``None`` when unsubscribed.

    Returns:
        Base URL, or an empty string when there is no subscription.

    Raises:
        ConceptFeedConfigError: If the URL has no scheme or host.
    """
    if not subscription_url:
        return ""
    try:
        parts = urlsplit(subscription_url)
        port = parts.port
    except ValueError as error:
        raise ConceptFeedConfigError(f"{subscription_url} is not valid: {error}") from error
    if not parts.scheme or not parts.hostname:
        raise ConceptFeedConfigError(
            f"{subscription_url} is not valid: expected scheme://host[:port]/path."
        )
    base_url = f"{parts.scheme}://{parts.hostname}"
    if port is not None:
        base_url += f":{port}"
    return base_url


def prepend_base_url(base_url: str, url: str | None) -> str | None:
    """Make a relative reference absolute against ``base_url``.

    References that already carry a scheme, empty base URLs and missing
    references are returned unchanged.
    """
    if url is None or not base_url or urlsplit(url).scheme:
        return url
    if not url.startswith("/"):
        url = "/" + url
    return base_url + url


def decode_concept(payload: object, base_url: str) -> ConceptRecord:
    """Decode one ``concepts`` array element.

    Raises:
        ConceptFeedIngestError: If the element is not a well-formed concept.
    """
    element = _expect_object(payload, "concept")
    return ConceptRecord(
        id=_optional_text(element, "id"),
        url=prepend_base_url(base_url, _optional_text(element, "url")),
        version_url=prepend_base_url(base_url, _optional_text(element, "version_url")),
        uuid=_optional_text(element, "uuid"),
        external_id=_optional_text(element, "external_id"),
        concept_class=_optional_text(element, "concept_class"),
        datatype=_optional_text(element, "datatype"),
        source=_optional_text(element, "source"),
        owner=_optional_text(element, "owner"),
        display_name=_optional_text(element, "display_name"),
        retired=_optional_bool(element, "retired"),
        names=tuple(_decode_name(item) for item in _optional_list(element, "names")),
        descriptions=tuple(
            _decode_description(item) for item in _optional_list(element, "descriptions")
        ),
        extras=_optional_object(element, "extras"),
        updated_on=_optional_date(element, "updated_on"),
    )


def decode_mapping(payload: object, base_url: str) -> MappingRecord:
    """Decode one ``mappings`` array element.

    Raises:
        ConceptFeedIngestError: If the element is not a well-formed mapping.
    """
    element = _expect_object(payload, "mapping")
    return MappingRecord(
        map_type=_optional_text(element, "map_type"),
        url=prepend_base_url(base_url, _optional_text(element, "url")),
        id=_optional_text(element, "id"),
        uuid=_optional_text(element, "uuid"),
        external_id=_optional_text(element, "external_id"),
        version_url=_optional_text(element, "version_url"),
        retired=_optional_bool(element, "retired"),
        from_source_url=prepend_base_url(base_url, _optional_text(element, "from_source_url")),
        from_concept_url=prepend_base_url(base_url, _optional_text(element, "from_concept_url")),
        from_concept_code=_optional_text(element, "from_concept_code"),
        to_source_name=_optional_text(element, "to_source_name"),
        to_concept_code=_optional_text(element, "to_concept_code"),
        to_concept_url=prepend_base_url(base_url, _optional_text(element, "to_concept_url")),
        to_concept_name=_optional_text(element, "to_concept_name"),
        updated_on=_optional_date(element, "updated_on"),
    )


def iter_concepts(cursor: JsonTokenCursor, base_url: str) -> Iterator[ConceptRecord]:
    """Decode each element of an opened ``concepts`` array."""
    for payload in iter_array_values(cursor):
        yield decode_concept(payload, base_url)


def iter_mappings(cursor: JsonTokenCursor, base_url: str) -> Iterator[MappingRecord]:
    """Decode each element of an opened ``mappings`` array."""
    for payload in iter_array_values(cursor):
        yield decode_mapping(payload, base_url)


def parse_feed_date(raw_value: str) -> datetime:
    """Parse a feed date-time written without a timezone offset.

    Raises:
        ConceptFeedIngestError: If the value is not a feed date-time.
    """
    try:
        return datetime.strptime(raw_value[:_FEED_DATE_LENGTH], FEED_DATE_FORMAT)
    except ValueError as error:
        raise ConceptFeedIngestError(
            f"Invalid date '{raw_value}': expected {FEED_DATE_FORMAT}."
        ) from error


def _decode_name(payload: object) -> ConceptName:
    element = _expect_object(payload, "concept name")
    name = element.get("name")
    if not isinstance(name, str):
        raise ConceptFeedIngestError(f"Invalid concept name {element!r:.200}: 'name' must be a string.")
    return ConceptName(
        name=name,
        locale=_optional_text(element, "locale"),
        locale_preferred=_optional_bool(element, "locale_preferred"),
        name_type=_optional_text(element, "name_type"),
        external_id=_optional_text(element, "external_id"),
    )


def _decode_description(payload: object) -> ConceptDescription:
    element = _expect_object(payload, "concept description")
    description = element.get("description")
    if not isinstance(description, str):
        raise ConceptFeedIngestError(
            f"Invalid concept description {element!r:.200}: 'description' must be a string."
        )
    return ConceptDescription(
        description=description,
        locale=_optional_text(element, "locale"),
        locale_preferred=_optional_bool(element, "locale_preferred"),
        external_id=_optional_text(element, "external_id"),
    )


def _expect_object(payload: object, kind: str) -> Mapping[str, Any]:
    if not isinstance(payload, dict):
        raise ConceptFeedIngestError(
            f"Invalid {kind} element: expected an object, got {type(payload).__name__}."
        )
    return payload


def _optional_text(element: Mapping[str, Any], key: str) -> str | None:
    value = element.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or isinstance(value, (dict, list)):
        raise ConceptFeedIngestError(f"Invalid field '{key}': expected a string, got {value!r:.100}.")
    return str(value)


def _optional_bool(element: Mapping[str, Any], key: str) -> bool:
    value = element.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConceptFeedIngestError(f"Invalid field '{key}': expected true or false, got {value!r:.100}.")
    return value


def _optional_list(element: Mapping[str, Any], key: str) -> list[Any]:
    value = element.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConceptFeedIngestError(f"Invalid field '{key}': expected a list.")
    return value


def _optional_object(element: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = element.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConceptFeedIngestError(f"Invalid field '{key}': expected an object.")
    return value


def _optional_date(element: Mapping[str, Any], key: str) -> datetime | None:
    value = element.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConceptFeedIngestError(f"Invalid field '{key}': expected a date string.")
    return parse_feed_date(value)
