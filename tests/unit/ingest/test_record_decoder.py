"""Unit tests for feed record decoding."""

from __future__ import annotations

from datetime import datetime

import pytest

from core.errors import ConceptFeedConfigError, ConceptFeedIngestError
from ingest.record_decoder import (
    build_base_url,
    decode_concept,
    decode_mapping,
    parse_feed_date,
    prepend_base_url,
)

BASE_URL = "https://api.example.org:8443"


def test_build_base_url_keeps_scheme_host_and_port() -> None:
    """Base URL should drop the path of the subscription endpoint."""
    assert build_base_url("https://api.example.org:8443/orgs/MyOrg/collections/C/") == BASE_URL


def test_build_base_url_is_empty_without_subscription() -> None:
    """No subscription should mean references stay relative."""
    assert build_base_url(None) == ""


def test_build_base_url_rejects_invalid_url() -> None:
    """Subscription URLs without a host should be rejected."""
    with pytest.raises(ConceptFeedConfigError):
        build_base_url("not a url")


def test_prepend_base_url_adds_missing_slash_and_is_idempotent() -> None:
    """Prefixing should add a separator once and leave absolute URLs alone."""
    once = prepend_base_url(BASE_URL, "orgs/MyOrg/concepts/1/")
    twice = prepend_base_url(BASE_URL, once)

    assert once == twice == f"{BASE_URL}/orgs/MyOrg/concepts/1/"


def test_decode_concept_prefixes_only_url_fields() -> None:
    """Concept url and version_url should be absolute, codes untouched."""
    concept = decode_concept(
        {
            "id": "1001",
            "url": "/orgs/MyOrg/sources/MyDict/concepts/1001/",
            "version_url": "/orgs/MyOrg/sources/MyDict/concepts/1001/1/",
            "source": "MyDict",
            "names": [{"name": "Malaria", "locale": "en"}],
            "updated_on": "2024-03-01T10:15:30.123Z",
        },
        BASE_URL,
    )

    assert (
        concept.url == f"{BASE_URL}/orgs/MyOrg/sources/MyDict/concepts/1001/"
        and concept.version_url == f"{BASE_URL}/orgs/MyOrg/sources/MyDict/concepts/1001/1/"
        and concept.id == "1001"
        and concept.names[0].name == "Malaria"
        and concept.updated_on == datetime(2024, 3, 1, 10, 15, 30)
    )


def test_decode_mapping_prefixes_reference_fields() -> None:
    """Mapping url, from and to references should be absolute, version_url left as is."""
    mapping = decode_mapping(
        {
            "map_type": "SAME-AS",
            "url": "/mappings/1/",
            "version_url": "/mappings/1/1/",
            "from_source_url": "/sources/A/",
            "from_concept_url": "/sources/A/concepts/1/",
            "to_concept_url": "/sources/B/concepts/2/",
            "to_concept_code": "2",
        },
        BASE_URL,
    )

    assert (
        mapping.url == f"{BASE_URL}/mappings/1/"
        and mapping.version_url == "/mappings/1/1/"
        and mapping.from_source_url == f"{BASE_URL}/sources/A/"
        and mapping.from_concept_url == f"{BASE_URL}/sources/A/concepts/1/"
        and mapping.to_concept_url == f"{BASE_URL}/sources/B/concepts/2/"
        and mapping.to_concept_code == "2"
    )


def test_decode_concept_rejects_non_object_element() -> None:
    """Array elements that are not objects should be fatal."""
    with pytest.raises(ConceptFeedIngestError):
        decode_concept(["not", "a", "concept"], BASE_URL)


def test_decode_concept_rejects_invalid_retired_flag() -> None:
    """Typed fields should be validated while decoding."""
    with pytest.raises(ConceptFeedIngestError):
        decode_concept({"id": "1", "url": "/c/1/", "retired": "yes"}, BASE_URL)


def test_parse_feed_date_rejects_garbage() -> None:
    """Feed dates must follow the export date format."""
    with pytest.raises(ConceptFeedIngestError):
        parse_feed_date("yesterday")
