"""Unit tests for YAML subscription storage."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import ConceptFeedConfigError
from core.types import Subscription
from store.subscription_store import SubscriptionStore


def test_subscription_round_trip_and_unsubscribe(tmp_path: Path) -> None:
    """Saved subscriptions should load back and be removable."""
    store = SubscriptionStore(tmp_path)
    subscription = Subscription(url="https://api.example.org/orgs/A/collections/B/", token="t", subscribed_to_snapshot=True)

    store.save_subscription(subscription)
    loaded = store.get_subscription()
    removed = store.unsubscribe()

    assert loaded == subscription and removed and store.get_subscription() is None


def test_invalid_subscription_yaml_is_config_error(tmp_path: Path) -> None:
    """Malformed subscription files should raise a config error."""
    store = SubscriptionStore(tmp_path)
    store.path.write_text("url: [unterminated\n", encoding="utf-8")

    with pytest.raises(ConceptFeedConfigError):
        store.get_subscription()


def test_save_subscription_rejects_empty_url(tmp_path: Path) -> None:
    """Subscriptions need a URL."""
    with pytest.raises(ConceptFeedConfigError):
        SubscriptionStore(tmp_path).save_subscription(Subscription(url="  "))
