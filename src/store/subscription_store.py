"""Subscription settings persisted as YAML.

This module reads and writes the single feed subscription an installation
follows. The import core only ever reads it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, cast

from core.constants import SUBSCRIPTION_FILE_NAME
from core.errors import ConceptFeedConfigError, ConceptFeedDependencyError
from core.types import Subscription


class SubscriptionStore:
    """YAML-backed subscription settings under the data root."""

    def __init__(self, data_root: Path) -> None:
        self._path = data_root.expanduser().resolve() / SUBSCRIPTION_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def get_subscription(self) -> Subscription | None:
        """Load the subscription, or ``None`` when not subscribed.

        Raises:
            ConceptFeedConfigError: If the file is not a valid subscription.
        """
        if not self._path.exists():
            return None
        yaml = _import_yaml()
        try:
            payload = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except yaml.YAMLError as error:
            raise ConceptFeedConfigError(
                f"Failed to parse subscription at {self._path}: {error}. "
                "Fix the YAML syntax or subscribe again."
            ) from error
        if payload is None:
            return None
        return _subscription_from_payload(_expect_mapping(payload, self._path), self._path)

    def save_subscription(self, subscription: Subscription) -> None:
        """Write the subscription, replacing any previous one."""
        if not subscription.url.strip():
            raise ConceptFeedConfigError("Subscription url must not be empty.")
        yaml = _import_yaml()
        payload = {
            "url": subscription.url,
            "token": subscription.token,
            "subscribed_to_snapshot": subscription.subscribed_to_snapshot,
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")

    def unsubscribe(self) -> bool:
        """Remove the subscription; return whether one existed."""
        if not self._path.exists():
            return False
        self._path.unlink()
        return True


def _import_yaml() -> Any:
    try:
        import yaml  # type: ignore[import-untyped]
    except ImportError as error:
        raise ConceptFeedDependencyError(
            "Subscription storage requires PyYAML. Install with 'pip install pyyaml'."
        ) from error
    return yaml


def _expect_mapping(payload: object, path: Path) -> Mapping[str, object]:
    if not isinstance(payload, dict):
        raise ConceptFeedConfigError(f"Invalid subscription at {path}: expected a mapping.")
    return cast(Mapping[str, object], payload)


def _subscription_from_payload(payload: Mapping[str, object], path: Path) -> Subscription:
    url = payload.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ConceptFeedConfigError(f"Invalid subscription at {path}: 'url' must be a string.")
    token = payload.get("token")
    if token is not None and not isinstance(token, str):
        raise ConceptFeedConfigError(f"Invalid subscription at {path}: 'token' must be a string.")
    snapshot = payload.get("subscribed_to_snapshot", False)
    if not isinstance(snapshot, bool):
        raise ConceptFeedConfigError(
            f"Invalid subscription at {path}: 'subscribed_to_snapshot' must be true or false."
        )
    return Subscription(url=url.strip(), token=token or None, subscribed_to_snapshot=snapshot)
