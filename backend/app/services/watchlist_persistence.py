"""
Watchlist persistence — serializes the collection under one namespaced key.

Guarantees:
  - load() never raises; anything it cannot fully trust becomes an empty
    collection.
  - save() never raises; failures are classified, logged and returned as a
    StoreNotice, and the caller's in-memory state stays authoritative.
"""
import json
import logging
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import ValidationError

from app.schemas.watchlist import CategoryEnum, PersistenceIssue, StoreNotice, WatchlistItem
from app.services.kv_store import (
    KeyValueStore,
    StorageError,
    StorageQuotaExceededError,
)

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "tmovies_watchlist"

_CATEGORY_VALUES = {c.value for c in CategoryEnum}

_UNAVAILABLE = "Watchlist storage is unavailable. Changes will last for this session only."
_FULL = "Watchlist storage is full. Remove some items to keep changes after a restart."
_UNREADABLE = "Saved watchlist was unreadable and has been reset."
_INVALID = "Saved watchlist was invalid and has been reset."


def validate_watchlist_data(candidate: Any) -> bool:
    """
    Structural check on decoded JSON.

    One malformed element rejects the whole payload; a partially typed
    collection is never handed to the store.
    """
    if not isinstance(candidate, list):
        return False
    return all(
        isinstance(item, dict)
        and isinstance(item.get("id"), str)
        and isinstance(item.get("category"), str)
        and item["category"] in _CATEGORY_VALUES
        and isinstance(item.get("title"), str)
        for item in candidate
    )


class WatchlistPersistence:
    """Reads and writes the watchlist through a KeyValueStore."""

    def __init__(
        self,
        backend: KeyValueStore,
        key: str = DEFAULT_STORAGE_KEY,
        on_issue: Callable[[StoreNotice], None] | None = None,
    ) -> None:
        self.backend = backend
        self.key = key
        self.on_issue = on_issue

    def _report(self, issue: PersistenceIssue, message: str) -> StoreNotice:
        notice = StoreNotice(issue=issue, message=message)
        if self.on_issue is not None:
            self.on_issue(notice)
        return notice

    @staticmethod
    def validate(candidate: Any) -> bool:
        return validate_watchlist_data(candidate)

    def save(self, items: Sequence[WatchlistItem]) -> StoreNotice | None:
        """
        Overwrite the durable copy with *items*.

        Returns a notice describing the failure, or None when the write
        succeeded.
        """
        payload = json.dumps(
            [item.to_record() for item in items],
            ensure_ascii=False,
            separators=(",", ":"),
        ).encode("utf-8")

        try:
            self.backend.set(self.key, payload)
        except StorageQuotaExceededError as exc:
            logger.error("Watchlist storage full, remove some items: %s", exc)
            return self._report(PersistenceIssue.QUOTA_EXCEEDED, _FULL)
        except (StorageError, OSError) as exc:
            logger.error("Failed to save watchlist: %s", exc)
            return self._report(PersistenceIssue.PERSISTENCE_UNAVAILABLE, _UNAVAILABLE)

        logger.debug("Saved %d watchlist items under %s", len(items), self.key)
        return None

    def load(self) -> tuple[WatchlistItem, ...]:
        """Read the durable copy. A missing key is the normal first-run case."""
        items, notice = self.read()
        if notice is not None and self.on_issue is not None:
            self.on_issue(notice)
        return items

    def read(self) -> tuple[tuple[WatchlistItem, ...], StoreNotice | None]:
        """
        Like load(), but hands the failure back instead of reporting it.

        Safe to run off the event loop: it touches nothing but the backend.
        """
        try:
            raw = self.backend.get(self.key)
        except (StorageError, OSError) as exc:
            logger.error("Failed to load watchlist: %s", exc)
            return (), StoreNotice(issue=PersistenceIssue.PERSISTENCE_UNAVAILABLE, message=_UNAVAILABLE)

        if not raw:
            return (), None

        corrupt = StoreNotice(issue=PersistenceIssue.CORRUPT_DATA, message=_INVALID)
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, ValueError, RecursionError) as exc:
            logger.warning("Discarding unreadable watchlist payload: %s", exc)
            return (), StoreNotice(issue=PersistenceIssue.CORRUPT_DATA, message=_UNREADABLE)

        if not self.validate(data):
            logger.warning("Discarding watchlist payload that failed validation")
            return (), corrupt

        try:
            items = tuple(WatchlistItem.model_validate(record) for record in data)
        except ValidationError as exc:
            logger.warning("Discarding watchlist payload with bad fields: %s", exc)
            return (), corrupt

        if len({item.id for item in items}) != len(items):
            logger.warning("Discarding watchlist payload with duplicate ids")
            return (), corrupt

        logger.info("Loaded %d watchlist items from %s", len(items), self.key)
        return items, None
