"""
Watchlist store — the single owner of the in-memory watchlist.

Ordering rule: nothing is written through the persistence layer until
hydrate() has replaced the in-memory collection with the durable one.
Writing earlier would overwrite the user's saved list with an empty one.
If the durable copy could not be read at all, the store stays session-only.
"""
import asyncio
import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from app.schemas.watchlist import (
    CategoryEnum,
    PersistenceIssue,
    StoreNotice,
    WatchlistCandidate,
    WatchlistItem,
    canonical_id,
)
from app.services.watchlist_persistence import WatchlistPersistence

logger = logging.getLogger(__name__)

MAX_NOTICES = 20

Snapshot = tuple[WatchlistItem, ...]
ChangeListener = Callable[[Snapshot], None]
IssueListener = Callable[[StoreNotice], None]


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_item(candidate: WatchlistCandidate, added_at: str | None = None) -> WatchlistItem:
    """Normalize a candidate into a stored item."""
    return WatchlistItem(
        id=candidate.canonical_id,
        category=candidate.category or CategoryEnum.MOVIE,
        poster_path=candidate.poster_path,
        title=candidate.display_title,
        original_title=candidate.original_title or "",
        name=candidate.name or "",
        overview=candidate.overview,
        backdrop_path=candidate.backdrop_path,
        added_at=added_at or _utcnow_iso(),
    )


class WatchlistStore:
    """
    In-memory watchlist with write-through persistence after hydration.

    Mutations are synchronous and run to completion; hydrate() is the only
    coroutine. Subscribers see every change before the mutating call
    returns.
    """

    def __init__(
        self,
        persistence: WatchlistPersistence,
        clock: Callable[[], str] = _utcnow_iso,
    ) -> None:
        self._persistence = persistence
        self._clock = clock
        self._items: Snapshot = ()
        self._index: dict[str, WatchlistItem] = {}
        self._hydrated = False
        self._writes_enabled = False
        self._hydration: asyncio.Task | None = None
        self._persistent = True
        self._listeners: list[ChangeListener] = []
        self._issue_listeners: list[IssueListener] = []
        self._notices: deque[StoreNotice] = deque(maxlen=MAX_NOTICES)

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def hydrated(self) -> bool:
        return self._hydrated

    @property
    def persistent(self) -> bool:
        """False while the latest durable read or write has failed."""
        return self._persistent

    @property
    def count(self) -> int:
        return len(self._items)

    def count_label(self) -> str:
        n = len(self._items)
        return f"{n} {'item' if n == 1 else 'items'}"

    def observe(self) -> Snapshot:
        return self._items

    def items_by_category(self, category: CategoryEnum | str) -> Snapshot:
        category = CategoryEnum(category)
        return tuple(item for item in self._items if item.category == category)

    def has(self, item_id: int | str) -> bool:
        try:
            return canonical_id(item_id) in self._index
        except ValueError:
            return False

    def get(self, item_id: int | str) -> WatchlistItem | None:
        try:
            return self._index.get(canonical_id(item_id))
        except ValueError:
            return None

    # ── Hydration ─────────────────────────────────────────────────────────────

    async def hydrate(self) -> None:
        """
        Replace the in-memory collection with the durable one, once.

        Concurrent callers await the same load; later calls return
        immediately.
        """
        if self._hydrated:
            return
        if self._hydration is None:
            self._hydration = asyncio.ensure_future(self._hydrate_once())
        await asyncio.shield(self._hydration)

    async def _hydrate_once(self) -> None:
        try:
            loaded, notice = await asyncio.to_thread(self._persistence.read)
        except Exception:
            logger.exception("Watchlist hydration failed, continuing in memory only")
            loaded, notice = (), StoreNotice(
                issue=PersistenceIssue.PERSISTENCE_UNAVAILABLE,
                message="Watchlist storage is unavailable. Changes will last for this session only.",
            )

        # No await below: state, index and flag change together.
        if self._items:
            logger.info("Discarding %d watchlist changes made before hydration", len(self._items))
        self._items = tuple(loaded)
        self._index = {item.id: item for item in self._items}
        self._hydrated = True
        # The durable copy was never seen, so writing would replace it blindly.
        self._writes_enabled = notice is None or notice.issue == PersistenceIssue.CORRUPT_DATA
        if notice is not None:
            self._record_issue(notice)
        logger.info("Watchlist hydrated with %s", self.count_label())
        self._notify()

    # ── Mutations ─────────────────────────────────────────────────────────────

    def add(self, candidate: WatchlistCandidate | dict[str, Any]) -> bool:
        """Prepend a new item. Returns False when the id is already saved."""
        if not isinstance(candidate, WatchlistCandidate):
            candidate = WatchlistCandidate.model_validate(candidate)
        item_id = candidate.canonical_id
        if item_id in self._index:
            return False

        item = build_item(candidate, added_at=self._clock())
        self._items = (item, *self._items)
        self._index[item_id] = item
        self._commit()
        return True

    def remove(self, item_id: int | str) -> bool:
        """Drop the item with *item_id*. Returns False when it was absent."""
        key = canonical_id(item_id)
        if key not in self._index:
            return False

        del self._index[key]
        self._items = tuple(item for item in self._items if item.id != key)
        self._commit()
        return True

    def toggle(self, candidate: WatchlistCandidate | dict[str, Any]) -> bool:
        """Add if absent, otherwise remove. Returns membership afterwards."""
        if not isinstance(candidate, WatchlistCandidate):
            candidate = WatchlistCandidate.model_validate(candidate)
        if self.remove(candidate.id):
            return False
        self.add(candidate)
        return True

    def clear(self) -> None:
        if not self._items:
            return
        self._items = ()
        self._index = {}
        self._commit()

    def _commit(self) -> None:
        if self._writes_enabled:
            notice = self._persistence.save(self._items)
            if notice is None:
                self._persistent = True
            else:
                self._record_issue(notice)
        else:
            logger.debug("Durable copy not loaded, keeping change in memory only")
        self._notify()

    # ── Subscriptions ─────────────────────────────────────────────────────────

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Call *listener* with the new snapshot after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def subscribe_issues(self, listener: IssueListener) -> Callable[[], None]:
        """Call *listener* with each persistence notice as it happens."""
        self._issue_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._issue_listeners:
                self._issue_listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self._items
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Watchlist listener %r failed", listener)

    # ── Notices ───────────────────────────────────────────────────────────────

    @property
    def notices(self) -> tuple[StoreNotice, ...]:
        return tuple(self._notices)

    def latest_notice(self) -> StoreNotice | None:
        return self._notices[-1] if self._notices else None

    def pop_notice(self) -> StoreNotice | None:
        """Acknowledge and return the most recent notice."""
        return self._notices.pop() if self._notices else None

    def _record_issue(self, notice: StoreNotice) -> None:
        if notice.issue != PersistenceIssue.CORRUPT_DATA:
            self._persistent = False
        self._notices.append(notice)
        for listener in list(self._issue_listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Watchlist issue listener %r failed", listener)
