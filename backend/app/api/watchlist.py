"""
Watchlist Service — /watchlist
───────────────────────────────
Endpoints:
  GET    /watchlist                — Current snapshot (most recent first)
  POST   /watchlist                — Save an item (no-op if already saved)
  POST   /watchlist/toggle         — Save if absent, otherwise remove
  GET    /watchlist/{item_id}      — Membership check
  DELETE /watchlist/{item_id}      — Remove an item (idempotent)
  DELETE /watchlist                — Clear everything

Handlers are async so every store call runs on the event loop, one at a time.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.deps.watchlist import get_watchlist_store
from app.schemas.watchlist import (
    CategoryEnum,
    MembershipResponse,
    WatchlistCandidate,
    WatchlistItem,
    WatchlistItemResponse,
    WatchlistMeta,
    WatchlistResponse,
)
from app.services.watchlist_store import WatchlistStore

router = APIRouter()


def _error(code: str, message: str) -> dict:
    """Standard error envelope."""
    return {"error": {"code": code, "message": message}}


def _map_item(item: WatchlistItem) -> WatchlistItemResponse:
    return WatchlistItemResponse(**item.model_dump())


def _snapshot(store: WatchlistStore, category: CategoryEnum | None = None) -> WatchlistResponse:
    items = store.items_by_category(category) if category else store.observe()
    return WatchlistResponse(
        items=[_map_item(item) for item in items],
        meta=WatchlistMeta(
            count=store.count,
            count_label=store.count_label(),
            hydrated=store.hydrated,
            persistent=store.persistent,
            notice=store.latest_notice(),
        ),
    )


# ── Routes ────────────────────────────────────────────────────────────────────

@router.get("", response_model=WatchlistResponse)
async def get_watchlist(
    category: CategoryEnum | None = Query(None, description="Only movies or only tv shows"),
    store: WatchlistStore = Depends(get_watchlist_store),
) -> WatchlistResponse:
    """
    Saved items, most recently added first.

    meta.count always counts the whole watchlist, even when filtered.
    """
    return _snapshot(store, category)


@router.post("", response_model=WatchlistResponse)
async def add_to_watchlist(
    payload: WatchlistCandidate,
    response: Response,
    store: WatchlistStore = Depends(get_watchlist_store),
) -> WatchlistResponse:
    """Save an item. 201 when added, 200 when it was already saved."""
    added = store.add(payload)
    response.status_code = status.HTTP_201_CREATED if added else status.HTTP_200_OK
    return _snapshot(store)


@router.post("/toggle", response_model=MembershipResponse)
async def toggle_watchlist_item(
    payload: WatchlistCandidate,
    store: WatchlistStore = Depends(get_watchlist_store),
) -> MembershipResponse:
    """Heart-button behaviour: flip membership of the given item."""
    in_watchlist = store.toggle(payload)
    return MembershipResponse(
        id=payload.canonical_id,
        in_watchlist=in_watchlist,
        notice=store.latest_notice(),
    )


@router.get("/{item_id}", response_model=MembershipResponse)
async def get_membership(
    item_id: str,
    store: WatchlistStore = Depends(get_watchlist_store),
) -> MembershipResponse:
    if not item_id.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=_error("INVALID_ITEM_ID", "item id cannot be empty"),
        )
    return MembershipResponse(id=item_id, in_watchlist=store.has(item_id))


@router.delete("/{item_id}", response_model=WatchlistResponse)
async def remove_from_watchlist(
    item_id: str,
    store: WatchlistStore = Depends(get_watchlist_store),
) -> WatchlistResponse:
    """Remove an item. Removing something that is not saved is not an error."""
    store.remove(item_id)
    return _snapshot(store)


@router.delete("", response_model=WatchlistResponse)
async def clear_watchlist(store: WatchlistStore = Depends(get_watchlist_store)) -> WatchlistResponse:
    store.clear()
    return _snapshot(store)
