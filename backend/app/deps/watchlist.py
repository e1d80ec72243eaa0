"""
Watchlist dependency — hands routes the store built at startup.

Usage in any route:
    from app.deps.watchlist import get_watchlist_store

    @router.get("/saved")
    def saved(store: WatchlistStore = Depends(get_watchlist_store)):
        ...
"""
from fastapi import HTTPException, Request, status

from app.services.watchlist_store import WatchlistStore


def get_watchlist_store(request: Request) -> WatchlistStore:
    """
    Return the WatchlistStore owned by the running application.

    Raises 503 when the app was started without one (lifespan not run).
    """
    store = getattr(request.app.state, "watchlist_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": {"code": "STORE_NOT_READY", "message": "Watchlist store is not initialised"}},
        )
    return store
