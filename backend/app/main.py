"""
Watchlist API — FastAPI application entry point.

The WatchlistStore is built and hydrated in the lifespan handler and kept on
app.state; routes receive it through app.deps.watchlist.
"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.api import watchlist as watchlist_api
from app.core.config import Settings, settings
from app.services.kv_store import build_key_value_store
from app.services.watchlist_persistence import WatchlistPersistence
from app.services.watchlist_store import WatchlistStore

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_watchlist_store(config: Settings | None = None) -> WatchlistStore:
    """Wire backend → persistence → store for *config*."""
    config = config or settings
    persistence = WatchlistPersistence(
        build_key_value_store(config),
        key=config.WATCHLIST_STORAGE_KEY,
    )
    return WatchlistStore(persistence)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Tests may install their own store before startup.
    store = getattr(app.state, "watchlist_store", None)
    if store is None:
        store = build_watchlist_store()
        app.state.watchlist_store = store
    store.subscribe_issues(
        lambda notice: logger.warning("Watchlist notice %s: %s", notice.issue.value, notice.message)
    )
    await store.hydrate()
    yield


app = FastAPI(
    title="Watchlist API",
    description="Saved movies and tv shows that survive restarts.",
    version="0.1.0",
    docs_url="/docs" if settings.ENABLE_DOCS else None,
    redoc_url="/redoc" if settings.ENABLE_DOCS else None,
    lifespan=lifespan,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(watchlist_api.router, prefix="/watchlist", tags=["watchlist"])


# ── Health check ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
def health_check(request: Request) -> dict:
    """Liveness probe. Returns 200 when the server is up."""
    store = getattr(request.app.state, "watchlist_store", None)
    return {
        "status": "ok",
        "version": app.version,
        "env": settings.APP_ENV,
        "hydrated": bool(store and store.hydrated),
    }
