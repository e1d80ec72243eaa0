import asyncio
import json
import time
import unittest

import httpx
from fastapi.testclient import TestClient

from app.main import app
from app.services.kv_store import MemoryKeyValueStore
from app.services.watchlist_persistence import DEFAULT_STORAGE_KEY, WatchlistPersistence
from app.services.watchlist_store import WatchlistStore

INCEPTION = {
    "id": 27205,
    "category": "movie",
    "poster_path": "/inception.jpg",
    "original_title": "Inception",
    "overview": "A thief who steals corporate secrets through dream-sharing.",
    "backdrop_path": "/inception-bg.jpg",
}


class TestWatchlistApi(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = MemoryKeyValueStore(quota_bytes=2048)
        self.store = WatchlistStore(WatchlistPersistence(self.backend))
        app.state.watchlist_store = self.store
        self._client_cm = TestClient(app)
        self.client = self._client_cm.__enter__()

    def tearDown(self) -> None:
        self._client_cm.__exit__(None, None, None)
        app.state.watchlist_store = None

    def test_startup_hydrates_store(self) -> None:
        self.assertTrue(self.store.hydrated)
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["hydrated"])

    def test_empty_watchlist_envelope(self) -> None:
        response = self.client.get("/watchlist")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["items"], [])
        self.assertEqual(payload["meta"]["count"], 0)
        self.assertEqual(payload["meta"]["count_label"], "0 items")
        self.assertTrue(payload["meta"]["hydrated"])
        self.assertIsNone(payload["meta"]["notice"])

    def test_add_then_duplicate(self) -> None:
        response = self.client.post("/watchlist", json=INCEPTION)
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["meta"]["count_label"], "1 item")
        self.assertEqual(payload["items"][0]["id"], "27205")
        self.assertEqual(payload["items"][0]["title"], "Inception")

        again = self.client.post("/watchlist", json={**INCEPTION, "id": "27205"})
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.json()["meta"]["count"], 1)

        stored = json.loads(self.backend.get(DEFAULT_STORAGE_KEY))
        self.assertEqual(stored[0]["id"], "27205")

    def test_membership_and_remove(self) -> None:
        self.client.post("/watchlist", json=INCEPTION)

        self.assertTrue(self.client.get("/watchlist/27205").json()["in_watchlist"])
        response = self.client.delete("/watchlist/27205")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["meta"]["count"], 0)
        self.assertFalse(self.client.get("/watchlist/27205").json()["in_watchlist"])

        again = self.client.delete("/watchlist/27205")
        self.assertEqual(again.status_code, 200)

    def test_toggle(self) -> None:
        first = self.client.post("/watchlist/toggle", json={"id": 1396, "category": "tv", "name": "Breaking Bad"})
        self.assertEqual(first.json(), {"id": "1396", "in_watchlist": True, "notice": None})
        second = self.client.post("/watchlist/toggle", json={"id": "1396"})
        self.assertFalse(second.json()["in_watchlist"])

    def test_category_filter_and_clear(self) -> None:
        self.client.post("/watchlist", json=INCEPTION)
        self.client.post("/watchlist", json={"id": 1396, "category": "tv", "name": "Breaking Bad"})

        tv = self.client.get("/watchlist", params={"category": "tv"}).json()
        self.assertEqual([i["id"] for i in tv["items"]], ["1396"])
        self.assertEqual(tv["meta"]["count"], 2)

        cleared = self.client.delete("/watchlist").json()
        self.assertEqual(cleared["items"], [])
        self.assertEqual(json.loads(self.backend.get(DEFAULT_STORAGE_KEY)), [])

    def test_rejects_bad_candidates(self) -> None:
        self.assertEqual(self.client.post("/watchlist", json={"title": "no id"}).status_code, 422)
        self.assertEqual(self.client.post("/watchlist", json={"id": "  "}).status_code, 422)
        self.assertEqual(self.client.post("/watchlist", json={"id": 1, "category": "book"}).status_code, 422)

    def test_quota_notice_is_reported_not_raised(self) -> None:
        response = self.client.post("/watchlist", json={**INCEPTION, "overview": "x" * 4096})
        self.assertEqual(response.status_code, 201)
        meta = response.json()["meta"]
        self.assertEqual(meta["count"], 1)
        self.assertFalse(meta["persistent"])
        self.assertEqual(meta["notice"]["issue"], "QUOTA_EXCEEDED")

    def test_missing_store_is_503(self) -> None:
        app.state.watchlist_store = None
        response = self.client.get("/watchlist")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["detail"]["error"]["code"], "STORE_NOT_READY")


class SlowFirstWriteStore(MemoryKeyValueStore):
    """The first write stalls, as a busy disk or database would."""

    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    def set(self, key: str, value: bytes) -> None:
        self.writes += 1
        if self.writes == 1:
            time.sleep(0.3)
        super().set(key, value)


class TestWatchlistApiConcurrency(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.backend = SlowFirstWriteStore()
        self.store = WatchlistStore(WatchlistPersistence(self.backend))
        await self.store.hydrate()
        app.state.watchlist_store = self.store
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self) -> None:
        await self.client.aclose()
        app.state.watchlist_store = None

    async def test_concurrent_adds_leave_storage_matching_memory(self) -> None:
        responses = await asyncio.gather(
            self.client.post("/watchlist", json={"id": "a", "title": "A"}),
            self.client.post("/watchlist", json={"id": "b", "title": "B"}),
        )
        self.assertEqual([r.status_code for r in responses], [201, 201])

        in_memory = [i.id for i in self.store.observe()]
        stored = [r["id"] for r in json.loads(self.backend.get(DEFAULT_STORAGE_KEY))]
        self.assertEqual(sorted(in_memory), ["a", "b"])
        self.assertEqual(stored, in_memory)
        self.assertEqual(self.backend.writes, 2)
