"""Unit tests for artifact stores."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from subtext.services import FileArtifactStore, MemoryArtifactStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "file"])
def store(request, clock, tmp_path):
    if request.param == "memory":
        return MemoryArtifactStore(clock)
    return FileArtifactStore(tmp_path / "artifacts", clock)


class TestArtifactStore:
    """Behaviour shared by every store implementation."""

    def test_put_and_get(self, store):
        async def run():
            await store.put("cases/a/timeline", {"messages": [1, 2]})
            return await store.get("cases/a/timeline")

        assert asyncio.run(run()) == {"messages": [1, 2]}

    def test_missing_key(self, store):
        assert asyncio.run(store.get("cases/none/report")) is None

    def test_put_overwrites(self, store):
        async def run():
            await store.put("cases/a/report", {"v": 1})
            await store.put("cases/a/report", {"v": 2})
            return await store.get("cases/a/report")

        assert asyncio.run(run()) == {"v": 2}

    def test_entries_expire(self, store, clock):
        async def run():
            await store.put("cases/a/progress", {"percent": 5}, ttl=60)
            clock.advance(59)
            before = await store.get("cases/a/progress")
            clock.advance(1)
            after = await store.get("cases/a/progress")
            return before, after

        assert asyncio.run(run()) == ({"percent": 5}, None)

    def test_no_ttl_never_expires(self, store, clock):
        async def run():
            await store.put("records/a", {"status": "queued"})
            clock.advance(10 * 365 * 24 * 3600)
            return await store.get("records/a")

        assert asyncio.run(run()) == {"status": "queued"}

    def test_delete_by_prefix(self, store):
        async def run():
            await store.put("cases/a/timeline", 1)
            await store.put("cases/a/finding/triage", 2)
            await store.put("cases/ab/timeline", 3)
            deleted = await store.delete_by_prefix("cases/a/")
            return deleted, await store.get("cases/a/finding/triage"), await store.get("cases/ab/timeline")

        assert asyncio.run(run()) == (2, None, 3)

    def test_reads_return_copies(self, store):
        async def run():
            await store.put("k", {"items": [1]})
            first = await store.get("k")
            first["items"].append(2)
            return await store.get("k")

        assert asyncio.run(run()) == {"items": [1]}


class TestFileArtifactStore:

    def test_writes_json_envelope(self, tmp_path, clock):
        store = FileArtifactStore(tmp_path, clock)
        asyncio.run(store.put("cases/a/timeline", {"x": 1}, ttl=10))

        path = tmp_path / "cases" / "a" / "timeline.json"
        assert path.exists()
        assert '"expires_at": "2024-01-01T00:00:10+00:00"' in path.read_text()

    @pytest.mark.parametrize("key", ["", "cases//a", "../escape", "cases/./a"])
    def test_rejects_unsafe_keys(self, tmp_path, key):
        store = FileArtifactStore(tmp_path)
        with pytest.raises(ValueError):
            asyncio.run(store.put(key, 1))

    def test_delete_on_missing_directory(self, tmp_path):
        assert asyncio.run(FileArtifactStore(tmp_path / "nope").delete_by_prefix("cases/")) == 0
