"""Tests for storage module."""
import pytest

from sitepalette.config import CacheConfig
from sitepalette.entries import DEFAULT_SITES, Entry
from sitepalette.kv_store import MemoryKVStore
from sitepalette.search import rank
from sitepalette.storage import (
    DEFAULT_SETTINGS,
    SITES_KEY,
    CacheBase,
    RecordStorage,
    SettingsStorage,
    SiteStorage,
    StorageResult,
)


class BrokenStore(MemoryKVStore):
    async def set(self, key, value):
        raise IOError("disk full")


@pytest.mark.asyncio
class TestCacheBase:
    async def test_read_through_without_cache(self, counting_store, clock):
        cache = CacheBase(counting_store, clock=clock)
        await counting_store.set("k", 1)

        assert await cache.get(0, key="k") == 1
        assert await cache.get(0, key="k") == 1
        assert counting_store.reads == 2
        assert cache.memo_size == 0

    async def test_memo_served_within_ttl(self, counting_store, clock):
        cache = CacheBase(counting_store, ttl_seconds=300, clock=clock)
        await counting_store.set("k", "v1")

        assert await cache.get(None, use_cache=True, key="k") == "v1"
        await counting_store.set("k", "v2")  # out-of-band write
        clock.advance(299_000)

        assert await cache.get(None, use_cache=True, key="k") == "v1"
        assert counting_store.reads == 1

    async def test_memo_expires_after_ttl(self, counting_store, clock):
        cache = CacheBase(counting_store, ttl_seconds=300, clock=clock)
        await counting_store.set("k", "v1")
        await cache.get(None, use_cache=True, key="k")

        await counting_store.set("k", "v2")
        clock.advance(300_000)

        assert await cache.get(None, use_cache=True, key="k") == "v2"

    async def test_default_when_missing(self, memory_store):
        cache = CacheBase(memory_store)
        assert await cache.get({"a": 1}, key="missing") == {"a": 1}

    async def test_set_writes_through_and_memoizes(self, counting_store, clock):
        cache = CacheBase(counting_store, clock=clock)
        await cache.set([1, 2], key="k")

        assert await counting_store.get("k") == [1, 2]
        assert await cache.get(None, use_cache=True, key="k") == [1, 2]
        assert counting_store.reads == 1  # only the direct check above

    async def test_set_refreshes_expired_memo(self, counting_store, clock):
        cache = CacheBase(counting_store, ttl_seconds=1, clock=clock)
        await cache.set("old", key="k")
        clock.advance(5_000)
        await cache.set("new", key="k")

        assert await cache.get(None, use_cache=True, key="k") == "new"
        assert counting_store.reads == 0

    async def test_prune_keeps_newer_half(self, memory_store, clock):
        cache = CacheBase(memory_store, max_size=10, clock=clock)
        for i in range(10):
            await cache.set(i, key=f"k{i}")
            clock.advance(1)
        assert cache.memo_size == 10

        await cache.set(10, key="k10")

        assert cache.memo_size <= 10 // 2 + 1
        assert cache.memo_keys() == ["k5", "k6", "k7", "k8", "k9", "k10"]

    async def test_touching_a_record_protects_it(self, memory_store, clock):
        cache = CacheBase(memory_store, max_size=4, clock=clock)
        for i in range(4):
            await cache.set(i, key=f"k{i}")
            clock.advance(1)
        await cache.set("again", key="k0")
        clock.advance(1)

        await cache.set(4, key="k4")

        assert "k0" in cache.memo_keys()
        assert "k1" not in cache.memo_keys()

    async def test_from_config(self, memory_store):
        cache = CacheBase.from_config(memory_store, CacheConfig(ttl_seconds=10, max_size=7))
        assert cache.ttl_ms == 10_000
        assert cache.max_size == 7

    async def test_clear_memo(self, memory_store):
        cache = CacheBase(memory_store)
        await cache.set(1, key="k")
        cache.clear_memo()
        assert cache.memo_size == 0


@pytest.mark.asyncio
class TestRecordStorage:
    async def test_set_and_delete_record(self, memory_store):
        records = RecordStorage(memory_store, "favs")
        await records.set_record("https://a.com", "https://a.com/favicon.ico")

        assert await records.get_records() == {"https://a.com": "https://a.com/favicon.ico"}
        assert await records.size() == 1
        assert await records.delete_record("https://a.com") is True
        assert await records.delete_record("https://a.com") is False

    async def test_clear(self, memory_store):
        records = RecordStorage(memory_store, "favs")
        await records.set_records({"a": 1, "b": 2})
        await records.clear()
        assert await records.get_records() == {}

    async def test_non_dict_value_reads_as_empty(self, memory_store):
        await memory_store.set("favs", ["not", "a", "dict"])
        assert await RecordStorage(memory_store, "favs").get_records() == {}


@pytest.mark.asyncio
class TestSettingsStorage:
    async def test_defaults(self, memory_store):
        settings = await SettingsStorage(memory_store).get_settings()
        assert settings == DEFAULT_SETTINGS

    async def test_merges_with_defaults(self, memory_store):
        storage = SettingsStorage(memory_store)
        result = await storage.set_settings({"theme": "light"})

        assert result.success is True
        assert result.data["theme"] == "light"
        assert result.data["hotkey_primary"] == DEFAULT_SETTINGS["hotkey_primary"]
        assert (await storage.get_settings())["theme"] == "light"

    async def test_reset(self, memory_store):
        storage = SettingsStorage(memory_store)
        await storage.set_settings({"theme": "light"})
        result = await storage.reset_settings()
        assert result.data == DEFAULT_SETTINGS
        assert (await storage.get_settings())["theme"] == "dark"

    async def test_defaults_not_shared(self, memory_store):
        settings = await SettingsStorage(memory_store).get_settings()
        settings["auto_open_urls"].append("https://x.com")
        assert DEFAULT_SETTINGS["auto_open_urls"] == []

    async def test_memo_is_not_aliased(self, memory_store):
        storage = SettingsStorage(memory_store)
        result = await storage.set_settings({"theme": "light"})

        result.data["theme"] = "neon"
        result.data["auto_open_urls"].append("https://x.com")

        settings = await storage.get_settings()
        assert settings["theme"] == "light"
        assert settings["auto_open_urls"] == []

        settings["blocklist"] = "*.example.com"
        assert (await storage.get_settings())["blocklist"] == DEFAULT_SETTINGS["blocklist"]

    async def test_write_failure_returns_result(self):
        result = await SettingsStorage(BrokenStore()).set_settings({"theme": "light"})
        assert result.success is False
        assert isinstance(result.error, IOError)


@pytest.mark.asyncio
class TestSiteStorage:
    async def test_defaults_when_empty(self, memory_store):
        sites = await SiteStorage(memory_store).get_sites()
        assert sites == DEFAULT_SITES

    async def test_reads_stored_sites(self, sample_sites):
        store = MemoryKVStore({SITES_KEY: sample_sites})
        sites = await SiteStorage(store).get_sites()
        assert [s.name for s in sites][:2] == ["GitHub", "Stack Overflow"]
        assert sites[5].tags == ("ai/tools", "development")

    async def test_normalizes_and_writes_back(self):
        store = MemoryKVStore({SITES_KEY: [
            {"id": "x", "name": "X", "url": "https://x.com", "tags": "a, b c"},
            "garbage",
        ]})
        sites = await SiteStorage(store).get_sites()

        assert sites == [Entry(id="x", name="X", url="https://x.com", tags=("a", "b", "c"))]
        stored = await store.get(SITES_KEY)
        assert stored == [{"id": "x", "name": "X", "url": "https://x.com", "tags": ["a", "b", "c"], "type": "site"}]

    async def test_non_string_fields_are_searchable(self):
        store = MemoryKVStore({SITES_KEY: [
            {"id": "x", "name": 123, "url": None, "tags": ["a1"]},
        ]})
        sites = await SiteStorage(store).get_sites()

        assert sites[0].name == "123"
        assert sites[0].url == ""
        assert [s.id for s in rank("12", sites)] == ["x"]
        assert rank("a", sites) == sites

    async def test_add_site(self, memory_store):
        storage = SiteStorage(memory_store)
        result = await storage.add_site({"name": "Docs", "url": "https://docs.python.org", "tags": ["dev"]})

        assert result.success is True
        assert result.data.id.startswith("site-")
        assert result.data in await storage.get_sites()

    async def test_add_duplicate_id_fails(self, memory_store):
        storage = SiteStorage(memory_store)
        result = await storage.add_site({"id": "site-github", "name": "Again"})
        assert result.success is False

    async def test_update_site(self, memory_store):
        storage = SiteStorage(memory_store)
        result = await storage.update_site("site-github", {"name": "GH", "tags": ["dev/git"]})

        assert result.success is True
        assert result.data.name == "GH"
        assert result.data.tags == ("dev/git",)
        assert (await storage.get_sites())[0].name == "GH"

    async def test_update_missing_site(self, memory_store):
        result = await SiteStorage(memory_store).update_site("nope", {"name": "x"})
        assert result.success is False
        assert isinstance(result.error, KeyError)

    async def test_delete_site(self, memory_store):
        storage = SiteStorage(memory_store)
        result = await storage.delete_site("site-github")

        assert result == StorageResult(success=True, data=True)
        assert "site-github" not in [s.id for s in await storage.get_sites()]

    async def test_delete_missing_site(self, memory_store):
        result = await SiteStorage(memory_store).delete_site("nope")
        assert result.success is False

    async def test_search_sites(self, memory_store):
        storage = SiteStorage(memory_store)
        assert [s.id for s in await storage.search_sites("video")] == ["site-youtube"]
        assert len(await storage.search_sites("  ")) == len(DEFAULT_SITES)

    async def test_add_failure_returns_result(self):
        result = await SiteStorage(BrokenStore()).add_site({"name": "x"})
        assert result.success is False
