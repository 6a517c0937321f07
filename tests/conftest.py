"""Shared fixtures for tests."""
import copy

import pytest

from sitepalette.config import CacheConfig, PaletteConfig, ScrollConfig, UsageConfig
from sitepalette.entries import Entry
from sitepalette.kv_store import MemoryKVStore


SAMPLE_SITES = [
    {"id": "1", "type": "site", "name": "GitHub", "url": "https://github.com", "tags": ["dev", "git"]},
    {"id": "2", "type": "site", "name": "Stack Overflow", "url": "https://stackoverflow.com", "tags": ["dev"]},
    {"id": "3", "type": "site", "name": "YouTube", "url": "https://youtube.com", "tags": ["video", "entertainment"]},
    {"id": "4", "type": "site", "name": "Google Calendar", "url": "https://calendar.google.com", "tags": ["work", "calendar"]},
    {"id": "5", "type": "site", "name": "MDN", "url": "https://developer.mozilla.org", "tags": ["dev", "documentation"]},
    {"id": "6", "type": "site", "name": "AI Tools", "url": "https://ai.example.com", "tags": ["ai/tools", "development"]},
]


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class CountingStore(MemoryKVStore):
    """MemoryKVStore that counts reads and writes."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.reads = 0
        self.writes = 0

    async def get(self, key, default=None):
        self.reads += 1
        return await super().get(key, default)

    async def set(self, key, value):
        self.writes += 1
        await super().set(key, value)


@pytest.fixture
def sample_sites():
    """Return sample sites in their stored dict form."""
    return copy.deepcopy(SAMPLE_SITES)


@pytest.fixture
def sample_entries():
    """Return sample sites as Entry objects."""
    return [
        Entry(id=s["id"], name=s["name"], url=s["url"], tags=tuple(s["tags"]))
        for s in SAMPLE_SITES
    ]


@pytest.fixture
def memory_store():
    return MemoryKVStore()


@pytest.fixture
def counting_store():
    return CountingStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def palette_config():
    """Config with defaults, independent of the environment."""
    return PaletteConfig(
        cache=CacheConfig(),
        usage=UsageConfig(),
        scroll=ScrollConfig(),
    )


@pytest.fixture
def db_path(tmp_path):
    """Return path for a temporary storage database."""
    return tmp_path / "test_storage.db"
