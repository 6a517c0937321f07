"""Cached storage on top of a durable key-value store.

Every storage class keeps an in-memory memo of what it read or wrote, with
a TTL and a size bound. Writes always go straight through to the durable
store; reads only use the memo when asked to.
"""
import copy
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from sitepalette.config import CacheConfig
from sitepalette.entries import DEFAULT_SITES, Entry, generate_id, normalize_entry
from sitepalette.kv_store import KVStore


T = TypeVar("T")

# Storage keys
SITES_KEY = "sitepalette__sites"
SETTINGS_KEY = "sitepalette__settings_v2"
FAVICONS_KEY = "sitepalette__favcache_v1"
USAGE_KEY = "sitepalette__usage_v1"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "hotkey_primary": "Meta+KeyP",
    "hotkey_secondary": "Control+KeyP",
    "enter_opens": "current",
    "blocklist": "",
    "theme": "dark",
    "accent_color": "#2563eb",
    "auto_open_urls": [],
}


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class CacheRecord:
    key: str
    data: Any
    timestamp_ms: float


@dataclass
class StorageResult(Generic[T]):
    """Outcome of a mutating storage operation.

    Callers branch on ``success``; ``data`` is set on success and ``error``
    on failure.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "StorageResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: Exception) -> "StorageResult[T]":
        return cls(success=False, error=error)


class CacheBase:
    """In-memory mirror of a durable store with TTL and bounded size.

    Subclasses set ``storage_key``; ``get``/``set`` default to it but accept
    an explicit key.
    """

    storage_key: str = ""

    def __init__(
        self,
        store: KVStore,
        ttl_seconds: float = 300.0,
        max_size: int = 1000,
        clock: Callable[[], float] = _now_ms,
    ):
        """Initialize the cache.

        Args:
            store: Durable key-value store
            ttl_seconds: Maximum age of a memo before reads go to the store
            max_size: Memo size that triggers pruning on insert
            clock: Returns the current time in milliseconds
        """
        self.store = store
        self.ttl_ms = ttl_seconds * 1000
        self.max_size = max_size
        self._clock = clock
        self._memo: Dict[str, CacheRecord] = {}

    @classmethod
    def from_config(cls, store: KVStore, config: CacheConfig, **kwargs: Any):
        return cls(store, ttl_seconds=config.ttl_seconds, max_size=config.max_size, **kwargs)

    async def get(self, default: Any = None, use_cache: bool = False, key: Optional[str] = None) -> Any:
        """Read a value.

        Args:
            default: Value returned when the store has nothing under the key
            use_cache: Serve a fresh memo if there is one, and memoize the read
            key: Storage key (defaults to ``storage_key``)

        Returns:
            Stored value or default
        """
        key = key or self.storage_key

        if use_cache:
            cached = self._memo.get(key)
            if cached is not None and (self._clock() - cached.timestamp_ms) < self.ttl_ms:
                return copy.deepcopy(cached.data)

        data = await self.store.get(key, default)

        if use_cache:
            self._remember(key, data)

        return data

    async def set(self, value: Any, key: Optional[str] = None) -> None:
        """Write a value through to the store and refresh its memo.

        The memo keeps its own copy, so later changes to ``value`` by the
        caller do not leak into cached reads.
        """
        key = key or self.storage_key
        await self.store.set(key, value)

        existing = self._memo.get(key)
        if existing is not None:
            existing.data = copy.deepcopy(value)
            existing.timestamp_ms = self._clock()
        else:
            self._remember(key, value)

    def _remember(self, key: str, data: Any) -> None:
        self._memo[key] = CacheRecord(key=key, data=copy.deepcopy(data), timestamp_ms=self._clock())

        if len(self._memo) > self.max_size:
            self._prune()

    def _prune(self) -> None:
        """Drop the older half of the memo."""
        records = sorted(self._memo.values(), key=lambda record: record.timestamp_ms)
        for record in records[:len(records) // 2]:
            del self._memo[record.key]

    def clear_memo(self) -> None:
        self._memo.clear()

    @property
    def memo_size(self) -> int:
        return len(self._memo)

    def memo_keys(self) -> List[str]:
        return list(self._memo)


class RecordStorage(CacheBase):
    """A dict of keyed records stored under one storage key.

    Used for favicon URLs by origin and usage counts by entry id.
    """

    def __init__(self, store: KVStore, storage_key: str, **kwargs: Any):
        super().__init__(store, **kwargs)
        self.storage_key = storage_key

    async def get_records(self) -> Dict[str, Any]:
        records = await self.get({})
        return records if isinstance(records, dict) else {}

    async def set_records(self, records: Dict[str, Any]) -> None:
        await self.set(records)

    async def set_record(self, key: str, value: Any) -> None:
        records = await self.get_records()
        records[key] = value
        await self.set_records(records)

    async def delete_record(self, key: str) -> bool:
        """Delete one record.

        Returns:
            True if deleted, False if not found
        """
        records = await self.get_records()
        if key not in records:
            return False

        del records[key]
        await self.set_records(records)
        return True

    async def clear(self) -> None:
        await self.set({})

    async def size(self) -> int:
        return len(await self.get_records())


class SettingsStorage(CacheBase):
    """User settings, always merged over the defaults."""

    storage_key = SETTINGS_KEY

    async def get_settings(self) -> Dict[str, Any]:
        stored = await self.get({}, use_cache=True)
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        if isinstance(stored, dict):
            settings.update(stored)
        return settings

    async def set_settings(self, updates: Dict[str, Any]) -> StorageResult[Dict[str, Any]]:
        try:
            settings = await self.get_settings()
            settings.update(updates)
            await self.set(settings)
            return StorageResult.ok(settings)
        except Exception as e:
            print(f"[SettingsStorage] Failed to save settings: {e}", file=sys.stderr)
            return StorageResult.fail(e)

    async def reset_settings(self) -> StorageResult[Dict[str, Any]]:
        try:
            settings = copy.deepcopy(DEFAULT_SETTINGS)
            await self.set(settings)
            return StorageResult.ok(settings)
        except Exception as e:
            print(f"[SettingsStorage] Failed to reset settings: {e}", file=sys.stderr)
            return StorageResult.fail(e)


class SiteStorage(CacheBase):
    """The persisted entry list.

    Stored records are normalized on every read; if normalization changed
    anything (or nothing valid is left) the cleaned list is written back.
    """

    storage_key = SITES_KEY

    async def get_sites(self) -> List[Entry]:
        raw = await self.get([e.to_dict() for e in DEFAULT_SITES])
        if not isinstance(raw, list):
            raw = []

        sites: List[Entry] = []
        mutated = False
        for item in raw:
            entry = normalize_entry(item)
            if entry is None:
                mutated = True
                continue
            if entry.to_dict() != item:
                mutated = True
            sites.append(entry)

        if not sites:
            sites = list(DEFAULT_SITES)
            mutated = True

        if mutated:
            await self.set_sites(sites)

        return sites

    async def set_sites(self, sites: List[Entry]) -> None:
        normalized = [normalize_entry(site) for site in sites]
        await self.set([site.to_dict() for site in normalized if site is not None])

    async def add_site(self, site: Dict[str, Any]) -> StorageResult[Entry]:
        """Add a site.

        Args:
            site: Raw site fields; a missing id is generated

        Returns:
            StorageResult with the stored Entry
        """
        try:
            new_site = normalize_entry({**site, "id": site.get("id") or generate_id()})
            if new_site is None:
                return StorageResult.fail(ValueError("Invalid site data"))

            sites = await self.get_sites()
            if any(existing.id == new_site.id for existing in sites):
                return StorageResult.fail(ValueError(f"Duplicate site id: {new_site.id}"))

            sites.append(new_site)
            await self.set_sites(sites)
            return StorageResult.ok(new_site)
        except Exception as e:
            print(f"[SiteStorage] Failed to add site: {e}", file=sys.stderr)
            return StorageResult.fail(e)

    async def update_site(self, site_id: str, updates: Dict[str, Any]) -> StorageResult[Entry]:
        try:
            sites = await self.get_sites()
            for index, site in enumerate(sites):
                if site.id == site_id:
                    fields = {k: v for k, v in updates.items() if k in ("name", "url", "tags")}
                    updated = site.replace(**fields)
                    sites[index] = updated
                    await self.set_sites(sites)
                    return StorageResult.ok(updated)

            return StorageResult.fail(KeyError(f"Site not found: {site_id}"))
        except Exception as e:
            print(f"[SiteStorage] Failed to update site {site_id}: {e}", file=sys.stderr)
            return StorageResult.fail(e)

    async def delete_site(self, site_id: str) -> StorageResult[bool]:
        try:
            sites = await self.get_sites()
            remaining = [site for site in sites if site.id != site_id]

            if len(remaining) == len(sites):
                return StorageResult.fail(KeyError(f"Site not found: {site_id}"))

            await self.set_sites(remaining)
            return StorageResult.ok(True)
        except Exception as e:
            print(f"[SiteStorage] Failed to delete site {site_id}: {e}", file=sys.stderr)
            return StorageResult.fail(e)

    async def search_sites(self, query: str) -> List[Entry]:
        """Plain substring search over name, url and tags."""
        sites = await self.get_sites()
        needle = query.strip().lower()
        if not needle:
            return sites

        return [
            site for site in sites
            if needle in site.name.lower()
            or needle in site.url.lower()
            or any(needle in tag.lower() for tag in site.tags)
        ]
