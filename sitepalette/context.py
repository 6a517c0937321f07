"""Palette context: one object owning every storage the palette uses.

Callers create a context and pass it around instead of relying on
module-level caches, so each test (or session) gets isolated state.
"""
import sys
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

from sitepalette.config import PaletteConfig, get_config
from sitepalette.entries import Entry
from sitepalette.kv_store import KVStore, MemoryKVStore, SQLiteKVStore
from sitepalette.search import FuzzySearchEngine, SearchEngine
from sitepalette.security import is_blocked_host
from sitepalette.storage import FAVICONS_KEY, RecordStorage, SettingsStorage, SiteStorage, StorageResult
from sitepalette.tags import TagSuggestion, suggest_tags
from sitepalette.usage import UsageCounter
from sitepalette.virtual_scroll import VirtualItem, VirtualScrollManager, VirtualScrollOptions


class PaletteContext:
    """Owns the key-value store and the caches built on it."""

    def __init__(
        self,
        store: KVStore,
        config: Optional[PaletteConfig] = None,
        search_engine: Optional[SearchEngine] = None,
        **usage_kwargs: Any,
    ):
        """Initialize the context.

        Args:
            store: Durable key-value store
            config: Palette configuration (defaults to the global config)
            search_engine: Ranking engine (defaults to FuzzySearchEngine)
            **usage_kwargs: Extra UsageCounter arguments (e.g. ``sleep``)
        """
        self.config = config or get_config()
        self.store = store
        self.search_engine = search_engine or FuzzySearchEngine(self.config.tag_marker)

        cache = self.config.cache
        self.sites = SiteStorage.from_config(store, cache)
        self.settings = SettingsStorage.from_config(store, cache)
        self.favicons = RecordStorage.from_config(store, cache, storage_key=FAVICONS_KEY)
        self.usage = UsageCounter.from_config(
            store,
            self.config.usage,
            ttl_seconds=cache.ttl_seconds,
            max_size=cache.max_size,
            **usage_kwargs,
        )

    async def initialize(self) -> None:
        """Normalize stored sites and settings."""
        await self.sites.get_sites()
        await self.settings.get_settings()

    async def close(self) -> None:
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Searching
    # ------------------------------------------------------------------

    async def search(self, query: str, limit: Optional[int] = None) -> List[Entry]:
        """Rank the current sites for a raw palette query."""
        entries = await self.sites.get_sites()
        usage = await self.usage.get_usage()
        return self.search_engine.search(query, entries, usage, limit)

    async def suggest_tags(self, query: str = "") -> List[TagSuggestion]:
        """Tag autocomplete for the text typed after the tag marker."""
        return suggest_tags(await self.sites.get_sites(), query)

    async def record_visit(self, site_id: str) -> StorageResult[int]:
        return await self.usage.increment(site_id)

    async def prune_usage(self) -> StorageResult[int]:
        """Forget usage counts of deleted sites."""
        sites = await self.sites.get_sites()
        return await self.usage.prune(site.id for site in sites)

    def create_scroll_manager(
        self,
        entries: Sequence[Entry],
        container_height: Optional[float] = None,
    ) -> VirtualScrollManager:
        """Build a scroll manager over a ranked entry list."""
        options = VirtualScrollOptions.from_config(self.config.scroll)
        if container_height is not None:
            options.container_height = container_height

        manager = VirtualScrollManager(options)
        manager.set_items([VirtualItem(id=entry.id, payload=entry) for entry in entries])
        return manager

    # ------------------------------------------------------------------
    # Settings-driven checks
    # ------------------------------------------------------------------

    async def is_url_blocked(self, url: str) -> bool:
        """Whether the palette is disabled for a page, per the blocklist setting."""
        settings = await self.settings.get_settings()
        host = urlparse(url).hostname or ""
        return bool(host) and is_blocked_host(host, settings.get("blocklist", ""))

    # ------------------------------------------------------------------
    # Favicons
    # ------------------------------------------------------------------

    async def get_favicons(self) -> Dict[str, str]:
        return await self.favicons.get_records()

    async def set_favicon(self, origin: str, href: str) -> None:
        await self.favicons.set_record(origin, href)

    async def clear_favicon(self, origin: str) -> bool:
        return await self.favicons.delete_record(origin)

    async def clear_favicons(self) -> None:
        await self.favicons.clear()

    async def get_storage_stats(self) -> Dict[str, int]:
        return {
            "sites_count": len(await self.sites.get_sites()),
            "favicon_cache_size": await self.favicons.size(),
            "usage_cache_size": await self.usage.records.size(),
        }


async def open_context(config: Optional[PaletteConfig] = None) -> PaletteContext:
    """Open a context on the SQLite store named by the config."""
    config = config or get_config()
    store = SQLiteKVStore(config.db_path)
    await store.initialize()
    print(f"[PaletteContext] Using storage at {store.db_path}", file=sys.stderr)

    context = PaletteContext(store, config)
    await context.initialize()
    return context


def memory_context(config: Optional[PaletteConfig] = None, **kwargs: Any) -> PaletteContext:
    """Context backed by an in-memory store."""
    return PaletteContext(MemoryKVStore(), config, **kwargs)
