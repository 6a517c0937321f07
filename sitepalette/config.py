"""Configuration for the site palette."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class CacheConfig:
    """Configuration for the in-memory storage memo."""
    ttl_seconds: float = 300.0  # 5 minutes
    max_size: int = 1000

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create config from environment variables."""
        return cls(
            ttl_seconds=float(os.environ.get("SITEPALETTE_CACHE_TTL", "300.0")),
            max_size=int(os.environ.get("SITEPALETTE_CACHE_MAX_SIZE", "1000")),
        )


@dataclass
class UsageConfig:
    """Configuration for the usage counter retry protocol."""
    max_retries: int = 3
    base_delay: float = 0.01  # Seconds, doubled per retry

    @classmethod
    def from_env(cls) -> "UsageConfig":
        """Create config from environment variables."""
        return cls(
            max_retries=int(os.environ.get("SITEPALETTE_USAGE_MAX_RETRIES", "3")),
            base_delay=float(os.environ.get("SITEPALETTE_USAGE_BASE_DELAY", "0.01")),
        )


@dataclass
class ScrollConfig:
    """Configuration for virtual scrolling of the result list."""
    container_height: float = 400.0
    item_height: float = 40.0
    overscan: int = 5
    scroll_bucket: float = 10.0  # Scroll offsets within a bucket share a cached range
    range_cache_size: int = 5
    max_height_overrides: int = 1000

    @classmethod
    def from_env(cls) -> "ScrollConfig":
        """Create config from environment variables."""
        return cls(
            container_height=float(os.environ.get("SITEPALETTE_CONTAINER_HEIGHT", "400.0")),
            item_height=float(os.environ.get("SITEPALETTE_ITEM_HEIGHT", "40.0")),
            overscan=int(os.environ.get("SITEPALETTE_OVERSCAN", "5")),
            scroll_bucket=float(os.environ.get("SITEPALETTE_SCROLL_BUCKET", "10.0")),
            range_cache_size=int(os.environ.get("SITEPALETTE_RANGE_CACHE_SIZE", "5")),
            max_height_overrides=int(os.environ.get("SITEPALETTE_MAX_HEIGHT_OVERRIDES", "1000")),
        )


@dataclass
class PaletteConfig:
    """Main configuration for the site palette."""
    cache: CacheConfig = field(default_factory=CacheConfig.from_env)
    usage: UsageConfig = field(default_factory=UsageConfig.from_env)
    scroll: ScrollConfig = field(default_factory=ScrollConfig.from_env)
    db_path: Optional[Path] = None  # None = use default
    tag_marker: str = "#"

    @classmethod
    def from_env(cls) -> "PaletteConfig":
        """Create config from environment variables."""
        db_path_str = os.environ.get("SITEPALETTE_DB")
        db_path = Path(db_path_str) if db_path_str else None

        return cls(
            cache=CacheConfig.from_env(),
            usage=UsageConfig.from_env(),
            scroll=ScrollConfig.from_env(),
            db_path=db_path,
            tag_marker=os.environ.get("SITEPALETTE_TAG_MARKER", "#"),
        )


# Global config instance
_config: Optional[PaletteConfig] = None


def get_config() -> PaletteConfig:
    """Get the global config instance.

    Returns:
        PaletteConfig loaded from environment
    """
    global _config

    if _config is None:
        _config = PaletteConfig.from_env()

    return _config
