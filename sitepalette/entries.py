"""Site entries: the immutable records the palette ranks and displays."""
import random
import re
import string
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple


ID_PREFIX = "site"
DEFAULT_KIND = "site"

_TAG_SPLIT_RE = re.compile(r"[,\s]+")
_BASE36 = string.digits + string.ascii_lowercase


@dataclass(frozen=True)
class Entry:
    """A bookmark-like site entry.

    Entries are treated as an immutable snapshot during a ranking or
    windowing pass; edits produce a new Entry via ``replace``.
    """
    id: str
    name: str = ""
    url: str = ""
    tags: Tuple[str, ...] = field(default_factory=tuple)
    kind: str = DEFAULT_KIND

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the plain dict form used in storage."""
        data = asdict(self)
        data["tags"] = list(self.tags)
        data["type"] = data.pop("kind")
        return data

    def replace(self, **updates: Any) -> "Entry":
        """Return a copy with the given fields updated."""
        data = {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "tags": self.tags,
            "kind": self.kind,
        }
        data.update(updates)
        data["tags"] = tuple(_normalize_tags(data["tags"]))
        return Entry(**data)


def generate_id() -> str:
    """Generate a unique id like ``site-1700000000000-k3x9q2``."""
    suffix = "".join(random.choice(_BASE36) for _ in range(6))
    return f"{ID_PREFIX}-{int(time.time() * 1000)}-{suffix}"


def _normalize_tags(raw: Any) -> List[str]:
    if isinstance(raw, (list, tuple)):
        return [str(tag) for tag in raw]
    if isinstance(raw, str) and raw.strip():
        return [tag for tag in _TAG_SPLIT_RE.split(raw) if tag]
    return []


def normalize_entry(raw: Any) -> Optional[Entry]:
    """Normalize a stored or user-supplied record into an Entry.

    Args:
        raw: Entry, or dict with any of 'id', 'name', 'url', 'tags', 'type'

    Returns:
        Entry, or None if the record is not a mapping
    """
    if isinstance(raw, Entry):
        return raw
    if not isinstance(raw, dict):
        return None

    return Entry(
        id=str(raw.get("id") or generate_id()),
        name=str(raw.get("name") or ""),
        url=str(raw.get("url") or ""),
        tags=tuple(_normalize_tags(raw.get("tags"))),
        kind=DEFAULT_KIND,
    )


DEFAULT_SITES: List[Entry] = [
    Entry(id="site-github", name="GitHub", url="https://github.com/", tags=("dev",)),
    Entry(id="site-stackoverflow", name="Stack Overflow", url="https://stackoverflow.com/", tags=("dev",)),
    Entry(id="site-mdn", name="MDN Web Docs", url="https://developer.mozilla.org/", tags=("dev",)),
    Entry(id="site-bing", name="Bing Search", url="https://www.bing.com/search?q=%s", tags=("search",)),
    Entry(id="site-youtube", name="YouTube", url="https://www.youtube.com/", tags=("video",)),
    Entry(id="site-gcal", name="Google Calendar", url="https://calendar.google.com/", tags=("work",)),
]
