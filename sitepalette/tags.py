"""Hierarchical tag parsing, filtering and autocomplete suggestions.

Tags are stored as ``/``-separated strings (``"dev/tools"``). Inside this
module they are parsed into ``TagPath`` tuples of segments, and only turned
back into strings when handed to storage or the UI.
"""
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sitepalette.entries import Entry


SEPARATOR = "/"
TAG_MARKER = "#"

_WHITESPACE_RE = re.compile(r"\s+")


class TagPath(tuple):
    """Ordered path segments of a hierarchical tag."""

    @classmethod
    def parse(cls, tag: str) -> "TagPath":
        """Parse ``"a/b/c"`` into ``("a", "b", "c")``, dropping empty segments."""
        return cls(part for part in (tag or "").strip().split(SEPARATOR) if part)

    @property
    def depth(self) -> int:
        return max(len(self) - 1, 0)

    @property
    def parent(self) -> Optional["TagPath"]:
        if len(self) < 2:
            return None
        return TagPath(self[:-1])

    def ancestors(self) -> List["TagPath"]:
        """Proper ancestors, nearest first."""
        return [TagPath(self[:i]) for i in range(len(self) - 1, 0, -1)]

    def lower(self) -> "TagPath":
        return TagPath(part.lower() for part in self)

    def is_descendant_of(self, other: "TagPath") -> bool:
        return len(self) > len(other) and self[:len(other)] == other

    def __str__(self) -> str:
        return SEPARATOR.join(self)


@dataclass(frozen=True)
class TagSuggestion:
    """A tag autocomplete candidate."""
    name: str
    count: int
    depth: int
    parent_path: Optional[str] = None


# ============================================================================
# Query parsing
# ============================================================================

def extract_tag_filter(query: str, marker: str = TAG_MARKER) -> Tuple[Optional[str], str]:
    """Split a raw query into a tag filter and a free-text query.

    Args:
        query: Raw query as typed (e.g. ``"#dev/tools git"``)
        marker: Character that switches to tag-filter mode

    Returns:
        Tuple of (lowercased tag filter or None, remaining text query)
    """
    trimmed = (query or "").strip()
    if not trimmed.startswith(marker):
        return None, query or ""

    parts = _WHITESPACE_RE.split(trimmed)
    first = parts.pop(0)
    tag = first[len(marker):].strip().lower()

    return (tag or None), " ".join(parts)


def should_show_tag_suggestions(query: str, marker: str = TAG_MARKER) -> bool:
    """Whether the user is still typing the tag token of a tag query."""
    trimmed = (query or "").strip()
    if not trimmed.startswith(marker):
        return False
    return _WHITESPACE_RE.search(trimmed[len(marker):]) is None


# ============================================================================
# Entry filtering
# ============================================================================

def _path_matches(path: TagPath, wanted: TagPath) -> bool:
    if not wanted:
        return False
    # Exact path or ancestor path
    if path[:len(wanted)] == wanted:
        return True
    # Any single segment equality ("tools" matches "dev/tools")
    return len(wanted) == 1 and wanted[0] in path


def matches_tag_filter(tag: str, tag_filter: str) -> bool:
    """Check a single tag against a (hierarchical) tag filter.

    A tag ``"a/b"`` matches the filters ``"a"``, ``"b"`` and ``"a/b"``,
    case-insensitively. ``"a"`` does not match ``"a/b"``.
    """
    return _path_matches(TagPath.parse(tag).lower(), TagPath.parse(tag_filter).lower())


def filter_entries_by_tag(entries: Sequence[Entry], tag_filter: Optional[str]) -> List[Entry]:
    """Keep entries carrying a tag that matches the filter.

    Args:
        entries: Entry snapshot
        tag_filter: Tag filter; empty or None returns every entry

    Returns:
        Matching entries in input order
    """
    if not tag_filter:
        return list(entries)

    wanted = TagPath.parse(tag_filter).lower()
    return [
        entry for entry in entries
        if any(_path_matches(TagPath.parse(tag).lower(), wanted) for tag in entry.tags)
    ]


# ============================================================================
# Tag listing and counting
# ============================================================================

def _clean_tags(entry: Entry) -> Iterable[str]:
    for tag in entry.tags:
        if tag and tag.strip():
            yield tag.strip()


def get_all_tags(entries: Sequence[Entry]) -> List[str]:
    """Distinct non-empty tags across entries, sorted."""
    tags = set()
    for entry in entries:
        tags.update(_clean_tags(entry))
    return sorted(tags)


def count_tag_usage(entries: Sequence[Entry]) -> Dict[str, int]:
    """Count how many entries carry each tag (leaf counts, no roll-up)."""
    counts: Dict[str, int] = {}
    for entry in entries:
        for tag in _clean_tags(entry):
            counts[tag] = counts.get(tag, 0) + 1
    return counts


def roll_up_tag_counts(counts: Dict[str, int]) -> Dict[str, int]:
    """Add every tag's leaf count to all of its ancestors.

    Ancestors that never appear as a tag themselves are included, so
    ``{"a/b": 2, "a/c": 1}`` yields ``{"a": 3, "a/b": 2, "a/c": 1}``.
    """
    rolled: Dict[str, int] = {}
    for tag, count in counts.items():
        path = TagPath.parse(tag)
        if not path:
            continue
        rolled[str(path)] = rolled.get(str(path), 0) + count
        for ancestor in path.ancestors():
            key = str(ancestor)
            rolled[key] = rolled.get(key, 0) + count
    return rolled


# ============================================================================
# Autocomplete
# ============================================================================

def filter_tags(all_tags: Sequence[str], query: str) -> List[str]:
    """Narrow tags by exact, segment or substring match."""
    query_lower = query.lower()
    result = []
    for tag in all_tags:
        tag_lower = tag.lower()
        if tag_lower == query_lower or query_lower in tag_lower:
            result.append(tag)
        elif any(part == query_lower for part in TagPath.parse(tag_lower)):
            result.append(tag)
    return result


def filter_hierarchical_tags(all_tags: Sequence[str], query: str) -> List[str]:
    """Narrow tags for autocomplete, descending into a parent when the query has ``/``.

    ``"dev/to"`` keeps children of ``dev`` whose remaining path contains
    ``"to"``.
    """
    if SEPARATOR not in query:
        return filter_tags(all_tags, query)

    parent_query, _, child_query = query.rpartition(SEPARATOR)
    prefix = parent_query + SEPARATOR
    child_lower = child_query.lower()
    return [
        tag for tag in all_tags
        if tag.startswith(prefix) and child_lower in tag[len(prefix):].lower()
    ]


def get_tag_depth(tag: str) -> int:
    """Number of separators in a tag."""
    return tag.count(SEPARATOR)


def sort_tags_by_hierarchy(tags: Iterable[str]) -> List[str]:
    """Sort by depth (shallowest first), then alphabetically."""
    return sorted(tags, key=lambda tag: (get_tag_depth(tag), tag))


def group_tags_by_depth(tags: Iterable[str]) -> Dict[int, List[str]]:
    """Group tags by depth, each group sorted alphabetically."""
    groups: Dict[int, List[str]] = {}
    for tag in tags:
        groups.setdefault(get_tag_depth(tag), []).append(tag)
    for group in groups.values():
        group.sort()
    return groups


def get_parent_tag(tag: str) -> Optional[str]:
    """``"a/b/c"`` -> ``"a/b"``; None for top-level tags."""
    parent, sep, _ = tag.rpartition(SEPARATOR)
    return parent if sep else None


def get_child_tag_candidates(tags: Iterable[str], parent_tag: str) -> List[str]:
    """Direct children of a parent tag."""
    return [tag for tag in tags if get_parent_tag(tag) == parent_tag]


def is_descendant_tag(tag: str, ancestor_tag: str) -> bool:
    return tag.startswith(ancestor_tag + SEPARATOR)


def get_tag_path(tag: str) -> List[str]:
    return list(TagPath.parse(tag))


def sort_tags_hierarchically(tags: Sequence[str]) -> List[str]:
    """Sort by hierarchy, pulling a present parent in ahead of its first child."""
    present = set(tags)
    result: List[str] = []
    added = set()

    for tag in sort_tags_by_hierarchy(tags):
        if tag in added:
            continue
        parent = get_parent_tag(tag)
        if parent and parent in present and parent not in added:
            result.append(parent)
            added.add(parent)
        result.append(tag)
        added.add(tag)

    return result


def create_tag_suggestions(tags: Iterable[str], tag_counts: Dict[str, int]) -> List[TagSuggestion]:
    """Turn tag names into autocomplete suggestions.

    Args:
        tags: Tags to suggest, already in display order
        tag_counts: Leaf counts from ``count_tag_usage``

    Returns:
        Suggestions whose counts include all descendant tags
    """
    rolled = roll_up_tag_counts(tag_counts)
    suggestions = []
    for tag in tags:
        path = TagPath.parse(tag)
        parent = path.parent
        suggestions.append(TagSuggestion(
            name=tag,
            count=rolled.get(str(path), 0),
            depth=path.depth,
            parent_path=str(parent) if parent else None,
        ))
    return suggestions


def suggest_tags(entries: Sequence[Entry], query: str) -> List[TagSuggestion]:
    """Full autocomplete pipeline for the text typed after the tag marker."""
    all_tags = get_all_tags(entries)
    counts = count_tag_usage(entries)
    matched = filter_hierarchical_tags(all_tags, query) if query else all_tags
    return create_tag_suggestions(sort_tags_by_hierarchy(matched), counts)
