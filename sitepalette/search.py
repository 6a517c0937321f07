"""Ranking engine for palette entries."""
import math
from dataclasses import dataclass
from typing import List, Mapping, Optional, Protocol, Sequence

from sitepalette.entries import Entry
from sitepalette.fuzzy import REJECT, create_fuzzy_matcher, score_entry
from sitepalette.tags import TAG_MARKER, extract_tag_filter, filter_entries_by_tag


# Score given to every entry when the query is empty
BASE_SCORE = 0.0001
MAX_USAGE_BOOST = 8.0


@dataclass(frozen=True)
class ScoredEntry:
    entry: Entry
    score: float


class SearchEngine(Protocol):
    """Protocol for search engines to allow extensibility."""

    def search(
        self,
        query: str,
        entries: Sequence[Entry],
        usage: Optional[Mapping[str, int]] = None,
        limit: Optional[int] = None,
    ) -> List[Entry]:
        """Search entries based on query.

        Args:
            query: Raw query string, possibly starting with a tag filter
            entries: Entry snapshot to search
            usage: Usage counts by entry id
            limit: Maximum number of results to return (None = all)

        Returns:
            List of matching entries, sorted by relevance
        """
        ...


def usage_boost(entry: Entry, usage: Mapping[str, int]) -> float:
    """Logarithmic, capped bonus for frequently opened entries.

    Args:
        entry: Entry to boost
        usage: Usage counts by entry id

    Returns:
        ``min(8, ln(count + 1) * 3)``, or 0 for entries without an id
    """
    if not entry or not entry.id:
        return 0.0
    count = max(usage.get(entry.id, 0) or 0, 0)
    return min(MAX_USAGE_BOOST, math.log(count + 1) * 3)


def score_entries(
    entries: Sequence[Entry],
    query: str,
    usage: Optional[Mapping[str, int]] = None,
) -> List[ScoredEntry]:
    """Score entries against a text query and sort them.

    With an empty query every entry is kept and ordered by usage. Otherwise
    entries the fuzzy matcher rejects are dropped.

    Args:
        entries: Entries to score
        query: Free-text query (tag filter already removed)
        usage: Usage counts by entry id

    Returns:
        Scored entries, highest score first. Equal scores keep input order.
    """
    usage = usage or {}
    scored: List[ScoredEntry] = []

    if not query:
        for entry in entries:
            scored.append(ScoredEntry(entry, BASE_SCORE + usage_boost(entry, usage)))
    else:
        matcher = create_fuzzy_matcher(query)
        for entry in entries:
            score = score_entry(matcher, entry)
            if score == REJECT:
                continue
            scored.append(ScoredEntry(entry, score + usage_boost(entry, usage)))

    # list.sort is stable, so ties keep their input order
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored


def filter_and_score_entries(
    entries: Sequence[Entry],
    query: str,
    usage: Optional[Mapping[str, int]] = None,
) -> List[Entry]:
    """Score entries and return just the sorted entries."""
    return [item.entry for item in score_entries(entries, query, usage)]


def rank(
    query: str,
    entries: Sequence[Entry],
    usage: Optional[Mapping[str, int]] = None,
    marker: str = TAG_MARKER,
) -> List[Entry]:
    """Rank entries for a raw query as typed in the palette.

    A leading tag token (``#dev/tools``) narrows the entry set first; the
    rest of the query is fuzzy-matched against that subset.

    Args:
        query: Raw query string
        entries: Entry snapshot
        usage: Usage counts by entry id
        marker: Tag-filter marker character

    Returns:
        Entries sorted by descending score
    """
    tag_filter, text_query = extract_tag_filter(query, marker)
    candidates = filter_entries_by_tag(entries, tag_filter) if tag_filter else entries
    return filter_and_score_entries(candidates, text_query, usage)


class FuzzySearchEngine:
    """Fuzzy search engine with tag filtering and usage boosting."""

    def __init__(self, marker: str = TAG_MARKER):
        self.marker = marker

    def search(
        self,
        query: str,
        entries: Sequence[Entry],
        usage: Optional[Mapping[str, int]] = None,
        limit: Optional[int] = None,
    ) -> List[Entry]:
        """Search entries using fuzzy matching.

        Args:
            query: Raw query string
            entries: Entry snapshot to search
            usage: Usage counts by entry id
            limit: Maximum number of results to return (None = all)

        Returns:
            List of matching entries, sorted by relevance (highest score first)
        """
        if not entries:
            return []

        results = rank(query, entries, usage, self.marker)
        return results if limit is None else results[:limit]
