"""Fuzzy matching of a query against candidate text."""
import re
from typing import Callable

from sitepalette.entries import Entry


# Score for a candidate that does not contain the query as a subsequence
REJECT = float("-inf")

URL_PENALTY = 4.0
TAGS_PENALTY = 2.0


def normalize(text: str) -> str:
    """Lowercase text, treating None as empty."""
    return (text or "").lower()


def create_fuzzy_matcher(query: str) -> Callable[[str], float]:
    """Build a scoring function for a single query.

    The returned function scores candidate text as follows:

    - contains the query contiguously: ``40 - 1.5 * index``
    - contains the query characters in order: ``20 - 0.02 * len(text)``,
      plus 6 if the text starts with the query's first character
    - otherwise: REJECT

    Args:
        query: Search query

    Returns:
        Function mapping candidate text to a score
    """
    q = normalize(query)
    pattern = re.compile(".*?".join(re.escape(c) for c in q))
    first = q[:1]

    def matcher(text: str) -> float:
        if not text:
            return REJECT
        lower = normalize(text)

        index = lower.find(q)
        if index != -1:
            return 40 - index * 1.5

        if pattern.search(lower) is None:
            return REJECT

        score = 20 - len(lower) * 0.02
        if first and lower.startswith(first):
            score += 6
        return score

    return matcher


def score_entry(matcher: Callable[[str], float], entry: Entry) -> float:
    """Combine field scores for an entry.

    Name matches count in full, URL matches lose 4 points and tag matches
    lose 2. REJECT on every field rejects the entry.
    """
    return max(
        matcher(entry.name),
        matcher(entry.url) - URL_PENALTY,
        matcher(" ".join(entry.tags)) - TAGS_PENALTY,
    )
