"""
Keyword overlap and recency scoring for proposal candidates.
"""

from typing import Iterable, List, Set


def _normalize(terms: Iterable[str]) -> Set[str]:
    return {t.strip().lower() for t in terms if t and t.strip()}


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    """Jaccard similarity |a ∩ b| / |a ∪ b| of two keyword sets.

    Terms are lowercased before comparison. Two empty sets score 0, not 1:
    no keywords means no evidence of a match.
    """
    s1 = _normalize(a)
    s2 = _normalize(b)
    union = s1 | s2
    if not union:
        return 0.0
    return len(s1 & s2) / len(union)


def matched_keywords(a: Iterable[str], b: Iterable[str]) -> List[str]:
    """Sorted normalized terms present in both sets."""
    return sorted(_normalize(a) & _normalize(b))


def recency_boost(created_at: int, now: int, window_ms: int) -> float:
    """Linear decay from 1.0 at age 0 to 0.0 at an age of ``window_ms`` or more.

    Timestamps in the future count as age 0.
    """
    if window_ms <= 0:
        raise ValueError('window_ms must be positive')

    age = now - created_at
    if age <= 0:
        return 1.0
    if age >= window_ms:
        return 0.0
    return 1.0 - (age / window_ms)
