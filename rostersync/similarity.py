"""String similarity helpers backed by RapidFuzz.

Scores are normalized to [0, 1]. Thresholds used by the matcher and the
write gate are expressed on that scale.
"""

from typing import Iterable, Optional, Tuple

from rapidfuzz import fuzz, process


def similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return fuzz.ratio(a, b) / 100.0


def best_match(query: str, choices: Iterable[str], threshold: float) -> Optional[Tuple[str, float]]:
    """Return (choice, score) for the closest choice at or above threshold.

    Ties keep the earliest choice.
    """
    if not query:
        return None
    pool = [c for c in choices if c]
    if not pool:
        return None
    found = process.extractOne(query, pool, scorer=fuzz.ratio, score_cutoff=threshold * 100.0)
    if found is None:
        return None
    choice, score, _ = found
    return choice, score / 100.0
