"""
Ordered pipeline stage vocabulary.

Rank is the position in the sequence (earliest stage = 0). Lookups ignore
case, punctuation and spacing, so "Data Room Accessed/NDA Executed" and
"data room accessed / nda executed" resolve to the same rank.
"""

import re
from typing import Iterable, Optional, Tuple

TARGET_IDENTIFIED = "Target Identified"
FIRST_MEETING = "Intro/First Meeting"
EARLY_DIALOGUE = "Early Dialogue (Post-Intro)"
DECK_SENT = "Deck & PPM Sent"
CIRCLE_BACK = "Circle Back after First Close"
DATA_ROOM_INVITED = "Invited to Data Room"
DATA_ROOM_ACCESSED = "Data Room Accessed / NDA Executed"
VERBAL_COMMIT = "Verbal Commit"
READY_FOR_SUB_DOCS = "Ready for Sub Docs"
SUB_DOCS_SENT = "Sub Docs Sent"
SUB_DOCS_SIGNED = "Sub Docs Signed"
COMMITTED = "Committed"

DEFAULT_STAGE_ORDER: Tuple[str, ...] = (
    TARGET_IDENTIFIED,
    FIRST_MEETING,
    EARLY_DIALOGUE,
    DECK_SENT,
    CIRCLE_BACK,
    DATA_ROOM_INVITED,
    DATA_ROOM_ACCESSED,
    VERBAL_COMMIT,
    READY_FOR_SUB_DOCS,
    SUB_DOCS_SENT,
    SUB_DOCS_SIGNED,
    COMMITTED,
)

# Every label the status deriver can emit; all must be present in the vocabulary.
DERIVED_STAGES: Tuple[str, ...] = (
    SUB_DOCS_SIGNED,
    SUB_DOCS_SENT,
    READY_FOR_SUB_DOCS,
    DATA_ROOM_ACCESSED,
    DATA_ROOM_INVITED,
    DECK_SENT,
    FIRST_MEETING,
    EARLY_DIALOGUE,
    TARGET_IDENTIFIED,
)

_NON_ALNUM = re.compile(r"[^0-9a-z]+")


def label_key(label: Optional[str]) -> str:
    """Comparison key for a stage label."""
    return _NON_ALNUM.sub(" ", str(label or "").lower()).strip()


class StageVocabulary:
    """Immutable ordered set of stage labels."""

    __slots__ = ("_labels", "_ranks")

    def __init__(self, labels: Iterable[str] = DEFAULT_STAGE_ORDER):
        cleaned = tuple(str(label).strip() for label in labels if str(label or "").strip())
        if not cleaned:
            raise ValueError("Stage vocabulary must contain at least one label")
        ranks = {}
        for index, label in enumerate(cleaned):
            key = label_key(label)
            if key in ranks:
                raise ValueError(f"Duplicate stage label in vocabulary: {label!r}")
            ranks[key] = index
        self._labels = cleaned
        self._ranks = ranks

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    def rank(self, label: Optional[str]) -> Optional[int]:
        """Return the rank of a label, or None when it is not in the vocabulary."""
        key = label_key(label)
        if not key:
            return None
        return self._ranks.get(key)

    def canonical(self, label: Optional[str]) -> Optional[str]:
        """Return the vocabulary's spelling of a label."""
        r = self.rank(label)
        return None if r is None else self._labels[r]

    def __contains__(self, label: object) -> bool:
        return isinstance(label, str) and self.rank(label) is not None

    def __iter__(self):
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StageVocabulary) and self._labels == other._labels

    def __hash__(self) -> int:
        return hash(self._labels)

    def __repr__(self) -> str:
        return f"StageVocabulary({list(self._labels)!r})"
