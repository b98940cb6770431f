"""
Pipeline stage derivation from a roster row.

Signals are read in a fixed order of reliability and the first one that
fires decides the stage:

1. Subscription document status (exact-phrase overrides first, then regex families).
2. Data room evidence (access detail, last-accessed date, granted flag).
3. Free-text hints from prospect status / latest update, capped at the
   earliest pipeline stages.

A row that carries none of these yields None (undetermined).
"""

import re
from typing import Mapping, Optional, Union

from .config import SyncConfig, phrase_key
from .logger import get_logger
from .schema import ImportRow
from .stages import (
    DATA_ROOM_ACCESSED,
    DATA_ROOM_INVITED,
    DECK_SENT,
    EARLY_DIALOGUE,
    FIRST_MEETING,
    READY_FOR_SUB_DOCS,
    SUB_DOCS_SENT,
    SUB_DOCS_SIGNED,
    TARGET_IDENTIFIED,
)

logger = get_logger()

# negation directly before a signature phrase
_NEGATION_BEFORE = re.compile(r"\b(not|un|never)\s*(yet\s+)?(fully\s+)?(counter\s*-?\s*)?$")

SUBSCRIPTION_FAMILIES = (
    (SUB_DOCS_SIGNED, re.compile(
        r"counter\s*-?\s*signed|fully\s+executed|\bexecuted\b|\bsigned\b")),
    (SUB_DOCS_SENT, re.compile(
        r"awaiting\s+(counter\s*-?\s*)?signature|pending\s+signature|signature\s+pending"
        r"|staff\s+review|review\s+pending|pending\s+review|\bsent\b|\bissued\b|\bdelivered\b")),
    (READY_FOR_SUB_DOCS, re.compile(
        r"\bstarted\b|\bdraft\b|\binvited\b|in\s+progress|\bready\b")),
)

NOT_ACCESSED = "not yet accessed"
_NOT_ACCESSED_TEXT = re.compile(r"not\s*yet|\bnever\b|\bno\s+access")
_NULLISH = {"", "-", "--", "n/a", "na", "none", "never", "no", "null"}
_MONTH = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec|january|february|march|april"
    r"|june|july|august|september|october|november|december)\b"
)
_DIGIT = re.compile(r"\d")
_GRANTED = re.compile(r"^(yes|y|true|granted|1)$")
_DATA_ROOM_INVITATION = re.compile(r"invitation.*data\s*room")

_SOFT_CIRCLE = re.compile(r"soft[\s-]*circle[sd]?")

HINT_FAMILIES = (
    (DECK_SENT, re.compile(r"\bppm\b|pitch\s*deck|deck\s*(sent|shared)|sent\s+(the\s+)?deck")),
    (FIRST_MEETING, re.compile(r"first\s*meeting|meeting\s+scheduled|intro\s*call|\bintro\b")),
    (EARLY_DIALOGUE, re.compile(r"\bcontacted\b|\bengaged\b|early\s*dialogue|in\s+dialogue")),
    (TARGET_IDENTIFIED, re.compile(r"target\s*identified|^new$")),
)


def _lower(value: Optional[str]) -> str:
    return " ".join(str(value or "").lower().split())


def _from_subscription(text: str, config: SyncConfig) -> Union[str, None, bool]:
    """Stage from subscription status; False when nothing fired."""
    key = phrase_key(text)
    if not key:
        return False
    if key in config.subscription_overrides:
        target = config.vocabulary.canonical(config.subscription_overrides[key])
        if target is None:
            logger.warning(
                "Subscription override targets an unknown stage; leaving row undetermined",
                phrase=key, target=config.subscription_overrides[key],
            )
        return target
    for stage, pattern in SUBSCRIPTION_FAMILIES:
        if stage == SUB_DOCS_SIGNED:
            fired = _affirmed(pattern, key)
        else:
            fired = pattern.search(key) is not None
        if fired:
            return config.vocabulary.canonical(stage)
    return False


def _affirmed(pattern: "re.Pattern", key: str) -> bool:
    """True when some match of pattern is not negated ("not yet signed")."""
    return any(not _NEGATION_BEFORE.search(key[:m.start()]) for m in pattern.finditer(key))


def segment_shows_access(segment: str) -> bool:
    """True for a `name: status` segment that records an actual access."""
    status = segment.rsplit(":", 1)[-1].strip() if ":" in segment else segment.strip()
    status = _lower(status)
    if not status or status == NOT_ACCESSED:
        return False
    return bool(_DIGIT.search(status) or _MONTH.search(status))


def _from_data_room(row: ImportRow) -> Optional[str]:
    detail = row.data_room_access_detail
    if detail and any(segment_shows_access(s) for s in detail.split(";")):
        return DATA_ROOM_ACCESSED

    last = _lower(row.data_room_last_accessed)
    if last not in _NULLISH and not _NOT_ACCESSED_TEXT.search(last):
        return DATA_ROOM_ACCESSED

    if _GRANTED.match(_lower(row.data_room_granted)) or row.data_room_grant_detail.strip():
        return DATA_ROOM_INVITED
    if _DATA_ROOM_INVITATION.search(_lower(row.latest_update)):
        return DATA_ROOM_INVITED
    return None


def _from_hints(row: ImportRow) -> Optional[str]:
    for text in (_lower(row.prospect_status), _lower(row.latest_update)):
        text = _SOFT_CIRCLE.sub(" ", text).strip()
        if not text:
            continue
        for stage, pattern in HINT_FAMILIES:
            if pattern.search(text):
                return stage
    return None


def derive_stage(row: Union[ImportRow, Mapping[str, str]], config: SyncConfig) -> Optional[str]:
    """
    Derive one pipeline stage label for a roster row.

    Args:
        row: ImportRow or raw CSV record
        config: Sync configuration (overrides and vocabulary)

    Returns:
        A stage label from the vocabulary, or None when undetermined
    """
    if not isinstance(row, ImportRow):
        row = ImportRow.from_record(row)

    subscription = _from_subscription(row.subscription_status, config)
    if subscription is not False:
        return subscription

    stage = _from_data_room(row) or _from_hints(row)
    return config.vocabulary.canonical(stage) if stage else None
