"""
Write-safety gate.

Decides whether a derived stage may be written over the stored one.

Invariants:
- A hard-locked current stage is never changed.
- A write never lowers the stage rank. Option resolution fails closed: an
  option whose rank differs from the derived stage's rank is never used,
  whatever the alias table says.
- Re-running with current == derived yields UNCHANGED.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

from .config import phrase_key
from .similarity import best_match
from .stages import StageVocabulary, label_key

FUZZY_OPTION_THRESHOLD = 0.80

# (pattern on a stage label key, pattern on option label keys)
KEYWORD_FAMILIES = (
    (re.compile(r"\bsigned\b"), re.compile(r"^(?!.*\bnda\b).*\b(signed|executed)\b")),
    (re.compile(r"\bsub\b.*\bsent\b|\bdocs\s+sent\b"), re.compile(r"\bsub\b.*\bsent\b|\bdocs?\s+sent\b")),
    (re.compile(r"\bready\b"), re.compile(r"\bready\b")),
    (re.compile(r"\baccessed\b|\bnda\b"), re.compile(r"\baccess(ed)?\b|\bnda\b")),
    (re.compile(r"\binvited\b"), re.compile(r"\binvite(d)?\b")),
    (re.compile(r"\bdeck\b|\bppm\b"), re.compile(r"\bdeck\b|\bppm\b")),
    (re.compile(r"first meeting"), re.compile(r"^(?!.*\bpost\b).*(\bintro\b|first meeting)")),
    (re.compile(r"\bdialogue\b"), re.compile(r"\bdialogue\b")),
    (re.compile(r"\btarget\b"), re.compile(r"\btarget\b")),
    (re.compile(r"\bverbal\b"), re.compile(r"\bverbal\b")),
    (re.compile(r"\bcommitted\b"), re.compile(r"^(?!.*\bverbal\b).*\bcommitted\b")),
)


class Decision(str, Enum):
    UNCHANGED = "unchanged"
    BELOW_THRESHOLD = "below_threshold"
    HARD_LOCKED = "hard_locked"
    WOULD_DOWNGRADE = "would_downgrade"
    UNKNOWN_LABEL = "unknown_label"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class WriteDecision:
    kind: Decision
    reason: str
    option_id: Any = None
    option_label: Optional[str] = None
    known_labels: Tuple[str, ...] = ()

    @property
    def authorized(self) -> bool:
        return self.kind is Decision.AUTHORIZED


def _option_index(options: Mapping[str, Any]) -> Mapping[str, Tuple[str, Any]]:
    index = {}
    for label, option_id in options.items():
        key = label_key(label)
        if key and key not in index:
            index[key] = (label, option_id)
    return index


def _alias_claims(vocabulary: StageVocabulary, aliases: Optional[Mapping[str, str]]) -> Dict[str, Set[int]]:
    claimed: Dict[str, Set[int]] = {}
    for source, target in (aliases or {}).items():
        source_rank = vocabulary.rank(source)
        key = label_key(target)
        if source_rank is not None and key:
            claimed.setdefault(key, set()).add(source_rank)
    return claimed


def _family_rank(key: str, vocabulary: StageVocabulary) -> Optional[int]:
    """Rank of the one stage an option label names by keyword, else None."""
    ranks = set()
    for stage_pattern, option_pattern in KEYWORD_FAMILIES:
        if not option_pattern.search(key):
            continue
        for stage in vocabulary:
            if stage_pattern.search(label_key(stage)):
                ranks.add(vocabulary.rank(stage))
    return next(iter(ranks)) if len(ranks) == 1 else None


def stage_ranker(
    vocabulary: StageVocabulary,
    aliases: Optional[Mapping[str, str]] = None,
    options: Optional[Mapping[str, Any]] = None,
) -> Callable[[Optional[str]], Optional[int]]:
    """
    Rank lookup that also knows the registry's own spellings.

    An alias target takes the rank of its source stage. A target claimed by
    sources of different ranks gets no rank at all. Any other option label
    outside the vocabulary takes the rank of the single stage its keywords
    name, else of the closest stage label (similarity >= 0.80). Labels that
    fit none of these stay unranked.
    """
    claimed = _alias_claims(vocabulary, aliases)
    stage_keys = {label_key(stage): vocabulary.rank(stage) for stage in vocabulary}

    extra: Dict[str, int] = {}
    for key, ranks in claimed.items():
        if len(ranks) == 1 and vocabulary.rank(key) is None:
            extra[key] = next(iter(ranks))
    for key in _option_index(options or {}):
        if key in claimed or vocabulary.rank(key) is not None:
            continue
        found = _family_rank(key, vocabulary)
        if found is None:
            hit = best_match(key, stage_keys.keys(), FUZZY_OPTION_THRESHOLD)
            found = stage_keys[hit[0]] if hit else None
        if found is not None:
            extra[key] = found

    def rank(label: Optional[str]) -> Optional[int]:
        found = vocabulary.rank(label)
        if found is not None:
            return found
        return extra.get(label_key(label))

    return rank


def resolve_option(
    derived_label: Optional[str],
    options: Mapping[str, Any],
    vocabulary: StageVocabulary,
    aliases: Optional[Mapping[str, str]] = None,
) -> Optional[Tuple[str, Any]]:
    """
    Find the registry option for a derived stage.

    Tries the alias table, a direct label lookup, keyword families, then a
    fuzzy match against option labels. A candidate is accepted only when its
    label ranks the same as the derived stage.

    Returns:
        (option_label, option_id) or None
    """
    target_rank = vocabulary.rank(derived_label)
    if target_rank is None:
        return None
    rank = stage_ranker(vocabulary, aliases, options)
    index = _option_index(options)

    def accept(key: Optional[str]) -> Optional[Tuple[str, Any]]:
        if not key or key not in index:
            return None
        label, option_id = index[key]
        if rank(label) != target_rank:
            return None
        return label, option_id

    derived_key = label_key(derived_label)

    alias_target = (aliases or {}).get(phrase_key(derived_label))
    found = accept(label_key(alias_target)) if alias_target else None
    if found:
        return found

    found = accept(derived_key)
    if found:
        return found

    for stage_pattern, option_pattern in KEYWORD_FAMILIES:
        if stage_pattern.search(derived_key):
            for key in index:
                if option_pattern.search(key):
                    found = accept(key)
                    if found:
                        return found

    hit = best_match(derived_key, index.keys(), FUZZY_OPTION_THRESHOLD)
    return accept(hit[0]) if hit else None


def decide(
    current_label: Optional[str],
    derived_label: Optional[str],
    vocabulary: StageVocabulary,
    min_label: str,
    hard_lock_labels: Iterable[str],
    options: Mapping[str, Any],
    aliases: Optional[Mapping[str, str]] = None,
) -> WriteDecision:
    """
    Decide what to do with one matched row.

    Args:
        current_label: Stage currently stored in the registry ("" if unset)
        derived_label: Stage derived from the import row (None if undetermined)
        vocabulary: Ordered stage vocabulary
        min_label: Lowest stage the engine may act on
        hard_lock_labels: Stages that are never moved away from
        options: Registry option label -> option id
        aliases: Stage label -> registry option label

    Returns:
        WriteDecision
    """
    current = (current_label or "").strip()
    locks = {label_key(label) for label in hard_lock_labels}

    if current and label_key(current) in locks:
        return WriteDecision(Decision.HARD_LOCKED, f"Current status '{current}' is locked")

    if not derived_label:
        return WriteDecision(Decision.BELOW_THRESHOLD, "Could not derive status from CSV row")
    derived_rank = vocabulary.rank(derived_label)
    min_rank = vocabulary.rank(min_label)
    if derived_rank is None:
        return WriteDecision(
            Decision.BELOW_THRESHOLD, f"Status '{derived_label}' is not in the stage order"
        )
    if min_rank is not None and derived_rank < min_rank:
        return WriteDecision(
            Decision.BELOW_THRESHOLD, f"Status before minimum threshold ({min_label})"
        )

    current_rank = stage_ranker(vocabulary, aliases, options)(current)
    if current_rank is not None and derived_rank < current_rank:
        return WriteDecision(
            Decision.WOULD_DOWNGRADE,
            f"Would downgrade '{current}' to '{derived_label}'",
        )

    if current and current.lower() == derived_label.strip().lower():
        return WriteDecision(Decision.UNCHANGED, f"Status already '{current}'")

    found = resolve_option(derived_label, options, vocabulary, aliases)
    if found is None:
        return WriteDecision(
            Decision.UNKNOWN_LABEL,
            f"Unknown status '{derived_label}' for registry status field",
            known_labels=tuple(options.keys()),
        )
    option_label, option_id = found
    if current and label_key(current) == label_key(option_label):
        return WriteDecision(Decision.UNCHANGED, f"Status already '{current}'", option_label=option_label)
    return WriteDecision(
        Decision.AUTHORIZED,
        f"Update '{current or '(empty)'}' -> '{option_label}'",
        option_id=option_id,
        option_label=option_label,
    )
