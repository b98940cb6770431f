"""
Core value types shared by the matcher, the write gate and the orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class EntityRole(str, Enum):
    ORGANIZATION = "organization"
    PERSON = "person"

    @property
    def opposite(self) -> "EntityRole":
        return EntityRole.PERSON if self is EntityRole.ORGANIZATION else EntityRole.ORGANIZATION


@dataclass(frozen=True)
class NameCandidate:
    """A name pulled from one import row, tagged with the role it was found under."""

    text: str
    role: EntityRole


@dataclass(frozen=True)
class Entity:
    """A registry record (one list entry) with its cross-linked names."""

    id: Any
    name: str
    entity_id: Any = None
    role: Optional[EntityRole] = None
    type_tag: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    associations: Tuple[str, ...] = ()
    current_label: str = ""
    current_option_id: Any = None

    @property
    def display_name(self) -> str:
        if self.name and self.name.strip():
            return self.name.strip()
        return " ".join(p for p in (self.first_name, self.last_name) if p and p.strip()).strip()

    @property
    def association_set(self) -> Tuple[str, ...]:
        """Associated names, always led by the entity's own display name."""
        own = self.display_name
        names: List[str] = [own] if own else []
        for n in self.associations:
            n = (n or "").strip()
            if n and n not in names:
                names.append(n)
        return tuple(names)


NO_MATCH = "none"


@dataclass(frozen=True)
class MatchResult:
    entity: Optional[Entity] = None
    match_type: str = NO_MATCH
    score: float = 0.0

    @property
    def matched(self) -> bool:
        return self.entity is not None


@dataclass
class RowResult:
    """Outcome of processing one import row."""

    display_name: str
    derived_label: Optional[str]
    matched: bool
    decision: str
    reason: str = ""
    match_type: Optional[str] = None
    score: Optional[float] = None
    entry_id: Any = None
    current_label: Optional[str] = None
    updated: bool = False
    would_update: bool = False
    option_id: Any = None
    error: Optional[Dict[str, Any]] = None
    known_labels: List[str] = field(default_factory=list)

    REDACTED_FIELDS = ("matched", "decision", "reason", "updated", "would_update")

    def to_dict(self, redact: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "display_name": self.display_name,
            "derived_label": self.derived_label,
            "matched": self.matched,
            "match_type": self.match_type,
            "score": round(self.score, 4) if self.score is not None else None,
            "entry_id": self.entry_id,
            "current_label": self.current_label,
            "decision": self.decision,
            "reason": self.reason,
            "updated": self.updated,
            "would_update": self.would_update,
        }
        if self.option_id is not None:
            data["option_id"] = self.option_id
        if self.error is not None:
            data["error"] = self.error
        if self.known_labels:
            data["known_labels"] = list(self.known_labels)
        if redact:
            return {k: data[k] for k in self.REDACTED_FIELDS}
        return data
