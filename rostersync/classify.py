"""
Entity classification: organization or person.

Evidence is taken in order of reliability: an explicit type tag, then
separate first/last name fields, then the shape of the name itself. The
shape heuristic is best effort; the matcher's pair and association
strategies exist to absorb its mistakes.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .models import Entity, EntityRole
from .normalize import normalize_text

ORG_TYPE_TAGS = {"organization", "organisation", "company", "org", "firm", "fund"}
PERSON_TYPE_TAGS = {"person", "individual", "contact", "people"}

ORG_KEYWORDS = {
    "inc", "incorporated", "llc", "ltd", "limited", "lp", "llp", "plc", "corp",
    "corporation", "co", "company", "capital", "partners", "partner", "holdings",
    "holding", "group", "ventures", "venture", "foundation", "fund", "funds",
    "trust", "bank", "management", "advisors", "advisers", "associates",
    "investments", "family", "office", "endowment", "university", "pension",
    "gmbh", "sarl", "bv", "ag", "sa",
}

EVIDENCE_TYPE_TAG = "type_tag"
EVIDENCE_NAME_FIELDS = "name_fields"
EVIDENCE_KEYWORD = "keyword"
EVIDENCE_TOKEN_COUNT = "token_count"
EVIDENCE_SHAPE = "shape"


@dataclass(frozen=True)
class Classification:
    role: EntityRole
    evidence: str


def role_from_tag(tag: Any) -> Optional[EntityRole]:
    t = normalize_text(str(tag)) if tag is not None else ""
    if t in ORG_TYPE_TAGS:
        return EntityRole.ORGANIZATION
    if t in PERSON_TYPE_TAGS:
        return EntityRole.PERSON
    return None


def classify_name(name: Optional[str], bias: EntityRole = EntityRole.PERSON) -> Classification:
    tokens = normalize_text(name).split()
    if any(t in ORG_KEYWORDS for t in tokens):
        return Classification(EntityRole.ORGANIZATION, EVIDENCE_KEYWORD)
    if not 2 <= len(tokens) <= 4:
        return Classification(EntityRole.ORGANIZATION, EVIDENCE_TOKEN_COUNT)
    return Classification(bias, EVIDENCE_SHAPE)


def classify(record: Any, bias: EntityRole = EntityRole.PERSON) -> Classification:
    """Classify an Entity or an entity-like mapping.

    Mappings may carry "type", "first_name"/"last_name" (or camelCase) and "name".
    """
    if isinstance(record, Entity):
        if record.role is not None:
            return Classification(record.role, EVIDENCE_TYPE_TAG)
        tag = record.type_tag
        first, last = record.first_name, record.last_name
        name = record.display_name
    elif isinstance(record, Mapping):
        tag = record.get("type")
        first = record.get("first_name") or record.get("firstName")
        last = record.get("last_name") or record.get("lastName")
        name = record.get("name") or ""
    else:
        return classify_name(str(record or ""), bias)

    role = role_from_tag(tag)
    if role is not None:
        return Classification(role, EVIDENCE_TYPE_TAG)
    if first or last:
        return Classification(EntityRole.PERSON, EVIDENCE_NAME_FIELDS)
    return classify_name(name, bias)
