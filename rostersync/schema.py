import re
from dataclasses import dataclass, field, fields
from typing import Dict, List, Mapping, Optional

from .classify import classify_name
from .models import EntityRole, NameCandidate

# Lowercased, whitespace-collapsed header -> ImportRow attribute
HEADER_ALIASES: Dict[str, str] = {
    "organization": "organization",
    "organization name": "organization",
    "organisation": "organization",
    "investor name": "organization",
    "investor": "organization",
    "lp name": "organization",
    "company": "organization",
    "firm": "organization",
    "entity": "organization",
    "name": "name",
    "contacts": "contacts",
    "contact": "contacts",
    "contact name": "contacts",
    "contact names": "contacts",
    "primary contact": "contacts",
    "subscription status": "subscription_status",
    "sub doc status": "subscription_status",
    "subscription document status": "subscription_status",
    "data room access detail": "data_room_access_detail",
    "data room last accessed": "data_room_last_accessed",
    "data room granted": "data_room_granted",
    "data room grant detail": "data_room_grant_detail",
    "prospect status": "prospect_status",
    "status": "prospect_status",
    "latest update": "latest_update",
    "notes": "latest_update",
}

# tried only when no exact alias matches
HEADER_PATTERNS = (
    (re.compile(r"data\s*room.*access"), "data_room_last_accessed"),
)

NAME_FIELDS = ("organization", "name", "contacts")

_SEPARATORS = re.compile(r"[;•|\n]")


def header_key(header: Optional[str]) -> str:
    return " ".join(str(header or "").replace("\ufeff", "").lower().split())


def header_field(header: Optional[str]) -> Optional[str]:
    """ImportRow attribute a CSV header feeds, or None for an extra column."""
    key = header_key(header)
    if key in HEADER_ALIASES:
        return HEADER_ALIASES[key]
    for pattern, attr in HEADER_PATTERNS:
        if pattern.search(key):
            return attr
    return None


def split_names(value: Optional[str]) -> List[str]:
    """Split a multi-name cell on semicolons, bullets, pipes and newlines."""
    out: List[str] = []
    for part in _SEPARATORS.split(value or ""):
        part = part.strip(" \t,")
        if part and part not in out:
            out.append(part)
    return out


@dataclass
class ImportRow:
    """One roster row with its known columns pulled out.

    Columns that are not recognized end up in `extras` untouched.
    """

    organization: str = ""
    name: str = ""
    contacts: str = ""
    subscription_status: str = ""
    data_room_access_detail: str = ""
    data_room_last_accessed: str = ""
    data_room_granted: str = ""
    data_room_grant_detail: str = ""
    prospect_status: str = ""
    latest_update: str = ""
    extras: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Optional[str]]) -> "ImportRow":
        values: Dict[str, str] = {}
        extras: Dict[str, str] = {}
        for header, value in record.items():
            if header is None:
                continue
            text = str(value).strip() if value is not None else ""
            attr = header_field(header)
            if attr is None:
                extras[str(header).strip()] = text
            elif text and not values.get(attr):
                # first non-empty column wins when several headers alias to one field
                values[attr] = text
        return cls(extras=extras, **values)

    def org_candidates(self, bias: EntityRole = EntityRole.PERSON) -> List[NameCandidate]:
        names = split_names(self.organization)
        if not self.organization and not self.contacts:
            # a lone Name column is classified by its shape
            names += [n for n in split_names(self.name)
                      if classify_name(n, bias).role is EntityRole.ORGANIZATION]
        elif self.name and not self.organization:
            names += split_names(self.name)
        return [NameCandidate(n, EntityRole.ORGANIZATION) for n in names]

    def person_candidates(self, bias: EntityRole = EntityRole.PERSON) -> List[NameCandidate]:
        names = split_names(self.contacts)
        if not self.organization and not self.contacts:
            names += [n for n in split_names(self.name)
                      if classify_name(n, bias).role is EntityRole.PERSON]
        elif self.name and self.organization and not self.contacts:
            names += split_names(self.name)
        return [NameCandidate(n, EntityRole.PERSON) for n in names]

    def display_name(self) -> str:
        for attr in NAME_FIELDS:
            names = split_names(getattr(self, attr))
            if names:
                return names[0]
        return ""

    def has_name(self) -> bool:
        return bool(self.display_name())

    def to_record(self) -> Dict[str, str]:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "extras"}
        data.update(self.extras)
        return data


def validate_headers(headers: List[str]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means usable.
    """
    errors: List[str] = []
    known = {header_field(h) for h in headers}
    if not known & set(NAME_FIELDS):
        errors.append(
            "CSV has no Name column (expected one of: Name, Organization, Investor Name, LP Name, Contacts)"
        )
    return errors
