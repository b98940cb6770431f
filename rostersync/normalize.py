import re
import unicodedata
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .models import EntityRole

_NON_ALNUM = re.compile(r"[^0-9a-z]+")

ORG_SUFFIXES = {
    "inc", "incorporated", "llc", "ltd", "limited", "llp", "lp", "plc",
    "gmbh", "sarl", "bv", "co", "corp", "corporation", "company",
    "partners", "partner", "holdings", "holding", "capital",
}

HONORIFICS = {"mr", "mrs", "ms", "miss", "dr", "prof", "rev", "sir"}
GENERATIONAL_SUFFIXES = {"jr", "sr", "ii", "iii", "iv"}

DEFAULT_NICKNAMES: Dict[str, Tuple[str, ...]] = {
    "william": ("will", "bill", "billy", "liam"),
    "robert": ("rob", "bob", "bobby", "robby"),
    "richard": ("rich", "rick", "ricky", "dick"),
    "edward": ("ed", "eddie", "ted", "teddy", "ned"),
    "margaret": ("meg", "maggie", "peggy"),
    "elizabeth": ("liz", "beth", "lizzy", "eliza", "betsy"),
    "katherine": ("kathy", "kate", "katie", "cathy"),
    "alexander": ("alex", "sasha"),
    "james": ("jim", "jimmy", "jamie"),
    "john": ("jack", "johnny"),
    "jonathan": ("jon",),
    "joseph": ("joe", "joey"),
    "matthew": ("matt",),
    "michael": ("mike", "mikey"),
    "jeffrey": ("jeff",),
    "andrew": ("andy", "drew"),
    "steven": ("steve", "stevie"),
    "stephen": ("steve",),
    "christopher": ("chris",),
    "patrick": ("pat",),
    "nicholas": ("nick", "nicky"),
    "daniel": ("dan", "danny"),
    "david": ("dave",),
    "thomas": ("tom", "tommy"),
    "benjamin": ("ben",),
    "samuel": ("sam",),
    "anthony": ("tony",),
    "timothy": ("tim",),
    "gregory": ("greg",),
    "jennifer": ("jen", "jenny"),
    "rebecca": ("becky",),
    "susan": ("sue",),
}


class NicknameTable:
    """Canonical first name -> variants, searchable from either side."""

    def __init__(self, table: Optional[Mapping[str, Iterable[str]]] = None):
        groups: Dict[str, Set[str]] = {}
        for canonical, variants in (table if table is not None else DEFAULT_NICKNAMES).items():
            root = normalize_text(canonical)
            if not root or " " in root:
                continue
            group = groups.setdefault(root, {root})
            for variant in variants or ():
                v = normalize_text(variant)
                if v and " " not in v:
                    group.add(v)
        self._groups = {root: frozenset(group) for root, group in groups.items()}
        self._roots_by_name: Dict[str, Set[str]] = {}
        for root, group in self._groups.items():
            for name in group:
                self._roots_by_name.setdefault(name, set()).add(root)

    def variants(self, first: str) -> Set[str]:
        """Every name that shares a canonical form with `first` (including itself)."""
        out = {first}
        for root in self._roots_by_name.get(first, ()):
            out |= self._groups[root]
        return out

    def merged(self, extra: Mapping[str, Iterable[str]]) -> "NicknameTable":
        combined: Dict[str, List[str]] = {root: sorted(group - {root}) for root, group in self._groups.items()}
        for canonical, variants in extra.items():
            combined.setdefault(canonical, []).extend(variants or ())
        return NicknameTable(combined)

    def __len__(self) -> int:
        return len(self._groups)


def normalize_text(s: Optional[str]) -> str:
    decomposed = unicodedata.normalize("NFKD", str(s or ""))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(" ", stripped.lower()).strip()


DEFAULT_NICKNAME_TABLE = NicknameTable()


def org_key(name: Optional[str]) -> str:
    tokens = normalize_text(name).split()
    # Keep the last token even if it is a suffix ("Capital" alone stays "capital")
    while len(tokens) > 1 and tokens[-1] in ORG_SUFFIXES:
        tokens.pop()
    return " ".join(tokens)


def _person_parts(name: Optional[str]) -> Tuple[str, str]:
    tokens = normalize_text(name).split()
    while len(tokens) > 1 and tokens[0] in HONORIFICS:
        tokens.pop(0)
    while len(tokens) > 1 and tokens[-1] in GENERATIONAL_SUFFIXES:
        tokens.pop()
    if not tokens:
        return "", ""
    if len(tokens) == 1:
        return tokens[0], ""
    return tokens[0], tokens[-1]


def person_keys(name: Optional[str], nicknames: Optional[NicknameTable] = None) -> List[str]:
    """All person keys for a name, one per nickname variant of the first name.

    The key built from the unchanged first name is always first.
    """
    first, last = _person_parts(name)
    if not first:
        return []
    table = nicknames if nicknames is not None else DEFAULT_NICKNAME_TABLE
    firsts = [first] + sorted(table.variants(first) - {first})
    return [f"{f} {last}".strip() for f in firsts]


def normalize(text: Optional[str], role: EntityRole, nicknames: Optional[NicknameTable] = None) -> str:
    if role is EntityRole.ORGANIZATION:
        return org_key(text)
    keys = person_keys(text, nicknames)
    return keys[0] if keys else ""


def keys_for(text: Optional[str], role: EntityRole, nicknames: Optional[NicknameTable] = None) -> List[str]:
    if role is EntityRole.ORGANIZATION:
        key = org_key(text)
        return [key] if key else []
    return person_keys(text, nicknames)
