"""
Entity matching for import rows.

Responsibilities:
- Resolve a row's organization and person candidates to at most one entity.
- Prefer matches confirmed by the accompanying name of the other role.
- Fall back to association-only and then type-only lookups for recall.

Non-Responsibilities:
- No status derivation.
- No write decisions.

Invariant:
The best result only ever moves up. A later strategy or candidate replaces
it only with a strictly higher score, so ties keep the earlier match.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from .index import RegistryIndex
from .models import Entity, EntityRole, MatchResult, NameCandidate
from .normalize import NicknameTable, org_key, person_keys
from .similarity import best_match

ORG_THRESHOLD = 0.88
PERSON_THRESHOLD = 0.85
PAIRED_THRESHOLD = 0.90
VALIDATION_THRESHOLD = 0.90
DISAMBIGUATION_THRESHOLD = 0.88

PERSON_ASSOC_UNIQUE_SCORE = 0.95
PERSON_ASSOC_DISAMBIGUATED_SCORE = 0.93
ORG_ASSOC_UNIQUE_SCORE = 0.92


class _Best:
    __slots__ = ("result",)

    def __init__(self):
        self.result = MatchResult()

    def offer(self, entity: Entity, match_type: str, score: float) -> None:
        if score > self.result.score:
            self.result = MatchResult(entity=entity, match_type=match_type, score=score)

    @property
    def found(self) -> bool:
        return self.result.entity is not None


def _resolve(keys: Sequence[str], direct: dict, threshold: float) -> Optional[Entity]:
    for key in keys:
        if key in direct:
            return direct[key]
    best: Optional[Tuple[str, float]] = None
    for key in keys:
        hit = best_match(key, direct.keys(), threshold)
        if hit and (best is None or hit[1] > best[1]):
            best = hit
    return direct[best[0]] if best else None


def _contains(keys: Sequence[str], allowed: frozenset, threshold: float) -> float:
    """1.0 if any key is in `allowed`, else the best fuzzy score at or above threshold, else 0."""
    if not allowed:
        return 0.0
    if any(k in allowed for k in keys):
        return 1.0
    score = 0.0
    for key in keys:
        hit = best_match(key, allowed, threshold)
        if hit and hit[1] > score:
            score = hit[1]
    return score


def _validate(keys_per_candidate: Iterable[Sequence[str]], allowed: frozenset) -> float:
    """Best validation score of any candidate against an entity's association keys."""
    score = 0.0
    for keys in keys_per_candidate:
        score = max(score, _contains(keys, allowed, VALIDATION_THRESHOLD))
        if score == 1.0:
            break
    return score


def _unique_hits(keys: Sequence[str], assoc: dict) -> List[Entity]:
    hits: List[Entity] = []
    for key in keys:
        for entity in assoc.get(key, ()):
            if all(e.id != entity.id for e in hits):
                hits.append(entity)
    return hits


def match(
    org_candidates: Sequence[NameCandidate],
    person_candidates: Sequence[NameCandidate],
    index: RegistryIndex,
    nicknames: Optional[NicknameTable] = None,
) -> MatchResult:
    table = nicknames if nicknames is not None else index.nicknames
    org_keys = [k for k in (org_key(c.text) for c in org_candidates) if k]
    person_key_sets = [ks for ks in (person_keys(c.text, table) for c in person_candidates) if ks]

    best = _Best()
    org_type = EntityRole.ORGANIZATION.value
    person_type = EntityRole.PERSON.value

    # 1. Organization resolved, confirmed by a person candidate
    if org_keys and person_key_sets:
        for key in org_keys:
            entity = _resolve([key], index.org_key_to_entity, PAIRED_THRESHOLD)
            if entity is None:
                continue
            score = _validate(person_key_sets, index.associated_keys(entity, EntityRole.PERSON))
            if score > 0:
                best.offer(entity, org_type, score)

    # 2. Person resolved, confirmed by an organization candidate
    if person_key_sets and org_keys:
        for keys in person_key_sets:
            entity = _resolve(keys, index.person_key_to_entity, PAIRED_THRESHOLD)
            if entity is None:
                continue
            score = _validate([[k] for k in org_keys], index.associated_keys(entity, EntityRole.ORGANIZATION))
            if score > 0:
                best.offer(entity, person_type, score)

    # 3. Association-only fallback
    if not best.found:
        for keys in person_key_sets:
            hits = _unique_hits(keys, index.person_assoc_key_to_entities)
            if len(hits) == 1:
                best.offer(hits[0], person_type, PERSON_ASSOC_UNIQUE_SCORE)
            elif len(hits) > 1 and org_keys:
                # first acceptable hit wins; later hits are not scored
                for entity in hits:
                    allowed = index.associated_keys(entity, EntityRole.ORGANIZATION)
                    if _contains(org_keys, allowed, DISAMBIGUATION_THRESHOLD):
                        best.offer(entity, person_type, PERSON_ASSOC_DISAMBIGUATED_SCORE)
                        break
    if not best.found:
        for key in org_keys:
            hits = index.org_assoc_key_to_entities.get(key, [])
            if len(hits) == 1:
                best.offer(hits[0], org_type, ORG_ASSOC_UNIQUE_SCORE)

    # 4. Type-only lookup
    if best.result.score < 1.0:
        for key in org_keys:
            if key in index.org_key_to_entity:
                best.offer(index.org_key_to_entity[key], org_type, 1.0)
            else:
                hit = best_match(key, index.org_key_to_entity.keys(), ORG_THRESHOLD)
                if hit:
                    best.offer(index.org_key_to_entity[hit[0]], org_type, hit[1])
        for keys in person_key_sets:
            direct = next((k for k in keys if k in index.person_key_to_entity), None)
            if direct is not None:
                best.offer(index.person_key_to_entity[direct], person_type, 1.0)
                continue
            for key in keys:
                hit = best_match(key, index.person_key_to_entity.keys(), PERSON_THRESHOLD)
                if hit:
                    best.offer(index.person_key_to_entity[hit[0]], person_type, hit[1])
    return best.result
