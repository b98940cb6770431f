"""
Registry index construction.

Responsibilities:
- Map organization keys and person keys (every nickname variant) to entities.
- Map associated names to the entities that reference them.
- Keep, per entity, the opposite-role keys used for pair validation.

Invariant:
Every entity with a non-empty display name is reachable from the direct map
of its role (unless an earlier entity already owns the key) and from every
key its association set produces. The index is read-only once built.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from .classify import classify
from .models import Entity, EntityRole
from .normalize import NicknameTable, keys_for


@dataclass
class RegistryIndex:
    org_key_to_entity: Dict[str, Entity] = field(default_factory=dict)
    person_key_to_entity: Dict[str, Entity] = field(default_factory=dict)
    org_assoc_key_to_entities: Dict[str, List[Entity]] = field(default_factory=dict)
    person_assoc_key_to_entities: Dict[str, List[Entity]] = field(default_factory=dict)
    # entity id -> every org key / person key its association set produces
    entity_org_keys: Dict[Any, FrozenSet[str]] = field(default_factory=dict)
    entity_person_keys: Dict[Any, FrozenSet[str]] = field(default_factory=dict)
    roles: Dict[Any, EntityRole] = field(default_factory=dict)
    nicknames: Optional[NicknameTable] = None

    def direct_map(self, role: EntityRole) -> Dict[str, Entity]:
        if role is EntityRole.ORGANIZATION:
            return self.org_key_to_entity
        return self.person_key_to_entity

    def assoc_map(self, role: EntityRole) -> Dict[str, List[Entity]]:
        if role is EntityRole.ORGANIZATION:
            return self.org_assoc_key_to_entities
        return self.person_assoc_key_to_entities

    def role_of(self, entity: Entity) -> Optional[EntityRole]:
        return self.roles.get(entity.id)

    def associated_keys(self, entity: Entity, role: EntityRole) -> FrozenSet[str]:
        """Keys of the given role linked to an entity (its own name included)."""
        if role is EntityRole.ORGANIZATION:
            return self.entity_org_keys.get(entity.id, frozenset())
        return self.entity_person_keys.get(entity.id, frozenset())

    def __len__(self) -> int:
        return len(self.roles)


def _append_unique(index: Dict[str, List[Entity]], key: str, entity: Entity) -> None:
    bucket = index.setdefault(key, [])
    if all(e.id != entity.id for e in bucket):
        bucket.append(entity)


def build_index(
    entities: Iterable[Entity],
    nicknames: Optional[NicknameTable] = None,
    bias: EntityRole = EntityRole.PERSON,
) -> RegistryIndex:
    index = RegistryIndex(nicknames=nicknames)

    for entity in entities:
        own = entity.display_name
        if not own:
            continue

        role = classify(entity, bias).role
        index.roles[entity.id] = role

        direct = index.direct_map(role)
        own_keys = keys_for(own, role, nicknames)
        for key in own_keys:
            direct.setdefault(key, entity)  # first writer wins
            _append_unique(index.assoc_map(role), key, entity)

        other = role.opposite
        linked = set()
        for name in entity.association_set:
            for key in keys_for(name, other, nicknames):
                _append_unique(index.assoc_map(other), key, entity)
                linked.add(key)

        if role is EntityRole.ORGANIZATION:
            index.entity_org_keys[entity.id] = frozenset(own_keys)
            index.entity_person_keys[entity.id] = frozenset(linked)
        else:
            index.entity_org_keys[entity.id] = frozenset(linked)
            index.entity_person_keys[entity.id] = frozenset(own_keys)

    return index
