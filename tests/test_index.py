"""
Tests for index.py - registry index construction.
"""

from rostersync.index import build_index
from rostersync.models import Entity, EntityRole


class TestBuildIndex:
    """Test direct and association maps."""

    def test_org_and_person_direct_keys(self, registry_entities):
        index = build_index(registry_entities)

        assert index.org_key_to_entity["bental group"].id == 101
        assert index.org_key_to_entity["acme"].id == 102
        assert index.person_key_to_entity["jonathan smith"].id == 104
        assert index.person_key_to_entity["jon smith"].id == 104

    def test_associations_indexed_under_opposite_role(self, registry_entities):
        index = build_index(registry_entities)

        assert [e.id for e in index.person_assoc_key_to_entities["matt lee"]] == [101]
        assert [e.id for e in index.org_assoc_key_to_entities["smith family office"]] == [104]

    def test_own_name_in_association_map(self, registry_entities):
        index = build_index(registry_entities)

        assert [e.id for e in index.org_assoc_key_to_entities["acme"]] == [102]

    def test_associated_keys_for_validation(self, registry_entities):
        index = build_index(registry_entities)
        bental = registry_entities[0]
        smith = registry_entities[3]

        assert "matthew lee" in index.associated_keys(bental, EntityRole.PERSON)
        assert index.associated_keys(bental, EntityRole.ORGANIZATION) == frozenset({"bental group"})
        assert "smith family office" in index.associated_keys(smith, EntityRole.ORGANIZATION)

    def test_first_writer_wins(self):
        first = Entity(id=1, name="Acme Inc", type_tag="company")
        second = Entity(id=2, name="Acme LLC", type_tag="company")
        index = build_index([first, second])

        assert index.org_key_to_entity["acme"].id == 1
        assert [e.id for e in index.org_assoc_key_to_entities["acme"]] == [1, 2]

    def test_nameless_entities_skipped(self):
        index = build_index([Entity(id=1, name="  ")])
        assert len(index) == 0

    def test_roles_recorded(self, registry_entities):
        index = build_index(registry_entities)
        assert index.role_of(registry_entities[0]) is EntityRole.ORGANIZATION
        assert index.role_of(registry_entities[3]) is EntityRole.PERSON
