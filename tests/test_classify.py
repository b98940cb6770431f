"""
Tests for classify.py - organization vs person classification.
"""

from rostersync.classify import (
    EVIDENCE_KEYWORD,
    EVIDENCE_NAME_FIELDS,
    EVIDENCE_SHAPE,
    EVIDENCE_TOKEN_COUNT,
    EVIDENCE_TYPE_TAG,
    classify,
    classify_name,
    role_from_tag,
)
from rostersync.models import Entity, EntityRole


class TestClassifyName:
    """Test shape-based classification of bare names."""

    def test_keyword_means_organization(self):
        result = classify_name("Smith Family Office")
        assert result.role is EntityRole.ORGANIZATION
        assert result.evidence == EVIDENCE_KEYWORD

    def test_single_token_means_organization(self):
        result = classify_name("Sequoia")
        assert result.role is EntityRole.ORGANIZATION
        assert result.evidence == EVIDENCE_TOKEN_COUNT

    def test_two_tokens_follow_bias(self):
        assert classify_name("Sarah Chen").role is EntityRole.PERSON
        result = classify_name("Sarah Chen", bias=EntityRole.ORGANIZATION)
        assert result.role is EntityRole.ORGANIZATION
        assert result.evidence == EVIDENCE_SHAPE


class TestClassifyRecord:
    """Test classification of entities and mappings."""

    def test_type_tag_wins(self):
        entity = Entity(id=1, name="Sarah Chen", type_tag="company")
        result = classify(entity)
        assert result.role is EntityRole.ORGANIZATION
        assert result.evidence == EVIDENCE_TYPE_TAG

    def test_explicit_role_wins(self):
        entity = Entity(id=1, name="Acme", role=EntityRole.PERSON)
        assert classify(entity).role is EntityRole.PERSON

    def test_name_fields_mean_person(self):
        result = classify({"firstName": "Jonathan", "lastName": "Smith"})
        assert result.role is EntityRole.PERSON
        assert result.evidence == EVIDENCE_NAME_FIELDS

    def test_unknown_tag_falls_back_to_name(self):
        result = classify({"type": "opportunity", "name": "Bental Group"})
        assert result.role is EntityRole.ORGANIZATION

    def test_plain_string(self):
        assert classify("Matt Lee").role is EntityRole.PERSON

    def test_role_from_tag(self):
        assert role_from_tag("Company") is EntityRole.ORGANIZATION
        assert role_from_tag("person") is EntityRole.PERSON
        assert role_from_tag(None) is None
