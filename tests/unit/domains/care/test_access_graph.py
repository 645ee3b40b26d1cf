"""Tests for AccessGraph — permission checks and grants."""

from __future__ import annotations

import pytest

from carewatch.core.storage.models import PermissionLevel, RelationshipType
from carewatch.domains.care.domain_logic.access_graph import (
    parse_permission_level,
    parse_relationship_type,
)
from carewatch.domains.care.domain_logic.errors import (
    AccessDenied,
    DuplicateRelation,
    NotFound,
    ValidationFailed,
)


class TestPermissionOrdering:
    def test_levels_are_ordered(self):
        assert PermissionLevel.VIEW < PermissionLevel.EDIT < PermissionLevel.ADMIN

    def test_parse_accepts_labels_and_members(self):
        assert parse_permission_level("edit") is PermissionLevel.EDIT
        assert parse_permission_level("ADMIN") is PermissionLevel.ADMIN
        assert parse_permission_level(PermissionLevel.VIEW) is PermissionLevel.VIEW

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValidationFailed):
            parse_permission_level("owner")
        with pytest.raises(ValidationFailed):
            parse_relationship_type("cousin")

    def test_parse_relationship_type(self):
        assert parse_relationship_type("child") is RelationshipType.CHILD


class TestAuthorize:
    def test_creator_is_admin(self, access_graph, ana, rosa):
        relation = access_graph.authorize(ana.id, rosa.id, PermissionLevel.ADMIN)
        assert relation.permission_level is PermissionLevel.ADMIN

    def test_no_relation_denied(self, access_graph, bruno, rosa):
        with pytest.raises(AccessDenied):
            access_graph.authorize(bruno.id, rosa.id, PermissionLevel.VIEW)

    def test_unknown_subject_denied_not_found(self, access_graph, ana):
        with pytest.raises(AccessDenied):
            access_graph.authorize(ana.id, "missing", PermissionLevel.VIEW)

    @pytest.mark.parametrize(
        ("granted", "required", "allowed"),
        [
            ("view", PermissionLevel.VIEW, True),
            ("view", PermissionLevel.EDIT, False),
            ("edit", PermissionLevel.EDIT, True),
            ("edit", PermissionLevel.ADMIN, False),
            ("admin", PermissionLevel.VIEW, True),
        ],
    )
    def test_level_comparison(self, access_graph, bruno, rosa, granted, required, allowed):
        access_graph.grant_relation(bruno.id, rosa.id, "medical_professional", granted)
        if allowed:
            assert access_graph.authorize(bruno.id, rosa.id, required).care_subject_id == rosa.id
        else:
            with pytest.raises(AccessDenied):
                access_graph.authorize(bruno.id, rosa.id, required)

    def test_empty_ids_denied(self, access_graph):
        with pytest.raises(AccessDenied):
            access_graph.authorize("", "", PermissionLevel.VIEW)


class TestGrant:
    def test_grant_creates_active_relation(self, access_graph, bruno, rosa):
        relation = access_graph.grant_relation(bruno.id, rosa.id, "medical_professional", "view")
        assert relation.is_active
        assert access_graph.authorize(bruno.id, rosa.id, PermissionLevel.VIEW).id == relation.id

    def test_duplicate_grant_rejected(self, access_graph, bruno, rosa):
        access_graph.grant_relation(bruno.id, rosa.id, "caregiver", "view")
        with pytest.raises(DuplicateRelation):
            access_graph.grant_relation(bruno.id, rosa.id, "caregiver", "edit")

    def test_grant_to_unknown_caregiver(self, access_graph, rosa):
        with pytest.raises(NotFound):
            access_graph.grant_relation("missing", rosa.id, "caregiver", "view")

    def test_grant_on_unknown_subject(self, access_graph, bruno):
        with pytest.raises(NotFound):
            access_graph.grant_relation(bruno.id, "missing", "caregiver", "view")

    def test_grant_validates_level(self, access_graph, bruno, rosa):
        with pytest.raises(ValidationFailed):
            access_graph.grant_relation(bruno.id, rosa.id, "caregiver", "superuser")


class TestListing:
    def test_lists_only_related_subjects(self, access_graph, registry, ana, bruno, rosa):
        other = registry.create(bruno.id, {"first_name": "Luis", "last_name": "Gomez"})
        assert access_graph.list_accessible_subjects(ana.id) == [rosa.id]
        assert access_graph.list_accessible_subjects(bruno.id) == [other.id]

    def test_minimum_level_filter(self, access_graph, registry, ana, bruno, rosa):
        access_graph.grant_relation(bruno.id, rosa.id, "caregiver", "view")
        own = registry.create(bruno.id, {"first_name": "Luis", "last_name": "Gomez"})
        assert access_graph.list_accessible_subjects(bruno.id, PermissionLevel.EDIT) == [own.id]
