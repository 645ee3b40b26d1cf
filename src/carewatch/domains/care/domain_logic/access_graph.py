"""Access relation graph: the single authorization entry point.

Caregivers reach care subjects only through permissioned relations. Every
subject-scoped operation calls :meth:`AccessGraph.authorize` before doing
anything else; listing operations go through
:meth:`AccessGraph.list_accessible_subjects` and silently omit what the
caller cannot see.
"""

from __future__ import annotations

import logging

from carewatch.core.storage.models import AccessRelation, PermissionLevel, RelationshipType
from carewatch.core.storage.repository import CareRepository, ConflictError
from carewatch.domains.care.domain_logic.errors import (
    AccessDenied,
    DuplicateRelation,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)


class AccessGraph:
    """Answers who may see or change which care subject.

    Usage::

        graph = AccessGraph(repository)
        graph.authorize(caregiver_id, subject_id, PermissionLevel.EDIT)
        subject_ids = graph.list_accessible_subjects(caregiver_id)
    """

    def __init__(self, repository: CareRepository) -> None:
        self._repo = repository

    def authorize(
        self,
        caregiver_id: str,
        care_subject_id: str,
        required_level: PermissionLevel,
    ) -> AccessRelation:
        """Return the caller's relation if it grants ``required_level``.

        Raises:
            AccessDenied: No active relation, or one below the required level.
                The message is the same in both cases and does not reveal
                whether the subject exists.
        """
        relation = None
        if caregiver_id and care_subject_id:
            relation = self._repo.get_active_relation(caregiver_id, care_subject_id)

        if relation is None or not relation.allows(required_level):
            logger.warning(
                "Access denied: caregiver=%s subject=%s required=%s",
                caregiver_id,
                care_subject_id,
                required_level.label,
            )
            raise AccessDenied(
                f"Caregiver {caregiver_id} lacks {required_level.label} access to "
                f"care subject {care_subject_id}"
            )
        return relation

    def list_accessible_subjects(
        self,
        caregiver_id: str,
        minimum_level: PermissionLevel = PermissionLevel.VIEW,
    ) -> list[str]:
        """Subject ids the caregiver holds at least ``minimum_level`` on.

        Ordered by relation creation, oldest first.
        """
        return [
            relation.care_subject_id
            for relation in self._repo.get_relations_for_caregiver(caregiver_id)
            if relation.allows(minimum_level)
        ]

    def relations_of(self, caregiver_id: str) -> list[AccessRelation]:
        return self._repo.get_relations_for_caregiver(caregiver_id)

    def grant_relation(
        self,
        caregiver_id: str,
        care_subject_id: str,
        relationship_type: str | RelationshipType,
        permission_level: str | PermissionLevel,
    ) -> AccessRelation:
        """Create the edge (caregiver, subject).

        Raises:
            DuplicateRelation: An active relation already exists for the pair.
            NotFound: The caregiver or the subject does not exist.
            ValidationFailed: Unknown relationship type or permission level.
        """
        relation = AccessRelation(
            id="",
            caregiver_id=caregiver_id,
            care_subject_id=care_subject_id,
            relationship_type=parse_relationship_type(relationship_type),
            permission_level=parse_permission_level(permission_level),
        )

        if self._repo.get_active_relation(caregiver_id, care_subject_id) is not None:
            raise DuplicateRelation(
                f"Caregiver {caregiver_id} already has access to care subject {care_subject_id}"
            )
        if self._repo.get_caregiver(caregiver_id) is None:
            raise NotFound(f"Caregiver {caregiver_id} not found")
        if self._repo.get_subject(care_subject_id) is None:
            raise NotFound(f"Care subject {care_subject_id} not found")

        try:
            return self._repo.insert_relation(relation)
        except ConflictError:
            # Lost a race against a concurrent grant for the same pair.
            raise DuplicateRelation(
                f"Caregiver {caregiver_id} already has access to care subject {care_subject_id}"
            ) from None


def parse_permission_level(value: str | PermissionLevel) -> PermissionLevel:
    try:
        return PermissionLevel.parse(value)
    except ValueError:
        valid = ", ".join(level.label for level in PermissionLevel)
        raise ValidationFailed(
            f"Unknown permission level {value!r}; expected one of: {valid}"
        ) from None


def parse_relationship_type(value: str | RelationshipType) -> RelationshipType:
    try:
        return RelationshipType(value)
    except ValueError:
        valid = ", ".join(r.value for r in RelationshipType)
        raise ValidationFailed(
            f"Unknown relationship type {value!r}; expected one of: {valid}"
        ) from None
