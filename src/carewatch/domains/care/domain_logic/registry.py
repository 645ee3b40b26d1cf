"""Care-subject registry: profiles of the people being monitored.

Creating a subject also makes the creator its first administrator. Updates
need ``edit`` access, soft (de)activation needs ``admin``; subjects are
never hard-deleted.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date
from typing import Any

from carewatch.core.storage.models import (
    GENDERS,
    HEARING_STATUSES,
    MOBILITY_STATUSES,
    SPEECH_STATUSES,
    VISION_STATUSES,
    AccessRelation,
    CareSubject,
    Medication,
    PermissionLevel,
    RelationshipType,
)
from carewatch.core.storage.repository import CareRepository, ConflictError
from carewatch.domains.care.domain_logic.access_graph import (
    AccessGraph,
    parse_relationship_type,
)
from carewatch.domains.care.domain_logic.errors import (
    AccessDenied,
    InvalidCareSubject,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

# Fields a caller may set on create or change through a patch.
PROFILE_FIELDS = frozenset({
    "first_name",
    "last_name",
    "date_of_birth",
    "gender",
    "phone_number",
    "address",
    "health_status",
    "medical_history",
    "conditions",
    "medications",
    "allergies",
    "sensitivities",
    "emergency_contact",
    "care_instructions",
    "mobility_status",
    "mobility_aids",
    "vision_status",
    "hearing_status",
    "speech_status",
    "device_id",
})

_ENUMERATED_FIELDS = {
    "gender": GENDERS,
    "mobility_status": MOBILITY_STATUSES,
    "vision_status": VISION_STATUSES,
    "hearing_status": HEARING_STATUSES,
    "speech_status": SPEECH_STATUSES,
}

_LIST_FIELDS = ("conditions", "allergies", "sensitivities", "mobility_aids")

_TEXT_FIELDS = (
    "phone_number",
    "address",
    "health_status",
    "medical_history",
    "emergency_contact",
    "care_instructions",
    "device_id",
)


class CareSubjectRegistry:
    """Creates, reads and updates care-subject profiles.

    Usage::

        registry = CareSubjectRegistry(repository, access_graph)
        subject = registry.create(caregiver_id, {"first_name": "Rosa", "last_name": "Diaz"})
        registry.update(caregiver_id, subject.id, {"mobility_status": "assisted"})
    """

    def __init__(self, repository: CareRepository, access_graph: AccessGraph) -> None:
        self._repo = repository
        self._access = access_graph

    def create(
        self,
        caregiver_id: str,
        profile: dict[str, Any],
        *,
        relationship_type: str | RelationshipType = RelationshipType.CAREGIVER,
    ) -> CareSubject:
        """Register a subject and grant its creator ``admin`` access.

        Raises:
            AccessDenied: The caller is not a registered caregiver.
            InvalidCareSubject: The profile violates a field constraint.
        """
        if not caregiver_id or self._repo.get_caregiver(caregiver_id) is None:
            raise AccessDenied(f"Unknown caregiver {caregiver_id!r}")

        try:
            relation_type = parse_relationship_type(relationship_type)
        except ValidationFailed as exc:
            raise InvalidCareSubject(str(exc)) from None

        _reject_unknown_fields(profile)
        subject = _apply_profile(CareSubject(id="", first_name="", last_name=""), profile)

        relation = AccessRelation(
            id="",
            caregiver_id=caregiver_id,
            care_subject_id="",
            relationship_type=relation_type,
            permission_level=PermissionLevel.ADMIN,
        )
        try:
            subject, _ = self._repo.insert_subject(subject, relation)
        except ConflictError:
            raise InvalidCareSubject(
                f"Device {subject.device_id!r} is already assigned to another care subject"
            ) from None
        return subject

    def get(self, caregiver_id: str, subject_id: str) -> CareSubject:
        self._access.authorize(caregiver_id, subject_id, PermissionLevel.VIEW)
        return self._require(subject_id)

    def list_for(self, caregiver_id: str, *, include_inactive: bool = False) -> list[CareSubject]:
        """Subjects the caregiver can view; the rest are omitted, not reported."""
        subject_ids = self._access.list_accessible_subjects(caregiver_id)
        return self._repo.get_subjects(subject_ids, include_inactive=include_inactive)

    def update(self, caregiver_id: str, subject_id: str, patch: dict[str, Any]) -> CareSubject:
        """Apply a partial profile update.

        Raises:
            AccessDenied: The caller holds less than ``edit`` access.
            InvalidCareSubject: Unknown/immutable keys or invalid values.
                Nothing is written in that case.
        """
        self._access.authorize(caregiver_id, subject_id, PermissionLevel.EDIT)
        if not patch:
            raise InvalidCareSubject("Patch must change at least one field")
        _reject_unknown_fields(patch)

        current = self._require(subject_id)
        updated = _apply_profile(dataclasses.replace(current), patch)
        try:
            return self._repo.update_subject(updated)
        except ConflictError:
            raise InvalidCareSubject(
                f"Device {updated.device_id!r} is already assigned to another care subject"
            ) from None

    def deactivate(self, caregiver_id: str, subject_id: str) -> CareSubject:
        return self._set_active(caregiver_id, subject_id, False)

    def reactivate(self, caregiver_id: str, subject_id: str) -> CareSubject:
        return self._set_active(caregiver_id, subject_id, True)

    def _set_active(self, caregiver_id: str, subject_id: str, active: bool) -> CareSubject:
        self._access.authorize(caregiver_id, subject_id, PermissionLevel.ADMIN)
        self._repo.set_subject_active(subject_id, active)
        return self._require(subject_id)

    def _require(self, subject_id: str) -> CareSubject:
        subject = self._repo.get_subject(subject_id)
        if subject is None:
            raise NotFound(f"Care subject {subject_id} not found")
        return subject


# ---------------------------------------------------------------------------
# Profile validation
# ---------------------------------------------------------------------------

def _reject_unknown_fields(values: dict[str, Any]) -> None:
    if not isinstance(values, dict):
        raise InvalidCareSubject("Profile must be a mapping of field names to values")
    unknown = sorted(set(values) - PROFILE_FIELDS)
    if unknown:
        raise InvalidCareSubject(f"Unknown or immutable profile fields: {', '.join(unknown)}")


def _apply_profile(subject: CareSubject, values: dict[str, Any]) -> CareSubject:
    """Validate ``values`` and copy them onto ``subject``."""
    for name in ("first_name", "last_name"):
        if name in values:
            setattr(subject, name, _required_text(name, values[name]))
    if not subject.first_name or not subject.last_name:
        raise InvalidCareSubject("first_name and last_name are required")

    if "date_of_birth" in values:
        subject.date_of_birth = _iso_date(values["date_of_birth"])

    for name, allowed in _ENUMERATED_FIELDS.items():
        if name in values:
            setattr(subject, name, _tag(name, values[name], allowed))

    for name in _TEXT_FIELDS:
        if name in values:
            setattr(subject, name, _optional_text(name, values[name]))

    for name in _LIST_FIELDS:
        if name in values:
            setattr(subject, name, _text_list(name, values[name]))

    if "medications" in values:
        subject.medications = _medications(values["medications"])

    return subject


def _required_text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidCareSubject(f"{name} must be a non-empty string")
    return value.strip()


def _optional_text(name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidCareSubject(f"{name} must be a string")
    return value.strip() or None


def _tag(name: str, value: Any, allowed: tuple[str, ...]) -> str | None:
    if value is None:
        return None
    if value not in allowed:
        raise InvalidCareSubject(f"{name} must be one of: {', '.join(allowed)}")
    return value


def _iso_date(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise InvalidCareSubject(f"date_of_birth must be an ISO date, got {value!r}") from None


def _text_list(name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(
        isinstance(item, str) and item.strip() for item in value
    ):
        raise InvalidCareSubject(f"{name} must be a list of non-empty strings")
    return [item.strip() for item in value]


def _medications(value: Any) -> list[Medication]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise InvalidCareSubject("medications must be a list")

    medications = []
    for index, item in enumerate(value):
        if isinstance(item, Medication):
            item = dataclasses.asdict(item)
        if not isinstance(item, dict):
            raise InvalidCareSubject(f"medications[{index}] must be an object")
        unknown = set(item) - {"name", "dose", "schedule", "notes"}
        if unknown:
            raise InvalidCareSubject(
                f"medications[{index}] has unknown fields: {', '.join(sorted(unknown))}"
            )
        medications.append(Medication(
            name=_required_text(f"medications[{index}].name", item.get("name")),
            dose=_required_text(f"medications[{index}].dose", item.get("dose")),
            schedule=_required_text(f"medications[{index}].schedule", item.get("schedule")),
            notes=_optional_text(f"medications[{index}].notes", item.get("notes")),
        ))
    return medications
