"""MCP tools for caregivers, care subjects and access grants.

Every tool takes the calling caregiver's id explicitly. Domain errors come
back as ``{"status": <code>, "message": ...}`` payloads; storage failures
propagate and surface as MCP tool errors.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from carewatch.core.storage.models import to_dict
from carewatch.domains.care.domain_logic.errors import CareError
from carewatch.domains.care.tools.payloads import error_payload, subject_payload

if TYPE_CHECKING:
    from carewatch.domains.care.service import CareService

logger = logging.getLogger(__name__)


def register_subject_tools(mcp: FastMCP, service: CareService) -> None:
    """Register caregiver, care-subject and access tools on the MCP server."""

    @mcp.tool
    async def register_caregiver(
        ctx: Context,
        display_name: str,
        role: str = "family",
        email: str = "",
    ) -> str:
        """Register a caregiver account and return its id.

        Args:
            display_name: Name shown to other caregivers.
            role: One of 'family', 'medical', 'caregiver'.
            email: Optional contact email (unique across caregivers).
        """
        try:
            caregiver = service.register_caregiver(display_name, role, email=email or None)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({"status": "created", "caregiver": to_dict(caregiver)})

    @mcp.tool
    async def create_care_subject(
        ctx: Context,
        caregiver_id: str,
        first_name: str,
        last_name: str,
        profile: dict[str, Any] | None = None,
        relationship_type: str = "caregiver",
    ) -> str:
        """Create a care subject. The creating caregiver becomes its admin.

        Args:
            caregiver_id: The calling caregiver.
            first_name: Subject's first name.
            last_name: Subject's last name.
            profile: Optional further fields, e.g. date_of_birth, gender,
                conditions, medications, allergies, mobility_status,
                emergency_contact, care_instructions, device_id.
            relationship_type: How the creator relates to the subject
                ('child', 'medical_professional', 'caregiver', 'other').
        """
        fields = dict(profile or {})
        fields["first_name"] = first_name
        fields["last_name"] = last_name
        try:
            subject = service.create_care_subject(
                caregiver_id, fields, relationship_type=relationship_type
            )
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({"status": "created", "care_subject": subject_payload(subject)}, indent=2)

    @mcp.tool
    async def list_care_subjects(
        ctx: Context,
        caregiver_id: str,
        include_inactive: bool = False,
    ) -> str:
        """List the care subjects the caller has access to, with their permission level.

        Args:
            caregiver_id: The calling caregiver.
            include_inactive: Also list deactivated subjects.
        """
        try:
            subjects = service.list_care_subjects(caregiver_id, include_inactive=include_inactive)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        levels = service.access_levels(caregiver_id)
        return json.dumps({
            "status": "ok",
            "count": len(subjects),
            "care_subjects": [
                {
                    "id": s.id,
                    "full_name": s.full_name,
                    "is_active": s.is_active,
                    "permission_level": levels[s.id].label if s.id in levels else None,
                }
                for s in subjects
            ],
        }, indent=2)

    @mcp.tool
    async def get_care_subject(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
    ) -> str:
        """Return the full profile of a care subject. Requires 'view' access.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject to read.
        """
        try:
            subject = service.get_care_subject(caregiver_id, care_subject_id)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        levels = service.access_levels(caregiver_id)
        return json.dumps({
            "status": "ok",
            "care_subject": subject_payload(subject, levels.get(subject.id)),
        }, indent=2)

    @mcp.tool
    async def update_care_subject(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
        changes: dict[str, Any],
    ) -> str:
        """Update profile fields of a care subject. Requires 'edit' access.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject to update.
            changes: Field name to new value; unknown fields are rejected.
        """
        try:
            subject = service.update_care_subject(caregiver_id, care_subject_id, changes)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({
            "status": "updated",
            "updated_fields": sorted(changes),
            "care_subject": subject_payload(subject),
        }, indent=2)

    @mcp.tool
    async def deactivate_care_subject(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
    ) -> str:
        """Hide a care subject from default listings. Requires 'admin' access.

        History is kept; the subject stays readable by its caregivers.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject to deactivate.
        """
        try:
            subject = service.deactivate_care_subject(caregiver_id, care_subject_id)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({
            "status": "deactivated",
            "care_subject_id": subject.id,
            "is_active": subject.is_active,
        })

    @mcp.tool
    async def grant_access(
        ctx: Context,
        caregiver_id: str,
        grantee_caregiver_id: str,
        care_subject_id: str,
        permission_level: str = "view",
        relationship_type: str = "caregiver",
    ) -> str:
        """Give another caregiver access to a care subject. Requires 'admin' access.

        Args:
            caregiver_id: The calling caregiver (must be admin on the subject).
            grantee_caregiver_id: The caregiver receiving access.
            care_subject_id: The subject to share.
            permission_level: 'view', 'edit' or 'admin'.
            relationship_type: 'child', 'medical_professional', 'caregiver' or 'other'.
        """
        try:
            relation = service.grant_access(
                caregiver_id,
                grantee_caregiver_id,
                care_subject_id,
                relationship_type,
                permission_level,
            )
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({"status": "granted", "relation": to_dict(relation)})
