"""MCP tools for the health-alert lifecycle."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from carewatch.domains.care.domain_logic.errors import CareError
from carewatch.domains.care.tools.payloads import alert_payload, error_payload

if TYPE_CHECKING:
    from carewatch.domains.care.service import CareService

logger = logging.getLogger(__name__)


def register_alert_tools(mcp: FastMCP, service: CareService) -> None:
    """Register health-alert tools on the MCP server."""

    @mcp.tool
    async def create_alert(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
        alert_type: str,
        severity: str,
        title: str,
        description: str,
    ) -> str:
        """Open a health alert for a care subject. Requires 'edit' access.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject the alert concerns.
            alert_type: 'health', 'safety', 'mood' or 'cognitive'.
            severity: 'low', 'medium', 'high' or 'critical'.
            title: Short summary (max 200 characters).
            description: What was observed.
        """
        try:
            alert = service.create_alert(
                caregiver_id,
                care_subject_id,
                alert_type=alert_type,
                severity=severity,
                title=title,
                description=description,
            )
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({"status": "created", "alert": alert_payload(alert)})

    @mcp.tool
    async def list_alerts(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
        resolved: bool | None = None,
    ) -> str:
        """List a care subject's alerts, newest first.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject whose alerts to list.
            resolved: true for resolved alerts only, false for active only,
                omit for all.
        """
        try:
            alerts = service.list_alerts(caregiver_id, care_subject_id, resolved)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({
            "status": "ok",
            "count": len(alerts),
            "alerts": [alert_payload(a) for a in alerts],
        }, indent=2)

    @mcp.tool
    async def resolve_alert(
        ctx: Context,
        caregiver_id: str,
        alert_id: str,
    ) -> str:
        """Mark an active alert as resolved. Requires 'edit' access.

        An alert can be resolved once; later attempts return
        'already_resolved' and leave the original resolver in place.

        Args:
            caregiver_id: The calling caregiver.
            alert_id: The alert to resolve.
        """
        try:
            alert = service.resolve_alert(caregiver_id, alert_id)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({"status": "resolved", "alert": alert_payload(alert)})
