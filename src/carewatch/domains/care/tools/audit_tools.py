"""MCP tools for viewing the audit trail.

The audit trail holds operation names, outcomes and hashed input
references only. No transcript or clinical field is ever stored in it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from carewatch.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

MAX_AUDIT_DAYS = 3650


def register_audit_tools(
    mcp: FastMCP,
    audit_logger: AuditLogger,
    *,
    max_days: int = MAX_AUDIT_DAYS,
) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(
        ctx: Context,
        caregiver_id: str,
        days: int = 30,
    ) -> str:
        """View the caller's recent operations and denied access attempts.

        Args:
            caregiver_id: The calling caregiver; only their own events are shown.
            days: Number of days to look back (default: 30).
        """
        if not 1 <= days <= max_days:
            return json.dumps({
                "status": "invalid",
                "message": f"days must be between 1 and {max_days}, got {days!r}",
            })

        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat(timespec="microseconds")

        recent_events = audit_logger.get_events(caregiver_id=caregiver_id, since=since, limit=200)
        denied = sum(1 for e in recent_events if e.get("status") == "denied")

        display_events = []
        for event in recent_events[:20]:
            display_events.append({
                "timestamp": event.get("timestamp"),
                "operation": event.get("operation"),
                "care_subject_id": event.get("care_subject_id"),
                "status": event.get("status"),
                "error_type": event.get("error_type"),
                "duration_ms": event.get("duration_ms"),
            })

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": len(recent_events),
            "denied_events": denied,
            "recent_events": display_events,
        }, indent=2)
