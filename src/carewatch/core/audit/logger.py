"""Audit logger — PHI-free trail of care operations and access decisions.

Every operation on the care surface is recorded with who asked, which
subject it touched and how it ended:

* ``input_hash`` — SHA-256 of canonical JSON (no transcripts or clinical
  fields ever land in the audit table).
* ``status`` — ``success``, ``denied`` (authorization), ``rejected``
  (validation or lifecycle errors) or ``failure`` (infrastructure).
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from carewatch.core.storage.database import CareDatabase

logger = logging.getLogger(__name__)


def _hash_input(data: Any) -> str:
    """SHA-256 hash of canonical JSON, or empty string if not serializable."""
    try:
        canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode()).hexdigest()
    except (TypeError, ValueError):
        return ""


@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'operation' | 'access_denied' | 'alert_resolved'
    operation: str = ""                  # e.g. 'record_interaction'
    caregiver_id: str | None = None
    care_subject_id: str | None = None
    input_hash: str = ""
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'denied' | 'rejected' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    Writes are committed immediately. A failed audit write is logged and
    dropped: auditing never breaks the operation being audited.

    Usage::

        audit = AuditLogger(care_db)
        audit.log_operation(
            "resolve_alert",
            caregiver_id=caregiver_id,
            care_subject_id=subject_id,
            operation_input={"alert_id": alert_id},
        )
    """

    def __init__(self, database: CareDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID ('' if the write failed)."""
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat(timespec="microseconds")

        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"), default=str)
            if event.metadata
            else None
        )

        try:
            with self._db.transaction() as conn:
                conn.execute(
                    """INSERT INTO audit_log
                       (id, timestamp, action, operation, caregiver_id, care_subject_id,
                        input_hash, duration_ms, status, error_type, metadata_json)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        event_id,
                        now,
                        event.action,
                        event.operation or None,
                        event.caregiver_id,
                        event.care_subject_id,
                        event.input_hash or None,
                        event.duration_ms,
                        event.status,
                        event.error_type,
                        metadata_json,
                    ),
                )
        except Exception:
            logger.exception("Failed to write audit event, event lost")
            return ""

        return event_id

    def log_operation(
        self,
        operation: str,
        *,
        caregiver_id: str | None = None,
        care_subject_id: str | None = None,
        operation_input: Any = None,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Convenience wrapper for logging one call on the care surface.

        Args:
            operation: Name of the operation (e.g. 'get_stats').
            caregiver_id: The caller.
            care_subject_id: Subject the call was scoped to, if any.
            operation_input: Call arguments (hashed, never stored raw).
            duration_ms: Execution time in milliseconds.
            status: 'success', 'denied', 'rejected' or 'failure'.
            error_type: Exception class name when the call did not succeed.
            metadata: Additional non-PHI context.
        """
        return self.log_event(AuditEvent(
            action="access_denied" if status == "denied" else "operation",
            operation=operation,
            caregiver_id=caregiver_id,
            care_subject_id=care_subject_id,
            input_hash=_hash_input(operation_input) if operation_input else "",
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        caregiver_id: str | None = None,
        care_subject_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters, newest first."""
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if caregiver_id:
            conditions.append("caregiver_id = ?")
            params.append(caregiver_id)
        if care_subject_id:
            conditions.append("care_subject_id = ?")
            params.append(care_subject_id)
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC, rowid DESC LIMIT ?"
        params.append(limit)

        with self._db.snapshot() as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None, status: str | None = None) -> int:
        """Count audit events, optionally since a timestamp and/or with a status."""
        conditions: list[str] = []
        params: list[Any] = []
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)
        if status:
            conditions.append("status = ?")
            params.append(status)
        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        with self._db.snapshot() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM audit_log{where}", params).fetchone()
        return row[0]
