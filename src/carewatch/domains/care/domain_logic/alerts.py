"""Health-alert lifecycle: creation, listing and one-way resolution.

An alert starts ``active`` and can move to ``resolved`` exactly once.
Resolution records a single resolver and timestamp; a second attempt is
rejected with :class:`AlreadyResolved` instead of overwriting them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from carewatch.core.storage.models import (
    AlertSeverity,
    AlertState,
    AlertType,
    HealthAlert,
    PermissionLevel,
)
from carewatch.core.storage.repository import CareRepository, utc_iso
from carewatch.domains.care.domain_logic.access_graph import AccessGraph
from carewatch.domains.care.domain_logic.errors import (
    AlreadyResolved,
    InvalidAlert,
    InvalidQuery,
    NotFound,
)

logger = logging.getLogger(__name__)

_MAX_TITLE_LENGTH = 200


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AlertLifecycleManager:
    """Creates, lists and resolves health alerts for care subjects.

    Usage::

        alerts = AlertLifecycleManager(repository, access_graph)
        alert = alerts.create(caregiver_id, subject_id, "mood", "medium",
                              "Low mood", "Three low-mood days in a row")
        alerts.resolve(caregiver_id, alert.id)
    """

    def __init__(
        self,
        repository: CareRepository,
        access_graph: AccessGraph,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repo = repository
        self._access = access_graph
        self._clock = clock

    def create(
        self,
        caregiver_id: str,
        care_subject_id: str,
        alert_type: str | AlertType,
        severity: str | AlertSeverity,
        title: str,
        description: str,
    ) -> HealthAlert:
        """Open a new alert in state ``active``. Requires ``edit`` access."""
        self._access.authorize(caregiver_id, care_subject_id, PermissionLevel.EDIT)

        try:
            kind = AlertType(alert_type)
        except ValueError:
            valid = ", ".join(t.value for t in AlertType)
            raise InvalidAlert(f"Unknown alert type {alert_type!r}; expected one of: {valid}") from None
        try:
            level = AlertSeverity(severity)
        except ValueError:
            valid = ", ".join(s.value for s in AlertSeverity)
            raise InvalidAlert(f"Unknown severity {severity!r}; expected one of: {valid}") from None

        if not isinstance(title, str) or not title.strip():
            raise InvalidAlert("title must be a non-empty string")
        if len(title.strip()) > _MAX_TITLE_LENGTH:
            raise InvalidAlert(f"title must be at most {_MAX_TITLE_LENGTH} characters")
        if not isinstance(description, str) or not description.strip():
            raise InvalidAlert("description must be a non-empty string")

        return self._repo.insert_alert(HealthAlert(
            id="",
            care_subject_id=care_subject_id,
            alert_type=kind,
            severity=level,
            title=title.strip(),
            description=description.strip(),
            created_by=caregiver_id,
            created_at=utc_iso(self._clock()),
        ))

    def resolve(self, caregiver_id: str, alert_id: str) -> HealthAlert:
        """Move an alert from ``active`` to ``resolved``.

        Raises:
            NotFound: No alert has this id.
            AccessDenied: The caller holds less than ``edit`` on the alert's subject.
            AlreadyResolved: The alert was resolved before (possibly by a
                concurrent call that won the conditional update).
        """
        alert = self._repo.get_alert(alert_id) if alert_id else None
        if alert is None:
            raise NotFound(f"Health alert {alert_id} not found")

        self._access.authorize(caregiver_id, alert.care_subject_id, PermissionLevel.EDIT)

        if not self._repo.mark_alert_resolved(alert_id, caregiver_id, utc_iso(self._clock())):
            raise AlreadyResolved(f"Health alert {alert_id} is already resolved")

        logger.info("Alert %s resolved by %s", alert_id, caregiver_id)
        resolved = self._repo.get_alert(alert_id)
        if resolved is None:  # pragma: no cover - alerts are never deleted
            raise NotFound(f"Health alert {alert_id} not found")
        return resolved

    def list_alerts(
        self,
        caregiver_id: str,
        care_subject_id: str,
        state: str | AlertState | None = None,
        *,
        alert_type: str | AlertType | None = None,
    ) -> list[HealthAlert]:
        """Alerts for a subject, newest first. Requires ``view`` access."""
        self._access.authorize(caregiver_id, care_subject_id, PermissionLevel.VIEW)

        resolved: bool | None = None
        if state is not None:
            try:
                resolved = AlertState(state) is AlertState.RESOLVED
            except ValueError:
                raise InvalidQuery(f"Unknown alert state {state!r}") from None

        kind: AlertType | None = None
        if alert_type is not None:
            try:
                kind = AlertType(alert_type)
            except ValueError:
                raise InvalidQuery(f"Unknown alert type {alert_type!r}") from None

        return self._repo.get_alerts(care_subject_id, resolved=resolved, alert_type=kind)

    def count_active(
        self, care_subject_id: str, alert_type: str | AlertType | None = None
    ) -> int:
        """Number of unresolved alerts on a subject.

        Performs no authorization; callers check access on the subject first.
        """
        kind = AlertType(alert_type) if alert_type is not None else None
        return self._repo.count_active_alerts(care_subject_id, alert_type=kind)
