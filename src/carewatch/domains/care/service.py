"""Care operation surface: the calls the tool layer exposes to clients.

``CareService`` wires the identity store, access graph, registry, ledger,
aggregation engine, alert manager and concern monitor together. The caller
identity is an explicit ``caregiver_id`` argument on every operation; no
request state is kept between calls. Every call is written to the audit
trail with its outcome.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from carewatch.core.audit.logger import AuditLogger
from carewatch.core.config.settings import Settings
from carewatch.core.storage.models import (
    AccessRelation,
    AlertState,
    Caregiver,
    CareSubject,
    HealthAlert,
    Interaction,
    PermissionLevel,
    RelationshipType,
    SeriesPoint,
    StatsSummary,
)
from carewatch.core.storage.repository import CareRepository
from carewatch.domains.care.domain_logic.access_graph import AccessGraph
from carewatch.domains.care.domain_logic.aggregation import AggregationEngine
from carewatch.domains.care.domain_logic.alerts import AlertLifecycleManager
from carewatch.domains.care.domain_logic.concern_monitor import ConcernMonitor
from carewatch.domains.care.domain_logic.errors import AccessDenied, CareError
from carewatch.domains.care.domain_logic.identity import IdentityStore
from carewatch.domains.care.domain_logic.ledger import InteractionLedger
from carewatch.domains.care.domain_logic.registry import CareSubjectRegistry
from carewatch.domains.care.domain_logic.sentiment import (
    SentimentClassifier,
    analyze_sentiment,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _level_label(value: str | PermissionLevel) -> str:
    return value.label if isinstance(value, PermissionLevel) else str(value)


class CareService:
    """Single entry point for every care operation.

    Usage::

        service = CareService(repository, audit_logger=audit)
        ana = service.register_caregiver("Ana", "family")
        rosa = service.create_care_subject(ana.id, {"first_name": "Rosa", "last_name": "Diaz"})
        service.record_interaction(ana.id, rosa.id, interaction_type="conversation",
                                   duration_seconds=120, sentiment_score=0.4)
        service.get_stats(ana.id, rosa.id)
    """

    def __init__(
        self,
        repository: CareRepository,
        *,
        audit_logger: AuditLogger | None = None,
        classifier: SentimentClassifier | None = analyze_sentiment,
        clock: Callable[[], datetime] = _utc_now,
        default_interaction_limit: int = 50,
        max_interaction_limit: int = 500,
        interaction_page_size: int = 100,
        default_series_days: int = 30,
        max_series_days: int = 3650,
        concern_window: int = 5,
        concern_mood_threshold: float = 4.0,
        concern_sentiment_threshold: float = -0.3,
    ) -> None:
        self._audit = audit_logger
        self._default_limit = default_interaction_limit
        self._default_days = default_series_days

        self.identities = IdentityStore(repository)
        self.access = AccessGraph(repository)
        self.registry = CareSubjectRegistry(repository, self.access)
        self.ledger = InteractionLedger(
            repository,
            self.access,
            classifier=classifier,
            max_limit=max_interaction_limit,
            page_size=interaction_page_size,
            clock=clock,
        )
        self.aggregation = AggregationEngine(
            repository, self.access, clock=clock, max_window_days=max_series_days
        )
        self.alerts = AlertLifecycleManager(repository, self.access, clock=clock)
        self.concerns = ConcernMonitor(
            self.ledger,
            self.alerts,
            self.access,
            window=concern_window,
            mood_threshold=concern_mood_threshold,
            sentiment_threshold=concern_sentiment_threshold,
        )

    @classmethod
    def from_settings(
        cls,
        repository: CareRepository,
        settings: Settings,
        *,
        audit_logger: AuditLogger | None = None,
    ) -> CareService:
        return cls(
            repository,
            audit_logger=audit_logger,
            default_interaction_limit=settings.default_interaction_limit,
            max_interaction_limit=settings.max_interaction_limit,
            interaction_page_size=settings.interaction_page_size,
            default_series_days=settings.default_series_days,
            max_series_days=settings.max_series_days,
            concern_window=settings.concern_window,
            concern_mood_threshold=settings.concern_mood_threshold,
            concern_sentiment_threshold=settings.concern_sentiment_threshold,
        )

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def register_caregiver(
        self, display_name: str, role: str = "family", *, email: str | None = None
    ) -> Caregiver:
        with self._audited("register_caregiver", None, operation_input={"role": role}):
            return self.identities.register(display_name, role, email=email)

    # ------------------------------------------------------------------
    # Care subjects
    # ------------------------------------------------------------------

    def create_care_subject(
        self,
        caregiver_id: str,
        profile: dict[str, Any],
        *,
        relationship_type: str | RelationshipType = RelationshipType.CAREGIVER,
    ) -> CareSubject:
        with self._audited("create_care_subject", caregiver_id, operation_input=profile):
            return self.registry.create(
                caregiver_id, profile, relationship_type=relationship_type
            )

    def list_care_subjects(
        self, caregiver_id: str, *, include_inactive: bool = False
    ) -> list[CareSubject]:
        with self._audited("list_care_subjects", caregiver_id):
            return self.registry.list_for(caregiver_id, include_inactive=include_inactive)

    def access_levels(self, caregiver_id: str) -> dict[str, PermissionLevel]:
        """Map of subject id to the caller's permission level."""
        return {r.care_subject_id: r.permission_level for r in self.access.relations_of(caregiver_id)}

    def get_care_subject(self, caregiver_id: str, care_subject_id: str) -> CareSubject:
        with self._audited("get_care_subject", caregiver_id, care_subject_id):
            return self.registry.get(caregiver_id, care_subject_id)

    def update_care_subject(
        self, caregiver_id: str, care_subject_id: str, patch: dict[str, Any]
    ) -> CareSubject:
        with self._audited(
            "update_care_subject", caregiver_id, care_subject_id, operation_input=patch,
            metadata={"fields": sorted(patch) if isinstance(patch, dict) else []},
        ):
            return self.registry.update(caregiver_id, care_subject_id, patch)

    def deactivate_care_subject(self, caregiver_id: str, care_subject_id: str) -> CareSubject:
        with self._audited("deactivate_care_subject", caregiver_id, care_subject_id):
            return self.registry.deactivate(caregiver_id, care_subject_id)

    def reactivate_care_subject(self, caregiver_id: str, care_subject_id: str) -> CareSubject:
        with self._audited("reactivate_care_subject", caregiver_id, care_subject_id):
            return self.registry.reactivate(caregiver_id, care_subject_id)

    def grant_access(
        self,
        granting_caregiver_id: str,
        caregiver_id: str,
        care_subject_id: str,
        relationship_type: str | RelationshipType,
        permission_level: str | PermissionLevel,
    ) -> AccessRelation:
        """Give another caregiver access to a subject. The granter needs ``admin``."""
        with self._audited(
            "grant_access", granting_caregiver_id, care_subject_id,
            operation_input={"caregiver_id": caregiver_id},
            metadata={"permission_level": _level_label(permission_level)},
        ):
            self.access.authorize(granting_caregiver_id, care_subject_id, PermissionLevel.ADMIN)
            return self.access.grant_relation(
                caregiver_id, care_subject_id, relationship_type, permission_level
            )

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    def record_interaction(
        self, caregiver_id: str, care_subject_id: str, **fields: Any
    ) -> Interaction:
        """Append an interaction; see :meth:`InteractionLedger.record` for fields."""
        with self._audited(
            "record_interaction", caregiver_id, care_subject_id, operation_input=fields,
            metadata={"interaction_type": str(fields.get("interaction_type"))},
        ):
            return self.ledger.record(caregiver_id, care_subject_id, **fields)

    def list_interactions(
        self, caregiver_id: str, care_subject_id: str, limit: int | None = None
    ) -> list[Interaction]:
        with self._audited("list_interactions", caregiver_id, care_subject_id):
            return list(self.ledger.list_recent(
                caregiver_id, care_subject_id, self._default_limit if limit is None else limit
            ))

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def get_stats(self, caregiver_id: str, care_subject_id: str) -> StatsSummary:
        with self._audited("get_stats", caregiver_id, care_subject_id):
            return self.aggregation.compute_stats(caregiver_id, care_subject_id)

    def get_sentiment_series(
        self, caregiver_id: str, care_subject_id: str, days: int | None = None
    ) -> list[SeriesPoint]:
        with self._audited("get_sentiment_series", caregiver_id, care_subject_id):
            return self.aggregation.compute_sentiment_series(
                caregiver_id, care_subject_id, self._default_days if days is None else days
            )

    def get_trend(
        self, caregiver_id: str, care_subject_id: str, days: int | None = None
    ) -> dict[str, Any]:
        with self._audited("get_trend", caregiver_id, care_subject_id):
            return self.aggregation.compute_trend(
                caregiver_id, care_subject_id, self._default_days if days is None else days
            )

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def create_alert(
        self,
        caregiver_id: str,
        care_subject_id: str,
        *,
        alert_type: str,
        severity: str,
        title: str,
        description: str,
    ) -> HealthAlert:
        with self._audited(
            "create_alert", caregiver_id, care_subject_id,
            metadata={"alert_type": alert_type, "severity": severity},
        ):
            return self.alerts.create(
                caregiver_id, care_subject_id, alert_type, severity, title, description
            )

    def list_alerts(
        self,
        caregiver_id: str,
        care_subject_id: str,
        resolved: bool | None = None,
    ) -> list[HealthAlert]:
        state = None
        if resolved is not None:
            state = AlertState.RESOLVED if resolved else AlertState.ACTIVE
        with self._audited("list_alerts", caregiver_id, care_subject_id):
            return self.alerts.list_alerts(caregiver_id, care_subject_id, state)

    def resolve_alert(self, caregiver_id: str, alert_id: str) -> HealthAlert:
        with self._audited(
            "resolve_alert", caregiver_id, operation_input={"alert_id": alert_id},
            metadata={"alert_id": alert_id},
        ):
            return self.alerts.resolve(caregiver_id, alert_id)

    def evaluate_concerns(self, caregiver_id: str, care_subject_id: str) -> HealthAlert | None:
        with self._audited("evaluate_concerns", caregiver_id, care_subject_id):
            return self.concerns.evaluate(caregiver_id, care_subject_id)

    # ------------------------------------------------------------------
    # Auditing
    # ------------------------------------------------------------------

    @contextmanager
    def _audited(
        self,
        operation: str,
        caregiver_id: str | None,
        care_subject_id: str | None = None,
        *,
        operation_input: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        start_time = time.monotonic()
        status = "success"
        error_type: str | None = None
        try:
            yield
        except AccessDenied as exc:
            status, error_type = "denied", type(exc).__name__
            raise
        except CareError as exc:
            status, error_type = "rejected", type(exc).__name__
            raise
        except Exception as exc:
            status, error_type = "failure", type(exc).__name__
            logger.error("%s failed: %s", operation, error_type)
            raise
        finally:
            if self._audit is not None:
                self._audit.log_operation(
                    operation,
                    caregiver_id=caregiver_id,
                    care_subject_id=care_subject_id,
                    operation_input=operation_input,
                    duration_ms=round((time.monotonic() - start_time) * 1000, 3),
                    status=status,
                    error_type=error_type,
                    metadata=metadata,
                )
