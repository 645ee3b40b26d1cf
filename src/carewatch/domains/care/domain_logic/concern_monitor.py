"""Concern monitor: turns a run of low-mood interactions into a mood alert.

This is the explicit composition point between the interaction ledger and
the alert lifecycle. Nothing calls it implicitly; the caller decides when a
subject's recent interactions should be evaluated.
"""

from __future__ import annotations

import logging
import statistics
from itertools import islice

from carewatch.core.storage.models import (
    AlertSeverity,
    AlertType,
    HealthAlert,
    PermissionLevel,
)
from carewatch.domains.care.domain_logic.access_graph import AccessGraph
from carewatch.domains.care.domain_logic.alerts import AlertLifecycleManager
from carewatch.domains.care.domain_logic.ledger import InteractionLedger

logger = logging.getLogger(__name__)


class ConcernMonitor:
    """Raises a mood alert when recent mood or sentiment falls below a threshold.

    Usage::

        monitor = ConcernMonitor(ledger, alerts, access_graph,
                                 window=5, mood_threshold=4.0, sentiment_threshold=-0.3)
        alert = monitor.evaluate(caregiver_id, subject_id)  # None if nothing to raise
    """

    def __init__(
        self,
        ledger: InteractionLedger,
        alerts: AlertLifecycleManager,
        access_graph: AccessGraph,
        *,
        window: int = 5,
        mood_threshold: float = 4.0,
        sentiment_threshold: float = -0.3,
    ) -> None:
        self._ledger = ledger
        self._alerts = alerts
        self._access = access_graph
        self._window = window
        self._mood_threshold = mood_threshold
        self._sentiment_threshold = sentiment_threshold

    def evaluate(self, caregiver_id: str, care_subject_id: str) -> HealthAlert | None:
        """Check the last ``window`` interactions and open a mood alert if needed.

        No alert is opened while another mood alert for the subject is
        still active.
        """
        self._access.authorize(caregiver_id, care_subject_id, PermissionLevel.EDIT)

        recent = list(islice(
            self._ledger.list_recent(caregiver_id, care_subject_id, self._window),
            self._window,
        ))
        moods = [i.mood_score for i in recent if i.mood_score is not None]
        sentiments = [i.sentiment_score for i in recent if i.sentiment_score is not None]

        mean_mood = statistics.mean(moods) if moods else None
        mean_sentiment = statistics.mean(sentiments) if sentiments else None
        low_mood = mean_mood is not None and mean_mood < self._mood_threshold
        low_sentiment = (
            mean_sentiment is not None and mean_sentiment < self._sentiment_threshold
        )
        if not (low_mood or low_sentiment):
            return None

        if self._alerts.count_active(care_subject_id, AlertType.MOOD):
            logger.info(
                "Concern threshold breached for %s but a mood alert is still active",
                care_subject_id,
            )
            return None

        findings = []
        if low_mood:
            findings.append(f"average mood {mean_mood:.1f}/10")
        if low_sentiment:
            findings.append(f"average sentiment {mean_sentiment:.2f}")

        severity = AlertSeverity.HIGH if low_mood and low_sentiment else AlertSeverity.MEDIUM
        alert = self._alerts.create(
            caregiver_id,
            care_subject_id,
            AlertType.MOOD,
            severity,
            "Low mood detected",
            f"Across the last {len(recent)} interactions: " + " and ".join(findings) + ".",
        )
        logger.info("Concern monitor opened alert %s for %s", alert.id, care_subject_id)
        return alert
