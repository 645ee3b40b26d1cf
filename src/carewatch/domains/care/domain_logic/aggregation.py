"""Longitudinal aggregation over the interaction ledger.

Computes whole-history statistics, daily sentiment / mood series and the
direction in which a subject's wellbeing is moving. All queries are
read-only and scoped to one care subject.
"""

from __future__ import annotations

import logging
import statistics
from collections.abc import Callable
from datetime import datetime, time, timedelta, timezone
from typing import Any

from carewatch.core.storage.models import PermissionLevel, SeriesPoint, StatsSummary
from carewatch.core.storage.repository import CareRepository, utc_iso
from carewatch.domains.care.domain_logic.access_graph import AccessGraph
from carewatch.domains.care.domain_logic.errors import InvalidQuery

logger = logging.getLogger(__name__)

# Minimum change between the older and recent half of a series that
# counts as movement rather than noise.
SENTIMENT_TREND_THRESHOLD = 0.05
MOOD_TREND_THRESHOLD = 0.5

DEFAULT_MAX_WINDOW_DAYS = 3650


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AggregationEngine:
    """Computes statistics and trends from stored interactions.

    Usage::

        engine = AggregationEngine(repository, access_graph)
        stats = engine.compute_stats(caregiver_id, subject_id)
        series = engine.compute_sentiment_series(caregiver_id, subject_id, window_days=7)
    """

    def __init__(
        self,
        repository: CareRepository,
        access_graph: AccessGraph,
        *,
        clock: Callable[[], datetime] = _utc_now,
        max_window_days: int = DEFAULT_MAX_WINDOW_DAYS,
    ) -> None:
        self._repo = repository
        self._access = access_graph
        self._clock = clock
        self._max_window_days = max_window_days

    def compute_stats(self, caregiver_id: str, care_subject_id: str) -> StatsSummary:
        """Whole-history statistics; a subject with no interactions gets zeros."""
        self._access.authorize(caregiver_id, care_subject_id, PermissionLevel.VIEW)
        return self._repo.get_stats(care_subject_id)

    def compute_sentiment_series(
        self,
        caregiver_id: str,
        care_subject_id: str,
        window_days: int,
    ) -> list[SeriesPoint]:
        """Daily means over the last ``window_days`` days, oldest date first.

        The window starts at UTC midnight of ``today - window_days``. Only
        dates with at least one interaction appear; callers needing a
        dense series interpolate themselves.
        """
        self._access.authorize(caregiver_id, care_subject_id, PermissionLevel.VIEW)
        return self._repo.get_daily_series(care_subject_id, since=self._window_start(window_days))

    def compute_trend(
        self,
        caregiver_id: str,
        care_subject_id: str,
        window_days: int,
    ) -> dict[str, Any]:
        """Direction of daily sentiment and mood over the window.

        Returns:
            Dict with ``days_with_data`` and, per metric (``sentiment`` /
            ``mood``), current, mean, min, max and direction.
        """
        series = self.compute_sentiment_series(caregiver_id, care_subject_id, window_days)
        if not series:
            return {"window_days": window_days, "days_with_data": 0, "status": "no_data"}

        return {
            "window_days": window_days,
            "days_with_data": len(series),
            "first_date": series[0].date,
            "last_date": series[-1].date,
            "sentiment": _metric_trend(
                [p.avg_sentiment for p in series], SENTIMENT_TREND_THRESHOLD
            ),
            "mood": _metric_trend(
                # Days without any mood score report 0.0; they carry no signal.
                [p.avg_mood for p in series if p.avg_mood > 0],
                MOOD_TREND_THRESHOLD,
            ),
        }

    def _window_start(self, window_days: int) -> str:
        if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days < 1:
            raise InvalidQuery(f"window_days must be a positive integer, got {window_days!r}")
        if window_days > self._max_window_days:
            raise InvalidQuery(
                f"window_days must be at most {self._max_window_days}, got {window_days}"
            )
        today = self._clock().astimezone(timezone.utc).date()
        start = datetime.combine(today - timedelta(days=window_days), time.min, tzinfo=timezone.utc)
        return utc_iso(start)


def _metric_trend(values: list[float], threshold: float) -> dict[str, Any]:
    """Summarize a chronologically ordered series (oldest first)."""
    if not values:
        return {"data_points": 0, "direction": "insufficient_data"}

    current = values[-1]
    if len(values) >= 4:
        mid = len(values) // 2
        diff = statistics.mean(values[mid:]) - statistics.mean(values[:mid])
    elif len(values) >= 2:
        diff = current - values[0]
    else:
        diff = None

    if diff is None:
        direction = "insufficient_data"
    elif diff > threshold:
        direction = "improving"
    elif diff < -threshold:
        direction = "declining"
    else:
        direction = "stable"

    return {
        "current": round(current, 4),
        "mean": round(statistics.mean(values), 4),
        "min": round(min(values), 4),
        "max": round(max(values), 4),
        "direction": direction,
        "data_points": len(values),
    }
