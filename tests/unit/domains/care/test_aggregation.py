"""Tests for AggregationEngine — stats, daily series and trends."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from carewatch.domains.care.domain_logic.aggregation import AggregationEngine, _metric_trend
from carewatch.domains.care.domain_logic.errors import AccessDenied, InvalidQuery

NOW = datetime(2026, 3, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine(care_repository, access_graph):
    return AggregationEngine(care_repository, access_graph, clock=lambda: NOW)


def _at(days_ago: int, hour: int = 10) -> datetime:
    day = (NOW - timedelta(days=days_ago)).replace(hour=hour, minute=0)
    return day


def _record(ledger, caregiver_id, subject_id, when, **fields):
    fields.setdefault("interaction_type", "conversation")
    fields.setdefault("duration_seconds", 60)
    return ledger.record(caregiver_id, subject_id, created_at=when, **fields)


class TestStats:
    def test_no_interactions_gives_zeros(self, engine, ana, rosa):
        stats = engine.compute_stats(ana.id, rosa.id)
        assert stats.total_interactions == 0
        assert stats.avg_mood_score == 0.0
        assert stats.avg_sentiment == 0.0
        assert stats.total_duration_seconds == 0
        assert stats.active_alerts_count == 0

    def test_whole_history_averages(self, engine, ledger, ana, rosa):
        _record(ledger, ana.id, rosa.id, _at(40), mood_score=4, sentiment_score=-0.2, duration_seconds=100)
        _record(ledger, ana.id, rosa.id, _at(1), mood_score=8, sentiment_score=0.6, duration_seconds=200)
        stats = engine.compute_stats(ana.id, rosa.id)
        assert stats.total_interactions == 2
        assert stats.avg_mood_score == pytest.approx(6.0)
        assert stats.avg_sentiment == pytest.approx(0.2)
        assert stats.total_duration_seconds == 300

    def test_counts_active_alerts_only(self, engine, alert_manager, ana, rosa):
        first = alert_manager.create(ana.id, rosa.id, "health", "low", "BP", "Slightly high")
        alert_manager.create(ana.id, rosa.id, "mood", "medium", "Mood", "Quiet week")
        alert_manager.resolve(ana.id, first.id)
        assert engine.compute_stats(ana.id, rosa.id).active_alerts_count == 1

    def test_stranger_denied(self, engine, bruno, rosa):
        with pytest.raises(AccessDenied):
            engine.compute_stats(bruno.id, rosa.id)


class TestSentimentSeries:
    def test_gap_days_are_absent(self, engine, ledger, ana, rosa):
        _record(ledger, ana.id, rosa.id, _at(5), sentiment_score=0.5)
        _record(ledger, ana.id, rosa.id, _at(3), sentiment_score=-0.2)

        series = engine.compute_sentiment_series(ana.id, rosa.id, 7)

        assert [p.date for p in series] == ["2026-03-13", "2026-03-15"]
        assert [p.avg_sentiment for p in series] == [pytest.approx(0.5), pytest.approx(-0.2)]
        assert all(p.interaction_count > 0 for p in series)

    def test_window_starts_at_midnight(self, engine, ledger, ana, rosa):
        _record(ledger, ana.id, rosa.id, _at(7, hour=0), sentiment_score=0.1)
        _record(ledger, ana.id, rosa.id, _at(8, hour=23), sentiment_score=0.9)
        series = engine.compute_sentiment_series(ana.id, rosa.id, 7)
        assert [p.date for p in series] == ["2026-03-11"]

    def test_same_day_values_are_averaged(self, engine, ledger, ana, rosa):
        _record(ledger, ana.id, rosa.id, _at(1, hour=9), sentiment_score=0.2, mood_score=6)
        _record(ledger, ana.id, rosa.id, _at(1, hour=18), sentiment_score=0.6, mood_score=8)
        [point] = engine.compute_sentiment_series(ana.id, rosa.id, 7)
        assert point.avg_sentiment == pytest.approx(0.4)
        assert point.avg_mood == pytest.approx(7.0)
        assert point.interaction_count == 2

    def test_day_without_mood_reports_zero(self, engine, ledger, ana, rosa):
        _record(ledger, ana.id, rosa.id, _at(1), sentiment_score=0.2)
        [point] = engine.compute_sentiment_series(ana.id, rosa.id, 7)
        assert point.avg_mood == 0.0

    @pytest.mark.parametrize("days", [0, -1, 2.5, "7"])
    def test_invalid_window(self, engine, ana, rosa, days):
        with pytest.raises(InvalidQuery):
            engine.compute_sentiment_series(ana.id, rosa.id, days)

    def test_window_above_maximum_rejected(self, engine, ana, rosa):
        assert engine.compute_sentiment_series(ana.id, rosa.id, 3650) == []
        with pytest.raises(InvalidQuery):
            engine.compute_sentiment_series(ana.id, rosa.id, 1_000_000)
        with pytest.raises(InvalidQuery):
            engine.compute_trend(ana.id, rosa.id, 1_000_000)

    def test_maximum_window_is_configurable(self, care_repository, access_graph, ana, rosa):
        short = AggregationEngine(care_repository, access_graph, clock=lambda: NOW, max_window_days=7)
        assert short.compute_sentiment_series(ana.id, rosa.id, 7) == []
        with pytest.raises(InvalidQuery):
            short.compute_sentiment_series(ana.id, rosa.id, 8)

    def test_authorization_before_window_validation(self, engine, bruno, rosa):
        with pytest.raises(AccessDenied):
            engine.compute_sentiment_series(bruno.id, rosa.id, 0)


class TestTrend:
    def test_no_data(self, engine, ana, rosa):
        trend = engine.compute_trend(ana.id, rosa.id, 30)
        assert trend["status"] == "no_data"
        assert trend["days_with_data"] == 0

    def test_declining_sentiment_and_mood(self, engine, ledger, ana, rosa):
        for days_ago, score, mood in ((6, 0.6, 8), (5, 0.5, 8), (2, -0.1, 4), (1, -0.3, 3)):
            _record(ledger, ana.id, rosa.id, _at(days_ago), sentiment_score=score, mood_score=mood)
        trend = engine.compute_trend(ana.id, rosa.id, 7)
        assert trend["days_with_data"] == 4
        assert trend["first_date"] == "2026-03-12"
        assert trend["last_date"] == "2026-03-17"
        assert trend["sentiment"]["direction"] == "declining"
        assert trend["mood"]["direction"] == "declining"
        assert trend["sentiment"]["current"] == pytest.approx(-0.3)

    def test_mood_ignores_days_without_scores(self, engine, ledger, ana, rosa):
        _record(ledger, ana.id, rosa.id, _at(3), sentiment_score=0.1)
        _record(ledger, ana.id, rosa.id, _at(2), sentiment_score=0.2, mood_score=6)
        trend = engine.compute_trend(ana.id, rosa.id, 7)
        assert trend["mood"]["data_points"] == 1
        assert trend["mood"]["direction"] == "insufficient_data"


class TestMetricTrend:
    def test_halves_comparison(self):
        assert _metric_trend([0.1, 0.1, 0.4, 0.5], 0.05)["direction"] == "improving"

    def test_small_change_is_stable(self):
        assert _metric_trend([5.0, 5.2, 5.1], 0.5)["direction"] == "stable"

    def test_single_value(self):
        result = _metric_trend([0.3], 0.05)
        assert result["direction"] == "insufficient_data"
        assert result["current"] == 0.3

    def test_empty(self):
        assert _metric_trend([], 0.05) == {"data_points": 0, "direction": "insufficient_data"}
