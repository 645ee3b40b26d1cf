"""Tests for CareRepository — persistence with in-memory SQLite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from carewatch.core.storage.models import (
    AccessRelation,
    AlertSeverity,
    AlertType,
    Caregiver,
    CaregiverRole,
    CareSubject,
    HealthAlert,
    Interaction,
    InteractionType,
    Medication,
    PermissionLevel,
    RelationshipType,
    SentimentLabel,
)
from carewatch.core.storage.repository import ConflictError, RepositoryError, utc_iso


def _caregiver(repo, name="Ana", email=None) -> Caregiver:
    return repo.insert_caregiver(
        Caregiver(id="", display_name=name, role=CaregiverRole.FAMILY, email=email)
    )


def _subject(repo, caregiver_id, **overrides) -> CareSubject:
    fields = dict(id="", first_name="Rosa", last_name="Diaz")
    fields.update(overrides)
    subject, _ = repo.insert_subject(
        CareSubject(**fields),
        AccessRelation(
            id="",
            caregiver_id=caregiver_id,
            care_subject_id="",
            relationship_type=RelationshipType.CHILD,
            permission_level=PermissionLevel.ADMIN,
        ),
    )
    return subject


def _interaction(subject_id, created_at, **overrides) -> Interaction:
    fields = dict(
        id="",
        care_subject_id=subject_id,
        interaction_type=InteractionType.CONVERSATION,
        duration_seconds=60,
        created_at=created_at,
    )
    fields.update(overrides)
    return Interaction(**fields)


BASE = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class TestUtcIso:
    def test_fixed_width_microseconds(self):
        assert utc_iso(BASE) == "2026-03-01T09:00:00.000000+00:00"

    def test_naive_is_treated_as_utc(self):
        assert utc_iso(datetime(2026, 3, 1, 9, 0)) == utc_iso(BASE)

    def test_converts_offsets_to_utc(self):
        local = datetime(2026, 3, 1, 4, 0, tzinfo=timezone(timedelta(hours=-5)))
        assert utc_iso(local) == utc_iso(BASE)


class TestCaregivers:
    def test_insert_assigns_id_and_timestamp(self, care_repository):
        caregiver = _caregiver(care_repository)
        assert caregiver.id
        assert caregiver.created_at
        assert care_repository.get_caregiver(caregiver.id).display_name == "Ana"

    def test_duplicate_email_conflicts(self, care_repository):
        _caregiver(care_repository, email="ana@example.com")
        with pytest.raises(ConflictError):
            _caregiver(care_repository, name="Other", email="ana@example.com")

    def test_unknown_caregiver_is_none(self, care_repository):
        assert care_repository.get_caregiver("missing") is None


class TestSubjects:
    def test_subject_and_admin_relation_written_together(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        relation = care_repository.get_active_relation(ana.id, subject.id)
        assert relation is not None
        assert relation.permission_level is PermissionLevel.ADMIN

    def test_failed_subject_insert_writes_no_relation(self, care_repository):
        ana = _caregiver(care_repository)
        _subject(care_repository, ana.id, device_id="dev-1")
        with pytest.raises(ConflictError):
            _subject(care_repository, ana.id, device_id="dev-1")
        assert len(care_repository.get_relations_for_caregiver(ana.id)) == 1

    def test_clinical_profile_round_trips_encrypted(self, care_repository, care_db):
        ana = _caregiver(care_repository)
        subject = _subject(
            care_repository,
            ana.id,
            conditions=["diabetes"],
            medications=[Medication(name="Metformin", dose="500mg", schedule="twice daily")],
            allergies=["penicillin"],
        )
        loaded = care_repository.get_subject(subject.id)
        assert loaded.conditions == ["diabetes"]
        assert loaded.medications[0].name == "Metformin"
        assert loaded.allergies == ["penicillin"]

        raw = care_db.connection.execute(
            "SELECT profile_enc FROM care_subjects WHERE id = ?", (subject.id,)
        ).fetchone()[0]
        assert "diabetes" not in raw
        assert "Metformin" not in raw

    def test_get_subjects_preserves_order_and_filters_inactive(self, care_repository):
        ana = _caregiver(care_repository)
        first = _subject(care_repository, ana.id, first_name="First")
        second = _subject(care_repository, ana.id, first_name="Second")
        care_repository.set_subject_active(first.id, False)

        assert [s.id for s in care_repository.get_subjects([second.id, first.id])] == [second.id]
        ids = [s.id for s in care_repository.get_subjects([second.id, first.id], include_inactive=True)]
        assert ids == [second.id, first.id]

    def test_update_unknown_subject_raises(self, care_repository):
        with pytest.raises(RepositoryError):
            care_repository.update_subject(CareSubject(id="missing", first_name="A", last_name="B"))


class TestRelations:
    def test_second_active_relation_for_pair_conflicts(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        with pytest.raises(ConflictError):
            care_repository.insert_relation(AccessRelation(
                id="",
                caregiver_id=ana.id,
                care_subject_id=subject.id,
                relationship_type=RelationshipType.OTHER,
                permission_level=PermissionLevel.VIEW,
            ))

    def test_relation_to_unknown_subject_conflicts(self, care_repository):
        ana = _caregiver(care_repository)
        with pytest.raises(ConflictError):
            care_repository.insert_relation(AccessRelation(
                id="",
                caregiver_id=ana.id,
                care_subject_id="missing",
                relationship_type=RelationshipType.OTHER,
                permission_level=PermissionLevel.VIEW,
            ))


class TestInteractions:
    def test_transcript_and_notes_encrypted_at_rest(self, care_repository, care_db):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        stored = care_repository.insert_interaction(_interaction(
            subject.id, utc_iso(BASE), transcript="I feel lonely", notes="call daughter",
            sentiment_score=-0.5, sentiment_label=SentimentLabel.NEGATIVE,
        ))
        raw = care_db.connection.execute(
            "SELECT transcript_enc, notes_enc FROM interactions WHERE id = ?", (stored.id,)
        ).fetchone()
        assert "lonely" not in raw[0]
        assert "daughter" not in raw[1]

        loaded = care_repository.get_interaction(stored.id)
        assert loaded.transcript == "I feel lonely"
        assert loaded.notes == "call daughter"
        assert loaded.sentiment_label is SentimentLabel.NEGATIVE

    def test_iter_newest_first_across_pages(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        for i in range(7):
            care_repository.insert_interaction(
                _interaction(subject.id, utc_iso(BASE + timedelta(hours=i)), duration_seconds=i)
            )
        durations = [
            i.duration_seconds
            for i in care_repository.iter_interactions(subject.id, limit=5, page_size=2)
        ]
        assert durations == [6, 5, 4, 3, 2]

    def test_iter_breaks_timestamp_ties_by_insertion(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        same = utc_iso(BASE)
        for i in range(4):
            care_repository.insert_interaction(_interaction(subject.id, same, duration_seconds=i))
        durations = [
            i.duration_seconds
            for i in care_repository.iter_interactions(subject.id, limit=10, page_size=3)
        ]
        assert durations == [3, 2, 1, 0]

    def test_iter_is_lazy(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        iterator = care_repository.iter_interactions(subject.id, limit=5)
        care_repository.insert_interaction(_interaction(subject.id, utc_iso(BASE)))
        assert len(list(iterator)) == 1


class TestAggregates:
    def test_stats_empty_subject_is_zero(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        stats = care_repository.get_stats(subject.id)
        assert stats.total_interactions == 0
        assert stats.avg_mood_score == 0.0
        assert stats.avg_sentiment == 0.0
        assert stats.total_duration_seconds == 0
        assert stats.active_alerts_count == 0

    def test_stats_ignore_missing_scores(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        care_repository.insert_interaction(_interaction(
            subject.id, utc_iso(BASE), mood_score=8, sentiment_score=0.4, duration_seconds=100,
        ))
        care_repository.insert_interaction(_interaction(
            subject.id, utc_iso(BASE + timedelta(hours=1)), duration_seconds=20,
        ))
        stats = care_repository.get_stats(subject.id)
        assert stats.total_interactions == 2
        assert stats.avg_mood_score == 8.0
        assert stats.avg_sentiment == pytest.approx(0.4)
        assert stats.total_duration_seconds == 120

    def test_daily_series_buckets_by_utc_date(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        for hours, score in ((0, 0.2), (1, 0.4), (25, -0.6)):
            care_repository.insert_interaction(_interaction(
                subject.id, utc_iso(BASE + timedelta(hours=hours)), sentiment_score=score,
            ))
        series = care_repository.get_daily_series(subject.id, since=utc_iso(BASE - timedelta(days=1)))
        assert [p.date for p in series] == ["2026-03-01", "2026-03-02"]
        assert series[0].avg_sentiment == pytest.approx(0.3)
        assert series[0].interaction_count == 2
        assert series[0].avg_mood == 0.0


class TestAlerts:
    def _alert(self, repo, subject_id) -> HealthAlert:
        return repo.insert_alert(HealthAlert(
            id="",
            care_subject_id=subject_id,
            alert_type=AlertType.SAFETY,
            severity=AlertSeverity.HIGH,
            title="Fall detected",
            description="Device reported a fall in the kitchen",
        ))

    def test_mark_resolved_only_once(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        alert = self._alert(care_repository, subject.id)

        assert care_repository.mark_alert_resolved(alert.id, ana.id) is True
        assert care_repository.mark_alert_resolved(alert.id, "someone-else") is False

        stored = care_repository.get_alert(alert.id)
        assert stored.is_resolved
        assert stored.resolved_by == ana.id
        assert stored.resolved_at

    def test_filter_by_resolution(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        first = self._alert(care_repository, subject.id)
        second = self._alert(care_repository, subject.id)
        care_repository.mark_alert_resolved(first.id, ana.id)

        assert [a.id for a in care_repository.get_alerts(subject.id, resolved=False)] == [second.id]
        assert [a.id for a in care_repository.get_alerts(subject.id, resolved=True)] == [first.id]
        assert [a.id for a in care_repository.get_alerts(subject.id)] == [second.id, first.id]
        assert care_repository.get_stats(subject.id).active_alerts_count == 1

    def test_count_active_alerts_by_type(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        first = self._alert(care_repository, subject.id)
        self._alert(care_repository, subject.id)

        assert care_repository.count_active_alerts(subject.id) == 2
        assert care_repository.count_active_alerts(subject.id, alert_type=first.alert_type) == 2
        assert care_repository.count_active_alerts(subject.id, alert_type=AlertType.COGNITIVE) == 0

        care_repository.mark_alert_resolved(first.id, ana.id)
        assert care_repository.count_active_alerts(subject.id) == 1

    def test_resolve_records_given_timestamp(self, care_repository):
        ana = _caregiver(care_repository)
        subject = _subject(care_repository, ana.id)
        alert = self._alert(care_repository, subject.id)

        assert care_repository.mark_alert_resolved(alert.id, ana.id, "2026-03-19T08:30:00.000000+00:00")
        assert care_repository.get_alert(alert.id).resolved_at == "2026-03-19T08:30:00.000000+00:00"
