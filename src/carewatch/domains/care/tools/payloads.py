"""JSON payload builders shared by the care tools."""

from __future__ import annotations

from typing import Any

from carewatch.core.storage.models import (
    CareSubject,
    HealthAlert,
    Interaction,
    PermissionLevel,
    SeriesPoint,
    StatsSummary,
    to_dict,
)
from carewatch.domains.care.domain_logic.errors import CareError


def error_payload(exc: CareError) -> dict[str, Any]:
    return {"status": exc.code, "message": str(exc)}


def subject_payload(
    subject: CareSubject, permission: PermissionLevel | None = None
) -> dict[str, Any]:
    data = to_dict(subject)
    data["full_name"] = subject.full_name
    if permission is not None:
        data["permission_level"] = permission.label
    return data


def interaction_payload(interaction: Interaction, *, include_transcript: bool = True) -> dict[str, Any]:
    data = to_dict(interaction)
    if data["sentiment_score"] is not None:
        data["sentiment_score"] = round(data["sentiment_score"], 4)
    if not include_transcript:
        data.pop("transcript")
        data["has_transcript"] = bool(interaction.transcript)
    return data


def alert_payload(alert: HealthAlert) -> dict[str, Any]:
    return to_dict(alert)


def stats_payload(stats: StatsSummary) -> dict[str, Any]:
    return {
        "total_interactions": stats.total_interactions,
        "avg_mood_score": round(stats.avg_mood_score, 2),
        "avg_sentiment": round(stats.avg_sentiment, 4),
        "total_duration_seconds": stats.total_duration_seconds,
        "active_alerts_count": stats.active_alerts_count,
    }


def series_payload(points: list[SeriesPoint]) -> list[dict[str, Any]]:
    return [
        {
            "date": p.date,
            "avg_sentiment": round(p.avg_sentiment, 4),
            "avg_mood": round(p.avg_mood, 2),
            "interaction_count": p.interaction_count,
        }
        for p in points
    ]
