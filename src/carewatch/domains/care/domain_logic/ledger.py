"""Interaction ledger: append-only log of recorded sessions per care subject.

There is no update or delete path. Recording never evaluates alert
thresholds; callers that want that compose the ledger with the alert
manager explicitly (see ``concern_monitor``).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

from carewatch.core.storage.models import (
    Interaction,
    InteractionType,
    PermissionLevel,
    SentimentLabel,
)
from carewatch.core.storage.repository import CareRepository, utc_iso
from carewatch.domains.care.domain_logic.access_graph import AccessGraph
from carewatch.domains.care.domain_logic.errors import InvalidInteraction, InvalidQuery
from carewatch.domains.care.domain_logic.sentiment import (
    SentimentClassifier,
    analyze_sentiment,
    label_for_score,
)

logger = logging.getLogger(__name__)

# Devices upload offline recordings with their own clocks.
_MAX_CLOCK_SKEW = timedelta(minutes=5)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InteractionLedger:
    """Records interactions and reads them back newest first.

    Usage::

        ledger = InteractionLedger(repository, access_graph)
        ledger.record(caregiver_id, subject_id, interaction_type="conversation",
                      duration_seconds=300, sentiment_score=0.6, mood_score=7)
        for interaction in ledger.list_recent(caregiver_id, subject_id, limit=10):
            ...
    """

    def __init__(
        self,
        repository: CareRepository,
        access_graph: AccessGraph,
        *,
        classifier: SentimentClassifier | None = analyze_sentiment,
        max_limit: int = 500,
        page_size: int = 100,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repo = repository
        self._access = access_graph
        self._classifier = classifier
        self._max_limit = max_limit
        self._page_size = page_size
        self._clock = clock

    def record(
        self,
        caregiver_id: str,
        care_subject_id: str,
        *,
        interaction_type: str | InteractionType,
        duration_seconds: int,
        transcript: str | None = None,
        sentiment_score: float | None = None,
        sentiment_label: str | SentimentLabel | None = None,
        mood_score: int | None = None,
        notes: str | None = None,
        created_at: str | datetime | None = None,
    ) -> Interaction:
        """Append one interaction for a care subject.

        Requires ``edit`` access. Authorization is checked before any input
        validation; validation completes before anything is written.

        Raises:
            AccessDenied: The caller may not write to this subject.
            InvalidInteraction: An input constraint is violated.
        """
        self._access.authorize(caregiver_id, care_subject_id, PermissionLevel.EDIT)

        kind = _interaction_type(interaction_type)
        duration = _duration(duration_seconds)
        score = _sentiment_score(sentiment_score)
        label = _sentiment_label(sentiment_label)
        mood = _mood_score(mood_score)
        if transcript is not None and not isinstance(transcript, str):
            raise InvalidInteraction("transcript must be a string")
        if notes is not None and not isinstance(notes, str):
            raise InvalidInteraction("notes must be a string")
        timestamp = self._created_at(created_at)

        if score is None and transcript and self._classifier is not None:
            result = self._classifier(transcript)
            score = result.score
            label = label or result.label
        elif score is not None and label is None:
            label = label_for_score(score)

        return self._repo.insert_interaction(Interaction(
            id="",
            care_subject_id=care_subject_id,
            interaction_type=kind,
            duration_seconds=duration,
            transcript=transcript,
            sentiment_score=score,
            sentiment_label=label,
            mood_score=mood,
            notes=notes,
            recorded_by=caregiver_id,
            created_at=timestamp,
        ))

    def list_recent(
        self,
        caregiver_id: str,
        care_subject_id: str,
        limit: int,
    ) -> Iterator[Interaction]:
        """Lazily yield at most ``limit`` interactions, newest first.

        Each call starts a fresh read of the current ledger state. Access is
        checked eagerly, when this method is called, not on first iteration.

        Raises:
            AccessDenied: The caller may not view this subject.
            InvalidQuery: ``limit`` is not a positive integer.
        """
        self._access.authorize(caregiver_id, care_subject_id, PermissionLevel.VIEW)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidQuery(f"limit must be a positive integer, got {limit!r}")
        return self._repo.iter_interactions(
            care_subject_id,
            limit=min(limit, self._max_limit),
            page_size=self._page_size,
        )

    def _created_at(self, value: str | datetime | None) -> str:
        if value is None or value == "":
            return utc_iso(self._clock())
        if isinstance(value, datetime):
            moment = value
        else:
            try:
                moment = datetime.fromisoformat(str(value))
            except ValueError:
                raise InvalidInteraction(
                    f"created_at must be an ISO 8601 timestamp, got {value!r}"
                ) from None
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        if moment > self._clock() + _MAX_CLOCK_SKEW:
            raise InvalidInteraction("created_at must not lie in the future")
        return utc_iso(moment)


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _interaction_type(value: Any) -> InteractionType:
    try:
        return InteractionType(value)
    except ValueError:
        valid = ", ".join(t.value for t in InteractionType)
        raise InvalidInteraction(
            f"Unknown interaction type {value!r}; expected one of: {valid}"
        ) from None


def _duration(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInteraction(f"duration_seconds must be an integer, got {value!r}")
    if value < 0:
        raise InvalidInteraction("duration_seconds must be >= 0")
    return value


def _sentiment_score(value: Any) -> float | None:
    if value is None:
        return None
    if not _is_number(value) or math.isnan(value):
        raise InvalidInteraction(f"sentiment_score must be a number, got {value!r}")
    if not -1.0 <= value <= 1.0:
        raise InvalidInteraction("sentiment_score must be within [-1, 1]")
    return float(value)


def _sentiment_label(value: Any) -> SentimentLabel | None:
    if value is None:
        return None
    try:
        return SentimentLabel(value)
    except ValueError:
        valid = ", ".join(label.value for label in SentimentLabel)
        raise InvalidInteraction(
            f"Unknown sentiment label {value!r}; expected one of: {valid}"
        ) from None


def _mood_score(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInteraction(f"mood_score must be an integer, got {value!r}")
    if not 1 <= value <= 10:
        raise InvalidInteraction("mood_score must be within [1, 10]")
    return value
