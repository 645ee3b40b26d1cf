"""MCP tools for recording and reading interactions."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from carewatch.domains.care.domain_logic.errors import CareError
from carewatch.domains.care.tools.payloads import (
    alert_payload,
    error_payload,
    interaction_payload,
)

if TYPE_CHECKING:
    from carewatch.domains.care.service import CareService

logger = logging.getLogger(__name__)


def register_interaction_tools(mcp: FastMCP, service: CareService) -> None:
    """Register interaction ledger tools on the MCP server."""

    @mcp.tool
    async def record_interaction(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
        interaction_type: str,
        duration_seconds: int,
        transcript: str = "",
        sentiment_score: float | None = None,
        sentiment_label: str = "",
        mood_score: int | None = None,
        notes: str = "",
        created_at: str = "",
        evaluate_concerns: bool = False,
    ) -> str:
        """Record one interaction with a care subject. Requires 'edit' access.

        When a transcript is given without a sentiment score, the score and
        label are derived from the transcript.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject the interaction was with.
            interaction_type: 'conversation', 'health_check', 'reminder',
                'game' or 'voice_recording'.
            duration_seconds: Length of the session (>= 0).
            transcript: Optional transcript text (stored encrypted).
            sentiment_score: Optional score in [-1, 1].
            sentiment_label: Optional 'positive', 'neutral' or 'negative'.
            mood_score: Optional mood on a 1-10 scale.
            notes: Optional caregiver notes (stored encrypted).
            created_at: Optional ISO 8601 time of the session, for offline uploads.
            evaluate_concerns: Check recent mood afterwards and open a mood
                alert if it is low.
        """
        try:
            interaction = service.record_interaction(
                caregiver_id,
                care_subject_id,
                interaction_type=interaction_type,
                duration_seconds=duration_seconds,
                transcript=transcript or None,
                sentiment_score=sentiment_score,
                sentiment_label=sentiment_label or None,
                mood_score=mood_score,
                notes=notes or None,
                created_at=created_at or None,
            )
        except CareError as exc:
            return json.dumps(error_payload(exc))

        result = {
            "status": "recorded",
            "interaction": interaction_payload(interaction, include_transcript=False),
        }
        if evaluate_concerns:
            try:
                alert = service.evaluate_concerns(caregiver_id, care_subject_id)
            except CareError as exc:
                result["concern_check"] = error_payload(exc)
            else:
                result["concern_alert"] = alert_payload(alert) if alert is not None else None
        return json.dumps(result, indent=2)

    @mcp.tool
    async def list_interactions(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
        limit: int = 0,
        include_transcripts: bool = False,
    ) -> str:
        """List a care subject's most recent interactions, newest first.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject to read.
            limit: Maximum number of interactions (0 uses the server default).
            include_transcripts: Include decrypted transcript text.
        """
        try:
            interactions = service.list_interactions(
                caregiver_id, care_subject_id, limit or None
            )
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({
            "status": "ok",
            "count": len(interactions),
            "interactions": [
                interaction_payload(i, include_transcript=include_transcripts)
                for i in interactions
            ],
        }, indent=2)
