"""MCP tools for longitudinal statistics and wellbeing trends.

All numbers come from stored interactions only; nothing here calls an
external model.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from carewatch.domains.care.domain_logic.errors import CareError
from carewatch.domains.care.tools.payloads import error_payload, series_payload, stats_payload

if TYPE_CHECKING:
    from carewatch.domains.care.service import CareService

logger = logging.getLogger(__name__)


def register_insight_tools(mcp: FastMCP, service: CareService) -> None:
    """Register aggregation tools on the MCP server."""

    @mcp.tool
    async def get_stats(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
    ) -> str:
        """Whole-history statistics for a care subject.

        Returns total interactions, average mood and sentiment, total
        duration and the number of active alerts.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject to summarize.
        """
        try:
            stats = service.get_stats(caregiver_id, care_subject_id)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({"status": "ok", "care_subject_id": care_subject_id, **stats_payload(stats)})

    @mcp.tool
    async def get_sentiment_series(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
        days: int = 30,
    ) -> str:
        """Daily average sentiment and mood over the last N days, oldest first.

        Only days with at least one interaction are listed.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject to chart.
            days: Window length in days, 1-3650 (default: 30).
        """
        try:
            series = service.get_sentiment_series(caregiver_id, care_subject_id, days)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({
            "status": "ok",
            "days": days,
            "series": series_payload(series),
        }, indent=2)

    @mcp.tool
    async def get_wellbeing_trend(
        ctx: Context,
        caregiver_id: str,
        care_subject_id: str,
        days: int = 30,
    ) -> str:
        """Whether a care subject's sentiment and mood are improving, stable or declining.

        Compares the recent half of the daily series with the older half.

        Args:
            caregiver_id: The calling caregiver.
            care_subject_id: The subject to analyze.
            days: Window length in days, 1-3650 (default: 30).
        """
        try:
            trend = service.get_trend(caregiver_id, care_subject_id, days)
        except CareError as exc:
            return json.dumps(error_payload(exc))
        return json.dumps({"status": "ok", "care_subject_id": care_subject_id, **trend}, indent=2)
