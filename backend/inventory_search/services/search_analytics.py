"""Search analytics: fire-and-forget event recording + dashboard aggregates.

Only the shape of a query is stored (its length), never the text.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_search.models import SearchAnalytics

logger = logging.getLogger(__name__)

PERIODS = {"1d": 1, "7d": 7, "30d": 30, "90d": 90}


@dataclass(frozen=True)
class SearchEvent:
    household_id: uuid.UUID | None
    query_length: int
    result_count: int
    response_time_ms: int
    search_method: str | None
    error_code: str | None = None


class SearchAnalyticsRecorder:
    """Writes one ``search_analytics`` row per search in a detached task.

    ``record()`` returns immediately; the write happens in its own session and
    any failure is logged and swallowed. ``drain()`` waits for pending writes.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(self, event: SearchEvent) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._write(event))
        except RuntimeError:
            logger.warning("No running event loop; search analytics event dropped")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _write(self, event: SearchEvent) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    SearchAnalytics(
                        household_id=event.household_id,
                        query_length=event.query_length,
                        result_count=event.result_count,
                        response_time_ms=event.response_time_ms,
                        search_method=event.search_method,
                        error_code=event.error_code,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception("Failed to record search analytics event")


async def get_dashboard_data(db: AsyncSession, period: str = "7d", household_id: uuid.UUID | None = None) -> dict:
    """Aggregate search analytics for one household over *period*."""
    days = PERIODS.get(period, 7)
    since = datetime.now(UTC) - timedelta(days=days)

    conditions = [SearchAnalytics.created_at >= since]
    if household_id is not None:
        conditions.append(SearchAnalytics.household_id == household_id)

    totals = await db.execute(
        select(
            func.count(SearchAnalytics.id),
            func.avg(SearchAnalytics.result_count),
            func.avg(SearchAnalytics.response_time_ms),
        ).where(*conditions)
    )
    total_searches, avg_results, avg_response = totals.one()
    total_searches = total_searches or 0

    zero_result = await db.execute(
        select(func.count(SearchAnalytics.id)).where(*conditions, SearchAnalytics.result_count == 0)
    )
    zero_count = zero_result.scalar() or 0
    zero_result_rate = round(zero_count / total_searches * 100, 1) if total_searches else 0

    method_result = await db.execute(
        select(SearchAnalytics.search_method, func.count(SearchAnalytics.id))
        .where(*conditions)
        .group_by(SearchAnalytics.search_method)
    )
    method_distribution = [{"method": r[0], "count": r[1]} for r in method_result.fetchall()]

    p_result = await db.execute(
        text("""
            SELECT
                percentile_cont(0.5) WITHIN GROUP (ORDER BY response_time_ms) AS p50,
                percentile_cont(0.95) WITHIN GROUP (ORDER BY response_time_ms) AS p95
            FROM search_analytics
            WHERE created_at >= :since
              AND (CAST(:household_id AS uuid) IS NULL OR household_id = CAST(:household_id AS uuid))
        """),
        {"since": since, "household_id": str(household_id) if household_id else None},
    )
    p_row = p_result.one()

    return {
        "total_searches": total_searches,
        "avg_result_count": round(float(avg_results or 0), 1),
        "avg_response_time_ms": round(float(avg_response or 0), 1),
        "zero_result_rate": zero_result_rate,
        "method_distribution": method_distribution,
        "response_time_p50": round(float(p_row[0] or 0), 1),
        "response_time_p95": round(float(p_row[1] or 0), 1),
        "period": period if period in PERIODS else "7d",
    }
