# @TASK S2-T2.5 - Search orchestration: validate, execute, enrich, record
# @TEST tests/test_search_service.py

"""Search orchestration.

``SearchService.search`` ties the pieces together for one request::

    validate -> resolve configuration -> fallback chain -> enrich -> record

Validation happens before any data-store access. Analytics are recorded in a
detached task and never delay or fail the request.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_search.config import Settings, get_settings
from inventory_search.constants import QueueStatus
from inventory_search.models import Item, SearchAnalytics, SearchUpdateQueue
from inventory_search.search.configuration import SearchConfiguration, initial_strategy, resolve_configuration
from inventory_search.search.enricher import EnrichmentOptions, ResultEnricher
from inventory_search.search.engine import has_search_terms, require_scope
from inventory_search.search.errors import SearchError
from inventory_search.search.executor import SearchExecutor
from inventory_search.search.extensions import ExtensionProber
from inventory_search.search.schemas import HouseholdScope, SearchQuery, SearchResult, parse_search_query
from inventory_search.services.search_analytics import SearchAnalyticsRecorder, SearchEvent

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class SearchService:
    """Household-scoped item search with transparent strategy fallback.

    Args:
        session_factory: Source of per-attempt and per-lookup sessions.
        prober: Capability prober; its cached status drives strategy choice.
        recorder: Optional analytics recorder.
        settings: Application settings.
        executor: Override the fallback executor (tests inject failures).
        enricher: Override the result enricher.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        prober: ExtensionProber,
        recorder: SearchAnalyticsRecorder | None = None,
        settings: Settings | None = None,
        executor: SearchExecutor | None = None,
        enricher: ResultEnricher | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._prober = prober
        self._recorder = recorder
        self._executor = executor or SearchExecutor(session_factory, self._settings)
        self._enricher = enricher or ResultEnricher(session_factory)

    async def configuration(self) -> SearchConfiguration:
        return resolve_configuration(await self._prober.probe())

    async def search(
        self,
        scope: HouseholdScope | None,
        query: SearchQuery | Mapping[str, Any],
    ) -> SearchResult:
        """Search the items of *scope*'s household.

        Raises:
            SearchValidationError: Invalid query; nothing was executed.
            HouseholdContextError: No household scope given.
            SearchError: ``SEARCH_UNAVAILABLE`` when every strategy failed.
        """
        started = time.perf_counter()
        query = parse_search_query(query)
        scope = require_scope(scope)
        config = await self.configuration()

        if not has_search_terms(query.text):
            result = SearchResult(
                items=[],
                total_count=0,
                response_time=_elapsed_ms(started),
                search_method=initial_strategy(config),
                has_more=False,
            )
            self._record(scope, query, result)
            return result

        try:
            outcome = await self._executor.execute(scope, query, config)
        except SearchError as exc:
            self._record_failure(scope, query, exc, _elapsed_ms(started))
            raise

        items = await self._enricher.enrich(scope, outcome.page.items, EnrichmentOptions.from_query(query))
        total = outcome.page.total
        result = SearchResult(
            items=items,
            total_count=total,
            response_time=_elapsed_ms(started),
            search_method=outcome.method,
            has_more=query.offset + len(items) < total,
        )
        logger.info(
            "Search served: method=%s, query_length=%d, results=%d/%d, %dms",
            result.search_method,
            len(query.text),
            len(items),
            total,
            result.response_time,
        )
        self._record(scope, query, result)
        return result

    async def capabilities(self, db: AsyncSession, scope: HouseholdScope) -> dict:
        """Extension status, resolved configuration and index statistics."""
        status = await self._prober.probe()
        household = Item.household_id == scope.household_id

        vectors = await db.execute(
            select(func.count(Item.id)).where(household, Item.search_vector.is_not(None))
        )
        queued = await db.execute(
            select(func.count(SearchUpdateQueue.id))
            .join(Item, Item.id == SearchUpdateQueue.item_id)
            .where(household, SearchUpdateQueue.status == QueueStatus.PENDING)
        )
        avg_response = await db.execute(
            select(func.avg(SearchAnalytics.response_time_ms)).where(
                SearchAnalytics.household_id == scope.household_id,
                SearchAnalytics.created_at >= datetime.now(UTC) - timedelta(hours=24),
            )
        )

        return {
            "extensions": status.model_dump(by_alias=True),
            "configuration": resolve_configuration(status).model_dump(by_alias=True),
            "statistics": {
                "searchVectorCount": vectors.scalar() or 0,
                "queuedUpdates": queued.scalar() or 0,
                "averageResponseTime": round(float(avg_response.scalar() or 0), 1),
            },
        }

    # -- analytics --------------------------------------------------------

    def _record(self, scope: HouseholdScope, query: SearchQuery, result: SearchResult) -> None:
        if self._recorder is None:
            return
        self._recorder.record(
            SearchEvent(
                household_id=scope.household_id,
                query_length=len(query.text),
                result_count=result.total_count,
                response_time_ms=result.response_time,
                search_method=str(result.search_method),
            )
        )

    def _record_failure(self, scope: HouseholdScope, query: SearchQuery, exc: SearchError, elapsed: int) -> None:
        if self._recorder is None:
            return
        self._recorder.record(
            SearchEvent(
                household_id=scope.household_id,
                query_length=len(query.text),
                result_count=0,
                response_time_ms=elapsed,
                search_method=None,
                error_code=str(exc.code),
            )
        )
