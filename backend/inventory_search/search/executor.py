# @TASK S2-T2.3 - Fallback chain over search strategies
# @TEST tests/test_executor.py

"""Run the search strategies as a strict linear fallback chain.

Each stage is attempted at most once per request, sequentially, in its own
session and under a bounded timeout. A failing or timed-out stage advances to
the next one; when the last stage fails the caller gets
``SearchError(SEARCH_UNAVAILABLE)``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_search.config import Settings, get_settings
from inventory_search.constants import SearchMethod
from inventory_search.search.configuration import SearchConfiguration, initial_strategy, next_strategy
from inventory_search.search.engine import SearchStrategy, StrategyPage, build_strategy, require_scope
from inventory_search.search.errors import HouseholdContextError, SearchError, SearchErrorCode
from inventory_search.search.schemas import HouseholdScope, SearchQuery

logger = logging.getLogger(__name__)

StrategyFactory = Callable[[SearchMethod, AsyncSession, SearchConfiguration, Settings], SearchStrategy]


@dataclass
class ExecutionOutcome:
    page: StrategyPage
    method: SearchMethod
    attempts: list[SearchMethod]


class SearchExecutor:
    """Walks FULL_TEXT -> TRIGRAM -> ILIKE, starting where *config* says.

    Args:
        session_factory: Produces one fresh session per attempt, so a failed
            statement never poisons the next stage's transaction.
        settings: Provides the per-stage timeout.
        strategy_factory: Builds the strategy for a stage; tests inject
            failures per stage through it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
        strategy_factory: StrategyFactory = build_strategy,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._strategy_factory = strategy_factory

    async def execute(
        self,
        scope: HouseholdScope | None,
        query: SearchQuery,
        config: SearchConfiguration,
    ) -> ExecutionOutcome:
        scope = require_scope(scope)
        timeout = self._settings.search_query_timeout
        attempts: list[SearchMethod] = []
        last_error: BaseException | None = None

        stage: SearchMethod | None = initial_strategy(config)
        while stage is not None:
            attempts.append(stage)
            try:
                page = await asyncio.wait_for(self._attempt(stage, scope, query, config), timeout=timeout)
            except HouseholdContextError:
                raise
            except TimeoutError as exc:
                logger.warning("Search stage %s timed out after %.1fs, falling back", stage, timeout)
                last_error = exc
            except Exception as exc:
                logger.warning("Search stage %s failed, falling back: %s", stage, exc)
                last_error = exc
            else:
                if len(attempts) > 1:
                    logger.info("Search served by %s after %d attempts", stage, len(attempts))
                return ExecutionOutcome(page=page, method=stage, attempts=attempts)
            stage = next_strategy(stage, config)

        logger.error("All search strategies failed (%s)", ", ".join(attempts))
        raise SearchError(
            "Search is temporarily unavailable",
            SearchErrorCode.SEARCH_UNAVAILABLE,
        ) from last_error

    async def _attempt(
        self,
        stage: SearchMethod,
        scope: HouseholdScope,
        query: SearchQuery,
        config: SearchConfiguration,
    ) -> StrategyPage:
        async with self._session_factory() as session:
            strategy = self._strategy_factory(stage, session, config, self._settings)
            return await strategy.search(scope, query)
