# @TASK S2-T2.3 - Fallback chain tests

"""Tests for SearchExecutor: stage order, timeouts and exhaustion."""

import asyncio
import uuid

import pytest

from inventory_search.config import Settings
from inventory_search.constants import SearchMethod
from inventory_search.search.configuration import SearchConfiguration
from inventory_search.search.engine import StrategyPage
from inventory_search.search.errors import HouseholdContextError, SearchError, SearchErrorCode
from inventory_search.search.executor import SearchExecutor
from inventory_search.search.schemas import RankedItem, SearchQuery
from tests.fakes import FakeSessionFactory

FULL_CONFIG = SearchConfiguration(use_full_text_search=True, use_trigram_search=True, fallback_to_ilike=False)
ILIKE_ONLY = SearchConfiguration()


class ScriptedStrategies:
    """Strategy factory whose stages fail, hang or succeed as scripted."""

    def __init__(self, behaviours: dict[SearchMethod, object]) -> None:
        self.behaviours = behaviours
        self.calls: list[SearchMethod] = []

    def __call__(self, method, session, config, settings):
        self.calls.append(method)
        behaviour = self.behaviours.get(method)

        class _Stage:
            async def search(self, scope, query):
                if behaviour == "hang":
                    await asyncio.sleep(5)
                if isinstance(behaviour, BaseException):
                    raise behaviour
                return StrategyPage(items=[_item(method)], total=1)

        return _Stage()


def _item(method: SearchMethod) -> RankedItem:
    return RankedItem(id=uuid.uuid4(), name=str(method), relevance_score=1.0)


def _executor(behaviours, timeout_ms=5000):
    factory = FakeSessionFactory()
    strategies = ScriptedStrategies(behaviours)
    executor = SearchExecutor(factory, Settings(SEARCH_QUERY_TIMEOUT_MS=timeout_ms), strategy_factory=strategies)
    return executor, strategies, factory


class TestFallbackChain:
    @pytest.mark.asyncio
    async def test_first_stage_succeeds(self, scope):
        executor, strategies, _ = _executor({})
        outcome = await executor.execute(scope, SearchQuery(text="drill"), FULL_CONFIG)
        assert outcome.method == SearchMethod.FULL_TEXT
        assert outcome.attempts == [SearchMethod.FULL_TEXT]
        assert strategies.calls == [SearchMethod.FULL_TEXT]

    @pytest.mark.asyncio
    async def test_full_text_failure_falls_back_to_trigram(self, scope):
        executor, strategies, _ = _executor({SearchMethod.FULL_TEXT: RuntimeError("text search config missing")})
        outcome = await executor.execute(scope, SearchQuery(text="drill"), FULL_CONFIG)
        assert outcome.method == SearchMethod.TRIGRAM
        assert outcome.page.items[0].name == str(SearchMethod.TRIGRAM)

    @pytest.mark.asyncio
    async def test_two_failures_reach_ilike(self, scope):
        executor, strategies, factory = _executor(
            {
                SearchMethod.FULL_TEXT: RuntimeError("boom"),
                SearchMethod.TRIGRAM: RuntimeError("function similarity does not exist"),
            }
        )
        outcome = await executor.execute(scope, SearchQuery(text="drill"), FULL_CONFIG)
        assert outcome.method == SearchMethod.ILIKE
        assert outcome.attempts == [SearchMethod.FULL_TEXT, SearchMethod.TRIGRAM, SearchMethod.ILIKE]
        assert factory.sessions_opened == 3

    @pytest.mark.asyncio
    async def test_timeout_advances_to_next_stage(self, scope):
        executor, _, _ = _executor({SearchMethod.FULL_TEXT: "hang"}, timeout_ms=50)
        outcome = await executor.execute(scope, SearchQuery(text="drill"), FULL_CONFIG)
        assert outcome.method == SearchMethod.TRIGRAM

    @pytest.mark.asyncio
    async def test_ilike_only_deployment(self, scope):
        executor, strategies, _ = _executor({})
        outcome = await executor.execute(scope, SearchQuery(text="drill"), ILIKE_ONLY)
        assert outcome.method == SearchMethod.ILIKE
        assert strategies.calls == [SearchMethod.ILIKE]

    @pytest.mark.asyncio
    async def test_each_stage_attempted_once_then_unavailable(self, scope):
        error = RuntimeError("database unreachable")
        executor, strategies, _ = _executor(
            {SearchMethod.FULL_TEXT: error, SearchMethod.TRIGRAM: error, SearchMethod.ILIKE: error}
        )
        with pytest.raises(SearchError) as exc_info:
            await executor.execute(scope, SearchQuery(text="drill"), FULL_CONFIG)
        assert exc_info.value.code == SearchErrorCode.SEARCH_UNAVAILABLE
        assert exc_info.value.__cause__ is error
        assert strategies.calls == [SearchMethod.FULL_TEXT, SearchMethod.TRIGRAM, SearchMethod.ILIKE]

    @pytest.mark.asyncio
    async def test_household_errors_are_not_retried(self, scope):
        executor, strategies, _ = _executor(
            {SearchMethod.FULL_TEXT: HouseholdContextError("no household", SearchErrorCode.NO_HOUSEHOLD)}
        )
        with pytest.raises(HouseholdContextError):
            await executor.execute(scope, SearchQuery(text="drill"), FULL_CONFIG)
        assert strategies.calls == [SearchMethod.FULL_TEXT]

    @pytest.mark.asyncio
    async def test_missing_scope_rejected_before_any_stage(self):
        executor, strategies, factory = _executor({})
        with pytest.raises(HouseholdContextError):
            await executor.execute(None, SearchQuery(text="drill"), FULL_CONFIG)
        assert strategies.calls == []
        assert factory.sessions_opened == 0
