"""Tests for search analytics recording and dashboard aggregation."""

from __future__ import annotations

import uuid

import pytest

from inventory_search.models import SearchAnalytics
from inventory_search.services.search_analytics import SearchAnalyticsRecorder, SearchEvent, get_dashboard_data
from tests.fakes import FakeResult, FakeSessionFactory


def _event(**overrides) -> SearchEvent:
    values = {
        "household_id": uuid.uuid4(),
        "query_length": 5,
        "result_count": 3,
        "response_time_ms": 40,
        "search_method": "full_text_search",
    }
    values.update(overrides)
    return SearchEvent(**values)


class TestRecorder:
    @pytest.mark.asyncio
    async def test_record_writes_in_background(self):
        factory = FakeSessionFactory()
        recorder = SearchAnalyticsRecorder(factory)
        recorder.record(_event(query_length=7))
        assert recorder.pending == 1

        await recorder.drain()
        assert recorder.pending == 0
        assert factory.commits == 1
        row = factory.added[0]
        assert isinstance(row, SearchAnalytics)
        assert row.query_length == 7
        assert row.search_method == "full_text_search"

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self):
        factory = FakeSessionFactory(fail_commit=RuntimeError("disk full"))
        recorder = SearchAnalyticsRecorder(factory)
        recorder.record(_event())
        await recorder.drain()
        assert factory.commits == 0

    @pytest.mark.asyncio
    async def test_error_code_stored(self):
        factory = FakeSessionFactory()
        recorder = SearchAnalyticsRecorder(factory)
        recorder.record(_event(search_method=None, error_code="SEARCH_UNAVAILABLE"))
        await recorder.drain()
        assert factory.added[0].error_code == "SEARCH_UNAVAILABLE"

    def test_no_running_loop_drops_event(self):
        factory = FakeSessionFactory()
        recorder = SearchAnalyticsRecorder(factory)
        recorder.record(_event())
        assert recorder.pending == 0
        assert factory.added == []


def _dashboard_db(totals, zero, methods, percentiles):
    answers = iter(
        [
            FakeResult(rows=[totals]),
            FakeResult(scalar=zero),
            FakeResult(rows=methods),
            FakeResult(rows=[percentiles]),
        ]
    )
    return FakeSessionFactory(lambda stmt: next(answers))()


class TestDashboard:
    @pytest.mark.asyncio
    async def test_aggregates(self):
        db = _dashboard_db(
            (10, 3.46, 120.04),
            2,
            [("full_text_search", 8), ("ilike_fallback", 2)],
            (100.0, 250.56),
        )
        data = await get_dashboard_data(db, "30d", uuid.uuid4())
        assert data["total_searches"] == 10
        assert data["avg_result_count"] == 3.5
        assert data["avg_response_time_ms"] == 120.0
        assert data["zero_result_rate"] == 20.0
        assert data["method_distribution"] == [
            {"method": "full_text_search", "count": 8},
            {"method": "ilike_fallback", "count": 2},
        ]
        assert data["response_time_p50"] == 100.0
        assert data["response_time_p95"] == 250.6
        assert data["period"] == "30d"

    @pytest.mark.asyncio
    async def test_empty_period(self):
        db = _dashboard_db((0, None, None), 0, [], (None, None))
        data = await get_dashboard_data(db, "1d")
        assert data["total_searches"] == 0
        assert data["zero_result_rate"] == 0
        assert data["response_time_p95"] == 0

    @pytest.mark.asyncio
    async def test_unknown_period_defaults_to_week(self):
        db = _dashboard_db((0, None, None), 0, [], (None, None))
        data = await get_dashboard_data(db, "forever")
        assert data["period"] == "7d"
