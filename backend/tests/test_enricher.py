# @TASK S2-T2.4 - Result enrichment tests

"""Tests for ResultEnricher."""

import uuid
from types import SimpleNamespace

import pytest

from inventory_search.search.enricher import EnrichmentOptions, ResultEnricher
from inventory_search.search.schemas import RankedItem, SearchQuery
from tests.fakes import FakeResult, FakeSessionFactory, bound_params, compile_sql


def _items(count=3, with_location=True):
    return [
        RankedItem(
            id=uuid.uuid4(),
            name=f"item-{i}",
            relevance_score=1.0 - i * 0.1,
            location_id=uuid.uuid4() if with_location else None,
        )
        for i in range(count)
    ]


def _relations(items, photos_per_item=0, tags=None, locations=True, failing=()):
    def handler(stmt):
        sql = compile_sql(stmt)
        if "item_photos" in sql:
            if "photos" in failing:
                return RuntimeError("photos table locked")
            return FakeResult(
                rows=[
                    SimpleNamespace(id=uuid.uuid4(), item_id=item.id, thumbnail_url=f"/t/{n}.jpg", is_primary=n == 0)
                    for item in items
                    for n in range(photos_per_item)
                ]
            )
        if "item_tags" in sql:
            if "tags" in failing:
                return RuntimeError("tags table locked")
            return FakeResult(
                rows=[
                    SimpleNamespace(item_id=items[0].id, id=uuid.uuid4(), name=name, color="#fff")
                    for name in (tags or [])
                ]
            )
        if "FROM locations" in sql:
            if not locations:
                return FakeResult()
            return FakeResult(
                rows=[
                    SimpleNamespace(id=item.location_id, name=f"loc-{i}", path=f"House > loc-{i}")
                    for i, item in enumerate(items)
                    if item.location_id
                ]
            )
        return FakeResult()

    return FakeSessionFactory(handler)


class TestEnrichmentOptions:
    def test_from_query(self):
        options = EnrichmentOptions.from_query(SearchQuery(text="x", include_tags=True))
        assert options.include_tags is True
        assert options.include_photos is False
        assert options.any is True

    def test_none_requested(self):
        assert EnrichmentOptions().any is False


class TestEnrich:
    @pytest.mark.asyncio
    async def test_nothing_requested_skips_lookups(self, scope):
        items = _items()
        factory = _relations(items)
        result = await ResultEnricher(factory).enrich(scope, items, EnrichmentOptions())
        assert result is items
        assert factory.statements == []

    @pytest.mark.asyncio
    async def test_order_and_scores_preserved(self, scope):
        items = _items()
        factory = _relations(items, photos_per_item=1, tags=["power-tools"])
        options = EnrichmentOptions(include_photos=True, include_tags=True, include_location=True)
        result = await ResultEnricher(factory).enrich(scope, items, options)

        assert [i.id for i in result] == [i.id for i in items]
        assert [i.relevance_score for i in result] == [i.relevance_score for i in items]
        assert result[0].tags[0].name == "power-tools"
        assert result[1].tags == []
        assert result[2].location.name == "loc-2"
        assert factory.sessions_opened == 3

    @pytest.mark.asyncio
    async def test_photos_capped_at_three(self, scope):
        items = _items(1)
        factory = _relations(items, photos_per_item=5)
        result = await ResultEnricher(factory).enrich(scope, items, EnrichmentOptions(include_photos=True))
        assert len(result[0].photos) == 3
        assert result[0].photos[0].is_primary is True

    @pytest.mark.asyncio
    async def test_only_requested_relations_are_set(self, scope):
        items = _items()
        factory = _relations(items, tags=["a"])
        result = await ResultEnricher(factory).enrich(scope, items, EnrichmentOptions(include_tags=True))
        assert result[0].photos is None
        assert result[0].location is None
        assert result[0].tags is not None
        assert len(factory.statements) == 1

    @pytest.mark.asyncio
    async def test_items_without_location(self, scope):
        items = _items(with_location=False)
        factory = _relations(items)
        result = await ResultEnricher(factory).enrich(scope, items, EnrichmentOptions(include_location=True))
        assert all(item.location is None for item in result)
        assert factory.statements == []

    @pytest.mark.asyncio
    async def test_failed_lookup_degrades_to_empty(self, scope):
        items = _items()
        factory = _relations(items, photos_per_item=1, tags=["a"], failing=("tags",))
        options = EnrichmentOptions(include_photos=True, include_tags=True)
        result = await ResultEnricher(factory).enrich(scope, items, options)
        assert all(item.tags == [] for item in result)
        assert all(len(item.photos) == 1 for item in result)

    @pytest.mark.asyncio
    async def test_lookups_are_household_scoped(self, scope, household_id):
        items = _items()
        factory = _relations(items)
        options = EnrichmentOptions(include_photos=True, include_tags=True, include_location=True)
        await ResultEnricher(factory).enrich(scope, items, options)
        assert len(factory.statements) == 3
        for stmt in factory.statements:
            assert bound_params(stmt)["scope_household_id"] == household_id

    @pytest.mark.asyncio
    async def test_empty_items(self, scope):
        factory = _relations([])
        result = await ResultEnricher(factory).enrich(scope, [], EnrichmentOptions(include_tags=True))
        assert result == []
        assert factory.statements == []
