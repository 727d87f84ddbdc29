# @TASK S2-T2.2 - Search strategy tests

"""Tests for the full-text, trigram and ILIKE strategies.

Statements are compiled with the PostgreSQL dialect and inspected; rows are
served by ``FakeSessionFactory``.
"""

import uuid
from decimal import Decimal

import pytest

from inventory_search.config import Settings
from inventory_search.constants import SearchMethod
from inventory_search.search.configuration import SearchConfiguration
from inventory_search.search.engine import (
    FullTextSearchStrategy,
    IlikeSearchStrategy,
    TrigramSearchStrategy,
    build_strategy,
    escape_like,
    has_search_terms,
    require_scope,
    sanitize_search_term,
)
from inventory_search.search.errors import HouseholdContextError, SearchErrorCode
from inventory_search.search.schemas import SearchQuery
from tests.fakes import FakeResult, FakeSessionFactory, bound_params, compile_sql, make_item_row

FULL_CONFIG = SearchConfiguration(use_full_text_search=True, use_trigram_search=True, fallback_to_ilike=False)


def _strategy(cls, handler=None, config=FULL_CONFIG, settings=None):
    factory = FakeSessionFactory(handler)
    return cls(factory(), config, settings or Settings()), factory


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_sanitize_strips_operators(self):
        assert sanitize_search_term("  drill & (bits) | !saw  ") == "drill bits saw"

    def test_sanitize_keeps_hyphens_and_dots(self):
        assert sanitize_search_term("1.5mm hex-key") == "1.5mm hex-key"

    def test_sanitize_only_symbols_is_empty(self):
        assert sanitize_search_term("!!! &&& ()") == ""

    def test_has_search_terms(self):
        assert has_search_terms("50%")
        assert has_search_terms(" é ")
        assert not has_search_terms("!!! ()")
        assert not has_search_terms("")

    def test_escape_like(self):
        assert escape_like("50%_off\\") == "50\\%\\_off\\\\"

    def test_require_scope_rejects_missing(self):
        with pytest.raises(HouseholdContextError) as exc_info:
            require_scope(None)
        assert exc_info.value.code == SearchErrorCode.NO_HOUSEHOLD

    def test_build_strategy_dispatch(self):
        session = FakeSessionFactory()()
        assert isinstance(build_strategy(SearchMethod.FULL_TEXT, session, FULL_CONFIG), FullTextSearchStrategy)
        assert isinstance(build_strategy(SearchMethod.TRIGRAM, session, FULL_CONFIG), TrigramSearchStrategy)
        assert isinstance(build_strategy(SearchMethod.ILIKE, session, FULL_CONFIG), IlikeSearchStrategy)


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


class TestStatements:
    def test_every_strategy_is_household_scoped(self, scope, household_id):
        query = SearchQuery(text="drill")
        for cls in (FullTextSearchStrategy, TrigramSearchStrategy, IlikeSearchStrategy):
            strategy, _ = _strategy(cls)
            stmt = strategy.build_statement(scope, query, strategy.prepare_term(query.text))
            assert "items.household_id = %(scope_household_id)s" in compile_sql(stmt)
            assert bound_params(stmt)["scope_household_id"] == household_id

    def test_full_text_statement(self, scope):
        strategy, _ = _strategy(FullTextSearchStrategy)
        sql = compile_sql(strategy.build_statement(scope, SearchQuery(text="drill"), "drill"))
        assert "@@ websearch_to_tsquery" in sql
        assert "ts_rank_cd(items.search_vector" in sql
        assert "count(*) OVER ()" in sql
        assert "unaccent" not in sql

    def test_trigram_statement_uses_threshold(self, scope):
        strategy, _ = _strategy(TrigramSearchStrategy, settings=Settings(SEARCH_TRIGRAM_THRESHOLD=0.45))
        stmt = strategy.build_statement(scope, SearchQuery(text="drll"), "drll")
        sql = compile_sql(stmt)
        assert "greatest(similarity(items.name" in sql
        assert 0.45 in bound_params(stmt).values()

    def test_ilike_escapes_wildcards(self, scope):
        strategy, _ = _strategy(IlikeSearchStrategy)
        stmt = strategy.build_statement(scope, SearchQuery(text="50%"), strategy.prepare_term("50%"))
        sql = compile_sql(stmt)
        assert "items.name ILIKE" in sql
        assert "ESCAPE" in sql
        assert "%50\\%%" in bound_params(stmt).values()

    def test_filters_apply_to_every_strategy(self, scope):
        location = uuid.uuid4()
        query = SearchQuery.model_validate(
            {
                "text": "drill",
                "filters": {
                    "statuses": ["AVAILABLE", "BORROWED"],
                    "locationIds": [str(location)],
                    "valueRange": {"min": 10, "max": 200},
                },
            }
        )
        for cls in (FullTextSearchStrategy, TrigramSearchStrategy, IlikeSearchStrategy):
            strategy, _ = _strategy(cls)
            sql = compile_sql(strategy.build_statement(scope, query, "drill"))
            assert "items.status IN" in sql
            assert "items.location_id IN" in sql
            assert "items.current_value >=" in sql
            assert "items.current_value <=" in sql

    def test_relevance_tie_break_defaults(self, scope):
        fts, _ = _strategy(FullTextSearchStrategy)
        ilike, _ = _strategy(IlikeSearchStrategy)
        query = SearchQuery(text="drill")
        fts_sql = compile_sql(fts.build_statement(scope, query, "drill"))
        ilike_sql = compile_sql(ilike.build_statement(scope, query, "drill"))
        assert "ORDER BY score DESC, items.name ASC NULLS LAST, items.id ASC" in fts_sql
        assert "ORDER BY score DESC, items.created_at DESC NULLS LAST, items.name ASC, items.id ASC" in ilike_sql

    def test_explicit_sort(self, scope):
        strategy, _ = _strategy(TrigramSearchStrategy)
        query = SearchQuery.model_validate({"text": "drill", "sortBy": "value", "sortOrder": "asc"})
        sql = compile_sql(strategy.build_statement(scope, query, "drill"))
        assert "items.current_value ASC NULLS LAST, items.name ASC, items.id ASC" in sql


# ---------------------------------------------------------------------------
# Execution and scoring
# ---------------------------------------------------------------------------


class TestSearch:
    @pytest.mark.asyncio
    async def test_full_text_normalizes_by_page_maximum(self, scope):
        rows = [make_item_row("Drill", score=0.2, total=5), make_item_row("Drill bits", score=0.1, total=5)]
        strategy, _ = _strategy(FullTextSearchStrategy, lambda stmt: FakeResult(rows=rows))
        page = await strategy.search(scope, SearchQuery(text="drill"))
        assert [item.relevance_score for item in page.items] == [1.0, 0.5]
        assert page.total == 5

    @pytest.mark.asyncio
    async def test_full_text_all_zero_scores(self, scope):
        rows = [make_item_row("Drill", score=0.0)]
        strategy, _ = _strategy(FullTextSearchStrategy, lambda stmt: FakeResult(rows=rows))
        page = await strategy.search(scope, SearchQuery(text="drill"))
        assert page.items[0].relevance_score == 0.0

    @pytest.mark.asyncio
    async def test_trigram_scores_are_raw_similarity(self, scope):
        rows = [make_item_row("Drill", score=0.8), make_item_row("Grill", score=0.4)]
        strategy, _ = _strategy(TrigramSearchStrategy, lambda stmt: FakeResult(rows=rows))
        page = await strategy.search(scope, SearchQuery(text="drill"))
        assert [item.relevance_score for item in page.items] == [0.8, 0.4]

    @pytest.mark.asyncio
    async def test_ilike_scores_are_flat(self, scope):
        rows = [make_item_row("Drill"), make_item_row("Old drill")]
        strategy, _ = _strategy(IlikeSearchStrategy, lambda stmt: FakeResult(rows=rows))
        page = await strategy.search(scope, SearchQuery(text="drill"))
        assert {item.relevance_score for item in page.items} == {1.0}

    @pytest.mark.asyncio
    async def test_order_is_preserved(self, scope):
        rows = [make_item_row(name, score=0.5) for name in ("c", "a", "b")]
        strategy, _ = _strategy(TrigramSearchStrategy, lambda stmt: FakeResult(rows=rows))
        page = await strategy.search(scope, SearchQuery(text="x"))
        assert [item.name for item in page.items] == ["c", "a", "b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("cls", [FullTextSearchStrategy, TrigramSearchStrategy, IlikeSearchStrategy])
    @pytest.mark.parametrize("text", ["&&& |||", "!!!", "%", "()"])
    async def test_symbol_only_term_is_empty_for_every_strategy(self, scope, cls, text):
        strategy, factory = _strategy(cls, lambda stmt: FakeResult(rows=[make_item_row("!!! sale")]))
        page = await strategy.search(scope, SearchQuery(text=text))
        assert page.items == []
        assert page.total == 0
        assert factory.statements == []

    @pytest.mark.asyncio
    async def test_offset_past_end_counts_separately(self, scope):
        def handler(stmt):
            if "OVER" in compile_sql(stmt):
                return FakeResult(rows=[])
            return FakeResult(scalar=7)

        strategy, factory = _strategy(TrigramSearchStrategy, handler)
        page = await strategy.search(scope, SearchQuery(text="drill", offset=40))
        assert page.items == []
        assert page.total == 7
        assert len(factory.statements) == 2

    @pytest.mark.asyncio
    async def test_decimal_values_become_floats(self, scope):
        rows = [make_item_row("Drill", current_value=Decimal("129.99"))]
        strategy, _ = _strategy(IlikeSearchStrategy, lambda stmt: FakeResult(rows=rows))
        page = await strategy.search(scope, SearchQuery(text="drill"))
        assert page.items[0].current_value == 129.99

    @pytest.mark.asyncio
    async def test_missing_scope_raises_before_query(self):
        strategy, factory = _strategy(IlikeSearchStrategy)
        with pytest.raises(HouseholdContextError):
            await strategy.search(None, SearchQuery(text="drill"))
        assert factory.statements == []

    @pytest.mark.asyncio
    async def test_database_errors_propagate(self, scope):
        strategy, _ = _strategy(FullTextSearchStrategy, lambda stmt: RuntimeError("function unaccent does not exist"))
        with pytest.raises(RuntimeError):
            await strategy.search(scope, SearchQuery(text="drill"))
