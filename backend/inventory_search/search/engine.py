# @TASK S2-T2.2 - Full-text, trigram and ILIKE item search strategies
# @TEST tests/test_engine.py
# @TEST tests/test_household_isolation.py

"""Item search strategies.

Full-text search: ``search_vector @@ websearch_to_tsquery`` ranked with
``ts_rank_cd`` and normalized by the best score on the page.
Trigram search: pg_trgm ``similarity()`` on name and description, used as is.
ILIKE search: case-insensitive substring match with a flat score of 1.0.

With unaccent available, the query text is folded through ``unaccent()``;
``items.search_vector`` is built the same way (see ``folded_text``, the
indexer and the items trigger). Input with nothing left after sanitizing
returns an empty page under every strategy.

Every statement goes through ``_scoped()``, which adds the household
predicate, and ``_apply_filters()``, so filters behave the same whichever
strategy serves the request.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Float, Select, bindparam, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from inventory_search.config import Settings, get_settings
from inventory_search.constants import SearchMethod, SortBy, SortOrder
from inventory_search.models import Item
from inventory_search.search.configuration import SearchConfiguration
from inventory_search.search.errors import HouseholdContextError, SearchErrorCode
from inventory_search.search.schemas import HouseholdScope, RankedItem, SearchFilters, SearchQuery

_UNSAFE_CHARS_RE = re.compile(r"[^\w\s\-.]")
_WHITESPACE_RE = re.compile(r"\s+")

_ITEM_COLUMNS = (
    Item.id,
    Item.name,
    Item.description,
    Item.quantity,
    Item.unit,
    Item.status,
    Item.current_value,
    Item.location_id,
    Item.created_at,
    Item.updated_at,
)

_SORT_COLUMNS = {
    SortBy.NAME: Item.name,
    SortBy.DATE: Item.created_at,
    SortBy.VALUE: Item.current_value,
    SortBy.QUANTITY: Item.quantity,
}


def sanitize_search_term(text: str) -> str:
    """Replace everything but word characters, whitespace, ``-`` and ``.``."""
    cleaned = _UNSAFE_CHARS_RE.sub(" ", text.strip())
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def has_search_terms(text: str) -> bool:
    """True when *text* keeps at least one searchable character after sanitizing.

    Symbol-only input such as ``"!!!"`` counts as empty for every strategy.
    """
    return bool(sanitize_search_term(text))


def folded_text(expr: Any, use_unaccent: bool) -> Any:
    """Text fed to ``to_tsvector`` / ``websearch_to_tsquery``.

    The stored vector and the query must fold accents the same way or
    ``'café'`` and ``'cafe'`` never meet.
    """
    return func.unaccent(expr) if use_unaccent else expr


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so user input only ever matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def require_scope(scope: HouseholdScope | None) -> HouseholdScope:
    if scope is None or getattr(scope, "household_id", None) is None:
        raise HouseholdContextError("A household scope is required to search", SearchErrorCode.NO_HOUSEHOLD)
    return scope


def _scoped(stmt: Select, scope: HouseholdScope | None) -> Select:
    """Restrict *stmt* to the items of exactly one household."""
    scope = require_scope(scope)
    return stmt.where(Item.household_id == bindparam("scope_household_id", scope.household_id))


def _apply_filters(stmt: Select, filters: SearchFilters) -> Select:
    if filters.statuses:
        stmt = stmt.where(Item.status.in_([str(status) for status in filters.statuses]))
    if filters.location_ids:
        stmt = stmt.where(Item.location_id.in_(filters.location_ids))
    if filters.value_range is not None:
        if filters.value_range.min is not None:
            stmt = stmt.where(Item.current_value >= filters.value_range.min)
        if filters.value_range.max is not None:
            stmt = stmt.where(Item.current_value <= filters.value_range.max)
    return stmt


def _tie_break(query: SearchQuery, *, default: SortBy, default_order: SortOrder) -> list[Any]:
    """ORDER BY terms applied after the score, ending with the item id."""
    if query.sort_by == SortBy.RELEVANCE:
        sort_by, order = default, query.sort_order or default_order
    else:
        sort_by = query.sort_by
        order = query.sort_order or (SortOrder.ASC if sort_by == SortBy.NAME else SortOrder.DESC)

    column = _SORT_COLUMNS[sort_by]
    terms = [column.asc().nulls_last() if order == SortOrder.ASC else column.desc().nulls_last()]
    if sort_by != SortBy.NAME:
        terms.append(Item.name.asc())
    terms.append(Item.id.asc())
    return terms


@dataclass
class StrategyPage:
    """One page of ranked items and the total number of matches."""

    items: list[RankedItem] = field(default_factory=list)
    total: int = 0


class SearchStrategy:
    """Base class: builds one scoped, filtered, ranked statement and runs it.

    Subclasses provide ``match_predicate`` and ``score_expression`` and may
    override ``normalize`` and the default tie-break.

    Args:
        session: Session used for this attempt only.
        config: Resolved search configuration.
        settings: Application settings (thresholds, text search config).
    """

    method: SearchMethod
    default_sort: SortBy = SortBy.NAME
    default_order: SortOrder = SortOrder.ASC

    def __init__(
        self,
        session: AsyncSession,
        config: SearchConfiguration | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._config = config or SearchConfiguration()
        self._settings = settings or get_settings()

    # -- hooks ------------------------------------------------------------

    def prepare_term(self, text: str) -> str:
        return sanitize_search_term(text)

    def match_predicate(self, term: str) -> ColumnElement[bool]:
        raise NotImplementedError

    def score_expression(self, term: str) -> ColumnElement[Any]:
        raise NotImplementedError

    def normalize(self, scores: list[float]) -> list[float]:
        return [min(max(score, 0.0), 1.0) for score in scores]

    # -- statements -------------------------------------------------------

    def build_statement(self, scope: HouseholdScope | None, query: SearchQuery, term: str) -> Select:
        score = self.score_expression(term).label("score")
        total_count = func.count().over().label("total_count")

        stmt = select(*_ITEM_COLUMNS, score, total_count).where(self.match_predicate(term))
        stmt = _scoped(stmt, scope)
        stmt = _apply_filters(stmt, query.filters)
        return (
            stmt.order_by(
                score.desc(),
                *_tie_break(query, default=self.default_sort, default_order=self.default_order),
            )
            .limit(query.limit)
            .offset(query.offset)
        )

    def build_count_statement(self, scope: HouseholdScope | None, query: SearchQuery, term: str) -> Select:
        stmt = select(func.count()).select_from(Item).where(self.match_predicate(term))
        stmt = _scoped(stmt, scope)
        return _apply_filters(stmt, query.filters)

    # -- execution --------------------------------------------------------

    async def search(self, scope: HouseholdScope | None, query: SearchQuery) -> StrategyPage:
        """Run the strategy for *query* within *scope*.

        Database errors propagate; the executor turns them into fallbacks.
        """
        scope = require_scope(scope)
        if not has_search_terms(query.text):
            return StrategyPage()
        term = self.prepare_term(query.text)

        result = await self._session.execute(self.build_statement(scope, query, term))
        rows = result.fetchall()

        if rows:
            total = int(rows[0].total_count)
        elif query.offset > 0:
            # Past the last page: the window count has no row to ride on.
            total = int((await self._session.execute(self.build_count_statement(scope, query, term))).scalar_one())
        else:
            total = 0

        scores = self.normalize([float(row.score or 0.0) for row in rows])
        items = [_to_ranked_item(row, score) for row, score in zip(rows, scores, strict=True)]
        return StrategyPage(items=items, total=total)


class FullTextSearchStrategy(SearchStrategy):
    """tsvector match ranked by ``ts_rank_cd`` (match quality and proximity)."""

    method = SearchMethod.FULL_TEXT

    def _tsquery(self, term: str) -> ColumnElement[Any]:
        return func.websearch_to_tsquery(
            self._settings.SEARCH_TEXT_CONFIG, folded_text(term, self._config.use_unaccent)
        )

    def match_predicate(self, term: str) -> ColumnElement[bool]:
        return Item.search_vector.op("@@")(self._tsquery(term))

    def score_expression(self, term: str) -> ColumnElement[Any]:
        return func.ts_rank_cd(Item.search_vector, self._tsquery(term))

    def normalize(self, scores: list[float]) -> list[float]:
        # Relative to the best match on this page, so scores compare within
        # one response only.
        top = max(scores, default=0.0)
        divisor = top if top > 0 else 1.0
        return [min(max(score / divisor, 0.0), 1.0) for score in scores]


class TrigramSearchStrategy(SearchStrategy):
    """pg_trgm similarity against name and description."""

    method = SearchMethod.TRIGRAM

    def _similarity(self, term: str) -> ColumnElement[Any]:
        return func.greatest(
            func.similarity(Item.name, term),
            func.similarity(func.coalesce(Item.description, ""), term),
        )

    def match_predicate(self, term: str) -> ColumnElement[bool]:
        return self._similarity(term) > self._settings.SEARCH_TRIGRAM_THRESHOLD

    def score_expression(self, term: str) -> ColumnElement[Any]:
        return self._similarity(term)


class IlikeSearchStrategy(SearchStrategy):
    """Plain substring match; every hit scores 1.0, newest first by default."""

    method = SearchMethod.ILIKE
    default_sort = SortBy.DATE
    default_order = SortOrder.DESC

    def prepare_term(self, text: str) -> str:
        return text.strip()

    def match_predicate(self, term: str) -> ColumnElement[bool]:
        pattern = f"%{escape_like(term)}%"
        return or_(
            Item.name.ilike(pattern, escape="\\"),
            Item.description.ilike(pattern, escape="\\"),
        )

    def score_expression(self, term: str) -> ColumnElement[Any]:
        return literal(1.0, Float)

    def normalize(self, scores: list[float]) -> list[float]:
        return [1.0 for _ in scores]


_STRATEGIES: dict[SearchMethod, type[SearchStrategy]] = {
    SearchMethod.FULL_TEXT: FullTextSearchStrategy,
    SearchMethod.TRIGRAM: TrigramSearchStrategy,
    SearchMethod.ILIKE: IlikeSearchStrategy,
}


def build_strategy(
    method: SearchMethod,
    session: AsyncSession,
    config: SearchConfiguration | None = None,
    settings: Settings | None = None,
) -> SearchStrategy:
    return _STRATEGIES[method](session, config, settings)


def _to_ranked_item(row: Any, score: float) -> RankedItem:
    current_value = row.current_value
    return RankedItem(
        id=row.id,
        name=row.name,
        description=row.description,
        quantity=row.quantity,
        unit=row.unit,
        status=row.status,
        current_value=float(current_value) if current_value is not None else None,
        location_id=row.location_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        relevance_score=score,
    )
