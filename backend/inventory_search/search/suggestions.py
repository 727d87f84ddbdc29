# @TASK S3-T3.1 - Autocomplete suggestions from items, locations, tags and descriptions
# @TEST tests/test_suggestions.py

"""Search-as-you-type suggestions.

Each requested source gets a fixed share of the ``limit`` budget so no single
source crowds out the others. Sources are queried concurrently and merged by
``(text, type)``: the higher score wins and counts are summed.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy import Select, bindparam, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_search.config import Settings, get_settings
from inventory_search.constants import DEFAULT_SUGGESTION_TYPES, SuggestionType
from inventory_search.models import Item, Location, Tag
from inventory_search.search.engine import escape_like, require_scope
from inventory_search.search.schemas import HouseholdScope, SearchSuggestion

logger = logging.getLogger(__name__)

DESCRIPTION_SAMPLE_SIZE = 10
_NON_WORD_RE = re.compile(r"[^\w]")

# Starting score per source; each following result loses 0.1, floored at 0.1.
BASE_SCORES: dict[SuggestionType, float] = {
    SuggestionType.ITEM: 1.0,
    SuggestionType.LOCATION: 0.9,
    SuggestionType.TAG: 0.8,
    SuggestionType.DESCRIPTION: 0.7,
}


@dataclass(frozen=True)
class SuggestionBudget:
    """Share of the requested limit allotted to each source."""

    item: float = 0.4
    location: float = 0.3
    tag: float = 0.2
    description: float = 0.1

    @classmethod
    def from_settings(cls, settings: Settings) -> SuggestionBudget:
        return cls(
            item=settings.SUGGESTION_SHARE_ITEM,
            location=settings.SUGGESTION_SHARE_LOCATION,
            tag=settings.SUGGESTION_SHARE_TAG,
            description=settings.SUGGESTION_SHARE_DESCRIPTION,
        )

    def allotment(self, kind: SuggestionType, limit: int) -> int:
        # round() first so 10 * 0.3 is 3, not 4
        return math.ceil(round(limit * getattr(self, kind.value), 9))


def rank_score(kind: SuggestionType, index: int) -> float:
    return max(0.1, round(BASE_SCORES[kind] - index * 0.1, 10))


def merge_suggestions(batches: Iterable[Iterable[SearchSuggestion]], limit: int) -> list[SearchSuggestion]:
    """Dedupe by ``(text, type)``, keep the max score, sum counts, best first."""
    merged: dict[tuple[str, str], SearchSuggestion] = {}
    for batch in batches:
        for suggestion in batch:
            key = (suggestion.text, suggestion.type)
            existing = merged.get(key)
            if existing is None:
                merged[key] = suggestion.model_copy()
            else:
                merged[key] = existing.model_copy(
                    update={
                        "score": max(existing.score, suggestion.score),
                        "count": existing.count + suggestion.count,
                    }
                )
    # sorted() is stable, so equal scores keep source order.
    return sorted(merged.values(), key=lambda s: s.score, reverse=True)[:limit]


def extract_keywords(descriptions: Iterable[str | None], text: str) -> list[str]:
    """Words from *descriptions* that contain *text*, cleaned and deduplicated."""
    needle = text.lower()
    keywords: dict[str, None] = {}
    for description in descriptions:
        if not description:
            continue
        for word in description.lower().split():
            if needle in word and len(word) > 2:
                cleaned = _NON_WORD_RE.sub("", word)
                if cleaned:
                    keywords.setdefault(cleaned, None)
    return list(keywords)


class SuggestionGenerator:
    """Builds ranked suggestions for one household.

    Args:
        session_factory: Each source runs in its own session.
        budget: Per-source shares; defaults to the configured split.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        budget: SuggestionBudget | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._budget = budget or SuggestionBudget.from_settings(get_settings())

    async def generate(
        self,
        scope: HouseholdScope | None,
        text: str,
        limit: int = 5,
        types: Sequence[SuggestionType] = DEFAULT_SUGGESTION_TYPES,
    ) -> list[SearchSuggestion]:
        scope = require_scope(scope)
        text = text.strip()
        if not text:
            return []

        pattern = f"%{escape_like(text)}%"
        sources = []
        for kind in SuggestionType:
            if kind not in types:
                continue
            take = self._budget.allotment(kind, limit)
            if take <= 0:
                continue
            sources.append(self._from_source(kind, scope, text, pattern, take))

        batches = await asyncio.gather(*sources)
        return merge_suggestions(batches, limit)

    async def _from_source(
        self,
        kind: SuggestionType,
        scope: HouseholdScope,
        text: str,
        pattern: str,
        take: int,
    ) -> list[SearchSuggestion]:
        try:
            async with self._session_factory() as session:
                if kind == SuggestionType.DESCRIPTION:
                    result = await session.execute(self._descriptions_statement(scope, pattern))
                    keywords = extract_keywords(result.scalars().all(), text)[:take]
                    entries = [(keyword, 1) for keyword in keywords]
                else:
                    result = await session.execute(self._statement(kind, scope, pattern, take))
                    entries = [(row.text, int(row.count or 0)) for row in result.fetchall()]
        except Exception:
            logger.exception("Suggestion source %s failed", kind)
            return []

        return [
            SearchSuggestion(text=value, type=kind, count=count, score=rank_score(kind, index))
            for index, (value, count) in enumerate(entries)
        ]

    # -- statements -------------------------------------------------------

    @staticmethod
    def _household(column, scope: HouseholdScope):
        return column == bindparam("scope_household_id", scope.household_id)

    def _statement(self, kind: SuggestionType, scope: HouseholdScope, pattern: str, take: int) -> Select:
        if kind == SuggestionType.ITEM:
            # One suggestion per distinct name; count is how many items share it.
            return (
                select(Item.name.label("text"), func.count().label("count"))
                .where(self._household(Item.household_id, scope))
                .where(Item.name.ilike(pattern, escape="\\"))
                .group_by(Item.name)
                .order_by(Item.name.asc())
                .limit(take)
            )
        if kind == SuggestionType.LOCATION:
            return (
                select(Location.name.label("text"), Location.item_count.label("count"))
                .where(self._household(Location.household_id, scope))
                .where(
                    or_(
                        Location.name.ilike(pattern, escape="\\"),
                        Location.path.ilike(pattern, escape="\\"),
                    )
                )
                .order_by(Location.item_count.desc(), Location.name.asc())
                .limit(take)
            )
        if kind == SuggestionType.TAG:
            return (
                select(Tag.name.label("text"), Tag.usage_count.label("count"))
                .where(self._household(Tag.household_id, scope))
                .where(Tag.name.ilike(pattern, escape="\\"))
                .order_by(Tag.usage_count.desc(), Tag.name.asc())
                .limit(take)
            )
        raise ValueError(f"No statement for suggestion source {kind}")

    def _descriptions_statement(self, scope: HouseholdScope, pattern: str) -> Select:
        return (
            select(Item.description)
            .where(self._household(Item.household_id, scope))
            .where(Item.description.is_not(None))
            .where(Item.description.ilike(pattern, escape="\\"))
            .limit(DESCRIPTION_SAMPLE_SIZE)
        )
