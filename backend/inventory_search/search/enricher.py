# @TASK S2-T2.4 - Attach photos, tags and locations to ranked items
# @TEST tests/test_enricher.py

"""Result enrichment.

The requested lookups run concurrently, each in its own session, keyed by
item id. Results are joined back onto the ranked list by id: order, count and
scores are never touched. A lookup that fails is logged and treated as empty.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, bindparam, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_search.models import Item, ItemPhoto, ItemTag, Location, Tag
from inventory_search.search.engine import require_scope
from inventory_search.search.schemas import (
    HouseholdScope,
    LocationSummary,
    PhotoSummary,
    RankedItem,
    SearchQuery,
    TagSummary,
)

logger = logging.getLogger(__name__)

MAX_PHOTOS_PER_ITEM = 3


@dataclass(frozen=True)
class EnrichmentOptions:
    include_photos: bool = False
    include_tags: bool = False
    include_location: bool = False

    @classmethod
    def from_query(cls, query: SearchQuery) -> EnrichmentOptions:
        return cls(
            include_photos=query.include_photos,
            include_tags=query.include_tags,
            include_location=query.include_location,
        )

    @property
    def any(self) -> bool:
        return self.include_photos or self.include_tags or self.include_location


class ResultEnricher:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def enrich(
        self,
        scope: HouseholdScope | None,
        items: list[RankedItem],
        options: EnrichmentOptions,
    ) -> list[RankedItem]:
        """Return *items* in the same order with the requested relations set."""
        if not items or not options.any:
            return items
        scope = require_scope(scope)

        item_ids = [item.id for item in items]
        location_ids = list({item.location_id for item in items if item.location_id is not None})

        photos, tags, locations = await asyncio.gather(
            self._lookup("photos", self._photos_statement(scope, item_ids), options.include_photos),
            self._lookup("tags", self._tags_statement(scope, item_ids), options.include_tags),
            self._lookup(
                "locations",
                self._locations_statement(scope, location_ids),
                options.include_location and bool(location_ids),
            ),
        )

        photos_by_item: dict[uuid.UUID, list[PhotoSummary]] = defaultdict(list)
        for row in photos:
            if len(photos_by_item[row.item_id]) < MAX_PHOTOS_PER_ITEM:
                photos_by_item[row.item_id].append(
                    PhotoSummary(id=row.id, thumbnail_url=row.thumbnail_url, is_primary=bool(row.is_primary))
                )

        tags_by_item: dict[uuid.UUID, list[TagSummary]] = defaultdict(list)
        for row in tags:
            tags_by_item[row.item_id].append(TagSummary(id=row.id, name=row.name, color=row.color))

        locations_by_id = {
            row.id: LocationSummary(id=row.id, name=row.name, path=row.path or "") for row in locations
        }

        enriched: list[RankedItem] = []
        for item in items:
            update: dict[str, Any] = {}
            if options.include_photos:
                update["photos"] = photos_by_item.get(item.id, [])
            if options.include_tags:
                update["tags"] = tags_by_item.get(item.id, [])
            if options.include_location:
                update["location"] = locations_by_id.get(item.location_id) if item.location_id else None
            enriched.append(item.model_copy(update=update))
        return enriched

    async def _lookup(self, name: str, stmt: Select, wanted: bool) -> list[Any]:
        if not wanted:
            return []
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.fetchall())
        except Exception:
            logger.exception("Enrichment lookup for %s failed; returning results without it", name)
            return []

    # -- statements -------------------------------------------------------

    @staticmethod
    def _photos_statement(scope: HouseholdScope, item_ids: list[uuid.UUID]) -> Select:
        # Photos belong to items, so the household check goes through items.
        return (
            select(ItemPhoto.id, ItemPhoto.item_id, ItemPhoto.thumbnail_url, ItemPhoto.is_primary)
            .join(Item, Item.id == ItemPhoto.item_id)
            .where(ItemPhoto.item_id.in_(item_ids))
            .where(Item.household_id == bindparam("scope_household_id", scope.household_id))
            .order_by(ItemPhoto.item_id, ItemPhoto.is_primary.desc(), ItemPhoto.display_order.asc())
        )

    @staticmethod
    def _tags_statement(scope: HouseholdScope, item_ids: list[uuid.UUID]) -> Select:
        return (
            select(ItemTag.item_id, Tag.id, Tag.name, Tag.color)
            .join(Tag, Tag.id == ItemTag.tag_id)
            .where(ItemTag.item_id.in_(item_ids))
            .where(Tag.household_id == bindparam("scope_household_id", scope.household_id))
            .order_by(ItemTag.item_id, func.lower(Tag.name))
        )

    @staticmethod
    def _locations_statement(scope: HouseholdScope, location_ids: list[uuid.UUID]) -> Select:
        return (
            select(Location.id, Location.name, Location.path)
            .where(Location.id.in_(location_ids))
            .where(Location.household_id == bindparam("scope_household_id", scope.household_id))
        )
