# @TASK S2-T2.6 - Background search_vector maintenance
# @TEST tests/test_indexer.py

"""Search-vector maintenance for items.

The database trigger keeps ``items.search_vector`` current on write. This
module covers the rest: items imported with triggers disabled, a changed text
search configuration, or a full rebuild. Items are queued in
``search_update_queue`` and processed in priority order.

Weights: name -> A, description -> B.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import func, insert, literal_column, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_search.config import Settings, get_settings
from inventory_search.constants import QueueStatus
from inventory_search.models import Item, SearchUpdateQueue
from inventory_search.search.engine import folded_text

logger = logging.getLogger(__name__)


@dataclass
class IndexResult:
    """Aggregated result of one queue-processing run.

    Attributes:
        processed: Queue entries whose items were re-vectorized.
        remaining: Entries still pending after the run.
    """

    processed: int = field(default=0)
    remaining: int = field(default=0)


class SearchVectorIndexer:
    """Queues and recomputes ``items.search_vector`` for one household.

    Every statement joins through ``items`` and carries the household
    predicate, so one household's rebuild never touches another's queue.

    Args:
        session: An async SQLAlchemy session; the caller owns its lifecycle.
        household_id: The household whose items are indexed.
        settings: Supplies the text search configuration.
        use_unaccent: Fold accents in the stored vector, matching the query side.
    """

    def __init__(
        self,
        session: AsyncSession,
        household_id: uuid.UUID,
        settings: Settings | None = None,
        use_unaccent: bool = False,
    ) -> None:
        self._session = session
        self._household_id = household_id
        self._settings = settings or get_settings()
        self._use_unaccent = use_unaccent

    def _vector_expression(self):
        config = self._settings.SEARCH_TEXT_CONFIG

        def weighted(column, weight: str):
            text = folded_text(func.coalesce(column, ""), self._use_unaccent)
            return func.setweight(func.to_tsvector(config, text), literal_column(f"'{weight}'"))

        return weighted(Item.name, "A").op("||")(weighted(Item.description, "B"))

    def _in_household(self):
        return Item.household_id == self._household_id

    async def queue_missing(self, priority: int = 1, rebuild: bool = False) -> int:
        """Queue the household's items that have no search vector yet.

        With ``rebuild`` every item is queued, e.g. after unaccent was
        installed and existing vectors still hold accented lexemes.
        """
        candidates = select(
            Item.id, literal_column(str(int(priority))), literal_column(f"'{QueueStatus.PENDING}'")
        ).where(self._in_household())
        if not rebuild:
            candidates = candidates.where(Item.search_vector.is_(None))

        stmt = insert(SearchUpdateQueue).from_select(["item_id", "priority", "status"], candidates)
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount or 0

    async def pending_count(self) -> int:
        result = await self._session.execute(
            select(func.count(SearchUpdateQueue.id))
            .join(Item, Item.id == SearchUpdateQueue.item_id)
            .where(SearchUpdateQueue.status == QueueStatus.PENDING, self._in_household())
        )
        return result.scalar() or 0

    async def process_queue(self, batch_size: int = 100) -> IndexResult:
        """Recompute vectors for the household's highest-priority pending entries.

        Failures are logged and reported as nothing processed; the entries
        stay pending for the next run.
        """
        try:
            result = await self._session.execute(
                select(SearchUpdateQueue.id, SearchUpdateQueue.item_id)
                .join(Item, Item.id == SearchUpdateQueue.item_id)
                .where(SearchUpdateQueue.status == QueueStatus.PENDING, self._in_household())
                .order_by(SearchUpdateQueue.priority.desc(), SearchUpdateQueue.created_at.asc())
                .limit(batch_size)
            )
            entries = result.fetchall()
            if not entries:
                return IndexResult(processed=0, remaining=0)

            item_ids = list({row.item_id for row in entries})
            entry_ids = [row.id for row in entries]

            await self._session.execute(
                update(Item)
                .where(Item.id.in_(item_ids), self._in_household())
                .values(search_vector=self._vector_expression())
            )
            await self._session.execute(
                update(SearchUpdateQueue)
                .where(SearchUpdateQueue.id.in_(entry_ids))
                .values(status=QueueStatus.DONE, processed_at=datetime.now(UTC))
            )
            await self._session.commit()
        except Exception:
            logger.exception("Search vector queue processing failed: household=%s", self._household_id)
            await self._session.rollback()
            return IndexResult(processed=0, remaining=await self._safe_pending_count())

        remaining = await self.pending_count()
        logger.info("Search vectors updated: %d entries, %d remaining", len(entry_ids), remaining)
        return IndexResult(processed=len(entry_ids), remaining=remaining)

    async def _safe_pending_count(self) -> int:
        try:
            return await self.pending_count()
        except Exception:
            logger.warning("Could not count pending search updates", exc_info=True)
            return 0
