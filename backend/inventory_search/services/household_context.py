# @TASK S1-T1.5 - Resolve the authenticated user to exactly one household
# @TEST tests/test_household_context.py

"""Household context resolution.

The token says who the user is and, optionally, which household the session
selected. Membership is always re-checked against ``household_members`` so a
revoked membership stops searching immediately.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_search.models import HouseholdMember, User
from inventory_search.search.errors import HouseholdContextError, SearchErrorCode
from inventory_search.search.schemas import HouseholdScope

logger = logging.getLogger(__name__)


class HouseholdContextResolver:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def resolve(self, user: dict) -> HouseholdScope:
        """Return the single household *user* may search.

        Raises:
            HouseholdContextError: ``USER_NOT_FOUND`` or ``NO_HOUSEHOLD`` (404),
                ``HOUSEHOLD_ACCESS_DENIED`` (403) when the session's household
                is no longer one of the user's memberships.
        """
        user_id = user.get("user_id")
        if user_id is None:
            raise HouseholdContextError("Invalid user session - missing user ID", SearchErrorCode.USER_NOT_FOUND)
        requested = user.get("household_id")

        async with self._session_factory() as session:
            result = await session.execute(select(User.id, User.default_household_id).where(User.id == user_id))
            row = result.first()
            if row is None:
                raise HouseholdContextError("User not found", SearchErrorCode.USER_NOT_FOUND)

            memberships = await session.execute(
                select(HouseholdMember.household_id)
                .where(HouseholdMember.user_id == user_id)
                .order_by(HouseholdMember.joined_at.asc())
            )
            household_ids: list[uuid.UUID] = list(memberships.scalars().all())

        if requested is not None:
            if requested not in household_ids:
                logger.warning("Household access revoked for user %s", user_id)
                raise HouseholdContextError(
                    "Household access has been revoked or household no longer exists",
                    SearchErrorCode.HOUSEHOLD_ACCESS_DENIED,
                )
            return HouseholdScope(household_id=requested, user_id=user_id)

        if row.default_household_id is not None and row.default_household_id in household_ids:
            return HouseholdScope(household_id=row.default_household_id, user_id=user_id)
        if household_ids:
            return HouseholdScope(household_id=household_ids[0], user_id=user_id)

        raise HouseholdContextError("User is not a member of any household", SearchErrorCode.NO_HOUSEHOLD)
