"""
Subscription Repository

Data access layer for the subscription ledger. State transitions that must
not lose a race (deactivation, renewal) are issued as conditional UPDATEs
and report whether a row changed.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.models.subscription import UserSubscription


logger = logging.getLogger(__name__)


class SubscriptionRepository(
    BaseRepository[UserSubscription, UserSubscription, UserSubscription]
):
    """Repository for user subscriptions."""

    def __init__(self, session: AsyncSession):
        super().__init__(UserSubscription, session)

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_active(
        self,
        user_id: int,
        now: datetime,
        for_update: bool = False,
    ) -> Optional[UserSubscription]:
        """
        Get the active, unexpired subscription for a user.

        Args:
            user_id: User ID
            now: Reference time (naive UTC)
            for_update: Lock the row until the transaction ends

        Returns:
            Subscription or None
        """
        stmt = (
            select(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.is_active.is_(True),
                UserSubscription.end_date > now,
            )
            .order_by(UserSubscription.end_date.desc())
            .limit(1)
        )
        if for_update:
            stmt = stmt.with_for_update()

        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_by_external_id(self, external_id: str) -> Optional[UserSubscription]:
        stmt = select(UserSubscription).where(
            UserSubscription.external_subscription_id == external_id
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: int) -> List[UserSubscription]:
        """All subscriptions for a user, newest first."""
        stmt = (
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_page(self, skip: int, limit: int) -> List[UserSubscription]:
        stmt = (
            select(UserSubscription)
            .order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def reload(self, subscription_id: int) -> Optional[UserSubscription]:
        """Re-read a row, overwriting any stale identity-map state."""
        stmt = (
            select(UserSubscription)
            .where(UserSubscription.id == subscription_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def deactivate_all_for_user(self, user_id: int, now: datetime) -> int:
        """
        Clear the active flag on every flagged row for the user.

        Expired rows that still carry the flag are included so the one-active
        index never blocks the insert that follows.

        Returns:
            Number of rows deactivated
        """
        stmt = (
            update(UserSubscription)
            .where(
                UserSubscription.user_id == user_id,
                UserSubscription.is_active.is_(True),
            )
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def deactivate(self, subscription_id: int, now: datetime) -> bool:
        """Flip one row to inactive. False when it already was."""
        stmt = (
            update(UserSubscription)
            .where(
                UserSubscription.id == subscription_id,
                UserSubscription.is_active.is_(True),
            )
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def extend_end_date(
        self,
        subscription_id: int,
        new_end_date: datetime,
        now: datetime,
    ) -> bool:
        """
        Move end_date forward only when ``new_end_date`` is later.

        The freshness check is part of the UPDATE so concurrent or reordered
        renewals can never shorten a subscription.
        """
        stmt = (
            update(UserSubscription)
            .where(
                UserSubscription.id == subscription_id,
                UserSubscription.end_date < new_end_date,
            )
            .values(end_date=new_end_date, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    # =========================================================================
    # Reporting
    # =========================================================================

    async def count_by_state(self, now: datetime) -> Dict[str, int]:
        """Active (flagged and unexpired), expired-or-cancelled, and total."""
        active_stmt = select(func.count(UserSubscription.id)).where(
            UserSubscription.is_active.is_(True),
            UserSubscription.end_date > now,
        )
        total = await self.count()
        active = (await self._session.execute(active_stmt)).scalar_one()
        return {"active": active, "expired": total - active, "total": total}

    async def active_count_by_plan(self, now: datetime) -> List[Tuple[int, int]]:
        """(plan_id, active subscriptions) pairs."""
        stmt = (
            select(UserSubscription.plan_id, func.count(UserSubscription.id))
            .where(
                UserSubscription.is_active.is_(True),
                UserSubscription.end_date > now,
            )
            .group_by(UserSubscription.plan_id)
        )
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def created_between(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> List[UserSubscription]:
        """Subscriptions created in [start, end); open bounds when None."""
        stmt = select(UserSubscription)
        if start is not None:
            stmt = stmt.where(UserSubscription.created_at >= start)
        if end is not None:
            stmt = stmt.where(UserSubscription.created_at < end)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
