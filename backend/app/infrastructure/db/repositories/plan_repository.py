"""
Subscription Plan Repository

Extends BaseRepository with catalog-specific queries.
"""

from typing import Dict, List, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.models.plan import (
    SubscriptionPlan,
    SubscriptionPlanCreate,
    SubscriptionPlanUpdate,
)
from app.infrastructure.db.models.subscription import UserSubscription


class PlanRepository(
    BaseRepository[SubscriptionPlan, SubscriptionPlanCreate, SubscriptionPlanUpdate]
):
    """Repository for the plan catalog."""

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionPlan, session)

    async def list_with_counts(
        self,
        include_inactive: bool = False
    ) -> List[Tuple[SubscriptionPlan, int]]:
        """Plans newest first, each paired with its subscription count."""
        sub_count = func.count(UserSubscription.id).label("subscription_count")
        stmt = (
            select(SubscriptionPlan, sub_count)
            .outerjoin(UserSubscription, UserSubscription.plan_id == SubscriptionPlan.id)
            .group_by(SubscriptionPlan.id)
            .order_by(SubscriptionPlan.created_at.desc(), SubscriptionPlan.id.desc())
        )
        if not include_inactive:
            stmt = stmt.where(SubscriptionPlan.is_active.is_(True))

        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def count_subscriptions(self, plan_id: int) -> int:
        """Subscriptions of any state that reference the plan."""
        stmt = (
            select(func.count(UserSubscription.id))
            .where(UserSubscription.plan_id == plan_id)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def get_many(self, plan_ids: List[int]) -> Dict[int, SubscriptionPlan]:
        if not plan_ids:
            return {}
        stmt = select(SubscriptionPlan).where(SubscriptionPlan.id.in_(plan_ids))
        result = await self._session.execute(stmt)
        return {plan.id: plan for plan in result.scalars().all()}
