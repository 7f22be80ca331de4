"""
Plan Catalog Service

CRUD over subscription plans. A plan that any subscription references,
active or historical, can be deactivated but never deleted.
"""

import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.plan import (
    SubscriptionPlan,
    SubscriptionPlanCreate,
    SubscriptionPlanRead,
    SubscriptionPlanUpdate,
)
from app.infrastructure.db.repositories.plan_repository import PlanRepository
from app.infrastructure.exceptions import ConflictError, NotFoundError


logger = logging.getLogger(__name__)


class PlanCatalogService:
    """Manages the plan catalog. Methods flush; the caller commits."""

    def __init__(self, session: AsyncSession):
        self._repo = PlanRepository(session)

    async def list_plans(self, include_inactive: bool = False) -> List[SubscriptionPlanRead]:
        """Plans newest first with their subscription counts."""
        rows = await self._repo.list_with_counts(include_inactive=include_inactive)
        return [
            SubscriptionPlanRead.model_validate(plan, update={"subscription_count": count})
            for plan, count in rows
        ]

    async def get_plan(self, plan_id: int) -> SubscriptionPlan:
        plan = await self._repo.get_by_id(plan_id)
        if plan is None:
            raise NotFoundError(
                f"Subscription plan {plan_id} not found",
                operation="get_plan",
                table="subscription_plans",
            )
        return plan

    async def create_plan(self, data: SubscriptionPlanCreate) -> SubscriptionPlan:
        plan = await self._repo.create(data)
        logger.info(f"[PLANS] Created plan {plan.id} ({plan.name})")
        return plan

    async def update_plan(self, plan_id: int, patch: SubscriptionPlanUpdate) -> SubscriptionPlan:
        """Apply only the fields present in the patch."""
        plan = await self._repo.update(plan_id, patch)
        if plan is None:
            raise NotFoundError(
                f"Subscription plan {plan_id} not found",
                operation="update_plan",
                table="subscription_plans",
            )
        logger.info(f"[PLANS] Updated plan {plan_id}: {sorted(patch.model_dump(exclude_unset=True))}")
        return plan

    async def deactivate_plan(self, plan_id: int) -> SubscriptionPlan:
        return await self.update_plan(plan_id, SubscriptionPlanUpdate(is_active=False))

    async def toggle_plan(self, plan_id: int) -> SubscriptionPlan:
        plan = await self.get_plan(plan_id)
        return await self.update_plan(plan_id, SubscriptionPlanUpdate(is_active=not plan.is_active))

    async def delete_plan(self, plan_id: int) -> None:
        """
        Delete a plan nobody has ever subscribed to.

        Raises:
            NotFoundError: plan does not exist
            ConflictError: plan is referenced by a subscription
        """
        await self.get_plan(plan_id)

        references = await self._repo.count_subscriptions(plan_id)
        if references:
            raise ConflictError(
                f"Plan {plan_id} has {references} subscription(s); deactivate it instead",
                operation="delete_plan",
                table="subscription_plans",
            )

        await self._repo.delete(plan_id)
        logger.info(f"[PLANS] Deleted plan {plan_id}")
