"""
Subscription Ledger

Owns subscription records per user. At most one active, unexpired
subscription exists per user: creating one deactivates the previous one
inside the same savepoint, and the partial unique index on
``user_subscriptions`` rejects whichever concurrent writer loses.

Methods flush but never commit; the caller owns the transaction.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import ActivityType, Pagination, compute_end_date, to_naive_utc, utcnow
from app.infrastructure.db.models.plan import SubscriptionPlan
from app.infrastructure.db.models.subscription import (
    EXTERNAL_ID_INDEX,
    ONE_ACTIVE_INDEX,
    UserSubscription,
)
from app.infrastructure.db.repositories.plan_repository import PlanRepository
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.exceptions import ConflictError, NotFoundError
from app.infrastructure.services.activity_service import ActivityService
from app.infrastructure.services.collaborators import IdentityService


logger = logging.getLogger(__name__)

ONE_ACTIVE = "one_active_per_user"
EXTERNAL_ID = "external_subscription_id"


def violated_constraint(error: IntegrityError) -> Optional[str]:
    """
    Name the ledger constraint behind an IntegrityError, if any.

    PostgreSQL reports the index name; SQLite only reports the columns.
    """
    message = str(error.orig)
    if ONE_ACTIVE_INDEX in message or "user_subscriptions.user_id" in message:
        return ONE_ACTIVE
    if EXTERNAL_ID_INDEX in message or "user_subscriptions.external_subscription_id" in message:
        return EXTERNAL_ID
    return None


class SubscriptionLedger:
    """
    Subscription state transitions.

    Args:
        session: Session whose transaction the ledger writes into
        now: Clock returning naive UTC
    """

    def __init__(self, session: AsyncSession, now: Callable[[], datetime] = utcnow):
        self._session = session
        self._now = now
        self._repo = SubscriptionRepository(session)
        self._plans = PlanRepository(session)
        self._identity = IdentityService(session)
        self._activity = ActivityService(session)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get(self, subscription_id: int) -> UserSubscription:
        subscription = await self._repo.get_by_id(subscription_id)
        if subscription is None:
            raise NotFoundError(
                f"Subscription {subscription_id} not found",
                operation="get_subscription",
                table="user_subscriptions",
            )
        return subscription

    async def get_active(
        self,
        user_id: int,
        for_update: bool = False
    ) -> Optional[UserSubscription]:
        """The user's active, unexpired subscription, or None."""
        return await self._repo.get_active(user_id, self._now(), for_update=for_update)

    async def history(self, user_id: int) -> List[UserSubscription]:
        return await self._repo.get_by_user(user_id)

    async def list_all(
        self,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[UserSubscription], Pagination]:
        total = await self._repo.count()
        items = await self._repo.list_page((page - 1) * limit, limit)
        return items, Pagination.build(page, limit, total)

    async def get_by_external_id(self, external_id: str) -> Optional[UserSubscription]:
        return await self._repo.get_by_external_id(external_id)

    # =========================================================================
    # Commands
    # =========================================================================

    async def assign(
        self,
        user_id: int,
        plan_id: int,
        start_date: Optional[datetime] = None,
    ) -> UserSubscription:
        """
        Give a user a new active subscription, superseding the current one.

        Raises:
            NotFoundError: plan missing or inactive, user missing or inactive
            ConflictError: a concurrent writer won twice in a row
        """
        plan = await self._plans.get_by_id(plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundError(
                f"Active subscription plan {plan_id} not found",
                operation="assign",
                table="subscription_plans",
            )
        user = await self._identity.get_active_user(user_id)

        start = to_naive_utc(start_date) or self._now()
        end = compute_end_date(start, plan.billing_cycle)
        subscription = await self._replace_active(user_id, plan, start, end)

        logger.info(
            f"[LEDGER] Assigned plan {plan.id} to user {user_id} "
            f"({start.isoformat()} - {end.isoformat()})"
        )
        await self._activity.log(
            ActivityType.USER_SUBSCRIPTION,
            f"{user.name or user.email} subscribed to {plan.name}",
            user_id=user_id,
            event_data={"plan_id": plan.id, "plan_name": plan.name, "subscription_id": subscription.id},
        )
        return subscription

    async def record_provider_subscription(
        self,
        user_id: int,
        plan: SubscriptionPlan,
        start_date: datetime,
        end_date: datetime,
        external_id: str,
    ) -> Tuple[UserSubscription, bool]:
        """
        Assign with bounds and id supplied by the payment provider.

        Idempotent on ``external_id``.

        Returns:
            (subscription, created)
        """
        existing = await self._repo.get_by_external_id(external_id)
        if existing is not None:
            logger.info(f"[LEDGER] Provider subscription {external_id} already recorded")
            return existing, False

        subscription = await self._replace_active(
            user_id, plan, start_date, end_date, external_id=external_id
        )
        logger.info(f"[LEDGER] Recorded provider subscription {external_id} for user {user_id}")
        await self._activity.log(
            ActivityType.USER_SUBSCRIPTION,
            f"User {user_id} subscribed to {plan.name}",
            user_id=user_id,
            event_data={
                "plan_id": plan.id,
                "plan_name": plan.name,
                "subscription_id": subscription.id,
                "external_subscription_id": external_id,
            },
        )
        return subscription, True

    async def cancel(self, subscription_id: int) -> UserSubscription:
        """Deactivate a subscription. Cancelling twice is a no-op."""
        subscription = await self.get(subscription_id)
        if await self._repo.deactivate(subscription_id, self._now()):
            logger.info(f"[LEDGER] Cancelled subscription {subscription_id}")
            await self._activity.log(
                ActivityType.USER_SUBSCRIPTION_CANCELLED,
                f"Subscription {subscription_id} cancelled",
                user_id=subscription.user_id,
                event_data={"subscription_id": subscription_id, "plan_id": subscription.plan_id},
            )
        return await self._repo.reload(subscription_id)

    async def renew(self, subscription_id: int, new_end_date: datetime) -> bool:
        """
        Extend end_date in place. Never shortens and never changes the plan.

        Returns:
            True if end_date moved
        """
        subscription = await self.get(subscription_id)
        changed = await self._repo.extend_end_date(subscription_id, new_end_date, self._now())
        if changed:
            logger.info(f"[LEDGER] Renewed subscription {subscription_id} to {new_end_date.isoformat()}")
            await self._activity.log(
                ActivityType.SUBSCRIPTION_RENEWED,
                f"Subscription {subscription_id} renewed",
                user_id=subscription.user_id,
                event_data={"subscription_id": subscription_id, "end_date": new_end_date.isoformat()},
            )
        else:
            logger.info(f"[LEDGER] Renewal of {subscription_id} ignored; end date already later")
        return changed

    async def deactivate_by_external_id(self, external_id: str) -> bool:
        """Provider-side cancellation. False when unknown or already inactive."""
        subscription = await self._repo.get_by_external_id(external_id)
        if subscription is None:
            logger.info(f"[LEDGER] No subscription for provider id {external_id}")
            return False
        return await self._repo.deactivate(subscription.id, self._now())

    async def ensure_user_deletable(self, user_id: int) -> None:
        """Raise ConflictError while the user holds an active subscription."""
        if await self.get_active(user_id) is not None:
            raise ConflictError(
                "Cannot delete user with active subscriptions",
                operation="delete_user",
                table="user_subscriptions",
            )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _replace_active(
        self,
        user_id: int,
        plan: SubscriptionPlan,
        start_date: datetime,
        end_date: datetime,
        external_id: Optional[str] = None,
    ) -> UserSubscription:
        """Deactivate-then-insert in one savepoint, retried once on a lost race."""
        for attempt in (1, 2):
            try:
                async with self._session.begin_nested():
                    now = self._now()
                    superseded = await self._repo.deactivate_all_for_user(user_id, now)
                    subscription = await self._repo.add(
                        UserSubscription(
                            user_id=user_id,
                            plan_id=plan.id,
                            plan=plan,
                            start_date=start_date,
                            end_date=end_date,
                            is_active=True,
                            external_subscription_id=external_id,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                if superseded:
                    logger.info(f"[LEDGER] Superseded {superseded} subscription(s) for user {user_id}")
                return subscription
            except IntegrityError as e:
                constraint = violated_constraint(e)
                if constraint == ONE_ACTIVE and attempt == 1:
                    logger.warning(f"[LEDGER] Concurrent assignment for user {user_id}; retrying")
                    continue
                raise ConflictError(
                    f"Could not create subscription for user {user_id}",
                    operation="replace_active",
                    table="user_subscriptions",
                    constraint=constraint,
                    original_error=e,
                ) from e
