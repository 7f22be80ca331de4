"""
Checkout Service

Outbound half of the payment flow: prices the requested cycle and opens a
Stripe Checkout Session whose metadata correlates the eventual webhook with
the user and plan.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import (
    BillingCycle,
    CheckoutResponse,
    cycle_price,
)
from app.infrastructure.db.repositories.plan_repository import PlanRepository
from app.infrastructure.exceptions import NotFoundError
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.collaborators import IdentityService


logger = logging.getLogger(__name__)


class CheckoutService:
    """Creates checkout sessions for active plans."""

    def __init__(self, session: AsyncSession, stripe_service: StripeService):
        self._plans = PlanRepository(session)
        self._identity = IdentityService(session)
        self._stripe = stripe_service

    async def create_checkout(
        self,
        user_id: int,
        plan_id: int,
        billing_cycle: BillingCycle,
    ) -> CheckoutResponse:
        plan = await self._plans.get_by_id(plan_id)
        if plan is None or not plan.is_active:
            raise NotFoundError(
                "Plan not found or inactive",
                operation="create_checkout",
                table="subscription_plans",
            )
        user = await self._identity.get_user(user_id)

        amount = cycle_price(plan.base_price, billing_cycle, plan.yearly_discount_percent)
        session = await self._stripe.create_checkout_session(user, plan, billing_cycle, amount)

        return CheckoutResponse(
            session_id=session.id,
            url=session.url,
            amount=amount,
            currency=self._stripe.currency,
        )
