"""
Payment API Routes

Outbound checkout session creation for the authenticated user.
"""

import logging

from fastapi import APIRouter

from app.api.dependencies import CheckoutDep, PrincipalDep
from app.domain.subscription import CheckoutResponse, CreateCheckoutRequest


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments/create-checkout-session", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    principal: PrincipalDep,
    checkout: CheckoutDep,
):
    """
    Create a Stripe Checkout session for a plan and billing cycle.

    The subscription is recorded only when Stripe confirms payment through
    the webhook.
    """
    return await checkout.create_checkout(
        user_id=principal.user_id,
        plan_id=request.plan_id,
        billing_cycle=request.billing_cycle,
    )
