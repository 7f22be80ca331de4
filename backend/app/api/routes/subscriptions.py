"""
Subscription API Routes

Ledger endpoints: administrative assignment and cancellation, the caller's
own subscriptions, and admin listings and statistics.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel

from app.api.dependencies import (
    AdminDep,
    AnalyticsDep,
    LedgerDep,
    PrincipalDep,
    SessionDep,
    StripeDep,
)
from app.domain.subscription import AssignSubscriptionRequest, Pagination
from app.infrastructure.db.models.subscription import UserSubscriptionRead


logger = logging.getLogger(__name__)

router = APIRouter()


class SubscriptionPage(BaseModel):
    """Paginated subscription listing."""
    subscriptions: List[UserSubscriptionRead]
    pagination: Pagination


# =============================================================================
# Caller's Own Subscriptions
# =============================================================================

@router.get("/subscriptions/my-subscriptions", response_model=List[UserSubscriptionRead])
async def my_subscriptions(principal: PrincipalDep, ledger: LedgerDep):
    """Subscription history of the caller, newest first."""
    return await ledger.history(principal.user_id)


@router.get(
    "/subscriptions/my-active-subscription",
    response_model=Optional[UserSubscriptionRead],
)
async def my_active_subscription(principal: PrincipalDep, ledger: LedgerDep):
    """The caller's active, unexpired subscription, or null."""
    return await ledger.get_active(principal.user_id)


# =============================================================================
# Admin Endpoints
# =============================================================================

@router.post(
    "/subscriptions/assign",
    response_model=UserSubscriptionRead,
    status_code=status.HTTP_201_CREATED,
)
async def assign_subscription(
    request: AssignSubscriptionRequest,
    ledger: LedgerDep,
    session: SessionDep,
    admin: AdminDep,
):
    """
    Assign a plan to a user, superseding any active subscription.

    The previous subscription is deactivated in the same transaction.
    """
    subscription = await ledger.assign(request.user_id, request.plan_id, request.start_date)
    await session.commit()
    logger.info(f"Admin {admin.user_id} assigned plan {request.plan_id} to user {request.user_id}")
    return subscription


@router.get("/subscriptions/user-subscriptions", response_model=SubscriptionPage)
async def list_user_subscriptions(
    ledger: LedgerDep,
    admin: AdminDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    items, pagination = await ledger.list_all(page, limit)
    return SubscriptionPage(
        subscriptions=[UserSubscriptionRead.model_validate(item) for item in items],
        pagination=pagination,
    )


@router.get("/subscriptions/user/{user_id}/subscriptions", response_model=List[UserSubscriptionRead])
async def user_subscriptions(user_id: int, ledger: LedgerDep, admin: AdminDep):
    return await ledger.history(user_id)


@router.patch("/subscriptions/{subscription_id}/cancel", response_model=UserSubscriptionRead)
async def cancel_subscription(
    subscription_id: int,
    ledger: LedgerDep,
    session: SessionDep,
    stripe_service: StripeDep,
    admin: AdminDep,
):
    """
    Cancel a subscription.

    Subscriptions bought through checkout are cancelled at Stripe first so
    billing stops before the local record is deactivated; a provider
    failure leaves the local record untouched.
    """
    subscription = await ledger.get(subscription_id)
    if subscription.external_subscription_id and subscription.is_active:
        await stripe_service.cancel_subscription(subscription.external_subscription_id)

    cancelled = await ledger.cancel(subscription_id)
    await session.commit()
    return cancelled


@router.get("/subscriptions/stats")
async def subscription_stats(analytics: AnalyticsDep, admin: AdminDep):
    """Counts, revenue, total downloads and recent activity."""
    return await analytics.subscription_stats()
