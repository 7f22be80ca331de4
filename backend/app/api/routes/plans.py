"""
Subscription Plan API Routes

Public catalog reads and admin catalog management.
"""

import logging
from typing import List

from fastapi import APIRouter, Query, Response, status

from app.api.dependencies import AdminDep, PlanCatalogDep, SessionDep
from app.infrastructure.db.models.plan import (
    SubscriptionPlanCreate,
    SubscriptionPlanRead,
    SubscriptionPlanUpdate,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/subscriptions/plans", response_model=List[SubscriptionPlanRead])
async def list_plans(
    catalog: PlanCatalogDep,
    include_inactive: bool = Query(False, description="Include deactivated plans"),
):
    """List plans newest first, each with its subscription count."""
    return await catalog.list_plans(include_inactive=include_inactive)


@router.get("/subscriptions/plans/{plan_id}", response_model=SubscriptionPlanRead)
async def get_plan(plan_id: int, catalog: PlanCatalogDep):
    return await catalog.get_plan(plan_id)


@router.post(
    "/subscriptions/plans",
    response_model=SubscriptionPlanRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_plan(
    data: SubscriptionPlanCreate,
    catalog: PlanCatalogDep,
    session: SessionDep,
    admin: AdminDep,
):
    plan = await catalog.create_plan(data)
    await session.commit()
    logger.info(f"Admin {admin.user_id} created plan {plan.id}")
    return plan


@router.patch("/subscriptions/plans/{plan_id}", response_model=SubscriptionPlanRead)
async def update_plan(
    plan_id: int,
    patch: SubscriptionPlanUpdate,
    catalog: PlanCatalogDep,
    session: SessionDep,
    admin: AdminDep,
):
    """Partial update; omitted fields keep their values."""
    plan = await catalog.update_plan(plan_id, patch)
    await session.commit()
    return plan


@router.patch("/subscriptions/plans/{plan_id}/deactivate", response_model=SubscriptionPlanRead)
async def deactivate_plan(
    plan_id: int,
    catalog: PlanCatalogDep,
    session: SessionDep,
    admin: AdminDep,
):
    plan = await catalog.deactivate_plan(plan_id)
    await session.commit()
    return plan


@router.patch("/subscriptions/plans/{plan_id}/toggle", response_model=SubscriptionPlanRead)
async def toggle_plan(
    plan_id: int,
    catalog: PlanCatalogDep,
    session: SessionDep,
    admin: AdminDep,
):
    plan = await catalog.toggle_plan(plan_id)
    await session.commit()
    return plan


@router.delete("/subscriptions/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(
    plan_id: int,
    catalog: PlanCatalogDep,
    session: SessionDep,
    admin: AdminDep,
):
    """Delete an unreferenced plan; 409 if any subscription uses it."""
    await catalog.delete_plan(plan_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
