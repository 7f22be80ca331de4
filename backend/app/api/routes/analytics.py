"""
Analytics API Routes

Admin reporting endpoints over subscriptions, revenue and downloads.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query

from app.api.dependencies import AdminDep, AnalyticsDep
from app.domain.subscription import to_naive_utc
from app.infrastructure.exceptions import ValidationError


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/dashboard")
async def get_dashboard(analytics: AnalyticsDep, admin: AdminDep):
    """Totals, last week's downloads, top assets, plan and revenue stats."""
    return await analytics.dashboard()


@router.get("/downloads")
async def get_daily_downloads(
    analytics: AnalyticsDep,
    admin: AdminDep,
    days: int = Query(30, ge=1, le=366, description="Trailing window in days"),
):
    return {"days": days, "downloads": await analytics.daily_downloads(days)}


@router.get("/top-assets")
async def get_top_assets(
    analytics: AnalyticsDep,
    admin: AdminDep,
    limit: int = Query(10, ge=1, le=100),
):
    return {"assets": await analytics.top_assets(limit)}


@router.get("/revenue")
async def get_revenue(
    analytics: AnalyticsDep,
    admin: AdminDep,
    start: Optional[datetime] = Query(None, description="Inclusive lower bound (UTC)"),
    end: Optional[datetime] = Query(None, description="Exclusive upper bound (UTC)"),
):
    """
    Revenue for subscriptions created in [start, end), plus monthly stats.

    Prices come from each plan's current configuration.
    """
    start, end = to_naive_utc(start), to_naive_utc(end)
    if start and end and start >= end:
        raise ValidationError("start must be before end")

    return {
        "start": start,
        "end": end,
        "revenue": await analytics.revenue(start, end),
        "stats": await analytics.revenue_stats(),
        "plans": await analytics.plan_breakdown(),
    }
