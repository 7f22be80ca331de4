"""
Analytics Service

Read-only revenue and usage rollups over the ledger and download history.

Revenue is the cycle price of each subscription created in a window,
priced with the plan's current base price, cycle and discount. Changing a
plan's price therefore restates past revenue for that plan.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.domain.subscription import UserRole, add_months, cycle_price, utcnow
from app.infrastructure.db.repositories.collaborator_repositories import (
    AssetRepository,
    UserRepository,
)
from app.infrastructure.db.repositories.download_repository import DownloadRepository
from app.infrastructure.db.repositories.plan_repository import PlanRepository
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.services.activity_service import ActivityService


logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Reporting queries for the admin dashboard.

    Provides high-level rollups; repositories handle the actual data access.
    """

    def __init__(
        self,
        session: AsyncSession,
        now: Callable[[], datetime] = utcnow,
        zone: Optional[ZoneInfo] = None,
    ):
        self._now = now
        self._zone = zone or settings.quota_zone
        self._subscriptions = SubscriptionRepository(session)
        self._plans = PlanRepository(session)
        self._downloads = DownloadRepository(session)
        self._users = UserRepository(session)
        self._assets = AssetRepository(session)
        self._activity = ActivityService(session)

    # =========================================================================
    # Usage
    # =========================================================================

    async def daily_downloads(self, days: int = 7) -> List[Dict[str, Any]]:
        """
        Downloads per local day for the trailing ``days`` days, today included.

        Days without downloads are reported as zero; oldest first.
        """
        today = self._local(self._now()).date()
        first_day = today - timedelta(days=days - 1)
        since = (
            datetime(first_day.year, first_day.month, first_day.day, tzinfo=self._zone)
            .astimezone(timezone.utc)
            .replace(tzinfo=None)
        )

        timestamps = await self._downloads.timestamps_since(since)
        per_day = Counter(self._local(ts).date() for ts in timestamps)

        return [
            {
                "date": (first_day + timedelta(days=offset)).isoformat(),
                "downloads": per_day.get(first_day + timedelta(days=offset), 0),
            }
            for offset in range(days)
        ]

    async def top_assets(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most downloaded assets by record count."""
        rows = await self._downloads.top_assets(limit)
        names = await self._assets.get_names([asset_id for asset_id, _ in rows])
        return [
            {"asset_id": asset_id, "name": names.get(asset_id), "downloads": count}
            for asset_id, count in rows
        ]

    # =========================================================================
    # Subscriptions & Revenue
    # =========================================================================

    async def subscription_counts(self) -> Dict[str, int]:
        return await self._subscriptions.count_by_state(self._now())

    async def revenue(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Decimal:
        """Sum of cycle prices of subscriptions created in [start, end)."""
        subscriptions = await self._subscriptions.created_between(start, end)
        plans = await self._plans.get_many(list({s.plan_id for s in subscriptions}))

        total = Decimal("0.00")
        for subscription in subscriptions:
            plan = plans.get(subscription.plan_id)
            if plan is None:
                continue
            total += cycle_price(plan.base_price, plan.billing_cycle, plan.yearly_discount_percent)
        return total

    async def revenue_stats(self) -> Dict[str, Any]:
        """Current and last UTC calendar month, all time, and month-over-month growth."""
        now = self._now()
        current_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        last_month = add_months(current_month, -1)

        current = await self.revenue(current_month, add_months(current_month, 1))
        previous = await self.revenue(last_month, current_month)
        total = await self.revenue()

        growth = 0.0
        if previous > 0:
            growth = round(float((current - previous) / previous * 100), 2)

        return {
            "current_month": current,
            "last_month": previous,
            "total": total,
            "growth_percent": growth,
        }

    async def plan_breakdown(self) -> List[Dict[str, Any]]:
        """Active subscriptions per plan, largest first."""
        rows = await self._subscriptions.active_count_by_plan(self._now())
        plans = await self._plans.get_many([plan_id for plan_id, _ in rows])

        breakdown = []
        for plan_id, count in sorted(rows, key=lambda row: (-row[1], row[0])):
            plan = plans.get(plan_id)
            breakdown.append({
                "plan_id": plan_id,
                "plan_name": plan.name if plan else None,
                "base_price": plan.base_price if plan else None,
                "billing_cycle": plan.billing_cycle if plan else None,
                "active_subscriptions": count,
            })
        return breakdown

    # =========================================================================
    # Composite Views
    # =========================================================================

    async def dashboard(self) -> Dict[str, Any]:
        counts = await self.subscription_counts()
        return {
            "total_users": await self._users.count_active_by_role(UserRole.USER.value),
            "active_subscriptions": counts["active"],
            "total_downloads": await self._downloads.count(),
            "total_assets": await self._assets.count_active(),
            "recent_downloads": await self.daily_downloads(7),
            "top_assets": await self.top_assets(10),
            "subscription_stats": {
                "plan_stats": await self.plan_breakdown(),
                "revenue_stats": await self.revenue_stats(),
            },
        }

    async def subscription_stats(self, activity_limit: Optional[int] = None) -> Dict[str, Any]:
        """Counts, all-time revenue, total downloads and the recent activity feed."""
        counts = await self.subscription_counts()
        activities = await self._activity.recent(activity_limit or settings.activity_feed_size)
        return {
            **counts,
            "revenue": await self.revenue(),
            "total_downloads": await self._downloads.count(),
            "recent_activity": [
                {
                    "type": activity.type.lower(),
                    "message": activity.message,
                    "timestamp": activity.created_at,
                }
                for activity in activities
            ],
        }

    def _local(self, value: datetime) -> datetime:
        return value.replace(tzinfo=timezone.utc).astimezone(self._zone)
