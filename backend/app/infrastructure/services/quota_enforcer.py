"""
Quota Enforcer

Decides whether a download is allowed and records it.

For ordinary users the active subscription row is locked (SELECT ... FOR
UPDATE) before counting, so the count-then-insert sequence is serialized
per user across every server instance. The enforcer owns its transaction;
the lock is released by the commit or rollback that ends each call.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.domain.quota import (
    UNLIMITED,
    DownloadContext,
    QuotaDecision,
    QuotaStatus,
    quota_window,
)
from app.domain.subscription import ActivityType, Pagination, Principal, utcnow
from app.infrastructure.db.models.collaborators import Asset
from app.infrastructure.db.models.download import Download
from app.infrastructure.db.repositories.download_repository import DownloadRepository
from app.infrastructure.services.activity_service import ActivityService
from app.infrastructure.services.collaborators import AssetCatalog
from app.infrastructure.services.subscription_ledger import SubscriptionLedger


logger = logging.getLogger(__name__)

NO_SUBSCRIPTION = "No active subscription found"


def limit_reached_reason(limit: int) -> str:
    return f"Daily download limit of {limit} reached. Limit resets at midnight."


class QuotaEnforcer:
    """
    Check-and-consume accounting for downloads.

    Args:
        session: Session used for the whole check-and-consume transaction
        now: Clock returning naive UTC
        zone: Operational timezone whose midnight starts a new quota day
        milestones: Per-asset download totals that emit an activity entry
    """

    def __init__(
        self,
        session: AsyncSession,
        now: Callable[[], datetime] = utcnow,
        zone: Optional[ZoneInfo] = None,
        milestones: Optional[Sequence[int]] = None,
    ):
        self._session = session
        self._now = now
        self._zone = zone or settings.quota_zone
        self._milestones = set(settings.download_milestones if milestones is None else milestones)
        self._ledger = SubscriptionLedger(session, now=now)
        self._downloads = DownloadRepository(session)
        self._assets = AssetCatalog(session)
        self._activity = ActivityService(session)

    async def check_and_consume(
        self,
        principal: Principal,
        asset_id: int,
        context: Optional[DownloadContext] = None,
    ) -> QuotaDecision:
        """
        Allow and record one download, or explain the denial.

        Raises:
            NotFoundError: asset missing or inactive
        """
        context = context or DownloadContext()
        try:
            asset = await self._assets.get_active_asset(asset_id)
            decision = await self._decide(principal, asset, context)
        except Exception:
            await self._session.rollback()
            raise

        if decision.allowed:
            await self._session.commit()
        else:
            await self._session.rollback()
        return decision

    async def _decide(
        self,
        principal: Principal,
        asset: Asset,
        context: DownloadContext,
    ) -> QuotaDecision:
        if principal.is_admin:
            download = await self._record(principal.user_id, asset, context)
            logger.info(f"[QUOTA] Admin {principal.user_id} downloaded asset {asset.id}")
            return QuotaDecision(
                allowed=True,
                remaining=UNLIMITED,
                reason="Unlimited downloads",
                download_id=download.id,
                downloaded_at=download.downloaded_at,
            )

        subscription = await self._ledger.get_active(principal.user_id, for_update=True)
        if subscription is None:
            logger.info(f"[QUOTA] User {principal.user_id} denied: no active subscription")
            return QuotaDecision(allowed=False, remaining=0, reason=NO_SUBSCRIPTION)

        limit = subscription.plan.daily_download_limit
        window_start, window_end = quota_window(self._now(), self._zone)
        used = await self._downloads.count_in_window(principal.user_id, window_start, window_end)

        if used >= limit:
            logger.info(f"[QUOTA] User {principal.user_id} denied: {used}/{limit} used today")
            return QuotaDecision(allowed=False, remaining=0, reason=limit_reached_reason(limit))

        download = await self._record(principal.user_id, asset, context)
        remaining = limit - used - 1
        logger.info(
            f"[QUOTA] User {principal.user_id} downloaded asset {asset.id} "
            f"({used + 1}/{limit} today)"
        )
        return QuotaDecision(
            allowed=True,
            remaining=remaining,
            reason=f"{remaining} download(s) remaining today",
            download_id=download.id,
            downloaded_at=download.downloaded_at,
        )

    async def _record(self, user_id: int, asset: Asset, context: DownloadContext) -> Download:
        download = await self._downloads.add(
            Download(
                user_id=user_id,
                asset_id=asset.id,
                downloaded_at=self._now(),
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
        )

        total = await self._downloads.count_for_asset(asset.id)
        if total in self._milestones:
            await self._activity.log(
                ActivityType.ASSET_MILESTONE,
                f"{asset.name} reached {total} downloads",
                asset_id=asset.id,
                event_data={"downloads": total},
            )
        return download

    # =========================================================================
    # Read-only Queries
    # =========================================================================

    async def status(self, user_id: int, privileged: bool = False) -> QuotaStatus:
        """Snapshot of today's consumption; takes no locks."""
        subscription = await self._ledger.get_active(user_id)
        window_start, window_end = quota_window(self._now(), self._zone)
        used = await self._downloads.count_in_window(user_id, window_start, window_end)

        plan_name = subscription.plan.name if subscription else None
        end_date = subscription.end_date if subscription else None

        if privileged:
            return QuotaStatus(
                has_active_subscription=subscription is not None,
                plan_name=plan_name,
                daily_limit=UNLIMITED,
                downloads_today=used,
                remaining_downloads=UNLIMITED,
                subscription_end_date=end_date,
                can_download=True,
            )

        if subscription is None:
            return QuotaStatus(
                has_active_subscription=False,
                daily_limit=0,
                downloads_today=used,
                remaining_downloads=0,
                can_download=False,
            )

        limit = subscription.plan.daily_download_limit
        remaining = max(limit - used, 0)
        return QuotaStatus(
            has_active_subscription=True,
            plan_name=plan_name,
            daily_limit=limit,
            downloads_today=used,
            remaining_downloads=remaining,
            subscription_end_date=end_date,
            can_download=remaining > 0,
        )

    async def history(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Download], Pagination]:
        total = await self._downloads.count_for_user(user_id)
        items = await self._downloads.list_page((page - 1) * limit, limit, user_id=user_id)
        return items, Pagination.build(page, limit, total)

    async def all_downloads(
        self,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Download], Pagination]:
        total = await self._downloads.count()
        items = await self._downloads.list_page((page - 1) * limit, limit)
        return items, Pagination.build(page, limit, total)
