"""
Quota Domain Models

Decision/status DTOs and the daily window used for download accounting.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field


UNLIMITED = -1


def quota_window(now: datetime, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """
    [local midnight, next local midnight) for the day containing ``now``.

    ``now`` is naive UTC; the bounds are returned as naive UTC. The next
    midnight is computed on the wall clock so DST days are 23 or 25 hours.
    """
    local_now = now.replace(tzinfo=timezone.utc).astimezone(zone)
    local_midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    next_day = (local_midnight + timedelta(days=1)).date()
    next_midnight = datetime(next_day.year, next_day.month, next_day.day, tzinfo=zone)

    start = local_midnight.astimezone(timezone.utc).replace(tzinfo=None)
    end = next_midnight.astimezone(timezone.utc).replace(tzinfo=None)
    return start, end


class DownloadContext(BaseModel):
    """Audit data captured with a download."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class QuotaDecision(BaseModel):
    """Outcome of a check-and-consume call."""
    allowed: bool
    remaining: int = Field(description="Downloads left today; -1 means unlimited")
    reason: str
    download_id: Optional[int] = None
    downloaded_at: Optional[datetime] = None


class QuotaStatus(BaseModel):
    """Read-only snapshot of a user's daily entitlement."""
    has_active_subscription: bool
    plan_name: Optional[str] = None
    daily_limit: int
    downloads_today: int
    remaining_downloads: int
    subscription_end_date: Optional[datetime] = None
    can_download: bool
