"""
Subscription Domain Models

Domain models for plan and subscription management following Clean Architecture.
Enums, DTOs, cycle arithmetic and pricing rules for the entitlements bounded context.
"""

import calendar
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class BillingCycle(str, Enum):
    """Billing cycle used to compute a subscription's end date."""
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class UserRole(str, Enum):
    """Roles issued by the identity service."""
    USER = "USER"
    ADMIN = "ADMIN"


class ActivityType(str, Enum):
    """Activity feed event kinds emitted by this service."""
    USER_SUBSCRIPTION = "USER_SUBSCRIPTION"
    USER_SUBSCRIPTION_CANCELLED = "USER_SUBSCRIPTION_CANCELLED"
    SUBSCRIPTION_RENEWED = "SUBSCRIPTION_RENEWED"
    ASSET_MILESTONE = "ASSET_MILESTONE"


class Principal(BaseModel):
    """Authenticated caller as asserted by the identity token."""
    user_id: int
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def utcnow() -> datetime:
    """Current time as naive UTC (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an offset-aware datetime to naive UTC; naive values are taken as UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# =============================================================================
# Cycle Arithmetic
# =============================================================================

def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def compute_end_date(start_date: datetime, billing_cycle: BillingCycle) -> datetime:
    """
    Exclusive upper bound of a subscription starting at start_date.

    WEEKLY adds 7 days, MONTHLY one calendar month, YEARLY one calendar year.
    """
    if billing_cycle == BillingCycle.WEEKLY:
        return start_date + timedelta(days=7)
    if billing_cycle == BillingCycle.MONTHLY:
        return add_months(start_date, 1)
    return add_months(start_date, 12)


# =============================================================================
# Pricing (Business Logic)
# =============================================================================

CENT = Decimal("0.01")


def cycle_price(
    base_price: Decimal,
    billing_cycle: BillingCycle,
    yearly_discount_percent: int = 0,
) -> Decimal:
    """
    Price charged per billing cycle, derived from the monthly base price.

    WEEKLY = base / 4, MONTHLY = base, YEARLY = base * 12 * (1 - discount / 100).
    Rounded half-up to cents once, at the end.
    """
    base = Decimal(str(base_price))

    if billing_cycle == BillingCycle.WEEKLY:
        amount = base / 4
    elif billing_cycle == BillingCycle.MONTHLY:
        amount = base
    else:
        discount = Decimal(yearly_discount_percent) / 100
        amount = base * 12 * (1 - discount)

    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a cent-rounded amount to integer minor units."""
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


STRIPE_INTERVALS = {
    BillingCycle.WEEKLY: "week",
    BillingCycle.MONTHLY: "month",
    BillingCycle.YEARLY: "year",
}


# =============================================================================
# Request/Response DTOs
# =============================================================================

class AssignSubscriptionRequest(BaseModel):
    """Request DTO for administrative plan assignment."""
    user_id: int = Field(..., gt=0)
    plan_id: int = Field(..., gt=0)
    start_date: Optional[datetime] = Field(
        default=None,
        description="Start of the first cycle (defaults to now)"
    )

    @field_validator("start_date")
    @classmethod
    def start_date_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class CreateCheckoutRequest(BaseModel):
    """Request DTO for creating a checkout session."""
    plan_id: int = Field(..., gt=0)
    billing_cycle: BillingCycle = Field(
        default=BillingCycle.MONTHLY,
        description="Billing cycle to purchase"
    )


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    session_id: str
    url: Optional[str] = None
    amount: Decimal
    currency: str


class Pagination(BaseModel):
    """Pagination envelope shared by admin listings."""
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=-(-total // limit) if limit else 0)
