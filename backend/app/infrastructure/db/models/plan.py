"""
Subscription Plan SQLModel

Plan catalog table plus create/update/read schemas. Input schemas carry
the validation rules; the table itself is written only through them.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Column, JSON
from pydantic import field_validator
from sqlmodel import Field, SQLModel

from app.domain.subscription import BillingCycle
from app.infrastructure.db.models.base import BaseModel


class SubscriptionPlanBase(SQLModel):
    """Fields shared by the table and its schemas."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name of the plan"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=500,
    )
    base_price: Decimal = Field(
        ...,
        ge=0,
        max_digits=10,
        decimal_places=2,
        description="Monthly base price; other cycles are derived from it"
    )
    billing_cycle: BillingCycle = Field(
        default=BillingCycle.MONTHLY,
        description="Default billing cycle of the plan"
    )
    yearly_discount_percent: int = Field(
        default=0,
        ge=0,
        le=100,
        description="Discount applied to the YEARLY price"
    )
    daily_download_limit: int = Field(
        ...,
        ge=0,
        description="Downloads allowed per quota window"
    )


class SubscriptionPlan(BaseModel, SubscriptionPlanBase, table=True):
    """Plan catalog entry."""

    __tablename__ = "subscription_plans"

    features: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    is_active: bool = Field(default=True, index=True)


class SubscriptionPlanCreate(SubscriptionPlanBase):
    """Schema for creating a plan."""
    features: List[str] = Field(default_factory=list)
    is_active: bool = True


class SubscriptionPlanUpdate(SQLModel):
    """Partial patch; only fields that are set are applied."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    base_price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    billing_cycle: Optional[BillingCycle] = None
    yearly_discount_percent: Optional[int] = Field(default=None, ge=0, le=100)
    daily_download_limit: Optional[int] = Field(default=None, ge=0)
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None

    @field_validator(
        "name",
        "base_price",
        "billing_cycle",
        "yearly_discount_percent",
        "daily_download_limit",
        "features",
        "is_active",
        mode="before",
    )
    @classmethod
    def reject_null(cls, value, info):
        # Omit a field to leave it unchanged; only description may be cleared
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class SubscriptionPlanRead(SubscriptionPlanBase):
    """Plan as returned by the API."""
    id: int
    features: List[str] = Field(default_factory=list)
    is_active: bool
    created_at: datetime
    updated_at: datetime
    subscription_count: Optional[int] = None
