"""
Subscription Database Model

SQLModel table for user subscriptions.

The partial unique index allows at most one row flagged active per user;
the ledger deactivates every flagged row before inserting a new one, so the
stored invariant is stricter than "one active and unexpired".
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import Field, Relationship, SQLModel

from app.infrastructure.db.models.base import BaseModel
from app.infrastructure.db.models.plan import SubscriptionPlan, SubscriptionPlanRead


ONE_ACTIVE_INDEX = "uq_user_subscriptions_one_active"
EXTERNAL_ID_INDEX = "uq_user_subscriptions_external_subscription_id"


class UserSubscription(BaseModel, table=True):
    """
    Subscription table for storing user entitlements.

    Maps to the 'user_subscriptions' table.
    """

    __tablename__ = "user_subscriptions"
    __table_args__ = (
        Index(
            ONE_ACTIVE_INDEX,
            "user_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index(EXTERNAL_ID_INDEX, "external_subscription_id", unique=True),
    )

    user_id: int = Field(foreign_key="users.id", ondelete="CASCADE", index=True, nullable=False)
    plan_id: int = Field(foreign_key="subscription_plans.id", index=True, nullable=False)

    # Cycle bounds; end_date is exclusive
    start_date: datetime = Field(nullable=False)
    end_date: datetime = Field(nullable=False, index=True)
    is_active: bool = Field(default=True, nullable=False)

    # Stripe subscription id when created through checkout
    external_subscription_id: Optional[str] = Field(default=None, max_length=255)

    plan: Optional[SubscriptionPlan] = Relationship(
        sa_relationship_kwargs={"lazy": "selectin"}
    )

    def is_current(self, now: datetime) -> bool:
        """Active and unexpired at ``now``."""
        return self.is_active and self.end_date > now


class UserSubscriptionRead(SQLModel):
    """Subscription as returned by the API."""
    id: int
    user_id: int
    plan_id: int
    start_date: datetime
    end_date: datetime
    is_active: bool
    external_subscription_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    plan: Optional[SubscriptionPlanRead] = None
