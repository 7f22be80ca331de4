"""
SQLModel ORM Models for the Entitlements Service

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    BaseModel,
    TimestampMixin,
    IntIDMixin,
)
from app.infrastructure.db.models.collaborators import (
    User,
    Asset,
    Activity,
)
from app.infrastructure.db.models.plan import (
    SubscriptionPlan,
    SubscriptionPlanBase,
    SubscriptionPlanCreate,
    SubscriptionPlanUpdate,
    SubscriptionPlanRead,
)
from app.infrastructure.db.models.subscription import (
    UserSubscription,
    UserSubscriptionRead,
)
from app.infrastructure.db.models.download import Download, DownloadRead
from app.infrastructure.db.models.processed_event import ProcessedWebhookEvent


__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "IntIDMixin",
    # Collaborators
    "User",
    "Asset",
    "Activity",
    # Plans
    "SubscriptionPlan",
    "SubscriptionPlanBase",
    "SubscriptionPlanCreate",
    "SubscriptionPlanUpdate",
    "SubscriptionPlanRead",
    # Subscriptions
    "UserSubscription",
    "UserSubscriptionRead",
    # Downloads
    "Download",
    "DownloadRead",
    # Webhooks
    "ProcessedWebhookEvent",
]
