"""
Repository Layer for the Entitlements Service

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.repositories.plan_repository import PlanRepository
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.download_repository import DownloadRepository
from app.infrastructure.db.repositories.webhook_event_repository import (
    WebhookEventRepository,
)
from app.infrastructure.db.repositories.collaborator_repositories import (
    UserRepository,
    AssetRepository,
    ActivityRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "PlanRepository",
    "SubscriptionRepository",
    "DownloadRepository",
    "WebhookEventRepository",
    "UserRepository",
    "AssetRepository",
    "ActivityRepository",
]
