# API Routes Module
from app.api.routes import (
    plans,
    subscriptions,
    payments,
    webhooks,
    downloads,
    analytics,
    admin,
)

__all__ = [
    "plans",
    "subscriptions",
    "payments",
    "webhooks",
    "downloads",
    "analytics",
    "admin",
]
