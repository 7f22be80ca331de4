#!/usr/bin/env python3
"""
Seed script to populate the plan catalog with the default tiers.

Existing plans with the same name are left untouched, so the script can be
run repeatedly.

Run: python scripts/seed_plans.py
"""

import asyncio
import sys
from decimal import Decimal
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.domain.subscription import BillingCycle
from app.infrastructure.db.database import get_session_context
from app.infrastructure.db.models.plan import SubscriptionPlanCreate
from app.infrastructure.services.plan_catalog import PlanCatalogService


# ============== DEFAULT CATALOG ==============

DEFAULT_PLANS = [
    SubscriptionPlanCreate(
        name="Basic",
        description="Casual downloads for individuals",
        base_price=Decimal("9.99"),
        billing_cycle=BillingCycle.MONTHLY,
        yearly_discount_percent=10,
        daily_download_limit=5,
        features=["5 downloads per day", "Standard license"],
    ),
    SubscriptionPlanCreate(
        name="Pro",
        description="For working creators",
        base_price=Decimal("19.99"),
        billing_cycle=BillingCycle.MONTHLY,
        yearly_discount_percent=20,
        daily_download_limit=25,
        features=["25 downloads per day", "Commercial license", "Priority support"],
    ),
    SubscriptionPlanCreate(
        name="Studio",
        description="Teams with heavy asset usage",
        base_price=Decimal("49.99"),
        billing_cycle=BillingCycle.YEARLY,
        yearly_discount_percent=25,
        daily_download_limit=100,
        features=["100 downloads per day", "Extended license", "Team seats"],
    ),
]


async def seed_plans() -> dict:
    """Create any default plan that does not exist yet."""
    stats = {"created": 0, "skipped": 0}

    async with get_session_context() as session:
        catalog = PlanCatalogService(session)
        existing = {plan.name for plan in await catalog.list_plans(include_inactive=True)}

        for plan in DEFAULT_PLANS:
            if plan.name in existing:
                print(f"  = {plan.name} already exists")
                stats["skipped"] += 1
                continue
            created = await catalog.create_plan(plan)
            print(f"  + {created.name} (id={created.id}, {created.daily_download_limit}/day)")
            stats["created"] += 1

    return stats


async def main():
    print("\n=== Plan Catalog Seed Script ===\n")
    stats = await seed_plans()
    print(f"\nDone: {stats['created']} created, {stats['skipped']} skipped")


if __name__ == "__main__":
    asyncio.run(main())
