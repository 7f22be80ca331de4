"""
Unit tests for Dependency Injection providers.

Validates that:
- The Stripe gateway is a process-wide singleton
- Service providers build their service around the request session
- Services can be independently instantiated for testing
"""

from unittest.mock import MagicMock

import pytest

from app.api import dependencies
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service
from app.infrastructure.services.analytics_service import AnalyticsService
from app.infrastructure.services.checkout_service import CheckoutService
from app.infrastructure.services.payment_reconciler import PaymentEventReconciler
from app.infrastructure.services.plan_catalog import PlanCatalogService
from app.infrastructure.services.quota_enforcer import QuotaEnforcer
from app.infrastructure.services.subscription_ledger import SubscriptionLedger


class TestDIProviders:
    """Tests for the provider functions."""

    def test_stripe_provider_is_cached(self):
        """get_stripe_service should return same instance."""
        assert get_stripe_service() is get_stripe_service()
        assert isinstance(get_stripe_service(), StripeService)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider,expected", [
        (dependencies.get_plan_catalog, PlanCatalogService),
        (dependencies.get_subscription_ledger, SubscriptionLedger),
        (dependencies.get_quota_enforcer, QuotaEnforcer),
        (dependencies.get_analytics_service, AnalyticsService),
    ])
    async def test_session_providers(self, provider, expected):
        session = MagicMock()
        service = await provider(session).__anext__()
        assert isinstance(service, expected)

    @pytest.mark.asyncio
    async def test_payment_providers_take_gateway(self):
        session = MagicMock()
        gateway = MagicMock(spec=StripeService)

        reconciler = await dependencies.get_payment_reconciler(session, gateway).__anext__()
        checkout = await dependencies.get_checkout_service(session, gateway).__anext__()

        assert isinstance(reconciler, PaymentEventReconciler)
        assert isinstance(checkout, CheckoutService)


class TestDIOverrides:
    """Tests validating DI override pattern for testing."""

    def test_services_accept_injected_clock(self):
        session = MagicMock()

        def clock():
            return None

        assert SubscriptionLedger(session, now=clock)._now is clock
        assert QuotaEnforcer(session, now=clock, milestones=[])._now is clock
