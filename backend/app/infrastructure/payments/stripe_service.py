"""
Stripe Payment Service

Infrastructure gateway for Stripe. Creates per-cycle recurring prices and
hosted checkout sessions, reads subscription period bounds, cancels
subscriptions and verifies webhook signatures.

Outbound calls use a bounded HTTP timeout and a bounded number of network
retries. Connection problems, rate limits and Stripe-side API errors are
reported as TransientError; anything else Stripe rejects is a
PaymentProviderError.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe
from stripe import StripeError, SignatureVerificationError

from app.config.settings import get_settings
from app.domain.payment_events import ProviderPeriod, from_unix
from app.domain.subscription import BillingCycle, STRIPE_INTERVALS, to_minor_units
from app.infrastructure.db.models.collaborators import User
from app.infrastructure.db.models.plan import SubscriptionPlan
from app.infrastructure.exceptions import (
    AuthenticationFailedError,
    ConfigurationError,
    PaymentProviderError,
    TransientError,
)


logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    stripe.APIConnectionError,
    stripe.RateLimitError,
    stripe.APIError,
)


def _provider_error(operation: str, error: StripeError) -> Exception:
    """Translate a Stripe SDK error into the service taxonomy."""
    message = getattr(error, "user_message", None) or str(error)
    if isinstance(error, TRANSIENT_ERRORS):
        return TransientError(f"Stripe unavailable: {message}", operation=operation, original_error=error)
    return PaymentProviderError(f"Stripe rejected request: {message}", operation=operation, original_error=error)


class StripeService:
    """
    Stripe payment processing service.

    Stateless apart from the SDK's module-level configuration.
    """

    def __init__(self):
        """Configure the SDK from settings."""
        settings = get_settings()
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret
        self._tolerance = settings.stripe_webhook_tolerance_seconds
        self._currency = settings.payment_currency
        self._frontend_url = settings.frontend_url.rstrip("/")

        if self._api_key:
            stripe.api_key = self._api_key
        stripe.max_network_retries = settings.stripe_max_network_retries
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.stripe_api_timeout_seconds
        )

    @property
    def currency(self) -> str:
        return self._currency

    def _require_api_key(self) -> None:
        if not self._api_key:
            raise ConfigurationError(
                "STRIPE_SECRET_KEY is not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )

    # =========================================================================
    # Checkout Session (Subscription Flow)
    # =========================================================================

    async def create_checkout_session(
        self,
        user: User,
        plan: SubscriptionPlan,
        billing_cycle: BillingCycle,
        amount: Decimal,
    ) -> stripe.checkout.Session:
        """
        Create a recurring price and a hosted Checkout Session for it.

        Args:
            user: Purchasing user; their email pre-fills checkout
            plan: Plan being purchased
            billing_cycle: Cycle that sets the recurring interval
            amount: Cycle price, already rounded to cents

        Returns:
            stripe.checkout.Session with checkout URL
        """
        self._require_api_key()
        metadata = {
            "userId": str(user.id),
            "planId": str(plan.id),
            "billingCycle": billing_cycle.value,
        }

        try:
            price = stripe.Price.create(
                unit_amount=to_minor_units(amount),
                currency=self._currency,
                recurring={"interval": STRIPE_INTERVALS[billing_cycle], "interval_count": 1},
                product_data={"name": f"{plan.name} - {billing_cycle.value}"},
            )
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=[
                    {
                        "price": price.id,
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=f"{self._frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{self._frontend_url}/packages",
                customer_email=user.email,
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise _provider_error("create_checkout_session", e) from e

        logger.info(
            f"Created checkout session {session.id} for user {user.id}, "
            f"plan={plan.id}, cycle={billing_cycle.value}, amount={amount}"
        )
        return session

    # =========================================================================
    # Subscription Queries
    # =========================================================================

    async def get_subscription_period(self, subscription_id: str) -> ProviderPeriod:
        """
        Current period bounds and status of a provider subscription.

        Newer API versions carry the bounds on the subscription items
        instead of the subscription itself; both shapes are accepted.
        """
        self._require_api_key()
        try:
            subscription = stripe.Subscription.retrieve(subscription_id)
        except StripeError as e:
            logger.warning(f"Failed to retrieve subscription {subscription_id}: {e}")
            raise _provider_error("get_subscription", e) from e

        start = subscription.get("current_period_start")
        end = subscription.get("current_period_end")
        if start is None or end is None:
            items = (subscription.get("items") or {}).get("data") or []
            if items:
                start = items[0].get("current_period_start")
                end = items[0].get("current_period_end")
        if start is None or end is None:
            raise PaymentProviderError(
                f"Subscription {subscription_id} has no current period",
                operation="get_subscription",
            )

        return ProviderPeriod(
            external_subscription_id=subscription_id,
            start=from_unix(start),
            end=from_unix(end),
            status=subscription.get("status"),
        )

    async def cancel_subscription(self, subscription_id: str) -> None:
        """Cancel a provider subscription immediately."""
        self._require_api_key()
        try:
            stripe.Subscription.cancel(subscription_id)
        except stripe.InvalidRequestError as e:
            # Already cancelled or deleted on the Stripe side
            if getattr(e, "code", None) == "resource_missing":
                logger.info(f"Subscription {subscription_id} already gone at Stripe")
                return
            raise _provider_error("cancel_subscription", e) from e
        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise _provider_error("cancel_subscription", e) from e

        logger.info(f"Cancelled Stripe subscription {subscription_id}")

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header over the raw body and parse it.

        Args:
            payload: Raw request body, exactly as received
            signature: Stripe-Signature header

        Returns:
            The event as a plain dict

        Raises:
            ConfigurationError: webhook secret not configured
            AuthenticationFailedError: header missing, stale or mismatched
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "STRIPE_WEBHOOK_SECRET is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )
        if not signature:
            raise AuthenticationFailedError("Missing Stripe-Signature header")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self._webhook_secret,
                self._tolerance,
            )
        except (SignatureVerificationError, UnicodeDecodeError) as e:
            raise AuthenticationFailedError("Invalid webhook signature", original_error=e)

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise AuthenticationFailedError("Invalid webhook payload", original_error=e)
        if not isinstance(event, dict):
            raise AuthenticationFailedError("Invalid webhook payload")
        return event


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
