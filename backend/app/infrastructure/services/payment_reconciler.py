"""
Payment Event Reconciler

Applies Stripe webhook events to the subscription ledger exactly once.

Each delivery is verified against the raw body, decoded once into a typed
event, and applied in a single transaction together with its
processed-event marker. Redeliveries, including concurrent ones, resolve to
``already_processed`` through the marker's primary key or the unique
external subscription id.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.payment_events import (
    CheckoutCompleted,
    InvoicePaid,
    PaymentEvent,
    SubscriptionDeleted,
    decode_event,
)
from app.domain.subscription import utcnow
from app.infrastructure.db.repositories.collaborator_repositories import UserRepository
from app.infrastructure.db.repositories.plan_repository import PlanRepository
from app.infrastructure.db.repositories.webhook_event_repository import WebhookEventRepository
from app.infrastructure.exceptions import ConflictError, TransientError, ValidationError
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.subscription_ledger import (
    EXTERNAL_ID,
    ONE_ACTIVE,
    SubscriptionLedger,
)


logger = logging.getLogger(__name__)

SUCCESS = "success"
ALREADY_PROCESSED = "already_processed"
IGNORED = "ignored"


class WebhookResult(BaseModel):
    """Acknowledgement returned to the provider."""
    received: bool = True
    status: str
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    detail: Optional[str] = None


def _is_duplicate_marker(error: IntegrityError) -> bool:
    return "processed_webhook_events" in str(error.orig)


class PaymentEventReconciler:
    """
    Inbound webhook processing. Owns its transaction: commits on success,
    rolls back on any failure so the provider's redelivery starts clean.
    """

    def __init__(
        self,
        session: AsyncSession,
        stripe_service: StripeService,
        now: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._stripe = stripe_service
        self._now = now
        self._ledger = SubscriptionLedger(session, now=now)
        self._events = WebhookEventRepository(session)
        self._users = UserRepository(session)
        self._plans = PlanRepository(session)

    async def handle(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """
        Verify, decode and apply one delivery.

        Raises:
            AuthenticationFailedError: bad or missing signature (no state touched)
            ValidationError: verified body is not an event envelope
            TransientError: lost a race twice or provider unavailable; redeliver
        """
        raw = self._stripe.verify_webhook_signature(payload, signature)
        try:
            event = decode_event(raw)
        except ValueError as e:
            raise ValidationError(str(e), original_error=e)

        logger.info(f"[WEBHOOK] Received {event.event_type} ({event.event_id})")

        try:
            return await self._apply(event)
        except IntegrityError as e:
            await self._session.rollback()
            if _is_duplicate_marker(e):
                logger.info(f"[WEBHOOK] Event {event.event_id} applied by a concurrent delivery")
                return self._result(event, ALREADY_PROCESSED)
            raise
        except ConflictError as e:
            await self._session.rollback()
            if e.constraint == EXTERNAL_ID:
                logger.info(f"[WEBHOOK] Event {event.event_id} raced on its subscription id")
                return self._result(event, ALREADY_PROCESSED)
            if e.constraint == ONE_ACTIVE:
                raise TransientError(
                    f"Concurrent subscription change while applying {event.event_id}",
                    operation="webhook",
                    original_error=e,
                ) from e
            raise
        except Exception:
            await self._session.rollback()
            raise

    async def _apply(self, event: PaymentEvent) -> WebhookResult:
        if await self._events.is_processed(event.event_id):
            logger.info(f"[WEBHOOK] Event {event.event_id} already processed")
            return self._result(event, ALREADY_PROCESSED)

        if isinstance(event, CheckoutCompleted):
            status, detail = await self._on_checkout_completed(event)
        elif isinstance(event, InvoicePaid):
            status, detail = await self._on_invoice_paid(event)
        elif isinstance(event, SubscriptionDeleted):
            status, detail = await self._on_subscription_deleted(event)
        else:
            status, detail = IGNORED, f"unhandled event type {event.event_type}"
            logger.info(f"[WEBHOOK] Ignoring {event.event_type}")

        await self._events.mark_processed(event.event_id, event.event_type, self._now())
        await self._session.commit()

        logger.info(f"[WEBHOOK] Event {event.event_id}: {status}")
        return self._result(event, status, detail)

    # =========================================================================
    # Event Handlers
    # =========================================================================

    async def _on_checkout_completed(self, event: CheckoutCompleted) -> Tuple[str, str]:
        if not event.is_subscription:
            return IGNORED, f"checkout mode {event.mode} is not a subscription"

        if event.metadata is None:
            logger.warning(
                f"[WEBHOOK] Checkout {event.session_id} has unusable metadata: {event.metadata_error}"
            )
            return IGNORED, event.metadata_error

        if not event.external_subscription_id:
            logger.warning(f"[WEBHOOK] Checkout {event.session_id} has no subscription id")
            return IGNORED, "missing subscription id"

        metadata = event.metadata
        user = await self._users.get_by_id(metadata.user_id)
        if user is None:
            logger.warning(f"[WEBHOOK] Checkout {event.session_id} references unknown user {metadata.user_id}")
            return IGNORED, f"unknown user {metadata.user_id}"
        if not user.is_active:
            logger.warning(f"[WEBHOOK] Checkout {event.session_id} references inactive user {user.id}")
            return IGNORED, f"inactive user {user.id}"

        # Inactive plans still honour purchases started before deactivation
        plan = await self._plans.get_by_id(metadata.plan_id)
        if plan is None:
            logger.warning(f"[WEBHOOK] Checkout {event.session_id} references unknown plan {metadata.plan_id}")
            return IGNORED, f"unknown plan {metadata.plan_id}"

        period = await self._stripe.get_subscription_period(event.external_subscription_id)
        # Covers a deletion event that was delivered before this checkout
        if period.is_ended:
            logger.info(
                f"[WEBHOOK] Subscription {event.external_subscription_id} is {period.status} at the provider"
            )
            return IGNORED, f"subscription {period.status} at provider"

        subscription, created = await self._ledger.record_provider_subscription(
            user_id=user.id,
            plan=plan,
            start_date=period.start,
            end_date=period.end,
            external_id=event.external_subscription_id,
        )
        if not created:
            return ALREADY_PROCESSED, f"subscription {subscription.id} already recorded"
        return SUCCESS, f"subscription {subscription.id} created"

    async def _on_invoice_paid(self, event: InvoicePaid) -> Tuple[str, str]:
        if not event.external_subscription_id:
            return IGNORED, "invoice is not for a subscription"
        if event.period_end is None:
            logger.warning(f"[WEBHOOK] Invoice {event.invoice_id} has no period end")
            return IGNORED, "invoice has no period end"

        subscription = await self._ledger.get_by_external_id(event.external_subscription_id)
        if subscription is None:
            logger.info(f"[WEBHOOK] Invoice for unknown subscription {event.external_subscription_id}")
            return IGNORED, "unknown subscription"

        renewed = await self._ledger.renew(subscription.id, event.period_end)
        return SUCCESS, "renewed" if renewed else "end date already current"

    async def _on_subscription_deleted(self, event: SubscriptionDeleted) -> Tuple[str, str]:
        if not event.external_subscription_id:
            return IGNORED, "missing subscription id"

        subscription = await self._ledger.get_by_external_id(event.external_subscription_id)
        if subscription is None:
            logger.info(
                f"[WEBHOOK] Deletion of unknown subscription {event.external_subscription_id}; "
                f"a later checkout will see the provider status"
            )
            return IGNORED, "unknown subscription"

        deactivated = await self._ledger.deactivate_by_external_id(event.external_subscription_id)
        return SUCCESS, "deactivated" if deactivated else "already inactive"

    @staticmethod
    def _result(event: PaymentEvent, status: str, detail: Optional[str] = None) -> WebhookResult:
        return WebhookResult(
            status=status,
            event_id=event.event_id,
            event_type=event.event_type,
            detail=detail,
        )
