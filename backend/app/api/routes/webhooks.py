"""
Stripe Webhook Handler

Receives Stripe events for the subscription lifecycle. The raw body is
passed through untouched because the signature covers the exact bytes.

Handled events:
- checkout.session.completed: record the purchased subscription
- invoice.paid / invoice.payment_succeeded: extend the period
- customer.subscription.deleted: deactivate

Everything else is acknowledged and ignored. Failures return a non-2xx
status so Stripe redelivers; duplicates are acknowledged as
``already_processed``.
"""

import logging

from fastapi import APIRouter, Request

from app.api.dependencies import ReconcilerDep
from app.infrastructure.services.payment_reconciler import WebhookResult


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/stripe", response_model=WebhookResult)
async def stripe_webhook(request: Request, reconciler: ReconcilerDep):
    """Verify and apply one Stripe event delivery."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    return await reconciler.handle(payload, signature)
