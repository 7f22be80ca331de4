"""
Payment Event Domain Models

Typed payloads for the Stripe events the reconciler acts on. The raw event
is decoded once at the boundary into one of a closed set of variants;
anything else becomes UnknownEvent and is acknowledged without effect.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel

from app.domain.subscription import BillingCycle


class PaymentEventType(str, Enum):
    """Stripe event types with an effect on the ledger."""
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


# Stripe subscription statuses after which no further invoices are issued
ENDED_STATUSES = frozenset({"canceled", "incomplete_expired"})


class CheckoutMetadata(BaseModel):
    """Correlation ids written into the checkout session at creation."""
    user_id: int
    plan_id: int
    billing_cycle: BillingCycle


class CheckoutCompleted(BaseModel):
    kind: Literal["checkout_completed"] = "checkout_completed"
    event_id: str
    event_type: str
    session_id: Optional[str] = None
    mode: Optional[str] = None
    external_subscription_id: Optional[str] = None
    metadata: Optional[CheckoutMetadata] = None
    metadata_error: Optional[str] = None

    @property
    def is_subscription(self) -> bool:
        return self.mode == "subscription"


class InvoicePaid(BaseModel):
    kind: Literal["invoice_paid"] = "invoice_paid"
    event_id: str
    event_type: str
    invoice_id: Optional[str] = None
    external_subscription_id: Optional[str] = None
    period_end: Optional[datetime] = None


class SubscriptionDeleted(BaseModel):
    kind: Literal["subscription_deleted"] = "subscription_deleted"
    event_id: str
    event_type: str
    external_subscription_id: Optional[str] = None


class UnknownEvent(BaseModel):
    kind: Literal["unknown"] = "unknown"
    event_id: str
    event_type: str


PaymentEvent = Union[CheckoutCompleted, InvoicePaid, SubscriptionDeleted, UnknownEvent]


class ProviderPeriod(BaseModel):
    """Current period bounds and status of a provider-side subscription."""
    external_subscription_id: str
    start: datetime
    end: datetime
    status: Optional[str] = None

    @property
    def is_ended(self) -> bool:
        """True once the provider will never bill this subscription again."""
        return self.status in ENDED_STATUSES


# =============================================================================
# Decoding
# =============================================================================

def from_unix(value: Any) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to naive UTC."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _parse_checkout_metadata(raw: Optional[dict]) -> tuple[Optional[CheckoutMetadata], Optional[str]]:
    raw = raw or {}
    missing = [key for key in ("userId", "planId", "billingCycle") if not raw.get(key)]
    if missing:
        return None, f"missing metadata keys: {', '.join(missing)}"

    try:
        metadata = CheckoutMetadata(
            user_id=int(raw["userId"]),
            plan_id=int(raw["planId"]),
            billing_cycle=BillingCycle(str(raw["billingCycle"]).upper()),
        )
    except ValueError as e:
        return None, f"invalid metadata: {e}"

    if metadata.user_id <= 0 or metadata.plan_id <= 0:
        return None, "metadata ids must be positive"

    return metadata, None


def _expandable_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _invoice_subscription_id(invoice: dict) -> Optional[str]:
    subscription_id = _expandable_id(invoice.get("subscription"))
    if subscription_id:
        return subscription_id

    # Newer API versions moved the link under parent.subscription_details
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _expandable_id(details.get("subscription"))


def _invoice_period_end(invoice: dict) -> Optional[datetime]:
    """Service period end of the invoice's subscription line, else the invoice period."""
    lines = (invoice.get("lines") or {}).get("data") or []
    line_ends = [
        (line.get("period") or {}).get("end")
        for line in lines
    ]
    line_ends = [end for end in line_ends if end]
    if line_ends:
        return from_unix(max(line_ends))
    return from_unix(invoice.get("period_end"))


def decode_event(event: dict) -> PaymentEvent:
    """
    Decode a verified Stripe event into its typed variant.

    Raises:
        ValueError: if the envelope lacks an id or type
    """
    event_id = event.get("id")
    event_type = event.get("type")
    if not event_id or not event_type:
        raise ValueError("Event envelope is missing id or type")

    obj = (event.get("data") or {}).get("object") or {}

    if event_type == PaymentEventType.CHECKOUT_SESSION_COMPLETED.value:
        metadata, metadata_error = _parse_checkout_metadata(obj.get("metadata"))
        return CheckoutCompleted(
            event_id=event_id,
            event_type=event_type,
            session_id=obj.get("id"),
            mode=obj.get("mode"),
            external_subscription_id=_expandable_id(obj.get("subscription")),
            metadata=metadata,
            metadata_error=metadata_error,
        )

    if event_type in (
        PaymentEventType.INVOICE_PAID.value,
        PaymentEventType.INVOICE_PAYMENT_SUCCEEDED.value,
    ):
        return InvoicePaid(
            event_id=event_id,
            event_type=event_type,
            invoice_id=obj.get("id"),
            external_subscription_id=_invoice_subscription_id(obj),
            period_end=_invoice_period_end(obj),
        )

    if event_type == PaymentEventType.SUBSCRIPTION_DELETED.value:
        return SubscriptionDeleted(
            event_id=event_id,
            event_type=event_type,
            external_subscription_id=obj.get("id"),
        )

    return UnknownEvent(event_id=event_id, event_type=event_type)
