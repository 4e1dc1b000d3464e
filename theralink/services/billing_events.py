"""
Inbound billing event variants.

Provider events are parsed into one of a closed set of dataclasses. Handlers
are registered per variant (see billing_service.EVENT_HANDLERS) and the
registry is checked against BILLING_EVENT_TYPES at import time, so adding a
variant without a handler fails loudly instead of falling into a default
branch.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Type

from theralink.services.stripe_service import (
    get_invoice_subscription_id,
    get_subscription_period_end,
    get_subscription_product_id,
)

SUBSCRIPTION_EVENT_PREFIX = "customer.subscription."
SUBSCRIPTION_DELETED = "customer.subscription.deleted"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"


@dataclass(frozen=True)
class SubscriptionChanged:
    """customer.subscription.created / updated / deleted / paused / ..."""
    event_id: Optional[str]
    event_type: str
    customer_id: Optional[str]
    subscription_id: Optional[str]
    provider_status: Optional[str]
    product_id: Optional[str]
    current_period_end: Any  # Optional[datetime]
    deleted: bool = False


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: Optional[str]
    event_type: str
    customer_id: Optional[str]
    subscription_id: Optional[str]


@dataclass(frozen=True)
class InvoicePaymentSucceeded:
    event_id: Optional[str]
    event_type: str
    customer_id: Optional[str]
    subscription_id: Optional[str]


@dataclass(frozen=True)
class UnhandledEvent:
    """Any event type this service does not act on (checkout.session.*, ...)."""
    event_id: Optional[str]
    event_type: str


BILLING_EVENT_TYPES: Tuple[Type, ...] = (
    SubscriptionChanged,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    UnhandledEvent,
)


def _customer_id(obj: Mapping[str, Any]) -> Optional[str]:
    customer = obj.get("customer")
    if customer is None or isinstance(customer, str):
        return customer
    return customer.get("id")


def parse_event(event: Mapping[str, Any]):
    """
    Parse a verified provider event into its variant.

    Args:
        event: Verified event (stripe.Event or an equivalent mapping)

    Returns:
        One of BILLING_EVENT_TYPES
    """
    event_type = event.get("type") or ""
    event_id = event.get("id")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type.startswith(SUBSCRIPTION_EVENT_PREFIX):
        return SubscriptionChanged(
            event_id=event_id,
            event_type=event_type,
            customer_id=_customer_id(obj),
            subscription_id=obj.get("id"),
            provider_status=obj.get("status"),
            product_id=get_subscription_product_id(obj),
            current_period_end=get_subscription_period_end(obj),
            deleted=event_type == SUBSCRIPTION_DELETED,
        )

    if event_type == INVOICE_PAYMENT_FAILED:
        return InvoicePaymentFailed(
            event_id=event_id,
            event_type=event_type,
            customer_id=_customer_id(obj),
            subscription_id=get_invoice_subscription_id(obj),
        )

    if event_type == INVOICE_PAYMENT_SUCCEEDED:
        return InvoicePaymentSucceeded(
            event_id=event_id,
            event_type=event_type,
            customer_id=_customer_id(obj),
            subscription_id=get_invoice_subscription_id(obj),
        )

    return UnhandledEvent(event_id=event_id, event_type=event_type)
