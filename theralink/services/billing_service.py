"""
Billing event ingestion.

Applies verified Stripe webhook events to the local subscription records.
Handlers derive the new state from the event payload alone and never assume
what is already stored, so provider redeliveries are safe to apply again.
"""
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Type
from sqlalchemy.orm import Session

from theralink.core.exceptions import UnmappedProductError
from theralink.core.plan_catalog import (
    PlanCatalog,
    PLAN_NONE,
    PLAN_UNKNOWN,
    ROLE_PATIENT,
    ROLE_THERAPIST,
)
from theralink.db.models.subscription import (
    Subscription,
    ENTITLED_STATUSES,
    STATUS_ACTIVE,
    STATUS_CANCELED,
    STATUS_INACTIVE,
    STATUS_PAST_DUE,
    STATUS_TRIALING,
    STATUS_UNPAID,
)
from theralink.db.models.user import User
from theralink.services.billing_events import (
    BILLING_EVENT_TYPES,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionChanged,
    UnhandledEvent,
    parse_event,
)
from theralink.services.billing_provider import BillingProvider
from theralink.services.subscription_store import mark_past_due, upsert_subscription
from theralink.services.user_directory import find_user_by_email

logger = logging.getLogger(__name__)

# Stripe subscription status -> local status. Anything else is inactive.
PROVIDER_STATUS_MAP: Dict[str, str] = {
    "active": STATUS_ACTIVE,
    "trialing": STATUS_TRIALING,
    "past_due": STATUS_PAST_DUE,
    "canceled": STATUS_CANCELED,
    "unpaid": STATUS_UNPAID,
}


def map_provider_status(provider_status: Optional[str]) -> str:
    """Map a Stripe subscription status to the local status."""
    return PROVIDER_STATUS_MAP.get(provider_status or "", STATUS_INACTIVE)


def plan_for_product(catalog: PlanCatalog, product_id: Optional[str], event_type: str) -> str:
    """
    Map a product to a plan key, falling back to "unknown".

    The record is still written with "unknown" so the user does not stay in
    a stale state; entitlements resolve to nothing until the catalog knows
    the product.
    """
    try:
        return catalog.require_plan_for_product(product_id)
    except UnmappedProductError as e:
        logger.warning(f"Unmapped product, storing plan={PLAN_UNKNOWN}: event_type={event_type}, error={e}")
        return PLAN_UNKNOWN


def default_role_for(user: User, plan_key: str, catalog: PlanCatalog) -> str:
    """
    Role for a first-time record: the plan's role, else the directory role,
    else whatever the plan key prefix says.
    """
    plan = catalog.get_plan(plan_key)
    if plan:
        return plan.role
    if user.role in (ROLE_PATIENT, ROLE_THERAPIST):
        return user.role
    return catalog.role_for_plan(plan_key) or ROLE_PATIENT


def resolve_event_user(
    db: Session,
    provider: BillingProvider,
    customer_id: Optional[str],
    event_type: str
) -> Optional[User]:
    """
    Find the local user behind a provider customer via the customer's email.

    A provider customer without a local account is untracked, not an error.
    """
    if not customer_id:
        logger.warning(f"{event_type}: No customer ID on event")
        return None

    email = provider.get_customer_email(customer_id)
    if not email:
        logger.info(f"{event_type}: Customer not found or has no email: customer_id={customer_id}")
        return None

    user = find_user_by_email(db, email)
    if not user:
        logger.info(f"{event_type}: No local user for customer: customer_id={customer_id}")
        return None

    return user


def handle_subscription_changed(
    event: SubscriptionChanged,
    db: Session,
    provider: BillingProvider,
    catalog: PlanCatalog
) -> Optional[Subscription]:
    """
    Handle customer.subscription.* events.

    Deletions force canceled/none regardless of the payload status.
    """
    user = resolve_event_user(db, provider, event.customer_id, event.event_type)
    if not user:
        return None

    if event.deleted:
        status = STATUS_CANCELED
        plan = PLAN_NONE
        period_end = None
    else:
        status = map_provider_status(event.provider_status)
        if status in ENTITLED_STATUSES:
            plan = plan_for_product(catalog, event.product_id, event.event_type)
            period_end = event.current_period_end
        else:
            plan = PLAN_NONE
            period_end = None

    changes: Dict[str, Any] = {
        "plan": plan,
        "status": status,
        "stripe_customer_id": event.customer_id,
        "stripe_subscription_id": event.subscription_id,
        "current_period_end": period_end,
    }
    # A known plan belongs to exactly one role
    known_plan = catalog.get_plan(plan)
    if known_plan:
        changes["role"] = known_plan.role

    record = upsert_subscription(
        db,
        user.id,
        default_role=default_role_for(user, plan, catalog),
        **changes
    )

    logger.info(
        f"Subscription event applied: event_type={event.event_type}, user_id={user.id}, "
        f"plan={record.plan}, status={record.status}, subscription_id={event.subscription_id}"
    )
    return record


def handle_invoice_payment_failed(
    event: InvoicePaymentFailed,
    db: Session,
    provider: BillingProvider,
    catalog: PlanCatalog
) -> Optional[Subscription]:
    """Flag the owner's subscription as past_due. The plan is left untouched."""
    if not event.subscription_id:
        logger.info("invoice.payment_failed: Not a subscription invoice, skipping")
        return None

    user = resolve_event_user(db, provider, event.customer_id, event.event_type)
    if not user:
        return None

    record = mark_past_due(db, user.id, default_role=default_role_for(user, PLAN_NONE, catalog))

    logger.warning(
        f"Invoice payment failed: user_id={user.id}, plan={record.plan}, "
        f"subscription_id={event.subscription_id}"
    )
    return record


def handle_invoice_payment_succeeded(
    event: InvoicePaymentSucceeded,
    db: Session,
    provider: BillingProvider,
    catalog: PlanCatalog
) -> None:
    """
    Intentionally a no-op.

    The customer.subscription.updated event for the same billing cycle carries
    the authoritative state; applying both would process the cycle twice.
    """
    logger.info(f"Invoice payment succeeded, deferring to subscription events: subscription_id={event.subscription_id}")


def handle_unhandled_event(
    event: UnhandledEvent,
    db: Session,
    provider: BillingProvider,
    catalog: PlanCatalog
) -> None:
    logger.info(f"Ignoring billing event: type={event.event_type}, id={event.event_id}")


EVENT_HANDLERS: Dict[Type, Callable[..., Optional[Subscription]]] = {
    SubscriptionChanged: handle_subscription_changed,
    InvoicePaymentFailed: handle_invoice_payment_failed,
    InvoicePaymentSucceeded: handle_invoice_payment_succeeded,
    UnhandledEvent: handle_unhandled_event,
}

_missing_handlers = [t.__name__ for t in BILLING_EVENT_TYPES if t not in EVENT_HANDLERS]
if _missing_handlers:
    raise RuntimeError(f"Billing event variants without a handler: {_missing_handlers}")


def ingest_event(
    event: Mapping[str, Any],
    db: Session,
    provider: BillingProvider,
    catalog: PlanCatalog
) -> Optional[Subscription]:
    """
    Apply one verified provider event.

    Returns:
        The upserted record, or None when the event needed no write

    Raises:
        Any lookup or database error, so the caller can answer 5xx and the
        provider redelivers.
    """
    billing_event = parse_event(event)
    handler = EVENT_HANDLERS[type(billing_event)]

    logger.info(f"Processing billing event: type={billing_event.event_type}, id={billing_event.event_id}")
    return handler(billing_event, db, provider, catalog)
