"""
On-demand subscription reconciliation.

Synchronous counterpart of webhook ingestion: pulls the caller's current
subscription straight from Stripe and upserts the local record. Called after
checkout redirects, at login, and on a fixed interval by long-lived sessions.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from sqlalchemy.orm import Session

from theralink.core.exceptions import AuthenticationError, CustomerNotFoundError
from theralink.core.plan_catalog import PlanCatalog, PLAN_NONE
from theralink.db.models.subscription import STATUS_ACTIVE, STATUS_INACTIVE, STATUS_TRIALING
from theralink.db.models.user import User
from theralink.services.billing_provider import BillingProvider
from theralink.services.billing_service import default_role_for, map_provider_status, plan_for_product
from theralink.services.stripe_service import get_subscription_period_end, get_subscription_product_id
from theralink.services.subscription_store import get_subscription, upsert_subscription

logger = logging.getLogger(__name__)

# Queried in order; trialing is included so a manual refresh agrees with what
# the webhook stores for users mid-trial.
RECONCILE_STATUSES = (STATUS_ACTIVE, STATUS_TRIALING)


@dataclass(frozen=True)
class ReconcileResult:
    subscribed: bool
    plan: str
    product_id: Optional[str] = None
    subscription_end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscribed": self.subscribed,
            "plan": self.plan,
            "product_id": self.product_id,
            "subscription_end": self.subscription_end.isoformat() if self.subscription_end else None,
        }


NOT_SUBSCRIBED = ReconcileResult(subscribed=False, plan=PLAN_NONE)


def require_customer_id(provider: BillingProvider, email: str) -> str:
    """
    Raises:
        CustomerNotFoundError: If the user never reached checkout
    """
    customer_id = provider.find_customer_id_by_email(email)
    if not customer_id:
        raise CustomerNotFoundError(email)
    return customer_id


def find_current_subscription(provider: BillingProvider, customer_id: str) -> Optional[Mapping[str, Any]]:
    """The customer's active subscription, else a trialing one, else None."""
    for status in RECONCILE_STATUSES:
        subscription = provider.find_subscription(customer_id, status)
        if subscription:
            return subscription
    return None


def reconcile_subscription(
    db: Session,
    user: Optional[User],
    provider: BillingProvider,
    catalog: PlanCatalog
) -> ReconcileResult:
    """
    Refresh the caller's subscription record from Stripe.

    Args:
        db: Database session
        user: Authenticated caller
        provider: Billing provider
        catalog: Plan catalog

    Returns:
        What was found, independent of a re-read of the stored record

    Raises:
        AuthenticationError: No caller identity
        TransientProviderError: Stripe unreachable
    """
    if user is None or not user.email:
        raise AuthenticationError("User not authenticated or email not available")

    try:
        customer_id = require_customer_id(provider, user.email)
    except CustomerNotFoundError:
        # Never started checkout: nothing to record
        logger.info(f"No Stripe customer found: user_id={user.id}")
        return NOT_SUBSCRIBED

    subscription = find_current_subscription(provider, customer_id)

    if subscription:
        product_id = get_subscription_product_id(subscription)
        plan = plan_for_product(catalog, product_id, "reconcile")
        period_end = get_subscription_period_end(subscription)
        status = map_provider_status(subscription.get("status"))

        changes: Dict[str, Any] = {
            "plan": plan,
            "status": status,
            "stripe_customer_id": customer_id,
            "stripe_subscription_id": subscription.get("id"),
            "current_period_end": period_end,
        }
        known_plan = catalog.get_plan(plan)
        if known_plan:
            changes["role"] = known_plan.role

        upsert_subscription(db, user.id, default_role=default_role_for(user, plan, catalog), **changes)

        logger.info(
            f"Reconciled subscription: user_id={user.id}, plan={plan}, status={status}, "
            f"product_id={product_id}, subscription_end={period_end}"
        )
        return ReconcileResult(
            subscribed=True,
            plan=plan,
            product_id=product_id,
            subscription_end=period_end,
        )

    # No current subscription. The role is not passed as a change so an
    # existing record keeps the role it already has.
    existing = get_subscription(db, user.id)
    default_role = existing.role if existing else default_role_for(user, PLAN_NONE, catalog)
    upsert_subscription(
        db,
        user.id,
        default_role=default_role,
        plan=PLAN_NONE,
        status=STATUS_INACTIVE,
        stripe_customer_id=customer_id,
        current_period_end=None,
    )

    logger.info(f"No active subscription found: user_id={user.id}")
    return NOT_SUBSCRIBED
