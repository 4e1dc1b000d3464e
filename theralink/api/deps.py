"""
Shared route dependencies: billing provider, plan catalog and the caller's
resolved entitlements.
"""
from functools import lru_cache
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from theralink.core.auth_dependency import get_current_user_obj
from theralink.core.plan_catalog import Entitlements, PlanCatalog, PLAN_NONE
from theralink.db.models.user import User
from theralink.db.session import get_db
from theralink.services.billing_provider import BillingProvider
from theralink.services.stripe_service import StripeBillingProvider
from theralink.services.subscription_store import get_subscription


@lru_cache(maxsize=1)
def get_billing_provider() -> BillingProvider:
    return StripeBillingProvider()


def get_plan_catalog(request: Request) -> PlanCatalog:
    """Catalog built at startup (see theralink.main)."""
    return request.app.state.plan_catalog


def get_current_entitlements(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    catalog: PlanCatalog = Depends(get_plan_catalog)
) -> Entitlements:
    """Entitlements recomputed from the caller's stored plan key."""
    record = get_subscription(db, user.id)
    return catalog.resolve_entitlements(record.plan if record else PLAN_NONE)
