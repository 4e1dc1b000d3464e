"""
Billing endpoints: subscription reconciliation and the public plan listing.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from theralink.api.deps import get_billing_provider, get_plan_catalog
from theralink.core.auth_dependency import get_current_user
from theralink.core.exceptions import AuthenticationError, TransientProviderError
from theralink.core.plan_catalog import PlanCatalog
from theralink.db.session import get_db
from theralink.schemas.billing import BillingErrorResponse, PlanResponse, ReconcileResponse
from theralink.services.billing_provider import BillingProvider
from theralink.services.reconciliation_service import reconcile_subscription
from theralink.services.user_directory import find_user_by_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.post(
    "/check-subscription",
    response_model=ReconcileResponse,
    responses={503: {"model": BillingErrorResponse}},
)
def check_subscription(
    email: str = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: BillingProvider = Depends(get_billing_provider),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    """
    Pull the caller's subscription from Stripe and refresh the local record.

    Called right after checkout, at login and periodically by open sessions
    to catch webhooks that were missed or are still in flight.
    """
    user = find_user_by_email(db, email)

    try:
        result = reconcile_subscription(db, user, provider, catalog)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except TransientProviderError as e:
        logger.warning(f"Reconciliation unavailable: email_domain={email.split('@')[-1]}, error={e}")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": str(e)})

    return result.to_dict()


@router.get("/plans", response_model=List[PlanResponse])
def list_plans(
    role: Optional[str] = Query(None, description="Only plans sold to this role"),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    """Public plan catalog, used by the pricing page."""
    plans = catalog.plans_for_role(role) if role else [catalog.get_plan(key) for key in catalog.plan_keys]
    return [
        {
            "plan_key": plan.plan_key,
            "role": plan.role,
            "name": plan.name,
            "price": plan.price,
            "price_id": plan.price_id,
            "max_patients": plan.max_dependents,
            "features": sorted(plan.features),
            "trial_days": plan.trial_days,
            "highlighted": plan.highlighted,
        }
        for plan in plans
    ]
