"""
Entitlement endpoints.

Expose the caller's resolved plan, patient capacity and feature gates. The
gates answer 402 with a PAYWALL payload the frontend turns into an upgrade
prompt.
"""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from theralink.api.deps import get_current_entitlements
from theralink.core.auth_dependency import get_current_user_obj
from theralink.core.gating import (
    enforce_feature_access,
    enforce_patient_capacity,
    get_capacity_summary,
)
from theralink.core.plan_catalog import Entitlements, PLAN_NONE
from theralink.db.models.subscription import STATUS_INACTIVE
from theralink.db.models.user import User
from theralink.db.session import get_db
from theralink.schemas.billing import CapacityResponse, EntitlementsResponse, FeatureAccessResponse
from theralink.services.subscription_store import get_subscription
from theralink.services.user_directory import count_active_patients

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/me", tags=["Entitlements"])


@router.get("/entitlements", response_model=EntitlementsResponse, status_code=status.HTTP_200_OK)
def get_entitlements(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    entitlements: Entitlements = Depends(get_current_entitlements),
):
    """
    Get the stored subscription and the entitlements it resolves to.

    Users without a record are reported as inactive on plan "none".
    """
    record = get_subscription(db, user.id)

    response = entitlements.to_dict()
    response.update({
        "plan": record.plan if record else PLAN_NONE,
        "status": record.status if record else STATUS_INACTIVE,
        "subscribed": record.is_subscribed if record else False,
        "current_period_end": (
            record.current_period_end.isoformat() if record and record.current_period_end else None
        ),
    })

    logger.debug(f"Entitlements requested: user_id={user.id}, plan={response['plan']}")
    return response


@router.get("/capacity", response_model=CapacityResponse)
def get_capacity(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    entitlements: Entitlements = Depends(get_current_entitlements),
):
    """Active patient usage against the caller's plan limit."""
    current = count_active_patients(db, user.id)
    return get_capacity_summary(current, entitlements)


@router.post("/patients/capacity-check", response_model=CapacityResponse)
def check_patient_capacity(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    entitlements: Entitlements = Depends(get_current_entitlements),
):
    """
    Ask before inviting a patient. 402 PAYWALL when the roster is full.

    Advisory only: nothing is reserved between this check and the invite.
    """
    current = count_active_patients(db, user.id)
    enforce_patient_capacity(current, entitlements, user_id=user.id)
    return get_capacity_summary(current, entitlements)


@router.get("/features/{feature}", response_model=FeatureAccessResponse)
def check_feature(
    feature: str,
    user: User = Depends(get_current_user_obj),
    entitlements: Entitlements = Depends(get_current_entitlements),
):
    enforce_feature_access(entitlements, feature, user_id=user.id)
    return {"feature": feature, "allowed": True}
