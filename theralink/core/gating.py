"""
Feature gating and patient capacity enforcement.

Decides, from a resolved entitlement bundle, whether a feature is exposed and
whether a therapist may link another patient. Gates fail closed: anything
that did not resolve to a real plan is treated as no access.

Capacity checks are advisory. There is no reservation, so two concurrent
invites can both pass and overshoot the limit by one.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from theralink.core.config import CAPACITY_WARNING_PERCENT, FRONTEND_URL
from theralink.core.plan_catalog import (
    CapacityMode,
    Entitlements,
    SUPPORTED_FEATURES,
)

logger = logging.getLogger(__name__)


def has_feature(entitlements: Optional[Entitlements], feature: str) -> bool:
    """
    Check if a resolved bundle grants a feature.

    A missing bundle (error, still loading), an unresolved plan or an
    unrecognised feature name all deny.
    """
    if entitlements is None or not entitlements.resolved:
        return False
    if feature not in SUPPORTED_FEATURES:
        return False
    return feature in entitlements.features


def can_add_dependent(current_active_count: int, max_dependents: Optional[int]) -> bool:
    """
    Check if one more dependent fits under a limit.

    None means unlimited.
    """
    if max_dependents is None:
        return True
    return current_active_count < max_dependents


def can_add_patient(current_active_count: int, entitlements: Optional[Entitlements]) -> bool:
    """Apply the capacity guard to a resolved bundle."""
    if entitlements is None:
        return False
    if entitlements.capacity == CapacityMode.NOT_ENTITLED:
        return False
    if entitlements.capacity == CapacityMode.UNLIMITED:
        return can_add_dependent(current_active_count, None)
    return can_add_dependent(current_active_count, entitlements.max_dependents)


def get_capacity_summary(current_active_count: int, entitlements: Optional[Entitlements]) -> Dict[str, Any]:
    """
    Capacity figures for display next to the patient roster.

    usage_percent is capped at 100 and is 0 when there is no numeric limit.
    """
    capacity = entitlements.capacity if entitlements else CapacityMode.NOT_ENTITLED
    max_patients = entitlements.max_dependents if capacity == CapacityMode.LIMITED else None

    if max_patients:
        usage_percent = min(current_active_count / max_patients * 100, 100.0)
    else:
        usage_percent = 0.0

    is_at_limit = max_patients is not None and current_active_count >= max_patients
    is_near_limit = max_patients is not None and usage_percent >= CAPACITY_WARNING_PERCENT

    return {
        "current_patients": current_active_count,
        "max_patients": max_patients,
        "capacity": capacity.value,
        "can_add_patient": can_add_patient(current_active_count, entitlements),
        "usage_percent": round(usage_percent, 1),
        "is_near_limit": is_near_limit,
        "is_at_limit": is_at_limit,
    }


def enforce_feature_access(entitlements: Optional[Entitlements], feature: str, user_id: Optional[int] = None) -> None:
    """
    Enforce feature access based on the resolved plan.

    Raises HTTPException with 402 status and structured payload if denied.
    """
    if has_feature(entitlements, feature):
        return

    plan = entitlements.plan_key if entitlements else None
    logger.warning(f"Feature access denied: user_id={user_id}, plan={plan}, feature={feature}")

    raise HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "detail": "This feature is not included in your plan. Upgrade to unlock.",
            "code": "PAYWALL",
            "feature": feature,
            "plan": plan,
            "upgrade_url": f"{FRONTEND_URL}/planos",
        }
    )


def enforce_patient_capacity(
    current_active_count: int,
    entitlements: Optional[Entitlements],
    user_id: Optional[int] = None
) -> None:
    """
    Enforce the active-patient limit before a new patient link is created.

    Raises HTTPException with 402 status and structured payload if the
    roster is full or the plan carries no capacity at all.
    """
    if can_add_patient(current_active_count, entitlements):
        return

    plan = entitlements.plan_key if entitlements else None
    limit = entitlements.max_dependents if entitlements else None
    logger.warning(
        f"Patient capacity reached: user_id={user_id}, plan={plan}, "
        f"limit={limit}, current={current_active_count}"
    )

    raise HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "detail": "Active patient limit reached for your plan. Upgrade to add more patients.",
            "code": "PAYWALL",
            "feature": "patient_capacity",
            "plan": plan,
            "limit": limit,
            "used": current_active_count,
            "upgrade_url": f"{FRONTEND_URL}/planos",
        }
    )
