"""
Unit tests for feature gating and the patient capacity guard.
"""
import pytest
from fastapi import HTTPException

from theralink.core.gating import (
    can_add_dependent,
    can_add_patient,
    enforce_feature_access,
    enforce_patient_capacity,
    get_capacity_summary,
    has_feature,
)
from theralink.core.plan_catalog import Plan, PlanCatalog


@pytest.mark.parametrize("count,max_dependents,expected", [
    (0, None, True),
    (5, None, True),
    (10000, None, True),
    (4, 5, True),
    (5, 5, False),
    (6, 5, False),
    (0, 0, False),
])
def test_can_add_dependent(count, max_dependents, expected):
    assert can_add_dependent(count, max_dependents) is expected


def test_has_feature_fails_closed(catalog):
    growth = catalog.resolve_entitlements("therapist_growth")

    assert has_feature(growth, "charts") is True
    assert has_feature(growth, "export") is False
    assert has_feature(growth, "teleport") is False
    assert has_feature(None, "charts") is False
    assert has_feature(catalog.resolve_entitlements("unknown"), "charts") is False
    assert has_feature(catalog.resolve_entitlements("none"), "timeline") is False


def test_can_add_patient(catalog):
    starter = catalog.resolve_entitlements("therapist_starter")

    assert can_add_patient(9, starter) is True
    assert can_add_patient(10, starter) is False
    assert can_add_patient(0, catalog.resolve_entitlements("patient_essential")) is False
    assert can_add_patient(0, catalog.resolve_entitlements("unknown")) is False
    assert can_add_patient(0, None) is False


def test_can_add_patient_unlimited_plan():
    catalog = PlanCatalog([
        Plan(plan_key="therapist_clinic", role="therapist", name="Clinic", price=299.0,
             product_id="prod_clinic", max_dependents=None),
    ])

    assert can_add_patient(5000, catalog.resolve_entitlements("therapist_clinic")) is True


def test_capacity_summary_near_limit(catalog):
    summary = get_capacity_summary(8, catalog.resolve_entitlements("therapist_starter"))

    assert summary == {
        "current_patients": 8,
        "max_patients": 10,
        "capacity": "limited",
        "can_add_patient": True,
        "usage_percent": 80.0,
        "is_near_limit": True,
        "is_at_limit": False,
    }


def test_capacity_summary_over_limit_is_capped(catalog):
    summary = get_capacity_summary(12, catalog.resolve_entitlements("therapist_starter"))

    assert summary["usage_percent"] == 100.0
    assert summary["is_at_limit"] is True
    assert summary["can_add_patient"] is False


def test_capacity_summary_without_limit(catalog):
    summary = get_capacity_summary(3, catalog.resolve_entitlements("patient_essential"))

    assert summary["max_patients"] is None
    assert summary["capacity"] == "not_entitled"
    assert summary["usage_percent"] == 0.0
    assert summary["is_near_limit"] is False
    assert summary["is_at_limit"] is False
    assert summary["can_add_patient"] is False


def test_enforce_feature_access_paywall(catalog):
    starter = catalog.resolve_entitlements("therapist_starter")

    enforce_feature_access(starter, "timeline", user_id=1)

    with pytest.raises(HTTPException) as exc_info:
        enforce_feature_access(starter, "export", user_id=1)

    assert exc_info.value.status_code == 402
    detail = exc_info.value.detail
    assert detail["code"] == "PAYWALL"
    assert detail["feature"] == "export"
    assert detail["plan"] == "therapist_starter"
    assert detail["upgrade_url"].endswith("/planos")


def test_enforce_patient_capacity_paywall(catalog):
    starter = catalog.resolve_entitlements("therapist_starter")

    enforce_patient_capacity(9, starter, user_id=1)

    with pytest.raises(HTTPException) as exc_info:
        enforce_patient_capacity(10, starter, user_id=1)

    assert exc_info.value.status_code == 402
    detail = exc_info.value.detail
    assert detail["code"] == "PAYWALL"
    assert detail["feature"] == "patient_capacity"
    assert detail["limit"] == 10
    assert detail["used"] == 10
