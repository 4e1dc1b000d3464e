"""
Pydantic schemas for billing endpoints.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ReconcileResponse(BaseModel):
    """Response schema for POST /billing/check-subscription."""
    subscribed: bool = Field(..., description="Whether an active or trialing subscription was found")
    plan: str = Field(..., description="Plan key, 'none' or 'unknown'")
    product_id: Optional[str] = Field(None, description="Stripe product of the subscription")
    subscription_end: Optional[str] = Field(None, description="Current period end (ISO 8601)")

    class Config:
        json_schema_extra = {
            "example": {
                "subscribed": True,
                "plan": "therapist_growth",
                "product_id": "prod_TrGst1UgwisJ68",
                "subscription_end": "2026-11-19T12:00:00+00:00"
            }
        }


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe."""
    received: bool = Field(True, description="Event was processed")


class BillingErrorResponse(BaseModel):
    """Error response schema for billing operations."""
    error: str = Field(..., description="Error message")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Invalid signature"
            }
        }


class PlanResponse(BaseModel):
    """Public view of a catalog plan."""
    plan_key: str = Field(..., description="Stable plan identifier")
    role: str = Field(..., description="Role the plan is sold to (patient, therapist)")
    name: str = Field(..., description="Display name")
    price: float = Field(..., description="Monthly price")
    price_id: Optional[str] = Field(None, description="Stripe price used for checkout")
    max_patients: Optional[int] = Field(None, description="Active patient limit (therapist plans)")
    features: List[str] = Field(..., description="Features included in the plan")
    trial_days: int = Field(0, description="Free trial length in days")
    highlighted: bool = Field(False, description="Recommended plan for its role")

    class Config:
        json_schema_extra = {
            "example": {
                "plan_key": "therapist_starter",
                "role": "therapist",
                "name": "Starter",
                "price": 59.90,
                "price_id": "price_1StYGZENOmAXvvJcXESZg3do",
                "max_patients": 10,
                "features": ["timeline"],
                "trial_days": 7,
                "highlighted": False
            }
        }


class EntitlementsResponse(BaseModel):
    """Response schema for GET /me/entitlements."""
    plan: str = Field(..., description="Stored plan key")
    status: str = Field(..., description="Stored subscription status")
    role: Optional[str] = Field(None, description="Role of the resolved plan (None when unresolved)")
    subscribed: bool = Field(..., description="Status is active or trialing")
    current_period_end: Optional[str] = Field(None, description="Current period end (ISO 8601)")
    features: Dict[str, bool] = Field(..., description="Feature name to access flag")
    capacity: str = Field(..., description="limited, unlimited or not_entitled")
    max_patients: Optional[int] = Field(None, description="Active patient limit when capacity is limited")

    class Config:
        json_schema_extra = {
            "example": {
                "plan": "therapist_growth",
                "status": "active",
                "role": "therapist",
                "subscribed": True,
                "current_period_end": "2026-11-19T12:00:00",
                "features": {
                    "export": False,
                    "charts": True,
                    "timeline": True,
                    "questionnaires": True
                },
                "capacity": "limited",
                "max_patients": 30
            }
        }


class CapacityResponse(BaseModel):
    """Response schema for GET /me/capacity."""
    current_patients: int = Field(..., description="Active patient links")
    max_patients: Optional[int] = Field(None, description="Active patient limit (None when not limited)")
    capacity: str = Field(..., description="limited, unlimited or not_entitled")
    can_add_patient: bool = Field(..., description="Whether another patient may be linked")
    usage_percent: float = Field(..., description="Share of the limit in use, capped at 100")
    is_near_limit: bool = Field(..., description="Usage at or above the warning threshold")
    is_at_limit: bool = Field(..., description="No room left under the limit")

    class Config:
        json_schema_extra = {
            "example": {
                "current_patients": 8,
                "max_patients": 10,
                "capacity": "limited",
                "can_add_patient": True,
                "usage_percent": 80.0,
                "is_near_limit": True,
                "is_at_limit": False
            }
        }


class FeatureAccessResponse(BaseModel):
    """Response schema for GET /me/features/{feature}."""
    feature: str = Field(..., description="Feature name")
    allowed: bool = Field(..., description="Always true; denials answer 402")

