"""
Plan catalog and entitlement resolution.

Single source of truth for what each paid plan grants. Entitlements are
never persisted: they are recomputed from the stored plan key on every read,
so a catalog change applies retroactively without a data migration.

The catalog is built once at startup and injected where needed rather than
read from a module global, so tests can run against alternate catalogs.
"""
import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from theralink.core import config
from theralink.core.exceptions import UnmappedProductError

# Plan keys with special meaning
PLAN_NONE = "none"
PLAN_UNKNOWN = "unknown"

# Roles
ROLE_PATIENT = "patient"
ROLE_THERAPIST = "therapist"

# Roles whose plans cap the number of linked dependents (patients)
CAPACITY_ROLES = frozenset({ROLE_THERAPIST})

# Supported features
FEATURE_EXPORT = "export"
FEATURE_CHARTS = "charts"
FEATURE_TIMELINE = "timeline"
FEATURE_QUESTIONNAIRES = "questionnaires"

SUPPORTED_FEATURES: List[str] = [
    FEATURE_EXPORT,
    FEATURE_CHARTS,
    FEATURE_TIMELINE,
    FEATURE_QUESTIONNAIRES,
]


class CapacityMode(str, enum.Enum):
    """How the dependent-count limit applies to a resolved plan."""
    LIMITED = "limited"
    UNLIMITED = "unlimited"
    NOT_ENTITLED = "not_entitled"  # no bundle, or the role has no dependents


@dataclass(frozen=True)
class Plan:
    plan_key: str
    role: str
    name: str
    price: float
    product_id: str
    price_id: Optional[str] = None
    max_dependents: Optional[int] = None  # None = unlimited (capacity roles only)
    features: FrozenSet[str] = field(default_factory=frozenset)
    trial_days: int = 0
    highlighted: bool = False


@dataclass(frozen=True)
class Entitlements:
    """Resolved feature/capacity bundle for a plan key."""
    plan_key: str
    role: Optional[str]
    features: FrozenSet[str]
    capacity: CapacityMode
    max_dependents: Optional[int] = None  # set only when capacity is LIMITED

    @property
    def resolved(self) -> bool:
        return self.role is not None

    def to_dict(self) -> Dict:
        return {
            "plan": self.plan_key,
            "role": self.role,
            "features": {feature: feature in self.features for feature in SUPPORTED_FEATURES},
            "capacity": self.capacity.value,
            "max_patients": self.max_dependents,
        }


def zero_entitlements(plan_key: str = PLAN_NONE) -> Entitlements:
    """Bundle granted when a plan key does not resolve: nothing."""
    return Entitlements(
        plan_key=plan_key,
        role=None,
        features=frozenset(),
        capacity=CapacityMode.NOT_ENTITLED,
    )


class PlanCatalog:
    """
    Immutable lookup over a set of plans.

    Keyed by plan_key; provider product ids are the join key for inbound
    subscription data.
    """

    def __init__(self, plans: Iterable[Plan]):
        self._plans: Dict[str, Plan] = {}
        self._by_product: Dict[str, Plan] = {}

        for plan in plans:
            if plan.plan_key in (PLAN_NONE, PLAN_UNKNOWN):
                raise ValueError(f"Reserved plan key: {plan.plan_key}")
            if plan.plan_key in self._plans:
                raise ValueError(f"Duplicate plan key: {plan.plan_key}")
            if plan.product_id in self._by_product:
                raise ValueError(f"Duplicate product id: {plan.product_id}")
            unsupported = set(plan.features) - set(SUPPORTED_FEATURES)
            if unsupported:
                raise ValueError(f"Unsupported features for {plan.plan_key}: {sorted(unsupported)}")
            self._plans[plan.plan_key] = plan
            self._by_product[plan.product_id] = plan

    def __contains__(self, plan_key: str) -> bool:
        return plan_key in self._plans

    def __len__(self) -> int:
        return len(self._plans)

    @property
    def plan_keys(self) -> List[str]:
        return list(self._plans)

    def get_plan(self, plan_key: Optional[str]) -> Optional[Plan]:
        if not plan_key:
            return None
        return self._plans.get(plan_key)

    def plans_for_role(self, role: str) -> List[Plan]:
        return [plan for plan in self._plans.values() if plan.role == role]

    def require_plan_for_product(self, product_id: Optional[str]) -> str:
        """
        Map a provider product id to a plan key.

        Raises:
            UnmappedProductError: If the product is not in the catalog
        """
        plan = self._by_product.get(product_id) if product_id else None
        if not plan:
            raise UnmappedProductError(product_id)
        return plan.plan_key

    def plan_for_product(self, product_id: Optional[str]) -> str:
        """Map a provider product id to a plan key, or "unknown" when unmapped."""
        try:
            return self.require_plan_for_product(product_id)
        except UnmappedProductError:
            return PLAN_UNKNOWN

    def role_for_plan(self, plan_key: Optional[str]) -> Optional[str]:
        """
        Role a plan belongs to.

        Falls back to the plan key prefix (therapist_*, patient_*) for keys
        missing from this catalog, e.g. plans retired in a later deploy.
        """
        plan = self.get_plan(plan_key)
        if plan:
            return plan.role
        if plan_key:
            for role in (ROLE_THERAPIST, ROLE_PATIENT):
                if plan_key.startswith(f"{role}_"):
                    return role
        return None

    def resolve_entitlements(self, plan_key: Optional[str]) -> Entitlements:
        """
        Resolve the feature/capacity bundle for a plan key.

        Unknown, "none", "unknown" and missing keys resolve to the
        zero-entitlement bundle. Pure: no I/O, safe to call per request.
        """
        plan = self.get_plan(plan_key)
        if not plan:
            return zero_entitlements(plan_key or PLAN_NONE)

        if plan.role not in CAPACITY_ROLES:
            capacity = CapacityMode.NOT_ENTITLED
        elif plan.max_dependents is None:
            capacity = CapacityMode.UNLIMITED
        else:
            capacity = CapacityMode.LIMITED

        return Entitlements(
            plan_key=plan.plan_key,
            role=plan.role,
            features=frozenset(plan.features),
            capacity=capacity,
            max_dependents=plan.max_dependents if capacity == CapacityMode.LIMITED else None,
        )


def default_plans() -> List[Plan]:
    """Production plan table. Product/price ids come from config."""
    return [
        Plan(
            plan_key="patient_essential",
            role=ROLE_PATIENT,
            name="Essencial",
            price=24.90,
            product_id=config.STRIPE_PRODUCT_PATIENT_ESSENTIAL,
            price_id=config.STRIPE_PRICE_PATIENT_ESSENTIAL,
            features=frozenset({FEATURE_CHARTS, FEATURE_TIMELINE, FEATURE_QUESTIONNAIRES}),
            trial_days=14,
            highlighted=True,
        ),
        Plan(
            plan_key="therapist_starter",
            role=ROLE_THERAPIST,
            name="Starter",
            price=59.90,
            product_id=config.STRIPE_PRODUCT_THERAPIST_STARTER,
            price_id=config.STRIPE_PRICE_THERAPIST_STARTER,
            max_dependents=10,
            features=frozenset({FEATURE_TIMELINE}),
            trial_days=7,
        ),
        Plan(
            plan_key="therapist_growth",
            role=ROLE_THERAPIST,
            name="Growth",
            price=89.90,
            product_id=config.STRIPE_PRODUCT_THERAPIST_GROWTH,
            price_id=config.STRIPE_PRICE_THERAPIST_GROWTH,
            max_dependents=30,
            features=frozenset({FEATURE_CHARTS, FEATURE_TIMELINE, FEATURE_QUESTIONNAIRES}),
            trial_days=7,
            highlighted=True,
        ),
        Plan(
            plan_key="therapist_scale",
            role=ROLE_THERAPIST,
            name="Scale",
            price=159.90,
            product_id=config.STRIPE_PRODUCT_THERAPIST_SCALE,
            price_id=config.STRIPE_PRICE_THERAPIST_SCALE,
            max_dependents=100,
            features=frozenset({FEATURE_EXPORT, FEATURE_CHARTS, FEATURE_TIMELINE, FEATURE_QUESTIONNAIRES}),
            trial_days=7,
        ),
    ]


def build_plan_catalog(plans: Optional[Iterable[Plan]] = None) -> PlanCatalog:
    """Build the catalog used for the lifetime of the process."""
    return PlanCatalog(default_plans() if plans is None else plans)
