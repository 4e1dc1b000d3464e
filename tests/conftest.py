"""
Shared fixtures: in-memory database, plan catalog, an in-memory Stripe stand-in
and an API client wired to all three.
"""
import json
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import theralink.db.models  # noqa: F401
from theralink.main import app
from theralink.api.deps import get_billing_provider, get_plan_catalog
from theralink.core.exceptions import VerificationError
from theralink.core.plan_catalog import build_plan_catalog
from theralink.core.security import create_access_token
from theralink.db.base import Base
from theralink.db.models.user import User
from theralink.db.session import get_db
from theralink.services.subscription_store import get_subscription


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

FAKE_SIGNATURE = "t=1,v1=fake"
PERIOD_END = 1795000000  # 2026-11-18 11:06:40 UTC


class FakeBillingProvider:
    """In-memory BillingProvider. Set `error` to make every lookup raise it."""

    def __init__(self):
        self.customers = {}
        self.subscriptions = {}
        self.error = None
        self.lookups = []

    def add_customer(self, customer_id, email):
        self.customers[customer_id] = email

    def add_subscription(self, customer_id, subscription):
        self.subscriptions.setdefault(customer_id, []).append(subscription)

    def construct_event(self, payload, signature):
        if signature != FAKE_SIGNATURE:
            raise VerificationError("Invalid signature")
        try:
            return json.loads(payload)
        except ValueError as e:
            raise VerificationError(f"Invalid webhook payload: {e}")

    def _lookup(self, name):
        self.lookups.append(name)
        if self.error:
            raise self.error

    def get_customer_email(self, customer_id):
        self._lookup("get_customer_email")
        return self.customers.get(customer_id)

    def find_customer_id_by_email(self, email):
        self._lookup("find_customer_id_by_email")
        for customer_id, customer_email in self.customers.items():
            if customer_email.lower() == email.lower():
                return customer_id
        return None

    def find_subscription(self, customer_id, status):
        self._lookup("find_subscription")
        for subscription in self.subscriptions.get(customer_id, []):
            if subscription["status"] == status:
                return subscription
        return None


def subscription_payload(
    product_id,
    status="active",
    customer_id="cus_123",
    subscription_id="sub_123",
    period_end=PERIOD_END
):
    """Stripe subscription object, trimmed to the fields we read."""
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": status,
        "current_period_end": period_end,
        "items": {"data": [{"price": {"id": "price_123", "product": product_id}}]},
    }


def invoice_payload(customer_id="cus_123", subscription_id="sub_123"):
    return {
        "id": "in_123",
        "object": "invoice",
        "customer": customer_id,
        "subscription": subscription_id,
    }


def stripe_event(event_type, obj, event_id="evt_123"):
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


@pytest.fixture
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def catalog():
    return build_plan_catalog()


@pytest.fixture
def provider():
    return FakeBillingProvider()


@pytest.fixture
def make_user(db):
    """Factory for directory users."""
    def _make_user(email, role=None, full_name="Test User"):
        user = User(full_name=full_name, email=email, role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def therapist(make_user):
    return make_user("therapist@example.com", role="therapist", full_name="Test Therapist")


@pytest.fixture
def patient(make_user):
    return make_user("patient@example.com", role="patient", full_name="Test Patient")


@pytest.fixture
def stored_subscription(db):
    """Re-read a user's record, bypassing anything cached in the test session."""
    def _stored(user_id):
        db.expire_all()
        return get_subscription(db, user_id)
    return _stored


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}
    return _headers


@pytest.fixture
def client(db, provider, catalog):
    """Test client using the test database, the fake provider and the catalog fixture."""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_provider] = lambda: provider
    app.dependency_overrides[get_plan_catalog] = lambda: catalog
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
