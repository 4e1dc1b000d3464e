"""
Integration tests for the /me entitlement endpoints and the health check.
"""
from theralink.core.security import create_access_token
from theralink.db.models.patient_link import PatientTherapistRelation
from theralink.services.subscription_store import upsert_subscription


def link_patients(db, therapist, active, pending=0):
    links = [PatientTherapistRelation(therapist_id=therapist.id, status="active") for _ in range(active)]
    links += [PatientTherapistRelation(therapist_id=therapist.id, status="pending") for _ in range(pending)]
    db.add_all(links)
    db.commit()


def test_entitlements_without_record(client, patient, auth_headers):
    response = client.get("/me/entitlements", headers=auth_headers(patient))

    assert response.status_code == 200
    data = response.json()
    assert data["plan"] == "none"
    assert data["status"] == "inactive"
    assert data["subscribed"] is False
    assert data["role"] is None
    assert data["capacity"] == "not_entitled"
    assert data["max_patients"] is None
    assert not any(data["features"].values())


def test_entitlements_for_paid_plan(client, db, therapist, auth_headers):
    upsert_subscription(db, therapist.id, default_role="therapist", plan="therapist_growth", status="active")

    data = client.get("/me/entitlements", headers=auth_headers(therapist)).json()

    assert data["plan"] == "therapist_growth"
    assert data["status"] == "active"
    assert data["subscribed"] is True
    assert data["role"] == "therapist"
    assert data["capacity"] == "limited"
    assert data["max_patients"] == 30
    assert data["features"] == {
        "export": False,
        "charts": True,
        "timeline": True,
        "questionnaires": True,
    }


def test_past_due_keeps_features(client, db, therapist, auth_headers):
    upsert_subscription(db, therapist.id, default_role="therapist", plan="therapist_scale", status="active")
    upsert_subscription(db, therapist.id, status="past_due")

    data = client.get("/me/entitlements", headers=auth_headers(therapist)).json()

    assert data["status"] == "past_due"
    assert data["subscribed"] is False
    assert data["features"]["export"] is True


def test_unknown_user(client):
    token = create_access_token({"sub": "ghost@example.com"})

    response = client.get("/me/entitlements", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 404


def test_capacity_counts_active_links_only(client, db, therapist, auth_headers):
    upsert_subscription(db, therapist.id, default_role="therapist", plan="therapist_starter", status="active")
    link_patients(db, therapist, active=2, pending=3)

    data = client.get("/me/capacity", headers=auth_headers(therapist)).json()

    assert data["current_patients"] == 2
    assert data["max_patients"] == 10
    assert data["usage_percent"] == 20.0
    assert data["can_add_patient"] is True
    assert data["is_near_limit"] is False


def test_capacity_check_under_limit(client, db, therapist, auth_headers):
    upsert_subscription(db, therapist.id, default_role="therapist", plan="therapist_starter", status="active")
    link_patients(db, therapist, active=9)

    response = client.post("/me/patients/capacity-check", headers=auth_headers(therapist))

    assert response.status_code == 200
    assert response.json()["is_near_limit"] is True


def test_capacity_check_at_limit(client, db, therapist, auth_headers):
    upsert_subscription(db, therapist.id, default_role="therapist", plan="therapist_starter", status="active")
    link_patients(db, therapist, active=10)

    response = client.post("/me/patients/capacity-check", headers=auth_headers(therapist))

    assert response.status_code == 402
    detail = response.json()["detail"]
    assert detail["code"] == "PAYWALL"
    assert detail["feature"] == "patient_capacity"
    assert detail["plan"] == "therapist_starter"
    assert detail["limit"] == 10
    assert detail["used"] == 10


def test_capacity_check_without_plan(client, therapist, auth_headers):
    response = client.post("/me/patients/capacity-check", headers=auth_headers(therapist))

    assert response.status_code == 402


def test_feature_gate(client, db, therapist, auth_headers):
    upsert_subscription(db, therapist.id, default_role="therapist", plan="therapist_growth", status="active")
    headers = auth_headers(therapist)

    allowed = client.get("/me/features/charts", headers=headers)
    denied = client.get("/me/features/export", headers=headers)
    unknown = client.get("/me/features/teleport", headers=headers)

    assert allowed.status_code == 200
    assert allowed.json() == {"feature": "charts", "allowed": True}
    assert denied.status_code == 402
    assert denied.json()["detail"]["code"] == "PAYWALL"
    assert unknown.status_code == 402


def test_health(client):
    response = client.get("/system/health")

    assert response.status_code == 200
    assert response.json()["database"] == "connected"
