# tests/api/v1/test_signups_api.py
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from signup_service.constants.signup import SignupStatus
from signup_service.utils.dates import utcnow
from tests.utils.factories import add_signup, create_instance, statuses


def test_create_signup_api(client: TestClient, db_session: Session):
    instance = create_instance(db_session, student_capacity=1)

    response = client.post("/api/v1/signups", json={"instance_id": instance.id})

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "CONFIRMED"
    assert data["signup"]["user_id"] == "user_student_1"
    assert data["signup"]["instance_id"] == instance.id


def test_second_signup_is_waitlisted(client: TestClient, db_session: Session):
    instance = create_instance(db_session, student_capacity=1)
    add_signup(db_session, instance=instance, user_id="someone_else")

    response = client.post("/api/v1/signups", json={"instance_id": instance.id})

    assert response.status_code == 201
    assert response.json()["status"] == "WAITLIST"


def test_signup_errors_map_to_stable_codes(client: TestClient, db_session: Session):
    instance = create_instance(db_session, student_capacity=1, waitlist_enabled=False)
    add_signup(db_session, instance=instance, user_id="someone_else")

    missing = client.post("/api/v1/signups", json={"instance_id": "inst_missing"})
    full = client.post("/api/v1/signups", json={"instance_id": instance.id})

    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"
    assert full.status_code == 409
    assert full.json()["code"] == "CONFLICT"
    assert full.json()["detail"] == "Session is full and waitlist is disabled"


def test_cancel_own_signup_api(client: TestClient, db_session: Session):
    instance = create_instance(db_session)
    signup = add_signup(db_session, instance=instance, user_id="user_student_1")

    response = client.post(f"/api/v1/signups/{signup.id}/cancel")

    assert response.status_code == 200
    assert response.json()["signup"]["status"] == "CANCELLED"


def test_accept_and_decline_without_offer_are_not_found(client: TestClient, db_session: Session):
    instance = create_instance(db_session)

    accept = client.post(f"/api/v1/instances/{instance.id}/waitlist/accept")
    decline = client.post(f"/api/v1/instances/{instance.id}/waitlist/decline")

    assert accept.status_code == 404
    assert decline.status_code == 404


def test_accept_expired_offer_is_gone(client: TestClient, db_session: Session):
    instance = create_instance(db_session)
    add_signup(db_session, instance=instance, user_id="user_student_1", status=SignupStatus.WAITLIST_PENDING,
               waitlist_notified_at=utcnow() - timedelta(hours=13))

    response = client.post(f"/api/v1/instances/{instance.id}/waitlist/accept")

    assert response.status_code == 410
    assert response.json()["code"] == "EXPIRED"


def test_waitlist_position_api(client: TestClient, db_session: Session):
    instance = create_instance(db_session, student_capacity=1)
    add_signup(db_session, instance=instance, user_id="holder")
    add_signup(db_session, instance=instance, user_id="user_student_1", status=SignupStatus.WAITLIST)

    response = client.get(f"/api/v1/instances/{instance.id}/waitlist/position")

    assert response.status_code == 200
    assert response.json()["position"] == 1


def test_conflicts_api_returns_empty_list(client: TestClient, db_session: Session):
    instance = create_instance(db_session)

    response = client.get(f"/api/v1/instances/{instance.id}/conflicts")

    assert response.status_code == 200
    assert response.json() == []


def test_bulk_remove_requires_admin(client: TestClient):
    response = client.post("/api/v1/signups/bulk-remove", json={"signup_ids": ["sgn_1"]})

    assert response.status_code == 403


def test_bulk_remove_as_admin(client: TestClient, db_session: Session, current_user):
    current_user.act_as("admin_1", role="ADMIN")
    instance = create_instance(db_session, student_capacity=2)
    signup = add_signup(db_session, instance=instance, user_id="u1")

    response = client.post(
        "/api/v1/signups/bulk-remove", json={"signup_ids": [signup.id, "sgn_missing"]}
    )

    assert response.status_code == 200
    assert [item["success"] for item in response.json()] == [True, False]
    assert statuses(db_session, instance.id) == {}
