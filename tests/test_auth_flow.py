from datetime import timedelta

from jose import jwt

from app.millstock.core.security import create_user_access_token, decode_token, settings
from tests.ledger_helpers import PASSWORD, create_user, create_warehouse


def test_login_success(client, db_session):
    create_user(db_session, suffix="jane", role="WAREHOUSE_MANAGER")

    response = client.post(
        "/millstock/auth/login",
        json={"email": "user-jane@example.com", "password": PASSWORD},
    )
    assert response.status_code == 200
    assert response.json()["access_token"]
    assert response.json()["token_type"] == "bearer"


def test_login_invalid_password(client, db_session):
    create_user(db_session, suffix="jane")

    response = client.post(
        "/millstock/auth/login",
        json={"username_or_email": "user-jane", "password": "wrong-pass"},
    )
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_CREDENTIALS"
    assert response.json()["trace_id"]


def test_login_blocked_inactive(client, db_session):
    create_user(db_session, suffix="jane", is_active=False)

    response = client.post(
        "/millstock/auth/login",
        json={"username_or_email": "user-jane", "password": PASSWORD},
    )
    assert response.status_code == 403
    assert response.json()["code"] == "USER_INACTIVE"


def test_login_requires_identifier(client):
    response = client.post("/millstock/auth/login", json={"password": PASSWORD})
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_me_unauthorized(client):
    response = client.get("/millstock/auth/me")
    assert response.status_code == 401
    assert response.json()["trace_id"]


def test_me_invalid_token(client):
    response = client.get("/millstock/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_TOKEN"


def test_me_authorized(client, db_session):
    yard = create_warehouse(db_session, "YARD")
    user = create_user(db_session, suffix="jane", role="SUPERVISOR", warehouses=[yard])

    token = client.post(
        "/millstock/auth/login",
        json={"username_or_email": "user-jane@example.com", "password": PASSWORD},
    ).json()["access_token"]

    me_response = client.get("/millstock/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me_response.status_code == 200
    payload = me_response.json()
    assert payload["id"] == str(user.id)
    assert payload["role"] == "SUPERVISOR"
    assert payload["is_active"] is True
    assert payload["warehouse_ids"] == [str(yard.id)]


def test_login_writes_audit_event(client, db_session):
    from app.millstock.db.models import AuditEvent

    user = create_user(db_session, suffix="jane")
    client.post("/millstock/auth/login", json={"username_or_email": "user-jane", "password": PASSWORD})
    client.post("/millstock/auth/login", json={"username_or_email": "user-jane", "password": "nope"})

    db_session.expire_all()
    actions = [
        row.action for row in db_session.query(AuditEvent).filter(AuditEvent.user_id == user.id).order_by(AuditEvent.created_at)
    ]
    assert "auth.login" in actions
    assert "auth.login.failed" in actions


def test_expired_or_foreign_tokens_are_rejected(client, db_session):
    user = create_user(db_session, suffix="jane")
    expired = create_user_access_token(user, expires_delta=timedelta(minutes=-1))
    foreign = jwt.encode(
        {"sub": str(user.id), "role": "ADMIN", "username": user.username},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )

    for token in (expired, foreign):
        response = client.get("/millstock/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"


def test_token_carries_minimal_claims(db_session):
    user = create_user(db_session, suffix="jane", role="STAFF")

    claims = decode_token(create_user_access_token(user))

    assert claims["sub"] == str(user.id)
    assert claims["role"] == "STAFF"
    assert claims["typ"] == "access"
    assert "email" not in claims
