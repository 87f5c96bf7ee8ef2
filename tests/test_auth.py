from datetime import datetime, timedelta

from fastapi.testclient import TestClient

from spinbet.config import SESSION_COOKIE_NAME
from spinbet.database import TransactionType, RecordStatus
from tests.helpers import register


def test_register_grants_signup_bonus(client, db, sent_emails):
    resp = register(client, "alice", fullName="Alice A")

    assert resp.status_code == 201
    body = resp.json()
    assert body["username"] == "alice"
    assert body["balance"] == 2000
    assert body["fullName"] == "Alice A"
    assert len(body["referralCode"]) == 8
    assert "password" not in body and "passwordHash" not in body
    assert "sessionToken" not in body

    txs = db.get_user_transactions(body["id"])
    assert len(txs) == 1
    assert txs[0].tx_type == TransactionType.SIGNUP_BONUS
    assert txs[0].amount == 2000
    assert txs[0].status == RecordStatus.COMPLETED

    assert any(mail["subject"].startswith("Welcome") for mail in sent_emails)


def test_register_logs_the_user_in(client):
    register(client, "alice")

    resp = client.get("/api/user")
    assert resp.status_code == 200
    assert resp.json()["username"] == "alice"


def test_referral_code_credits_referrer(client, db):
    referrer = register(client, "alice").json()

    resp = register(client, "bob", referralCode=referrer["referralCode"].lower())

    assert resp.status_code == 201
    assert resp.json()["referredBy"] == referrer["id"]

    alice = db.get_user(referrer["id"])
    assert alice.balance == 2000 + 1500

    bonus = [tx for tx in db.get_user_transactions(alice.id) if tx.tx_type == TransactionType.REFERRAL_BONUS]
    assert len(bonus) == 1
    assert bonus[0].amount == 1500
    assert bonus[0].details == "Referral bonus for referring bob"


def test_unknown_referral_code_is_ignored(client):
    resp = register(client, "alice", referralCode="NOSUCH99")

    assert resp.status_code == 201
    assert resp.json()["referredBy"] is None
    assert resp.json()["balance"] == 2000


def test_duplicate_username_is_case_insensitive(client):
    register(client, "alice")

    resp = register(client, "ALICE", email="other@example.com")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Username already exists"


def test_duplicate_email(client):
    register(client, "alice")

    resp = register(client, "bob", email="Alice@Example.com")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Email already exists"


def test_password_mismatch(client):
    resp = register(client, "alice", confirmPassword="different")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Passwords do not match"


def test_register_rejects_bad_username_and_short_password(client):
    assert register(client, "a!").status_code == 400
    assert register(client, "carol", password="123", confirmPassword="123").status_code == 400


def test_register_missing_field_is_400(client):
    resp = client.post("/api/register", json={"username": "alice"})

    assert resp.status_code == 400
    assert "detail" in resp.json()


def test_login_and_logout(client, app, sent_emails):
    register(client, "alice")
    client.post("/api/logout")
    assert client.get("/api/user").status_code == 401

    resp = client.post("/api/login", json={"username": "Alice", "password": "secret123"})

    assert resp.status_code == 200
    assert resp.json()["username"] == "alice"
    assert client.get("/api/user").status_code == 200
    assert any("Login Alert" in mail["subject"] for mail in sent_emails)

    assert client.post("/api/logout").status_code == 200
    assert client.get("/api/user").status_code == 401


def test_login_wrong_password(client):
    register(client, "alice")

    resp = client.post("/api/login", json={"username": "alice", "password": "wrong-pass"})

    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid username or password"


def test_unknown_user_cannot_login(client):
    resp = client.post("/api/login", json={"username": "ghost", "password": "whatever"})

    assert resp.status_code == 401


def test_bearer_token_is_accepted(app, client, db):
    user_id = register(client, "alice").json()["id"]
    token = db.get_user(user_id).session_token

    with TestClient(app) as other:
        assert other.get("/api/user").status_code == 401
        resp = other.get("/api/user", headers={"Authorization": f"Bearer {token}"})

    assert resp.status_code == 200
    assert resp.json()["id"] == user_id


def test_tampered_cookie_is_rejected(app, client, db):
    user_id = register(client, "alice").json()["id"]
    token = db.get_user(user_id).session_token

    with TestClient(app) as other:
        resp = other.get("/api/user", headers={"Cookie": f"{SESSION_COOKIE_NAME}={token}.forged"})

    assert resp.status_code == 401


def test_login_rate_limit(client):
    for _ in range(10):
        client.post("/api/login", json={"username": "ghost", "password": "whatever"})

    resp = client.post("/api/login", json={"username": "ghost", "password": "whatever"})

    assert resp.status_code == 429


def test_rate_limit_store_forgets_idle_clients(client, app):
    app.state.rate_limits["10.0.0.9"]["login"].append(datetime.utcnow() - timedelta(hours=2))

    client.post("/api/login", json={"username": "ghost", "password": "whatever"})

    assert "10.0.0.9" not in app.state.rate_limits
    assert len(app.state.rate_limits["testclient"]["login"]) == 1


def test_settings_partial_update(client, db):
    user_id = register(client, "alice", fullName="Alice").json()["id"]

    resp = client.patch("/api/users/settings", json={"hiddenBalance": True})

    assert resp.status_code == 200
    body = resp.json()
    assert body["hiddenBalance"] is True
    assert body["fullName"] == "Alice"
    assert db.get_user(user_id).hidden_balance is True


def test_settings_bank_details_notify_admin(client, sent_emails):
    register(client, "alice")
    sent_emails.clear()

    resp = client.patch("/api/users/settings", json={
        "bankName": "First Bank",
        "accountNumber": "0123456789",
        "accountName": "Alice A",
    })

    assert resp.status_code == 200
    assert resp.json()["accountNumber"] == "0123456789"
    assert [mail["to"] for mail in sent_emails] == ["admin@example.com"]
    assert sent_emails[0]["subject"] == "User Added Bank Details"


def test_settings_email_collision(client):
    register(client, "bob")
    register(client, "alice")

    resp = client.patch("/api/users/settings", json={"email": "BOB@example.com"})

    assert resp.status_code == 400


def test_settings_requires_auth(client):
    assert client.patch("/api/users/settings", json={"fullName": "X"}).status_code == 401


def test_change_password(client):
    register(client, "alice")

    wrong = client.patch("/api/users/password", json={"currentPassword": "nope123", "newPassword": "newsecret"})
    assert wrong.status_code == 400
    assert wrong.json()["detail"] == "Current password is incorrect"

    short = client.patch("/api/users/password", json={"currentPassword": "secret123", "newPassword": "123"})
    assert short.status_code == 400

    ok = client.patch("/api/users/password", json={"currentPassword": "secret123", "newPassword": "newsecret"})
    assert ok.status_code == 200

    client.post("/api/logout")
    assert client.post("/api/login", json={"username": "alice", "password": "secret123"}).status_code == 401
    assert client.post("/api/login", json={"username": "alice", "password": "newsecret"}).status_code == 200
