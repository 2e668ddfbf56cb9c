from datetime import timedelta

import pytest

import identity
import mailer
from database import utcnow


@pytest.fixture
def outbox(monkeypatch):
    sent = []
    monkeypatch.setattr(mailer, "send_otp_email", lambda recipient, code: sent.append((recipient, code)))
    return sent


def test_codes_are_six_digits():
    code = identity.generate_code()

    assert len(code) == 6
    assert code.isdigit()


def test_code_is_single_use(db):
    code = identity.store_code(db, "email:a@example.com")

    assert identity.consume_code(db, "email:a@example.com", "000000" if code != "000000" else "111111") is False
    assert identity.consume_code(db, "email:a@example.com", code) is True
    assert identity.consume_code(db, "email:a@example.com", code) is False


def test_expired_code_is_rejected_and_removed(db):
    identity.store_code(db, "email:a@example.com", code="123456")
    db["otp"].update_one({"key": "email:a@example.com"}, {"$set": {"expires_at": utcnow() - timedelta(seconds=1)}})

    assert identity.consume_code(db, "email:a@example.com", "123456") is False
    assert db["otp"].count_documents({}) == 0


def test_new_code_replaces_old(db):
    identity.store_code(db, "email:a@example.com", code="111111")
    identity.store_code(db, "email:a@example.com", code="222222")

    assert identity.consume_code(db, "email:a@example.com", "111111") is False
    assert identity.consume_code(db, "email:a@example.com", "222222") is True


def test_google_authorization_url_carries_state():
    url = identity.google_authorization_url("xyz")

    assert url.startswith(identity.GOOGLE_AUTH_URL)
    assert "state=xyz" in url
    assert "scope=openid+email+profile" in url


def test_phone_calls_fail_cleanly_without_twilio(monkeypatch):
    monkeypatch.setattr(identity, "TWILIO_ACCOUNT_SID", None)

    with pytest.raises(identity.UpstreamError):
        identity.send_phone_code("+911234567890")


def test_email_signup_flow(client, db, outbox):
    assert client.post("/user/auth/email/send-code?action=signup", json={"email": "New@Example.com"}).status_code == 200
    recipient, code = outbox[-1]
    assert recipient == "new@example.com"

    unverified = client.post(
        "/user/auth/email/register", json={"name": "New", "email": "new@example.com", "password": "secret123"}
    )
    assert unverified.status_code == 400

    verified = client.post("/user/auth/email/verify-code", json={"email": "new@example.com", "code": code})
    assert verified.json()["verified"] is True

    registered = client.post(
        "/user/auth/email/register", json={"name": "New", "email": "new@example.com", "password": "secret123"}
    )
    assert registered.status_code == 201
    assert registered.json()["user"]["email_verified"] is True
    assert db["otp"].count_documents({}) == 0


def test_signup_code_refused_for_registered_email(client, make_user, outbox):
    make_user(email="taken@example.com")

    response = client.post("/user/auth/email/send-code?action=signup", json={"email": "taken@example.com"})

    assert response.status_code == 400
    assert outbox == []


def test_email_code_login(client, make_user, outbox):
    user = make_user()
    client.post("/user/auth/email/send-code", json={"email": user["email"]})
    _, code = outbox[-1]

    response = client.post("/user/auth/email/verify-code?action=login", json={"email": user["email"], "code": code})

    assert response.status_code == 200
    assert client.cookies.get("token") == response.json()["token"]


def test_wrong_email_code(client, outbox):
    client.post("/user/auth/email/send-code", json={"email": "a@example.com"})
    _, code = outbox[-1]
    wrong = "000000" if code != "000000" else "111111"

    response = client.post("/user/auth/email/verify-code", json={"email": "a@example.com", "code": wrong})

    assert response.status_code == 400
    assert response.json()["details"]["fields"] == ["code"]


def test_phone_flow_registers_new_and_logs_in_existing(client, db, monkeypatch):
    monkeypatch.setattr(identity, "check_phone_code", lambda phone, code: code == "424242")

    assert client.post("/user/auth/phone/verify-code", json={"phone_number": "+911111111111", "code": "1"}).status_code == 400

    first = client.post("/user/auth/phone/verify-code", json={"phone_number": "+911111111111", "code": "424242"})
    assert first.json()["is_new_user"] is True

    registered = client.post("/user/auth/phone/register", json={"name": "Phone", "phone_number": "+911111111111"})
    assert registered.status_code == 201
    assert db["user"].find_one({"phone_number": "+911111111111"})["phone_verified"] is True

    again = client.post("/user/auth/phone/verify-code", json={"phone_number": "+911111111111", "code": "424242"})
    assert again.json()["is_new_user"] is False
    assert again.json()["token"]


def test_phone_register_requires_verification(client):
    response = client.post("/user/auth/phone/register", json={"name": "Phone", "phone_number": "+912222222222"})

    assert response.status_code == 400


def test_google_callback_rejects_unknown_state(client):
    response = client.get("/user/auth/google/callback", params={"code": "abc", "state": "forged"})

    assert response.status_code == 400


def test_google_callback_creates_account(client, db, monkeypatch):
    monkeypatch.setattr(
        identity, "google_profile", lambda code: {"sub": "g-1", "email": "G@Example.com", "name": "Gee"}
    )
    url = client.get("/user/auth/google").json()["url"]
    state = url.split("state=")[1].split("&")[0]

    response = client.get("/user/auth/google/callback", params={"code": "abc", "state": state})

    assert response.status_code == 200
    stored = db["user"].find_one({"google_id": "g-1"})
    assert stored["email"] == "g@example.com"
    assert stored["email_verified"] is True
