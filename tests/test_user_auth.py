import pytest

import database
import principals
from conftest import PASSWORD, bearer, register_and_login
from errors import DuplicateEmail

REGISTRATION = {
    "name": "Asha Rao",
    "email": "a@b.com",
    "password": PASSWORD,
    "phone_number": "9876543210",
    "address": "12 MG Road, Pune",
}


def test_register_stores_hashes_not_plaintext(client, db, mailer):
    resp = client.post("/api/auth/register", json=REGISTRATION)
    assert resp.status_code == 201
    assert "password_hash" not in resp.json()["user"]

    doc = db[database.USERS].find_one({"email": "a@b.com"})
    code = mailer.last_otp("a@b.com")
    assert doc["password_hash"] != PASSWORD
    assert doc["otp_hash"] != code
    assert doc["is_verified"] is False
    assert doc["role"] == "user"


def test_register_normalizes_email(client, db):
    resp = client.post("/api/auth/register", json={**REGISTRATION, "email": "  A@B.Com "})
    assert resp.status_code == 201
    assert db[database.USERS].find_one({"email": "a@b.com"}) is not None


def test_duplicate_registration_fails(client):
    assert client.post("/api/auth/register", json=REGISTRATION).status_code == 201
    resp = client.post("/api/auth/register", json={**REGISTRATION, "email": "A@b.com"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "duplicate_email"


def test_unique_index_rejects_duplicate_insert(app):
    """Registration never checks before inserting; the unique email index alone
    decides, so two racing registrations resolve to one insert and one DuplicateEmail."""
    store = app.state.store
    record = {"email": "dup@example.com", "name": "Dup"}
    store.create_principal(database.USERS, record)
    with pytest.raises(DuplicateEmail):
        store.create_principal(database.USERS, record)
    assert store.count_documents(database.USERS, {"email": "dup@example.com"}) == 1


@pytest.mark.parametrize("field,value", [
    ("email", "not-an-email"),
    ("password", "123"),
    ("phone_number", "12345"),
    ("role", "superuser"),
])
def test_register_validation(client, field, value):
    resp = client.post("/api/auth/register", json={**REGISTRATION, field: value})
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


def test_login_before_verification_is_rejected(client):
    client.post("/api/auth/register", json=REGISTRATION)
    resp = client.post("/api/auth/login", json={"email": "a@b.com", "password": PASSWORD})
    assert resp.status_code == 400
    assert "token" not in resp.json()
    assert resp.json()["message"] == "Email not verified. Please verify OTP."


def test_verify_once_then_already_verified(client, mailer):
    client.post("/api/auth/register", json=REGISTRATION)
    code = mailer.last_otp("a@b.com")

    resp = client.post("/api/auth/verify-otp", json={"email": "a@b.com", "otp": code})
    assert resp.status_code == 200
    assert resp.json()["user"]["is_verified"] is True

    resp = client.post("/api/auth/verify-otp", json={"email": "a@b.com", "otp": code})
    assert resp.status_code == 400
    assert resp.json()["error"] == "already_verified"

    resp = client.post("/api/auth/resend-otp", json={"email": "a@b.com"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "already_verified"


def test_verification_clears_otp_material(client, db, mailer):
    client.post("/api/auth/register", json=REGISTRATION)
    client.post("/api/auth/verify-otp", json={"email": "a@b.com", "otp": mailer.last_otp("a@b.com")})
    doc = db[database.USERS].find_one({"email": "a@b.com"})
    assert "otp_hash" not in doc
    assert "otp_expiry" not in doc


def test_otp_expires_after_ten_minutes(client, mailer, clock):
    client.post("/api/auth/register", json=REGISTRATION)
    code = mailer.last_otp("a@b.com")
    clock.advance(minutes=10, seconds=1)

    resp = client.post("/api/auth/verify-otp", json={"email": "a@b.com", "otp": code})
    assert resp.status_code == 400
    assert resp.json()["error"] == "otp_expired"
    assert resp.json()["message"] == "Invalid or expired OTP"


def test_otp_valid_just_inside_window(client, mailer, clock):
    client.post("/api/auth/register", json=REGISTRATION)
    clock.advance(minutes=9, seconds=59)
    resp = client.post("/api/auth/verify-otp", json={"email": "a@b.com", "otp": mailer.last_otp("a@b.com")})
    assert resp.status_code == 200


def test_resend_invalidates_previous_code(client, mailer, monkeypatch):
    codes = iter(["111111", "222222"])
    monkeypatch.setattr(principals, "generate_otp", lambda: next(codes))
    client.post("/api/auth/register", json=REGISTRATION)
    first = mailer.last_otp("a@b.com")

    assert client.post("/api/auth/resend-otp", json={"email": "a@b.com"}).status_code == 200
    second = mailer.last_otp("a@b.com")
    assert mailer.sent[-1][1].startswith("Resend OTP")

    assert (first, second) == ("111111", "222222")

    resp = client.post("/api/auth/verify-otp", json={"email": "a@b.com", "otp": first})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid or expired OTP"

    resp = client.post("/api/auth/verify-otp", json={"email": "a@b.com", "otp": second})
    assert resp.status_code == 200


def test_resend_resets_expiry(client, mailer, clock):
    client.post("/api/auth/register", json=REGISTRATION)
    clock.advance(minutes=9)
    client.post("/api/auth/resend-otp", json={"email": "a@b.com"})
    clock.advance(minutes=9)
    resp = client.post("/api/auth/verify-otp", json={"email": "a@b.com", "otp": mailer.last_otp("a@b.com")})
    assert resp.status_code == 200


def test_verify_unknown_email(client):
    resp = client.post("/api/auth/verify-otp", json={"email": "ghost@example.com", "otp": "123456"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "User not found"


def test_login_wrong_password(client, mailer):
    register_and_login(client, mailer, "auth", "a@b.com")
    resp = client.post("/api/auth/login", json={"email": "a@b.com", "password": "wrong-pass"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Incorrect password"


def test_profile_update_round_trip(client, mailer):
    token = register_and_login(client, mailer, "auth", "a@b.com")

    resp = client.put("/api/auth/update-user", headers=bearer(token),
                      json={"email": "a@b.com", "name": "Asha R. Kulkarni"})
    assert resp.status_code == 200
    subject = mailer.sent[-1][1]
    assert "Updated" in subject
    assert "name" in mailer.sent[-1][2]

    resp = client.get("/api/auth/dashboard", headers=bearer(token))
    assert resp.status_code == 200
    assert resp.json()["message"] == "Welcome to the dashboard, Asha R. Kulkarni"


def test_profile_update_without_changes(client, mailer):
    token = register_and_login(client, mailer, "auth", "a@b.com")
    resp = client.put("/api/auth/update-user", headers=bearer(token),
                      json={"email": "a@b.com", "name": "Asha Rao"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "No changes provided"


def test_profile_update_for_other_email_is_unauthorized(client, mailer):
    token = register_and_login(client, mailer, "auth", "a@b.com")
    register_and_login(client, mailer, "auth", "c@d.com")
    resp = client.put("/api/auth/update-user", headers=bearer(token),
                      json={"email": "c@d.com", "name": "Hijacked"})
    assert resp.status_code == 401


def test_update_password_rehashes(client, db, mailer):
    token = register_and_login(client, mailer, "auth", "a@b.com")
    before = db[database.USERS].find_one({"email": "a@b.com"})["password_hash"]

    resp = client.put("/api/auth/update-password", headers=bearer(token),
                      json={"email": "a@b.com", "current_password": "nope-nope", "new_password": "newsecret"})
    assert resp.status_code == 400

    resp = client.put("/api/auth/update-password", headers=bearer(token),
                      json={"email": "a@b.com", "current_password": PASSWORD, "new_password": "newsecret"})
    assert resp.status_code == 200
    after = db[database.USERS].find_one({"email": "a@b.com"})["password_hash"]
    assert after != before and after != "newsecret"

    assert client.post("/api/auth/login", json={"email": "a@b.com", "password": PASSWORD}).status_code == 400
    assert client.post("/api/auth/login", json={"email": "a@b.com", "password": "newsecret"}).status_code == 200


def test_delete_account_invalidates_existing_token(client, db, mailer):
    token = register_and_login(client, mailer, "auth", "a@b.com")
    resp = client.request("DELETE", "/api/auth/delete-account", headers=bearer(token),
                          json={"email": "a@b.com", "password": PASSWORD})
    assert resp.status_code == 200
    assert db[database.USERS].find_one({"email": "a@b.com"}) is None
    assert "Deleted" in mailer.sent[-1][1]

    resp = client.get("/api/auth/dashboard", headers=bearer(token))
    assert resp.status_code == 401
    assert resp.json()["error"] == "principal_not_found"


def test_logout_requires_token(client, user_token):
    assert client.post("/api/auth/logout").status_code == 401
    assert client.post("/api/auth/logout", headers=bearer(user_token)).status_code == 200


def test_mail_failure_does_not_fail_registration(client, db, mailer):
    mailer.fail = True
    resp = client.post("/api/auth/register", json=REGISTRATION)
    assert resp.status_code == 201
    assert db[database.USERS].find_one({"email": "a@b.com"}) is not None


def test_update_document_returns_copy_when_filter_fields_change(app):
    store = app.state.store
    doc = store.create_document(database.USERS, {"email": "flip@example.com", "is_verified": False,
                                                 "otp_hash": "h"})
    updated = store.update_document(database.USERS, {"_id": doc["_id"], "is_verified": False, "otp_hash": "h"},
                                    {"is_verified": True}, unset=["otp_hash"])
    assert updated["_id"] == doc["_id"]
    assert updated["is_verified"] is True
    assert "otp_hash" not in updated
    assert store.update_document(database.USERS, {"_id": doc["_id"], "is_verified": False},
                                 {"is_verified": True}) is None
