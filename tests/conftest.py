import re
from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from notifications import Mailer

OTP_RE = re.compile(r'class="otp-code"[^>]*>(\d{6})<')
PASSWORD = "secret1"


class RecordingMailer(Mailer):
    def __init__(self):
        super().__init__(host=None)
        self.sent = []
        self.fail = False

    def send(self, to, subject, html):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append((to, subject, html))

    def last_otp(self, email):
        for to, _, html in reversed(self.sent):
            match = OTP_RE.search(html)
            if to == email and match:
                return match.group(1)
        return None


class FakeClock:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings():
    return Settings(
        database_name="breadbox_test",
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        full_text_search=False,
    )


@pytest.fixture
def db():
    return mongomock.MongoClient()["breadbox_test"]


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(settings, db, mailer, clock):
    return create_app(settings, db=db, mailer=mailer, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def register_and_login(client, mailer, family, email, name="Asha Rao", phone="9876543210", **extra):
    body = {"name": name, "email": email, "password": PASSWORD, "phone_number": phone,
            "address": "12 MG Road, Pune", **extra}
    resp = client.post(f"/api/{family}/register", json=body)
    assert resp.status_code == 201, resp.text
    resp = client.post(f"/api/{family}/verify-otp", json={"email": email, "otp": mailer.last_otp(email)})
    assert resp.status_code == 200, resp.text
    resp = client.post(f"/api/{family}/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


@pytest.fixture
def user_token(client, mailer):
    return register_and_login(client, mailer, "auth", "asha@example.com")


@pytest.fixture
def vendor_token(client, mailer):
    return register_and_login(client, mailer, "vendor", "kitchen@example.com", name="Morning Kitchen")


@pytest.fixture
def other_vendor_token(client, mailer):
    return register_and_login(client, mailer, "vendor", "bakery@example.com", name="Sunrise Bakery",
                              phone="9123456780")
