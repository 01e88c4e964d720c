"""Shared fixtures.

Settings are read at import time, so the environment is prepared before any
``userauth`` module is imported.
"""
import os
import re

os.environ.setdefault("SECRET_KEY", "testing_secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from userauth import crud
from userauth.core.config import settings
from userauth.core.security import create_user_token, get_password_hash
from userauth.database import Base, get_db
from userauth.errors import DeliveryError
from userauth.main import app
from userauth.utils import Notifier, get_notifier

OTP_IN_BODY = re.compile(r'class="otp">(\d{4})<')


class RecordingNotifier(Notifier):
    """Notifier that keeps messages in memory instead of talking SMTP."""

    def __init__(self):
        super().__init__(host="localhost", port=25)
        self.sent = []
        self.fail = False

    def send(self, to_email, subject, body):
        if self.fail:
            raise DeliveryError(error="relay refused")
        self.sent.append({"to": to_email, "subject": subject, "body": body})

    def last_otp(self, to_email=None):
        for message in reversed(self.sent):
            if to_email is None or message["to"] == to_email:
                return OTP_IN_BODY.search(message["body"]).group(1)
        raise AssertionError(f"no OTP sent to {to_email}")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(session_factory, notifier):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def registered(client, notifier):
    """Register and confirm Alice; returns the /verify-otp response body."""
    res = client.post("/users/register", json={
        "name": "Alice", "email": "a@x.com", "password": "secret1", "role": "user",
    })
    assert res.status_code == 200
    res = client.post("/users/verify-otp", json={"otp": notifier.last_otp("a@x.com")})
    assert res.status_code == 200
    return res.json()


@pytest.fixture
def make_user(db):
    def _make_user(email="a@x.com", password="secret1", name="Alice", **extra):
        fields = {"name": name, "email": email, "password": get_password_hash(password), "role": "user"}
        fields.update(extra)
        return crud.create_user(db, fields)

    return _make_user


@pytest.fixture
def bearer(make_user):
    """A stored user plus an Authorization header carrying their token."""
    user = make_user()
    return user, {"Authorization": f"Bearer {create_user_token(user.id, user.email)}"}


@pytest.fixture
def restore_session_cookie(client):
    """Put a previously captured session cookie back into the client's jar."""
    def _restore(value):
        client.cookies.delete(settings.SESSION_COOKIE)
        client.cookies.set(settings.SESSION_COOKIE, value)

    return _restore
