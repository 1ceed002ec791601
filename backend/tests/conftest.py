import os
from datetime import timedelta

# Settings are read at import time, so the environment must be fixed first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "development"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RECAPTCHA_SECRET_KEY"] = ""
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ.pop("SMTP_USERNAME", None)
os.environ.pop("SMTP_PASSWORD", None)

import pytest  # noqa: E402
from fastapi import Depends  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from app.main import app  # noqa: E402
from app.core.database import Base, SessionLocal, engine, get_db  # noqa: E402
from app.core.security import utcnow  # noqa: E402
from app.api.dependencies import get_bot_verifier, get_mailer, get_password_reset_service  # noqa: E402
from app.services.mail_service import Mailer  # noqa: E402
from app.services.password_reset_service import PasswordResetService  # noqa: E402

HUMAN_TOKEN = "human-token"


class FakeBotVerifier:
    """Accepts only HUMAN_TOKEN and records what it was asked"""

    def __init__(self):
        self.calls = []

    async def verify(self, token):
        self.calls.append(token)
        return token == HUMAN_TOKEN


class FakeMailer(Mailer):
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send_reset_code(self, email, code, expire_minutes):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append((email, code, expire_minutes))
        return True


class FakeClock:
    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, minutes: int):
        self.now = self.now + timedelta(minutes=minutes)


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bot_verifier():
    return FakeBotVerifier()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def client(bot_verifier, mailer, clock):
    def _reset_service(db: Session = Depends(get_db)) -> PasswordResetService:
        return PasswordResetService(db, clock=clock)

    app.dependency_overrides[get_bot_verifier] = lambda: bot_verifier
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_password_reset_service] = _reset_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def register_payload(**overrides) -> dict:
    payload = {
        "firstName": "Alice",
        "lastName": "Liddell",
        "username": "alice",
        "email": "alice@x.com",
        "password": "pw123456",
        "botToken": HUMAN_TOKEN,
    }
    payload.update(overrides)
    return payload


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
