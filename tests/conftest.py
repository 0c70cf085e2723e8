import os
import re
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

# Ensure sensible defaults for tests before app import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SMS_PROVIDER", "console")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.pop("REDIS_HOST", None)

from fastapi.testclient import TestClient  # noqa: E402

from bgv_otp.core.database import Base, SessionLocal, engine, get_db  # noqa: E402
from bgv_otp.core.exceptions import DeliveryFailed  # noqa: E402
from bgv_otp.core.sms import SMSGateway, get_sms_gateway  # noqa: E402
from bgv_otp.main import app  # noqa: E402
from bgv_otp.models.profile import AppRole, Profile  # noqa: E402
from bgv_otp.services.otp_service import OTPConfig, OTPService  # noqa: E402

OTP_IN_TEXT = re.compile(r"\b(\d{6})\b")


class RecordingGateway(SMSGateway):
    """Keeps every message instead of sending it."""

    name = "recording"

    def __init__(self):
        self.messages = []
        self.fail = False

    def send(self, message):
        self.messages.append(message)
        if self.fail:
            raise DeliveryFailed("Failed to send OTP SMS. API returned status 502")

    def last_code(self) -> str:
        return OTP_IN_TEXT.search(self.messages[-1].text).group(1)


class FrozenClock:
    def __init__(self, start: datetime = datetime(2026, 1, 15, 10, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db():
    from bgv_otp.models import otp_token, profile  # noqa: F401

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def service(db, gateway, clock):
    return OTPService(db, gateway, OTPConfig(), clock=clock)


@pytest.fixture
def make_profile(db):
    def _make(phone="9999999999", email=None, first_name="Asha", role=AppRole.GIG_WORKER, is_active=True):
        user_id = str(uuid4())
        profile = Profile(
            id=str(uuid4()),
            user_id=user_id,
            email=email or f"{user_id[:8]}@example.com",
            first_name=first_name,
            last_name="Rao",
            phone=phone,
            role=role,
            is_active=is_active,
        )
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def client(db, gateway):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_sms_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
