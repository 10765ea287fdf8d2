from datetime import datetime, timedelta, timezone

import pytest
from argon2 import PasswordHasher
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from services.email_service import EmailSender
from services.errors import EmailDeliveryError
from services.otp_service import OTPService
from services.otp_store import DatabaseOTPStore, InMemoryOTPStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingSender(EmailSender):
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, recipient, subject, text_body, html_body=None):
        if self.fail:
            raise EmailDeliveryError("MessageRejected")
        self.sent.append(
            {"to": recipient, "subject": subject, "text": text_body, "html": html_body}
        )

    def last_code(self):
        # "Your verification code is: 123456"
        line = next(x for x in self.sent[-1]["text"].splitlines() if "code is:" in x)
        return line.rsplit(" ", 1)[-1]


class FakeCaptcha:
    def __init__(self, passes=True):
        self.passes = passes
        self.tokens = []

    async def verify(self, token, remote_ip=None):
        self.tokens.append(token)
        return self.passes


@pytest.fixture
def fast_hasher():
    # Cheap parameters keep the suite fast; production uses argon2 defaults.
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def captcha():
    return FakeCaptcha()


@pytest.fixture
def store():
    return InMemoryOTPStore()


@pytest.fixture
def db_store():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    yield DatabaseOTPStore(bind=engine)
    engine.dispose()


@pytest.fixture
def service(store, sender, captcha, fast_hasher, clock):
    return OTPService(
        store=store,
        sender=sender,
        captcha=captcha,
        lifetime_minutes=5,
        hasher=fast_hasher,
        clock=clock,
    )
