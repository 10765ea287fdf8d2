import secrets
import logging
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from asyncio import Lock

from argon2 import PasswordHasher
from argon2.exceptions import (
    VerifyMismatchError,
    VerificationError,
    InvalidHash,
)

from config import OTP_EMAIL_SUBJECT, OTP_LIFETIME_MINUTES
from services.captcha_client import CaptchaClient
from services.email_service import EmailSender, render_verification_email
from services.errors import (
    CaptchaProviderError,
    DeliveryFailed,
    EmailDeliveryError,
    Expired,
    InvalidCode,
    InvalidInput,
    NotFoundOrExpired,
    ServerMisconfigured,
    VerificationChallengeFailed,
)
from services.otp_store import OTPStore

logger = logging.getLogger("otp_login_api.otp")

OTP_SENT = "OTP sent"
OTP_VERIFIED = "OTP verified"


def generate_otp() -> str:
    """Six decimal digits, uniform over 100000-999999 (never a leading zero)."""
    return str(100000 + secrets.randbelow(900000))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email) -> str:
    if not isinstance(email, str):
        raise InvalidInput("Email is required")

    email = email.lower().strip()
    if not email:
        raise InvalidInput("Email is required")
    if "@" not in email:
        logger.warning(f"Rejected OTP request due to invalid email format: {email}")
        raise InvalidInput("Invalid email")
    return email


class KeyedLock:
    """Per-key asyncio locks; a key's lock is discarded once nobody holds or awaits it."""

    def __init__(self):
        self._locks: dict[str, Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self):
        return len(self._locks)


class OTPService:
    """Issues and verifies email one-time passcodes against a pluggable store."""

    def __init__(
        self,
        store: OTPStore,
        sender: EmailSender,
        captcha: CaptchaClient | None = None,
        lifetime_minutes: int = OTP_LIFETIME_MINUTES,
        subject: str = OTP_EMAIL_SUBJECT,
        hasher: PasswordHasher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.sender = sender
        self.captcha = captcha
        self.lifetime_minutes = lifetime_minutes
        self.lifetime = timedelta(minutes=lifetime_minutes)
        self.subject = subject
        self.hasher = hasher or PasswordHasher()
        self.clock = clock
        self.locks = KeyedLock()

    async def _check_challenge(self, token: str, remote_ip: str | None) -> None:
        if self.captcha is None:
            logger.error("Human verification token supplied but no verification provider is configured")
            raise ServerMisconfigured()

        try:
            passed = await self.captcha.verify(token, remote_ip)
        except CaptchaProviderError:
            raise VerificationChallengeFailed("Human verification could not be completed")

        if not passed:
            logger.warning("Rejected OTP request: human verification failed")
            raise VerificationChallengeFailed()

    async def issue(
        self,
        email: str | None,
        verification_token: str | None = None,
        remote_ip: str | None = None,
    ) -> str:
        """
        Generate, store and email a new code for `email`, replacing any previous one.

        Without a verification token the challenge is skipped, which is what the
        "resend code" action relies on.

        Raises:
            VerificationChallengeFailed, ServerMisconfigured, InvalidInput, DeliveryFailed
        """
        if verification_token is not None:
            await self._check_challenge(verification_token, remote_ip)

        email = normalize_email(email)

        # Held through delivery so the last code stored is also the last one sent.
        async with self.locks.hold(email):
            otp = generate_otp()
            self.store.put(email, self.hasher.hash(otp), self.clock())

            text_body, html_body = render_verification_email(otp, self.lifetime_minutes)
            try:
                await self.sender.send(email, self.subject, text_body, html_body)
            except EmailDeliveryError as e:
                # The stored code is kept; a later request simply replaces it.
                logger.error(f"OTP delivery failed for email={email}: {e}")
                raise DeliveryFailed()

        logger.info(f"OTP issued for email={email}")
        return OTP_SENT

    async def verify(self, email: str | None, code: str | None) -> str:
        """
        Check `code` against the stored entry for `email`.

        A wrong code leaves the entry in place so the user can retry until it
        expires. A match or an expired entry removes it.
        """
        if not email or not code or not isinstance(code, str):
            logger.warning("Rejected OTP verification: missing email or code")
            raise InvalidInput()

        email = normalize_email(email)
        code = code.strip()
        if not code:
            raise InvalidInput()

        async with self.locks.hold(email):
            entry = self.store.get(email)
            if entry is None:
                logger.warning(f"OTP verification failed: no OTP found for email={email}")
                raise NotFoundOrExpired()

            if self.clock() - entry.created_at > self.lifetime:
                self.store.delete(email)
                logger.warning(f"OTP verification failed: OTP expired for email={email}")
                raise Expired()

            try:
                self.hasher.verify(entry.hash, code)
            except VerifyMismatchError:
                logger.warning(f"OTP mismatch for email={email}")
                raise InvalidCode()
            except (InvalidHash, VerificationError):
                # Stored hash is corrupted (should never happen unless storage corrupted)
                self.store.delete(email)
                logger.exception(f"OTP verification failed due to invalid hash for email={email}")
                raise NotFoundOrExpired()

            self.store.delete(email)

        logger.info(f"OTP verified successfully for email={email}")
        return OTP_VERIFIED
