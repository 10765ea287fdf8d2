import logging

import httpx
from starlette.datastructures import Secret

from config import CAPTCHA_SECRET_KEY, CAPTCHA_TIMEOUT_SECONDS, CAPTCHA_VERIFY_URL
from services.errors import CaptchaProviderError, ServerMisconfigured

logger = logging.getLogger("otp_login_api.captcha")


class CaptchaClient:
    """Client for a reCAPTCHA/Turnstile style `siteverify` endpoint."""

    def __init__(
        self,
        secret: Secret | str | None = CAPTCHA_SECRET_KEY,
        verify_url: str = CAPTCHA_VERIFY_URL,
        timeout: float = CAPTCHA_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout
        self.transport = transport

    async def verify(self, token: str, remote_ip: str | None = None) -> bool:
        if self.secret is None or not str(self.secret):
            logger.error("Human verification requested but CAPTCHA_SECRET_KEY is not configured")
            raise ServerMisconfigured()

        if not token:
            return False

        data = {"secret": str(self.secret), "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.verify_url, data=data)
                resp.raise_for_status()
                result = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.exception("Human verification provider request failed")
            raise CaptchaProviderError(str(e)) from e

        if not isinstance(result, dict):
            logger.error(f"Human verification provider returned an unexpected reply: {result!r}")
            raise CaptchaProviderError("Unexpected reply from verification provider")

        if not result.get("success", False):
            logger.warning(f"Human verification rejected: {result.get('error-codes', [])}")
            return False
        return True
