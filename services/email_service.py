import logging
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape
from starlette.concurrency import run_in_threadpool

from config import (
    AWS_ACCESS_KEY,
    AWS_REGION,
    AWS_SECRET_ACCESS_KEY,
    AWS_SES_SENDER_EMAIL,
    OTP_APP_NAME,
    OTP_LIFETIME_MINUTES,
)
from services.errors import EmailDeliveryError

logger = logging.getLogger("otp_login_api.email")

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

# Set up Jinja env
env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html", "xml", "html.jinja"]),
)

DISCLAIMER = "If you didn't request this code, please ignore this email."


def render_verification_email(
    otp: str,
    lifetime: int = OTP_LIFETIME_MINUTES,
    app_name: str = OTP_APP_NAME,
) -> tuple[str, str | None]:
    """
    Render the plain text and HTML bodies for a verification code email.

    The HTML body is None when the template cannot be rendered; the message
    is then sent as plain text only.
    """
    text_body = (
        f"{app_name} - Your OTP Code\n\n"
        f"Your verification code is: {otp}\n\n"
        f"This code will expire in {lifetime} minutes. Do not share this code with anyone.\n\n"
        f"{DISCLAIMER}"
    )

    try:
        template = env.get_template("email_verification_code.html.jinja")
        html_body = template.render(
            otp=otp, lifetime=lifetime, app_name=app_name, disclaimer=DISCLAIMER
        )
    except TemplateError:
        logger.exception("Failed to render verification email template, sending plain text only")
        html_body = None

    return text_body, html_body


class EmailSender(ABC):
    @abstractmethod
    async def send(
        self, recipient: str, subject: str, text_body: str, html_body: str | None = None
    ) -> None:
        """Deliver one message; raise EmailDeliveryError on failure."""


class SESEmailSender(EmailSender):
    def __init__(self, sender: str = AWS_SES_SENDER_EMAIL, client=None):
        self.sender = sender
        if client is None:
            client = boto3.client(
                "ses",
                region_name=AWS_REGION,
                aws_access_key_id=str(AWS_ACCESS_KEY) if AWS_ACCESS_KEY else None,
                aws_secret_access_key=str(AWS_SECRET_ACCESS_KEY) if AWS_SECRET_ACCESS_KEY else None,
            )
        self.ses = client

    def _send_email(self, recipient, subject, text_body, html_body):
        body = {"Text": {"Data": text_body}}
        if html_body is not None:
            body["Html"] = {"Data": html_body}

        return self.ses.send_email(
            Source=self.sender,
            Destination={"ToAddresses": [recipient]},
            Message={
                "Subject": {"Data": subject},
                "Body": body,
            },
        )

    async def send(self, recipient, subject, text_body, html_body=None):
        try:
            resp = await run_in_threadpool(
                self._send_email, recipient, subject, text_body, html_body
            )
        except ClientError as e:
            code = e.response["Error"]["Code"]
            logger.exception(f"SES ClientError when sending verification email to {recipient}: {code}")
            raise EmailDeliveryError(code) from e
        except BotoCoreError as e:
            logger.exception(f"SES transport error when sending verification email to {recipient}")
            raise EmailDeliveryError(str(e)) from e

        logger.info(
            f"Verification email sent successfully: {recipient}, Message ID: {resp.get('MessageId')}"
        )


class ConsoleEmailSender(EmailSender):
    """Development sender: keeps the most recent messages in memory instead of delivering them."""

    def __init__(self, maxlen: int = 100):
        self.outbox: deque[dict] = deque(maxlen=maxlen)

    async def send(self, recipient, subject, text_body, html_body=None):
        self.outbox.append(
            {"to": recipient, "subject": subject, "text": text_body, "html": html_body}
        )
        logger.info(f"[DEV] Email to {recipient}: {subject}")


def build_sender(backend: str) -> EmailSender:
    if backend == "ses":
        return SESEmailSender()
    if backend == "console":
        return ConsoleEmailSender()
    raise ValueError(f"Unknown email backend: {backend}")
