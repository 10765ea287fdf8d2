import logging

import boto3
import pytest
from botocore.stub import Stubber
from jinja2 import TemplateNotFound

import services.email_service as email_service
from services.email_service import (
    ConsoleEmailSender,
    EmailSender,
    SESEmailSender,
    build_sender,
    render_verification_email,
)
from services.errors import EmailDeliveryError

pytestmark = pytest.mark.asyncio


def ses_client():
    return boto3.client(
        "ses",
        region_name="us-east-2",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


async def test_render_contains_code_lifetime_and_disclaimer():
    text, html = render_verification_email("482913", lifetime=5, app_name="Campus System")

    assert "482913" in text
    assert "5 minutes" in text
    assert "ignore this email" in text
    assert "482913" in html
    assert "5 minutes" in html
    assert "Campus System" in html
    assert "ignore this email" in html


async def test_render_escapes_html():
    _, html = render_verification_email("123456", app_name="<b>Campus</b>")
    assert "<b>Campus</b>" not in html
    assert "&lt;b&gt;Campus&lt;/b&gt;" in html


async def test_render_falls_back_to_text_when_template_missing(monkeypatch):
    def missing(name):
        raise TemplateNotFound(name)

    monkeypatch.setattr(email_service.env, "get_template", missing)
    text, html = render_verification_email("123456")
    assert "123456" in text
    assert html is None


async def test_ses_sender_sends_text_and_html():
    client = ses_client()
    sender = SESEmailSender(sender="no-reply@campus.edu", client=client)

    with Stubber(client) as stub:
        stub.add_response(
            "send_email",
            {"MessageId": "msg-1"},
            expected_params={
                "Source": "no-reply@campus.edu",
                "Destination": {"ToAddresses": ["student@campus.edu"]},
                "Message": {
                    "Subject": {"Data": "Your code"},
                    "Body": {"Text": {"Data": "text"}, "Html": {"Data": "<p>html</p>"}},
                },
            },
        )
        await sender.send("student@campus.edu", "Your code", "text", "<p>html</p>")
        stub.assert_no_pending_responses()


async def test_ses_sender_text_only():
    client = ses_client()
    sender = SESEmailSender(sender="no-reply@campus.edu", client=client)

    with Stubber(client) as stub:
        stub.add_response(
            "send_email",
            {"MessageId": "msg-2"},
            expected_params={
                "Source": "no-reply@campus.edu",
                "Destination": {"ToAddresses": ["student@campus.edu"]},
                "Message": {
                    "Subject": {"Data": "Your code"},
                    "Body": {"Text": {"Data": "text"}},
                },
            },
        )
        await sender.send("student@campus.edu", "Your code", "text", None)


async def test_ses_rejection_raises_delivery_error():
    client = ses_client()
    sender = SESEmailSender(sender="no-reply@campus.edu", client=client)

    with Stubber(client) as stub:
        stub.add_client_error("send_email", service_error_code="MessageRejected")
        with pytest.raises(EmailDeliveryError, match="MessageRejected"):
            await sender.send("student@campus.edu", "Your code", "text", "<p>html</p>")


async def test_console_sender_keeps_outbox():
    sender = ConsoleEmailSender()
    await sender.send("student@campus.edu", "Your code", "text", None)
    assert list(sender.outbox) == [
        {"to": "student@campus.edu", "subject": "Your code", "text": "text", "html": None}
    ]


async def test_console_sender_outbox_is_bounded():
    sender = ConsoleEmailSender(maxlen=3)
    for i in range(10):
        await sender.send("student@campus.edu", f"Your code {i}", "text", None)
    assert [m["subject"] for m in sender.outbox] == ["Your code 7", "Your code 8", "Your code 9"]


async def test_console_sender_does_not_log_body(caplog):
    sender = ConsoleEmailSender()
    with caplog.at_level(logging.INFO, logger="otp_login_api.email"):
        await sender.send("student@campus.edu", "Your code", "Your verification code is: 482913", None)
    assert "student@campus.edu" in caplog.text
    assert "482913" not in caplog.text


async def test_email_sender_is_abstract():
    with pytest.raises(TypeError):
        EmailSender()


async def test_build_sender_rejects_unknown_backend():
    assert isinstance(build_sender("console"), ConsoleEmailSender)
    with pytest.raises(ValueError):
        build_sender("carrier-pigeon")
