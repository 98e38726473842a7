"""
Unit tests for SmtpEmailSender message building and delivery errors.
"""

from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from isp_admin.core.exceptions import ExternalServiceError
from isp_admin.domain.entities import OutgoingEmail
from isp_admin.integrations.email_sender import SmtpEmailSender

SETTINGS = {
    "host": "smtp.example.net",
    "port": 587,
    "use_tls": True,
    "use_ssl": False,
    "username": "mailer",
    "password": "secret",
    "from_name": "Acme Hosting",
}


@pytest.fixture
def sender():
    return SmtpEmailSender(settings=SETTINGS)


def _email(**overrides):
    values = dict(
        from_address="billing@isp.example",
        to=["a@acme.example"],
        subject="Invoice INV-2025-00001",
        body="Your invoice is attached.",
    )
    values.update(overrides)
    return OutgoingEmail(**values)


class TestBuildMessage:
    def test_plain_text_headers(self, sender):
        message = sender.build_message(_email(cc=["c@acme.example"], message_id="<m1@isp.example>"))

        assert message["From"] == "Acme Hosting <billing@isp.example>"
        assert message["Cc"] == "c@acme.example"
        assert message["Message-ID"] == "<m1@isp.example>"
        assert message.get_content().strip() == "Your invoice is attached."

    def test_html_body_gets_text_alternative(self, sender):
        message = sender.build_message(_email(body="<p>Hi</p>", is_html=True))

        assert message.is_multipart()
        assert [part.get_content_type() for part in message.iter_parts()] == ["text/plain", "text/html"]

    def test_attachment_from_disk(self, sender, tmp_path):
        path = tmp_path / "invoice.pdf"
        path.write_bytes(b"%PDF-1.4")

        message = sender.build_message(_email(attachments=[str(path)]))

        filenames = [part.get_filename() for part in message.iter_attachments()]
        assert filenames == ["invoice.pdf"]

    def test_missing_attachment(self, sender):
        with pytest.raises(ValueError, match="Attachment not found"):
            sender.build_message(_email(attachments=["/nonexistent/file.pdf"]))


class TestSend:
    def test_send_returns_message_id(self, sender):
        with patch.object(SmtpEmailSender, "_send_async", new=AsyncMock()) as send_async:
            message_id = sender.send(_email(bcc=["audit@isp.example"]))

        assert message_id
        recipients = send_async.call_args.args[1]
        assert recipients == ["a@acme.example", "audit@isp.example"]

    def test_smtp_error_wrapped(self, sender):
        failing = AsyncMock(side_effect=aiosmtplib.SMTPConnectError("Connection refused"))

        with patch.object(SmtpEmailSender, "_send_async", new=failing):
            with pytest.raises(ExternalServiceError, match="SMTP"):
                sender.send(_email())
