"""
SMTP email sender built on aiosmtplib.

The queue processor runs in a scheduler thread, so ``send`` drives the async
client with ``asyncio.run``. Port 465 (or ``use_ssl``) connects with
implicit TLS; otherwise STARTTLS is negotiated when ``use_tls`` is set.
"""

import asyncio
import logging
import mimetypes
import os
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional

import aiosmtplib

from isp_admin.core.config import SMTP_SETTINGS
from isp_admin.core.exceptions import ExternalServiceError
from isp_admin.domain.entities import OutgoingEmail
from isp_admin.domain.interfaces import IEmailSender

logger = logging.getLogger(__name__)


class SmtpEmailSender(IEmailSender):
    def __init__(self, settings: Optional[dict] = None, timeout: int = 30):
        self.settings = dict(settings or SMTP_SETTINGS)
        self.timeout = timeout

    def build_message(self, email: OutgoingEmail) -> EmailMessage:
        message = EmailMessage()
        from_name = self.settings.get("from_name")
        message["From"] = formataddr((from_name, email.from_address)) if from_name else email.from_address
        message["To"] = ", ".join(email.to)
        if email.cc:
            message["Cc"] = ", ".join(email.cc)
        message["Subject"] = email.subject
        message["Message-ID"] = email.message_id or make_msgid()

        if email.is_html:
            message.set_content("This message requires an HTML capable email client.")
            message.add_alternative(email.body, subtype="html")
        else:
            message.set_content(email.body)

        for path in email.attachments:
            self._attach(message, path)
        return message

    @staticmethod
    def _attach(message: EmailMessage, path: str) -> None:
        if not os.path.isfile(path):
            raise ValueError(f"Attachment not found: {path}")
        content_type, _ = mimetypes.guess_type(path)
        maintype, subtype = (content_type or "application/octet-stream").split("/", 1)
        with open(path, "rb") as handle:
            message.add_attachment(
                handle.read(),
                maintype=maintype,
                subtype=subtype,
                filename=os.path.basename(path),
            )

    async def _send_async(self, message: EmailMessage, recipients) -> None:
        use_ssl = self.settings.get("use_ssl") or self.settings.get("port") == 465
        smtp = aiosmtplib.SMTP(
            hostname=self.settings["host"],
            port=self.settings["port"],
            use_tls=bool(use_ssl),
            start_tls=bool(self.settings.get("use_tls")) and not use_ssl,
            timeout=self.timeout,
        )
        async with smtp:
            if self.settings.get("username") and self.settings.get("password"):
                await smtp.login(self.settings["username"], self.settings["password"])
            await smtp.send_message(message, recipients=recipients)

    def send(self, email: OutgoingEmail) -> str:
        message = self.build_message(email)
        recipients = list(email.to) + list(email.cc) + list(email.bcc)
        try:
            asyncio.run(self._send_async(message, recipients))
        except (aiosmtplib.SMTPException, OSError) as e:
            raise ExternalServiceError("SMTP", str(e)) from e

        logger.info(
            "Email delivered via SMTP",
            extra={"context": {"to": email.to, "subject": email.subject}},
        )
        return message["Message-ID"]
