"""
Outgoing email queue.

Emails are stored first and delivered later by ``EmailQueueProcessor``,
which the scheduler runs every few minutes. Failed deliveries are retried
with exponential backoff until ``max_retries`` is reached.
"""

import logging
import uuid
from datetime import timedelta
from typing import Dict, List, Optional

from isp_admin.core.config import EMAIL_FROM_ADDRESS, EMAIL_QUEUE_SETTINGS, utc_now
from isp_admin.core.exceptions import EntityNotFoundError, ExternalServiceError
from isp_admin.db.base import SentEmail
from isp_admin.domain.entities import EmailStatus, OutgoingEmail
from isp_admin.domain.interfaces import IEmailQueueRepository, IEmailSender
from isp_admin.schemas.dtos import QueueEmailRequest

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
ADDRESS_SEPARATOR = ";"


def _join(values: List[str]) -> Optional[str]:
    return ADDRESS_SEPARATOR.join(values) if values else None


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(ADDRESS_SEPARATOR) if part.strip()]


class EmailQueueService:
    def __init__(self, repo: IEmailQueueRepository) -> None:
        self.repo = repo

    def get_all(self) -> List[SentEmail]:
        return self.repo.get_all()

    def get_by_id(self, email_id: int) -> Optional[SentEmail]:
        return self.repo.get_by_id(email_id)

    def get_by_customer(self, customer_id: int) -> List[SentEmail]:
        return self.repo.get_by_customer(customer_id)

    def queue_email(self, dto: QueueEmailRequest) -> int:
        """Store an email for delivery and return its id."""
        dto.validate()
        email = SentEmail(
            from_address=dto.from_address or EMAIL_FROM_ADDRESS,
            to_addresses=_join(dto.to),
            cc=_join(dto.cc),
            bcc=_join(dto.bcc),
            subject=dto.subject.strip(),
            body_text=dto.body_text,
            body_html=dto.body_html,
            attachments=_join(dto.attachments),
            message_id=str(uuid.uuid4()),
            status=EmailStatus.PENDING,
            retry_count=0,
            max_retries=DEFAULT_MAX_RETRIES,
            next_attempt_at=utc_now(),
            customer_id=dto.customer_id,
            user_id=dto.user_id,
            related_entity_type=dto.related_entity_type,
            related_entity_id=dto.related_entity_id,
        )
        email = self.repo.add(email)
        logger.info(
            "Email queued",
            extra={
                "context": {
                    "email_id": email.id,
                    "recipients": len(dto.to),
                    "related_entity": dto.related_entity_type,
                }
            },
        )
        return email.id

    def get_pending_email_ids(self, batch_size: int = 10) -> List[int]:
        return [email.id for email in self.repo.get_due(utc_now(), batch_size)]

    def mark_in_progress(self, email_id: int) -> bool:
        """Claim an email for sending; False when it is no longer queued."""
        email = self._get_or_raise(email_id)
        if email.status not in EmailStatus.QUEUED:
            return False
        email.status = EmailStatus.IN_PROGRESS
        self.repo.save(email)
        return True

    def mark_sent(self, email_id: int, message_id: Optional[str] = None, provider: str = "smtp") -> None:
        email = self._get_or_raise(email_id)
        email.status = EmailStatus.SENT
        email.sent_date = utc_now()
        email.next_attempt_at = None
        email.error_message = None
        email.provider = provider
        if message_id:
            email.message_id = message_id
        self.repo.save(email)

    def mark_failed(self, email_id: int, error: str) -> bool:
        """Record a failed delivery.

        Returns:
            True when another attempt is scheduled, False once retries are exhausted
        """
        email = self._get_or_raise(email_id)
        email.retry_count = (email.retry_count or 0) + 1
        email.error_message = (error or "")[:2000]

        if email.retry_count >= (email.max_retries or DEFAULT_MAX_RETRIES):
            email.status = EmailStatus.FAILED
            email.next_attempt_at = None
            self.repo.save(email)
            logger.error(
                "Email delivery failed permanently",
                extra={"context": {"email_id": email_id, "retries": email.retry_count}},
            )
            return False

        email.status = EmailStatus.PENDING
        email.next_attempt_at = utc_now() + timedelta(minutes=2 ** email.retry_count)
        self.repo.save(email)
        logger.warning(
            "Email delivery failed, retry scheduled",
            extra={
                "context": {
                    "email_id": email_id,
                    "retry_count": email.retry_count,
                    "next_attempt_at": email.next_attempt_at.isoformat(),
                }
            },
        )
        return True

    def _get_or_raise(self, email_id: int) -> SentEmail:
        email = self.repo.get_by_id(email_id)
        if email is None:
            raise EntityNotFoundError("Email", email_id)
        return email


class EmailQueueProcessor:
    """Deliver due emails through an ``IEmailSender``, throttled per minute."""

    def __init__(
        self,
        queue_service: EmailQueueService,
        sender: IEmailSender,
        settings: Optional[dict] = None,
    ) -> None:
        self.queue_service = queue_service
        self.sender = sender
        self.settings = settings or EMAIL_QUEUE_SETTINGS

    def process_pending(self) -> Dict[str, int]:
        repo = self.queue_service.repo
        sent_last_minute = repo.count_sent_since(utc_now() - timedelta(minutes=1))
        budget = self.settings["max_per_minute"] - sent_last_minute
        if budget <= 0:
            logger.info(
                "Email throttle reached, skipping run",
                extra={"context": {"max_per_minute": self.settings["max_per_minute"]}},
            )
            return {"sent": 0, "failed": 0, "skipped": 0}

        batch = min(self.settings["batch_size"], budget)
        stats = {"sent": 0, "failed": 0, "skipped": 0}
        for email_id in self.queue_service.get_pending_email_ids(batch):
            if not self.queue_service.mark_in_progress(email_id):
                stats["skipped"] += 1
                continue
            try:
                delivered = self._deliver(email_id)
            except Exception as e:
                logger.exception(
                    "Unexpected error delivering email",
                    extra={"context": {"email_id": email_id}},
                )
                self.queue_service.mark_failed(email_id, str(e) or type(e).__name__)
                delivered = False
            if delivered:
                stats["sent"] += 1
            else:
                stats["failed"] += 1

        if stats["sent"] or stats["failed"]:
            logger.info("Email queue processed", extra={"context": stats})
        return stats

    def _deliver(self, email_id: int) -> bool:
        email = self.queue_service.get_by_id(email_id)
        body = email.body_html or email.body_text
        if not body:
            self.queue_service.mark_failed(email_id, "Email has no body")
            return False

        try:
            outgoing = OutgoingEmail(
                from_address=email.from_address,
                to=_split(email.to_addresses),
                subject=email.subject,
                body=body,
                is_html=bool(email.body_html),
                cc=_split(email.cc),
                bcc=_split(email.bcc),
                attachments=_split(email.attachments),
                message_id=email.message_id,
            )
            message_id = self.sender.send(outgoing)
        except (ExternalServiceError, ValueError) as e:
            self.queue_service.mark_failed(email_id, str(e))
            return False

        self.queue_service.mark_sent(email_id, message_id)
        return True
