"""
Unit tests for the email queue and its processor.
"""

import logging
from unittest.mock import Mock, patch

import pytest

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import ExternalServiceError
from isp_admin.db.base import SentEmail
from isp_admin.domain.entities import EmailStatus
from isp_admin.schemas.dtos import QueueEmailRequest
from isp_admin.services.email_queue_service import EmailQueueProcessor, EmailQueueService
from tests.factories.repository_factories import EmailQueueRepositoryFactory

PROCESSOR_SETTINGS = {"max_per_minute": 5, "batch_size": 10}


@pytest.fixture
def repo() -> Mock:
    return EmailQueueRepositoryFactory.create_mock_full()


@pytest.fixture
def service(repo):
    return EmailQueueService(repo)


def _queued(email_id=1, **overrides):
    values = dict(
        id=email_id,
        from_address="billing@isp.example",
        to_addresses="a@acme.example;b@acme.example",
        subject="Invoice",
        body_text="Hello",
        status=EmailStatus.PENDING,
        retry_count=0,
        max_retries=3,
        message_id="msg-1",
    )
    values.update(overrides)
    return SentEmail(**values)


class TestQueueEmail:
    def test_recipients_joined_and_pending(self, service, repo):
        email_id = service.queue_email(
            QueueEmailRequest(
                to=["a@acme.example", "b@acme.example"],
                cc=["c@acme.example"],
                subject="  Welcome ",
                body_text="Hi",
                customer_id=7,
            )
        )

        email = repo.add.call_args.args[0]
        assert email_id == email.id
        assert email.to_addresses == "a@acme.example;b@acme.example"
        assert email.cc == "c@acme.example"
        assert email.bcc is None
        assert email.subject == "Welcome"
        assert email.status == EmailStatus.PENDING
        assert email.retry_count == 0
        assert email.message_id

    def test_requires_a_body(self, service):
        with pytest.raises(ValueError, match="body_text or body_html"):
            service.queue_email(QueueEmailRequest(to=["a@acme.example"], subject="Empty"))

    def test_rejects_invalid_address(self, service):
        with pytest.raises(ValueError, match="Invalid email address"):
            service.queue_email(QueueEmailRequest(to=["not-an-email"], subject="x", body_text="x"))


class TestDeliveryState:
    def test_mark_in_progress_only_claims_queued(self, service, repo):
        email = _queued(status=EmailStatus.SENT)
        repo.get_by_id.return_value = email

        assert service.mark_in_progress(1) is False
        assert email.status == EmailStatus.SENT

    def test_mark_failed_schedules_backoff(self, service, repo):
        email = _queued(retry_count=1)
        repo.get_by_id.return_value = email
        before = utc_now()

        assert service.mark_failed(1, "Connection refused") is True
        assert email.status == EmailStatus.PENDING
        assert email.retry_count == 2
        # 2 ** retry_count minutes
        assert (email.next_attempt_at - before).total_seconds() >= 4 * 60

    def test_mark_failed_gives_up_after_max_retries(self, service, repo):
        email = _queued(retry_count=2, max_retries=3)
        repo.get_by_id.return_value = email

        assert service.mark_failed(1, "Mailbox unavailable") is False
        assert email.status == EmailStatus.FAILED
        assert email.next_attempt_at is None
        assert email.error_message == "Mailbox unavailable"

    def test_mark_sent_clears_error(self, service, repo):
        email = _queued(error_message="old")
        repo.get_by_id.return_value = email

        service.mark_sent(1, "<abc@isp.example>")

        assert email.status == EmailStatus.SENT
        assert email.sent_date is not None
        assert email.error_message is None
        assert email.message_id == "<abc@isp.example>"


class TestEmailQueueProcessor:
    @pytest.fixture
    def sender(self) -> Mock:
        sender = Mock()
        sender.send.return_value = "<sent@isp.example>"
        return sender

    @pytest.fixture
    def processor(self, service, sender):
        return EmailQueueProcessor(service, sender, settings=PROCESSOR_SETTINGS)

    def test_throttle_skips_run(self, processor, repo, sender):
        repo.count_sent_since.return_value = 5

        assert processor.process_pending() == {"sent": 0, "failed": 0, "skipped": 0}
        repo.get_due.assert_not_called()
        sender.send.assert_not_called()

    def test_batch_limited_by_remaining_budget(self, processor, repo):
        repo.count_sent_since.return_value = 3

        processor.process_pending()

        assert repo.get_due.call_args.args[1] == 2

    def test_delivers_due_email(self, processor, repo, sender):
        email = _queued()
        repo.get_due.return_value = [email]
        repo.get_by_id.return_value = email

        stats = processor.process_pending()

        assert stats == {"sent": 1, "failed": 0, "skipped": 0}
        outgoing = sender.send.call_args.args[0]
        assert outgoing.to == ["a@acme.example", "b@acme.example"]
        assert outgoing.is_html is False
        assert email.status == EmailStatus.SENT

    def test_sender_failure_marks_failed(self, processor, repo, sender):
        email = _queued()
        repo.get_due.return_value = [email]
        repo.get_by_id.return_value = email
        sender.send.side_effect = ExternalServiceError("SMTP", "timeout")

        stats = processor.process_pending()

        assert stats["failed"] == 1
        assert email.status == EmailStatus.PENDING
        assert email.error_message == "SMTP: timeout"

    def test_claimed_email_is_skipped(self, processor, repo, sender):
        email = _queued(status=EmailStatus.IN_PROGRESS)
        repo.get_due.return_value = [email]
        repo.get_by_id.return_value = email

        assert processor.process_pending()["skipped"] == 1
        sender.send.assert_not_called()

    def test_unexpected_sender_error_fails_email_and_batch_continues(
        self, processor, repo, sender
    ):
        broken, healthy = _queued(1), _queued(2, message_id="msg-2")
        emails = {1: broken, 2: healthy}
        repo.get_due.return_value = [broken, healthy]
        repo.get_by_id.side_effect = emails.get
        sender.send.side_effect = [RuntimeError("event loop is closed"), "<sent@isp.example>"]

        stats = processor.process_pending()

        assert stats == {"sent": 1, "failed": 1, "skipped": 0}
        assert broken.status == EmailStatus.PENDING
        assert broken.retry_count == 1
        assert broken.error_message == "event loop is closed"
        assert healthy.status == EmailStatus.SENT


def test_scheduled_run_logs_summary_once(service, repo, caplog):
    from isp_admin.services.background_jobs import process_email_queue

    email = _queued()
    repo.get_due.return_value = [email]
    repo.get_by_id.return_value = email
    sender = Mock()
    sender.send.return_value = "<sent@isp.example>"

    with patch(
        "isp_admin.services.background_jobs.EmailQueueService", return_value=service
    ), patch("isp_admin.services.background_jobs.SmtpEmailSender", return_value=sender):
        with caplog.at_level(logging.INFO, logger="isp_admin"):
            process_email_queue()

    summaries = [r for r in caplog.records if r.getMessage() == "Email queue processed"]
    assert len(summaries) == 1
    assert summaries[0].context == {"sent": 1, "failed": 0, "skipped": 0}
