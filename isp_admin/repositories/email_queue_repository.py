from datetime import datetime
from typing import List

from isp_admin.db.base import SentEmail
from isp_admin.domain.entities import EmailStatus
from isp_admin.domain.interfaces import IEmailQueueRepository

from .base_repository import SqlAlchemyRepository


class EmailQueueRepository(SqlAlchemyRepository[SentEmail], IEmailQueueRepository):
    model = SentEmail

    def get_all(self) -> List[SentEmail]:
        return self.db.query(SentEmail).order_by(SentEmail.id.desc()).all()

    def get_by_customer(self, customer_id: int) -> List[SentEmail]:
        return (
            self.db.query(SentEmail)
            .filter(SentEmail.customer_id == customer_id)
            .order_by(SentEmail.id.desc())
            .all()
        )

    def get_due(self, now: datetime, limit: int) -> List[SentEmail]:
        return (
            self.db.query(SentEmail)
            .filter(
                SentEmail.status.in_(EmailStatus.QUEUED),
                SentEmail.next_attempt_at.isnot(None),
                SentEmail.next_attempt_at <= now,
            )
            .order_by(SentEmail.next_attempt_at, SentEmail.id)
            .limit(limit)
            .all()
        )

    def count_sent_since(self, since: datetime) -> int:
        return (
            self.db.query(SentEmail)
            .filter(SentEmail.status == EmailStatus.SENT, SentEmail.sent_date >= since)
            .count()
        )
