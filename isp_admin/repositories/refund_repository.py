from decimal import Decimal
from typing import List

from sqlalchemy import func

from isp_admin.db.base import Refund
from isp_admin.domain.entities import RefundStatus
from isp_admin.domain.interfaces import IRefundRepository

from .base_repository import SqlAlchemyRepository


class RefundRepository(SqlAlchemyRepository[Refund], IRefundRepository):
    model = Refund

    def get_all(self) -> List[Refund]:
        return self.db.query(Refund).order_by(Refund.id.desc()).all()

    def get_by_invoice(self, invoice_id: int) -> List[Refund]:
        return (
            self.db.query(Refund)
            .filter(Refund.invoice_id == invoice_id)
            .order_by(Refund.id.desc())
            .all()
        )

    def get_pending_amount(self, invoice_id: int) -> Decimal:
        """Sum of refunds still waiting to be processed for an invoice."""
        total = (
            self.db.query(func.coalesce(func.sum(Refund.amount), 0))
            .filter(
                Refund.invoice_id == invoice_id,
                Refund.status == RefundStatus.PENDING,
            )
            .scalar()
        )
        return Decimal(str(total or 0))
