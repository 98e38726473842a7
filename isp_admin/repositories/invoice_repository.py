from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func

from isp_admin.db.base import Invoice, InvoicePayment
from isp_admin.domain.interfaces import IInvoiceRepository

from .base_repository import SqlAlchemyRepository


class InvoiceRepository(SqlAlchemyRepository[Invoice], IInvoiceRepository):
    """Repository for invoices; soft-deleted invoices are hidden from listings."""

    model = Invoice

    def _visible(self):
        return self.db.query(Invoice).filter(Invoice.deleted_at.is_(None))

    def get_by_id(self, invoice_id: int) -> Optional[Invoice]:
        return self._visible().filter(Invoice.id == invoice_id).first()

    def get_by_number(self, invoice_number: str) -> Optional[Invoice]:
        return self._visible().filter(Invoice.invoice_number == invoice_number).first()

    def get_all(self) -> List[Invoice]:
        return self._visible().order_by(Invoice.id.desc()).all()

    def get_paged(self, page: int, page_size: int) -> Tuple[List[Invoice], int]:
        query = self._visible()
        total = query.count()
        items = (
            query.order_by(Invoice.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total

    def get_by_customer(self, customer_id: int) -> List[Invoice]:
        return (
            self._visible()
            .filter(Invoice.customer_id == customer_id)
            .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
            .all()
        )

    def get_by_status(self, status: str) -> List[Invoice]:
        return (
            self._visible()
            .filter(Invoice.status == status)
            .order_by(Invoice.id.desc())
            .all()
        )

    def get_last_id(self) -> int:
        """Highest invoice id including soft-deleted rows (0 when empty)."""
        return self.db.query(func.max(Invoice.id)).scalar() or 0

    def get_overdue_candidates(self, today: date, statuses) -> List[Invoice]:
        return (
            self._visible()
            .filter(Invoice.status.in_(statuses), Invoice.due_date < today)
            .all()
        )

    def add_payment(self, payment: InvoicePayment) -> InvoicePayment:
        self.db.add(payment)
        self._commit("create payment", payment)
        self.db.refresh(payment)
        return payment

    def get_payments(self, invoice_id: int) -> List[InvoicePayment]:
        return (
            self.db.query(InvoicePayment)
            .filter(InvoicePayment.invoice_id == invoice_id)
            .order_by(InvoicePayment.created_at)
            .all()
        )
