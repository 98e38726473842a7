from datetime import date
from typing import List, Optional

from sqlalchemy import func

from isp_admin.db.base import Quote
from isp_admin.domain.interfaces import IQuoteRepository

from .base_repository import SqlAlchemyRepository


class QuoteRepository(SqlAlchemyRepository[Quote], IQuoteRepository):
    model = Quote

    def _visible(self):
        return self.db.query(Quote).filter(Quote.deleted_at.is_(None))

    def get_by_id(self, quote_id: int) -> Optional[Quote]:
        return self._visible().filter(Quote.id == quote_id).first()

    def get_all(self) -> List[Quote]:
        return self._visible().order_by(Quote.id.desc()).all()

    def get_by_customer(self, customer_id: int) -> List[Quote]:
        return (
            self._visible()
            .filter(Quote.customer_id == customer_id)
            .order_by(Quote.id.desc())
            .all()
        )

    def get_by_status(self, status: str) -> List[Quote]:
        return self._visible().filter(Quote.status == status).order_by(Quote.id.desc()).all()

    def get_by_token(self, token: str) -> Optional[Quote]:
        return self._visible().filter(Quote.acceptance_token == token).first()

    def get_last_id(self) -> int:
        return self.db.query(func.max(Quote.id)).scalar() or 0

    def get_expirable(self, today: date, statuses) -> List[Quote]:
        return (
            self._visible()
            .filter(Quote.status.in_(statuses), Quote.valid_until < today)
            .all()
        )
