from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_

from isp_admin.db.base import TaxRule
from isp_admin.domain.interfaces import ITaxRuleRepository

from .base_repository import SqlAlchemyRepository


class TaxRuleRepository(SqlAlchemyRepository[TaxRule], ITaxRuleRepository):
    model = TaxRule

    def get_all(self) -> List[TaxRule]:
        return (
            self.db.query(TaxRule)
            .order_by(TaxRule.country_code, TaxRule.state_code, TaxRule.priority.desc())
            .all()
        )

    def _active_filter(self, query, now: datetime):
        return query.filter(
            TaxRule.is_active.is_(True),
            or_(TaxRule.effective_from.is_(None), TaxRule.effective_from <= now),
            or_(TaxRule.effective_until.is_(None), TaxRule.effective_until > now),
        )

    def get_active(self, now: datetime) -> List[TaxRule]:
        return (
            self._active_filter(self.db.query(TaxRule), now)
            .order_by(TaxRule.country_code, TaxRule.priority.desc())
            .all()
        )

    def get_by_location(
        self, country_code: str, state_code: Optional[str], now: datetime
    ) -> List[TaxRule]:
        """Active rules for a country whose state matches or is unset.

        State-specific rules sort first, then by descending priority.
        """
        query = self._active_filter(
            self.db.query(TaxRule).filter(TaxRule.country_code == country_code), now
        )
        if state_code:
            query = query.filter(
                or_(TaxRule.state_code.is_(None), TaxRule.state_code == state_code)
            )
        else:
            query = query.filter(TaxRule.state_code.is_(None))
        rules = query.all()
        return sorted(
            rules,
            key=lambda r: (0 if r.state_code else 1, -(r.priority or 0), r.id),
        )
