from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_

from isp_admin.db.base import CurrencyExchangeRate, ExchangeRateDownloadLog
from isp_admin.domain.interfaces import (
    IExchangeRateDownloadLogRepository,
    IExchangeRateRepository,
)

from .base_repository import SqlAlchemyRepository


class ExchangeRateRepository(SqlAlchemyRepository[CurrencyExchangeRate], IExchangeRateRepository):
    model = CurrencyExchangeRate

    def get_all(self) -> List[CurrencyExchangeRate]:
        return (
            self.db.query(CurrencyExchangeRate)
            .order_by(
                CurrencyExchangeRate.base_currency,
                CurrencyExchangeRate.target_currency,
                CurrencyExchangeRate.effective_date.desc(),
            )
            .all()
        )

    def get_active(self) -> List[CurrencyExchangeRate]:
        return (
            self.db.query(CurrencyExchangeRate)
            .filter(CurrencyExchangeRate.is_active.is_(True))
            .order_by(
                CurrencyExchangeRate.base_currency, CurrencyExchangeRate.target_currency
            )
            .all()
        )

    def get_for_pair(self, base: str, target: str) -> List[CurrencyExchangeRate]:
        return (
            self.db.query(CurrencyExchangeRate)
            .filter(
                CurrencyExchangeRate.base_currency == base,
                CurrencyExchangeRate.target_currency == target,
            )
            .order_by(CurrencyExchangeRate.effective_date.desc())
            .all()
        )

    def find_effective_rate(
        self, base: str, target: str, at: datetime
    ) -> Optional[CurrencyExchangeRate]:
        """Latest active rate whose validity window contains ``at``."""
        return (
            self.db.query(CurrencyExchangeRate)
            .filter(
                CurrencyExchangeRate.base_currency == base,
                CurrencyExchangeRate.target_currency == target,
                CurrencyExchangeRate.is_active.is_(True),
                CurrencyExchangeRate.effective_date <= at,
                or_(
                    CurrencyExchangeRate.expiry_date.is_(None),
                    CurrencyExchangeRate.expiry_date > at,
                ),
            )
            .order_by(CurrencyExchangeRate.effective_date.desc())
            .first()
        )

    def get_active_for_pair(self, base: str, target: str) -> Optional[CurrencyExchangeRate]:
        return (
            self.db.query(CurrencyExchangeRate)
            .filter(
                CurrencyExchangeRate.base_currency == base,
                CurrencyExchangeRate.target_currency == target,
                CurrencyExchangeRate.is_active.is_(True),
            )
            .order_by(CurrencyExchangeRate.effective_date.desc())
            .first()
        )

    def get_expired_active(self, now: datetime) -> List[CurrencyExchangeRate]:
        return (
            self.db.query(CurrencyExchangeRate)
            .filter(
                CurrencyExchangeRate.is_active.is_(True),
                CurrencyExchangeRate.expiry_date.isnot(None),
                CurrencyExchangeRate.expiry_date <= now,
            )
            .all()
        )

    def save_all(self, rates: List[CurrencyExchangeRate]) -> None:
        self.db.add_all(rates)
        self._commit("bulk update")


class ExchangeRateDownloadLogRepository(
    SqlAlchemyRepository[ExchangeRateDownloadLog], IExchangeRateDownloadLogRepository
):
    model = ExchangeRateDownloadLog

    def add_all(self, logs: List[ExchangeRateDownloadLog]) -> None:
        self.db.add_all(logs)
        self._commit("create")

    def get_recent(self, limit: int = 50) -> List[ExchangeRateDownloadLog]:
        return (
            self.db.query(ExchangeRateDownloadLog)
            .order_by(ExchangeRateDownloadLog.downloaded_at.desc())
            .limit(limit)
            .all()
        )

    def get_last_successful_summary(self) -> Optional[ExchangeRateDownloadLog]:
        return (
            self.db.query(ExchangeRateDownloadLog)
            .filter(
                ExchangeRateDownloadLog.is_summary.is_(True),
                ExchangeRateDownloadLog.success.is_(True),
            )
            .order_by(ExchangeRateDownloadLog.downloaded_at.desc())
            .first()
        )

    def count_successful_summaries_since(self, since: datetime) -> int:
        return (
            self.db.query(ExchangeRateDownloadLog)
            .filter(
                ExchangeRateDownloadLog.is_summary.is_(True),
                ExchangeRateDownloadLog.success.is_(True),
                ExchangeRateDownloadLog.downloaded_at >= since,
            )
            .count()
        )
