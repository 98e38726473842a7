"""
Currency conversion and exchange rate maintenance.

``CurrencyService`` answers rate lookups and conversions from the stored
rates. ``ExchangeRateUpdateService`` downloads fresh rates from the
configured provider and records every attempt in the download log.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from isp_admin.core.config import EXCHANGE_RATE_SETTINGS, utc_now
from isp_admin.core.exceptions import (
    EntityNotFoundError,
    ExternalServiceError,
    InvalidOperationError,
)
from isp_admin.db.base import CurrencyExchangeRate, ExchangeRateDownloadLog
from isp_admin.domain.interfaces import (
    IExchangeRateDownloadLogRepository,
    IExchangeRateProvider,
    IExchangeRateRepository,
)
from isp_admin.schemas.dtos import ExchangeRateCreateRequest, ExchangeRateUpdateRequest
from isp_admin.utils.billing_utils import to_money

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class CurrencyService:
    def __init__(self, repo: IExchangeRateRepository) -> None:
        self.repo = repo

    def get_exchange_rate(
        self, from_currency: str, to_currency: str, at: Optional[datetime] = None
    ) -> Optional[Decimal]:
        """Effective rate including markup, or None when no rate applies."""
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return Decimal("1")

        rate = self.repo.find_effective_rate(from_currency, to_currency, at or utc_now())
        if rate is None:
            return None
        markup = rate.markup or Decimal("0")
        return Decimal(rate.rate) * (1 + Decimal(markup) / HUNDRED)

    def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        at: Optional[datetime] = None,
    ) -> Decimal:
        rate = self.get_exchange_rate(from_currency, to_currency, at)
        if rate is None:
            raise InvalidOperationError(
                f"No exchange rate found for {from_currency.upper()} to {to_currency.upper()}"
            )
        return to_money(Decimal(amount) * rate)

    def get_active_rates(self) -> List[CurrencyExchangeRate]:
        return self.repo.get_active()

    def get_rates_for_pair(self, from_currency: str, to_currency: str) -> List[CurrencyExchangeRate]:
        return self.repo.get_for_pair(from_currency.upper(), to_currency.upper())

    def get_all(self) -> List[CurrencyExchangeRate]:
        return self.repo.get_all()

    def get_by_id(self, rate_id: int) -> Optional[CurrencyExchangeRate]:
        return self.repo.get_by_id(rate_id)

    def create(self, dto: ExchangeRateCreateRequest) -> CurrencyExchangeRate:
        dto.validate()
        values = dto.changes()
        values.setdefault("effective_date", utc_now())
        rate = self.repo.add(CurrencyExchangeRate(**values))
        logger.info(
            "Exchange rate created",
            extra={
                "context": {
                    "rate_id": rate.id,
                    "pair": f"{rate.base_currency}/{rate.target_currency}",
                    "rate": str(rate.rate),
                }
            },
        )
        return rate

    def update(self, rate_id: int, dto: ExchangeRateUpdateRequest) -> CurrencyExchangeRate:
        dto.validate()
        rate = self.repo.get_by_id(rate_id)
        if rate is None:
            raise EntityNotFoundError("Exchange rate", rate_id)
        for name, value in dto.changes().items():
            setattr(rate, name, value)
        if rate.expiry_date and rate.expiry_date <= rate.effective_date:
            raise ValueError("Expiry date must be after effective date")
        return self.repo.save(rate)

    def delete(self, rate_id: int) -> None:
        rate = self.repo.get_by_id(rate_id)
        if rate is None:
            raise EntityNotFoundError("Exchange rate", rate_id)
        self.repo.delete(rate)

    def deactivate_expired_rates(self) -> int:
        expired = self.repo.get_expired_active(utc_now())
        for rate in expired:
            rate.is_active = False
        if expired:
            self.repo.save_all(expired)
            logger.info(
                "Expired exchange rates deactivated",
                extra={"context": {"count": len(expired)}},
            )
        return len(expired)


class ExchangeRateUpdateService:
    """Download rates for every active pair and keep the log."""

    def __init__(
        self,
        repo: IExchangeRateRepository,
        log_repo: IExchangeRateDownloadLogRepository,
        provider: IExchangeRateProvider,
        settings: Optional[dict] = None,
    ) -> None:
        self.repo = repo
        self.log_repo = log_repo
        self.provider = provider
        self.settings = settings or EXCHANGE_RATE_SETTINGS

    def update_all_rates(self, is_startup: bool = False) -> Tuple[int, int]:
        """Fetch fresh rates grouped by base currency.

        Returns:
            (added, updated) counts
        """
        source = self.provider.name
        active = self.repo.get_active()
        if not active:
            logger.warning("No active exchange rates to update; add initial rates first")
            return 0, 0

        targets_by_base: Dict[str, set] = defaultdict(set)
        for rate in active:
            targets_by_base[rate.base_currency].add(rate.target_currency)

        added = updated = 0
        errors: List[str] = []
        logs: List[ExchangeRateDownloadLog] = []
        now = utc_now()

        for base, targets in sorted(targets_by_base.items()):
            try:
                fetched = self.provider.fetch_rates(base, sorted(targets))
            except ExternalServiceError as e:
                errors.append(str(e))
                logger.error(
                    "Exchange rate download failed",
                    extra={"context": {"base": base, "provider": source, "error": str(e)}},
                )
                logs.extend(
                    ExchangeRateDownloadLog(
                        base_currency=base,
                        target_currency=target,
                        source=source,
                        success=False,
                        is_startup=is_startup,
                        error_message=str(e)[:1000],
                    )
                    for target in sorted(targets)
                )
                continue

            changed: List[CurrencyExchangeRate] = []
            for target, value in fetched.items():
                existing = self._find_existing(base, target, source)
                if existing is None:
                    changed.append(
                        CurrencyExchangeRate(
                            base_currency=base,
                            target_currency=target,
                            rate=value,
                            markup=Decimal("0"),
                            effective_date=now,
                            is_active=True,
                            source=source,
                        )
                    )
                    added += 1
                elif Decimal(existing.rate) != value:
                    existing.rate = value
                    existing.effective_date = now
                    changed.append(existing)
                    updated += 1
                logs.append(
                    ExchangeRateDownloadLog(
                        base_currency=base,
                        target_currency=target,
                        source=source,
                        success=True,
                        is_startup=is_startup,
                    )
                )
            if changed:
                self.repo.save_all(changed)

        summary_ok = len(errors) < len(targets_by_base)
        logs.append(
            ExchangeRateDownloadLog(
                source=source,
                success=summary_ok,
                is_summary=True,
                is_startup=is_startup,
                rates_added=added,
                rates_updated=updated,
                error_message="; ".join(errors)[:1000] or None,
            )
        )
        self.log_repo.add_all(logs)

        logger.info(
            "Exchange rate update finished",
            extra={
                "context": {
                    "provider": source,
                    "added": added,
                    "updated": updated,
                    "failed_bases": len(errors),
                }
            },
        )
        return added, updated

    def _find_existing(self, base: str, target: str, source: str) -> Optional[CurrencyExchangeRate]:
        for rate in self.repo.get_for_pair(base, target):
            if rate.is_active and rate.source == source:
                return rate
        return None

    def should_update(self, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        last = self.log_repo.get_last_successful_summary()
        hours = self.settings["hours_between_updates"]
        if last is not None and now - last.downloaded_at < timedelta(hours=hours):
            return False

        max_per_day = self.settings["max_updates_per_day"]
        if max_per_day:
            start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
            if self.log_repo.count_successful_summaries_since(start_of_day) >= max_per_day:
                logger.debug(
                    "Max exchange rate updates per day reached",
                    extra={"context": {"max_updates_per_day": max_per_day}},
                )
                return False
        return True

    def run_scheduled_update(self) -> Optional[Tuple[int, int]]:
        """Scheduler entry point; returns None when the update was skipped."""
        if not self.should_update():
            return None
        return self.update_all_rates()
