"""
Registrar cost price synchronization.

Prices are downloaded from each registrar's API and written as a new
``RegistrarTldCostPricing`` row whenever they differ from the current one;
the previous row is closed one second before the new one takes effect.
Every registrar run is recorded as a download session, and every price
change gets a change log row tied to that session.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import (
    EntityNotFoundError,
    ExternalServiceError,
    UnsupportedProviderError,
)
from isp_admin.db.base import (
    RegistrarTld,
    RegistrarTldCostPricing,
    RegistrarTldPriceChangeLog,
    RegistrarTldPriceDownloadSession,
)
from isp_admin.domain.entities import PriceSyncSummary, TldPrice
from isp_admin.domain.interfaces import (
    IRegistrarRepository,
    IRegistrarTldRepository,
    ITldRepository,
)
from isp_admin.integrations.registrars.base import normalize_extension
from isp_admin.integrations.registrars.factory import create_registrar_client

logger = logging.getLogger(__name__)

SYNC_USER = "system:registrar-price-sync"
DEFAULT_PRICE_CURRENCY = "USD"
AUTO_CREATED_NOTE = "Auto-created from registrar price sync"

# Failures that end one registrar's run without stopping the others
SYNC_ERRORS = (ExternalServiceError, UnsupportedProviderError, ValueError)


def _price_currency(price: TldPrice) -> str:
    return (price.currency or DEFAULT_PRICE_CURRENCY).upper()


def _has_any_price(price: TldPrice) -> bool:
    return any(
        value is not None
        for value in (price.registration_price, price.renewal_price, price.transfer_price)
    )


def _same_price(current: RegistrarTldCostPricing, price: TldPrice) -> bool:
    return (
        Decimal(current.registration_cost) == Decimal(price.registration_price or 0)
        and Decimal(current.renewal_cost) == Decimal(price.renewal_price or 0)
        and Decimal(current.transfer_cost) == Decimal(price.transfer_price or 0)
        and (current.currency or "").upper() == _price_currency(price)
    )


class RegistrarTldPriceSyncService:
    def __init__(
        self,
        repo: IRegistrarTldRepository,
        registrar_repo: IRegistrarRepository,
        tld_repo: ITldRepository,
        client_factory: Callable = create_registrar_client,
    ) -> None:
        self.repo = repo
        self.registrar_repo = registrar_repo
        self.tld_repo = tld_repo
        self.client_factory = client_factory

    def has_any_price(self) -> bool:
        return self.repo.has_any_price()

    def get_sessions(self, registrar_id: Optional[int] = None, limit: int = 50):
        return self.repo.get_sessions(registrar_id, limit)

    def sync_all(self, trigger: str = "manual") -> PriceSyncSummary:
        summary = PriceSyncSummary()
        for registrar in self.registrar_repo.get_active():
            self._record(summary, self.sync_registrar(registrar.id, trigger))
        return summary

    def sync_registrars_missing_today(self, trigger: str = "scheduler") -> PriceSyncSummary:
        """Sync every active registrar without a successful session today."""
        start_of_day = utc_now().replace(hour=0, minute=0, second=0, microsecond=0)
        summary = PriceSyncSummary()
        for registrar in self.registrar_repo.get_active():
            if self.repo.has_successful_session_since(registrar.id, start_of_day):
                summary.registrars_skipped += 1
                continue
            self._record(summary, self.sync_registrar(registrar.id, trigger))

        logger.info(
            "Registrar price sync finished",
            extra={
                "context": {
                    "processed": summary.registrars_processed,
                    "skipped": summary.registrars_skipped,
                    "failed": summary.registrars_failed,
                    "changes": summary.price_changes_detected,
                }
            },
        )
        return summary

    @staticmethod
    def _record(summary: PriceSyncSummary, session: RegistrarTldPriceDownloadSession) -> None:
        if session.success:
            summary.registrars_processed += 1
        else:
            summary.registrars_failed += 1
        summary.tlds_processed += session.tlds_processed or 0
        summary.price_changes_detected += session.price_changes_detected or 0
        summary.messages.append(session.message or session.error_message or "")

    def sync_registrar(self, registrar_id: int, trigger: str = "manual") -> RegistrarTldPriceDownloadSession:
        registrar = self.registrar_repo.get_by_id(registrar_id)
        if registrar is None:
            raise EntityNotFoundError("Registrar", registrar_id)

        session = RegistrarTldPriceDownloadSession(
            registrar_id=registrar.id,
            trigger_source=trigger,
            started_at=utc_now(),
            success=False,
        )
        self.repo.stage(session)
        self.repo.commit()

        try:
            offerings = [
                rt for rt in self.repo.get_by_registrar(registrar.id, active_only=True)
                if rt.tld is not None and rt.tld.is_active
            ]
            if not offerings:
                session.success = True
                session.completed_at = utc_now()
                session.message = "No active registrar/TLD combinations found"
                self.repo.stage(session)
                self.repo.commit()
                return session

            prices = self._prices_by_extension(self.client_factory(registrar).get_supported_tlds())
            now = utc_now()
            changes = 0
            for offering in offerings:
                price = prices.get(normalize_extension(offering.tld.extension))
                if price is None or not _has_any_price(price):
                    continue
                if self._apply_price(offering, price, now, session.id):
                    changes += 1

            session.tlds_processed = len(offerings)
            session.price_changes_detected = changes
            session.success = True
            session.completed_at = utc_now()
            session.message = f"Processed {len(offerings)} registrar/TLD combinations"
            self.repo.stage(session)
            self.repo.commit()
        except (SQLAlchemyError, *SYNC_ERRORS) as e:
            logger.error(
                "Registrar price sync failed",
                extra={"context": {"registrar_id": registrar.id, "error": str(e)}},
                exc_info=True,
            )
            self.repo.rollback()
            session.success = False
            session.completed_at = utc_now()
            session.error_message = str(e)[:2000]
            self.repo.stage(session)
            self.repo.commit()
        return session

    def sync_registrars_for_tld(self, tld_id: int, trigger: str = "manual") -> int:
        """Download one TLD's prices from every active registrar.

        Missing registrar/TLD rows are created. Returns the number of
        registrars whose price is now current.
        """
        tld = self.tld_repo.get_by_id(tld_id)
        if tld is None or not tld.is_active or not tld.extension:
            return 0
        extension = normalize_extension(tld.extension)

        synced = 0
        for registrar in self.registrar_repo.get_active():
            try:
                supported = self.client_factory(registrar).get_supported_tlds(extension)
                price = self._prices_by_extension(supported).get(extension)
                if price is None or not _has_any_price(price):
                    continue

                offering = self.repo.get_by_pair(registrar.id, tld.id)
                if offering is None:
                    offering = RegistrarTld(
                        registrar_id=registrar.id,
                        tld_id=tld.id,
                        is_active=True,
                        auto_renew=False,
                        min_registration_years=1,
                        max_registration_years=10,
                        notes=AUTO_CREATED_NOTE,
                    )
                    self.repo.stage(offering)

                self._apply_price(offering, price, utc_now(), None)
                self.repo.commit()
                synced += 1
            except (SQLAlchemyError, *SYNC_ERRORS) as e:
                self.repo.rollback()
                logger.error(
                    "Registrar price sync for TLD failed",
                    extra={
                        "context": {
                            "registrar_id": registrar.id,
                            "tld_id": tld.id,
                            "trigger": trigger,
                            "error": str(e),
                        }
                    },
                )
        return synced

    def preview_registrar_costs_by_extension(self, extension: str) -> List[Dict]:
        """Live registrar costs for one extension, without storing anything."""
        extension = normalize_extension(extension)
        if not extension:
            return []

        rows = []
        for registrar in self.registrar_repo.get_active():
            try:
                supported = self.client_factory(registrar).get_supported_tlds(extension)
            except SYNC_ERRORS as e:
                logger.warning(
                    "Registrar price preview failed",
                    extra={
                        "context": {
                            "registrar_id": registrar.id,
                            "extension": extension,
                            "error": str(e),
                        }
                    },
                )
                continue
            price = self._prices_by_extension(supported).get(extension)
            if price is None or not _has_any_price(price):
                continue
            rows.append(
                {
                    "registrar_tld_id": 0,
                    "registrar_id": registrar.id,
                    "registrar_name": registrar.name,
                    "registration_cost": str(price.registration_price),
                    "renewal_cost": str(price.renewal_price),
                    "transfer_cost": str(price.transfer_price),
                    "currency": _price_currency(price),
                }
            )
        return sorted(rows, key=lambda row: row["registrar_name"])

    @staticmethod
    def _prices_by_extension(prices: List[TldPrice]) -> Dict[str, TldPrice]:
        by_extension: Dict[str, TldPrice] = {}
        for price in prices:
            by_extension.setdefault(normalize_extension(price.tld), price)
        return by_extension

    def _apply_price(
        self,
        offering: RegistrarTld,
        price: TldPrice,
        now,
        session_id: Optional[int],
    ) -> bool:
        """Stage a new pricing row when the price changed; True when it did."""
        current = self.repo.get_current_pricing(offering.id, now)
        if current is not None and _same_price(current, price):
            return False

        if current is not None and current.effective_to is None:
            current.effective_to = now - timedelta(seconds=1)

        currency = _price_currency(price)
        pricing = RegistrarTldCostPricing(
            registrar_tld_id=offering.id,
            registration_cost=Decimal(price.registration_price or 0),
            renewal_cost=Decimal(price.renewal_price or 0),
            transfer_cost=Decimal(price.transfer_price or 0),
            currency=currency,
            effective_from=now,
            effective_to=None,
            is_active=True,
            created_by=SYNC_USER,
        )
        change_log = RegistrarTldPriceChangeLog(
            registrar_tld_id=offering.id,
            download_session_id=session_id,
            change_source="RegistrarApi",
            changed_by=SYNC_USER,
            changed_at=now,
            old_registration_cost=current.registration_cost if current else None,
            new_registration_cost=pricing.registration_cost,
            old_renewal_cost=current.renewal_cost if current else None,
            new_renewal_cost=pricing.renewal_cost,
            old_transfer_cost=current.transfer_cost if current else None,
            new_transfer_cost=pricing.transfer_cost,
            old_currency=current.currency if current else None,
            new_currency=currency,
            notes=(
                "Initial price created from registrar API"
                if current is None
                else "Price updated from registrar API"
            ),
        )
        staged = [pricing, change_log]
        if current is not None:
            staged.insert(0, current)
        self.repo.stage(*staged)
        return True
