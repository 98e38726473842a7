from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_

from isp_admin.db.base import (
    Registrar,
    RegistrarTld,
    RegistrarTldCostPricing,
    RegistrarTldPriceChangeLog,
    RegistrarTldPriceDownloadSession,
    Tld,
)
from isp_admin.domain.interfaces import (
    IRegistrarRepository,
    IRegistrarTldRepository,
    ITldRepository,
)

from .base_repository import SqlAlchemyRepository


class TldRepository(SqlAlchemyRepository[Tld], ITldRepository):
    model = Tld

    def get_all(self) -> List[Tld]:
        return self.db.query(Tld).order_by(Tld.extension).all()

    def get_active(self) -> List[Tld]:
        return self.db.query(Tld).filter(Tld.is_active.is_(True)).order_by(Tld.extension).all()

    def get_by_extension(self, extension: str) -> Optional[Tld]:
        return self.db.query(Tld).filter(Tld.extension == extension).first()


class RegistrarRepository(SqlAlchemyRepository[Registrar], IRegistrarRepository):
    model = Registrar

    def get_all(self) -> List[Registrar]:
        return self.db.query(Registrar).order_by(Registrar.name).all()

    def get_active(self) -> List[Registrar]:
        return (
            self.db.query(Registrar)
            .filter(Registrar.is_active.is_(True))
            .order_by(Registrar.name)
            .all()
        )

    def get_default(self) -> Optional[Registrar]:
        return (
            self.db.query(Registrar)
            .filter(Registrar.is_active.is_(True), Registrar.is_default.is_(True))
            .first()
        )

    def get_by_code(self, code: str) -> Optional[Registrar]:
        return self.db.query(Registrar).filter(Registrar.code == code).first()

    def clear_default(self, except_id: Optional[int] = None) -> None:
        query = self.db.query(Registrar).filter(Registrar.is_default.is_(True))
        if except_id is not None:
            query = query.filter(Registrar.id != except_id)
        query.update({"is_default": False}, synchronize_session="fetch")


class RegistrarTldRepository(SqlAlchemyRepository[RegistrarTld], IRegistrarTldRepository):
    """Registrar/TLD offerings plus their cost pricing history and sync audit."""

    model = RegistrarTld

    def get_all(self) -> List[RegistrarTld]:
        return self.db.query(RegistrarTld).order_by(RegistrarTld.id).all()

    def get_by_registrar(self, registrar_id: int, active_only: bool = False) -> List[RegistrarTld]:
        query = self.db.query(RegistrarTld).filter(RegistrarTld.registrar_id == registrar_id)
        if active_only:
            query = query.filter(RegistrarTld.is_active.is_(True))
        return query.order_by(RegistrarTld.id).all()

    def get_by_tld(self, tld_id: int) -> List[RegistrarTld]:
        return (
            self.db.query(RegistrarTld)
            .join(Registrar, Registrar.id == RegistrarTld.registrar_id)
            .filter(RegistrarTld.tld_id == tld_id)
            .order_by(Registrar.name)
            .all()
        )

    def get_by_pair(self, registrar_id: int, tld_id: int) -> Optional[RegistrarTld]:
        return (
            self.db.query(RegistrarTld)
            .filter(
                RegistrarTld.registrar_id == registrar_id, RegistrarTld.tld_id == tld_id
            )
            .first()
        )

    # Cost pricing

    def get_current_pricing(
        self, registrar_tld_id: int, now: datetime
    ) -> Optional[RegistrarTldCostPricing]:
        return (
            self.db.query(RegistrarTldCostPricing)
            .filter(
                RegistrarTldCostPricing.registrar_tld_id == registrar_tld_id,
                RegistrarTldCostPricing.is_active.is_(True),
                RegistrarTldCostPricing.effective_from <= now,
                or_(
                    RegistrarTldCostPricing.effective_to.is_(None),
                    RegistrarTldCostPricing.effective_to > now,
                ),
            )
            .order_by(RegistrarTldCostPricing.effective_from.desc())
            .first()
        )

    def get_pricing_history(self, registrar_tld_id: int) -> List[RegistrarTldCostPricing]:
        return (
            self.db.query(RegistrarTldCostPricing)
            .filter(RegistrarTldCostPricing.registrar_tld_id == registrar_tld_id)
            .order_by(RegistrarTldCostPricing.effective_from.desc())
            .all()
        )

    def has_any_price(self) -> bool:
        return self.db.query(RegistrarTldCostPricing.id).first() is not None

    def stage(self, *entities) -> None:
        """Add entities to the session without committing."""
        for entity in entities:
            self.db.add(entity)
        self.db.flush()

    def commit(self) -> None:
        self._commit("price sync")

    def rollback(self) -> None:
        self.db.rollback()

    # Download sessions and change logs

    def has_successful_session_since(self, registrar_id: int, since: datetime) -> bool:
        return (
            self.db.query(RegistrarTldPriceDownloadSession.id)
            .filter(
                RegistrarTldPriceDownloadSession.registrar_id == registrar_id,
                RegistrarTldPriceDownloadSession.success.is_(True),
                RegistrarTldPriceDownloadSession.started_at >= since,
            )
            .first()
            is not None
        )

    def get_sessions(self, registrar_id: Optional[int] = None, limit: int = 50):
        query = self.db.query(RegistrarTldPriceDownloadSession)
        if registrar_id is not None:
            query = query.filter(RegistrarTldPriceDownloadSession.registrar_id == registrar_id)
        return (
            query.order_by(RegistrarTldPriceDownloadSession.started_at.desc())
            .limit(limit)
            .all()
        )

    def get_change_logs(self, registrar_tld_id: int) -> List[RegistrarTldPriceChangeLog]:
        return (
            self.db.query(RegistrarTldPriceChangeLog)
            .filter(RegistrarTldPriceChangeLog.registrar_tld_id == registrar_tld_id)
            .order_by(RegistrarTldPriceChangeLog.changed_at.desc())
            .all()
        )
