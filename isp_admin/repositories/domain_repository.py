from datetime import datetime
from typing import List, Optional

from isp_admin.db.base import RegisteredDomain
from isp_admin.domain.entities import DomainStatus
from isp_admin.domain.interfaces import IRegisteredDomainRepository

from .base_repository import SqlAlchemyRepository


class RegisteredDomainRepository(
    SqlAlchemyRepository[RegisteredDomain], IRegisteredDomainRepository
):
    model = RegisteredDomain

    def get_all(self) -> List[RegisteredDomain]:
        return self.db.query(RegisteredDomain).order_by(RegisteredDomain.name).all()

    def get_by_name(self, name: str) -> Optional[RegisteredDomain]:
        return (
            self.db.query(RegisteredDomain)
            .filter(RegisteredDomain.name == name.strip().lower())
            .first()
        )

    def get_by_customer(self, customer_id: int) -> List[RegisteredDomain]:
        return (
            self.db.query(RegisteredDomain)
            .filter(RegisteredDomain.customer_id == customer_id)
            .order_by(RegisteredDomain.name)
            .all()
        )

    def get_by_registrar(self, registrar_id: int) -> List[RegisteredDomain]:
        return (
            self.db.query(RegisteredDomain)
            .filter(RegisteredDomain.registrar_id == registrar_id)
            .order_by(RegisteredDomain.name)
            .all()
        )

    def get_by_status(self, status: str) -> List[RegisteredDomain]:
        return (
            self.db.query(RegisteredDomain)
            .filter(RegisteredDomain.status == status)
            .order_by(RegisteredDomain.name)
            .all()
        )

    def get_expiring_between(self, start: datetime, end: datetime) -> List[RegisteredDomain]:
        """Active domains whose expiration falls in ``[start, end]``."""
        return (
            self.db.query(RegisteredDomain)
            .filter(
                RegisteredDomain.status == DomainStatus.ACTIVE,
                RegisteredDomain.expiration_date.isnot(None),
                RegisteredDomain.expiration_date >= start,
                RegisteredDomain.expiration_date <= end,
            )
            .order_by(RegisteredDomain.expiration_date)
            .all()
        )

    def get_active_expired(self, now: datetime) -> List[RegisteredDomain]:
        return (
            self.db.query(RegisteredDomain)
            .filter(
                RegisteredDomain.status == DomainStatus.ACTIVE,
                RegisteredDomain.expiration_date.isnot(None),
                RegisteredDomain.expiration_date < now,
            )
            .all()
        )
