from typing import List, Optional

from sqlalchemy.orm import selectinload

from isp_admin.db.base import (
    DnsRecord,
    DnsRecordType,
    DnsZonePackage,
    DnsZonePackageRecord,
)
from isp_admin.domain.interfaces import (
    IDnsRecordRepository,
    IDnsRecordTypeRepository,
    IDnsZonePackageRepository,
)

from .base_repository import SqlAlchemyRepository


class DnsRecordTypeRepository(SqlAlchemyRepository[DnsRecordType], IDnsRecordTypeRepository):
    model = DnsRecordType

    def get_all(self) -> List[DnsRecordType]:
        return self.db.query(DnsRecordType).order_by(DnsRecordType.type).all()

    def get_active(self) -> List[DnsRecordType]:
        return (
            self.db.query(DnsRecordType)
            .filter(DnsRecordType.is_active.is_(True))
            .order_by(DnsRecordType.type)
            .all()
        )

    def get_by_type(self, record_type: str) -> Optional[DnsRecordType]:
        return (
            self.db.query(DnsRecordType)
            .filter(DnsRecordType.type == record_type.upper())
            .first()
        )


class DnsRecordRepository(SqlAlchemyRepository[DnsRecord], IDnsRecordRepository):
    """DNS records; soft-deleted rows are excluded unless asked for."""

    model = DnsRecord

    def _live(self):
        return self.db.query(DnsRecord).filter(DnsRecord.is_deleted.is_(False))

    def get_all(self) -> List[DnsRecord]:
        return self._live().order_by(DnsRecord.domain_id, DnsRecord.name).all()

    def get_by_domain(self, domain_id: int) -> List[DnsRecord]:
        return (
            self._live()
            .filter(DnsRecord.domain_id == domain_id)
            .order_by(DnsRecord.name, DnsRecord.id)
            .all()
        )

    def get_by_type(self, dns_record_type_id: int) -> List[DnsRecord]:
        return (
            self._live()
            .filter(DnsRecord.dns_record_type_id == dns_record_type_id)
            .order_by(DnsRecord.domain_id, DnsRecord.name)
            .all()
        )

    def get_pending_sync(self, domain_id: int) -> List[DnsRecord]:
        """Pending records of a domain, including soft-deleted ones awaiting removal."""
        return (
            self.db.query(DnsRecord)
            .filter(DnsRecord.domain_id == domain_id, DnsRecord.is_pending_sync.is_(True))
            .order_by(DnsRecord.id)
            .all()
        )

    def get_deleted(self, domain_id: int) -> List[DnsRecord]:
        return (
            self.db.query(DnsRecord)
            .filter(DnsRecord.domain_id == domain_id, DnsRecord.is_deleted.is_(True))
            .order_by(DnsRecord.deleted_at.desc())
            .all()
        )

    def add_all(self, records: List[DnsRecord]) -> None:
        self.db.add_all(records)
        self._commit("create")


class DnsZonePackageRepository(SqlAlchemyRepository[DnsZonePackage], IDnsZonePackageRepository):
    model = DnsZonePackage

    def get_all(self) -> List[DnsZonePackage]:
        return (
            self.db.query(DnsZonePackage)
            .order_by(DnsZonePackage.sort_order, DnsZonePackage.name)
            .all()
        )

    def get_all_with_records(self) -> List[DnsZonePackage]:
        return (
            self.db.query(DnsZonePackage)
            .options(selectinload(DnsZonePackage.records))
            .order_by(DnsZonePackage.sort_order, DnsZonePackage.name)
            .all()
        )

    def get_active(self) -> List[DnsZonePackage]:
        return (
            self.db.query(DnsZonePackage)
            .filter(DnsZonePackage.is_active.is_(True))
            .order_by(DnsZonePackage.sort_order, DnsZonePackage.name)
            .all()
        )

    def get_default(self) -> Optional[DnsZonePackage]:
        return (
            self.db.query(DnsZonePackage)
            .filter(DnsZonePackage.is_default.is_(True), DnsZonePackage.is_active.is_(True))
            .first()
        )

    def clear_default(self, except_id: Optional[int] = None) -> None:
        query = self.db.query(DnsZonePackage).filter(DnsZonePackage.is_default.is_(True))
        if except_id is not None:
            query = query.filter(DnsZonePackage.id != except_id)
        query.update({"is_default": False}, synchronize_session="fetch")

    def get_record(self, record_id: int) -> Optional[DnsZonePackageRecord]:
        return self.db.get(DnsZonePackageRecord, record_id)

    def get_records(self, package_id: int) -> List[DnsZonePackageRecord]:
        return (
            self.db.query(DnsZonePackageRecord)
            .filter(DnsZonePackageRecord.dns_zone_package_id == package_id)
            .order_by(DnsZonePackageRecord.id)
            .all()
        )
