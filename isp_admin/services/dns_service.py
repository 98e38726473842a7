"""
DNS record types, zone records and zone packages.

Record changes are flagged ``is_pending_sync`` until the name servers have
picked them up; deletions are soft so the removal itself can be synced.
"""

import logging
from typing import List, Optional

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import DnsRecord, DnsRecordType, DnsZonePackage, DnsZonePackageRecord
from isp_admin.domain.interfaces import (
    IDnsRecordRepository,
    IDnsRecordTypeRepository,
    IDnsZonePackageRepository,
    IRegisteredDomainRepository,
)
from isp_admin.schemas.dtos import (
    DnsRecordCreateRequest,
    DnsRecordTypeCreateRequest,
    DnsRecordTypeUpdateRequest,
    DnsRecordUpdateRequest,
    DnsZonePackageCreateRequest,
    DnsZonePackageRecordCreateRequest,
    DnsZonePackageRecordUpdateRequest,
    DnsZonePackageUpdateRequest,
)

logger = logging.getLogger(__name__)


def check_required_fields(record_type: DnsRecordType, priority, weight, port) -> None:
    if record_type.has_priority and priority is None:
        raise ValueError(f"{record_type.type} records require a priority")
    if record_type.has_weight and weight is None:
        raise ValueError(f"{record_type.type} records require a weight")
    if record_type.has_port and port is None:
        raise ValueError(f"{record_type.type} records require a port")


class DnsRecordTypeService:
    def __init__(self, repo: IDnsRecordTypeRepository) -> None:
        self.repo = repo

    def get_all(self) -> List[DnsRecordType]:
        return self.repo.get_all()

    def get_active(self) -> List[DnsRecordType]:
        return self.repo.get_active()

    def get_by_id(self, type_id: int) -> Optional[DnsRecordType]:
        return self.repo.get_by_id(type_id)

    def create(self, dto: DnsRecordTypeCreateRequest) -> DnsRecordType:
        dto.validate()
        if self.repo.get_by_type(dto.type) is not None:
            raise InvalidOperationError(f"DNS record type {dto.type} already exists")
        return self.repo.add(DnsRecordType(**dto.changes()))

    def update(self, type_id: int, dto: DnsRecordTypeUpdateRequest) -> DnsRecordType:
        dto.validate()
        record_type = self.repo.get_by_id(type_id)
        if record_type is None:
            raise EntityNotFoundError("DNS record type", type_id)
        for name, value in dto.changes().items():
            setattr(record_type, name, value)
        return self.repo.save(record_type)

    def delete(self, type_id: int) -> None:
        record_type = self.repo.get_by_id(type_id)
        if record_type is None:
            raise EntityNotFoundError("DNS record type", type_id)
        self.repo.delete(record_type)


class DnsRecordService:
    def __init__(
        self,
        repo: IDnsRecordRepository,
        type_repo: IDnsRecordTypeRepository,
        domain_repo: IRegisteredDomainRepository,
    ) -> None:
        self.repo = repo
        self.type_repo = type_repo
        self.domain_repo = domain_repo

    def get_all(self) -> List[DnsRecord]:
        return self.repo.get_all()

    def get_by_id(self, record_id: int) -> Optional[DnsRecord]:
        return self.repo.get_by_id(record_id)

    def get_by_domain(self, domain_id: int) -> List[DnsRecord]:
        return self.repo.get_by_domain(domain_id)

    def get_by_type(self, dns_record_type_id: int) -> List[DnsRecord]:
        return self.repo.get_by_type(dns_record_type_id)

    def get_pending_sync(self, domain_id: int) -> List[DnsRecord]:
        return self.repo.get_pending_sync(domain_id)

    def get_deleted(self, domain_id: int) -> List[DnsRecord]:
        return self.repo.get_deleted(domain_id)

    def create(self, dto: DnsRecordCreateRequest) -> DnsRecord:
        dto.validate()
        if self.domain_repo.get_by_id(dto.domain_id) is None:
            raise EntityNotFoundError("Domain", dto.domain_id)
        record_type = self.type_repo.get_by_id(dto.dns_record_type_id)
        if record_type is None or not record_type.is_active:
            raise InvalidOperationError(
                f"DNS record type with ID {dto.dns_record_type_id} does not exist or is inactive"
            )
        check_required_fields(record_type, dto.priority, dto.weight, dto.port)

        values = dto.changes()
        if dto.ttl <= 0:
            values["ttl"] = record_type.default_ttl
        record = self.repo.add(DnsRecord(is_pending_sync=True, is_deleted=False, **values))
        logger.info(
            "DNS record created",
            extra={
                "context": {
                    "record_id": record.id,
                    "domain_id": record.domain_id,
                    "type": record_type.type,
                }
            },
        )
        return record

    def update(self, record_id: int, dto: DnsRecordUpdateRequest) -> DnsRecord:
        dto.validate()
        record = self._get_or_raise(record_id)
        if record.is_deleted:
            raise InvalidOperationError("Deleted records must be restored before editing")
        changes = dto.changes()
        if changes.get("ttl") is not None and changes["ttl"] <= 0:
            changes["ttl"] = record.record_type.default_ttl
        for name, value in changes.items():
            setattr(record, name, value)
        check_required_fields(record.record_type, record.priority, record.weight, record.port)
        record.is_pending_sync = True
        return self.repo.save(record)

    def soft_delete(self, record_id: int) -> None:
        record = self._get_or_raise(record_id)
        record.is_deleted = True
        record.deleted_at = utc_now()
        record.is_pending_sync = True
        self.repo.save(record)

    def hard_delete(self, record_id: int) -> None:
        self.repo.delete(self._get_or_raise(record_id))

    def restore(self, record_id: int) -> DnsRecord:
        record = self._get_or_raise(record_id)
        if not record.is_deleted:
            raise InvalidOperationError("Record is not deleted")
        record.is_deleted = False
        record.deleted_at = None
        record.is_pending_sync = True
        return self.repo.save(record)

    def mark_as_synced(self, record_id: int) -> None:
        """Clear the pending flag; a synced deletion removes the row."""
        record = self._get_or_raise(record_id)
        if record.is_deleted:
            self.repo.delete(record)
            return
        record.is_pending_sync = False
        self.repo.save(record)

    def _get_or_raise(self, record_id: int) -> DnsRecord:
        record = self.repo.get_by_id(record_id)
        if record is None:
            raise EntityNotFoundError("DNS record", record_id)
        return record


class DnsZonePackageService:
    def __init__(
        self,
        repo: IDnsZonePackageRepository,
        record_repo: IDnsRecordRepository,
        type_repo: IDnsRecordTypeRepository,
        domain_repo: IRegisteredDomainRepository,
    ) -> None:
        self.repo = repo
        self.record_repo = record_repo
        self.type_repo = type_repo
        self.domain_repo = domain_repo

    def get_all(self) -> List[DnsZonePackage]:
        return self.repo.get_all()

    def get_all_with_records(self) -> List[DnsZonePackage]:
        return self.repo.get_all_with_records()

    def get_active(self) -> List[DnsZonePackage]:
        return self.repo.get_active()

    def get_default(self) -> Optional[DnsZonePackage]:
        return self.repo.get_default()

    def get_by_id(self, package_id: int) -> Optional[DnsZonePackage]:
        return self.repo.get_by_id(package_id)

    def create(self, dto: DnsZonePackageCreateRequest) -> DnsZonePackage:
        dto.validate()
        if dto.is_default:
            self.repo.clear_default()
        package = self.repo.add(DnsZonePackage(**dto.changes()))
        logger.info(
            "DNS zone package created",
            extra={"context": {"package_id": package.id, "is_default": package.is_default}},
        )
        return package

    def update(self, package_id: int, dto: DnsZonePackageUpdateRequest) -> DnsZonePackage:
        dto.validate()
        package = self._get_or_raise(package_id)
        changes = dto.changes()
        if changes.get("is_default"):
            self.repo.clear_default(except_id=package.id)
        for name, value in changes.items():
            setattr(package, name, value)
        return self.repo.save(package)

    def delete(self, package_id: int) -> None:
        self.repo.delete(self._get_or_raise(package_id))

    # Template records

    def get_records(self, package_id: int) -> List[DnsZonePackageRecord]:
        self._get_or_raise(package_id)
        return self.repo.get_records(package_id)

    def get_record(self, record_id: int) -> Optional[DnsZonePackageRecord]:
        return self.repo.get_record(record_id)

    def create_record(self, dto: DnsZonePackageRecordCreateRequest) -> DnsZonePackageRecord:
        dto.validate()
        package = self._get_or_raise(dto.dns_zone_package_id)
        record_type = self._get_type(dto.dns_record_type_id)
        check_required_fields(record_type, dto.priority, dto.weight, dto.port)
        record = DnsZonePackageRecord(**dto.changes())
        package.records.append(record)
        self.repo.save(package)
        return record

    def update_record(
        self, record_id: int, dto: DnsZonePackageRecordUpdateRequest
    ) -> DnsZonePackageRecord:
        dto.validate()
        record = self._get_record_or_raise(record_id)
        for name, value in dto.changes().items():
            setattr(record, name, value)
        check_required_fields(
            self._get_type(record.dns_record_type_id), record.priority, record.weight, record.port
        )
        self.repo.save(record.package)
        return record

    def delete_record(self, record_id: int) -> None:
        record = self._get_record_or_raise(record_id)
        package = record.package
        package.records.remove(record)
        self.repo.save(package)

    def apply_package_to_domain(self, package_id: int, domain_id: int) -> bool:
        """Copy a package's template records onto a domain as pending records."""
        package = self.repo.get_by_id(package_id)
        if package is None:
            return False
        if self.domain_repo.get_by_id(domain_id) is None:
            return False

        records = [
            DnsRecord(
                domain_id=domain_id,
                dns_record_type_id=template.dns_record_type_id,
                name=template.name,
                value=template.value,
                ttl=template.ttl,
                priority=template.priority,
                weight=template.weight,
                port=template.port,
                is_pending_sync=True,
                is_deleted=False,
            )
            for template in package.records
        ]
        if records:
            self.record_repo.add_all(records)
        logger.info(
            "DNS zone package applied",
            extra={
                "context": {
                    "package_id": package_id,
                    "domain_id": domain_id,
                    "records": len(records),
                }
            },
        )
        return True

    def _get_type(self, type_id: int) -> DnsRecordType:
        record_type = self.type_repo.get_by_id(type_id)
        if record_type is None:
            raise EntityNotFoundError("DNS record type", type_id)
        return record_type

    def _get_record_or_raise(self, record_id: int) -> DnsZonePackageRecord:
        record = self.repo.get_record(record_id)
        if record is None:
            raise EntityNotFoundError("DNS zone package record", record_id)
        return record

    def _get_or_raise(self, package_id: int) -> DnsZonePackage:
        package = self.repo.get_by_id(package_id)
        if package is None:
            raise EntityNotFoundError("DNS zone package", package_id)
        return package
