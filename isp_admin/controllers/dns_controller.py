"""
DNS record types, zone records and reusable zone packages.

Deleting a record soft-deletes it by default so the removal can be synced
to the name servers; pass ``?hard=true`` to remove the row immediately.
"""

from flask import Blueprint, request

from isp_admin.core.api_utils import (
    api_response,
    get_bool_arg,
    get_json_body,
    handle_service_errors,
)
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.dns_repository import (
    DnsRecordRepository,
    DnsRecordTypeRepository,
    DnsZonePackageRepository,
)
from isp_admin.repositories.domain_repository import RegisteredDomainRepository
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
from isp_admin.schemas.serializers import serialize_zone_package, to_dict, to_list
from isp_admin.services.dns_service import (
    DnsRecordService,
    DnsRecordTypeService,
    DnsZonePackageService,
)

dns_bp = Blueprint("dns", __name__, url_prefix="/api/v1/dns")


def _record_service(db) -> DnsRecordService:
    return DnsRecordService(
        DnsRecordRepository(db), DnsRecordTypeRepository(db), RegisteredDomainRepository(db)
    )


def _package_service(db) -> DnsZonePackageService:
    return DnsZonePackageService(
        DnsZonePackageRepository(db),
        DnsRecordRepository(db),
        DnsRecordTypeRepository(db),
        RegisteredDomainRepository(db),
    )


# Record types


@dns_bp.route("/record-types", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsRecord.Read")
@handle_service_errors
def list_record_types():
    db = SessionLocal()
    try:
        service = DnsRecordTypeService(DnsRecordTypeRepository(db))
        types = service.get_active() if get_bool_arg("active") else service.get_all()
        return api_response(True, "DNS record types retrieved", to_list(types))
    finally:
        db.close()


@dns_bp.route("/record-types/<int:type_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsRecord.Read")
@handle_service_errors
def get_record_type(type_id: int):
    db = SessionLocal()
    try:
        record_type = DnsRecordTypeService(DnsRecordTypeRepository(db)).get_by_id(type_id)
        if record_type is None:
            return api_response(False, "DNS record type not found", None, 404)
        return api_response(True, "DNS record type retrieved", to_dict(record_type))
    finally:
        db.close()


@dns_bp.route("/record-types", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("DnsRecord.Write")
@handle_service_errors
def create_record_type():
    dto = DnsRecordTypeCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        record_type = DnsRecordTypeService(DnsRecordTypeRepository(db)).create(dto)
        return api_response(True, "DNS record type created", to_dict(record_type), 201)
    finally:
        db.close()


@dns_bp.route("/record-types/<int:type_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsRecord.Write")
@handle_service_errors
def update_record_type(type_id: int):
    dto = DnsRecordTypeUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        record_type = DnsRecordTypeService(DnsRecordTypeRepository(db)).update(type_id, dto)
        return api_response(True, "DNS record type updated", to_dict(record_type))
    finally:
        db.close()


@dns_bp.route("/record-types/<int:type_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsRecord.Delete")
@handle_service_errors
def delete_record_type(type_id: int):
    db = SessionLocal()
    try:
        DnsRecordTypeService(DnsRecordTypeRepository(db)).delete(type_id)
        return api_response(True, "DNS record type deleted")
    finally:
        db.close()


# Records


@dns_bp.route("/records", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsRecord.Read")
@handle_service_errors
def list_records():
    domain_id = request.args.get("domain_id", type=int)
    type_id = request.args.get("type_id", type=int)
    db = SessionLocal()
    try:
        service = _record_service(db)
        if domain_id:
            records = service.get_by_domain(domain_id)
        elif type_id:
            records = service.get_by_type(type_id)
        else:
            records = service.get_all()
        return api_response(True, "DNS records retrieved", to_list(records))
    finally:
        db.close()


@dns_bp.route("/records/<int:record_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsRecord.Read")
@handle_service_errors
def get_record(record_id: int):
    db = SessionLocal()
    try:
        record = _record_service(db).get_by_id(record_id)
        if record is None:
            return api_response(False, "DNS record not found", None, 404)
        return api_response(True, "DNS record retrieved", to_dict(record))
    finally:
        db.close()


@dns_bp.route("/domains/<int:domain_id>/pending", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsRecord.Read")
@handle_service_errors
def list_pending(domain_id: int):
    db = SessionLocal()
    try:
        records = _record_service(db).get_pending_sync(domain_id)
        return api_response(True, "Pending DNS records retrieved", to_list(records))
    finally:
        db.close()


@dns_bp.route("/domains/<int:domain_id>/deleted", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsRecord.Read")
@handle_service_errors
def list_deleted(domain_id: int):
    db = SessionLocal()
    try:
        records = _record_service(db).get_deleted(domain_id)
        return api_response(True, "Deleted DNS records retrieved", to_list(records))
    finally:
        db.close()


@dns_bp.route("/records", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsRecord.Write")
@handle_service_errors
def create_record():
    dto = DnsRecordCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        record = _record_service(db).create(dto)
        return api_response(True, "DNS record created", to_dict(record), 201)
    finally:
        db.close()


@dns_bp.route("/records/<int:record_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsRecord.Write")
@handle_service_errors
def update_record(record_id: int):
    dto = DnsRecordUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        record = _record_service(db).update(record_id, dto)
        return api_response(True, "DNS record updated", to_dict(record))
    finally:
        db.close()


@dns_bp.route("/records/<int:record_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsRecord.Delete")
@handle_service_errors
def delete_record(record_id: int):
    hard = get_bool_arg("hard")
    db = SessionLocal()
    try:
        service = _record_service(db)
        if hard:
            service.hard_delete(record_id)
            return api_response(True, "DNS record permanently deleted")
        service.soft_delete(record_id)
        return api_response(True, "DNS record marked for deletion")
    finally:
        db.close()


@dns_bp.route("/records/<int:record_id>/restore", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsRecord.Write")
@handle_service_errors
def restore_record(record_id: int):
    db = SessionLocal()
    try:
        record = _record_service(db).restore(record_id)
        return api_response(True, "DNS record restored", to_dict(record))
    finally:
        db.close()


@dns_bp.route("/records/<int:record_id>/synced", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsRecord.Write")
@handle_service_errors
def mark_record_synced(record_id: int):
    db = SessionLocal()
    try:
        _record_service(db).mark_as_synced(record_id)
        return api_response(True, "DNS record marked as synced")
    finally:
        db.close()


# Zone packages


@dns_bp.route("/zone-packages", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsZonePackage.Read")
@handle_service_errors
def list_zone_packages():
    with_records = get_bool_arg("with_records")
    db = SessionLocal()
    try:
        service = _package_service(db)
        if with_records:
            packages = service.get_all_with_records()
        elif get_bool_arg("active"):
            packages = service.get_active()
        else:
            packages = service.get_all()
        return api_response(
            True,
            "DNS zone packages retrieved",
            [serialize_zone_package(p, with_records) for p in packages],
        )
    finally:
        db.close()


@dns_bp.route("/zone-packages/default", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsZonePackage.Read")
@handle_service_errors
def get_default_zone_package():
    db = SessionLocal()
    try:
        package = _package_service(db).get_default()
        if package is None:
            return api_response(False, "No default DNS zone package configured", None, 404)
        return api_response(True, "DNS zone package retrieved", serialize_zone_package(package, True))
    finally:
        db.close()


@dns_bp.route("/zone-packages/<int:package_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsZonePackage.Read")
@handle_service_errors
def get_zone_package(package_id: int):
    db = SessionLocal()
    try:
        package = _package_service(db).get_by_id(package_id)
        if package is None:
            return api_response(False, "DNS zone package not found", None, 404)
        return api_response(True, "DNS zone package retrieved", serialize_zone_package(package, True))
    finally:
        db.close()


@dns_bp.route("/zone-packages", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsZonePackage.Write")
@handle_service_errors
def create_zone_package():
    dto = DnsZonePackageCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        package = _package_service(db).create(dto)
        return api_response(True, "DNS zone package created", serialize_zone_package(package), 201)
    finally:
        db.close()


@dns_bp.route("/zone-packages/<int:package_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsZonePackage.Write")
@handle_service_errors
def update_zone_package(package_id: int):
    dto = DnsZonePackageUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        package = _package_service(db).update(package_id, dto)
        return api_response(True, "DNS zone package updated", serialize_zone_package(package))
    finally:
        db.close()


@dns_bp.route("/zone-packages/<int:package_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsZonePackage.Delete")
@handle_service_errors
def delete_zone_package(package_id: int):
    db = SessionLocal()
    try:
        _package_service(db).delete(package_id)
        return api_response(True, "DNS zone package deleted")
    finally:
        db.close()


@dns_bp.route("/zone-packages/<int:package_id>/records", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("DnsZonePackage.Read")
@handle_service_errors
def list_zone_package_records(package_id: int):
    db = SessionLocal()
    try:
        records = _package_service(db).get_records(package_id)
        return api_response(True, "DNS zone package records retrieved", to_list(records))
    finally:
        db.close()


@dns_bp.route("/zone-packages/<int:package_id>/records", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsZonePackage.Write")
@handle_service_errors
def create_zone_package_record(package_id: int):
    body = get_json_body()
    body["dns_zone_package_id"] = package_id
    dto = DnsZonePackageRecordCreateRequest.from_dict(body)
    db = SessionLocal()
    try:
        record = _package_service(db).create_record(dto)
        return api_response(True, "DNS zone package record created", to_dict(record), 201)
    finally:
        db.close()


@dns_bp.route("/zone-package-records/<int:record_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsZonePackage.Write")
@handle_service_errors
def update_zone_package_record(record_id: int):
    dto = DnsZonePackageRecordUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        record = _package_service(db).update_record(record_id, dto)
        return api_response(True, "DNS zone package record updated", to_dict(record))
    finally:
        db.close()


@dns_bp.route("/zone-package-records/<int:record_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsZonePackage.Delete")
@handle_service_errors
def delete_zone_package_record(record_id: int):
    db = SessionLocal()
    try:
        _package_service(db).delete_record(record_id)
        return api_response(True, "DNS zone package record deleted")
    finally:
        db.close()


@dns_bp.route("/zone-packages/<int:package_id>/apply/<int:domain_id>", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("DnsZonePackage.Write")
@handle_service_errors
def apply_zone_package(package_id: int, domain_id: int):
    db = SessionLocal()
    try:
        if not _package_service(db).apply_package_to_domain(package_id, domain_id):
            return api_response(False, "DNS zone package or domain not found", None, 404)
        return api_response(True, "DNS zone package applied to domain")
    finally:
        db.close()
