"""
TLDs, registrars, registrar/TLD offerings and registrar cost price sync.
"""

from flask import Blueprint, request

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.registrar_repository import (
    RegistrarRepository,
    RegistrarTldRepository,
    TldRepository,
)
from isp_admin.schemas.dtos import (
    RegistrarCreateRequest,
    RegistrarTldCreateRequest,
    RegistrarTldUpdateRequest,
    RegistrarUpdateRequest,
    TldCreateRequest,
    TldUpdateRequest,
)
from isp_admin.schemas.serializers import (
    serialize_dataclass,
    serialize_registrar,
    serialize_registrar_tld,
    to_dict,
    to_list,
)
from isp_admin.services.registrar_price_sync_service import RegistrarTldPriceSyncService
from isp_admin.services.registrar_service import RegistrarService, RegistrarTldService, TldService

registrars_bp = Blueprint("registrars", __name__, url_prefix="/api/v1")


def _active_only() -> bool:
    return request.args.get("active", "").lower() in ("1", "true", "yes")


def _registrar_tld_service(db) -> RegistrarTldService:
    return RegistrarTldService(
        RegistrarTldRepository(db), RegistrarRepository(db), TldRepository(db)
    )


def _price_sync_service(db) -> RegistrarTldPriceSyncService:
    return RegistrarTldPriceSyncService(
        RegistrarTldRepository(db), RegistrarRepository(db), TldRepository(db)
    )


def _with_pricing(service: RegistrarTldService, offerings):
    return [serialize_registrar_tld(rt, service.get_current_pricing(rt.id)) for rt in offerings]


# TLDs


@registrars_bp.route("/tlds", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Tld.Read")
@handle_service_errors
def list_tlds():
    db = SessionLocal()
    try:
        service = TldService(TldRepository(db))
        tlds = service.get_active() if _active_only() else service.get_all()
        return api_response(True, "TLDs retrieved", to_list(tlds))
    finally:
        db.close()


@registrars_bp.route("/tlds/<int:tld_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Tld.Read")
@handle_service_errors
def get_tld(tld_id: int):
    db = SessionLocal()
    try:
        tld = TldService(TldRepository(db)).get_by_id(tld_id)
        if tld is None:
            return api_response(False, "TLD not found", None, 404)
        return api_response(True, "TLD retrieved", to_dict(tld))
    finally:
        db.close()


@registrars_bp.route("/tlds", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("Tld.Write")
@handle_service_errors
def create_tld():
    dto = TldCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        tld = TldService(TldRepository(db)).create(dto)
        return api_response(True, "TLD created", to_dict(tld), 201)
    finally:
        db.close()


@registrars_bp.route("/tlds/<int:tld_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Tld.Write")
@handle_service_errors
def update_tld(tld_id: int):
    dto = TldUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        tld = TldService(TldRepository(db)).update(tld_id, dto)
        return api_response(True, "TLD updated", to_dict(tld))
    finally:
        db.close()


@registrars_bp.route("/tlds/<int:tld_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Tld.Delete")
@handle_service_errors
def delete_tld(tld_id: int):
    db = SessionLocal()
    try:
        TldService(TldRepository(db)).delete(tld_id)
        return api_response(True, "TLD deleted")
    finally:
        db.close()


@registrars_bp.route("/tlds/<int:tld_id>/sync-prices", methods=["POST"])
@limiter.limit("5 per minute")
@csrf.exempt
@require_policy("RegistrarTld.Write")
@handle_service_errors
def sync_tld_prices(tld_id: int):
    db = SessionLocal()
    try:
        synced = _price_sync_service(db).sync_registrars_for_tld(tld_id)
        return api_response(
            True, f"Prices synced from {synced} registrars", {"registrars_synced": synced}
        )
    finally:
        db.close()


@registrars_bp.route("/tlds/preview-costs/<string:extension>", methods=["GET"])
@limiter.limit("10 per minute")
@require_policy("RegistrarTld.Read")
@handle_service_errors
def preview_costs(extension: str):
    """Live registrar costs for an extension; nothing is stored."""
    db = SessionLocal()
    try:
        rows = _price_sync_service(db).preview_registrar_costs_by_extension(extension)
        return api_response(True, "Registrar costs retrieved", rows)
    finally:
        db.close()


# Registrars


@registrars_bp.route("/registrars", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Registrar.Read")
@handle_service_errors
def list_registrars():
    db = SessionLocal()
    try:
        service = RegistrarService(RegistrarRepository(db))
        registrars = service.get_active() if _active_only() else service.get_all()
        return api_response(True, "Registrars retrieved", [serialize_registrar(r) for r in registrars])
    finally:
        db.close()


@registrars_bp.route("/registrars/<int:registrar_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Registrar.Read")
@handle_service_errors
def get_registrar(registrar_id: int):
    db = SessionLocal()
    try:
        registrar = RegistrarService(RegistrarRepository(db)).get_by_id(registrar_id)
        if registrar is None:
            return api_response(False, "Registrar not found", None, 404)
        return api_response(True, "Registrar retrieved", serialize_registrar(registrar))
    finally:
        db.close()


@registrars_bp.route("/registrars", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Registrar.Write")
@handle_service_errors
def create_registrar():
    dto = RegistrarCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        registrar = RegistrarService(RegistrarRepository(db)).create(dto)
        return api_response(True, "Registrar created", serialize_registrar(registrar), 201)
    finally:
        db.close()


@registrars_bp.route("/registrars/<int:registrar_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Registrar.Write")
@handle_service_errors
def update_registrar(registrar_id: int):
    dto = RegistrarUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        registrar = RegistrarService(RegistrarRepository(db)).update(registrar_id, dto)
        return api_response(True, "Registrar updated", serialize_registrar(registrar))
    finally:
        db.close()


@registrars_bp.route("/registrars/<int:registrar_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Registrar.Delete")
@handle_service_errors
def delete_registrar(registrar_id: int):
    db = SessionLocal()
    try:
        RegistrarService(RegistrarRepository(db)).delete(registrar_id)
        return api_response(True, "Registrar deleted")
    finally:
        db.close()


@registrars_bp.route("/registrars/<int:registrar_id>/tlds", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegistrarTld.Read")
@handle_service_errors
def list_registrar_offerings(registrar_id: int):
    db = SessionLocal()
    try:
        service = _registrar_tld_service(db)
        offerings = service.get_by_registrar(registrar_id)
        return api_response(True, "Registrar TLDs retrieved", _with_pricing(service, offerings))
    finally:
        db.close()


@registrars_bp.route("/registrars/<int:registrar_id>/sync-prices", methods=["POST"])
@limiter.limit("5 per minute")
@csrf.exempt
@require_policy("RegistrarTld.Write")
@handle_service_errors
def sync_registrar_prices(registrar_id: int):
    db = SessionLocal()
    try:
        session = _price_sync_service(db).sync_registrar(registrar_id)
        message = session.message or session.error_message or "Price sync finished"
        return api_response(session.success, message, to_dict(session), 200 if session.success else 502)
    finally:
        db.close()


@registrars_bp.route("/registrars/sync-prices", methods=["POST"])
@limiter.limit("2 per minute")
@csrf.exempt
@require_policy("RegistrarTld.Write")
@handle_service_errors
def sync_all_prices():
    db = SessionLocal()
    try:
        summary = _price_sync_service(db).sync_all()
        return api_response(True, "Price sync finished", serialize_dataclass(summary))
    finally:
        db.close()


@registrars_bp.route("/registrars/price-sync-sessions", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegistrarTld.Read")
@handle_service_errors
def list_sync_sessions():
    registrar_id = request.args.get("registrar_id", type=int)
    limit = min(request.args.get("limit", 50, type=int), 200)
    db = SessionLocal()
    try:
        sessions = _price_sync_service(db).get_sessions(registrar_id, limit)
        return api_response(True, "Price sync sessions retrieved", to_list(sessions))
    finally:
        db.close()


# Registrar/TLD offerings


@registrars_bp.route("/registrar-tlds", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegistrarTld.Read")
@handle_service_errors
def list_offerings():
    tld_id = request.args.get("tld_id", type=int)
    db = SessionLocal()
    try:
        service = _registrar_tld_service(db)
        offerings = service.get_by_tld(tld_id) if tld_id else service.get_all()
        return api_response(True, "Registrar TLDs retrieved", _with_pricing(service, offerings))
    finally:
        db.close()


@registrars_bp.route("/registrar-tlds/<int:registrar_tld_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegistrarTld.Read")
@handle_service_errors
def get_offering(registrar_tld_id: int):
    db = SessionLocal()
    try:
        service = _registrar_tld_service(db)
        offering = service.get_by_id(registrar_tld_id)
        if offering is None:
            return api_response(False, "Registrar TLD not found", None, 404)
        return api_response(
            True,
            "Registrar TLD retrieved",
            serialize_registrar_tld(offering, service.get_current_pricing(offering.id)),
        )
    finally:
        db.close()


@registrars_bp.route("/registrar-tlds/<int:registrar_tld_id>/pricing-history", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegistrarTld.Read")
@handle_service_errors
def get_pricing_history(registrar_tld_id: int):
    db = SessionLocal()
    try:
        service = _registrar_tld_service(db)
        return api_response(
            True,
            "Pricing history retrieved",
            {
                "pricing": to_list(service.get_pricing_history(registrar_tld_id)),
                "changes": to_list(service.get_change_logs(registrar_tld_id)),
            },
        )
    finally:
        db.close()


@registrars_bp.route("/registrar-tlds", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("RegistrarTld.Write")
@handle_service_errors
def create_offering():
    dto = RegistrarTldCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        offering = _registrar_tld_service(db).create(dto)
        return api_response(True, "Registrar TLD created", serialize_registrar_tld(offering), 201)
    finally:
        db.close()


@registrars_bp.route("/registrar-tlds/<int:registrar_tld_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("RegistrarTld.Write")
@handle_service_errors
def update_offering(registrar_tld_id: int):
    dto = RegistrarTldUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        offering = _registrar_tld_service(db).update(registrar_tld_id, dto)
        return api_response(True, "Registrar TLD updated", serialize_registrar_tld(offering))
    finally:
        db.close()


@registrars_bp.route("/registrar-tlds/<int:registrar_tld_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("RegistrarTld.Delete")
@handle_service_errors
def delete_offering(registrar_tld_id: int):
    db = SessionLocal()
    try:
        _registrar_tld_service(db).delete(registrar_tld_id)
        return api_response(True, "Registrar TLD deleted")
    finally:
        db.close()
