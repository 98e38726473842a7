from flask import Blueprint, request

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import get_current_user, require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.domain_repository import RegisteredDomainRepository
from isp_admin.repositories.registrar_repository import (
    RegistrarRepository,
    RegistrarTldRepository,
    TldRepository,
)
from isp_admin.repositories.user_repository import UserRepository
from isp_admin.schemas.dtos import (
    DomainRegistrationRequest,
    RegisteredDomainCreateRequest,
    RegisteredDomainUpdateRequest,
)
from isp_admin.schemas.serializers import serialize_dataclass, to_dict, to_list
from isp_admin.services.registered_domain_service import RegisteredDomainService
from isp_admin.services.user_service import UserService

domains_bp = Blueprint("domains", __name__, url_prefix="/api/v1/domains")


def _service(db) -> RegisteredDomainService:
    return RegisteredDomainService(
        RegisteredDomainRepository(db),
        CustomerRepository(db),
        RegistrarRepository(db),
        RegistrarTldRepository(db),
        TldRepository(db),
    )


@domains_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegisteredDomain.Read")
@handle_service_errors
def list_domains():
    """List domains, optionally filtered by ``customer_id``, ``registrar_id`` or ``status``."""
    customer_id = request.args.get("customer_id", type=int)
    registrar_id = request.args.get("registrar_id", type=int)
    status = request.args.get("status")
    db = SessionLocal()
    try:
        service = _service(db)
        if customer_id:
            domains = service.get_by_customer(customer_id)
        elif registrar_id:
            domains = service.get_by_registrar(registrar_id)
        elif status:
            domains = service.get_by_status(status)
        else:
            domains = service.get_all()
        return api_response(True, "Domains retrieved", to_list(domains))
    finally:
        db.close()


@domains_bp.route("/<int:domain_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegisteredDomain.Read")
@handle_service_errors
def get_domain(domain_id: int):
    db = SessionLocal()
    try:
        domain = _service(db).get_by_id(domain_id)
        if domain is None:
            return api_response(False, "Domain not found", None, 404)
        return api_response(True, "Domain retrieved", to_dict(domain))
    finally:
        db.close()


@domains_bp.route("/by-name/<string:name>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegisteredDomain.Read")
@handle_service_errors
def get_domain_by_name(name: str):
    db = SessionLocal()
    try:
        domain = _service(db).get_by_name(name)
        if domain is None:
            return api_response(False, "Domain not found", None, 404)
        return api_response(True, "Domain retrieved", to_dict(domain))
    finally:
        db.close()


@domains_bp.route("/expiring", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegisteredDomain.Read")
@handle_service_errors
def list_expiring():
    days = request.args.get("days", 30, type=int)
    db = SessionLocal()
    try:
        domains = _service(db).get_expiring_in_days(days)
        return api_response(True, f"Domains expiring within {days} days", to_list(domains))
    finally:
        db.close()


@domains_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("RegisteredDomain.Write")
@handle_service_errors
def create_domain():
    """Record a domain registered outside this system."""
    dto = RegisteredDomainCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        domain = _service(db).create(dto)
        return api_response(True, "Domain created", to_dict(domain), 201)
    finally:
        db.close()


@domains_bp.route("/<int:domain_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("RegisteredDomain.Write")
@handle_service_errors
def update_domain(domain_id: int):
    dto = RegisteredDomainUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        domain = _service(db).update(domain_id, dto)
        return api_response(True, "Domain updated", to_dict(domain))
    finally:
        db.close()


@domains_bp.route("/<int:domain_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("RegisteredDomain.Delete")
@handle_service_errors
def delete_domain(domain_id: int):
    db = SessionLocal()
    try:
        _service(db).delete(domain_id)
        return api_response(True, "Domain deleted")
    finally:
        db.close()


@domains_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
@csrf.exempt
@require_policy("RegisteredDomain.Write")
@handle_service_errors
def register_domain():
    body = get_json_body()
    dto = DomainRegistrationRequest.from_dict(body)
    requested_id = int(body["customer_id"]) if body.get("customer_id") is not None else None
    db = SessionLocal()
    try:
        user = get_current_user()
        customer_id = UserService(UserRepository(db)).resolve_customer_id(
            getattr(user, "id", None), getattr(user, "role", None), requested_id
        )
        domain = _service(db).register_domain(dto, customer_id)
        return api_response(True, f"Domain {domain.name} registered", to_dict(domain), 201)
    finally:
        db.close()


@domains_bp.route("/availability/<string:name>", methods=["GET"])
@limiter.limit("20 per minute")
@require_policy("RegisteredDomain.Read")
@handle_service_errors
def check_availability(name: str):
    db = SessionLocal()
    try:
        availability = _service(db).check_availability(name)
        return api_response(True, "Availability checked", serialize_dataclass(availability))
    finally:
        db.close()


@domains_bp.route("/pricing/<string:tld>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegisteredDomain.Read")
@handle_service_errors
def get_pricing(tld: str):
    db = SessionLocal()
    try:
        pricing = _service(db).get_domain_pricing(tld)
        if pricing is None:
            return api_response(False, f"No pricing available for .{tld.lstrip('.')}", None, 404)
        return api_response(True, "Pricing retrieved", pricing)
    finally:
        db.close()


@domains_bp.route("/available-tlds", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("RegisteredDomain.Read")
@handle_service_errors
def list_available_tlds():
    db = SessionLocal()
    try:
        return api_response(True, "Available TLDs retrieved", _service(db).get_available_tlds())
    finally:
        db.close()
