from flask import Blueprint, request

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.tax_rule_repository import TaxRuleRepository
from isp_admin.schemas.dtos import TaxRuleCreateRequest, TaxRuleUpdateRequest
from isp_admin.schemas.serializers import to_dict, to_list
from isp_admin.services.tax_service import TaxService

tax_rules_bp = Blueprint("tax_rules", __name__, url_prefix="/api/v1/tax-rules")


def _service(db) -> TaxService:
    return TaxService(TaxRuleRepository(db), CustomerRepository(db))


@tax_rules_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("TaxRule.Read")
@handle_service_errors
def list_tax_rules():
    db = SessionLocal()
    try:
        service = _service(db)
        country = request.args.get("country")
        if country:
            rules = service.get_by_location(country, request.args.get("state"))
        else:
            rules = service.get_all()
        return api_response(True, "Tax rules retrieved", to_list(rules))
    finally:
        db.close()


@tax_rules_bp.route("/<int:rule_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("TaxRule.Read")
@handle_service_errors
def get_tax_rule(rule_id: int):
    db = SessionLocal()
    try:
        rule = _service(db).get_by_id(rule_id)
        if rule is None:
            return api_response(False, "Tax rule not found", None, 404)
        return api_response(True, "Tax rule retrieved", to_dict(rule))
    finally:
        db.close()


@tax_rules_bp.route("/", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("TaxRule.Write")
@handle_service_errors
def create_tax_rule():
    dto = TaxRuleCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        rule = _service(db).create(dto)
        return api_response(True, "Tax rule created", to_dict(rule), 201)
    finally:
        db.close()


@tax_rules_bp.route("/<int:rule_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("TaxRule.Write")
@handle_service_errors
def update_tax_rule(rule_id: int):
    dto = TaxRuleUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        rule = _service(db).update(rule_id, dto)
        return api_response(True, "Tax rule updated", to_dict(rule))
    finally:
        db.close()


@tax_rules_bp.route("/<int:rule_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("TaxRule.Delete")
@handle_service_errors
def delete_tax_rule(rule_id: int):
    db = SessionLocal()
    try:
        _service(db).delete(rule_id)
        return api_response(True, "Tax rule deleted")
    finally:
        db.close()


@tax_rules_bp.route("/validate-vat", methods=["POST"])
@limiter.limit(READ_LIMIT)
@csrf.exempt
@require_policy("TaxRule.Read")
@handle_service_errors
def validate_vat():
    body = get_json_body()
    db = SessionLocal()
    try:
        valid = _service(db).validate_vat_number(
            body.get("vat_number", ""), body.get("country_code", "")
        )
        return api_response(True, "VAT number checked", {"valid": valid})
    finally:
        db.close()
