from flask import Blueprint

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.system_setting_repository import SystemSettingRepository
from isp_admin.schemas.dtos import SystemSettingRequest
from isp_admin.schemas.serializers import to_dict, to_list
from isp_admin.services.system_setting_service import SystemSettingService

settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1/settings")


@settings_bp.route("/", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("SystemSetting.Read")
@handle_service_errors
def list_settings():
    db = SessionLocal()
    try:
        settings = SystemSettingService(SystemSettingRepository(db)).get_all()
        return api_response(True, "Settings retrieved", to_list(settings))
    finally:
        db.close()


@settings_bp.route("/<string:key>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("SystemSetting.Read")
@handle_service_errors
def get_setting(key: str):
    db = SessionLocal()
    try:
        setting = SystemSettingService(SystemSettingRepository(db)).get_by_key(key)
        if setting is None:
            return api_response(False, f"System setting '{key}' not found", None, 404)
        return api_response(True, "Setting retrieved", to_dict(setting))
    finally:
        db.close()


@settings_bp.route("/", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("SystemSetting.Write")
@handle_service_errors
def upsert_setting():
    dto = SystemSettingRequest.from_dict(get_json_body())
    dto.validate()
    db = SessionLocal()
    try:
        setting = SystemSettingService(SystemSettingRepository(db)).upsert(
            dto.key, dto.value, dto.description
        )
        return api_response(True, "Setting saved", to_dict(setting))
    finally:
        db.close()


@settings_bp.route("/<string:key>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("SystemSetting.Delete")
@handle_service_errors
def delete_setting(key: str):
    db = SessionLocal()
    try:
        SystemSettingService(SystemSettingRepository(db)).delete(key)
        return api_response(True, "Setting deleted")
    finally:
        db.close()
