from flask import Blueprint, jsonify

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import get_current_user, jwt_required
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import LOGIN_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.repositories.user_repository import UserRepository
from isp_admin.schemas.dtos import LoginRequest
from isp_admin.schemas.serializers import serialize_user
from isp_admin.services.user_service import UserService

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(LOGIN_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@handle_service_errors
def login():
    """Exchange email and password for a JWT.

    Expected JSON: {"email": str, "password": str}
    Returns: {"token": str, "user": {...}}; 401 on bad credentials.
    """
    dto = LoginRequest.from_dict(get_json_body())
    dto.validate()
    db = SessionLocal()
    try:
        service = UserService(UserRepository(db))
        try:
            token, user = service.login(dto.email, dto.password)
        except ValueError as e:
            return api_response(False, str(e), None, 401)
        return api_response(
            True, "Login successful", {"token": token, "user": serialize_user(user)}
        )
    finally:
        db.close()


@auth_bp.route("/me", methods=["GET"])
@jwt_required
def me():
    user = get_current_user()
    return jsonify(
        {
            "success": True,
            "data": {"id": user.id, "email": user.email, "role": user.role},
        }
    )
