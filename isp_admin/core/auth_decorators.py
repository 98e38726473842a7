"""
Authentication and role-based authorization helpers.

Every API route is protected by a JWT Bearer token issued by
``POST /api/v1/auth/login``. The token carries the user's role, and routes
declare the policy they need:

    @customers_bp.route("/", methods=["GET"])
    @require_policy("Customer.Read")
    def list_customers():
        ...

Policies map to the set of roles that may use them. ``Admin`` passes every
policy. When ``LOGIN_DISABLED`` is set in the app config (local debugging
only) an Admin user is injected.
"""

from functools import wraps
from types import SimpleNamespace
from typing import Any, Dict, FrozenSet

from flask import current_app, g, jsonify, request

from isp_admin.core.security import get_user_from_token

ROLE_ADMIN = "Admin"
ROLE_SUPPORT = "Support"
ROLE_SALES = "Sales"
ROLE_FINANCE = "Finance"
ROLE_CUSTOMER = "Customer"

ROLES = (ROLE_ADMIN, ROLE_SUPPORT, ROLE_SALES, ROLE_FINANCE, ROLE_CUSTOMER)


def _policy(read, write, delete=(ROLE_ADMIN,)) -> Dict[str, FrozenSet[str]]:
    return {
        "Read": frozenset(read),
        "Write": frozenset(write),
        "Delete": frozenset(delete),
    }


_STAFF = (ROLE_ADMIN, ROLE_SUPPORT, ROLE_SALES)

_POLICY_GROUPS = {
    ("Customer", "ContactPerson"): _policy(_STAFF, (ROLE_ADMIN, ROLE_SALES)),
    ("User",): _policy((ROLE_ADMIN, ROLE_SUPPORT), (ROLE_ADMIN,)),
    ("Invoice",): _policy(_STAFF + (ROLE_FINANCE,), (ROLE_ADMIN, ROLE_SALES, ROLE_FINANCE)),
    ("Payment", "PaymentGateway"): _policy(
        (ROLE_ADMIN, ROLE_SUPPORT, ROLE_FINANCE), (ROLE_ADMIN, ROLE_FINANCE)
    ),
    ("Quote",): _policy(_STAFF, (ROLE_ADMIN, ROLE_SALES)),
    ("Refund",): _policy((ROLE_ADMIN, ROLE_SUPPORT), (ROLE_ADMIN,)),
    ("TaxRule", "SystemSetting"): _policy((ROLE_ADMIN,), (ROLE_ADMIN,)),
    ("EmailQueue",): _policy(_STAFF, _STAFF),
    ("PaymentIntent",): _policy(
        (ROLE_ADMIN, ROLE_SUPPORT), (ROLE_ADMIN, ROLE_SUPPORT, ROLE_CUSTOMER)
    ),
    ("CustomerCredit", "CustomerPaymentMethod"): _policy(
        (ROLE_ADMIN, ROLE_SUPPORT, ROLE_FINANCE), (ROLE_ADMIN, ROLE_FINANCE)
    ),
    ("Currency",): _policy((ROLE_ADMIN, ROLE_FINANCE), (ROLE_ADMIN, ROLE_FINANCE)),
    ("Tld", "Registrar", "RegistrarTld"): _policy(
        _STAFF + (ROLE_CUSTOMER,), (ROLE_ADMIN,)
    ),
    ("RegisteredDomain", "DnsRecord", "DnsZonePackage"): _policy(
        _STAFF, (ROLE_ADMIN, ROLE_SUPPORT)
    ),
    ("Server", "ServerControlPanel", "Hosting"): _policy(
        (ROLE_ADMIN, ROLE_SUPPORT), (ROLE_ADMIN, ROLE_SUPPORT)
    ),
}

POLICIES: Dict[str, FrozenSet[str]] = {
    f"{resource}.{action}": roles
    for resources, actions in _POLICY_GROUPS.items()
    for resource in resources
    for action, roles in actions.items()
}
POLICIES["Admin.Only"] = frozenset({ROLE_ADMIN})


def is_role_allowed(policy: str, role: str) -> bool:
    """Return True when ``role`` satisfies ``policy``.

    Raises:
        KeyError: If the policy name is unknown (a programming error)
    """
    allowed = POLICIES[policy]
    return role == ROLE_ADMIN or role in allowed


def get_current_user() -> Any:
    """Return the user resolved for this request, or None."""
    return getattr(g, "current_user", None)


def get_current_user_id():
    user = get_current_user()
    return getattr(user, "id", None) if user is not None else None


def _authenticate():
    """Resolve the Bearer token into ``g.current_user``.

    Returns:
        None on success, or a (response, status) tuple on failure
    """
    if current_app.config.get("LOGIN_DISABLED", False):
        g.current_user = SimpleNamespace(
            id=None, email="test@authorized.com", role=ROLE_ADMIN, name="Test User"
        )
        return None

    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return jsonify({"error": "Missing or invalid Authorization header"}), 401

    token = auth_header.split(" ", 1)[1]
    user_data = get_user_from_token(token)
    if not user_data:
        return jsonify({"error": "Invalid or expired token"}), 401

    g.current_user = SimpleNamespace(
        id=user_data["user_id"],
        email=user_data["email"],
        role=user_data.get("role") or ROLE_CUSTOMER,
        customer_id=user_data.get("customer_id"),
    )
    return None


def jwt_required(f):
    """Decorator to require JWT authentication without a role check."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        failure = _authenticate()
        if failure is not None:
            return failure
        return f(*args, **kwargs)

    return decorated_function


def require_policy(policy: str):
    """Decorator enforcing JWT authentication and a named role policy.

    Returns:
        - 401 if the token is missing or invalid
        - 403 if the user's role is not allowed by the policy
        - Proceeds to route if both checks pass
    """
    if policy not in POLICIES:
        raise KeyError(f"Unknown authorization policy: {policy}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            failure = _authenticate()
            if failure is not None:
                return failure

            role = getattr(g.current_user, "role", None)
            if not is_role_allowed(policy, role):
                return (
                    jsonify(
                        {
                            "error": "Access denied. Your role is not authorized to access this resource.",
                            "policy": policy,
                        }
                    ),
                    403,
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator
