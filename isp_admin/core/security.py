"""
Password hashing, access tokens and random secrets.

Access tokens are HS256 JWTs. The ``sub`` claim holds the user id, ``role``
the back-office role, and ``cid`` the linked customer for portal users.
"""

import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
_DEV_SECRET = "dev-jwt-secret-change-me"
_WEAK_SECRETS = {_DEV_SECRET, "dev-secret-change-me", "secret123", "changeme"}
MIN_PRODUCTION_SECRET_LENGTH = 32


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Check a password; malformed or empty hashes never match."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def get_jwt_secret_key() -> str:
    """Signing key from JWT_SECRET_KEY.

    Raises:
        ValueError: When FLASK_ENV=production and the key is a known default
            or shorter than MIN_PRODUCTION_SECRET_LENGTH
    """
    secret = os.getenv("JWT_SECRET_KEY", _DEV_SECRET)
    if os.getenv("FLASK_ENV") == "production" and (
        secret in _WEAK_SECRETS or len(secret) < MIN_PRODUCTION_SECRET_LENGTH
    ):
        raise ValueError(
            "Production deployment requires strong JWT_SECRET_KEY "
            f"(min {MIN_PRODUCTION_SECRET_LENGTH} chars). Set JWT_SECRET_KEY environment variable."
        )
    return secret


def get_token_lifetime() -> timedelta:
    try:
        hours = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))
    except ValueError:
        hours = 24
    return timedelta(hours=max(hours, 1))


def create_access_token(
    data: Dict[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    issued_at = datetime.now(timezone.utc)
    claims = dict(data)
    claims.setdefault("type", ACCESS_TOKEN_TYPE)
    claims["iat"] = issued_at
    claims["exp"] = issued_at + (expires_delta or get_token_lifetime())
    return jwt.encode(claims, get_jwt_secret_key(), algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verified claims, or None for a bad signature, expiry or token type."""
    try:
        claims = jwt.decode(token, get_jwt_secret_key(), algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    if claims.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        return None
    return claims


def create_user_token(
    user_id: int, email: str, role: str, customer_id: Optional[int] = None
) -> str:
    claims: Dict[str, Any] = {"sub": str(user_id), "email": email, "role": role}
    if customer_id is not None:
        claims["cid"] = customer_id
    return create_access_token(claims)


def get_user_from_token(token: str) -> Optional[Dict[str, Any]]:
    """Identity carried by a token.

    Returns:
        ``{"user_id", "email", "role"}`` plus ``customer_id`` when the token
        was issued to a portal user, or None if the token is unusable
    """
    claims = decode_access_token(token)
    if claims is None or claims.get("sub") is None or claims.get("email") is None:
        return None

    try:
        identity = {
            "user_id": int(claims["sub"]),
            "email": claims["email"],
            "role": claims.get("role"),
        }
        if claims.get("cid") is not None:
            identity["customer_id"] = int(claims["cid"])
    except (TypeError, ValueError):
        return None
    return identity


def generate_secure_token(nbytes: int = 32) -> str:
    """URL-safe random string for acceptance links and panel passwords."""
    return secrets.token_urlsafe(nbytes)
