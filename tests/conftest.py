"""
Central pytest configuration for the ISP admin back-office tests.

Environment variables are set before any application import so the lazy
engine in ``isp_admin.db.session`` binds to the in-memory SQLite database.
"""

import os
import uuid

import pytest

# Test database configuration (set early so import-time engines use it)
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["TESTING"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "0"  # Disable rate limiting in tests
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("SENTRY_DSN", None)

from isp_admin.core.security import create_user_token, hash_password  # noqa: E402
from isp_admin.db.base import User  # noqa: E402
from isp_admin.db.session import SessionLocal, create_tables  # noqa: E402

from tests.config.markers import (  # noqa: E402,F401
    pytest_collection_modifyitems,
    pytest_configure,
    response_helper,
)

create_tables()


@pytest.fixture(scope="session")
def app():
    """Flask application built by the real factory."""
    from isp_admin.main import create_app

    flask_app = create_app()
    flask_app.config.update(TESTING=True, WTF_CSRF_ENABLED=False)
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session():
    """A session on the shared test database, closed after the test."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def _make_user(role: str, customer_id=None) -> User:
    with SessionLocal() as session:
        user = User(
            email=f"{role.lower()}-{uuid.uuid4().hex[:8]}@example.com",
            name=f"{role} User",
            password_hash=hash_password("correct-horse-battery"),
            role=role,
            active_flag=True,
            customer_id=customer_id,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user


@pytest.fixture
def user_factory():
    """Create persisted users: ``user_factory("Support")``."""
    return _make_user


@pytest.fixture
def admin_user():
    return _make_user("Admin")


@pytest.fixture
def auth_headers(admin_user):
    """Bearer headers for an Admin user."""
    token = create_user_token(admin_user.id, admin_user.email, admin_user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    """Bearer headers for any persisted user."""

    def _headers(user):
        token = create_user_token(user.id, user.email, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
