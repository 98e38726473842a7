import logging
import os
import sys

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_login import LoginManager

# Only load from .env when DATABASE_URL is not already defined by the environment
if not os.getenv("DATABASE_URL"):
    load_dotenv()

logger = logging.getLogger(__name__)


def _is_test_mode(app: Flask) -> bool:
    """Check if we're running in test mode (pytest/CI)."""
    testing_val = os.getenv("TESTING", "").lower().strip()
    if testing_val in ("true", "1", "yes"):
        return True
    if "pytest" in sys.modules:
        return True
    if os.getenv("PYTEST_CURRENT_TEST"):
        return True
    return bool(app.config.get("TESTING"))


def _init_sentry(env: str) -> None:
    sentry_dsn = os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        logger.info(
            "Sentry not initialized (SENTRY_DSN not set)",
            extra={"context": {"environment": env}},
        )
        return

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=env,
        release=os.getenv("GIT_SHA", "unknown"),
        integrations=[FlaskIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=0.1,
        profiles_sample_rate=0.1,
        send_default_pii=False,
    )
    logger.info(
        "Sentry initialized",
        extra={"context": {"environment": env, "release": os.getenv("GIT_SHA", "unknown")}},
    )


def _init_metrics(app: Flask, env: str) -> None:
    # Must run before the limiter binds so /metrics is never rate-limited
    from prometheus_flask_exporter import PrometheusMetrics

    metrics = PrometheusMetrics(app)
    try:
        metrics.info(
            "app_info",
            "Application information",
            version=os.getenv("GIT_SHA", "unknown"),
            environment=env,
        )
    except ValueError as e:
        # Metric already registered (create_app called more than once)
        logger.debug(
            "app_info metric already registered",
            extra={"context": {"error": str(e)}},
        )


def _init_login_manager(app: Flask) -> None:
    """Resolve Bearer tokens for Flask-Login's ``current_user``."""
    from isp_admin.core.security import get_user_from_token
    from isp_admin.db.base import User
    from isp_admin.db.session import SessionLocal

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401

    @login_manager.user_loader
    def load_user(user_id):
        with SessionLocal() as db:
            return db.get(User, int(user_id))

    @login_manager.request_loader
    def load_user_from_request(request):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return None
        user_data = get_user_from_token(auth_header.split(" ", 1)[1])
        if not user_data:
            return None
        with SessionLocal() as db:
            user = db.get(User, user_data["user_id"])
        if user is None or not user.is_active:
            return None
        return user


def _register_blueprints(app: Flask) -> None:
    from isp_admin.controllers.auth_controller import auth_bp
    from isp_admin.controllers.credit_controller import credits_bp
    from isp_admin.controllers.currency_controller import currencies_bp
    from isp_admin.controllers.customer_controller import customers_bp
    from isp_admin.controllers.dns_controller import dns_bp
    from isp_admin.controllers.domain_controller import domains_bp
    from isp_admin.controllers.email_controller import emails_bp
    from isp_admin.controllers.health_controller import health_bp
    from isp_admin.controllers.hosting_controller import hosting_bp
    from isp_admin.controllers.invoice_controller import invoices_bp
    from isp_admin.controllers.payment_controller import payments_bp
    from isp_admin.controllers.payment_intent_controller import payment_intents_bp
    from isp_admin.controllers.payment_method_controller import payment_methods_bp
    from isp_admin.controllers.quote_controller import quotes_bp
    from isp_admin.controllers.refund_controller import refunds_bp
    from isp_admin.controllers.registrar_controller import registrars_bp
    from isp_admin.controllers.system_setting_controller import settings_bp
    from isp_admin.controllers.tax_controller import tax_rules_bp
    from isp_admin.controllers.user_controller import users_bp

    for blueprint in (
        health_bp,
        auth_bp,
        users_bp,
        settings_bp,
        customers_bp,
        currencies_bp,
        tax_rules_bp,
        invoices_bp,
        quotes_bp,
        payments_bp,
        payment_methods_bp,
        payment_intents_bp,
        credits_bp,
        refunds_bp,
        registrars_bp,
        domains_bp,
        dns_bp,
        hosting_bp,
        emails_bp,
    ):
        app.register_blueprint(blueprint)


def create_app():  # noqa: C901
    env = os.getenv("FLASK_ENV", "development")
    is_production = env == "production"

    app = Flask(__name__)
    app.url_map.strict_slashes = False

    if os.getenv("TESTING", "").lower().strip() in ("true", "1", "yes"):
        app.config["TESTING"] = True

    from isp_admin.core.logging_config import setup_logging

    setup_logging(
        app=app,
        log_level=logging.INFO if is_production else logging.DEBUG,
        log_to_file=os.getenv("LOG_TO_FILE", "false").lower() in ("1", "true"),
        use_json_format=is_production or os.getenv("LOG_JSON", "false").lower() in ("1", "true"),
    )
    logger.info(
        "Logging configured",
        extra={"context": {"environment": env, "json_format": is_production}},
    )

    from isp_admin.core.config import (
        ENABLE_SCHEDULER,
        log_billing_config,
        log_integration_config,
        log_timezone_config,
    )

    log_timezone_config()
    log_billing_config()
    log_integration_config()

    _init_sentry(env)
    _init_metrics(app, env)

    app.config["SECRET_KEY"] = os.getenv("FLASK_SECRET_KEY", "dev-secret-change-me")
    if is_production:
        weak_secrets = ["dev-secret-change-me", "dev-jwt-secret-change-me", "secret123"]
        secret_key = app.config["SECRET_KEY"]
        if secret_key in weak_secrets or len(secret_key) < 32:
            raise ValueError(
                "Production deployment requires strong SECRET_KEY (min 32 chars). "
                "Set FLASK_SECRET_KEY environment variable."
            )

    from isp_admin.core.limiter_config import limiter

    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("LIMITER_STORAGE_URI", "memory://")
    rate_limit_off = _is_test_mode(app) and os.getenv("RATE_LIMIT_ENABLED", "1") == "0"
    app.config["RATELIMIT_ENABLED"] = not rate_limit_off
    limiter.init_app(app)
    if rate_limit_off:
        limiter.enabled = False
        logger.info("Rate limiting disabled for testing", extra={"context": {"test_mode": True}})

    from isp_admin.core.csrf_config import csrf

    csrf.init_app(app)
    app.config["WTF_CSRF_TIME_LIMIT"] = None
    app.config["WTF_CSRF_SSL_STRICT"] = is_production

    if is_production:
        from flask_talisman import Talisman

        Talisman(
            app,
            content_security_policy={"default-src": ["'none'"], "frame-ancestors": ["'none'"]},
            force_https=True,
            strict_transport_security=True,
            strict_transport_security_max_age=63072000,
            strict_transport_security_include_subdomains=True,
            frame_options="DENY",
            referrer_policy="no-referrer",
        )

    app.config["LOGIN_DISABLED"] = (
        _is_test_mode(app) and os.getenv("LOGIN_DISABLED", "0").lower() in ("1", "true")
    )
    _init_login_manager(app)
    _register_blueprints(app)

    from isp_admin.db.seed import seed_reference_data
    from isp_admin.db.session import create_tables

    create_tables()
    seed_reference_data()

    if ENABLE_SCHEDULER:
        from isp_admin.services.background_jobs import start_scheduler

        start_scheduler(app)

    logger.info(
        "Application created",
        extra={"context": {"environment": env, "blueprints": sorted(app.blueprints)}},
    )
    return app
