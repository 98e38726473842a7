"""
Centralized configuration module for application-wide settings.

Every setting is read from the environment once at import time and exposed
as a module-level constant. Startup code calls the ``log_*_config`` helpers
so the effective configuration shows up in the logs.
"""

import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid integer for {name}; using default {default}",
            extra={"context": {"variable": name, "default": default}},
        )
        return default


# ===========================
# Timezone Configuration
# ===========================


def get_app_timezone() -> ZoneInfo:
    """
    Get the application timezone from environment variable.

    Returns:
        ZoneInfo: Application timezone (defaults to UTC if not configured)

    Environment Variables:
        TZ: Timezone identifier (e.g., 'Europe/Oslo', 'UTC')
            Default: 'UTC'

    Examples:
        >>> # In .env file:
        >>> # TZ=Europe/Oslo
        >>> tz = get_app_timezone()
        >>> print(tz)  # Europe/Oslo
    """
    tz_name = os.getenv("TZ", "UTC")

    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(
            f"Invalid timezone '{tz_name}' specified in TZ environment variable. "
            f"Falling back to UTC. Error: {e}"
        )
        return ZoneInfo("UTC")


APP_TZ = get_app_timezone()


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching how rows are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def log_timezone_config():
    """Log the active timezone configuration."""
    logger.info(
        "Timezone configuration initialized",
        extra={
            "context": {
                "timezone": str(APP_TZ),
                "tz_env_var": os.getenv("TZ", "UTC"),
            }
        },
    )


# ===========================
# Billing Configuration
# ===========================


def get_default_currency() -> str:
    """
    Get the currency used for new invoices and quotes.

    Returns:
        str: ISO 4217 currency code, upper-cased

    Environment Variables:
        DEFAULT_CURRENCY: Currency code (e.g., 'EUR', 'USD')
            Default: 'EUR'
    """
    return os.getenv("DEFAULT_CURRENCY", "EUR").strip().upper() or "EUR"


def get_default_tax_name() -> str:
    """
    Get the tax label used when no tax rule provides one.

    Environment Variables:
        DEFAULT_TAX_NAME: Tax label (e.g., 'VAT', 'MVA', 'GST')
            Default: 'VAT'
    """
    return os.getenv("DEFAULT_TAX_NAME", "VAT").strip() or "VAT"


def get_invoice_due_days() -> int:
    """
    Get the number of days between issue date and due date for new invoices.

    Environment Variables:
        INVOICE_DUE_DAYS: Positive integer
            Default: 14
    """
    return max(_env_int("INVOICE_DUE_DAYS", 14), 0)


def get_quote_valid_days() -> int:
    """
    Get how many days a new quote stays valid when no date is provided.

    Environment Variables:
        QUOTE_VALID_DAYS: Positive integer
            Default: 30
    """
    return max(_env_int("QUOTE_VALID_DAYS", 30), 1)


DEFAULT_CURRENCY = get_default_currency()
DEFAULT_TAX_NAME = get_default_tax_name()
INVOICE_DUE_DAYS = get_invoice_due_days()
QUOTE_VALID_DAYS = get_quote_valid_days()
MONEY_QUANT = Decimal("0.01")


def log_billing_config():
    """Log billing defaults."""
    logger.info(
        "Billing configuration loaded",
        extra={
            "context": {
                "default_currency": DEFAULT_CURRENCY,
                "default_tax_name": DEFAULT_TAX_NAME,
                "invoice_due_days": INVOICE_DUE_DAYS,
                "quote_valid_days": QUOTE_VALID_DAYS,
            }
        },
    )


# ===========================
# Email Configuration
# ===========================


def get_email_from_address() -> str:
    """
    Get the sender address stamped on queued emails.

    Environment Variables:
        EMAIL_FROM_ADDRESS: RFC 5322 address
            Default: 'noreply@system.com'
    """
    return os.getenv("EMAIL_FROM_ADDRESS", "noreply@system.com").strip()


def get_email_queue_settings() -> dict:
    """
    Get email queue processor settings.

    Returns:
        dict with keys batch_size, max_per_minute and interval_minutes

    Environment Variables:
        EMAIL_QUEUE_BATCH_SIZE: Emails fetched per run (default 10)
        EMAIL_MAX_PER_MINUTE: Send throttle (default 60)
        EMAIL_QUEUE_INTERVAL_MINUTES: Scheduler interval (default 2)
    """
    return {
        "batch_size": max(_env_int("EMAIL_QUEUE_BATCH_SIZE", 10), 1),
        "max_per_minute": max(_env_int("EMAIL_MAX_PER_MINUTE", 60), 1),
        "interval_minutes": max(_env_int("EMAIL_QUEUE_INTERVAL_MINUTES", 2), 1),
    }


def get_smtp_settings() -> dict:
    """
    Get SMTP connection settings for the queue sender.

    Returns:
        dict with host, port, username, password, use_tls, use_ssl and from_name

    Environment Variables:
        SMTP_HOST: Default 'localhost'
        SMTP_PORT: Default 587; 465 implies implicit TLS
        SMTP_USERNAME / SMTP_PASSWORD: Login is skipped when either is empty
        SMTP_USE_TLS: STARTTLS after connecting (default true)
        SMTP_USE_SSL: Implicit TLS on connect (default false)
        SMTP_FROM_NAME: Display name for the sender (default 'ISP Admin')
    """
    port = _env_int("SMTP_PORT", 587)
    return {
        "host": os.getenv("SMTP_HOST", "localhost").strip(),
        "port": port,
        "username": os.getenv("SMTP_USERNAME", ""),
        "password": os.getenv("SMTP_PASSWORD", ""),
        "use_tls": _env_bool("SMTP_USE_TLS", "true"),
        "use_ssl": _env_bool("SMTP_USE_SSL", "false") or port == 465,
        "from_name": os.getenv("SMTP_FROM_NAME", "ISP Admin").strip(),
    }


def get_public_base_url() -> str:
    """
    Get the public URL used in links sent to customers (quote acceptance).

    Environment Variables:
        PUBLIC_BASE_URL: Default 'http://localhost:5000'
    """
    return os.getenv("PUBLIC_BASE_URL", "http://localhost:5000").strip().rstrip("/")


EMAIL_FROM_ADDRESS = get_email_from_address()
PUBLIC_BASE_URL = get_public_base_url()
EMAIL_QUEUE_SETTINGS = get_email_queue_settings()
SMTP_SETTINGS = get_smtp_settings()


# ===========================
# Exchange Rate Configuration
# ===========================


def get_exchange_rate_settings() -> dict:
    """
    Get exchange rate download settings.

    Returns:
        dict with provider, api_url, hours_between_updates,
        max_updates_per_day and update_on_startup

    Environment Variables:
        EXCHANGE_RATE_PROVIDER: 'frankfurter' or 'exchangeratehost'
            Default: 'frankfurter'
        EXCHANGE_RATE_API_URL: Base URL override for the provider
        EXCHANGE_RATE_HOURS_BETWEEN_UPDATES: Minimum hours between downloads
            Default: 24
        EXCHANGE_RATE_MAX_UPDATES_PER_DAY: 0 means unlimited
            Default: 0
        EXCHANGE_RATE_UPDATE_ON_STARTUP: Download once when the app starts
            Default: false

    Examples:
        >>> # EXCHANGE_RATE_PROVIDER=frankfurter
        >>> # EXCHANGE_RATE_HOURS_BETWEEN_UPDATES=12
        >>> get_exchange_rate_settings()["hours_between_updates"]
        12
    """
    return {
        "provider": os.getenv("EXCHANGE_RATE_PROVIDER", "frankfurter").strip().lower(),
        "api_url": os.getenv("EXCHANGE_RATE_API_URL", "").strip() or None,
        "hours_between_updates": max(
            _env_int("EXCHANGE_RATE_HOURS_BETWEEN_UPDATES", 24), 0
        ),
        "max_updates_per_day": max(_env_int("EXCHANGE_RATE_MAX_UPDATES_PER_DAY", 0), 0),
        "update_on_startup": _env_bool("EXCHANGE_RATE_UPDATE_ON_STARTUP", "false"),
    }


EXCHANGE_RATE_SETTINGS = get_exchange_rate_settings()


# ===========================
# Domain Monitoring Configuration
# ===========================


def get_domain_monitor_settings() -> dict:
    """
    Get domain expiration monitor settings.

    Environment Variables:
        DOMAIN_EXPIRY_WARNING_DAYS: Days before expiration to send reminders
            Default: 30
        DOMAIN_MONITOR_INTERVAL_HOURS: Scheduler interval
            Default: 6
    """
    return {
        "warning_days": max(_env_int("DOMAIN_EXPIRY_WARNING_DAYS", 30), 1),
        "interval_hours": max(_env_int("DOMAIN_MONITOR_INTERVAL_HOURS", 6), 1),
    }


DOMAIN_MONITOR_SETTINGS = get_domain_monitor_settings()


# ===========================
# Scheduler Configuration
# ===========================


def get_scheduler_enabled() -> bool:
    """
    Get whether background jobs should be started by create_app().

    Environment Variables:
        ENABLE_SCHEDULER: 'true' / 'false'
            Default: 'true', forced off when TESTING is set
    """
    if os.getenv("TESTING", "").lower().strip() in ("true", "1", "yes"):
        return _env_bool("ENABLE_SCHEDULER", "false")
    return _env_bool("ENABLE_SCHEDULER", "true")


ENABLE_SCHEDULER = get_scheduler_enabled()


def log_integration_config():
    """Log configuration of background jobs and outbound integrations."""
    logger.info(
        "Integration configuration loaded",
        extra={
            "context": {
                "scheduler_enabled": ENABLE_SCHEDULER,
                "email_from": EMAIL_FROM_ADDRESS,
                "email_queue": EMAIL_QUEUE_SETTINGS,
                "exchange_rate_provider": EXCHANGE_RATE_SETTINGS["provider"],
                "exchange_rate_hours_between_updates": EXCHANGE_RATE_SETTINGS[
                    "hours_between_updates"
                ],
                "domain_monitor": DOMAIN_MONITOR_SETTINGS,
            }
        },
    )
