"""
APScheduler jobs run inside the web process.

Each job opens its own database session; failures are logged and never
escape into the scheduler thread.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from isp_admin.core.config import (
    DOMAIN_MONITOR_SETTINGS,
    EMAIL_QUEUE_SETTINGS,
    EXCHANGE_RATE_SETTINGS,
)
from isp_admin.core.exceptions import ExternalServiceError
from isp_admin.core.logging_config import get_logger, log_performance
from isp_admin.db.session import SessionLocal
from isp_admin.integrations.email_sender import SmtpEmailSender
from isp_admin.integrations.exchange_rates import create_rate_provider
from isp_admin.repositories.currency_repository import (
    ExchangeRateDownloadLogRepository,
    ExchangeRateRepository,
)
from isp_admin.repositories.customer_repository import CustomerRepository
from isp_admin.repositories.domain_repository import RegisteredDomainRepository
from isp_admin.repositories.email_queue_repository import EmailQueueRepository
from isp_admin.repositories.invoice_repository import InvoiceRepository
from isp_admin.repositories.quote_repository import QuoteRepository
from isp_admin.repositories.registrar_repository import (
    RegistrarRepository,
    RegistrarTldRepository,
    TldRepository,
)
from isp_admin.repositories.tax_rule_repository import TaxRuleRepository
from isp_admin.services.currency_service import ExchangeRateUpdateService
from isp_admin.services.email_queue_service import EmailQueueProcessor, EmailQueueService
from isp_admin.services.invoice_service import InvoiceService
from isp_admin.services.quote_service import QuoteService
from isp_admin.services.registered_domain_service import DomainExpirationMonitor
from isp_admin.services.registrar_price_sync_service import RegistrarTldPriceSyncService
from isp_admin.services.tax_service import TaxService

logger = get_logger(__name__)

JOB_ERRORS = (SQLAlchemyError, ExternalServiceError, ValueError, OSError)


@log_performance("email_queue_processor", threshold_ms=1000)
def process_email_queue():
    with SessionLocal() as db:
        try:
            processor = EmailQueueProcessor(
                EmailQueueService(EmailQueueRepository(db)), SmtpEmailSender()
            )
            processor.process_pending()
        except JOB_ERRORS as e:
            logger.error(
                "Email queue job failed",
                extra={"context": {"job": "email_queue_processor", "error": str(e)}},
                exc_info=True,
            )


@log_performance("exchange_rate_update")
def update_exchange_rates(is_startup: bool = False):
    with SessionLocal() as db:
        try:
            service = ExchangeRateUpdateService(
                ExchangeRateRepository(db),
                ExchangeRateDownloadLogRepository(db),
                create_rate_provider(
                    EXCHANGE_RATE_SETTINGS["provider"], EXCHANGE_RATE_SETTINGS["api_url"]
                ),
            )
            if is_startup:
                result = service.update_all_rates(is_startup=True)
            else:
                result = service.run_scheduled_update()
            if result is not None:
                logger.info(
                    "Exchange rates updated",
                    extra={"context": {"added": result[0], "updated": result[1]}},
                )
        except JOB_ERRORS as e:
            logger.error(
                "Exchange rate job failed",
                extra={"context": {"job": "exchange_rate_update", "error": str(e)}},
                exc_info=True,
            )


@log_performance("domain_expiration_monitor")
def monitor_domain_expirations():
    with SessionLocal() as db:
        try:
            customer_repo = CustomerRepository(db)
            tax_service = TaxService(TaxRuleRepository(db), customer_repo)
            monitor = DomainExpirationMonitor(
                RegisteredDomainRepository(db),
                customer_repo,
                email_queue_service=EmailQueueService(EmailQueueRepository(db)),
                invoice_service=InvoiceService(InvoiceRepository(db), customer_repo, tax_service),
                quote_service=QuoteService(QuoteRepository(db), customer_repo, tax_service),
            )
            monitor.run()
        except JOB_ERRORS as e:
            logger.error(
                "Domain expiration job failed",
                extra={"context": {"job": "domain_expiration_monitor", "error": str(e)}},
                exc_info=True,
            )


@log_performance("registrar_price_sync")
def sync_registrar_prices():
    with SessionLocal() as db:
        try:
            service = RegistrarTldPriceSyncService(
                RegistrarTldRepository(db), RegistrarRepository(db), TldRepository(db)
            )
            service.sync_registrars_missing_today("scheduler")
        except JOB_ERRORS as e:
            logger.error(
                "Registrar price sync job failed",
                extra={"context": {"job": "registrar_price_sync", "error": str(e)}},
                exc_info=True,
            )


def create_scheduler() -> BackgroundScheduler:
    """Build the scheduler with every recurring job registered."""
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        process_email_queue,
        trigger=IntervalTrigger(minutes=EMAIL_QUEUE_SETTINGS["interval_minutes"]),
        id="email_queue_processor",
        name="Deliver queued emails",
        replace_existing=True,
    )
    scheduler.add_job(
        update_exchange_rates,
        trigger=IntervalTrigger(hours=1),
        id="exchange_rate_update",
        name="Download exchange rates",
        replace_existing=True,
    )
    scheduler.add_job(
        monitor_domain_expirations,
        trigger=IntervalTrigger(hours=DOMAIN_MONITOR_SETTINGS["interval_hours"]),
        id="domain_expiration_monitor",
        name="Domain expiration reminders and housekeeping",
        replace_existing=True,
    )
    scheduler.add_job(
        sync_registrar_prices,
        trigger=CronTrigger(hour=3, minute=0),
        id="registrar_price_sync",
        name="Download registrar TLD cost prices",
        replace_existing=True,
    )
    return scheduler


def start_scheduler(app) -> BackgroundScheduler:
    scheduler = create_scheduler()
    scheduler.start()
    app.config["SCHEDULER"] = scheduler
    logger.info(
        "Background scheduler started",
        extra={"context": {"jobs": [job.id for job in scheduler.get_jobs()]}},
    )
    if EXCHANGE_RATE_SETTINGS["update_on_startup"]:
        update_exchange_rates(is_startup=True)
    return scheduler
