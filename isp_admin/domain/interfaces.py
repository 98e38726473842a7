"""
Abstract interfaces for repositories and external integrations.

These interfaces define contracts without implementation details,
enabling dependency injection and easier testing.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from .entities import (
    DomainAvailability,
    DomainRegistrationResult,
    GatewayResult,
    OutgoingEmail,
    TldPrice,
)

if TYPE_CHECKING:
    from isp_admin.integrations.hosting_panels.results import (
        AccountInfoResult,
        AccountUpdateResult,
        DatabaseResult,
        HostingAccountResult,
        MailAccountResult,
        WebAccountRequest,
    )


class IRepository(ABC):
    """Persistence operations shared by every repository."""

    @abstractmethod
    def get_by_id(self, entity_id: int):
        """Get entity by ID, or None."""
        pass

    @abstractmethod
    def add(self, entity):
        """Persist a new entity."""
        pass

    @abstractmethod
    def save(self, entity):
        """Persist changes to an existing entity."""
        pass

    @abstractmethod
    def delete(self, entity) -> None:
        """Delete an entity."""
        pass


# ------------------- USERS / SETTINGS -------------------
class IUserRepository(IRepository):
    @abstractmethod
    def get_by_email(self, email: str):
        """Get user by email (case-insensitive)."""
        pass

    @abstractmethod
    def get_all(self) -> List:
        """Get all users ordered by name."""
        pass


class ISystemSettingRepository(IRepository):
    @abstractmethod
    def get_by_key(self, key: str):
        """Get a setting by its unique key."""
        pass

    @abstractmethod
    def get_all(self) -> List:
        pass


# ------------------- CUSTOMERS -------------------
class ICustomerRepository(IRepository):
    """Interface for customer persistence."""

    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_paged(self, page: int, page_size: int) -> Tuple[List, int]:
        """Get one page of customers and the total count."""
        pass

    @abstractmethod
    def get_by_email(self, email: str):
        """Match primary or billing email."""
        pass

    @abstractmethod
    def get_by_contact_email(self, email: str):
        """Get the customer owning a contact person with this email."""
        pass

    @abstractmethod
    def email_exists(self, email: str, exclude_id: Optional[int] = None) -> bool:
        pass

    @abstractmethod
    def search(self, term: str, limit: int = 50) -> List:
        """Search customers and their contact persons."""
        pass


class IContactPersonRepository(IRepository):
    @abstractmethod
    def get_by_customer(self, customer_id: int) -> List:
        pass

    @abstractmethod
    def clear_primary(self, customer_id: int, except_id: Optional[int] = None) -> None:
        """Unset the primary flag on a customer's other contacts."""
        pass


# ------------------- CURRENCY / TAX -------------------
class IExchangeRateRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_active(self) -> List:
        pass

    @abstractmethod
    def get_for_pair(self, base: str, target: str) -> List:
        pass

    @abstractmethod
    def find_effective_rate(self, base: str, target: str, at: datetime):
        """Get the rate in effect at a point in time."""
        pass

    @abstractmethod
    def get_active_for_pair(self, base: str, target: str):
        pass

    @abstractmethod
    def get_expired_active(self, now: datetime) -> List:
        pass

    @abstractmethod
    def save_all(self, rates: List) -> None:
        pass


class IExchangeRateDownloadLogRepository(IRepository):
    @abstractmethod
    def add_all(self, logs: List) -> None:
        pass

    @abstractmethod
    def get_recent(self, limit: int = 50) -> List:
        pass

    @abstractmethod
    def get_last_successful_summary(self):
        pass

    @abstractmethod
    def count_successful_summaries_since(self, since: datetime) -> int:
        pass


class ITaxRuleRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_active(self, now: datetime) -> List:
        pass

    @abstractmethod
    def get_by_location(
        self, country_code: str, state_code: Optional[str], now: datetime
    ) -> List:
        """Get active rules for a location, most specific first."""
        pass


# ------------------- BILLING -------------------
class IInvoiceRepository(IRepository):
    @abstractmethod
    def get_by_number(self, invoice_number: str):
        pass

    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_paged(self, page: int, page_size: int) -> Tuple[List, int]:
        pass

    @abstractmethod
    def get_by_customer(self, customer_id: int) -> List:
        pass

    @abstractmethod
    def get_by_status(self, status: str) -> List:
        pass

    @abstractmethod
    def get_last_id(self) -> int:
        """Get the highest invoice ID, 0 when there are none."""
        pass

    @abstractmethod
    def get_overdue_candidates(self, today: date, statuses) -> List:
        pass

    @abstractmethod
    def add_payment(self, payment):
        """Record an amount applied to an invoice."""
        pass

    @abstractmethod
    def get_payments(self, invoice_id: int) -> List:
        pass


class IPaymentGatewayRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_active(self) -> List:
        pass

    @abstractmethod
    def get_default(self):
        pass

    @abstractmethod
    def get_by_code(self, provider_code: str):
        pass

    @abstractmethod
    def clear_default(self, except_id: Optional[int] = None) -> None:
        pass


class IPaymentAttemptRepository(IRepository):
    @abstractmethod
    def get_by_invoice(self, invoice_id: int) -> List:
        pass


class IPaymentTransactionRepository(IRepository):
    @abstractmethod
    def get_by_invoice(self, invoice_id: int) -> List:
        pass

    @abstractmethod
    def get_by_transaction_id(self, transaction_id: str):
        pass

    @abstractmethod
    def get_by_gateway_transaction_id(self, gateway_transaction_id: str):
        pass


class ICustomerPaymentMethodRepository(IRepository):
    @abstractmethod
    def get_by_customer(self, customer_id: int) -> List:
        pass

    @abstractmethod
    def get_default(self, customer_id: int):
        pass

    @abstractmethod
    def get_newest(self, customer_id: int, exclude_id: Optional[int] = None):
        pass

    @abstractmethod
    def clear_default(self, customer_id: int, except_id: Optional[int] = None) -> None:
        pass


class ICreditRepository(IRepository):
    @abstractmethod
    def get_by_customer(self, customer_id: int):
        pass

    @abstractmethod
    def get_transactions(self, credit_id: int) -> List:
        pass

    @abstractmethod
    def save_with_transaction(self, credit, transaction):
        """Persist a balance change together with its ledger entry."""
        pass


class IQuoteRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_by_customer(self, customer_id: int) -> List:
        pass

    @abstractmethod
    def get_by_status(self, status: str) -> List:
        pass

    @abstractmethod
    def get_by_token(self, token: str):
        pass

    @abstractmethod
    def get_last_id(self) -> int:
        pass

    @abstractmethod
    def get_expirable(self, today: date, statuses) -> List:
        pass


class IRefundRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_by_invoice(self, invoice_id: int) -> List:
        pass

    @abstractmethod
    def get_pending_amount(self, invoice_id: int) -> Decimal:
        """Get the total of pending refunds for an invoice."""
        pass


class IPaymentIntentRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_by_customer(self, customer_id: int) -> List:
        pass

    @abstractmethod
    def get_by_gateway_intent_id(self, gateway_id: int, gateway_intent_id: str):
        pass


# ------------------- DOMAINS / REGISTRARS -------------------
class ITldRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_active(self) -> List:
        pass

    @abstractmethod
    def get_by_extension(self, extension: str):
        pass


class IRegistrarRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_active(self) -> List:
        pass

    @abstractmethod
    def get_default(self):
        pass

    @abstractmethod
    def get_by_code(self, code: str):
        pass

    @abstractmethod
    def clear_default(self, except_id: Optional[int] = None) -> None:
        pass


class IRegistrarTldRepository(IRepository):
    """Interface for registrar/TLD offerings and their price history."""

    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_by_registrar(self, registrar_id: int, active_only: bool = False) -> List:
        pass

    @abstractmethod
    def get_by_tld(self, tld_id: int) -> List:
        pass

    @abstractmethod
    def get_by_pair(self, registrar_id: int, tld_id: int):
        pass

    @abstractmethod
    def get_current_pricing(self, registrar_tld_id: int, now: datetime):
        pass

    @abstractmethod
    def get_pricing_history(self, registrar_tld_id: int) -> List:
        pass

    @abstractmethod
    def has_any_price(self) -> bool:
        pass

    @abstractmethod
    def stage(self, *entities) -> None:
        """Add entities to the unit of work without committing."""
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass

    @abstractmethod
    def has_successful_session_since(self, registrar_id: int, since: datetime) -> bool:
        pass

    @abstractmethod
    def get_sessions(self, registrar_id: Optional[int] = None, limit: int = 50) -> List:
        pass

    @abstractmethod
    def get_change_logs(self, registrar_tld_id: int) -> List:
        pass


class IRegisteredDomainRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_by_name(self, name: str):
        pass

    @abstractmethod
    def get_by_customer(self, customer_id: int) -> List:
        pass

    @abstractmethod
    def get_by_registrar(self, registrar_id: int) -> List:
        pass

    @abstractmethod
    def get_by_status(self, status: str) -> List:
        pass

    @abstractmethod
    def get_expiring_between(self, start: datetime, end: datetime) -> List:
        pass

    @abstractmethod
    def get_active_expired(self, now: datetime) -> List:
        pass


# ------------------- DNS -------------------
class IDnsRecordTypeRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_active(self) -> List:
        pass

    @abstractmethod
    def get_by_type(self, record_type: str):
        pass


class IDnsRecordRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_by_domain(self, domain_id: int) -> List:
        pass

    @abstractmethod
    def get_by_type(self, dns_record_type_id: int) -> List:
        pass

    @abstractmethod
    def get_pending_sync(self, domain_id: int) -> List:
        pass

    @abstractmethod
    def get_deleted(self, domain_id: int) -> List:
        pass

    @abstractmethod
    def add_all(self, records: List) -> None:
        pass


class IDnsZonePackageRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_all_with_records(self) -> List:
        pass

    @abstractmethod
    def get_active(self) -> List:
        pass

    @abstractmethod
    def get_default(self):
        pass

    @abstractmethod
    def clear_default(self, except_id: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def get_record(self, record_id: int):
        pass

    @abstractmethod
    def get_records(self, package_id: int) -> List:
        pass


# ------------------- HOSTING -------------------
class IServerRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass


class IServerControlPanelRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_by_server(self, server_id: int) -> List:
        pass

    @abstractmethod
    def get_panel_types(self) -> List:
        pass

    @abstractmethod
    def get_panel_type(self, type_id: int):
        pass


class IHostingAccountRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_with_details(self, account_id: int):
        """Get an account with its domains, mailboxes and databases loaded."""
        pass

    @abstractmethod
    def get_by_customer(self, customer_id: int) -> List:
        pass

    @abstractmethod
    def get_by_server(self, server_id: int) -> List:
        pass

    @abstractmethod
    def get_by_external_id(self, server_control_panel_id: int, external_account_id: str):
        pass

    @abstractmethod
    def get_domain(self, domain_id: int):
        pass

    @abstractmethod
    def get_domains(self, account_id: int) -> List:
        pass

    @abstractmethod
    def get_email_account(self, email_id: int):
        pass

    @abstractmethod
    def get_email_accounts(self, account_id: int) -> List:
        pass

    @abstractmethod
    def get_database(self, database_id: int):
        pass

    @abstractmethod
    def get_databases(self, account_id: int) -> List:
        pass

    @abstractmethod
    def count_children(self, account_id: int) -> dict:
        pass


# ------------------- EMAIL -------------------
class IEmailQueueRepository(IRepository):
    @abstractmethod
    def get_all(self) -> List:
        pass

    @abstractmethod
    def get_by_customer(self, customer_id: int) -> List:
        pass

    @abstractmethod
    def get_due(self, now: datetime, limit: int) -> List:
        """Get queued emails whose next attempt is due."""
        pass

    @abstractmethod
    def count_sent_since(self, since: datetime) -> int:
        pass


# ------------------- INTEGRATIONS -------------------
class IExchangeRateProvider(ABC):
    """Interface for downloading exchange rates from an external API."""

    name: str

    @abstractmethod
    def fetch_rates(self, base_currency: str, targets: List[str]) -> Dict[str, Decimal]:
        """Get the latest rates from a base currency to each target."""
        pass


class IPaymentGateway(ABC):
    """Interface for charging, refunding and payment intents at a gateway."""

    @abstractmethod
    def charge(
        self, amount: Decimal, currency: str, token: str, description: str = ""
    ) -> GatewayResult:
        pass

    @abstractmethod
    def refund(self, gateway_reference: str, amount: Decimal, currency: str) -> GatewayResult:
        pass

    @abstractmethod
    def create_intent(self, amount: Decimal, currency: str, description: str = "") -> GatewayResult:
        pass

    @abstractmethod
    def confirm_intent(self, gateway_intent_id: str, token: str) -> GatewayResult:
        pass

    @abstractmethod
    def cancel_intent(self, gateway_intent_id: str) -> GatewayResult:
        pass


class IDomainRegistrar(ABC):
    """Interface for registrar APIs."""

    @abstractmethod
    def get_supported_tlds(self, extension: Optional[str] = None) -> List[TldPrice]:
        """Get cost prices for every TLD, or only for one extension."""
        pass

    @abstractmethod
    def check_availability(self, domain_name: str) -> DomainAvailability:
        pass

    @abstractmethod
    def register_domain(
        self, domain_name: str, years: int, contact: Dict[str, str]
    ) -> DomainRegistrationResult:
        pass


class IHostingPanel(ABC):
    """Interface for hosting control panel APIs."""

    @abstractmethod
    def test_connection(self) -> bool:
        pass

    @abstractmethod
    def create_web_account(self, request: "WebAccountRequest") -> "HostingAccountResult":
        pass

    @abstractmethod
    def update_web_account(
        self, account_id: str, request: "WebAccountRequest"
    ) -> "AccountUpdateResult":
        pass

    @abstractmethod
    def suspend_web_account(self, account_id: str, reason: str = "") -> "AccountUpdateResult":
        pass

    @abstractmethod
    def unsuspend_web_account(self, account_id: str) -> "AccountUpdateResult":
        pass

    @abstractmethod
    def delete_web_account(self, account_id: str) -> "AccountUpdateResult":
        pass

    @abstractmethod
    def get_web_account_info(self, account_id: str) -> "AccountInfoResult":
        pass

    @abstractmethod
    def list_web_accounts(self) -> List["AccountInfoResult"]:
        pass

    @abstractmethod
    def create_mail_account(
        self, account_id: str, email_address: str, password: str, quota_mb: Optional[int] = None
    ) -> "MailAccountResult":
        pass

    @abstractmethod
    def list_mail_accounts(self, account_id: str) -> List["MailAccountResult"]:
        pass

    @abstractmethod
    def delete_mail_account(self, account_id: str, email_address: str) -> "MailAccountResult":
        pass

    @abstractmethod
    def create_database(self, account_id: str, database_name: str) -> "DatabaseResult":
        pass

    @abstractmethod
    def list_databases(self, account_id: str) -> List["DatabaseResult"]:
        pass

    @abstractmethod
    def delete_database(self, account_id: str, database_name: str) -> "DatabaseResult":
        pass

    @abstractmethod
    def create_database_user(
        self, account_id: str, username: str, password: str, database_name: Optional[str] = None
    ) -> "DatabaseResult":
        pass

    @abstractmethod
    def change_disk_quota(self, account_id: str, quota_mb: int) -> "AccountUpdateResult":
        pass


class IEmailSender(ABC):
    """Interface for delivering an outgoing email."""

    @abstractmethod
    def send(self, email: OutgoingEmail) -> str:
        """Deliver the email and return the transport message id."""
        pass
