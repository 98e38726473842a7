"""
Domain entities and value objects - pure business types, no framework dependencies.

Status vocabularies live here so services, repositories and controllers
share one spelling. Result objects are returned by services for operations
that report an outcome instead of raising.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional


class InvoiceStatus:
    DRAFT = "Draft"
    ISSUED = "Issued"
    PAID = "Paid"
    PARTIALLY_PAID = "PartiallyPaid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"

    PAYABLE = (ISSUED, OVERDUE, PARTIALLY_PAID)


class QuoteStatus:
    DRAFT = "Draft"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    EXPIRED = "Expired"
    CONVERTED = "Converted"


class PaymentAttemptStatus:
    PENDING = "Pending"
    PROCESSING = "Processing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class TransactionStatus:
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    PARTIALLY_REFUNDED = "PartiallyRefunded"


class RefundStatus:
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


class PaymentIntentStatus:
    CREATED = "Created"
    REQUIRES_ACTION = "RequiresAction"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    ALL = (CREATED, REQUIRES_ACTION, SUCCEEDED, FAILED, CANCELLED)


class CreditTransactionType:
    DEPOSIT = "Deposit"
    DEDUCTION = "Deduction"
    REFUND = "Refund"
    ADJUSTMENT = "Adjustment"

    ALL = (DEPOSIT, DEDUCTION, REFUND, ADJUSTMENT)


class DomainStatus:
    PENDING = "Pending"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    SUSPENDED = "Suspended"
    TRANSFERRED = "Transferred"

    ALL = (PENDING, ACTIVE, EXPIRED, SUSPENDED, TRANSFERRED)


class SyncStatus:
    NOT_SYNCED = "NotSynced"
    PENDING = "Pending"
    SYNCED = "Synced"
    OUT_OF_SYNC = "OutOfSync"
    ERROR = "Error"


class HostingAccountStatus:
    ACTIVE = "Active"
    SUSPENDED = "Suspended"
    CANCELLED = "Cancelled"

    ALL = (ACTIVE, SUSPENDED, CANCELLED)


class EmailStatus:
    PENDING = "Pending"
    READY = "Ready"
    IN_PROGRESS = "InProgress"
    SENT = "Sent"
    FAILED = "Failed"

    QUEUED = (PENDING, READY)


@dataclass
class PaymentResult:
    """Outcome of a payment operation; failures are reported, not raised."""

    success: bool
    message: str = ""
    transaction_id: Optional[str] = None
    payment_attempt_id: Optional[int] = None
    error_code: Optional[str] = None

    @classmethod
    def failed(cls, message: str, attempt_id: Optional[int] = None, error_code=None):
        return cls(
            success=False,
            message=message,
            payment_attempt_id=attempt_id,
            error_code=error_code,
        )


class TaxCalculation(NamedTuple):
    """Tax for one amount; unpacks as (tax_amount, tax_rate, tax_name)."""

    tax_amount: Decimal
    tax_rate: Decimal
    tax_name: str


@dataclass
class SyncResult:
    """Outcome of a hosting panel synchronization step."""

    success: bool
    message: str = ""
    records_synced: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncDifference:
    field: str
    database_value: Any
    server_value: Any


@dataclass
class SyncComparison:
    hosting_account_id: int
    in_sync: bool
    differences: List[SyncDifference] = field(default_factory=list)
    server_data: Optional[Dict[str, Any]] = None
    message: str = ""


@dataclass
class ResourceUsage:
    hosting_account_id: int
    disk_usage_mb: Optional[int]
    disk_quota_mb: Optional[int]
    bandwidth_usage_mb: Optional[int]
    bandwidth_limit_mb: Optional[int]
    email_accounts: int
    max_email_accounts: Optional[int]
    databases: int
    max_databases: Optional[int]
    domains: int
    max_domains: Optional[int]


@dataclass
class TldPrice:
    """Registrar cost price for one TLD, as reported by a registrar API."""

    tld: str
    registration_price: Decimal
    renewal_price: Decimal
    transfer_price: Decimal
    currency: str = "USD"
    min_registration_years: int = 1
    max_registration_years: int = 10

    def __post_init__(self):
        self.tld = self.tld.strip().lstrip(".").lower()
        if not self.tld:
            raise ValueError("TLD is required")
        if self.min_registration_years < 1:
            raise ValueError("Minimum registration years must be at least 1")
        if self.max_registration_years < self.min_registration_years:
            raise ValueError("Maximum registration years must be >= minimum")


@dataclass
class DomainAvailability:
    domain_name: str
    available: bool
    premium: bool = False
    price: Optional[Decimal] = None
    currency: Optional[str] = None
    message: str = ""


@dataclass
class DomainRegistrationResult:
    success: bool
    domain_name: str
    message: str = ""
    registrar_order_id: Optional[str] = None
    expiration_date: Optional[datetime] = None


@dataclass
class PriceSyncSummary:
    """Summary of a registrar price sync run across one or more registrars."""

    registrars_processed: int = 0
    registrars_skipped: int = 0
    registrars_failed: int = 0
    tlds_processed: int = 0
    price_changes_detected: int = 0
    messages: List[str] = field(default_factory=list)


@dataclass
class GatewayResult:
    """Outcome reported by a payment gateway client."""

    success: bool
    gateway_reference: Optional[str] = None
    status: Optional[str] = None
    message: str = ""
    client_secret: Optional[str] = None
    raw_response: Optional[str] = None


@dataclass
class OutgoingEmail:
    """Message handed to an email sender."""

    from_address: str
    to: List[str]
    subject: str
    body: str
    is_html: bool = False
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    attachments: List[str] = field(default_factory=list)
    message_id: Optional[str] = None

    def __post_init__(self):
        if not self.to:
            raise ValueError("At least one recipient is required")
        if not self.subject:
            raise ValueError("Subject is required")
