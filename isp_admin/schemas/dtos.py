"""
Data Transfer Objects (DTOs) and validation schemas.

Request DTOs are built from JSON with ``from_dict``. Field values are
converted according to the dataclass annotations (``Decimal``, ``date``,
``datetime``, ``int``, ``bool``, ``str``) and ``validate()`` enforces the
business constraints of each request. Update DTOs declare every field
optional; ``changes()`` returns only the fields the caller supplied.
"""

import typing
from dataclasses import MISSING, dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from isp_admin.core.auth_decorators import ROLES
from isp_admin.core.validation import (
    is_valid_email,
    normalize_email,
    parse_bool,
    parse_date,
    parse_datetime,
    parse_decimal,
    parse_int,
    parse_str,
)
from isp_admin.domain.entities import (
    CreditTransactionType,
    DomainStatus,
    HostingAccountStatus,
)

_PARSERS = {
    str: parse_str,
    int: parse_int,
    bool: parse_bool,
    Decimal: parse_decimal,
    date: parse_date,
    datetime: parse_datetime,
}

DOMAIN_TYPES = ("Main", "Addon", "Parked", "Subdomain")


def _unwrap_optional(annotation):
    if typing.get_origin(annotation) is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _require_text(value: Optional[str], label: str, max_length: Optional[int] = None) -> None:
    if not value or not value.strip():
        raise ValueError(f"{label} is required")
    if max_length is not None and len(value) > max_length:
        raise ValueError(f"{label} must be at most {max_length} characters")


def _require_currency(value: Optional[str], label: str = "Currency") -> None:
    if value is not None and (len(value) != 3 or not value.isalpha()):
        raise ValueError(f"{label} must be a 3-letter ISO code")


def _require_non_negative(value, label: str) -> None:
    if value is not None and value < 0:
        raise ValueError(f"{label} cannot be negative")


class RequestDTO:
    """Mixin giving dataclass requests a JSON constructor."""

    # Fields holding nested request lists, mapped to their item class
    nested: Dict[str, type] = {}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        if not isinstance(data, dict):
            raise ValueError("Request body must be a JSON object")
        hints = typing.get_type_hints(cls)
        kwargs = {}
        for f in fields(cls):
            if not f.init:
                continue
            required = f.default is MISSING and f.default_factory is MISSING
            if f.name not in data or data[f.name] is None:
                if required:
                    raise ValueError(f"{f.name} is required")
                continue
            raw = data[f.name]
            if f.name in cls.nested:
                if not isinstance(raw, list):
                    raise ValueError(f"{f.name}: must be a list")
                kwargs[f.name] = [cls.nested[f.name].from_dict(item) for item in raw]
                continue
            target = _unwrap_optional(hints[f.name])
            parser = _PARSERS.get(target)
            kwargs[f.name] = parser(raw, f.name) if parser else raw
        return cls(**kwargs)

    def changes(self) -> Dict[str, Any]:
        """Fields with a value, for partial updates."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


# ------------------- AUTH & USERS -------------------
@dataclass
class LoginRequest(RequestDTO):
    email: str
    password: str

    def validate(self) -> None:
        if not is_valid_email(self.email):
            raise ValueError("Valid email is required")
        if not self.password:
            raise ValueError("Password is required")


@dataclass
class UserCreateRequest(RequestDTO):
    """DTO for user creation requests."""

    email: str
    name: str
    password: str
    role: str = "Support"
    customer_id: Optional[int] = None

    def validate(self) -> None:
        self.email = normalize_email(self.email)
        if not is_valid_email(self.email):
            raise ValueError("Valid email is required")
        if not self.name or len(self.name.strip()) < 2:
            raise ValueError("Name must be at least 2 characters")
        if not self.password or len(self.password) < 8:
            raise ValueError("Password must be at least 8 characters")
        if self.role not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")


@dataclass
class UserUpdateRequest(RequestDTO):
    email: Optional[str] = None
    name: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None
    customer_id: Optional[int] = None

    def validate(self) -> None:
        if self.email is not None:
            self.email = normalize_email(self.email)
            if not is_valid_email(self.email):
                raise ValueError("Valid email is required")
        if self.name is not None and len(self.name.strip()) < 2:
            raise ValueError("Name must be at least 2 characters")
        if self.password is not None and len(self.password) < 8:
            raise ValueError("Password must be at least 8 characters")
        if self.role is not None and self.role not in ROLES:
            raise ValueError(f"Role must be one of: {', '.join(ROLES)}")


@dataclass
class SystemSettingRequest(RequestDTO):
    key: str
    value: str = ""
    description: Optional[str] = None

    def validate(self) -> None:
        _require_text(self.key, "Key", 100)
        if len(self.value) > 1000:
            raise ValueError("Value must be at most 1000 characters")


# ------------------- CUSTOMERS -------------------
@dataclass
class CustomerCreateRequest(RequestDTO):
    """DTO for customer creation requests."""

    name: str
    email: str
    phone: Optional[str] = None
    customer_name: Optional[str] = None
    is_company: bool = False
    tax_id: Optional[str] = None
    vat_number: Optional[str] = None
    country_code: Optional[str] = None
    state_code: Optional[str] = None
    address: Optional[str] = None
    billing_email: Optional[str] = None
    preferred_currency: Optional[str] = None
    is_active: bool = True
    notes: Optional[str] = None

    def validate(self) -> None:
        _require_text(self.name, "Name", 200)
        self.email = normalize_email(self.email)
        if not is_valid_email(self.email):
            raise ValueError("Valid email is required")
        if self.billing_email:
            self.billing_email = normalize_email(self.billing_email)
            if not is_valid_email(self.billing_email):
                raise ValueError("Billing email is invalid")
        if self.country_code:
            self.country_code = self.country_code.upper()
            if len(self.country_code) != 2:
                raise ValueError("Country code must be 2 letters")
        if self.preferred_currency:
            self.preferred_currency = self.preferred_currency.upper()
            _require_currency(self.preferred_currency, "Preferred currency")


@dataclass
class CustomerUpdateRequest(RequestDTO):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    customer_name: Optional[str] = None
    is_company: Optional[bool] = None
    tax_id: Optional[str] = None
    vat_number: Optional[str] = None
    country_code: Optional[str] = None
    state_code: Optional[str] = None
    address: Optional[str] = None
    billing_email: Optional[str] = None
    preferred_currency: Optional[str] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "Name", 200)
        if self.email is not None:
            self.email = normalize_email(self.email)
            if not is_valid_email(self.email):
                raise ValueError("Valid email is required")
        if self.billing_email:
            self.billing_email = normalize_email(self.billing_email)
            if not is_valid_email(self.billing_email):
                raise ValueError("Billing email is invalid")
        if self.country_code:
            self.country_code = self.country_code.upper()
            if len(self.country_code) != 2:
                raise ValueError("Country code must be 2 letters")
        if self.preferred_currency:
            self.preferred_currency = self.preferred_currency.upper()
            _require_currency(self.preferred_currency, "Preferred currency")


@dataclass
class ContactPersonCreateRequest(RequestDTO):
    customer_id: int
    first_name: str
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    is_primary: bool = False

    def validate(self) -> None:
        _require_text(self.first_name, "First name", 100)
        if self.email:
            self.email = normalize_email(self.email)
            if not is_valid_email(self.email):
                raise ValueError("Contact email is invalid")


@dataclass
class ContactPersonUpdateRequest(RequestDTO):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    is_primary: Optional[bool] = None

    def validate(self) -> None:
        if self.first_name is not None:
            _require_text(self.first_name, "First name", 100)
        if self.email:
            self.email = normalize_email(self.email)
            if not is_valid_email(self.email):
                raise ValueError("Contact email is invalid")


# ------------------- CURRENCY -------------------
@dataclass
class ExchangeRateCreateRequest(RequestDTO):
    base_currency: str
    target_currency: str
    rate: Decimal
    markup: Decimal = Decimal("0")
    effective_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    is_active: bool = True
    source: str = "Manual"
    notes: Optional[str] = None

    def validate(self) -> None:
        self.base_currency = (self.base_currency or "").upper()
        self.target_currency = (self.target_currency or "").upper()
        _require_currency(self.base_currency, "Base currency")
        _require_currency(self.target_currency, "Target currency")
        if self.base_currency == self.target_currency:
            raise ValueError("Base and target currency must differ")
        if self.rate <= 0:
            raise ValueError("Rate must be greater than zero")
        if self.markup < 0 or self.markup > 100:
            raise ValueError("Markup must be between 0 and 100 percent")
        if self.effective_date and self.expiry_date and self.expiry_date <= self.effective_date:
            raise ValueError("Expiry date must be after effective date")


@dataclass
class ExchangeRateUpdateRequest(RequestDTO):
    rate: Optional[Decimal] = None
    markup: Optional[Decimal] = None
    effective_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    source: Optional[str] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.rate is not None and self.rate <= 0:
            raise ValueError("Rate must be greater than zero")
        if self.markup is not None and (self.markup < 0 or self.markup > 100):
            raise ValueError("Markup must be between 0 and 100 percent")


@dataclass
class CurrencyConvertRequest(RequestDTO):
    amount: Decimal
    from_currency: str
    to_currency: str
    at: Optional[datetime] = None

    def validate(self) -> None:
        self.from_currency = (self.from_currency or "").upper()
        self.to_currency = (self.to_currency or "").upper()
        _require_currency(self.from_currency, "from_currency")
        _require_currency(self.to_currency, "to_currency")


# ------------------- TAXES -------------------
@dataclass
class TaxRuleCreateRequest(RequestDTO):
    country_code: str
    tax_name: str
    tax_rate: Decimal
    state_code: Optional[str] = None
    is_active: bool = True
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    applies_to_setup_fees: bool = True
    applies_to_recurring: bool = True
    reverse_charge_for_b2b: bool = False
    priority: int = 0
    description: Optional[str] = None

    def validate(self) -> None:
        self.country_code = (self.country_code or "").upper()
        if len(self.country_code) != 2:
            raise ValueError("Country code must be 2 letters")
        _require_text(self.tax_name, "Tax name", 50)
        if self.tax_rate < 0 or self.tax_rate > 1:
            raise ValueError("Tax rate must be a fraction between 0 and 1")
        if self.state_code:
            self.state_code = self.state_code.upper()
        if (
            self.effective_from
            and self.effective_until
            and self.effective_until <= self.effective_from
        ):
            raise ValueError("effective_until must be after effective_from")


@dataclass
class TaxRuleUpdateRequest(RequestDTO):
    country_code: Optional[str] = None
    state_code: Optional[str] = None
    tax_name: Optional[str] = None
    tax_rate: Optional[Decimal] = None
    is_active: Optional[bool] = None
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None
    applies_to_setup_fees: Optional[bool] = None
    applies_to_recurring: Optional[bool] = None
    reverse_charge_for_b2b: Optional[bool] = None
    priority: Optional[int] = None
    description: Optional[str] = None

    def validate(self) -> None:
        if self.country_code is not None:
            self.country_code = self.country_code.upper()
            if len(self.country_code) != 2:
                raise ValueError("Country code must be 2 letters")
        if self.tax_rate is not None and (self.tax_rate < 0 or self.tax_rate > 1):
            raise ValueError("Tax rate must be a fraction between 0 and 1")
        if self.state_code:
            self.state_code = self.state_code.upper()


# ------------------- INVOICES -------------------
@dataclass
class InvoiceLineRequest(RequestDTO):
    description: str
    unit_price: Decimal
    quantity: Decimal = Decimal("1")
    is_setup_fee: bool = False

    def validate(self) -> None:
        _require_text(self.description, "Line description", 500)
        if self.quantity <= 0:
            raise ValueError("Line quantity must be positive")
        _require_non_negative(self.unit_price, "Line unit price")


@dataclass
class InvoiceCreateRequest(RequestDTO):
    """DTO for invoice creation requests."""

    nested = {"lines": InvoiceLineRequest}

    customer_id: int
    lines: List[InvoiceLineRequest] = field(default_factory=list)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency_code: Optional[str] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if not self.lines:
            raise ValueError("Invoice must have at least one line")
        for line in self.lines:
            line.validate()
        if self.currency_code:
            self.currency_code = self.currency_code.upper()
            _require_currency(self.currency_code)
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("Due date cannot be before issue date")


@dataclass
class InvoiceUpdateRequest(RequestDTO):
    nested = {"lines": InvoiceLineRequest}

    lines: Optional[List[InvoiceLineRequest]] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency_code: Optional[str] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.lines is not None:
            if not self.lines:
                raise ValueError("Invoice must have at least one line")
            for line in self.lines:
                line.validate()
        if self.currency_code:
            self.currency_code = self.currency_code.upper()
            _require_currency(self.currency_code)


# ------------------- PAYMENTS -------------------
PAYMENT_PROVIDERS = ("manual", "stripe")


@dataclass
class PaymentGatewayCreateRequest(RequestDTO):
    name: str
    provider_code: str
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    is_active: bool = True
    is_default: bool = False
    use_sandbox: bool = True

    def validate(self) -> None:
        _require_text(self.name, "Name", 100)
        self.provider_code = (self.provider_code or "").strip().lower()
        if self.provider_code not in PAYMENT_PROVIDERS:
            raise ValueError(f"Provider must be one of: {', '.join(PAYMENT_PROVIDERS)}")
        if self.provider_code == "stripe" and not (self.api_secret or self.api_key):
            raise ValueError("Stripe gateways require an API secret")


@dataclass
class PaymentGatewayUpdateRequest(RequestDTO):
    name: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    use_sandbox: Optional[bool] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "Name", 100)


@dataclass
class ProcessPaymentRequest(RequestDTO):
    invoice_id: int
    payment_method_id: int

    def validate(self) -> None:
        if self.invoice_id <= 0 or self.payment_method_id <= 0:
            raise ValueError("invoice_id and payment_method_id must be positive")


@dataclass
class ApplyCreditRequest(RequestDTO):
    invoice_id: int
    amount: Decimal

    def validate(self) -> None:
        if self.amount <= 0:
            raise ValueError("Amount must be greater than zero")


@dataclass
class CustomerPaymentMethodCreateRequest(RequestDTO):
    customer_id: int
    payment_gateway_id: int
    gateway_token: str
    method_type: str = "CreditCard"
    last4: Optional[str] = None
    card_brand: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    is_default: bool = False

    def validate(self) -> None:
        _require_text(self.gateway_token, "Gateway token", 255)
        if self.last4 is not None and (len(self.last4) != 4 or not self.last4.isdigit()):
            raise ValueError("last4 must be 4 digits")
        if self.expiry_month is not None and not 1 <= self.expiry_month <= 12:
            raise ValueError("expiry_month must be between 1 and 12")
        if self.expiry_year is not None and self.expiry_year < 2000:
            raise ValueError("expiry_year must be a four-digit year")


# ------------------- CREDITS -------------------
@dataclass
class CreditTransactionCreateRequest(RequestDTO):
    customer_id: int
    transaction_type: str
    amount: Decimal
    description: Optional[str] = None
    invoice_id: Optional[int] = None

    def validate(self) -> None:
        if self.transaction_type not in CreditTransactionType.ALL:
            raise ValueError(
                f"Transaction type must be one of: {', '.join(CreditTransactionType.ALL)}"
            )
        if self.amount == 0:
            raise ValueError("Amount cannot be zero")
        if self.transaction_type != CreditTransactionType.ADJUSTMENT and self.amount < 0:
            raise ValueError("Amount must be positive; the type decides the sign")


@dataclass
class CreditAmountRequest(RequestDTO):
    customer_id: int
    amount: Decimal
    description: str = ""
    invoice_id: Optional[int] = None

    def validate(self) -> None:
        if self.amount <= 0:
            raise ValueError("Amount must be greater than zero")


# ------------------- QUOTES -------------------
@dataclass
class QuoteLineRequest(RequestDTO):
    description: str
    unit_price: Decimal = Decimal("0")
    quantity: Decimal = Decimal("1")
    setup_fee: Decimal = Decimal("0")

    def validate(self) -> None:
        _require_text(self.description, "Line description", 500)
        if self.quantity <= 0:
            raise ValueError("Line quantity must be positive")
        _require_non_negative(self.unit_price, "Line unit price")
        _require_non_negative(self.setup_fee, "Line setup fee")


@dataclass
class QuoteCreateRequest(RequestDTO):
    nested = {"lines": QuoteLineRequest}

    customer_id: int
    lines: List[QuoteLineRequest] = field(default_factory=list)
    valid_until: Optional[date] = None
    currency_code: Optional[str] = None
    discount_amount: Decimal = Decimal("0")
    notes: str = ""
    terms: str = ""
    internal_comment: str = ""

    def validate(self) -> None:
        if not self.lines:
            raise ValueError("Quote must have at least one line")
        for line in self.lines:
            line.validate()
        _require_non_negative(self.discount_amount, "Discount")
        if self.currency_code:
            self.currency_code = self.currency_code.upper()
            _require_currency(self.currency_code)


@dataclass
class QuoteUpdateRequest(RequestDTO):
    nested = {"lines": QuoteLineRequest}

    lines: Optional[List[QuoteLineRequest]] = None
    valid_until: Optional[date] = None
    currency_code: Optional[str] = None
    discount_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    internal_comment: Optional[str] = None

    def validate(self) -> None:
        if self.lines is not None:
            if not self.lines:
                raise ValueError("Quote must have at least one line")
            for line in self.lines:
                line.validate()
        _require_non_negative(self.discount_amount, "Discount")
        if self.currency_code:
            self.currency_code = self.currency_code.upper()
            _require_currency(self.currency_code)


# ------------------- REFUNDS & INTENTS -------------------
@dataclass
class RefundCreateRequest(RequestDTO):
    invoice_id: int
    amount: Decimal
    reason: str = ""
    payment_transaction_id: Optional[int] = None

    def validate(self) -> None:
        if self.amount <= 0:
            raise ValueError("Refund amount must be greater than zero")
        if len(self.reason) > 1000:
            raise ValueError("Reason must be at most 1000 characters")


@dataclass
class PaymentIntentCreateRequest(RequestDTO):
    amount: Decimal
    currency_code: Optional[str] = None
    description: str = ""
    invoice_id: Optional[int] = None
    customer_id: Optional[int] = None

    def validate(self) -> None:
        if self.amount <= 0:
            raise ValueError("Amount must be greater than zero")
        if self.currency_code:
            self.currency_code = self.currency_code.upper()
            _require_currency(self.currency_code)


# ------------------- TLDS & REGISTRARS -------------------
@dataclass
class TldCreateRequest(RequestDTO):
    extension: str
    description: Optional[str] = None
    is_active: bool = True

    def validate(self) -> None:
        self.extension = (self.extension or "").strip().lstrip(".").lower()
        _require_text(self.extension, "Extension", 63)


@dataclass
class TldUpdateRequest(RequestDTO):
    description: Optional[str] = None
    is_active: Optional[bool] = None

    def validate(self) -> None:
        pass


@dataclass
class RegistrarCreateRequest(RequestDTO):
    name: str
    code: str
    api_url: Optional[str] = None
    api_user: Optional[str] = None
    api_key: Optional[str] = None
    client_ip: Optional[str] = None
    use_sandbox: bool = True
    is_active: bool = True
    is_default: bool = False

    def validate(self) -> None:
        _require_text(self.name, "Name", 100)
        self.code = (self.code or "").strip().lower()
        _require_text(self.code, "Code", 50)


@dataclass
class RegistrarUpdateRequest(RequestDTO):
    name: Optional[str] = None
    api_url: Optional[str] = None
    api_user: Optional[str] = None
    api_key: Optional[str] = None
    client_ip: Optional[str] = None
    use_sandbox: Optional[bool] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "Name", 100)


@dataclass
class RegistrarTldCreateRequest(RequestDTO):
    registrar_id: int
    tld_id: int
    is_active: bool = True
    auto_renew: bool = False
    min_registration_years: int = 1
    max_registration_years: int = 10
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.min_registration_years < 1:
            raise ValueError("Minimum registration years must be at least 1")
        if self.max_registration_years < self.min_registration_years:
            raise ValueError("Maximum registration years must be >= minimum")


@dataclass
class RegistrarTldUpdateRequest(RequestDTO):
    is_active: Optional[bool] = None
    auto_renew: Optional[bool] = None
    min_registration_years: Optional[int] = None
    max_registration_years: Optional[int] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.min_registration_years is not None and self.min_registration_years < 1:
            raise ValueError("Minimum registration years must be at least 1")
        if (
            self.min_registration_years is not None
            and self.max_registration_years is not None
            and self.max_registration_years < self.min_registration_years
        ):
            raise ValueError("Maximum registration years must be >= minimum")


# ------------------- DOMAINS -------------------
@dataclass
class RegisteredDomainCreateRequest(RequestDTO):
    name: str
    customer_id: int
    registrar_id: int
    status: str = DomainStatus.PENDING
    registration_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    auto_renew: bool = False
    privacy_protection: bool = False
    notes: Optional[str] = None

    def validate(self) -> None:
        self.name = (self.name or "").strip().lower()
        _require_text(self.name, "Domain name", 253)
        if "." not in self.name:
            raise ValueError("Domain name must include a TLD")
        if self.status not in DomainStatus.ALL:
            raise ValueError(f"Status must be one of: {', '.join(DomainStatus.ALL)}")


@dataclass
class RegisteredDomainUpdateRequest(RequestDTO):
    customer_id: Optional[int] = None
    registrar_id: Optional[int] = None
    status: Optional[str] = None
    registration_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    auto_renew: Optional[bool] = None
    privacy_protection: Optional[bool] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.status is not None and self.status not in DomainStatus.ALL:
            raise ValueError(f"Status must be one of: {', '.join(DomainStatus.ALL)}")


@dataclass
class DomainRegistrationRequest(RequestDTO):
    domain_name: str
    years: int = 1
    auto_renew: bool = False
    privacy_protection: bool = False
    contact: Optional[Dict[str, Any]] = None

    def validate(self) -> None:
        self.domain_name = (self.domain_name or "").strip().lower()
        _require_text(self.domain_name, "Domain name", 253)
        if self.years < 1:
            raise ValueError("Years must be at least 1")
        if self.contact is not None and not isinstance(self.contact, dict):
            raise ValueError("contact must be an object")


# ------------------- DNS -------------------
@dataclass
class DnsRecordTypeCreateRequest(RequestDTO):
    type: str
    description: str = ""
    has_priority: bool = False
    has_weight: bool = False
    has_port: bool = False
    is_editable_by_user: bool = True
    is_active: bool = True
    default_ttl: int = 3600

    def validate(self) -> None:
        self.type = (self.type or "").strip().upper()
        _require_text(self.type, "Type", 10)
        if self.default_ttl <= 0:
            raise ValueError("Default TTL must be positive")


@dataclass
class DnsRecordTypeUpdateRequest(RequestDTO):
    description: Optional[str] = None
    has_priority: Optional[bool] = None
    has_weight: Optional[bool] = None
    has_port: Optional[bool] = None
    is_editable_by_user: Optional[bool] = None
    is_active: Optional[bool] = None
    default_ttl: Optional[int] = None

    def validate(self) -> None:
        if self.default_ttl is not None and self.default_ttl <= 0:
            raise ValueError("Default TTL must be positive")


@dataclass
class DnsRecordCreateRequest(RequestDTO):
    domain_id: int
    dns_record_type_id: int
    name: str
    value: str
    ttl: int = 0
    priority: Optional[int] = None
    weight: Optional[int] = None
    port: Optional[int] = None

    def validate(self) -> None:
        _require_text(self.name, "Name", 255)
        _require_text(self.value, "Value", 2000)
        _require_non_negative(self.priority, "Priority")
        _require_non_negative(self.weight, "Weight")
        if self.port is not None and not 0 < self.port < 65536:
            raise ValueError("Port must be between 1 and 65535")


@dataclass
class DnsRecordUpdateRequest(RequestDTO):
    name: Optional[str] = None
    value: Optional[str] = None
    ttl: Optional[int] = None
    priority: Optional[int] = None
    weight: Optional[int] = None
    port: Optional[int] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "Name", 255)
        if self.value is not None:
            _require_text(self.value, "Value", 2000)
        if self.port is not None and not 0 < self.port < 65536:
            raise ValueError("Port must be between 1 and 65535")


@dataclass
class DnsZonePackageCreateRequest(RequestDTO):
    name: str
    description: Optional[str] = None
    is_active: bool = True
    is_default: bool = False
    sort_order: int = 0

    def validate(self) -> None:
        _require_text(self.name, "Name", 100)


@dataclass
class DnsZonePackageUpdateRequest(RequestDTO):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None
    sort_order: Optional[int] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "Name", 100)


@dataclass
class DnsZonePackageRecordCreateRequest(RequestDTO):
    dns_zone_package_id: int
    dns_record_type_id: int
    name: str
    value: str
    ttl: int = 3600
    priority: Optional[int] = None
    weight: Optional[int] = None
    port: Optional[int] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        _require_text(self.name, "Name", 255)
        _require_text(self.value, "Value", 2000)
        if self.ttl <= 0:
            raise ValueError("TTL must be positive")


@dataclass
class DnsZonePackageRecordUpdateRequest(RequestDTO):
    dns_record_type_id: Optional[int] = None
    name: Optional[str] = None
    value: Optional[str] = None
    ttl: Optional[int] = None
    priority: Optional[int] = None
    weight: Optional[int] = None
    port: Optional[int] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.ttl is not None and self.ttl <= 0:
            raise ValueError("TTL must be positive")


# ------------------- HOSTING -------------------
@dataclass
class ServerCreateRequest(RequestDTO):
    name: str
    hostname: str
    ip_address: Optional[str] = None
    status: str = "Active"
    location: Optional[str] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        _require_text(self.name, "Name", 100)
        _require_text(self.hostname, "Hostname", 255)


@dataclass
class ServerUpdateRequest(RequestDTO):
    name: Optional[str] = None
    hostname: Optional[str] = None
    ip_address: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None

    def validate(self) -> None:
        if self.name is not None:
            _require_text(self.name, "Name", 100)
        if self.hostname is not None:
            _require_text(self.hostname, "Hostname", 255)


@dataclass
class ServerControlPanelCreateRequest(RequestDTO):
    server_id: int
    control_panel_type_id: int
    api_url: str
    port: int = 2087
    use_https: bool = True
    verify_ssl: bool = True
    username: Optional[str] = None
    api_token: Optional[str] = None
    api_key: Optional[str] = None
    password: Optional[str] = None
    status: str = "Active"

    def validate(self) -> None:
        _require_text(self.api_url, "API URL", 255)
        if not 0 < self.port < 65536:
            raise ValueError("Port must be between 1 and 65535")


@dataclass
class ServerControlPanelUpdateRequest(RequestDTO):
    api_url: Optional[str] = None
    port: Optional[int] = None
    use_https: Optional[bool] = None
    verify_ssl: Optional[bool] = None
    username: Optional[str] = None
    api_token: Optional[str] = None
    api_key: Optional[str] = None
    password: Optional[str] = None
    status: Optional[str] = None

    def validate(self) -> None:
        if self.port is not None and not 0 < self.port < 65536:
            raise ValueError("Port must be between 1 and 65535")


@dataclass
class HostingAccountCreateRequest(RequestDTO):
    """DTO for hosting account creation requests."""

    customer_id: int
    username: str
    password: str
    server_id: Optional[int] = None
    server_control_panel_id: Optional[int] = None
    plan: Optional[str] = None
    status: Optional[str] = None
    expiration_date: Optional[datetime] = None
    disk_quota_mb: Optional[int] = None
    bandwidth_limit_mb: Optional[int] = None
    max_email_accounts: Optional[int] = None
    max_databases: Optional[int] = None
    max_domains: Optional[int] = None

    def validate(self) -> None:
        _require_text(self.username, "Username", 64)
        if not self.password or len(self.password) < 8:
            raise ValueError("Password must be at least 8 characters")
        if self.status is not None and self.status not in HostingAccountStatus.ALL:
            raise ValueError(
                f"Status must be one of: {', '.join(HostingAccountStatus.ALL)}"
            )
        for label in (
            "disk_quota_mb",
            "bandwidth_limit_mb",
            "max_email_accounts",
            "max_databases",
            "max_domains",
        ):
            _require_non_negative(getattr(self, label), label)


@dataclass
class HostingAccountUpdateRequest(RequestDTO):
    server_id: Optional[int] = None
    server_control_panel_id: Optional[int] = None
    password: Optional[str] = None
    plan: Optional[str] = None
    status: Optional[str] = None
    expiration_date: Optional[datetime] = None
    disk_quota_mb: Optional[int] = None
    bandwidth_limit_mb: Optional[int] = None
    max_email_accounts: Optional[int] = None
    max_databases: Optional[int] = None
    max_domains: Optional[int] = None

    def validate(self) -> None:
        if self.password is not None and len(self.password) < 8:
            raise ValueError("Password must be at least 8 characters")
        if self.status is not None and self.status not in HostingAccountStatus.ALL:
            raise ValueError(
                f"Status must be one of: {', '.join(HostingAccountStatus.ALL)}"
            )
        for label in ("disk_quota_mb", "bandwidth_limit_mb"):
            _require_non_negative(getattr(self, label), label)


@dataclass
class HostingDomainCreateRequest(RequestDTO):
    domain_name: str
    domain_type: str = "Main"
    document_root: Optional[str] = None
    ssl_enabled: bool = False

    def validate(self) -> None:
        self.domain_name = (self.domain_name or "").strip().lower()
        _require_text(self.domain_name, "Domain name", 253)
        if self.domain_type not in DOMAIN_TYPES:
            raise ValueError(f"Domain type must be one of: {', '.join(DOMAIN_TYPES)}")


@dataclass
class HostingDomainUpdateRequest(RequestDTO):
    domain_type: Optional[str] = None
    document_root: Optional[str] = None
    ssl_enabled: Optional[bool] = None

    def validate(self) -> None:
        if self.domain_type is not None and self.domain_type not in DOMAIN_TYPES:
            raise ValueError(f"Domain type must be one of: {', '.join(DOMAIN_TYPES)}")


@dataclass
class HostingEmailAccountCreateRequest(RequestDTO):
    email_address: str
    password: Optional[str] = None
    quota_mb: Optional[int] = None

    def validate(self) -> None:
        self.email_address = normalize_email(self.email_address)
        if not is_valid_email(self.email_address):
            raise ValueError("Valid email address is required")
        _require_non_negative(self.quota_mb, "quota_mb")


@dataclass
class HostingEmailAccountUpdateRequest(RequestDTO):
    quota_mb: Optional[int] = None

    def validate(self) -> None:
        _require_non_negative(self.quota_mb, "quota_mb")


@dataclass
class HostingDatabaseCreateRequest(RequestDTO):
    database_name: str
    database_type: str = "MySQL"

    def validate(self) -> None:
        _require_text(self.database_name, "Database name", 64)


@dataclass
class HostingDatabaseUpdateRequest(RequestDTO):
    database_type: Optional[str] = None
    size_mb: Optional[int] = None

    def validate(self) -> None:
        _require_non_negative(self.size_mb, "size_mb")


# ------------------- EMAIL QUEUE -------------------
def _split_addresses(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.replace(",", ";").split(";")
    return [normalize_email(v) for v in value if v and str(v).strip()]


@dataclass
class QueueEmailRequest(RequestDTO):
    to: List[str]
    subject: str
    body_text: Optional[str] = None
    body_html: Optional[str] = None
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    attachments: List[str] = field(default_factory=list)
    from_address: Optional[str] = None
    customer_id: Optional[int] = None
    user_id: Optional[int] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None

    def validate(self) -> None:
        self.to = _split_addresses(self.to)
        self.cc = _split_addresses(self.cc)
        self.bcc = _split_addresses(self.bcc)
        if not self.to:
            raise ValueError("At least one recipient is required")
        for address in self.to + self.cc + self.bcc:
            if not is_valid_email(address):
                raise ValueError(f"Invalid email address: {address}")
        _require_text(self.subject, "Subject", 500)
        if not self.body_text and not self.body_html:
            raise ValueError("Either body_text or body_html is required")
        if self.from_address and not is_valid_email(self.from_address):
            raise ValueError("from_address is invalid")


# ------------------- RESPONSES -------------------
@dataclass
class UserResponse:
    """DTO for user API responses; never carries the password hash."""

    id: int
    email: str
    name: str
    role: str
    is_active: bool
    customer_id: Optional[int]
    last_login_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_model(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            is_active=bool(user.active_flag),
            customer_id=user.customer_id,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


@dataclass
class InvoiceLineResponse:
    id: Optional[int]
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    is_setup_fee: bool
    line_total: Decimal

    @classmethod
    def from_model(cls, line) -> "InvoiceLineResponse":
        return cls(
            id=line.id,
            line_number=line.line_number,
            description=line.description,
            quantity=line.quantity,
            unit_price=line.unit_price,
            is_setup_fee=bool(line.is_setup_fee),
            line_total=line.line_total,
        )


@dataclass
class InvoiceResponse:
    """DTO for invoice API responses, lines included."""

    id: int
    invoice_number: str
    customer_id: int
    status: str
    issue_date: date
    due_date: date
    paid_at: Optional[datetime]
    currency_code: str
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    tax_rate: Decimal
    tax_name: str
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    lines: List[InvoiceLineResponse] = field(default_factory=list)

    @classmethod
    def from_model(cls, invoice) -> "InvoiceResponse":
        total = Decimal(invoice.total_amount or 0)
        paid = Decimal(invoice.amount_paid or 0)
        return cls(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            customer_id=invoice.customer_id,
            status=invoice.status,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            paid_at=invoice.paid_at,
            currency_code=invoice.currency_code,
            subtotal=invoice.subtotal,
            tax_amount=invoice.tax_amount,
            total_amount=invoice.total_amount,
            amount_paid=invoice.amount_paid,
            amount_due=max(total - paid, Decimal("0")).quantize(Decimal("0.01")),
            tax_rate=invoice.tax_rate,
            tax_name=invoice.tax_name,
            notes=invoice.notes,
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
            lines=[InvoiceLineResponse.from_model(line) for line in invoice.lines],
        )


@dataclass
class PaymentIntentResponse:
    """DTO for payment intent responses.

    ``client_secret`` is only filled in right after creation, when the
    browser needs it to finish the payment.
    """

    id: int
    customer_id: int
    invoice_id: Optional[int]
    payment_gateway_id: int
    amount: Decimal
    currency_code: str
    description: str
    status: str
    gateway_intent_id: Optional[str]
    failure_reason: Optional[str]
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    created_at: Optional[datetime]
    client_secret: Optional[str] = None

    @classmethod
    def from_model(cls, intent, include_secret: bool = False) -> "PaymentIntentResponse":
        return cls(
            id=intent.id,
            customer_id=intent.customer_id,
            invoice_id=intent.invoice_id,
            payment_gateway_id=intent.payment_gateway_id,
            amount=intent.amount,
            currency_code=intent.currency_code,
            description=intent.description or "",
            status=intent.status,
            gateway_intent_id=intent.gateway_intent_id,
            failure_reason=intent.failure_reason,
            confirmed_at=intent.confirmed_at,
            cancelled_at=intent.cancelled_at,
            created_at=intent.created_at,
            client_secret=intent.client_secret if include_secret else None,
        )
