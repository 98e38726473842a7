from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from isp_admin.core.config import utc_now

from .session import Base

MONEY = Numeric(12, 2)
RATE = Numeric(18, 6)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, onupdate=utc_now
    )


# ------------------- USERS & SETTINGS -------------------
class User(TimestampMixin, Base):
    """Back-office or customer portal user."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="Support")
    active_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def is_active(self) -> bool:
        # Flask-Login expects this property
        return self.active_flag

    @is_active.setter
    def is_active(self, value: bool) -> None:
        self.active_flag = bool(value)

    def get_id(self):
        """Return user identifier for Flask-Login"""
        return str(self.id)

    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False


class SystemSetting(Base):
    __tablename__ = "system_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    value: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now
    )


# ------------------- CUSTOMERS -------------------
class Customer(TimestampMixin, Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_company: Mapped[bool] = mapped_column(Boolean, default=False)
    tax_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    vat_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    country_code: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    state_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    billing_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    preferred_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    reference_number: Mapped[Optional[int]] = mapped_column(Integer, unique=True)
    formatted_reference_number: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True
    )
    customer_number: Mapped[Optional[int]] = mapped_column(Integer, unique=True)
    formatted_customer_number: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    contact_persons: Mapped[List["ContactPerson"]] = relationship(
        back_populates="customer", cascade="all, delete-orphan"
    )


class ContactPerson(TimestampMixin, Base):
    __tablename__ = "contact_persons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    customer: Mapped["Customer"] = relationship(back_populates="contact_persons")


# ------------------- CURRENCY -------------------
class CurrencyExchangeRate(TimestampMixin, Base):
    __tablename__ = "currency_exchange_rates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    target_currency: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    markup: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=Decimal("0"))
    effective_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    source: Mapped[str] = mapped_column(String(50), default="Manual")
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)


class ExchangeRateDownloadLog(Base):
    __tablename__ = "exchange_rate_download_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    target_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    is_summary: Mapped[bool] = mapped_column(Boolean, default=False)
    is_startup: Mapped[bool] = mapped_column(Boolean, default=False)
    rates_added: Mapped[int] = mapped_column(Integer, default=0)
    rates_updated: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    downloaded_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)


# ------------------- TAXES -------------------
class TaxRule(TimestampMixin, Base):
    __tablename__ = "tax_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    country_code: Mapped[str] = mapped_column(String(2), nullable=False, index=True)
    state_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    tax_name: Mapped[str] = mapped_column(String(50), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    effective_from: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    effective_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    applies_to_setup_fees: Mapped[bool] = mapped_column(Boolean, default=True)
    applies_to_recurring: Mapped[bool] = mapped_column(Boolean, default=True)
    reverse_charge_for_b2b: Mapped[bool] = mapped_column(Boolean, default=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)


# ------------------- INVOICES -------------------
class Invoice(TimestampMixin, Base):
    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    invoice_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Draft")
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    subtotal: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    amount_paid: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=Decimal("0"))
    tax_name: Mapped[str] = mapped_column(String(50), default="VAT")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    customer: Mapped["Customer"] = relationship()
    lines: Mapped[List["InvoiceLine"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.line_number",
    )


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("1"))
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    is_setup_fee: Mapped[bool] = mapped_column(Boolean, default=False)
    line_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="lines")


# ------------------- PAYMENTS -------------------
class PaymentGateway(TimestampMixin, Base):
    __tablename__ = "payment_gateways"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    provider_code: Mapped[str] = mapped_column(String(50), nullable=False)
    api_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    api_secret: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    webhook_secret: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    use_sandbox: Mapped[bool] = mapped_column(Boolean, default=True)


class CustomerPaymentMethod(TimestampMixin, Base):
    __tablename__ = "customer_payment_methods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_gateway_id: Mapped[int] = mapped_column(
        ForeignKey("payment_gateways.id"), nullable=False
    )
    method_type: Mapped[str] = mapped_column(String(30), default="CreditCard")
    gateway_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last4: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    card_brand: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    expiry_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expiry_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    payment_gateway: Mapped["PaymentGateway"] = relationship()


class PaymentTransaction(TimestampMixin, Base):
    __tablename__ = "payment_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), index=True)
    payment_gateway_id: Mapped[int] = mapped_column(ForeignKey("payment_gateways.id"))
    transaction_id: Mapped[str] = mapped_column(String(100), unique=True)
    gateway_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="Pending")
    gateway_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    refunded_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))


class PaymentAttempt(TimestampMixin, Base):
    __tablename__ = "payment_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), index=True)
    customer_payment_method_id: Mapped[int] = mapped_column(
        ForeignKey("customer_payment_methods.id")
    )
    payment_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_transactions.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="Pending")
    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    gateway_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class InvoicePayment(Base):
    __tablename__ = "invoice_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), index=True)
    payment_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_transactions.id"), nullable=True
    )
    amount_applied: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    is_full_payment: Mapped[bool] = mapped_column(Boolean, default=False)
    source: Mapped[str] = mapped_column(String(20), default="Gateway")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)


# ------------------- CREDITS -------------------
class CustomerCredit(TimestampMixin, Base):
    __tablename__ = "customer_credits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    currency_code: Mapped[str] = mapped_column(String(3), default="EUR")


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_credit_id: Mapped[int] = mapped_column(
        ForeignKey("customer_credits.id", ondelete="CASCADE"), index=True
    )
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    invoice_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("invoices.id"), nullable=True
    )
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)


# ------------------- QUOTES -------------------
class Quote(TimestampMixin, Base):
    __tablename__ = "quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quote_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), default="Draft")
    valid_until: Mapped[date] = mapped_column(Date, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    total_setup_fee: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    total_recurring: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    currency_code: Mapped[str] = mapped_column(String(3), default="EUR")
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=Decimal("0"))
    tax_name: Mapped[str] = mapped_column(String(50), default="VAT")
    customer_name: Mapped[str] = mapped_column(String(200), default="")
    customer_address: Mapped[str] = mapped_column(String(500), default="")
    customer_tax_id: Mapped[str] = mapped_column(String(50), default="")
    notes: Mapped[str] = mapped_column(Text, default="")
    terms: Mapped[str] = mapped_column(Text, default="")
    internal_comment: Mapped[str] = mapped_column(Text, default="")
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    acceptance_token: Mapped[Optional[str]] = mapped_column(
        String(100), unique=True, nullable=True
    )
    prepared_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    converted_invoice_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("invoices.id"), nullable=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    lines: Mapped[List["QuoteLine"]] = relationship(
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteLine.line_number",
    )


class QuoteLine(Base):
    __tablename__ = "quote_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quote_id: Mapped[int] = mapped_column(
        ForeignKey("quotes.id", ondelete="CASCADE"), index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("1"))
    unit_price: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    setup_fee: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0"))

    quote: Mapped["Quote"] = relationship(back_populates="lines")


# ------------------- REFUNDS & PAYMENT INTENTS -------------------
class Refund(TimestampMixin, Base):
    __tablename__ = "refunds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), index=True)
    payment_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payment_transactions.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    reason: Mapped[str] = mapped_column(String(1000), default="")
    status: Mapped[str] = mapped_column(String(20), default="Pending")
    gateway_refund_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    requested_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class PaymentIntent(TimestampMixin, Base):
    __tablename__ = "payment_intents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), index=True)
    invoice_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("invoices.id"), nullable=True
    )
    payment_gateway_id: Mapped[int] = mapped_column(ForeignKey("payment_gateways.id"))
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[str] = mapped_column(String(500), default="")
    status: Mapped[str] = mapped_column(String(20), default="Created")
    gateway_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )
    client_secret: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


# ------------------- TLDS & REGISTRARS -------------------
class Tld(TimestampMixin, Base):
    __tablename__ = "tlds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    extension: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Registrar(TimestampMixin, Base):
    __tablename__ = "registrars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    api_url: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    api_user: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    api_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    client_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    use_sandbox: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)


class RegistrarTld(TimestampMixin, Base):
    __tablename__ = "registrar_tlds"
    __table_args__ = (UniqueConstraint("registrar_id", "tld_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registrar_id: Mapped[int] = mapped_column(
        ForeignKey("registrars.id", ondelete="CASCADE"), index=True
    )
    tld_id: Mapped[int] = mapped_column(ForeignKey("tlds.id", ondelete="CASCADE"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False)
    min_registration_years: Mapped[int] = mapped_column(Integer, default=1)
    max_registration_years: Mapped[int] = mapped_column(Integer, default=10)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    registrar: Mapped["Registrar"] = relationship()
    tld: Mapped["Tld"] = relationship()
    cost_pricings: Mapped[List["RegistrarTldCostPricing"]] = relationship(
        back_populates="registrar_tld", cascade="all, delete-orphan"
    )


class RegistrarTldCostPricing(Base):
    __tablename__ = "registrar_tld_cost_pricing"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registrar_tld_id: Mapped[int] = mapped_column(
        ForeignKey("registrar_tlds.id", ondelete="CASCADE"), index=True
    )
    registration_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    renewal_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    transfer_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    effective_from: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    effective_to: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    registrar_tld: Mapped["RegistrarTld"] = relationship(back_populates="cost_pricings")


class RegistrarTldPriceDownloadSession(Base):
    __tablename__ = "registrar_tld_price_download_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registrar_id: Mapped[int] = mapped_column(
        ForeignKey("registrars.id", ondelete="CASCADE"), index=True
    )
    trigger_source: Mapped[str] = mapped_column(String(50), default="manual")
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    tlds_processed: Mapped[int] = mapped_column(Integer, default=0)
    price_changes_detected: Mapped[int] = mapped_column(Integer, default=0)
    message: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)


class RegistrarTldPriceChangeLog(Base):
    __tablename__ = "registrar_tld_price_change_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registrar_tld_id: Mapped[int] = mapped_column(
        ForeignKey("registrar_tlds.id", ondelete="CASCADE"), index=True
    )
    download_session_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("registrar_tld_price_download_sessions.id", ondelete="SET NULL"),
        nullable=True,
    )
    change_source: Mapped[str] = mapped_column(String(50), default="RegistrarApi")
    changed_by: Mapped[str] = mapped_column(String(100), default="system")
    changed_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    old_registration_cost: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    new_registration_cost: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    old_renewal_cost: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    new_renewal_cost: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    old_transfer_cost: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    new_transfer_cost: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    old_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    new_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)


class RegisteredDomain(TimestampMixin, Base):
    __tablename__ = "registered_domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(253), unique=True, nullable=False)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), index=True)
    registrar_id: Mapped[int] = mapped_column(ForeignKey("registrars.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), default="Pending")
    registration_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    expiration_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False)
    privacy_protection: Mapped[bool] = mapped_column(Boolean, default=False)
    last_reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    customer: Mapped["Customer"] = relationship()
    registrar: Mapped["Registrar"] = relationship()


# ------------------- DNS -------------------
class DnsRecordType(TimestampMixin, Base):
    __tablename__ = "dns_record_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    type: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(String(255), default="")
    has_priority: Mapped[bool] = mapped_column(Boolean, default=False)
    has_weight: Mapped[bool] = mapped_column(Boolean, default=False)
    has_port: Mapped[bool] = mapped_column(Boolean, default=False)
    is_editable_by_user: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    default_ttl: Mapped[int] = mapped_column(Integer, default=3600)


class DnsRecord(TimestampMixin, Base):
    __tablename__ = "dns_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    domain_id: Mapped[int] = mapped_column(
        ForeignKey("registered_domains.id", ondelete="CASCADE"), index=True
    )
    dns_record_type_id: Mapped[int] = mapped_column(ForeignKey("dns_record_types.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(String(2000), nullable=False)
    ttl: Mapped[int] = mapped_column(Integer, default=3600)
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    weight: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    port: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_pending_sync: Mapped[bool] = mapped_column(Boolean, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    record_type: Mapped["DnsRecordType"] = relationship()


class DnsZonePackage(TimestampMixin, Base):
    __tablename__ = "dns_zone_packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    records: Mapped[List["DnsZonePackageRecord"]] = relationship(
        back_populates="package", cascade="all, delete-orphan"
    )
    control_panel_assignments: Mapped[List["DnsZonePackageControlPanel"]] = (
        relationship(cascade="all, delete-orphan")
    )
    server_assignments: Mapped[List["DnsZonePackageServer"]] = relationship(
        cascade="all, delete-orphan"
    )


class DnsZonePackageRecord(TimestampMixin, Base):
    __tablename__ = "dns_zone_package_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dns_zone_package_id: Mapped[int] = mapped_column(
        ForeignKey("dns_zone_packages.id", ondelete="CASCADE"), index=True
    )
    dns_record_type_id: Mapped[int] = mapped_column(ForeignKey("dns_record_types.id"))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(String(2000), nullable=False)
    ttl: Mapped[int] = mapped_column(Integer, default=3600)
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    weight: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    port: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    package: Mapped["DnsZonePackage"] = relationship(back_populates="records")


class DnsZonePackageControlPanel(Base):
    __tablename__ = "dns_zone_package_control_panels"
    __table_args__ = (
        UniqueConstraint("dns_zone_package_id", "server_control_panel_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dns_zone_package_id: Mapped[int] = mapped_column(
        ForeignKey("dns_zone_packages.id", ondelete="CASCADE")
    )
    server_control_panel_id: Mapped[int] = mapped_column(
        ForeignKey("server_control_panels.id", ondelete="CASCADE")
    )


class DnsZonePackageServer(Base):
    __tablename__ = "dns_zone_package_servers"
    __table_args__ = (UniqueConstraint("dns_zone_package_id", "server_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dns_zone_package_id: Mapped[int] = mapped_column(
        ForeignKey("dns_zone_packages.id", ondelete="CASCADE")
    )
    server_id: Mapped[int] = mapped_column(ForeignKey("servers.id", ondelete="CASCADE"))


# ------------------- HOSTING -------------------
class Server(TimestampMixin, Base):
    __tablename__ = "servers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    hostname: Mapped[str] = mapped_column(String(255), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Active")
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)


class ControlPanelType(Base):
    __tablename__ = "control_panel_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class ServerControlPanel(TimestampMixin, Base):
    __tablename__ = "server_control_panels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    server_id: Mapped[int] = mapped_column(
        ForeignKey("servers.id", ondelete="CASCADE"), index=True
    )
    control_panel_type_id: Mapped[int] = mapped_column(
        ForeignKey("control_panel_types.id")
    )
    api_url: Mapped[str] = mapped_column(String(255), nullable=False)
    port: Mapped[int] = mapped_column(Integer, default=2087)
    use_https: Mapped[bool] = mapped_column(Boolean, default=True)
    verify_ssl: Mapped[bool] = mapped_column(Boolean, default=True)
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    api_token: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    api_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Active")
    last_connection_test: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    is_connection_healthy: Mapped[Optional[bool]] = mapped_column(
        Boolean, nullable=True
    )

    server: Mapped["Server"] = relationship()
    control_panel_type: Mapped["ControlPanelType"] = relationship()


class HostingAccount(TimestampMixin, Base):
    __tablename__ = "hosting_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), index=True)
    server_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("servers.id"), nullable=True, index=True
    )
    server_control_panel_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("server_control_panels.id"), nullable=True
    )
    username: Mapped[str] = mapped_column(String(64), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), default="")
    plan: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="Active")
    expiration_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    disk_quota_mb: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bandwidth_limit_mb: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    disk_usage_mb: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bandwidth_usage_mb: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_email_accounts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_databases: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_domains: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    external_account_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, index=True
    )
    sync_status: Mapped[str] = mapped_column(String(20), default="NotSynced")
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    customer: Mapped["Customer"] = relationship()
    server: Mapped[Optional["Server"]] = relationship()
    server_control_panel: Mapped[Optional["ServerControlPanel"]] = relationship()
    domains: Mapped[List["HostingDomain"]] = relationship(
        back_populates="hosting_account", cascade="all, delete-orphan"
    )
    email_accounts: Mapped[List["HostingEmailAccount"]] = relationship(
        back_populates="hosting_account", cascade="all, delete-orphan"
    )
    databases: Mapped[List["HostingDatabase"]] = relationship(
        back_populates="hosting_account", cascade="all, delete-orphan"
    )


class HostingDomain(TimestampMixin, Base):
    __tablename__ = "hosting_domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    hosting_account_id: Mapped[int] = mapped_column(
        ForeignKey("hosting_accounts.id", ondelete="CASCADE"), index=True
    )
    domain_name: Mapped[str] = mapped_column(String(253), nullable=False)
    domain_type: Mapped[str] = mapped_column(String(20), default="Main")
    document_root: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    ssl_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    external_domain_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    sync_status: Mapped[str] = mapped_column(String(20), default="NotSynced")
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    hosting_account: Mapped["HostingAccount"] = relationship(back_populates="domains")


class HostingEmailAccount(TimestampMixin, Base):
    __tablename__ = "hosting_email_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    hosting_account_id: Mapped[int] = mapped_column(
        ForeignKey("hosting_accounts.id", ondelete="CASCADE"), index=True
    )
    email_address: Mapped[str] = mapped_column(String(255), nullable=False)
    quota_mb: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_mb: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sync_status: Mapped[str] = mapped_column(String(20), default="NotSynced")
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    hosting_account: Mapped["HostingAccount"] = relationship(
        back_populates="email_accounts"
    )


class HostingDatabase(TimestampMixin, Base):
    __tablename__ = "hosting_databases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    hosting_account_id: Mapped[int] = mapped_column(
        ForeignKey("hosting_accounts.id", ondelete="CASCADE"), index=True
    )
    database_name: Mapped[str] = mapped_column(String(64), nullable=False)
    database_type: Mapped[str] = mapped_column(String(20), default="MySQL")
    size_mb: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sync_status: Mapped[str] = mapped_column(String(20), default="NotSynced")
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    hosting_account: Mapped["HostingAccount"] = relationship(back_populates="databases")


# ------------------- EMAIL QUEUE -------------------
class SentEmail(TimestampMixin, Base):
    __tablename__ = "sent_emails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    from_address: Mapped[str] = mapped_column(String(255), nullable=False)
    to_addresses: Mapped[str] = mapped_column(String(2000), nullable=False)
    cc: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    bcc: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    body_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachments: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    message_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="Pending", index=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)
    next_attempt_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, index=True
    )
    sent_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    provider: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    related_entity_type: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True
    )
    related_entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
