import logging
from datetime import timedelta
from typing import Callable, Dict, List, Optional

from isp_admin.core.config import DOMAIN_MONITOR_SETTINGS, utc_now
from isp_admin.core.exceptions import EntityNotFoundError, InvalidOperationError
from isp_admin.db.base import RegisteredDomain
from isp_admin.domain.entities import DomainAvailability, DomainStatus
from isp_admin.domain.interfaces import (
    ICustomerRepository,
    IRegisteredDomainRepository,
    IRegistrarRepository,
    IRegistrarTldRepository,
    ITldRepository,
)
from isp_admin.integrations.registrars.base import (
    extract_tld,
    normalize_domain_name,
    normalize_extension,
)
from isp_admin.integrations.registrars.factory import create_registrar_client
from isp_admin.schemas.dtos import (
    DomainRegistrationRequest,
    QueueEmailRequest,
    RegisteredDomainCreateRequest,
    RegisteredDomainUpdateRequest,
)
from isp_admin.utils.billing_utils import add_years

logger = logging.getLogger(__name__)


class RegisteredDomainService:
    def __init__(
        self,
        repo: IRegisteredDomainRepository,
        customer_repo: ICustomerRepository,
        registrar_repo: IRegistrarRepository,
        registrar_tld_repo: IRegistrarTldRepository,
        tld_repo: ITldRepository,
        client_factory: Callable = create_registrar_client,
    ) -> None:
        self.repo = repo
        self.customer_repo = customer_repo
        self.registrar_repo = registrar_repo
        self.registrar_tld_repo = registrar_tld_repo
        self.tld_repo = tld_repo
        self.client_factory = client_factory

    def get_all(self) -> List[RegisteredDomain]:
        return self.repo.get_all()

    def get_by_id(self, domain_id: int) -> Optional[RegisteredDomain]:
        return self.repo.get_by_id(domain_id)

    def get_by_name(self, name: str) -> Optional[RegisteredDomain]:
        return self.repo.get_by_name(normalize_domain_name(name))

    def get_by_customer(self, customer_id: int) -> List[RegisteredDomain]:
        return self.repo.get_by_customer(customer_id)

    def get_by_registrar(self, registrar_id: int) -> List[RegisteredDomain]:
        return self.repo.get_by_registrar(registrar_id)

    def get_by_status(self, status: str) -> List[RegisteredDomain]:
        return self.repo.get_by_status(status)

    def get_expiring_in_days(self, days: int) -> List[RegisteredDomain]:
        if days < 0:
            raise ValueError("days cannot be negative")
        now = utc_now()
        return self.repo.get_expiring_between(now, now + timedelta(days=days))

    def create(self, dto: RegisteredDomainCreateRequest) -> RegisteredDomain:
        dto.validate()
        if self.repo.get_by_name(dto.name) is not None:
            raise InvalidOperationError(f"Domain '{dto.name}' already exists")
        if self.customer_repo.get_by_id(dto.customer_id) is None:
            raise InvalidOperationError(f"Customer with ID {dto.customer_id} does not exist")
        if self.registrar_repo.get_by_id(dto.registrar_id) is None:
            raise InvalidOperationError(f"Registrar with ID {dto.registrar_id} does not exist")

        domain = self.repo.add(RegisteredDomain(**dto.changes()))
        logger.info(
            "Domain created",
            extra={"context": {"domain_id": domain.id, "name": domain.name}},
        )
        return domain

    def update(self, domain_id: int, dto: RegisteredDomainUpdateRequest) -> RegisteredDomain:
        dto.validate()
        domain = self._get_or_raise(domain_id)
        changes = dto.changes()
        if "customer_id" in changes and self.customer_repo.get_by_id(changes["customer_id"]) is None:
            raise InvalidOperationError(f"Customer with ID {changes['customer_id']} does not exist")
        if "registrar_id" in changes and self.registrar_repo.get_by_id(changes["registrar_id"]) is None:
            raise InvalidOperationError(f"Registrar with ID {changes['registrar_id']} does not exist")
        for name, value in changes.items():
            setattr(domain, name, value)
        return self.repo.save(domain)

    def delete(self, domain_id: int) -> None:
        self.repo.delete(self._get_or_raise(domain_id))
        logger.info("Domain deleted", extra={"context": {"domain_id": domain_id}})

    def register_domain(self, dto: DomainRegistrationRequest, customer_id: int) -> RegisteredDomain:
        """Register a name at the default registrar and store it as Active."""
        dto.validate()
        name = normalize_domain_name(dto.domain_name)
        if self.customer_repo.get_by_id(customer_id) is None:
            raise EntityNotFoundError("Customer", customer_id)
        if self.repo.get_by_name(name) is not None:
            raise InvalidOperationError(f"Domain '{name}' is already registered")

        registrar = self._default_registrar()
        extension = extract_tld(name)
        tld = self.tld_repo.get_by_extension(extension)
        if tld is None or not tld.is_active:
            raise InvalidOperationError(f"TLD '.{extension}' is not supported")
        offering = self.registrar_tld_repo.get_by_pair(registrar.id, tld.id)
        if offering is None or not offering.is_active:
            raise InvalidOperationError(
                f"Registrar {registrar.name} does not offer '.{extension}'"
            )
        if not offering.min_registration_years <= dto.years <= offering.max_registration_years:
            raise InvalidOperationError(
                f"Registration period must be between {offering.min_registration_years} "
                f"and {offering.max_registration_years} years"
            )

        result = self.client_factory(registrar).register_domain(name, dto.years, dto.contact or {})
        if not result.success:
            raise InvalidOperationError(result.message or f"Registration of {name} failed")

        now = utc_now()
        domain = self.repo.add(
            RegisteredDomain(
                name=name,
                customer_id=customer_id,
                registrar_id=registrar.id,
                status=DomainStatus.ACTIVE,
                registration_date=now,
                expiration_date=result.expiration_date or add_years(now, dto.years),
                auto_renew=dto.auto_renew,
                privacy_protection=dto.privacy_protection,
                notes=f"Registrar order {result.registrar_order_id}" if result.registrar_order_id else None,
            )
        )
        logger.info(
            "Domain registered",
            extra={
                "context": {
                    "domain": name,
                    "registrar": registrar.code,
                    "years": dto.years,
                    "customer_id": customer_id,
                }
            },
        )
        return domain

    def check_availability(self, name: str) -> DomainAvailability:
        name = normalize_domain_name(name)
        extract_tld(name)
        return self.client_factory(self._default_registrar()).check_availability(name)

    def get_domain_pricing(self, tld: str) -> Optional[Dict]:
        """Current cost pricing of the default registrar for one extension."""
        extension = normalize_extension(tld)
        registrar = self._default_registrar()
        tld_row = self.tld_repo.get_by_extension(extension)
        if tld_row is None:
            return None
        offering = self.registrar_tld_repo.get_by_pair(registrar.id, tld_row.id)
        if offering is None:
            return None
        pricing = self.registrar_tld_repo.get_current_pricing(offering.id, utc_now())
        if pricing is None:
            return None
        return {
            "tld": extension,
            "registrar_id": registrar.id,
            "registration_cost": str(pricing.registration_cost),
            "renewal_cost": str(pricing.renewal_cost),
            "transfer_cost": str(pricing.transfer_cost),
            "currency": pricing.currency,
            "min_registration_years": offering.min_registration_years,
            "max_registration_years": offering.max_registration_years,
        }

    def get_available_tlds(self) -> List[str]:
        registrar = self._default_registrar()
        return sorted(
            offering.tld.extension
            for offering in self.registrar_tld_repo.get_by_registrar(registrar.id, active_only=True)
            if offering.tld is not None and offering.tld.is_active
        )

    def _default_registrar(self):
        registrar = self.registrar_repo.get_default()
        if registrar is None:
            active = self.registrar_repo.get_active()
            registrar = active[0] if active else None
        if registrar is None:
            raise InvalidOperationError("No active registrar configured")
        return registrar

    def _get_or_raise(self, domain_id: int) -> RegisteredDomain:
        domain = self.repo.get_by_id(domain_id)
        if domain is None:
            raise EntityNotFoundError("Domain", domain_id)
        return domain


class DomainExpirationMonitor:
    """Periodic housekeeping for domains, invoices and quotes.

    Queues renewal reminders once per expiration cycle, marks lapsed
    domains Expired, moves overdue invoices to Overdue and expires old
    quotes.
    """

    def __init__(
        self,
        repo: IRegisteredDomainRepository,
        customer_repo: ICustomerRepository,
        email_queue_service=None,
        invoice_service=None,
        quote_service=None,
        settings: Optional[dict] = None,
    ) -> None:
        self.repo = repo
        self.customer_repo = customer_repo
        self.email_queue_service = email_queue_service
        self.invoice_service = invoice_service
        self.quote_service = quote_service
        self.settings = settings or DOMAIN_MONITOR_SETTINGS

    def run(self) -> Dict[str, int]:
        now = utc_now()
        stats = {
            "reminders_queued": self._queue_reminders(now),
            "domains_expired": self._expire_domains(now),
            "invoices_overdue": 0,
            "quotes_expired": 0,
        }
        if self.invoice_service is not None:
            stats["invoices_overdue"] = self.invoice_service.mark_overdue(now.date())
        if self.quote_service is not None:
            stats["quotes_expired"] = self.quote_service.expire_outdated(now.date())
        logger.info("Domain expiration monitor finished", extra={"context": stats})
        return stats

    def _queue_reminders(self, now) -> int:
        warning = timedelta(days=self.settings["warning_days"])
        queued = 0
        for domain in self.repo.get_expiring_between(now, now + warning):
            window_start = domain.expiration_date - warning
            if domain.last_reminder_sent_at is not None and domain.last_reminder_sent_at >= window_start:
                continue
            customer = self.customer_repo.get_by_id(domain.customer_id)
            if customer is None or self.email_queue_service is None:
                continue
            self.email_queue_service.queue_email(self._reminder(domain, customer, now))
            domain.last_reminder_sent_at = now
            self.repo.save(domain)
            queued += 1
        return queued

    def _expire_domains(self, now) -> int:
        expired = self.repo.get_active_expired(now)
        for domain in expired:
            domain.status = DomainStatus.EXPIRED
            self.repo.save(domain)
            logger.info(
                "Domain expired",
                extra={"context": {"domain_id": domain.id, "name": domain.name}},
            )
        return len(expired)

    @staticmethod
    def _reminder(domain: RegisteredDomain, customer, now) -> QueueEmailRequest:
        days_left = max((domain.expiration_date - now).days, 0)
        renewal = (
            "It is set to renew automatically."
            if domain.auto_renew
            else "Please renew it to keep it active."
        )
        return QueueEmailRequest(
            to=[customer.email],
            subject=f"Domain {domain.name} expires in {days_left} days",
            body_text=(
                f"Dear {customer.name},\n\n"
                f"Your domain {domain.name} expires on "
                f"{domain.expiration_date:%Y-%m-%d}. {renewal}\n"
            ),
            customer_id=customer.id,
            related_entity_type="RegisteredDomain",
            related_entity_id=domain.id,
        )
