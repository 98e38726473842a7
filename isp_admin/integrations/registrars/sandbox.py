"""
Sandbox registrar: simulated registrations and a static cost price list.

Availability for .com/.net/.cc/.tv/.name is looked up through the public
VeriSign RDAP service (HTTP 404 means available); other TLDs are reported
as available without a lookup.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

import requests

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import ExternalServiceError
from isp_admin.domain.entities import DomainAvailability, DomainRegistrationResult, TldPrice
from isp_admin.utils.billing_utils import add_years

from .base import BaseRegistrar, extract_tld, normalize_domain_name, normalize_extension

logger = logging.getLogger(__name__)

VERISIGN_RDAP_URL = "https://rdap.verisign.com"
VERISIGN_RDAP_TLDS = frozenset({"com", "net", "cc", "tv", "name"})

# (registration, renewal, transfer, max years)
SANDBOX_PRICES = {
    "com": ("9.99", "12.99", "9.99", 10),
    "net": ("11.99", "14.99", "11.99", 10),
    "org": ("10.99", "13.99", "10.99", 10),
    "io": ("39.99", "49.99", "39.99", 5),
    "dev": ("14.99", "16.99", "14.99", 10),
    "co": ("24.99", "29.99", "24.99", 5),
    "info": ("3.99", "18.99", "12.99", 10),
    "biz": ("12.99", "16.99", "12.99", 10),
    "xyz": ("1.99", "12.99", "9.99", 10),
    "app": ("14.99", "18.99", "14.99", 10),
}


class SandboxRegistrar(BaseRegistrar):
    registrar_name = "Sandbox"

    def get_supported_tlds(self, extension: Optional[str] = None) -> List[TldPrice]:
        wanted = normalize_extension(extension) if extension else None
        prices = []
        for tld, (registration, renewal, transfer, max_years) in SANDBOX_PRICES.items():
            if wanted and tld != wanted:
                continue
            prices.append(
                TldPrice(
                    tld=tld,
                    registration_price=Decimal(registration),
                    renewal_price=Decimal(renewal),
                    transfer_price=Decimal(transfer),
                    currency="USD",
                    max_registration_years=max_years,
                )
            )
        return prices

    def check_availability(self, domain_name: str) -> DomainAvailability:
        name = normalize_domain_name(domain_name)
        tld = extract_tld(name)
        if tld not in VERISIGN_RDAP_TLDS:
            return DomainAvailability(
                domain_name=name,
                available=True,
                message=f"TLD '.{tld}' has no RDAP lookup in sandbox mode. Simulated as available.",
            )

        url = f"{VERISIGN_RDAP_URL}/{tld}/v1/domain/{name}"
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExternalServiceError("VeriSign RDAP", str(e)) from e

        if response.status_code == 404:
            return DomainAvailability(
                domain_name=name, available=True, message="Domain is available"
            )
        if response.ok:
            return DomainAvailability(
                domain_name=name, available=False, message="Domain is already registered"
            )
        raise ExternalServiceError(
            "VeriSign RDAP",
            f"Unexpected status {response.status_code}",
            status_code=response.status_code,
        )

    def register_domain(
        self, domain_name: str, years: int, contact: Dict[str, str]
    ) -> DomainRegistrationResult:
        name = normalize_domain_name(domain_name)
        logger.info(
            "Sandbox registration simulated",
            extra={"context": {"domain": name, "years": years}},
        )
        return DomainRegistrationResult(
            success=True,
            domain_name=name,
            message="Domain registered (sandbox)",
            registrar_order_id=f"SANDBOX-{utc_now():%Y%m%d%H%M%S}",
            expiration_date=add_years(utc_now(), years),
        )
