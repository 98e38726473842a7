"""
Namecheap registrar client for the XML API (``/xml.response``).

Every call carries ApiUser/ApiKey/UserName/ClientIp and a ``Command``.
Responses are XML documents in the ``http://api.namecheap.com/xml.response``
namespace; ``Status="ERROR"`` responses carry their messages in
``Errors/Error``.
"""

import logging
import xml.etree.ElementTree as ET
from collections import defaultdict
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import requests

from isp_admin.core.config import utc_now
from isp_admin.core.exceptions import ExternalServiceError
from isp_admin.domain.entities import DomainAvailability, DomainRegistrationResult, TldPrice
from isp_admin.utils.billing_utils import add_years

from .base import BaseRegistrar, normalize_domain_name, normalize_extension

logger = logging.getLogger(__name__)

PRODUCTION_URL = "https://api.namecheap.com/xml.response"
SANDBOX_URL = "https://api.sandbox.namecheap.com/xml.response"

CONTACT_ROLES = ("Registrant", "Tech", "Admin", "AuxBilling")
CONTACT_FIELDS = {
    "FirstName": "first_name",
    "LastName": "last_name",
    "Organization": "organization",
    "EmailAddress": "email",
    "Phone": "phone",
    "Address1": "address1",
    "City": "city",
    "StateProvince": "state",
    "PostalCode": "postal_code",
    "Country": "country",
}


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _iter(root: ET.Element, name: str):
    """Iterate descendants by local tag name, ignoring the XML namespace."""
    for element in root.iter():
        if _local(element.tag) == name:
            yield element


class NamecheapRegistrar(BaseRegistrar):
    registrar_name = "Namecheap"

    def __init__(
        self,
        api_user: str,
        api_key: str,
        client_ip: str,
        username: Optional[str] = None,
        use_sandbox: bool = False,
        api_url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        if not api_user or not api_key or not client_ip:
            raise ValueError("Namecheap requires api_user, api_key and client_ip")
        self.api_user = api_user
        self.api_key = api_key
        self.username = username or api_user
        self.client_ip = client_ip
        self.api_url = api_url or (SANDBOX_URL if use_sandbox else PRODUCTION_URL)

    def _call(self, command: str, **params) -> ET.Element:
        query = {
            "ApiUser": self.api_user,
            "ApiKey": self.api_key,
            "UserName": self.username,
            "ClientIp": self.client_ip,
            "Command": command,
        }
        query.update(params)
        try:
            response = requests.get(self.api_url, params=query, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ExternalServiceError(self.registrar_name, f"{command}: {e}") from e

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise ExternalServiceError(self.registrar_name, f"{command}: invalid XML") from e

        if root.get("Status", "").upper() != "OK":
            errors = [error.text or "" for error in _iter(root, "Error")]
            raise ExternalServiceError(
                self.registrar_name, "; ".join(e for e in errors if e) or f"{command} failed"
            )
        return root

    def get_supported_tlds(self, extension: Optional[str] = None) -> List[TldPrice]:
        params = {"ProductType": "DOMAIN"}
        wanted = normalize_extension(extension) if extension else None
        if wanted:
            params["ProductName"] = wanted
        root = self._call("namecheap.users.getPricing", **params)

        # tld -> category -> one-year price, plus tld -> (currency, max duration)
        prices: Dict[str, Dict[str, Decimal]] = defaultdict(dict)
        meta: Dict[str, dict] = defaultdict(lambda: {"currency": "USD", "max_years": 1})
        for category in _iter(root, "ProductCategory"):
            category_name = (category.get("Name") or "").lower()
            for product in category:
                if _local(product.tag) != "Product":
                    continue
                tld = normalize_extension(product.get("Name"))
                for price in product:
                    if _local(price.tag) != "Price":
                        continue
                    try:
                        duration = int(price.get("Duration", "1"))
                        amount = Decimal(price.get("YourPrice") or price.get("Price") or "0")
                    except (ValueError, InvalidOperation):
                        continue
                    meta[tld]["max_years"] = max(meta[tld]["max_years"], duration)
                    meta[tld]["currency"] = price.get("Currency") or "USD"
                    if duration == 1:
                        prices[tld][category_name] = amount

        results = []
        for tld, by_category in sorted(prices.items()):
            if "register" not in by_category:
                continue
            registration = by_category["register"]
            results.append(
                TldPrice(
                    tld=tld,
                    registration_price=registration,
                    renewal_price=by_category.get("renew", registration),
                    transfer_price=by_category.get("transfer", registration),
                    currency=meta[tld]["currency"],
                    max_registration_years=min(max(meta[tld]["max_years"], 1), 10),
                )
            )
        logger.info(
            "Namecheap pricing downloaded",
            extra={"context": {"tlds": len(results), "extension": wanted}},
        )
        return results

    def check_availability(self, domain_name: str) -> DomainAvailability:
        name = normalize_domain_name(domain_name)
        root = self._call("namecheap.domains.check", DomainList=name)
        for result in _iter(root, "DomainCheckResult"):
            if (result.get("Domain") or "").lower() != name:
                continue
            available = result.get("Available", "false").lower() == "true"
            premium = result.get("IsPremiumName", "false").lower() == "true"
            price = None
            if premium and result.get("PremiumRegistrationPrice"):
                price = Decimal(result.get("PremiumRegistrationPrice"))
            return DomainAvailability(
                domain_name=name,
                available=available,
                premium=premium,
                price=price,
                currency="USD" if price is not None else None,
                message="Domain is available" if available else "Domain is not available",
            )
        raise ExternalServiceError(self.registrar_name, f"No check result for {name}")

    def register_domain(
        self, domain_name: str, years: int, contact: Dict[str, str]
    ) -> DomainRegistrationResult:
        name = normalize_domain_name(domain_name)
        params = {"DomainName": name, "Years": str(years)}
        for role in CONTACT_ROLES:
            for api_field, key in CONTACT_FIELDS.items():
                params[f"{role}{api_field}"] = contact.get(key) or ""
        root = self._call("namecheap.domains.create", **params)

        for result in _iter(root, "DomainCreateResult"):
            registered = result.get("Registered", "false").lower() == "true"
            return DomainRegistrationResult(
                success=registered,
                domain_name=name,
                message="Domain registered" if registered else "Registration was not completed",
                registrar_order_id=result.get("OrderID"),
                expiration_date=add_years(utc_now(), years) if registered else None,
            )
        raise ExternalServiceError(self.registrar_name, f"No create result for {name}")
