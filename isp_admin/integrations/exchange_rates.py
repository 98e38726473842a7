"""
Exchange rate providers.

- ``frankfurter``: ``GET {api}/latest?from=EUR&to=USD,GBP`` (ECB reference rates)
- ``exchangeratehost``: ``GET {api}/latest?base=EUR&symbols=USD,GBP``

Both answer with ``{"rates": {"USD": 1.08, ...}}``.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import requests

from isp_admin.core.exceptions import ExternalServiceError, UnsupportedProviderError
from isp_admin.domain.interfaces import IExchangeRateProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class HttpExchangeRateProvider(IExchangeRateProvider):
    name = "http"
    default_url = ""
    base_param = "base"
    symbols_param = "symbols"

    def __init__(self, api_url: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT):
        self.api_url = (api_url or self.default_url).rstrip("/")
        self.timeout = timeout

    def fetch_rates(self, base_currency: str, targets: List[str]) -> Dict[str, Decimal]:
        wanted = sorted({t.upper() for t in targets if t and t.upper() != base_currency.upper()})
        if not wanted:
            return {}
        params = {self.base_param: base_currency.upper(), self.symbols_param: ",".join(wanted)}
        try:
            response = requests.get(f"{self.api_url}/latest", params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            raise ExternalServiceError(self.name, f"Rate download failed for {base_currency}: {e}") from e
        except ValueError as e:
            raise ExternalServiceError(self.name, "Invalid JSON response") from e

        if payload.get("success") is False:
            error = payload.get("error") or {}
            message = error.get("info") if isinstance(error, dict) else str(error)
            raise ExternalServiceError(self.name, message or "Provider reported failure")

        rates = {}
        for code, value in (payload.get("rates") or {}).items():
            try:
                rates[code.upper()] = Decimal(str(value))
            except (InvalidOperation, ValueError):
                logger.warning(
                    "Skipping unparseable rate",
                    extra={"context": {"provider": self.name, "currency": code, "value": value}},
                )
        return rates


class FrankfurterProvider(HttpExchangeRateProvider):
    name = "frankfurter"
    default_url = "https://api.frankfurter.app"
    base_param = "from"
    symbols_param = "to"


class ExchangeRateHostProvider(HttpExchangeRateProvider):
    name = "exchangeratehost"
    default_url = "https://api.exchangerate.host"


PROVIDERS = {
    FrankfurterProvider.name: FrankfurterProvider,
    ExchangeRateHostProvider.name: ExchangeRateHostProvider,
}


def create_rate_provider(code: str, api_url: Optional[str] = None) -> IExchangeRateProvider:
    provider_cls = PROVIDERS.get((code or "").strip().lower())
    if provider_cls is None:
        raise UnsupportedProviderError("exchange rate provider", code)
    return provider_cls(api_url=api_url)
