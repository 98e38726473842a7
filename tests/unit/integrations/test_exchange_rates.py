"""
Unit tests for the exchange rate providers with mocked HTTP.
"""

from decimal import Decimal
from unittest.mock import Mock, patch

import pytest
import requests

from isp_admin.core.exceptions import ExternalServiceError, UnsupportedProviderError
from isp_admin.integrations.exchange_rates import (
    ExchangeRateHostProvider,
    FrankfurterProvider,
    create_rate_provider,
)

GET = "isp_admin.integrations.exchange_rates.requests.get"


def _response(payload):
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestFrankfurterProvider:
    def test_fetch_uses_from_and_to_params(self):
        with patch(GET, return_value=_response({"rates": {"USD": 1.0812, "nok": "11.5"}})) as get:
            rates = FrankfurterProvider().fetch_rates("eur", ["USD", "NOK", "EUR"])

        assert rates == {"USD": Decimal("1.0812"), "NOK": Decimal("11.5")}
        assert get.call_args.args[0] == "https://api.frankfurter.app/latest"
        assert get.call_args.kwargs["params"] == {"from": "EUR", "to": "NOK,USD"}

    def test_only_base_currency_requested(self):
        with patch(GET) as get:
            assert FrankfurterProvider().fetch_rates("EUR", ["eur"]) == {}
        get.assert_not_called()

    def test_http_error_raises_external_service_error(self):
        response = _response({})
        response.raise_for_status.side_effect = requests.HTTPError("502 Bad Gateway")

        with patch(GET, return_value=response):
            with pytest.raises(ExternalServiceError, match="Rate download failed for EUR"):
                FrankfurterProvider().fetch_rates("EUR", ["USD"])

    def test_unparseable_rate_skipped(self):
        with patch(GET, return_value=_response({"rates": {"USD": "n/a", "GBP": 0.85}})):
            rates = FrankfurterProvider().fetch_rates("EUR", ["USD", "GBP"])

        assert rates == {"GBP": Decimal("0.85")}


class TestExchangeRateHostProvider:
    def test_reported_failure_raises(self):
        payload = {"success": False, "error": {"info": "Invalid base currency"}}

        with patch(GET, return_value=_response(payload)) as get:
            with pytest.raises(ExternalServiceError, match="Invalid base currency"):
                ExchangeRateHostProvider().fetch_rates("XXX", ["USD"])

        assert get.call_args.kwargs["params"] == {"base": "XXX", "symbols": "USD"}

    def test_custom_url(self):
        provider = ExchangeRateHostProvider(api_url="https://rates.internal/")

        assert provider.api_url == "https://rates.internal"


class TestFactory:
    @pytest.mark.parametrize(
        "code,expected",
        [("frankfurter", FrankfurterProvider), (" ExchangeRateHost ", ExchangeRateHostProvider)],
    )
    def test_known_providers(self, code, expected):
        assert isinstance(create_rate_provider(code), expected)

    def test_unknown_provider(self):
        with pytest.raises(UnsupportedProviderError, match="Unsupported exchange rate provider"):
            create_rate_provider("ecb-scraper")
