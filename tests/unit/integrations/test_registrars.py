"""
Unit tests for registrar clients: sandbox, Namecheap XML parsing and the factory.
"""

from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

from isp_admin.core.exceptions import ExternalServiceError, UnsupportedProviderError
from isp_admin.db.base import Registrar
from isp_admin.integrations.registrars.base import extract_tld, normalize_extension
from isp_admin.integrations.registrars.factory import create_registrar_client
from isp_admin.integrations.registrars.namecheap import NamecheapRegistrar
from isp_admin.integrations.registrars.sandbox import SandboxRegistrar

SANDBOX_GET = "isp_admin.integrations.registrars.sandbox.requests.get"
NAMECHEAP_GET = "isp_admin.integrations.registrars.namecheap.requests.get"

PRICING_XML = b"""<?xml version="1.0" encoding="utf-8"?>
<ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
  <CommandResponse Type="namecheap.users.getPricing">
    <UserGetPricingResult>
      <ProductType Name="domains">
        <ProductCategory Name="register">
          <Product Name="com">
            <Price Duration="1" DurationType="YEAR" Price="10.28" YourPrice="9.58" Currency="USD" />
            <Price Duration="10" DurationType="YEAR" Price="120.00" YourPrice="118.00" Currency="USD" />
          </Product>
          <Product Name="io">
            <Price Duration="1" DurationType="YEAR" Price="39.98" YourPrice="" Currency="USD" />
          </Product>
        </ProductCategory>
        <ProductCategory Name="renew">
          <Product Name="com">
            <Price Duration="1" DurationType="YEAR" Price="14.58" YourPrice="13.98" Currency="USD" />
          </Product>
        </ProductCategory>
        <ProductCategory Name="transfer">
          <Product Name="net">
            <Price Duration="1" DurationType="YEAR" Price="11.00" YourPrice="11.00" Currency="USD" />
          </Product>
        </ProductCategory>
      </ProductType>
    </UserGetPricingResult>
  </CommandResponse>
</ApiResponse>"""

ERROR_XML = b"""<?xml version="1.0" encoding="utf-8"?>
<ApiResponse Status="ERROR" xmlns="http://api.namecheap.com/xml.response">
  <Errors><Error Number="1011102">Parameter APIKey is invalid</Error></Errors>
</ApiResponse>"""

CHECK_XML = b"""<?xml version="1.0" encoding="utf-8"?>
<ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
  <CommandResponse Type="namecheap.domains.check">
    <DomainCheckResult Domain="acme.io" Available="true" IsPremiumName="true"
                       PremiumRegistrationPrice="1500.00" />
  </CommandResponse>
</ApiResponse>"""


def _http(content=b"", status_code=200):
    response = Mock(status_code=status_code, content=content)
    response.ok = status_code < 400
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def namecheap():
    return NamecheapRegistrar(api_user="acme", api_key="secret", client_ip="192.0.2.10", use_sandbox=True)


def test_extract_tld_keeps_second_level_suffix():
    assert extract_tld("Shop.Example.CO.UK.") == "example.co.uk"
    assert extract_tld("example.co.uk") == "co.uk"
    assert normalize_extension(" .COM ") == "com"

    with pytest.raises(ValueError, match="Invalid domain name"):
        extract_tld("localhost")


class TestSandboxRegistrar:
    def test_rdap_404_means_available(self):
        with patch(SANDBOX_GET, return_value=_http(status_code=404)) as get:
            result = SandboxRegistrar().check_availability("Free-Name.com")

        assert result.available is True
        assert result.domain_name == "free-name.com"
        assert get.call_args.args[0] == "https://rdap.verisign.com/com/v1/domain/free-name.com"

    def test_rdap_200_means_registered(self):
        with patch(SANDBOX_GET, return_value=_http(status_code=200)):
            assert SandboxRegistrar().check_availability("google.com").available is False

    def test_rdap_unexpected_status(self):
        with patch(SANDBOX_GET, return_value=_http(status_code=503)):
            with pytest.raises(ExternalServiceError, match="Unexpected status 503"):
                SandboxRegistrar().check_availability("example.net")

    def test_tld_without_rdap_simulated(self):
        with patch(SANDBOX_GET) as get:
            result = SandboxRegistrar().check_availability("example.io")

        assert result.available is True
        get.assert_not_called()

    def test_price_list_filtered_by_extension(self):
        prices = SandboxRegistrar().get_supported_tlds(".IO")

        assert [p.tld for p in prices] == ["io"]
        assert prices[0].max_registration_years == 5

    def test_register_simulated(self):
        result = SandboxRegistrar().register_domain("Example.com", 2, {})

        assert result.success is True
        assert result.registrar_order_id.startswith("SANDBOX-")
        assert result.expiration_date is not None


class TestNamecheapRegistrar:
    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            NamecheapRegistrar(api_user="acme", api_key="", client_ip="192.0.2.10")

    def test_pricing_parsed_per_category(self, namecheap):
        with patch(NAMECHEAP_GET, return_value=_http(PRICING_XML)) as get:
            prices = {p.tld: p for p in namecheap.get_supported_tlds()}

        # .net only has a transfer price, so it is not offered for registration
        assert sorted(prices) == ["com", "io"]
        com = prices["com"]
        assert com.registration_price == Decimal("9.58")
        assert com.renewal_price == Decimal("13.98")
        assert com.transfer_price == Decimal("9.58")
        assert com.max_registration_years == 10
        assert prices["io"].registration_price == Decimal("39.98")
        params = get.call_args.kwargs["params"]
        assert params["Command"] == "namecheap.users.getPricing"
        assert params["ClientIp"] == "192.0.2.10"
        assert get.call_args.args[0] == "https://api.sandbox.namecheap.com/xml.response"

    def test_error_status_raises_with_messages(self, namecheap):
        with patch(NAMECHEAP_GET, return_value=_http(ERROR_XML)):
            with pytest.raises(ExternalServiceError, match="Parameter APIKey is invalid"):
                namecheap.get_supported_tlds("com")

    def test_check_availability_premium(self, namecheap):
        with patch(NAMECHEAP_GET, return_value=_http(CHECK_XML)):
            result = namecheap.check_availability("ACME.io")

        assert result.available is True
        assert result.premium is True
        assert result.price == Decimal("1500.00")


class TestRegistrarFactory:
    def test_sandbox(self):
        assert isinstance(create_registrar_client(Registrar(code="Sandbox")), SandboxRegistrar)

    def test_namecheap_built_from_row(self):
        client = create_registrar_client(
            Registrar(
                code="namecheap",
                api_user="acme",
                api_key="secret",
                client_ip="192.0.2.10",
                use_sandbox=False,
            )
        )

        assert isinstance(client, NamecheapRegistrar)
        assert client.api_url == "https://api.namecheap.com/xml.response"

    def test_unsupported(self):
        with pytest.raises(UnsupportedProviderError, match="Unsupported registrar: gandi"):
            create_registrar_client(Registrar(code="gandi"))
