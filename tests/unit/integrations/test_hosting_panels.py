"""
Unit tests for hosting panel plumbing and the cPanel client.
"""

from unittest.mock import Mock

import pytest
import requests

from isp_admin.core.exceptions import UnsupportedProviderError
from isp_admin.db.base import ServerControlPanel
from isp_admin.integrations.hosting_panels.base import build_base_url
from isp_admin.integrations.hosting_panels.cpanel import CpanelPanel
from isp_admin.integrations.hosting_panels.factory import create_hosting_panel
from isp_admin.integrations.hosting_panels.plesk import PleskPanel
from isp_admin.integrations.hosting_panels.results import API_ERROR, WebAccountRequest, to_int
from isp_admin.integrations.hosting_panels.virtualmin import VirtualminPanel


def _json(payload):
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def cpanel():
    panel = CpanelPanel("whm.example.net", username="root", api_token="TOKEN")
    panel.session = Mock()
    return panel


@pytest.mark.parametrize(
    "api_url,port,use_https,expected",
    [
        ("whm.example.net", 2087, True, "https://whm.example.net:2087"),
        ("http://panel.example.net/", 8443, True, "http://panel.example.net:8443"),
        ("https://panel.example.net:10000", 8443, True, "https://panel.example.net:10000"),
        ("panel.example.net", None, False, "http://panel.example.net"),
    ],
)
def test_build_base_url(api_url, port, use_https, expected):
    assert build_base_url(api_url, port, use_https) == expected


@pytest.mark.parametrize("value,expected", [("1024", 1024), ("512M", 512), ("unlimited", None), (None, None)])
def test_to_int(value, expected):
    assert to_int(value) == expected


class TestCpanelPanel:
    def test_create_account_calls_whm(self, cpanel):
        cpanel.session.request.return_value = _json({"metadata": {"result": 1}, "data": {}})

        result = cpanel.create_web_account(
            WebAccountRequest(username="acme", domain="acme.example", password="pw", disk_quota_mb=1024)
        )

        assert result.success is True
        assert result.account_id == "acme"
        method, url = cpanel.session.request.call_args.args
        params = cpanel.session.request.call_args.kwargs["params"]
        assert method == "GET"
        assert url == "https://whm.example.net:2087/json-api/createacct"
        assert params["quota"] == 1024
        assert params["api.version"] == 1

    def test_whm_failure_becomes_error_result(self, cpanel):
        cpanel.session.request.return_value = _json(
            {"metadata": {"result": 0, "reason": "Sorry, a user with that name already exists."}}
        )

        result = cpanel.create_web_account(WebAccountRequest(username="acme", domain="acme.example"))

        assert result.success is False
        assert result.error_code == API_ERROR
        assert "already exists" in result.message

    def test_connection_failure_becomes_error_result(self, cpanel):
        cpanel.session.request.side_effect = requests.ConnectionError("no route to host")

        result = cpanel.create_web_account(WebAccountRequest(username="acme", domain="acme.example"))

        assert result.success is False
        assert "Connection failed" in result.message

    def test_list_accounts_maps_suspension(self, cpanel):
        cpanel.session.request.return_value = _json(
            {
                "metadata": {"result": 1},
                "data": {
                    "acct": [
                        {"user": "acme", "domain": "acme.example", "suspended": 0, "disklimit": "1024"},
                        {"user": "old", "domain": "old.example", "suspended": 1, "disklimit": "unlimited"},
                    ]
                },
            }
        )

        accounts = cpanel.list_web_accounts()

        assert [a.status for a in accounts] == ["Active", "Suspended"]
        assert accounts[0].disk_quota_mb == 1024
        assert accounts[1].disk_quota_mb is None

    def test_connection_test_false_on_error(self, cpanel):
        cpanel.session.request.return_value = _json({"metadata": {"result": 0}})

        assert cpanel.test_connection() is False


class TestPanelFactory:
    def _row(self, **overrides):
        values = dict(
            api_url="panel.example.net",
            port=8443,
            use_https=True,
            verify_ssl=False,
            username="admin",
            password="secret",
            api_token="TOKEN",
        )
        values.update(overrides)
        return ServerControlPanel(**values)

    @pytest.mark.parametrize(
        "panel_type,expected",
        [("cpanel", CpanelPanel), ("Plesk", PleskPanel), ("virtualmin", VirtualminPanel)],
    )
    def test_supported_panels(self, panel_type, expected):
        panel = create_hosting_panel(panel_type, self._row())

        assert isinstance(panel, expected)
        assert panel.verify_ssl is False

    def test_unsupported_panel(self):
        with pytest.raises(UnsupportedProviderError, match="Unsupported control panel: DirectAdmin"):
            create_hosting_panel("DirectAdmin", self._row())
