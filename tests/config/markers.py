"""
Pytest markers and collection hooks for the ISP admin tests.

Markers are derived from the test file location so a test under
``tests/unit/services`` is selectable with ``-m "unit and services"``.
"""

import pytest


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "auth: mark test as authentication-related")
    config.addinivalue_line("markers", "api: mark test as API endpoint test")
    config.addinivalue_line("markers", "controllers: mark test as controller-related")
    config.addinivalue_line("markers", "services: mark test as service layer test")
    config.addinivalue_line("markers", "repositories: mark test as repository test")
    config.addinivalue_line(
        "markers", "integrations: mark test as external client (gateway, registrar, panel) test"
    )
    config.addinivalue_line("markers", "billing: mark test as invoice/quote/payment related")
    config.addinivalue_line("markers", "domains: mark test as registrar/domain/DNS related")
    config.addinivalue_line("markers", "hosting: mark test as hosting related")


def pytest_collection_modifyitems(config, items):
    """Modify test items during collection."""
    for item in items:
        path = str(item.fspath)

        if "unit" in path:
            item.add_marker(pytest.mark.unit)

        if "integration" in path.replace("integrations", ""):
            item.add_marker(pytest.mark.integration)

        if "auth" in path or "auth" in item.name:
            item.add_marker(pytest.mark.auth)

        if "controller" in path:
            item.add_marker(pytest.mark.controllers)
            item.add_marker(pytest.mark.api)

        if "service" in path:
            item.add_marker(pytest.mark.services)

        if "repo" in path:
            item.add_marker(pytest.mark.repositories)

        if "integrations" in path:
            item.add_marker(pytest.mark.integrations)


@pytest.fixture
def response_helper():
    """Simple response helper for API tests."""

    class ResponseHelper:
        @staticmethod
        def assert_json_response(response, expected_status=200):
            assert response.status_code == expected_status, response.get_data(as_text=True)
            return response.get_json()

        @staticmethod
        def assert_success(response, expected_status=200):
            payload = ResponseHelper.assert_json_response(response, expected_status)
            assert payload["success"] is True
            return payload["data"]

        @staticmethod
        def assert_failure(response, expected_status):
            payload = ResponseHelper.assert_json_response(response, expected_status)
            assert payload["success"] is False
            return payload["message"]

    return ResponseHelper()
