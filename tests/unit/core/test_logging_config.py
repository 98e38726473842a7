import json
import logging

import pytest

from isp_admin.core.logging_config import REQUEST_ID_HEADER, JSONFormatter


def _record(**extra):
    record = logging.LogRecord(
        "isp_admin.services.invoice_service", logging.INFO, __file__, 10, "Invoice issued", None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_nests_context():
    payload = json.loads(JSONFormatter().format(_record(context={"invoice_id": 42})))

    assert payload["message"] == "Invoice issued"
    assert payload["level"] == "INFO"
    assert payload["context"] == {"invoice_id": 42}


def test_json_formatter_omits_empty_context():
    payload = json.loads(JSONFormatter().format(_record()))

    assert "context" not in payload


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={REQUEST_ID_HEADER: "abc-123"})

    assert response.headers[REQUEST_ID_HEADER] == "abc-123"


def test_request_id_generated_when_missing(client):
    response = client.get("/health")

    assert len(response.headers[REQUEST_ID_HEADER]) == 32


def test_log_performance_logs_even_on_error(caplog):
    from isp_admin.core.logging_config import log_performance

    @log_performance("registrar_price_sync")
    def failing_job():
        raise RuntimeError("registrar down")

    with caplog.at_level(logging.DEBUG, logger="isp_admin.performance"):
        with pytest.raises(RuntimeError):
            failing_job()

    record = next(r for r in caplog.records if r.name == "isp_admin.performance")
    assert record.context["operation"] == "registrar_price_sync"
    assert record.getMessage().startswith("registrar_price_sync completed in")
