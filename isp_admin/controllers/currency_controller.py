from flask import Blueprint, request

from isp_admin.core.api_utils import api_response, get_json_body, handle_service_errors
from isp_admin.core.auth_decorators import require_policy
from isp_admin.core.config import EXCHANGE_RATE_SETTINGS
from isp_admin.core.csrf_config import csrf
from isp_admin.core.limiter_config import READ_LIMIT, WRITE_LIMIT, limiter
from isp_admin.db.session import SessionLocal
from isp_admin.integrations.exchange_rates import create_rate_provider
from isp_admin.repositories.currency_repository import (
    ExchangeRateDownloadLogRepository,
    ExchangeRateRepository,
)
from isp_admin.schemas.dtos import (
    CurrencyConvertRequest,
    ExchangeRateCreateRequest,
    ExchangeRateUpdateRequest,
)
from isp_admin.schemas.serializers import to_dict, to_list
from isp_admin.services.currency_service import CurrencyService, ExchangeRateUpdateService

currencies_bp = Blueprint("currencies", __name__, url_prefix="/api/v1/currencies")


@currencies_bp.route("/rates", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Currency.Read")
@handle_service_errors
def list_rates():
    db = SessionLocal()
    try:
        service = CurrencyService(ExchangeRateRepository(db))
        active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
        rates = service.get_active_rates() if active_only else service.get_all()
        return api_response(True, "Exchange rates retrieved", to_list(rates))
    finally:
        db.close()


@currencies_bp.route("/rates/<int:rate_id>", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Currency.Read")
@handle_service_errors
def get_rate_by_id(rate_id: int):
    db = SessionLocal()
    try:
        rate = CurrencyService(ExchangeRateRepository(db)).get_by_id(rate_id)
        if rate is None:
            return api_response(False, "Exchange rate not found", None, 404)
        return api_response(True, "Exchange rate retrieved", to_dict(rate))
    finally:
        db.close()


@currencies_bp.route("/rates", methods=["POST"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt  # JSON API - uses JWT authentication
@require_policy("Currency.Write")
@handle_service_errors
def create_rate():
    dto = ExchangeRateCreateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        rate = CurrencyService(ExchangeRateRepository(db)).create(dto)
        return api_response(True, "Exchange rate created", to_dict(rate), 201)
    finally:
        db.close()


@currencies_bp.route("/rates/<int:rate_id>", methods=["PUT"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Currency.Write")
@handle_service_errors
def update_rate(rate_id: int):
    dto = ExchangeRateUpdateRequest.from_dict(get_json_body())
    db = SessionLocal()
    try:
        rate = CurrencyService(ExchangeRateRepository(db)).update(rate_id, dto)
        return api_response(True, "Exchange rate updated", to_dict(rate))
    finally:
        db.close()


@currencies_bp.route("/rates/<int:rate_id>", methods=["DELETE"])
@limiter.limit(WRITE_LIMIT)
@csrf.exempt
@require_policy("Currency.Delete")
@handle_service_errors
def delete_rate(rate_id: int):
    db = SessionLocal()
    try:
        CurrencyService(ExchangeRateRepository(db)).delete(rate_id)
        return api_response(True, "Exchange rate deleted")
    finally:
        db.close()


@currencies_bp.route("/rate", methods=["GET"])
@limiter.limit(READ_LIMIT)
@require_policy("Currency.Read")
@handle_service_errors
def get_rate():
    """Effective rate for ``?from=EUR&to=USD``, markup included."""
    from_currency = (request.args.get("from") or "").upper()
    to_currency = (request.args.get("to") or "").upper()
    if not from_currency or not to_currency:
        raise ValueError("from and to query parameters are required")
    db = SessionLocal()
    try:
        rate = CurrencyService(ExchangeRateRepository(db)).get_exchange_rate(
            from_currency, to_currency
        )
        if rate is None:
            return api_response(
                False, f"No exchange rate found for {from_currency} to {to_currency}", None, 404
            )
        return api_response(
            True, "Exchange rate retrieved", {"from": from_currency, "to": to_currency, "rate": str(rate)}
        )
    finally:
        db.close()


@currencies_bp.route("/convert", methods=["POST"])
@limiter.limit(READ_LIMIT)
@csrf.exempt
@require_policy("Currency.Read")
@handle_service_errors
def convert():
    dto = CurrencyConvertRequest.from_dict(get_json_body())
    dto.validate()
    db = SessionLocal()
    try:
        converted = CurrencyService(ExchangeRateRepository(db)).convert(
            dto.amount, dto.from_currency, dto.to_currency, dto.at
        )
        return api_response(
            True,
            "Amount converted",
            {
                "amount": str(dto.amount),
                "from": dto.from_currency,
                "to": dto.to_currency,
                "converted_amount": str(converted),
            },
        )
    finally:
        db.close()


@currencies_bp.route("/rates/update", methods=["POST"])
@limiter.limit("5 per minute")
@csrf.exempt
@require_policy("Currency.Write")
@handle_service_errors
def download_rates():
    """Download fresh rates now, regardless of the update schedule."""
    db = SessionLocal()
    try:
        service = ExchangeRateUpdateService(
            ExchangeRateRepository(db),
            ExchangeRateDownloadLogRepository(db),
            create_rate_provider(EXCHANGE_RATE_SETTINGS["provider"], EXCHANGE_RATE_SETTINGS["api_url"]),
        )
        added, updated = service.update_all_rates()
        return api_response(
            True,
            f"Exchange rates downloaded: {added} added, {updated} updated",
            {"added": added, "updated": updated},
        )
    finally:
        db.close()
