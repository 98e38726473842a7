"""
Response serialization for API payloads.

Models are turned into plain dicts column by column, or through a response
DTO where one exists. Decimals become strings so amounts survive JSON
unchanged, datetimes become ISO 8601 and credential columns are never
emitted.
"""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import inspect

from isp_admin.schemas.dtos import InvoiceResponse, PaymentIntentResponse, UserResponse

SECRET_FIELDS = frozenset(
    {
        "password_hash",
        "password",
        "api_key",
        "api_secret",
        "api_token",
        "webhook_secret",
        "gateway_token",
        "acceptance_token",
    }
)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def to_dict(model, exclude: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    """Serialize the column attributes of a model instance."""
    if model is None:
        return None
    hidden = SECRET_FIELDS.union(exclude)
    return {
        attr.key: _json_value(getattr(model, attr.key))
        for attr in inspect(model).mapper.column_attrs
        if attr.key not in hidden
    }


def to_list(models, exclude: Iterable[str] = ()) -> List[Dict[str, Any]]:
    return [to_dict(m, exclude) for m in models]


def has_secret(model, name: str) -> bool:
    return bool(getattr(model, name, None))


def serialize_user(user) -> Dict[str, Any]:
    return serialize_dataclass(UserResponse.from_model(user))


def serialize_invoice(invoice) -> Dict[str, Any]:
    return serialize_dataclass(InvoiceResponse.from_model(invoice))


def serialize_payment_intent(intent, include_secret: bool = False) -> Dict[str, Any]:
    data = serialize_dataclass(PaymentIntentResponse.from_model(intent, include_secret))
    if not include_secret:
        data.pop("client_secret")
    return data


def serialize_quote(quote, include_token: bool = False) -> Dict[str, Any]:
    data = to_dict(quote)
    data["lines"] = to_list(quote.lines)
    if include_token:
        data["acceptance_token"] = quote.acceptance_token
    return data


def serialize_payment_gateway(gateway) -> Dict[str, Any]:
    data = to_dict(gateway)
    data["has_api_key"] = has_secret(gateway, "api_key")
    data["has_api_secret"] = has_secret(gateway, "api_secret")
    return data


def serialize_payment_method(method) -> Dict[str, Any]:
    data = to_dict(method)
    data["has_token"] = has_secret(method, "gateway_token")
    return data


def serialize_registrar(registrar) -> Dict[str, Any]:
    data = to_dict(registrar)
    data["has_api_key"] = has_secret(registrar, "api_key")
    return data


def serialize_registrar_tld(registrar_tld, pricing=None) -> Dict[str, Any]:
    data = to_dict(registrar_tld)
    data["registrar_name"] = registrar_tld.registrar.name if registrar_tld.registrar else None
    data["tld_extension"] = registrar_tld.tld.extension if registrar_tld.tld else None
    data["current_pricing"] = to_dict(pricing)
    return data


def serialize_control_panel(panel) -> Dict[str, Any]:
    data = to_dict(panel)
    data["control_panel_type"] = (
        panel.control_panel_type.name if panel.control_panel_type else None
    )
    data["has_api_token"] = has_secret(panel, "api_token")
    data["has_api_key"] = has_secret(panel, "api_key")
    data["has_password"] = has_secret(panel, "password")
    return data


def serialize_hosting_account(account, details: bool = False) -> Dict[str, Any]:
    data = to_dict(account)
    if details:
        data["domains"] = to_list(account.domains)
        data["email_accounts"] = to_list(account.email_accounts)
        data["databases"] = to_list(account.databases)
    return data


def serialize_zone_package(package, with_records: bool = False) -> Dict[str, Any]:
    data = to_dict(package)
    if with_records:
        data["records"] = to_list(package.records)
    return data


def serialize_email(email) -> Dict[str, Any]:
    data = to_dict(email)
    data["to_addresses"] = [a for a in (email.to_addresses or "").split(";") if a]
    return data


def serialize_dataclass(result) -> Dict[str, Any]:
    """Serialize service result objects (SyncResult, PaymentResult...)."""
    if is_dataclass(result):
        raw = asdict(result)
    elif hasattr(result, "_asdict"):
        raw = result._asdict()
    else:
        raw = dict(result)
    return {key: _serialize_nested(value) for key, value in raw.items()}


def _serialize_nested(value):
    if isinstance(value, dict):
        return {k: _serialize_nested(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize_nested(v) for v in value]
    return _json_value(value)
