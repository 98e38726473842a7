"""
Common conversion and validation helpers for request payloads.

DTO ``from_dict`` constructors use these to turn JSON values into the
Python types the services expect, raising ValueError with a field name on
bad input.
"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_decimal(value: Any, field_name: str) -> Optional[Decimal]:
    """Convert to Decimal, accepting numbers and numeric strings."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: invalid number")
    try:
        if isinstance(value, str):
            value = value.strip().replace(" ", "")
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"{field_name}: invalid number")


def parse_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name}: must be an integer")


def parse_bool(value: Any, field_name: str) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off", ""):
            return False
    raise ValueError(f"{field_name}: must be a boolean")


def parse_date(value: Any, field_name: str) -> Optional[date]:
    """Convert ISO ``YYYY-MM-DD`` strings (or datetimes) to date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValueError(f"{field_name}: invalid date, use YYYY-MM-DD")
    raise ValueError(f"{field_name}: invalid date")


def parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
    """Convert ISO 8601 strings to naive UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"{field_name}: invalid datetime, use ISO 8601")
    else:
        raise ValueError(f"{field_name}: invalid datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_str(value: Any, field_name: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise ValueError(f"{field_name}: must be a string")
    return str(value).strip()


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(_EMAIL_RE.match(value))


def normalize_email(value: Optional[str]) -> Optional[str]:
    return value.strip().lower() if value else value
