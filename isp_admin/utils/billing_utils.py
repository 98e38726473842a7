"""Utilities for money rounding and calendar arithmetic.

Keep a single place that defines how amounts are rounded and how
year-based terms (domain registrations, renewals) are added to dates.
"""

import calendar
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

from isp_admin.core.config import MONEY_QUANT


def to_money(value: Any) -> Decimal:
    """Round a number to cents using half-up rounding.

    Args:
        value: Decimal, int, float or numeric string (None counts as zero)

    Returns:
        Decimal with two decimal places

    Examples:
        to_money("10.005")  # Decimal("10.01")
        to_money(None)      # Decimal("0.00")
    """
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def add_years(moment: Union[date, datetime], years: int):
    """Add calendar years, clamping Feb 29 to Feb 28 in non-leap years."""
    target_year = moment.year + years
    day = min(moment.day, calendar.monthrange(target_year, moment.month)[1])
    return moment.replace(year=target_year, day=day)


def format_document_number(prefix: str, year: int, sequence: int) -> str:
    """``format_document_number("INV", 2025, 7)`` -> ``"INV-2025-00007"``."""
    return f"{prefix}-{year}-{sequence:05d}"