"""
Cell value parsing shared by the Validate, Transform and Map phases.

Money is parsed to Decimal, never float.  Dates accept the handful of
layouts asset registers actually use and normalize to ``datetime.date``.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

DATE_FORMATS = ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%d/%m/%Y", "%m-%d-%Y")

_COST_NOISE = re.compile(r"[\s,$€£¥]")


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_cost(value: Any) -> Decimal | None:
    """Parse a cost cell, ignoring currency symbols and thousands separators."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Decimal(str(value))
    if not isinstance(value, str):
        return None
    cleaned = _COST_NOISE.sub("", value)
    if not cleaned:
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def parse_date(value: Any) -> date | None:
    """Parse a date cell using ``DATE_FORMATS`` in order."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None
