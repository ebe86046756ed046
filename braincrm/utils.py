"""
Utility functions shared across the app. This includes:
- parse_* helpers: coerce untrusted JSON/form input (accepts comma decimals, ISO dates).
- format_money / format_date_fr: French display formatting used by documents.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

MONTHS_FR = (
    "janvier",
    "février",
    "mars",
    "avril",
    "mai",
    "juin",
    "juillet",
    "août",
    "septembre",
    "octobre",
    "novembre",
    "décembre",
)


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Parse decimal from user input (accepts comma or dot). None for empty/invalid."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        return Decimal(raw)
    except (InvalidOperation, ValueError):
        return None


def parse_optional_int(value: Any) -> Optional[int]:
    """Parse optional int. None for empty/invalid."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[date]:
    """Parse YYYY-MM-DD (a full ISO timestamp is truncated to its date)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp; a trailing Z is accepted. Result is naive."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raw = str(value).strip()
    if raw.endswith("Z"):
        raw = raw[:-1]
    try:
        return datetime.fromisoformat(raw).replace(tzinfo=None)
    except ValueError:
        return None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "on", "yes", "oui"}


def format_money(amount: Any, currency: str = "MAD") -> str:
    """
    French money display: 1 234,56 MAD.

    Rounded half-up to 2 decimals here and only here.
    """
    value = Decimal(str(amount if amount is not None else 0)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    sign = "-" if value < 0 else ""
    integer_part, decimal_part = f"{abs(value):.2f}".split(".")

    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)

    text = f"{sign}{' '.join(groups)},{decimal_part}"
    return f"{text} {currency}" if currency else text


def format_date_fr(value: Any) -> str:
    """15 janvier 2025; "-" when empty."""
    d = parse_date(value)
    if d is None:
        return "-"
    return f"{d.day:02d} {MONTHS_FR[d.month - 1]} {d.year}"
