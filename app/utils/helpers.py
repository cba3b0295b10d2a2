"""Shared request-parsing helpers for blueprints and services."""
from datetime import date, datetime

from app.core.exceptions import ValidationError


def parse_date(value):
    """Parse a date string (ISO or DD/MM/YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD/MM/YYYY (French format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def require_fields(data, *fields):
    """Return the values of ``fields`` from ``data``; ValidationError if any is blank."""
    data = data or {}
    values, missing = [], []
    for name in fields:
        value = data.get(name)
        if isinstance(value, str):
            value = value.strip()
        if value in (None, ""):
            missing.append(name)
        values.append(value)
    if missing:
        raise ValidationError(
            f"Missing required field(s): {', '.join(missing)}",
            details={name: "required" for name in missing},
        )
    return values
