"""Input coercion shared by the service layer.

parse_date_input:  ISO / DD.MM.YYYY date strings → date (raises ValidationError)
parse_bool:        JSON-ish truthy values → bool
clean_text:        strip and collapse empty strings to None
"""
from datetime import date, datetime, timezone

from atelier.core.exceptions import ValidationError


def today():
    """Current calendar date in UTC."""
    return datetime.now(timezone.utc).date()


def parse_date_input(value, field="date"):
    """Parse a date string, raising ValidationError on bad input.

    Supports: YYYY-MM-DD, YYYY-MM-DDTHH:MM:SS, DD.MM.YYYY, date objects.
    Empty input returns None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={"field": field},
        ) from exc


def parse_datetime_input(value, field="datetime"):
    """Parse an ISO datetime; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(f"Invalid {field}. Use ISO 8601.", details={"field": field}) from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def clean_text(value):
    if value is None:
        return None
    text = str(value).strip()
    return text or None
