"""
Payload → column coercion shared by the phase and sub-phase services.

Each ``coerce_*`` helper validates one kind of field and raises
ValidationError on bad input, so services can build a complete change set
before touching the ORM object.
"""

from atelier.core.exceptions import ValidationError
from atelier.models.auth import User
from atelier.services.helpers.scoped_queries import get_scoped_or_none
from atelier.utils.errors import E
from atelier.utils.helpers import clean_text, parse_date_input


def coerce_assignee(tenant_id, value, field="assigned_to"):
    """User id within the tenant, or None. Unknown / foreign users are rejected."""
    if value in (None, ""):
        return None
    try:
        user_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a user id", code=E.VALIDATION_INVALID)
    user = get_scoped_or_none(User, user_id, tenant_id=tenant_id)
    if user is None:
        raise ValidationError(f"{field} does not reference a user of this tenant",
                              details={"field": field}, code=E.VALIDATION_INVALID)
    return user.id


def coerce_percentage(value, field="progress_percentage"):
    try:
        pct = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", code=E.VALIDATION_INVALID)
    if not 0 <= pct <= 100:
        raise ValidationError(f"{field} must be between 0 and 100", code=E.VALIDATION_INVALID)
    return pct


def coerce_choice(value, allowed, field):
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field} '{value}'. Allowed: {sorted(allowed)}",
            code=E.VALIDATION_INVALID,
        )
    return value


def coerce_required_text(value, message):
    text = clean_text(value)
    if not text:
        raise ValidationError(message, code=E.VALIDATION_REQUIRED)
    return text


def coerce_positive_int(value, field):
    if value in (None, ""):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", code=E.VALIDATION_INVALID)
    if number < 0:
        raise ValidationError(f"{field} must not be negative", code=E.VALIDATION_INVALID)
    return number


def coerce_dates(data: dict, fields) -> dict:
    """Parse every date field present in *data*."""
    return {f: parse_date_input(data[f], f) for f in fields if f in data}


def check_date_order(start, end, start_field, end_field):
    if start and end and end < start:
        raise ValidationError(f"{end_field} cannot be before {start_field}",
                              code=E.VALIDATION_INVALID)
