"""Input parsing helpers shared by services and blueprints.

Every helper raises ``ValidationError`` naming the offending field, so callers
can fail before touching the database.
"""
import uuid
from datetime import datetime, date
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Tuple

from app.exceptions import ValidationError
from app.utils.dates import to_naive_utc, start_of_day

MONEY_QUANT = Decimal('0.01')
# Numeric(10, 2) and Integer column bounds
MONEY_MAX = Decimal('99999999.99')
INT_MAX = 2 ** 31 - 1
LIKE_ESCAPE = '\\'


def is_blank(value: Any) -> bool:
    """True for values an update treats as "no change requested"."""
    return value is None or (isinstance(value, str) and value.strip() == '')


def parse_uuid(value: Any, field: str, required: bool = True) -> Optional[uuid.UUID]:
    """Parse an opaque identifier."""
    if is_blank(value):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, AttributeError, TypeError):
        raise ValidationError(f'{field} must be a valid UUID', field=field)


def parse_str(value: Any, field: str, required: bool = True, max_length: Optional[int] = None) -> Optional[str]:
    if is_blank(value):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{field} must be a string', field=field)
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f'{field} must be at most {max_length} characters', field=field)
    return value


def parse_money(value: Any, field: str, required: bool = True, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Parse a non-negative monetary amount rounded to cents."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', field=field)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number', field=field)
    if not amount.is_finite():
        raise ValidationError(f'{field} must be a number', field=field)
    if amount < 0:
        raise ValidationError(f'{field} must be greater than or equal to 0', field=field)
    try:
        amount = amount.quantize(MONEY_QUANT)
    except InvalidOperation:
        amount = None
    if amount is None or amount > MONEY_MAX:
        raise ValidationError(f'{field} must be at most {MONEY_MAX}', field=field)
    return amount


def parse_int(value: Any, field: str, required: bool = True, minimum: Optional[int] = None,
              maximum: Optional[int] = None, default: Optional[int] = None) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', field=field)
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f'{field} must be an integer', field=field)
    if isinstance(value, float) and value != number:
        raise ValidationError(f'{field} must be an integer', field=field)
    if maximum is None:
        maximum = INT_MAX
    if minimum is not None and number < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', field=field)
    if number > maximum:
        raise ValidationError(f'{field} must be at most {maximum}', field=field)
    return number


def parse_bool(value: Any, field: str, default: Optional[bool] = None) -> Optional[bool]:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', '1', 'yes'):
            return True
        if lowered in ('false', '0', 'no'):
            return False
        if not lowered:
            return default
    raise ValidationError(f'{field} must be a boolean', field=field)


def parse_datetime(value: Any, field: str, required: bool = True) -> Optional[datetime]:
    """Parse an ISO-8601 string, date or datetime into naive UTC."""
    if is_blank(value):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return start_of_day(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            pass
    raise ValidationError(f'{field} must be an ISO-8601 date or datetime', field=field)


def parse_date(value: Any, field: str) -> Optional[date]:
    """Parse YYYY-MM-DD (or a full datetime, keeping its date)."""
    if is_blank(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return parse_datetime(value, field).date()
    raise ValidationError(f'{field} must be a date (YYYY-MM-DD)', field=field)


def parse_choice(value: Any, field: str, choices: Iterable[str], required: bool = True) -> Optional[str]:
    choices = tuple(choices)
    if is_blank(value):
        if required:
            raise ValidationError(f'{field} is required', field=field)
        return None
    if not isinstance(value, str) or value.strip().lower() not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}", field=field)
    return value.strip().lower()


def parse_pagination(page: Any = None, limit: Any = None, default_limit: int = 10,
                     max_limit: int = 100) -> Tuple[int, int]:
    """Validate page (>= 1) and limit (1..max_limit)."""
    page = parse_int(page, 'page', required=False, minimum=1, default=1)
    limit = parse_int(limit, 'limit', required=False, minimum=1, maximum=max_limit, default=default_limit)
    return page, limit


def contains_pattern(search: str) -> str:
    """Case-folded ``%search%`` LIKE pattern with ``%``, ``_`` and the escape char escaped."""
    text = search.strip().lower()
    for char in (LIKE_ESCAPE, '%', '_'):
        text = text.replace(char, LIKE_ESCAPE + char)
    return f'%{text}%'
