# ======================================
# Request Validation
# ======================================
#
# Turns raw JSON values into typed arguments for the transactional core.
# Everything here runs before the database is touched.

import re
from datetime import datetime, timezone

from errors import ValidationError
from models import AppointmentStatus

DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
TIME_RE = re.compile(r'[T ]\d{2}')
VALID_STATUSES = [s.value for s in AppointmentStatus]

# BIGINT upper bound; larger keys overflow the driver
MAX_ID = 2 ** 63 - 1


def pick(data, *keys):
    """First non-empty value among snake_case / camelCase spellings."""
    for key in keys:
        value = data.get(key)
        if value is not None and value != '':
            return value
    return None


def reject_unknown(data, allowed):
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")


def require_changes(data):
    if not data:
        raise ValidationError('No fields to update')


def parse_id(value, name='id'):
    if isinstance(value, bool):
        raise ValidationError(f'Invalid {name}')
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdecimal():
        number = int(value.strip())
    else:
        raise ValidationError(f'Invalid {name}')
    if not 0 < number <= MAX_ID:
        raise ValidationError(f'Invalid {name}')
    return number


def required_id(data, name, *aliases):
    value = pick(data, name, *aliases)
    if value is None:
        raise ValidationError(f'{name} is required')
    return parse_id(value, name)


def parse_date(value, name='date'):
    if not isinstance(value, str) or not DATE_RE.match(value):
        raise ValidationError(f'Invalid {name} format. Use YYYY-MM-DD')
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'Invalid {name}') from None


def optional_date(data, name, *aliases):
    value = pick(data, name, *aliases)
    return parse_date(value, name) if value is not None else None


def parse_timestamp(value, name='appointment_date'):
    """ISO-8601 timestamp with a time part; aware values are normalized to naive UTC."""
    if not isinstance(value, str):
        raise ValidationError(f'Invalid {name} format')
    text = value.strip()
    if not TIME_RE.search(text):
        raise ValidationError(f'{name} must include a time, e.g. 2025-03-03T10:00:00')
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f'Invalid {name} format') from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_status(value):
    try:
        return AppointmentStatus(value)
    except ValueError:
        raise ValidationError(f"Invalid status. Use one of: {', '.join(VALID_STATUSES)}") from None


def parse_gender(value):
    if not isinstance(value, str):
        raise ValidationError('Invalid gender. Use Male/M, Female/F or Other')
    lowered = value.strip().lower()
    if lowered in ('male', 'm'):
        return 'M'
    if lowered in ('female', 'f'):
        return 'F'
    if lowered in ('other', 'o'):
        return 'Other'
    raise ValidationError('Invalid gender. Use Male/M, Female/F or Other')


def text(data, name, required=False):
    value = data.get(name)
    if value is None:
        if required:
            raise ValidationError(f'{name} is required')
        return None
    if not isinstance(value, str):
        raise ValidationError(f'{name} must be a string')
    value = value.strip()
    if required and not value:
        raise ValidationError(f'{name} is required')
    return value


def required_fields(data, names):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def parse_bool(value, name):
    if not isinstance(value, bool):
        raise ValidationError(f'{name} must be true or false')
    return value
