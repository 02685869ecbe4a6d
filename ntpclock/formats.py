import re
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime

from ntpclock.clock.timestamp import Instant

RFC3339_PATTERN = re.compile(
    r'\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})\Z')


class TimeFormatError(ValueError):
    pass


def render(dt, standard):
    match standard:
        case 'timestamp':
            return str(int(dt.timestamp()))
        case 'rfc2822':
            return format_datetime(dt)
        case 'rfc3339':
            return dt.isoformat()

    raise TimeFormatError(f'unknown standard: {standard}')


def _parse_rfc2822(text):
    dt = parsedate_to_datetime(text)

    # a "-0000" zone means UTC with no local information
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return dt


def _parse_rfc3339(text):
    if not RFC3339_PATTERN.match(text):
        raise ValueError('not an RFC 3339 date-time')

    dt = datetime.fromisoformat(text.upper())

    if dt.tzinfo is None:
        raise ValueError('RFC 3339 requires a UTC offset')

    return dt


def parse(text, standard):
    try:
        match standard:
            case 'timestamp':
                return Instant(seconds=int(text))
            case 'rfc2822':
                return Instant.from_datetime(_parse_rfc2822(text))
            case 'rfc3339':
                return Instant.from_datetime(_parse_rfc3339(text))
    except (TypeError, ValueError) as e:
        raise TimeFormatError(f'Unable to parse {text!r} according to {standard}') from e

    raise TimeFormatError(f'unknown standard: {standard}')
