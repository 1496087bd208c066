"""Text escaping, line folding and date codecs for iCalendar values."""
import re
from datetime import date, datetime, time, timezone
from typing import Optional, Tuple


MAX_LINE_OCTETS = 75

_UNESCAPE_PATTERN = re.compile(r'\\([\\;,nN])')
_UNESCAPE_MAP = {'n': '\n', 'N': '\n', ',': ',', ';': ';', '\\': '\\'}

_DATE_PATTERN = re.compile(r'^(\d{4})(\d{2})(\d{2})$')
_DATETIME_PATTERN = re.compile(
    r'^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z?$'
)


def escape_text(text: str) -> str:
    """
    Escape a TEXT value for output.

    Backslashes are escaped first so the backslashes introduced for
    semicolons, commas and newlines are not escaped a second time.
    """
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    return (
        text.replace('\\', '\\\\')
        .replace(';', '\\;')
        .replace(',', '\\,')
        .replace('\n', '\\n')
    )


def unescape_text(text: str) -> str:
    """
    Decode a TEXT value.

    Single left-to-right pass: ``\\\\n`` decodes to a backslash followed by
    ``n``, never to a backslash followed by a newline.
    """
    return _UNESCAPE_PATTERN.sub(lambda match: _UNESCAPE_MAP[match.group(1)], text)


def parse_ics_datetime(value: str, date_only: bool = False) -> Optional[Tuple[datetime, bool]]:
    """
    Decode a DTSTART/DTEND value.

    Args:
        value: Raw property value
        date_only: True when the property carried VALUE=DATE

    Returns:
        Tuple of (UTC datetime, all_day) or None if the value is undecodable
    """
    value = value.strip()

    match = _DATE_PATTERN.match(value)
    if match or date_only:
        if not match:
            # VALUE=DATE with a date-time payload; keep the date part
            match = _DATE_PATTERN.match(value[:8])
            if not match:
                return None
        try:
            day = date(*(int(part) for part in match.groups()))
        except ValueError:
            return None
        return datetime.combine(day, time.min, tzinfo=timezone.utc), True

    # Floating and TZID-qualified times are approximated as UTC
    match = _DATETIME_PATTERN.match(value)
    if match:
        try:
            parsed = datetime(*(int(part) for part in match.groups()), tzinfo=timezone.utc)
        except ValueError:
            return None
        return parsed, False

    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc), False


def format_ics_datetime(day: date, at: time) -> str:
    """Format a date and time-of-day as a UTC DATE-TIME (``YYYYMMDDTHHMMSSZ``)."""
    return f"{day.strftime('%Y%m%d')}T{at.strftime('%H%M%S')}Z"


def format_ics_timestamp(value: datetime) -> str:
    """Format an aware datetime as a UTC DATE-TIME."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')


def format_ics_date(day: date) -> str:
    return day.strftime('%Y%m%d')


def fold_line(line: str) -> str:
    """
    Fold a content line into CRLF-separated chunks of at most 75 octets.

    Continuation chunks start with a single space, which counts toward the
    limit. Multi-byte UTF-8 characters are never split.
    """
    if len(line.encode('utf-8')) <= MAX_LINE_OCTETS:
        return line

    chunks = []
    current = ''
    current_size = 0
    limit = MAX_LINE_OCTETS
    for char in line:
        size = len(char.encode('utf-8'))
        if current_size + size > limit:
            chunks.append(current)
            current = ''
            current_size = 0
            limit = MAX_LINE_OCTETS - 1
        current += char
        current_size += size
    chunks.append(current)

    return '\r\n '.join(chunks)
