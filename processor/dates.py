"""Date and time parsing strategies shared by the parsers and adapters.

Free-text dates are resolved by an ordered list of independent strategies.
The first strategy to return a value wins. Callers that want a lenient
result pass one of the explicit fallbacks at the end of this module; nothing
here silently invents a date.
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from dateutil import parser as date_parser
from dateutil import tz
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

INSTANT_FORMAT = '%Y-%m-%dT%H:%M:%SZ'

MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12
}

MONTH_NAME = (
    r'(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|'
    r'aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)'
)

TIME_PART = (
    r'(?:\s*(?:at|@|,|-|\||from)?\s*'
    r'(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<ampm>[ap]\.?m\.?)?)?'
)

MONTH_DAY_PATTERN = re.compile(
    rf'(?P<month>{MONTH_NAME})\.?\s+(?P<day>\d{{1,2}})(?!\d)(?:st|nd|rd|th)?'
    rf'(?:,?\s*(?P<year>\d{{4}}))?{TIME_PART}',
    re.IGNORECASE
)

DAY_MONTH_PATTERN = re.compile(
    rf'(?<!\d)(?P<day>\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?(?P<month>{MONTH_NAME})\.?'
    rf'(?:,?\s*(?P<year>\d{{4}}))?{TIME_PART}',
    re.IGNORECASE
)

NUMERIC_DATE_PATTERN = re.compile(
    rf'\b(?P<month>\d{{1,2}})/(?P<day>\d{{1,2}})(?:/(?P<year>\d{{2,4}}))?{TIME_PART}',
    re.IGNORECASE
)

ICAL_DATETIME_PATTERN = re.compile(r'^\d{8}(?:T\d{6})?Z?$')

YEAR_PATTERN = re.compile(r'\b(?:19|20)\d{2}\b')


def parse_ical_datetime(value: str, tzid: Optional[str] = None) -> Optional[datetime]:
    """
    Parse an iCalendar DATE or DATE-TIME value by fixed-width slicing.

    Args:
        value: Value such as 20250615, 20250615T180000 or 20250615T180000Z
        tzid: Optional TZID parameter attached to the property

    Returns:
        datetime (aware for Z or a known TZID, naive otherwise) or None
    """
    value = (value or '').strip()
    if not ICAL_DATETIME_PATTERN.match(value):
        return None

    try:
        year, month, day = int(value[0:4]), int(value[4:6]), int(value[6:8])
        hour = minute = second = 0
        if len(value) >= 15:
            hour, minute, second = int(value[9:11]), int(value[11:13]), int(value[13:15])
        result = datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None

    if value.endswith('Z'):
        return result.replace(tzinfo=tz.UTC)
    if tzid:
        zone = tz.gettz(tzid)
        if zone is not None:
            return result.replace(tzinfo=zone)
    return result


def parse_timestamp(value: Union[int, float, str]) -> Optional[datetime]:
    """
    Convert a Unix timestamp to an aware UTC datetime.

    Values above 1e12 are taken as milliseconds, anything else as seconds.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None

    if number > 1e12:
        number = number / 1000

    try:
        return datetime.fromtimestamp(number, tz=tz.UTC)
    except (OverflowError, OSError, ValueError):
        return None


def parse_iso(text: str) -> Optional[datetime]:
    try:
        return date_parser.isoparse(text.strip())
    except (ValueError, OverflowError):
        return None


def _strategy_iso(text: str, year: int) -> Optional[datetime]:
    if not re.match(r'^\s*\d{4}-\d{2}-\d{2}', text):
        return None
    return parse_iso(text)


def _strategy_natural(text: str, year: int) -> Optional[datetime]:
    try:
        return date_parser.parse(text, default=datetime(year, 1, 1))
    except (ValueError, OverflowError):
        return None


def _build(match, year: int, month: int) -> Optional[datetime]:
    """Assemble a datetime from named regex groups."""
    day = int(match.group('day'))
    found_year = match.group('year')
    if found_year:
        year = int(found_year)
        if year < 100:
            year += 2000

    hour = minute = 0
    ampm = match.group('ampm')
    # a bare number after the date is only a time when it carries minutes or am/pm
    if match.group('hour') and (match.group('minute') or ampm):
        hour = int(match.group('hour'))
        minute = int(match.group('minute') or 0)
        if ampm:
            meridiem = ampm.lower().replace('.', '')
            if meridiem == 'pm' and hour < 12:
                hour += 12
            elif meridiem == 'am' and hour == 12:
                hour = 0

    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


def _strategy_month_day(text: str, year: int) -> Optional[datetime]:
    match = MONTH_DAY_PATTERN.search(text)
    if not match:
        return None
    return _build(match, year, MONTHS[match.group('month')[:3].lower()])


def _strategy_day_month(text: str, year: int) -> Optional[datetime]:
    match = DAY_MONTH_PATTERN.search(text)
    if not match:
        return None
    return _build(match, year, MONTHS[match.group('month')[:3].lower()])


def _strategy_numeric(text: str, year: int) -> Optional[datetime]:
    match = NUMERIC_DATE_PATTERN.search(text)
    if not match:
        return None
    month = int(match.group('month'))
    if not 1 <= month <= 12:
        return None
    return _build(match, year, month)


DateStrategy = Callable[[str, int], Optional[datetime]]

DATE_STRATEGIES: List[DateStrategy] = [
    _strategy_iso,
    _strategy_natural,
    _strategy_month_day,
    _strategy_day_month,
    _strategy_numeric,
]


def fallback_now(now: Optional[datetime] = None) -> datetime:
    """Final strategy: the current instant."""
    return now or datetime.now(tz=tz.UTC)


def fallback_tomorrow_noon(now: Optional[datetime] = None) -> datetime:
    """Final strategy: 12:00 local time on the following day."""
    now = now or datetime.now()
    return (now + timedelta(days=1)).replace(hour=12, minute=0, second=0, microsecond=0)


def parse_datetime_text(
    text: Optional[str],
    default_year: Optional[int] = None,
    now: Optional[datetime] = None,
    roll_forward: bool = False,
    fallback: Optional[Callable[[Optional[datetime]], datetime]] = None
) -> Optional[datetime]:
    """
    Resolve free text to a datetime using the ordered strategy list.

    Args:
        text: Raw date/time text from a page or feed
        default_year: Year to use when the text carries none
        now: Reference instant (defaults to the current time)
        roll_forward: When no year was given at all, move dates already in
            the past into the following year
        fallback: Final strategy used when every parser fails

    Returns:
        Parsed datetime, the fallback result, or None
    """
    now = now or datetime.now()
    cleaned = ' '.join((text or '').split())

    if cleaned:
        year = default_year or now.year
        for strategy in DATE_STRATEGIES:
            result = strategy(cleaned, year)
            if result is None:
                continue

            if roll_forward and default_year is None and not YEAR_PATTERN.search(cleaned):
                if result.replace(tzinfo=None).date() < now.replace(tzinfo=None).date():
                    result = result + relativedelta(years=1)
            return result

        logger.debug(f"No date strategy matched '{cleaned}'")

    if fallback is not None:
        return fallback(None)
    return None


def to_utc(value: datetime, timezone_name: str) -> datetime:
    """
    Convert a datetime to aware UTC, localizing naive values first.

    Args:
        value: Aware or naive datetime
        timezone_name: IANA zone applied to naive values

    Returns:
        Aware datetime in UTC
    """
    if value.tzinfo is None:
        zone = tz.gettz(timezone_name) or tz.UTC
        value = value.replace(tzinfo=zone)
    return value.astimezone(tz.UTC)


def format_instant(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(tz.UTC)
    return value.strftime(INSTANT_FORMAT)


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, INSTANT_FORMAT).replace(tzinfo=tz.UTC)
