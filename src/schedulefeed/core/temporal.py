"""Timezone resolution, calendar arithmetic and RFC 5545 date encodings."""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional, Tuple, Union

import pytz
import tzlocal
from dateutil import parser
from icalendar import vDate, vDatetime
from dateutil.relativedelta import relativedelta

from schedulefeed.config.constants import ABBR_TO_TZ
from schedulefeed.exceptions.errors import InvalidDate, TimezoneResolutionError

logger = logging.getLogger(__name__)

# An all-day date or a timezone-aware datetime
Instant = Union[date, datetime]

CALENDAR_UNITS = ("days", "weeks", "months", "years")

# Fills in components missing from loosely formatted record values
_PARSE_DEFAULT = datetime(1900, 1, 1)


def is_all_day(instant: Instant) -> bool:
    """Return True for plain dates, False for datetimes."""
    return isinstance(instant, date) and not isinstance(instant, datetime)


def same_kind(first: Instant, second: Instant) -> bool:
    """Return True when both instants are all-day, or both are timed."""
    return is_all_day(first) == is_all_day(second)


def check_instant(value, what: str = "instant") -> Instant:
    """Ensure a value is a date or a timezone-aware datetime.

    Args:
        value: The value to check.
        what: Name used in the error message.

    Returns:
        The value unchanged.

    Raises:
        InvalidDate: If the value is not a usable instant.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            raise InvalidDate(f"{what} {value.isoformat()} has no timezone")
        return value
    if isinstance(value, date):
        return value
    raise InvalidDate(f"{what} must be a date or datetime, got {type(value).__name__}")


def make_date(year: int, month: int, day: int) -> date:
    """Build a calendar date, rejecting out-of-range units.

    Raises:
        InvalidDate: If any unit is out of range (e.g. month 13).
    """
    try:
        return date(year, month, day)
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidDate(f"Invalid date {year}-{month}-{day}: {e}") from e


def make_instant(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """Build a timezone-aware datetime from wall-clock units.

    Args:
        year, month, day, hour, minute, second: Wall-clock units.
        tz: Zone the wall-clock time is read in (default UTC).

    Returns:
        An aware datetime with the correct DST offset for that wall time.

    Raises:
        InvalidDate: If any unit is out of range.
    """
    day_value = make_date(year, month, day)
    try:
        clock = time(hour, minute, second)
    except (TypeError, ValueError) as e:
        raise InvalidDate(f"Invalid time {hour}:{minute}:{second}: {e}") from e
    return attach_timezone(tz or pytz.utc, datetime.combine(day_value, clock))


def resolve_timezone(tz_str: Optional[str]) -> tzinfo:
    """Resolve a timezone string to a pytz timezone.

    Args:
        tz_str: The timezone string (e.g., "EST", "America/New_York", "local").

    Returns:
        A pytz timezone object.

    Raises:
        TimezoneResolutionError: If the name is unknown.
    """
    tz_str_raw = (tz_str or "local").strip()
    tz_upper = tz_str_raw.upper()

    if tz_upper == "LOCAL":
        # Host system zone (DST aware)
        tz_name = tzlocal.get_localzone_name()
    else:
        tz_name = ABBR_TO_TZ.get(tz_upper, tz_str_raw)

    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        logger.warning("Couldn't resolve timezone '%s'", tz_str_raw)
        raise TimezoneResolutionError(tz_str_raw) from None


def attach_timezone(tzobj: tzinfo, naive_dt: datetime) -> datetime:
    """Return timezone-aware datetime, using proper DST rules where possible.

    Ambiguous wall times resolve to their first occurrence and non-existent
    ones to the offset in force before the gap (RFC 5545 section 3.3.5).

    Args:
        tzobj: The timezone object (pytz or any tzinfo).
        naive_dt: A naive datetime to attach the timezone to.

    Returns:
        A timezone-aware datetime.
    """
    if hasattr(tzobj, "localize"):
        try:
            return tzobj.localize(naive_dt, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            return tzobj.localize(naive_dt, is_dst=True)
        except pytz.exceptions.NonExistentTimeError:
            return tzobj.normalize(tzobj.localize(naive_dt, is_dst=False))
    # zoneinfo/dateutil implement DST via utcoffset()
    return naive_dt.replace(tzinfo=tzobj)


def shift(instant: Instant, unit: str, amount: int) -> Instant:
    """Move an instant by whole calendar units, keeping its wall-clock time.

    Month and year steps that land past the end of the target month clamp to
    its last day (Jan 31 + 1 month is Feb 28, or Feb 29 in a leap year).

    Args:
        instant: Date or aware datetime to move.
        unit: One of "days", "weeks", "months", "years".
        amount: Number of units, may be negative.

    Returns:
        An instant of the same kind.
    """
    if unit not in CALENDAR_UNITS:
        raise ValueError(f"Unknown calendar unit '{unit}'")
    delta = relativedelta(**{unit: amount})
    if isinstance(instant, datetime):
        return attach_timezone(instant.tzinfo, instant.replace(tzinfo=None) + delta)
    return instant + delta


def at_date(reference: Instant, day: date) -> Instant:
    """Place the wall-clock time and zone of ``reference`` on another day."""
    if isinstance(reference, datetime):
        return attach_timezone(reference.tzinfo, datetime.combine(day, reference.time()))
    return day


def local_date(instant: Instant) -> date:
    """Calendar date of an instant in its own zone."""
    if isinstance(instant, datetime):
        return instant.date()
    return instant


def to_utc(dt: datetime) -> datetime:
    return dt.astimezone(pytz.utc)


def format_date(value: date) -> str:
    """Encode a date as RFC 5545 ``YYYYMMDD``."""
    return vDate(value).to_ical().decode("ascii")


def format_datetime(value: datetime, utc: bool = True) -> str:
    """Encode a datetime as RFC 5545 ``YYYYMMDDTHHMMSS``.

    Args:
        value: An aware datetime.
        utc: Convert to UTC and append ``Z``; otherwise emit the local wall
            clock, to be paired with a ``TZID`` parameter.
    """
    if utc:
        value = to_utc(value)
    else:
        value = value.replace(tzinfo=None)
    return vDatetime(value).to_ical().decode("ascii")


def format_instant(instant: Instant) -> str:
    """Canonical encoding: ``YYYYMMDD`` for dates, UTC date-time otherwise."""
    if isinstance(instant, datetime):
        return format_datetime(instant, utc=True)
    return format_date(instant)


def tzid_of(value: datetime) -> Optional[str]:
    """Zone identifier for a ``TZID`` parameter, if the tzinfo has one."""
    tz = value.tzinfo
    return getattr(tz, "zone", None) or getattr(tz, "key", None)


def normalize_time_string(time_str: str) -> str:
    """Handle common schedule formats like '18:00h' or '18h30' before parsing.

    Args:
        time_str: The time string to normalize.

    Returns:
        A normalized time string that dateutil can parse.
    """
    if not isinstance(time_str, str):
        return str(time_str)

    s = time_str.strip()

    # Convert European "20.00" to "20:00" for dateutil
    if re.match(r"^\d{1,2}\.\d{2}$", s):
        s = s.replace(".", ":")

    # Handle "20:00h", "20h", "20h15", "20h15m" styles
    match = re.match(r"^\s*(\d{1,2})(?:[:\.]?(\d{2}))?\s*h(?:rs?)?\.?\s*$", s, re.IGNORECASE)
    if match:
        hour = int(match.group(1))
        minute = match.group(2) or "00"
        return f"{hour:02d}:{minute}"

    match = re.match(r"^\s*(\d{1,2})h(\d{2})m?\s*$", s, re.IGNORECASE)
    if match:
        return f"{int(match.group(1)):02d}:{match.group(2)}"

    # Bare hour, e.g. "18"
    if re.match(r"^\d{1,2}$", s):
        return f"{int(s):02d}:00"

    return s


def parse_date(value) -> date:
    """Parse a record date value ("2024-01-08", "March 30, 2024", a date).

    Raises:
        InvalidDate: If the value is not a valid calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDate(f"Expected a date string, got {value!r}")
    try:
        return parser.parse(value, default=_PARSE_DEFAULT).date()
    except (ValueError, OverflowError) as e:
        raise InvalidDate(f"Invalid date '{value}': {e}") from e


def parse_time(value) -> time:
    """Parse a record time value ("18:00", "6:30 PM", "18h30", a time).

    Raises:
        InvalidDate: If the value is not a valid time of day.
    """
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if isinstance(value, bool) or value is None:
        raise InvalidDate(f"Expected a time string, got {value!r}")
    text = normalize_time_string(value)
    if not text:
        raise InvalidDate("Empty time string")
    try:
        return parser.parse(text, default=_PARSE_DEFAULT).time()
    except (ValueError, OverflowError) as e:
        raise InvalidDate(f"Invalid time '{value}': {e}") from e


@dataclass(frozen=True)
class Window:
    """Half-open span ``[start, end)`` that bounds recurrence expansion.

    All-day instants are compared by calendar day: a day is inside the window
    when it overlaps it.
    """

    start: datetime
    end: datetime

    def __post_init__(self):
        for name in ("start", "end"):
            value = getattr(self, name)
            if not isinstance(value, datetime) or value.utcoffset() is None:
                raise ValueError(f"Window {name} must be a timezone-aware datetime")
        if self.end <= self.start:
            raise ValueError("Window end must be after its start")

    def _day_bounds(self) -> Tuple[date, date]:
        last = self.end.date()
        if self.end.time() != time(0):
            last += timedelta(days=1)
        return self.start.date(), last

    def includes(self, instant: Instant) -> bool:
        if is_all_day(instant):
            first, last = self._day_bounds()
            return first <= instant < last
        return self.start <= instant < self.end

    def is_past(self, instant: Instant) -> bool:
        """True when the instant lies at or beyond the window end."""
        if is_all_day(instant):
            return instant >= self._day_bounds()[1]
        return instant >= self.end


def default_window(now: datetime, lookback_months: int, horizon_months: int) -> Window:
    """Window from ``now - lookback_months`` to ``now + horizon_months``.

    Raises:
        ValueError: If ``now`` is naive.
    """
    if not isinstance(now, datetime) or now.utcoffset() is None:
        raise ValueError("now must be a timezone-aware datetime")
    now_utc = to_utc(now)
    return Window(
        start=now_utc - relativedelta(months=lookback_months),
        end=now_utc + relativedelta(months=horizon_months),
    )
