"""Recurrence rule expansion with per-occurrence overrides and cancellations."""

import calendar
import itertools
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from schedulefeed.config.constants import WEEKDAY_CODES
from schedulefeed.core.temporal import (
    Instant,
    Window,
    at_date,
    check_instant,
    format_instant,
    local_date,
    parse_date,
    same_kind,
    shift,
    to_utc,
)
from schedulefeed.exceptions.errors import (
    ExceptionOrderingConflict,
    InvalidEvent,
    UnmatchedException,
)

logger = logging.getLogger(__name__)

# Slack added to the termination guard; periods are laid out in the anchor's
# zone while the horizon may be expressed in another one.
_GUARD_SLACK = timedelta(days=2)


class Frequency(Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


@dataclass(frozen=True)
class RecurrenceRule:
    """Frequency, interval, optional by-day/by-month-day filters and a bound.

    ``by_day`` holds weekday indexes (0 = Monday). ``by_month_day`` holds day
    numbers, negative values counting back from the end of the month.
    At most one of ``count`` and ``until`` is set; with neither the rule is
    unbounded and must be expanded against a window.
    """

    frequency: Frequency
    interval: int = 1
    by_day: Tuple[int, ...] = ()
    by_month_day: Tuple[int, ...] = ()
    count: Optional[int] = None
    until: Optional[Instant] = None

    def __post_init__(self):
        if not isinstance(self.frequency, Frequency):
            raise InvalidEvent("rrule", f"unknown frequency {self.frequency!r}")
        if not _is_int(self.interval) or self.interval < 1:
            raise InvalidEvent("rrule", f"interval must be a positive integer, got {self.interval!r}")
        if self.count is not None and self.until is not None:
            raise InvalidEvent("rrule", "count and until are mutually exclusive")
        if self.count is not None and (not _is_int(self.count) or self.count < 1):
            raise InvalidEvent("rrule", f"count must be a positive integer, got {self.count!r}")
        if self.until is not None:
            check_instant(self.until, "until")
        for weekday in self.by_day:
            if not _is_int(weekday) or not 0 <= weekday <= 6:
                raise InvalidEvent("rrule", f"by_day entry {weekday!r} is not a weekday")
        for month_day in self.by_month_day:
            if not _is_int(month_day) or month_day == 0 or not -31 <= month_day <= 31:
                raise InvalidEvent("rrule", f"by_month_day entry {month_day!r} is out of range")
        object.__setattr__(self, "by_day", tuple(sorted(set(self.by_day))))
        object.__setattr__(self, "by_month_day", tuple(sorted(set(self.by_month_day))))

    @property
    def unbounded(self) -> bool:
        return self.count is None and self.until is None

    @property
    def unit(self) -> str:
        return _FREQUENCY_UNITS[self.frequency]

    def to_ical(self) -> str:
        """Render as an RRULE value, e.g. ``FREQ=WEEKLY;BYDAY=MO;COUNT=4``."""
        parts = [f"FREQ={self.frequency.value}"]
        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.by_day:
            parts.append("BYDAY=" + ",".join(WEEKDAY_CODES[d] for d in self.by_day))
        if self.by_month_day:
            parts.append("BYMONTHDAY=" + ",".join(str(d) for d in self.by_month_day))
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        if self.until is not None:
            parts.append(f"UNTIL={format_instant(self.until)}")
        return ";".join(parts)

    @classmethod
    def from_dict(cls, data: Mapping, anchor: Instant) -> "RecurrenceRule":
        """Create a rule from a record's ``rrule`` mapping.

        Args:
            data: Mapping with ``freq`` and optional ``interval``, ``by_day``
                (``MO``..``SU``), ``by_month_day``, ``count``, ``until``.
            anchor: The event start; a date-only ``until`` is placed at the
                anchor's wall-clock time so it bounds inclusively.

        Returns:
            A validated RecurrenceRule.

        Raises:
            InvalidEvent: If the mapping is malformed.
            InvalidDate: If ``until`` is not a valid date.
        """
        if not isinstance(data, Mapping):
            raise InvalidEvent("rrule", f"expected a mapping, got {type(data).__name__}")
        freq_raw = data.get("freq", data.get("frequency"))
        try:
            frequency = Frequency(str(freq_raw).strip().upper())
        except ValueError:
            raise InvalidEvent("rrule", f"unknown frequency {freq_raw!r}") from None

        count = data.get("count")
        until = data.get("until")
        return cls(
            frequency=frequency,
            interval=_as_int(data.get("interval", 1), "interval"),
            by_day=tuple(_weekday_index(code) for code in _as_list(data.get("by_day"))),
            by_month_day=tuple(
                _as_int(value, "by_month_day") for value in _as_list(data.get("by_month_day"))
            ),
            count=None if count is None else _as_int(count, "count"),
            until=None if until is None else at_date(anchor, parse_date(until)),
        )


_FREQUENCY_UNITS = {
    Frequency.DAILY: "days",
    Frequency.WEEKLY: "weeks",
    Frequency.MONTHLY: "months",
    Frequency.YEARLY: "years",
}


@dataclass(frozen=True)
class Replacement:
    """Fields that override one occurrence. ``None`` keeps the series value."""

    start: Optional[Instant] = None
    duration: Optional[timedelta] = None
    summary: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class OccurrenceException:
    """Override or cancellation of the occurrence originally at ``original_start``.

    A missing replacement is a tombstone: the occurrence is cancelled.
    """

    original_start: Instant
    replacement: Optional[Replacement] = None

    @property
    def cancelled(self) -> bool:
        return self.replacement is None


@dataclass(frozen=True)
class ResolvedOccurrence:
    """An occurrence that survived exception handling."""

    original_start: Instant
    start: Instant
    replacement: Optional[Replacement] = None

    @property
    def overridden(self) -> bool:
        return self.replacement is not None

    @property
    def moved(self) -> bool:
        return self.start != self.original_start


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _as_int(value, field_name: str) -> int:
    if _is_int(value):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise InvalidEvent("rrule", f"{field_name} must be an integer, got {value!r}")


def _as_list(value) -> List:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        if isinstance(value, str) and "," in value:
            return [part.strip() for part in value.split(",") if part.strip()]
        return [value]
    return list(value)


def _weekday_index(code) -> int:
    if _is_int(code) and 0 <= code <= 6:
        return code
    text = str(code).strip().upper()[:2]
    if text in WEEKDAY_CODES:
        return WEEKDAY_CODES.index(text)
    raise InvalidEvent("rrule", f"unknown weekday {code!r}")


def _month_day_matches(day: date, month_days: Tuple[int, ...]) -> bool:
    last = calendar.monthrange(day.year, day.month)[1]
    for month_day in month_days:
        target = month_day if month_day > 0 else last + month_day + 1
        if day.day == target:
            return True
    return False


def _matches(rule: RecurrenceRule, day: date) -> bool:
    if rule.by_day and day.weekday() not in rule.by_day:
        return False
    if rule.by_month_day and not _month_day_matches(day, rule.by_month_day):
        return False
    return True


def _days_of_month(first: date) -> Iterator[date]:
    last = calendar.monthrange(first.year, first.month)[1]
    for number in range(1, last + 1):
        yield first.replace(day=number)


def _period(rule: RecurrenceRule, anchor_day: date, index: int) -> Tuple[date, List[date]]:
    """First day of the ``index``-th period and its candidate days in order.

    Periods are counted from the anchor rather than from the previous period,
    so month-end clamping never drifts (Jan 31, Feb 29, Mar 31, Apr 30 ...).
    """
    step = index * rule.interval
    constrained = bool(rule.by_day or rule.by_month_day)

    if rule.frequency is Frequency.DAILY:
        day = anchor_day + timedelta(days=step)
        return day, [day] if _matches(rule, day) else []

    if rule.frequency is Frequency.WEEKLY:
        base = anchor_day + timedelta(weeks=step)
        monday = base - timedelta(days=base.weekday())
        if rule.by_day:
            days = [monday + timedelta(days=weekday) for weekday in rule.by_day]
        else:
            days = [base]
        return monday, [day for day in days if _matches(rule, day)]

    if rule.frequency is Frequency.MONTHLY:
        base = shift(anchor_day, "months", step)
        first = base.replace(day=1)
        if constrained:
            return first, [day for day in _days_of_month(first) if _matches(rule, day)]
        return first, [base]

    base = shift(anchor_day, "years", step)
    first = date(base.year, 1, 1)
    if constrained:
        days = [
            day
            for month in range(1, 13)
            for day in _days_of_month(date(base.year, month, 1))
            if _matches(rule, day)
        ]
        return first, days
    return first, [base]


def _guard_day(instant: Instant) -> date:
    if isinstance(instant, datetime):
        return to_utc(instant).date() + _GUARD_SLACK
    return instant + _GUARD_SLACK


def iter_occurrences(
    rule: RecurrenceRule,
    anchor: Instant,
    horizon: Optional[Instant] = None,
) -> Iterator[Instant]:
    """Lazily generate the raw, unwindowed occurrence timeline of a rule.

    Candidates before the anchor are skipped, and the anchor itself is only
    produced when it satisfies the rule's constraints. Expansion ends when
    ``count`` occurrences were produced or ``until`` is exceeded.

    Args:
        rule: The recurrence rule.
        anchor: First possible occurrence (date or aware datetime).
        horizon: Stop once whole periods lie beyond this instant. Callers
            expanding unbounded rules, or rules whose filters may never
            match, must pass one.

    Yields:
        Occurrence instants in strictly ascending order.
    """
    anchor = check_instant(anchor, "anchor")
    anchor_day = local_date(anchor)
    stop_day = None
    if horizon is not None:
        stop_day = _guard_day(horizon)
    if rule.until is not None:
        until_day = _guard_day(rule.until)
        stop_day = until_day if stop_day is None else min(stop_day, until_day)

    emitted = 0
    for index in itertools.count():
        period_start, days = _period(rule, anchor_day, index)
        if stop_day is not None and period_start > stop_day:
            return
        for day in days:
            occurrence = at_date(anchor, day)
            if occurrence < anchor:
                continue
            if rule.until is not None and occurrence > rule.until:
                return
            yield occurrence
            emitted += 1
            if rule.count is not None and emitted >= rule.count:
                return


def is_occurrence(rule: RecurrenceRule, anchor: Instant, key: Instant) -> bool:
    """Return True if ``key`` is on the rule's unwindowed timeline."""
    if not same_kind(anchor, key):
        return False
    for occurrence in iter_occurrences(rule, anchor, horizon=key):
        if occurrence == key:
            return True
        if occurrence > key:
            return False
    return False


def _index_exceptions(
    anchor: Instant,
    exceptions: Iterable[OccurrenceException],
    uid: Optional[str],
) -> Dict[Instant, OccurrenceException]:
    index: Dict[Instant, OccurrenceException] = {}
    for exception in exceptions:
        key = exception.original_start
        if not same_kind(anchor, key):
            raise InvalidEvent("exceptions", f"key {key} does not match the anchor's kind", uid)
        if key in index:
            raise InvalidEvent("exceptions", f"duplicate exception for {key}", uid)
        replacement = exception.replacement
        if replacement is not None and replacement.start is not None:
            if not same_kind(anchor, replacement.start):
                raise InvalidEvent(
                    "exceptions", f"replacement start for {key} does not match the anchor's kind", uid
                )
        index[key] = exception
    return index


def _apply(
    original: Instant,
    overrides: Dict[Instant, OccurrenceException],
) -> Optional[ResolvedOccurrence]:
    """Resolve one raw occurrence; None when it is cancelled."""
    exception = overrides.get(original)
    if exception is None:
        return ResolvedOccurrence(original, original)
    if exception.cancelled:
        return None
    replacement = exception.replacement
    start = replacement.start if replacement.start is not None else original
    return ResolvedOccurrence(original, start, replacement)


def _check_order(
    rule: RecurrenceRule,
    anchor: Instant,
    overrides: Dict[Instant, OccurrenceException],
    uid: Optional[str],
) -> None:
    """Check that moved occurrences keep the series strictly ascending.

    Runs over the unwindowed timeline up to the first unmodified occurrence
    past every exception key and replacement start; later occurrences cannot
    conflict.
    """
    moved = [
        e.replacement.start
        for e in overrides.values()
        if e.replacement is not None and e.replacement.start is not None
    ]
    if not moved:
        return
    limit = max(list(overrides) + moved)

    previous = None
    for original in iter_occurrences(rule, anchor, horizon=limit):
        resolved = _apply(original, overrides)
        if resolved is not None:
            if previous is not None and resolved.start <= previous:
                logger.warning(
                    "Occurrence %s of %s moved out of order", original, uid or rule.to_ical()
                )
                raise ExceptionOrderingConflict(original, resolved.start, previous, uid)
            previous = resolved.start
        if original > limit:
            return


def expand(
    rule: RecurrenceRule,
    anchor: Instant,
    exceptions: Iterable[OccurrenceException],
    window: Window,
    uid: Optional[str] = None,
) -> Iterator[ResolvedOccurrence]:
    """Expand a rule inside a window, applying overrides and cancellations.

    Exception keys, and the order of moved occurrences, are checked against
    the full timeline before anything is produced, so the outcome does not
    depend on the window. The returned iterator is lazy; it ends at the
    rule's own bound or at the window end, whichever comes first.

    Args:
        rule: The recurrence rule.
        anchor: The series start.
        exceptions: Overrides and cancellations, unique by original start.
        window: Bounds which occurrences are produced.
        uid: Event identity, used in error messages.

    Returns:
        Iterator of ResolvedOccurrence in strictly ascending start order.

    Raises:
        UnmatchedException: If an exception key is not an occurrence.
        InvalidEvent: If exception keys are duplicated or of the wrong kind.
        ExceptionOrderingConflict: If a moved occurrence does not fall
            strictly between its surviving neighbours.
    """
    anchor = check_instant(anchor, "anchor")
    if rule.until is not None and not same_kind(anchor, rule.until):
        raise InvalidEvent("rrule", "until does not match the anchor's kind", uid)

    overrides = _index_exceptions(anchor, exceptions, uid)
    for key in overrides:
        if not is_occurrence(rule, anchor, key):
            logger.warning("Exception %s matches no occurrence of %s", key, uid or rule.to_ical())
            raise UnmatchedException(key, uid)
    _check_order(rule, anchor, overrides, uid)

    logger.debug(
        "Expanding %s from %s with %d exception(s)", rule.to_ical(), anchor, len(overrides)
    )
    return _resolve(rule, anchor, overrides, window)


def _resolve(
    rule: RecurrenceRule,
    anchor: Instant,
    overrides: Dict[Instant, OccurrenceException],
    window: Window,
) -> Iterator[ResolvedOccurrence]:
    for original in iter_occurrences(rule, anchor, horizon=window.end):
        if window.is_past(original):
            return
        resolved = _apply(original, overrides)
        if resolved is not None and window.includes(resolved.start):
            yield resolved
