"""Event data model for schedule entries."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Mapping, Optional, Tuple

from schedulefeed.config.constants import REQUIRED_RECORD_FIELDS
from schedulefeed.core.recurrence import (
    OccurrenceException,
    RecurrenceRule,
    Replacement,
)
from schedulefeed.core.temporal import (
    Instant,
    attach_timezone,
    check_instant,
    is_all_day,
    parse_date,
    parse_time,
    resolve_timezone,
    same_kind,
)
from schedulefeed.exceptions.errors import DataIntegrityError, InvalidEvent
from schedulefeed.utils.text import find_control_character, is_utf8_encodable

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class CalendarEvent:
    """Validated, immutable representation of one schedule entry.

    Invariants are checked at construction in a fixed order and the first
    failure is raised as InvalidEvent:

    1. ``uid`` is a non-empty string that encodes as UTF-8
    2. ``title`` is a non-empty string
    3. ``title``, ``location``, ``description`` and ``url`` encode as UTF-8
       and hold no control characters other than newline and tab
    4. ``start`` is a date or a timezone-aware datetime
    5. ``duration`` is non-negative, and whole days for all-day events
    6. the rule's ``until`` is of the same kind (all-day or timed) as ``start``
    7. exceptions are only present together with a rule
    8. for each exception in order: its key is a well-formed instant of the
       same kind as ``start`` and not repeated; a replacement start is of the
       same kind; replacement text and duration obey rules 2, 3 and 5
    """

    uid: str
    title: str
    start: Instant
    duration: Optional[timedelta] = None
    location: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    rule: Optional[RecurrenceRule] = None
    exceptions: Tuple[OccurrenceException, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "exceptions", tuple(self.exceptions))
        self._validate()

    @property
    def all_day(self) -> bool:
        return is_all_day(self.start)

    @property
    def recurring(self) -> bool:
        return self.rule is not None

    @property
    def effective_duration(self) -> timedelta:
        """Duration to use when none was given: one day for all-day events."""
        if self.duration is not None:
            return self.duration
        return ONE_DAY if self.all_day else timedelta(0)

    def _fail(self, field: str, reason: str):
        raise InvalidEvent(field, reason, self.uid if isinstance(self.uid, str) else None)

    def _validate(self) -> None:
        if not isinstance(self.uid, str) or not self.uid.strip():
            self._fail("uid", "must be a non-empty string")
        if not is_utf8_encodable(self.uid):
            self._fail("uid", "cannot be encoded as UTF-8")
        if not isinstance(self.title, str) or not self.title.strip():
            self._fail("title", "must be a non-empty string")
        for name in ("title", "location", "description", "url"):
            self._check_text(name, getattr(self, name))

        try:
            check_instant(self.start, "start")
        except DataIntegrityError as e:
            self._fail("start", str(e))

        self._check_duration("duration", self.duration)

        if self.rule is not None:
            if not isinstance(self.rule, RecurrenceRule):
                self._fail("rule", f"expected a RecurrenceRule, got {type(self.rule).__name__}")
            if self.rule.until is not None and not same_kind(self.start, self.rule.until):
                self._fail("rule", "until must be all-day exactly when start is")
        elif self.exceptions:
            self._fail("exceptions", "exceptions require a recurrence rule")

        seen = set()
        for exception in self.exceptions:
            self._check_exception(exception, seen)

    def _check_text(self, name: str, value) -> None:
        if value is None:
            return
        if not isinstance(value, str):
            self._fail(name, f"must be a string, got {type(value).__name__}")
        if not is_utf8_encodable(value):
            self._fail(name, "cannot be encoded as UTF-8")
        bad = find_control_character(value)
        if bad is not None:
            self._fail(name, f"contains control character U+{ord(bad):04X}")

    def _check_duration(self, name: str, value) -> None:
        if value is None:
            return
        if not isinstance(value, timedelta):
            self._fail(name, f"must be a timedelta, got {type(value).__name__}")
        if value < timedelta(0):
            self._fail(name, "must not be negative")
        if self.all_day and value % ONE_DAY:
            self._fail(name, "must be whole days for an all-day event")

    def _check_exception(self, exception, seen: set) -> None:
        if not isinstance(exception, OccurrenceException):
            self._fail("exceptions", f"expected an OccurrenceException, got {type(exception).__name__}")
        key = exception.original_start
        try:
            check_instant(key, "exception key")
        except DataIntegrityError as e:
            self._fail("exceptions", str(e))
        if not same_kind(self.start, key):
            self._fail("exceptions", f"key {key} must be all-day exactly when start is")
        if key in seen:
            self._fail("exceptions", f"duplicate exception for {key}")
        seen.add(key)

        replacement = exception.replacement
        if replacement is None:
            return
        if replacement.start is not None:
            try:
                check_instant(replacement.start, "replacement start")
            except DataIntegrityError as e:
                self._fail("exceptions", str(e))
            if not same_kind(self.start, replacement.start):
                self._fail("exceptions", f"replacement start for {key} must be all-day exactly when start is")
        if replacement.summary is not None and (
            not isinstance(replacement.summary, str) or not replacement.summary.strip()
        ):
            self._fail("exceptions", f"replacement title for {key} must be a non-empty string")
        for name in ("summary", "location", "description"):
            self._check_text("exceptions", getattr(replacement, name))
        self._check_duration("exceptions", replacement.duration)

    @classmethod
    def from_dict(
        cls,
        data: Mapping,
        default_timezone: str = "local",
        default_duration: Optional[timedelta] = None,
    ) -> "CalendarEvent":
        """Create a CalendarEvent from a loosely typed schedule record.

        Args:
            data: Record with ``uid``, ``title``, ``date`` and optional
                ``start_time``, ``end_time``, ``timezone``, ``location``,
                ``description``, ``url``, ``rrule`` and ``exceptions``.
                Records without ``start_time`` become all-day events.
            default_timezone: Zone for records that name none.
            default_duration: Length of timed events without ``end_time``.

        Returns:
            A validated CalendarEvent instance.

        Raises:
            InvalidEvent: If required fields are missing or malformed.
            InvalidDate: If a date or time cannot be parsed.
            TimezoneResolutionError: If the timezone is unknown.
        """
        if not isinstance(data, Mapping):
            raise InvalidEvent("record", f"expected a mapping, got {type(data).__name__}")
        uid = data.get("uid")
        uid_label = uid if isinstance(uid, str) else None
        missing = REQUIRED_RECORD_FIELDS - {k for k, v in data.items() if v not in (None, "")}
        if missing:
            raise InvalidEvent(
                "record", f"missing required fields: {', '.join(sorted(missing))}", uid_label
            )

        try:
            event = cls._from_record(data, default_timezone, default_duration)
        except InvalidEvent as e:
            if e.uid is None and uid_label:
                raise InvalidEvent(e.field, e.reason, uid_label) from e
            raise
        logger.debug("Converted record %s: %s", event.uid, event.to_dict())
        return event

    @classmethod
    def _from_record(cls, data: Mapping, default_timezone: str, default_duration: Optional[timedelta]):
        day = parse_date(data["date"])
        start_raw = data.get("start_time")

        if start_raw in (None, ""):
            tz = None
            start: Instant = day
            duration = _all_day_duration(data)
        else:
            tz = resolve_timezone(data.get("timezone") or default_timezone)
            start_clock = parse_time(start_raw)
            start = attach_timezone(tz, datetime.combine(day, start_clock))
            duration = _timed_duration(data.get("end_time"), start_clock, default_duration)

        rule = None
        if data.get("rrule"):
            rule = RecurrenceRule.from_dict(data["rrule"], start)

        exceptions = tuple(
            _exception_from_dict(item, start, tz, default_duration)
            for item in data.get("exceptions") or ()
        )

        return cls(
            uid=str(data["uid"]),
            title=data["title"],
            start=start,
            duration=duration,
            location=data.get("location") or None,
            description=data.get("description") or None,
            url=data.get("url") or None,
            rule=rule,
            exceptions=exceptions,
        )

    def to_dict(self) -> dict:
        """Summarize the event for logging and debugging."""
        result = {
            "uid": self.uid,
            "title": self.title,
            "start": self.start.isoformat(),
        }
        if self.duration is not None:
            result["duration"] = str(self.duration)
        if self.location:
            result["location"] = self.location
        if self.description:
            result["description"] = self.description
        if self.url:
            result["url"] = self.url
        if self.rule is not None:
            result["rrule"] = self.rule.to_ical()
        if self.exceptions:
            result["exceptions"] = len(self.exceptions)
        return result


def _all_day_duration(data: Mapping) -> Optional[timedelta]:
    end_date = data.get("end_date")
    if end_date in (None, ""):
        return None
    span = parse_date(end_date) - parse_date(data["date"])
    if span < timedelta(0):
        raise InvalidEvent("end_date", "must not be before date")
    # end_date is the last day of the event, inclusive
    return span + ONE_DAY


def _timed_duration(end_raw, start_clock: time, default: Optional[timedelta]) -> Optional[timedelta]:
    if end_raw in (None, ""):
        return default
    end_clock = parse_time(end_raw)
    anchor_day = date(2000, 1, 1)
    span = datetime.combine(anchor_day, end_clock) - datetime.combine(anchor_day, start_clock)
    if span <= timedelta(0):
        # Sessions ending at or before their start time run past midnight
        span += ONE_DAY
    return span


def _exception_from_dict(
    data: Mapping,
    anchor: Instant,
    tz,
    default_duration: Optional[timedelta],
) -> OccurrenceException:
    if not isinstance(data, Mapping):
        raise InvalidEvent("exceptions", f"expected a mapping, got {type(data).__name__}")
    if data.get("date") in (None, ""):
        raise InvalidEvent("exceptions", "exception is missing its date")
    day = parse_date(data["date"])

    if is_all_day(anchor):
        key: Instant = day
    else:
        original_raw = data.get("original_time")
        clock = parse_time(original_raw) if original_raw not in (None, "") else anchor.time()
        key = attach_timezone(tz, datetime.combine(day, clock))

    if data.get("cancelled"):
        return OccurrenceException(key)

    new_day_raw = data.get("new_date")
    new_day = parse_date(new_day_raw) if new_day_raw not in (None, "") else None
    start_raw = data.get("start_time")

    new_start: Optional[Instant] = None
    duration = None
    if is_all_day(anchor):
        if new_day is not None:
            new_start = new_day
    else:
        clock = parse_time(start_raw) if start_raw not in (None, "") else key.time()
        if start_raw not in (None, "") or new_day is not None:
            new_start = attach_timezone(tz, datetime.combine(new_day or day, clock))
        if data.get("end_time") not in (None, ""):
            duration = _timed_duration(data["end_time"], clock, default_duration)

    replacement = Replacement(
        start=new_start,
        duration=duration,
        summary=data.get("title") or None,
        location=data.get("location") or None,
        description=data.get("description") or None,
    )
    return OccurrenceException(key, replacement)
