"""ICS encoding of assembled feeds, and reading them back."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Union

import pytz
from icalendar import Calendar, vDuration, vText

from schedulefeed.config.constants import (
    ICS_CALSCALE,
    ICS_LINE_BREAK,
    ICS_METHOD,
    ICS_VERSION,
    MAX_LINE_OCTETS,
)
from schedulefeed.core.feed import Feed, FeedEntry
from schedulefeed.core.temporal import Instant, format_date, format_datetime, is_all_day, to_utc
from schedulefeed.exceptions.errors import SerializationError
from schedulefeed.utils.text import find_control_character, is_utf8_encodable

logger = logging.getLogger(__name__)

# Characters that may follow a backslash in an escaped TEXT value
ESCAPABLE = frozenset({"\\", ";", ",", "n", "N"})

# DTSTAMP stand-in when reading a feed without events
_EPOCH = datetime(1970, 1, 1, tzinfo=pytz.utc)


def escape_text(value: str) -> str:
    """Escape a TEXT value per RFC 5545 section 3.3.11.

    Raises:
        SerializationError: If the value holds a control character that has
            no TEXT escape, or cannot be encoded as UTF-8.
    """
    bad = find_control_character(value)
    if bad is not None:
        raise SerializationError(f"Control character U+{ord(bad):04X} cannot be escaped in {value!r}")
    if not is_utf8_encodable(value):
        raise SerializationError(f"Text {value!r} cannot be encoded as UTF-8")
    # vText escapes CRLF and LF but not a lone CR
    text = value.replace("\r\n", "\n").replace("\r", "\n")
    return vText(text).to_ical().decode("utf-8")


def _atoms(line: str, escaped: bool) -> List[str]:
    """Split a line into units folding must keep together."""
    if not escaped:
        return list(line)
    atoms = []
    chars = iter(line)
    for char in chars:
        if char != "\\":
            atoms.append(char)
            continue
        follower = next(chars, None)
        if follower is None or follower not in ESCAPABLE:
            raise SerializationError(f"Malformed escape sequence in line {line!r}")
        atoms.append(char + follower)
    return atoms


def fold_line(line: str, escaped: bool = False, limit: int = MAX_LINE_OCTETS) -> List[str]:
    """Fold a content line into physical lines of at most ``limit`` octets.

    Continuation lines start with a single space, which counts toward the
    limit. Breaks fall between characters, never inside a UTF-8 sequence,
    and for escaped TEXT lines never between a backslash and the character
    it escapes.

    Args:
        line: Unfolded content line without line break.
        escaped: Whether the line carries an escaped TEXT value.
        limit: Octet limit per physical line.

    Returns:
        Physical lines, continuation lines prefixed with a space.

    Raises:
        SerializationError: If an escaped line holds a dangling or unknown
            escape sequence.
    """
    parts: List[str] = []
    current: List[str] = []
    size = 0
    budget = limit
    for atom in _atoms(line, escaped):
        octets = len(atom.encode("utf-8"))
        if size + octets > budget and current:
            parts.append("".join(current))
            current, size = [], 0
            budget = limit - 1
        current.append(atom)
        size += octets
    parts.append("".join(current))
    return [parts[0]] + [" " + part for part in parts[1:]]


def content_line(name: str, value: str, params: str = "", text: bool = True) -> List[str]:
    """Build the folded physical lines for one property.

    Args:
        name: Property name, e.g. ``SUMMARY``.
        value: Property value.
        params: Parameter string including its leading ``;``.
        text: Escape the value as TEXT. Other values are written verbatim
            and must not contain line breaks or control characters.
    """
    if text:
        value = escape_text(value)
    elif (
        find_control_character(value) is not None
        or "\n" in value
        or "\r" in value
        or not is_utf8_encodable(value)
    ):
        raise SerializationError(f"{name} value {value!r} cannot be written verbatim")
    return fold_line(f"{name}{params}:{value}", escaped=text)


def format_duration(value: timedelta) -> str:
    return vDuration(value).to_ical().decode("ascii")


def _instant_lines(name: str, instant: Instant) -> List[str]:
    if is_all_day(instant):
        return content_line(name, format_date(instant), ";VALUE=DATE", text=False)
    if instant.utcoffset() is None:
        raise SerializationError(f"{name} {instant.isoformat()} has no timezone")
    return content_line(name, format_datetime(instant, utc=True), text=False)


def _event_lines(entry: FeedEntry, dtstamp: str) -> List[str]:
    # Property order is fixed
    lines = ["BEGIN:VEVENT"]
    lines += content_line("UID", entry.uid)
    lines += content_line("DTSTAMP", dtstamp, text=False)
    lines += _instant_lines("DTSTART", entry.start)
    lines += _instant_lines("DTEND", entry.end)
    lines += content_line("SUMMARY", entry.summary)
    if entry.location:
        lines += content_line("LOCATION", entry.location)
    if entry.description:
        lines += content_line("DESCRIPTION", entry.description)
    if entry.url:
        lines += content_line("URL", entry.url, text=False)
    lines.append("END:VEVENT")
    return lines


def serialize(feed: Feed) -> str:
    """Encode a feed as an RFC 5545 VCALENDAR document.

    Identical feeds always produce identical text.

    Args:
        feed: The assembled feed.

    Returns:
        ICS text with CRLF line endings.

    Raises:
        SerializationError: If a value cannot be legally encoded.
    """
    refresh = format_duration(feed.refresh_interval)
    dtstamp = format_datetime(feed.generated_at, utc=True)

    lines = ["BEGIN:VCALENDAR"]
    lines += content_line("VERSION", ICS_VERSION, text=False)
    lines += content_line("PRODID", feed.product_id)
    lines += content_line("CALSCALE", ICS_CALSCALE, text=False)
    lines += content_line("METHOD", ICS_METHOD, text=False)
    lines += content_line("NAME", feed.calendar_name)
    lines += content_line("X-WR-CALNAME", feed.calendar_name)
    lines += content_line("REFRESH-INTERVAL", refresh, ";VALUE=DURATION", text=False)
    lines += content_line("X-PUBLISHED-TTL", refresh, text=False)
    for entry in feed.entries:
        lines += _event_lines(entry, dtstamp)
    lines.append("END:VCALENDAR")

    logger.debug("Serialized %d entries into %d lines", len(feed.entries), len(lines))
    return ICS_LINE_BREAK.join(lines) + ICS_LINE_BREAK


def _normalize(value: Instant) -> Instant:
    if isinstance(value, datetime):
        return to_utc(value)
    return value


def _duration_of(value) -> timedelta:
    if isinstance(value, timedelta):
        return value
    td = getattr(value, "td", None)
    if isinstance(td, timedelta):
        return td
    return vDuration.from_ical(str(value))


def _optional_text(component, name: str) -> Optional[str]:
    value = component.get(name)
    if value is None:
        return None
    return str(value)


def read_feed(ics: Union[str, bytes]) -> Feed:
    """Parse ICS text produced by ``serialize`` back into a Feed.

    Timed instants come back in UTC. The generation time is taken from the
    first DTSTAMP; a feed without events reports the Unix epoch.

    Args:
        ics: ICS document as text or UTF-8 bytes.

    Returns:
        The parsed Feed.

    Raises:
        ValueError: If parsing fails.
    """
    data = ics.encode("utf-8") if isinstance(ics, str) else ics
    try:
        calendar = Calendar.from_ical(data)
    except ValueError as exc:
        raise ValueError(f"Failed to parse ICS payload: {exc}") from exc

    entries = []
    generated_at = None
    for component in calendar.walk("VEVENT"):
        start = _normalize(component.decoded("DTSTART"))
        end = _normalize(component.decoded("DTEND")) if "DTEND" in component else start
        if generated_at is None and "DTSTAMP" in component:
            generated_at = _normalize(component.decoded("DTSTAMP"))
        entries.append(
            FeedEntry(
                uid=str(component.get("UID")),
                start=start,
                end=end,
                summary=str(component.get("SUMMARY", "")),
                location=_optional_text(component, "LOCATION"),
                description=_optional_text(component, "DESCRIPTION"),
                url=_optional_text(component, "URL"),
            )
        )

    ttl = calendar.get("X-PUBLISHED-TTL")
    metadata = {}
    if ttl is not None:
        metadata["refresh_interval"] = _duration_of(ttl)
    if calendar.get("PRODID") is not None:
        metadata["product_id"] = str(calendar.get("PRODID"))
    if calendar.get("X-WR-CALNAME") is not None:
        metadata["calendar_name"] = str(calendar.get("X-WR-CALNAME"))

    return Feed(entries=tuple(entries), generated_at=generated_at or _EPOCH, **metadata)
