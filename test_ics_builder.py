from datetime import date, datetime, timedelta

import pytest
import pytz

from schedulefeed.core.feed import Feed, FeedEntry
from schedulefeed.core.ics_builder import (
    content_line,
    escape_text,
    fold_line,
    format_duration,
    read_feed,
    serialize,
)
from schedulefeed.core.temporal import attach_timezone, format_date, format_datetime
from schedulefeed.exceptions.errors import SerializationError

CRLF = "\r\n"


def unfold(lines) -> str:
    return lines[0] + "".join(line[1:] for line in lines[1:])


def physical_lines(text: str):
    assert text.endswith(CRLF)
    return text[: -len(CRLF)].split(CRLF)


@pytest.fixture
def generated_at() -> datetime:
    return datetime(2024, 1, 1, 12, 0, tzinfo=pytz.utc)


@pytest.fixture
def feed(tokyo, generated_at) -> Feed:
    return Feed(
        entries=(
            FeedEntry(
                uid="abc@schedulefeed",
                start=attach_timezone(tokyo, datetime(2024, 1, 1, 18, 0)),
                end=attach_timezone(tokyo, datetime(2024, 1, 1, 19, 30)),
                summary="Karate, adults; bring belt",
                location="Main hall",
                description="Warm-up at 17:50\nSparring after class",
                url="https://dojo.example.org/schedule?week=1",
            ),
            FeedEntry(
                uid="def@schedulefeed",
                start=date(2024, 8, 1),
                end=date(2024, 8, 4),
                summary="Summer camp" + " with a very long title" * 6,
            ),
        ),
        generated_at=generated_at,
        calendar_name="Dojo",
    )


def test_escape_text() -> None:
    assert escape_text("a,b;c\\d\ne") == "a\\,b\\;c\\\\d\\ne"
    assert escape_text("one\r\ntwo") == "one\\ntwo"
    assert escape_text("tab\tok") == "tab\tok"


def test_escape_text_rejects_control_characters() -> None:
    with pytest.raises(SerializationError):
        escape_text("bell\x07")
    with pytest.raises(SerializationError):
        escape_text("del\x7f")


def test_unencodable_text_raises_serialization_error() -> None:
    with pytest.raises(SerializationError):
        escape_text("lone \ud800")
    with pytest.raises(SerializationError):
        content_line("URL", "https://example.org/\ud800", text=False)


def test_value_encoders_use_rfc5545_forms(tokyo) -> None:
    assert escape_text("lone\rreturn") == "lone\\nreturn"
    assert content_line("DTSTART", format_date(date(2024, 8, 1)), ";VALUE=DATE", text=False) == [
        "DTSTART;VALUE=DATE:20240801"
    ]
    instant = attach_timezone(tokyo, datetime(2024, 1, 1, 18, 0))
    assert format_datetime(instant) == "20240101T090000Z"


def test_long_summary_folds_to_75_octets() -> None:
    summary = "x" * 200
    lines = content_line("SUMMARY", summary)
    assert len(lines) > 1
    assert all(len(line.encode("utf-8")) <= 75 for line in lines)
    assert all(line.startswith(" ") for line in lines[1:])
    assert len(lines[0]) == 75
    assert unfold(lines) == "SUMMARY:" + summary


def test_fold_never_splits_multibyte_characters() -> None:
    summary = "日本語のクラス" * 20
    lines = content_line("SUMMARY", summary)
    assert all(len(line.encode("utf-8")) <= 75 for line in lines)
    assert unfold(lines) == "SUMMARY:" + summary


def test_fold_keeps_escape_pairs_together() -> None:
    # "SUMMARY:" plus 66 characters fills 74 octets, the escaped comma would straddle
    lines = content_line("SUMMARY", "a" * 66 + ",b")
    assert lines[0] == "SUMMARY:" + "a" * 66
    assert lines[1] == " \\,b"
    assert not any(line.endswith("\\") for line in lines)


def test_fold_short_line_is_untouched() -> None:
    assert fold_line("SUMMARY:Karate") == ["SUMMARY:Karate"]


def test_fold_rejects_malformed_escapes() -> None:
    with pytest.raises(SerializationError):
        fold_line("SUMMARY:dangling\\", escaped=True)
    with pytest.raises(SerializationError):
        fold_line("SUMMARY:bad\\x", escaped=True)


def test_verbatim_values_reject_line_breaks() -> None:
    with pytest.raises(SerializationError):
        content_line("URL", "https://example.org\n/x", text=False)


def test_format_duration() -> None:
    assert format_duration(timedelta(hours=12)) == "PT12H"
    assert format_duration(timedelta(days=1)) == "P1D"


def test_calendar_header_order(feed) -> None:
    lines = physical_lines(serialize(feed))
    assert lines[:9] == [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//schedulefeed//Schedule Feed//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "NAME:Dojo",
        "X-WR-CALNAME:Dojo",
        "REFRESH-INTERVAL;VALUE=DURATION:PT12H",
        "X-PUBLISHED-TTL:PT12H",
    ]
    assert lines[-1] == "END:VCALENDAR"


def test_event_property_order(feed) -> None:
    lines = physical_lines(serialize(feed))
    first = lines.index("BEGIN:VEVENT")
    last = lines.index("END:VEVENT")
    names = [line.split(":", 1)[0].split(";", 1)[0] for line in lines[first + 1:last]]
    assert names == ["UID", "DTSTAMP", "DTSTART", "DTEND", "SUMMARY", "LOCATION", "DESCRIPTION", "URL"]
    assert lines[first + 1:first + 5] == [
        "UID:abc@schedulefeed",
        "DTSTAMP:20240101T120000Z",
        "DTSTART:20240101T090000Z",
        "DTEND:20240101T103000Z",
    ]
    assert "SUMMARY:Karate\\, adults\\; bring belt" in lines
    assert "DESCRIPTION:Warm-up at 17:50\\nSparring after class" in lines


def test_all_day_entry_uses_date_values(feed) -> None:
    lines = physical_lines(serialize(feed))
    assert "DTSTART;VALUE=DATE:20240801" in lines
    assert "DTEND;VALUE=DATE:20240804" in lines


def test_every_physical_line_within_limit(feed) -> None:
    for line in physical_lines(serialize(feed)):
        assert len(line.encode("utf-8")) <= 75


def test_serialize_is_deterministic(feed, generated_at) -> None:
    rebuilt = Feed(entries=list(feed.entries), generated_at=generated_at, calendar_name="Dojo")
    assert serialize(feed) == serialize(feed)
    assert serialize(rebuilt) == serialize(feed)


def test_serialize_rejects_unencodable_entry(generated_at) -> None:
    entry = FeedEntry(uid="x@d", start=date(2024, 1, 1), end=date(2024, 1, 2), summary="bad\x00")
    with pytest.raises(SerializationError):
        serialize(Feed(entries=[entry], generated_at=generated_at))


def test_serialize_rejects_naive_instant(generated_at) -> None:
    entry = FeedEntry(
        uid="x@d",
        start=datetime(2024, 1, 1, 18, 0),
        end=datetime(2024, 1, 1, 19, 0),
        summary="Naive",
    )
    with pytest.raises(SerializationError):
        serialize(Feed(entries=[entry], generated_at=generated_at))


def test_round_trip(feed) -> None:
    text = serialize(feed)
    parsed = read_feed(text)
    assert serialize(parsed) == text
    assert [entry.uid for entry in parsed.entries] == ["abc@schedulefeed", "def@schedulefeed"]
    assert parsed.entries[0].summary == "Karate, adults; bring belt"
    assert parsed.entries[0].description == "Warm-up at 17:50\nSparring after class"
    assert parsed.entries[1].start == date(2024, 8, 1)
    assert parsed.calendar_name == "Dojo"
    assert parsed.refresh_interval == timedelta(hours=12)


def test_round_trip_empty_feed(generated_at) -> None:
    text = serialize(Feed(entries=(), generated_at=generated_at))
    assert serialize(read_feed(text.encode("utf-8"))) == text


def test_feed_requires_aware_generation_time() -> None:
    with pytest.raises(ValueError):
        Feed(entries=(), generated_at=datetime(2024, 1, 1))
