from datetime import date, datetime, time, timedelta

import pytest
import pytz

from schedulefeed.core.temporal import (
    Window,
    at_date,
    attach_timezone,
    check_instant,
    default_window,
    format_date,
    format_datetime,
    format_instant,
    make_date,
    make_instant,
    normalize_time_string,
    parse_date,
    parse_time,
    resolve_timezone,
    shift,
    to_utc,
    tzid_of,
)
from schedulefeed.exceptions.errors import InvalidDate, TimezoneResolutionError


def test_make_date_rejects_month_13() -> None:
    with pytest.raises(InvalidDate):
        make_date(2024, 13, 1)


def test_make_instant_rejects_out_of_range_units(tokyo) -> None:
    with pytest.raises(InvalidDate):
        make_instant(2023, 2, 29, 10, 0, tz=tokyo)
    with pytest.raises(InvalidDate):
        make_instant(2024, 1, 1, 24, 0, tz=tokyo)


def test_make_instant_localizes_wall_clock(tokyo) -> None:
    instant = make_instant(2024, 1, 1, 18, 0, tz=tokyo)
    assert to_utc(instant) == datetime(2024, 1, 1, 9, 0, tzinfo=pytz.utc)


@pytest.mark.parametrize(
    "start, expected",
    [
        (date(2023, 1, 31), date(2023, 2, 28)),
        (date(2024, 1, 31), date(2024, 2, 29)),
        (date(2024, 3, 31), date(2024, 4, 30)),
        (date(2024, 12, 31), date(2025, 1, 31)),
    ],
)
def test_shift_month_clamps_to_last_day(start, expected) -> None:
    assert shift(start, "months", 1) == expected


def test_shift_year_from_leap_day() -> None:
    assert shift(date(2024, 2, 29), "years", 1) == date(2025, 2, 28)
    assert shift(date(2024, 2, 29), "years", 4) == date(2028, 2, 29)


def test_shift_keeps_wall_clock_across_dst(berlin) -> None:
    before = attach_timezone(berlin, datetime(2024, 3, 30, 18, 0))
    after = shift(before, "days", 1)
    assert after.hour == 18
    assert after.utcoffset() == timedelta(hours=2)
    assert to_utc(after) - to_utc(before) == timedelta(hours=23)


def test_shift_rejects_unknown_unit() -> None:
    with pytest.raises(ValueError):
        shift(date(2024, 1, 1), "fortnights", 1)


def test_attach_timezone_nonexistent_time_uses_offset_before_gap(berlin) -> None:
    value = attach_timezone(berlin, datetime(2024, 3, 31, 2, 30))
    assert to_utc(value) == datetime(2024, 3, 31, 1, 30, tzinfo=pytz.utc)


def test_attach_timezone_ambiguous_time_uses_first_occurrence(berlin) -> None:
    value = attach_timezone(berlin, datetime(2024, 10, 27, 2, 30))
    assert to_utc(value) == datetime(2024, 10, 27, 0, 30, tzinfo=pytz.utc)


def test_at_date_moves_wall_clock_to_another_day(tokyo) -> None:
    anchor = attach_timezone(tokyo, datetime(2024, 1, 1, 18, 0))
    moved = at_date(anchor, date(2024, 2, 10))
    assert moved.date() == date(2024, 2, 10)
    assert moved.time() == time(18, 0)
    assert at_date(date(2024, 1, 1), date(2024, 2, 10)) == date(2024, 2, 10)


def test_check_instant_rejects_naive_datetime() -> None:
    with pytest.raises(InvalidDate):
        check_instant(datetime(2024, 1, 1, 18, 0))
    with pytest.raises(InvalidDate):
        check_instant("2024-01-01")


def test_rfc5545_encodings(tokyo) -> None:
    instant = attach_timezone(tokyo, datetime(2024, 1, 1, 18, 0, 5))
    assert format_date(date(2024, 1, 5)) == "20240105"
    assert format_datetime(instant) == "20240101T090005Z"
    assert format_datetime(instant, utc=False) == "20240101T180005"
    assert format_instant(instant) == "20240101T090005Z"
    assert format_instant(date(2024, 1, 5)) == "20240105"
    assert tzid_of(instant) == "Asia/Tokyo"


def test_resolve_timezone_names_and_abbreviations() -> None:
    assert resolve_timezone("JST").zone == "Asia/Tokyo"
    assert resolve_timezone("Europe/Berlin").zone == "Europe/Berlin"
    assert resolve_timezone("utc") is pytz.utc


def test_resolve_timezone_unknown_name() -> None:
    with pytest.raises(TimezoneResolutionError):
        resolve_timezone("Mars/Olympus_Mons")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("18:00h", "18:00"),
        ("18h30", "18:30"),
        ("18.30", "18:30"),
        ("7", "07:00"),
        ("6:30 PM", "6:30 PM"),
    ],
)
def test_normalize_time_string(raw, expected) -> None:
    assert normalize_time_string(raw) == expected


def test_parse_time_formats() -> None:
    assert parse_time("18h30") == time(18, 30)
    assert parse_time("6:30 PM") == time(18, 30)
    assert parse_time(time(9, 15)) == time(9, 15)


def test_parse_time_rejects_garbage() -> None:
    with pytest.raises(InvalidDate):
        parse_time("25:00")
    with pytest.raises(InvalidDate):
        parse_time("")


def test_parse_date_formats() -> None:
    assert parse_date("2024-01-08") == date(2024, 1, 8)
    assert parse_date("March 30, 2024") == date(2024, 3, 30)
    assert parse_date(date(2024, 1, 8)) == date(2024, 1, 8)


def test_parse_date_rejects_impossible_day() -> None:
    with pytest.raises(InvalidDate):
        parse_date("2024-02-30")
    with pytest.raises(InvalidDate):
        parse_date(None)


def test_window_timed_bounds_are_half_open() -> None:
    window = Window(
        start=datetime(2024, 1, 1, tzinfo=pytz.utc),
        end=datetime(2024, 2, 1, tzinfo=pytz.utc),
    )
    assert window.includes(datetime(2024, 1, 1, tzinfo=pytz.utc))
    assert not window.includes(datetime(2024, 2, 1, tzinfo=pytz.utc))
    assert window.is_past(datetime(2024, 2, 1, tzinfo=pytz.utc))
    assert not window.includes(datetime(2023, 12, 31, 23, 59, tzinfo=pytz.utc))


def test_window_all_day_bounds() -> None:
    window = Window(
        start=datetime(2024, 1, 1, tzinfo=pytz.utc),
        end=datetime(2024, 2, 1, 12, 0, tzinfo=pytz.utc),
    )
    assert window.includes(date(2024, 1, 1))
    assert window.includes(date(2024, 2, 1))
    assert window.is_past(date(2024, 2, 2))
    assert not window.includes(date(2023, 12, 31))


def test_window_rejects_bad_bounds() -> None:
    start = datetime(2024, 1, 1, tzinfo=pytz.utc)
    with pytest.raises(ValueError):
        Window(start=start, end=start)
    with pytest.raises(ValueError):
        Window(start=datetime(2024, 1, 1), end=datetime(2024, 2, 1))


def test_default_window_spans_lookback_and_horizon(now) -> None:
    window = default_window(now, 2, 12)
    assert window.start == datetime(2023, 11, 1, tzinfo=pytz.utc)
    assert window.end == datetime(2025, 1, 1, tzinfo=pytz.utc)
    with pytest.raises(ValueError):
        default_window(datetime(2024, 1, 1), 2, 12)
