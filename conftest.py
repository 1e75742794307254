from datetime import datetime

import pytest
import pytz

from schedulefeed.core.temporal import Window


@pytest.fixture
def tokyo():
    return pytz.timezone("Asia/Tokyo")


@pytest.fixture
def berlin():
    return pytz.timezone("Europe/Berlin")


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 1, 1, tzinfo=pytz.utc)


@pytest.fixture
def window() -> Window:
    return Window(
        start=datetime(2023, 12, 1, tzinfo=pytz.utc),
        end=datetime(2025, 1, 1, tzinfo=pytz.utc),
    )


@pytest.fixture
def weekly_record() -> dict:
    """Weekly evening class with one moved and one cancelled session."""
    return {
        "uid": "karate-monday",
        "title": "Karate, adults",
        "date": "2024-01-01",
        "start_time": "18:00",
        "end_time": "19:30",
        "timezone": "Asia/Tokyo",
        "location": "Main hall",
        "rrule": {"freq": "weekly", "count": 4},
        "exceptions": [
            {"date": "2024-01-08", "start_time": "19:00"},
            {"date": "2024-01-22", "cancelled": True},
        ],
    }
