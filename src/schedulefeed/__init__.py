"""
schedulefeed - Schedule to iCalendar feed generator

Turns recurring schedule records, with per-occurrence overrides and
cancellations, into a deterministic RFC 5545 calendar feed.
"""

__version__ = "1.0.0"

# Public API - import commonly used components
from schedulefeed.config.settings import FEED_CONFIG, FeedConfig, load_feed_config
from schedulefeed.exceptions.errors import (
    FeedError,
    DataIntegrityError,
    InvalidDate,
    InvalidEvent,
    UnmatchedException,
    ExceptionOrderingConflict,
    SerializationError,
)
from schedulefeed.core.event_model import CalendarEvent
from schedulefeed.core.feed import Feed, FeedEntry, RecordWarning, assemble
from schedulefeed.core.generator import generate_feed
from schedulefeed.core.ics_builder import read_feed, serialize
from schedulefeed.core.recurrence import RecurrenceRule, expand
from schedulefeed.core.temporal import Window, default_window

__all__ = [
    # Version
    "__version__",
    # Config
    "FEED_CONFIG",
    "FeedConfig",
    "load_feed_config",
    # Exceptions
    "FeedError",
    "DataIntegrityError",
    "InvalidDate",
    "InvalidEvent",
    "UnmatchedException",
    "ExceptionOrderingConflict",
    "SerializationError",
    # Core
    "CalendarEvent",
    "Feed",
    "FeedEntry",
    "RecordWarning",
    "assemble",
    "generate_feed",
    "read_feed",
    "serialize",
    "RecurrenceRule",
    "expand",
    "Window",
    "default_window",
]
