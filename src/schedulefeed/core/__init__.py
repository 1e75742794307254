"""Core calendar logic for schedulefeed."""

from schedulefeed.core.event_model import CalendarEvent
from schedulefeed.core.feed import Feed, FeedEntry, RecordWarning, assemble, occurrence_uid
from schedulefeed.core.generator import generate_feed
from schedulefeed.core.ics_builder import read_feed, serialize
from schedulefeed.core.recurrence import (
    Frequency,
    OccurrenceException,
    RecurrenceRule,
    Replacement,
    ResolvedOccurrence,
    expand,
)
from schedulefeed.core.temporal import Window, default_window

__all__ = [
    "CalendarEvent",
    "Feed",
    "FeedEntry",
    "RecordWarning",
    "assemble",
    "occurrence_uid",
    "generate_feed",
    "read_feed",
    "serialize",
    "Frequency",
    "OccurrenceException",
    "RecurrenceRule",
    "Replacement",
    "ResolvedOccurrence",
    "expand",
    "Window",
    "default_window",
]
