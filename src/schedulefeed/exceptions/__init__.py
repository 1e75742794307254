"""Custom exceptions for schedulefeed."""

from schedulefeed.exceptions.errors import (
    FeedError,
    DataIntegrityError,
    InvalidDate,
    TimezoneResolutionError,
    InvalidEvent,
    UnmatchedException,
    ExceptionOrderingConflict,
    SerializationError,
)

__all__ = [
    "FeedError",
    "DataIntegrityError",
    "InvalidDate",
    "TimezoneResolutionError",
    "InvalidEvent",
    "UnmatchedException",
    "ExceptionOrderingConflict",
    "SerializationError",
]
