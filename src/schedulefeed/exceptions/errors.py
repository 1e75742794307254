"""Exception hierarchy for schedulefeed.

Data-integrity errors describe a bad schedule record and are reported per
record; the feed is still generated from the remaining records.
SerializationError means a validated event reached the encoder in a state
validation should have rejected, and aborts the generation pass.
"""

from typing import Optional


class FeedError(Exception):
    """Base class for all schedulefeed errors."""


class DataIntegrityError(FeedError):
    """A schedule record or event cannot be turned into calendar entries."""


class InvalidDate(DataIntegrityError):
    """A calendar date or time was built from out-of-range units or bad text."""


class TimezoneResolutionError(DataIntegrityError):
    """A timezone name could not be resolved."""

    def __init__(self, tz_name: str):
        self.tz_name = tz_name
        super().__init__(f"Unknown timezone '{tz_name}'")


class InvalidEvent(DataIntegrityError):
    """An event violates one of its construction invariants.

    Attributes:
        uid: Identity of the offending event, if known.
        field: Name of the field whose invariant failed.
        reason: Human readable description of the violation.
    """

    def __init__(self, field: str, reason: str, uid: Optional[str] = None):
        self.uid = uid
        self.field = field
        self.reason = reason
        label = f"Event '{uid}'" if uid else "Event"
        super().__init__(f"{label}: invalid {field}: {reason}")


class UnmatchedException(DataIntegrityError):
    """An occurrence exception does not refer to a real occurrence of its rule."""

    def __init__(self, key, uid: Optional[str] = None):
        self.key = key
        self.uid = uid
        label = f"event '{uid}'" if uid else "the recurrence rule"
        super().__init__(f"Exception at {key} matches no occurrence of {label}")


class ExceptionOrderingConflict(DataIntegrityError):
    """A moved occurrence would break the ascending order of the series."""

    def __init__(self, key, start, previous, uid: Optional[str] = None):
        self.key = key
        self.start = start
        self.previous = previous
        self.uid = uid
        super().__init__(
            f"Occurrence {key} moved to {start} does not follow the previous "
            f"occurrence at {previous}"
        )


class SerializationError(FeedError):
    """A value reached the ICS encoder that cannot be legally written."""
