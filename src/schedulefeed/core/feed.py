"""Feed assembly: turns validated events into materialized calendar entries."""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Iterator, List, Optional, Tuple

from schedulefeed.config.constants import (
    DEFAULT_CALENDAR_NAME,
    DEFAULT_REFRESH_HOURS,
    ICS_PRODID,
)
from schedulefeed.config.settings import FEED_CONFIG, FeedConfig
from schedulefeed.core.event_model import CalendarEvent
from schedulefeed.core.recurrence import Replacement, expand
from schedulefeed.core.temporal import Instant, Window, format_instant, is_all_day, to_utc
from schedulefeed.exceptions.errors import DataIntegrityError, FeedError, InvalidEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedEntry:
    """One materialized occurrence, ready to become a VEVENT."""

    uid: str
    start: Instant
    end: Instant
    summary: str
    location: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class RecordWarning:
    """A record or event left out of the feed, and why."""

    message: str
    error: Optional[FeedError] = field(default=None, compare=False)
    uid: Optional[str] = None
    index: Optional[int] = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Feed:
    """Entries plus calendar-level metadata for one generation pass."""

    entries: Tuple[FeedEntry, ...]
    generated_at: datetime
    product_id: str = ICS_PRODID
    calendar_name: str = DEFAULT_CALENDAR_NAME
    refresh_interval: timedelta = timedelta(hours=DEFAULT_REFRESH_HOURS)
    warnings: Tuple[RecordWarning, ...] = field(default=(), compare=False)

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))
        object.__setattr__(self, "warnings", tuple(self.warnings))
        if not isinstance(self.generated_at, datetime) or self.generated_at.utcoffset() is None:
            raise ValueError("generated_at must be a timezone-aware datetime")


def occurrence_uid(identity: str, instant: Instant, domain: str = FEED_CONFIG.uid_domain) -> str:
    """Stable UID for one occurrence of an event.

    The same event identity and original occurrence instant always give the
    same UID, so clients see regenerated feeds as updates.
    """
    seed = f"{identity}|{format_instant(instant)}"
    digest = hashlib.sha1(seed.encode("utf-8")).hexdigest()
    return f"{digest}@{domain}"


def _end_of(start: Instant, duration: timedelta) -> Instant:
    if is_all_day(start):
        return start + duration
    return to_utc(start) + duration


def _entry(
    event: CalendarEvent,
    original_start: Instant,
    start: Instant,
    replacement: Optional[Replacement],
    config: FeedConfig,
) -> FeedEntry:
    summary = event.title
    location = event.location
    description = event.description
    duration = event.effective_duration
    if replacement is not None:
        summary = replacement.summary or summary
        location = replacement.location or location
        description = replacement.description or description
        if replacement.duration is not None:
            duration = replacement.duration
    return FeedEntry(
        uid=occurrence_uid(event.uid, original_start, config.uid_domain),
        start=start,
        end=_end_of(start, duration),
        summary=summary,
        location=location,
        description=description,
        url=event.url,
    )


def _materialize(event: CalendarEvent, window: Window, config: FeedConfig) -> Iterator[FeedEntry]:
    if event.rule is None:
        if window.includes(event.start):
            yield _entry(event, event.start, event.start, None, config)
        return
    for occurrence in expand(event.rule, event.start, event.exceptions, window, uid=event.uid):
        yield _entry(event, occurrence.original_start, occurrence.start, occurrence.replacement, config)


def _warning(index: int, event: CalendarEvent, error: FeedError) -> RecordWarning:
    message = f"Skipping '{event.title}' ({event.uid}): {error}"
    logger.warning(message)
    return RecordWarning(message=message, error=error, uid=event.uid, index=index)


def assemble(
    events: Iterable[CalendarEvent],
    window: Window,
    now: datetime,
    config: FeedConfig = FEED_CONFIG,
) -> Feed:
    """Expand events inside a window into a Feed.

    Events whose expansion fails a data-integrity check are left out and
    reported in ``Feed.warnings``; a repeated event identity keeps the first
    event. Entries keep the input order of their events and are ascending
    within each event.

    Args:
        events: Validated events.
        window: Bounds recurrence expansion and single-event inclusion.
        now: Generation time, written as DTSTAMP.
        config: Feed metadata and UID domain.

    Returns:
        The assembled Feed. Warning indexes are positions in ``events``.

    Raises:
        ValueError: If ``now`` is naive.
    """
    if not isinstance(now, datetime) or now.utcoffset() is None:
        raise ValueError("now must be a timezone-aware datetime")

    entries: List[FeedEntry] = []
    warnings: List[RecordWarning] = []
    seen = set()

    for index, event in enumerate(events):
        if event.uid in seen:
            error = InvalidEvent("uid", "identity already used by an earlier event", event.uid)
            warnings.append(_warning(index, event, error))
            continue
        seen.add(event.uid)

        try:
            materialized = list(_materialize(event, window, config))
        except DataIntegrityError as e:
            warnings.append(_warning(index, event, e))
            continue

        logger.debug("Event %s produced %d entries", event.uid, len(materialized))
        entries.extend(materialized)

    return Feed(
        entries=tuple(entries),
        generated_at=now,
        product_id=config.product_id,
        calendar_name=config.calendar_name,
        refresh_interval=config.refresh_interval,
        warnings=tuple(warnings),
    )
