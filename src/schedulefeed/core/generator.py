"""Entry point consumed by the HTTP layer: records in, ICS text out."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Mapping, Optional, Tuple

from schedulefeed.config.settings import FEED_CONFIG, FeedConfig
from schedulefeed.core.event_model import CalendarEvent
from schedulefeed.core.feed import RecordWarning, assemble
from schedulefeed.core.ics_builder import serialize
from schedulefeed.core.temporal import Window, default_window
from schedulefeed.exceptions.errors import DataIntegrityError

logger = logging.getLogger(__name__)


def _record_label(record) -> str:
    if isinstance(record, Mapping):
        return str(record.get("title") or record.get("uid") or "Unknown")
    return "Unknown"


def convert_records(
    records: Iterable[Mapping],
    config: FeedConfig = FEED_CONFIG,
) -> Tuple[List[CalendarEvent], List[int], List[RecordWarning]]:
    """Convert raw records into events, collecting failures instead of raising.

    Args:
        records: Loosely typed schedule records.
        config: Supplies the default timezone and event duration.

    Returns:
        Tuple of (events, record index of each event, warnings).
    """
    events: List[CalendarEvent] = []
    positions: List[int] = []
    warnings: List[RecordWarning] = []

    for index, record in enumerate(records):
        try:
            event = CalendarEvent.from_dict(
                record,
                default_timezone=config.default_timezone,
                default_duration=config.default_duration,
            )
        except DataIntegrityError as e:
            label = _record_label(record)
            message = f"Skipping record {index + 1} ('{label}'): {e}"
            logger.warning(message)
            uid = getattr(e, "uid", None)
            if uid is None and isinstance(record, Mapping) and isinstance(record.get("uid"), str):
                uid = record["uid"]
            warnings.append(RecordWarning(message=message, error=e, uid=uid, index=index))
            continue
        events.append(event)
        positions.append(index)

    return events, positions, warnings


def generate_feed(
    records: Iterable[Mapping],
    window: Optional[Window],
    now: datetime,
    config: FeedConfig = FEED_CONFIG,
) -> Tuple[str, List[RecordWarning]]:
    """Generate the ICS text for a set of schedule records.

    Bad records are left out and reported; the rest of the calendar is
    still produced.

    Args:
        records: Loosely typed schedule records.
        window: Expansion window; defaults to the configured lookback and
            horizon around ``now``.
        now: Generation time (timezone aware).
        config: Feed settings.

    Returns:
        Tuple of (ics_text, warnings ordered by record index).

    Raises:
        SerializationError: If encoding fails; the pass is aborted.
        ValueError: If ``now`` is naive.
    """
    if window is None:
        window = default_window(now, config.lookback_months, config.horizon_months)

    events, positions, warnings = convert_records(records, config)
    feed = assemble(events, window, now, config)
    for warning in feed.warnings:
        warnings.append(replace(warning, index=positions[warning.index]))
    warnings.sort(key=lambda w: w.index)

    ics_text = serialize(feed)
    logger.info(
        "Generated %d calendar entries from %d events (%d skipped)",
        len(feed.entries), len(events), len(warnings),
    )
    return ics_text, warnings
