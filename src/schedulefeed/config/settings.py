"""Feed configuration."""

import logging
import os
from dataclasses import dataclass, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import dotenv_values

from schedulefeed.config.constants import (
    DEFAULT_CALENDAR_NAME,
    DEFAULT_DURATION_MINUTES,
    DEFAULT_HORIZON_MONTHS,
    DEFAULT_LOOKBACK_MONTHS,
    DEFAULT_REFRESH_HOURS,
    DEFAULT_TIMEZONE,
    DEFAULT_UID_DOMAIN,
    ENV_PREFIX,
    ICS_PRODID,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedConfig:
    """Settings for one feed generation pass."""

    product_id: str = ICS_PRODID
    calendar_name: str = DEFAULT_CALENDAR_NAME
    uid_domain: str = DEFAULT_UID_DOMAIN
    lookback_months: int = DEFAULT_LOOKBACK_MONTHS
    horizon_months: int = DEFAULT_HORIZON_MONTHS
    refresh_hours: int = DEFAULT_REFRESH_HOURS
    default_timezone: str = DEFAULT_TIMEZONE
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES

    @property
    def refresh_interval(self) -> timedelta:
        return timedelta(hours=self.refresh_hours)

    @property
    def default_duration(self) -> timedelta:
        return timedelta(minutes=self.default_duration_minutes)


FEED_CONFIG = FeedConfig()


def _coerce(name: str, raw: str, default):
    """Convert a raw string setting to the type of its default."""
    if isinstance(default, int):
        try:
            return int(raw.strip())
        except ValueError:
            raise ValueError(f"Setting {ENV_PREFIX}{name.upper()} must be an integer, got '{raw}'") from None
    return raw.strip()


def config_from_mapping(values: Mapping[str, Optional[str]], base: FeedConfig = FEED_CONFIG) -> FeedConfig:
    """Overlay ``SCHEDULEFEED_*`` entries from a mapping onto a base config.

    Args:
        values: Mapping of variable names to raw string values.
        base: Config supplying values for anything not present.

    Returns:
        A new FeedConfig.

    Raises:
        ValueError: If a numeric setting cannot be parsed.
    """
    updates = {}
    for f in fields(FeedConfig):
        raw = values.get(f"{ENV_PREFIX}{f.name.upper()}")
        if raw is None or raw == "":
            continue
        updates[f.name] = _coerce(f.name, raw, getattr(base, f.name))
    return replace(base, **updates)


def load_feed_config(env_file: Optional[Union[str, Path]] = None) -> FeedConfig:
    """Build a FeedConfig from an optional .env file and the process environment.

    Environment variables take precedence over the file.

    Args:
        env_file: Optional path to a dotenv file.

    Returns:
        The resulting FeedConfig.
    """
    config = FEED_CONFIG
    if env_file is not None:
        path = Path(env_file)
        if path.exists():
            # Parse without mutating os.environ
            config = config_from_mapping(dotenv_values(path), config)
            logger.debug("Loaded feed settings from %s", path)
        else:
            logger.warning("Settings file %s does not exist, ignoring", path)
    return config_from_mapping(os.environ, config)
