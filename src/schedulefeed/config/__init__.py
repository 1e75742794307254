"""Configuration module for schedulefeed."""

from schedulefeed.config.settings import (
    FEED_CONFIG,
    FeedConfig,
    config_from_mapping,
    load_feed_config,
)
from schedulefeed.config.constants import (
    ICS_PRODID,
    ICS_VERSION,
    MAX_LINE_OCTETS,
    DEFAULT_UID_DOMAIN,
)

__all__ = [
    "FEED_CONFIG",
    "FeedConfig",
    "config_from_mapping",
    "load_feed_config",
    "ICS_PRODID",
    "ICS_VERSION",
    "MAX_LINE_OCTETS",
    "DEFAULT_UID_DOMAIN",
]
