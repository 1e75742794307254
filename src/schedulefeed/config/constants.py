"""Centralized constants for schedulefeed."""

# ICS calendar constants
ICS_PRODID = "-//schedulefeed//Schedule Feed//EN"
ICS_VERSION = "2.0"
ICS_CALSCALE = "GREGORIAN"
ICS_METHOD = "PUBLISH"
ICS_LINE_BREAK = "\r\n"
MAX_LINE_OCTETS = 75

# Feed defaults
DEFAULT_CALENDAR_NAME = "Schedule"
DEFAULT_UID_DOMAIN = "schedulefeed"
DEFAULT_LOOKBACK_MONTHS = 2
DEFAULT_HORIZON_MONTHS = 12
DEFAULT_REFRESH_HOURS = 12
DEFAULT_TIMEZONE = "local"
DEFAULT_DURATION_MINUTES = 60

# Environment variables read by load_feed_config()
ENV_PREFIX = "SCHEDULEFEED_"

# Record fields every schedule record must carry
REQUIRED_RECORD_FIELDS = frozenset({"uid", "title", "date"})

# RFC 5545 weekday codes, Monday first to match datetime.weekday()
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

# Timezone abbreviation to IANA zone mapping
# Maps common (and DST) abbreviations to canonical IANA zones that understand DST
ABBR_TO_TZ = {
    # North America
    "EST": "America/New_York",
    "EDT": "America/New_York",
    "CST": "America/Chicago",
    "CDT": "America/Chicago",
    "MST": "America/Denver",
    "MDT": "America/Denver",
    "PST": "America/Los_Angeles",
    "PDT": "America/Los_Angeles",
    # United Kingdom / Europe
    "GMT": "Europe/London",
    "BST": "Europe/London",
    "CET": "Europe/Paris",
    "CEST": "Europe/Paris",
    "EET": "Europe/Athens",
    "EEST": "Europe/Athens",
    # Australia
    "AEST": "Australia/Sydney",
    "AEDT": "Australia/Sydney",
    # Asia
    "IST": "Asia/Kolkata",  # India (UTC+5:30 – no DST)
    "JST": "Asia/Tokyo",
    "KST": "Asia/Seoul",
    # Universal
    "UTC": "UTC",
    "Z": "UTC",
}
