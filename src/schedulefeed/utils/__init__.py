"""Utility functions for schedulefeed."""

from schedulefeed.utils.text import find_control_character, is_utf8_encodable

__all__ = [
    "find_control_character",
    "is_utf8_encodable",
]
