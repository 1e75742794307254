"""Text checks shared by validation and encoding."""

from typing import Optional

# Newline and tab are legal in TEXT values; every other C0 control and DEL is not.
ALLOWED_CONTROLS = frozenset({"\n", "\r", "\t"})


def find_control_character(value: str) -> Optional[str]:
    """Return the first control character that cannot appear in an ICS value.

    Args:
        value: Text to inspect.

    Returns:
        The offending character, or None when the text is clean.
    """
    for char in value:
        code = ord(char)
        if (code < 0x20 and char not in ALLOWED_CONTROLS) or code == 0x7F:
            return char
    return None


def is_utf8_encodable(value: str) -> bool:
    """Return False for text holding lone surrogates or other unencodable code points."""
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True
