"""
The names module holds the naming rules for tree entries: validation of user-proposed names and
allocation of collision-free default names for newly created entries.

Both functions are pure. They run before the engine touches storage, so a bad name never causes a
side effect.
"""

import re
from collections.abc import Collection

from nool.common import NoolExpectedError

MAX_NAME_LENGTH = 255

INVALID_NAME_CHARS_REGEX = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
RESERVED_NAMES_REGEX = re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])$", re.IGNORECASE)


class ValidationError(NoolExpectedError, ValueError):
    pass


class InvalidNameError(ValidationError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def validate_name(name: object) -> str:
    """
    Check a proposed entry name and return it trimmed. Raises InvalidNameError with a human readable
    reason otherwise. The rules are applied in order, so the reason always names the first rule
    that failed.
    """
    if not name or not isinstance(name, str):
        raise InvalidNameError("Name is required")
    trimmed = name.strip()
    if not trimmed:
        raise InvalidNameError("Name cannot be empty")
    if len(trimmed) > MAX_NAME_LENGTH:
        raise InvalidNameError(f"Name is too long (max {MAX_NAME_LENGTH} characters)")
    if INVALID_NAME_CHARS_REGEX.search(trimmed):
        raise InvalidNameError("Name contains invalid characters")
    if RESERVED_NAMES_REGEX.match(trimmed):
        raise InvalidNameError("Name is reserved")
    return trimmed


def allocate_name(base: str, existing: Collection[str], extension: str = "") -> str:
    """
    Return the first free name in the sequence `{base}{ext}`, `{base}1{ext}`, `{base}2{ext}`, ...
    Membership is exact: no case folding happens here.
    """
    taken = set(existing)
    candidate = base + extension
    counter = 1
    while candidate in taken:
        candidate = f"{base}{counter}{extension}"
        counter += 1
    return candidate
