"""
Small string and hashing helpers shared by the pipeline stages.
"""

import hashlib
import re
from datetime import timedelta
from typing import Union

from .exceptions import ConfigurationError

UTF8_BOM = "\ufeff"

DURATION_UNITS = {
    "second": 1,
    "sec": 1,
    "minute": 60,
    "min": 60,
    "hour": 3600,
    "day": 86400,
    "week": 604800,
    "month": 2592000,   # 30 days
    "year": 31536000,   # 365 days
}

DURATION_PATTERN = re.compile(r'([0-9]+)\s*([a-z]+?)s?\b', re.IGNORECASE)


def md5_hex(value: str) -> str:
    """MD5 hex digest of a string, encoded as UTF-8."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def strip_utf8_bom(value: str) -> str:
    return value[1:] if value.startswith(UTF8_BOM) else value


def replace_once(
    needles: Union[str, list[str]],
    replacements: Union[str, list[str]],
    value: str,
    case_insensitive: bool = False
) -> str:
    """
    Replace only the first occurrence of each needle, in order.

    Args:
        needles: A needle or list of needles
        replacements: A single replacement for every needle, or one per needle
        value: Haystack
        case_insensitive: Match needles without regard to case

    Returns:
        The haystack with each needle replaced at most once
    """
    if isinstance(needles, str):
        needles = [needles]
    for i, needle in enumerate(needles):
        if not needle:
            continue
        if isinstance(replacements, str):
            replacement = replacements
        else:
            replacement = replacements[i] if i < len(replacements) else ""

        if case_insensitive:
            pos = value.lower().find(needle.lower())
        else:
            pos = value.find(needle)
        if pos == -1:
            continue
        value = value[:pos] + replacement + value[pos + len(needle):]
    return value


def parse_duration(value: str) -> timedelta:
    """
    Parse a human duration such as "14 days" or "1 week 2 hours".

    Raises:
        ConfigurationError: When no known unit can be read
    """
    total = 0
    matched = False
    for amount, unit in DURATION_PATTERN.findall(value or ""):
        unit = unit.lower()
        if unit not in DURATION_UNITS:
            raise ConfigurationError(
                f"Unknown duration unit: {unit}", {"value": value}
            )
        total += int(amount) * DURATION_UNITS[unit]
        matched = True

    if not matched:
        raise ConfigurationError(f"Invalid duration: {value!r}", {"value": value})
    return timedelta(seconds=total)
