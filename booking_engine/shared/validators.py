"""Shared validation utilities"""

import re
from datetime import time
from typing import Optional

# Accepts both HH:MM and HH:MM:SS as stored by some clients
HHMMSS_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(:[0-5]\d)?$")


def validate_hhmm(value: Optional[str]) -> Optional[str]:
    """
    Validate a wall-clock time string.

    Args:
        value: Time string in HH:MM (or HH:MM:SS) format

    Returns:
        Normalized HH:MM string

    Raises:
        ValueError: If the time format is invalid
    """
    if value is None:
        return value

    value = value.strip()
    if not HHMMSS_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format")

    return value[:5]


def parse_hhmm(value: str) -> time:
    """Parse an HH:MM string into a time object"""
    normalized = validate_hhmm(value)
    hour, minute = normalized.split(":")
    return time(int(hour), int(minute))


def validate_weekdays(days: Optional[list[int]]) -> Optional[list[int]]:
    """
    Validate a weekday set (0 = Monday ... 6 = Sunday).

    Returns:
        Sorted, de-duplicated list or None when no restriction applies
    """
    if not days:
        return None

    for day in days:
        if day < 0 or day > 6:
            raise ValueError("Weekday must be between 0 (Monday) and 6 (Sunday)")

    return sorted(set(days))


def validate_percent(value: Optional[int]) -> Optional[int]:
    """Validate a 0..100 percentage"""
    if value is None:
        return value
    if value < 0 or value > 100:
        raise ValueError("Percentage must be between 0 and 100")
    return value
