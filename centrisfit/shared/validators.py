"""Shared validation utilities"""

import re
from datetime import date, datetime, time
from typing import Optional

_TIME_OF_DAY = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Reduce a phone number to its digits.

    "+998 (90) 123-45-67" -> "998901234567". Returns None when nothing is
    left, so an empty or punctuation-only value counts as "no phone".
    """
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    return digits or None


def parse_time_of_day(value: str) -> time:
    """Parse "HH:MM" into a time, raising ValueError on anything else"""
    match = _TIME_OF_DAY.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def format_time_of_day(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def combine(day: date, time_of_day: str) -> datetime:
    return datetime.combine(day, parse_time_of_day(time_of_day))
