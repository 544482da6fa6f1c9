"""
Bulk slot generation.

Pure expansion of a schedule description into concrete (date, time window)
pairs; nothing here touches the database. Weekdays use Python numbering:
Monday is 0, Sunday is 6.
"""

from datetime import date, time, timedelta
from typing import Iterable, NamedTuple

from ...shared.validators import format_time_of_day, parse_time_of_day


class TimeWindow(NamedTuple):
    start: time
    end: time

    def label(self) -> str:
        return f"{format_time_of_day(self.start)}-{format_time_of_day(self.end)}"


def parse_window(start: str, end: str) -> TimeWindow:
    """Parse an "HH:MM" pair, rejecting windows that do not move forward"""
    window = TimeWindow(parse_time_of_day(start), parse_time_of_day(end))
    if window.end <= window.start:
        raise ValueError(f"End time {end} must be after start time {start}")
    return window


def expand_dates(date_from: date, date_to: date, weekdays: Iterable[int]) -> list[date]:
    """Every date in [date_from, date_to] whose weekday is selected"""
    selected = set(weekdays)
    dates = []
    current = date_from
    while current <= date_to:
        if current.weekday() in selected:
            dates.append(current)
        current += timedelta(days=1)
    return dates


def split_time_range(start: str, end: str, duration_minutes: int) -> list[TimeWindow]:
    """
    Cut [start, end) into consecutive windows of ``duration_minutes``.

    A trailing remainder shorter than the duration is dropped, so
    09:00-10:30 with 60 minutes gives a single 09:00-10:00 window.
    """
    if duration_minutes <= 0:
        raise ValueError("Slot duration must be positive")

    range_start = parse_time_of_day(start)
    range_end = parse_time_of_day(end)
    start_minutes = range_start.hour * 60 + range_start.minute
    end_minutes = range_end.hour * 60 + range_end.minute

    windows = []
    current = start_minutes
    while current + duration_minutes <= end_minutes:
        slot_end = current + duration_minutes
        windows.append(
            TimeWindow(time(current // 60, current % 60), time(slot_end // 60, slot_end % 60))
        )
        current = slot_end
    return windows


def expand_slots(dates: Iterable[date], windows: Iterable[TimeWindow]) -> list[tuple[date, TimeWindow]]:
    """Cartesian product of dates and time windows, date-major"""
    windows = list(windows)
    return [(day, window) for day in dates for window in windows]
