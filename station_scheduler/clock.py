from __future__ import annotations

import re
from datetime import date, datetime, timedelta

MINUTES_PER_DAY = 24 * 60

_CLOCK_RE = re.compile(r"^\s*(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<ampm>[ap]\.?m\.?)?\s*$", re.IGNORECASE)


class InvalidTimeFormat(ValueError):
    pass


def parse_clock(text: str) -> int:
    """Convert a wall-clock string such as "7:30 pm" into a minute of the day.

    Hours run 1-12 when a meridiem is present and 0-23 without one.
    12 am is midnight (0) and 12 pm is noon (720).
    """
    if not isinstance(text, str):
        raise InvalidTimeFormat(f"Clock value must be a string, got {type(text).__name__}")

    match = _CLOCK_RE.match(text)
    if not match:
        raise InvalidTimeFormat(f"Invalid clock string: {text!r}. Expected format: H:MM am|pm")

    hour = int(match.group("hour"))
    minute = int(match.group("minute"))
    meridiem = match.group("ampm")

    if minute > 59:
        raise InvalidTimeFormat(f"Invalid minute in clock string: {text!r}")

    if meridiem:
        if hour < 1 or hour > 12:
            raise InvalidTimeFormat(f"Invalid 12-hour clock value: {text!r}")
        is_pm = meridiem.lower().startswith("p")
        if is_pm and hour != 12:
            hour += 12
        elif not is_pm and hour == 12:
            hour = 0
    elif hour > 23:
        raise InvalidTimeFormat(f"Invalid 24-hour clock value: {text!r}")

    return hour * 60 + minute


def format_clock(minute: int) -> str:
    wrapped = int(minute) % MINUTES_PER_DAY
    hours, mins = divmod(wrapped, 60)
    period = "pm" if hours >= 12 else "am"
    display_hours = hours % 12 or 12
    return f"{display_hours}:{mins:02d} {period}"


def interval_end(start: int, duration: int) -> int:
    """Return the unwrapped end minute; values past 1440 mean the session crosses midnight."""
    if duration <= 0:
        raise ValueError("duration must be greater than zero")
    return start + duration


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open [start, end) overlap, so touching boundaries do not overlap."""
    if a_start >= a_end:
        raise ValueError("a_start must be earlier than a_end.")
    if b_start >= b_end:
        raise ValueError("b_start must be earlier than b_end.")

    return a_start < b_end and b_start < a_end


def minute_of(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def session_bounds(booking_date: date, start_minute: int, duration_minutes: int) -> tuple[datetime, datetime]:
    midnight = datetime(booking_date.year, booking_date.month, booking_date.day)
    start = midnight + timedelta(minutes=start_minute)
    return start, start + timedelta(minutes=duration_minutes)


def whole_minutes(delta: timedelta) -> int:
    """Floor a timedelta to whole minutes, rounding toward negative infinity."""
    return int(delta.total_seconds() // 60)


def minutes_left(delta: timedelta) -> int:
    """Ceil a timedelta to whole minutes so 30 seconds left still reads as 1."""
    return -int(-delta.total_seconds() // 60)
