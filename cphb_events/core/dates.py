"""Date and time-of-day helpers shared by validation and document sync."""

import re
from datetime import date

DATE_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[012])-(0[1-9]|[12][0-9]|3[01])$")

# "8:00 AM", "12:30 PM", "08:00AM"
TIME_PATTERN = re.compile(r"^(0?[1-9]|1[0-2]):([0-5][0-9]) ?([AaPp][Mm])$")


def is_calendar_date(value: str) -> bool:
    """True for a real ``YYYY-MM-DD`` date (rejects 2018-02-31)."""
    if not DATE_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_clock_time(value: str) -> bool:
    return bool(TIME_PATTERN.match(value.strip()))


def to_24_hour(value: str) -> str:
    """Reformat ``H:MM AM|PM`` to ``HH:MM``; raises ValueError on anything else."""
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Not a clock time: {value!r}")
    hour, minute, meridiem = int(match.group(1)), match.group(2), match.group(3).upper()
    if meridiem == "AM":
        hour = 0 if hour == 12 else hour
    else:
        hour = 12 if hour == 12 else hour + 12
    return f"{hour:02d}:{minute}"
