"""
Schedule expansion.

Turns a course's weekly recurrence (weekday tokens, time of day, free-text
duration, date range) into the concrete dated sessions it implies. Pure: no
store access, same inputs give the same list.
"""

import re
from datetime import date, timedelta
from typing import Iterable, List, Optional

from irati.errors import InvalidRequestError, MissingScheduleError
from irati.schemas import SessionDraft

# date.weekday() numbering
WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

DEFAULT_START_TIME = "10:00"
DEFAULT_DURATION_HOURS = 2

_DIGITS = re.compile(r"(\d+)")


def parse_duration_hours(duration: Optional[str]) -> int:
    """
    Read the hour count out of a free-text duration such as "2 horas" or
    "1h30". Only the first run of digits counts; without one, two hours.
    """
    match = _DIGITS.search(duration or "")
    if not match:
        return DEFAULT_DURATION_HOURS
    return int(match.group(1))


def add_hours(start_time: str, hours: int) -> str:
    """
    'HH:MM' plus whole hours on a 24-hour clock. Wraps at midnight without
    carrying into the next day; courses running past midnight are unsupported.
    """
    parts = start_time.strip().split(":")
    if len(parts) != 2:
        raise InvalidRequestError(f"Invalid time format: {start_time!r}")
    try:
        h = int(parts[0])
        m = int(parts[1])
    except ValueError:
        raise InvalidRequestError(f"Invalid time format: {start_time!r}")
    return f"{(h + hours) % 24:02d}:{m:02d}"


def _weekday_numbers(days: Iterable[str]) -> set:
    numbers = set()
    for day in days:
        token = str(day).strip().lower()
        if token not in WEEKDAYS:
            raise InvalidRequestError(f"Unknown weekday: {day!r}")
        numbers.add(WEEKDAYS[token])
    return numbers


def expand_schedule(
    start_date: Optional[date],
    end_date: Optional[date],
    days: Optional[Iterable[str]],
    start_time: Optional[str] = None,
    duration: Optional[str] = None,
) -> List[SessionDraft]:
    """
    One SessionDraft per day in [start_date, end_date] whose weekday is in
    `days`, ascending. An empty list means nothing matched, which is not an
    error.
    """
    day_list = list(days or [])
    if start_date is None or end_date is None or not day_list:
        raise MissingScheduleError("The course needs class days, a start date and an end date")

    selected = _weekday_numbers(day_list)
    start = start_time or DEFAULT_START_TIME
    end = add_hours(start, parse_duration_hours(duration))

    drafts: List[SessionDraft] = []
    current = start_date
    while current <= end_date:
        if current.weekday() in selected:
            drafts.append(SessionDraft(session_date=current, start_time=start, end_time=end))
        current += timedelta(days=1)
    return drafts
