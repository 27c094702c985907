# release_conductor/orchestration/schedule.py
"""
Working-day and release-date arithmetic.

Pure functions, no I/O. Weekdays use Python numbering (Monday = 0 ...
Sunday = 6). An empty working-day set means every day is a working day.
Times of day are "HH:MM" strings interpreted in the tenant's IANA timezone;
all returned datetimes are UTC.
"""

import calendar
from collections.abc import Collection, Sequence
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from release_conductor.models.enums import ReleaseFrequency

ONE_DAY = timedelta(days=1)

FREQUENCY_DAYS = {
    ReleaseFrequency.WEEKLY: 7,
    ReleaseFrequency.BIWEEKLY: 14,
    ReleaseFrequency.TRIWEEKLY: 21,
}


def is_working_day(day: date, working_days: Collection[int]) -> bool:
    return not working_days or day.weekday() in working_days


def _roll_forward(day: date, working_days: Collection[int]) -> date:
    # Bounded: any non-empty weekday set matches within a week
    for _ in range(7):
        if is_working_day(day, working_days):
            return day
        day += ONE_DAY
    raise ValueError(f"No working day in {sorted(working_days)}")


def add_working_days(day: date, n: int, working_days: Collection[int]) -> date:
    """
    Move `n` working days forward from `day`.

    n=0 returns `day` itself when it is a working day, else the next working
    day. For n>0 each following calendar day counts only if it is a working day.
    """
    if n < 0:
        raise ValueError(f"Working-day offset must be non-negative, got {n}")
    if n == 0:
        return _roll_forward(day, working_days)

    current = day
    remaining = n
    while remaining > 0:
        current += ONE_DAY
        if is_working_day(current, working_days):
            remaining -= 1
    return current


def subtract_working_days(day: date, n: int, working_days: Collection[int]) -> date:
    """Move `n` working days back from `day`. n=0 behaves like add_working_days."""
    if n < 0:
        raise ValueError(f"Working-day offset must be non-negative, got {n}")
    if n == 0:
        return _roll_forward(day, working_days)

    current = day
    remaining = n
    while remaining > 0:
        current -= ONE_DAY
        if is_working_day(current, working_days):
            remaining -= 1
    return current


def parse_time_of_day(value: str) -> time:
    """Parse "HH:MM" into a time. Raises ValueError on bad input."""
    hours, _, minutes = value.partition(":")
    if not (hours.isdigit() and minutes.isdigit()):
        raise ValueError(f"Invalid time of day '{value}', expected HH:MM")
    return time(int(hours), int(minutes))


def to_utc(day: date, time_of_day: str, tz_name: str) -> datetime:
    """Combine a local date and "HH:MM" in `tz_name` into a UTC datetime."""
    local = datetime.combine(day, parse_time_of_day(time_of_day), tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc)


def local_date(moment: datetime, tz_name: str) -> date:
    """The calendar date of `moment` as seen in `tz_name`."""
    return moment.astimezone(ZoneInfo(tz_name)).date()


def calculate_kickoff_date(
    kickoff_day: date, kickoff_time: str, working_days: Collection[int], tz_name: str
) -> datetime:
    return to_utc(add_working_days(kickoff_day, 0, working_days), kickoff_time, tz_name)


def calculate_kickoff_reminder_date(
    kickoff_day: date,
    offset_days: int,
    reminder_time: str,
    working_days: Collection[int],
    tz_name: str,
) -> datetime:
    """Reminder goes out `offset_days` working days before kickoff."""
    reminder_day = subtract_working_days(
        add_working_days(kickoff_day, 0, working_days), offset_days, working_days
    )
    return to_utc(reminder_day, reminder_time, tz_name)


def calculate_target_release_date(
    kickoff_day: date,
    offset_days: int,
    target_time: str,
    working_days: Collection[int],
    tz_name: str,
) -> datetime:
    start = add_working_days(kickoff_day, 0, working_days)
    return to_utc(add_working_days(start, offset_days, working_days), target_time, tz_name)


def calculate_regression_slot_dates(
    kickoff_day: date,
    slots: Sequence[tuple[int, str]],
    working_days: Collection[int],
    tz_name: str,
) -> list[datetime]:
    """
    Compute the start time of each regression slot.

    Args:
        kickoff_day: Local kickoff date
        slots: (offset working days from kickoff, "HH:MM") pairs
        working_days: Working weekdays
        tz_name: IANA timezone name

    Returns:
        UTC datetimes in the same order as `slots`
    """
    start = add_working_days(kickoff_day, 0, working_days)
    return [
        to_utc(add_working_days(start, offset, working_days), slot_time, tz_name)
        for offset, slot_time in slots
    ]


def _add_month(day: date) -> date:
    year, month = (day.year + 1, 1) if day.month == 12 else (day.year, day.month + 1)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def calculate_next_kickoff_date(
    current_kickoff: date, frequency: ReleaseFrequency, working_days: Collection[int]
) -> date:
    """Advance a kickoff date by one cadence period, landing on a working day."""
    if frequency == ReleaseFrequency.MONTHLY:
        candidate = _add_month(current_kickoff)
    else:
        candidate = current_kickoff + timedelta(days=FREQUENCY_DAYS[frequency])
    return add_working_days(candidate, 0, working_days)


def release_creation_date(
    kickoff_day: date, advance_days: int, working_days: Collection[int]
) -> date:
    """The day a scheduled release is created: `advance_days` working days before kickoff."""
    return subtract_working_days(kickoff_day, advance_days, working_days)


def is_release_creation_due(
    today: date, kickoff_day: date, advance_days: int, working_days: Collection[int]
) -> bool:
    """True from the creation date up to and including the kickoff day."""
    return release_creation_date(kickoff_day, advance_days, working_days) <= today <= kickoff_day
