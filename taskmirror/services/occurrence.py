"""Routine occurrence calculation: frequencies, ready dates and due dates."""

from datetime import date, datetime, timedelta
from enum import Enum


class Frequency(str, Enum):
    DAILY = "Daily"
    TWICE_A_WEEK = "Twice a Week"
    WEEKLY = "Weekly"
    EVERY_OTHER_WEEK = "Every Other Week"
    MONTHLY = "Monthly"
    EVERY_OTHER_MONTH = "Every Other Month"
    QUARTERLY = "Quarterly"
    TWICE_A_YEAR = "Twice a Year"
    YEARLY = "Yearly"
    EVERY_OTHER_YEAR = "Every Other Year"


class Duration(str, Enum):
    FIVE_MIN = "5min"
    FIFTEEN_MIN = "15min"
    THIRTY_MIN = "30min"
    FORTY_FIVE_MIN = "45min"
    ONE_HOUR = "1hr"
    TWO_HOURS = "2hr"
    THREE_HOURS = "3hr"
    FOUR_HOURS = "4hr"


class TimeOfDay(str, Enum):
    MORNING = "Morning"
    DAY = "Day"
    EVENING = "Evening"
    NIGHT = "Night"


FREQUENCY_DAYS = {
    Frequency.DAILY.value: 1,
    Frequency.TWICE_A_WEEK.value: 3,
    Frequency.WEEKLY.value: 7,
    Frequency.EVERY_OTHER_WEEK.value: 14,
    Frequency.MONTHLY.value: 30,
    Frequency.EVERY_OTHER_MONTH.value: 60,
    Frequency.QUARTERLY.value: 90,
    Frequency.TWICE_A_YEAR.value: 182,
    Frequency.YEARLY.value: 365,
    Frequency.EVERY_OTHER_YEAR.value: 730,
}

DURATION_MINUTES = {
    Duration.FIVE_MIN.value: 5,
    Duration.FIFTEEN_MIN.value: 15,
    Duration.THIRTY_MIN.value: 30,
    Duration.FORTY_FIVE_MIN.value: 45,
    Duration.ONE_HOUR.value: 60,
    Duration.TWO_HOURS.value: 120,
    Duration.THREE_HOURS.value: 180,
    Duration.FOUR_HOURS.value: 240,
}

TIME_OF_DAY_HOUR = {
    TimeOfDay.MORNING.value: 7,
    TimeOfDay.DAY.value: 11,
    TimeOfDay.EVENING.value: 15,
    TimeOfDay.NIGHT.value: 19,
}

# Routines resumed within this window start half a period out
RESUME_WINDOW = timedelta(hours=24)


def frequency_days(frequency: str) -> int:
    try:
        return FREQUENCY_DAYS[frequency]
    except KeyError:
        raise ValueError(f"Unknown frequency: {frequency}") from None


def time_of_day_label(time_of_day: str) -> str:
    """Todoist label for a time-of-day preference ("Morning" -> "morning")."""
    if time_of_day not in TIME_OF_DAY_HOUR:
        raise ValueError(f"Unknown time of day: {time_of_day}")
    return time_of_day.lower()


def js_weekday(d: date) -> int:
    """Day of week with 0=Sunday .. 6=Saturday."""
    return (d.weekday() + 1) % 7


def adjust_to_ideal_day(d: date, ideal_day: int, frequency: str) -> date:
    """Move ``d`` forward to the routine's ideal weekday.

    Only applies to weekly or longer frequencies.
    """
    if frequency_days(frequency) < 7:
        return d
    return d + timedelta(days=(ideal_day - js_weekday(d)) % 7)


def next_ready_date(
    frequency: str,
    today: date,
    last_completed: date | None = None,
    ideal_day: int | None = None,
    recently_resumed: bool = False,
) -> date:
    """Date the routine's next instance becomes actionable."""
    days = frequency_days(frequency)

    if last_completed is not None:
        ready = last_completed + timedelta(days=days)
    elif recently_resumed:
        ready = today + timedelta(days=days // 2)
    else:
        ready = today

    if ideal_day is not None:
        ready = adjust_to_ideal_day(ready, ideal_day, frequency)
    return ready


def due_date_for(ready: date, frequency: str, time_of_day: str | None = None) -> date:
    """Due date for an instance ready on ``ready``.

    With a time of day the instance is due the same day. Otherwise it is due
    at the end of its period, pulled off the weekend: Sunday moves to Monday,
    Saturday to Friday unless that would precede the ready date.
    """
    if time_of_day:
        return ready

    due = ready + timedelta(days=max(0, frequency_days(frequency) - 1))
    weekday = js_weekday(due)
    if weekday == 0:
        due += timedelta(days=1)
    elif weekday == 6:
        friday = due - timedelta(days=1)
        due = friday if friday >= ready else due + timedelta(days=2)
    return due


def was_recently_resumed(resumed_at: datetime | None, now: datetime) -> bool:
    return resumed_at is not None and now - resumed_at < RESUME_WINDOW
