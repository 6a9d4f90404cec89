"""
Meeting calendar: which Thursday is "this week's" meeting, and which weeks
the week selector should offer.

Everything here is pure. Callers pass ``now`` as a datetime already expressed
in the meeting's local timezone; only its wall-clock date and hour are used.
Date keys are ``YYYY-MM-DD`` strings, which sort chronologically.
"""
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Iterable, List, Mapping, Optional, Union

THURSDAY = 3
CUTOFF_HOUR = 17
FUTURE_WEEKS = 8
DATE_KEY_FORMAT = "%Y-%m-%d"

_WEEKDAY_NAMES = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday",
)
_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)

# Long date layouts per locale; names are English for both.
DISPLAY_PATTERNS = {
    "en_US": "{weekday}, {month} {day}, {year}",
    "en_GB": "{weekday} {day} {month} {year}",
}


@dataclass(frozen=True)
class WeekEntry:
    """One row of the week selector."""
    date: str
    formatted_date: str
    is_past: bool
    is_current: bool
    is_inactive: bool
    inactive_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def to_date_key(d: date) -> str:
    # isoformat zero-pads the year; strftime("%Y") does not on every platform
    return d.isoformat()


def parse_date_key(key: str) -> date:
    """Parse a ``YYYY-MM-DD`` key, raising ValueError for anything else."""
    if not isinstance(key, str) or len(key) != 10:
        raise ValueError(f"Invalid date key: {key!r}")
    return datetime.strptime(key, DATE_KEY_FORMAT).date()


def is_date_key(key) -> bool:
    try:
        parse_date_key(key)
    except ValueError:
        return False
    return True


def next_meeting_date(now: datetime, weekday: int = THURSDAY, cutoff_hour: int = CUTOFF_HOUR) -> str:
    """Date key of the upcoming meeting relative to ``now``.

    On the meeting weekday itself the answer is today until ``cutoff_hour``
    and a week from today from then on. Any other day yields the next
    occurrence of the weekday, 1 to 6 days ahead.
    """
    today = now.date()
    days_until = (weekday - today.weekday()) % 7
    if days_until == 0 and now.hour >= cutoff_hour:
        days_until = 7
    return to_date_key(today + timedelta(days=days_until))


def this_weeks_meeting_date(now: datetime, weekday: int = THURSDAY) -> date:
    """Today if today is the meeting weekday (whatever the hour), else the upcoming one."""
    today = now.date()
    return today + timedelta(days=(weekday - today.weekday()) % 7)


def format_for_display(date_key: str, locale: str = "en_US") -> str:
    """Render a date key as e.g. ``Thursday, January 4, 2024``."""
    pattern = DISPLAY_PATTERNS.get(locale)
    if pattern is None:
        raise ValueError(f"Unsupported display locale: {locale}")
    d = parse_date_key(date_key)
    return pattern.format(
        weekday=_WEEKDAY_NAMES[d.weekday()],
        month=_MONTH_NAMES[d.month - 1],
        day=d.day,
        year=d.year,
    )


def parse_display_date(text: str) -> date:
    """Inverse of format_for_display for any supported locale."""
    tokens = text.replace(",", " ").split()
    if len(tokens) != 4 or tokens[0] not in _WEEKDAY_NAMES:
        raise ValueError(f"Unrecognised display date: {text!r}")
    month = None
    numbers = []
    for token in tokens[1:]:
        if token in _MONTH_NAMES:
            month = _MONTH_NAMES.index(token) + 1
        elif token.isdigit():
            numbers.append(int(token))
    if month is None or len(numbers) != 2:
        raise ValueError(f"Unrecognised display date: {text!r}")
    day, year = sorted(numbers)
    parsed = date(year, month, day)
    if _WEEKDAY_NAMES[parsed.weekday()] != tokens[0]:
        raise ValueError(f"Weekday does not match date: {text!r}")
    return parsed


def enumerate_weeks(
    now: datetime,
    presentation_dates: Iterable[str],
    inactive_weeks: Union[Mapping[str, Optional[str]], Iterable[str]] = (),
    weekday: int = THURSDAY,
    cutoff_hour: int = CUTOFF_HOUR,
    future_weeks: int = FUTURE_WEEKS,
    locale: str = "en_US",
) -> List[WeekEntry]:
    """Weeks to offer in the week selector.

    Past weeks (oldest first) come before the ``future_weeks`` upcoming ones.
    Past weeks run from the earliest presentation date up to the week before
    this week's meeting day; only meeting days that have a presentation or
    an inactive marker are kept.
    """
    if not isinstance(inactive_weeks, Mapping):
        inactive_weeks = {key: None for key in inactive_weeks}
    dated = set(presentation_dates)

    def _entry(d: date, is_past: bool, is_current: bool) -> WeekEntry:
        key = to_date_key(d)
        return WeekEntry(
            date=key,
            formatted_date=format_for_display(key, locale),
            is_past=is_past,
            is_current=is_current,
            is_inactive=key in inactive_weeks,
            inactive_reason=inactive_weeks.get(key),
        )

    first = parse_date_key(next_meeting_date(now, weekday, cutoff_hour))
    future = [
        _entry(first + timedelta(weeks=i), is_past=False, is_current=(i == 0))
        for i in range(future_weeks)
    ]

    past = []
    valid_dates = {key for key in dated if is_date_key(key)}
    if valid_dates:
        earliest = parse_date_key(min(valid_dates))
        latest = this_weeks_meeting_date(now, weekday) - timedelta(weeks=1)
        # Visit only populated or inactive dates, never every week in between
        candidates = {
            parse_date_key(key) for key in valid_dates | set(inactive_weeks) if is_date_key(key)
        }
        past = [
            _entry(d, is_past=True, is_current=False)
            for d in sorted(candidates)
            if earliest <= d <= latest and d.weekday() == weekday
        ]

    return past + future
