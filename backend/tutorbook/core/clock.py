"""
Wall-clock access and lesson time arithmetic.

Every policy decision (cancel cutoff, "is this lesson over", "is this shift
date editable") takes `now` as an argument. Routes obtain it from the
`get_clock` dependency so tests can pin time with `FixedClock`.
"""

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache

import pytz

from tutorbook.core.config import get_settings


class Clock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires an aware datetime")
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, delta: timedelta) -> None:
        self.instant = self.instant + delta


_system_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency; overridden in tests."""
    return _system_clock


@lru_cache()
def local_zone():
    return pytz.timezone(get_settings().TIMEZONE)


def local_today(now: datetime) -> date:
    return now.astimezone(local_zone()).date()


def parse_time_slot(time_slot: str) -> tuple[time, time]:
    """'16:00-17:30' -> (time(16, 0), time(17, 30))."""
    try:
        start_text, end_text = time_slot.split("-", 1)
        start = time.fromisoformat(start_text.strip())
        end = time.fromisoformat(end_text.strip())
    except ValueError as exc:
        raise ValueError(f"Malformed time slot: {time_slot!r}") from exc
    return start, end


def lesson_start(lesson_date: date, time_slot: str) -> datetime:
    start, _ = parse_time_slot(time_slot)
    # pytz zones must be attached with localize(), not tzinfo=
    return local_zone().localize(datetime.combine(lesson_date, start))


def cancel_cutoff(lesson_date: date, time_slot: str) -> datetime:
    hours = get_settings().CANCEL_CUTOFF_HOURS
    return lesson_start(lesson_date, time_slot) - timedelta(hours=hours)


def is_past_lesson_date(lesson_date: date, now: datetime) -> bool:
    return lesson_date < local_today(now)
