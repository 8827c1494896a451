"""Clock capability used for "today"-relative derivations."""

from datetime import date, datetime
from typing import Callable, Optional

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now()


def fixed_clock(moment: datetime) -> Clock:
    """Return a clock that always reports ``moment``."""

    def _clock() -> datetime:
        return moment

    return _clock


def clock_for_threshold(threshold: str, fallback: Optional[Clock] = None) -> Clock:
    """
    Build the clock for a status threshold setting.

    "today" means the wall clock (or ``fallback`` when given); an ISO date
    pins "today" to that day.
    """
    if threshold.strip().lower() == "today":
        return fallback or system_clock
    pinned = date.fromisoformat(threshold.strip())
    return fixed_clock(datetime(pinned.year, pinned.month, pinned.day))
