"""Countdown for an attempt: remaining seconds from the recorded start time and the trial budget."""
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from engine import UTC_OFFSET_HOURS

logger = logging.getLogger(__name__)

APP_TZ = timezone(timedelta(hours=UTC_OFFSET_HOURS))


def now_local() -> datetime:
    """Current time in the app's fixed UTC offset (the zone start/end times are written in)."""
    return datetime.now(APP_TZ)


def remaining_seconds(start_time: Optional[datetime], budget: int, now: Optional[datetime] = None) -> int:
    """budget - whole seconds elapsed since start, never below 0. Missing start time counts as expired."""
    if start_time is None or budget <= 0:
        return 0
    now = now or now_local()
    elapsed = math.floor((now - start_time).total_seconds())
    if elapsed < 0:
        # Start time in the future (clock skew): the full budget is left
        elapsed = 0
    return max(0, budget - elapsed)


def format_time(seconds: int) -> str:
    """Seconds -> HH:MM:SS."""
    seconds = max(0, int(seconds))
    hrs, rest = divmod(seconds, 3600)
    mins, secs = divmod(rest, 60)
    return f"{hrs:02d}:{mins:02d}:{secs:02d}"


class TrialTimer:
    """
    Ticks once per second while an attempt is active.

    The owner calls tick() from its event loop (a Streamlit fragment rerun, a test, a script).
    When the remaining time reaches 0 the timer stops and calls on_expire exactly once.
    """

    def __init__(
        self,
        start_time: Optional[datetime],
        budget: int,
        on_expire: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = now_local,
    ):
        self.start_time = start_time
        self.budget = budget
        self.on_expire = on_expire
        self.clock = clock
        self.running = False
        self.expired = False
        self.remaining = remaining_seconds(start_time, budget, clock())

    def start(self):
        if self.expired:
            return
        self.running = True

    def stop(self):
        self.running = False

    def tick(self) -> int:
        """Recompute remaining time; fire expiry on reaching 0. Returns the remaining seconds."""
        if not self.running:
            return self.remaining
        self.remaining = remaining_seconds(self.start_time, self.budget, self.clock())
        if self.remaining <= 0:
            self.remaining = 0
            self.running = False
            if not self.expired:
                self.expired = True
                logger.info("Trial timer reached zero")
                if self.on_expire:
                    self.on_expire()
        return self.remaining
