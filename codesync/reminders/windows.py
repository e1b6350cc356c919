"""
Reminder window evaluation.
"""

import math
from dataclasses import dataclass
from datetime import datetime

from codesync.database.models import Contest, ReminderKind


@dataclass(frozen=True)
class ReminderWindow:
    """Half-open range of hours-until-start, ``lower < h <= upper``."""

    kind: ReminderKind
    lower_hours: float
    upper_hours: float

    def contains(self, hours_until_start: float) -> bool:
        return self.lower_hours < hours_until_start <= self.upper_hours


FAR_WINDOW = ReminderWindow(ReminderKind.FAR, lower_hours=18, upper_hours=27)
NEAR_WINDOW = ReminderWindow(ReminderKind.NEAR, lower_hours=0.1, upper_hours=6)
DEFAULT_WINDOWS = (FAR_WINDOW, NEAR_WINDOW)


@dataclass
class ReminderMatch:
    """A contest that has entered a reminder window."""

    contest: Contest
    kind: ReminderKind
    hours_until_start: float

    @property
    def rounded_hours(self) -> int:
        return round_half_up(self.hours_until_start)

    @property
    def display_time(self) -> str:
        """Human-readable time remaining, e.g. "45 minutes" or "3 hours"."""
        if self.kind == ReminderKind.NEAR:
            minutes = round_half_up(self.hours_until_start * 60)
            if minutes <= 90:
                return f"{minutes} minutes"
        return f"{self.rounded_hours} hours"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (2.5 -> 3), unlike round()."""
    return math.floor(value + 0.5)


def evaluate_windows(
    contest: Contest,
    now: datetime,
    windows: tuple[ReminderWindow, ...] = DEFAULT_WINDOWS,
) -> list[ReminderMatch]:
    """
    Evaluate every window against a contest.

    Windows are independent; a contest may match more than one.

    Args:
        contest: Contest to check
        now: Current time (timezone-aware)
        windows: Windows to evaluate

    Returns:
        One match per window the contest currently falls in
    """
    hours = contest.hours_until_start(now)
    return [
        ReminderMatch(contest=contest, kind=window.kind, hours_until_start=hours)
        for window in windows
        if window.contains(hours)
    ]
