"""
Habit Streak Service - Schedule-aware current and longest streaks
"""

from datetime import date, timedelta
from typing import Any, Iterable, NamedTuple, Optional, Set
import logging

from habit_tracker.services.habit_calendar import local_day, resolve_timezone
from habit_tracker.services.habit_scheduler import HabitScheduler, ScheduledHabit

logger = logging.getLogger(__name__)


class StreakInfo(NamedTuple):
    current: int
    longest: int


class HabitStreakCalculator:
    """Derives a habit's streaks from its completion events and schedule"""

    @staticmethod
    def completion_dates(events: Iterable[Any], timezone_name: str) -> Set[date]:
        """Localize each event's occurred_at and dedupe into a set of dates"""
        return {local_day(event.occurred_at, timezone_name).date for event in events}

    @staticmethod
    def calculate_streak(
        habit: ScheduledHabit,
        events: Iterable[Any],
        timezone_name: str,
        today: date,
        previous_longest: Optional[int] = None
    ) -> StreakInfo:
        """
        Calculate current and longest streaks for a habit

        Args:
            habit: schedule snapshot of the habit
            events: completion events (anything with an occurred_at instant)
            timezone_name: IANA zone used to localize events
            today: the caller's local date; its due window is still open
            previous_longest: cached high-water mark (defaults to the habit's own)

        Returns:
            StreakInfo(current, longest); longest never drops below previous_longest
        """
        resolve_timezone(timezone_name)
        if previous_longest is None:
            previous_longest = habit.longest_streak

        completed = HabitStreakCalculator.completion_dates(events, timezone_name)
        if not completed:
            return StreakInfo(0, previous_longest)

        current = HabitStreakCalculator._calculate_current_streak(habit, completed, today)
        longest = HabitStreakCalculator._calculate_longest_streak(habit, completed, today)

        return StreakInfo(current, max(longest, current, previous_longest))

    @staticmethod
    def _calculate_current_streak(habit: ScheduledHabit, completed: Set[date], today: date) -> int:
        """Walk backward from today; the first due-but-missing past day ends the streak"""
        streak = 0
        day = today
        while day >= habit.active_from:
            if HabitScheduler.is_due(habit, day):
                if day in completed:
                    streak += 1
                elif day != today:
                    break
            day -= timedelta(days=1)
        return streak

    @staticmethod
    def _calculate_longest_streak(habit: ScheduledHabit, completed: Set[date], today: date) -> int:
        """Scan the whole history forward, tracking the longest run of completed due days"""
        start = max(habit.active_from, min(completed))
        end = today if habit.active_until is None else min(today, habit.active_until)

        best = 0
        run = 0
        day = start
        while day <= end:
            if HabitScheduler.is_due(habit, day):
                if day in completed:
                    run += 1
                    best = max(best, run)
                else:
                    run = 0
            day += timedelta(days=1)
        return best
