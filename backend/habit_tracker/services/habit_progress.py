"""
Habit Progress Service - Daily completion rates and perfect-day streaks
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set
import logging

from habit_tracker.core.config import settings
from habit_tracker.core.errors import InvalidDateRange
from habit_tracker.services.habit_calendar import iter_days, local_day, resolve_timezone
from habit_tracker.services.habit_scheduler import HabitScheduler, ScheduledHabit
from habit_tracker.services.habit_streaks import StreakInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateRange:
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self):
        if self.start is not None and self.end is not None and self.end < self.start:
            raise InvalidDateRange(self.start, self.end)


@dataclass(frozen=True)
class DailyProgress:
    date: date
    scheduled_count: int
    completed_count: int
    completion_rate: float

    @property
    def is_perfect(self) -> bool:
        # Zero-scheduled days chart as 100 but are not perfect days
        return self.scheduled_count > 0 and self.completed_count == self.scheduled_count


@dataclass(frozen=True)
class ProgressOverview:
    history: List[DailyProgress]
    current_streak: int
    longest_streak: int


class HabitProgressAggregator:
    """Aggregates all of a user's habits into day-level progress"""

    @staticmethod
    def lookback_start(today: date) -> date:
        span = timedelta(days=settings.streak_lookback_days - 1)
        if today - date.min < span:
            return date.min
        return today - span

    @staticmethod
    def max_window_days() -> int:
        return max(settings.max_history_days, settings.streak_lookback_days)

    @staticmethod
    def _completions_by_habit(
        habits: Sequence[ScheduledHabit],
        events: Iterable[Any],
        timezone_name: str
    ) -> Dict[str, Set[date]]:
        habit_ids = {habit.id for habit in habits}
        completed = defaultdict(set)
        for event in events:
            # Events of habits outside the snapshot (deleted ones) do not count
            if event.habit_id in habit_ids:
                completed[event.habit_id].add(local_day(event.occurred_at, timezone_name).date)
        return completed

    @staticmethod
    def daily_progress(
        habits: Sequence[ScheduledHabit],
        events: Iterable[Any],
        timezone_name: str,
        start_date: date,
        end_date: date
    ) -> List[DailyProgress]:
        """Per-day scheduled/completed counts and completion rate, chronological"""
        resolve_timezone(timezone_name)
        if end_date < start_date:
            raise InvalidDateRange(start_date, end_date)

        completed = HabitProgressAggregator._completions_by_habit(habits, events, timezone_name)

        series = []
        for day in iter_days(start_date, end_date):
            due = [habit for habit in habits if HabitScheduler.is_due(habit, day)]
            done = sum(1 for habit in due if day in completed.get(habit.id, ()))
            if due:
                rate = round(done / len(due) * 100, 2)
            else:
                rate = 100.0
            series.append(DailyProgress(day, len(due), done, rate))
        return series

    @staticmethod
    def history(
        habits: Sequence[ScheduledHabit],
        events: Iterable[Any],
        timezone_name: str,
        today: date,
        display_range: Optional[DateRange] = None
    ) -> List[DailyProgress]:
        """
        Completion-rate series for display.

        The range only picks which days are returned. With no range the
        one-year window ending today is shown; an open end defaults to today
        and an open start to one year before the end. Windows longer than
        max_window_days() are rejected.
        """
        display_range = display_range or DateRange()
        end = display_range.end or today
        start = display_range.start or HabitProgressAggregator.lookback_start(end)
        if end >= start and (end - start).days + 1 > HabitProgressAggregator.max_window_days():
            raise InvalidDateRange(
                start, end,
                f"Date range {start} to {end} exceeds {HabitProgressAggregator.max_window_days()} days"
            )
        return HabitProgressAggregator.daily_progress(habits, events, timezone_name, start, end)

    @staticmethod
    def perfect_day_streaks(
        habits: Sequence[ScheduledHabit],
        events: Iterable[Any],
        timezone_name: str,
        today: date
    ) -> StreakInfo:
        """
        Current and longest runs of perfect days over the fixed lookback window.

        Never takes a display range: the window always ends today, so what a
        chart shows cannot change what the streak means.
        """
        series = HabitProgressAggregator.daily_progress(
            habits, events, timezone_name, HabitProgressAggregator.lookback_start(today), today
        )

        current = 0
        for entry in reversed(series):
            if entry.scheduled_count == 0:
                continue
            if entry.is_perfect:
                current += 1
            elif entry.date != today:
                break

        longest = 0
        run = 0
        for entry in series:
            if entry.scheduled_count == 0:
                continue
            if entry.is_perfect:
                run += 1
                longest = max(longest, run)
            else:
                run = 0

        logger.debug(f"Perfect-day streaks as of {today}: current={current}, longest={longest}")
        return StreakInfo(current, max(longest, current))

    @staticmethod
    def overview(
        habits: Sequence[ScheduledHabit],
        events: Iterable[Any],
        timezone_name: str,
        today: date,
        display_range: Optional[DateRange] = None
    ) -> ProgressOverview:
        events = list(events)
        history = HabitProgressAggregator.history(habits, events, timezone_name, today, display_range)
        streaks = HabitProgressAggregator.perfect_day_streaks(habits, events, timezone_name, today)
        return ProgressOverview(history, streaks.current, streaks.longest)
