"""
Habit Tracker Service - Completion toggling and cached analytics refresh
"""

from dataclasses import dataclass, replace
from datetime import datetime, date
from typing import List, Optional, Tuple
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from habit_tracker.core.errors import CompletionConflict, InvalidDateRange
from habit_tracker.models.habit import Habit, CompletionEvent
from habit_tracker.services.achievements import AchievementService
from habit_tracker.services.habit_calendar import as_utc, day_bounds, local_day, local_today, resolve_timezone
from habit_tracker.services.habit_scheduler import ScheduledHabit
from habit_tracker.services.habit_service import HabitService
from habit_tracker.services.habit_streaks import HabitStreakCalculator, StreakInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackerResult:
    status: str  # added, removed
    message: str
    tracker_id: Optional[str] = None
    new_achievements: Tuple[str, ...] = ()  # keys awarded by this toggle


class HabitTrackerService:
    """Owns writes to the completion log and keeps the habit's cached analytics in step"""

    @staticmethod
    def refresh_habit_stats(
        db: Session,
        habit: Habit,
        timezone_name: str,
        now: Optional[datetime] = None
    ) -> StreakInfo:
        """
        Recompute cached analytics from the event log; the caller commits.

        The session does not autoflush, so pending toggles must be flushed first.
        """
        events = db.query(CompletionEvent).filter(CompletionEvent.habit_id == habit.id).all()
        today = local_today(timezone_name, now)
        info = HabitStreakCalculator.calculate_streak(
            ScheduledHabit.from_model(habit),
            events,
            timezone_name,
            today,
            previous_longest=habit.longest_streak or 0
        )

        habit.current_streak = info.current
        habit.longest_streak = info.longest
        habit.total_completions = len(events)
        habit.last_completed_at = max((as_utc(e.occurred_at) for e in events), default=None)
        return info

    @staticmethod
    def toggle_completion(
        db: Session,
        user_id: str,
        habit_id: str,
        occurred_at: datetime,
        timezone_name: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TrackerResult:
        """
        Mark a habit done for the local day of occurred_at, or undo it if already done.

        Same-day events are deleted before any insert; the (habit_id, local_date)
        unique constraint catches a concurrent toggle that slips past the check.
        """
        resolve_timezone(timezone_name)
        habit = HabitService.get_habit(db, user_id, habit_id)

        day = local_day(occurred_at, timezone_name).date
        occurred_utc = as_utc(occurred_at)
        start, end = day_bounds(day, timezone_name)

        try:
            existing = db.query(CompletionEvent).filter(
                CompletionEvent.habit_id == habit.id,
                or_(
                    CompletionEvent.local_date == day,
                    and_(CompletionEvent.occurred_at >= start, CompletionEvent.occurred_at < end)
                )
            ).all()

            if existing:
                for event in existing:
                    db.delete(event)
                result = TrackerResult("removed", "Habit marked as not completed")
            else:
                event = CompletionEvent(
                    habit_id=habit.id,
                    user_id=user_id,
                    occurred_at=occurred_utc,
                    local_date=day,
                    notes=notes
                )
                db.add(event)
                db.flush()
                result = TrackerResult("added", "Habit marked as completed", event.id)

            habit.timezone = timezone_name
            db.flush()
            info = HabitTrackerService.refresh_habit_stats(db, habit, timezone_name, now)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Concurrent toggle for habit {habit_id} on {day}: {e}")
            raise CompletionConflict(f"Habit {habit_id} was toggled concurrently for {day}")

        logger.info(
            f"Habit {habit_id} {result.status} for {day} ({timezone_name}); "
            f"streak={info.current}, longest={info.longest}"
        )

        awarded = AchievementService.check_and_award(db, user_id, timezone_name, now)
        if awarded:
            result = replace(result, new_achievements=tuple(a.key for a in awarded))
        return result

    @staticmethod
    def list_trackers(
        db: Session,
        user_id: str,
        habit_id: str,
        timezone_name: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[CompletionEvent]:
        """Completion events whose local date falls within the inclusive range, newest first"""
        resolve_timezone(timezone_name)
        if start_date and end_date and end_date < start_date:
            raise InvalidDateRange(start_date, end_date)
        habit = HabitService.get_habit(db, user_id, habit_id)

        query = db.query(CompletionEvent).filter(
            CompletionEvent.habit_id == habit.id,
            CompletionEvent.user_id == user_id
        )
        if start_date:
            query = query.filter(CompletionEvent.occurred_at >= day_bounds(start_date, timezone_name)[0])
        if end_date:
            query = query.filter(CompletionEvent.occurred_at < day_bounds(end_date, timezone_name)[1])
        return query.order_by(CompletionEvent.occurred_at.desc()).all()
