"""
Habit Service - Habit lifecycle and read models over the engine
"""

from datetime import datetime, date
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
import logging

from habit_tracker.core.errors import HabitNotFound, InvalidDateRange
from habit_tracker.models.habit import Habit, CompletionEvent
from habit_tracker.services.habit_calendar import local_day, local_today, resolve_timezone
from habit_tracker.services.habit_scheduler import HabitScheduler, Schedule, ScheduledHabit
from habit_tracker.services.habit_streaks import HabitStreakCalculator

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("name", "icon", "schedule", "active_from", "active_until")


def _check_lifecycle(active_from: date, active_until: Optional[date]) -> None:
    if active_until is not None and active_until < active_from:
        raise InvalidDateRange(active_from, active_until)


class HabitService:
    """Habit CRUD plus the due-today listing"""

    @staticmethod
    def get_habit(db: Session, user_id: str, habit_id: str) -> Habit:
        habit = db.query(Habit).filter(
            Habit.id == habit_id,
            Habit.user_id == user_id
        ).first()
        if not habit:
            raise HabitNotFound(habit_id)
        return habit

    @staticmethod
    def list_habits(db: Session, user_id: str) -> List[Habit]:
        return db.query(Habit).filter(Habit.user_id == user_id).order_by(Habit.created_at, Habit.id).all()

    @staticmethod
    def create_habit(
        db: Session,
        user_id: str,
        name: str,
        schedule: Any,
        timezone_name: str,
        icon: Optional[str] = None,
        active_from: Optional[date] = None,
        active_until: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> Habit:
        resolve_timezone(timezone_name)
        parsed = Schedule.parse(schedule)
        if active_from is None:
            active_from = local_today(timezone_name, now)
        _check_lifecycle(active_from, active_until)

        habit = Habit(
            user_id=user_id,
            name=name,
            icon=icon,
            schedule=parsed.encode(),
            active_from=active_from,
            active_until=active_until,
            timezone=timezone_name,
            current_streak=0,
            longest_streak=0,
            total_completions=0
        )
        db.add(habit)
        db.commit()
        db.refresh(habit)
        logger.info(f"Created habit {habit.id} for user {user_id} ({habit.schedule})")
        return habit

    @staticmethod
    def update_habit(db: Session, user_id: str, habit_id: str, changes: Dict[str, Any]) -> Habit:
        """Apply a partial edit; schedule and lifecycle are re-validated"""
        habit = HabitService.get_habit(db, user_id, habit_id)

        changes = dict(changes)
        if "schedule" in changes:
            changes["schedule"] = Schedule.parse(changes["schedule"]).encode()
        # active_from is required on a habit; a null in a partial edit means "leave as is"
        if changes.get("active_from") is None:
            changes.pop("active_from", None)

        active_from = changes.get("active_from", habit.active_from)
        active_until = changes.get("active_until", habit.active_until)
        _check_lifecycle(active_from, active_until)

        for field in _EDITABLE_FIELDS:
            if field in changes:
                setattr(habit, field, changes[field])

        db.commit()
        db.refresh(habit)
        logger.info(f"Updated habit {habit.id}: {sorted(k for k in changes if k in _EDITABLE_FIELDS)}")
        return habit

    @staticmethod
    def delete_habit(db: Session, user_id: str, habit_id: str) -> None:
        habit = HabitService.get_habit(db, user_id, habit_id)

        # Cascade is configured on the relationship, but be explicit for backends without FK enforcement
        removed = db.query(CompletionEvent).filter(CompletionEvent.habit_id == habit.id).delete(
            synchronize_session=False
        )
        db.delete(habit)
        db.commit()
        logger.info(f"Deleted habit {habit_id} and {removed} completion events")

    @staticmethod
    def load_user_snapshot(db: Session, user_id: str) -> Tuple[List[ScheduledHabit], List[CompletionEvent]]:
        """Current schedules and the raw event log for every habit the user still has"""
        habits = [ScheduledHabit.from_model(h) for h in HabitService.list_habits(db, user_id)]
        habit_ids = [h.id for h in habits]
        if not habit_ids:
            return habits, []
        events = db.query(CompletionEvent).filter(
            CompletionEvent.user_id == user_id,
            CompletionEvent.habit_id.in_(habit_ids)
        ).all()
        return habits, events

    @staticmethod
    def get_habits_for_date(
        db: Session,
        user_id: str,
        day: Optional[date],
        timezone_name: str,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Habits due on a local date, with completion state and live streaks"""
        resolve_timezone(timezone_name)
        today = local_today(timezone_name, now)
        if day is None:
            day = today

        due = []
        for habit in HabitService.list_habits(db, user_id):
            snapshot = ScheduledHabit.from_model(habit)
            if HabitScheduler.is_due(snapshot, day):
                due.append((habit, snapshot))
        if not due:
            return []

        events_by_habit = {habit.id: [] for habit, _ in due}
        events = db.query(CompletionEvent).filter(
            CompletionEvent.habit_id.in_(list(events_by_habit))
        ).all()
        for event in events:
            events_by_habit[event.habit_id].append(event)

        results = []
        for habit, snapshot in due:
            habit_events = events_by_habit[habit.id]
            completed = any(
                local_day(event.occurred_at, timezone_name).date == day for event in habit_events
            )
            streak = HabitStreakCalculator.calculate_streak(snapshot, habit_events, timezone_name, today)
            results.append({
                "id": habit.id,
                "name": habit.name,
                "icon": habit.icon,
                "schedule": snapshot.schedule.ordered() if snapshot.schedule else [],
                "active_from": habit.active_from,
                "active_until": habit.active_until,
                "completed": completed,
                "streak": streak.current,
                "longest_streak": streak.longest,
                "total_completions": len(habit_events),
                "last_completed_at": habit.last_completed_at,
            })

        logger.debug(f"{len(results)} habits due for user {user_id} on {day}")
        return results

    @staticmethod
    def get_habit_stats(db: Session, user_id: str, habit_id: str) -> Dict[str, Any]:
        """Cached analytics as last written by the toggle workflow or nightly refresh"""
        habit = HabitService.get_habit(db, user_id, habit_id)
        return {
            "habit_id": habit.id,
            "current_streak": habit.current_streak or 0,
            "longest_streak": habit.longest_streak or 0,
            "total_completions": habit.total_completions or 0,
            "last_completed_at": habit.last_completed_at,
        }
