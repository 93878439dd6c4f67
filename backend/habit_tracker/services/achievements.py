"""
Achievement Service - Catalog, requirement evaluation and awarding
"""

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, date, timedelta, timezone
from functools import cached_property
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from habit_tracker.models.achievement import Achievement, UserAchievement
from habit_tracker.services.habit_calendar import local_datetime, local_today, resolve_timezone
from habit_tracker.services.habit_progress import HabitProgressAggregator
from habit_tracker.services.habit_scheduler import ScheduledHabit
from habit_tracker.services.habit_service import HabitService
from habit_tracker.services.habit_streaks import HabitStreakCalculator

logger = logging.getLogger(__name__)


def _entry(key, name, description, icon, achievement_type, category, requirement_type, value, data=None):
    return {
        "key": key,
        "name": name,
        "description": description,
        "icon": icon,
        "type": achievement_type,
        "category": category,
        "requirement_type": requirement_type,
        "requirement_value": value,
        "requirement_data": data,
    }


DEFAULT_ACHIEVEMENTS = [
    # Getting started
    _entry("first_habit", "First Step", "Create your very first habit", "Sprout",
           "habit_creation", "getting_started", "count", 1),
    _entry("first_completion", "Getting Started", "Complete your first habit", "CheckCircle",
           "completion", "getting_started", "count", 1),
    _entry("three_habits", "Building Momentum", "Create 3 habits", "Target",
           "habit_creation", "getting_started", "count", 3),
    _entry("five_habits", "Habit Collector", "Create 5 habits", "BookOpen",
           "habit_creation", "getting_started", "count", 5),
    _entry("first_week", "Week Warrior", "Complete habits on 7 different days", "Calendar",
           "milestone", "getting_started", "days", 7, {"type": "active_days"}),

    # Consistency
    _entry("streak_3", "On a Roll", "Maintain a 3-day streak", "Flame",
           "streak", "consistency", "streak", 3),
    _entry("streak_7", "Week Streak", "Maintain a 7-day streak", "Zap",
           "streak", "consistency", "streak", 7),
    _entry("streak_14", "Two Weeks Strong", "Maintain a 14-day streak", "Shield",
           "streak", "consistency", "streak", 14),
    _entry("streak_21", "Habit Former", "Maintain a 21-day streak", "Medal",
           "streak", "consistency", "streak", 21),
    _entry("streak_30", "Month Master", "Maintain a 30-day streak", "Crown",
           "streak", "consistency", "streak", 30),
    _entry("streak_50", "Fifty Days", "Maintain a 50-day streak", "Star",
           "streak", "consistency", "streak", 50),
    _entry("streak_66", "Habit Scientist", "Maintain a 66-day streak (average time to form a habit)", "Activity",
           "streak", "consistency", "streak", 66),
    _entry("streak_100", "Centurion", "Maintain a 100-day streak", "Building",
           "streak", "consistency", "streak", 100),
    _entry("perfect_week", "Perfect Week", "Complete every scheduled habit on 7 days", "Star",
           "milestone", "consistency", "days", 7, {"type": "perfect_days"}),
    _entry("perfect_month", "Perfect Month", "Complete every scheduled habit on 30 days", "Moon",
           "milestone", "consistency", "days", 30, {"type": "perfect_days"}),

    # Dedication
    _entry("completions_10", "Getting Active", "Complete habits 10 times", "Activity",
           "completion", "dedication", "count", 10),
    _entry("completions_25", "Quarter Century", "Complete habits 25 times", "Star",
           "completion", "dedication", "count", 25),
    _entry("completions_50", "Half Century", "Complete habits 50 times", "Target",
           "completion", "dedication", "count", 50),
    _entry("completions_100", "Century Club", "Complete habits 100 times", "Trophy",
           "completion", "dedication", "count", 100),
    _entry("completions_250", "Dedicated", "Complete habits 250 times", "Award",
           "completion", "dedication", "count", 250),
    _entry("completions_500", "Habit Master", "Complete habits 500 times", "Medal",
           "completion", "dedication", "count", 500),
    _entry("completions_1000", "Legendary", "Complete habits 1000 times", "Crown",
           "completion", "dedication", "count", 1000),
    _entry("active_30_days", "Monthly Active", "Be active for 30 days", "TrendingUp",
           "milestone", "dedication", "days", 30, {"type": "active_days"}),
    _entry("active_60_days", "Bi-Monthly Active", "Be active for 60 days", "TrendingUp",
           "milestone", "dedication", "days", 60, {"type": "active_days"}),
    _entry("active_100_days", "Hundred Day Hero", "Be active for 100 days", "Shield",
           "milestone", "dedication", "days", 100, {"type": "active_days"}),

    # Milestones
    _entry("ten_habits", "Habit Enthusiast", "Create 10 habits", "Target",
           "habit_creation", "milestones", "count", 10),
    _entry("twenty_habits", "Habit Architect", "Create 20 habits", "Building",
           "habit_creation", "milestones", "count", 20),
    _entry("streak_365", "Year Long", "Maintain a 365-day streak", "Star",
           "streak", "milestones", "streak", 365),
    _entry("early_bird", "Early Bird", "Complete a habit before 8 AM on 7 days", "Sun",
           "milestone", "milestones", "days", 7, {"type": "early_morning", "hour": 8}),
    _entry("night_owl", "Night Owl", "Complete a habit after 10 PM on 7 days", "Moon",
           "milestone", "milestones", "days", 7, {"type": "late_night", "hour": 22}),
    _entry("weekend_warrior", "Weekend Warrior", "Complete habits on 8 weekend days", "Shield",
           "milestone", "milestones", "days", 8, {"type": "weekend_days"}),
    _entry("social_butterfly", "Social Butterfly", "Add notes to habit completions 20 times", "MessageSquare",
           "milestone", "milestones", "count", 20, {"type": "notes_added"}),
    _entry("maximalist", "Maximalist", "Complete 10 habits in a single day", "Star",
           "milestone", "milestones", "count", 10, {"type": "single_day_completions"}),
    _entry("time_traveler", "Time Traveler", "Be active for 180 days", "Timer",
           "milestone", "milestones", "days", 180, {"type": "active_days"}),
    _entry("habit_guru", "Habit Guru", "Achieve a 90% completion rate over the last 30 days", "User",
           "milestone", "milestones", "percentage", 90, {"type": "completion_rate", "days": 30}),
    _entry("habit_legend", "Habit Legend", "Earn 25 other achievements", "Crown",
           "milestone", "milestones", "count", 25, {"type": "achievement_count"}),
]


@dataclass(frozen=True)
class AchievementProgress:
    current_value: float
    target_value: int
    progress_percentage: float


class AchievementContext:
    """A user's habit history as of one local day; derived figures are computed on first use"""

    def __init__(
        self,
        habits: Sequence[ScheduledHabit],
        events: Sequence[Any],
        timezone_name: str,
        today: date,
        earned_count: int = 0
    ):
        self.habits = list(habits)
        self.events = list(events)
        self.timezone_name = timezone_name
        self.today = today
        self.earned_count = earned_count

    @cached_property
    def local_times(self) -> List[datetime]:
        return [local_datetime(event.occurred_at, self.timezone_name) for event in self.events]

    @cached_property
    def total_habits(self) -> int:
        return len(self.habits)

    @cached_property
    def total_completions(self) -> int:
        return len(self.events)

    @cached_property
    def longest_streak(self) -> int:
        events_by_habit = defaultdict(list)
        for event in self.events:
            events_by_habit[event.habit_id].append(event)
        return max(
            (
                HabitStreakCalculator.calculate_streak(
                    habit, events_by_habit[habit.id], self.timezone_name, self.today
                ).longest
                for habit in self.habits
            ),
            default=0
        )

    @cached_property
    def active_days(self) -> int:
        return len({moment.date() for moment in self.local_times})

    @cached_property
    def perfect_days(self) -> int:
        series = HabitProgressAggregator.daily_progress(
            self.habits, self.events, self.timezone_name,
            HabitProgressAggregator.lookback_start(self.today), self.today
        )
        return sum(1 for entry in series if entry.is_perfect)

    @cached_property
    def max_single_day_completions(self) -> int:
        per_day = Counter(moment.date() for moment in self.local_times)
        return max(per_day.values(), default=0)

    @cached_property
    def notes_added(self) -> int:
        return sum(1 for event in self.events if (getattr(event, "notes", None) or "").strip())

    @cached_property
    def weekend_days(self) -> int:
        return len({moment.date() for moment in self.local_times if moment.weekday() >= 5})

    def days_before_hour(self, hour: int) -> int:
        return len({moment.date() for moment in self.local_times if moment.hour < hour})

    def days_from_hour(self, hour: int) -> int:
        return len({moment.date() for moment in self.local_times if moment.hour >= hour})

    def completion_rate(self, days: int) -> float:
        """Completed share of scheduled habit-days over the trailing window; 0 until the window is covered"""
        start = self.today - timedelta(days=days - 1)
        if not self.habits or min(habit.active_from for habit in self.habits) > start:
            return 0.0
        series = HabitProgressAggregator.daily_progress(
            self.habits, self.events, self.timezone_name, start, self.today
        )
        scheduled = sum(entry.scheduled_count for entry in series)
        if not scheduled:
            return 0.0
        completed = sum(entry.completed_count for entry in series)
        return round(completed / scheduled * 100, 2)


def _requirement_kind(achievement: Achievement) -> Optional[str]:
    return (achievement.requirement_data or {}).get("type")


def _awards_last(achievement: Achievement) -> bool:
    return _requirement_kind(achievement) == "achievement_count"


class AchievementService:
    """Evaluates the achievement catalog against a user's habits and completion log"""

    @staticmethod
    def initialize_achievements(db: Session) -> int:
        """Insert or refresh the default catalog by key"""
        existing = {a.key: a for a in db.query(Achievement).all()}
        for definition in DEFAULT_ACHIEVEMENTS:
            achievement = existing.get(definition["key"])
            if achievement is None:
                db.add(Achievement(is_active=True, **definition))
            else:
                for field, value in definition.items():
                    setattr(achievement, field, value)
        db.commit()
        logger.info(f"Achievement catalog initialized with {len(DEFAULT_ACHIEVEMENTS)} entries")
        return len(DEFAULT_ACHIEVEMENTS)

    @staticmethod
    def list_catalog(db: Session) -> List[Achievement]:
        if db.query(Achievement).first() is None:
            AchievementService.initialize_achievements(db)
        return db.query(Achievement).filter(Achievement.is_active.is_(True)).order_by(
            Achievement.category, Achievement.type, Achievement.requirement_value, Achievement.key
        ).all()

    @staticmethod
    def earned(db: Session, user_id: str) -> List[UserAchievement]:
        """Earned active achievements, most recent first"""
        return db.query(UserAchievement).join(Achievement).filter(
            UserAchievement.user_id == user_id,
            Achievement.is_active.is_(True)
        ).order_by(UserAchievement.earned_at.desc(), Achievement.key).all()

    @staticmethod
    def build_context(
        db: Session,
        user_id: str,
        timezone_name: str,
        now: Optional[datetime] = None,
        earned_count: int = 0
    ) -> AchievementContext:
        resolve_timezone(timezone_name)
        habits, events = HabitService.load_user_snapshot(db, user_id)
        return AchievementContext(habits, events, timezone_name, local_today(timezone_name, now), earned_count)

    @staticmethod
    def current_value(achievement: Achievement, context: AchievementContext) -> float:
        if achievement.type == "habit_creation":
            return context.total_habits
        if achievement.type == "completion":
            return context.total_completions
        if achievement.type == "streak":
            return context.longest_streak

        data = achievement.requirement_data or {}
        kind = data.get("type")
        if kind == "active_days":
            return context.active_days
        if kind == "perfect_days":
            return context.perfect_days
        if kind == "early_morning":
            return context.days_before_hour(int(data.get("hour", 8)))
        if kind == "late_night":
            return context.days_from_hour(int(data.get("hour", 22)))
        if kind == "weekend_days":
            return context.weekend_days
        if kind == "notes_added":
            return context.notes_added
        if kind == "single_day_completions":
            return context.max_single_day_completions
        if kind == "completion_rate":
            return context.completion_rate(int(data.get("days", 30)))
        if kind == "achievement_count":
            return context.earned_count

        logger.debug(f"No evaluator for achievement {achievement.key} ({achievement.type}/{kind})")
        return 0

    @staticmethod
    def progress(achievement: Achievement, context: AchievementContext) -> AchievementProgress:
        value = AchievementService.current_value(achievement, context)
        target = achievement.requirement_value
        percentage = 100.0 if target <= 0 else min(100.0, value / target * 100)
        return AchievementProgress(value, target, round(percentage, 2))

    @staticmethod
    def check_and_award(
        db: Session,
        user_id: str,
        timezone_name: str,
        now: Optional[datetime] = None
    ) -> List[Achievement]:
        """
        Award every unearned achievement whose requirement the user now meets.

        Earned achievements are kept even if the history behind them is later
        undone. Achievements counting other achievements are evaluated last so
        they see this round's awards.
        """
        catalog = AchievementService.list_catalog(db)
        earned_ids = {ua.achievement_id for ua in AchievementService.earned(db, user_id)}
        context = AchievementService.build_context(db, user_id, timezone_name, now, len(earned_ids))
        earned_at = now or datetime.now(timezone.utc)

        newly_earned = []
        for achievement in sorted(catalog, key=_awards_last):
            if achievement.id in earned_ids:
                continue
            value = AchievementService.current_value(achievement, context)
            if value < achievement.requirement_value:
                continue
            db.add(UserAchievement(
                user_id=user_id,
                achievement_id=achievement.id,
                earned_at=earned_at,
                progress_data={"value": value}
            ))
            newly_earned.append(achievement)
            context.earned_count += 1

        if not newly_earned:
            return []
        try:
            db.commit()
        except IntegrityError as e:
            # A concurrent check already recorded them
            db.rollback()
            logger.warning(f"Achievement award for user {user_id} raced another check: {e}")
            return []

        logger.info(f"User {user_id} earned {[a.key for a in newly_earned]}")
        return newly_earned

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: str,
        timezone_name: str,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Whole catalog with earned state, and progress toward the unearned ones"""
        catalog = AchievementService.list_catalog(db)
        earned = {ua.achievement_id: ua for ua in AchievementService.earned(db, user_id)}
        context = AchievementService.build_context(db, user_id, timezone_name, now, len(earned))

        results = []
        for achievement in catalog:
            user_achievement = earned.get(achievement.id)
            results.append({
                **achievement_summary(achievement),
                "requirement_type": achievement.requirement_type,
                "requirement_value": achievement.requirement_value,
                "requirement_data": achievement.requirement_data,
                "is_earned": user_achievement is not None,
                "earned_at": user_achievement.earned_at if user_achievement else None,
                "progress": None if user_achievement else AchievementService.progress(achievement, context),
            })
        return results

    @staticmethod
    def stats(db: Session, user_id: str) -> Dict[str, Any]:
        catalog = AchievementService.list_catalog(db)
        earned = AchievementService.earned(db, user_id)
        earned_ids = {ua.achievement_id for ua in earned}

        category_stats = {}
        for achievement in catalog:
            bucket = category_stats.setdefault(achievement.category, {"total": 0, "earned": 0})
            bucket["total"] += 1
            if achievement.id in earned_ids:
                bucket["earned"] += 1

        total = len(catalog)
        return {
            "total_achievements": total,
            "earned_achievements": len(earned),
            "completion_percentage": round(len(earned) / total * 100) if total else 0,
            "category_stats": category_stats,
            "recent_achievements": [
                {**achievement_summary(ua.achievement), "earned_at": ua.earned_at}
                for ua in earned[:10]
            ],
        }


def achievement_summary(achievement: Achievement) -> Dict[str, Any]:
    return {
        "id": achievement.id,
        "key": achievement.key,
        "name": achievement.name,
        "description": achievement.description,
        "icon": achievement.icon,
        "type": achievement.type,
        "category": achievement.category,
    }
