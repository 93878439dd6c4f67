"""
Habit Streak Worker - Nightly refresh of cached habit analytics
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from sqlalchemy.orm import Session

from habit_tracker.core.config import settings
from habit_tracker.core.errors import HabitTrackerError
from habit_tracker.models.habit import Habit
from habit_tracker.services.habit_trackers import HabitTrackerService

logger = logging.getLogger(__name__)


class HabitStreakWorker:
    """
    Keeps the write-through streak cache honest between toggles.

    A current streak cached at toggle time goes stale once a due day passes
    without a completion; this sweep recomputes every habit from its events.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def run_daily_maintenance(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        logger.info("Starting daily habit streak maintenance")

        now = now or datetime.now(timezone.utc)
        results = {
            "run_at": now.isoformat(),
            "habits_updated": 0,
            "streaks_broken": 0,
            "streaks_extended": 0,
            "new_streaks": 0,
            "errors": [],
        }

        db = self.session_factory()
        try:
            for habit in db.query(Habit).order_by(Habit.user_id, Habit.id).all():
                old_current = habit.current_streak or 0
                timezone_name = habit.timezone or settings.default_timezone
                try:
                    info = HabitTrackerService.refresh_habit_stats(db, habit, timezone_name, now)
                except HabitTrackerError as e:
                    error_msg = f"Failed to refresh streak for habit {habit.id}: {e.detail}"
                    logger.error(error_msg)
                    results["errors"].append(error_msg)
                    continue

                if info.current > old_current:
                    if old_current == 0:
                        results["new_streaks"] += 1
                    else:
                        results["streaks_extended"] += 1
                elif info.current == 0 and old_current > 0:
                    results["streaks_broken"] += 1

                results["habits_updated"] += 1
                logger.debug(f"  {habit.name}: {old_current} -> {info.current} (longest: {info.longest})")

            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Streak maintenance failed")
            raise
        finally:
            db.close()

        logger.info(
            f"Streak maintenance complete: {results['habits_updated']} habits, "
            f"{results['streaks_extended']} extended, {results['streaks_broken']} broken"
        )
        return results
