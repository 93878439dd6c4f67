import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from habit_tracker.core.config import settings
from habit_tracker.db.base import SessionLocal
from habit_tracker.workers.habit_streak_worker import HabitStreakWorker

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for managing scheduled tasks"""

    def __init__(self):
        self.scheduler = AsyncIOScheduler(timezone=settings.default_timezone)
        self.streak_worker = HabitStreakWorker(SessionLocal)
        self._setup_jobs()

    def _setup_jobs(self):
        """Set up all scheduled jobs"""

        # Nightly streak cache refresh, shortly after local midnight
        self.scheduler.add_job(
            func=self.refresh_streaks,
            trigger=CronTrigger(
                hour=settings.streak_refresh_hour,
                minute=settings.streak_refresh_minute,
                timezone=settings.default_timezone
            ),
            id="habit_streak_refresh",
            name="Habit Streak Refresh",
            replace_existing=True
        )

        logger.info("Scheduled jobs configured")

    def start(self):
        """Start the scheduler"""
        try:
            self.scheduler.start()
            logger.info("Scheduler started successfully")
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")

    def shutdown(self):
        """Shutdown the scheduler"""
        if not self.scheduler.running:
            return
        try:
            self.scheduler.shutdown(wait=True)
            logger.info("Scheduler shut down successfully")
        except Exception as e:
            logger.error(f"Failed to shutdown scheduler: {e}")

    def refresh_streaks(self):
        """Run the nightly habit streak maintenance"""
        try:
            result = self.streak_worker.run_daily_maintenance()
            logger.info(f"Streak refresh job finished: {result['habits_updated']} habits")
        except Exception as e:
            logger.error(f"Streak refresh job failed: {e}")


scheduler_service = SchedulerService()
