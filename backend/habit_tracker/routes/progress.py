from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime, date
from habit_tracker.core.config import settings
from habit_tracker.core.deps import get_current_user_id, get_now
from habit_tracker.db.session import get_db
from habit_tracker.services.habit_calendar import local_today
from habit_tracker.services.habit_progress import DailyProgress, DateRange, HabitProgressAggregator
from habit_tracker.services.habit_service import HabitService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class DailyProgressResponse(BaseModel):
    date: date
    scheduled_count: int
    completed_count: int
    completion_rate: float


class StreaksResponse(BaseModel):
    current_streak: int
    longest_streak: int


class ProgressOverviewResponse(BaseModel):
    history: List[DailyProgressResponse]
    current_streak: int
    longest_streak: int


def _progress_response(entry: DailyProgress) -> DailyProgressResponse:
    return DailyProgressResponse(
        date=entry.date,
        scheduled_count=entry.scheduled_count,
        completed_count=entry.completed_count,
        completion_rate=entry.completion_rate
    )


@router.get("/history", response_model=List[DailyProgressResponse])
def get_progress_history(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    timezone: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Daily completion rates; the range only limits which days are returned"""
    timezone = timezone or settings.default_timezone
    display_range = DateRange(start_date, end_date)
    today = local_today(timezone, now)
    habits, events = HabitService.load_user_snapshot(db, user_id)
    history = HabitProgressAggregator.history(habits, events, timezone, today, display_range)
    return [_progress_response(entry) for entry in history]


@router.get("/streaks", response_model=StreaksResponse)
def get_streaks(
    timezone: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Perfect-day streaks over the full lookback window; date filters do not apply"""
    timezone = timezone or settings.default_timezone
    today = local_today(timezone, now)
    habits, events = HabitService.load_user_snapshot(db, user_id)
    streaks = HabitProgressAggregator.perfect_day_streaks(habits, events, timezone, today)
    return StreaksResponse(current_streak=streaks.current, longest_streak=streaks.longest)


@router.get("/overview", response_model=ProgressOverviewResponse)
def get_progress_overview(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    timezone: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """History for the requested range plus streaks computed independently of it"""
    timezone = timezone or settings.default_timezone
    display_range = DateRange(start_date, end_date)
    today = local_today(timezone, now)
    habits, events = HabitService.load_user_snapshot(db, user_id)
    overview = HabitProgressAggregator.overview(habits, events, timezone, today, display_range)
    logger.info(
        f"Progress overview for user {user_id}: {len(overview.history)} days, "
        f"streak={overview.current_streak}"
    )
    return ProgressOverviewResponse(
        history=[_progress_response(entry) for entry in overview.history],
        current_streak=overview.current_streak,
        longest_streak=overview.longest_streak
    )
