from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional, Union
from datetime import datetime, date
from habit_tracker.core.config import settings
from habit_tracker.core.deps import get_current_user_id, get_now
from habit_tracker.db.session import get_db
from habit_tracker.models.habit import Habit
from habit_tracker.services.achievements import AchievementService
from habit_tracker.services.habit_scheduler import ScheduledHabit
from habit_tracker.services.habit_service import HabitService
from habit_tracker.services.habit_trackers import HabitTrackerService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

# Recurrence may arrive as a label list, "Mon,Wed,Fri", a JSON array string or an RRULE
ScheduleInput = Union[List[str], str]


class HabitCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    icon: Optional[str] = None
    schedule: ScheduleInput
    active_from: Optional[date] = None
    active_until: Optional[date] = None


class HabitUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    icon: Optional[str] = None
    schedule: Optional[ScheduleInput] = None
    active_from: Optional[date] = None
    active_until: Optional[date] = None


class HabitResponse(BaseModel):
    id: str
    name: str
    icon: Optional[str] = None
    schedule: List[str]
    active_from: date
    active_until: Optional[date] = None
    current_streak: int
    longest_streak: int
    total_completions: int
    last_completed_at: Optional[datetime] = None


class HabitForDateResponse(BaseModel):
    id: str
    name: str
    icon: Optional[str] = None
    schedule: List[str]
    active_from: date
    active_until: Optional[date] = None
    completed: bool
    streak: int
    longest_streak: int
    total_completions: int
    last_completed_at: Optional[datetime] = None


class TrackerToggle(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    occurred_at: datetime = Field(..., alias="occurredAt")
    timezone: str
    notes: Optional[str] = Field(None, max_length=500)


class TrackerToggleResponse(BaseModel):
    status: str
    message: str
    tracker_id: Optional[str] = None
    new_achievements: List[str] = []


class TrackerResponse(BaseModel):
    id: str
    habit_id: str
    occurred_at: datetime
    local_date: date
    notes: Optional[str] = None


class HabitStatsResponse(BaseModel):
    habit_id: str
    current_streak: int
    longest_streak: int
    total_completions: int
    last_completed_at: Optional[datetime] = None


def _habit_response(habit: Habit) -> HabitResponse:
    schedule = ScheduledHabit.from_model(habit).schedule
    return HabitResponse(
        id=habit.id,
        name=habit.name,
        icon=habit.icon,
        schedule=schedule.ordered() if schedule else [],
        active_from=habit.active_from,
        active_until=habit.active_until,
        current_streak=habit.current_streak or 0,
        longest_streak=habit.longest_streak or 0,
        total_completions=habit.total_completions or 0,
        last_completed_at=habit.last_completed_at
    )


@router.get("", response_model=List[HabitForDateResponse])
def get_habits_for_date(
    day: Optional[date] = Query(None, alias="date"),
    timezone: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Habits due on a local date (default: today) with completion state and streaks"""
    timezone = timezone or settings.default_timezone
    return HabitService.get_habits_for_date(db, user_id, day, timezone, now)


@router.get("/all", response_model=List[HabitResponse])
def list_habits(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Every habit the user owns, due or not"""
    return [_habit_response(habit) for habit in HabitService.list_habits(db, user_id)]


@router.post("", response_model=HabitResponse, status_code=status.HTTP_201_CREATED)
def create_habit(
    habit_data: HabitCreate,
    timezone: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Create a new habit"""
    habit = HabitService.create_habit(
        db,
        user_id,
        name=habit_data.name,
        schedule=habit_data.schedule,
        timezone_name=timezone or settings.default_timezone,
        icon=habit_data.icon,
        active_from=habit_data.active_from,
        active_until=habit_data.active_until,
        now=now
    )
    AchievementService.check_and_award(db, user_id, habit.timezone, now)
    return _habit_response(habit)


@router.put("/{habit_id}", response_model=HabitResponse)
def update_habit(
    habit_id: str,
    habit_data: HabitUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Update name, icon, schedule or lifecycle dates"""
    changes = habit_data.model_dump(exclude_unset=True)
    if changes.get("name") is None:
        changes.pop("name", None)
    habit = HabitService.update_habit(db, user_id, habit_id, changes)
    return _habit_response(habit)


@router.delete("/{habit_id}")
def delete_habit(
    habit_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete a habit and its completion history"""
    HabitService.delete_habit(db, user_id, habit_id)
    return {"message": "Habit deleted successfully"}


@router.get("/{habit_id}/trackers", response_model=List[TrackerResponse])
def get_trackers(
    habit_id: str,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    timezone: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Completion events for a habit, optionally limited to a local date range"""
    events = HabitTrackerService.list_trackers(
        db, user_id, habit_id, timezone or settings.default_timezone, start_date, end_date
    )
    return [
        TrackerResponse(
            id=event.id,
            habit_id=event.habit_id,
            occurred_at=event.occurred_at,
            local_date=event.local_date,
            notes=event.notes
        ) for event in events
    ]


@router.post("/{habit_id}/trackers", response_model=TrackerToggleResponse)
def toggle_tracker(
    habit_id: str,
    toggle: TrackerToggle,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Toggle completion for the local day of occurred_at: 201 when added, 200 when removed"""
    result = HabitTrackerService.toggle_completion(
        db,
        user_id,
        habit_id,
        occurred_at=toggle.occurred_at,
        timezone_name=toggle.timezone,
        notes=toggle.notes,
        now=now
    )
    response.status_code = status.HTTP_201_CREATED if result.status == "added" else status.HTTP_200_OK
    return TrackerToggleResponse(
        status=result.status,
        message=result.message,
        tracker_id=result.tracker_id,
        new_achievements=list(result.new_achievements)
    )


@router.get("/{habit_id}/stats", response_model=HabitStatsResponse)
def get_habit_stats(
    habit_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Cached streak analytics for a habit"""
    return HabitStatsResponse(**HabitService.get_habit_stats(db, user_id, habit_id))
