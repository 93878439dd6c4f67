from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from dataclasses import asdict
from datetime import datetime
from habit_tracker.core.config import settings
from habit_tracker.core.deps import get_current_user_id, get_now
from habit_tracker.db.session import get_db
from habit_tracker.services.achievements import AchievementService, achievement_summary
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class AchievementProgressResponse(BaseModel):
    current_value: float
    target_value: int
    progress_percentage: float


class AchievementSummaryResponse(BaseModel):
    id: str
    key: str
    name: str
    description: str
    icon: Optional[str] = None
    type: str
    category: str


class AchievementResponse(AchievementSummaryResponse):
    requirement_type: str
    requirement_value: int
    requirement_data: Optional[Dict[str, Any]] = None
    is_earned: bool
    earned_at: Optional[datetime] = None
    progress: Optional[AchievementProgressResponse] = None


class EarnedAchievementResponse(AchievementSummaryResponse):
    earned_at: datetime
    progress_data: Optional[Dict[str, Any]] = None


class CategoryStats(BaseModel):
    total: int
    earned: int


class RecentAchievementResponse(AchievementSummaryResponse):
    earned_at: datetime


class AchievementStatsResponse(BaseModel):
    total_achievements: int
    earned_achievements: int
    completion_percentage: int
    category_stats: Dict[str, CategoryStats]
    recent_achievements: List[RecentAchievementResponse]


class AchievementCheckResponse(BaseModel):
    message: str
    new_achievements: List[AchievementSummaryResponse]
    count: int


@router.get("", response_model=List[AchievementResponse])
def list_achievements(
    timezone: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Full catalog with earned state and progress toward the rest"""
    results = AchievementService.list_for_user(db, user_id, timezone or settings.default_timezone, now)
    return [
        AchievementResponse(
            **{key: value for key, value in entry.items() if key != "progress"},
            progress=AchievementProgressResponse(**asdict(entry["progress"])) if entry["progress"] else None
        )
        for entry in results
    ]


@router.get("/earned", response_model=List[EarnedAchievementResponse])
def list_earned_achievements(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return [
        EarnedAchievementResponse(
            **achievement_summary(ua.achievement),
            earned_at=ua.earned_at,
            progress_data=ua.progress_data
        )
        for ua in AchievementService.earned(db, user_id)
    ]


@router.get("/stats", response_model=AchievementStatsResponse)
def get_achievement_stats(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    return AchievementStatsResponse(**AchievementService.stats(db, user_id))


@router.post("/check", response_model=AchievementCheckResponse)
def check_achievements(
    timezone: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db)
):
    """Evaluate the catalog now and award anything newly met"""
    awarded = AchievementService.check_and_award(db, user_id, timezone or settings.default_timezone, now)
    return AchievementCheckResponse(
        message=f"Awarded {len(awarded)} new achievement(s)",
        new_achievements=[AchievementSummaryResponse(**achievement_summary(a)) for a in awarded],
        count=len(awarded)
    )


@router.post("/initialize")
def initialize_achievements(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Insert or refresh the default catalog"""
    count = AchievementService.initialize_achievements(db)
    logger.info(f"Achievement catalog initialized by user {user_id}")
    return {"message": "Achievements initialized successfully", "count": count}
