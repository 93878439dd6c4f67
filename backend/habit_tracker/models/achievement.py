from sqlalchemy import Column, String, Integer, Boolean, DateTime, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from habit_tracker.db.base import Base
import uuid


class Achievement(Base):
    """Catalog entry: a requirement over a user's habit history"""
    __tablename__ = "achievements"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    key = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String, nullable=True)
    type = Column(String, nullable=False)  # habit_creation, completion, streak, milestone
    category = Column(String, nullable=False, index=True)
    requirement_type = Column(String, nullable=False)  # count, streak, days, percentage
    requirement_value = Column(Integer, nullable=False)
    requirement_data = Column(JSON, nullable=True)  # e.g. {"type": "perfect_days"}
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Achievement(key='{self.key}', type='{self.type}', value={self.requirement_value})>"


class UserAchievement(Base):
    """An achievement earned by a user; never revoked"""
    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    achievement_id = Column(String, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False, index=True)
    earned_at = Column(DateTime(timezone=True), nullable=False)
    progress_data = Column(JSON, nullable=True)  # value that satisfied the requirement

    achievement = relationship("Achievement")

    def __repr__(self):
        return f"<UserAchievement(user_id='{self.user_id}', achievement_id='{self.achievement_id}')>"
