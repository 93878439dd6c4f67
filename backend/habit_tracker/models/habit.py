from sqlalchemy import Column, String, Integer, Date, DateTime, Text, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from habit_tracker.db.base import Base
import uuid


class Habit(Base):
    """A recurring commitment with a weekly schedule and cached streak analytics"""
    __tablename__ = "habits"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    name = Column(Text, nullable=False)
    icon = Column(String, nullable=True)
    schedule = Column(String, nullable=False)  # canonical "Mon,Wed,Fri"
    active_from = Column(Date, nullable=False)
    active_until = Column(Date, nullable=True)
    timezone = Column(String, nullable=True)  # last zone the owner toggled from

    # Write-through cache, refreshed by the toggle workflow and nightly worker
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    total_completions = Column(Integer, nullable=False, default=0)
    last_completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    completions = relationship(
        "CompletionEvent",
        back_populates="habit",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Habit(name='{self.name}', schedule='{self.schedule}')>"


class CompletionEvent(Base):
    """Immutable fact that a habit was completed; at most one per habit per local day"""
    __tablename__ = "completion_events"
    __table_args__ = (
        UniqueConstraint("habit_id", "local_date", name="uq_completion_habit_local_date"),
        Index("ix_completion_user_occurred", "user_id", "occurred_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    habit_id = Column(String, ForeignKey("habits.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    local_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    habit = relationship("Habit", back_populates="completions")

    def __repr__(self):
        return f"<CompletionEvent(habit_id='{self.habit_id}', local_date='{self.local_date}')>"
