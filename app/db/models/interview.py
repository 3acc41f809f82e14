"""
Interview model - a mock voice interview unlocked by planner progress.
"""
import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, Float, ForeignKey, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class InterviewStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Interview(Base):
    """
    Interview lifecycle record.

    `session_correlation_id` is the provider call id set when the session starts and is the
    lookup key for the completion webhook. `recording_url` is only filled by the webhook.
    """
    __tablename__ = "interviews"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    planner_id = Column(Integer, ForeignKey("planners.id"), nullable=True, index=True)
    scheduled_at = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default=InterviewStatus.PENDING.value, index=True)

    # Provider session
    session_correlation_id = Column(String, nullable=True, unique=True, index=True)
    provider_assistant_id = Column(String, nullable=True)
    started_at = Column(DateTime, nullable=True)

    # Completion callback
    transcript = Column(Text, nullable=True)
    score_json = Column(JSON, nullable=True)
    recording_url = Column(String, nullable=True)
    ended_reason = Column(String, nullable=True)
    call_duration_seconds = Column(Float, nullable=True)
    call_cost = Column(Float, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    planner = relationship("Planner", back_populates="interviews")

    __table_args__ = (
        Index('idx_interview_user_planner_status', 'user_id', 'planner_id', 'status'),
    )

    def __repr__(self):
        return f"<Interview(id={self.id}, user_id={self.user_id}, status='{self.status}')>"
