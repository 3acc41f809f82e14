"""
Planner model - one generated multi-day learning plan for a user and target role.
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, Float, ForeignKey, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class Planner(Base):
    """
    Learning planner.

    `plan_json` holds the normalized plan document ({summary, days: [{day_index, date, focus, tasks}]}).
    `progress_percent` is written by external progress reporting and clamped to 0-100.
    """
    __tablename__ = "planners"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # start_date + duration_days - 1
    plan_json = Column(JSON, nullable=True)
    plan_source = Column(String, nullable=False, default="fallback")  # "ai" | "fallback"
    progress_percent = Column(Float, nullable=False, default=0.0)
    milestones_reached = Column(JSON, nullable=True, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    interviews = relationship("Interview", back_populates="planner")

    __table_args__ = (
        Index('idx_planner_user_dates', 'user_id', 'start_date', 'end_date'),
    )

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def __repr__(self):
        return f"<Planner(id={self.id}, user_id={self.user_id}, role='{self.role}', progress={self.progress_percent})>"
