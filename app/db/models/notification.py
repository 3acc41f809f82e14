from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from app.db.base import Base


class Notification(Base):
    """
    Log of notifications sent to a user.

    `dispatch_key` deduplicates sends, e.g. "daily_plan:<planner_id>:<local date>".
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False, index=True)  # "daily_plan", "interview", "milestone"
    message = Column(Text, nullable=False)
    dispatch_key = Column(String, nullable=True, index=True)
    payload = Column(JSON, nullable=True)
    sent = Column(Boolean, nullable=False, default=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
