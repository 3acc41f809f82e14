"""
Profile model - onboarding answers that drive plan generation and daily dispatch.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class Profile(Base):
    """
    One profile per user. Created on onboarding, updated freely, never auto-deleted.

    `preferences` is a free-form bag: format, learning_style, email_notifications, summary.
    """
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    desired_role = Column(String, nullable=False)
    weekly_hours = Column(Integer, nullable=False)
    timezone = Column(String, nullable=True)  # IANA name, e.g. "America/New_York"
    preferences = Column(JSON, nullable=True)
    name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="profile")

    def wants_email(self) -> bool:
        """Email dispatch is opt-out: missing preference means enabled."""
        prefs = self.preferences or {}
        return prefs.get("email_notifications", True) is not False

    def __repr__(self):
        return f"<Profile(user_id={self.user_id}, role='{self.desired_role}', tz='{self.timezone}')>"
