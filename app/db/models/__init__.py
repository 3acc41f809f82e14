"""
Database models module.

Importing this package registers every model with SQLAlchemy's Base.metadata
before table creation or migrations.
"""
from app.db.models.user import User
from app.db.models.profile import Profile
from app.db.models.resume import Resume
from app.db.models.planner import Planner
from app.db.models.interview import Interview, InterviewStatus
from app.db.models.notification import Notification

__all__ = [
    "User",
    "Profile",
    "Resume",
    "Planner",
    "Interview",
    "InterviewStatus",
    "Notification",
]
