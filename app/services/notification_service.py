"""
Notification history and the user's tasks for today.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from app.core.timezone import is_valid_timezone, local_date
from app.db.models.notification import Notification
from app.db.models.planner import Planner
from app.db.models.profile import Profile
from app.services.daily_dispatch import compute_day_index
from app.services.planner_service import get_active_planner, get_day_tasks

logger = logging.getLogger(__name__)


@dataclass
class TodayTasks:
    date: date
    planner: Optional[Planner] = None
    day_index: Optional[int] = None
    day: Optional[Dict[str, Any]] = None


def list_notifications(db: Session, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    """Newest first."""
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(db: Session, user_id: int, notification_id: int) -> Optional[Notification]:
    """Mark one of the user's notifications read. Returns None if it is not theirs."""
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if notification is None:
        return None
    if not notification.read:
        notification.read = True
        db.commit()
        db.refresh(notification)
        logger.info(f"Notification marked read: notification_id={notification_id}, user_id={user_id}")
    return notification


def user_local_date(db: Session, user_id: int, now: Optional[datetime] = None) -> date:
    """Calendar date in the user's timezone; UTC when the profile has no valid timezone."""
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    tz_name = profile.timezone if profile and is_valid_timezone(profile.timezone) else None
    return local_date(now or datetime.utcnow(), tz_name)


def get_today_tasks(db: Session, user_id: int, now: Optional[datetime] = None) -> TodayTasks:
    today = user_local_date(db, user_id, now)
    planner = get_active_planner(db, user_id, today)
    if planner is None:
        return TodayTasks(date=today)

    day_index = compute_day_index(planner, today)
    day = get_day_tasks(planner.plan_json, day_index, today)
    if day is not None:
        day_index = day.get("day_index", day_index)
    return TodayTasks(date=today, planner=planner, day_index=day_index, day=day)
