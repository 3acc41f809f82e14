"""
Notification history, today's tasks and manual daily plan dispatch.
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, get_current_user_obj
from app.db.models.user import User
from app.db.session import SessionLocal
from app.schemas.notification import (
    NotificationResponse,
    ActivePlannerSummary,
    TodayTasksResponse,
    SendDailyPlanResponse,
    DispatchReportResponse,
)
from app.schemas.planner import PlanTask
from app.services import notification_service
from app.services.daily_dispatch import DailyDispatchScheduler, get_scheduler
from app.services.email_service import get_email_service
from app.services.planner_service import get_active_planner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


def get_dispatch_scheduler() -> DailyDispatchScheduler:
    """The running scheduler, or a one-off one when the hourly job is disabled."""
    scheduler = get_scheduler()
    if scheduler is None:
        scheduler = DailyDispatchScheduler(SessionLocal, get_email_service())
    return scheduler


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    notifications = notification_service.list_notifications(db, user.id, unread_only=unread_only, limit=limit)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.put("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    notification = notification_service.mark_read(db, user.id, notification_id)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return NotificationResponse.model_validate(notification)


@router.get("/today", response_model=TodayTasksResponse)
def get_today_tasks(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    """Today's tasks in the user's timezone. Empty when no planner covers today."""
    today = notification_service.get_today_tasks(db, user.id)
    if today.planner is None:
        return TodayTasksResponse(date=today.date)

    day = today.day or {}
    return TodayTasksResponse(
        date=today.date,
        planner=ActivePlannerSummary.model_validate(today.planner),
        day_index=today.day_index,
        focus=day.get("focus"),
        tasks=[PlanTask.model_validate(task) for task in day.get("tasks") or []],
    )


@router.post("/send-daily-plan", response_model=SendDailyPlanResponse)
def send_daily_plan(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    scheduler: DailyDispatchScheduler = Depends(get_dispatch_scheduler),
):
    """
    Send today's plan now, regardless of the local hour.

    A plan already sent today is not sent again.
    """
    today = notification_service.user_local_date(db, user.id)
    planner = get_active_planner(db, user.id, today)
    if planner is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active planner found for user"
        )

    try:
        sent = scheduler.trigger_for_user(user.id)
    except Exception as e:
        logger.error(f"Failed to send daily plan: user_id={user.id}, error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send daily plan email"
        )

    return SendDailyPlanResponse(
        sent=sent,
        planner_id=planner.id,
        message="Daily plan email sent" if sent else "Daily plan not sent (already sent today, opted out or no tasks)",
    )


@router.post("/trigger-all", response_model=DispatchReportResponse)
def trigger_all(
    user: User = Depends(get_current_user_obj),
    scheduler: DailyDispatchScheduler = Depends(get_dispatch_scheduler),
):
    """Run one dispatch pass now; only users at their local dispatch hour are sent."""
    logger.info(f"Manual dispatch tick requested: user_id={user.id}")
    try:
        report = scheduler.run_tick()
    except Exception as e:
        logger.error(f"Manual dispatch tick failed: error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to trigger daily emails"
        )
    return DispatchReportResponse.model_validate(report)


@router.get("/scheduler-status")
def scheduler_status(
    user: User = Depends(get_current_user_obj),
    scheduler: DailyDispatchScheduler = Depends(get_dispatch_scheduler),
):
    return scheduler.status()
