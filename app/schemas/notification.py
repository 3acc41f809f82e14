"""
Pydantic schemas for notification history and daily plan dispatch.
"""
from typing import Optional, List, Any, Dict
from datetime import date, datetime
from pydantic import BaseModel, Field

from app.schemas.planner import PlanTask


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    type: str
    message: str
    sent: bool
    read: bool
    payload: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActivePlannerSummary(BaseModel):
    id: int
    role: str
    progress_percent: float
    start_date: date
    end_date: date

    class Config:
        from_attributes = True


class TodayTasksResponse(BaseModel):
    """Today's tasks in the user's timezone. `planner` is None without an active planner."""
    date: date
    planner: Optional[ActivePlannerSummary] = None
    day_index: Optional[int] = None
    focus: Optional[str] = None
    tasks: List[PlanTask] = Field(default_factory=list)


class SendDailyPlanResponse(BaseModel):
    sent: bool
    planner_id: int
    message: str


class DispatchReportResponse(BaseModel):
    checked: int
    dispatched: List[int]
    skipped: List[int]
    failed: List[int]
    overlapped: bool

    class Config:
        from_attributes = True
