"""
Pydantic schemas for learning plans and planner endpoints.
"""
from typing import Optional, List, Any
from datetime import date, datetime
from pydantic import BaseModel, Field, AliasChoices


# ============================================
# Provider response (lenient shapes, validated per attempt)
# ============================================

class RawPlanTask(BaseModel):
    """Task as returned by the text-generation provider. Numbers may arrive as strings."""
    day_index: Any = Field(None, validation_alias=AliasChoices("dayIndex", "day_index"))
    title: str = Field(..., min_length=1)
    description: Optional[Any] = None
    duration_mins: Any = Field(None, validation_alias=AliasChoices("durationMins", "duration_mins"))
    resource_links: Optional[Any] = Field(None, validation_alias=AliasChoices("resourceLinks", "resource_links"))


class RawPlanDay(BaseModel):
    day_index: Any = Field(None, validation_alias=AliasChoices("dayIndex", "day_index"))
    date: Optional[Any] = None
    focus: Optional[Any] = None
    tasks: List[RawPlanTask] = Field(default_factory=list)


class RawPlan(BaseModel):
    summary: Optional[Any] = None
    days: List[RawPlanDay] = Field(..., min_length=1)


# ============================================
# Normalized plan (what gets persisted in Planner.plan_json)
# ============================================

class PlanTask(BaseModel):
    day_index: int = Field(..., ge=0)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    duration_mins: int = Field(..., ge=15, le=480)
    resource_links: List[str] = Field(default_factory=list, max_length=3)
    status: str = Field(default="pending", pattern="^(pending|completed)$")


class PlanDay(BaseModel):
    day_index: int = Field(..., ge=0)
    date: str = Field(..., description="ISO calendar date")
    focus: Optional[str] = None
    tasks: List[PlanTask] = Field(default_factory=list)


class Plan(BaseModel):
    summary: Optional[str] = None
    days: List[PlanDay] = Field(..., min_length=1)

    def flatten_tasks(self) -> List[PlanTask]:
        return [task for day in self.days for task in day.tasks]


# ============================================
# API schemas
# ============================================

class PlanGenerationRequest(BaseModel):
    """Request model for planner generation. Missing fields fall back to the user's profile."""
    role: Optional[str] = Field(None, description="Target role", max_length=200)
    start_date: Optional[date] = Field(None, description="First day of the plan (defaults to today)")
    duration_days: Optional[int] = Field(None, description="Plan length in days (1-56)")
    daily_hours: Optional[float] = Field(None, description="Hours available per day")
    experience_summary: Optional[str] = Field(None, description="Candidate background")
    focus_areas: List[str] = Field(default_factory=list, description="Areas to emphasise")
    additional_context: Optional[str] = Field(None, description="Anything else the coach should know")

    class Config:
        json_schema_extra = {
            "example": {
                "role": "Data Analyst",
                "start_date": "2026-03-02",
                "duration_days": 14,
                "focus_areas": ["SQL", "Dashboards"],
            }
        }


class PlannerResponse(BaseModel):
    id: int
    user_id: int
    role: str
    start_date: date
    end_date: date
    progress_percent: float
    plan_source: str
    plan_json: Optional[dict] = None
    milestones_reached: Optional[List[int]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PlannerGenerationResponse(BaseModel):
    planner: PlannerResponse
    tasks: List[PlanTask]
    source: str = Field(..., description="'ai' when the provider plan was used, 'fallback' otherwise")
    attempts: int = Field(0, description="Provider attempts made")


class ProgressUpdateRequest(BaseModel):
    progress_percent: float = Field(..., allow_inf_nan=False, description="New progress value; clamped to 0-100")


class ProgressUpdateResponse(BaseModel):
    planner: PlannerResponse
    milestones: List[str] = Field(default_factory=list, description="Milestones newly reached")
    interview_scheduled: bool = False


class DayTasksResponse(BaseModel):
    planner_id: int
    day_index: int
    date: Optional[str] = None
    focus: Optional[str] = None
    tasks: List[PlanTask]


class MilestoneResponse(BaseModel):
    planner_id: int
    progress: int
    milestone: str
    message: str
    is_interview_eligible: bool
