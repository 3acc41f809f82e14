"""
Learning planner endpoints.
"""
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, get_current_user_obj
from app.core.timezone import is_valid_timezone, local_date
from app.db.models.profile import Profile
from app.db.models.user import User
from app.llm.router import get_default_provider
from app.schemas.planner import (
    PlanGenerationRequest,
    PlannerResponse,
    PlannerGenerationResponse,
    ProgressUpdateRequest,
    ProgressUpdateResponse,
    DayTasksResponse,
    MilestoneResponse,
    PlanTask,
)
from app.services import planner_service
from app.services.email_service import get_email_service
from app.services.plan_generator import PlanValidationError
from app.services.progress_milestones import get_user_milestones

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/planner", tags=["Planner"])


def get_plan_provider():
    """Text-generation provider dependency; None when no credentials are configured."""
    return get_default_provider()


def _get_owned_planner(db: Session, planner_id: int, user: User):
    planner = planner_service.get_planner(db, planner_id, user_id=user.id)
    if not planner:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Planner not found"
        )
    return planner


@router.post("/generate", status_code=status.HTTP_201_CREATED, response_model=PlannerGenerationResponse)
def generate_planner(
    request: PlanGenerationRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    provider=Depends(get_plan_provider),
):
    """
    Generate a learning planner.

    Falls back to a template plan when the AI provider is unavailable, so a valid
    request always produces a planner. `source` reports which path was used.
    """
    try:
        created = planner_service.create_planner(db, user, request, provider=provider)
        return PlannerGenerationResponse(
            planner=PlannerResponse.model_validate(created.planner),
            tasks=created.tasks,
            source=created.source.value,
            attempts=created.attempts,
        )
    except PlanValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to generate planner: user_id={user.id}, error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate planner"
        )


@router.get("/milestones", response_model=List[MilestoneResponse])
def list_milestones(
    planner_id: Optional[int] = Query(None, description="Limit to one planner"),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    """Milestones the user has reached, highest first."""
    milestones = get_user_milestones(db, user.id, planner_id)
    return [MilestoneResponse.model_validate(m, from_attributes=True) for m in milestones]


@router.get("/user/{user_id}", response_model=List[PlannerResponse])
def list_user_planners(
    user_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    if user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot view another user's planners"
        )
    return [PlannerResponse.model_validate(p) for p in planner_service.list_planners_for_user(db, user.id)]


@router.get("/{planner_id}", response_model=PlannerResponse)
def get_planner(
    planner_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    return PlannerResponse.model_validate(_get_owned_planner(db, planner_id, user))


@router.put("/{planner_id}", response_model=ProgressUpdateResponse)
def update_planner_progress(
    planner_id: int,
    request: ProgressUpdateRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    notifier=Depends(get_email_service),
):
    """
    Update planner progress (clamped to 0-100).

    Announces newly reached milestones and auto-schedules a mock interview the first
    time progress reaches 80%.
    """
    try:
        planner = _get_owned_planner(db, planner_id, user)
        update = planner_service.update_progress(db, planner, request.progress_percent, notifier=notifier)
        return ProgressUpdateResponse(
            planner=PlannerResponse.model_validate(update.planner),
            milestones=[m.milestone for m in update.milestones],
            interview_scheduled=update.interview is not None,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to update planner progress: planner_id={planner_id}, error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update planner"
        )


@router.get("/{planner_id}/day/{day_index}", response_model=DayTasksResponse)
def get_planner_day(
    planner_id: int,
    day_index: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    """Tasks for one plan day, looked up by index, then by date, then by position."""
    if day_index < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="day_index must be >= 0")

    planner = _get_owned_planner(db, planner_id, user)
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    tz_name = profile.timezone if profile and is_valid_timezone(profile.timezone) else None
    today = local_date(datetime.utcnow(), tz_name)

    day = planner_service.get_day_tasks(planner.plan_json, day_index, today)
    if day is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Planner has no days")

    return DayTasksResponse(
        planner_id=planner.id,
        day_index=day.get("day_index", day_index),
        date=day.get("date"),
        focus=day.get("focus"),
        tasks=[PlanTask.model_validate(task) for task in day.get("tasks") or []],
    )
