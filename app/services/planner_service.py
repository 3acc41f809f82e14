"""
Planner persistence and progress updates.
"""
import logging
import math
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from app.db.models.interview import Interview
from app.db.models.planner import Planner
from app.db.models.profile import Profile
from app.db.models.resume import Resume
from app.db.models.user import User
from app.llm.provider import LLMProvider
from app.schemas.planner import PlanGenerationRequest, PlanTask
from app.services.interview_eligibility import REQUIRED_PROGRESS, handle_progress_milestone
from app.services.plan_generator import (
    MAX_DAILY_HOURS,
    MAX_DURATION_DAYS,
    MIN_DURATION_DAYS,
    PlanSource,
    SkillGapAnalysis,
    build_plan_spec,
    generate_plan,
)
from app.services.progress_milestones import MilestoneData, check_progress_milestones

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "Software Engineer"
DEFAULT_DURATION_DAYS = 7


@dataclass
class PlannerCreation:
    planner: Planner
    tasks: List[PlanTask]
    source: PlanSource
    attempts: int


@dataclass
class ProgressUpdate:
    planner: Planner
    milestones: List[MilestoneData]
    interview: Optional[Interview] = None


def default_duration_days(profile: Optional[Profile]) -> int:
    """ceil(weekly_hours / 2) days within [1, 56]; 7 without a usable budget."""
    if profile is None or not profile.weekly_hours or profile.weekly_hours <= 0:
        return DEFAULT_DURATION_DAYS
    return max(MIN_DURATION_DAYS, min(MAX_DURATION_DAYS, math.ceil(profile.weekly_hours / 2)))


def latest_resume_analysis(db: Session, user_id: int) -> Optional[SkillGapAnalysis]:
    resume = db.query(Resume).filter(
        Resume.user_id == user_id
    ).order_by(Resume.created_at.desc(), Resume.id.desc()).first()
    if resume is None:
        return None
    return SkillGapAnalysis.from_resume_analysis(resume.parsed_json)


def create_planner(
    db: Session,
    user: User,
    request: PlanGenerationRequest,
    provider: Optional[LLMProvider] = None,
    today: Optional[date] = None,
    cancel_event: Optional[threading.Event] = None,
) -> PlannerCreation:
    """
    Generate and persist a planner. Fields missing from the request come from the profile.

    Raises:
        PlanValidationError: if the resolved request is invalid
    """
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    prefs = (profile.preferences or {}) if profile else {}

    role = request.role or (profile.desired_role if profile else None) or DEFAULT_ROLE
    duration_days = request.duration_days if request.duration_days is not None else default_duration_days(profile)
    daily_hours = request.daily_hours
    if daily_hours is None and profile and profile.weekly_hours:
        daily_hours = min(MAX_DAILY_HOURS, round(profile.weekly_hours / 7, 2))

    spec = build_plan_spec(
        role=role,
        duration_days=duration_days,
        start_date=request.start_date or today or date.today(),
        daily_hours=daily_hours,
        experience_summary=request.experience_summary or prefs.get("summary"),
        focus_areas=request.focus_areas,
        additional_context=request.additional_context,
        skill_gaps=latest_resume_analysis(db, user.id),
    )

    result = generate_plan(spec, provider=provider, cancel_event=cancel_event)

    planner = Planner(
        user_id=user.id,
        role=spec.role,
        start_date=spec.start_date,
        end_date=spec.start_date + timedelta(days=spec.duration_days - 1),
        plan_json=result.plan.model_dump(),
        plan_source=result.source.value,
        progress_percent=0.0,
        milestones_reached=[],
    )
    db.add(planner)
    db.commit()
    db.refresh(planner)

    logger.info(
        f"Planner created: planner_id={planner.id}, user_id={user.id}, role={spec.role}, "
        f"days={spec.duration_days}, source={result.source.value}, attempts={result.attempts}"
    )
    return PlannerCreation(
        planner=planner,
        tasks=result.plan.flatten_tasks(),
        source=result.source,
        attempts=result.attempts,
    )


def get_planner(db: Session, planner_id: int, user_id: Optional[int] = None) -> Optional[Planner]:
    query = db.query(Planner).filter(Planner.id == planner_id)
    if user_id is not None:
        query = query.filter(Planner.user_id == user_id)
    return query.first()


def list_planners_for_user(db: Session, user_id: int) -> List[Planner]:
    return db.query(Planner).filter(
        Planner.user_id == user_id
    ).order_by(Planner.created_at.desc(), Planner.id.desc()).all()


def get_latest_planner(db: Session, user_id: int) -> Optional[Planner]:
    return db.query(Planner).filter(
        Planner.user_id == user_id
    ).order_by(Planner.created_at.desc(), Planner.id.desc()).first()


def get_active_planner(db: Session, user_id: int, on_date: date) -> Optional[Planner]:
    """Most recently created planner whose date range covers on_date."""
    return db.query(Planner).filter(
        Planner.user_id == user_id,
        Planner.start_date <= on_date,
        Planner.end_date >= on_date,
    ).order_by(Planner.created_at.desc(), Planner.id.desc()).first()


def clamp_progress(value: float) -> float:
    """
    Clamp progress to [0, 100].

    Raises:
        ValueError: for NaN or infinite values
    """
    value = float(value)
    if not math.isfinite(value):
        raise ValueError("progress_percent must be a finite number")
    return max(0.0, min(100.0, value))


def update_progress(
    db: Session,
    planner: Planner,
    progress: float,
    notifier=None,
    now: Optional[datetime] = None,
) -> ProgressUpdate:
    """Store clamped progress, then run the milestone and interview auto-schedule hooks."""
    previous = planner.progress_percent or 0.0
    new_progress = clamp_progress(progress)
    already_unlocked = REQUIRED_PROGRESS in (planner.milestones_reached or [])

    planner.progress_percent = new_progress
    milestones = check_progress_milestones(db, planner, new_progress, notifier)
    db.commit()
    db.refresh(planner)

    logger.info(f"Planner progress updated: planner_id={planner.id}, from={previous:g}, to={new_progress:g}")

    interview = handle_progress_milestone(
        db, planner, previous, new_progress,
        notifier=notifier, now=now, already_unlocked=already_unlocked,
    )
    return ProgressUpdate(planner=planner, milestones=milestones, interview=interview)


def get_day_tasks(plan_json: Optional[Dict[str, Any]], day_index: int, today: Optional[date] = None) -> Optional[Dict[str, Any]]:
    """
    Find a plan day: by day_index, then by stored date string, then by clamped list position.

    Returns the day dict, or None for an empty plan.
    """
    days = (plan_json or {}).get("days") or []
    if not days:
        return None

    for day in days:
        if day.get("day_index") == day_index:
            return day

    if today is not None:
        for day in days:
            if day.get("date") == today.isoformat():
                return day

    return days[max(0, min(day_index, len(days) - 1))]
