"""
Interview eligibility and scheduling.

A mock interview unlocks once a planner reaches 80% progress. Scheduling,
rescheduling and cancelling return an InterviewActionResult instead of raising,
so routes can map the outcome to a status code.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, time
from enum import Enum
from typing import Optional, List

from sqlalchemy.orm import Session

from app.core.timezone import to_utc_naive
from app.db.models.interview import Interview, InterviewStatus
from app.db.models.planner import Planner
from app.db.models.user import User
from app.services.email_service import record_notification

logger = logging.getLogger(__name__)

REQUIRED_PROGRESS = 80
SCHEDULE_DAYS_AHEAD = 3
MIN_LEAD_TIME = timedelta(hours=24)
MAX_DAYS_ESTIMATE = 365
MIN_PACE_FRACTION = 0.25


class Outcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INELIGIBLE = "ineligible"
    INVALID = "invalid"


@dataclass
class EligibilityResult:
    is_eligible: bool
    current_progress: float
    required_progress: float
    message: str
    days_until_eligible: Optional[int] = None
    planner_id: Optional[int] = None


@dataclass
class InterviewActionResult:
    outcome: Outcome
    message: str
    interview: Optional[Interview] = None
    eligibility: Optional[EligibilityResult] = None

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK


def resolve_planner(db: Session, user_id: int, planner_id: Optional[int] = None) -> Optional[Planner]:
    """The given planner if the user owns it, otherwise the user's most recent planner."""
    query = db.query(Planner).filter(Planner.user_id == user_id)
    if planner_id is not None:
        return query.filter(Planner.id == planner_id).first()
    return query.order_by(Planner.created_at.desc(), Planner.id.desc()).first()


def find_open_interview(
    db: Session,
    user_id: int,
    planner_id: int,
    statuses=(InterviewStatus.PENDING,),
) -> Optional[Interview]:
    return db.query(Interview).filter(
        Interview.user_id == user_id,
        Interview.planner_id == planner_id,
        Interview.status.in_([status.value for status in statuses]),
    ).first()


def estimate_days_until_eligible(planner: Planner, now: datetime) -> int:
    """
    Linear estimate of days left until the planner reaches the threshold.

    The observed pace is progress per elapsed day. With less than one elapsed day,
    or no progress yet, the planned pace (100% over the plan length) is used. The pace
    never drops below a quarter of the planned pace; the result is within [1, 365].
    """
    progress = planner.progress_percent or 0
    remaining = REQUIRED_PROGRESS - progress
    if remaining <= 0:
        return 0

    planned_pace = 100.0 / max(1, planner.duration_days)
    elapsed_days = (now - datetime.combine(planner.start_date, time.min)).total_seconds() / 86400

    if elapsed_days < 1 or progress <= 0:
        pace = planned_pace
    else:
        pace = max(progress / elapsed_days, planned_pace * MIN_PACE_FRACTION)

    return max(1, min(MAX_DAYS_ESTIMATE, math.ceil(remaining / pace)))


def check_eligibility(
    db: Session,
    user_id: int,
    planner_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    now = now or datetime.utcnow()
    planner = resolve_planner(db, user_id, planner_id)
    if planner is None:
        return EligibilityResult(
            is_eligible=False,
            current_progress=0,
            required_progress=REQUIRED_PROGRESS,
            message="No active planner found",
        )

    progress = planner.progress_percent or 0

    if find_open_interview(db, user_id, planner.id) is not None:
        return EligibilityResult(
            is_eligible=False,
            current_progress=progress,
            required_progress=REQUIRED_PROGRESS,
            message="Interview already scheduled",
            planner_id=planner.id,
        )

    if progress >= REQUIRED_PROGRESS:
        return EligibilityResult(
            is_eligible=True,
            current_progress=progress,
            required_progress=REQUIRED_PROGRESS,
            message="Congratulations! You are eligible for a mock interview.",
            planner_id=planner.id,
        )

    return EligibilityResult(
        is_eligible=False,
        current_progress=progress,
        required_progress=REQUIRED_PROGRESS,
        days_until_eligible=estimate_days_until_eligible(planner, now),
        message=f"Complete {REQUIRED_PROGRESS - progress:g}% more to unlock interview",
        planner_id=planner.id,
    )


def schedule_interview(
    db: Session,
    user_id: int,
    planner_id: Optional[int] = None,
    scheduled_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> InterviewActionResult:
    """Create a pending interview for an eligible user, at least 24 hours out (default 3 days)."""
    now = now or datetime.utcnow()
    eligibility = check_eligibility(db, user_id, planner_id, now)
    if not eligibility.is_eligible:
        return InterviewActionResult(Outcome.INELIGIBLE, eligibility.message, eligibility=eligibility)

    when = to_utc_naive(scheduled_at) if scheduled_at else now + timedelta(days=SCHEDULE_DAYS_AHEAD)
    if when < now + MIN_LEAD_TIME:
        return InterviewActionResult(
            Outcome.INVALID, "Interview must be scheduled at least 24 hours in advance", eligibility=eligibility
        )

    interview = Interview(
        user_id=user_id,
        planner_id=eligibility.planner_id,
        scheduled_at=when,
        status=InterviewStatus.PENDING.value,
    )
    db.add(interview)
    db.commit()
    db.refresh(interview)

    logger.info(
        f"Interview scheduled: interview_id={interview.id}, user_id={user_id}, "
        f"planner_id={interview.planner_id}, scheduled_at={when.isoformat()}"
    )
    return InterviewActionResult(Outcome.OK, "Interview scheduled successfully", interview=interview)


def get_interview(db: Session, user_id: int, interview_id: int) -> Optional[Interview]:
    return db.query(Interview).filter(
        Interview.id == interview_id,
        Interview.user_id == user_id,
    ).first()


def get_interview_history(db: Session, user_id: int) -> List[Interview]:
    return db.query(Interview).filter(
        Interview.user_id == user_id
    ).order_by(Interview.created_at.desc(), Interview.id.desc()).all()


def reschedule_interview(
    db: Session,
    user_id: int,
    interview_id: int,
    new_time: datetime,
    now: Optional[datetime] = None,
) -> InterviewActionResult:
    """Move a pending interview that is still more than 24 hours away."""
    now = now or datetime.utcnow()
    interview = get_interview(db, user_id, interview_id)
    if interview is None:
        return InterviewActionResult(Outcome.NOT_FOUND, "Interview not found")

    if interview.status != InterviewStatus.PENDING.value:
        return InterviewActionResult(
            Outcome.CONFLICT, "Only pending interviews can be rescheduled", interview=interview
        )

    if interview.scheduled_at - now <= MIN_LEAD_TIME:
        return InterviewActionResult(
            Outcome.CONFLICT,
            "Interview cannot be rescheduled less than 24 hours before it starts",
            interview=interview,
        )

    new_time = to_utc_naive(new_time)
    if new_time < now + MIN_LEAD_TIME:
        return InterviewActionResult(
            Outcome.INVALID, "Interview must be scheduled at least 24 hours in advance", interview=interview
        )

    previous = interview.scheduled_at
    interview.scheduled_at = new_time
    db.commit()
    db.refresh(interview)

    logger.info(
        f"Interview rescheduled: interview_id={interview.id}, from={previous.isoformat()}, to={new_time.isoformat()}"
    )
    return InterviewActionResult(Outcome.OK, "Interview rescheduled successfully", interview=interview)


def cancel_interview(db: Session, user_id: int, interview_id: int) -> InterviewActionResult:
    """Delete a pending interview. Started or completed interviews are kept."""
    interview = get_interview(db, user_id, interview_id)
    if interview is None:
        return InterviewActionResult(Outcome.NOT_FOUND, "Interview not found")

    if interview.status != InterviewStatus.PENDING.value:
        return InterviewActionResult(
            Outcome.CONFLICT, "Only pending interviews can be cancelled", interview=interview
        )

    db.delete(interview)
    db.commit()
    logger.info(f"Interview cancelled: interview_id={interview_id}, user_id={user_id}")
    return InterviewActionResult(Outcome.OK, "Interview cancelled successfully")


def handle_progress_milestone(
    db: Session,
    planner: Planner,
    previous_progress: float,
    new_progress: float,
    notifier=None,
    now: Optional[datetime] = None,
    already_unlocked: bool = False,
) -> Optional[Interview]:
    """
    Auto-schedule an interview the first time a planner crosses the threshold.

    Returns the new Interview, or None when nothing was scheduled.
    """
    if already_unlocked or not (previous_progress < REQUIRED_PROGRESS <= new_progress):
        return None

    open_interview = find_open_interview(
        db, planner.user_id, planner.id,
        statuses=(InterviewStatus.PENDING, InterviewStatus.IN_PROGRESS),
    )
    if open_interview is not None:
        logger.info(
            f"Threshold crossed but interview already open: planner_id={planner.id}, "
            f"interview_id={open_interview.id}"
        )
        return None

    now = now or datetime.utcnow()
    interview = Interview(
        user_id=planner.user_id,
        planner_id=planner.id,
        scheduled_at=now + timedelta(days=SCHEDULE_DAYS_AHEAD),
        status=InterviewStatus.PENDING.value,
    )
    db.add(interview)
    db.flush()

    logger.info(
        f"Interview auto-scheduled: interview_id={interview.id}, user_id={planner.user_id}, "
        f"planner_id={planner.id}, progress={new_progress:g}"
    )

    user = db.query(User).filter(User.id == planner.user_id).first()
    sent = False
    if notifier is not None and user is not None:
        try:
            sent = notifier.send_interview_unlock_email(user, planner, interview, new_progress)
        except Exception as e:
            logger.error(f"Interview unlock email failed: interview_id={interview.id}, error={e}", exc_info=True)

    record_notification(
        db,
        user_id=planner.user_id,
        type="interview",
        message=f"Mock interview unlocked for {planner.role}",
        sent=sent,
        payload={"interview_id": interview.id, "scheduled_at": interview.scheduled_at.isoformat()},
    )
    db.commit()
    db.refresh(interview)
    return interview
