"""
Progress milestone tracking.

Each milestone is announced once per planner; reached milestones are kept in
Planner.milestones_reached.
"""
import logging
from dataclasses import dataclass
from typing import Optional, List

from sqlalchemy.orm import Session

from app.db.models.planner import Planner
from app.db.models.user import User
from app.services.email_service import record_notification

logger = logging.getLogger(__name__)

INTERVIEW_MILESTONE = 80

MILESTONES = [
    (25, "Quarter Complete", "Great start! You're 25% through your learning journey."),
    (50, "Halfway Point", "Excellent progress! You've completed half of your learning plan."),
    (75, "Three Quarters", "Outstanding! You're 75% through your learning journey."),
    (80, "Interview Unlocked", "Congratulations! You've unlocked the mock interview feature."),
    (90, "Almost There", "Fantastic! You're 90% complete. Keep up the great work!"),
    (100, "Complete", "Amazing! You've completed your entire learning journey!"),
]


@dataclass
class MilestoneData:
    planner_id: int
    progress: int
    milestone: str
    message: str

    @property
    def is_interview_eligible(self) -> bool:
        return self.progress >= INTERVIEW_MILESTONE

    @property
    def unlocks_interview(self) -> bool:
        return self.progress == INTERVIEW_MILESTONE


def check_progress_milestones(
    db: Session,
    planner: Planner,
    new_progress: float,
    notifier=None,
) -> List[MilestoneData]:
    """
    Record every milestone `new_progress` has reached for the first time and notify the user.

    Returns the newly reached milestones, lowest first. The caller commits.
    """
    reached = list(planner.milestones_reached or [])
    new_milestones = []

    for percent, name, message in MILESTONES:
        if new_progress >= percent and percent not in reached:
            reached.append(percent)
            new_milestones.append(MilestoneData(planner.id, percent, name, message))

    if not new_milestones:
        return []

    # Reassign so the JSON column is flagged dirty
    planner.milestones_reached = sorted(reached)

    user = db.query(User).filter(User.id == planner.user_id).first()
    for milestone in new_milestones:
        logger.info(
            f"Milestone reached: planner_id={planner.id}, user_id={planner.user_id}, "
            f"milestone={milestone.progress}"
        )
        sent = False
        if notifier is not None and user is not None:
            try:
                sent = notifier.send_milestone_email(user, planner, milestone)
            except Exception as e:
                logger.error(f"Milestone email failed: planner_id={planner.id}, error={e}", exc_info=True)
        record_notification(
            db,
            user_id=planner.user_id,
            type="milestone",
            message=f"{milestone.milestone}: {milestone.message}",
            sent=sent,
            payload={"planner_id": planner.id, "progress": milestone.progress},
        )

    return new_milestones


def get_user_milestones(db: Session, user_id: int, planner_id: Optional[int] = None) -> List[MilestoneData]:
    """Milestones reached across the user's planners (or one planner), highest first."""
    query = db.query(Planner).filter(Planner.user_id == user_id)
    if planner_id is not None:
        query = query.filter(Planner.id == planner_id)

    by_percent = {percent: (name, message) for percent, name, message in MILESTONES}
    milestones = []
    for planner in query.all():
        for percent in planner.milestones_reached or []:
            if percent in by_percent:
                name, message = by_percent[percent]
                milestones.append(MilestoneData(planner.id, percent, name, message))

    return sorted(milestones, key=lambda m: m.progress, reverse=True)
