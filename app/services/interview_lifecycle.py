"""
Interview session lifecycle: starting the voice call and applying the provider's
completion callback.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy.orm import Session

from app.core.logging_config import sanitize_log_data
from app.db.models.interview import Interview, InterviewStatus
from app.db.models.planner import Planner
from app.db.models.profile import Profile
from app.db.models.user import User
from app.schemas.interview import FunctionCall, InterviewScore, WebhookPayload
from app.services.interview_eligibility import InterviewActionResult, Outcome, get_interview
from app.services.telephony_client import InterviewSessionConfig, TelephonyError

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{7,14}$")
DEFAULT_ROLE = "Software Engineer"


@dataclass
class CallbackResult:
    matched: bool
    interview: Optional[Interview] = None
    has_transcript: bool = False
    has_evaluation: bool = False


def normalize_phone_number(phone_number: Optional[str]) -> Optional[str]:
    """Strip formatting characters; returns None if the result is not a plausible E.164 number."""
    if not phone_number:
        return None
    cleaned = re.sub(r"[\s\-().]", "", phone_number)
    if not PHONE_PATTERN.match(cleaned):
        return None
    return cleaned if cleaned.startswith("+") else f"+{cleaned}"


def completed_modules(planner: Optional[Planner], today: date) -> List[str]:
    """Focus labels of plan days up to and including today, without duplicates."""
    if planner is None or not planner.plan_json:
        return []
    elapsed = (today - planner.start_date).days
    modules = []
    for day in planner.plan_json.get("days") or []:
        focus = day.get("focus")
        if focus and day.get("day_index", 0) <= elapsed and focus not in modules:
            modules.append(focus)
    return modules


def start_interview(
    db: Session,
    user: User,
    interview_id: int,
    phone_number: str,
    telephony,
    now: Optional[datetime] = None,
) -> InterviewActionResult:
    """
    Start the voice session for a pending interview.

    Raises:
        TelephonyError: if the provider fails; the interview is left unchanged
    """
    now = now or datetime.utcnow()
    phone = normalize_phone_number(phone_number)
    if phone is None:
        return InterviewActionResult(Outcome.INVALID, "A valid phone number in international format is required")

    interview = get_interview(db, user.id, interview_id)
    if interview is None:
        return InterviewActionResult(Outcome.NOT_FOUND, "Interview not found")

    if interview.status != InterviewStatus.PENDING.value:
        return InterviewActionResult(
            Outcome.CONFLICT, f"Interview cannot be started from status '{interview.status}'", interview=interview
        )

    planner = interview.planner
    role = planner.role if planner else None
    if not role:
        profile = db.query(Profile).filter(Profile.user_id == user.id).first()
        role = profile.desired_role if profile and profile.desired_role else DEFAULT_ROLE

    config = InterviewSessionConfig(
        user_id=user.id,
        planner_id=interview.planner_id,
        role=role,
        user_email=user.email,
        user_name=user.display_name,
        scheduled_at=interview.scheduled_at,
        learning_modules=completed_modules(planner, now.date()),
    )

    context = sanitize_log_data({"interview_id": interview.id, "user_id": user.id, "phone": phone})
    logger.info(f"Starting interview call: {context}")
    try:
        assistant_id = telephony.create_interview_assistant(config)
        call_id = telephony.start_call(assistant_id, phone)
    except TelephonyError:
        logger.error(f"Failed to start interview call: interview_id={interview.id}, user_id={user.id}")
        raise

    interview.provider_assistant_id = assistant_id
    interview.session_correlation_id = call_id
    interview.status = InterviewStatus.IN_PROGRESS.value
    interview.started_at = now
    db.commit()
    db.refresh(interview)

    logger.info(f"Interview started: interview_id={interview.id}, call_id={call_id}")
    return InterviewActionResult(Outcome.OK, "Interview call started", interview=interview)


def _number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _unique(items: List[Any]) -> List[str]:
    seen = []
    for item in items:
        if isinstance(item, str) and item.strip() and item.strip() not in seen:
            seen.append(item.strip())
    return seen


def build_detailed_feedback(
    overall_score: float,
    strengths: List[str],
    weaknesses: List[str],
    recommendations: List[str],
) -> str:
    lines = ["## Interview Performance Summary", "", f"**Overall Score: {overall_score:g}/10**", ""]

    if overall_score >= 8:
        lines.append("**Excellent Performance!** You demonstrated strong technical knowledge and communication skills.")
    elif overall_score >= 6:
        lines.append("**Good Performance!** You showed solid understanding with room for improvement in some areas.")
    elif overall_score >= 4:
        lines.append("**Developing Performance.** You have a foundation to build upon with focused effort.")
    else:
        lines.append("**Areas for Growth.** Focus on strengthening core concepts and communication skills.")
    lines.append("")

    for heading, items in (
        ("Key Strengths", strengths),
        ("Areas for Improvement", weaknesses),
        ("Recommendations for Growth", recommendations),
    ):
        if items:
            lines.append(f"## {heading}")
            lines.extend(f"{number}. {item}" for number, item in enumerate(items, start=1))
            lines.append("")

    lines += [
        "## Next Steps",
        "1. Review the technical concepts discussed during the interview",
        "2. Practice explaining complex topics clearly and concisely",
        "3. Continue building hands-on experience with real-world projects",
        "4. Practice mock interviews to improve confidence and communication",
    ]
    return "\n".join(lines)


def evaluate_function_calls(function_calls: List[FunctionCall]) -> Optional[Dict[str, Any]]:
    """
    Build the interview evaluation from the provider's function calls.

    A final_evaluation call wins; otherwise evaluate_response scores are averaged.
    Returns None when no evaluation calls are present.
    """
    responses = [call.parameters for call in function_calls if call.function_name == "evaluate_response"]
    finals = [call.parameters for call in function_calls if call.function_name == "final_evaluation"]
    if not responses and not finals:
        return None

    strengths: List[Any] = []
    weaknesses: List[Any] = []
    recommendations: List[Any] = []
    for params in responses + finals:
        strengths.extend(params.get("strengths") or [])
        weaknesses.extend(params.get("weaknesses") or [])
        recommendations.extend(params.get("recommendations") or [])

    if finals:
        final = finals[-1]
        score = InterviewScore(
            overall_score=_number(final.get("overallScore")),
            technical_score=_number(final.get("technicalScore")),
            communication_score=_number(final.get("communicationScore")),
            problem_solving_score=_number(final.get("problemSolvingScore")),
            domain_knowledge_score=_number(final.get("domainKnowledgeScore")),
            hire_recommendation=final.get("hireRecommendation"),
        )
        notes = final.get("detailedFeedback")
    else:
        count = len(responses)
        score = InterviewScore(
            overall_score=round(sum(_number(p.get("responseQuality")) for p in responses) / count, 1),
            technical_score=round(sum(_number(p.get("technicalAccuracy")) for p in responses) / count, 1),
            communication_score=round(sum(_number(p.get("communicationClarity")) for p in responses) / count, 1),
            problem_solving_score=round(sum(_number(p.get("problemSolvingApproach")) for p in responses) / count, 1),
        )
        notes = None

    score.strengths = _unique(strengths)
    score.weaknesses = _unique(weaknesses)
    score.recommendations = _unique(recommendations)
    feedback = build_detailed_feedback(score.overall_score, score.strengths, score.weaknesses, score.recommendations)
    if isinstance(notes, str) and notes.strip():
        feedback += f"\n\n## Interviewer Notes\n{notes.strip()}"
    score.detailed_feedback = feedback
    return score.model_dump()


def call_has_ended(payload: WebhookPayload) -> bool:
    return payload.status == "ended" or bool(payload.ended_reason)


def process_callback(db: Session, payload: WebhookPayload, now: Optional[datetime] = None) -> CallbackResult:
    """
    Apply a completion callback to the interview it belongs to.

    Only fields present in the payload are written, so a replayed callback leaves
    the record unchanged. A completed interview is never reopened.
    """
    now = now or datetime.utcnow()
    interview = db.query(Interview).filter(Interview.session_correlation_id == payload.call_id).first()
    if interview is None:
        logger.info(f"Webhook for unknown call: call_id={payload.call_id}")
        return CallbackResult(matched=False)

    if interview.status == InterviewStatus.COMPLETED.value:
        logger.info(f"Webhook for completed interview ignored: interview_id={interview.id}")
        return CallbackResult(
            matched=True,
            interview=interview,
            has_transcript=bool(interview.transcript),
            has_evaluation=bool(interview.score_json),
        )

    fields = payload.model_fields_set
    if "transcript" in fields and payload.transcript is not None:
        interview.transcript = payload.transcript
    if "recording_url" in fields and payload.recording_url is not None:
        interview.recording_url = payload.recording_url
    if "ended_reason" in fields and payload.ended_reason is not None:
        interview.ended_reason = payload.ended_reason
    if "duration" in fields and payload.duration is not None:
        interview.call_duration_seconds = payload.duration
    if "cost" in fields and payload.cost is not None:
        interview.call_cost = payload.cost

    if interview.transcript and payload.function_calls:
        evaluation = evaluate_function_calls(payload.function_calls)
        if evaluation is not None:
            interview.score_json = evaluation

    if call_has_ended(payload):
        interview.status = InterviewStatus.COMPLETED.value
        interview.completed_at = now
    else:
        interview.status = InterviewStatus.IN_PROGRESS.value

    db.commit()
    db.refresh(interview)

    logger.info(
        f"Webhook applied: interview_id={interview.id}, status={interview.status}, "
        f"has_transcript={bool(interview.transcript)}, has_evaluation={bool(interview.score_json)}"
    )
    return CallbackResult(
        matched=True,
        interview=interview,
        has_transcript=bool(interview.transcript),
        has_evaluation=bool(interview.score_json),
    )


def get_interview_report(db: Session, user_id: int, interview_id: int) -> InterviewActionResult:
    interview = get_interview(db, user_id, interview_id)
    if interview is None:
        return InterviewActionResult(Outcome.NOT_FOUND, "Interview not found")
    if interview.status != InterviewStatus.COMPLETED.value:
        return InterviewActionResult(
            Outcome.CONFLICT, "Interview report is only available once the interview is completed",
            interview=interview,
        )
    return InterviewActionResult(Outcome.OK, "Interview report", interview=interview)


def get_call_status(
    db: Session,
    user_id: int,
    interview_id: int,
    telephony,
) -> Tuple[Optional[Interview], Optional[Dict[str, Any]]]:
    """Interview plus live provider call status; the status is None if unavailable."""
    interview = get_interview(db, user_id, interview_id)
    if interview is None or not interview.session_correlation_id:
        return interview, None
    try:
        return interview, telephony.get_call_status(interview.session_correlation_id)
    except TelephonyError as e:
        logger.warning(f"Call status unavailable: interview_id={interview.id}, error={e}")
        return interview, None
