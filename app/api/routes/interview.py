"""
Mock interview endpoints and the voice provider webhook.
"""
import hmac
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query, Header
from sqlalchemy.orm import Session

from app.core import config
from app.core.auth_dependency import get_db, get_current_user_obj
from app.db.models.user import User
from app.schemas.interview import (
    EligibilityResponse,
    ScheduleRequest,
    RescheduleRequest,
    StartInterviewRequest,
    InterviewResponse,
    InterviewScore,
    InterviewReportResponse,
    InterviewActionResponse,
    InterviewStatusResponse,
    WebhookPayload,
    WebhookAck,
)
from app.services import interview_eligibility, interview_lifecycle
from app.services.interview_eligibility import InterviewActionResult, Outcome
from app.services.telephony_client import TelephonyError, get_telephony_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/interview", tags=["Interview"])

OUTCOME_STATUS = {
    Outcome.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    Outcome.CONFLICT: status.HTTP_409_CONFLICT,
    Outcome.INELIGIBLE: status.HTTP_403_FORBIDDEN,
    Outcome.INVALID: status.HTTP_400_BAD_REQUEST,
}


def _eligibility_response(result) -> EligibilityResponse:
    return EligibilityResponse.model_validate(result, from_attributes=True)


def _raise_for_outcome(result: InterviewActionResult):
    if result.ok:
        return
    detail = {"message": result.message}
    if result.eligibility is not None:
        detail["eligibility"] = _eligibility_response(result.eligibility).model_dump()
    raise HTTPException(status_code=OUTCOME_STATUS[result.outcome], detail=detail)


def _action_response(result: InterviewActionResult) -> InterviewActionResponse:
    return InterviewActionResponse(
        message=result.message,
        interview=InterviewResponse.model_validate(result.interview) if result.interview else None,
    )


@router.get("/eligibility", response_model=EligibilityResponse)
def get_eligibility(
    planner_id: Optional[int] = Query(None, description="Planner to check (defaults to the latest)"),
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    return _eligibility_response(interview_eligibility.check_eligibility(db, user.id, planner_id))


@router.get("/history", response_model=List[InterviewResponse])
def get_history(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    return [InterviewResponse.model_validate(i) for i in interview_eligibility.get_interview_history(db, user.id)]


@router.post("/schedule", status_code=status.HTTP_201_CREATED, response_model=InterviewActionResponse)
def schedule(
    request: ScheduleRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    """Schedule a mock interview. Requires 80% planner progress and at least 24 hours lead time."""
    try:
        result = interview_eligibility.schedule_interview(
            db, user.id, planner_id=request.planner_id, scheduled_at=request.scheduled_at
        )
        _raise_for_outcome(result)
        return _action_response(result)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to schedule interview: user_id={user.id}, error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to schedule interview"
        )


@router.post("/webhook", response_model=WebhookAck)
def interview_webhook(
    payload: WebhookPayload,
    db: Session = Depends(get_db),
    x_vapi_secret: Optional[str] = Header(None, alias="x-vapi-secret"),
):
    """
    Completion callback from the voice provider.

    Unknown call ids are acknowledged with matched=false so the provider does not retry.
    """
    if config.VAPI_WEBHOOK_SECRET and not hmac.compare_digest(
        x_vapi_secret or "", config.VAPI_WEBHOOK_SECRET
    ):
        logger.warning("Webhook rejected: invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    if not payload.call_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Call ID is required")

    logger.info(
        f"Webhook received: call_id={payload.call_id}, status={payload.status}, "
        f"ended_reason={payload.ended_reason}, duration={payload.duration}"
    )
    try:
        result = interview_lifecycle.process_callback(db, payload)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to process webhook: call_id={payload.call_id}, error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process webhook"
        )

    if not result.matched:
        return WebhookAck(matched=False, message="No interview for this call")

    return WebhookAck(
        matched=True,
        message="Interview results updated",
        interview_id=result.interview.id,
        status=result.interview.status,
        has_transcript=result.has_transcript,
        has_evaluation=result.has_evaluation,
    )


@router.get("/{interview_id}", response_model=InterviewResponse)
def get_interview(
    interview_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    interview = interview_eligibility.get_interview(db, user.id, interview_id)
    if not interview:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interview not found")
    return InterviewResponse.model_validate(interview)


@router.put("/{interview_id}/reschedule", response_model=InterviewActionResponse)
def reschedule(
    interview_id: int,
    request: RescheduleRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    try:
        result = interview_eligibility.reschedule_interview(db, user.id, interview_id, request.scheduled_at)
        _raise_for_outcome(result)
        return _action_response(result)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to reschedule interview: interview_id={interview_id}, error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reschedule interview"
        )


@router.delete("/{interview_id}", response_model=InterviewActionResponse)
def cancel(
    interview_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    try:
        result = interview_eligibility.cancel_interview(db, user.id, interview_id)
        _raise_for_outcome(result)
        return _action_response(result)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to cancel interview: interview_id={interview_id}, error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel interview"
        )


@router.get("/{interview_id}/report", response_model=InterviewReportResponse)
def get_report(
    interview_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    result = interview_lifecycle.get_interview_report(db, user.id, interview_id)
    _raise_for_outcome(result)
    interview = result.interview
    return InterviewReportResponse(
        interview=InterviewResponse.model_validate(interview),
        transcript=interview.transcript,
        evaluation=InterviewScore.model_validate(interview.score_json) if interview.score_json else None,
    )


@router.post("/{interview_id}/start", response_model=InterviewActionResponse)
def start(
    interview_id: int,
    request: StartInterviewRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    telephony=Depends(get_telephony_client),
):
    """Place the interview call. Returns as soon as the provider accepts it."""
    try:
        result = interview_lifecycle.start_interview(db, user, interview_id, request.phone_number, telephony)
        _raise_for_outcome(result)
        return _action_response(result)
    except TelephonyError as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to start interview call: {e}"
        )
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to start interview: interview_id={interview_id}, error={e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start interview"
        )


@router.get("/{interview_id}/status", response_model=InterviewStatusResponse)
def get_status(
    interview_id: int,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    telephony=Depends(get_telephony_client),
):
    interview, call_status = interview_lifecycle.get_call_status(db, user.id, interview_id, telephony)
    if interview is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Interview not found")
    return InterviewStatusResponse(
        interview=InterviewResponse.model_validate(interview),
        call_status=call_status,
    )
