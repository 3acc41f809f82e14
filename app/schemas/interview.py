"""
Pydantic schemas for interview eligibility, scheduling and the provider webhook.
"""
from typing import Optional, List, Any, Dict
from datetime import datetime
from pydantic import BaseModel, Field, AliasChoices


class EligibilityResponse(BaseModel):
    is_eligible: bool
    current_progress: float
    required_progress: float
    days_until_eligible: Optional[int] = None
    message: str


class ScheduleRequest(BaseModel):
    planner_id: Optional[int] = Field(None, description="Planner to schedule against (defaults to the latest)")
    scheduled_at: Optional[datetime] = Field(None, description="Interview time (defaults to 3 days from now)")


class RescheduleRequest(BaseModel):
    scheduled_at: datetime = Field(..., description="New interview time, at least 24 hours away")


class StartInterviewRequest(BaseModel):
    phone_number: str = Field(
        ...,
        validation_alias=AliasChoices("phone_number", "phoneNumber"),
        description="E.164 phone number to call",
    )


class InterviewResponse(BaseModel):
    id: int
    user_id: int
    planner_id: Optional[int] = None
    scheduled_at: datetime
    status: str
    session_correlation_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    recording_url: Optional[str] = None
    ended_reason: Optional[str] = None
    call_duration_seconds: Optional[float] = None
    call_cost: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InterviewScore(BaseModel):
    """Evaluation stored in Interview.score_json."""
    overall_score: float = 0
    technical_score: float = 0
    communication_score: float = 0
    problem_solving_score: float = 0
    domain_knowledge_score: float = 0
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    detailed_feedback: str = ""
    hire_recommendation: Optional[str] = None


class InterviewReportResponse(BaseModel):
    interview: InterviewResponse
    transcript: Optional[str] = None
    evaluation: Optional[InterviewScore] = None


class InterviewActionResponse(BaseModel):
    message: str
    interview: Optional[InterviewResponse] = None
    eligibility: Optional[EligibilityResponse] = None


class InterviewStatusResponse(BaseModel):
    interview: InterviewResponse
    call_status: Optional[Dict[str, Any]] = None


class FunctionCall(BaseModel):
    """One evaluation function call reported by the voice provider."""
    function_name: str = Field(..., validation_alias=AliasChoices("functionName", "function_name", "name"))
    parameters: Dict[str, Any] = Field(default_factory=dict)


class WebhookPayload(BaseModel):
    """Completion callback body. Only fields present in the payload are applied."""
    call_id: Optional[str] = Field(None, validation_alias=AliasChoices("callId", "call_id"))
    transcript: Optional[str] = None
    function_calls: Optional[List[FunctionCall]] = Field(
        None, validation_alias=AliasChoices("functionCalls", "function_calls")
    )
    recording_url: Optional[str] = Field(None, validation_alias=AliasChoices("recordingUrl", "recording_url"))
    status: Optional[str] = None
    ended_reason: Optional[str] = Field(None, validation_alias=AliasChoices("endedReason", "ended_reason"))
    duration: Optional[float] = None
    cost: Optional[float] = None


class WebhookAck(BaseModel):
    success: bool = True
    matched: bool
    message: str
    interview_id: Optional[int] = None
    status: Optional[str] = None
    has_transcript: bool = False
    has_evaluation: bool = False
