"""
HTTP client for the voice-interview provider (VAPI).

Creates a per-interview assistant, places the outbound call and reads call status.
Every failure surfaces as TelephonyError; nothing here retries.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

import httpx

from app.core.config import (
    VAPI_BASE_URL,
    VAPI_PRIVATE_KEY,
    VAPI_WEBHOOK_SECRET,
    BACKEND_URL,
    PROVIDER_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

INTERVIEW_MAX_DURATION_SECONDS = 45 * 60


class TelephonyError(Exception):
    """The voice provider could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class InterviewSessionConfig:
    user_id: int
    planner_id: Optional[int]
    role: str
    user_email: str
    user_name: str
    scheduled_at: datetime
    learning_modules: List[str] = field(default_factory=list)


def _score_param(description: str) -> Dict[str, Any]:
    return {"type": "number", "minimum": 1, "maximum": 10, "description": description}


def _string_list(description: str) -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


EVALUATE_RESPONSE_FUNCTION = {
    "name": "evaluate_response",
    "description": "Evaluate the candidate's response to a technical question",
    "parameters": {
        "type": "object",
        "properties": {
            "questionType": {
                "type": "string",
                "enum": ["technical", "behavioral", "problem_solving", "domain_knowledge", "communication"],
            },
            "responseQuality": _score_param("Quality of response from 1-10"),
            "technicalAccuracy": _score_param("Technical accuracy from 1-10"),
            "communicationClarity": _score_param("Communication clarity from 1-10"),
            "problemSolvingApproach": _score_param("Problem solving approach from 1-10"),
            "strengths": _string_list("Identified strengths in the response"),
            "weaknesses": _string_list("Areas for improvement"),
        },
        "required": [
            "questionType", "responseQuality", "technicalAccuracy",
            "communicationClarity", "problemSolvingApproach",
        ],
    },
}

FINAL_EVALUATION_FUNCTION = {
    "name": "final_evaluation",
    "description": "Provide final comprehensive evaluation of the candidate",
    "parameters": {
        "type": "object",
        "properties": {
            "overallScore": _score_param("Overall interview score"),
            "technicalScore": _score_param("Technical knowledge score"),
            "communicationScore": _score_param("Communication skills score"),
            "problemSolvingScore": _score_param("Problem solving ability score"),
            "domainKnowledgeScore": _score_param("Domain-specific knowledge score"),
            "strengths": _string_list("Key strengths identified"),
            "weaknesses": _string_list("Areas needing improvement"),
            "recommendations": _string_list("Specific recommendations for improvement"),
            "detailedFeedback": {"type": "string", "description": "Comprehensive feedback on performance"},
            "hireRecommendation": {
                "type": "string",
                "enum": ["strong_hire", "hire", "maybe", "no_hire"],
                "description": "Hiring recommendation",
            },
        },
        "required": [
            "overallScore", "technicalScore", "communicationScore", "problemSolvingScore",
            "domainKnowledgeScore", "strengths", "weaknesses", "recommendations",
            "detailedFeedback", "hireRecommendation",
        ],
    },
}


def build_system_message(config: InterviewSessionConfig) -> str:
    modules = ", ".join(config.learning_modules) if config.learning_modules else "None recorded yet"
    return (
        f"You are an expert technical interviewer conducting a 45-minute deep dive interview "
        f"for a {config.role} position.\n\n"
        f"CANDIDATE INFORMATION:\n"
        f"- Name: {config.user_name}\n"
        f"- Role: {config.role}\n"
        f"- Learning Modules Completed: {modules}\n\n"
        "INTERVIEW STRUCTURE (45 minutes):\n"
        "1. Introduction & Warm-up (5 minutes)\n"
        "2. Technical Deep Dive (25 minutes)\n"
        "3. Problem-Solving Scenarios (10 minutes)\n"
        "4. Behavioral Questions (3 minutes)\n"
        "5. Candidate Questions & Wrap-up (2 minutes)\n\n"
        "Ask progressively challenging, open-ended questions grounded in the completed modules. "
        "Call evaluate_response after each substantive answer and final_evaluation once before ending the call. "
        "Score technical knowledge, communication, problem solving and domain knowledge from 1 to 10. "
        "Be encouraging but thorough."
    )


def build_interview_workflow(
    config: InterviewSessionConfig,
    webhook_url: Optional[str] = None,
    webhook_secret: Optional[str] = None,
) -> Dict[str, Any]:
    """Assistant definition posted to the provider for one interview."""
    workflow = {
        "name": f"Deep Dive Interview - {config.role}"[:40],
        "model": {
            "provider": "openai",
            "model": "gpt-4o-mini",
            "temperature": 0.7,
            "maxTokens": 4000,
            "messages": [{"role": "system", "content": build_system_message(config)}],
            "functions": [EVALUATE_RESPONSE_FUNCTION, FINAL_EVALUATION_FUNCTION],
        },
        "voice": {"provider": "11labs", "voiceId": "21m00Tcm4TlvDq8ikWAM"},
        "firstMessage": (
            f"Hello {config.user_name}! Welcome to your {config.role} interview. "
            "I'll be conducting a 45-minute deep dive into your skills. "
            "Let's begin with a brief introduction from you."
        ),
        "endCallMessage": (
            "Thank you for your time! Your interview has been completed. "
            "We'll analyze your responses and share detailed feedback shortly."
        ),
        "endCallPhrases": ["end call", "finish interview"],
        "recordingEnabled": True,
        "maxDurationSeconds": INTERVIEW_MAX_DURATION_SECONDS,
        "silenceTimeoutSeconds": 30,
        "serverUrl": webhook_url or f"{BACKEND_URL.rstrip('/')}/api/interview/webhook",
        "metadata": {
            "userId": config.user_id,
            "plannerId": config.planner_id,
            "scheduledAt": config.scheduled_at.isoformat(),
        },
    }
    if webhook_secret:
        workflow["serverUrlSecret"] = webhook_secret
    return workflow


class TelephonyClient:
    """Thin synchronous VAPI client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = VAPI_BASE_URL,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        webhook_url: Optional[str] = None,
        webhook_secret: Optional[str] = VAPI_WEBHOOK_SECRET,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else VAPI_PRIVATE_KEY
        self.webhook_url = webhook_url
        self.webhook_secret = webhook_secret
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {self.api_key or ''}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def close(self):
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.api_key:
            raise TelephonyError("VAPI_PRIVATE_KEY not configured")
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Voice provider rejected request: method={method}, path={path}, status={status}")
            raise TelephonyError(f"Voice provider returned {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.error(f"Voice provider unreachable: method={method}, path={path}, error={type(e).__name__}")
            raise TelephonyError(f"Voice provider unreachable: {type(e).__name__}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise TelephonyError("Voice provider returned a non-JSON body") from e
        if not isinstance(body, dict):
            raise TelephonyError("Voice provider returned an unexpected body")
        return body

    def create_interview_assistant(self, config: InterviewSessionConfig) -> str:
        """Create the interview assistant and return its id."""
        workflow = build_interview_workflow(config, self.webhook_url, self.webhook_secret)
        body = self._request("POST", "/assistant", json=workflow)
        assistant_id = body.get("id")
        if not assistant_id:
            raise TelephonyError("Voice provider response missing assistant id")
        logger.info(f"Interview assistant created: user_id={config.user_id}, assistant_id={assistant_id}")
        return str(assistant_id)

    def start_call(self, assistant_id: str, phone_number: str) -> str:
        """Place the outbound call and return the provider call id (the correlation id)."""
        body = self._request(
            "POST",
            "/call",
            json={"assistantId": assistant_id, "customer": {"number": phone_number}},
        )
        call_id = body.get("id")
        if not call_id:
            raise TelephonyError("Voice provider response missing call id")
        logger.info(f"Interview call started: assistant_id={assistant_id}, call_id={call_id}")
        return str(call_id)

    def get_call_status(self, call_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/call/{call_id}")


def get_telephony_client():
    """FastAPI dependency yielding a client that is closed after the request."""
    client = TelephonyClient()
    try:
        yield client
    finally:
        client.close()
