"""
Integration tests for the /api/interview endpoints and the provider webhook.
"""
import pytest
from datetime import date, datetime, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.db.base import Base
from app.db.models.interview import Interview, InterviewStatus
from app.db.models.planner import Planner
from app.db.models.user import User
from app.core import config
from app.core.auth_dependency import get_db
from app.core.security import create_access_token
from app.api.routes import system
from app.services.telephony_client import TelephonyError, get_telephony_client
from conftest import FakeTelephony


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

client = TestClient(app)


def override_get_db():
    """Override get_db dependency for testing."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def telephony():
    return FakeTelephony()


@pytest.fixture(scope="function", autouse=True)
def setup_db(telephony, monkeypatch):
    """Create tables and install dependency overrides for each test."""
    Base.metadata.create_all(bind=test_engine)
    monkeypatch.setattr(config, "VAPI_WEBHOOK_SECRET", None)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_telephony_client] = lambda: telephony
    yield
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def test_user(db_session):
    user = User(name="Grace", email="grace@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def auth_headers(test_user):
    """Create JWT token for test user."""
    return {"Authorization": f"Bearer {create_access_token({'sub': test_user.email})}"}


def make_planner(db_session, user, progress):
    start = date.today() - timedelta(days=5)
    planner = Planner(
        user_id=user.id,
        role="Backend Developer",
        start_date=start,
        end_date=start + timedelta(days=13),
        plan_json={"days": [{"day_index": 0, "date": start.isoformat(), "focus": "APIs", "tasks": []}]},
        plan_source="fallback",
        progress_percent=progress,
        milestones_reached=[],
    )
    db_session.add(planner)
    db_session.commit()
    db_session.refresh(planner)
    return planner


@pytest.fixture
def pending_interview(db_session, test_user):
    planner = make_planner(db_session, test_user, progress=85)
    interview = Interview(
        user_id=test_user.id,
        planner_id=planner.id,
        scheduled_at=datetime.utcnow() + timedelta(days=3),
        status=InterviewStatus.PENDING.value,
    )
    db_session.add(interview)
    db_session.commit()
    db_session.refresh(interview)
    return interview


def webhook_body(**overrides):
    body = {
        "callId": "call_abc",
        "transcript": "Interviewer: Walk me through a REST API you built.",
        "functionCalls": [{"functionName": "evaluate_response", "parameters": {
            "responseQuality": 7, "technicalAccuracy": 8, "communicationClarity": 7,
            "problemSolvingApproach": 6, "strengths": ["Clear API design"],
        }}],
        "recordingUrl": "https://recordings.example.com/call_abc.mp3",
        "status": "ended",
        "endedReason": "customer-ended-call",
    }
    body.update(overrides)
    return body


def test_schedule_when_ineligible(auth_headers, db_session, test_user):
    """Scheduling below 80% is forbidden and returns the eligibility details."""
    make_planner(db_session, test_user, progress=40)

    response = client.post("/api/interview/schedule", json={}, headers=auth_headers)

    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["eligibility"]["is_eligible"] is False
    assert detail["eligibility"]["current_progress"] == 40


def test_schedule_and_history(auth_headers, db_session, test_user):
    make_planner(db_session, test_user, progress=90)

    response = client.post("/api/interview/schedule", json={}, headers=auth_headers)

    assert response.status_code == 201
    interview = response.json()["interview"]
    assert interview["status"] == "pending"

    history = client.get("/api/interview/history", headers=auth_headers).json()
    assert [i["id"] for i in history] == [interview["id"]]


def test_schedule_too_soon_rejected(auth_headers, db_session, test_user):
    make_planner(db_session, test_user, progress=90)
    soon = (datetime.utcnow() + timedelta(hours=2)).isoformat()

    response = client.post("/api/interview/schedule", json={"scheduled_at": soon}, headers=auth_headers)

    assert response.status_code == 400


def test_full_interview_flow(auth_headers, pending_interview, telephony):
    """Start the call, receive the completion webhook, then read the report."""
    response = client.post(
        f"/api/interview/{pending_interview.id}/start",
        json={"phoneNumber": "+1 555 123 4567"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["interview"]["status"] == "in_progress"
    assert telephony.calls == [("asst_123", "+15551234567")]

    early = client.get(f"/api/interview/{pending_interview.id}/report", headers=auth_headers)
    assert early.status_code == 409

    ack = client.post("/api/interview/webhook", json=webhook_body())
    assert ack.status_code == 200
    assert ack.json()["matched"] is True
    assert ack.json()["status"] == "completed"
    assert ack.json()["has_evaluation"] is True

    report = client.get(f"/api/interview/{pending_interview.id}/report", headers=auth_headers)
    assert report.status_code == 200
    assert report.json()["evaluation"]["overall_score"] == 7
    assert report.json()["transcript"].startswith("Interviewer:")


def test_start_with_provider_failure(auth_headers, pending_interview, db_session):
    app.dependency_overrides[get_telephony_client] = lambda: FakeTelephony(
        error=TelephonyError("Voice provider returned 503", status_code=503)
    )

    response = client.post(
        f"/api/interview/{pending_interview.id}/start",
        json={"phone_number": "+15551234567"},
        headers=auth_headers,
    )

    assert response.status_code == 502
    db_session.refresh(pending_interview)
    assert pending_interview.status == InterviewStatus.PENDING.value


def test_start_with_invalid_phone(auth_headers, pending_interview):
    response = client.post(
        f"/api/interview/{pending_interview.id}/start",
        json={"phone_number": "not a number"},
        headers=auth_headers,
    )
    assert response.status_code == 400


def test_webhook_unknown_call():
    response = client.post("/api/interview/webhook", json=webhook_body(callId="call_nobody"))

    assert response.status_code == 200
    assert response.json()["matched"] is False


def test_webhook_requires_call_id():
    response = client.post("/api/interview/webhook", json={"transcript": "hello"})
    assert response.status_code == 400


def test_webhook_secret_checked(monkeypatch):
    monkeypatch.setattr(config, "VAPI_WEBHOOK_SECRET", "s3cret")

    rejected = client.post("/api/interview/webhook", json=webhook_body(callId="call_nobody"))
    accepted = client.post(
        "/api/interview/webhook",
        json=webhook_body(callId="call_nobody"),
        headers={"x-vapi-secret": "s3cret"},
    )

    assert rejected.status_code == 401
    assert accepted.status_code == 200


def test_reschedule_and_cancel(auth_headers, pending_interview):
    new_time = (datetime.utcnow() + timedelta(days=6)).isoformat()

    rescheduled = client.put(
        f"/api/interview/{pending_interview.id}/reschedule",
        json={"scheduled_at": new_time},
        headers=auth_headers,
    )
    assert rescheduled.status_code == 200

    cancelled = client.delete(f"/api/interview/{pending_interview.id}", headers=auth_headers)
    assert cancelled.status_code == 200
    assert client.get(f"/api/interview/{pending_interview.id}", headers=auth_headers).status_code == 404


def test_call_status(auth_headers, pending_interview, db_session):
    pending_interview.session_correlation_id = "call_abc"
    pending_interview.status = InterviewStatus.IN_PROGRESS.value
    db_session.commit()

    response = client.get(f"/api/interview/{pending_interview.id}/status", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["call_status"]["status"] == "in-progress"


def test_system_health(monkeypatch):
    monkeypatch.setattr(system, "SessionLocal", TestSessionLocal)

    response = client.get("/system/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "connected"
