"""
Tests for interview eligibility, scheduling, rescheduling and cancellation.
"""
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.models.interview import Interview, InterviewStatus
from app.db.models.planner import Planner
from app.db.models.user import User
from app.services.interview_eligibility import (
    Outcome,
    REQUIRED_PROGRESS,
    cancel_interview,
    check_eligibility,
    estimate_days_until_eligible,
    get_interview_history,
    reschedule_interview,
    schedule_interview,
)


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

NOW = datetime(2026, 6, 15, 12, 0)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def user(db):
    user = User(name="Grace", email="grace@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_planner(db, user, progress, start=date(2026, 6, 5), days=20):
    planner = Planner(
        user_id=user.id,
        role="Data Analyst",
        start_date=start,
        end_date=start + timedelta(days=days - 1),
        plan_json={"days": []},
        plan_source="fallback",
        progress_percent=progress,
        milestones_reached=[],
    )
    db.add(planner)
    db.commit()
    db.refresh(planner)
    return planner


def make_interview(db, user, planner, status=InterviewStatus.PENDING, scheduled_at=NOW + timedelta(days=3)):
    interview = Interview(
        user_id=user.id,
        planner_id=planner.id,
        scheduled_at=scheduled_at,
        status=status.value,
    )
    db.add(interview)
    db.commit()
    db.refresh(interview)
    return interview


def test_no_planner_is_ineligible(db, user):
    result = check_eligibility(db, user.id, now=NOW)
    assert result.is_eligible is False
    assert result.current_progress == 0
    assert result.required_progress == REQUIRED_PROGRESS
    assert result.message == "No active planner found"


def test_eligible_at_threshold(db, user):
    make_planner(db, user, progress=80)
    result = check_eligibility(db, user.id, now=NOW)
    assert result.is_eligible is True
    assert result.days_until_eligible is None


def test_below_threshold_estimates_days(db, user):
    """50% after 10.5 days needs 30 more points at ~4.76 per day: 7 days."""
    make_planner(db, user, progress=50)
    result = check_eligibility(db, user.id, now=NOW)

    assert result.is_eligible is False
    assert result.days_until_eligible == 7
    assert result.message == "Complete 30% more to unlock interview"


def test_estimate_uses_planned_pace_without_progress(db, user):
    """With zero progress the planned pace (100% / 20 days) is used."""
    planner = make_planner(db, user, progress=0)
    assert estimate_days_until_eligible(planner, NOW) == 16


def test_estimate_uses_planned_pace_on_first_day(db, user):
    planner = make_planner(db, user, progress=10, start=NOW.date())
    assert estimate_days_until_eligible(planner, NOW) == 14


def test_estimate_pace_floor_and_clamp(db, user):
    """A very slow observed pace is floored at a quarter of the planned pace."""
    planner = make_planner(db, user, progress=1, start=NOW.date() - timedelta(days=100), days=20)
    assert estimate_days_until_eligible(planner, NOW) == 64

    long_planner = make_planner(db, user, progress=1, start=NOW.date() - timedelta(days=400), days=56)
    assert estimate_days_until_eligible(long_planner, NOW) == 177
    assert 1 <= estimate_days_until_eligible(long_planner, NOW) <= 365


def test_pending_interview_blocks_eligibility(db, user):
    """A pending interview makes the user ineligible regardless of progress."""
    planner = make_planner(db, user, progress=95)
    make_interview(db, user, planner)

    result = check_eligibility(db, user.id, now=NOW)

    assert result.is_eligible is False
    assert result.message == "Interview already scheduled"


def test_explicit_planner_must_belong_to_user(db, user):
    other = User(name="Other", email="other@example.com")
    db.add(other)
    db.commit()
    planner = make_planner(db, other, progress=90)

    result = check_eligibility(db, user.id, planner_id=planner.id, now=NOW)
    assert result.is_eligible is False
    assert result.message == "No active planner found"


def test_schedule_defaults_to_three_days_out(db, user):
    planner = make_planner(db, user, progress=85)

    result = schedule_interview(db, user.id, now=NOW)

    assert result.outcome == Outcome.OK
    assert result.interview.scheduled_at == NOW + timedelta(days=3)
    assert result.interview.status == InterviewStatus.PENDING.value
    assert result.interview.planner_id == planner.id


def test_schedule_rejects_short_lead_time(db, user):
    make_planner(db, user, progress=85)

    result = schedule_interview(db, user.id, scheduled_at=NOW + timedelta(hours=23), now=NOW)

    assert result.outcome == Outcome.INVALID
    assert db.query(Interview).count() == 0


def test_schedule_accepts_aware_datetime(db, user):
    make_planner(db, user, progress=85)
    when = datetime(2026, 6, 20, 10, 0, tzinfo=timezone(timedelta(hours=-4)))

    result = schedule_interview(db, user.id, scheduled_at=when, now=NOW)

    assert result.outcome == Outcome.OK
    assert result.interview.scheduled_at == datetime(2026, 6, 20, 14, 0)


def test_schedule_rejected_when_ineligible(db, user):
    make_planner(db, user, progress=40)

    result = schedule_interview(db, user.id, now=NOW)

    assert result.outcome == Outcome.INELIGIBLE
    assert result.eligibility.is_eligible is False
    assert result.eligibility.days_until_eligible is not None


def test_second_schedule_blocked_by_pending(db, user):
    make_planner(db, user, progress=85)
    assert schedule_interview(db, user.id, now=NOW).ok

    result = schedule_interview(db, user.id, now=NOW)

    assert result.outcome == Outcome.INELIGIBLE
    assert result.message == "Interview already scheduled"
    assert db.query(Interview).count() == 1


def test_reschedule_rejects_when_less_than_24h_away(db, user):
    planner = make_planner(db, user, progress=85)
    interview = make_interview(db, user, planner, scheduled_at=NOW + timedelta(hours=20))

    result = reschedule_interview(db, user.id, interview.id, NOW + timedelta(days=5), now=NOW)

    assert result.outcome == Outcome.CONFLICT
    db.refresh(interview)
    assert interview.scheduled_at == NOW + timedelta(hours=20)


def test_reschedule_rejects_new_time_too_soon(db, user):
    planner = make_planner(db, user, progress=85)
    interview = make_interview(db, user, planner)

    result = reschedule_interview(db, user.id, interview.id, NOW + timedelta(hours=2), now=NOW)

    assert result.outcome == Outcome.INVALID


def test_reschedule_success(db, user):
    planner = make_planner(db, user, progress=85)
    interview = make_interview(db, user, planner)

    result = reschedule_interview(db, user.id, interview.id, NOW + timedelta(days=6), now=NOW)

    assert result.outcome == Outcome.OK
    assert result.interview.scheduled_at == NOW + timedelta(days=6)


def test_reschedule_unknown_interview(db, user):
    assert reschedule_interview(db, user.id, 999, NOW + timedelta(days=6), now=NOW).outcome == Outcome.NOT_FOUND


def test_cancel_pending_deletes(db, user):
    planner = make_planner(db, user, progress=85)
    interview = make_interview(db, user, planner)

    result = cancel_interview(db, user.id, interview.id)

    assert result.outcome == Outcome.OK
    assert db.query(Interview).count() == 0


def test_cancel_in_progress_conflicts(db, user):
    planner = make_planner(db, user, progress=85)
    interview = make_interview(db, user, planner, status=InterviewStatus.IN_PROGRESS)

    result = cancel_interview(db, user.id, interview.id)

    assert result.outcome == Outcome.CONFLICT
    assert db.query(Interview).count() == 1


def test_history_lists_only_own_interviews(db, user):
    planner = make_planner(db, user, progress=85)
    make_interview(db, user, planner, status=InterviewStatus.COMPLETED)
    make_interview(db, user, planner)

    other = User(name="Other", email="other@example.com")
    db.add(other)
    db.commit()
    other_planner = make_planner(db, other, progress=85)
    make_interview(db, other, other_planner)

    history = get_interview_history(db, user.id)
    assert len(history) == 2
    assert all(i.user_id == user.id for i in history)
