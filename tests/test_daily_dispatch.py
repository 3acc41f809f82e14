"""
Tests for the hourly timezone-aware daily plan dispatch.
"""
import threading
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.models.notification import Notification
from app.db.models.planner import Planner
from app.db.models.profile import Profile
from app.db.models.user import User
from app.services.daily_dispatch import (
    DailyDispatchScheduler,
    RepeatingJob,
    compute_day_index,
    dispatch_key,
    seconds_until_next_hour,
)
from conftest import FakeNotifier


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# 08:00 in New York (EDT, UTC-4)
NY_MORNING = datetime(2026, 6, 15, 12, 0)
PLAN_START = date(2026, 6, 13)


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


def make_user(db, email, tz_name="America/New_York", preferences=None, with_planner=True):
    user = User(name=email.split("@")[0].title(), email=email)
    db.add(user)
    db.flush()
    db.add(Profile(
        user_id=user.id,
        desired_role="Data Analyst",
        weekly_hours=10,
        timezone=tz_name,
        preferences=preferences,
    ))
    if with_planner:
        db.add(Planner(
            user_id=user.id,
            role="Data Analyst",
            start_date=PLAN_START,
            end_date=PLAN_START + timedelta(days=6),
            plan_json={"days": [
                {
                    "day_index": i,
                    "date": (PLAN_START + timedelta(days=i)).isoformat(),
                    "focus": f"Focus {i}",
                    "tasks": [{"title": f"Task {i}", "duration_mins": 60, "day_index": i}],
                }
                for i in range(7)
            ]},
            plan_source="fallback",
            progress_percent=0,
            milestones_reached=[],
        ))
    db.commit()
    db.refresh(user)
    return user


def make_scheduler(notifier, **kwargs):
    return DailyDispatchScheduler(TestSessionLocal, notifier, **kwargs)


def test_seconds_until_next_hour():
    assert seconds_until_next_hour(datetime(2026, 6, 15, 12, 59, 30)) == 30
    assert seconds_until_next_hour(datetime(2026, 6, 15, 12, 0)) == 3600


def test_dispatch_at_local_morning_only(db):
    """A New York user gets the plan at 12:00 UTC and nothing at 13:00 UTC."""
    user = make_user(db, "ny@example.com")
    notifier = FakeNotifier()
    scheduler = make_scheduler(notifier)

    report = scheduler.run_tick(NY_MORNING)
    assert report.dispatched == [user.id]
    assert notifier.daily[0]["day_index"] == 2
    assert notifier.daily[0]["day"]["focus"] == "Focus 2"

    later = scheduler.run_tick(NY_MORNING + timedelta(hours=1))
    assert later.dispatched == []
    assert later.skipped == [user.id]
    assert len(notifier.daily) == 1


def test_user_without_timezone_not_checked(db):
    make_user(db, "notz@example.com", tz_name=None)
    report = make_scheduler(FakeNotifier()).run_tick(NY_MORNING)
    assert report.checked == 0


def test_opted_out_user_skipped(db):
    user = make_user(db, "quiet@example.com", preferences={"email_notifications": False})
    notifier = FakeNotifier()

    report = make_scheduler(notifier).run_tick(NY_MORNING)

    assert report.skipped == [user.id]
    assert notifier.daily == []


def test_user_without_active_planner_skipped(db):
    user = make_user(db, "noplan@example.com", with_planner=False)
    report = make_scheduler(FakeNotifier()).run_tick(NY_MORNING)
    assert report.skipped == [user.id]


def test_repeated_tick_sends_once(db):
    """The dispatch key stops a second send for the same planner and local date."""
    user = make_user(db, "once@example.com")
    notifier = FakeNotifier()
    scheduler = make_scheduler(notifier)

    scheduler.run_tick(NY_MORNING)
    second = scheduler.run_tick(NY_MORNING + timedelta(minutes=30))

    assert second.skipped == [user.id]
    assert len(notifier.daily) == 1
    notifications = db.query(Notification).filter(Notification.type == "daily_plan").all()
    assert len(notifications) == 1
    assert notifications[0].sent is True
    assert notifications[0].dispatch_key == dispatch_key(notifications[0].payload["planner_id"], date(2026, 6, 15))


def test_unsent_notification_is_retried(db):
    """A failed send is recorded as unsent and does not block the next attempt."""
    user = make_user(db, "retry@example.com")

    first = make_scheduler(FakeNotifier(result=False)).run_tick(NY_MORNING)
    second = make_scheduler(FakeNotifier()).run_tick(NY_MORNING)

    assert first.skipped == [user.id]
    assert second.dispatched == [user.id]
    sent_flags = [n.sent for n in db.query(Notification).order_by(Notification.id).all()]
    assert sent_flags == [False, True]


def test_day_index_uses_local_date(db):
    """At 23:00 UTC on the 15th it is already 08:00 on the 16th in Tokyo."""
    user = make_user(db, "tokyo@example.com", tz_name="Asia/Tokyo")
    notifier = FakeNotifier()

    report = make_scheduler(notifier).run_tick(datetime(2026, 6, 15, 23, 0))

    assert report.dispatched == [user.id]
    assert notifier.daily[0]["day_index"] == 3


def test_one_failure_does_not_stop_others(db):
    broken = make_user(db, "broken@example.com")
    healthy = make_user(db, "healthy@example.com")
    notifier = FakeNotifier(fail_for={broken.id})

    report = make_scheduler(notifier).run_tick(NY_MORNING)

    assert report.failed == [broken.id]
    assert report.dispatched == [healthy.id]


def test_invalid_timezone_counts_as_failure(db):
    user = make_user(db, "mars@example.com", tz_name="Mars/Olympus_Mons")
    report = make_scheduler(FakeNotifier()).run_tick(NY_MORNING)
    assert report.failed == [user.id]


def test_blank_timezone_counts_as_failure(db):
    """An empty timezone string is not treated as UTC."""
    blank = make_user(db, "blank@example.com", tz_name="")
    healthy = make_user(db, "ny@example.com")
    notifier = FakeNotifier()

    report = make_scheduler(notifier).run_tick(NY_MORNING)

    assert report.checked == 2
    assert report.failed == [blank.id]
    assert report.dispatched == [healthy.id]
    assert [sent["user_id"] for sent in notifier.daily] == [healthy.id]


def test_overlapping_tick_is_skipped(db):
    make_user(db, "overlap@example.com")
    notifier = FakeNotifier()
    scheduler = make_scheduler(notifier)

    scheduler._tick_lock.acquire()
    try:
        report = scheduler.run_tick(NY_MORNING)
    finally:
        scheduler._tick_lock.release()

    assert report.overlapped is True
    assert notifier.daily == []


def test_pdf_renderer_output_is_attached(db):
    make_user(db, "pdf@example.com")
    notifier = FakeNotifier()
    rendered = []

    def renderer(user, planner, day_index, day):
        rendered.append(day_index)
        return b"%PDF-1.4 fake"

    make_scheduler(notifier, pdf_renderer=renderer).run_tick(NY_MORNING)

    assert rendered == [2]
    assert notifier.daily[0]["pdf_bytes"] == b"%PDF-1.4 fake"


def test_trigger_for_user_ignores_local_hour(db):
    user = make_user(db, "manual@example.com")
    notifier = FakeNotifier()

    assert make_scheduler(notifier).trigger_for_user(user.id, now=NY_MORNING + timedelta(hours=5)) is True
    assert len(notifier.daily) == 1


def test_compute_day_index_never_negative(db):
    planner = Planner(start_date=PLAN_START)
    assert compute_day_index(planner, PLAN_START - timedelta(days=2)) == 0
    assert compute_day_index(planner, PLAN_START + timedelta(days=4)) == 4


def test_repeating_job_runs_until_stopped():
    ran = threading.Event()
    runs = []

    def work():
        runs.append(1)
        ran.set()

    job = RepeatingJob("test-job", work, interval_fn=lambda now: 0.01)
    job.start()
    try:
        assert ran.wait(2.0)
        assert job.is_running
    finally:
        job.stop()

    assert job.is_running is False
    assert job.status()["run_count"] >= 1


def test_repeating_job_survives_errors():
    calls = []
    second_run = threading.Event()

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first run fails")
        second_run.set()

    job = RepeatingJob("flaky-job", flaky, interval_fn=lambda now: 0.01)
    job.start()
    try:
        assert second_run.wait(2.0)
    finally:
        job.stop()

    assert len(calls) >= 2
