"""
Timezone-aware daily plan dispatch.

Once an hour the scheduler walks every user with a timezone and sends the
day's tasks to those whose local clock reads the dispatch hour (08:00).
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Optional, List, Dict, Any

from sqlalchemy.orm import Session

from app.core.config import DISPATCH_LOCAL_HOUR
from app.core.timezone import is_valid_timezone, local_date, local_hour
from app.db.models.notification import Notification
from app.db.models.planner import Planner
from app.db.models.profile import Profile
from app.db.models.user import User
from app.services.email_service import record_notification
from app.services.planner_service import get_active_planner, get_day_tasks

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "daily_plan"


def seconds_until_next_hour(now: datetime) -> float:
    next_hour = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return max(0.0, (next_hour - now).total_seconds())


class RepeatingJob:
    """
    Runs `func` on a daemon thread at the top of every hour until stopped.

    `interval_fn(now)` returns the seconds to wait before the next run.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Any],
        interval_fn: Callable[[datetime], float] = seconds_until_next_hour,
    ):
        self.name = name
        self.func = func
        self.interval_fn = interval_fn
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_run_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.run_count = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.is_running:
            logger.warning(f"Job already running: name={self.name}")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"Job started: name={self.name}")

    def stop(self, timeout: float = 5.0):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info(f"Job stopped: name={self.name}")

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "running": self.is_running,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "run_count": self.run_count,
        }

    def _run(self):
        while not self._stop_event.wait(self.interval_fn(datetime.utcnow())):
            self.last_run_at = datetime.utcnow()
            self.run_count += 1
            try:
                self.func()
                self.last_error = None
            except Exception as e:
                # The loop must survive a failed run; the next hour retries.
                self.last_error = f"{type(e).__name__}: {e}"
                logger.error(f"Job run failed: name={self.name}, error={e}", exc_info=True)


@dataclass
class DispatchReport:
    checked: int = 0
    dispatched: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    overlapped: bool = False


def compute_day_index(planner: Planner, on_date: date) -> int:
    return max(0, (on_date - planner.start_date).days)


def dispatch_key(planner_id: int, on_date: date) -> str:
    return f"{NOTIFICATION_TYPE}:{planner_id}:{on_date.isoformat()}"


class DailyDispatchScheduler:
    """
    Hourly daily-plan dispatcher.

    Args:
        session_factory: callable returning a new SQLAlchemy Session
        notifier: object with send_daily_plan_email(user, planner, day_index, day, pdf_bytes)
        pdf_renderer: optional callable (user, planner, day_index, day) -> bytes
        dispatch_hour: local hour that triggers the send
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        notifier,
        pdf_renderer: Optional[Callable[..., Optional[bytes]]] = None,
        dispatch_hour: int = DISPATCH_LOCAL_HOUR,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.pdf_renderer = pdf_renderer
        self.dispatch_hour = dispatch_hour
        self._tick_lock = threading.Lock()
        self.job = RepeatingJob("daily-plan-dispatch", self.run_tick)

    def start(self):
        self.job.start()

    def stop(self):
        self.job.stop()

    def status(self) -> Dict[str, Any]:
        return {**self.job.status(), "dispatch_hour": self.dispatch_hour, "tick_in_progress": self._tick_lock.locked()}

    def run_tick(self, now: Optional[datetime] = None) -> DispatchReport:
        """One pass over all users. A tick that starts while another runs is skipped."""
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Dispatch tick skipped: previous tick still running")
            return DispatchReport(overlapped=True)
        try:
            return self._run_tick(now or datetime.utcnow())
        finally:
            self._tick_lock.release()

    def _run_tick(self, now: datetime) -> DispatchReport:
        report = DispatchReport()
        db = self.session_factory()
        try:
            rows = db.query(User.id, Profile.timezone).join(
                Profile, Profile.user_id == User.id
            ).filter(Profile.timezone.isnot(None)).order_by(User.id).all()

            for user_id, tz_name in rows:
                report.checked += 1
                if not is_valid_timezone(tz_name):
                    report.failed.append(user_id)
                    logger.warning(f"Daily dispatch skipped, invalid timezone: user_id={user_id}, timezone={tz_name!r}")
                    continue
                try:
                    if local_hour(now, tz_name) != self.dispatch_hour:
                        report.skipped.append(user_id)
                        continue
                    if self._dispatch_user(db, user_id, now):
                        report.dispatched.append(user_id)
                    else:
                        report.skipped.append(user_id)
                except Exception as e:
                    db.rollback()
                    report.failed.append(user_id)
                    logger.error(f"Daily dispatch failed: user_id={user_id}, error={e}", exc_info=True)
        finally:
            db.close()

        logger.info(
            f"Dispatch tick complete: now={now.isoformat()}, checked={report.checked}, "
            f"dispatched={len(report.dispatched)}, skipped={len(report.skipped)}, failed={len(report.failed)}"
        )
        return report

    def trigger_for_user(self, user_id: int, now: Optional[datetime] = None) -> bool:
        """Send today's plan to one user regardless of their local hour."""
        now = now or datetime.utcnow()
        db = self.session_factory()
        try:
            return self._dispatch_user(db, user_id, now)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _dispatch_user(self, db: Session, user_id: int, now: datetime) -> bool:
        """
        Send the active planner's tasks for the user's local date.

        Returns True if an email was handed to the notifier and accepted.
        """
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            return False
        profile = db.query(Profile).filter(Profile.user_id == user_id).first()
        if profile is not None and not profile.wants_email():
            logger.debug(f"Daily dispatch skipped, email opted out: user_id={user_id}")
            return False

        today = local_date(now, profile.timezone if profile else None)
        planner = get_active_planner(db, user_id, today)
        if planner is None:
            logger.debug(f"Daily dispatch skipped, no active planner: user_id={user_id}, date={today}")
            return False

        key = dispatch_key(planner.id, today)
        already_sent = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.dispatch_key == key,
            Notification.sent.is_(True),
        ).first()
        if already_sent is not None:
            logger.info(f"Daily dispatch already sent: user_id={user_id}, key={key}")
            return False

        day_index = compute_day_index(planner, today)
        day = get_day_tasks(planner.plan_json, day_index, today)
        if day is None or not day.get("tasks"):
            logger.info(f"Daily dispatch skipped, no tasks: user_id={user_id}, planner_id={planner.id}")
            return False

        pdf_bytes = self.pdf_renderer(user, planner, day_index, day) if self.pdf_renderer else None
        sent = bool(self.notifier.send_daily_plan_email(user, planner, day_index, day, pdf_bytes))

        record_notification(
            db,
            user_id=user_id,
            type=NOTIFICATION_TYPE,
            message=f"Day {day_index + 1} plan: {day.get('focus') or planner.role}",
            sent=sent,
            dispatch_key=key,
            payload={"planner_id": planner.id, "day_index": day_index, "date": today.isoformat()},
        )
        db.commit()

        logger.info(
            f"Daily plan dispatched: user_id={user_id}, planner_id={planner.id}, "
            f"day_index={day_index}, sent={sent}"
        )
        return sent


_scheduler: Optional[DailyDispatchScheduler] = None


def get_scheduler() -> Optional[DailyDispatchScheduler]:
    return _scheduler


def set_scheduler(scheduler: Optional[DailyDispatchScheduler]):
    global _scheduler
    _scheduler = scheduler
