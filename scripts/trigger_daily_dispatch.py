"""
Run the daily plan dispatch by hand.

Run: python -m scripts.trigger_daily_dispatch                 (one tick at the current time)
     python -m scripts.trigger_daily_dispatch --user-id 42    (send today's plan to one user)
     python -m scripts.trigger_daily_dispatch --at 2026-06-15T12:00:00
"""
import argparse
import logging
import sys
import os
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core import config
from app.core.logging_config import setup_logging
from app.db.session import SessionLocal
from app.services.daily_dispatch import DailyDispatchScheduler
from app.services.email_service import get_email_service

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Trigger the daily plan dispatch")
    parser.add_argument("--user-id", type=int, help="Dispatch to one user regardless of local hour")
    parser.add_argument("--at", help="UTC time for the tick (ISO format), defaults to now")
    args = parser.parse_args(argv)

    setup_logging(config.LOG_LEVEL)
    scheduler = DailyDispatchScheduler(SessionLocal, get_email_service())
    now = datetime.fromisoformat(args.at) if args.at else None

    if args.user_id is not None:
        sent = scheduler.trigger_for_user(args.user_id, now=now)
        print(f"User {args.user_id}: {'sent' if sent else 'not sent'}")
        return 0 if sent else 1

    report = scheduler.run_tick(now)
    print(
        f"checked={report.checked} dispatched={report.dispatched} "
        f"skipped={len(report.skipped)} failed={report.failed}"
    )
    return 1 if report.failed else 0


if __name__ == "__main__":
    sys.exit(main())
