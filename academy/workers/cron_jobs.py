"""
Scheduled jobs for the academy service.

Each job takes a session and returns a JSON-able summary. The same jobs back
the ``/cron/*`` endpoints and this module's command line.

Usage:
    python -m academy.workers.cron_jobs process-notifications
    python -m academy.workers.cron_jobs all

Configuration:
    - NOTIFICATION_BATCH_SIZE: queue rows claimed per run (default: 50)
    - DATABASE_URL and the provider credentials, as for the API
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from academy.db.database import get_db_session_local
from academy.services import (
    campaign_service,
    course_notifications,
    notification_service,
    session_generator,
    sms_service,
    suppression_service,
)
from academy.utils.feature_flags import campaigns_enabled, sms_enabled

logger = logging.getLogger(__name__)

NOTIFICATION_BATCH_SIZE = int(os.getenv("NOTIFICATION_BATCH_SIZE", 50))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def process_notifications(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    return notification_service.process_notification_queue(db, batch=NOTIFICATION_BATCH_SIZE, now=now)


def course_inactivity(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "inactivity": course_notifications.sweep_course_inactivity(db, now=now),
        "expiration": course_notifications.sweep_course_expirations(db, now=now),
    }


def generate_sessions(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    return session_generator.generate_all_interval_sessions(db, now=now)


def sync_suppressions(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    return suppression_service.sync_suppressions(db)


def process_sms_queue(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    if not sms_enabled():
        return {"skipped": True, "reason": "SMS is disabled"}
    return sms_service.process_sms_queue(db, now=now)


def process_campaigns(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    if not campaigns_enabled():
        return {"skipped": True, "reason": "Campaigns are disabled"}
    return campaign_service.process_sending_campaigns(db, now=now)


JOBS: Dict[str, Callable[..., Dict[str, Any]]] = {
    "process-notifications": process_notifications,
    "course-inactivity": course_inactivity,
    "generate-sessions": generate_sessions,
    "sync-suppressions": sync_suppressions,
    "process-sms-queue": process_sms_queue,
    "process-campaigns": process_campaigns,
}


def run_job(name: str, db: Optional[Session] = None) -> Dict[str, Any]:
    """Run one job by name, opening a session when none is given."""
    job = JOBS.get(name)
    if job is None:
        raise KeyError(f"Unknown job {name!r}")

    owns_session = db is None
    if owns_session:
        db = next(get_db_session_local())
    started = _utcnow()
    try:
        logger.info(f"Starting job {name}")
        result = job(db)
        logger.info(f"Completed job {name} in {(_utcnow() - started).total_seconds():.1f}s: {result}")
        return result
    except Exception:
        db.rollback()
        logger.exception(f"Job {name} failed")
        raise
    finally:
        if owns_session:
            db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="academy.workers.cron_jobs", description="Run academy scheduled jobs")
    parser.add_argument("job", choices=sorted(JOBS) + ["all"])
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    )
    names = list(JOBS) if args.job == "all" else [args.job]
    failed = False
    for name in names:
        try:
            result = run_job(name)
            print(json.dumps({"job": name, "result": result}, default=str))
        except Exception as e:
            failed = True
            print(json.dumps({"job": name, "error": str(e)}), file=sys.stderr)
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
