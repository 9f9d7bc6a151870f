"""
Cron trigger endpoints.

Each route runs one scheduled job; all of them require
``Authorization: Bearer $CRON_SECRET`` when the secret is configured.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from academy.api.deps import verify_cron_secret
from academy.db.database import get_db
from academy.workers import cron_jobs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_secret)])


def _run(name: str, db: Session):
    try:
        return {"success": True, "job": name, **cron_jobs.run_job(name, db=db)}
    except Exception as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"job": name, "error": str(e)})


@router.post("/process-notifications")
def process_notifications(db: Session = Depends(get_db)):
    return _run("process-notifications", db)


@router.post("/course-inactivity")
def course_inactivity(db: Session = Depends(get_db)):
    return _run("course-inactivity", db)


@router.post("/generate-sessions")
def generate_sessions(db: Session = Depends(get_db)):
    return _run("generate-sessions", db)


@router.post("/sync-suppressions")
def sync_suppressions(db: Session = Depends(get_db)):
    return _run("sync-suppressions", db)


@router.post("/process-sms-queue")
def process_sms_queue(db: Session = Depends(get_db)):
    return _run("process-sms-queue", db)


@router.post("/process-campaigns")
def process_campaigns(db: Session = Depends(get_db)):
    return _run("process-campaigns", db)
