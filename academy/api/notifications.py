"""
Notification outbox and email log API endpoints (admin).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from academy.db.database import get_db
from academy.db import models, schemas
from academy.db.repositories import notifications as notifications_repo
from academy.api.deps import require_admin
from academy.utils.pagination import parse_pagination


router = APIRouter(prefix="/admin", tags=["notifications"])


@router.get("/notification-queue", response_model=List[schemas.NotificationQueueItem])
def list_queue_items(
    status: Optional[str] = None,
    kind: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return notifications_repo.get_queue_items(db, status=status, kind=kind, skip=skip, limit=limit)


@router.get("/email-logs")
def list_email_logs(
    status: Optional[str] = None,
    type: Optional[str] = None,
    to_email: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    """
    Email log rows, newest first.

    - **status** / **type**: exact filters
    - **page** / **limit**: pagination (limit defaults to 20, max 100)
    """
    pagination = parse_pagination(page, limit)
    items, total = notifications_repo.get_email_logs(
        db, status=status, type=type, to_email=to_email, skip=pagination.skip, limit=pagination.limit,
    )
    return {
        "data": [schemas.EmailLog.model_validate(item) for item in items],
        "pagination": pagination.meta(total),
    }
