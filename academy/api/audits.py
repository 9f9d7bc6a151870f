"""
Audit log API endpoints.

Query audit logs; admin only.
"""
from typing import Optional, List
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from academy.db.database import get_db
from academy.db import models, schemas
from academy.db.repositories import audits as audits_repo
from academy.api.deps import require_admin

router = APIRouter(prefix="/audits", tags=["audits"])


@router.get("/", response_model=List[schemas.AuditLog])
def list_audit_logs(
    user_id: Optional[uuid.UUID] = None,
    action_type: Optional[str] = None,
    target_type: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return audits_repo.get_audit_logs(
        db,
        user_id=user_id,
        action_type=action_type,
        target_type=target_type,
        status=status,
        skip=skip,
        limit=limit,
    )
