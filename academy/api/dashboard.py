"""
Admin dashboard endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from academy.api.deps import require_admin
from academy.db import models
from academy.db.database import get_db
from academy.services import dashboard_service

router = APIRouter(prefix="/admin/dashboard", tags=["dashboard"])


@router.get("")
def get_dashboard(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return dashboard_service.dashboard(db)
