"""
Provider webhooks and the public unsubscribe endpoints.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from academy.db import schemas
from academy.db.database import get_db
from academy.errors import AcademyError, to_http
from academy.services import suppression_service, webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
unsubscribe_router = APIRouter(prefix="/unsubscribe", tags=["unsubscribe"])


@router.post("/postmark")
def postmark_webhook(
    event: Dict[str, Any] = Body(...),
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    if not webhook_service.verify_basic_auth(authorization):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return webhook_service.process_postmark_event(db, event)


@unsubscribe_router.get("")
def unsubscribe_info(token: Optional[str] = None):
    try:
        email = suppression_service.email_from_token(token)
    except AcademyError as e:
        raise to_http(e)
    return {"email": suppression_service.mask_email(email)}


@unsubscribe_router.post("")
def unsubscribe(payload: schemas.UnsubscribeRequest, db: Session = Depends(get_db)):
    try:
        return suppression_service.unsubscribe(db, payload.token, payload.reason)
    except AcademyError as e:
        raise to_http(e)
