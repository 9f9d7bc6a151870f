"""
SMS API endpoints (admin): immediate sends, queueing and the send log.
"""
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from academy import audit
from academy.api.deps import require_admin
from academy.db import models, schemas
from academy.db.database import get_db
from academy.errors import AcademyError, to_http
from academy.services import sms_service
from academy.services.ubill_client import UBillClient
from academy.utils.sms import calculate_sms_segments
from academy.utils.feature_flags import sms_enabled

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/sms", tags=["sms"])


def _check_type(sms_type: str) -> None:
    if not sms_enabled():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="SMS is disabled")
    if sms_type not in models.SmsType.ALL:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid SMS type")


@router.post("/send")
def send_sms(payload: schemas.SmsSendRequest, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    _check_type(payload.type)
    result = sms_service.send_sms(
        db,
        payload.phone,
        payload.message,
        sms_type=payload.type,
        contact_id=payload.contact_id,
    )
    audit.log(
        db,
        action=audit.AuditAction.SMS_SEND,
        status=audit.AuditStatus.SUCCESS if result["success"] else audit.AuditStatus.FAILURE,
        target_type="sms_log",
        target_id=result.get("sms_log_id"),
        actor_user_id=admin.id,
        metadata={"error": result.get("error")} if result.get("error") else None,
    )
    if not result["success"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=jsonable_encoder(result))
    return result


@router.post("/queue")
def queue_sms(payload: schemas.SmsQueueRequest, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    _check_type(payload.type)
    if not payload.message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")

    phones: List[str] = list(payload.phones)
    contact_ids: List[Optional[uuid.UUID]] = [None] * len(phones)
    for contact in sms_service.contacts_for_tags(db, payload.tag_ids):
        phones.append(contact.phone)
        contact_ids.append(contact.id)
    if not phones:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No recipients")

    try:
        result = sms_service.queue_sms(db, phones, payload.message, contact_ids, sms_type=payload.type)
    except AcademyError as e:
        raise to_http(e)
    audit.log(
        db,
        action=audit.AuditAction.SMS_QUEUE,
        target_type="sms_log",
        actor_user_id=admin.id,
        metadata=result,
    )
    return {**result, "segments": calculate_sms_segments(payload.message)}


@router.get("/logs", response_model=List[schemas.SmsLog])
def list_sms_logs(
    status_filter: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    query = db.query(models.SmsLog)
    if status_filter:
        query = query.filter(models.SmsLog.status == status_filter)
    return query.order_by(models.SmsLog.created_at.desc()).offset(skip).limit(limit).all()


@router.get("/status")
def sms_status(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    client = UBillClient()
    return {
        "configured": client.is_configured(),
        "sent_today": sms_service.sent_today(db),
        "remaining_today": sms_service.remaining_today(db, client),
        "daily_limit": client.daily_limit,
    }
