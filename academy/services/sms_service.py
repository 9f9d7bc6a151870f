"""
SMS sending: immediate sends, the PENDING-log queue and its cron drain.

Every attempt leaves an ``sms_logs`` row. Immediate sends write the row
before calling the provider and update it from the response; queued sends
write PENDING rows that ``process_sms_queue`` groups by (brand, message) so
each group goes out in a single provider call.
"""

import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from academy.db import models
from academy.errors import ValidationError
from academy.services.ubill_client import UBillClient, STATUS_SENT, map_ubill_status
from academy.utils.sms import normalize_phone_number, is_valid_georgian_phone

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_LIMIT = 1000

COUNTS_TOWARDS_LIMIT = (models.SmsStatus.SENT, models.SmsStatus.DELIVERED, models.SmsStatus.AWAITING)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sent_today(db: Session, now: Optional[datetime] = None) -> int:
    """SMS counted against the daily limit since UTC midnight."""
    midnight = (now or _utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
    return db.query(models.SmsLog).filter(
        models.SmsLog.created_at >= midnight,
        models.SmsLog.status.in_(COUNTS_TOWARDS_LIMIT),
    ).count()


def remaining_today(db: Session, client, now: Optional[datetime] = None) -> Optional[int]:
    """Remaining budget for today, or None when no daily limit is set."""
    if not client.daily_limit:
        return None
    return max(client.daily_limit - sent_today(db, now), 0)


def _valid_phone(phone: Optional[str]) -> Optional[str]:
    normalized = normalize_phone_number(phone)
    if not normalized or not is_valid_georgian_phone(normalized):
        return None
    return normalized


def _sms_marketing_allowed(db: Session, contact_id: Optional[uuid.UUID]) -> bool:
    if contact_id is None:
        return True
    contact = db.get(models.Contact, contact_id)
    return contact is not None and contact.sms_marketing_status == models.MarketingStatus.SUBSCRIBED


def _record_delivery(db: Session, contact_ids: List[uuid.UUID], now: datetime) -> None:
    if not contact_ids:
        return
    for contact in db.query(models.Contact).filter(models.Contact.id.in_(contact_ids)).all():
        contact.last_sms_received_at = now
        contact.total_sms_received = (contact.total_sms_received or 0) + 1


def send_sms(
    db: Session,
    phone: str,
    message: str,
    *,
    sms_type: str = models.SmsType.TRANSACTIONAL,
    reference_type: Optional[str] = None,
    reference_id: Optional[uuid.UUID] = None,
    contact_id: Optional[uuid.UUID] = None,
    brand_id: Optional[str] = None,
    client: Optional[UBillClient] = None,
) -> Dict[str, Any]:
    """Send one SMS now; returns ``{success, sms_log_id, provider_sms_id, error}``."""
    result: Dict[str, Any] = {'success': False, 'sms_log_id': None, 'provider_sms_id': None, 'error': None}

    normalized = _valid_phone(phone)
    if not normalized:
        result['error'] = 'Invalid phone number'
        return result

    client = client or UBillClient()
    if not client.is_configured():
        result['error'] = 'SMS not configured'
        return result
    brand = brand_id or client.brand_id
    if not brand:
        result['error'] = 'No brand ID configured'
        return result

    remaining = remaining_today(db, client)
    if remaining is not None and remaining <= 0:
        logger.warning(f"Daily SMS limit reached ({client.daily_limit})")
        result['error'] = 'Daily send limit reached'
        return result

    if sms_type == models.SmsType.CAMPAIGN and not _sms_marketing_allowed(db, contact_id):
        result['error'] = 'Contact is unsubscribed from SMS marketing'
        return result

    log = models.SmsLog(
        phone=normalized,
        message=message,
        brand_id=str(brand),
        type=sms_type,
        reference_type=reference_type,
        reference_id=reference_id,
        contact_id=contact_id,
        status=models.SmsStatus.PENDING,
    )
    db.add(log)
    db.commit()
    result['sms_log_id'] = log.id

    response = client.send([normalized], message, brand_id=str(brand))
    now = _utcnow()
    log.status = map_ubill_status(response.get('status_id'))
    log.provider_sms_id = response.get('message_id')
    if response.get('success'):
        log.sent_at = now
        log.error = None
        if contact_id is not None:
            _record_delivery(db, [contact_id], now)
    else:
        if log.status in (models.SmsStatus.PENDING, models.SmsStatus.SENT):
            log.status = models.SmsStatus.ERROR
        log.error = response.get('error') or 'Failed to send SMS'
    db.commit()

    result['success'] = bool(response.get('success'))
    result['provider_sms_id'] = log.provider_sms_id
    result['error'] = None if result['success'] else log.error
    logger.info(f"SMS {log.id} to {normalized}: {log.status}")
    return result


def queue_sms(
    db: Session,
    phones: List[str],
    message: str,
    contact_ids: Optional[List[Optional[uuid.UUID]]] = None,
    *,
    sms_type: str = models.SmsType.CAMPAIGN,
    reference_type: Optional[str] = None,
    reference_id: Optional[uuid.UUID] = None,
    brand_id: Optional[str] = None,
    client: Optional[UBillClient] = None,
) -> Dict[str, int]:
    """Create PENDING logs for later batch sending; ``contact_ids`` is parallel to ``phones``."""
    client = client or UBillClient()
    if not client.is_configured():
        raise ValidationError("SMS not configured")
    brand = brand_id or client.brand_id
    if not brand:
        raise ValidationError("No brand ID configured")

    queued = skipped = 0
    for index, phone in enumerate(phones):
        contact_id = contact_ids[index] if contact_ids and index < len(contact_ids) else None
        normalized = _valid_phone(phone)
        if not normalized:
            skipped += 1
            continue
        if sms_type == models.SmsType.CAMPAIGN and not _sms_marketing_allowed(db, contact_id):
            skipped += 1
            continue
        db.add(models.SmsLog(
            phone=normalized,
            message=message,
            brand_id=str(brand),
            type=sms_type,
            reference_type=reference_type,
            reference_id=reference_id,
            contact_id=contact_id,
            status=models.SmsStatus.PENDING,
        ))
        queued += 1
    db.commit()
    logger.info(f"SMS queued: queued={queued} skipped={skipped} type={sms_type}")
    return {'queued': queued, 'skipped': skipped}


def contacts_for_tags(db: Session, tag_ids: List[uuid.UUID]) -> List[models.Contact]:
    """Active contacts with a phone holding any of ``tag_ids``."""
    if not tag_ids:
        return []
    return db.query(models.Contact).filter(
        models.Contact.status == models.ContactStatus.ACTIVE,
        models.Contact.phone.isnot(None),
        models.Contact.tags.any(models.Tag.id.in_(tag_ids)),
    ).order_by(models.Contact.created_at.asc()).all()


def process_sms_queue(db: Session, client: Optional[UBillClient] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or _utcnow()
    summary: Dict[str, Any] = {'processed': 0, 'sent': 0, 'failed': 0, 'errors': []}

    client = client or UBillClient()
    if not client.is_configured():
        summary['errors'].append('SMS not configured')
        return summary

    remaining = remaining_today(db, client, now)
    if remaining == 0:
        logger.info("Daily SMS limit reached; queue left for tomorrow")
        return summary

    pending = db.query(models.SmsLog).filter(
        models.SmsLog.status == models.SmsStatus.PENDING,
    ).order_by(models.SmsLog.created_at.asc()).limit(
        remaining if remaining is not None else DEFAULT_QUEUE_LIMIT
    ).all()

    groups: "OrderedDict[tuple, List[models.SmsLog]]" = OrderedDict()
    for log in pending:
        groups.setdefault((log.brand_id, log.message), []).append(log)

    for (brand, message), logs in groups.items():
        response = client.send([log.phone for log in logs], message, brand_id=brand)
        success = bool(response.get('success'))
        status = map_ubill_status(response.get('status_id', STATUS_SENT if success else None))
        if not success and status in (models.SmsStatus.PENDING, models.SmsStatus.SENT):
            status = models.SmsStatus.ERROR
        for log in logs:
            log.status = status
            log.provider_sms_id = response.get('message_id')
            log.error = None if success else (response.get('error') or 'Failed to send SMS')
            if success:
                log.sent_at = now
        if success:
            _record_delivery(db, [log.contact_id for log in logs if log.contact_id], now)
            summary['sent'] += len(logs)
        else:
            summary['failed'] += len(logs)
            summary['errors'].append(f"Batch failed: {response.get('error') or 'Unknown error'}")
        summary['processed'] += len(logs)
        db.commit()

    # Only the first few batch errors are reported
    summary['errors'] = summary['errors'][:5]
    logger.info(
        f"SMS queue processed: processed={summary['processed']} sent={summary['sent']} "
        f"failed={summary['failed']} batches={len(groups)}"
    )
    return summary
