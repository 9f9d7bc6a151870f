"""
Postmark delivery webhooks: update email logs and suppress bad addresses.
"""

import base64
import binascii
import hmac
import logging
import os
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from academy.db import models
from academy.db.repositories import contacts as contacts_repo
from academy.db.repositories import notifications as notifications_repo
from academy.services.suppression_service import parse_provider_timestamp

logger = logging.getLogger(__name__)


def verify_basic_auth(authorization: Optional[str]) -> bool:
    """Check ``Authorization: Basic`` against the configured webhook credentials.

    With no credentials configured every request is accepted.
    """
    username = os.getenv('POSTMARK_WEBHOOK_USERNAME')
    password = os.getenv('POSTMARK_WEBHOOK_PASSWORD')
    if not username or not password:
        return True
    if not authorization or not authorization.startswith('Basic '):
        return False
    try:
        decoded = base64.b64decode(authorization[6:]).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError):
        return False
    given_user, _, given_password = decoded.partition(':')
    return hmac.compare_digest(given_user, username) and hmac.compare_digest(given_password, password)


def _suppress_contact(db: Session, email_log: models.EmailLog, email: Optional[str], reason: str, at) -> None:
    contact = None
    if email_log.contact_id:
        contact = contacts_repo.get_contact(db, email_log.contact_id)
    if contact is None:
        contact = contacts_repo.get_contact_by_email(db, email or email_log.to_email)
    if contact is None or contact.marketing_status == models.MarketingStatus.SUPPRESSED:
        return
    contact.marketing_status = models.MarketingStatus.SUPPRESSED
    contact.suppression_reason = reason
    contact.suppressed_at = at
    db.add(models.ContactActivity(
        contact_id=contact.id,
        type=models.ActivityType.UPDATED,
        description=f"Suppressed by provider webhook ({reason})",
    ))
    logger.info(f"Contact {contact.id} suppressed: {reason}")


def process_postmark_event(db: Session, event: Dict[str, Any]) -> Dict[str, bool]:
    record_type = event.get('RecordType')
    email_log = notifications_repo.get_email_log_by_message_id(db, event.get('MessageID'))
    if email_log is None:
        logger.info(f"Postmark {record_type} event for unknown message {event.get('MessageID')}")
        return {'received': True, 'processed': False}

    if record_type == 'Delivery':
        email_log.status = models.EmailStatus.DELIVERED
        email_log.delivered_at = parse_provider_timestamp(event.get('DeliveredAt'))

    elif record_type == 'Bounce':
        bounced_at = parse_provider_timestamp(event.get('BouncedAt'))
        email_log.status = models.EmailStatus.BOUNCED
        email_log.bounced_at = bounced_at
        email_log.bounce_type = f"{event.get('Type')} ({event.get('TypeCode')}): {event.get('Name')}"
        if event.get('Type') == 'HardBounce':
            _suppress_contact(db, email_log, event.get('Email'), models.SuppressionReason.HARD_BOUNCE, bounced_at)

    elif record_type == 'SpamComplaint':
        complained_at = parse_provider_timestamp(event.get('BouncedAt'))
        email_log.status = models.EmailStatus.SPAM_COMPLAINT
        email_log.bounced_at = complained_at
        _suppress_contact(db, email_log, event.get('Email'), models.SuppressionReason.SPAM_COMPLAINT, complained_at)

    elif record_type == 'Open':
        if email_log.status not in (models.EmailStatus.BOUNCED, models.EmailStatus.SPAM_COMPLAINT):
            email_log.status = models.EmailStatus.OPENED
            if event.get('FirstOpen') and email_log.opened_at is None:
                email_log.opened_at = parse_provider_timestamp(event.get('ReceivedAt'))

    elif record_type == 'Click':
        metadata = dict(email_log.get_metadata())
        clicks = list(metadata.get('clicks') or [])
        clicks.append({'link': event.get('OriginalLink'), 'at': event.get('ReceivedAt')})
        metadata['clicks'] = clicks
        email_log.set_metadata(metadata)

    else:
        logger.warning(f"Unhandled Postmark record type: {record_type}")
        return {'received': True, 'processed': False}

    db.commit()
    logger.info(f"Postmark {record_type} processed for email log {email_log.id}")
    return {'received': True, 'processed': True}
