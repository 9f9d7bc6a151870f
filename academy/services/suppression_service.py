"""
Two-way sync between local marketing status and the Postmark suppression
list, plus the unsubscribe and resubscribe flows.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from academy import audit
from academy.db import models
from academy.db.repositories import contacts as contacts_repo
from academy.errors import NotFoundError, ValidationError
from academy.services.postmark_client import PostmarkSuppressionClient
from academy.utils.token_crypto import verify_unsubscribe_token

logger = logging.getLogger(__name__)

REASON_MAP = {
    'HardBounce': models.SuppressionReason.HARD_BOUNCE,
    'SpamComplaint': models.SuppressionReason.SPAM_COMPLAINT,
}

LOCALLY_SUPPRESSED = (models.MarketingStatus.UNSUBSCRIBED, models.MarketingStatus.SUPPRESSED)

DEFAULT_UNSUBSCRIBE_REASON = 'User requested via unsubscribe link'


def map_suppression_reason(reason: Optional[str]) -> str:
    return REASON_MAP.get(reason or '', models.SuppressionReason.MANUAL_SUPPRESSION)


def parse_provider_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return datetime.now(timezone.utc)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def sync_suppressions(db: Session, client: Optional[PostmarkSuppressionClient] = None) -> Dict[str, Any]:
    client = client or PostmarkSuppressionClient()
    result = {
        'success': False,
        'from_provider': {'total': 0, 'new_suppressions': 0, 'already_suppressed': 0},
        'to_provider': {'total': 0, 'pushed': 0, 'errors': 0},
        'errors': [],
    }
    if not client.is_configured():
        result['errors'].append('Marketing server token not configured')
        return result

    try:
        remote = client.list_suppressions()
        result['from_provider']['total'] = len(remote)
        for suppression in remote:
            contact = contacts_repo.get_contact_by_email(db, suppression.get('EmailAddress') or '')
            if contact is None:
                continue
            if contact.marketing_status == models.MarketingStatus.SUPPRESSED:
                result['from_provider']['already_suppressed'] += 1
                continue
            contact.marketing_status = models.MarketingStatus.SUPPRESSED
            contact.suppression_reason = map_suppression_reason(suppression.get('SuppressionReason'))
            contact.suppressed_at = parse_provider_timestamp(suppression.get('CreatedAt'))
            result['from_provider']['new_suppressions'] += 1
        db.commit()

        local_emails = [
            email.lower() for (email,) in db.query(models.Contact.email).filter(
                models.Contact.marketing_status.in_(LOCALLY_SUPPRESSED),
            ).all()
        ]
        result['to_provider']['total'] = len(local_emails)
        remote_emails = {(s.get('EmailAddress') or '').lower() for s in remote}
        to_push = [e for e in local_emails if e not in remote_emails]
        if to_push:
            pushed, failed = client.add_suppressions(to_push)
            result['to_provider']['pushed'] = len(pushed)
            result['to_provider']['errors'] = len(failed)
        result['success'] = True
    except Exception as e:
        logger.error(f"Suppression sync failed: {e}")
        if isinstance(e, SQLAlchemyError):
            db.rollback()
        result['errors'].append(str(e))

    logger.info(
        f"Suppression sync: pulled {result['from_provider']['new_suppressions']} new, "
        f"pushed {result['to_provider']['pushed']}"
    )
    audit.log(
        db,
        action=audit.AuditAction.SUPPRESSION_SYNC,
        status=audit.AuditStatus.SUCCESS if result['success'] else audit.AuditStatus.FAILURE,
        target_type="suppression_list",
        metadata={k: v for k, v in result.items() if k != 'success'},
    )
    return result


def suppression_dump(db: Session, client: Optional[PostmarkSuppressionClient] = None) -> Dict[str, Any]:
    client = client or PostmarkSuppressionClient()
    local = {'total': 0, 'unsubscribed': 0, 'suppressed': 0}
    rows = db.query(models.Contact.marketing_status, func.count(models.Contact.id)).group_by(
        models.Contact.marketing_status,
    ).all()
    for status, count in rows:
        local['total'] += count
        if status == models.MarketingStatus.UNSUBSCRIBED:
            local['unsubscribed'] = count
        elif status == models.MarketingStatus.SUPPRESSED:
            local['suppressed'] = count

    provider_total = 0
    if client.is_configured():
        try:
            provider_total = len(client.list_suppressions())
        except Exception as e:
            logger.warning(f"Could not read provider suppressions: {e}")
    return {
        'local': local,
        'provider': {'total': provider_total},
        'synced': local['unsubscribed'] + local['suppressed'] == provider_total,
    }


def resubscribe(
    db: Session,
    contact_id: uuid.UUID,
    client: Optional[PostmarkSuppressionClient] = None,
    actor_user_id: Optional[uuid.UUID] = None,
) -> models.Contact:
    contact = contacts_repo.get_contact(db, contact_id)
    if contact is None:
        raise NotFoundError("Contact not found")
    if contact.suppression_reason == models.SuppressionReason.SPAM_COMPLAINT:
        raise ValidationError("Contacts who reported spam cannot be resubscribed")

    client = client or PostmarkSuppressionClient()
    if client.is_configured() and not client.delete_suppression(contact.email):
        logger.warning(f"Provider suppression for {contact.email} could not be deleted")

    contact.marketing_status = models.MarketingStatus.SUBSCRIBED
    contact.suppression_reason = None
    contact.suppressed_at = None
    contact.unsubscribed_at = None
    contact.unsubscribe_reason = None
    db.add(models.ContactActivity(
        contact_id=contact.id,
        type=models.ActivityType.UPDATED,
        description="Resubscribed to marketing email",
        created_by=actor_user_id,
    ))
    db.commit()
    db.refresh(contact)
    audit.log_contact(
        db,
        actor_user_id=actor_user_id,
        contact_id=contact.id,
        action=audit.AuditAction.CONTACT_RESUBSCRIBE,
    )
    return contact


def mask_email(email: str) -> str:
    local, _, domain = email.partition('@')
    if len(local) > 2:
        local = f"{local[0]}{'*' * (len(local) - 2)}{local[-1]}"
    return f"{local}@{domain}"


def email_from_token(token: Optional[str]) -> str:
    email = verify_unsubscribe_token(token)
    if not email:
        raise ValidationError("Invalid or expired unsubscribe link")
    return email


def unsubscribe(
    db: Session,
    token: Optional[str],
    reason: Optional[str] = None,
    client: Optional[PostmarkSuppressionClient] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    email = email_from_token(token)
    contact = contacts_repo.get_contact_by_email(db, email)
    if contact is None:
        # Unknown addresses get the same answer as known ones
        return {'success': True, 'message': 'Unsubscribe request processed'}
    if contact.marketing_status == models.MarketingStatus.UNSUBSCRIBED:
        return {'success': True, 'already_unsubscribed': True, 'message': 'You are already unsubscribed'}

    contact.marketing_status = models.MarketingStatus.UNSUBSCRIBED
    contact.unsubscribed_at = now or datetime.now(timezone.utc)
    contact.unsubscribe_reason = reason or DEFAULT_UNSUBSCRIBE_REASON
    db.add(models.ContactActivity(
        contact_id=contact.id,
        type=models.ActivityType.UNSUBSCRIBED,
        description=contact.unsubscribe_reason,
    ))
    db.commit()
    logger.info(f"Contact {contact.id} unsubscribed from marketing email")

    client = client or PostmarkSuppressionClient()
    if client.is_configured():
        _, failed = client.add_suppressions([contact.email])
        if failed:
            logger.error(f"Failed to add {contact.email} to the provider suppression list; next sync will retry")
    return {'success': True, 'message': 'Successfully unsubscribed'}
