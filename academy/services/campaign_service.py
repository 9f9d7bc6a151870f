"""
Marketing email campaigns.

A campaign is prepared once (recipient rows snapshot the audience) and then
drained in batches by the ``process-campaigns`` cron job.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from academy.db import models, schemas
from academy.db.repositories import notifications as notifications_repo
from academy.errors import ValidationError
from academy.services.notification_templates import replace_variables
from academy.services.transactional_email_service import TransactionalEmailService, get_marketing_email_service
from academy.utils.urls import build_unsubscribe_url

logger = logging.getLogger(__name__)

BATCH_SIZE = 500

PREPARABLE = (models.CampaignStatus.DRAFT, models.CampaignStatus.SCHEDULED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def recipient_variables(contact: models.Contact) -> Dict[str, str]:
    return {
        'firstName': contact.first_name or '',
        'lastName': contact.last_name or '',
        'fullName': contact.full_name,
        'email': contact.email,
        'unsubscribeUrl': build_unsubscribe_url(contact.email),
    }


def audience_query(db: Session, campaign: models.Campaign):
    query = db.query(models.Contact).filter(
        models.Contact.marketing_status == models.MarketingStatus.SUBSCRIBED,
        models.Contact.status == models.ContactStatus.ACTIVE,
    )
    tag_ids = [uuid.UUID(str(t)) for t in (campaign.audience_tag_ids or [])]
    if tag_ids:
        query = query.filter(models.Contact.tags.any(models.Tag.id.in_(tag_ids)))
    return query.order_by(models.Contact.created_at.asc())


def prepare_campaign(db: Session, campaign: models.Campaign, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Snapshot the audience into PENDING recipients and move the campaign to SENDING."""
    if campaign.status not in PREPARABLE:
        raise ValidationError(f"Campaign cannot be prepared from status {campaign.status}")

    audience = {}
    for contact in audience_query(db, campaign).all():
        audience.setdefault(contact.email.lower(), contact)
    if not audience:
        raise ValidationError("Campaign audience is empty")

    db.query(models.CampaignRecipient).filter(
        models.CampaignRecipient.campaign_id == campaign.id,
    ).delete(synchronize_session=False)
    for email, contact in audience.items():
        db.add(models.CampaignRecipient(
            campaign_id=campaign.id,
            contact_id=contact.id,
            email=email,
            variables=recipient_variables(contact),
        ))

    campaign.status = models.CampaignStatus.SENDING
    campaign.started_at = now or _utcnow()
    campaign.sent_count = 0
    db.commit()
    db.refresh(campaign)
    logger.info(f"Prepared campaign {campaign.id} for {len(audience)} recipient(s)")
    return {'campaign_id': campaign.id, 'recipients': len(audience), 'status': campaign.status}


def _send_to_recipient(db: Session, campaign: models.Campaign, recipient: models.CampaignRecipient, sender, now: datetime) -> bool:
    variables = recipient.variables or {}
    subject = replace_variables(campaign.subject, variables)
    html = replace_variables(campaign.html_content, variables)
    text = replace_variables(campaign.text_content, variables) if campaign.text_content else None

    headers = {}
    if variables.get('unsubscribeUrl'):
        headers['List-Unsubscribe'] = f"<{variables['unsubscribeUrl']}>"
    result = sender.send_email_sync(
        to_email=recipient.email,
        subject=subject,
        html_content=html,
        text_content=text,
        from_name=campaign.from_name,
        from_email=campaign.from_email,
        reply_to=campaign.reply_to,
        headers=headers or None,
    )
    if not result.get('success'):
        recipient.status = models.RecipientStatus.FAILED
        recipient.error = result.get('error') or 'Send failed'
        return False

    recipient.status = models.RecipientStatus.SENT
    recipient.message_id = result.get('message_id')
    recipient.sent_at = now
    recipient.error = None
    notifications_repo.create_email_log(
        db,
        schemas.EmailLogCreate(
            to_email=recipient.email,
            subject=subject,
            type=models.EmailType.CAMPAIGN,
            status=models.EmailStatus.SENT,
            reference_type='campaign',
            reference_id=campaign.id,
            contact_id=recipient.contact_id,
            message_id=result.get('message_id'),
            metadata={'recipient_id': str(recipient.id)},
        ),
        commit=False,
    )
    return True


def process_campaign(
    db: Session,
    campaign: models.Campaign,
    sender: Optional[TransactionalEmailService] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or _utcnow()
    if campaign.status != models.CampaignStatus.SENDING:
        return {'success': False, 'sent': 0, 'failed': 0, 'message': f"Campaign is not sending (status {campaign.status})"}

    sender = sender or get_marketing_email_service()
    if not sender.is_configured():
        campaign.status = models.CampaignStatus.PAUSED
        db.commit()
        logger.error(f"Campaign {campaign.id} paused: marketing email sender is not configured")
        return {'success': False, 'sent': 0, 'failed': 0, 'message': 'Marketing email sender not configured'}

    sent = failed = 0
    while True:
        db.refresh(campaign)
        if campaign.status != models.CampaignStatus.SENDING:
            return {
                'success': False, 'sent': sent, 'failed': failed,
                'message': f"Campaign {campaign.status} - stopping",
            }

        batch = db.query(models.CampaignRecipient).filter(
            models.CampaignRecipient.campaign_id == campaign.id,
            models.CampaignRecipient.status == models.RecipientStatus.PENDING,
        ).order_by(models.CampaignRecipient.created_at.asc()).limit(BATCH_SIZE).all()
        if not batch:
            break

        batch_sent = 0
        for recipient in batch:
            if _send_to_recipient(db, campaign, recipient, sender, now):
                batch_sent += 1
            else:
                failed += 1
        sent += batch_sent
        campaign.sent_count = (campaign.sent_count or 0) + batch_sent
        db.commit()

    campaign.status = models.CampaignStatus.COMPLETED
    campaign.completed_at = now
    db.commit()
    logger.info(f"Campaign {campaign.id} completed: sent={sent} failed={failed}")
    return {'success': True, 'sent': sent, 'failed': failed, 'message': f"Campaign completed. Sent: {sent}, Failed: {failed}"}


def process_sending_campaigns(db: Session, sender: Optional[TransactionalEmailService] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Cron entry point: start due SCHEDULED campaigns and drain every SENDING one."""
    now = now or _utcnow()
    due = db.query(models.Campaign).filter(
        models.Campaign.status == models.CampaignStatus.SCHEDULED,
        models.Campaign.scheduled_at.isnot(None),
        models.Campaign.scheduled_at <= now,
    ).all()
    for campaign in due:
        try:
            prepare_campaign(db, campaign, now)
        except ValidationError as e:
            logger.warning(f"Scheduled campaign {campaign.id} not started: {e.message}")
            campaign.status = models.CampaignStatus.CANCELLED
            db.commit()

    results = []
    sending = db.query(models.Campaign).filter(models.Campaign.status == models.CampaignStatus.SENDING).all()
    for campaign in sending:
        result = process_campaign(db, campaign, sender=sender, now=now)
        results.append({'campaign_id': str(campaign.id), **result})
    return {'processed': len(results), 'campaigns': results}


def campaign_stats(db: Session, campaign: models.Campaign) -> Dict[str, Any]:
    recipients = {
        models.RecipientStatus.PENDING: 0,
        models.RecipientStatus.SENT: 0,
        models.RecipientStatus.FAILED: 0,
    }
    for status, count in db.query(models.CampaignRecipient.status, func.count(models.CampaignRecipient.id)).filter(
        models.CampaignRecipient.campaign_id == campaign.id,
    ).group_by(models.CampaignRecipient.status).all():
        recipients[status] = count

    log_counts = dict(db.query(models.EmailLog.status, func.count(models.EmailLog.id)).filter(
        models.EmailLog.reference_type == 'campaign',
        models.EmailLog.reference_id == campaign.id,
    ).group_by(models.EmailLog.status).all())
    opened = log_counts.get(models.EmailStatus.OPENED, 0)
    # Opened mail was delivered first
    delivered = log_counts.get(models.EmailStatus.DELIVERED, 0) + opened

    return {
        'campaign_id': campaign.id,
        'status': campaign.status,
        'total_recipients': sum(recipients.values()),
        'recipients': {k.lower(): v for k, v in recipients.items()},
        'emails': {
            'sent': sum(log_counts.values()),
            'delivered': delivered,
            'opened': opened,
            'bounced': log_counts.get(models.EmailStatus.BOUNCED, 0),
            'spam': log_counts.get(models.EmailStatus.SPAM_COMPLAINT, 0),
        },
    }
