"""
Webinar notification scheduling.

Creates the default notification set for a webinar and writes outbox rows
for a registration; delivery happens in ``notification_service``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from academy.db import models
from academy.services.notification_templates import DEFAULT_WEBINAR_NOTIFICATIONS
from academy.services.session_generator import webinar_zone
from academy.utils import urls

logger = logging.getLogger(__name__)

ACTIVE_QUEUE_STATUSES = (
    models.QueueStatus.PENDING,
    models.QueueStatus.PROCESSING,
    models.QueueStatus.SENT,
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_default_notifications(db: Session, webinar: models.Webinar) -> List[models.WebinarNotification]:
    """Create the default notifications that do not exist yet for the webinar."""
    existing_keys = {
        n.template_key for n in db.query(models.WebinarNotification).filter(
            models.WebinarNotification.webinar_id == webinar.id,
            models.WebinarNotification.deleted_at.is_(None),
        )
    }
    created = []
    for sort_order, default in enumerate(DEFAULT_WEBINAR_NOTIFICATIONS):
        if default['template_key'] in existing_keys:
            continue
        notification = models.WebinarNotification(
            webinar_id=webinar.id,
            template_key=default['template_key'],
            trigger_type=default['trigger_type'],
            trigger_minutes=default['trigger_minutes'],
            conditions=default['conditions'],
            channel=models.Channel.EMAIL,
            is_active=True,
            is_default=True,
            sort_order=sort_order,
        )
        db.add(notification)
        created.append(notification)
    db.commit()
    for notification in created:
        db.refresh(notification)
    logger.info(f"Created {len(created)} default notifications for webinar {webinar.id}")
    return created


def compute_scheduled_at(
    notification: models.WebinarNotification,
    registration: models.WebinarRegistration,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """When the notification should fire for this registration; None to skip."""
    now = _as_utc(now) if now else datetime.now(timezone.utc)
    offset = timedelta(minutes=notification.trigger_minutes or 0)
    session = registration.session

    if notification.trigger_type == models.WebinarTrigger.AFTER_REGISTRATION:
        return now + offset

    if notification.trigger_type == models.WebinarTrigger.BEFORE_START:
        if session is None:
            return None
        scheduled = _as_utc(session.scheduled_at) + offset
        return scheduled if scheduled > now else None

    if notification.trigger_type == models.WebinarTrigger.AFTER_END:
        if session is None:
            return now + offset
        duration = timedelta(seconds=registration.webinar.video_duration_seconds)
        return _as_utc(session.scheduled_at) + duration + offset

    logger.warning(f"Unknown webinar trigger type: {notification.trigger_type}")
    return None


def queue_notification(
    db: Session,
    notification: models.WebinarNotification,
    registration: models.WebinarRegistration,
    scheduled_at: datetime,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[models.NotificationQueue]:
    """Write one outbox row unless an active row exists for the pair."""
    if not notification.is_active or notification.deleted_at is not None:
        return None
    existing = db.query(models.NotificationQueue.id).filter(
        models.NotificationQueue.notification_id == notification.id,
        models.NotificationQueue.registration_id == registration.id,
        models.NotificationQueue.status.in_(ACTIVE_QUEUE_STATUSES),
    ).first()
    if existing:
        return None
    item = models.NotificationQueue(
        kind=models.QueueKind.WEBINAR,
        notification_id=notification.id,
        registration_id=registration.id,
        recipient_email=registration.email,
        scheduled_at=scheduled_at,
        status=models.QueueStatus.PENDING,
        metadata_json=metadata,
    )
    db.add(item)
    db.flush()
    return item


def queue_for_triggers(
    db: Session,
    registration: models.WebinarRegistration,
    trigger_types: List[str],
    now: Optional[datetime] = None,
) -> int:
    notifications = db.query(models.WebinarNotification).filter(
        models.WebinarNotification.webinar_id == registration.webinar_id,
        models.WebinarNotification.trigger_type.in_(trigger_types),
        models.WebinarNotification.is_active.is_(True),
        models.WebinarNotification.deleted_at.is_(None),
    ).order_by(models.WebinarNotification.sort_order).all()

    queued = 0
    for notification in notifications:
        scheduled_at = compute_scheduled_at(notification, registration, now)
        if scheduled_at is None:
            continue
        if queue_notification(db, notification, registration, scheduled_at) is not None:
            queued += 1
    db.commit()
    return queued


def queue_registration_notifications(db: Session, registration: models.WebinarRegistration, now: Optional[datetime] = None) -> int:
    """Confirmation and reminders; follow-ups too when the registration has a session."""
    triggers = [models.WebinarTrigger.AFTER_REGISTRATION, models.WebinarTrigger.BEFORE_START]
    if registration.session is not None:
        triggers.append(models.WebinarTrigger.AFTER_END)
    return queue_for_triggers(db, registration, triggers, now)


def queue_post_session_notifications(db: Session, registration: models.WebinarRegistration, now: Optional[datetime] = None) -> int:
    """Follow-ups for registrations without a session, once they finish watching."""
    return queue_for_triggers(db, registration, [models.WebinarTrigger.AFTER_END], now)


def format_session_date(value: Optional[datetime], tz_name: str, locale: str) -> str:
    if value is None:
        return ''
    local = _as_utc(value).astimezone(webinar_zone(tz_name))
    if locale == 'ka':
        return local.strftime('%d.%m.%Y %H:%M')
    return local.strftime('%B %d, %Y at %H:%M')


def build_webinar_variables(registration: models.WebinarRegistration, locale: str) -> Dict[str, Any]:
    webinar = registration.webinar
    session = registration.session
    first_name = registration.first_name or registration.email.split('@')[0]
    tz_name = registration.timezone if registration.timezone and registration.timezone != 'UTC' else webinar.timezone
    return {
        'first_name': first_name,
        'webinar_title': webinar.title,
        'session_date': format_session_date(session.scheduled_at if session else None, tz_name, locale),
        'watch_url': urls.build_watch_url(webinar.slug, registration.access_token),
        'replay_url': urls.build_replay_url(webinar.slug, registration.access_token),
        'unsubscribe_url': urls.build_unsubscribe_url(registration.email),
    }
