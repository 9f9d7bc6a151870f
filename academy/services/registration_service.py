"""
Webinar registration service.

Registers attendees (upserting the matching CRM contact), validates access
tokens, tracks watch progress and attendance, and aggregates registration
statistics.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from academy.db import models
from academy.db.repositories import contacts as contacts_repo
from academy.errors import NotFoundError, ValidationError
from academy.services import webinar_notifications
from academy.utils.numbers import percent
from academy.utils.token_crypto import generate_access_token

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

COMPLETION_PROGRESS = 90


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email.strip()) is not None


def record_analytics_event(
    db: Session,
    webinar_id,
    event_type: str,
    registration_id=None,
    metadata: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> models.WebinarAnalyticsEvent:
    event = models.WebinarAnalyticsEvent(
        webinar_id=webinar_id,
        registration_id=registration_id,
        event_type=event_type,
        metadata_json=metadata,
    )
    db.add(event)
    if commit:
        db.commit()
    else:
        db.flush()
    return event


def register(
    db: Session,
    webinar: Optional[models.Webinar],
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
    session_id=None,
    session_type: Optional[str] = None,
    timezone_name: Optional[str] = None,
    source: Optional[str] = None,
    utm: Optional[Dict[str, Optional[str]]] = None,
    now: Optional[datetime] = None,
) -> models.WebinarRegistration:
    """Register for a webinar; an existing registration for the email is returned as is."""
    if not is_valid_email(email):
        raise ValidationError("Invalid email address")
    if webinar is None:
        raise NotFoundError("Webinar not found")
    if webinar.status != models.WebinarStatus.PUBLISHED:
        raise ValidationError("Webinar is not available for registration")

    normalized = email.strip().lower()
    existing = db.query(models.WebinarRegistration).filter(
        models.WebinarRegistration.webinar_id == webinar.id,
        models.WebinarRegistration.email == normalized,
    ).first()
    if existing is not None:
        return existing

    config = webinar.schedule_config
    session = None
    if session_id:
        session = db.query(models.WebinarSession).filter(
            models.WebinarSession.id == session_id,
            models.WebinarSession.webinar_id == webinar.id,
        ).first()
        if session is None:
            raise ValidationError("Invalid session")
        resolved_type = session.type
    elif session_type == models.SessionType.ON_DEMAND:
        if config is None or not config.on_demand_enabled:
            raise ValidationError("On-demand viewing is not available for this webinar")
        resolved_type = models.SessionType.ON_DEMAND
    elif session_type == models.SessionType.REPLAY:
        if config is None or not config.replay_enabled:
            raise ValidationError("Replay is not available for this webinar")
        resolved_type = models.SessionType.REPLAY
    else:
        raise ValidationError("Please select a session or viewing option")

    contact = contacts_repo.get_or_create_contact(
        db,
        normalized,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        source='webinar',
        commit=False,
    )
    if contact.status != models.ContactStatus.ACTIVE:
        contact.status = models.ContactStatus.ACTIVE

    utm = utm or {}
    registration = models.WebinarRegistration(
        webinar_id=webinar.id,
        session_id=session.id if session else None,
        contact_id=contact.id,
        email=normalized,
        first_name=(first_name or '').strip() or None,
        last_name=(last_name or '').strip() or None,
        phone=(phone or '').strip() or None,
        session_type=resolved_type,
        access_token=generate_access_token(),
        timezone=timezone_name or 'UTC',
        source=source or 'direct',
        utm_source=utm.get('utm_source'),
        utm_medium=utm.get('utm_medium'),
        utm_campaign=utm.get('utm_campaign'),
        utm_content=utm.get('utm_content'),
        utm_term=utm.get('utm_term'),
        registered_at=now or _utcnow(),
    )
    db.add(registration)
    if session is not None:
        session.registration_count = (session.registration_count or 0) + 1
    db.flush()
    record_analytics_event(
        db,
        webinar.id,
        models.AnalyticsEventType.REGISTRATION,
        registration_id=registration.id,
        metadata={'session_type': resolved_type, 'source': registration.source},
        commit=False,
    )
    db.commit()
    db.refresh(registration)
    logger.info(f"Registered {normalized} for webinar {webinar.id} ({resolved_type})")

    try:
        webinar_notifications.queue_registration_notifications(db, registration, now=now)
    except Exception as e:
        logger.error(f"Failed to queue notifications for registration {registration.id}: {e}")
    return registration


def validate_access_token(db: Session, webinar: models.Webinar, token: Optional[str]) -> Optional[models.WebinarRegistration]:
    if not token:
        return None
    return db.query(models.WebinarRegistration).filter(
        models.WebinarRegistration.webinar_id == webinar.id,
        models.WebinarRegistration.access_token == token,
    ).first()


def get_registration_or_404(db: Session, webinar: models.Webinar, token: Optional[str]) -> models.WebinarRegistration:
    registration = validate_access_token(db, webinar, token)
    if registration is None:
        raise NotFoundError("Invalid access token")
    return registration


def update_watch_progress(
    db: Session,
    registration: models.WebinarRegistration,
    progress: int,
    position: int,
    now: Optional[datetime] = None,
) -> models.WebinarRegistration:
    """Keep the furthest position and progress; completion is set once at 90 %."""
    registration.max_video_position = max(registration.max_video_position or 0, position)
    registration.watch_progress = max(registration.watch_progress or 0, progress)
    just_completed = progress >= COMPLETION_PROGRESS and registration.completed_at is None
    if just_completed:
        registration.completed_at = now or _utcnow()
    db.commit()
    db.refresh(registration)

    if just_completed and registration.session_id is None:
        try:
            webinar_notifications.queue_post_session_notifications(db, registration, now=now)
        except Exception as e:
            logger.error(f"Failed to queue follow-ups for registration {registration.id}: {e}")
    return registration


def mark_as_attended(db: Session, registration: models.WebinarRegistration, now: Optional[datetime] = None) -> models.WebinarRegistration:
    if registration.joined_at is not None:
        return registration
    now = now or _utcnow()
    registration.joined_at = now
    registration.attended_at = now
    record_analytics_event(
        db,
        registration.webinar_id,
        models.AnalyticsEventType.ATTENDANCE,
        registration_id=registration.id,
        metadata={'session_type': registration.session_type},
        commit=False,
    )
    db.commit()
    db.refresh(registration)
    return registration


def convert_to_replay(db: Session, registration: models.WebinarRegistration) -> models.WebinarRegistration:
    registration.session_type = models.SessionType.REPLAY
    db.commit()
    db.refresh(registration)
    return registration


def registration_stats(db: Session, webinar: models.Webinar) -> Dict[str, Any]:
    query = db.query(models.WebinarRegistration).filter(models.WebinarRegistration.webinar_id == webinar.id)
    registered = query.count()
    attended = query.filter(models.WebinarRegistration.joined_at.isnot(None)).count()
    completed = query.filter(models.WebinarRegistration.completed_at.isnot(None)).count()
    by_type = {}
    for registration in query.all():
        by_type[registration.session_type] = by_type.get(registration.session_type, 0) + 1
    return {
        'total_registrations': registered,
        'attended': attended,
        'completed': completed,
        'attendance_rate': percent(attended, registered),
        'completion_rate': percent(completed, attended),
        'by_session_type': by_type,
    }
