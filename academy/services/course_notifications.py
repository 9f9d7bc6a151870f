"""
Course notification scheduling.

Event hooks (enrollment, course start, lesson/course completion, quizzes,
certificates) queue outbox rows immediately; inactivity and expiration
reminders are found by periodic sweeps.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from academy.db import models
from academy.services.notification_conditions import (
    build_course_context,
    count_completed_lessons,
    evaluate_conditions,
    to_snake,
)
from academy.services.notification_templates import DEFAULT_COURSE_NOTIFICATIONS
from academy.services.webinar_notifications import ACTIVE_QUEUE_STATUSES
from academy.utils import urls
from academy.utils.feature_flags import course_notifications_enabled

logger = logging.getLogger(__name__)

# Triggers handled by the cron sweeps instead of event hooks
SWEPT_TRIGGERS = (models.CourseTrigger.ON_INACTIVITY,)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_default_course_notifications(db: Session, course: models.Course) -> List[models.CourseNotification]:
    existing_keys = {
        n.template_key for n in db.query(models.CourseNotification).filter(
            models.CourseNotification.course_id == course.id,
            models.CourseNotification.deleted_at.is_(None),
        )
    }
    created = []
    for sort_order, default in enumerate(DEFAULT_COURSE_NOTIFICATIONS):
        if default['template_key'] in existing_keys:
            continue
        notification = models.CourseNotification(
            course_id=course.id,
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
    logger.info(f"Created {len(created)} default notifications for course {course.id}")
    return created


def _active_notifications(db: Session, course_id, trigger_type: str) -> List[models.CourseNotification]:
    return db.query(models.CourseNotification).filter(
        models.CourseNotification.course_id == course_id,
        models.CourseNotification.trigger_type == trigger_type,
        models.CourseNotification.is_active.is_(True),
        models.CourseNotification.deleted_at.is_(None),
    ).order_by(models.CourseNotification.sort_order).all()


def _already_queued(db: Session, notification_id, enrollment_id) -> bool:
    return db.query(models.NotificationQueue.id).filter(
        models.NotificationQueue.notification_id == notification_id,
        models.NotificationQueue.enrollment_id == enrollment_id,
        models.NotificationQueue.status.in_(ACTIVE_QUEUE_STATUSES),
    ).first() is not None


def queue_notification(
    db: Session,
    notification: models.CourseNotification,
    enrollment: models.Enrollment,
    scheduled_at: datetime,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[models.NotificationQueue]:
    if not notification.is_active or notification.deleted_at is not None:
        return None
    if _already_queued(db, notification.id, enrollment.id):
        return None
    item = models.NotificationQueue(
        kind=models.QueueKind.COURSE,
        notification_id=notification.id,
        enrollment_id=enrollment.id,
        recipient_email=enrollment.user.email,
        scheduled_at=scheduled_at,
        status=models.QueueStatus.PENDING,
        metadata_json=metadata,
    )
    db.add(item)
    db.flush()
    return item


def expiration_reminder_at(notification: models.CourseNotification, enrollment: models.Enrollment) -> Optional[datetime]:
    if enrollment.expires_at is None:
        return None
    return _as_utc(enrollment.expires_at) - timedelta(minutes=abs(notification.trigger_minutes or 0))


def queue_course_trigger(
    db: Session,
    enrollment: models.Enrollment,
    trigger_type: str,
    metadata: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> int:
    """Queue every active notification of ``trigger_type`` for the enrollment."""
    if trigger_type in SWEPT_TRIGGERS:
        return 0
    if not course_notifications_enabled():
        logger.debug("Course notifications disabled; nothing queued")
        return 0

    now = _as_utc(now) if now else _utcnow()
    queued = 0
    for notification in _active_notifications(db, enrollment.course_id, trigger_type):
        if trigger_type == models.CourseTrigger.BEFORE_EXPIRATION:
            scheduled_at = expiration_reminder_at(notification, enrollment)
            if scheduled_at is None or scheduled_at <= now:
                continue
        else:
            scheduled_at = now + timedelta(minutes=notification.trigger_minutes or 0)
        if queue_notification(db, notification, enrollment, scheduled_at, metadata) is not None:
            queued += 1
    db.commit()
    if queued:
        logger.info(f"Queued {queued} {trigger_type} notification(s) for enrollment {enrollment.id}")
    return queued


def queue_enrollment_notifications(db: Session, enrollment: models.Enrollment, now: Optional[datetime] = None) -> int:
    queued = queue_course_trigger(db, enrollment, models.CourseTrigger.AFTER_ENROLLMENT, now=now)
    queued += queue_course_trigger(db, enrollment, models.CourseTrigger.BEFORE_EXPIRATION, now=now)
    return queued


def _published_courses_with(db: Session, trigger_type: str):
    return db.query(models.Course).filter(
        models.Course.status == models.CourseStatus.PUBLISHED,
        models.Course.id.in_(
            db.query(models.CourseNotification.course_id).filter(
                models.CourseNotification.trigger_type == trigger_type,
                models.CourseNotification.is_active.is_(True),
                models.CourseNotification.deleted_at.is_(None),
            )
        ),
    ).all()


def sweep_course_inactivity(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """Queue ON_INACTIVITY notifications; ``trigger_minutes`` is the inactivity threshold."""
    now = _as_utc(now) if now else _utcnow()
    queued = 0
    checked = 0
    if not course_notifications_enabled():
        return {'checked': 0, 'queued': 0}

    for course in _published_courses_with(db, models.CourseTrigger.ON_INACTIVITY):
        for notification in _active_notifications(db, course.id, models.CourseTrigger.ON_INACTIVITY):
            threshold = now - timedelta(minutes=abs(notification.trigger_minutes or 0))
            candidates = db.query(models.Enrollment).filter(
                models.Enrollment.course_id == course.id,
                models.Enrollment.status == models.EnrollmentStatus.ACTIVE,
                models.Enrollment.completed_at.is_(None),
                models.Enrollment.started_at.isnot(None),
                models.Enrollment.updated_at < threshold,
            ).all()
            for enrollment in candidates:
                checked += 1
                if _already_queued(db, notification.id, enrollment.id):
                    continue
                context = build_course_context(db, enrollment, now)
                if not evaluate_conditions(notification.conditions, context):
                    continue
                if queue_notification(db, notification, enrollment, now, {'days_inactive': context['days_inactive']}):
                    queued += 1
    db.commit()
    logger.info(f"Inactivity sweep checked {checked} enrollment(s), queued {queued}")
    return {'checked': checked, 'queued': queued}


def sweep_course_expirations(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """Catch enrollments expiring inside a BEFORE_EXPIRATION window that were never queued."""
    now = _as_utc(now) if now else _utcnow()
    queued = 0
    if not course_notifications_enabled():
        return {'queued': 0}

    for course in _published_courses_with(db, models.CourseTrigger.BEFORE_EXPIRATION):
        for notification in _active_notifications(db, course.id, models.CourseTrigger.BEFORE_EXPIRATION):
            window_end = now + timedelta(minutes=abs(notification.trigger_minutes or 0))
            expiring = db.query(models.Enrollment).filter(
                models.Enrollment.course_id == course.id,
                models.Enrollment.status == models.EnrollmentStatus.ACTIVE,
                models.Enrollment.completed_at.is_(None),
                models.Enrollment.expires_at >= now,
                models.Enrollment.expires_at <= window_end,
            ).all()
            for enrollment in expiring:
                if notification.conditions and not evaluate_conditions(
                    notification.conditions, build_course_context(db, enrollment, now)
                ):
                    continue
                if queue_notification(db, notification, enrollment, now) is not None:
                    queued += 1
    db.commit()
    logger.info(f"Expiration sweep queued {queued} notification(s)")
    return {'queued': queued}


def format_time_spent(total_seconds: int) -> str:
    if total_seconds <= 0:
        return ''
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes} minutes"


def _format_date(value: Optional[datetime], locale: str) -> str:
    if value is None:
        return ''
    value = _as_utc(value)
    if locale == 'ka':
        return value.strftime('%d.%m.%Y')
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def build_course_variables(
    db: Session,
    enrollment: models.Enrollment,
    locale: str,
    metadata: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Template variables in camelCase plus snake_case aliases for inline bodies."""
    from academy.services import progress_service

    now = _as_utc(now) if now else _utcnow()
    user = enrollment.user
    course = enrollment.course
    first_name = user.first_name or user.email.split('@')[0] or 'Student'

    watch_seconds = sum(
        row.watch_time or 0 for row in db.query(models.PartProgress.watch_time).filter(
            models.PartProgress.enrollment_id == enrollment.id,
        )
    )
    next_part = progress_service.next_uncompleted_part(db, enrollment)

    days_until_expiry = None
    if enrollment.expires_at is not None:
        days_until_expiry = build_course_context(db, enrollment, now)['days_until_expiry']

    variables: Dict[str, Any] = {
        'firstName': first_name,
        'fullName': user.display_name or first_name,
        'email': user.email,
        'courseTitle': course.title,
        'courseUrl': urls.build_course_url(course.slug),
        'continueUrl': urls.build_course_continue_url(course.slug, str(next_part.id) if next_part else None),
        'progressPercent': enrollment.progress_percent or 0,
        'lessonsCompleted': count_completed_lessons(db, enrollment),
        'totalLessons': len(course.lessons),
        'timeSpent': format_time_spent(watch_seconds),
        'enrolledDate': _format_date(enrollment.enrolled_at, locale),
        'expiresDate': _format_date(enrollment.expires_at, locale),
        'daysUntilExpiry': days_until_expiry,
        'certificateId': enrollment.certificate_id,
        'certificateUrl': urls.build_certificate_url(enrollment.certificate_id) if enrollment.certificate_id else None,
        'quizTitle': None,
        'quizScore': None,
        'passingScore': None,
        'unsubscribeUrl': urls.build_unsubscribe_url(user.email),
    }
    variables.update(metadata or {})
    variables.update({to_snake(k): v for k, v in list(variables.items())})
    return variables
