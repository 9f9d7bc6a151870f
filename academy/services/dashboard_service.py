"""
Admin dashboard aggregates.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from academy.db import models
from academy.services import engagement_service, registration_service
from academy.utils.numbers import percent, round_half_up

RECENT_DAYS = 30


def _counts_by(db: Session, column, *filters) -> Dict[str, int]:
    query = db.query(column, func.count()).group_by(column)
    for condition in filters:
        query = query.filter(condition)
    return {key: count for key, count in query.all()}


def dashboard(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=RECENT_DAYS)

    contacts_by_status = _counts_by(db, models.Contact.marketing_status)
    enrollments = _counts_by(db, models.Enrollment.status)

    return {
        'contacts': {
            'total': sum(contacts_by_status.values()),
            'subscribed': contacts_by_status.get(models.MarketingStatus.SUBSCRIBED, 0),
            'unsubscribed': contacts_by_status.get(models.MarketingStatus.UNSUBSCRIBED, 0),
            'suppressed': contacts_by_status.get(models.MarketingStatus.SUPPRESSED, 0),
        },
        'courses': {
            'published': db.query(models.Course).filter(models.Course.status == models.CourseStatus.PUBLISHED).count(),
        },
        'enrollments': {
            'total': sum(enrollments.values()),
            'active': enrollments.get(models.EnrollmentStatus.ACTIVE, 0),
            'completed': enrollments.get(models.EnrollmentStatus.COMPLETED, 0),
        },
        'webinars': {
            'published': db.query(models.Webinar).filter(models.Webinar.status == models.WebinarStatus.PUBLISHED).count(),
            'registrations_last_30_days': db.query(models.WebinarRegistration).filter(
                models.WebinarRegistration.registered_at >= since,
            ).count(),
        },
        'notification_queue': _counts_by(db, models.NotificationQueue.status),
        'emails_last_30_days': _counts_by(db, models.EmailLog.status, models.EmailLog.created_at >= since),
        'testimonials': {
            'pending': db.query(models.Testimonial).filter(
                models.Testimonial.status == models.TestimonialStatus.PENDING,
            ).count(),
        },
    }


def webinar_analytics(db: Session, webinar: models.Webinar) -> Dict[str, Any]:
    return {
        'webinar_id': webinar.id,
        'registrations': registration_service.registration_stats(db, webinar),
        'engagement': engagement_service.engagement_breakdown(db, webinar),
    }


def course_analytics(db: Session, course: models.Course) -> Dict[str, Any]:
    by_status = _counts_by(db, models.Enrollment.status, models.Enrollment.course_id == course.id)
    average = db.query(func.avg(models.Enrollment.progress_percent)).filter(
        models.Enrollment.course_id == course.id,
    ).scalar()

    attempts = db.query(models.QuizAttempt).join(
        models.Quiz, models.Quiz.id == models.QuizAttempt.quiz_id,
    ).filter(
        models.Quiz.course_id == course.id,
        models.QuizAttempt.submitted_at.isnot(None),
    )
    submitted = attempts.count()
    passed = attempts.filter(models.QuizAttempt.passed.is_(True)).count()

    return {
        'course_id': course.id,
        'enrollments': {
            'total': sum(by_status.values()),
            'by_status': by_status,
        },
        'average_progress': round_half_up(float(average), 1) if average is not None else 0,
        'quizzes': {
            'attempts': submitted,
            'passed': passed,
            'pass_rate': percent(passed, submitted),
        },
    }
