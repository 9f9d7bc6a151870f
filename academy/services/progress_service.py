"""
Enrollment, part progress, drip availability and certificates.

Progress is the share of completed parts over every part in the course
(lessons inside modules and lessons attached directly to the course).
Notification hooks fire on the first activity, lesson completion, course
completion and certificate issue; queueing failures are logged and never
fail the learner's request.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from academy.db import models
from academy.errors import NotFoundError, PermissionDeniedError, ValidationError
from academy.services import course_notifications
from academy.utils import urls
from academy.utils.numbers import percent
from academy.utils.token_crypto import generate_verification_code

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _queue(db: Session, enrollment: models.Enrollment, trigger_type: str, metadata: Optional[Dict[str, Any]] = None, now=None) -> None:
    try:
        course_notifications.queue_course_trigger(db, enrollment, trigger_type, metadata=metadata, now=now)
    except Exception as e:
        logger.error(f"Failed to queue {trigger_type} notifications for enrollment {enrollment.id}: {e}")


# === Course structure ===

def ordered_lessons(course: models.Course) -> List[models.Lesson]:
    """Module lessons (modules in order) followed by direct lessons."""
    lessons = []
    for module in course.modules:
        lessons.extend(module.lessons)
    lessons.extend(course.direct_lessons)
    return lessons


def ordered_parts(course: models.Course) -> List[models.LessonPart]:
    return [part for lesson in ordered_lessons(course) for part in lesson.parts]


def completed_part_ids(db: Session, enrollment: models.Enrollment) -> set:
    return {
        row.part_id for row in db.query(models.PartProgress.part_id).filter(
            models.PartProgress.enrollment_id == enrollment.id,
            models.PartProgress.status == models.ProgressStatus.COMPLETED,
        )
    }


def next_uncompleted_part(db: Session, enrollment: models.Enrollment) -> Optional[models.LessonPart]:
    done = completed_part_ids(db, enrollment)
    for part in ordered_parts(enrollment.course):
        if part.id not in done:
            return part
    return None


# === Drip ===

def is_content_available(
    enrolled_at: datetime,
    available_after_days: Optional[int],
    drip_enabled: bool,
    now: Optional[datetime] = None,
) -> bool:
    if not drip_enabled or not available_after_days:
        return True
    now = _as_utc(now) if now else _utcnow()
    return now >= _as_utc(enrolled_at) + timedelta(days=available_after_days)


def lesson_available_at(enrollment: models.Enrollment, lesson: models.Lesson) -> Optional[datetime]:
    if not enrollment.course.drip_enabled or not lesson.available_after_days:
        return None
    return _as_utc(enrollment.enrolled_at) + timedelta(days=lesson.available_after_days)


def ensure_part_available(enrollment: models.Enrollment, part: models.LessonPart, now: Optional[datetime] = None) -> None:
    lesson = part.lesson
    if not is_content_available(enrollment.enrolled_at, lesson.available_after_days, enrollment.course.drip_enabled, now):
        raise PermissionDeniedError(
            "This lesson is not available yet",
            available_at=lesson_available_at(enrollment, lesson).isoformat(),
        )


# === Enrollment ===

def enroll(db: Session, user: models.User, course: models.Course, now: Optional[datetime] = None) -> models.Enrollment:
    """Enroll ``user``; re-enrolling returns the existing enrollment."""
    if course.status != models.CourseStatus.PUBLISHED:
        raise ValidationError("Course is not available for enrollment")

    existing = db.query(models.Enrollment).filter(
        models.Enrollment.user_id == user.id,
        models.Enrollment.course_id == course.id,
    ).first()
    if existing is not None:
        return existing

    now = _as_utc(now) if now else _utcnow()
    enrollment = models.Enrollment(
        user_id=user.id,
        course_id=course.id,
        status=models.EnrollmentStatus.ACTIVE,
        progress_percent=0,
        enrolled_at=now,
        expires_at=now + timedelta(days=course.access_days) if course.access_days else None,
    )
    db.add(enrollment)
    db.commit()
    db.refresh(enrollment)
    logger.info(f"User {user.id} enrolled in course {course.id}")

    try:
        course_notifications.queue_enrollment_notifications(db, enrollment, now=now)
    except Exception as e:
        logger.error(f"Failed to queue enrollment notifications for {enrollment.id}: {e}")
    return enrollment


def get_active_enrollment(db: Session, user: models.User, course: models.Course, now: Optional[datetime] = None) -> models.Enrollment:
    """The user's enrollment, rejecting missing, expired and suspended ones."""
    enrollment = db.query(models.Enrollment).filter(
        models.Enrollment.user_id == user.id,
        models.Enrollment.course_id == course.id,
    ).first()
    if enrollment is None:
        raise PermissionDeniedError("You are not enrolled in this course")
    check_enrollment_access(db, enrollment, now)
    return enrollment


def check_enrollment_access(db: Session, enrollment: models.Enrollment, now: Optional[datetime] = None) -> None:
    now = _as_utc(now) if now else _utcnow()
    if enrollment.status == models.EnrollmentStatus.SUSPENDED:
        raise PermissionDeniedError("Enrollment is suspended")
    expired = enrollment.status == models.EnrollmentStatus.EXPIRED or (
        enrollment.expires_at is not None and _as_utc(enrollment.expires_at) < now
    )
    if expired:
        if enrollment.status != models.EnrollmentStatus.EXPIRED:
            enrollment.status = models.EnrollmentStatus.EXPIRED
            db.commit()
        raise PermissionDeniedError("Enrollment has expired")


# === Progress ===

def calculate_enrollment_progress(db: Session, enrollment: models.Enrollment) -> int:
    part_ids = {part.id for part in ordered_parts(enrollment.course)}
    if not part_ids:
        return 0
    done = completed_part_ids(db, enrollment) & part_ids
    return percent(len(done), len(part_ids))


def update_enrollment_progress(db: Session, enrollment: models.Enrollment, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = _as_utc(now) if now else _utcnow()
    was_completed = enrollment.completed_at is not None
    just_started = enrollment.started_at is None

    progress = calculate_enrollment_progress(db, enrollment)
    is_completed = progress == 100
    enrollment.progress_percent = progress
    if just_started:
        enrollment.started_at = now
    if is_completed:
        enrollment.status = models.EnrollmentStatus.COMPLETED
        if not was_completed:
            enrollment.completed_at = now
    else:
        enrollment.status = models.EnrollmentStatus.ACTIVE
        enrollment.completed_at = None
    enrollment.updated_at = now
    db.commit()

    just_completed = is_completed and not was_completed
    if just_started:
        _queue(db, enrollment, models.CourseTrigger.ON_COURSE_START, now=now)
    if just_completed:
        logger.info(f"Enrollment {enrollment.id} completed course {enrollment.course_id}")
        _queue(db, enrollment, models.CourseTrigger.ON_COURSE_COMPLETE, now=now)
        if enrollment.course.certificate_enabled:
            issue_certificate(db, enrollment, now)

    return {
        'progress_percent': progress,
        'is_completed': is_completed,
        'was_just_completed': just_completed,
    }


def _get_or_create_part_progress(db: Session, enrollment: models.Enrollment, part: models.LessonPart) -> models.PartProgress:
    progress = db.query(models.PartProgress).filter(
        models.PartProgress.user_id == enrollment.user_id,
        models.PartProgress.part_id == part.id,
    ).first()
    if progress is None:
        progress = models.PartProgress(
            user_id=enrollment.user_id,
            part_id=part.id,
            enrollment_id=enrollment.id,
            status=models.ProgressStatus.NOT_STARTED,
            watch_time=0,
            watch_percent=0,
            last_position=0,
        )
        db.add(progress)
    return progress


def update_video_progress(
    db: Session,
    enrollment: models.Enrollment,
    part: models.LessonPart,
    watch_time: int,
    video_duration: int,
    last_position: int = 0,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Store watch progress; reaching the course threshold completes the part."""
    now = _as_utc(now) if now else _utcnow()
    progress = _get_or_create_part_progress(db, enrollment, part)
    watch_percent = percent(watch_time, video_duration)

    progress.watch_time = watch_time
    progress.video_duration = video_duration
    progress.watch_percent = watch_percent
    progress.last_position = last_position
    progress.updated_at = now

    already_completed = progress.status == models.ProgressStatus.COMPLETED
    reached_threshold = watch_percent >= enrollment.course.video_completion_threshold
    if already_completed:
        db.commit()
        result = update_enrollment_progress(db, enrollment, now)
    elif reached_threshold:
        result = _complete(db, enrollment, part, progress, models.CompletedBy.AUTO_VIDEO, now)
    else:
        progress.status = models.ProgressStatus.IN_PROGRESS
        db.commit()
        result = update_enrollment_progress(db, enrollment, now)

    return {
        'watch_percent': watch_percent,
        'part_completed': already_completed or reached_threshold,
        **result,
    }


def mark_part_complete(
    db: Session,
    enrollment: models.Enrollment,
    part: models.LessonPart,
    completed_by: str = models.CompletedBy.MANUAL,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = _as_utc(now) if now else _utcnow()
    progress = _get_or_create_part_progress(db, enrollment, part)
    return _complete(db, enrollment, part, progress, completed_by, now)


def _complete(db, enrollment, part, progress, completed_by, now) -> Dict[str, Any]:
    if progress.status != models.ProgressStatus.COMPLETED:
        progress.status = models.ProgressStatus.COMPLETED
        progress.completed_at = now
        progress.completed_by = completed_by
    progress.updated_at = now
    db.commit()

    result = update_enrollment_progress(db, enrollment, now)
    lesson = part.lesson
    _queue(
        db,
        enrollment,
        models.CourseTrigger.ON_LESSON_COMPLETE,
        metadata={'lessonId': str(lesson.id), 'lessonTitle': lesson.title},
        now=now,
    )
    return result


def progress_summary(db: Session, enrollment: models.Enrollment) -> Dict[str, Any]:
    rows = db.query(models.PartProgress).filter(models.PartProgress.enrollment_id == enrollment.id).all()
    next_part = next_uncompleted_part(db, enrollment)
    return {
        'enrollment_id': enrollment.id,
        'status': enrollment.status,
        'progress_percent': enrollment.progress_percent,
        'enrolled_at': enrollment.enrolled_at,
        'started_at': enrollment.started_at,
        'completed_at': enrollment.completed_at,
        'expires_at': enrollment.expires_at,
        'certificate_id': enrollment.certificate_id,
        'next_part_id': next_part.id if next_part else None,
        'parts': {
            str(row.part_id): {
                'status': row.status,
                'watch_time': row.watch_time,
                'watch_percent': row.watch_percent,
                'last_position': row.last_position,
                'completed_at': row.completed_at,
            }
            for row in rows
        },
    }


# === Certificates ===

def issue_certificate(db: Session, enrollment: models.Enrollment, now: Optional[datetime] = None) -> models.Enrollment:
    """Assign a verification code to a completed enrollment; idempotent."""
    if enrollment.status != models.EnrollmentStatus.COMPLETED or enrollment.completed_at is None:
        raise ValidationError("Course not completed")
    if enrollment.certificate_id:
        return enrollment

    now = _as_utc(now) if now else _utcnow()
    code = generate_verification_code()
    while db.query(models.Enrollment.id).filter(models.Enrollment.certificate_id == code).first() is not None:
        code = generate_verification_code()
    enrollment.certificate_id = code
    enrollment.certificate_issued_at = now
    db.commit()
    logger.info(f"Issued certificate {code} for enrollment {enrollment.id}")

    _queue(
        db,
        enrollment,
        models.CourseTrigger.ON_CERTIFICATE_ISSUED,
        metadata={'certificateId': code, 'certificateUrl': urls.build_certificate_url(code)},
        now=now,
    )
    return enrollment


def verify_certificate(db: Session, code: str) -> Dict[str, Any]:
    enrollment = db.query(models.Enrollment).filter(
        models.Enrollment.certificate_id == (code or '').strip().upper(),
    ).first()
    if enrollment is None:
        raise NotFoundError("Certificate not found")
    return {
        'valid': True,
        'certificate_id': enrollment.certificate_id,
        'issued_at': enrollment.certificate_issued_at,
        'completed_at': enrollment.completed_at,
        'student_name': enrollment.user.display_name or enrollment.user.email,
        'course_title': enrollment.course.title,
        'course_slug': enrollment.course.slug,
    }
