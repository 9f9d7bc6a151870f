"""
Course API endpoints.

Public catalog, enrollment, progress and quizzes under ``/courses``; the
admin course builder under ``/admin/courses``; certificate verification.
"""
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from academy import audit
from academy.api.deps import get_current_user, require_admin, get_course_or_404
from academy.db import models, schemas
from academy.db.database import get_db
from academy.db.repositories import courses as courses_repo
from academy.db.repositories import notifications as notifications_repo
from academy.errors import AcademyError, to_http
from academy.services import course_notifications, dashboard_service, progress_service, quiz_service
from academy.services.notification_templates import format_trigger_description

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses", tags=["courses"])
admin_router = APIRouter(prefix="/admin/courses", tags=["admin-courses"])
certificates_router = APIRouter(prefix="/certificates", tags=["certificates"])


def _published_course(db: Session, slug: str) -> models.Course:
    course = courses_repo.get_course_by_slug(db, slug)
    if course is None or course.status != models.CourseStatus.PUBLISHED:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


def _course_part(db: Session, course: models.Course, part_id: uuid.UUID) -> models.LessonPart:
    part = courses_repo.get_part_in_course(db, course, part_id)
    if part is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Part not found")
    return part


def _course_quiz(db: Session, course: models.Course, quiz_id: uuid.UUID) -> models.Quiz:
    quiz = courses_repo.get_quiz(db, quiz_id)
    if quiz is None or quiz.course_id != course.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz not found")
    return quiz


# === Public catalog ===

@router.get("/", response_model=List[schemas.Course])
def list_courses(db: Session = Depends(get_db)):
    return courses_repo.get_courses(db, status=models.CourseStatus.PUBLISHED)


@router.get("/{slug}", response_model=schemas.CourseStructure)
def get_course(slug: str, db: Session = Depends(get_db)):
    return _published_course(db, slug)


# === Enrollment & progress ===

@router.post("/{slug}/enroll", response_model=schemas.Enrollment)
def enroll(slug: str, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    course = _published_course(db, slug)
    try:
        return progress_service.enroll(db, user, course)
    except AcademyError as e:
        raise to_http(e)


@router.get("/{slug}/progress")
def get_progress(slug: str, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    course = _published_course(db, slug)
    try:
        enrollment = progress_service.get_active_enrollment(db, user, course)
    except AcademyError as e:
        raise to_http(e)
    return progress_service.progress_summary(db, enrollment)


@router.post("/{slug}/parts/{part_id}/video-progress")
def update_video_progress(
    slug: str,
    part_id: uuid.UUID,
    payload: schemas.VideoProgressUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    course = _published_course(db, slug)
    part = _course_part(db, course, part_id)
    try:
        enrollment = progress_service.get_active_enrollment(db, user, course)
        progress_service.ensure_part_available(enrollment, part)
        return progress_service.update_video_progress(
            db, enrollment, part,
            watch_time=payload.watch_time,
            video_duration=payload.video_duration,
            last_position=payload.last_position,
        )
    except AcademyError as e:
        raise to_http(e)


@router.post("/{slug}/parts/{part_id}/complete")
def complete_part(
    slug: str,
    part_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    course = _published_course(db, slug)
    part = _course_part(db, course, part_id)
    try:
        enrollment = progress_service.get_active_enrollment(db, user, course)
        progress_service.ensure_part_available(enrollment, part)
        return progress_service.mark_part_complete(db, enrollment, part, models.CompletedBy.MANUAL)
    except AcademyError as e:
        raise to_http(e)


@router.get("/{slug}/next")
def next_part(slug: str, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    course = _published_course(db, slug)
    try:
        enrollment = progress_service.get_active_enrollment(db, user, course)
    except AcademyError as e:
        raise to_http(e)
    part = progress_service.next_uncompleted_part(db, enrollment)
    if part is None:
        return {"completed": True, "part": None}
    return {
        "completed": False,
        "part": schemas.LessonPart.model_validate(part),
        "lesson_id": part.lesson_id,
        "available": progress_service.is_content_available(
            enrollment.enrolled_at, part.lesson.available_after_days, course.drip_enabled,
        ),
    }


# === Quizzes ===

@router.post("/{slug}/quizzes/{quiz_id}/attempts", response_model=schemas.QuizAttemptStarted)
def start_quiz_attempt(
    slug: str,
    quiz_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    course = _published_course(db, slug)
    quiz = _course_quiz(db, course, quiz_id)
    try:
        enrollment = progress_service.get_active_enrollment(db, user, course)
        attempt = quiz_service.start_attempt(db, quiz, user, enrollment)
    except AcademyError as e:
        raise to_http(e)
    return {"attempt_id": attempt.id, "quiz": quiz, "questions": quiz.questions}


@router.post("/{slug}/quizzes/{quiz_id}/attempts/{attempt_id}/submit")
def submit_quiz_attempt(
    slug: str,
    quiz_id: uuid.UUID,
    attempt_id: uuid.UUID,
    payload: schemas.QuizSubmission,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    course = _published_course(db, slug)
    quiz = _course_quiz(db, course, quiz_id)
    try:
        enrollment = progress_service.get_active_enrollment(db, user, course)
        return quiz_service.submit_attempt(db, quiz, attempt_id, user, payload.answers, enrollment)
    except AcademyError as e:
        raise to_http(e)


# === Certificates ===

@certificates_router.get("/{code}")
def verify_certificate(code: str, db: Session = Depends(get_db)):
    try:
        return progress_service.verify_certificate(db, code)
    except AcademyError as e:
        raise to_http(e)


# === Admin: courses ===

@admin_router.get("/", response_model=List[schemas.Course])
def admin_list_courses(
    status_filter: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return courses_repo.get_courses(db, status=status_filter, skip=skip, limit=limit)


@admin_router.post("/", response_model=schemas.CourseStructure, status_code=status.HTTP_201_CREATED)
def admin_create_course(payload: schemas.CourseCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    try:
        course = courses_repo.create_course(db, payload)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A course with this slug already exists")
    audit.log_course(db, actor_user_id=admin.id, course_id=course.id, action=audit.AuditAction.COURSE_CREATE, title=course.title)
    return course


@admin_router.get("/{course_id}", response_model=schemas.CourseStructure)
def admin_get_course(course: models.Course = Depends(get_course_or_404), admin: models.User = Depends(require_admin)):
    return course


@admin_router.put("/{course_id}", response_model=schemas.CourseStructure)
def admin_update_course(
    course_id: uuid.UUID,
    payload: schemas.CourseUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        course = courses_repo.update_course(db, course_id, payload)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A course with this slug already exists")
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    audit.log_course(db, actor_user_id=admin.id, course_id=course.id, action=audit.AuditAction.COURSE_UPDATE, title=course.title)
    return course


@admin_router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_course(course_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if not courses_repo.delete_course(db, course_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    audit.log_course(db, actor_user_id=admin.id, course_id=course_id, action=audit.AuditAction.COURSE_DELETE)


@admin_router.get("/{course_id}/analytics")
def admin_course_analytics(
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return dashboard_service.course_analytics(db, course)


# === Admin: structure ===

@admin_router.post("/{course_id}/modules", response_model=schemas.CourseModule, status_code=status.HTTP_201_CREATED)
def admin_create_module(
    payload: schemas.CourseModuleCreate,
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return courses_repo.create_module(db, course, payload)


@admin_router.put("/modules/{module_id}", response_model=schemas.CourseModule)
def admin_update_module(
    module_id: uuid.UUID,
    payload: schemas.CourseModuleUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    module = courses_repo.update_module(db, module_id, payload)
    if module is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Module not found")
    return module


@admin_router.delete("/modules/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_module(module_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if not courses_repo.delete_module(db, module_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Module not found")


@admin_router.post("/{course_id}/lessons", response_model=schemas.Lesson, status_code=status.HTTP_201_CREATED)
def admin_create_lesson(
    payload: schemas.LessonCreate,
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    if payload.module_id is not None:
        module = courses_repo.get_module(db, payload.module_id)
        if module is None or module.course_id != course.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Module does not belong to this course")
    return courses_repo.create_lesson(db, course, payload)


@admin_router.put("/lessons/{lesson_id}", response_model=schemas.Lesson)
def admin_update_lesson(
    lesson_id: uuid.UUID,
    payload: schemas.LessonUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    lesson = courses_repo.update_lesson(db, lesson_id, payload)
    if lesson is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lesson not found")
    return lesson


@admin_router.delete("/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_lesson(lesson_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if not courses_repo.delete_lesson(db, lesson_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lesson not found")


@admin_router.post("/lessons/{lesson_id}/parts", response_model=schemas.LessonPart, status_code=status.HTTP_201_CREATED)
def admin_create_part(
    lesson_id: uuid.UUID,
    payload: schemas.LessonPartCreate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    lesson = courses_repo.get_lesson(db, lesson_id)
    if lesson is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lesson not found")
    return courses_repo.create_part(db, lesson, payload)


@admin_router.put("/parts/{part_id}", response_model=schemas.LessonPart)
def admin_update_part(
    part_id: uuid.UUID,
    payload: schemas.LessonPartUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    part = courses_repo.update_part(db, part_id, payload)
    if part is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Part not found")
    return part


@admin_router.delete("/parts/{part_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_part(part_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if not courses_repo.delete_part(db, part_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Part not found")


@admin_router.post("/enrollments/{enrollment_id}/parts/{part_id}/complete")
def admin_complete_part(
    enrollment_id: uuid.UUID,
    part_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    enrollment = courses_repo.get_enrollment_by_id(db, enrollment_id)
    if enrollment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Enrollment not found")
    part = _course_part(db, enrollment.course, part_id)
    result = progress_service.mark_part_complete(db, enrollment, part, models.CompletedBy.ADMIN)
    audit.log(
        db,
        action=audit.AuditAction.ENROLLMENT_UPDATE,
        target_type="enrollment",
        target_id=enrollment.id,
        actor_user_id=admin.id,
        metadata={"part_id": str(part.id), "completed_by": models.CompletedBy.ADMIN},
    )
    return result


# === Admin: quizzes ===

@admin_router.post("/{course_id}/quizzes", response_model=schemas.Quiz, status_code=status.HTTP_201_CREATED)
def admin_create_quiz(
    payload: schemas.QuizCreate,
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    if payload.part_id is not None:
        _course_part(db, course, payload.part_id)
    quiz = courses_repo.create_quiz(db, course, payload)
    audit.log_course(db, actor_user_id=admin.id, course_id=course.id, action=audit.AuditAction.QUIZ_CREATE, title=quiz.title)
    return quiz


@admin_router.delete("/quizzes/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_quiz(quiz_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    quiz = courses_repo.get_quiz(db, quiz_id)
    if quiz is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quiz not found")
    course_id = quiz.course_id
    courses_repo.delete_quiz(db, quiz_id)
    audit.log_course(db, actor_user_id=admin.id, course_id=course_id, action=audit.AuditAction.QUIZ_DELETE)


# === Admin: course notifications ===

def _notification_out(notification: models.CourseNotification) -> schemas.CourseNotification:
    out = schemas.CourseNotification.model_validate(notification)
    out.trigger_description = format_trigger_description(notification.trigger_type, notification.trigger_minutes)
    return out


def _course_notification(db: Session, course: models.Course, notification_id: uuid.UUID) -> models.CourseNotification:
    notification = notifications_repo.get_course_notification(db, notification_id)
    if notification is None or notification.course_id != course.id or notification.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


@admin_router.get("/{course_id}/notifications", response_model=List[schemas.CourseNotification])
def admin_list_course_notifications(
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return [_notification_out(n) for n in notifications_repo.get_course_notifications(db, course.id)]


@admin_router.post("/{course_id}/notifications", response_model=schemas.CourseNotification, status_code=status.HTTP_201_CREATED)
def admin_create_course_notification(
    payload: schemas.CourseNotificationCreate,
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    if payload.trigger_type not in models.CourseTrigger.ALL:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid trigger type")
    notification = notifications_repo.create_course_notification(db, course, payload)
    audit.log_course(db, actor_user_id=admin.id, course_id=course.id, action=audit.AuditAction.NOTIFICATION_CONFIG_CREATE)
    return _notification_out(notification)


@admin_router.post("/{course_id}/notifications/defaults", response_model=List[schemas.CourseNotification])
def admin_create_default_course_notifications(
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    created = course_notifications.create_default_course_notifications(db, course)
    audit.log_course(db, actor_user_id=admin.id, course_id=course.id, action=audit.AuditAction.NOTIFICATION_DEFAULTS_CREATE)
    return [_notification_out(n) for n in created]


@admin_router.put("/{course_id}/notifications/{notification_id}", response_model=schemas.CourseNotification)
def admin_update_course_notification(
    notification_id: uuid.UUID,
    payload: schemas.CourseNotificationUpdate,
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    notification = _course_notification(db, course, notification_id)
    if payload.trigger_type is not None and payload.trigger_type not in models.CourseTrigger.ALL:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid trigger type")
    notification = notifications_repo.update_course_notification(db, notification, payload)
    audit.log_course(db, actor_user_id=admin.id, course_id=course.id, action=audit.AuditAction.NOTIFICATION_CONFIG_UPDATE)
    return _notification_out(notification)


@admin_router.delete("/{course_id}/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_course_notification(
    notification_id: uuid.UUID,
    course: models.Course = Depends(get_course_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    notification = _course_notification(db, course, notification_id)
    notifications_repo.soft_delete_course_notification(db, notification)
    audit.log_course(db, actor_user_id=admin.id, course_id=course.id, action=audit.AuditAction.NOTIFICATION_CONFIG_DELETE)
