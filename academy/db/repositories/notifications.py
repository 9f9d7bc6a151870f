"""
Notification repository functions.

Email log persistence, queue listing and per-course notification configs.
"""
from __future__ import annotations

import uuid
from typing import Optional, List, Tuple
from sqlalchemy.orm import Session

from academy.db import schemas, models


def create_email_log(db: Session, email_log: schemas.EmailLogCreate, commit: bool = True):
    data = email_log.model_dump()
    metadata_payload = data.pop('metadata', None)
    db_log = models.EmailLog(**data, metadata_json=metadata_payload)
    if data.get('status') in (models.EmailStatus.SENT,):
        db_log.sent_at = models.now_utc()
    db.add(db_log)
    if commit:
        db.commit()
        db.refresh(db_log)
    else:
        db.flush()
    return db_log


def get_email_log_by_message_id(db: Session, message_id: str):
    if not message_id:
        return None
    return db.query(models.EmailLog).filter(models.EmailLog.message_id == message_id).first()


def get_email_logs(
    db: Session,
    status: Optional[str] = None,
    type: Optional[str] = None,
    to_email: Optional[str] = None,
    skip: int = 0,
    limit: int = 20,
) -> Tuple[List[models.EmailLog], int]:
    query = db.query(models.EmailLog)
    if status:
        query = query.filter(models.EmailLog.status == status)
    if type:
        query = query.filter(models.EmailLog.type == type)
    if to_email:
        query = query.filter(models.EmailLog.to_email == to_email.strip().lower())
    total = query.count()
    items = query.order_by(models.EmailLog.created_at.desc()).offset(skip).limit(limit).all()
    return items, total


def get_queue_items(db: Session, status: Optional[str] = None, kind: Optional[str] = None, skip: int = 0, limit: int = 100):
    query = db.query(models.NotificationQueue)
    if status:
        query = query.filter(models.NotificationQueue.status == status)
    if kind:
        query = query.filter(models.NotificationQueue.kind == kind)
    return query.order_by(models.NotificationQueue.scheduled_at.desc()).offset(skip).limit(limit).all()


def get_course_notifications(db: Session, course_id: uuid.UUID, include_deleted: bool = False):
    query = db.query(models.CourseNotification).filter(models.CourseNotification.course_id == course_id)
    if not include_deleted:
        query = query.filter(models.CourseNotification.deleted_at.is_(None))
    return query.order_by(models.CourseNotification.sort_order, models.CourseNotification.created_at).all()


def get_course_notification(db: Session, notification_id: uuid.UUID):
    return (
        db.query(models.CourseNotification)
        .filter(models.CourseNotification.id == notification_id)
        .first()
    )


def create_course_notification(db: Session, course: models.Course, notification: schemas.CourseNotificationCreate):
    db_notification = models.CourseNotification(course_id=course.id, **notification.model_dump())
    db.add(db_notification)
    db.commit()
    db.refresh(db_notification)
    return db_notification


def update_course_notification(db: Session, notification: models.CourseNotification, payload: schemas.CourseNotificationUpdate):
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(notification, key, value)
    db.commit()
    db.refresh(notification)
    return notification


def soft_delete_course_notification(db: Session, notification: models.CourseNotification) -> None:
    notification.deleted_at = models.now_utc()
    notification.is_active = False
    db.commit()
