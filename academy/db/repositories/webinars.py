"""
Webinar repository functions.

CRUD for webinars, schedule configuration, sessions, interactions and
per-webinar notification configs, plus registration lookups.
"""
from __future__ import annotations

import uuid
from typing import Optional
from sqlalchemy.orm import Session

from academy.db import schemas, models


def get_webinar(db: Session, webinar_id: uuid.UUID):
    return db.query(models.Webinar).filter(models.Webinar.id == webinar_id).first()


def get_webinar_by_slug(db: Session, slug: str):
    return db.query(models.Webinar).filter(models.Webinar.slug == slug).first()


def get_webinars(db: Session, status: Optional[str] = None, skip: int = 0, limit: int = 100):
    query = db.query(models.Webinar)
    if status:
        query = query.filter(models.Webinar.status == status)
    return query.order_by(models.Webinar.created_at.desc()).offset(skip).limit(limit).all()


def create_webinar(db: Session, webinar: schemas.WebinarCreate):
    db_webinar = models.Webinar(**webinar.model_dump())
    db.add(db_webinar)
    db.commit()
    db.refresh(db_webinar)
    return db_webinar


def update_webinar(db: Session, webinar_id: uuid.UUID, webinar: schemas.WebinarUpdate):
    db_webinar = get_webinar(db, webinar_id)
    if db_webinar:
        for key, value in webinar.model_dump(exclude_unset=True).items():
            setattr(db_webinar, key, value)
        db.commit()
        db.refresh(db_webinar)
    return db_webinar


def delete_webinar(db: Session, webinar_id: uuid.UUID) -> bool:
    db_webinar = get_webinar(db, webinar_id)
    if not db_webinar:
        return False
    db.delete(db_webinar)
    db.commit()
    return True


def get_schedule_config(db: Session, webinar_id: uuid.UUID):
    return (
        db.query(models.WebinarScheduleConfig)
        .filter(models.WebinarScheduleConfig.webinar_id == webinar_id)
        .first()
    )


def upsert_schedule_config(db: Session, webinar: models.Webinar, config: schemas.ScheduleConfigUpsert):
    db_config = get_schedule_config(db, webinar.id)
    data = config.model_dump()
    if db_config is None:
        db_config = models.WebinarScheduleConfig(webinar_id=webinar.id, **data)
        db.add(db_config)
    else:
        for key, value in data.items():
            setattr(db_config, key, value)
    db.commit()
    db.refresh(db_config)
    return db_config


def get_session(db: Session, session_id: uuid.UUID):
    return db.query(models.WebinarSession).filter(models.WebinarSession.id == session_id).first()


def get_registration(db: Session, registration_id: uuid.UUID):
    return (
        db.query(models.WebinarRegistration)
        .filter(models.WebinarRegistration.id == registration_id)
        .first()
    )


def get_registrations(db: Session, webinar_id: uuid.UUID, skip: int = 0, limit: int = 100):
    return (
        db.query(models.WebinarRegistration)
        .filter(models.WebinarRegistration.webinar_id == webinar_id)
        .order_by(models.WebinarRegistration.registered_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_interaction(db: Session, interaction_id: uuid.UUID):
    return (
        db.query(models.WebinarInteraction)
        .filter(models.WebinarInteraction.id == interaction_id)
        .first()
    )


def create_interaction(db: Session, webinar: models.Webinar, interaction: schemas.InteractionCreate):
    db_interaction = models.WebinarInteraction(webinar_id=webinar.id, **interaction.model_dump())
    db.add(db_interaction)
    db.commit()
    db.refresh(db_interaction)
    return db_interaction


def update_interaction(db: Session, interaction: models.WebinarInteraction, payload: schemas.InteractionUpdate):
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(interaction, key, value)
    db.commit()
    db.refresh(interaction)
    return interaction


def delete_interaction(db: Session, interaction: models.WebinarInteraction) -> None:
    db.delete(interaction)
    db.commit()


def get_webinar_notifications(db: Session, webinar_id: uuid.UUID, include_deleted: bool = False):
    query = db.query(models.WebinarNotification).filter(models.WebinarNotification.webinar_id == webinar_id)
    if not include_deleted:
        query = query.filter(models.WebinarNotification.deleted_at.is_(None))
    return query.order_by(models.WebinarNotification.sort_order, models.WebinarNotification.created_at).all()


def get_webinar_notification(db: Session, notification_id: uuid.UUID):
    return (
        db.query(models.WebinarNotification)
        .filter(models.WebinarNotification.id == notification_id)
        .first()
    )


def create_webinar_notification(db: Session, webinar: models.Webinar, notification: schemas.WebinarNotificationCreate):
    db_notification = models.WebinarNotification(webinar_id=webinar.id, **notification.model_dump())
    db.add(db_notification)
    db.commit()
    db.refresh(db_notification)
    return db_notification


def update_webinar_notification(db: Session, notification: models.WebinarNotification, payload: schemas.WebinarNotificationUpdate):
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(notification, key, value)
    db.commit()
    db.refresh(notification)
    return notification


def soft_delete_webinar_notification(db: Session, notification: models.WebinarNotification) -> None:
    notification.deleted_at = models.now_utc()
    notification.is_active = False
    db.commit()
