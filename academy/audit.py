"""
Audit logging helpers and enums.

Centralized helpers to persist normalized audit records with consistent
schema; includes convenience wrappers per target type.
"""
from __future__ import annotations
import uuid
from enum import Enum
from typing import Any, Optional, Dict
from sqlalchemy.orm import Session

from academy.db import schemas
from academy.db.repositories import audits as audits_repo


class AuditAction(str, Enum):
    # Courses
    COURSE_CREATE = "course_create"
    COURSE_UPDATE = "course_update"
    COURSE_DELETE = "course_delete"
    QUIZ_CREATE = "quiz_create"
    QUIZ_DELETE = "quiz_delete"
    ENROLLMENT_UPDATE = "enrollment_update"
    # Webinars
    WEBINAR_CREATE = "webinar_create"
    WEBINAR_UPDATE = "webinar_update"
    WEBINAR_DELETE = "webinar_delete"
    WEBINAR_SCHEDULE_UPDATE = "webinar_schedule_update"
    WEBINAR_CHAT_IMPORT = "webinar_chat_import"
    # Notification configs
    NOTIFICATION_CONFIG_CREATE = "notification_config_create"
    NOTIFICATION_CONFIG_UPDATE = "notification_config_update"
    NOTIFICATION_CONFIG_DELETE = "notification_config_delete"
    NOTIFICATION_DEFAULTS_CREATE = "notification_defaults_create"
    # Contacts
    CONTACT_CREATE = "contact_create"
    CONTACT_UPDATE = "contact_update"
    CONTACT_DELETE = "contact_delete"
    CONTACT_IMPORT = "contact_import"
    CONTACT_MERGE = "contact_merge"
    CONTACT_RESUBSCRIBE = "contact_resubscribe"
    SUPPRESSION_SYNC = "suppression_sync"
    # Campaigns
    CAMPAIGN_CREATE = "campaign_create"
    CAMPAIGN_UPDATE = "campaign_update"
    CAMPAIGN_DELETE = "campaign_delete"
    CAMPAIGN_SEND = "campaign_send"
    # SMS
    SMS_SEND = "sms_send"
    SMS_QUEUE = "sms_queue"
    # Testimonials
    TESTIMONIAL_REVIEW = "testimonial_review"
    TESTIMONIAL_DELETE = "testimonial_delete"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


def log(
    db: Session,
    *,
    action: AuditAction | str,
    status: AuditStatus | str = AuditStatus.SUCCESS,
    target_type: str,
    target_id: Optional[uuid.UUID] = None,
    actor_user_id: Optional[uuid.UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> schemas.AuditLog:
    """Central audit logging helper.

    ``actor_user_id`` is None for system actors such as cron jobs.
    """
    # Persist pure string values, not Enum reprs (avoid 'AuditAction.XYZ')
    action_value = action.value if isinstance(action, AuditAction) else str(action)
    status_value = status.value if isinstance(status, AuditStatus) else str(status)
    audit_log = schemas.AuditLogCreate(
        action_type=action_value,
        status=status_value,
        target_type=target_type,
        target_id=target_id,
        metadata=metadata or {},
    )
    return audits_repo.create_audit_log(
        db,
        audit_log=audit_log,
        actor_user_id=actor_user_id,
    )


__all__ = ["AuditAction", "AuditStatus", "log"]


def log_course(db: Session, *, actor_user_id: Optional[uuid.UUID], course_id: uuid.UUID, action: AuditAction, title: Optional[str] = None, status: AuditStatus | str = AuditStatus.SUCCESS):
    return log(
        db,
        action=action,
        status=status,
        target_type="course",
        target_id=course_id,
        actor_user_id=actor_user_id,
        metadata={"title": title} if title else None,
    )


def log_webinar(db: Session, *, actor_user_id: Optional[uuid.UUID], webinar_id: uuid.UUID, action: AuditAction, status: AuditStatus | str = AuditStatus.SUCCESS, metadata: Optional[Dict[str, Any]] = None):
    return log(
        db,
        action=action,
        status=status,
        target_type="webinar",
        target_id=webinar_id,
        actor_user_id=actor_user_id,
        metadata=metadata,
    )


def log_contact(db: Session, *, actor_user_id: Optional[uuid.UUID], contact_id: Optional[uuid.UUID], action: AuditAction, status: AuditStatus | str = AuditStatus.SUCCESS, metadata: Optional[Dict[str, Any]] = None):
    return log(
        db,
        action=action,
        status=status,
        target_type="contact",
        target_id=contact_id,
        actor_user_id=actor_user_id,
        metadata=metadata,
    )


def log_campaign(db: Session, *, actor_user_id: Optional[uuid.UUID], campaign_id: uuid.UUID, action: AuditAction, status: AuditStatus | str = AuditStatus.SUCCESS, metadata: Optional[Dict[str, Any]] = None):
    return log(
        db,
        action=action,
        status=status,
        target_type="campaign",
        target_id=campaign_id,
        actor_user_id=actor_user_id,
        metadata=metadata,
    )


__all__.extend(["log_course", "log_webinar", "log_contact", "log_campaign"])
