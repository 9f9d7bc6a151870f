"""
Webinar API endpoints.

Public registration, access and the in-room features (progress, chat,
interactions) under ``/webinars``; the admin builder under ``/admin/webinars``.
Attendees authenticate with the access token issued at registration.
"""
import logging
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from academy import audit
from academy.api.deps import require_admin, get_webinar_or_404
from academy.db import models, schemas
from academy.db.database import get_db
from academy.db.repositories import webinars as webinars_repo
from academy.errors import AcademyError, to_http
from academy.services import (
    access_state,
    chat_service,
    dashboard_service,
    engagement_service,
    interaction_service,
    registration_service,
    session_generator,
    webinar_notifications,
)
from academy.services.notification_templates import format_trigger_description
from academy.utils import urls

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webinars", tags=["webinars"])
admin_router = APIRouter(prefix="/admin/webinars", tags=["admin-webinars"])


class ChatVisibility(BaseModel):
    hidden: bool


def _published_webinar(db: Session, slug: str) -> models.Webinar:
    webinar = webinars_repo.get_webinar_by_slug(db, slug)
    if webinar is None or webinar.status != models.WebinarStatus.PUBLISHED:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webinar not found")
    return webinar


def _registration(db: Session, webinar: models.Webinar, token: Optional[str]) -> models.WebinarRegistration:
    try:
        return registration_service.get_registration_or_404(db, webinar, token)
    except AcademyError as e:
        raise to_http(e)


def _session_out(session: models.WebinarSession, locale: str, now: datetime) -> dict:
    out = schemas.WebinarSession.model_validate(session).model_dump()
    out["relative_time"] = session_generator.relative_time(session.scheduled_at, locale=locale, now=now)
    return out


# === Public ===

@router.get("/{slug}", response_model=schemas.Webinar)
def get_webinar(slug: str, db: Session = Depends(get_db)):
    return _published_webinar(db, slug)


@router.get("/{slug}/sessions")
def list_available_sessions(slug: str, locale: str = "en", db: Session = Depends(get_db)):
    webinar = _published_webinar(db, slug)
    now = datetime.now(timezone.utc)
    available = session_generator.available_sessions_for_registration(db, webinar, now=now)
    available["sessions"] = [_session_out(s, locale, now) for s in available["sessions"]]
    return available


@router.post("/{slug}/register", status_code=status.HTTP_201_CREATED)
def register(slug: str, payload: schemas.RegistrationCreate, db: Session = Depends(get_db)):
    webinar = webinars_repo.get_webinar_by_slug(db, slug)
    utm = {
        key: getattr(payload, key)
        for key in ("utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term")
    }
    try:
        registration = registration_service.register(
            db,
            webinar,
            payload.email,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            session_id=payload.session_id,
            session_type=payload.session_type,
            timezone_name=payload.timezone,
            source=payload.source,
            utm=utm,
        )
    except AcademyError as e:
        raise to_http(e)
    return {
        "registration_id": registration.id,
        "access_token": registration.access_token,
        "session_type": registration.session_type,
        "watch_url": urls.build_watch_url(webinar.slug, registration.access_token),
    }


@router.get("/{slug}/access")
def check_access(slug: str, token: Optional[str] = None, db: Session = Depends(get_db)):
    """Evaluate the viewer's access state; ended sessions fall back to the replay when enabled."""
    webinar = _published_webinar(db, slug)
    registration = _registration(db, webinar, token)
    config = webinar.schedule_config
    state = access_state.determine_access_state(webinar, config, registration, registration.session)

    converted = False
    if state.status == access_state.ENDED and state.replay_available:
        registration = registration_service.convert_to_replay(db, registration)
        state = access_state.determine_access_state(webinar, config, registration, registration.session)
        converted = True

    if not state.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=state.to_dict())

    registration_service.mark_as_attended(db, registration)
    return {
        "access": state.to_dict(),
        "converted_to_replay": converted,
        "webinar": schemas.Webinar.model_validate(webinar),
        "registration": schemas.Registration.model_validate(registration),
        "session": schemas.WebinarSession.model_validate(registration.session) if registration.session else None,
        "interactions": [schemas.Interaction.model_validate(i) for i in interaction_service.timeline(webinar)],
        "chat_enabled": chat_service.chat_available(webinar),
    }


@router.post("/{slug}/progress", response_model=schemas.Registration)
def update_progress(slug: str, payload: schemas.WatchProgressUpdate, db: Session = Depends(get_db)):
    webinar = _published_webinar(db, slug)
    registration = _registration(db, webinar, payload.token)
    return registration_service.update_watch_progress(db, registration, payload.progress, payload.position)


@router.get("/{slug}/chat", response_model=List[schemas.ChatMessage])
def list_chat_messages(
    slug: str,
    token: Optional[str] = None,
    since: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    webinar = _published_webinar(db, slug)
    _registration(db, webinar, token)
    return chat_service.recent_messages(db, webinar, since)


@router.post("/{slug}/chat", response_model=schemas.ChatMessage, status_code=status.HTTP_201_CREATED)
def post_chat_message(slug: str, payload: schemas.ChatMessageCreate, db: Session = Depends(get_db)):
    webinar = _published_webinar(db, slug)
    registration = _registration(db, webinar, payload.token)
    try:
        return chat_service.post_message(db, registration, payload.message)
    except AcademyError as e:
        raise to_http(e)


@router.get("/{slug}/chat/simulated", response_model=List[schemas.ChatMessage])
def list_simulated_chat(
    slug: str,
    token: Optional[str] = None,
    position: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    webinar = _published_webinar(db, slug)
    _registration(db, webinar, token)
    if not chat_service.chat_available(webinar):
        return []
    return chat_service.simulated_messages_until(db, webinar, position)


@router.post("/{slug}/interactions")
def respond_to_interaction(slug: str, payload: schemas.InteractionResponse, db: Session = Depends(get_db)):
    webinar = _published_webinar(db, slug)
    registration = _registration(db, webinar, payload.token)
    try:
        interaction = interaction_service.get_interaction(db, webinar, payload.interaction_id)
        return interaction_service.respond(
            db, registration, interaction, payload.model_dump(exclude={"token", "interaction_id"}),
        )
    except AcademyError as e:
        raise to_http(e)


@router.get("/{slug}/interactions/{interaction_id}/results")
def interaction_results(
    slug: str,
    interaction_id: uuid.UUID,
    token: Optional[str] = None,
    db: Session = Depends(get_db),
):
    webinar = _published_webinar(db, slug)
    registration = _registration(db, webinar, token)
    try:
        interaction = interaction_service.get_interaction(db, webinar, interaction_id)
    except AcademyError as e:
        raise to_http(e)
    results = interaction_service.poll_results(db, interaction, registration)
    if results is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Interaction has no results")
    return results


# === Admin: webinars ===

@admin_router.get("/", response_model=List[schemas.Webinar])
def admin_list_webinars(
    status_filter: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return webinars_repo.get_webinars(db, status=status_filter, skip=skip, limit=limit)


@admin_router.post("/", response_model=schemas.Webinar, status_code=status.HTTP_201_CREATED)
def admin_create_webinar(payload: schemas.WebinarCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    try:
        webinar = webinars_repo.create_webinar(db, payload)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A webinar with this slug already exists")
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar.id, action=audit.AuditAction.WEBINAR_CREATE,
                      metadata={"title": webinar.title})
    return webinar


@admin_router.get("/{webinar_id}", response_model=schemas.Webinar)
def admin_get_webinar(webinar: models.Webinar = Depends(get_webinar_or_404), admin: models.User = Depends(require_admin)):
    return webinar


@admin_router.put("/{webinar_id}", response_model=schemas.Webinar)
def admin_update_webinar(
    webinar_id: uuid.UUID,
    payload: schemas.WebinarUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        webinar = webinars_repo.update_webinar(db, webinar_id, payload)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A webinar with this slug already exists")
    if webinar is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webinar not found")
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar.id, action=audit.AuditAction.WEBINAR_UPDATE,
                      metadata={"fields": sorted(payload.model_dump(exclude_unset=True).keys())})
    return webinar


@admin_router.delete("/{webinar_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_webinar(webinar_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if not webinars_repo.delete_webinar(db, webinar_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webinar not found")
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar_id, action=audit.AuditAction.WEBINAR_DELETE)


@admin_router.get("/{webinar_id}/analytics")
def admin_webinar_analytics(
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return dashboard_service.webinar_analytics(db, webinar)


@admin_router.post("/{webinar_id}/engagement/recalculate")
def admin_recalculate_engagement(
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return engagement_service.update_all_engagement_scores(db, webinar)


@admin_router.get("/{webinar_id}/registrations", response_model=List[schemas.Registration])
def admin_list_registrations(
    webinar_id: uuid.UUID,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return webinars_repo.get_registrations(db, webinar_id, skip=skip, limit=limit)


# === Admin: schedule ===

@admin_router.get("/{webinar_id}/schedule", response_model=Optional[schemas.ScheduleConfig])
def admin_get_schedule(
    webinar_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return webinars_repo.get_schedule_config(db, webinar_id)


@admin_router.put("/{webinar_id}/schedule", response_model=schemas.ScheduleConfig)
def admin_upsert_schedule(
    payload: schemas.ScheduleConfigUpsert,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    if payload.interval_start_hour >= payload.interval_end_hour:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="interval_start_hour must be before interval_end_hour")
    config = webinars_repo.upsert_schedule_config(db, webinar, payload)
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar.id, action=audit.AuditAction.WEBINAR_SCHEDULE_UPDATE,
                      metadata={"event_type": config.event_type})
    return config


@admin_router.post("/{webinar_id}/sessions/generate")
def admin_generate_sessions(
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    config = webinar.schedule_config
    if config is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webinar has no schedule config")
    if config.just_in_time_enabled and config.interval_minutes:
        created = session_generator.generate_interval_sessions(db, webinar)
        return {"created": created}
    sessions = session_generator.get_or_create_sessions(
        db,
        webinar,
        max_sessions=config.max_sessions_to_show,
        include_just_in_time=config.just_in_time_enabled,
    )
    return {"sessions": [schemas.WebinarSession.model_validate(s) for s in sessions]}


# === Admin: interactions ===

@admin_router.get("/{webinar_id}/interactions", response_model=List[schemas.Interaction])
def admin_list_interactions(
    webinar: models.Webinar = Depends(get_webinar_or_404),
    admin: models.User = Depends(require_admin),
):
    return sorted(webinar.interactions, key=lambda i: (i.triggers_at, i.sort_order))


@admin_router.post("/{webinar_id}/interactions", response_model=schemas.Interaction, status_code=status.HTTP_201_CREATED)
def admin_create_interaction(
    payload: schemas.InteractionCreate,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    if payload.type not in models.InteractionType.ALL:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid interaction type")
    try:
        interaction_service.ensure_valid_timeline(webinar, [payload])
    except AcademyError as e:
        raise to_http(e)
    return webinars_repo.create_interaction(db, webinar, payload)


@admin_router.put("/{webinar_id}/interactions/{interaction_id}", response_model=schemas.Interaction)
def admin_update_interaction(
    interaction_id: uuid.UUID,
    payload: schemas.InteractionUpdate,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    if payload.type is not None and payload.type not in models.InteractionType.ALL:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid interaction type")
    try:
        interaction = interaction_service.get_interaction(db, webinar, interaction_id)
        changes = payload.model_dump(exclude_unset=True)
        merged = SimpleNamespace(
            title=changes.get("title", interaction.title),
            type=changes.get("type", interaction.type),
            triggers_at=changes.get("triggers_at", interaction.triggers_at),
        )
        interaction_service.ensure_valid_timeline(webinar, [merged])
    except AcademyError as e:
        raise to_http(e)
    return webinars_repo.update_interaction(db, interaction, payload)


@admin_router.delete("/{webinar_id}/interactions/{interaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_interaction(
    interaction_id: uuid.UUID,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        interaction = interaction_service.get_interaction(db, webinar, interaction_id)
    except AcademyError as e:
        raise to_http(e)
    webinars_repo.delete_interaction(db, interaction)


@admin_router.get("/{webinar_id}/interactions/validate")
def admin_validate_timeline(
    webinar: models.Webinar = Depends(get_webinar_or_404),
    admin: models.User = Depends(require_admin),
):
    errors = interaction_service.validate_timeline(webinar, webinar.interactions)
    return {"valid": not errors, "errors": errors}


# === Admin: chat ===

@admin_router.post("/{webinar_id}/chat/import")
def admin_import_chat(
    payload: schemas.SimulatedChatImport,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        imported = chat_service.import_simulated_chat_csv(db, webinar, payload.csv, payload.replace_existing)
    except AcademyError as e:
        raise to_http(e)
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar.id, action=audit.AuditAction.WEBINAR_CHAT_IMPORT,
                      metadata={"imported": imported, "replace_existing": payload.replace_existing})
    return {"imported": imported}


@admin_router.get("/{webinar_id}/chat/preview")
def admin_preview_chat(
    session_id: Optional[uuid.UUID] = None,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    session_start = datetime.now(timezone.utc)
    if session_id is not None:
        session = webinars_repo.get_session(db, session_id)
        if session is None or session.webinar_id != webinar.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        session_start = session.scheduled_at
    messages = chat_service.simulated_messages_until(db, webinar, webinar.video_duration_seconds)
    return chat_service.preview_schedule(messages, session_start)


@admin_router.patch("/{webinar_id}/chat/{message_id}", response_model=schemas.ChatMessage)
def admin_set_chat_visibility(
    message_id: uuid.UUID,
    payload: ChatVisibility,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        return chat_service.set_hidden(db, webinar, message_id, payload.hidden)
    except AcademyError as e:
        raise to_http(e)


# === Admin: notifications ===

def _notification_out(notification: models.WebinarNotification) -> schemas.WebinarNotification:
    out = schemas.WebinarNotification.model_validate(notification)
    out.trigger_description = format_trigger_description(notification.trigger_type, notification.trigger_minutes)
    return out


def _webinar_notification(db: Session, webinar: models.Webinar, notification_id: uuid.UUID) -> models.WebinarNotification:
    notification = webinars_repo.get_webinar_notification(db, notification_id)
    if notification is None or notification.webinar_id != webinar.id or notification.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


def _check_notification_fields(trigger_type: Optional[str], channel: Optional[str]) -> None:
    if trigger_type is not None and trigger_type not in models.WebinarTrigger.ALL:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid trigger type")
    if channel is not None and channel not in models.Channel.ALL:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid channel")


@admin_router.get("/{webinar_id}/notifications", response_model=List[schemas.WebinarNotification])
def admin_list_notifications(
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return [_notification_out(n) for n in webinars_repo.get_webinar_notifications(db, webinar.id)]


@admin_router.post("/{webinar_id}/notifications", response_model=schemas.WebinarNotification, status_code=status.HTTP_201_CREATED)
def admin_create_notification(
    payload: schemas.WebinarNotificationCreate,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    _check_notification_fields(payload.trigger_type, payload.channel)
    notification = webinars_repo.create_webinar_notification(db, webinar, payload)
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar.id, action=audit.AuditAction.NOTIFICATION_CONFIG_CREATE,
                      metadata={"notification_id": str(notification.id), "trigger_type": notification.trigger_type})
    return _notification_out(notification)


@admin_router.post("/{webinar_id}/notifications/defaults", response_model=List[schemas.WebinarNotification])
def admin_create_default_notifications(
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    created = webinar_notifications.create_default_notifications(db, webinar)
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar.id, action=audit.AuditAction.NOTIFICATION_DEFAULTS_CREATE,
                      metadata={"created": len(created)})
    return [_notification_out(n) for n in created]


@admin_router.put("/{webinar_id}/notifications/{notification_id}", response_model=schemas.WebinarNotification)
def admin_update_notification(
    notification_id: uuid.UUID,
    payload: schemas.WebinarNotificationUpdate,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    notification = _webinar_notification(db, webinar, notification_id)
    _check_notification_fields(payload.trigger_type, payload.channel)
    notification = webinars_repo.update_webinar_notification(db, notification, payload)
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar.id, action=audit.AuditAction.NOTIFICATION_CONFIG_UPDATE,
                      metadata={"notification_id": str(notification.id)})
    return _notification_out(notification)


@admin_router.delete("/{webinar_id}/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def admin_delete_notification(
    notification_id: uuid.UUID,
    webinar: models.Webinar = Depends(get_webinar_or_404),
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    notification = _webinar_notification(db, webinar, notification_id)
    webinars_repo.soft_delete_webinar_notification(db, notification)
    audit.log_webinar(db, actor_user_id=admin.id, webinar_id=webinar.id, action=audit.AuditAction.NOTIFICATION_CONFIG_DELETE,
                      metadata={"notification_id": str(notification_id)})
