"""
Webinar chat: live attendee messages and scripted (simulated) playback.

Simulated messages carry ``appears_at`` (seconds from video start) and are
revealed as the viewer's playback position passes them.
"""

import csv
import io
import logging
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from academy.db import models
from academy.errors import NotFoundError, PermissionDeniedError, ValidationError
from academy.services.registration_service import record_analytics_event
from academy.utils.feature_flags import webinar_chat_enabled

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 500
RECENT_MESSAGES_LIMIT = 100

REQUIRED_COLUMNS = ('time', 'sendername', 'message')


def parse_time_offset(value: str) -> int:
    """Seconds from a plain number or ``MM:SS`` / ``HH:MM:SS``."""
    value = (value or '').strip()
    if not value:
        raise ValueError('empty time')
    parts = value.split(':')
    if len(parts) > 3:
        raise ValueError(f'invalid time {value!r}')
    seconds = 0
    for part in parts:
        number = int(part)
        if number < 0:
            raise ValueError(f'invalid time {value!r}')
        seconds = seconds * 60 + number
    return seconds


def parse_simulated_chat_csv(csv_text: str) -> List[Dict[str, Any]]:
    rows = [row for row in csv.reader(io.StringIO((csv_text or '').strip())) if any(c.strip() for c in row)]
    if len(rows) < 2:
        raise ValidationError("CSV must have at least a header row and one data row")

    header = [h.strip().lower() for h in rows[0]]
    if any(column not in header for column in REQUIRED_COLUMNS):
        raise ValidationError("CSV must have columns: time, senderName, message (optional: isFromModerator)")
    time_index = header.index('time')
    sender_index = header.index('sendername')
    message_index = header.index('message')
    moderator_index = header.index('isfrommoderator') if 'isfrommoderator' in header else None

    messages = []
    for row_number, row in enumerate(rows[1:], start=2):
        cols = [c.strip() for c in row]

        def col(index):
            return cols[index] if index is not None and index < len(cols) else ''

        try:
            appears_at = parse_time_offset(col(time_index))
        except ValueError:
            appears_at = None
        sender_name = col(sender_index)
        message = col(message_index)
        if appears_at is None or not sender_name or not message:
            raise ValidationError(
                f"Invalid data at row {row_number}: time must be a number, senderName and message are required"
            )
        messages.append({
            'appears_at': appears_at,
            'sender_name': sender_name,
            'message': message,
            'is_from_moderator': col(moderator_index).lower() == 'true',
        })
    return messages


def import_simulated_chat_csv(db: Session, webinar: models.Webinar, csv_text: str, replace_existing: bool = False) -> int:
    parsed = parse_simulated_chat_csv(csv_text)
    if replace_existing:
        db.query(models.WebinarChatMessage).filter(
            models.WebinarChatMessage.webinar_id == webinar.id,
            models.WebinarChatMessage.is_simulated.is_(True),
        ).delete(synchronize_session=False)
    for entry in parsed:
        db.add(models.WebinarChatMessage(webinar_id=webinar.id, is_simulated=True, **entry))
    db.commit()
    logger.info(f"Imported {len(parsed)} simulated chat message(s) for webinar {webinar.id}")
    return len(parsed)


def simulated_messages_until(db: Session, webinar: models.Webinar, position_seconds: int) -> List[models.WebinarChatMessage]:
    return db.query(models.WebinarChatMessage).filter(
        models.WebinarChatMessage.webinar_id == webinar.id,
        models.WebinarChatMessage.is_simulated.is_(True),
        models.WebinarChatMessage.is_hidden.is_(False),
        models.WebinarChatMessage.appears_at <= position_seconds,
    ).order_by(models.WebinarChatMessage.appears_at.asc(), models.WebinarChatMessage.created_at.asc()).all()


def preview_schedule(messages: List[models.WebinarChatMessage], session_start: datetime) -> List[Dict[str, Any]]:
    """Wall-clock send time of each simulated message for a session starting at ``session_start``."""
    schedule = []
    for message in sorted(messages, key=lambda m: m.appears_at or 0):
        schedule.append({
            'id': message.id,
            'sender_name': message.sender_name,
            'message': message.message,
            'appears_at': message.appears_at or 0,
            'send_at': session_start + timedelta(seconds=message.appears_at or 0),
        })
    return schedule


def chat_available(webinar: models.Webinar) -> bool:
    return bool(webinar.chat_enabled) and webinar_chat_enabled()


def post_message(db: Session, registration: models.WebinarRegistration, text: Optional[str]) -> models.WebinarChatMessage:
    webinar = registration.webinar
    if not chat_available(webinar):
        raise PermissionDeniedError("Chat is disabled for this webinar")
    text = (text or '').strip()
    if not text:
        raise ValidationError("Message is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message too long (max {MAX_MESSAGE_LENGTH} characters)")

    message = models.WebinarChatMessage(
        webinar_id=webinar.id,
        registration_id=registration.id,
        sender_name=registration.first_name or registration.email.split('@')[0],
        message=text,
        is_simulated=False,
        is_from_moderator=False,
    )
    db.add(message)
    db.flush()
    record_analytics_event(
        db,
        webinar.id,
        models.AnalyticsEventType.CHAT_SENT,
        registration_id=registration.id,
        metadata={'message_id': str(message.id)},
        commit=False,
    )
    registration.chat_message_count = (registration.chat_message_count or 0) + 1
    db.commit()
    db.refresh(message)
    return message


def recent_messages(db: Session, webinar: models.Webinar, since: Optional[datetime] = None) -> List[models.WebinarChatMessage]:
    query = db.query(models.WebinarChatMessage).filter(
        models.WebinarChatMessage.webinar_id == webinar.id,
        models.WebinarChatMessage.is_hidden.is_(False),
        models.WebinarChatMessage.is_simulated.is_(False),
    )
    if since is not None:
        query = query.filter(models.WebinarChatMessage.created_at > since)
    return query.order_by(models.WebinarChatMessage.created_at.asc()).limit(RECENT_MESSAGES_LIMIT).all()


def set_hidden(db: Session, webinar: models.Webinar, message_id, hidden: bool) -> models.WebinarChatMessage:
    message = db.query(models.WebinarChatMessage).filter(
        models.WebinarChatMessage.id == message_id,
        models.WebinarChatMessage.webinar_id == webinar.id,
    ).first()
    if message is None:
        raise NotFoundError("Message not found")
    message.is_hidden = hidden
    db.commit()
    db.refresh(message)
    return message
