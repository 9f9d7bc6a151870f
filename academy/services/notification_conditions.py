"""
Condition evaluation for queued notifications.

Conditions are JSON documents stored on a notification config:

- ``{"attended": false}``: equality
- ``{"progress_percent": {"gte": 50, "lt": 51}}``: operator predicates
- ``{"field": "days_inactive", "op": "gte", "value": 7}``: explicit predicate
- ``{"AND": [...]}`` / ``{"OR": [...]}``: composition

Field names may be camelCase; they are matched against snake_case context keys.
"""

import re
import math
import logging
import operator
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from academy.db import models
from academy.utils.numbers import percent

logger = logging.getLogger(__name__)

OPERATORS = {
    'lt': operator.lt,
    'lte': operator.le,
    'gt': operator.gt,
    'gte': operator.ge,
    'eq': operator.eq,
    'ne': operator.ne,
}

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])([A-Z])')


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r'_\1', name).lower()


def _numeric(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def _check_predicate(actual: Any, predicate: Dict[str, Any]) -> bool:
    value = _numeric(actual)
    for op_name, expected in predicate.items():
        fn = OPERATORS.get(op_name)
        if fn is None:
            logger.warning(f"Unknown condition operator: {op_name}")
            return False
        if not fn(value, expected):
            return False
    return True


def evaluate_conditions(conditions: Optional[Dict[str, Any]], context: Dict[str, Any]) -> bool:
    """True when ``context`` satisfies ``conditions``; empty conditions pass."""
    if not conditions:
        return True

    if 'AND' in conditions:
        return all(evaluate_conditions(c, context) for c in conditions['AND'] or [])
    if 'OR' in conditions:
        return any(evaluate_conditions(c, context) for c in conditions['OR'] or [])

    if 'field' in conditions and 'op' in conditions:
        actual = context.get(to_snake(conditions['field']))
        return _check_predicate(actual, {conditions['op']: conditions.get('value')})

    for field, expected in conditions.items():
        actual = context.get(to_snake(field))
        if isinstance(expected, dict):
            if not _check_predicate(actual, expected):
                return False
        elif actual != expected:
            return False
    return True


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_webinar_context(db: Session, registration: models.WebinarRegistration) -> Dict[str, Any]:
    """Facts about a registration used by AFTER_END follow-up conditions."""
    webinar = registration.webinar
    duration = webinar.video_duration_seconds if webinar is not None else 0

    cta_clicked = db.query(models.WebinarAnalyticsEvent.id).filter(
        models.WebinarAnalyticsEvent.registration_id == registration.id,
        models.WebinarAnalyticsEvent.event_type == models.AnalyticsEventType.CTA_CLICKED,
    ).first() is not None
    if not cta_clicked:
        cta_clicked = db.query(models.WebinarInteractionEvent.id).join(
            models.WebinarInteraction,
            models.WebinarInteraction.id == models.WebinarInteractionEvent.interaction_id,
        ).filter(
            models.WebinarInteractionEvent.registration_id == registration.id,
            models.WebinarInteractionEvent.event_type == models.InteractionEventType.RESPONDED,
            models.WebinarInteraction.type.in_([models.InteractionType.CTA, models.InteractionType.SPECIAL_OFFER]),
        ).first() is not None

    poll_answered = db.query(models.WebinarPollResponse.id).filter(
        models.WebinarPollResponse.registration_id == registration.id,
    ).first() is not None
    chat_sent = db.query(models.WebinarChatMessage.id).filter(
        models.WebinarChatMessage.registration_id == registration.id,
        models.WebinarChatMessage.is_simulated.is_(False),
    ).first() is not None

    return {
        'attended': registration.joined_at is not None or registration.attended_at is not None,
        'completed': registration.completed_at is not None,
        'watched_percent': percent(registration.max_video_position or 0, duration),
        'cta_clicked': cta_clicked,
        'poll_answered': poll_answered,
        'chat_sent': chat_sent,
    }


def count_completed_lessons(db: Session, enrollment: models.Enrollment) -> int:
    """Lessons whose parts are all completed; lessons without parts do not count."""
    completed_part_ids = {
        row.part_id for row in db.query(models.PartProgress.part_id).filter(
            models.PartProgress.enrollment_id == enrollment.id,
            models.PartProgress.status == models.ProgressStatus.COMPLETED,
        )
    }
    count = 0
    for lesson in enrollment.course.lessons:
        if lesson.parts and all(p.id in completed_part_ids for p in lesson.parts):
            count += 1
    return count


def build_course_context(db: Session, enrollment: models.Enrollment, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    has_started = enrollment.started_at is not None
    has_completed = enrollment.status == models.EnrollmentStatus.COMPLETED or enrollment.completed_at is not None
    updated_at = _as_utc(enrollment.updated_at or enrollment.enrolled_at)

    days_until_expiry = None
    if enrollment.expires_at is not None:
        remaining = (_as_utc(enrollment.expires_at) - now).total_seconds() / 86400
        days_until_expiry = math.ceil(remaining)

    return {
        'has_started': has_started,
        'has_not_started': not has_started,
        'has_completed': has_completed,
        'has_not_completed': not has_completed,
        'progress_percent': enrollment.progress_percent or 0,
        'lessons_completed': count_completed_lessons(db, enrollment),
        'days_inactive': math.floor((now - updated_at).total_seconds() / 86400),
        'has_expiration': enrollment.expires_at is not None,
        'days_until_expiry': days_until_expiry,
    }
