"""
Interaction timeline: polls, CTAs, downloads and feedback prompts that
appear at fixed offsets of the webinar video.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from academy.db import models
from academy.errors import NotFoundError, ValidationError
from academy.services.registration_service import record_analytics_event
from academy.utils.numbers import percent

logger = logging.getLogger(__name__)

DEFAULT_DURATION_SECONDS = 30

POLL_TYPES = (models.InteractionType.POLL, models.InteractionType.QUIZ)
CLICK_TYPES = (models.InteractionType.CTA, models.InteractionType.SPECIAL_OFFER)


def timeline(webinar: models.Webinar) -> List[models.WebinarInteraction]:
    return sorted(
        (i for i in webinar.interactions if i.enabled),
        key=lambda i: (i.triggers_at, i.sort_order),
    )


def active_interactions(items: List[models.WebinarInteraction], position: int) -> List[models.WebinarInteraction]:
    active = []
    for interaction in items:
        duration = interaction.duration or DEFAULT_DURATION_SECONDS
        if interaction.triggers_at <= position < interaction.triggers_at + duration:
            active.append(interaction)
    return active


def validate_timeline(webinar: models.Webinar, items: List[Any]) -> List[str]:
    """Return a list of problems; ``items`` may be ORM rows or create schemas."""
    errors = []
    duration = webinar.video_duration
    for item in items:
        title = getattr(item, 'title', None) or getattr(item, 'type', 'interaction')
        triggers_at = getattr(item, 'triggers_at', 0) or 0
        if triggers_at < 0:
            errors.append(f"{title}: trigger time cannot be negative")
        elif duration and triggers_at > duration:
            errors.append(f"{title}: trigger time {triggers_at}s is beyond the video duration ({duration}s)")
    return errors


def ensure_valid_timeline(webinar: models.Webinar, items: List[Any]) -> None:
    errors = validate_timeline(webinar, items)
    if errors:
        raise ValidationError("; ".join(errors), errors=errors)


def get_interaction(db: Session, webinar: models.Webinar, interaction_id) -> models.WebinarInteraction:
    interaction = db.query(models.WebinarInteraction).filter(
        models.WebinarInteraction.id == interaction_id,
        models.WebinarInteraction.webinar_id == webinar.id,
    ).first()
    if interaction is None:
        raise NotFoundError("Interaction not found")
    return interaction


def _poll_options(interaction: models.WebinarInteraction) -> List[str]:
    return [str(o) for o in (interaction.content or {}).get('options') or []]


def _option_index(options: List[str], value: Any) -> Optional[int]:
    text = str(value)
    if text.isdigit() and int(text) < len(options):
        return int(text)
    if text in options:
        return options.index(text)
    return None


def _upsert_poll_response(db: Session, interaction, registration, **values) -> models.WebinarPollResponse:
    response = db.query(models.WebinarPollResponse).filter(
        models.WebinarPollResponse.interaction_id == interaction.id,
        models.WebinarPollResponse.registration_id == registration.id,
    ).first()
    if response is None:
        response = models.WebinarPollResponse(interaction_id=interaction.id, registration_id=registration.id)
        db.add(response)
    for key, value in values.items():
        setattr(response, key, value)
    return response


def respond(
    db: Session,
    registration: models.WebinarRegistration,
    interaction: models.WebinarInteraction,
    response: Dict[str, Any],
) -> Dict[str, Any]:
    if not interaction.enabled:
        raise ValidationError("Interaction is not enabled")
    response = {k: v for k, v in (response or {}).items() if v is not None}
    if interaction.type in POLL_TYPES and response.get('selected_options'):
        options = _poll_options(interaction)
        if options and any(_option_index(options, s) is None for s in response['selected_options']):
            raise ValidationError("Unknown poll option")

    db.add(models.WebinarInteractionEvent(
        interaction_id=interaction.id,
        registration_id=registration.id,
        event_type=models.InteractionEventType.RESPONDED,
        payload=response,
    ))
    interaction.action_count = (interaction.action_count or 0) + 1

    event_type = None
    if interaction.type in POLL_TYPES and response.get('selected_options'):
        selected = [str(s) for s in response['selected_options']]
        _upsert_poll_response(db, interaction, registration, selected_options=selected)
        event_type = models.AnalyticsEventType.POLL_ANSWERED
    elif interaction.type in CLICK_TYPES and response.get('clicked'):
        event_type = models.AnalyticsEventType.CTA_CLICKED
    elif interaction.type == models.InteractionType.DOWNLOAD and response.get('downloaded'):
        event_type = models.AnalyticsEventType.DOWNLOAD_CLICKED
    elif interaction.type == models.InteractionType.FEEDBACK and response.get('rating'):
        _upsert_poll_response(
            db, interaction, registration, rating=response['rating'], comment=response.get('comment'),
        )
        event_type = models.AnalyticsEventType.FEEDBACK_GIVEN

    if event_type is not None:
        record_analytics_event(
            db,
            registration.webinar_id,
            event_type,
            registration_id=registration.id,
            metadata={'interaction_id': str(interaction.id)},
            commit=False,
        )
    db.commit()
    return {'success': True, 'event_type': event_type}


def poll_results(db: Session, interaction: models.WebinarInteraction, registration: Optional[models.WebinarRegistration] = None) -> Optional[Dict[str, Any]]:
    """Option counts for polls and quizzes; ``None`` for other types."""
    if interaction.type not in POLL_TYPES:
        return None
    options = _poll_options(interaction)
    responses = db.query(models.WebinarPollResponse).filter(
        models.WebinarPollResponse.interaction_id == interaction.id,
    ).all()

    counts = [0] * len(options)
    own = None
    for response in responses:
        if registration is not None and response.registration_id == registration.id:
            own = response.selected_options
        for value in response.selected_options or []:
            index = _option_index(options, value)
            if index is not None:
                counts[index] += 1

    total = len(responses)
    return {
        'options': [
            {'option': option, 'index': index, 'count': counts[index], 'percentage': percent(counts[index], total)}
            for index, option in enumerate(options)
        ],
        'total_responses': total,
        'user_response': own,
        'has_responded': own is not None,
    }
