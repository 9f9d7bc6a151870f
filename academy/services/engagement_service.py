"""
Engagement scoring for webinar registrations.

The score (0-100) is a weighted sum of watch time, completion, poll
participation, CTA clicks, chat activity and punctuality.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional

from sqlalchemy.orm import Session

from academy.db import models
from academy.utils.numbers import percent, round_half_up

logger = logging.getLogger(__name__)

WEIGHTS = {
    'watch_time': 40,
    'completion': 10,
    'poll_participation': 20,
    'cta_engagement': 15,
    'chat_activity': 10,
    'punctuality': 5,
}

# Messages needed for the full chat weight
CHAT_MESSAGES_FOR_FULL_SCORE = 3
ON_TIME_WINDOW_MINUTES = 5

CTA_INTERACTION_TYPES = (
    models.InteractionType.CTA,
    models.InteractionType.DOWNLOAD,
    models.InteractionType.SPECIAL_OFFER,
)

BRACKETS = [
    (80, 'Highly Engaged (80-100)'),
    (60, 'Engaged (60-79)'),
    (40, 'Moderate (40-59)'),
    (20, 'Low (20-39)'),
    (0, 'Minimal (0-19)'),
]


@dataclass
class EngagementFactors:
    watch_percentage: float = 0
    polls_answered: int = 0
    total_polls: int = 0
    cta_clicks: int = 0
    total_ctas: int = 0
    chat_messages: int = 0
    completed: bool = False
    joined_on_time: bool = False


def calculate_engagement_score(factors: EngagementFactors, weights: Optional[Dict[str, int]] = None) -> float:
    weights = weights or WEIGHTS
    score = min(factors.watch_percentage / 100, 1) * weights['watch_time']
    if factors.completed:
        score += weights['completion']
    if factors.total_polls > 0:
        score += factors.polls_answered / factors.total_polls * weights['poll_participation']
    if factors.total_ctas > 0:
        score += min(factors.cta_clicks / factors.total_ctas, 1) * weights['cta_engagement']
    score += min(factors.chat_messages / CHAT_MESSAGES_FOR_FULL_SCORE, 1) * weights['chat_activity']
    if factors.joined_on_time:
        score += weights['punctuality']
    return round_half_up(score, 1)


def engagement_label(score: float) -> Dict[str, str]:
    if score >= 80:
        return {'label': 'Highly Engaged', 'color': 'green'}
    if score >= 60:
        return {'label': 'Engaged', 'color': 'blue'}
    if score >= 40:
        return {'label': 'Moderate', 'color': 'yellow'}
    if score >= 20:
        return {'label': 'Low', 'color': 'orange'}
    return {'label': 'Minimal', 'color': 'red'}


def collect_factors(db: Session, registration: models.WebinarRegistration) -> EngagementFactors:
    webinar = registration.webinar
    enabled = [i for i in webinar.interactions if i.enabled]
    duration = webinar.video_duration_seconds

    polls_answered = db.query(models.WebinarPollResponse).join(
        models.WebinarInteraction,
        models.WebinarInteraction.id == models.WebinarPollResponse.interaction_id,
    ).filter(
        models.WebinarPollResponse.registration_id == registration.id,
        models.WebinarInteraction.type == models.InteractionType.POLL,
    ).count()
    cta_clicks = db.query(models.WebinarAnalyticsEvent).filter(
        models.WebinarAnalyticsEvent.registration_id == registration.id,
        models.WebinarAnalyticsEvent.event_type.in_([
            models.AnalyticsEventType.CTA_CLICKED,
            models.AnalyticsEventType.DOWNLOAD_CLICKED,
        ]),
    ).count()
    chat_messages = db.query(models.WebinarChatMessage).filter(
        models.WebinarChatMessage.registration_id == registration.id,
        models.WebinarChatMessage.is_simulated.is_(False),
    ).count()

    joined_on_time = False
    if registration.session is not None and registration.joined_at is not None:
        diff_minutes = (registration.joined_at - registration.session.scheduled_at).total_seconds() / 60
        joined_on_time = -ON_TIME_WINDOW_MINUTES <= diff_minutes <= ON_TIME_WINDOW_MINUTES

    return EngagementFactors(
        watch_percentage=min((registration.max_video_position or 0) / duration * 100, 100) if duration else 0,
        polls_answered=polls_answered,
        total_polls=len([i for i in enabled if i.type == models.InteractionType.POLL]),
        cta_clicks=cta_clicks,
        total_ctas=len([i for i in enabled if i.type in CTA_INTERACTION_TYPES]),
        chat_messages=chat_messages,
        completed=registration.completed_at is not None,
        joined_on_time=joined_on_time,
    )


def update_engagement_score(db: Session, registration: models.WebinarRegistration, commit: bool = True) -> float:
    factors = collect_factors(db, registration)
    score = calculate_engagement_score(factors)
    registration.engagement_score = score
    registration.chat_message_count = factors.chat_messages
    registration.polls_answered = factors.polls_answered
    if commit:
        db.commit()
    return score


def update_all_engagement_scores(db: Session, webinar: models.Webinar) -> Dict[str, Any]:
    registrations = db.query(models.WebinarRegistration).filter(
        models.WebinarRegistration.webinar_id == webinar.id,
        models.WebinarRegistration.joined_at.isnot(None),
    ).all()
    total = 0.0
    updated = 0
    for registration in registrations:
        total += update_engagement_score(db, registration, commit=False)
        updated += 1
    db.commit()
    average = round_half_up(total / updated, 1) if updated else 0
    logger.info(f"Recalculated engagement for {updated} registration(s) of webinar {webinar.id}")
    return {'updated': updated, 'average_score': average}


def _bracket_label(score: float) -> str:
    for threshold, label in BRACKETS:
        if score >= threshold:
            return label
    return BRACKETS[-1][1]


def engagement_breakdown(db: Session, webinar: models.Webinar) -> Dict[str, Any]:
    registrations: List[models.WebinarRegistration] = db.query(models.WebinarRegistration).filter(
        models.WebinarRegistration.webinar_id == webinar.id,
        models.WebinarRegistration.engagement_score.isnot(None),
    ).order_by(models.WebinarRegistration.engagement_score.desc()).all()

    total = len(registrations)
    counts = {label: 0 for _, label in BRACKETS}
    for registration in registrations:
        counts[_bracket_label(registration.engagement_score)] += 1

    total_score = sum(r.engagement_score for r in registrations)
    return {
        'distribution': [
            {'label': label, 'count': counts[label], 'percentage': percent(counts[label], total)}
            for _, label in BRACKETS
        ],
        'average_score': round_half_up(total_score / total, 1) if total else 0,
        'top_engaged': [
            {'email': r.email, 'score': r.engagement_score, **engagement_label(r.engagement_score)}
            for r in registrations[:10]
        ],
    }
