"""
Webinar access state machine.

Decides whether a registration may watch right now and how playback
behaves (simulated live, on-demand or replay).
"""

import math
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from academy.db import models

EARLY_ACCESS_MINUTES = 5

ALLOWED = "ALLOWED"
WAITING = "WAITING"
EXPIRED = "EXPIRED"
ENDED = "ENDED"
DISABLED = "DISABLED"


@dataclass
class AccessState:
    status: str
    playback_mode: Optional[str] = None
    allow_seeking: bool = False
    start_position: int = 0
    session_type: Optional[str] = None
    starts_at: Optional[datetime] = None
    early_access_at: Optional[datetime] = None
    minutes_until_start: Optional[int] = None
    ended_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    replay_available: Optional[bool] = None
    reason: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def allowed(self) -> bool:
        return self.status == ALLOWED

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        for key, value in list(data.items()):
            if isinstance(value, datetime):
                data[key] = value.isoformat()
        data.update(self.extra)
        return data


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def determine_access_state(
    webinar: models.Webinar,
    config: Optional[models.WebinarScheduleConfig],
    registration: models.WebinarRegistration,
    session: Optional[models.WebinarSession],
    now: Optional[datetime] = None,
) -> AccessState:
    now = _as_utc(now) if now else datetime.now(timezone.utc)
    duration = timedelta(seconds=webinar.video_duration_seconds)
    session_type = registration.session_type

    if session_type == models.SessionType.REPLAY:
        if config is not None and not config.replay_enabled:
            return AccessState(status=DISABLED, reason="Replay is not available for this webinar")
        if config is not None and config.replay_expires_after_days and session is not None:
            expires_at = _as_utc(session.scheduled_at) + duration + timedelta(days=config.replay_expires_after_days)
            if now > expires_at:
                return AccessState(status=EXPIRED, expired_at=expires_at, reason="replay_expired")
        return AccessState(
            status=ALLOWED,
            playback_mode="replay",
            allow_seeking=True,
            start_position=max(registration.max_video_position or 0, 0),
            session_type=models.SessionType.REPLAY,
        )

    if session_type == models.SessionType.ON_DEMAND:
        return AccessState(
            status=ALLOWED,
            playback_mode="on_demand",
            allow_seeking=True,
            start_position=max(registration.max_video_position or 0, 0),
            session_type=models.SessionType.ON_DEMAND,
        )

    if session_type in (models.SessionType.SCHEDULED, models.SessionType.JUST_IN_TIME):
        if session is None:
            return AccessState(status=DISABLED, reason="Session not found for scheduled registration")

        starts_at = _as_utc(session.scheduled_at)
        ends_at = starts_at + duration
        early_access_at = starts_at - timedelta(minutes=EARLY_ACCESS_MINUTES)

        if now < early_access_at:
            return AccessState(
                status=WAITING,
                starts_at=starts_at,
                early_access_at=early_access_at,
                minutes_until_start=int(math.ceil((starts_at - now).total_seconds() / 60)),
            )
        if now > ends_at:
            return AccessState(
                status=ENDED,
                ended_at=ends_at,
                replay_available=bool(config.replay_enabled) if config is not None else False,
            )

        elapsed = int((now - starts_at).total_seconds())
        return AccessState(
            status=ALLOWED,
            playback_mode="simulated_live",
            allow_seeking=False,
            start_position=max(0, min(elapsed, webinar.video_duration_seconds - 1)),
            session_type=session_type,
        )

    return AccessState(status=DISABLED, reason=f"Unknown session type: {session_type}")
