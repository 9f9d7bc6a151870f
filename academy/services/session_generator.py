"""
Webinar session generation.

Expands a webinar's schedule configuration into concrete session times and
persists them as ``WebinarSession`` rows. Two generators exist:

- ``generate_sessions`` derives upcoming sessions from the event type
  (recurring, one-time, specific dates) plus an optional just-in-time slot;
- ``generate_interval_sessions`` pre-generates just-in-time sessions on a
  fixed interval inside daily opening hours (run daily by cron).
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, date
from typing import List, Optional, Dict, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from academy.db import models
from academy.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 90
INTERVAL_DAYS_AHEAD = 7


@dataclass
class GeneratedSession:
    scheduled_at: datetime
    type: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def webinar_zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC")
        return ZoneInfo("UTC")


def _sunday_based_weekday(day: date) -> int:
    # Python: Monday=0; schedule configs use Sunday=0
    return (day.weekday() + 1) % 7


def _parse_time(value: str):
    hours, minutes = value.split(":")[:2]
    return int(hours), int(minutes)


def _parse_iso_datetime(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _as_utc(value)
    try:
        return _as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        logger.warning(f"Ignoring unparseable schedule date: {value!r}")
        return None


def _blackout_days(config: models.WebinarScheduleConfig) -> set:
    days = set()
    for raw in config.blackout_dates or []:
        try:
            days.add(date.fromisoformat(str(raw)[:10]))
        except ValueError:
            logger.warning(f"Ignoring unparseable blackout date: {raw!r}")
    return days


def just_in_time_slot(from_dt: datetime, interval_minutes: Optional[int]) -> datetime:
    """Next JIT start: ``from + interval`` rounded up to a 5 minute mark."""
    candidate = _as_utc(from_dt) + timedelta(minutes=interval_minutes or 15)
    rounded = int(math.ceil(candidate.minute / 5.0) * 5)
    return candidate.replace(minute=0, second=0, microsecond=0) + timedelta(minutes=rounded)


def _recurring_sessions(
    config: models.WebinarScheduleConfig,
    from_dt: datetime,
    to_dt: Optional[datetime],
    max_sessions: int,
    tz: ZoneInfo,
) -> List[GeneratedSession]:
    days = set(config.recurring_days or [])
    times = [_parse_time(t) for t in (config.recurring_times or [])]
    if not days or not times:
        return []

    end = to_dt or (_as_utc(config.ends_at) if config.ends_at else None) or from_dt + timedelta(days=DEFAULT_HORIZON_DAYS)
    start = max(_as_utc(config.starts_at), from_dt) if config.starts_at else from_dt
    current = start.astimezone(tz).date()
    end_day = end.astimezone(tz).date()

    sessions: List[GeneratedSession] = []
    while current <= end_day and len(sessions) < max_sessions * 2:
        if _sunday_based_weekday(current) in days:
            for hours, minutes in times:
                local = datetime(current.year, current.month, current.day, hours, minutes, tzinfo=tz)
                scheduled = local.astimezone(timezone.utc)
                if scheduled > from_dt and scheduled <= end:
                    sessions.append(GeneratedSession(scheduled, models.SessionType.SCHEDULED))
        current += timedelta(days=1)
    return sessions[:max_sessions]


def generate_sessions(
    config: models.WebinarScheduleConfig,
    from_dt: Optional[datetime] = None,
    to_dt: Optional[datetime] = None,
    max_sessions: int = 10,
    include_just_in_time: bool = True,
    include_on_demand: bool = True,
    tz_name: Optional[str] = None,
) -> List[GeneratedSession]:
    """Upcoming sessions for a schedule config.

    JIT sessions come first, followed by scheduled ones capped at
    ``max_sessions``. On-demand viewing needs no session row, so
    ``include_on_demand`` only exists for call-site symmetry.
    """
    from_dt = _as_utc(from_dt) if from_dt else _utcnow()
    to_dt = _as_utc(to_dt) if to_dt else None
    tz = webinar_zone(tz_name or (config.webinar.timezone if config.webinar else None))

    sessions: List[GeneratedSession] = []
    if include_just_in_time and config.just_in_time_enabled:
        sessions.append(GeneratedSession(
            just_in_time_slot(from_dt, config.interval_minutes), models.SessionType.JUST_IN_TIME
        ))

    if config.event_type == models.EventType.RECURRING:
        sessions.extend(_recurring_sessions(config, from_dt, to_dt, max_sessions, tz))
    elif config.event_type == models.EventType.ONE_TIME:
        if config.starts_at and _as_utc(config.starts_at) >= from_dt:
            sessions.append(GeneratedSession(_as_utc(config.starts_at), models.SessionType.SCHEDULED))
    elif config.event_type == models.EventType.SPECIFIC_DATES:
        for raw in config.specific_dates or []:
            parsed = _parse_iso_datetime(raw)
            if parsed and parsed >= from_dt and (to_dt is None or parsed <= to_dt):
                sessions.append(GeneratedSession(parsed, models.SessionType.SCHEDULED))

    blackout = _blackout_days(config)
    if blackout:
        sessions = [s for s in sessions if s.scheduled_at.astimezone(tz).date() not in blackout]

    sessions.sort(key=lambda s: s.scheduled_at)
    jit = [s for s in sessions if s.type == models.SessionType.JUST_IN_TIME]
    scheduled = [s for s in sessions if s.type != models.SessionType.JUST_IN_TIME][:max_sessions]
    return jit + scheduled


def _find_session(db: Session, webinar_id, scheduled_at: datetime, session_type: str):
    return (
        db.query(models.WebinarSession)
        .filter(
            models.WebinarSession.webinar_id == webinar_id,
            models.WebinarSession.scheduled_at == scheduled_at,
            models.WebinarSession.type == session_type,
        )
        .first()
    )


def get_or_create_sessions(
    db: Session,
    webinar: models.Webinar,
    from_dt: Optional[datetime] = None,
    to_dt: Optional[datetime] = None,
    max_sessions: int = 10,
    include_just_in_time: bool = True,
) -> List[models.WebinarSession]:
    """Persist generated sessions, reusing rows with the same slot."""
    config = webinar.schedule_config
    if config is None:
        return []
    generated = generate_sessions(
        config,
        from_dt=from_dt,
        to_dt=to_dt,
        max_sessions=max_sessions,
        include_just_in_time=include_just_in_time,
        tz_name=webinar.timezone,
    )
    results = []
    for item in generated:
        existing = _find_session(db, webinar.id, item.scheduled_at, item.type)
        if existing is None:
            existing = models.WebinarSession(
                webinar_id=webinar.id, scheduled_at=item.scheduled_at, type=item.type
            )
            db.add(existing)
            db.flush()
        results.append(existing)
    db.commit()
    return results


def interval_slots(
    interval_minutes: int,
    start_hour: int,
    end_hour: int,
    days_ahead: int,
    now: datetime,
    tz: ZoneInfo,
) -> List[datetime]:
    """Future slot times, every ``interval_minutes`` inside ``[start_hour, end_hour)`` local time."""
    slots: List[datetime] = []
    today = now.astimezone(tz).date()
    for offset in range(days_ahead):
        day = today + timedelta(days=offset)
        local = datetime(day.year, day.month, day.day, start_hour, 0, tzinfo=tz)
        while local.hour < end_hour and local.date() == day:
            slot = local.astimezone(timezone.utc)
            if slot > now:
                slots.append(slot)
            local = local + timedelta(minutes=interval_minutes)
    return slots


def generate_interval_sessions(
    db: Session,
    webinar: models.Webinar,
    days_ahead: int = INTERVAL_DAYS_AHEAD,
    now: Optional[datetime] = None,
) -> int:
    """Create the JIT interval sessions for the coming days.

    Returns the number of sessions created. Past JIT sessions from before
    today without registrations are removed.
    """
    config = webinar.schedule_config
    if config is None:
        raise ValueError("Webinar has no schedule config")
    if not config.just_in_time_enabled or not config.interval_minutes:
        return 0

    now = _as_utc(now) if now else _utcnow()
    tz = webinar_zone(webinar.timezone)
    slots = interval_slots(
        config.interval_minutes,
        config.interval_start_hour,
        config.interval_end_hour,
        days_ahead,
        now,
        tz,
    )

    existing = {
        _as_utc(s.scheduled_at)
        for s in db.query(models.WebinarSession.scheduled_at).filter(
            models.WebinarSession.webinar_id == webinar.id,
            models.WebinarSession.type == models.SessionType.JUST_IN_TIME,
        )
    }
    created = 0
    for slot in slots:
        if slot in existing:
            continue
        db.add(models.WebinarSession(
            webinar_id=webinar.id, scheduled_at=slot, type=models.SessionType.JUST_IN_TIME
        ))
        created += 1

    local_midnight = datetime.combine(now.astimezone(tz).date(), datetime.min.time(), tzinfo=tz)
    stale = (
        db.query(models.WebinarSession)
        .filter(
            models.WebinarSession.webinar_id == webinar.id,
            models.WebinarSession.type == models.SessionType.JUST_IN_TIME,
            models.WebinarSession.scheduled_at < local_midnight.astimezone(timezone.utc),
            models.WebinarSession.registration_count == 0,
        )
        .all()
    )
    for session in stale:
        db.delete(session)
    db.commit()
    logger.info(f"Generated {created} interval sessions for webinar {webinar.slug} (removed {len(stale)} stale)")
    return created


def generate_all_interval_sessions(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    webinars = (
        db.query(models.Webinar)
        .join(models.WebinarScheduleConfig)
        .filter(
            models.Webinar.status == models.WebinarStatus.PUBLISHED,
            models.WebinarScheduleConfig.just_in_time_enabled.is_(True),
            models.WebinarScheduleConfig.interval_minutes > 0,
        )
        .all()
    )
    processed = 0
    errors: List[str] = []
    for webinar in webinars:
        try:
            generate_interval_sessions(db, webinar, INTERVAL_DAYS_AHEAD, now=now)
            processed += 1
        except Exception as e:
            message = f'Failed to generate sessions for "{webinar.title}": {e}'
            logger.error(message)
            errors.append(message)
    return {"processed": processed, "errors": errors}


def available_sessions_for_registration(
    db: Session, webinar: models.Webinar, now: Optional[datetime] = None
) -> Dict[str, Any]:
    config = webinar.schedule_config
    if config is None:
        return {"sessions": [], "on_demand_available": False, "replay_available": False}

    now = _as_utc(now) if now else _utcnow()
    if config.just_in_time_enabled and config.interval_minutes:
        sessions = (
            db.query(models.WebinarSession)
            .filter(
                models.WebinarSession.webinar_id == webinar.id,
                models.WebinarSession.type == models.SessionType.JUST_IN_TIME,
                models.WebinarSession.scheduled_at >= now,
            )
            .order_by(models.WebinarSession.scheduled_at)
            .limit(config.max_sessions_to_show)
            .all()
        )
    else:
        sessions = get_or_create_sessions(
            db,
            webinar,
            from_dt=now,
            max_sessions=config.max_sessions_to_show,
            include_just_in_time=config.just_in_time_enabled,
        )
    return {
        "sessions": sessions,
        "on_demand_available": bool(config.on_demand_enabled),
        "replay_available": bool(config.replay_enabled),
    }


def relative_time(value: datetime, locale: str = "en", now: Optional[datetime] = None) -> str:
    now = _as_utc(now) if now else _utcnow()
    diff_minutes = round_half_up((_as_utc(value) - now).total_seconds() / 60)
    ka = locale == "ka"
    if diff_minutes <= 0:
        return "ახლა" if ka else "Now"
    if diff_minutes < 60:
        return f"{diff_minutes} წუთში" if ka else f"In {diff_minutes} min"
    diff_hours = round_half_up(diff_minutes / 60)
    if diff_hours < 24:
        return f"{diff_hours} საათში" if ka else f"In {diff_hours} hr"
    diff_days = round_half_up(diff_hours / 24)
    return f"{diff_days} დღეში" if ka else f"In {diff_days} days"
