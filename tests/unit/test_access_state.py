from datetime import datetime, timedelta, timezone

import pytest

from academy.db import models
from academy.services.access_state import (
    ALLOWED,
    DISABLED,
    ENDED,
    EXPIRED,
    WAITING,
    determine_access_state,
)

START = datetime(2026, 3, 2, 16, 0, tzinfo=timezone.utc)


@pytest.fixture
def webinar():
    return models.Webinar(slug="growth", title="Growth", video_duration=1800)


@pytest.fixture
def config():
    return models.WebinarScheduleConfig(replay_enabled=True, replay_expires_after_days=7)


@pytest.fixture
def session():
    return models.WebinarSession(scheduled_at=START, type=models.SessionType.SCHEDULED)


def _registration(session_type=models.SessionType.SCHEDULED, position=0):
    return models.WebinarRegistration(email="a@example.com", session_type=session_type, max_video_position=position)


def test_waiting_before_early_access(webinar, config, session):
    state = determine_access_state(webinar, config, _registration(), session, now=START - timedelta(minutes=10))
    assert state.status == WAITING
    assert state.minutes_until_start == 10
    assert state.early_access_at == START - timedelta(minutes=5)
    assert not state.allowed


def test_early_access_starts_at_zero(webinar, config, session):
    state = determine_access_state(webinar, config, _registration(), session, now=START - timedelta(minutes=3))
    assert state.status == ALLOWED
    assert state.start_position == 0


def test_simulated_live_joins_at_elapsed_position(webinar, config, session):
    state = determine_access_state(webinar, config, _registration(), session, now=START + timedelta(minutes=10))
    assert state.status == ALLOWED
    assert state.playback_mode == "simulated_live"
    assert state.allow_seeking is False
    assert state.start_position == 600


def test_ended_after_video_duration(webinar, config, session):
    state = determine_access_state(webinar, config, _registration(), session, now=START + timedelta(seconds=1801))
    assert state.status == ENDED
    assert state.ended_at == START + timedelta(seconds=1800)
    assert state.replay_available is True


def test_scheduled_without_session_is_disabled(webinar, config):
    state = determine_access_state(webinar, config, _registration(), None, now=START)
    assert state.status == DISABLED


def test_replay_disabled(webinar, session):
    config = models.WebinarScheduleConfig(replay_enabled=False)
    state = determine_access_state(webinar, config, _registration(models.SessionType.REPLAY), session, now=START)
    assert state.status == DISABLED


def test_replay_expires(webinar, config, session):
    now = START + timedelta(seconds=1800) + timedelta(days=8)
    state = determine_access_state(webinar, config, _registration(models.SessionType.REPLAY), session, now=now)
    assert state.status == EXPIRED
    assert state.reason == "replay_expired"


def test_replay_resumes_from_furthest_position(webinar, config, session):
    registration = _registration(models.SessionType.REPLAY, position=300)
    state = determine_access_state(webinar, config, registration, session, now=START + timedelta(days=2))
    assert state.status == ALLOWED
    assert state.playback_mode == "replay"
    assert state.allow_seeking is True
    assert state.start_position == 300


def test_on_demand_always_allowed(webinar):
    registration = _registration(models.SessionType.ON_DEMAND, position=42)
    state = determine_access_state(webinar, None, registration, None, now=START)
    assert state.playback_mode == "on_demand"
    assert state.start_position == 42


def test_to_dict_serializes_datetimes_and_drops_empty_fields(webinar, config, session):
    state = determine_access_state(webinar, config, _registration(), session, now=START - timedelta(hours=1))
    data = state.to_dict()
    assert data["status"] == WAITING
    assert data["starts_at"] == START.isoformat()
    assert "playback_mode" not in data
