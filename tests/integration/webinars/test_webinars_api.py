from datetime import datetime, timedelta, timezone

from academy.db import models


def _now():
    return datetime.now(timezone.utc)


def _register(client, slug, **payload):
    payload.setdefault("email", "viewer@example.com")
    return client.post(f"/webinars/{slug}/register", json=payload)


def test_unpublished_webinar_is_hidden(client, webinar_factory):
    webinar_factory(slug="draft-webinar", status=models.WebinarStatus.DRAFT)
    assert client.get("/webinars/draft-webinar").status_code == 404
    assert client.get("/webinars/missing").status_code == 404


def test_sessions_listing_creates_one_time_session(client, webinar_factory):
    starts = (_now() + timedelta(days=1)).replace(microsecond=0)
    webinar_factory(schedule={"event_type": models.EventType.ONE_TIME, "starts_at": starts, "on_demand_enabled": True})

    resp = client.get("/webinars/growth-webinar/sessions")
    assert resp.status_code == 200
    body = resp.json()
    assert body["on_demand_available"] is True
    assert body["replay_available"] is True
    assert len(body["sessions"]) == 1
    assert body["sessions"][0]["type"] == models.SessionType.SCHEDULED
    assert body["sessions"][0]["relative_time"].startswith("In ")


def test_register_returns_token_and_watch_url(client, webinar_factory, session_factory):
    webinar = webinar_factory()
    session = session_factory(webinar, _now() + timedelta(hours=3))

    resp = _register(client, "growth-webinar", session_id=str(session.id), first_name="Nino", utm_source="newsletter")
    assert resp.status_code == 201
    body = resp.json()
    assert body["session_type"] == models.SessionType.SCHEDULED
    assert len(body["access_token"]) == 64
    assert body["watch_url"].endswith(body["access_token"])


def test_register_errors_map_to_http(client, webinar_factory):
    webinar_factory()
    assert _register(client, "growth-webinar", email="broken").status_code == 400
    assert _register(client, "growth-webinar").status_code == 400
    assert _register(client, "missing-webinar").status_code == 404


def test_access_waits_before_early_access(client, webinar_factory, session_factory, registration_factory):
    webinar = webinar_factory()
    session = session_factory(webinar, _now() + timedelta(hours=2))
    registration = registration_factory(webinar, session=session)

    resp = client.get("/webinars/growth-webinar/access", params={"token": registration.access_token})
    assert resp.status_code == 403
    detail = resp.json()["detail"]
    assert detail["status"] == "WAITING"
    assert 115 <= detail["minutes_until_start"] <= 120


def test_access_during_session_is_simulated_live(client, db_session, webinar_factory, session_factory, registration_factory):
    webinar = webinar_factory()
    session = session_factory(webinar, _now() - timedelta(minutes=10))
    registration = registration_factory(webinar, session=session)

    resp = client.get("/webinars/growth-webinar/access", params={"token": registration.access_token})
    assert resp.status_code == 200
    body = resp.json()
    assert body["access"]["status"] == "ALLOWED"
    assert body["access"]["playback_mode"] == "simulated_live"
    assert body["access"]["allow_seeking"] is False
    assert 595 <= body["access"]["start_position"] <= 660
    assert body["converted_to_replay"] is False
    assert body["chat_enabled"] is True
    db_session.refresh(registration)
    assert registration.joined_at is not None


def test_ended_session_converts_to_replay(client, db_session, webinar_factory, session_factory, registration_factory):
    webinar = webinar_factory(schedule={"replay_enabled": True, "replay_expires_after_days": 7})
    session = session_factory(webinar, _now() - timedelta(hours=3))
    registration = registration_factory(webinar, session=session)

    resp = client.get("/webinars/growth-webinar/access", params={"token": registration.access_token})
    assert resp.status_code == 200
    body = resp.json()
    assert body["converted_to_replay"] is True
    assert body["access"]["playback_mode"] == "replay"
    db_session.refresh(registration)
    assert registration.session_type == models.SessionType.REPLAY


def test_expired_replay_is_denied(client, webinar_factory, session_factory, registration_factory):
    webinar = webinar_factory(schedule={"replay_enabled": True, "replay_expires_after_days": 7})
    session = session_factory(webinar, _now() - timedelta(days=10))
    registration = registration_factory(webinar, session=session)

    resp = client.get("/webinars/growth-webinar/access", params={"token": registration.access_token})
    assert resp.status_code == 403
    assert resp.json()["detail"]["status"] == "EXPIRED"
    assert resp.json()["detail"]["reason"] == "replay_expired"


def test_ended_session_without_replay_is_denied(client, webinar_factory, session_factory, registration_factory):
    webinar = webinar_factory(schedule={"replay_enabled": False})
    session = session_factory(webinar, _now() - timedelta(hours=3))
    registration = registration_factory(webinar, session=session)

    resp = client.get("/webinars/growth-webinar/access", params={"token": registration.access_token})
    assert resp.status_code == 403
    assert resp.json()["detail"]["status"] == "ENDED"
    assert resp.json()["detail"]["replay_available"] is False


def test_unknown_token_is_not_found(client, webinar_factory):
    webinar_factory()
    assert client.get("/webinars/growth-webinar/access", params={"token": "nope"}).status_code == 404
    assert client.get("/webinars/growth-webinar/access").status_code == 404


def test_progress_endpoint(client, webinar_factory, registration_factory):
    webinar = webinar_factory()
    registration = registration_factory(webinar)

    resp = client.post("/webinars/growth-webinar/progress", json={"token": registration.access_token, "progress": 45, "position": 1620})
    assert resp.status_code == 200
    assert resp.json()["watch_progress"] == 45

    resp = client.post("/webinars/growth-webinar/progress", json={"token": registration.access_token, "progress": 30, "position": 1000})
    assert resp.json()["watch_progress"] == 45
    assert client.post("/webinars/growth-webinar/progress", json={"token": registration.access_token, "progress": 120, "position": 1}).status_code == 422


def test_live_chat_excludes_simulated_messages(client, db_session, webinar_factory, registration_factory):
    webinar = webinar_factory()
    registration = registration_factory(webinar, first_name="Nino")
    db_session.add(models.WebinarChatMessage(
        webinar_id=webinar.id, sender_name="Host", message="Welcome", appears_at=30, is_simulated=True,
    ))
    db_session.commit()

    resp = client.post("/webinars/growth-webinar/chat", json={"token": registration.access_token, "message": "  Hello!  "})
    assert resp.status_code == 201
    assert resp.json()["sender_name"] == "Nino"
    assert resp.json()["message"] == "Hello!"

    live = client.get("/webinars/growth-webinar/chat", params={"token": registration.access_token}).json()
    assert [m["message"] for m in live] == ["Hello!"]

    simulated = client.get("/webinars/growth-webinar/chat/simulated", params={"token": registration.access_token, "position": 10}).json()
    assert simulated == []
    simulated = client.get("/webinars/growth-webinar/chat/simulated", params={"token": registration.access_token, "position": 30}).json()
    assert [m["message"] for m in simulated] == ["Welcome"]

    db_session.refresh(registration)
    assert registration.chat_message_count == 1


def test_chat_validation_and_disabled_chat(client, webinar_factory, registration_factory):
    webinar = webinar_factory()
    registration = registration_factory(webinar)
    assert client.post("/webinars/growth-webinar/chat", json={"token": registration.access_token, "message": "   "}).status_code == 400
    too_long = "x" * 501
    assert client.post("/webinars/growth-webinar/chat", json={"token": registration.access_token, "message": too_long}).status_code == 400

    quiet = webinar_factory(slug="quiet-webinar", chat_enabled=False)
    quiet_registration = registration_factory(quiet)
    resp = client.post("/webinars/quiet-webinar/chat", json={"token": quiet_registration.access_token, "message": "hi"})
    assert resp.status_code == 403


def test_chat_feature_flag_disables_chat(client, monkeypatch, webinar_factory, registration_factory):
    from academy.utils.feature_flags import refresh_feature_flag_cache

    webinar = webinar_factory()
    registration = registration_factory(webinar)
    monkeypatch.setenv("FEATURE_WEBINAR_CHAT_ENABLED", "false")
    refresh_feature_flag_cache()

    resp = client.post("/webinars/growth-webinar/chat", json={"token": registration.access_token, "message": "hi"})
    assert resp.status_code == 403


def test_poll_response_and_results(client, db_session, webinar_factory, registration_factory):
    webinar = webinar_factory()
    first = registration_factory(webinar, "a@example.com")
    second = registration_factory(webinar, "b@example.com")
    poll = models.WebinarInteraction(
        webinar_id=webinar.id, type=models.InteractionType.POLL, title="Ready?",
        content={"options": ["Yes", "No"]}, triggers_at=120,
    )
    db_session.add(poll)
    db_session.commit()

    resp = client.post("/webinars/growth-webinar/interactions", json={
        "token": first.access_token, "interaction_id": str(poll.id), "selected_options": ["Yes"],
    })
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "event_type": models.AnalyticsEventType.POLL_ANSWERED}
    client.post("/webinars/growth-webinar/interactions", json={
        "token": second.access_token, "interaction_id": str(poll.id), "selected_options": ["1"],
    })

    results = client.get(
        f"/webinars/growth-webinar/interactions/{poll.id}/results", params={"token": first.access_token},
    ).json()
    assert results["total_responses"] == 2
    assert [o["count"] for o in results["options"]] == [1, 1]
    assert [o["percentage"] for o in results["options"]] == [50, 50]
    assert results["user_response"] == ["Yes"]
    assert results["has_responded"] is True

    db_session.refresh(poll)
    assert poll.action_count == 2


def test_disabled_interaction_rejects_responses(client, db_session, webinar_factory, registration_factory):
    webinar = webinar_factory()
    registration = registration_factory(webinar)
    poll = models.WebinarInteraction(
        webinar_id=webinar.id, type=models.InteractionType.POLL, title="Hidden",
        content={"options": ["Yes", "No"]}, triggers_at=0, enabled=False,
    )
    db_session.add(poll)
    db_session.commit()

    resp = client.post("/webinars/growth-webinar/interactions", json={
        "token": registration.access_token, "interaction_id": str(poll.id), "selected_options": ["Yes"],
    })

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Interaction is not enabled"
    assert db_session.query(models.WebinarInteractionEvent).count() == 0
    db_session.refresh(poll)
    assert (poll.action_count or 0) == 0


def test_poll_answer_can_be_changed(client, db_session, webinar_factory, registration_factory):
    webinar = webinar_factory()
    registration = registration_factory(webinar)
    poll = models.WebinarInteraction(
        webinar_id=webinar.id, type=models.InteractionType.POLL, title="Pick",
        content={"options": ["Red", "Blue"]}, triggers_at=0,
    )
    db_session.add(poll)
    db_session.commit()

    for choice in (["Red"], ["Blue"]):
        client.post("/webinars/growth-webinar/interactions", json={
            "token": registration.access_token, "interaction_id": str(poll.id), "selected_options": choice,
        })

    results = client.get(
        f"/webinars/growth-webinar/interactions/{poll.id}/results", params={"token": registration.access_token},
    ).json()
    assert results["total_responses"] == 1
    assert [o["count"] for o in results["options"]] == [0, 1]


def test_unknown_poll_option_and_cta_results(client, db_session, webinar_factory, registration_factory):
    webinar = webinar_factory()
    registration = registration_factory(webinar)
    poll = models.WebinarInteraction(
        webinar_id=webinar.id, type=models.InteractionType.POLL, title="Ready?",
        content={"options": ["Yes", "No"]}, triggers_at=120,
    )
    cta = models.WebinarInteraction(
        webinar_id=webinar.id, type=models.InteractionType.CTA, title="Buy",
        content={"url": "https://example.com/buy"}, triggers_at=900,
    )
    db_session.add_all([poll, cta])
    db_session.commit()

    resp = client.post("/webinars/growth-webinar/interactions", json={
        "token": registration.access_token, "interaction_id": str(poll.id), "selected_options": ["Maybe"],
    })
    assert resp.status_code == 400

    resp = client.post("/webinars/growth-webinar/interactions", json={
        "token": registration.access_token, "interaction_id": str(cta.id), "clicked": True,
    })
    assert resp.json()["event_type"] == models.AnalyticsEventType.CTA_CLICKED

    resp = client.get(f"/webinars/growth-webinar/interactions/{cta.id}/results", params={"token": registration.access_token})
    assert resp.status_code == 400
