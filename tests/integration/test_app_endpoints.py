from academy.db import models
from academy.services import dashboard_service, progress_service


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "service": "academy-service"}


def test_user_info(client, admin_headers, user_headers):
    assert client.get("/user-info").status_code == 401
    assert client.get("/user-info").json() == {"authenticated": False}

    body = client.get("/user-info", headers=user_headers).json()
    assert body["authenticated"] is True
    assert body["email"] == "student@example.com"
    assert body["display_name"] == "Student Example"
    assert body["is_admin"] is False
    assert body["features"]["sms_enabled"] is True

    assert client.get("/user-info", headers=admin_headers).json()["is_admin"] is True


# Testimonials

def _submit(client, **overrides):
    payload = {"name": "Nino", "email": "Nino@Example.com", "text": "Great course!", "rating": 5}
    payload.update(overrides)
    return client.post("/testimonials", json=payload)


def test_testimonial_submission_and_moderation(client, admin_headers):
    resp = _submit(client)
    assert resp.status_code == 201
    testimonial = resp.json()
    assert testimonial["status"] == "PENDING"
    assert testimonial["email"] == "nino@example.com"
    assert testimonial["source"] == "website_form"

    assert client.get("/testimonials").json()["data"] == []
    assert client.get("/testimonials", headers=admin_headers).json()["pagination"]["total"] == 1

    resp = client.post(f"/admin/testimonials/{testimonial['id']}/approve", headers=admin_headers)
    assert resp.json()["status"] == "APPROVED"
    assert resp.json()["reviewed_at"] is not None

    public = client.get("/testimonials").json()
    assert [t["name"] for t in public["data"]] == ["Nino"]

    resp = client.put(f"/admin/testimonials/{testimonial['id']}", json={"tags": ["course"]}, headers=admin_headers)
    assert resp.json()["tags"] == ["course"]
    tagged = client.get("/testimonials", params={"tag": "course"}, headers=admin_headers).json()
    assert tagged["pagination"]["total"] == 1

    assert client.put(f"/admin/testimonials/{testimonial['id']}", json={"status": "LOST"}, headers=admin_headers).status_code == 400

    resp = client.post(f"/admin/testimonials/{testimonial['id']}/reject", headers=admin_headers)
    assert resp.json()["status"] == "REJECTED"
    assert client.get("/testimonials").json()["data"] == []

    assert client.delete(f"/admin/testimonials/{testimonial['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/admin/testimonials/{testimonial['id']}", headers=admin_headers).status_code == 404

    actions = [a["action_type"] for a in client.get("/audits/", headers=admin_headers).json()]
    assert actions.count("testimonial_review") == 2
    assert "testimonial_delete" in actions


def test_testimonial_validation(client, admin_headers):
    assert _submit(client, text="   ").status_code == 400
    assert _submit(client, email=None).status_code == 400
    assert _submit(client, rating=6).status_code == 422

    _submit(client, name="Giorgi", text="Loved the webinar")
    found = client.get("/testimonials", params={"search": "webinar"}, headers=admin_headers).json()
    assert [t["name"] for t in found["data"]] == ["Giorgi"]


# Dashboard

def test_dashboard_counts(client, db_session, admin_headers, user_headers, contact_factory, course_factory,
                          user_factory, webinar_factory, registration_factory, email_log_factory):
    contact_factory("a@example.com")
    contact_factory("b@example.com", marketing_status=models.MarketingStatus.UNSUBSCRIBED)
    course = course_factory()
    progress_service.enroll(db_session, user_factory("learner@example.com"), course)
    webinar = webinar_factory()
    registration_factory(webinar, "viewer@example.com")
    email_log_factory("a@example.com", message_id="pm-1")
    _submit(client)

    assert client.get("/admin/dashboard", headers=user_headers).status_code == 403
    body = client.get("/admin/dashboard", headers=admin_headers).json()

    assert body["contacts"] == {"total": 2, "subscribed": 1, "unsubscribed": 1, "suppressed": 0}
    assert body["courses"]["published"] == 1
    assert body["enrollments"]["total"] == 1
    assert body["enrollments"]["active"] == 1
    assert body["webinars"] == {"published": 1, "registrations_last_30_days": 1}
    assert body["emails_last_30_days"] == {"SENT": 1}
    assert body["testimonials"]["pending"] == 1


def test_course_analytics(db_session, user_factory, course_factory):
    course = course_factory()
    first = progress_service.enroll(db_session, user_factory("a@example.com"), course)
    progress_service.enroll(db_session, user_factory("b@example.com"), course)
    first.progress_percent = 50
    db_session.commit()

    analytics = dashboard_service.course_analytics(db_session, course)

    assert analytics["enrollments"]["total"] == 2
    assert analytics["enrollments"]["by_status"] == {models.EnrollmentStatus.ACTIVE: 2}
    assert analytics["average_progress"] == 25
    assert analytics["quizzes"] == {"attempts": 0, "passed": 0, "pass_rate": 0}


# Cron

def test_cron_requires_secret_when_configured(client, monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "tick")

    assert client.post("/cron/process-notifications").status_code == 401
    assert client.post("/cron/process-notifications", headers={"Authorization": "Bearer nope"}).status_code == 401

    resp = client.post("/cron/process-notifications", headers={"Authorization": "Bearer tick"})
    assert resp.status_code == 200
    assert resp.json() == {
        "success": True, "job": "process-notifications",
        "processed": 0, "sent": 0, "skipped": 0, "failed": 0,
    }


def test_cron_reports_disabled_features(client, monkeypatch):
    from academy.utils.feature_flags import refresh_feature_flag_cache

    monkeypatch.setenv("FEATURE_SMS_ENABLED", "false")
    monkeypatch.setenv("FEATURE_CAMPAIGNS_ENABLED", "false")
    refresh_feature_flag_cache()

    sms = client.post("/cron/process-sms-queue").json()
    assert sms == {"success": True, "job": "process-sms-queue", "skipped": True, "reason": "SMS is disabled"}
    campaigns = client.post("/cron/process-campaigns").json()
    assert campaigns["skipped"] is True


def test_cron_generates_interval_sessions(client, webinar_factory):
    webinar_factory(schedule={
        "event_type": models.EventType.RECURRING,
        "just_in_time_enabled": True,
        "interval_minutes": 60,
        "interval_start_hour": 0,
        "interval_end_hour": 24,
    })

    body = client.post("/cron/generate-sessions").json()

    assert body["success"] is True
    assert body["job"] == "generate-sessions"
