from datetime import datetime, timedelta, timezone

import pytest

from academy.db import models
from academy.services import course_notifications, progress_service, webinar_notifications
from academy.services.notification_service import NotificationService, process_notification_queue

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def registered(db_session, user_factory, webinar_factory, session_factory, registration_factory):
    """English-speaking registrant for a session two days out with the default notifications queued."""
    user_factory("nino@example.com", preferred_locale="en")
    webinar = webinar_factory()
    webinar_notifications.create_default_notifications(db_session, webinar)
    session = session_factory(webinar, NOW + timedelta(days=2))
    registration = registration_factory(webinar, "nino@example.com", session=session, first_name="Nino")
    webinar_notifications.queue_registration_notifications(db_session, registration, now=NOW)
    return registration


def _queue(db_session):
    return db_session.query(models.NotificationQueue).order_by(models.NotificationQueue.scheduled_at.asc()).all()


def _notification(db_session, key):
    return db_session.query(models.WebinarNotification).filter(models.WebinarNotification.template_key == key).one()


def test_only_due_rows_are_sent(db_session, registered, fake_email):
    stats = process_notification_queue(db_session, email_service=fake_email, now=NOW)

    assert stats == {"processed": 1, "sent": 1, "skipped": 0, "failed": 0}
    assert [m["subject"] for m in fake_email.sent] == ["You're registered: Growth Webinar"]
    assert "Nino" in fake_email.sent[0]["html"]

    log = db_session.query(models.EmailLog).one()
    assert log.type == models.EmailType.NOTIFICATION
    assert log.message_id == "msg-1"
    assert log.get_metadata()["template_key"] == "registration-confirmation"
    assert log.get_metadata()["locale"] == "en"
    assert [item.status for item in _queue(db_session)].count(models.QueueStatus.PENDING) == 6


def test_follow_ups_follow_attendance_conditions(db_session, registered, fake_email):
    process_notification_queue(db_session, email_service=fake_email, now=NOW)

    stats = process_notification_queue(db_session, email_service=fake_email, now=NOW + timedelta(days=3))

    assert stats == {"processed": 6, "sent": 4, "skipped": 2, "failed": 0}
    skipped = [item for item in _queue(db_session) if item.status == models.QueueStatus.SKIPPED]
    assert {item.last_error for item in skipped} == {"Conditions not met"}
    subjects = [m["subject"] for m in fake_email.sent]
    assert subjects[1:4] == [
        "Tomorrow: Growth Webinar",
        "Starting in 1 hour: Growth Webinar",
        "Starting in 15 minutes: Growth Webinar",
    ]


def test_edits_after_queueing_are_respected(db_session, registered, fake_email):
    confirmation = _notification(db_session, "registration-confirmation")
    confirmation.deleted_at = NOW
    reminder = _notification(db_session, "reminder-24h")
    reminder.is_active = False
    db_session.commit()

    stats = process_notification_queue(db_session, email_service=fake_email, now=NOW + timedelta(days=1, minutes=1))

    assert stats["skipped"] == 2
    assert stats["sent"] == 0
    errors = sorted(item.last_error for item in _queue(db_session) if item.status == models.QueueStatus.SKIPPED)
    assert errors == ["Notification deleted", "Notification disabled"]
    assert fake_email.sent == []


def test_send_failure_marks_row_failed_and_logs(db_session, registered, fake_email):
    fake_email.success = False

    stats = process_notification_queue(db_session, email_service=fake_email, now=NOW)

    assert stats["failed"] == 1
    item = _queue(db_session)[0]
    assert item.status == models.QueueStatus.FAILED
    assert item.attempts == 1
    assert item.last_error == "provider rejected"
    log = db_session.query(models.EmailLog).one()
    assert log.status == models.EmailStatus.FAILED
    assert log.error == "provider rejected"


def test_inline_content_and_tag_action(db_session, webinar_factory, registration_factory, contact_factory, fake_email):
    webinar = webinar_factory()
    contact = contact_factory("nino@example.com")
    db_session.add(models.WebinarNotification(
        webinar_id=webinar.id,
        trigger_type=models.WebinarTrigger.AFTER_REGISTRATION,
        subject="Welcome {{first_name}}",
        body_html="<p>See you at {{webinar_title}}</p>",
        actions=[{"type": "TAG_CONTACT", "tag": "registered"}],
    ))
    db_session.commit()
    registration = registration_factory(webinar, "nino@example.com", first_name="Nino")
    webinar_notifications.queue_registration_notifications(db_session, registration, now=NOW)

    stats = process_notification_queue(db_session, email_service=fake_email, now=NOW)

    assert stats["sent"] == 1
    assert fake_email.sent[0]["subject"] == "Welcome Nino"
    assert fake_email.sent[0]["html"] == "<p>See you at Growth Webinar</p>"
    db_session.refresh(contact)
    assert [t.name for t in contact.tags] == ["registered"]


@pytest.fixture
def sms_registration(db_session, webinar_factory, registration_factory):
    webinar = webinar_factory()
    db_session.add(models.WebinarNotification(
        webinar_id=webinar.id,
        trigger_type=models.WebinarTrigger.AFTER_REGISTRATION,
        channel=models.Channel.SMS,
        body_text="Hi {{first_name}}, {{webinar_title}} is on",
    ))
    db_session.commit()
    return lambda **kwargs: registration_factory(webinar, "nino@example.com", first_name="Nino", **kwargs)


def test_sms_notification_is_sent(db_session, sms_registration, fake_email, fake_sms):
    registration = sms_registration(phone="555 123 456")
    webinar_notifications.queue_registration_notifications(db_session, registration, now=NOW)

    stats = NotificationService(db_session, email_service=fake_email, sms_client=fake_sms).process_queue(now=NOW)

    assert stats["sent"] == 1
    assert fake_sms.sent == [{"numbers": ["995555123456"], "text": "Hi Nino, Growth Webinar is on"}]
    assert fake_email.sent == []
    log = db_session.query(models.SmsLog).one()
    assert log.type == models.SmsType.WEBINAR
    assert log.reference_type == "webinar_notification"


def test_sms_notification_skips(db_session, monkeypatch, sms_registration, fake_email, fake_sms):
    from academy.utils.feature_flags import refresh_feature_flag_cache

    registration = sms_registration()
    webinar_notifications.queue_registration_notifications(db_session, registration, now=NOW)
    service = NotificationService(db_session, email_service=fake_email, sms_client=fake_sms)

    service.process_queue(now=NOW)
    assert _queue(db_session)[0].last_error == "No phone number"

    item = _queue(db_session)[0]
    item.status = models.QueueStatus.PENDING
    db_session.commit()
    monkeypatch.setenv("FEATURE_SMS_ENABLED", "false")
    refresh_feature_flag_cache()

    service.process_queue(now=NOW)
    assert _queue(db_session)[0].last_error == "SMS disabled"
    assert fake_sms.sent == []


def test_course_welcome_and_locale_fallback(db_session, user_factory, course_factory, fake_email):
    learner = user_factory("learner@example.com", preferred_locale="ka")
    course = course_factory()
    course_notifications.create_default_course_notifications(db_session, course)
    progress_service.enroll(db_session, learner, course, now=NOW)

    stats = process_notification_queue(db_session, email_service=fake_email, now=NOW + timedelta(days=2))

    assert stats["sent"] == 2
    locales = {
        log.get_metadata()["template_key"]: log.get_metadata()["locale"]
        for log in db_session.query(models.EmailLog).all()
    }
    # enrollment-nudge has no Georgian variant
    assert locales == {"enrollment-welcome": "ka", "enrollment-nudge": "en"}
    assert "Python Basics" in fake_email.sent[0]["subject"]


def test_registrant_without_account_gets_georgian(db_session, webinar_factory, session_factory, registration_factory, fake_email):
    webinar = webinar_factory()
    webinar_notifications.create_default_notifications(db_session, webinar)
    session = session_factory(webinar, NOW + timedelta(days=2))
    registration = registration_factory(webinar, "guest@example.com", session=session, first_name="Nino")
    webinar_notifications.queue_registration_notifications(db_session, registration, now=NOW)

    process_notification_queue(db_session, email_service=fake_email, now=NOW)

    assert [m["subject"] for m in fake_email.sent] == ["თქვენ დარეგისტრირდით: Growth Webinar"]
    assert db_session.query(models.EmailLog).one().get_metadata()["locale"] == "ka"
