from academy.db import models
from academy.services import sms_service


def _logs(db_session):
    return db_session.query(models.SmsLog).order_by(models.SmsLog.created_at.asc()).all()


def test_send_sms_logs_and_updates_contact(db_session, contact_factory, fake_sms):
    contact = contact_factory("nino@example.com", phone="555 11 22 33")

    result = sms_service.send_sms(db_session, "+995 555 11 22 33", "Your code is 1234", contact_id=contact.id, client=fake_sms)

    assert result["success"] is True
    assert result["provider_sms_id"] == "sms-1"
    assert fake_sms.sent == [{"numbers": ["995555112233"], "text": "Your code is 1234"}]
    log = _logs(db_session)[0]
    assert log.id == result["sms_log_id"]
    assert log.status == models.SmsStatus.SENT
    assert log.sent_at is not None
    db_session.refresh(contact)
    assert contact.total_sms_received == 1
    assert contact.last_sms_received_at is not None


def test_send_sms_rejects_before_calling_provider(db_session, fake_sms):
    assert sms_service.send_sms(db_session, "12345", "hi", client=fake_sms)["error"] == "Invalid phone number"

    fake_sms.configured = False
    assert sms_service.send_sms(db_session, "555112233", "hi", client=fake_sms)["error"] == "SMS not configured"

    assert fake_sms.sent == []
    assert _logs(db_session) == []


def test_provider_failure_marks_log_as_error(db_session, fake_sms):
    fake_sms.fail_numbers = {"995555000000"}
    result = sms_service.send_sms(db_session, "555000000", "hi", client=fake_sms)

    assert result["success"] is False
    assert result["error"] == "Provider rejected number"
    log = _logs(db_session)[0]
    assert log.status == models.SmsStatus.ERROR
    assert log.error == "Provider rejected number"


def test_daily_limit_stops_sending(db_session, fake_sms):
    fake_sms.daily_limit = 1
    assert sms_service.send_sms(db_session, "555112233", "first", client=fake_sms)["success"] is True

    result = sms_service.send_sms(db_session, "555112244", "second", client=fake_sms)

    assert result["success"] is False
    assert result["error"] == "Daily send limit reached"
    assert sms_service.remaining_today(db_session, fake_sms) == 0
    assert len(fake_sms.sent) == 1


def test_campaign_sms_respects_marketing_opt_out(db_session, contact_factory, fake_sms):
    opted_out = contact_factory("quiet@example.com", phone="555998877", sms_marketing_status=models.MarketingStatus.UNSUBSCRIBED)

    result = sms_service.send_sms(
        db_session, opted_out.phone, "Sale!", sms_type=models.SmsType.CAMPAIGN, contact_id=opted_out.id, client=fake_sms,
    )
    assert result["error"] == "Contact is unsubscribed from SMS marketing"

    # Transactional messages still go out
    result = sms_service.send_sms(db_session, opted_out.phone, "Receipt", contact_id=opted_out.id, client=fake_sms)
    assert result["success"] is True


def test_queue_and_process_in_batches(db_session, contact_factory, fake_sms):
    subscribed = contact_factory("a@example.com", phone="555100001")
    opted_out = contact_factory("b@example.com", phone="555100002", sms_marketing_status=models.MarketingStatus.UNSUBSCRIBED)

    queued = sms_service.queue_sms(
        db_session,
        ["555100001", "555100002", "not-a-phone", "555100003"],
        "Autumn sale",
        [subscribed.id, opted_out.id, None, None],
        client=fake_sms,
    )
    assert queued == {"queued": 2, "skipped": 2}
    sms_service.queue_sms(db_session, ["555100004"], "Different text", client=fake_sms)
    assert {log.status for log in _logs(db_session)} == {models.SmsStatus.PENDING}

    summary = sms_service.process_sms_queue(db_session, client=fake_sms)

    assert summary == {"processed": 3, "sent": 3, "failed": 0, "errors": []}
    assert [call["numbers"] for call in fake_sms.sent] == [["995555100001", "995555100003"], ["995555100004"]]
    assert {log.status for log in _logs(db_session)} == {models.SmsStatus.SENT}
    db_session.refresh(subscribed)
    assert subscribed.total_sms_received == 1


def test_failed_batch_is_reported(db_session, fake_sms):
    fake_sms.fail_numbers = {"995555100001"}
    sms_service.queue_sms(db_session, ["555100001", "555100002"], "Hello", client=fake_sms)

    summary = sms_service.process_sms_queue(db_session, client=fake_sms)

    assert summary["failed"] == 2
    assert summary["errors"] == ["Batch failed: Provider rejected number"]
    assert {log.status for log in _logs(db_session)} == {models.SmsStatus.ERROR}


def test_queue_processing_honours_daily_limit(db_session, fake_sms):
    fake_sms.daily_limit = 2
    sms_service.queue_sms(db_session, ["555100001", "555100002", "555100003"], "Hello", client=fake_sms)

    first = sms_service.process_sms_queue(db_session, client=fake_sms)
    second = sms_service.process_sms_queue(db_session, client=fake_sms)

    assert first["sent"] == 2
    assert second["processed"] == 0
    pending = [log for log in _logs(db_session) if log.status == models.SmsStatus.PENDING]
    assert len(pending) == 1


def test_unconfigured_queue_processing(db_session, fake_sms):
    fake_sms.configured = False
    assert sms_service.process_sms_queue(db_session, client=fake_sms)["errors"] == ["SMS not configured"]


# API

def test_sms_api_send_queue_and_logs(client, db_session, monkeypatch, admin_headers, contact_factory, tag_factory, fake_sms):
    from academy.api import sms as sms_api

    monkeypatch.setattr(sms_service, "UBillClient", lambda: fake_sms)
    monkeypatch.setattr(sms_api, "UBillClient", lambda: fake_sms)
    students = tag_factory("students")
    contact_factory("tagged@example.com", tags=[students], phone="555200001")

    resp = client.post("/admin/sms/send", json={"phone": "555200002", "message": "Hi"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    resp = client.post("/admin/sms/send", json={"phone": "nope", "message": "Hi"}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "Invalid phone number"

    resp = client.post("/admin/sms/queue", json={
        "phones": ["555200003"], "tag_ids": [str(students.id)], "message": "Class starts soon",
    }, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["queued"] == 2
    assert resp.json()["segments"] == {"segments": 1, "encoding": "gsm7"}

    pending = client.get("/admin/sms/logs", params={"status_filter": "PENDING"}, headers=admin_headers).json()
    assert sorted(log["phone"] for log in pending) == ["995555200001", "995555200003"]

    status = client.get("/admin/sms/status", headers=admin_headers).json()
    assert status["configured"] is True
    assert status["sent_today"] == 1

    actions = [a["action_type"] for a in client.get("/audits/", headers=admin_headers).json()]
    assert {"sms_send", "sms_queue"} <= set(actions)


def test_sms_api_validation(client, monkeypatch, admin_headers, user_headers):
    from academy.utils.feature_flags import refresh_feature_flag_cache

    assert client.post("/admin/sms/send", json={"phone": "555200002", "message": "Hi", "type": "FAX"}, headers=admin_headers).status_code == 400
    assert client.post("/admin/sms/queue", json={"message": "Hi"}, headers=admin_headers).status_code == 400
    assert client.post("/admin/sms/queue", json={"phones": ["555200002"], "message": "  "}, headers=admin_headers).status_code == 400
    assert client.get("/admin/sms/logs", headers=user_headers).status_code == 403

    monkeypatch.setenv("FEATURE_SMS_ENABLED", "false")
    refresh_feature_flag_cache()
    assert client.post("/admin/sms/send", json={"phone": "555200002", "message": "Hi"}, headers=admin_headers).status_code == 403
