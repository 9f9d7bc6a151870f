import base64
import uuid
from datetime import datetime, timezone

import pytest

from academy.db import models
from academy.errors import NotFoundError, ValidationError
from academy.services import suppression_service, webhook_service
from academy.utils.token_crypto import create_unsubscribe_token


class FakeSuppressionClient:
    def __init__(self, remote=None, configured=True, fail=False):
        self.remote = list(remote or [])
        self.configured = configured
        self.fail = fail
        self.pushed = []
        self.deleted = []

    def is_configured(self):
        return self.configured

    def list_suppressions(self):
        if self.fail:
            raise RuntimeError("provider unavailable")
        return list(self.remote)

    def add_suppressions(self, emails):
        self.pushed.extend(emails)
        return list(emails), []

    def delete_suppression(self, email):
        self.deleted.append(email)
        return True


@pytest.fixture(autouse=True)
def _no_provider_tokens(monkeypatch):
    for var in ("POSTMARK_SERVER_TOKEN", "POSTMARK_MARKETING_SERVER_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("UNSUBSCRIBE_SECRET", "test-unsubscribe-secret")


def test_sync_pulls_and_pushes(db_session, contact_factory):
    contact_factory("bounced@example.com")
    contact_factory("already@example.com", marketing_status=models.MarketingStatus.SUPPRESSED)
    contact_factory("left@example.com", marketing_status=models.MarketingStatus.UNSUBSCRIBED)
    client = FakeSuppressionClient(remote=[
        {"EmailAddress": "Bounced@example.com", "SuppressionReason": "HardBounce", "CreatedAt": "2026-03-01T10:00:00Z"},
        {"EmailAddress": "already@example.com", "SuppressionReason": "SpamComplaint"},
        {"EmailAddress": "stranger@example.com", "SuppressionReason": "ManualSuppression"},
    ])

    result = suppression_service.sync_suppressions(db_session, client)

    assert result["success"] is True
    assert result["from_provider"] == {"total": 3, "new_suppressions": 1, "already_suppressed": 1}
    assert result["to_provider"] == {"total": 3, "pushed": 1, "errors": 0}
    assert client.pushed == ["left@example.com"]

    bounced = db_session.query(models.Contact).filter(models.Contact.email == "bounced@example.com").one()
    assert bounced.marketing_status == models.MarketingStatus.SUPPRESSED
    assert bounced.suppression_reason == models.SuppressionReason.HARD_BOUNCE
    assert bounced.suppressed_at == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)

    audit_row = db_session.query(models.AuditLog).filter(models.AuditLog.action_type == "suppression_sync").one()
    assert audit_row.status == "success"


def test_sync_without_token_or_with_provider_failure(db_session):
    result = suppression_service.sync_suppressions(db_session, FakeSuppressionClient(configured=False))
    assert result["success"] is False
    assert result["errors"] == ["Marketing server token not configured"]

    result = suppression_service.sync_suppressions(db_session, FakeSuppressionClient(fail=True))
    assert result["success"] is False
    assert result["errors"] == ["provider unavailable"]


def test_suppression_dump_compares_counts(db_session, contact_factory):
    contact_factory("a@example.com")
    contact_factory("b@example.com", marketing_status=models.MarketingStatus.UNSUBSCRIBED)
    contact_factory("c@example.com", marketing_status=models.MarketingStatus.SUPPRESSED)
    client = FakeSuppressionClient(remote=[{"EmailAddress": "b@example.com"}, {"EmailAddress": "c@example.com"}])

    dump = suppression_service.suppression_dump(db_session, client)

    assert dump["local"] == {"total": 3, "unsubscribed": 1, "suppressed": 1}
    assert dump["provider"] == {"total": 2}
    assert dump["synced"] is True


def test_resubscribe_clears_suppression(db_session, contact_factory):
    contact = contact_factory(
        "back@example.com",
        marketing_status=models.MarketingStatus.SUPPRESSED,
        suppression_reason=models.SuppressionReason.HARD_BOUNCE,
    )
    client = FakeSuppressionClient()

    suppression_service.resubscribe(db_session, contact.id, client=client)

    assert contact.marketing_status == models.MarketingStatus.SUBSCRIBED
    assert contact.suppression_reason is None
    assert client.deleted == ["back@example.com"]


def test_spam_complaints_cannot_resubscribe(db_session, contact_factory):
    contact = contact_factory(
        "angry@example.com",
        marketing_status=models.MarketingStatus.SUPPRESSED,
        suppression_reason=models.SuppressionReason.SPAM_COMPLAINT,
    )
    with pytest.raises(ValidationError):
        suppression_service.resubscribe(db_session, contact.id, client=FakeSuppressionClient())
    with pytest.raises(NotFoundError):
        suppression_service.resubscribe(db_session, uuid.uuid4(), client=FakeSuppressionClient())


def test_resubscribe_endpoint(client, admin_headers, contact_factory):
    contact = contact_factory(
        "left@example.com",
        marketing_status=models.MarketingStatus.UNSUBSCRIBED,
    )
    resp = client.post(f"/admin/contacts/{contact.id}/resubscribe", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["marketing_status"] == models.MarketingStatus.SUBSCRIBED


# Unsubscribe

def test_unsubscribe_flow(client, db_session, contact_factory):
    contact = contact_factory("nino@example.com")
    token = create_unsubscribe_token("nino@example.com")

    info = client.get("/unsubscribe", params={"token": token})
    assert info.status_code == 200
    assert info.json() == {"email": "n**o@example.com"}

    resp = client.post("/unsubscribe", json={"token": token, "reason": "Too many emails"})
    assert resp.status_code == 200
    assert resp.json()["message"] == "Successfully unsubscribed"
    db_session.refresh(contact)
    assert contact.marketing_status == models.MarketingStatus.UNSUBSCRIBED
    assert contact.unsubscribe_reason == "Too many emails"

    again = client.post("/unsubscribe", json={"token": token}).json()
    assert again["already_unsubscribed"] is True


def test_unsubscribe_unknown_address_and_bad_token(client):
    token = create_unsubscribe_token("nobody@example.com")
    resp = client.post("/unsubscribe", json={"token": token})
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    assert client.get("/unsubscribe", params={"token": "garbage"}).status_code == 400
    assert client.post("/unsubscribe", json={"token": token + "x"}).status_code == 400


def test_unsubscribe_pushes_to_provider(db_session, contact_factory):
    contact_factory("nino@example.com")
    client = FakeSuppressionClient()
    suppression_service.unsubscribe(db_session, create_unsubscribe_token("nino@example.com"), client=client)
    assert client.pushed == ["nino@example.com"]


# Postmark webhooks

def _event(record_type, message_id="pm-1", **fields):
    return {"RecordType": record_type, "MessageID": message_id, **fields}


def test_delivery_and_open_update_email_log(client, db_session, email_log_factory):
    log = email_log_factory("nino@example.com", message_id="pm-1")

    resp = client.post("/webhooks/postmark", json=_event("Delivery", DeliveredAt="2026-04-01T08:00:00Z"))
    assert resp.json() == {"received": True, "processed": True}
    db_session.refresh(log)
    assert log.status == models.EmailStatus.DELIVERED
    assert log.delivered_at == datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)

    client.post("/webhooks/postmark", json=_event("Open", FirstOpen=True, ReceivedAt="2026-04-01T09:00:00Z"))
    db_session.refresh(log)
    assert log.status == models.EmailStatus.OPENED
    assert log.opened_at == datetime(2026, 4, 1, 9, 0, tzinfo=timezone.utc)


def test_click_events_accumulate(client, db_session, email_log_factory):
    log = email_log_factory("nino@example.com", message_id="pm-1")
    for link in ("https://example.com/a", "https://example.com/b"):
        client.post("/webhooks/postmark", json=_event("Click", OriginalLink=link, ReceivedAt="2026-04-01T09:00:00Z"))
    db_session.refresh(log)
    assert [c["link"] for c in log.get_metadata()["clicks"]] == ["https://example.com/a", "https://example.com/b"]


def test_hard_bounce_suppresses_contact(client, db_session, contact_factory, email_log_factory):
    contact = contact_factory("gone@example.com")
    log = email_log_factory("gone@example.com", message_id="pm-9")

    event = _event("Bounce", "pm-9", Type="HardBounce", TypeCode=1, Name="Hard bounce",
                   Email="gone@example.com", BouncedAt="2026-04-02T10:00:00Z")
    assert client.post("/webhooks/postmark", json=event).json()["processed"] is True

    db_session.refresh(log)
    db_session.refresh(contact)
    assert log.status == models.EmailStatus.BOUNCED
    assert log.bounce_type == "HardBounce (1): Hard bounce"
    assert contact.marketing_status == models.MarketingStatus.SUPPRESSED
    assert contact.suppression_reason == models.SuppressionReason.HARD_BOUNCE

    # A later open does not hide the bounce
    client.post("/webhooks/postmark", json=_event("Open", "pm-9", FirstOpen=True))
    db_session.refresh(log)
    assert log.status == models.EmailStatus.BOUNCED


def test_soft_bounce_keeps_contact_subscribed(client, db_session, contact_factory, email_log_factory):
    contact = contact_factory("full@example.com")
    email_log_factory("full@example.com", message_id="pm-3")
    client.post("/webhooks/postmark", json=_event("Bounce", "pm-3", Type="SoftBounce", Email="full@example.com"))
    db_session.refresh(contact)
    assert contact.marketing_status == models.MarketingStatus.SUBSCRIBED


def test_spam_complaint_suppresses_contact(db_session, contact_factory, email_log_factory):
    contact = contact_factory("angry@example.com")
    log = email_log_factory("angry@example.com", message_id="pm-5", contact_id=contact.id)

    webhook_service.process_postmark_event(db_session, _event("SpamComplaint", "pm-5"))

    assert log.status == models.EmailStatus.SPAM_COMPLAINT
    assert contact.suppression_reason == models.SuppressionReason.SPAM_COMPLAINT


def test_unknown_message_and_record_type(client, email_log_factory):
    assert client.post("/webhooks/postmark", json=_event("Delivery", "missing")).json()["processed"] is False
    email_log_factory("nino@example.com", message_id="pm-1")
    assert client.post("/webhooks/postmark", json=_event("SubscriptionChange")).json()["processed"] is False


def test_webhook_basic_auth(client, monkeypatch, email_log_factory):
    email_log_factory("nino@example.com", message_id="pm-1")
    monkeypatch.setenv("POSTMARK_WEBHOOK_USERNAME", "hooks")
    monkeypatch.setenv("POSTMARK_WEBHOOK_PASSWORD", "s3cret")

    assert client.post("/webhooks/postmark", json=_event("Delivery")).status_code == 401
    bad = "Basic " + base64.b64encode(b"hooks:wrong").decode()
    assert client.post("/webhooks/postmark", json=_event("Delivery"), headers={"Authorization": bad}).status_code == 401
    good = "Basic " + base64.b64encode(b"hooks:s3cret").decode()
    resp = client.post("/webhooks/postmark", json=_event("Delivery"), headers={"Authorization": good})
    assert resp.status_code == 200
