from datetime import datetime, timedelta, timezone

import pytest

from academy.db import models
from academy.errors import ValidationError
from academy.services import campaign_service

NOW = datetime(2026, 7, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def campaign_factory(db_session):
    def _create(**kwargs):
        kwargs.setdefault("name", "Summer launch")
        kwargs.setdefault("subject", "Hi {{firstName}}")
        kwargs.setdefault("html_content", "<p>Hello {{fullName}}</p><a href=\"{{unsubscribeUrl}}\">unsubscribe</a>")
        kwargs.setdefault("status", models.CampaignStatus.DRAFT)
        campaign = models.Campaign(**kwargs)
        db_session.add(campaign)
        db_session.commit()
        db_session.refresh(campaign)
        return campaign
    return _create


@pytest.fixture
def audience(contact_factory, tag_factory):
    customers = tag_factory("customers")
    return {
        "tag": customers,
        "nino": contact_factory("nino@example.com", tags=[customers], first_name="Nino", last_name="Beridze"),
        "giorgi": contact_factory("giorgi@example.com", first_name="Giorgi"),
        "left": contact_factory("left@example.com", tags=[customers], marketing_status=models.MarketingStatus.UNSUBSCRIBED),
        "archived": contact_factory("old@example.com", status=models.ContactStatus.ARCHIVED),
    }


def _recipients(db_session, campaign):
    return db_session.query(models.CampaignRecipient).filter(
        models.CampaignRecipient.campaign_id == campaign.id,
    ).order_by(models.CampaignRecipient.email).all()


def test_prepare_snapshots_subscribed_audience(db_session, campaign_factory, audience):
    campaign = campaign_factory()

    result = campaign_service.prepare_campaign(db_session, campaign, now=NOW)

    assert result["recipients"] == 2
    assert campaign.status == models.CampaignStatus.SENDING
    assert campaign.started_at == NOW
    recipients = _recipients(db_session, campaign)
    assert [r.email for r in recipients] == ["giorgi@example.com", "nino@example.com"]
    assert recipients[1].variables["fullName"] == "Nino Beridze"
    assert recipients[1].variables["unsubscribeUrl"]


def test_prepare_filters_by_tag(db_session, campaign_factory, audience):
    campaign = campaign_factory(audience_tag_ids=[str(audience["tag"].id)])
    assert campaign_service.prepare_campaign(db_session, campaign)["recipients"] == 1
    assert [r.email for r in _recipients(db_session, campaign)] == ["nino@example.com"]


def test_prepare_rejects_empty_audience_and_wrong_status(db_session, campaign_factory):
    with pytest.raises(ValidationError, match="audience is empty"):
        campaign_service.prepare_campaign(db_session, campaign_factory())
    with pytest.raises(ValidationError):
        campaign_service.prepare_campaign(db_session, campaign_factory(status=models.CampaignStatus.COMPLETED))


def test_process_sends_personalized_mail_and_logs(db_session, campaign_factory, audience, fake_email):
    campaign = campaign_factory(from_name="Academy")
    campaign_service.prepare_campaign(db_session, campaign, now=NOW)

    result = campaign_service.process_campaign(db_session, campaign, sender=fake_email, now=NOW)

    assert result == {"success": True, "sent": 2, "failed": 0, "message": "Campaign completed. Sent: 2, Failed: 0"}
    assert campaign.status == models.CampaignStatus.COMPLETED
    assert campaign.sent_count == 2
    subjects = sorted(m["subject"] for m in fake_email.sent)
    assert subjects == ["Hi Giorgi", "Hi Nino"]
    nino_mail = next(m for m in fake_email.sent if m["to"] == "nino@example.com")
    assert "Hello Nino Beridze" in nino_mail["html"]
    assert nino_mail["headers"]["List-Unsubscribe"].startswith("<")
    assert nino_mail["from_name"] == "Academy"

    logs = db_session.query(models.EmailLog).filter(models.EmailLog.reference_id == campaign.id).all()
    assert len(logs) == 2
    assert {log.type for log in logs} == {models.EmailType.CAMPAIGN}

    stats = campaign_service.campaign_stats(db_session, campaign)
    assert stats["total_recipients"] == 2
    assert stats["recipients"] == {"pending": 0, "sent": 2, "failed": 0}
    assert stats["emails"]["sent"] == 2


def test_failed_sends_are_recorded(db_session, campaign_factory, audience, fake_email):
    fake_email.success = False
    campaign = campaign_factory()
    campaign_service.prepare_campaign(db_session, campaign)
    result = campaign_service.process_campaign(db_session, campaign, sender=fake_email)

    assert result["failed"] == 2
    assert result["sent"] == 0
    assert {r.status for r in _recipients(db_session, campaign)} == {models.RecipientStatus.FAILED}
    assert _recipients(db_session, campaign)[0].error == "provider rejected"


def test_unconfigured_sender_pauses_campaign(db_session, campaign_factory, audience, fake_email):
    fake_email.configured = False
    campaign = campaign_factory()
    campaign_service.prepare_campaign(db_session, campaign)
    result = campaign_service.process_campaign(db_session, campaign, sender=fake_email)

    assert result["success"] is False
    assert campaign.status == models.CampaignStatus.PAUSED


def test_stats_count_opened_as_delivered(db_session, campaign_factory, audience, fake_email):
    campaign = campaign_factory()
    campaign_service.prepare_campaign(db_session, campaign)
    campaign_service.process_campaign(db_session, campaign, sender=fake_email)
    logs = db_session.query(models.EmailLog).filter(models.EmailLog.reference_id == campaign.id).all()
    logs[0].status = models.EmailStatus.OPENED
    logs[1].status = models.EmailStatus.BOUNCED
    db_session.commit()

    emails = campaign_service.campaign_stats(db_session, campaign)["emails"]
    assert emails == {"sent": 2, "delivered": 1, "opened": 1, "bounced": 1, "spam": 0}


def test_cron_starts_due_campaigns_and_cancels_empty_ones(db_session, campaign_factory, audience, fake_email):
    due = campaign_factory(status=models.CampaignStatus.SCHEDULED, scheduled_at=NOW - timedelta(minutes=5))
    later = campaign_factory(status=models.CampaignStatus.SCHEDULED, scheduled_at=NOW + timedelta(days=1))
    empty = campaign_factory(
        status=models.CampaignStatus.SCHEDULED,
        scheduled_at=NOW - timedelta(minutes=1),
        audience_tag_ids=["00000000-0000-0000-0000-000000000000"],
    )

    result = campaign_service.process_sending_campaigns(db_session, sender=fake_email, now=NOW)

    assert result["processed"] == 1
    assert result["campaigns"][0]["campaign_id"] == str(due.id)
    db_session.refresh(due)
    db_session.refresh(later)
    db_session.refresh(empty)
    assert due.status == models.CampaignStatus.COMPLETED
    assert later.status == models.CampaignStatus.SCHEDULED
    assert empty.status == models.CampaignStatus.CANCELLED


# API

def _payload(**overrides):
    payload = {"name": "Autumn", "subject": "Hello {{firstName}}", "html_content": "<p>Hi</p>"}
    payload.update(overrides)
    return payload


def test_campaign_api_lifecycle(client, db_session, monkeypatch, admin_headers, audience, fake_email):
    monkeypatch.setattr(campaign_service, "get_marketing_email_service", lambda: fake_email)

    resp = client.post("/admin/campaigns/", json=_payload(audience_tag_ids=[str(audience["tag"].id)]), headers=admin_headers)
    assert resp.status_code == 201
    campaign_id = resp.json()["id"]
    assert resp.json()["status"] == "DRAFT"

    resp = client.put(f"/admin/campaigns/{campaign_id}", json={"scheduled_at": "2030-01-01T09:00:00Z"}, headers=admin_headers)
    assert resp.json()["status"] == "SCHEDULED"
    resp = client.put(f"/admin/campaigns/{campaign_id}", json={"scheduled_at": None}, headers=admin_headers)
    assert resp.json()["status"] == "DRAFT"

    assert client.post(f"/admin/campaigns/{campaign_id}/pause", headers=admin_headers).status_code == 400

    resp = client.post(f"/admin/campaigns/{campaign_id}/send", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["sent"] == 1
    assert [m["to"] for m in fake_email.sent] == ["nino@example.com"]

    stats = client.get(f"/admin/campaigns/{campaign_id}/stats", headers=admin_headers).json()
    assert stats["status"] == "COMPLETED"
    assert stats["recipients"]["sent"] == 1

    assert client.put(f"/admin/campaigns/{campaign_id}", json={"name": "Renamed"}, headers=admin_headers).status_code == 400
    assert client.post(f"/admin/campaigns/{campaign_id}/cancel", headers=admin_headers).status_code == 400
    assert client.delete(f"/admin/campaigns/{campaign_id}", headers=admin_headers).status_code == 204


def test_campaign_api_send_empty_audience_and_cancel(client, admin_headers):
    campaign_id = client.post("/admin/campaigns/", json=_payload(), headers=admin_headers).json()["id"]

    resp = client.post(f"/admin/campaigns/{campaign_id}/send", headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Campaign audience is empty"

    resp = client.post(f"/admin/campaigns/{campaign_id}/cancel", headers=admin_headers)
    assert resp.json()["status"] == "CANCELLED"
    assert client.get("/admin/campaigns/", params={"status_filter": "CANCELLED"}, headers=admin_headers).json()[0]["id"] == campaign_id


def test_campaigns_feature_flag(client, monkeypatch, admin_headers):
    from academy.utils.feature_flags import refresh_feature_flag_cache

    campaign_id = client.post("/admin/campaigns/", json=_payload(), headers=admin_headers).json()["id"]
    monkeypatch.setenv("FEATURE_CAMPAIGNS_ENABLED", "false")
    refresh_feature_flag_cache()

    resp = client.post(f"/admin/campaigns/{campaign_id}/send", headers=admin_headers)
    assert resp.status_code == 403
