import pytest

from academy.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError, to_http
from academy.utils.feature_flags import refresh_feature_flag_cache
from academy.workers import cron_jobs


def test_to_http_maps_status_codes():
    assert to_http(NotFoundError("Course not found")).status_code == 404
    assert to_http(ValidationError("bad")).status_code == 400
    assert to_http(PermissionDeniedError("nope")).status_code == 403
    assert to_http(ConflictError("dup")).status_code == 409


def test_to_http_detail_carries_extra_fields():
    plain = to_http(NotFoundError("Course not found"))
    assert plain.detail == "Course not found"

    rich = to_http(ConflictError("Already enrolled", enrollment_id="abc"))
    assert rich.detail == {"message": "Already enrolled", "enrollment_id": "abc"}


def test_unknown_job_raises_key_error():
    with pytest.raises(KeyError):
        cron_jobs.run_job("defragment-everything", db=object())


def test_cli_rejects_unknown_job():
    with pytest.raises(SystemExit):
        cron_jobs.main(["defragment-everything"])


def test_disabled_features_skip_jobs(monkeypatch):
    monkeypatch.setenv("FEATURE_SMS_ENABLED", "false")
    monkeypatch.setenv("FEATURE_CAMPAIGNS_ENABLED", "false")
    refresh_feature_flag_cache()

    assert cron_jobs.run_job("process-sms-queue", db=object()) == {"skipped": True, "reason": "SMS is disabled"}
    assert cron_jobs.run_job("process-campaigns", db=object())["skipped"] is True


def test_job_registry_names():
    assert set(cron_jobs.JOBS) == {
        "process-notifications",
        "course-inactivity",
        "generate-sessions",
        "sync-suppressions",
        "process-sms-queue",
        "process-campaigns",
    }
