import pytest

from academy.utils.feature_flags import (
    FeatureFlagKey,
    campaigns_enabled,
    course_notifications_enabled,
    get_feature_flags,
    is_feature_enabled,
    refresh_feature_flag_cache,
    sms_enabled,
    webinar_chat_enabled,
)

_ENV_FLAG_MAPPING = {
    "FEATURE_WEBINAR_CHAT_ENABLED": "webinar_chat_enabled",
    "FEATURE_SMS_ENABLED": "sms_enabled",
    "FEATURE_CAMPAIGNS_ENABLED": "campaigns_enabled",
    "FEATURE_COURSE_NOTIFICATIONS_ENABLED": "course_notifications_enabled",
}


@pytest.fixture(autouse=True)
def reset_flags(monkeypatch):
    """Clear env + cached values for each test to avoid cross-contamination."""
    for env_name in _ENV_FLAG_MAPPING:
        monkeypatch.delenv(env_name, raising=False)
    refresh_feature_flag_cache()
    yield
    refresh_feature_flag_cache()


def test_get_feature_flags_defaults_true():
    assert get_feature_flags() == {
        "webinar_chat_enabled": True,
        "sms_enabled": True,
        "campaigns_enabled": True,
        "course_notifications_enabled": True,
    }


@pytest.mark.parametrize("env_name,flag_key", list(_ENV_FLAG_MAPPING.items()))
def test_individual_flag_disabled_via_env(monkeypatch, env_name: str, flag_key: FeatureFlagKey):
    monkeypatch.setenv(env_name, "off")
    refresh_feature_flag_cache()

    assert get_feature_flags()[flag_key] is False
    assert is_feature_enabled(flag_key) is False


@pytest.mark.parametrize("raw_value", ["maybe", "2"])
def test_invalid_value_falls_back_to_default(monkeypatch, raw_value):
    monkeypatch.setenv("FEATURE_SMS_ENABLED", raw_value)
    refresh_feature_flag_cache()
    assert sms_enabled() is True


def test_values_are_cached_until_refresh(monkeypatch):
    assert campaigns_enabled() is True
    monkeypatch.setenv("FEATURE_CAMPAIGNS_ENABLED", "0")
    assert campaigns_enabled() is True
    refresh_feature_flag_cache()
    assert campaigns_enabled() is False


def test_helper_accessors(monkeypatch):
    monkeypatch.setenv("FEATURE_WEBINAR_CHAT_ENABLED", "no")
    monkeypatch.setenv("FEATURE_COURSE_NOTIFICATIONS_ENABLED", "yes")
    refresh_feature_flag_cache()
    assert webinar_chat_enabled() is False
    assert course_notifications_enabled() is True
