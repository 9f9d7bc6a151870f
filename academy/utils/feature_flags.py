"""Feature flag helpers for runtime configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Literal, TypedDict, cast


FeatureFlagKey = Literal[
    "webinar_chat_enabled",
    "sms_enabled",
    "campaigns_enabled",
    "course_notifications_enabled",
]


class FeatureFlagValues(TypedDict):
    webinar_chat_enabled: bool
    sms_enabled: bool
    campaigns_enabled: bool
    course_notifications_enabled: bool


@dataclass(frozen=True)
class FeatureFlagDefinition:
    env_var: str
    default: bool


_FEATURE_FLAG_DEFINITIONS: Dict[FeatureFlagKey, FeatureFlagDefinition] = {
    "webinar_chat_enabled": FeatureFlagDefinition("FEATURE_WEBINAR_CHAT_ENABLED", True),
    "sms_enabled": FeatureFlagDefinition("FEATURE_SMS_ENABLED", True),
    "campaigns_enabled": FeatureFlagDefinition("FEATURE_CAMPAIGNS_ENABLED", True),
    "course_notifications_enabled": FeatureFlagDefinition("FEATURE_COURSE_NOTIFICATIONS_ENABLED", True),
}


def _normalize_bool(value: str | None, default: bool = True) -> bool:
    """Return normalized boolean from environment-style value."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"", "0", "false", "no", "off"}:
        return False
    if normalized in {"1", "true", "yes", "on"}:
        return True
    return default


@lru_cache(maxsize=None)
def get_feature_flags() -> FeatureFlagValues:
    """Return the cached feature flag state sourced from the environment."""
    values: Dict[FeatureFlagKey, bool] = {}
    for key, definition in _FEATURE_FLAG_DEFINITIONS.items():
        values[key] = _normalize_bool(os.getenv(definition.env_var), default=definition.default)
    return cast(FeatureFlagValues, values)


def is_feature_enabled(flag: FeatureFlagKey) -> bool:
    """Return whether the supplied feature flag evaluates to true."""
    return get_feature_flags()[flag]


def webinar_chat_enabled() -> bool:
    """Global toggle for live chat posting on webinars."""
    return is_feature_enabled("webinar_chat_enabled")


def sms_enabled() -> bool:
    """Global toggle for outbound SMS (direct sends, queue drain, SMS notifications)."""
    return is_feature_enabled("sms_enabled")


def campaigns_enabled() -> bool:
    return is_feature_enabled("campaigns_enabled")


def course_notifications_enabled() -> bool:
    return is_feature_enabled("course_notifications_enabled")


def refresh_feature_flag_cache() -> None:
    """Invalidate cached feature flag values (useful for tests)."""
    get_feature_flags.cache_clear()
