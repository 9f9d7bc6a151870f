"""
URL utilities for building absolute links in emails and notifications.

Primary source: APP_BASE_URL (e.g., https://academy.example.ge)
Fallback: APP_HOST for compatibility (adds scheme heuristically if missing).
"""
from __future__ import annotations

import os
from urllib.parse import urlencode


def _add_scheme_if_missing(host: str) -> str:
    h = host.strip()
    if not h:
        return "http://localhost:3000"
    if h.startswith("http://") or h.startswith("https://"):
        return h
    lower = h.lower()
    if lower.startswith("localhost") or lower.startswith("127.0.0.1"):
        return f"http://{h}"
    return f"https://{h}"


def _strip_trailing_slash(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


def get_app_base_url() -> str:
    """Return normalized base URL for the public site.

    Precedence:
    1. APP_BASE_URL (recommended)
    2. APP_HOST (legacy), scheme added if missing
    Defaults to http://localhost:3000 if neither is set.
    """
    base = os.getenv("APP_BASE_URL")
    if base and base.strip():
        return _strip_trailing_slash(base.strip())
    host = os.getenv("APP_HOST")
    if host and host.strip():
        full = _add_scheme_if_missing(host.strip())
        return _strip_trailing_slash(full)
    return "http://localhost:3000"


def build_watch_url(slug: str, access_token: str) -> str:
    """Link a registrant uses to enter the webinar room."""
    qs = urlencode({"token": access_token})
    return f"{get_app_base_url()}/webinar/{slug}/watch?{qs}"


def build_replay_url(slug: str, access_token: str) -> str:
    qs = urlencode({"token": access_token, "replay": "1"})
    return f"{get_app_base_url()}/webinar/{slug}/watch?{qs}"


def build_course_url(slug: str) -> str:
    return f"{get_app_base_url()}/courses/{slug}"


def build_course_continue_url(slug: str, part_id: str | None = None) -> str:
    if not part_id:
        return f"{build_course_url(slug)}/learn"
    return f"{build_course_url(slug)}/learn/{part_id}"


def build_certificate_url(code: str) -> str:
    return f"{get_app_base_url()}/certificates/{code}"


def build_unsubscribe_link(token: str) -> str:
    qs = urlencode({"token": token})
    return f"{get_app_base_url()}/unsubscribe?{qs}"


def build_unsubscribe_url(email: str) -> str:
    """Signed one-click unsubscribe link for ``email``."""
    from academy.utils.token_crypto import create_unsubscribe_token

    return build_unsubscribe_link(create_unsubscribe_token(email))
