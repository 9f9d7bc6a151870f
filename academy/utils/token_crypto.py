"""
Token helpers for public links.

Responsibilities:
- Generate registration access tokens (random hex)
- Sign and verify unsubscribe tokens: url-safe base64 of ``email`` plus an
  HMAC-SHA256 signature keyed by UNSUBSCRIBE_SECRET
- Generate certificate verification codes
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import os
import secrets
import string
from typing import Optional


_CERTIFICATE_ALPHABET = string.ascii_uppercase + string.digits


def generate_access_token() -> str:
    """Return a 64 char hex token (32 random bytes) for webinar registrations."""
    return secrets.token_hex(32)


def generate_verification_code(length: int = 12) -> str:
    """Return an upper-case alphanumeric certificate verification code."""
    return "".join(secrets.choice(_CERTIFICATE_ALPHABET) for _ in range(length))


def _unsubscribe_secret() -> bytes:
    secret = os.getenv("UNSUBSCRIBE_SECRET") or os.getenv("CRON_SECRET") or "dev-unsubscribe-secret"
    return secret.encode("utf-8")


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _sign(payload: str) -> str:
    digest = hmac.new(_unsubscribe_secret(), payload.encode("utf-8"), hashlib.sha256).digest()
    return _b64encode(digest)


def create_unsubscribe_token(email: str) -> str:
    """Return ``<payload>.<signature>`` for the lower-cased email."""
    payload = _b64encode(email.strip().lower().encode("utf-8"))
    return f"{payload}.{_sign(payload)}"


def verify_unsubscribe_token(token: Optional[str]) -> Optional[str]:
    """Return the email encoded in ``token`` or None when invalid."""
    if not token or "." not in token:
        return None
    payload, signature = token.rsplit(".", 1)
    if not payload or not signature:
        return None
    if not hmac.compare_digest(_sign(payload), signature):
        return None
    try:
        email = _b64decode(payload).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return None
    return email or None
