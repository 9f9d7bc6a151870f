"""
API dependency helpers.

Resolves the current user from oauth2-proxy headers, guards admin and cron
routes, and loads the common path objects.
"""
import hmac
import logging
import os
import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from academy.api.auth import resolve_identity_from_headers, get_or_create_user
from academy.db import models
from academy.db.database import get_db
from academy.utils.runtime import dev_mode_active, DEV_USER_EMAIL, DEV_USER_NAME

logger = logging.getLogger(__name__)


def get_current_user(
    db: Session = Depends(get_db),
    x_auth_request_user: Optional[str] = Header(default=None),
    x_auth_request_email: Optional[str] = Header(default=None),
    x_forwarded_user: Optional[str] = Header(default=None),
    x_forwarded_email: Optional[str] = Header(default=None),
) -> models.User:
    try:
        is_dev_mode = dev_mode_active()
    except RuntimeError as exc:
        logger.error("DEV_MODE misconfiguration detected: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="DEV_MODE misconfigured")

    if is_dev_mode:
        return get_or_create_user(db, email=DEV_USER_EMAIL, display_name=DEV_USER_NAME)

    name, email = resolve_identity_from_headers(
        x_auth_request_user=x_auth_request_user,
        x_auth_request_email=x_auth_request_email,
        x_forwarded_user=x_forwarded_user,
        x_forwarded_email=x_forwarded_email,
    )
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return get_or_create_user(db, email=email, display_name=name)


def get_optional_user(
    db: Session = Depends(get_db),
    x_auth_request_user: Optional[str] = Header(default=None),
    x_auth_request_email: Optional[str] = Header(default=None),
    x_forwarded_user: Optional[str] = Header(default=None),
    x_forwarded_email: Optional[str] = Header(default=None),
) -> Optional[models.User]:
    """Current user, or None for guests."""
    try:
        return get_current_user(
            db=db,
            x_auth_request_user=x_auth_request_user,
            x_auth_request_email=x_auth_request_email,
            x_forwarded_user=x_forwarded_user,
            x_forwarded_email=x_forwarded_email,
        )
    except HTTPException as e:
        if e.status_code == status.HTTP_401_UNAUTHORIZED:
            return None
        raise


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Cron routes require ``Authorization: Bearer $CRON_SECRET`` when the secret is set."""
    secret = os.getenv("CRON_SECRET")
    if not secret:
        return
    if not authorization or not hmac.compare_digest(authorization, f"Bearer {secret}"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_course_or_404(course_id: uuid.UUID, db: Session = Depends(get_db)) -> models.Course:
    course = db.get(models.Course, course_id)
    if course is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


def get_webinar_or_404(webinar_id: uuid.UUID, db: Session = Depends(get_db)) -> models.Webinar:
    webinar = db.get(models.Webinar, webinar_id)
    if webinar is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webinar not found")
    return webinar
