"""
Testimonial API endpoints.

Anyone may submit; the public list shows approved testimonials only, while
admins can filter, search and moderate.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from academy import audit
from academy.api.deps import get_optional_user, require_admin
from academy.db import models, schemas
from academy.db.database import get_db
from academy.db.repositories import testimonials as testimonials_repo
from academy.utils.pagination import parse_pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/testimonials", tags=["testimonials"])
admin_router = APIRouter(prefix="/admin/testimonials", tags=["testimonials"])


def _testimonial_or_404(db: Session, testimonial_id: uuid.UUID) -> models.Testimonial:
    testimonial = testimonials_repo.get_testimonial(db, testimonial_id)
    if testimonial is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Testimonial not found")
    return testimonial


def _review(db: Session, testimonial: models.Testimonial, new_status: str, admin: models.User) -> models.Testimonial:
    testimonial = testimonials_repo.update_testimonial(db, testimonial, schemas.TestimonialUpdate(status=new_status))
    audit.log(
        db,
        action=audit.AuditAction.TESTIMONIAL_REVIEW,
        target_type="testimonial",
        target_id=testimonial.id,
        actor_user_id=admin.id,
        metadata={"status": new_status},
    )
    return testimonial


@router.post("", response_model=schemas.Testimonial, status_code=status.HTTP_201_CREATED)
def submit_testimonial(payload: schemas.TestimonialSubmit, db: Session = Depends(get_db)):
    if not (payload.name or "").strip() or not (payload.email or "").strip() or not (payload.text or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name, email and text are required")
    return testimonials_repo.create_testimonial(db, payload)


@router.get("")
def list_testimonials(
    status_filter: Optional[str] = None,
    type: Optional[str] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
    user: Optional[models.User] = Depends(get_optional_user),
):
    pagination = parse_pagination(page, limit)
    if user is not None and user.is_admin:
        items, total = testimonials_repo.list_testimonials(
            db, status=status_filter, type=type, tag=tag, search=search,
            skip=pagination.skip, limit=pagination.limit,
        )
    else:
        items, total = testimonials_repo.list_testimonials(
            db, status=models.TestimonialStatus.APPROVED, type=type,
            skip=pagination.skip, limit=pagination.limit,
        )
    return {
        "data": [schemas.Testimonial.model_validate(t) for t in items],
        "pagination": pagination.meta(total),
    }


@admin_router.get("/{testimonial_id}", response_model=schemas.Testimonial)
def get_testimonial(testimonial_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return _testimonial_or_404(db, testimonial_id)


@admin_router.post("/{testimonial_id}/approve", response_model=schemas.Testimonial)
def approve_testimonial(testimonial_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return _review(db, _testimonial_or_404(db, testimonial_id), models.TestimonialStatus.APPROVED, admin)


@admin_router.post("/{testimonial_id}/reject", response_model=schemas.Testimonial)
def reject_testimonial(testimonial_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return _review(db, _testimonial_or_404(db, testimonial_id), models.TestimonialStatus.REJECTED, admin)


@admin_router.put("/{testimonial_id}", response_model=schemas.Testimonial)
def update_testimonial(
    testimonial_id: uuid.UUID,
    payload: schemas.TestimonialUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    testimonial = _testimonial_or_404(db, testimonial_id)
    if payload.status is not None and payload.status not in (
        models.TestimonialStatus.PENDING, models.TestimonialStatus.APPROVED, models.TestimonialStatus.REJECTED,
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid status")
    return testimonials_repo.update_testimonial(db, testimonial, payload)


@admin_router.delete("/{testimonial_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_testimonial(testimonial_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    testimonial = _testimonial_or_404(db, testimonial_id)
    testimonials_repo.delete_testimonial(db, testimonial)
    audit.log(
        db,
        action=audit.AuditAction.TESTIMONIAL_DELETE,
        target_type="testimonial",
        target_id=testimonial_id,
        actor_user_id=admin.id,
    )
