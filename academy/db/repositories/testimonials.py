"""
Testimonial repository functions.
"""
from __future__ import annotations

import uuid
from typing import Optional, List, Tuple
from sqlalchemy import or_
from sqlalchemy.orm import Session

from academy.db import schemas, models


def get_testimonial(db: Session, testimonial_id: uuid.UUID):
    return db.query(models.Testimonial).filter(models.Testimonial.id == testimonial_id).first()


def create_testimonial(db: Session, payload: schemas.TestimonialSubmit, source: str = 'website_form'):
    db_testimonial = models.Testimonial(
        name=payload.name.strip(),
        email=payload.email.strip().lower(),
        text=payload.text.strip(),
        rating=payload.rating,
        locale=payload.locale,
        type=payload.type,
        audio_url=payload.audio_url,
        video_url=payload.video_url,
        status=models.TestimonialStatus.PENDING,
        source=source,
    )
    db.add(db_testimonial)
    db.commit()
    db.refresh(db_testimonial)
    return db_testimonial


def list_testimonials(
    db: Session,
    status: Optional[str] = None,
    type: Optional[str] = None,
    tag: Optional[str] = None,
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 20,
) -> Tuple[List[models.Testimonial], int]:
    query = db.query(models.Testimonial)
    if status:
        query = query.filter(models.Testimonial.status == status)
    if type:
        query = query.filter(models.Testimonial.type == type)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.Testimonial.name.ilike(pattern),
                models.Testimonial.text.ilike(pattern),
                models.Testimonial.email.ilike(pattern),
            )
        )
    query = query.order_by(models.Testimonial.submitted_at.desc())
    if tag:
        # JSON containment differs between dialects; tags lists are short, filter in Python
        matching = [t for t in query.all() if tag in (t.tags or [])]
        return matching[skip:skip + limit], len(matching)
    total = query.count()
    return query.offset(skip).limit(limit).all(), total


def update_testimonial(db: Session, testimonial: models.Testimonial, payload: schemas.TestimonialUpdate):
    data = payload.model_dump(exclude_unset=True)
    if 'status' in data and data['status'] != testimonial.status:
        testimonial.reviewed_at = models.now_utc()
    for key, value in data.items():
        setattr(testimonial, key, value)
    db.commit()
    db.refresh(testimonial)
    return testimonial


def delete_testimonial(db: Session, testimonial: models.Testimonial) -> None:
    db.delete(testimonial)
    db.commit()
