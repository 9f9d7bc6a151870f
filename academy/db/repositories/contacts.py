"""
Contact repository functions.

Implements CRUD, search/filtering and tagging for CRM contacts.
"""
from __future__ import annotations

import uuid
from typing import Optional, List, Tuple
from sqlalchemy import or_
from sqlalchemy.orm import Session

from academy.db import schemas, models


def get_contact(db: Session, contact_id: uuid.UUID):
    return db.query(models.Contact).filter(models.Contact.id == contact_id).first()


def get_contact_by_email(db: Session, email: str):
    if not email:
        return None
    return db.query(models.Contact).filter(models.Contact.email == email.strip().lower()).first()


def search_contacts(
    db: Session,
    search: Optional[str] = None,
    tag_id: Optional[uuid.UUID] = None,
    marketing_status: Optional[str] = None,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 20,
) -> Tuple[List[models.Contact], int]:
    query = db.query(models.Contact)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.Contact.email.ilike(pattern),
                models.Contact.first_name.ilike(pattern),
                models.Contact.last_name.ilike(pattern),
                models.Contact.phone.ilike(pattern),
            )
        )
    if tag_id:
        query = query.filter(models.Contact.tags.any(models.Tag.id == tag_id))
    if marketing_status:
        query = query.filter(models.Contact.marketing_status == marketing_status)
    if status:
        query = query.filter(models.Contact.status == status)
    total = query.count()
    items = query.order_by(models.Contact.created_at.desc()).offset(skip).limit(limit).all()
    return items, total


def create_contact(db: Session, contact: schemas.ContactCreate):
    data = contact.model_dump(exclude={'tag_ids'})
    data['email'] = data['email'].strip().lower()
    db_contact = models.Contact(**data)
    if contact.tag_ids:
        db_contact.tags = get_tags_by_ids(db, contact.tag_ids)
    db.add(db_contact)
    db.flush()
    db.add(models.ContactActivity(
        contact_id=db_contact.id,
        type=models.ActivityType.CREATED,
        description="Contact created",
    ))
    db.commit()
    db.refresh(db_contact)
    return db_contact


def update_contact(db: Session, contact_id: uuid.UUID, contact: schemas.ContactUpdate):
    db_contact = get_contact(db, contact_id)
    if db_contact:
        update_data = contact.model_dump(exclude_unset=True)
        if update_data.get('email'):
            update_data['email'] = update_data['email'].strip().lower()
        for key, value in update_data.items():
            setattr(db_contact, key, value)
        db.commit()
        db.refresh(db_contact)
    return db_contact


def delete_contact(db: Session, contact_id: uuid.UUID) -> bool:
    db_contact = get_contact(db, contact_id)
    if not db_contact:
        return False
    db.delete(db_contact)
    db.commit()
    return True


def get_or_create_contact(
    db: Session,
    email: str,
    *,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
    source: Optional[str] = None,
    commit: bool = True,
):
    """Upsert by lower-cased email; blank fields are filled, existing values are kept."""
    normalized = email.strip().lower()
    contact = get_contact_by_email(db, normalized)
    if contact is None:
        contact = models.Contact(
            email=normalized,
            first_name=first_name or None,
            last_name=last_name or None,
            phone=phone or None,
            source=source,
            status=models.ContactStatus.ACTIVE,
        )
        db.add(contact)
        db.flush()
        db.add(models.ContactActivity(
            contact_id=contact.id,
            type=models.ActivityType.CREATED,
            description=f"Contact created from {source or 'unknown source'}",
        ))
    else:
        if first_name and not contact.first_name:
            contact.first_name = first_name
        if last_name and not contact.last_name:
            contact.last_name = last_name
        if phone and not contact.phone:
            contact.phone = phone
    if commit:
        db.commit()
        db.refresh(contact)
    return contact


def list_tags(db: Session):
    return db.query(models.Tag).order_by(models.Tag.name).all()


def get_tag(db: Session, tag_id: uuid.UUID):
    return db.query(models.Tag).filter(models.Tag.id == tag_id).first()


def get_tag_by_name(db: Session, name: str):
    return db.query(models.Tag).filter(models.Tag.name == name).first()


def get_tags_by_ids(db: Session, tag_ids: List[uuid.UUID]):
    if not tag_ids:
        return []
    return db.query(models.Tag).filter(models.Tag.id.in_(list(tag_ids))).all()


def create_tag(db: Session, tag: schemas.TagCreate):
    db_tag = models.Tag(name=tag.name.strip(), color=tag.color)
    db.add(db_tag)
    db.commit()
    db.refresh(db_tag)
    return db_tag


def get_or_create_tag(db: Session, name: str):
    tag = get_tag_by_name(db, name)
    if tag is None:
        tag = models.Tag(name=name)
        db.add(tag)
        db.flush()
    return tag


def delete_tag(db: Session, tag_id: uuid.UUID) -> bool:
    db_tag = get_tag(db, tag_id)
    if not db_tag:
        return False
    db.delete(db_tag)
    db.commit()
    return True


def add_tags(db: Session, contact: models.Contact, tags: List[models.Tag], created_by: Optional[uuid.UUID] = None):
    existing = {t.id for t in contact.tags}
    for tag in tags:
        if tag.id in existing:
            continue
        contact.tags.append(tag)
        db.add(models.ContactActivity(
            contact_id=contact.id,
            type=models.ActivityType.TAG_ADDED,
            description=f'Tag "{tag.name}" added',
            metadata_json={"tag_id": str(tag.id)},
            created_by=created_by,
        ))
    db.commit()
    db.refresh(contact)
    return contact


def remove_tag(db: Session, contact: models.Contact, tag: models.Tag, created_by: Optional[uuid.UUID] = None):
    if tag in contact.tags:
        contact.tags.remove(tag)
        db.add(models.ContactActivity(
            contact_id=contact.id,
            type=models.ActivityType.TAG_REMOVED,
            description=f'Tag "{tag.name}" removed',
            metadata_json={"tag_id": str(tag.id)},
            created_by=created_by,
        ))
        db.commit()
        db.refresh(contact)
    return contact


def get_activities(db: Session, contact_id: uuid.UUID, skip: int = 0, limit: int = 50):
    return (
        db.query(models.ContactActivity)
        .filter(models.ContactActivity.contact_id == contact_id)
        .order_by(models.ContactActivity.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
