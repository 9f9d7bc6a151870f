"""
CRM API endpoints: contacts, tags, CSV import, de-duplication and the
suppression list. Admin only.
"""
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from academy import audit
from academy.api.deps import require_admin
from academy.db import models, schemas
from academy.db.database import get_db
from academy.db.repositories import contacts as contacts_repo
from academy.errors import AcademyError, to_http
from academy.services import contact_import, duplicate_detection, suppression_service
from academy.utils.pagination import parse_pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/contacts", tags=["contacts"])
tags_router = APIRouter(prefix="/admin/tags", tags=["contacts"])
suppressions_router = APIRouter(prefix="/admin/suppressions", tags=["contacts"])


def _contact_or_404(db: Session, contact_id: uuid.UUID) -> models.Contact:
    contact = contacts_repo.get_contact(db, contact_id)
    if contact is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    return contact


def _import_rows(csv_text: Optional[str], rows: Optional[List[List[str]]]):
    if csv_text:
        return contact_import.parse_csv(csv_text)
    if rows:
        return contact_import.rows_from_lists(rows)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Provide csv or rows")


# === Contacts ===

@router.get("/")
def list_contacts(
    search: Optional[str] = None,
    tag_id: Optional[uuid.UUID] = None,
    marketing_status: Optional[str] = None,
    status_filter: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    pagination = parse_pagination(page, limit)
    items, total = contacts_repo.search_contacts(
        db,
        search=search,
        tag_id=tag_id,
        marketing_status=marketing_status,
        status=status_filter,
        skip=pagination.skip,
        limit=pagination.limit,
    )
    return {
        "data": [schemas.Contact.model_validate(c) for c in items],
        "pagination": pagination.meta(total),
    }


@router.post("/", response_model=schemas.Contact, status_code=status.HTTP_201_CREATED)
def create_contact(payload: schemas.ContactCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if contacts_repo.get_contact_by_email(db, payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A contact with this email already exists")
    contact = contacts_repo.create_contact(db, payload)
    audit.log_contact(db, actor_user_id=admin.id, contact_id=contact.id, action=audit.AuditAction.CONTACT_CREATE)
    return contact


@router.get("/duplicates")
def list_duplicates(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return duplicate_detection.find_all_duplicates(db)


@router.get("/duplicates/check")
def check_duplicates(email: str, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    """Existing contacts an address would duplicate (exact 100, normalized 90)."""
    return duplicate_detection.find_duplicates_for_email(db, email)


@router.post("/merge", response_model=schemas.Contact)
def merge_contacts(payload: schemas.MergeRequest, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    try:
        contact = duplicate_detection.merge_contacts(db, payload.primary_id, payload.secondary_id, created_by=admin.id)
    except AcademyError as e:
        raise to_http(e)
    audit.log_contact(
        db,
        actor_user_id=admin.id,
        contact_id=contact.id,
        action=audit.AuditAction.CONTACT_MERGE,
        metadata={"merged_contact_id": str(payload.secondary_id)},
    )
    return contact


@router.post("/import/detect")
def detect_import_columns(payload: schemas.ImportDetectRequest, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    rows = _import_rows(payload.csv, payload.rows)
    result = contact_import.detect_columns(rows)
    result["total_rows"] = len(rows)
    # 1-based data row numbers, matching import errors
    duplicates = duplicate_detection.find_duplicates_for_import(
        db, contact_import.transform_rows(rows, result["mappings"]),
    )
    result["duplicates"] = [
        {"row": index + 1, "matches": matches} for index, matches in sorted(duplicates.items())
    ]
    return result


@router.post("/import")
def import_contacts(payload: schemas.ImportCommitRequest, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    rows = _import_rows(payload.csv, payload.rows)
    if payload.mappings:
        mappings = [m.model_dump() for m in payload.mappings]
    else:
        mappings = contact_import.detect_columns(rows)["mappings"]
    if not any(m["detected_type"] == contact_import.EMAIL for m in mappings):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="An email column is required")
    transformed = contact_import.transform_rows(rows, mappings)
    return contact_import.import_contacts(
        db,
        transformed,
        tag_ids=payload.tag_ids,
        update_existing=payload.update_existing,
        source=payload.source,
        actor_user_id=admin.id,
    )


@router.get("/{contact_id}", response_model=schemas.Contact)
def get_contact(contact_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return _contact_or_404(db, contact_id)


@router.put("/{contact_id}", response_model=schemas.Contact)
def update_contact(
    contact_id: uuid.UUID,
    payload: schemas.ContactUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    try:
        contact = contacts_repo.update_contact(db, contact_id, payload)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A contact with this email already exists")
    if contact is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    audit.log_contact(
        db,
        actor_user_id=admin.id,
        contact_id=contact.id,
        action=audit.AuditAction.CONTACT_UPDATE,
        metadata={"fields": sorted(payload.model_dump(exclude_unset=True).keys())},
    )
    return contact


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contact(contact_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if not contacts_repo.delete_contact(db, contact_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contact not found")
    audit.log_contact(db, actor_user_id=admin.id, contact_id=contact_id, action=audit.AuditAction.CONTACT_DELETE)


@router.get("/{contact_id}/activities", response_model=List[schemas.ContactActivity])
def list_activities(
    contact_id: uuid.UUID,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    _contact_or_404(db, contact_id)
    return contacts_repo.get_activities(db, contact_id, skip=skip, limit=limit)


@router.post("/{contact_id}/tags", response_model=schemas.Contact)
def add_contact_tags(
    contact_id: uuid.UUID,
    payload: schemas.ContactTagsUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    contact = _contact_or_404(db, contact_id)
    tags = contacts_repo.get_tags_by_ids(db, payload.tag_ids)
    if len(tags) != len(set(payload.tag_ids)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return contacts_repo.add_tags(db, contact, tags, created_by=admin.id)


@router.delete("/{contact_id}/tags/{tag_id}", response_model=schemas.Contact)
def remove_contact_tag(
    contact_id: uuid.UUID,
    tag_id: uuid.UUID,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    contact = _contact_or_404(db, contact_id)
    tag = contacts_repo.get_tag(db, tag_id)
    if tag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")
    return contacts_repo.remove_tag(db, contact, tag, created_by=admin.id)


@router.post("/{contact_id}/resubscribe", response_model=schemas.Contact)
def resubscribe_contact(contact_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    try:
        return suppression_service.resubscribe(db, contact_id, actor_user_id=admin.id)
    except AcademyError as e:
        raise to_http(e)


# === Tags ===

@tags_router.get("/", response_model=List[schemas.Tag])
def list_tags(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return contacts_repo.list_tags(db)


@tags_router.post("/", response_model=schemas.Tag, status_code=status.HTTP_201_CREATED)
def create_tag(payload: schemas.TagCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if not payload.name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tag name is required")
    if contacts_repo.get_tag_by_name(db, payload.name.strip()):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A tag with this name already exists")
    return contacts_repo.create_tag(db, payload)


@tags_router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tag(tag_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    if not contacts_repo.delete_tag(db, tag_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tag not found")


# === Suppressions ===

@suppressions_router.post("/sync")
def sync_suppressions(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return suppression_service.sync_suppressions(db)


@suppressions_router.get("/dump")
def suppression_dump(db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return suppression_service.suppression_dump(db)
