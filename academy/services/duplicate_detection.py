"""
Duplicate contact detection and merging.

Gmail addresses are compared with dots and ``+suffix`` stripped; other
domains only drop the ``+suffix``.
"""

import logging
import re
import uuid
from collections import OrderedDict
from typing import Optional, List, Dict, Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from academy.db import models
from academy.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

GMAIL_DOMAINS = ('gmail.com', 'googlemail.com')

EXACT_EMAIL = 'exact_email'
NORMALIZED_EMAIL = 'normalized_email'
NAME_PHONE = 'name_phone'

MIN_PHONE_DIGITS = 7


def normalize_email(email: str) -> str:
    email = (email or '').strip().lower()
    if '@' not in email:
        return email
    local, domain = email.rsplit('@', 1)
    local = local.split('+')[0]
    if domain in GMAIL_DOMAINS:
        return f"{local.replace('.', '')}@gmail.com"
    return f"{local}@{domain}"


def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r'\D', '', phone or '')


def _match(contact: models.Contact, match_type: str, score: int) -> Dict[str, Any]:
    return {
        'id': contact.id,
        'email': contact.email,
        'first_name': contact.first_name,
        'last_name': contact.last_name,
        'phone': contact.phone,
        'match_type': match_type,
        'match_score': score,
    }


def _domain_family(email: str) -> List[str]:
    domain = email.rsplit('@', 1)[-1]
    return list(GMAIL_DOMAINS) if domain in GMAIL_DOMAINS else [domain]


def find_duplicates_for_email(db: Session, email: str) -> List[Dict[str, Any]]:
    email = (email or '').strip().lower()
    matches = []
    exact = db.query(models.Contact).filter(models.Contact.email == email).first()
    if exact is not None:
        matches.append(_match(exact, EXACT_EMAIL, 100))

    normalized = normalize_email(email)
    if normalized != email and '@' in email:
        candidates = db.query(models.Contact).filter(
            models.Contact.email != email,
            or_(*[models.Contact.email.endswith(f'@{d}') for d in _domain_family(email)]),
        ).all()
        for contact in candidates:
            if normalize_email(contact.email) == normalized:
                matches.append(_match(contact, NORMALIZED_EMAIL, 90))
    return matches


def find_duplicates_for_import(db: Session, rows: List[Dict[str, str]]) -> Dict[int, List[Dict[str, Any]]]:
    """Map of row index to existing contacts the row would duplicate."""
    emails = [(row.get('email') or '').strip().lower() for row in rows]
    wanted = [e for e in emails if e]
    if not wanted:
        return {}

    # Rows with a dotted or +suffixed address also need their domain family loaded
    domains = set()
    for email in wanted:
        if '@' in email and normalize_email(email) != email:
            domains.update(_domain_family(email))
    filters = [models.Contact.email.in_(wanted)]
    filters.extend(models.Contact.email.endswith(f'@{d}') for d in sorted(domains))
    existing = db.query(models.Contact).filter(or_(*filters)).order_by(models.Contact.created_at.asc()).all()
    by_email = {c.email.lower(): c for c in existing}

    result = {}
    for index, email in enumerate(emails):
        if not email:
            continue
        matches = []
        if email in by_email:
            matches.append(_match(by_email[email], EXACT_EMAIL, 100))
        normalized = normalize_email(email)
        if normalized != email:
            for contact in existing:
                if contact.email.lower() != email and normalize_email(contact.email) == normalized:
                    matches.append(_match(contact, NORMALIZED_EMAIL, 90))
        if matches:
            result[index] = matches
    return result


def _summary(contact: models.Contact) -> Dict[str, Any]:
    return {
        'id': contact.id,
        'email': contact.email,
        'first_name': contact.first_name,
        'last_name': contact.last_name,
        'phone': contact.phone,
        'created_at': contact.created_at,
    }


def find_all_duplicates(db: Session) -> Dict[str, Any]:
    contacts = db.query(models.Contact).order_by(models.Contact.created_at.asc()).all()
    groups = []

    by_email: Dict[str, List[models.Contact]] = OrderedDict()
    for contact in contacts:
        by_email.setdefault(normalize_email(contact.email), []).append(contact)
    grouped_ids = set()
    for members in by_email.values():
        if len(members) < 2:
            continue
        same = all(m.email.lower() == members[0].email.lower() for m in members)
        groups.append({'contacts': [_summary(m) for m in members], 'match_type': EXACT_EMAIL if same else NORMALIZED_EMAIL})
        grouped_ids.update(m.id for m in members)

    by_name_phone: Dict[str, List[models.Contact]] = OrderedDict()
    for contact in contacts:
        if contact.id in grouped_ids:
            continue
        phone = normalize_phone(contact.phone)
        if len(phone) < MIN_PHONE_DIGITS:
            continue
        name = f"{(contact.first_name or '').strip().lower()} {(contact.last_name or '').strip().lower()}".strip()
        if not name:
            continue
        by_name_phone.setdefault(f"{name}:{phone}", []).append(contact)
    for members in by_name_phone.values():
        if len(members) > 1:
            groups.append({'contacts': [_summary(m) for m in members], 'match_type': NAME_PHONE})

    return {'groups': groups, 'total_duplicates': sum(len(g['contacts']) for g in groups)}


def merge_contacts(db: Session, primary_id: uuid.UUID, secondary_id: uuid.UUID, created_by: Optional[uuid.UUID] = None) -> models.Contact:
    """Fold ``secondary`` into ``primary`` and delete it."""
    if primary_id == secondary_id:
        raise ValidationError("Cannot merge a contact with itself")
    primary = db.query(models.Contact).filter(models.Contact.id == primary_id).first()
    secondary = db.query(models.Contact).filter(models.Contact.id == secondary_id).first()
    if primary is None or secondary is None:
        raise NotFoundError("One or both contacts not found")

    fields_merged = []
    for field in ('first_name', 'last_name', 'phone', 'notes'):
        if not getattr(primary, field) and getattr(secondary, field):
            setattr(primary, field, getattr(secondary, field))
            fields_merged.append(field)

    primary_tag_ids = {t.id for t in primary.tags}
    new_tags = [t for t in secondary.tags if t.id not in primary_tag_ids]
    primary.tags.extend(new_tags)

    for activity in list(secondary.activities):
        activity.contact = primary
    db.query(models.WebinarRegistration).filter(
        models.WebinarRegistration.contact_id == secondary.id,
    ).update({models.WebinarRegistration.contact_id: primary.id}, synchronize_session=False)

    db.add(models.ContactActivity(
        contact=primary,
        type=models.ActivityType.UPDATED,
        description=f'Merged with contact "{secondary.email}"',
        metadata_json={
            'merged_contact_id': str(secondary.id),
            'merged_email': secondary.email,
            'fields_merged': fields_merged,
            'tags_merged': [str(t.id) for t in new_tags],
        },
        created_by=created_by,
    ))
    db.delete(secondary)
    db.commit()
    db.refresh(primary)
    logger.info(f"Merged contact {secondary_id} into {primary_id}")
    return primary
