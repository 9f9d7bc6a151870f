"""
Smart CSV import of CRM contacts.

Columns are mapped to contact fields by header name (English and Georgian
variants) and, failing that, by sniffing the column's values. Rows are
then transformed, validated and upserted by email.
"""

import csv
import io
import logging
import re
import uuid
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy.orm import Session

from academy import audit
from academy.db import models
from academy.db.repositories import contacts as contacts_repo
from academy.services.registration_service import EMAIL_PATTERN

logger = logging.getLogger(__name__)

EMAIL = 'email'
FIRST_NAME = 'first_name'
LAST_NAME = 'last_name'
FULL_NAME = 'full_name'
PHONE = 'phone'
NOTES = 'notes'
UNKNOWN = 'unknown'

HIGH = 'high'
MEDIUM = 'medium'
LOW = 'low'

HEADER_PATTERNS = {
    EMAIL: [r'^e[-_]?mail$', r'^email[-_]?addr(ess)?$', r'^ელ[-_.]?(ფოსტა)?$', r'^მეილი?$'],
    FIRST_NAME: [r'^first[-_ ]?name$', r'^fname$', r'^given[-_ ]?name$', r'^სახელი$'],
    LAST_NAME: [r'^last[-_ ]?name$', r'^lname$', r'^surname$', r'^family[-_ ]?name$', r'^გვარი$'],
    FULL_NAME: [r'^(full[-_ ]?)?name$', r'^სრული[-_ ]?სახელი$', r'^სახელი[-_ ]?გვარი$'],
    PHONE: [r'^phone$', r'^tel(ephone)?$', r'^mobile$', r'^cell$', r'^ტელ(ეფონი)?$', r'^მობ(ილური)?$'],
    NOTES: [r'^notes?$', r'^comments?$', r'^description$', r'^შენიშვნა$'],
}

PHONE_PATTERN = re.compile(r'^[+]?[\d\s\-().]{7,20}$')

CONFIDENCE_RANK = {LOW: 0, MEDIUM: 1, HIGH: 2}


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Rows as header -> value dicts; blank lines are dropped."""
    reader = csv.DictReader(io.StringIO((text or '').lstrip('﻿')))
    rows = []
    for row in reader:
        values = {(k or '').strip(): (v or '').strip() for k, v in row.items() if k is not None}
        if any(values.values()):
            rows.append(values)
    return rows


def rows_from_lists(rows: List[List[str]]) -> List[Dict[str, str]]:
    if not rows:
        return []
    header = [h.strip() for h in rows[0]]
    result = []
    for row in rows[1:]:
        values = {h: (row[i].strip() if i < len(row) and row[i] is not None else '') for i, h in enumerate(header)}
        if any(values.values()):
            result.append(values)
    return result


def detect_by_header(header: str) -> Optional[Tuple[str, str]]:
    normalized = header.strip()
    for field_type, patterns in HEADER_PATTERNS.items():
        if any(re.match(p, normalized, re.IGNORECASE) for p in patterns):
            return field_type, HIGH

    lower = normalized.lower()
    if 'email' in lower or 'mail' in lower:
        return EMAIL, MEDIUM
    if 'phone' in lower or 'tel' in lower or 'mobile' in lower:
        return PHONE, MEDIUM
    if 'first' in lower and 'name' in lower:
        return FIRST_NAME, MEDIUM
    if 'last' in lower and 'name' in lower:
        return LAST_NAME, MEDIUM
    if 'name' in lower:
        return FULL_NAME, MEDIUM
    if 'note' in lower or 'comment' in lower:
        return NOTES, MEDIUM
    return None


def detect_by_content(values: List[str]) -> Optional[Tuple[str, str]]:
    non_empty = [v.strip() for v in values if v and v.strip()]
    if not non_empty:
        return None
    total = len(non_empty)

    email_share = len([v for v in non_empty if EMAIL_PATTERN.match(v)]) / total
    if email_share > 0.8:
        return EMAIL, HIGH
    if email_share > 0.5:
        return EMAIL, MEDIUM
    if len([v for v in non_empty if PHONE_PATTERN.match(v)]) / total > 0.7:
        return PHONE, MEDIUM
    if len([v for v in non_empty if len(v.split()) >= 2]) / total > 0.6:
        return FULL_NAME, LOW
    if len([v for v in non_empty if len(v.split()) == 1]) / total > 0.8:
        return FIRST_NAME, LOW
    return None


def detect_columns(rows: List[Dict[str, str]]) -> Dict[str, Any]:
    if not rows:
        return {'mappings': [], 'has_email': False, 'has_full_name': False, 'has_split_name': False}

    mappings: List[Dict[str, Any]] = []
    for header in rows[0].keys():
        values = [row.get(header) or '' for row in rows]
        detection = detect_by_header(header) or detect_by_content(values) or (UNKNOWN, LOW)
        field_type, confidence = detection

        if field_type != UNKNOWN:
            existing = next((m for m in mappings if m['detected_type'] == field_type), None)
            if existing is not None:
                if CONFIDENCE_RANK[confidence] > CONFIDENCE_RANK[existing['confidence']]:
                    existing['detected_type'] = UNKNOWN
                    existing['confidence'] = LOW
                else:
                    field_type, confidence = UNKNOWN, LOW

        mappings.append({
            'original_header': header,
            'detected_type': field_type,
            'confidence': confidence,
            'sample_values': [v for v in values[:5] if v.strip()],
        })

    detected = {m['detected_type'] for m in mappings}
    return {
        'mappings': mappings,
        'has_email': EMAIL in detected,
        'has_full_name': FULL_NAME in detected,
        'has_split_name': FIRST_NAME in detected or LAST_NAME in detected,
    }


def split_full_name(full_name: Optional[str]) -> Tuple[str, str]:
    parts = (full_name or '').split()
    if not parts:
        return '', ''
    if len(parts) == 1:
        return parts[0], ''
    return parts[0], ' '.join(parts[1:])


def transform_rows(rows: List[Dict[str, str]], mappings: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    result = []
    for row in rows:
        contact = {EMAIL: '', FIRST_NAME: '', LAST_NAME: '', PHONE: '', NOTES: ''}
        full_name = ''
        for mapping in mappings:
            value = (row.get(mapping['original_header']) or '').strip()
            field_type = mapping['detected_type']
            if field_type == EMAIL:
                contact[EMAIL] = value.lower()
            elif field_type == FULL_NAME:
                full_name = value
            elif field_type in contact:
                contact[field_type] = value
        if full_name and not contact[FIRST_NAME] and not contact[LAST_NAME]:
            contact[FIRST_NAME], contact[LAST_NAME] = split_full_name(full_name)
        result.append(contact)
    return result


def validate_rows(rows: List[Dict[str, str]]) -> Tuple[List[Dict[str, str]], List[Dict[str, Any]]]:
    """Split into ``(valid, invalid)``; invalid entries carry the 1-based row number."""
    valid, invalid = [], []
    for index, row in enumerate(rows, start=1):
        if not row.get(EMAIL):
            invalid.append({'row': index, 'email': '', 'error': 'Missing email'})
        elif not EMAIL_PATTERN.match(row[EMAIL]):
            invalid.append({'row': index, 'email': row[EMAIL], 'error': 'Invalid email format'})
        else:
            valid.append(row)
    return valid, invalid


def import_contacts(
    db: Session,
    rows: List[Dict[str, str]],
    tag_ids: Optional[List[uuid.UUID]] = None,
    update_existing: bool = False,
    source: str = 'import',
    actor_user_id: Optional[uuid.UUID] = None,
) -> Dict[str, Any]:
    """Upsert transformed rows by email and tag every imported contact."""
    valid, invalid = validate_rows(rows)
    tags = contacts_repo.get_tags_by_ids(db, tag_ids or [])
    stats = {'created': 0, 'updated': 0, 'skipped': 0, 'invalid': len(invalid), 'errors': invalid}

    seen = set()
    for row in valid:
        email = row[EMAIL]
        if email in seen:
            stats['skipped'] += 1
            continue
        seen.add(email)

        contact = contacts_repo.get_contact_by_email(db, email)
        if contact is None:
            contact = models.Contact(
                email=email,
                first_name=row.get(FIRST_NAME) or None,
                last_name=row.get(LAST_NAME) or None,
                phone=row.get(PHONE) or None,
                notes=row.get(NOTES) or None,
                source=source,
                status=models.ContactStatus.ACTIVE,
            )
            db.add(contact)
            db.flush()
            db.add(models.ContactActivity(
                contact_id=contact.id,
                type=models.ActivityType.IMPORTED,
                description=f"Imported from {source}",
                created_by=actor_user_id,
            ))
            stats['created'] += 1
        else:
            changed = False
            for field in (FIRST_NAME, LAST_NAME, PHONE, NOTES):
                value = row.get(field)
                if value and (update_existing or not getattr(contact, field)) and getattr(contact, field) != value:
                    setattr(contact, field, value)
                    changed = True
            if changed:
                db.add(models.ContactActivity(
                    contact_id=contact.id,
                    type=models.ActivityType.UPDATED,
                    description=f"Updated by import from {source}",
                    created_by=actor_user_id,
                ))
                stats['updated'] += 1
            else:
                stats['skipped'] += 1

        existing_tag_ids = {t.id for t in contact.tags}
        for tag in tags:
            if tag.id not in existing_tag_ids:
                contact.tags.append(tag)

    db.commit()
    logger.info(
        f"Contact import from {source}: created={stats['created']} updated={stats['updated']} "
        f"skipped={stats['skipped']} invalid={stats['invalid']}"
    )
    audit.log(
        db,
        action=audit.AuditAction.CONTACT_IMPORT,
        target_type="contact",
        actor_user_id=actor_user_id,
        metadata={k: v for k, v in stats.items() if k != 'errors'},
    )
    return stats
