"""
Campaign repository functions.
"""
from __future__ import annotations

import uuid
from typing import Optional
from sqlalchemy.orm import Session

from academy.db import schemas, models


def _dump(payload, **kwargs):
    data = payload.model_dump(**kwargs)
    if data.get('audience_tag_ids') is not None:
        data['audience_tag_ids'] = [str(t) for t in data['audience_tag_ids']]
    return data


def get_campaign(db: Session, campaign_id: uuid.UUID):
    return db.query(models.Campaign).filter(models.Campaign.id == campaign_id).first()


def get_campaigns(db: Session, status: Optional[str] = None, skip: int = 0, limit: int = 100):
    query = db.query(models.Campaign)
    if status:
        query = query.filter(models.Campaign.status == status)
    return query.order_by(models.Campaign.created_at.desc()).offset(skip).limit(limit).all()


def create_campaign(db: Session, campaign: schemas.CampaignCreate, created_by: Optional[uuid.UUID] = None):
    data = _dump(campaign)
    db_campaign = models.Campaign(**data, created_by=created_by)
    if campaign.scheduled_at:
        db_campaign.status = models.CampaignStatus.SCHEDULED
    db.add(db_campaign)
    db.commit()
    db.refresh(db_campaign)
    return db_campaign


def update_campaign(db: Session, campaign: models.Campaign, payload: schemas.CampaignUpdate):
    for key, value in _dump(payload, exclude_unset=True).items():
        setattr(campaign, key, value)
    db.commit()
    db.refresh(campaign)
    return campaign


def delete_campaign(db: Session, campaign: models.Campaign) -> None:
    db.delete(campaign)
    db.commit()
