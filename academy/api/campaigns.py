"""
Email campaign API endpoints (admin).
"""
import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from academy import audit
from academy.api.deps import require_admin
from academy.db import models, schemas
from academy.db.database import get_db
from academy.db.repositories import campaigns as campaigns_repo
from academy.errors import AcademyError, to_http
from academy.services import campaign_service
from academy.utils.feature_flags import campaigns_enabled

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/campaigns", tags=["campaigns"])

EDITABLE = (models.CampaignStatus.DRAFT, models.CampaignStatus.SCHEDULED, models.CampaignStatus.PAUSED)


def _campaign_or_404(db: Session, campaign_id: uuid.UUID) -> models.Campaign:
    campaign = campaigns_repo.get_campaign(db, campaign_id)
    if campaign is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return campaign


def _set_status(db: Session, campaign: models.Campaign, new_status: str) -> models.Campaign:
    campaign.status = new_status
    db.commit()
    db.refresh(campaign)
    return campaign


@router.get("/", response_model=List[schemas.Campaign])
def list_campaigns(
    status_filter: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    return campaigns_repo.get_campaigns(db, status=status_filter, skip=skip, limit=limit)


@router.post("/", response_model=schemas.Campaign, status_code=status.HTTP_201_CREATED)
def create_campaign(payload: schemas.CampaignCreate, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    campaign = campaigns_repo.create_campaign(db, payload, created_by=admin.id)
    audit.log_campaign(db, actor_user_id=admin.id, campaign_id=campaign.id, action=audit.AuditAction.CAMPAIGN_CREATE,
                       metadata={"name": campaign.name})
    return campaign


@router.get("/{campaign_id}", response_model=schemas.Campaign)
def get_campaign(campaign_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return _campaign_or_404(db, campaign_id)


@router.put("/{campaign_id}", response_model=schemas.Campaign)
def update_campaign(
    campaign_id: uuid.UUID,
    payload: schemas.CampaignUpdate,
    db: Session = Depends(get_db),
    admin: models.User = Depends(require_admin),
):
    campaign = _campaign_or_404(db, campaign_id)
    if campaign.status not in EDITABLE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Campaign cannot be edited in status {campaign.status}")
    campaign = campaigns_repo.update_campaign(db, campaign, payload)
    changes = payload.model_dump(exclude_unset=True)
    if "scheduled_at" in changes:
        if campaign.scheduled_at and campaign.status == models.CampaignStatus.DRAFT:
            campaign = _set_status(db, campaign, models.CampaignStatus.SCHEDULED)
        elif not campaign.scheduled_at and campaign.status == models.CampaignStatus.SCHEDULED:
            campaign = _set_status(db, campaign, models.CampaignStatus.DRAFT)
    audit.log_campaign(db, actor_user_id=admin.id, campaign_id=campaign.id, action=audit.AuditAction.CAMPAIGN_UPDATE,
                       metadata={"fields": sorted(changes.keys())})
    return campaign


@router.delete("/{campaign_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_campaign(campaign_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    campaign = _campaign_or_404(db, campaign_id)
    if campaign.status == models.CampaignStatus.SENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Pause or cancel the campaign before deleting it")
    campaigns_repo.delete_campaign(db, campaign)
    audit.log_campaign(db, actor_user_id=admin.id, campaign_id=campaign_id, action=audit.AuditAction.CAMPAIGN_DELETE)


@router.post("/{campaign_id}/prepare")
def prepare_campaign(campaign_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    campaign = _campaign_or_404(db, campaign_id)
    try:
        return campaign_service.prepare_campaign(db, campaign)
    except AcademyError as e:
        raise to_http(e)


@router.post("/{campaign_id}/send")
def send_campaign(campaign_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    """Prepare the campaign when needed, resume a paused one, then drain its recipients."""
    if not campaigns_enabled():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Campaigns are disabled")
    campaign = _campaign_or_404(db, campaign_id)
    try:
        if campaign.status in campaign_service.PREPARABLE:
            campaign_service.prepare_campaign(db, campaign)
        elif campaign.status == models.CampaignStatus.PAUSED:
            _set_status(db, campaign, models.CampaignStatus.SENDING)
    except AcademyError as e:
        raise to_http(e)
    result = campaign_service.process_campaign(db, campaign)
    audit.log_campaign(
        db,
        actor_user_id=admin.id,
        campaign_id=campaign.id,
        action=audit.AuditAction.CAMPAIGN_SEND,
        status=audit.AuditStatus.SUCCESS if result["success"] else audit.AuditStatus.FAILURE,
        metadata={"sent": result["sent"], "failed": result["failed"]},
    )
    return result


@router.post("/{campaign_id}/pause", response_model=schemas.Campaign)
def pause_campaign(campaign_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    campaign = _campaign_or_404(db, campaign_id)
    if campaign.status != models.CampaignStatus.SENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only sending campaigns can be paused")
    return _set_status(db, campaign, models.CampaignStatus.PAUSED)


@router.post("/{campaign_id}/cancel", response_model=schemas.Campaign)
def cancel_campaign(campaign_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    campaign = _campaign_or_404(db, campaign_id)
    if campaign.status in (models.CampaignStatus.COMPLETED, models.CampaignStatus.CANCELLED):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Campaign is already {campaign.status}")
    return _set_status(db, campaign, models.CampaignStatus.CANCELLED)


@router.get("/{campaign_id}/stats")
def campaign_stats(campaign_id: uuid.UUID, db: Session = Depends(get_db), admin: models.User = Depends(require_admin)):
    return campaign_service.campaign_stats(db, _campaign_or_404(db, campaign_id))
