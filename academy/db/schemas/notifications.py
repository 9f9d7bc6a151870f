import uuid
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class NotificationQueueItem(BaseModel):
    id: uuid.UUID
    kind: str
    notification_id: uuid.UUID
    registration_id: Optional[uuid.UUID] = None
    enrollment_id: Optional[uuid.UUID] = None
    recipient_email: str
    scheduled_at: datetime
    status: str
    attempts: int
    last_error: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class EmailLogBase(BaseModel):
    to_email: str
    subject: str
    type: str = 'TRANSACTIONAL'
    status: str = 'QUEUED'
    reference_type: Optional[str] = None
    reference_id: Optional[uuid.UUID] = None
    contact_id: Optional[uuid.UUID] = None


class EmailLogCreate(EmailLogBase):
    message_id: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class EmailLog(EmailLogBase):
    id: uuid.UUID
    message_id: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("metadata_json", "metadata")
    )
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    bounced_at: Optional[datetime] = None
    bounce_type: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UnsubscribeRequest(BaseModel):
    token: str
    reason: Optional[str] = None
