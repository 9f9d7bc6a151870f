import uuid
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict


class SmsSendRequest(BaseModel):
    phone: str
    message: str
    type: str = 'TRANSACTIONAL'
    contact_id: Optional[uuid.UUID] = None


class SmsQueueRequest(BaseModel):
    # Explicit phones, or every contact carrying one of tag_ids
    phones: List[str] = []
    tag_ids: List[uuid.UUID] = []
    message: str
    type: str = 'CAMPAIGN'


class SmsLog(BaseModel):
    id: uuid.UUID
    phone: str
    message: str
    brand_id: Optional[str] = None
    type: str
    status: str
    provider_sms_id: Optional[str] = None
    error: Optional[str] = None
    sent_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
