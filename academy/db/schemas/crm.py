import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TagBase(BaseModel):
    name: str
    color: Optional[str] = None


class TagCreate(TagBase):
    pass


class Tag(TagBase):
    id: uuid.UUID
    model_config = ConfigDict(from_attributes=True)


class ContactBase(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    source: Optional[str] = None


class ContactCreate(ContactBase):
    tag_ids: List[uuid.UUID] = []


class ContactUpdate(BaseModel):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    sms_marketing_status: Optional[str] = None


class Contact(ContactBase):
    id: uuid.UUID
    status: str
    marketing_status: str
    suppression_reason: Optional[str] = None
    suppressed_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
    sms_marketing_status: str
    total_sms_received: int
    tags: List[Tag] = []
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ContactActivity(BaseModel):
    id: uuid.UUID
    contact_id: uuid.UUID
    type: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("metadata_json", "metadata")
    )
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ContactTagsUpdate(BaseModel):
    tag_ids: List[uuid.UUID]


class ImportDetectRequest(BaseModel):
    # Either raw CSV text or already parsed rows (header row first)
    csv: Optional[str] = None
    rows: Optional[List[List[str]]] = None


class ImportMapping(BaseModel):
    original_header: str
    detected_type: str
    confidence: str
    sample_values: List[str] = []


class ImportCommitRequest(BaseModel):
    csv: Optional[str] = None
    rows: Optional[List[List[str]]] = None
    # Overrides for detection; same length as the header row
    mappings: Optional[List[ImportMapping]] = None
    tag_ids: List[uuid.UUID] = []
    update_existing: bool = False
    source: str = 'import'


class MergeRequest(BaseModel):
    primary_id: uuid.UUID
    secondary_id: uuid.UUID
