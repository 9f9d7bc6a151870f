import uuid
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field


class TestimonialSubmit(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    text: Optional[str] = None
    rating: int = Field(default=5, ge=1, le=5)
    locale: str = 'ka'
    type: str = 'TEXT'
    audio_url: Optional[str] = None
    video_url: Optional[str] = None


class TestimonialUpdate(BaseModel):
    name: Optional[str] = None
    text: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    locale: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    tags: Optional[List[str]] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None


class Testimonial(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    text: str
    rating: int
    locale: str
    type: str
    status: str
    tags: Optional[List[str]] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    source: str
    submitted_at: datetime
    reviewed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)
