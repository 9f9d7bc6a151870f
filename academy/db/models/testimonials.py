import uuid
from sqlalchemy import Column, String, Text, Integer, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from .base import Base, now_utc
from ..types import UTCDateTime


class TestimonialType:
    TEXT = 'TEXT'
    AUDIO = 'AUDIO'
    VIDEO = 'VIDEO'


class TestimonialStatus:
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class Testimonial(Base):
    __tablename__ = 'testimonials'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String(320), nullable=False)
    text = Column(Text, nullable=False)
    rating = Column(Integer, nullable=False, default=5)
    locale = Column(String(8), nullable=False, default='ka')
    type = Column(String(10), nullable=False, default=TestimonialType.TEXT)
    status = Column(String(10), nullable=False, default=TestimonialStatus.PENDING)
    tags = Column(JSONB, nullable=True)
    audio_url = Column(String(1000), nullable=True)
    video_url = Column(String(1000), nullable=True)
    source = Column(String(50), nullable=False, default='website_form')
    submitted_at = Column(UTCDateTime, default=now_utc, nullable=False)
    reviewed_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index('ix_testimonials_status_submitted_at', 'status', 'submitted_at'),
    )
