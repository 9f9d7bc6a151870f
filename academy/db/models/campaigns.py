import uuid
from sqlalchemy import Column, String, Text, Integer, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from .base import Base, now_utc
from ..types import UTCDateTime


class CampaignStatus:
    DRAFT = 'DRAFT'
    SCHEDULED = 'SCHEDULED'
    SENDING = 'SENDING'
    PAUSED = 'PAUSED'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'


class RecipientStatus:
    PENDING = 'PENDING'
    SENT = 'SENT'
    FAILED = 'FAILED'


class Campaign(Base):
    __tablename__ = 'campaigns'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(300), nullable=False)
    subject = Column(String(300), nullable=False)
    html_content = Column(Text, nullable=False)
    text_content = Column(Text, nullable=True)
    from_name = Column(String(200), nullable=True)
    from_email = Column(String(320), nullable=True)
    reply_to = Column(String(320), nullable=True)
    status = Column(String(20), nullable=False, default=CampaignStatus.DRAFT)
    # Empty or NULL targets every subscribed contact
    audience_tag_ids = Column(JSONB, nullable=True)
    scheduled_at = Column(UTCDateTime, nullable=True)
    sent_count = Column(Integer, nullable=False, default=0)
    started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)

    recipients = relationship('CampaignRecipient', back_populates='campaign', cascade='all, delete-orphan')


class CampaignRecipient(Base):
    __tablename__ = 'campaign_recipients'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey('campaigns.id', ondelete='CASCADE'), nullable=False)
    contact_id = Column(UUID(as_uuid=True), ForeignKey('contacts.id', ondelete='SET NULL'), nullable=True)
    email = Column(String(320), nullable=False)
    variables = Column(JSONB, nullable=True)
    status = Column(String(20), nullable=False, default=RecipientStatus.PENDING)
    message_id = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    campaign = relationship('Campaign', back_populates='recipients')

    __table_args__ = (
        Index('ix_campaign_recipients_campaign_id_status', 'campaign_id', 'status'),
    )
