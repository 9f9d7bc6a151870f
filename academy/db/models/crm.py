import uuid
from sqlalchemy import Column, String, Text, Integer, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from .base import Base, now_utc
from ..types import UTCDateTime


class ContactStatus:
    ACTIVE = 'ACTIVE'
    ARCHIVED = 'ARCHIVED'


class MarketingStatus:
    SUBSCRIBED = 'SUBSCRIBED'
    UNSUBSCRIBED = 'UNSUBSCRIBED'
    SUPPRESSED = 'SUPPRESSED'


class SuppressionReason:
    HARD_BOUNCE = 'HARD_BOUNCE'
    SPAM_COMPLAINT = 'SPAM_COMPLAINT'
    MANUAL_SUPPRESSION = 'MANUAL_SUPPRESSION'


class ActivityType:
    CREATED = 'CREATED'
    UPDATED = 'UPDATED'
    IMPORTED = 'IMPORTED'
    TAG_ADDED = 'TAG_ADDED'
    TAG_REMOVED = 'TAG_REMOVED'
    UNSUBSCRIBED = 'UNSUBSCRIBED'
    NOTE = 'NOTE'


class Contact(Base):
    __tablename__ = 'contacts'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True, index=True)
    first_name = Column(String(200), nullable=True)
    last_name = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    # website | webinar | import | course | manual
    source = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=ContactStatus.ACTIVE)
    marketing_status = Column(String(20), nullable=False, default=MarketingStatus.SUBSCRIBED)
    suppression_reason = Column(String(40), nullable=True)
    suppressed_at = Column(UTCDateTime, nullable=True)
    unsubscribed_at = Column(UTCDateTime, nullable=True)
    unsubscribe_reason = Column(Text, nullable=True)
    sms_marketing_status = Column(String(20), nullable=False, default=MarketingStatus.SUBSCRIBED)
    last_sms_received_at = Column(UTCDateTime, nullable=True)
    total_sms_received = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)

    tags = relationship('Tag', secondary='contact_tags', back_populates='contacts', order_by='Tag.name')
    activities = relationship(
        'ContactActivity', back_populates='contact', order_by='ContactActivity.created_at.desc()',
        cascade='all, delete-orphan',
    )

    __table_args__ = (
        Index('ix_contacts_marketing_status', 'marketing_status'),
        Index('ix_contacts_phone', 'phone'),
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class Tag(Base):
    __tablename__ = 'tags'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False, unique=True)
    color = Column(String(20), nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    contacts = relationship('Contact', secondary='contact_tags', back_populates='tags')


class ContactTag(Base):
    __tablename__ = 'contact_tags'
    contact_id = Column(UUID(as_uuid=True), ForeignKey('contacts.id', ondelete='CASCADE'), primary_key=True)
    tag_id = Column(UUID(as_uuid=True), ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)


class ContactActivity(Base):
    __tablename__ = 'contact_activities'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    contact_id = Column(UUID(as_uuid=True), ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False)
    type = Column(String(30), nullable=False)
    description = Column(Text, nullable=True)
    metadata_json = Column('metadata', JSONB, nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    contact = relationship('Contact', back_populates='activities')

    __table_args__ = (
        Index('ix_contact_activities_contact_id_created_at', 'contact_id', 'created_at'),
    )
