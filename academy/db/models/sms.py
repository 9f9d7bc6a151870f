import uuid
from sqlalchemy import Column, String, Text, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from .base import Base, now_utc
from ..types import UTCDateTime


class SmsType:
    TRANSACTIONAL = 'TRANSACTIONAL'
    CAMPAIGN = 'CAMPAIGN'
    WEBINAR = 'WEBINAR'
    COURSE = 'COURSE'

    ALL = (TRANSACTIONAL, CAMPAIGN, WEBINAR, COURSE)


class SmsStatus:
    PENDING = 'PENDING'
    SENT = 'SENT'
    DELIVERED = 'DELIVERED'
    UNDELIVERED = 'UNDELIVERED'
    AWAITING = 'AWAITING'
    ERROR = 'ERROR'


class SmsLog(Base):
    __tablename__ = 'sms_logs'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # normalized 995XXXXXXXXX
    phone = Column(String(20), nullable=False)
    message = Column(Text, nullable=False)
    brand_id = Column(String(50), nullable=True)
    type = Column(String(20), nullable=False, default=SmsType.TRANSACTIONAL)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(UUID(as_uuid=True), nullable=True)
    contact_id = Column(UUID(as_uuid=True), ForeignKey('contacts.id', ondelete='SET NULL'), nullable=True)
    status = Column(String(20), nullable=False, default=SmsStatus.PENDING)
    provider_sms_id = Column(String(100), nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    __table_args__ = (
        Index('ix_sms_logs_status_created_at', 'status', 'created_at'),
        Index('ix_sms_logs_contact_id', 'contact_id'),
    )
