import uuid
from sqlalchemy import Column, String, Text, Integer, Boolean, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from .base import Base, now_utc
from ..types import UTCDateTime


class WebinarTrigger:
    AFTER_REGISTRATION = 'AFTER_REGISTRATION'
    BEFORE_START = 'BEFORE_START'
    AFTER_END = 'AFTER_END'

    ALL = (AFTER_REGISTRATION, BEFORE_START, AFTER_END)


class CourseTrigger:
    AFTER_ENROLLMENT = 'AFTER_ENROLLMENT'
    ON_COURSE_START = 'ON_COURSE_START'
    ON_LESSON_COMPLETE = 'ON_LESSON_COMPLETE'
    ON_COURSE_COMPLETE = 'ON_COURSE_COMPLETE'
    ON_QUIZ_PASSED = 'ON_QUIZ_PASSED'
    ON_QUIZ_FAILED = 'ON_QUIZ_FAILED'
    ON_CERTIFICATE_ISSUED = 'ON_CERTIFICATE_ISSUED'
    ON_INACTIVITY = 'ON_INACTIVITY'
    BEFORE_EXPIRATION = 'BEFORE_EXPIRATION'

    ALL = (
        AFTER_ENROLLMENT, ON_COURSE_START, ON_LESSON_COMPLETE, ON_COURSE_COMPLETE, ON_QUIZ_PASSED,
        ON_QUIZ_FAILED, ON_CERTIFICATE_ISSUED, ON_INACTIVITY, BEFORE_EXPIRATION,
    )


class Channel:
    EMAIL = 'EMAIL'
    SMS = 'SMS'

    ALL = (EMAIL, SMS)


class QueueKind:
    WEBINAR = 'WEBINAR'
    COURSE = 'COURSE'


class QueueStatus:
    PENDING = 'PENDING'
    PROCESSING = 'PROCESSING'
    SENT = 'SENT'
    SKIPPED = 'SKIPPED'
    FAILED = 'FAILED'


class EmailType:
    TRANSACTIONAL = 'TRANSACTIONAL'
    NOTIFICATION = 'NOTIFICATION'
    CAMPAIGN = 'CAMPAIGN'


class EmailStatus:
    QUEUED = 'QUEUED'
    SENT = 'SENT'
    DELIVERED = 'DELIVERED'
    OPENED = 'OPENED'
    BOUNCED = 'BOUNCED'
    SPAM_COMPLAINT = 'SPAM_COMPLAINT'
    FAILED = 'FAILED'


class WebinarNotification(Base):
    __tablename__ = 'webinar_notifications'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webinar_id = Column(UUID(as_uuid=True), ForeignKey('webinars.id', ondelete='CASCADE'), nullable=False)
    trigger_type = Column(String(30), nullable=False)
    # Offset in minutes; negative values fire before the anchor
    trigger_minutes = Column(Integer, nullable=False, default=0)
    conditions = Column(JSONB, nullable=True)
    channel = Column(String(10), nullable=False, default=Channel.EMAIL)
    template_key = Column(String(100), nullable=True)
    subject = Column(String(300), nullable=True)
    body_html = Column(Text, nullable=True)
    body_text = Column(Text, nullable=True)
    from_name = Column(String(200), nullable=True)
    from_email = Column(String(320), nullable=True)
    reply_to = Column(String(320), nullable=True)
    # [{"type": "TAG_CONTACT", "tag": "attended"}]
    actions = Column(JSONB, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)
    deleted_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index('ix_webinar_notifications_webinar_id_trigger_type', 'webinar_id', 'trigger_type'),
    )


class CourseNotification(Base):
    __tablename__ = 'course_notifications'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(UUID(as_uuid=True), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    trigger_type = Column(String(30), nullable=False)
    trigger_minutes = Column(Integer, nullable=False, default=0)
    conditions = Column(JSONB, nullable=True)
    channel = Column(String(10), nullable=False, default=Channel.EMAIL)
    template_key = Column(String(100), nullable=True)
    subject = Column(String(300), nullable=True)
    body_html = Column(Text, nullable=True)
    body_text = Column(Text, nullable=True)
    actions = Column(JSONB, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)
    deleted_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index('ix_course_notifications_course_id_trigger_type', 'course_id', 'trigger_type'),
    )


class NotificationQueue(Base):
    """Outbox row; drained by the cron processor via its status column."""
    __tablename__ = 'notification_queue'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(String(10), nullable=False)
    notification_id = Column(UUID(as_uuid=True), nullable=False)
    registration_id = Column(UUID(as_uuid=True), ForeignKey('webinar_registrations.id', ondelete='CASCADE'), nullable=True)
    enrollment_id = Column(UUID(as_uuid=True), ForeignKey('enrollments.id', ondelete='CASCADE'), nullable=True)
    recipient_email = Column(String(320), nullable=False)
    scheduled_at = Column(UTCDateTime, nullable=False)
    status = Column(String(20), nullable=False, default=QueueStatus.PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    metadata_json = Column('metadata', JSONB, nullable=True)
    processed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    __table_args__ = (
        Index('ix_notification_queue_status_scheduled_at', 'status', 'scheduled_at'),
        Index('ix_notification_queue_notification_id', 'notification_id'),
    )

    def get_metadata(self):
        return self.metadata_json or {}

    def set_metadata(self, value):
        self.metadata_json = value


class EmailLog(Base):
    __tablename__ = 'email_logs'

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    message_id = Column(String(255), nullable=True, unique=True)
    to_email = Column(String(320), nullable=False)
    subject = Column(String(300), nullable=False)
    type = Column(String(20), nullable=False, default=EmailType.TRANSACTIONAL)
    status = Column(String(20), nullable=False, default=EmailStatus.QUEUED)
    # webinar_notification | course_notification | campaign | ...
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(UUID(as_uuid=True), nullable=True)
    contact_id = Column(UUID(as_uuid=True), ForeignKey('contacts.id', ondelete='SET NULL'), nullable=True)
    metadata_json = Column('metadata', JSONB, nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(UTCDateTime, nullable=True)
    delivered_at = Column(UTCDateTime, nullable=True)
    opened_at = Column(UTCDateTime, nullable=True)
    bounced_at = Column(UTCDateTime, nullable=True)
    bounce_type = Column(String(200), nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    __table_args__ = (
        Index('ix_email_logs_status', 'status'),
        Index('ix_email_logs_type_created_at', 'type', 'created_at'),
        Index('ix_email_logs_reference', 'reference_type', 'reference_id'),
    )

    def get_metadata(self):
        return self.metadata_json or {}

    def set_metadata(self, value):
        self.metadata_json = value
