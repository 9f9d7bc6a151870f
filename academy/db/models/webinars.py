import uuid
from sqlalchemy import Column, String, Text, Integer, Float, Boolean, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from .base import Base, now_utc
from ..types import UTCDateTime


class WebinarStatus:
    DRAFT = 'DRAFT'
    PUBLISHED = 'PUBLISHED'
    ARCHIVED = 'ARCHIVED'


class EventType:
    RECURRING = 'RECURRING'
    ONE_TIME = 'ONE_TIME'
    SPECIFIC_DATES = 'SPECIFIC_DATES'
    ON_DEMAND_ONLY = 'ON_DEMAND_ONLY'


class SessionType:
    SCHEDULED = 'SCHEDULED'
    JUST_IN_TIME = 'JUST_IN_TIME'
    ON_DEMAND = 'ON_DEMAND'
    REPLAY = 'REPLAY'


class InteractionType:
    POLL = 'POLL'
    QUIZ = 'QUIZ'
    CTA = 'CTA'
    DOWNLOAD = 'DOWNLOAD'
    SPECIAL_OFFER = 'SPECIAL_OFFER'
    FEEDBACK = 'FEEDBACK'
    TIP = 'TIP'

    ALL = (POLL, QUIZ, CTA, DOWNLOAD, SPECIAL_OFFER, FEEDBACK, TIP)


class InteractionEventType:
    VIEWED = 'VIEWED'
    RESPONDED = 'RESPONDED'
    DISMISSED = 'DISMISSED'


class AnalyticsEventType:
    REGISTRATION = 'REGISTRATION'
    ATTENDANCE = 'ATTENDANCE'
    CHAT_SENT = 'CHAT_SENT'
    POLL_ANSWERED = 'POLL_ANSWERED'
    CTA_CLICKED = 'CTA_CLICKED'
    DOWNLOAD_CLICKED = 'DOWNLOAD_CLICKED'
    FEEDBACK_GIVEN = 'FEEDBACK_GIVEN'


class Webinar(Base):
    __tablename__ = 'webinars'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug = Column(String(200), nullable=False, unique=True, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=WebinarStatus.DRAFT)
    video_url = Column(String(1000), nullable=True)
    # seconds
    video_duration = Column(Integer, nullable=True)
    thumbnail_url = Column(String(1000), nullable=True)
    chat_enabled = Column(Boolean, nullable=False, default=True)
    # IANA zone used to interpret recurring_times
    timezone = Column(String(64), nullable=False, default='Asia/Tbilisi')
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)

    schedule_config = relationship(
        'WebinarScheduleConfig', back_populates='webinar', uselist=False,
        cascade='all, delete-orphan',
    )
    sessions = relationship('WebinarSession', back_populates='webinar', cascade='all, delete-orphan')
    interactions = relationship(
        'WebinarInteraction', back_populates='webinar', order_by='WebinarInteraction.triggers_at',
        cascade='all, delete-orphan',
    )

    @property
    def video_duration_seconds(self) -> int:
        """Playback length; an unset duration counts as one hour."""
        return self.video_duration or 60 * 60


class WebinarScheduleConfig(Base):
    __tablename__ = 'webinar_schedule_configs'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webinar_id = Column(UUID(as_uuid=True), ForeignKey('webinars.id', ondelete='CASCADE'), nullable=False, unique=True)
    event_type = Column(String(20), nullable=False, default=EventType.RECURRING)
    starts_at = Column(UTCDateTime, nullable=True)
    ends_at = Column(UTCDateTime, nullable=True)
    # 0=Sunday .. 6=Saturday
    recurring_days = Column(JSONB, nullable=True)
    # ["HH:MM", ...] in the webinar timezone
    recurring_times = Column(JSONB, nullable=True)
    # ISO datetimes
    specific_dates = Column(JSONB, nullable=True)
    # ISO dates ("YYYY-MM-DD")
    blackout_dates = Column(JSONB, nullable=True)
    just_in_time_enabled = Column(Boolean, nullable=False, default=False)
    interval_minutes = Column(Integer, nullable=True)
    interval_start_hour = Column(Integer, nullable=False, default=9)
    interval_end_hour = Column(Integer, nullable=False, default=21)
    max_sessions_to_show = Column(Integer, nullable=False, default=3)
    on_demand_enabled = Column(Boolean, nullable=False, default=False)
    replay_enabled = Column(Boolean, nullable=False, default=True)
    replay_expires_after_days = Column(Integer, nullable=True, default=7)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)

    webinar = relationship('Webinar', back_populates='schedule_config')


class WebinarSession(Base):
    __tablename__ = 'webinar_sessions'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webinar_id = Column(UUID(as_uuid=True), ForeignKey('webinars.id', ondelete='CASCADE'), nullable=False)
    scheduled_at = Column(UTCDateTime, nullable=False)
    type = Column(String(20), nullable=False, default=SessionType.SCHEDULED)
    registration_count = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    webinar = relationship('Webinar', back_populates='sessions')

    __table_args__ = (
        UniqueConstraint('webinar_id', 'scheduled_at', 'type', name='uq_webinar_sessions_slot'),
        Index('ix_webinar_sessions_webinar_id_scheduled_at', 'webinar_id', 'scheduled_at'),
    )


class WebinarRegistration(Base):
    __tablename__ = 'webinar_registrations'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webinar_id = Column(UUID(as_uuid=True), ForeignKey('webinars.id', ondelete='CASCADE'), nullable=False)
    session_id = Column(UUID(as_uuid=True), ForeignKey('webinar_sessions.id', ondelete='SET NULL'), nullable=True)
    contact_id = Column(UUID(as_uuid=True), ForeignKey('contacts.id', ondelete='SET NULL'), nullable=True)
    email = Column(String(320), nullable=False)
    first_name = Column(String(200), nullable=True)
    last_name = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    session_type = Column(String(20), nullable=False, default=SessionType.SCHEDULED)
    access_token = Column(String(128), nullable=False, unique=True, index=True)
    timezone = Column(String(64), nullable=False, default='UTC')
    source = Column(String(100), nullable=False, default='direct')
    utm_source = Column(String(200), nullable=True)
    utm_medium = Column(String(200), nullable=True)
    utm_campaign = Column(String(200), nullable=True)
    utm_content = Column(String(200), nullable=True)
    utm_term = Column(String(200), nullable=True)
    registered_at = Column(UTCDateTime, default=now_utc, nullable=False)
    joined_at = Column(UTCDateTime, nullable=True)
    attended_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    # seconds
    max_video_position = Column(Integer, nullable=False, default=0)
    watch_progress = Column(Integer, nullable=False, default=0)
    engagement_score = Column(Float, nullable=True)
    chat_message_count = Column(Integer, nullable=False, default=0)
    polls_answered = Column(Integer, nullable=False, default=0)

    webinar = relationship('Webinar')
    session = relationship('WebinarSession')

    __table_args__ = (
        UniqueConstraint('webinar_id', 'email', name='uq_webinar_registrations_webinar_email'),
        Index('ix_webinar_registrations_session_id', 'session_id'),
    )


class WebinarInteraction(Base):
    __tablename__ = 'webinar_interactions'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webinar_id = Column(UUID(as_uuid=True), ForeignKey('webinars.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    title = Column(String(300), nullable=False)
    # Type specific payload: options for polls, url/button for CTAs, file for downloads
    content = Column(JSONB, nullable=True)
    # seconds from video start
    triggers_at = Column(Integer, nullable=False, default=0)
    duration = Column(Integer, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    action_count = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    webinar = relationship('Webinar', back_populates='interactions')


class WebinarInteractionEvent(Base):
    __tablename__ = 'webinar_interaction_events'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    interaction_id = Column(UUID(as_uuid=True), ForeignKey('webinar_interactions.id', ondelete='CASCADE'), nullable=False)
    registration_id = Column(UUID(as_uuid=True), ForeignKey('webinar_registrations.id', ondelete='CASCADE'), nullable=False)
    event_type = Column(String(20), nullable=False)
    payload = Column(JSONB, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    __table_args__ = (
        Index('ix_webinar_interaction_events_interaction_id', 'interaction_id'),
    )


class WebinarPollResponse(Base):
    __tablename__ = 'webinar_poll_responses'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    interaction_id = Column(UUID(as_uuid=True), ForeignKey('webinar_interactions.id', ondelete='CASCADE'), nullable=False)
    registration_id = Column(UUID(as_uuid=True), ForeignKey('webinar_registrations.id', ondelete='CASCADE'), nullable=False)
    selected_options = Column(JSONB, nullable=True)
    rating = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    __table_args__ = (
        UniqueConstraint('interaction_id', 'registration_id', name='uq_webinar_poll_responses_once'),
    )


class WebinarAnalyticsEvent(Base):
    __tablename__ = 'webinar_analytics_events'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webinar_id = Column(UUID(as_uuid=True), ForeignKey('webinars.id', ondelete='CASCADE'), nullable=False)
    registration_id = Column(UUID(as_uuid=True), ForeignKey('webinar_registrations.id', ondelete='CASCADE'), nullable=True)
    event_type = Column(String(40), nullable=False)
    metadata_json = Column('metadata', JSONB, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    __table_args__ = (
        Index('ix_webinar_analytics_events_webinar_id_event_type', 'webinar_id', 'event_type'),
        Index('ix_webinar_analytics_events_registration_id', 'registration_id'),
    )


class WebinarChatMessage(Base):
    __tablename__ = 'webinar_chat_messages'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    webinar_id = Column(UUID(as_uuid=True), ForeignKey('webinars.id', ondelete='CASCADE'), nullable=False)
    registration_id = Column(UUID(as_uuid=True), ForeignKey('webinar_registrations.id', ondelete='SET NULL'), nullable=True)
    sender_name = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    # seconds from video start; only set for simulated messages
    appears_at = Column(Integer, nullable=True)
    is_simulated = Column(Boolean, nullable=False, default=False)
    is_from_moderator = Column(Boolean, nullable=False, default=False)
    is_hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    __table_args__ = (
        Index('ix_webinar_chat_messages_webinar_id_created_at', 'webinar_id', 'created_at'),
        Index('ix_webinar_chat_messages_webinar_id_appears_at', 'webinar_id', 'appears_at'),
    )
