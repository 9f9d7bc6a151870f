import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class WebinarBase(BaseModel):
    slug: str
    title: str
    description: Optional[str] = None
    status: str = 'DRAFT'
    video_url: Optional[str] = None
    video_duration: Optional[int] = Field(default=None, ge=0)
    thumbnail_url: Optional[str] = None
    chat_enabled: bool = True
    timezone: str = 'Asia/Tbilisi'


class WebinarCreate(WebinarBase):
    pass


class WebinarUpdate(BaseModel):
    slug: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    video_url: Optional[str] = None
    video_duration: Optional[int] = Field(default=None, ge=0)
    thumbnail_url: Optional[str] = None
    chat_enabled: Optional[bool] = None
    timezone: Optional[str] = None


class Webinar(WebinarBase):
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ScheduleConfigBase(BaseModel):
    event_type: str = 'RECURRING'
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    recurring_days: Optional[List[int]] = None
    recurring_times: Optional[List[str]] = None
    specific_dates: Optional[List[str]] = None
    blackout_dates: Optional[List[str]] = None
    just_in_time_enabled: bool = False
    interval_minutes: Optional[int] = None
    interval_start_hour: int = Field(default=9, ge=0, le=23)
    interval_end_hour: int = Field(default=21, ge=1, le=24)
    max_sessions_to_show: int = Field(default=3, ge=1)
    on_demand_enabled: bool = False
    replay_enabled: bool = True
    replay_expires_after_days: Optional[int] = Field(default=7, ge=0)

    @field_validator('interval_minutes')
    @classmethod
    def _interval_allowed(cls, value):
        if value is not None and value not in (5, 15, 30, 60):
            raise ValueError('interval_minutes must be one of 5, 15, 30, 60')
        return value

    @field_validator('recurring_days')
    @classmethod
    def _days_in_week(cls, value):
        if value is not None and any(d < 0 or d > 6 for d in value):
            raise ValueError('recurring_days must be between 0 (Sunday) and 6 (Saturday)')
        return value


class ScheduleConfigUpsert(ScheduleConfigBase):
    pass


class ScheduleConfig(ScheduleConfigBase):
    id: uuid.UUID
    webinar_id: uuid.UUID
    model_config = ConfigDict(from_attributes=True)


class WebinarSession(BaseModel):
    id: uuid.UUID
    webinar_id: uuid.UUID
    scheduled_at: datetime
    type: str
    registration_count: int
    model_config = ConfigDict(from_attributes=True)


class RegistrationCreate(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    session_id: Optional[uuid.UUID] = None
    session_type: Optional[str] = None
    timezone: Optional[str] = None
    source: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_content: Optional[str] = None
    utm_term: Optional[str] = None


class Registration(BaseModel):
    id: uuid.UUID
    webinar_id: uuid.UUID
    session_id: Optional[uuid.UUID] = None
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    session_type: str
    registered_at: datetime
    joined_at: Optional[datetime] = None
    attended_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    max_video_position: int
    watch_progress: int
    engagement_score: Optional[float] = None
    model_config = ConfigDict(from_attributes=True)


class WatchProgressUpdate(BaseModel):
    token: str
    progress: int = Field(ge=0, le=100)
    position: int = Field(ge=0)


class InteractionBase(BaseModel):
    type: str
    title: str
    content: Optional[Dict[str, Any]] = None
    triggers_at: int = Field(default=0, ge=0)
    duration: Optional[int] = Field(default=None, ge=1)
    enabled: bool = True
    sort_order: int = 0


class InteractionCreate(InteractionBase):
    pass


class InteractionUpdate(BaseModel):
    type: Optional[str] = None
    title: Optional[str] = None
    content: Optional[Dict[str, Any]] = None
    triggers_at: Optional[int] = Field(default=None, ge=0)
    duration: Optional[int] = Field(default=None, ge=1)
    enabled: Optional[bool] = None
    sort_order: Optional[int] = None


class Interaction(InteractionBase):
    id: uuid.UUID
    webinar_id: uuid.UUID
    action_count: int
    model_config = ConfigDict(from_attributes=True)


class InteractionResponse(BaseModel):
    token: str
    interaction_id: uuid.UUID
    selected_options: Optional[List[str]] = None
    clicked: Optional[bool] = None
    downloaded: Optional[bool] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = None


class ChatMessageCreate(BaseModel):
    token: str
    message: str


class ChatMessage(BaseModel):
    id: uuid.UUID
    sender_name: str
    message: str
    appears_at: Optional[int] = None
    is_simulated: bool
    is_from_moderator: bool
    is_hidden: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SimulatedChatImport(BaseModel):
    csv: str
    replace_existing: bool = False


class WebinarNotificationBase(BaseModel):
    trigger_type: str
    trigger_minutes: int = 0
    conditions: Optional[Dict[str, Any]] = None
    channel: str = 'EMAIL'
    template_key: Optional[str] = None
    subject: Optional[str] = None
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    reply_to: Optional[str] = None
    actions: Optional[List[Dict[str, Any]]] = None
    is_active: bool = True
    sort_order: int = 0


class WebinarNotificationCreate(WebinarNotificationBase):
    pass


class WebinarNotificationUpdate(BaseModel):
    trigger_type: Optional[str] = None
    trigger_minutes: Optional[int] = None
    conditions: Optional[Dict[str, Any]] = None
    channel: Optional[str] = None
    template_key: Optional[str] = None
    subject: Optional[str] = None
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    from_name: Optional[str] = None
    from_email: Optional[str] = None
    reply_to: Optional[str] = None
    actions: Optional[List[Dict[str, Any]]] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class WebinarNotification(WebinarNotificationBase):
    id: uuid.UUID
    webinar_id: uuid.UUID
    is_default: bool
    trigger_description: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AnalyticsEvent(BaseModel):
    id: uuid.UUID
    registration_id: Optional[uuid.UUID] = None
    event_type: str
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("metadata_json", "metadata")
    )
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
