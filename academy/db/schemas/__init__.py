"""
Domain-split Pydantic schemas with a single aggregator.
"""

from .users import UserBase, UserCreate, UserUpdate, User
from .audits import AuditLogBase, AuditLogCreate, AuditLog
from .courses import (
    CourseBase,
    CourseCreate,
    CourseUpdate,
    Course,
    CourseModuleCreate,
    CourseModuleUpdate,
    CourseModule,
    LessonCreate,
    LessonUpdate,
    Lesson,
    LessonPartCreate,
    LessonPartUpdate,
    LessonPart,
    CourseStructure,
    Enrollment,
    PartProgress,
    VideoProgressUpdate,
    QuizOption,
    QuizQuestionCreate,
    QuizCreate,
    Quiz,
    QuizPublicQuestion,
    QuizAttemptStarted,
    QuizSubmission,
    CourseNotificationCreate,
    CourseNotificationUpdate,
    CourseNotification,
)
from .webinars import (
    WebinarCreate,
    WebinarUpdate,
    Webinar,
    ScheduleConfigUpsert,
    ScheduleConfig,
    WebinarSession,
    RegistrationCreate,
    Registration,
    WatchProgressUpdate,
    InteractionCreate,
    InteractionUpdate,
    Interaction,
    InteractionResponse,
    ChatMessageCreate,
    ChatMessage,
    SimulatedChatImport,
    WebinarNotificationCreate,
    WebinarNotificationUpdate,
    WebinarNotification,
    AnalyticsEvent,
)
from .crm import (
    TagCreate,
    Tag,
    ContactCreate,
    ContactUpdate,
    Contact,
    ContactActivity,
    ContactTagsUpdate,
    ImportDetectRequest,
    ImportMapping,
    ImportCommitRequest,
    MergeRequest,
)
from .notifications import NotificationQueueItem, EmailLogCreate, EmailLog, UnsubscribeRequest
from .campaigns import CampaignCreate, CampaignUpdate, Campaign
from .sms import SmsSendRequest, SmsQueueRequest, SmsLog
from .testimonials import TestimonialSubmit, TestimonialUpdate, Testimonial
