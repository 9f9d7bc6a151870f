"""
Domain-split SQLAlchemy models with a single aggregator.

Exposes `Base`, `now_utc`, every ORM class and the string constants used for
status and type columns.
"""

from .base import Base, now_utc  # re-export

from .users import User
from .courses import (
    Course, CourseModule, Lesson, LessonPart, Enrollment, PartProgress,
    Quiz, QuizQuestion, QuizAttempt,
    CourseStatus, PartType, EnrollmentStatus, ProgressStatus, CompletedBy, QuestionType,
)
from .webinars import (
    Webinar, WebinarScheduleConfig, WebinarSession, WebinarRegistration,
    WebinarInteraction, WebinarInteractionEvent, WebinarPollResponse,
    WebinarAnalyticsEvent, WebinarChatMessage,
    WebinarStatus, EventType, SessionType, InteractionType, InteractionEventType, AnalyticsEventType,
)
from .crm import (
    Contact, Tag, ContactTag, ContactActivity,
    ContactStatus, MarketingStatus, SuppressionReason, ActivityType,
)
from .notifications import (
    WebinarNotification, CourseNotification, NotificationQueue, EmailLog,
    WebinarTrigger, CourseTrigger, Channel, QueueKind, QueueStatus, EmailType, EmailStatus,
)
from .campaigns import Campaign, CampaignRecipient, CampaignStatus, RecipientStatus
from .sms import SmsLog, SmsType, SmsStatus
from .testimonials import Testimonial, TestimonialType, TestimonialStatus
from .audit import AuditLog

__all__ = [
    # base
    "Base",
    "now_utc",
    # users
    "User",
    # courses
    "Course",
    "CourseModule",
    "Lesson",
    "LessonPart",
    "Enrollment",
    "PartProgress",
    "Quiz",
    "QuizQuestion",
    "QuizAttempt",
    "CourseStatus",
    "PartType",
    "EnrollmentStatus",
    "ProgressStatus",
    "CompletedBy",
    "QuestionType",
    # webinars
    "Webinar",
    "WebinarScheduleConfig",
    "WebinarSession",
    "WebinarRegistration",
    "WebinarInteraction",
    "WebinarInteractionEvent",
    "WebinarPollResponse",
    "WebinarAnalyticsEvent",
    "WebinarChatMessage",
    "WebinarStatus",
    "EventType",
    "SessionType",
    "InteractionType",
    "InteractionEventType",
    "AnalyticsEventType",
    # crm
    "Contact",
    "Tag",
    "ContactTag",
    "ContactActivity",
    "ContactStatus",
    "MarketingStatus",
    "SuppressionReason",
    "ActivityType",
    # notifications
    "WebinarNotification",
    "CourseNotification",
    "NotificationQueue",
    "EmailLog",
    "WebinarTrigger",
    "CourseTrigger",
    "Channel",
    "QueueKind",
    "QueueStatus",
    "EmailType",
    "EmailStatus",
    # campaigns / sms
    "Campaign",
    "CampaignRecipient",
    "CampaignStatus",
    "RecipientStatus",
    "SmsLog",
    "SmsType",
    "SmsStatus",
    # testimonials / audit
    "Testimonial",
    "TestimonialType",
    "TestimonialStatus",
    "AuditLog",
]
