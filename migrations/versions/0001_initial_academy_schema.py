"""initial academy schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()'))


def _fk(name, target, ondelete, nullable=False):
    return sa.Column(name, postgresql.UUID(as_uuid=True), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable)


def _ts(name, nullable=True):
    if nullable:
        return sa.Column(name, sa.TIMESTAMP(timezone=True), nullable=True)
    return sa.Column(name, sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False)


def _json(name):
    return sa.Column(name, postgresql.JSONB(astext_type=sa.Text()), nullable=True)


def upgrade() -> None:
    """Upgrade schema."""
    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')

    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('preferred_locale', sa.String(length=8), server_default='ka', nullable=False),
        _ts('created_at'),
        _ts('updated_at'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'audit_logs',
        _id(),
        _fk('actor_user_id', 'users.id', 'SET NULL', nullable=True),
        sa.Column('action_type', sa.Text(), nullable=False),
        sa.Column('target_type', sa.Text(), nullable=True),
        sa.Column('target_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        _json('metadata'),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_audit_logs_actor_user_id_created_at', 'audit_logs', ['actor_user_id', 'created_at'])
    op.create_index('ix_audit_logs_action_type', 'audit_logs', ['action_type'])
    op.create_index('ix_audit_logs_target', 'audit_logs', ['target_type', 'target_id'])

    # Courses
    op.create_table(
        'courses',
        _id(),
        sa.Column('slug', sa.String(length=200), nullable=False),
        sa.Column('title', sa.String(length=300), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('locale', sa.String(length=8), server_default='ka', nullable=False),
        sa.Column('status', sa.String(length=20), server_default='DRAFT', nullable=False),
        sa.Column('drip_enabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('certificate_enabled', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('video_completion_threshold', sa.Integer(), server_default='90', nullable=False),
        sa.Column('access_days', sa.Integer(), nullable=True),
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
    )
    op.create_index('ix_courses_slug', 'courses', ['slug'], unique=True)

    op.create_table(
        'course_modules',
        _id(),
        _fk('course_id', 'courses.id', 'CASCADE'),
        sa.Column('title', sa.String(length=300), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
    )
    op.create_index('ix_course_modules_course_id_sort_order', 'course_modules', ['course_id', 'sort_order'])

    op.create_table(
        'lessons',
        _id(),
        _fk('course_id', 'courses.id', 'CASCADE'),
        _fk('module_id', 'course_modules.id', 'CASCADE', nullable=True),
        sa.Column('title', sa.String(length=300), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('available_after_days', sa.Integer(), nullable=True),
    )
    op.create_index('ix_lessons_course_id_module_id', 'lessons', ['course_id', 'module_id'])

    op.create_table(
        'lesson_parts',
        _id(),
        _fk('lesson_id', 'lessons.id', 'CASCADE'),
        sa.Column('title', sa.String(length=300), nullable=False),
        sa.Column('type', sa.String(length=20), server_default='VIDEO', nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('video_url', sa.String(length=1000), nullable=True),
        sa.Column('video_duration', sa.Integer(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
    )
    op.create_index('ix_lesson_parts_lesson_id', 'lesson_parts', ['lesson_id'])

    op.create_table(
        'enrollments',
        _id(),
        _fk('user_id', 'users.id', 'CASCADE'),
        _fk('course_id', 'courses.id', 'CASCADE'),
        sa.Column('status', sa.String(length=20), server_default='ACTIVE', nullable=False),
        sa.Column('progress_percent', sa.Integer(), server_default='0', nullable=False),
        _ts('enrolled_at', nullable=False),
        _ts('started_at'),
        _ts('completed_at'),
        _ts('expires_at'),
        sa.Column('certificate_id', sa.String(length=32), nullable=True, unique=True),
        _ts('certificate_issued_at'),
        _ts('updated_at', nullable=False),
        sa.UniqueConstraint('user_id', 'course_id', name='uq_enrollments_user_course'),
    )
    op.create_index('ix_enrollments_course_id_status', 'enrollments', ['course_id', 'status'])

    op.create_table(
        'part_progress',
        _id(),
        _fk('user_id', 'users.id', 'CASCADE'),
        _fk('part_id', 'lesson_parts.id', 'CASCADE'),
        _fk('enrollment_id', 'enrollments.id', 'CASCADE'),
        sa.Column('status', sa.String(length=20), server_default='NOT_STARTED', nullable=False),
        sa.Column('watch_time', sa.Integer(), server_default='0', nullable=False),
        sa.Column('video_duration', sa.Integer(), nullable=True),
        sa.Column('watch_percent', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_position', sa.Integer(), server_default='0', nullable=False),
        _ts('completed_at'),
        sa.Column('completed_by', sa.String(length=20), nullable=True),
        _ts('updated_at', nullable=False),
        sa.UniqueConstraint('user_id', 'part_id', name='uq_part_progress_user_part'),
    )
    op.create_index('ix_part_progress_enrollment_id', 'part_progress', ['enrollment_id'])

    op.create_table(
        'quizzes',
        _id(),
        _fk('course_id', 'courses.id', 'CASCADE'),
        _fk('part_id', 'lesson_parts.id', 'SET NULL', nullable=True),
        sa.Column('title', sa.String(length=300), nullable=False),
        sa.Column('passing_score', sa.Integer(), server_default='70', nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('cooldown_minutes', sa.Integer(), nullable=True),
        sa.Column('show_correct_answers', sa.Boolean(), server_default=sa.true(), nullable=False),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_quizzes_course_id', 'quizzes', ['course_id'])

    op.create_table(
        'quiz_questions',
        _id(),
        _fk('quiz_id', 'quizzes.id', 'CASCADE'),
        sa.Column('type', sa.String(length=40), server_default='MULTIPLE_CHOICE_SINGLE', nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        _json('options'),
        sa.Column('correct_answer', sa.Text(), nullable=True),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('points', sa.Integer(), server_default='1', nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
    )
    op.create_index('ix_quiz_questions_quiz_id', 'quiz_questions', ['quiz_id'])

    op.create_table(
        'quiz_attempts',
        _id(),
        _fk('quiz_id', 'quizzes.id', 'CASCADE'),
        _fk('user_id', 'users.id', 'CASCADE'),
        _fk('enrollment_id', 'enrollments.id', 'CASCADE', nullable=True),
        _json('answers'),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('earned_points', sa.Integer(), nullable=True),
        sa.Column('total_points', sa.Integer(), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=True),
        _ts('started_at', nullable=False),
        _ts('submitted_at'),
    )
    op.create_index('ix_quiz_attempts_quiz_id_user_id', 'quiz_attempts', ['quiz_id', 'user_id'])

    # CRM
    op.create_table(
        'contacts',
        _id(),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('first_name', sa.String(length=200), nullable=True),
        sa.Column('last_name', sa.String(length=200), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('source', sa.String(length=50), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='ACTIVE', nullable=False),
        sa.Column('marketing_status', sa.String(length=20), server_default='SUBSCRIBED', nullable=False),
        sa.Column('suppression_reason', sa.String(length=40), nullable=True),
        _ts('suppressed_at'),
        _ts('unsubscribed_at'),
        sa.Column('unsubscribe_reason', sa.Text(), nullable=True),
        sa.Column('sms_marketing_status', sa.String(length=20), server_default='SUBSCRIBED', nullable=False),
        _ts('last_sms_received_at'),
        sa.Column('total_sms_received', sa.Integer(), server_default='0', nullable=False),
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
    )
    op.create_index('ix_contacts_email', 'contacts', ['email'], unique=True)
    op.create_index('ix_contacts_marketing_status', 'contacts', ['marketing_status'])
    op.create_index('ix_contacts_phone', 'contacts', ['phone'])

    op.create_table(
        'tags',
        _id(),
        sa.Column('name', sa.String(length=100), nullable=False, unique=True),
        sa.Column('color', sa.String(length=20), nullable=True),
        _ts('created_at', nullable=False),
    )

    op.create_table(
        'contact_tags',
        sa.Column('contact_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('contacts.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('tag_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
        _ts('created_at', nullable=False),
    )

    op.create_table(
        'contact_activities',
        _id(),
        _fk('contact_id', 'contacts.id', 'CASCADE'),
        sa.Column('type', sa.String(length=30), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _json('metadata'),
        _fk('created_by', 'users.id', 'SET NULL', nullable=True),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_contact_activities_contact_id_created_at', 'contact_activities', ['contact_id', 'created_at'])

    # Webinars
    op.create_table(
        'webinars',
        _id(),
        sa.Column('slug', sa.String(length=200), nullable=False),
        sa.Column('title', sa.String(length=300), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='DRAFT', nullable=False),
        sa.Column('video_url', sa.String(length=1000), nullable=True),
        sa.Column('video_duration', sa.Integer(), nullable=True),
        sa.Column('thumbnail_url', sa.String(length=1000), nullable=True),
        sa.Column('chat_enabled', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('timezone', sa.String(length=64), server_default='Asia/Tbilisi', nullable=False),
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
    )
    op.create_index('ix_webinars_slug', 'webinars', ['slug'], unique=True)

    op.create_table(
        'webinar_schedule_configs',
        _id(),
        sa.Column('webinar_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('webinars.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('event_type', sa.String(length=20), server_default='RECURRING', nullable=False),
        _ts('starts_at'),
        _ts('ends_at'),
        _json('recurring_days'),
        _json('recurring_times'),
        _json('specific_dates'),
        _json('blackout_dates'),
        sa.Column('just_in_time_enabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('interval_minutes', sa.Integer(), nullable=True),
        sa.Column('interval_start_hour', sa.Integer(), server_default='9', nullable=False),
        sa.Column('interval_end_hour', sa.Integer(), server_default='21', nullable=False),
        sa.Column('max_sessions_to_show', sa.Integer(), server_default='3', nullable=False),
        sa.Column('on_demand_enabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('replay_enabled', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('replay_expires_after_days', sa.Integer(), server_default='7', nullable=True),
        _ts('updated_at', nullable=False),
    )

    op.create_table(
        'webinar_sessions',
        _id(),
        _fk('webinar_id', 'webinars.id', 'CASCADE'),
        sa.Column('scheduled_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('type', sa.String(length=20), server_default='SCHEDULED', nullable=False),
        sa.Column('registration_count', sa.Integer(), server_default='0', nullable=False),
        _ts('created_at', nullable=False),
        sa.UniqueConstraint('webinar_id', 'scheduled_at', 'type', name='uq_webinar_sessions_slot'),
    )
    op.create_index('ix_webinar_sessions_webinar_id_scheduled_at', 'webinar_sessions', ['webinar_id', 'scheduled_at'])

    op.create_table(
        'webinar_registrations',
        _id(),
        _fk('webinar_id', 'webinars.id', 'CASCADE'),
        _fk('session_id', 'webinar_sessions.id', 'SET NULL', nullable=True),
        _fk('contact_id', 'contacts.id', 'SET NULL', nullable=True),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('first_name', sa.String(length=200), nullable=True),
        sa.Column('last_name', sa.String(length=200), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('session_type', sa.String(length=20), server_default='SCHEDULED', nullable=False),
        sa.Column('access_token', sa.String(length=128), nullable=False),
        sa.Column('timezone', sa.String(length=64), server_default='UTC', nullable=False),
        sa.Column('source', sa.String(length=100), server_default='direct', nullable=False),
        sa.Column('utm_source', sa.String(length=200), nullable=True),
        sa.Column('utm_medium', sa.String(length=200), nullable=True),
        sa.Column('utm_campaign', sa.String(length=200), nullable=True),
        sa.Column('utm_content', sa.String(length=200), nullable=True),
        sa.Column('utm_term', sa.String(length=200), nullable=True),
        _ts('registered_at', nullable=False),
        _ts('joined_at'),
        _ts('attended_at'),
        _ts('completed_at'),
        sa.Column('max_video_position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('watch_progress', sa.Integer(), server_default='0', nullable=False),
        sa.Column('engagement_score', sa.Float(), nullable=True),
        sa.Column('chat_message_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('polls_answered', sa.Integer(), server_default='0', nullable=False),
        sa.UniqueConstraint('webinar_id', 'email', name='uq_webinar_registrations_webinar_email'),
    )
    op.create_index('ix_webinar_registrations_access_token', 'webinar_registrations', ['access_token'], unique=True)
    op.create_index('ix_webinar_registrations_session_id', 'webinar_registrations', ['session_id'])

    op.create_table(
        'webinar_interactions',
        _id(),
        _fk('webinar_id', 'webinars.id', 'CASCADE'),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=300), nullable=False),
        _json('content'),
        sa.Column('triggers_at', sa.Integer(), server_default='0', nullable=False),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('enabled', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('action_count', sa.Integer(), server_default='0', nullable=False),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_webinar_interactions_webinar_id', 'webinar_interactions', ['webinar_id'])

    op.create_table(
        'webinar_interaction_events',
        _id(),
        _fk('interaction_id', 'webinar_interactions.id', 'CASCADE'),
        _fk('registration_id', 'webinar_registrations.id', 'CASCADE'),
        sa.Column('event_type', sa.String(length=20), nullable=False),
        _json('payload'),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_webinar_interaction_events_interaction_id', 'webinar_interaction_events', ['interaction_id'])

    op.create_table(
        'webinar_poll_responses',
        _id(),
        _fk('interaction_id', 'webinar_interactions.id', 'CASCADE'),
        _fk('registration_id', 'webinar_registrations.id', 'CASCADE'),
        _json('selected_options'),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        _ts('created_at', nullable=False),
        sa.UniqueConstraint('interaction_id', 'registration_id', name='uq_webinar_poll_responses_once'),
    )

    op.create_table(
        'webinar_analytics_events',
        _id(),
        _fk('webinar_id', 'webinars.id', 'CASCADE'),
        _fk('registration_id', 'webinar_registrations.id', 'CASCADE', nullable=True),
        sa.Column('event_type', sa.String(length=40), nullable=False),
        _json('metadata'),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_webinar_analytics_events_webinar_id_event_type', 'webinar_analytics_events', ['webinar_id', 'event_type'])
    op.create_index('ix_webinar_analytics_events_registration_id', 'webinar_analytics_events', ['registration_id'])

    op.create_table(
        'webinar_chat_messages',
        _id(),
        _fk('webinar_id', 'webinars.id', 'CASCADE'),
        _fk('registration_id', 'webinar_registrations.id', 'SET NULL', nullable=True),
        sa.Column('sender_name', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('appears_at', sa.Integer(), nullable=True),
        sa.Column('is_simulated', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_from_moderator', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('is_hidden', sa.Boolean(), server_default=sa.false(), nullable=False),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_webinar_chat_messages_webinar_id_created_at', 'webinar_chat_messages', ['webinar_id', 'created_at'])
    op.create_index('ix_webinar_chat_messages_webinar_id_appears_at', 'webinar_chat_messages', ['webinar_id', 'appears_at'])

    # Notifications
    op.create_table(
        'webinar_notifications',
        _id(),
        _fk('webinar_id', 'webinars.id', 'CASCADE'),
        sa.Column('trigger_type', sa.String(length=30), nullable=False),
        sa.Column('trigger_minutes', sa.Integer(), server_default='0', nullable=False),
        _json('conditions'),
        sa.Column('channel', sa.String(length=10), server_default='EMAIL', nullable=False),
        sa.Column('template_key', sa.String(length=100), nullable=True),
        sa.Column('subject', sa.String(length=300), nullable=True),
        sa.Column('body_html', sa.Text(), nullable=True),
        sa.Column('body_text', sa.Text(), nullable=True),
        sa.Column('from_name', sa.String(length=200), nullable=True),
        sa.Column('from_email', sa.String(length=320), nullable=True),
        sa.Column('reply_to', sa.String(length=320), nullable=True),
        _json('actions'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
        _ts('deleted_at'),
    )
    op.create_index('ix_webinar_notifications_webinar_id_trigger_type', 'webinar_notifications', ['webinar_id', 'trigger_type'])

    op.create_table(
        'course_notifications',
        _id(),
        _fk('course_id', 'courses.id', 'CASCADE'),
        sa.Column('trigger_type', sa.String(length=30), nullable=False),
        sa.Column('trigger_minutes', sa.Integer(), server_default='0', nullable=False),
        _json('conditions'),
        sa.Column('channel', sa.String(length=10), server_default='EMAIL', nullable=False),
        sa.Column('template_key', sa.String(length=100), nullable=True),
        sa.Column('subject', sa.String(length=300), nullable=True),
        sa.Column('body_html', sa.Text(), nullable=True),
        sa.Column('body_text', sa.Text(), nullable=True),
        _json('actions'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_default', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
        _ts('deleted_at'),
    )
    op.create_index('ix_course_notifications_course_id_trigger_type', 'course_notifications', ['course_id', 'trigger_type'])

    op.create_table(
        'notification_queue',
        _id(),
        sa.Column('kind', sa.String(length=10), nullable=False),
        sa.Column('notification_id', postgresql.UUID(as_uuid=True), nullable=False),
        _fk('registration_id', 'webinar_registrations.id', 'CASCADE', nullable=True),
        _fk('enrollment_id', 'enrollments.id', 'CASCADE', nullable=True),
        sa.Column('recipient_email', sa.String(length=320), nullable=False),
        sa.Column('scheduled_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='PENDING', nullable=False),
        sa.Column('attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        _json('metadata'),
        _ts('processed_at'),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_notification_queue_status_scheduled_at', 'notification_queue', ['status', 'scheduled_at'])
    op.create_index('ix_notification_queue_notification_id', 'notification_queue', ['notification_id'])

    op.create_table(
        'email_logs',
        _id(),
        sa.Column('message_id', sa.String(length=255), nullable=True, unique=True),
        sa.Column('to_email', sa.String(length=320), nullable=False),
        sa.Column('subject', sa.String(length=300), nullable=False),
        sa.Column('type', sa.String(length=20), server_default='TRANSACTIONAL', nullable=False),
        sa.Column('status', sa.String(length=20), server_default='QUEUED', nullable=False),
        sa.Column('reference_type', sa.String(length=50), nullable=True),
        sa.Column('reference_id', postgresql.UUID(as_uuid=True), nullable=True),
        _fk('contact_id', 'contacts.id', 'SET NULL', nullable=True),
        _json('metadata'),
        sa.Column('error', sa.Text(), nullable=True),
        _ts('sent_at'),
        _ts('delivered_at'),
        _ts('opened_at'),
        _ts('bounced_at'),
        sa.Column('bounce_type', sa.String(length=200), nullable=True),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_email_logs_status', 'email_logs', ['status'])
    op.create_index('ix_email_logs_type_created_at', 'email_logs', ['type', 'created_at'])
    op.create_index('ix_email_logs_reference', 'email_logs', ['reference_type', 'reference_id'])

    # Campaigns and SMS
    op.create_table(
        'campaigns',
        _id(),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('subject', sa.String(length=300), nullable=False),
        sa.Column('html_content', sa.Text(), nullable=False),
        sa.Column('text_content', sa.Text(), nullable=True),
        sa.Column('from_name', sa.String(length=200), nullable=True),
        sa.Column('from_email', sa.String(length=320), nullable=True),
        sa.Column('reply_to', sa.String(length=320), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='DRAFT', nullable=False),
        _json('audience_tag_ids'),
        _ts('scheduled_at'),
        sa.Column('sent_count', sa.Integer(), server_default='0', nullable=False),
        _ts('started_at'),
        _ts('completed_at'),
        _fk('created_by', 'users.id', 'SET NULL', nullable=True),
        _ts('created_at', nullable=False),
        _ts('updated_at', nullable=False),
    )

    op.create_table(
        'campaign_recipients',
        _id(),
        _fk('campaign_id', 'campaigns.id', 'CASCADE'),
        _fk('contact_id', 'contacts.id', 'SET NULL', nullable=True),
        sa.Column('email', sa.String(length=320), nullable=False),
        _json('variables'),
        sa.Column('status', sa.String(length=20), server_default='PENDING', nullable=False),
        sa.Column('message_id', sa.String(length=255), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        _ts('sent_at'),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_campaign_recipients_campaign_id_status', 'campaign_recipients', ['campaign_id', 'status'])

    op.create_table(
        'sms_logs',
        _id(),
        sa.Column('phone', sa.String(length=20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('brand_id', sa.String(length=50), nullable=True),
        sa.Column('type', sa.String(length=20), server_default='TRANSACTIONAL', nullable=False),
        sa.Column('reference_type', sa.String(length=50), nullable=True),
        sa.Column('reference_id', postgresql.UUID(as_uuid=True), nullable=True),
        _fk('contact_id', 'contacts.id', 'SET NULL', nullable=True),
        sa.Column('status', sa.String(length=20), server_default='PENDING', nullable=False),
        sa.Column('provider_sms_id', sa.String(length=100), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        _ts('sent_at'),
        _ts('created_at', nullable=False),
    )
    op.create_index('ix_sms_logs_status_created_at', 'sms_logs', ['status', 'created_at'])
    op.create_index('ix_sms_logs_contact_id', 'sms_logs', ['contact_id'])

    op.create_table(
        'testimonials',
        _id(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('rating', sa.Integer(), server_default='5', nullable=False),
        sa.Column('locale', sa.String(length=8), server_default='ka', nullable=False),
        sa.Column('type', sa.String(length=10), server_default='TEXT', nullable=False),
        sa.Column('status', sa.String(length=10), server_default='PENDING', nullable=False),
        _json('tags'),
        sa.Column('audio_url', sa.String(length=1000), nullable=True),
        sa.Column('video_url', sa.String(length=1000), nullable=True),
        sa.Column('source', sa.String(length=50), server_default='website_form', nullable=False),
        _ts('submitted_at', nullable=False),
        _ts('reviewed_at'),
    )
    op.create_index('ix_testimonials_status_submitted_at', 'testimonials', ['status', 'submitted_at'])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        'testimonials',
        'sms_logs',
        'campaign_recipients',
        'campaigns',
        'email_logs',
        'notification_queue',
        'course_notifications',
        'webinar_notifications',
        'webinar_chat_messages',
        'webinar_analytics_events',
        'webinar_poll_responses',
        'webinar_interaction_events',
        'webinar_interactions',
        'webinar_registrations',
        'webinar_sessions',
        'webinar_schedule_configs',
        'webinars',
        'contact_activities',
        'contact_tags',
        'tags',
        'contacts',
        'quiz_attempts',
        'quiz_questions',
        'quizzes',
        'part_progress',
        'enrollments',
        'lesson_parts',
        'lessons',
        'course_modules',
        'courses',
        'audit_logs',
        'users',
    ):
        op.drop_table(table)
