"""
Notification service: drains the notification outbox.

Rows in ``notification_queue`` are claimed (PENDING -> PROCESSING), the
notification config is fetched fresh so admin edits and deletions made after
queueing are respected, conditions are evaluated against the recipient's
current state, and the message is rendered and sent. Each row ends SENT,
SKIPPED or FAILED; one bad row never stops the batch.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import ObjectDeletedError, StaleDataError

from academy.db import models, schemas
from academy.db.repositories import contacts as contacts_repo
from academy.db.repositories import notifications as notifications_repo
from academy.services import course_notifications, webinar_notifications
from academy.services.notification_conditions import (
    build_course_context,
    build_webinar_context,
    evaluate_conditions,
)
from academy.services.notification_templates import (
    COURSE,
    WEBINAR,
    DEFAULT_LOCALE,
    RenderedEmail,
    render_notification_template,
    replace_variables,
    resolve_locale,
)
from academy.services.transactional_email_service import (
    TransactionalEmailService,
    TemplateRenderError,
    get_transactional_email_service,
)
from academy.utils.feature_flags import sms_enabled

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

ACTION_TAG_CONTACT = 'TAG_CONTACT'


class NotificationSkipped(Exception):
    """Raised inside item processing to end a row as SKIPPED."""


class NotificationService:
    """Service class for processing queued webinar and course notifications."""

    def __init__(self, db: Session, email_service: Optional[TransactionalEmailService] = None, sms_client=None):
        self.db = db
        self.email_service = email_service or get_transactional_email_service()
        self.sms_client = sms_client

    # === Queue draining ===

    def _safe_commit(self, item_id) -> bool:
        """Commit one row's outcome; a row removed underneath us is rolled back and reported."""
        try:
            self.db.commit()
            return True
        except (StaleDataError, ObjectDeletedError) as se:
            self.db.rollback()
            logger.warning(f"Concurrent modification of queued notification {item_id}: {se}")
            return False

    def claim_due_items(self, batch: int = DEFAULT_BATCH_SIZE, now: Optional[datetime] = None) -> List[models.NotificationQueue]:
        """Mark up to ``batch`` due PENDING rows as PROCESSING, oldest first."""
        now = now or datetime.now(timezone.utc)
        items = self.db.query(models.NotificationQueue).filter(
            models.NotificationQueue.status == models.QueueStatus.PENDING,
            models.NotificationQueue.scheduled_at <= now,
        ).order_by(models.NotificationQueue.scheduled_at.asc()).limit(batch).all()
        for item in items:
            item.status = models.QueueStatus.PROCESSING
        self.db.commit()
        return items

    def process_queue(self, batch: int = DEFAULT_BATCH_SIZE, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or datetime.now(timezone.utc)
        stats = {'processed': 0, 'sent': 0, 'skipped': 0, 'failed': 0}
        for item in self.claim_due_items(batch, now):
            stats['processed'] += 1
            status = self.process_item(item, now)
            if status == models.QueueStatus.SENT:
                stats['sent'] += 1
            elif status == models.QueueStatus.SKIPPED:
                stats['skipped'] += 1
            else:
                stats['failed'] += 1
        if stats['processed']:
            logger.info(
                f"Notification queue: processed={stats['processed']} sent={stats['sent']} "
                f"skipped={stats['skipped']} failed={stats['failed']}"
            )
        return stats

    def process_item(self, item: models.NotificationQueue, now: Optional[datetime] = None) -> str:
        """Send one claimed row and return its final status."""
        now = now or datetime.now(timezone.utc)
        item_id = item.id
        notification = None
        try:
            notification = self._load_notification(item)
            if notification is None or notification.deleted_at is not None:
                raise NotificationSkipped('Notification deleted')
            if not notification.is_active:
                raise NotificationSkipped('Notification disabled')

            locale, context, variables, contact = self._recipient_state(item, now)
            if not evaluate_conditions(notification.conditions, context):
                raise NotificationSkipped('Conditions not met')

            if notification.channel == models.Channel.SMS:
                self._send_sms(item, notification, variables, contact)
            else:
                self._send_email(item, notification, locale, variables, contact)
                self._run_actions(notification, contact)

            item.status = models.QueueStatus.SENT
            item.last_error = None
            item.processed_at = now
            self._safe_commit(item_id)
            return models.QueueStatus.SENT
        except NotificationSkipped as skip:
            item.status = models.QueueStatus.SKIPPED
            item.last_error = str(skip)
            item.processed_at = now
            self._safe_commit(item_id)
            logger.info(f"Skipped queued notification {item_id}: {skip}")
            return models.QueueStatus.SKIPPED
        except Exception as e:
            logger.error(f"Failed to process queued notification {item_id}: {e}")
            if isinstance(e, SQLAlchemyError):
                self.db.rollback()
            item.attempts = (item.attempts or 0) + 1
            item.last_error = str(e) or e.__class__.__name__
            item.status = models.QueueStatus.FAILED
            item.processed_at = now
            if notification is None or notification.channel != models.Channel.SMS:
                self.create_email_log(
                    item,
                    notification,
                    subject=(notification.subject if notification is not None else None) or '(not rendered)',
                    status=models.EmailStatus.FAILED,
                    error=item.last_error,
                )
            self._safe_commit(item_id)
            return models.QueueStatus.FAILED

    # === Loading recipient state ===

    def _load_notification(self, item: models.NotificationQueue):
        model = models.WebinarNotification if item.kind == models.QueueKind.WEBINAR else models.CourseNotification
        return self.db.query(model).filter(model.id == item.notification_id).first()

    def _locale_for_email(self, email: str) -> str:
        user = self.db.query(models.User).filter(models.User.email == email.strip().lower()).first()
        return resolve_locale(user.preferred_locale if user else DEFAULT_LOCALE)

    def _recipient_state(self, item: models.NotificationQueue, now: datetime) -> Tuple[str, Dict[str, Any], Dict[str, Any], Optional[models.Contact]]:
        contact = contacts_repo.get_contact_by_email(self.db, item.recipient_email)
        if item.kind == models.QueueKind.WEBINAR:
            registration = self.db.query(models.WebinarRegistration).filter(
                models.WebinarRegistration.id == item.registration_id,
            ).first()
            if registration is None:
                raise LookupError('Registration not found')
            locale = self._locale_for_email(registration.email)
            context = build_webinar_context(self.db, registration)
            variables = webinar_notifications.build_webinar_variables(registration, locale)
            variables['phone'] = registration.phone
            return locale, context, variables, contact

        enrollment = self.db.query(models.Enrollment).filter(
            models.Enrollment.id == item.enrollment_id,
        ).first()
        if enrollment is None:
            raise LookupError('Enrollment not found')
        locale = resolve_locale(enrollment.user.preferred_locale)
        context = build_course_context(self.db, enrollment, now)
        variables = course_notifications.build_course_variables(
            self.db, enrollment, locale, metadata=item.get_metadata(), now=now,
        )
        return locale, context, variables, contact

    # === Rendering and delivery ===

    def render(self, item: models.NotificationQueue, notification, locale: str, variables: Dict[str, Any]) -> RenderedEmail:
        """Template content when ``template_key`` is set, inline content otherwise."""
        group = WEBINAR if item.kind == models.QueueKind.WEBINAR else COURSE
        if notification.template_key:
            try:
                return render_notification_template(group, notification.template_key, locale, variables, self.email_service)
            except TemplateRenderError as e:
                logger.error(f"Failed to render template {notification.template_key}: {e}")
                if not notification.body_html:
                    raise
        if not notification.body_html:
            raise TemplateRenderError(f"Notification {notification.id} has neither a template nor inline content")
        return RenderedEmail(
            subject=replace_variables(notification.subject or '', variables),
            html=replace_variables(notification.body_html, variables),
            text=replace_variables(notification.body_text, variables) if notification.body_text else None,
            locale=locale,
        )

    def _send_email(self, item, notification, locale, variables, contact) -> Dict[str, Any]:
        rendered = self.render(item, notification, locale, variables)
        result = self.email_service.send_email_sync(
            to_email=item.recipient_email,
            subject=rendered.subject,
            html_content=rendered.html,
            text_content=rendered.text,
            from_name=getattr(notification, 'from_name', None),
            from_email=getattr(notification, 'from_email', None),
            reply_to=getattr(notification, 'reply_to', None),
        )
        if not result.get('success'):
            raise RuntimeError(result.get('error') or 'Email sending failed')
        self.create_email_log(
            item,
            notification,
            subject=rendered.subject,
            status=models.EmailStatus.SENT,
            message_id=result.get('message_id'),
            contact=contact,
            locale=rendered.locale,
        )
        return result

    def _send_sms(self, item, notification, variables, contact) -> Dict[str, Any]:
        from academy.services import sms_service

        if not sms_enabled():
            raise NotificationSkipped('SMS disabled')
        phone = variables.get('phone') or (contact.phone if contact else None)
        if not phone:
            raise NotificationSkipped('No phone number')
        message = replace_variables(notification.body_text or notification.subject or '', variables, keep_unknown=False)
        if not message.strip():
            raise NotificationSkipped('Empty SMS body')
        result = sms_service.send_sms(
            self.db,
            phone,
            message,
            sms_type=models.SmsType.WEBINAR if item.kind == models.QueueKind.WEBINAR else models.SmsType.COURSE,
            reference_type=self._reference_type(item),
            reference_id=notification.id,
            contact_id=contact.id if contact else None,
            client=self.sms_client,
        )
        if not result.get('success'):
            raise RuntimeError(result.get('error') or 'SMS sending failed')
        return result

    def _run_actions(self, notification, contact: Optional[models.Contact]) -> None:
        if not notification.actions or contact is None:
            return
        for action in notification.actions:
            if action.get('type') != ACTION_TAG_CONTACT:
                logger.warning(f"Unknown notification action: {action.get('type')}")
                continue
            tag = None
            if action.get('tag_id') or action.get('tagId'):
                try:
                    tag_id = uuid.UUID(str(action.get('tag_id') or action.get('tagId')))
                except ValueError:
                    logger.warning(f"Invalid tag id in notification {notification.id} action")
                    continue
                tag = contacts_repo.get_tag(self.db, tag_id)
            elif action.get('tag'):
                tag = contacts_repo.get_or_create_tag(self.db, action['tag'])
            if tag is None:
                logger.warning(f"Tag for notification {notification.id} action not found")
                continue
            contacts_repo.add_tags(self.db, contact, [tag])

    # === Email log ===

    @staticmethod
    def _reference_type(item: models.NotificationQueue) -> str:
        return 'webinar_notification' if item.kind == models.QueueKind.WEBINAR else 'course_notification'

    def create_email_log(
        self,
        item: models.NotificationQueue,
        notification,
        subject: str,
        status: str,
        message_id: Optional[str] = None,
        error: Optional[str] = None,
        contact: Optional[models.Contact] = None,
        locale: Optional[str] = None,
    ) -> models.EmailLog:
        metadata = {'queue_id': str(item.id)}
        if notification is not None and notification.template_key:
            metadata['template_key'] = notification.template_key
        if locale:
            metadata['locale'] = locale
        return notifications_repo.create_email_log(
            self.db,
            schemas.EmailLogCreate(
                to_email=item.recipient_email,
                subject=subject,
                type=models.EmailType.NOTIFICATION,
                status=status,
                reference_type=self._reference_type(item),
                reference_id=item.notification_id,
                contact_id=contact.id if contact else None,
                message_id=message_id,
                error=error,
                metadata=metadata,
            ),
            commit=False,
        )


def process_notification_queue(
    db: Session,
    batch: int = DEFAULT_BATCH_SIZE,
    email_service: Optional[TransactionalEmailService] = None,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Cron entry point; returns ``{processed, sent, skipped, failed}``."""
    return NotificationService(db, email_service=email_service).process_queue(batch=batch, now=now)
