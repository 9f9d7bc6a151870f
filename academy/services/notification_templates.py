"""
Notification template registry.

Email bodies are Jinja2 files under ``academy/templates/email`` named
``<group>/<key>.<locale>.html`` (optional ``.txt``); subjects live in the
registries below. Georgian is the primary locale and falls back to English
when a template or subject is missing.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

from academy.db import models
from academy.services.transactional_email_service import (
    TransactionalEmailService,
    TemplateRenderError,
    get_transactional_email_service,
)

logger = logging.getLogger(__name__)

WEBINAR = 'webinar'
COURSE = 'course'

SUPPORTED_LOCALES = ('ka', 'en')
DEFAULT_LOCALE = 'ka'
FALLBACK_LOCALE = 'en'

WEBINAR_SUBJECTS: Dict[str, Dict[str, str]] = {
    'registration-confirmation': {
        'en': "You're registered: {webinar_title}",
        'ka': "თქვენ დარეგისტრირდით: {webinar_title}",
    },
    'reminder-24h': {
        'en': "Tomorrow: {webinar_title}",
        'ka': "ხვალ: {webinar_title}",
    },
    'reminder-1h': {
        'en': "Starting in 1 hour: {webinar_title}",
        'ka': "1 საათში იწყება: {webinar_title}",
    },
    'reminder-15m': {
        'en': "Starting in 15 minutes: {webinar_title}",
        'ka': "15 წუთში იწყება: {webinar_title}",
    },
    'followup-missed': {
        'en': "Sorry we missed you! Watch the replay of {webinar_title}",
        'ka': "ვერ დაესწარით? უყურეთ ჩანაწერს: {webinar_title}",
    },
    'followup-partial': {
        'en': "Finish watching {webinar_title}",
        'ka': "დაასრულეთ ყურება: {webinar_title}",
    },
    'followup-completed': {
        'en': "Thanks for watching {webinar_title}",
        'ka': "გმადლობთ, რომ უყურეთ: {webinar_title}",
    },
}

COURSE_SUBJECTS: Dict[str, Dict[str, str]] = {
    'enrollment-welcome': {
        'en': "Welcome to {courseTitle}!",
        'ka': "კეთილი იყოს თქვენი მობრძანება კურსზე: {courseTitle}!",
    },
    'enrollment-nudge': {
        'en': "Ready to start {courseTitle}?",
        'ka': "მზად ხართ დასაწყებად? {courseTitle}",
    },
    'course-started': {
        'en': "Great start on {courseTitle}!",
        'ka': "შესანიშნავი დასაწყისი: {courseTitle}",
    },
    'halfway-milestone': {
        'en': "You're halfway through {courseTitle}!",
        'ka': "თქვენ უკვე შუა გზაზე ხართ: {courseTitle}",
    },
    'course-completed': {
        'en': "Congratulations! You've completed {courseTitle}!",
        'ka': "გილოცავთ! თქვენ დაასრულეთ {courseTitle}!",
    },
    'quiz-passed': {
        'en': "Quiz passed in {courseTitle}!",
        'ka': "ტესტი წარმატებით ჩააბარეთ: {courseTitle}",
    },
    'quiz-failed': {
        'en': "Don't give up! Try the quiz again in {courseTitle}",
        'ka': "არ დანებდეთ! სცადეთ ტესტი ხელახლა {courseTitle}-ში",
    },
    'inactivity-7d': {
        'en': "We miss you! Continue {courseTitle}",
        'ka': "მოგვენატრეთ! გააგრძელეთ {courseTitle}",
    },
    'inactivity-14d': {
        'en': "Your course is waiting, {firstName}!",
        'ka': "თქვენი კურსი გელოდებათ, {firstName}!",
    },
    'expiration-7d': {
        'en': "Your access to {courseTitle} expires in 7 days",
        'ka': "თქვენი წვდომა {courseTitle}-ზე 7 დღეში იწურება",
    },
    'expiration-1d': {
        'en': "URGENT: {courseTitle} access expires TOMORROW",
        'ka': "სასწრაფო: {courseTitle}-ზე წვდომა ხვალ იწურება",
    },
    'certificate-issued': {
        'en': "Your certificate for {courseTitle} is ready!",
        'ka': "თქვენი სერტიფიკატი {courseTitle}-ისთვის მზადაა!",
    },
}

SUBJECTS = {WEBINAR: WEBINAR_SUBJECTS, COURSE: COURSE_SUBJECTS}

DEFAULT_WEBINAR_NOTIFICATIONS: List[Dict[str, Any]] = [
    {'template_key': 'registration-confirmation', 'trigger_type': models.WebinarTrigger.AFTER_REGISTRATION, 'trigger_minutes': 0, 'conditions': None},
    {'template_key': 'reminder-24h', 'trigger_type': models.WebinarTrigger.BEFORE_START, 'trigger_minutes': -1440, 'conditions': None},
    {'template_key': 'reminder-1h', 'trigger_type': models.WebinarTrigger.BEFORE_START, 'trigger_minutes': -60, 'conditions': None},
    {'template_key': 'reminder-15m', 'trigger_type': models.WebinarTrigger.BEFORE_START, 'trigger_minutes': -15, 'conditions': None},
    {'template_key': 'followup-missed', 'trigger_type': models.WebinarTrigger.AFTER_END, 'trigger_minutes': 60, 'conditions': {'attended': False}},
    {'template_key': 'followup-partial', 'trigger_type': models.WebinarTrigger.AFTER_END, 'trigger_minutes': 60, 'conditions': {'attended': True, 'completed': False}},
    {'template_key': 'followup-completed', 'trigger_type': models.WebinarTrigger.AFTER_END, 'trigger_minutes': 60, 'conditions': {'completed': True}},
]

DEFAULT_COURSE_NOTIFICATIONS: List[Dict[str, Any]] = [
    {'template_key': 'enrollment-welcome', 'trigger_type': models.CourseTrigger.AFTER_ENROLLMENT, 'trigger_minutes': 0, 'conditions': None},
    {'template_key': 'enrollment-nudge', 'trigger_type': models.CourseTrigger.AFTER_ENROLLMENT, 'trigger_minutes': 2880, 'conditions': {'has_not_started': True}},
    {'template_key': 'course-started', 'trigger_type': models.CourseTrigger.ON_COURSE_START, 'trigger_minutes': 0, 'conditions': None},
    {'template_key': 'halfway-milestone', 'trigger_type': models.CourseTrigger.ON_LESSON_COMPLETE, 'trigger_minutes': 0, 'conditions': {'progress_percent': {'gte': 50, 'lt': 51}}},
    {'template_key': 'course-completed', 'trigger_type': models.CourseTrigger.ON_COURSE_COMPLETE, 'trigger_minutes': 0, 'conditions': None},
    {'template_key': 'quiz-passed', 'trigger_type': models.CourseTrigger.ON_QUIZ_PASSED, 'trigger_minutes': 0, 'conditions': None},
    {'template_key': 'quiz-failed', 'trigger_type': models.CourseTrigger.ON_QUIZ_FAILED, 'trigger_minutes': 0, 'conditions': None},
    {'template_key': 'inactivity-7d', 'trigger_type': models.CourseTrigger.ON_INACTIVITY, 'trigger_minutes': 10080, 'conditions': {'has_not_completed': True}},
    {'template_key': 'inactivity-14d', 'trigger_type': models.CourseTrigger.ON_INACTIVITY, 'trigger_minutes': 20160, 'conditions': {'has_not_completed': True}},
    {'template_key': 'expiration-7d', 'trigger_type': models.CourseTrigger.BEFORE_EXPIRATION, 'trigger_minutes': 10080, 'conditions': None},
    {'template_key': 'expiration-1d', 'trigger_type': models.CourseTrigger.BEFORE_EXPIRATION, 'trigger_minutes': 1440, 'conditions': None},
    {'template_key': 'certificate-issued', 'trigger_type': models.CourseTrigger.ON_CERTIFICATE_ISSUED, 'trigger_minutes': 0, 'conditions': None},
]


@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str
    locale: str


class _BlankMissing(dict):
    def __missing__(self, key):
        return ''


def resolve_locale(locale: Optional[str]) -> str:
    if locale in SUPPORTED_LOCALES:
        return locale
    return DEFAULT_LOCALE


def render_subject(group: str, key: str, locale: str, context: Dict[str, Any]) -> str:
    subjects = SUBJECTS.get(group, {}).get(key)
    if not subjects:
        raise TemplateRenderError(f"Unknown {group} template key: {key}")
    pattern = subjects.get(locale) or subjects[FALLBACK_LOCALE]
    return pattern.format_map(_BlankMissing({k: '' if v is None else v for k, v in context.items()}))


def render_notification_template(
    group: str,
    key: str,
    locale: Optional[str],
    context: Dict[str, Any],
    email_service: Optional[TransactionalEmailService] = None,
) -> RenderedEmail:
    """Render subject and bodies for a template key; ``ka`` falls back to ``en``."""
    service = email_service or get_transactional_email_service()
    locale = resolve_locale(locale)
    chosen = locale
    if not service.has_template(f"{group}/{key}.{locale}"):
        if locale == FALLBACK_LOCALE or not service.has_template(f"{group}/{key}.{FALLBACK_LOCALE}"):
            raise TemplateRenderError(f"No template for {group}/{key}")
        logger.debug(f"Template {group}/{key} has no {locale} variant, using {FALLBACK_LOCALE}")
        chosen = FALLBACK_LOCALE
    html, text = service.render_template(f"{group}/{key}.{chosen}", {**context, 'locale': chosen})
    return RenderedEmail(
        subject=render_subject(group, key, chosen, context),
        html=html,
        text=text,
        locale=chosen,
    )


_VARIABLE_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def replace_variables(text: Optional[str], variables: Dict[str, Any], keep_unknown: bool = True) -> str:
    """Replace ``{{name}}`` placeholders; names match case-insensitively."""
    if not text:
        return ''
    lookup = {k.lower(): v for k, v in variables.items()}

    def _sub(match):
        name = match.group(1).lower()
        if name in lookup:
            value = lookup[name]
            return '' if value is None else str(value)
        return match.group(0) if keep_unknown else ''

    return _VARIABLE_PATTERN.sub(_sub, text)


def _timing(minutes: int) -> str:
    abs_minutes = abs(minutes)
    if abs_minutes == 0:
        return 'immediately'
    if abs_minutes < 60:
        return f"{abs_minutes} minute{'' if abs_minutes == 1 else 's'}"
    if abs_minutes < 1440:
        hours = abs_minutes // 60
        return f"{hours} hour{'' if hours == 1 else 's'}"
    days = abs_minutes // 1440
    return f"{days} day{'' if days == 1 else 's'}"


def format_trigger_description(trigger_type: str, trigger_minutes: int) -> str:
    """Human readable timing, e.g. '1 day before session starts'."""
    timing = _timing(trigger_minutes or 0)
    immediate = not trigger_minutes

    if trigger_type == models.WebinarTrigger.AFTER_REGISTRATION:
        return 'Immediately after registration' if immediate else f"{timing} after registration"
    if trigger_type == models.WebinarTrigger.BEFORE_START:
        return f"{timing} before session starts"
    if trigger_type == models.WebinarTrigger.AFTER_END:
        return 'Immediately after session ends' if immediate else f"{timing} after session ends"

    if trigger_type == models.CourseTrigger.AFTER_ENROLLMENT:
        return 'Immediately after enrollment' if immediate else f"{timing} after enrollment"
    if trigger_type == models.CourseTrigger.ON_COURSE_START:
        return 'When course is started' if immediate else f"{timing} after course start"
    if trigger_type == models.CourseTrigger.ON_LESSON_COMPLETE:
        return 'When lesson is completed'
    if trigger_type == models.CourseTrigger.ON_COURSE_COMPLETE:
        return 'When course is completed'
    if trigger_type == models.CourseTrigger.ON_QUIZ_PASSED:
        return 'When quiz is passed'
    if trigger_type == models.CourseTrigger.ON_QUIZ_FAILED:
        return 'When quiz is failed'
    if trigger_type == models.CourseTrigger.ON_INACTIVITY:
        return f"After {timing} of inactivity"
    if trigger_type == models.CourseTrigger.BEFORE_EXPIRATION:
        return f"{timing} before access expires"
    if trigger_type == models.CourseTrigger.ON_CERTIFICATE_ISSUED:
        return 'When certificate is issued'
    return timing
