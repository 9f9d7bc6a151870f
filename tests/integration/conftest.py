import secrets
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session

from academy.db import models


# Domain factories

@pytest.fixture
def user_factory(db_session: Session):
    def _create(email: str, is_admin: bool = False, display_name: str = None, preferred_locale: str = "en"):
        user = models.User(
            email=email,
            display_name=display_name or email.split("@")[0],
            is_admin=is_admin,
            preferred_locale=preferred_locale,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _create


@pytest.fixture
def course_factory(db_session: Session):
    """Course with one module lesson and one direct lesson.

    ``parts_per_lesson`` VIDEO parts are created in each lesson.
    """
    def _create(
        slug: str = "python-basics",
        status: str = models.CourseStatus.PUBLISHED,
        parts_per_lesson: int = 1,
        **kwargs,
    ):
        course = models.Course(slug=slug, title=kwargs.pop("title", slug.replace("-", " ").title()), status=status, **kwargs)
        db_session.add(course)
        db_session.flush()
        module = models.CourseModule(course_id=course.id, title="Module 1", sort_order=0)
        db_session.add(module)
        db_session.flush()
        lessons = [
            models.Lesson(course_id=course.id, module_id=module.id, title="Lesson 1", sort_order=0),
            models.Lesson(course_id=course.id, module_id=None, title="Lesson 2", sort_order=1),
        ]
        db_session.add_all(lessons)
        db_session.flush()
        for lesson in lessons:
            for index in range(parts_per_lesson):
                db_session.add(models.LessonPart(
                    lesson_id=lesson.id,
                    title=f"{lesson.title} part {index + 1}",
                    type=models.PartType.VIDEO,
                    sort_order=index,
                    video_duration=600,
                ))
        db_session.commit()
        db_session.refresh(course)
        return course
    return _create


@pytest.fixture
def quiz_factory(db_session: Session):
    def _create(course: models.Course, part: models.LessonPart = None, **kwargs):
        quiz = models.Quiz(course_id=course.id, part_id=part.id if part else None, title=kwargs.pop("title", "Checkpoint"), **kwargs)
        db_session.add(quiz)
        db_session.flush()
        db_session.add_all([
            models.QuizQuestion(
                quiz_id=quiz.id,
                type=models.QuestionType.MULTIPLE_CHOICE_SINGLE,
                text="2 + 2?",
                options=[{"id": "a", "text": "4", "is_correct": True}, {"id": "b", "text": "5"}],
                sort_order=0,
            ),
            models.QuizQuestion(
                quiz_id=quiz.id,
                type=models.QuestionType.SHORT_ANSWER,
                text="Capital of Georgia?",
                correct_answer="Tbilisi",
                sort_order=1,
            ),
        ])
        db_session.commit()
        db_session.refresh(quiz)
        return quiz
    return _create


@pytest.fixture
def webinar_factory(db_session: Session):
    def _create(slug: str = "growth-webinar", schedule: dict = None, **kwargs):
        kwargs.setdefault("title", slug.replace("-", " ").title())
        kwargs.setdefault("status", models.WebinarStatus.PUBLISHED)
        kwargs.setdefault("video_duration", 3600)
        kwargs.setdefault("video_url", "https://video.example.com/growth.mp4")
        kwargs.setdefault("timezone", "UTC")
        webinar = models.Webinar(slug=slug, **kwargs)
        db_session.add(webinar)
        db_session.flush()
        if schedule is not None:
            db_session.add(models.WebinarScheduleConfig(webinar_id=webinar.id, **schedule))
        db_session.commit()
        db_session.refresh(webinar)
        return webinar
    return _create


@pytest.fixture
def session_factory(db_session: Session):
    def _create(webinar: models.Webinar, scheduled_at: datetime, session_type: str = models.SessionType.SCHEDULED):
        session = models.WebinarSession(webinar_id=webinar.id, scheduled_at=scheduled_at, type=session_type)
        db_session.add(session)
        db_session.commit()
        db_session.refresh(session)
        return session
    return _create


@pytest.fixture
def registration_factory(db_session: Session):
    def _create(webinar: models.Webinar, email: str = "viewer@example.com", session: models.WebinarSession = None, **kwargs):
        kwargs.setdefault(
            "session_type",
            session.type if session is not None else models.SessionType.ON_DEMAND,
        )
        registration = models.WebinarRegistration(
            webinar_id=webinar.id,
            session_id=session.id if session else None,
            email=email,
            access_token=secrets.token_hex(32),
            **kwargs,
        )
        db_session.add(registration)
        db_session.commit()
        db_session.refresh(registration)
        return registration
    return _create


@pytest.fixture
def contact_factory(db_session: Session):
    def _create(email: str, tags=(), **kwargs):
        contact = models.Contact(email=email, **kwargs)
        contact.tags = list(tags)
        db_session.add(contact)
        db_session.commit()
        db_session.refresh(contact)
        return contact
    return _create


@pytest.fixture
def tag_factory(db_session: Session):
    def _create(name: str, color: str = None):
        tag = models.Tag(name=name, color=color)
        db_session.add(tag)
        db_session.commit()
        db_session.refresh(tag)
        return tag
    return _create


@pytest.fixture
def email_log_factory(db_session: Session):
    def _create(to_email: str, message_id: str = None, **kwargs):
        kwargs.setdefault("subject", "Hello")
        kwargs.setdefault("status", models.EmailStatus.SENT)
        kwargs.setdefault("sent_at", datetime.now(timezone.utc))
        log = models.EmailLog(to_email=to_email, message_id=message_id, **kwargs)
        db_session.add(log)
        db_session.commit()
        db_session.refresh(log)
        return log
    return _create


# Provider fakes

class FakeEmailService:
    """Records sends; the transactional/marketing services share this surface."""

    def __init__(self, success: bool = True, configured: bool = True):
        self.success = success
        self.configured = configured
        self.sent = []

    def is_configured(self):
        return self.configured

    def has_template(self, template_name):
        from academy.services.transactional_email_service import TransactionalEmailService
        return TransactionalEmailService().has_template(template_name)

    def render_template(self, template_name, context):
        from academy.services.transactional_email_service import TransactionalEmailService
        return TransactionalEmailService().render_template(template_name, context)

    async def send_email(self, to_email, subject, html_content, text_content=None, **kwargs):
        return self.send_email_sync(to_email, subject, html_content, text_content, **kwargs)

    def send_email_sync(self, to_email, subject, html_content, text_content=None, **kwargs):
        self.sent.append({"to": to_email, "subject": subject, "html": html_content, "text": text_content, **kwargs})
        if not self.success:
            return {"success": False, "provider": "fake", "error": "provider rejected"}
        return {"success": True, "provider": "fake", "message_id": f"msg-{len(self.sent)}"}


class FakeSmsClient:
    def __init__(self, configured: bool = True, daily_limit: int = 1000, fail_numbers=()):
        self.configured = configured
        self.daily_limit = daily_limit
        self.brand_id = "1"
        self.fail_numbers = set(fail_numbers)
        self.sent = []

    def is_configured(self):
        return self.configured

    def send(self, numbers, text, brand_id=None):
        self.sent.append({"numbers": list(numbers), "text": text})
        if any(n in self.fail_numbers for n in numbers):
            return {"success": False, "error": "Provider rejected number"}
        return {"success": True, "status_id": 0, "message_id": f"sms-{len(self.sent)}"}


@pytest.fixture
def fake_email():
    return FakeEmailService()


@pytest.fixture
def fake_sms():
    return FakeSmsClient()
