import pytest

from academy.db import models
from academy.services.notification_templates import (
    COURSE,
    DEFAULT_COURSE_NOTIFICATIONS,
    DEFAULT_WEBINAR_NOTIFICATIONS,
    WEBINAR,
    format_trigger_description,
    render_notification_template,
    render_subject,
    replace_variables,
    resolve_locale,
)
from academy.services.transactional_email_service import TemplateRenderError, TransactionalEmailService


@pytest.fixture
def email_service(monkeypatch):
    monkeypatch.delenv("EMAIL_TEMPLATE_DIR", raising=False)
    return TransactionalEmailService()


def test_replace_variables_is_case_insensitive():
    text = "Hi {{firstName}}, welcome to {{ COURSETITLE }}. {{unknown}}"
    variables = {"firstname": "Nino", "courseTitle": "Python 101"}
    assert replace_variables(text, variables) == "Hi Nino, welcome to Python 101. {{unknown}}"
    assert replace_variables(text, variables, keep_unknown=False) == "Hi Nino, welcome to Python 101. "
    assert replace_variables(None, variables) == ""
    assert replace_variables("{{firstName}}!", {"firstName": None}) == "!"


def test_resolve_locale_defaults_to_georgian():
    assert resolve_locale("en") == "en"
    assert resolve_locale("fr") == "ka"
    assert resolve_locale(None) == "ka"


def test_render_subject_blanks_missing_values():
    assert render_subject(COURSE, "course-completed", "en", {"courseTitle": "SQL"}) == "Congratulations! You've completed SQL!"
    assert render_subject(COURSE, "inactivity-14d", "en", {}) == "Your course is waiting, !"
    with pytest.raises(TemplateRenderError):
        render_subject(COURSE, "no-such-key", "en", {})


def test_render_webinar_template_in_georgian(email_service):
    rendered = render_notification_template(
        WEBINAR, "registration-confirmation", "ka", {"webinar_title": "Growth", "first_name": "Nino"}, email_service
    )
    assert rendered.locale == "ka"
    assert "Growth" in rendered.subject
    assert rendered.html
    assert rendered.text


def test_missing_georgian_template_falls_back_to_english(email_service):
    rendered = render_notification_template(
        COURSE, "certificate-issued", "ka", {"courseTitle": "SQL", "firstName": "Nino"}, email_service
    )
    assert rendered.locale == "en"
    assert rendered.subject == "Your certificate for SQL is ready!"
    assert "Nino" in rendered.html
    assert "<" not in rendered.text


def test_unknown_template_raises(email_service):
    with pytest.raises(TemplateRenderError):
        render_notification_template(COURSE, "does-not-exist", "en", {}, email_service)


@pytest.mark.parametrize(
    "trigger_type,minutes,expected",
    [
        (models.WebinarTrigger.AFTER_REGISTRATION, 0, "Immediately after registration"),
        (models.WebinarTrigger.BEFORE_START, -1440, "1 day before session starts"),
        (models.WebinarTrigger.BEFORE_START, -15, "15 minutes before session starts"),
        (models.WebinarTrigger.AFTER_END, 120, "2 hours after session ends"),
        (models.CourseTrigger.ON_INACTIVITY, 10080, "After 7 days of inactivity"),
        (models.CourseTrigger.BEFORE_EXPIRATION, 1440, "1 day before access expires"),
        (models.CourseTrigger.ON_QUIZ_PASSED, 0, "When quiz is passed"),
    ],
)
def test_format_trigger_description(trigger_type, minutes, expected):
    assert format_trigger_description(trigger_type, minutes) == expected


def test_default_notification_sets_have_subjects():
    for item in DEFAULT_WEBINAR_NOTIFICATIONS:
        assert render_subject(WEBINAR, item["template_key"], "en", {"webinar_title": "X"})
    for item in DEFAULT_COURSE_NOTIFICATIONS:
        assert render_subject(COURSE, item["template_key"], "ka", {"courseTitle": "X", "firstName": "Y"})
