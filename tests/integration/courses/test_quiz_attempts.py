from datetime import datetime, timedelta, timezone

import pytest

from academy.db import models
from academy.errors import ConflictError, PermissionDeniedError, ValidationError
from academy.services import progress_service, quiz_service

NOW = datetime(2026, 5, 4, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def learner(db_session, user_factory, course_factory):
    user = user_factory("learner@example.com")
    course = course_factory()
    enrollment = progress_service.enroll(db_session, user, course, now=NOW)
    return user, course, enrollment


def _answers(quiz, choice="a", text="Tbilisi"):
    single, short = quiz.questions
    return {str(single.id): choice, str(short.id): text}


def test_passing_attempt_completes_linked_part(db_session, learner, quiz_factory):
    user, course, enrollment = learner
    part = progress_service.ordered_parts(course)[0]
    quiz = quiz_factory(course, part=part)

    attempt = quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW)
    result = quiz_service.submit_attempt(db_session, quiz, attempt.id, user, _answers(quiz, text=" tbilisi "), enrollment, now=NOW)

    assert result["score"] == 100
    assert result["passed"] is True
    assert result["attempts_remaining"] is None
    assert result["answers"][0]["correct_answer"] == ["a"]
    assert result["answers"][1]["correct_answer"] == ["Tbilisi"]

    progress = db_session.query(models.PartProgress).filter_by(part_id=part.id).one()
    assert progress.status == models.ProgressStatus.COMPLETED
    assert progress.completed_by == models.CompletedBy.AUTO_QUIZ
    assert enrollment.progress_percent == 50


def test_part_completion_failure_keeps_graded_result(db_session, monkeypatch, learner, quiz_factory):
    user, course, enrollment = learner
    quiz = quiz_factory(course, part=progress_service.ordered_parts(course)[0])

    def _broken(*args, **kwargs):
        raise RuntimeError("progress table locked")

    monkeypatch.setattr(progress_service, "mark_part_complete", _broken)
    attempt = quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW)
    result = quiz_service.submit_attempt(db_session, quiz, attempt.id, user, _answers(quiz), enrollment, now=NOW)

    assert result["passed"] is True
    assert result["score"] == 100
    stored = db_session.query(models.QuizAttempt).filter_by(id=attempt.id).one()
    assert stored.passed is True
    assert stored.submitted_at is not None
    assert db_session.query(models.PartProgress).filter_by(status=models.ProgressStatus.COMPLETED).count() == 0


def test_failing_attempt_reports_remaining_attempts(db_session, learner, quiz_factory):
    user, course, enrollment = learner
    quiz = quiz_factory(course, max_attempts=2, passing_score=70)

    attempt = quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW)
    result = quiz_service.submit_attempt(db_session, quiz, attempt.id, user, _answers(quiz, choice="b"), enrollment, now=NOW)

    assert result["score"] == 50
    assert result["passed"] is False
    assert result["attempts_remaining"] == 1
    assert result["can_retry"] is True


def test_max_attempts_enforced(db_session, learner, quiz_factory):
    user, course, enrollment = learner
    quiz = quiz_factory(course, max_attempts=1)
    attempt = quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW)
    quiz_service.submit_attempt(db_session, quiz, attempt.id, user, {}, enrollment, now=NOW)

    with pytest.raises(PermissionDeniedError) as exc:
        quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW + timedelta(minutes=1))
    assert exc.value.details == {"max_attempts": 1}


def test_cooldown_between_attempts(db_session, learner, quiz_factory):
    user, course, enrollment = learner
    quiz = quiz_factory(course, cooldown_minutes=30)
    attempt = quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW)
    quiz_service.submit_attempt(db_session, quiz, attempt.id, user, {}, enrollment, now=NOW)

    with pytest.raises(ConflictError) as exc:
        quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW + timedelta(minutes=10))
    assert exc.value.details["retry_after_minutes"] == 20

    assert quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW + timedelta(minutes=31)) is not None


def test_attempt_cannot_be_submitted_twice(db_session, learner, quiz_factory):
    user, course, enrollment = learner
    quiz = quiz_factory(course)
    attempt = quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW)
    quiz_service.submit_attempt(db_session, quiz, attempt.id, user, _answers(quiz), enrollment, now=NOW)

    with pytest.raises(ValidationError):
        quiz_service.submit_attempt(db_session, quiz, attempt.id, user, _answers(quiz), enrollment, now=NOW)


def test_attempt_belongs_to_its_user(db_session, learner, quiz_factory, user_factory):
    user, course, enrollment = learner
    quiz = quiz_factory(course)
    attempt = quiz_service.start_attempt(db_session, quiz, user, enrollment, now=NOW)
    other = user_factory("other@example.com")

    with pytest.raises(PermissionDeniedError):
        quiz_service.submit_attempt(db_session, quiz, attempt.id, other, {}, None, now=NOW)
