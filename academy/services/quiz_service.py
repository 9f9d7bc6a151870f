"""
Quiz attempts and auto-grading.

Choice questions are graded against the options flagged ``is_correct``,
short answers by trimmed case-insensitive equality, essays are left for
manual review (0 points, still counted in the total).
"""

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy.orm import Session

from academy.db import models
from academy.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from academy.services import course_notifications, progress_service
from academy.utils.numbers import percent

logger = logging.getLogger(__name__)

SINGLE_CHOICE_TYPES = (models.QuestionType.MULTIPLE_CHOICE_SINGLE, models.QuestionType.TRUE_FALSE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _correct_option_ids(question: models.QuizQuestion) -> List[str]:
    return [str(o.get('id')) for o in (question.options or []) if o.get('is_correct')]


def _selected_options(answer: Any) -> List[str]:
    if answer is None:
        return []
    if isinstance(answer, (list, tuple)):
        return [str(a) for a in answer]
    if isinstance(answer, dict):
        return _selected_options(answer.get('selected_options'))
    return [str(answer)]


def _text_answer(answer: Any) -> str:
    if isinstance(answer, dict):
        answer = answer.get('text_answer')
    if answer is None or isinstance(answer, (list, tuple)):
        return ''
    return str(answer)


def grade_question(question: models.QuizQuestion, answer: Any) -> Dict[str, Any]:
    points = question.points or 0
    needs_review = False
    if question.type in SINGLE_CHOICE_TYPES:
        selected = _selected_options(answer)
        correct_ids = _correct_option_ids(question)
        is_correct = bool(selected) and bool(correct_ids) and selected[0] == correct_ids[0]
    elif question.type == models.QuestionType.MULTIPLE_CHOICE_MULTIPLE:
        is_correct = set(_selected_options(answer)) == set(_correct_option_ids(question))
    elif question.type == models.QuestionType.SHORT_ANSWER:
        expected = (question.correct_answer or '').strip().lower()
        is_correct = _text_answer(answer).strip().lower() == expected
    elif question.type == models.QuestionType.ESSAY:
        is_correct = False
        needs_review = True
    else:
        logger.warning(f"Unknown question type {question.type} on question {question.id}")
        is_correct = False

    return {
        'question_id': str(question.id),
        'is_correct': is_correct,
        'points_awarded': points if is_correct else 0,
        'points': points,
        'needs_review': needs_review,
    }


def grade_answers(questions: List[models.QuizQuestion], answers: Dict[str, Any]) -> Tuple[List[Dict[str, Any]], int, int]:
    """Return ``(per-question results, earned points, total points)``."""
    results = []
    earned = 0
    total = 0
    for question in questions:
        result = grade_question(question, answers.get(str(question.id)))
        results.append(result)
        earned += result['points_awarded']
        total += result['points']
    return results, earned, total


def calculate_score(earned: int, total: int) -> int:
    return percent(earned, total)


def _submitted_attempts(db: Session, quiz: models.Quiz, user: models.User):
    return db.query(models.QuizAttempt).filter(
        models.QuizAttempt.quiz_id == quiz.id,
        models.QuizAttempt.user_id == user.id,
        models.QuizAttempt.submitted_at.isnot(None),
    )


def start_attempt(
    db: Session,
    quiz: models.Quiz,
    user: models.User,
    enrollment: Optional[models.Enrollment] = None,
    now: Optional[datetime] = None,
) -> models.QuizAttempt:
    now = _as_utc(now) if now else _utcnow()
    submitted = _submitted_attempts(db, quiz, user)

    if quiz.max_attempts is not None and submitted.count() >= quiz.max_attempts:
        raise PermissionDeniedError("Maximum attempts reached", max_attempts=quiz.max_attempts)

    if quiz.cooldown_minutes:
        last = submitted.order_by(models.QuizAttempt.submitted_at.desc()).first()
        if last is not None:
            available_at = _as_utc(last.submitted_at) + timedelta(minutes=quiz.cooldown_minutes)
            if now < available_at:
                raise ConflictError(
                    "Please wait before retrying this quiz",
                    retry_after_minutes=math.ceil((available_at - now).total_seconds() / 60),
                )

    attempt = models.QuizAttempt(
        quiz_id=quiz.id,
        user_id=user.id,
        enrollment_id=enrollment.id if enrollment else None,
        started_at=now,
    )
    db.add(attempt)
    db.commit()
    db.refresh(attempt)
    return attempt


def submit_attempt(
    db: Session,
    quiz: models.Quiz,
    attempt_id: uuid.UUID,
    user: models.User,
    answers: Dict[str, Any],
    enrollment: Optional[models.Enrollment] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = _as_utc(now) if now else _utcnow()
    attempt = db.query(models.QuizAttempt).filter(models.QuizAttempt.id == attempt_id).first()
    if attempt is None:
        raise NotFoundError("Attempt not found")
    if attempt.quiz_id != quiz.id:
        raise ValidationError("Attempt does not belong to this quiz")
    if attempt.user_id != user.id:
        raise PermissionDeniedError("Attempt does not belong to you")
    if attempt.submitted_at is not None:
        raise ValidationError("This attempt has already been submitted")

    results, earned, total = grade_answers(quiz.questions, answers or {})
    score = calculate_score(earned, total)
    passed = score >= quiz.passing_score

    attempt.answers = answers or {}
    attempt.score = score
    attempt.earned_points = earned
    attempt.total_points = total
    attempt.passed = passed
    attempt.submitted_at = now
    db.commit()

    if quiz.show_correct_answers:
        by_id = {str(q.id): q for q in quiz.questions}
        for result in results:
            question = by_id[result['question_id']]
            if question.type == models.QuestionType.SHORT_ANSWER:
                result['correct_answer'] = [question.correct_answer or '']
            else:
                result['correct_answer'] = _correct_option_ids(question)
            result['explanation'] = question.explanation

    attempts_remaining = None
    if quiz.max_attempts is not None:
        attempts_remaining = max(quiz.max_attempts - _submitted_attempts(db, quiz, user).count(), 0)

    enrollment = enrollment or (
        db.query(models.Enrollment).filter(models.Enrollment.id == attempt.enrollment_id).first()
        if attempt.enrollment_id else None
    )
    if enrollment is not None:
        if passed and quiz.part_id:
            part = db.query(models.LessonPart).filter(models.LessonPart.id == quiz.part_id).first()
            if part is not None:
                try:
                    progress_service.mark_part_complete(db, enrollment, part, models.CompletedBy.AUTO_QUIZ, now)
                except Exception as e:
                    # The graded attempt is already committed
                    db.rollback()
                    logger.error(f"Failed to complete part {part.id} after quiz attempt {attempt.id}: {e}")
        try:
            course_notifications.queue_course_trigger(
                db,
                enrollment,
                models.CourseTrigger.ON_QUIZ_PASSED if passed else models.CourseTrigger.ON_QUIZ_FAILED,
                metadata={
                    'quizTitle': quiz.title,
                    'quizScore': score,
                    'passingScore': quiz.passing_score,
                    'attemptsRemaining': attempts_remaining,
                },
                now=now,
            )
        except Exception as e:
            logger.error(f"Failed to queue quiz notifications for attempt {attempt.id}: {e}")

    return {
        'attempt_id': attempt.id,
        'score': score,
        'passed': passed,
        'passing_score': quiz.passing_score,
        'earned_points': earned,
        'total_points': total,
        'answers': results,
        'attempts_remaining': attempts_remaining,
        'can_retry': attempts_remaining is None or attempts_remaining > 0,
        'cooldown_minutes': quiz.cooldown_minutes,
    }
