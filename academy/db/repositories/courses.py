"""
Course repository functions.

CRUD for courses, their module/lesson/part hierarchy, quizzes and
enrollment lookups.
"""
from __future__ import annotations

import uuid
from typing import Optional, List
from sqlalchemy.orm import Session

from academy.db import schemas, models


def get_course(db: Session, course_id: uuid.UUID):
    return db.query(models.Course).filter(models.Course.id == course_id).first()


def get_course_by_slug(db: Session, slug: str):
    return db.query(models.Course).filter(models.Course.slug == slug).first()


def get_courses(db: Session, status: Optional[str] = None, skip: int = 0, limit: int = 100):
    query = db.query(models.Course)
    if status:
        query = query.filter(models.Course.status == status)
    return query.order_by(models.Course.created_at.desc()).offset(skip).limit(limit).all()


def create_course(db: Session, course: schemas.CourseCreate):
    db_course = models.Course(**course.model_dump())
    db.add(db_course)
    db.commit()
    db.refresh(db_course)
    return db_course


def update_course(db: Session, course_id: uuid.UUID, course: schemas.CourseUpdate):
    db_course = get_course(db, course_id)
    if db_course:
        for key, value in course.model_dump(exclude_unset=True).items():
            setattr(db_course, key, value)
        db.commit()
        db.refresh(db_course)
    return db_course


def delete_course(db: Session, course_id: uuid.UUID) -> bool:
    db_course = get_course(db, course_id)
    if not db_course:
        return False
    db.delete(db_course)
    db.commit()
    return True


def create_module(db: Session, course: models.Course, module: schemas.CourseModuleCreate):
    db_module = models.CourseModule(course_id=course.id, **module.model_dump())
    db.add(db_module)
    db.commit()
    db.refresh(db_module)
    return db_module


def get_module(db: Session, module_id: uuid.UUID):
    return db.query(models.CourseModule).filter(models.CourseModule.id == module_id).first()


def update_module(db: Session, module_id: uuid.UUID, module: schemas.CourseModuleUpdate):
    db_module = get_module(db, module_id)
    if db_module:
        for key, value in module.model_dump(exclude_unset=True).items():
            setattr(db_module, key, value)
        db.commit()
        db.refresh(db_module)
    return db_module


def delete_module(db: Session, module_id: uuid.UUID) -> bool:
    db_module = get_module(db, module_id)
    if not db_module:
        return False
    db.delete(db_module)
    db.commit()
    return True


def create_lesson(db: Session, course: models.Course, lesson: schemas.LessonCreate):
    db_lesson = models.Lesson(course_id=course.id, **lesson.model_dump())
    db.add(db_lesson)
    db.commit()
    db.refresh(db_lesson)
    return db_lesson


def get_lesson(db: Session, lesson_id: uuid.UUID):
    return db.query(models.Lesson).filter(models.Lesson.id == lesson_id).first()


def update_lesson(db: Session, lesson_id: uuid.UUID, lesson: schemas.LessonUpdate):
    db_lesson = get_lesson(db, lesson_id)
    if db_lesson:
        for key, value in lesson.model_dump(exclude_unset=True).items():
            setattr(db_lesson, key, value)
        db.commit()
        db.refresh(db_lesson)
    return db_lesson


def delete_lesson(db: Session, lesson_id: uuid.UUID) -> bool:
    db_lesson = get_lesson(db, lesson_id)
    if not db_lesson:
        return False
    db.delete(db_lesson)
    db.commit()
    return True


def create_part(db: Session, lesson: models.Lesson, part: schemas.LessonPartCreate):
    db_part = models.LessonPart(lesson_id=lesson.id, **part.model_dump())
    db.add(db_part)
    db.commit()
    db.refresh(db_part)
    return db_part


def get_part(db: Session, part_id: uuid.UUID):
    return db.query(models.LessonPart).filter(models.LessonPart.id == part_id).first()


def get_part_in_course(db: Session, course: models.Course, part_id: uuid.UUID):
    return (
        db.query(models.LessonPart)
        .join(models.Lesson, models.Lesson.id == models.LessonPart.lesson_id)
        .filter(models.LessonPart.id == part_id, models.Lesson.course_id == course.id)
        .first()
    )


def update_part(db: Session, part_id: uuid.UUID, part: schemas.LessonPartUpdate):
    db_part = get_part(db, part_id)
    if db_part:
        for key, value in part.model_dump(exclude_unset=True).items():
            setattr(db_part, key, value)
        db.commit()
        db.refresh(db_part)
    return db_part


def delete_part(db: Session, part_id: uuid.UUID) -> bool:
    db_part = get_part(db, part_id)
    if not db_part:
        return False
    db.delete(db_part)
    db.commit()
    return True


def get_enrollment(db: Session, user_id: uuid.UUID, course_id: uuid.UUID):
    return (
        db.query(models.Enrollment)
        .filter(models.Enrollment.user_id == user_id, models.Enrollment.course_id == course_id)
        .first()
    )


def get_enrollment_by_id(db: Session, enrollment_id: uuid.UUID):
    return db.query(models.Enrollment).filter(models.Enrollment.id == enrollment_id).first()


def get_part_progress(db: Session, user_id: uuid.UUID, part_ids: List[uuid.UUID]):
    if not part_ids:
        return []
    return (
        db.query(models.PartProgress)
        .filter(models.PartProgress.user_id == user_id, models.PartProgress.part_id.in_(part_ids))
        .all()
    )


def create_quiz(db: Session, course: models.Course, quiz: schemas.QuizCreate):
    data = quiz.model_dump(exclude={'questions'})
    db_quiz = models.Quiz(course_id=course.id, **data)
    for question in quiz.questions:
        q = question.model_dump()
        db_quiz.questions.append(models.QuizQuestion(**q))
    db.add(db_quiz)
    db.commit()
    db.refresh(db_quiz)
    return db_quiz


def get_quiz(db: Session, quiz_id: uuid.UUID):
    return db.query(models.Quiz).filter(models.Quiz.id == quiz_id).first()


def delete_quiz(db: Session, quiz_id: uuid.UUID) -> bool:
    db_quiz = get_quiz(db, quiz_id)
    if not db_quiz:
        return False
    db.delete(db_quiz)
    db.commit()
    return True


def get_attempt(db: Session, attempt_id: uuid.UUID):
    return db.query(models.QuizAttempt).filter(models.QuizAttempt.id == attempt_id).first()
