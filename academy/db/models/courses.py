import uuid
from sqlalchemy import Column, String, Text, Integer, Boolean, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from .base import Base, now_utc
from ..types import UTCDateTime


class CourseStatus:
    DRAFT = 'DRAFT'
    PUBLISHED = 'PUBLISHED'
    ARCHIVED = 'ARCHIVED'


class PartType:
    VIDEO = 'VIDEO'
    TEXT = 'TEXT'
    QUIZ = 'QUIZ'
    DOWNLOAD = 'DOWNLOAD'


class EnrollmentStatus:
    ACTIVE = 'ACTIVE'
    COMPLETED = 'COMPLETED'
    SUSPENDED = 'SUSPENDED'
    EXPIRED = 'EXPIRED'


class ProgressStatus:
    NOT_STARTED = 'NOT_STARTED'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'


class CompletedBy:
    AUTO_VIDEO = 'AUTO_VIDEO'
    AUTO_QUIZ = 'AUTO_QUIZ'
    MANUAL = 'MANUAL'
    ADMIN = 'ADMIN'


class QuestionType:
    MULTIPLE_CHOICE_SINGLE = 'MULTIPLE_CHOICE_SINGLE'
    MULTIPLE_CHOICE_MULTIPLE = 'MULTIPLE_CHOICE_MULTIPLE'
    TRUE_FALSE = 'TRUE_FALSE'
    SHORT_ANSWER = 'SHORT_ANSWER'
    ESSAY = 'ESSAY'


class Course(Base):
    __tablename__ = 'courses'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug = Column(String(200), nullable=False, unique=True, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    locale = Column(String(8), nullable=False, default='ka')
    status = Column(String(20), nullable=False, default=CourseStatus.DRAFT)
    drip_enabled = Column(Boolean, nullable=False, default=False)
    certificate_enabled = Column(Boolean, nullable=False, default=True)
    video_completion_threshold = Column(Integer, nullable=False, default=90)
    # Enrollment validity in days; NULL means lifetime access
    access_days = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)

    modules = relationship(
        'CourseModule', back_populates='course', order_by='CourseModule.sort_order',
        cascade='all, delete-orphan',
    )
    lessons = relationship(
        'Lesson', back_populates='course', order_by='Lesson.sort_order',
        cascade='all, delete-orphan',
    )
    quizzes = relationship('Quiz', back_populates='course', cascade='all, delete-orphan')

    @property
    def direct_lessons(self):
        return [lesson for lesson in self.lessons if lesson.module_id is None]


class CourseModule(Base):
    __tablename__ = 'course_modules'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(UUID(as_uuid=True), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    title = Column(String(300), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)

    course = relationship('Course', back_populates='modules')
    lessons = relationship('Lesson', back_populates='module', order_by='Lesson.sort_order', cascade='all')

    __table_args__ = (
        Index('ix_course_modules_course_id_sort_order', 'course_id', 'sort_order'),
    )


class Lesson(Base):
    __tablename__ = 'lessons'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(UUID(as_uuid=True), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    # NULL for lessons attached directly to the course
    module_id = Column(UUID(as_uuid=True), ForeignKey('course_modules.id', ondelete='CASCADE'), nullable=True)
    title = Column(String(300), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    # Drip delay relative to enrolled_at
    available_after_days = Column(Integer, nullable=True)

    course = relationship('Course', back_populates='lessons')
    module = relationship('CourseModule', back_populates='lessons')
    parts = relationship(
        'LessonPart', back_populates='lesson', order_by='LessonPart.sort_order',
        cascade='all, delete-orphan',
    )

    __table_args__ = (
        Index('ix_lessons_course_id_module_id', 'course_id', 'module_id'),
    )


class LessonPart(Base):
    __tablename__ = 'lesson_parts'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lesson_id = Column(UUID(as_uuid=True), ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    type = Column(String(20), nullable=False, default=PartType.VIDEO)
    sort_order = Column(Integer, nullable=False, default=0)
    video_url = Column(String(1000), nullable=True)
    # seconds
    video_duration = Column(Integer, nullable=True)
    content = Column(Text, nullable=True)

    lesson = relationship('Lesson', back_populates='parts')


class Enrollment(Base):
    __tablename__ = 'enrollments'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    course_id = Column(UUID(as_uuid=True), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False)
    status = Column(String(20), nullable=False, default=EnrollmentStatus.ACTIVE)
    progress_percent = Column(Integer, nullable=False, default=0)
    enrolled_at = Column(UTCDateTime, default=now_utc, nullable=False)
    started_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=True)
    certificate_id = Column(String(32), nullable=True, unique=True)
    certificate_issued_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)

    user = relationship('User')
    course = relationship('Course')

    __table_args__ = (
        UniqueConstraint('user_id', 'course_id', name='uq_enrollments_user_course'),
        Index('ix_enrollments_course_id_status', 'course_id', 'status'),
    )


class PartProgress(Base):
    __tablename__ = 'part_progress'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    part_id = Column(UUID(as_uuid=True), ForeignKey('lesson_parts.id', ondelete='CASCADE'), nullable=False)
    enrollment_id = Column(UUID(as_uuid=True), ForeignKey('enrollments.id', ondelete='CASCADE'), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ProgressStatus.NOT_STARTED)
    watch_time = Column(Integer, nullable=False, default=0)
    video_duration = Column(Integer, nullable=True)
    watch_percent = Column(Integer, nullable=False, default=0)
    last_position = Column(Integer, nullable=False, default=0)
    completed_at = Column(UTCDateTime, nullable=True)
    completed_by = Column(String(20), nullable=True)
    updated_at = Column(UTCDateTime, default=now_utc, onupdate=now_utc, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'part_id', name='uq_part_progress_user_part'),
    )


class Quiz(Base):
    __tablename__ = 'quizzes'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(UUID(as_uuid=True), ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, index=True)
    # Passing this quiz auto-completes the part
    part_id = Column(UUID(as_uuid=True), ForeignKey('lesson_parts.id', ondelete='SET NULL'), nullable=True)
    title = Column(String(300), nullable=False)
    passing_score = Column(Integer, nullable=False, default=70)
    max_attempts = Column(Integer, nullable=True)
    cooldown_minutes = Column(Integer, nullable=True)
    show_correct_answers = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=now_utc, nullable=False)

    course = relationship('Course', back_populates='quizzes')
    questions = relationship(
        'QuizQuestion', back_populates='quiz', order_by='QuizQuestion.sort_order',
        cascade='all, delete-orphan',
    )


class QuizQuestion(Base):
    __tablename__ = 'quiz_questions'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quiz_id = Column(UUID(as_uuid=True), ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(String(40), nullable=False, default=QuestionType.MULTIPLE_CHOICE_SINGLE)
    text = Column(Text, nullable=False)
    # [{"id": "a", "text": "...", "is_correct": true}]
    options = Column(JSONB, nullable=True)
    correct_answer = Column(Text, nullable=True)
    explanation = Column(Text, nullable=True)
    points = Column(Integer, nullable=False, default=1)
    sort_order = Column(Integer, nullable=False, default=0)

    quiz = relationship('Quiz', back_populates='questions')


class QuizAttempt(Base):
    __tablename__ = 'quiz_attempts'
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    quiz_id = Column(UUID(as_uuid=True), ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    enrollment_id = Column(UUID(as_uuid=True), ForeignKey('enrollments.id', ondelete='CASCADE'), nullable=True)
    answers = Column(JSONB, nullable=True)
    score = Column(Integer, nullable=True)
    earned_points = Column(Integer, nullable=True)
    total_points = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=True)
    started_at = Column(UTCDateTime, default=now_utc, nullable=False)
    submitted_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index('ix_quiz_attempts_quiz_id_user_id', 'quiz_id', 'user_id'),
    )
