import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class CourseBase(BaseModel):
    slug: str
    title: str
    description: Optional[str] = None
    locale: str = 'ka'
    status: str = 'DRAFT'
    drip_enabled: bool = False
    certificate_enabled: bool = True
    video_completion_threshold: int = Field(default=90, ge=1, le=100)
    access_days: Optional[int] = Field(default=None, ge=1)


class CourseCreate(CourseBase):
    pass


class CourseUpdate(BaseModel):
    slug: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    locale: Optional[str] = None
    status: Optional[str] = None
    drip_enabled: Optional[bool] = None
    certificate_enabled: Optional[bool] = None
    video_completion_threshold: Optional[int] = Field(default=None, ge=1, le=100)
    access_days: Optional[int] = Field(default=None, ge=1)


class Course(CourseBase):
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CourseModuleCreate(BaseModel):
    title: str
    sort_order: int = 0


class CourseModuleUpdate(BaseModel):
    title: Optional[str] = None
    sort_order: Optional[int] = None


class LessonCreate(BaseModel):
    title: str
    module_id: Optional[uuid.UUID] = None
    sort_order: int = 0
    available_after_days: Optional[int] = Field(default=None, ge=0)


class LessonUpdate(BaseModel):
    title: Optional[str] = None
    module_id: Optional[uuid.UUID] = None
    sort_order: Optional[int] = None
    available_after_days: Optional[int] = Field(default=None, ge=0)


class LessonPartCreate(BaseModel):
    title: str
    type: str = 'VIDEO'
    sort_order: int = 0
    video_url: Optional[str] = None
    video_duration: Optional[int] = Field(default=None, ge=0)
    content: Optional[str] = None


class LessonPartUpdate(BaseModel):
    title: Optional[str] = None
    type: Optional[str] = None
    sort_order: Optional[int] = None
    video_url: Optional[str] = None
    video_duration: Optional[int] = Field(default=None, ge=0)
    content: Optional[str] = None


class LessonPart(LessonPartCreate):
    id: uuid.UUID
    lesson_id: uuid.UUID
    model_config = ConfigDict(from_attributes=True)


class Lesson(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    module_id: Optional[uuid.UUID] = None
    title: str
    sort_order: int
    available_after_days: Optional[int] = None
    parts: List[LessonPart] = []
    model_config = ConfigDict(from_attributes=True)


class CourseModule(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    title: str
    sort_order: int
    lessons: List[Lesson] = []
    model_config = ConfigDict(from_attributes=True)


class CourseStructure(Course):
    modules: List[CourseModule] = []
    direct_lessons: List[Lesson] = []


class Enrollment(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    course_id: uuid.UUID
    status: str
    progress_percent: int
    enrolled_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    certificate_id: Optional[str] = None
    certificate_issued_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class PartProgress(BaseModel):
    id: uuid.UUID
    part_id: uuid.UUID
    status: str
    watch_time: int
    video_duration: Optional[int] = None
    watch_percent: int
    last_position: int
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class VideoProgressUpdate(BaseModel):
    watch_time: int = Field(ge=0)
    video_duration: int = Field(gt=0)
    last_position: int = Field(default=0, ge=0)


class QuizOption(BaseModel):
    id: str
    text: str
    is_correct: bool = False


class QuizQuestionCreate(BaseModel):
    type: str = 'MULTIPLE_CHOICE_SINGLE'
    text: str
    options: Optional[List[QuizOption]] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    points: int = Field(default=1, ge=0)
    sort_order: int = 0


class QuizCreate(BaseModel):
    title: str
    part_id: Optional[uuid.UUID] = None
    passing_score: int = Field(default=70, ge=0, le=100)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    cooldown_minutes: Optional[int] = Field(default=None, ge=0)
    show_correct_answers: bool = True
    questions: List[QuizQuestionCreate] = []


class QuizPublicOption(BaseModel):
    id: str
    text: str


class QuizPublicQuestion(BaseModel):
    id: uuid.UUID
    type: str
    text: str
    options: Optional[List[QuizPublicOption]] = None
    points: int
    model_config = ConfigDict(from_attributes=True)


class Quiz(BaseModel):
    id: uuid.UUID
    course_id: uuid.UUID
    part_id: Optional[uuid.UUID] = None
    title: str
    passing_score: int
    max_attempts: Optional[int] = None
    cooldown_minutes: Optional[int] = None
    show_correct_answers: bool
    model_config = ConfigDict(from_attributes=True)


class QuizAttemptStarted(BaseModel):
    attempt_id: uuid.UUID
    quiz: Quiz
    questions: List[QuizPublicQuestion]


class QuizSubmission(BaseModel):
    # question_id -> option id, list of option ids, or free text
    answers: Dict[str, Any]


class CourseNotificationBase(BaseModel):
    trigger_type: str
    trigger_minutes: int = 0
    conditions: Optional[Dict[str, Any]] = None
    channel: str = 'EMAIL'
    template_key: Optional[str] = None
    subject: Optional[str] = None
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    actions: Optional[List[Dict[str, Any]]] = None
    is_active: bool = True
    sort_order: int = 0


class CourseNotificationCreate(CourseNotificationBase):
    pass


class CourseNotificationUpdate(BaseModel):
    trigger_type: Optional[str] = None
    trigger_minutes: Optional[int] = None
    conditions: Optional[Dict[str, Any]] = None
    channel: Optional[str] = None
    template_key: Optional[str] = None
    subject: Optional[str] = None
    body_html: Optional[str] = None
    body_text: Optional[str] = None
    actions: Optional[List[Dict[str, Any]]] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class CourseNotification(CourseNotificationBase):
    id: uuid.UUID
    course_id: uuid.UUID
    is_default: bool
    trigger_description: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
