from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictInt, constr, model_validator
from coursehub.core.config import settings

Level = Literal["beginner", "intermediate", "advanced"]

# ========== Course content ==========

class CourseCreate(BaseModel):
    title: constr(min_length=1, max_length=255)
    description: Optional[str] = None
    level: Level = "beginner"
    is_published: bool = False

class CourseUpdate(BaseModel):
    title: Optional[constr(min_length=1, max_length=255)] = None
    description: Optional[str] = None
    level: Optional[Level] = None
    is_published: Optional[bool] = None

class CourseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    title: str
    description: Optional[str] = None
    level: str
    instructor_id: str
    is_published: bool

class VideoCreate(BaseModel):
    title: constr(min_length=1, max_length=255)
    description: Optional[str] = None
    video_url: str
    order_index: Optional[StrictInt] = Field(default=None, ge=1)

class VideoUpdate(BaseModel):
    title: Optional[constr(min_length=1, max_length=255)] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    order_index: Optional[StrictInt] = Field(default=None, ge=1)

class VideoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    course_id: str
    title: str
    description: Optional[str] = None
    video_url: str
    order_index: int

class EnrollmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    user_id: str
    course_id: str
    progress: int
    completed: bool
    certificate_issued: bool
    completed_at: Optional[datetime] = None

# ========== Exams ==========

class QuestionIn(BaseModel):
    question_text: constr(min_length=1)
    options: List[constr(min_length=1)] = Field(min_length=2)
    correct_answer: StrictInt = Field(ge=0)
    points: StrictInt = Field(default=1, gt=0)

    @model_validator(mode="after")
    def check_correct_answer(self):
        if self.correct_answer >= len(self.options):
            raise ValueError(f"correct_answer {self.correct_answer} is out of range for {len(self.options)} options")
        return self

class ExamCreate(BaseModel):
    title: constr(min_length=1, max_length=255)
    description: Optional[str] = None
    duration_minutes: StrictInt = Field(default=settings.DEFAULT_EXAM_DURATION_MINUTES, gt=0)
    passing_score: StrictInt = Field(default=settings.DEFAULT_PASSING_SCORE, ge=0, le=100)
    questions: List[QuestionIn] = Field(min_length=1)

class QuestionOut(BaseModel):
    id: str
    question_text: str
    options: List[str]
    points: int
    # withheld unless the actor may read the answer key
    correct_answer: Optional[int] = None

class ExamPaper(BaseModel):
    exam_id: str
    course_id: str
    title: str
    description: Optional[str] = None
    duration_minutes: int
    passing_score: int
    questions: List[QuestionOut]

class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    user_id: str
    exam_id: str
    answers: List[Optional[int]]
    score: int
    passed: bool
    timed_out: bool
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

class CertificateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    user_id: str
    course_id: str
    exam_id: str
    score: int
    issued_at: Optional[datetime] = None

class QuestionStat(BaseModel):
    question_index: int
    correct_rate: float

class ExamAnalytics(BaseModel):
    exam_id: str
    total_attempts: int
    pass_rate: float
    average_score: float
    questions: List[QuestionStat]

# ========== Exam sessions ==========

class ExamResult(BaseModel):
    attempt_id: str
    exam_id: str
    course_id: str
    earned_points: int
    total_points: int
    score: int
    passed: bool
    timed_out: bool
    completed_at: datetime
    certificate_issued: bool = False
    # non-fatal failures of the enrollment/certificate writes
    warnings: List[str] = []

class SessionSnapshot(BaseModel):
    session_id: Optional[str] = None
    state: str
    remaining_seconds: int
    answers: List[Optional[int]]
    paper: Optional[ExamPaper] = None
    result: Optional[ExamResult] = None
    error: Optional[str] = None

class SessionCreate(BaseModel):
    course_id: str

class AnswerIn(BaseModel):
    choice_index: StrictInt

# ========== Accounts ==========

class SignupIn(BaseModel):
    email: constr(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    role: Literal["student", "instructor"] = "student"

class MockLogin(BaseModel):
    email: str

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str

class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    email: str
    role: str
