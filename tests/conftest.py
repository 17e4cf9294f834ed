import asyncio
import os
from datetime import datetime, timedelta, timezone

# every test runs against an in-memory SQLite database
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from coursehub.core.database import Base, SessionLocal, engine
from coursehub.models.orm import Profile
from coursehub.models.schemas import CourseCreate, ExamCreate, QuestionIn
from coursehub.policy.actors import actor_from_role
from coursehub.policy.store import PolicyStore
from coursehub.services.courses import create_course, enroll
from coursehub.services.exams import create_exam

class FakeClock:
    """Clock whose sleeps advance virtual time instead of waiting."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
        self.slept = 0

    def now(self):
        return self.current

    def advance(self, seconds):
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds):
        self.advance(seconds)
        self.slept += seconds
        await asyncio.sleep(0)

@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def make_profile(db):
    def factory(role, email=None):
        profile = Profile(role=role, email=email or f"{role}-{os.urandom(4).hex()}@example.com")
        db.add(profile)
        db.commit()
        return profile
    return factory

@pytest.fixture
def store_for(db):
    def factory(profile):
        return PolicyStore(db, actor_from_role(profile.role, profile.id))
    return factory

@pytest.fixture
def instructor(make_profile):
    return make_profile("instructor", "tutor@example.com")

@pytest.fixture
def student(make_profile):
    return make_profile("student", "learner@example.com")

@pytest.fixture
def admin(make_profile):
    return make_profile("admin", "admin@example.com")

def _exam_payload(points=(1, 1, 2), correct=(0, 1, 2), passing_score=70, duration_minutes=1):
    return ExamCreate(
        title="Final exam",
        duration_minutes=duration_minutes,
        passing_score=passing_score,
        questions=[
            QuestionIn(question_text=f"Question {i + 1}", options=["a", "b", "c"], correct_answer=c, points=p)
            for i, (p, c) in enumerate(zip(points, correct))
        ],
    )

@pytest.fixture
def exam_payload():
    return _exam_payload

@pytest.fixture
def course(instructor, store_for):
    """A published course by ``instructor`` with a three-question exam.

    Points are [1, 1, 2], the key is [0, 1, 2], passing score 70, one minute.
    """
    store = store_for(instructor)
    c = create_course(store, CourseCreate(title="Python 101", is_published=True))
    create_exam(store, c.id, _exam_payload())
    return c

@pytest.fixture
def enrolled(student, course, store_for):
    return enroll(store_for(student), course.id)
