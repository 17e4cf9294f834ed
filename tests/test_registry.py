import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool
from coursehub.core.database import Base, RegistrySessionLocal
from coursehub.core.errors import AuthorizationDenied
from coursehub.models.orm import Profile
from coursehub.models.schemas import CourseCreate
from coursehub.policy.actors import Student, actor_from_role
from coursehub.policy.store import PolicyStore
from coursehub.services.courses import create_course, enroll
from coursehub.services.exam_session import SessionState
from coursehub.services.exams import create_exam
from coursehub.services.registry import SessionRegistry

GRACE = 600

@pytest.fixture
def registry(db, clock):
    reg = SessionRegistry(RegistrySessionLocal, clock, grace_seconds=GRACE)
    yield reg
    reg.close_all()

def test_sessions_are_keyed_per_actor(registry, enrolled, student, course):
    actor = Student(student.id)
    session_id, session = registry.create(actor, course.id)
    assert registry.get(actor, session_id) is session
    with pytest.raises(AuthorizationDenied):
        registry.get(Student("someone-else"), session_id)
    registry.discard(actor, session_id)
    assert len(registry) == 0

def test_failed_load_is_not_registered(registry, student):
    with pytest.raises(AuthorizationDenied):
        registry.create(Student(student.id), "missing")
    assert len(registry) == 0

def test_unstarted_session_expires_after_grace(registry, enrolled, student, course, clock):
    actor = Student(student.id)
    session_id, _ = registry.create(actor, course.id)
    clock.advance(GRACE - 1)
    assert registry.purge_expired() == 0
    clock.advance(1)
    with pytest.raises(AuthorizationDenied):
        registry.get(actor, session_id)
    assert len(registry) == 0

def test_in_progress_session_lives_for_duration_plus_grace(registry, enrolled, student, course, clock):
    actor = Student(student.id)
    session_id, session = registry.create(actor, course.id)
    session.start()
    # the course exam lasts one minute
    clock.advance(60 + GRACE - 1)
    assert registry.get(actor, session_id) is session
    clock.advance(1)
    assert registry.purge_expired() == 1
    assert len(registry) == 0

def test_completed_session_expires_after_grace(registry, enrolled, student, course, clock):
    actor = Student(student.id)
    session_id, session = registry.create(actor, course.id)
    session.start()
    clock.advance(30)
    session.submit()
    assert session.state is SessionState.COMPLETED
    clock.advance(GRACE - 1)
    assert registry.get(actor, session_id).result is not None
    clock.advance(1)
    assert registry.purge_expired() == 1
    with pytest.raises(AuthorizationDenied):
        registry.get(actor, session_id)

def test_submission_in_flight_never_expires(registry, enrolled, student, course, clock):
    actor = Student(student.id)
    session_id, session = registry.create(actor, course.id)
    session.state = SessionState.SUBMITTING
    clock.advance(GRACE * 10)
    assert registry.purge_expired() == 0
    assert len(registry) == 1

def test_sessions_hold_no_pooled_connection(tmp_path, clock, exam_payload):
    pooled = create_engine(f"sqlite:///{tmp_path / 'pool.db'}", poolclass=QueuePool,
                           pool_size=1, max_overflow=0, pool_timeout=1)
    Base.metadata.create_all(bind=pooled)
    factory = sessionmaker(bind=pooled, autoflush=False, expire_on_commit=False)

    seed = factory()
    tutor = Profile(role="instructor", email="tutor@example.com")
    learners = [Profile(role="student", email=f"learner{i}@example.com") for i in range(2)]
    seed.add_all([tutor] + learners)
    seed.commit()
    tutor_store = PolicyStore(seed, actor_from_role(tutor.role, tutor.id))
    course = create_course(tutor_store, CourseCreate(title="Pooled", is_published=True))
    create_exam(tutor_store, course.id, exam_payload())
    actors = [Student(p.id) for p in learners]
    for actor in actors:
        enroll(PolicyStore(seed, actor), course.id)
    seed.close()
    assert pooled.pool.checkedout() == 0

    registry = SessionRegistry(factory, clock)
    try:
        sessions = []
        for actor in actors:
            _, session = registry.create(actor, course.id)
            assert pooled.pool.checkedout() == 0
            assert not session.store.db.in_transaction()
            sessions.append(session)

        for session in sessions:
            session.start()
            for i, choice in enumerate([0, 1, 2]):
                session.select_answer(i, choice)
            result = session.submit()
            assert result.passed and result.certificate_issued
            assert pooled.pool.checkedout() == 0
    finally:
        registry.close_all()
        pooled.dispose()
