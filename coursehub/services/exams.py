import logging
from typing import List, Tuple
from sqlalchemy import select
from coursehub.core.errors import DuplicateRecord, ExamNotFound, InvalidInput
from coursehub.models.orm import Course, CourseExam, ExamAttempt, ExamQuestion
from coursehub.models.schemas import ExamAnalytics, ExamCreate, ExamPaper, QuestionOut, QuestionStat
from coursehub.policy.rules import Operation
from coursehub.policy.store import PolicyStore

logger = logging.getLogger(__name__)

def create_exam(store: PolicyStore, course_id: str, payload: ExamCreate) -> CourseExam:
    """Create the course's exam and its questions in one transaction.

    A course holds at most one exam; a second one is rejected.
    """
    course = store.get(Course, course_id)
    exam = CourseExam(
        course_id=course.id,
        title=payload.title,
        description=payload.description,
        duration_minutes=payload.duration_minutes,
        passing_score=payload.passing_score,
    )
    questions = [
        ExamQuestion(
            exam=exam,
            question_text=q.question_text,
            options=list(q.options),
            correct_answer=q.correct_answer,
            order_index=i + 1,
            points=q.points,
        )
        for i, q in enumerate(payload.questions)
    ]
    try:
        store.insert(exam, *questions)
    except DuplicateRecord as e:
        raise InvalidInput("This course already has an exam") from e
    logger.info(f"Exam {exam.id} with {len(questions)} questions created for course {course.id}")
    return exam

def find_exam(store: PolicyStore, course_id: str) -> CourseExam:
    course = store.get(Course, course_id)
    exams = store.select(select(CourseExam).where(CourseExam.course_id == course.id))
    if not exams:
        raise ExamNotFound(f"No exam found for course {course_id}")
    return exams[0]

def _questions_of(store: PolicyStore, exam: CourseExam) -> List[ExamQuestion]:
    return list(store.db.scalars(
        select(ExamQuestion).where(ExamQuestion.exam_id == exam.id).order_by(ExamQuestion.order_index, ExamQuestion.id)
    ).all())

def load_exam_for_course(store: PolicyStore, course_id: str) -> Tuple[CourseExam, List[ExamQuestion]]:
    """Fetch the single exam of a course and its questions, in order.

    The course must be visible, every question must be readable by the actor.
    """
    exam = find_exam(store, course_id)
    questions = _questions_of(store, exam)
    enrolled = store.enrolled_course_ids()
    for q in questions:
        store.authorize(Operation.READ, q, enrolled)
    return exam, questions

def build_paper(store: PolicyStore, exam: CourseExam, questions: List[ExamQuestion]) -> ExamPaper:
    """The actor-facing exam shape; the answer key is withheld from students."""
    enrolled = store.enrolled_course_ids()
    items = []
    for q in questions:
        show_key = store.allows(Operation.READ_ANSWER_KEY, q, enrolled)
        items.append(QuestionOut(
            id=q.id,
            question_text=q.question_text,
            options=list(q.options),
            points=q.points,
            correct_answer=q.correct_answer if show_key else None,
        ))
    return ExamPaper(
        exam_id=exam.id,
        course_id=exam.course_id,
        title=exam.title,
        description=exam.description,
        duration_minutes=exam.duration_minutes,
        passing_score=exam.passing_score,
        questions=items,
    )

def get_paper(store: PolicyStore, course_id: str) -> ExamPaper:
    """The exam paper as far as the actor may see it.

    An actor who may see the exam but not its questions (anonymous visitors,
    instructors who do not own the course) gets the metadata with an empty
    question list.
    """
    exam = find_exam(store, course_id)
    questions = _questions_of(store, exam)
    enrolled = store.enrolled_course_ids()
    if not all(store.allows(Operation.READ, q, enrolled) for q in questions):
        return build_paper(store, exam, [])
    return build_paper(store, exam, questions)

def list_attempts(store: PolicyStore, exam_id: str) -> List[ExamAttempt]:
    exam = store.get(CourseExam, exam_id)
    return store.select(
        select(ExamAttempt).where(ExamAttempt.exam_id == exam.id).order_by(ExamAttempt.created_at.desc())
    )

def exam_analytics(store: PolicyStore, course_id: str) -> ExamAnalytics:
    exam, questions = load_exam_for_course(store, course_id)
    enrolled = store.enrolled_course_ids()
    for q in questions:
        store.authorize(Operation.READ_ANSWER_KEY, q, enrolled)
    attempts = list_attempts(store, exam.id)
    total = len(attempts)
    if total == 0:
        return ExamAnalytics(exam_id=exam.id, total_attempts=0, pass_rate=0.0, average_score=0.0, questions=[])
    stats = []
    for index, q in enumerate(questions):
        correct = sum(1 for a in attempts if index < len(a.answers) and a.answers[index] == q.correct_answer)
        stats.append(QuestionStat(question_index=index, correct_rate=round(100.0 * correct / total, 2)))
    return ExamAnalytics(
        exam_id=exam.id,
        total_attempts=total,
        pass_rate=round(100.0 * sum(1 for a in attempts if a.passed) / total, 2),
        average_score=round(sum(a.score for a in attempts) / total, 2),
        questions=stats,
    )
