"""
Row-level access rules.

Every (entity, operation) pair maps to a tuple of predicates; an actor may
perform the operation on a row when at least one predicate holds. A pair that
is absent from ``RULES`` is denied for everybody, which is how immutability of
attempts and the absence of role escalation are expressed.

Child rows never carry an owner field: ownership is resolved by walking up to
the owning course and comparing ``course.instructor_id`` to the actor.
"""
import enum
from typing import AbstractSet, Any, Callable, Dict, Optional, Tuple
from coursehub.models.orm import (
    Profile, Course, CourseVideo, VideoProgress, Enrollment,
    CourseExam, ExamQuestion, ExamAttempt, Certificate,
)
from coursehub.policy.actors import Actor, Admin, Instructor, Student, role_of

class Operation(str, enum.Enum):
    READ = "read"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    # field-level: ExamQuestion.correct_answer
    READ_ANSWER_KEY = "read_answer_key"

Predicate = Callable[[Actor, Any, AbstractSet[str]], bool]

def owning_course(row: Any) -> Optional[Course]:
    if isinstance(row, Course):
        return row
    if isinstance(row, (CourseVideo, CourseExam, Enrollment, Certificate)):
        return row.course
    if isinstance(row, (ExamQuestion, ExamAttempt)):
        return row.exam.course if row.exam is not None else None
    if isinstance(row, VideoProgress):
        return row.video.course if row.video is not None else None
    return None

# ---- predicates ---------------------------------------------------------

def is_admin(actor, row, enrolled) -> bool:
    return isinstance(actor, Admin)

def is_self(actor, row, enrolled) -> bool:
    return actor.id is not None and row.id == actor.id

def role_matches(actor, row, enrolled) -> bool:
    return row.role == role_of(actor)

def owns_course(actor, row, enrolled) -> bool:
    course = owning_course(row)
    return isinstance(actor, Instructor) and course is not None and course.instructor_id == actor.id

def course_published(actor, row, enrolled) -> bool:
    course = owning_course(row)
    return course is not None and bool(course.is_published)

def enrolled_in_course(actor, row, enrolled) -> bool:
    course = owning_course(row)
    return isinstance(actor, Student) and course is not None and course.id in enrolled

def student_sees_course(actor, row, enrolled) -> bool:
    return isinstance(actor, Student) and (course_published(actor, row, enrolled)
                                           or enrolled_in_course(actor, row, enrolled))

def owns_row(actor, row, enrolled) -> bool:
    return isinstance(actor, Student) and row.user_id == actor.id

def all_of(*predicates: Predicate) -> Predicate:
    def combined(actor, row, enrolled) -> bool:
        return all(p(actor, row, enrolled) for p in predicates)
    combined.__name__ = "_and_".join(p.__name__ for p in predicates)
    return combined

# ---- rule table ---------------------------------------------------------

R, I, U, D = Operation.READ, Operation.INSERT, Operation.UPDATE, Operation.DELETE

_COURSE_READ = (course_published, enrolled_in_course, owns_course, is_admin)
_OWNER_WRITE = (owns_course,)

RULES: Dict[Tuple[type, Operation], Tuple[Predicate, ...]] = {
    (Profile, R): (is_self, is_admin),
    (Profile, I): (all_of(is_self, role_matches),),

    (Course, R): _COURSE_READ,
    (Course, I): _OWNER_WRITE,
    (Course, U): _OWNER_WRITE,
    (Course, D): _OWNER_WRITE,

    (CourseVideo, R): _COURSE_READ,
    (CourseVideo, I): _OWNER_WRITE,
    (CourseVideo, U): _OWNER_WRITE,
    (CourseVideo, D): _OWNER_WRITE,

    (CourseExam, R): _COURSE_READ,
    (CourseExam, I): _OWNER_WRITE,
    (CourseExam, U): _OWNER_WRITE,
    (CourseExam, D): _OWNER_WRITE,

    (ExamQuestion, R): (student_sees_course, owns_course, is_admin),
    (ExamQuestion, Operation.READ_ANSWER_KEY): (owns_course, is_admin),
    (ExamQuestion, I): _OWNER_WRITE,
    (ExamQuestion, U): _OWNER_WRITE,
    (ExamQuestion, D): _OWNER_WRITE,

    (Enrollment, R): (owns_row, owns_course, is_admin),
    (Enrollment, I): (all_of(owns_row, student_sees_course),),
    (Enrollment, U): (owns_row,),

    (VideoProgress, R): (owns_row, owns_course, is_admin),
    (VideoProgress, I): (all_of(owns_row, enrolled_in_course),),
    (VideoProgress, U): (owns_row,),

    (ExamAttempt, R): (owns_row, owns_course, is_admin),
    (ExamAttempt, I): (all_of(owns_row, student_sees_course),),

    (Certificate, R): (owns_row, is_admin),
    (Certificate, I): (all_of(owns_row, enrolled_in_course),),
}

def can_access(actor: Actor, operation: Operation, row: Any,
               enrolled_course_ids: AbstractSet[str] = frozenset()) -> bool:
    """Evaluate the rule table for one row.

    ``enrolled_course_ids`` is the join fact for student rules: the ids of the
    courses the actor is enrolled in. It is ignored for other actors.
    """
    predicates = RULES.get((type(row), operation), ())
    return any(p(actor, row, enrolled_course_ids) for p in predicates)
