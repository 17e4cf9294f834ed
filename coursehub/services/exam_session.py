"""
Timed exam session engine.

    LOADING -> READY -> IN_PROGRESS -> SUBMITTING -> COMPLETED | FAILED

The countdown only runs in IN_PROGRESS. ``tick()`` is the single suspension
point of the session: it is driven once per second by ``run_countdown()`` on
the event loop (or directly by a test), and when it reaches zero it goes down
the same ``_finish()`` path as an explicit ``submit()``. Unanswered questions
are graded as wrong on timeout; there is no separate "incomplete" outcome.

A session is one-shot: once it has left IN_PROGRESS further ``submit()`` calls
return the stored result without writing again. The only way back into the
submission path is a retry after the attempt write itself failed.
"""
import asyncio
import enum
import logging
from datetime import datetime
from typing import List, Optional
from coursehub.core.clock import Clock, SystemClock
from coursehub.core.errors import (
    AuthorizationDenied, CourseHubError, DegenerateExam, DuplicateCertificate,
    ExamNotFound, InvalidInput, InvalidState, PersistenceFailure,
)
from coursehub.models.orm import CourseExam, ExamAttempt, ExamQuestion
from coursehub.models.schemas import ExamPaper, ExamResult, SessionSnapshot
from coursehub.policy.store import PolicyStore
from coursehub.services.certificates import issue_certificate
from coursehub.services.courses import complete_enrollment
from coursehub.services.exams import build_paper, load_exam_for_course
from coursehub.services.grading import GradeResult, grade, is_passing

logger = logging.getLogger(__name__)

class SessionState(str, enum.Enum):
    LOADING = "loading"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    FAILED = "failed"

def _is_index(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)

class ExamSession:
    def __init__(self, store: PolicyStore, clock: Optional[Clock] = None):
        self.store = store
        self.actor = store.actor
        self.clock = clock or SystemClock()
        self.state = SessionState.LOADING
        self.exam: Optional[CourseExam] = None
        self.questions: List[ExamQuestion] = []
        self.paper: Optional[ExamPaper] = None
        self.answers: List[Optional[int]] = []
        self.remaining_seconds = 0
        self.started_at: Optional[datetime] = None
        self.result: Optional[ExamResult] = None
        self.error: Optional[CourseHubError] = None
        self.ended_at: Optional[datetime] = None
        self._grade: Optional[GradeResult] = None
        self._timed_out = False
        self._retryable = False
        self._timer: Optional[asyncio.Task] = None

    # ---- lifecycle ------------------------------------------------------

    def load_exam(self, course_id: str) -> ExamPaper:
        self._require(SessionState.LOADING)
        try:
            exam, questions = load_exam_for_course(self.store, course_id)
            paper = build_paper(self.store, exam, questions)
        except (AuthorizationDenied, ExamNotFound, PersistenceFailure) as e:
            self._fail(e)
            raise
        finally:
            self.store.release()
        self.exam, self.questions, self.paper = exam, questions, paper
        self.answers = [None] * len(questions)
        self.remaining_seconds = exam.duration_minutes * 60
        self.state = SessionState.READY
        logger.info(f"Exam {exam.id} loaded for {self.actor!r}: {len(questions)} questions")
        return paper

    def start(self) -> None:
        self._require(SessionState.READY)
        self.started_at = self.clock.now()
        self.state = SessionState.IN_PROGRESS

    def select_answer(self, question_index: int, choice_index: int) -> None:
        self._require(SessionState.IN_PROGRESS)
        if not _is_index(question_index) or not 0 <= question_index < len(self.questions):
            raise InvalidInput(f"Question index {question_index!r} is out of range")
        options = self.questions[question_index].options
        if not _is_index(choice_index) or not 0 <= choice_index < len(options):
            raise InvalidInput(f"Choice index {choice_index!r} is out of range for question {question_index}")
        self.answers[question_index] = choice_index

    def clear_answer(self, question_index: int) -> None:
        self._require(SessionState.IN_PROGRESS)
        if not _is_index(question_index) or not 0 <= question_index < len(self.questions):
            raise InvalidInput(f"Question index {question_index!r} is out of range")
        self.answers[question_index] = None

    def submit(self) -> Optional[ExamResult]:
        """Grade and persist the attempt.

        Returns the stored result on repeated calls. While a submission is
        already in flight (state SUBMITTING) it returns ``None`` and writes
        nothing; the caller polls the session until it is COMPLETED or FAILED.
        """
        if self.state is SessionState.COMPLETED:
            return self.result
        if self.state is SessionState.SUBMITTING:
            return None
        if not (self.state is SessionState.FAILED and self._retryable):
            self._require(SessionState.IN_PROGRESS)
        return self._finish(timed_out=False)

    # ---- countdown ------------------------------------------------------

    def tick(self) -> Optional[ExamResult]:
        if self.state is not SessionState.IN_PROGRESS:
            return None
        if self.remaining_seconds > 0:
            self.remaining_seconds -= 1
        if self.remaining_seconds == 0:
            logger.info(f"Exam {self.exam.id} timed out for {self.actor!r}")
            return self._finish(timed_out=True)
        return None

    async def run_countdown(self) -> None:
        while self.state is SessionState.IN_PROGRESS and self.remaining_seconds > 0:
            await self.clock.sleep(1)
            try:
                self.tick()
            except CourseHubError as e:
                # already recorded on the session as FAILED
                logger.error(f"Timed-out submission failed: {e}")
                return

    def start_timer(self) -> asyncio.Task:
        self._require(SessionState.IN_PROGRESS)
        if self._timer is None or self._timer.done():
            self._timer = asyncio.get_running_loop().create_task(self.run_countdown())
        return self._timer

    def cancel(self) -> None:
        """Stop the countdown, e.g. when the session is torn down."""
        self._stop_timer()

    def _stop_timer(self) -> None:
        task, self._timer = self._timer, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    # ---- submission -----------------------------------------------------

    def _finish(self, timed_out: bool) -> ExamResult:
        self._stop_timer()
        self.state = SessionState.SUBMITTING
        try:
            return self._record(timed_out)
        finally:
            self.store.release()

    def _record(self, timed_out: bool) -> ExamResult:
        if self._grade is None:
            try:
                self._grade = grade(self.questions, self.answers)
            except (DegenerateExam, InvalidInput) as e:
                logger.error(f"Exam {self.exam.id} cannot be graded: {e}")
                self._fail(e)
                raise
            self._timed_out = timed_out

        score = self._grade.percentage
        passed = is_passing(score, self.exam.passing_score)
        completed_at = self.clock.now()
        attempt = ExamAttempt(
            user_id=self.actor.id,
            exam_id=self.exam.id,
            answers=list(self.answers),
            score=score,
            passed=passed,
            completed=True,
            timed_out=self._timed_out,
            started_at=self.started_at,
            completed_at=completed_at,
        )
        try:
            self.store.insert(attempt)
        except PersistenceFailure as e:
            logger.error(f"Attempt for exam {self.exam.id} not saved: {e}")
            self._fail(e, retryable=True)
            raise
        except AuthorizationDenied as e:
            self._fail(e)
            raise

        warnings: List[str] = []
        certificate_issued = False
        if passed:
            certificate_issued = self._apply_pass_effects(score, completed_at, warnings)

        self.result = ExamResult(
            attempt_id=attempt.id,
            exam_id=self.exam.id,
            course_id=self.exam.course_id,
            earned_points=self._grade.earned_points,
            total_points=self._grade.total_points,
            score=score,
            passed=passed,
            timed_out=self._timed_out,
            completed_at=completed_at,
            certificate_issued=certificate_issued,
            warnings=warnings,
        )
        self.error = None
        self._retryable = False
        self.ended_at = completed_at
        self.state = SessionState.COMPLETED
        logger.info(f"Attempt {attempt.id}: score={score} passed={passed} timed_out={self._timed_out}")
        return self.result

    def _apply_pass_effects(self, score: int, now: datetime, warnings: List[str]) -> bool:
        """Mark the enrollment completed and issue the certificate.

        Failures here never undo the saved attempt; they are returned as
        warnings. An already existing certificate counts as issued.
        """
        course_id = self.exam.course_id
        try:
            complete_enrollment(self.store, course_id, now)
        except (AuthorizationDenied, PersistenceFailure) as e:
            logger.warning(f"Enrollment for course {course_id} not marked completed: {e}")
            warnings.append(f"Enrollment not marked completed: {e.message}")

        try:
            issue_certificate(self.store, course_id, self.exam.id, score, now)
            return True
        except DuplicateCertificate:
            logger.info(f"Certificate for course {course_id} already exists for {self.actor!r}")
            return True
        except (AuthorizationDenied, PersistenceFailure, InvalidInput) as e:
            logger.warning(f"Certificate for course {course_id} not issued: {e}")
            warnings.append(f"Certificate not issued: {e.message}")
            return False

    # ---- helpers --------------------------------------------------------

    def _require(self, state: SessionState) -> None:
        if self.state is not state:
            raise InvalidState(f"Operation requires state {state.value}, session is {self.state.value}")

    def _fail(self, error: CourseHubError, retryable: bool = False) -> None:
        self._stop_timer()
        self.error = error
        self._retryable = retryable
        self.ended_at = self.clock.now()
        self.state = SessionState.FAILED

    def snapshot(self, session_id: Optional[str] = None) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=session_id,
            state=self.state.value,
            remaining_seconds=self.remaining_seconds,
            answers=list(self.answers),
            paper=self.paper,
            result=self.result,
            error=self.error.message if self.error else None,
        )
