import logging
from datetime import datetime
from typing import List
from sqlalchemy import select
from coursehub.core.errors import DuplicateCertificate, DuplicateRecord, InvalidInput, PersistenceFailure
from coursehub.models.orm import Certificate, CourseExam, Enrollment, ExamAttempt
from coursehub.policy.store import PolicyStore

logger = logging.getLogger(__name__)

def issue_certificate(store: PolicyStore, course_id: str, exam_id: str, score: int, issued_at: datetime) -> Certificate:
    """Issue the actor's certificate for a course, at most once.

    Raises ``DuplicateCertificate`` when one already exists, whether found by
    the pre-check or by the unique constraint on insert.
    """
    user_id = store.actor.id
    existing = store.first(select(Certificate).where(Certificate.user_id == user_id, Certificate.course_id == course_id))
    if existing is not None:
        raise DuplicateCertificate(f"Certificate already issued for course {course_id}")

    passing = store.first(
        select(ExamAttempt).join(CourseExam, ExamAttempt.exam_id == CourseExam.id).where(
            ExamAttempt.user_id == user_id, CourseExam.course_id == course_id, ExamAttempt.passed.is_(True)
        )
    )
    if passing is None:
        raise InvalidInput("A passing exam attempt is required before a certificate can be issued")

    cert = Certificate(user_id=user_id, course_id=course_id, exam_id=exam_id, score=score, issued_at=issued_at)
    try:
        store.insert(cert)
    except DuplicateRecord as e:
        raise DuplicateCertificate(f"Certificate already issued for course {course_id}") from e
    logger.info(f"Issued certificate {cert.id} to {user_id} for course {course_id}")

    enrollment = store.first(select(Enrollment).where(Enrollment.user_id == user_id, Enrollment.course_id == course_id))
    if enrollment is not None:
        try:
            store.update(enrollment, certificate_issued=True)
        except PersistenceFailure as e:
            logger.warning(f"Certificate {cert.id} issued but enrollment flag not updated: {e}")
    return cert

def list_certificates(store: PolicyStore) -> List[Certificate]:
    return store.select(
        select(Certificate).where(Certificate.user_id == store.actor.id).order_by(Certificate.issued_at.desc())
    )
