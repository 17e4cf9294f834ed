from fastapi import APIRouter, Depends
from typing import List
from coursehub.core.auth import get_store, require_authenticated, require_roles
from coursehub.models.schemas import AttemptOut, ExamAnalytics, ExamCreate, ExamPaper
from coursehub.policy.store import PolicyStore
from coursehub.services import exams

router = APIRouter()

@router.post("/courses/{course_id}/exam", response_model=ExamPaper, status_code=201,
             dependencies=[Depends(require_roles("instructor"))])
def create_exam(course_id: str, payload: ExamCreate, store: PolicyStore = Depends(get_store)):
    exams.create_exam(store, course_id, payload)
    return exams.get_paper(store, course_id)

@router.get("/courses/{course_id}/exam", response_model=ExamPaper)
def get_exam(course_id: str, store: PolicyStore = Depends(get_store)):
    """Exam paper; the answer key is only included for the owner and admins."""
    return exams.get_paper(store, course_id)

@router.get("/courses/{course_id}/exam/analytics", response_model=ExamAnalytics,
            dependencies=[Depends(require_roles("instructor", "admin"))])
def exam_analytics(course_id: str, store: PolicyStore = Depends(get_store)):
    return exams.exam_analytics(store, course_id)

@router.get("/exams/{exam_id}/attempts", response_model=List[AttemptOut], dependencies=[Depends(require_authenticated)])
def list_attempts(exam_id: str, store: PolicyStore = Depends(get_store)):
    return exams.list_attempts(store, exam_id)
