from fastapi import APIRouter, Depends, Response
from typing import List
from datetime import datetime, timezone
from coursehub.core.auth import get_store, require_authenticated, require_roles
from coursehub.models.orm import Course
from coursehub.models.schemas import (
    CourseCreate, CourseOut, CourseUpdate, EnrollmentOut, VideoCreate, VideoOut,
    VideoUpdate,
)
from coursehub.policy.store import PolicyStore
from coursehub.services import courses

router = APIRouter()

@router.get("/courses", response_model=List[CourseOut])
def list_courses(store: PolicyStore = Depends(get_store)):
    return courses.list_courses(store)

@router.post("/courses", response_model=CourseOut, status_code=201, dependencies=[Depends(require_roles("instructor"))])
def create_course(payload: CourseCreate, store: PolicyStore = Depends(get_store)):
    return courses.create_course(store, payload)

@router.get("/courses/{course_id}", response_model=CourseOut)
def get_course(course_id: str, store: PolicyStore = Depends(get_store)):
    return store.get(Course, course_id)

@router.patch("/courses/{course_id}", response_model=CourseOut, dependencies=[Depends(require_roles("instructor"))])
def update_course(course_id: str, payload: CourseUpdate, store: PolicyStore = Depends(get_store)):
    return courses.update_course(store, course_id, payload)

@router.delete("/courses/{course_id}", status_code=204, dependencies=[Depends(require_roles("instructor"))])
def delete_course(course_id: str, store: PolicyStore = Depends(get_store)):
    courses.delete_course(store, course_id)
    return Response(status_code=204)

# ---- videos ----

@router.get("/courses/{course_id}/videos", response_model=List[VideoOut])
def list_videos(course_id: str, store: PolicyStore = Depends(get_store)):
    return courses.list_videos(store, course_id)

@router.post("/courses/{course_id}/videos", response_model=VideoOut, status_code=201,
             dependencies=[Depends(require_roles("instructor"))])
def add_video(course_id: str, payload: VideoCreate, store: PolicyStore = Depends(get_store)):
    return courses.add_video(store, course_id, payload)

@router.patch("/videos/{video_id}", response_model=VideoOut, dependencies=[Depends(require_roles("instructor"))])
def update_video(video_id: str, payload: VideoUpdate, store: PolicyStore = Depends(get_store)):
    return courses.update_video(store, video_id, payload)

@router.delete("/videos/{video_id}", status_code=204, dependencies=[Depends(require_roles("instructor"))])
def delete_video(video_id: str, store: PolicyStore = Depends(get_store)):
    courses.delete_video(store, video_id)
    return Response(status_code=204)

@router.post("/videos/{video_id}/complete", response_model=EnrollmentOut, dependencies=[Depends(require_roles("student"))])
def complete_video(video_id: str, store: PolicyStore = Depends(get_store)):
    return courses.complete_video(store, video_id, datetime.now(timezone.utc))

# ---- enrollments ----

@router.post("/courses/{course_id}/access", response_model=EnrollmentOut, dependencies=[Depends(require_roles("student"))])
def record_access(course_id: str, store: PolicyStore = Depends(get_store)):
    return courses.touch_enrollment(store, course_id, datetime.now(timezone.utc))

@router.post("/courses/{course_id}/enroll", response_model=EnrollmentOut, status_code=201,
             dependencies=[Depends(require_roles("student"))])
def enroll(course_id: str, store: PolicyStore = Depends(get_store)):
    return courses.enroll(store, course_id)

@router.get("/enrollments/mine", response_model=List[EnrollmentOut], dependencies=[Depends(require_authenticated)])
def my_enrollments(store: PolicyStore = Depends(get_store)):
    return courses.list_enrollments(store)
