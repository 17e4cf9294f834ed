"""
Course, video and enrollment records. Every call runs through the caller's
PolicyStore, so ownership and visibility are enforced by the rule table.
"""
import logging
import re
from datetime import datetime
from typing import List, Optional
from sqlalchemy import func, select
from coursehub.core.config import settings
from coursehub.core.errors import AuthorizationDenied, DuplicateRecord, InvalidInput
from coursehub.models.orm import Course, CourseVideo, Enrollment, VideoProgress
from coursehub.models.schemas import CourseCreate, CourseUpdate, VideoCreate, VideoUpdate
from coursehub.policy.store import PolicyStore
from coursehub.services.grading import percent

logger = logging.getLogger(__name__)

VIDEO_URL_RE = re.compile(settings.VIDEO_URL_PATTERN, re.IGNORECASE)

# ---- courses ------------------------------------------------------------

def create_course(store: PolicyStore, payload: CourseCreate) -> Course:
    course = Course(instructor_id=store.actor.id, **payload.model_dump())
    store.insert(course)
    logger.info(f"Course {course.id} created by {store.actor.id}")
    return course

def update_course(store: PolicyStore, course_id: str, payload: CourseUpdate) -> Course:
    course = store.get(Course, course_id)
    return store.update(course, **payload.model_dump(exclude_unset=True))

def delete_course(store: PolicyStore, course_id: str) -> None:
    store.delete(store.get(Course, course_id))
    logger.info(f"Course {course_id} deleted by {store.actor.id}")

def list_courses(store: PolicyStore) -> List[Course]:
    return store.select(select(Course).order_by(Course.created_at.desc(), Course.id))

# ---- videos -------------------------------------------------------------

def validate_video_url(url: str) -> str:
    if not VIDEO_URL_RE.match(url or ""):
        raise InvalidInput(f"Unsupported video URL: {url!r}")
    return url

def add_video(store: PolicyStore, course_id: str, payload: VideoCreate) -> CourseVideo:
    course = store.get(Course, course_id)
    validate_video_url(payload.video_url)
    order_index = payload.order_index
    if order_index is None:
        current = store.db.scalar(select(func.max(CourseVideo.order_index)).where(CourseVideo.course_id == course.id))
        order_index = (current or 0) + 1
    video = CourseVideo(course_id=course.id, title=payload.title, description=payload.description,
                        video_url=payload.video_url, order_index=order_index)
    try:
        store.insert(video)
    except DuplicateRecord as e:
        raise InvalidInput(f"Order position {order_index} is already used in this course") from e
    return video

def list_videos(store: PolicyStore, course_id: str) -> List[CourseVideo]:
    course = store.get(Course, course_id)
    return store.select(
        select(CourseVideo).where(CourseVideo.course_id == course.id).order_by(CourseVideo.order_index, CourseVideo.id)
    )

def update_video(store: PolicyStore, video_id: str, payload: VideoUpdate) -> CourseVideo:
    """Edit or reorder a video. Only ``description`` can be cleared."""
    video = store.get(CourseVideo, video_id)
    values = payload.model_dump(exclude_unset=True)
    for field in ("title", "video_url", "order_index"):
        if field in values and values[field] is None:
            raise InvalidInput(f"{field} cannot be empty")
    if "video_url" in values:
        validate_video_url(values["video_url"])
    try:
        return store.update(video, **values)
    except DuplicateRecord as e:
        raise InvalidInput(f"Order position {values.get('order_index')} is already used in this course") from e

def delete_video(store: PolicyStore, video_id: str) -> None:
    store.delete(store.get(CourseVideo, video_id))
    logger.info(f"Video {video_id} deleted by {store.actor.id}")

# ---- enrollments --------------------------------------------------------

def find_enrollment(store: PolicyStore, course_id: str) -> Optional[Enrollment]:
    return store.first(
        select(Enrollment).where(Enrollment.user_id == store.actor.id, Enrollment.course_id == course_id)
    )

def enroll(store: PolicyStore, course_id: str) -> Enrollment:
    course = store.get(Course, course_id)
    enrollment = Enrollment(user_id=store.actor.id, course_id=course.id, progress=0)
    try:
        return store.insert(enrollment)
    except DuplicateRecord as e:
        raise InvalidInput("Already enrolled in this course") from e

def list_enrollments(store: PolicyStore) -> List[Enrollment]:
    return store.select(select(Enrollment).where(Enrollment.user_id == store.actor.id))

def touch_enrollment(store: PolicyStore, course_id: str, now: datetime) -> Enrollment:
    enrollment = find_enrollment(store, course_id)
    if enrollment is None:
        raise AuthorizationDenied.not_found("Enrollment")
    return store.update(enrollment, last_accessed_at=now)

def complete_enrollment(store: PolicyStore, course_id: str, now: datetime) -> Enrollment:
    enrollment = find_enrollment(store, course_id)
    if enrollment is None:
        raise AuthorizationDenied.not_found("Enrollment")
    return store.update(enrollment, completed=True, progress=100, completed_at=now)

def complete_video(store: PolicyStore, video_id: str, now: datetime) -> Enrollment:
    """Record a watched video and recompute the enrollment's progress."""
    video = store.get(CourseVideo, video_id)
    enrollment = find_enrollment(store, video.course_id)
    if enrollment is None:
        raise AuthorizationDenied.not_found("Enrollment")

    done = store.first(select(VideoProgress).where(
        VideoProgress.user_id == store.actor.id, VideoProgress.video_id == video.id
    ))
    if done is None:
        store.insert(VideoProgress(user_id=store.actor.id, video_id=video.id, completed=True, completed_at=now))

    total = store.db.scalar(select(func.count(CourseVideo.id)).where(CourseVideo.course_id == video.course_id))
    watched = store.db.scalar(
        select(func.count(VideoProgress.id)).join(CourseVideo, VideoProgress.video_id == CourseVideo.id).where(
            VideoProgress.user_id == store.actor.id, CourseVideo.course_id == video.course_id
        )
    )
    progress = percent(watched, total) if total else 0
    if enrollment.completed:
        # exam completion already pinned progress at 100
        progress = 100
    return store.update(enrollment, progress=progress, last_accessed_at=now)
