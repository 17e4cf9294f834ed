"""
In-process registry of live exam sessions.

Each exam session owns a database session of its own for its whole life, so
the countdown can submit after the request that started it has returned. The
database session holds no open transaction between operations.

Entries expire ``grace_seconds`` after they stop being useful: after opening
for a session that was never started, after the exam duration for one in
progress, and after the end for one that completed or failed. A submission in
flight never expires. Expired entries are purged on the next registry call.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional
from sqlalchemy.orm import Session
from coursehub.core.clock import Clock, SystemClock
from coursehub.core.config import settings
from coursehub.core.errors import AuthorizationDenied
from coursehub.policy.actors import Actor
from coursehub.policy.store import PolicyStore
from coursehub.services.exam_session import ExamSession, SessionState

logger = logging.getLogger(__name__)

@dataclass
class _Entry:
    actor: Actor
    session: ExamSession
    db: Session
    opened_at: datetime

    def expires_at(self, grace: timedelta) -> Optional[datetime]:
        session = self.session
        if session.state is SessionState.SUBMITTING:
            return None
        if session.state is SessionState.IN_PROGRESS:
            return session.started_at + timedelta(minutes=session.exam.duration_minutes) + grace
        if session.state in (SessionState.COMPLETED, SessionState.FAILED):
            return (session.ended_at or self.opened_at) + grace
        return self.opened_at + grace

class SessionRegistry:
    def __init__(self, session_factory: Callable[[], Session], clock: Optional[Clock] = None,
                 grace_seconds: int = settings.EXAM_SESSION_GRACE_SECONDS):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.grace = timedelta(seconds=grace_seconds)
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def create(self, actor: Actor, course_id: str):
        """Load the course's exam for ``actor``; returns ``(session_id, session)``."""
        self.purge_expired()
        db = self.session_factory()
        session = ExamSession(PolicyStore(db, actor), self.clock)
        try:
            session.load_exam(course_id)
        except Exception:
            db.close()
            raise
        session_id = str(uuid.uuid4())
        self._entries[session_id] = _Entry(actor=actor, session=session, db=db, opened_at=self.clock.now())
        logger.info(f"Exam session {session_id} opened for {actor!r} on course {course_id}")
        return session_id, session

    def get(self, actor: Actor, session_id: str) -> ExamSession:
        self.purge_expired()
        entry = self._entries.get(session_id)
        if entry is None or entry.actor != actor:
            raise AuthorizationDenied.not_found("Exam session")
        return entry.session

    def discard(self, actor: Actor, session_id: str) -> None:
        self.get(actor, session_id)
        self._close(session_id)

    def purge_expired(self) -> int:
        """Close every expired entry; returns how many were removed."""
        now = self.clock.now()
        expired = []
        for session_id, entry in self._entries.items():
            deadline = entry.expires_at(self.grace)
            if deadline is not None and deadline <= now:
                expired.append(session_id)
        for session_id in expired:
            self._close(session_id)
        if expired:
            logger.info(f"Purged {len(expired)} expired exam sessions")
        return len(expired)

    def close_all(self) -> None:
        for session_id in list(self._entries):
            self._close(session_id)

    def _close(self, session_id: str) -> None:
        entry = self._entries.pop(session_id)
        entry.session.cancel()
        entry.db.close()
        logger.info(f"Exam session {session_id} closed in state {entry.session.state.value}")
