"""
Exam-session routes. Handlers are coroutines so the countdown task runs on
the application's event loop next to them.
"""
from fastapi import APIRouter, Depends, Response
from typing import Optional
from coursehub.core.auth import require_roles
from coursehub.core.database import RegistrySessionLocal
from coursehub.models.schemas import AnswerIn, SessionCreate, SessionSnapshot
from coursehub.policy.actors import Actor
from coursehub.services.registry import SessionRegistry

router = APIRouter()

_registry: Optional[SessionRegistry] = None

def get_registry() -> SessionRegistry:
    global _registry
    if _registry is None:
        _registry = SessionRegistry(RegistrySessionLocal)
    return _registry

def close_registry() -> None:
    if _registry is not None:
        _registry.close_all()

student = require_roles("student")

@router.post("/exam-sessions", response_model=SessionSnapshot, status_code=201)
async def create_session(payload: SessionCreate, actor: Actor = Depends(student),
                         registry: SessionRegistry = Depends(get_registry)):
    session_id, session = registry.create(actor, payload.course_id)
    return session.snapshot(session_id)

@router.get("/exam-sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str, actor: Actor = Depends(student),
                      registry: SessionRegistry = Depends(get_registry)):
    return registry.get(actor, session_id).snapshot(session_id)

@router.post("/exam-sessions/{session_id}/start", response_model=SessionSnapshot)
async def start_session(session_id: str, actor: Actor = Depends(student),
                        registry: SessionRegistry = Depends(get_registry)):
    session = registry.get(actor, session_id)
    session.start()
    session.start_timer()
    return session.snapshot(session_id)

@router.put("/exam-sessions/{session_id}/answers/{question_index}", response_model=SessionSnapshot)
async def select_answer(session_id: str, question_index: int, payload: AnswerIn, actor: Actor = Depends(student),
                        registry: SessionRegistry = Depends(get_registry)):
    session = registry.get(actor, session_id)
    session.select_answer(question_index, payload.choice_index)
    return session.snapshot(session_id)

@router.delete("/exam-sessions/{session_id}/answers/{question_index}", response_model=SessionSnapshot)
async def clear_answer(session_id: str, question_index: int, actor: Actor = Depends(student),
                       registry: SessionRegistry = Depends(get_registry)):
    session = registry.get(actor, session_id)
    session.clear_answer(question_index)
    return session.snapshot(session_id)

@router.post("/exam-sessions/{session_id}/submit", response_model=SessionSnapshot)
async def submit_session(session_id: str, actor: Actor = Depends(student),
                         registry: SessionRegistry = Depends(get_registry)):
    """Submit the attempt. While the state is "submitting" ``result`` is null; poll the session."""
    session = registry.get(actor, session_id)
    session.submit()
    return session.snapshot(session_id)

@router.delete("/exam-sessions/{session_id}", status_code=204)
async def discard_session(session_id: str, actor: Actor = Depends(student),
                          registry: SessionRegistry = Depends(get_registry)):
    registry.discard(actor, session_id)
    return Response(status_code=204)
