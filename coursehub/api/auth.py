from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import select
from coursehub.core.auth import create_token, get_store, require_authenticated
from coursehub.core.database import get_db
from coursehub.core.errors import AuthorizationDenied, DuplicateRecord, InvalidInput
from coursehub.models.orm import Profile, new_id
from coursehub.models.schemas import MockLogin, ProfileOut, SignupIn, TokenOut
from coursehub.policy.actors import Actor, actor_from_role
from coursehub.policy.store import PolicyStore

router = APIRouter()

@router.post("/signup", response_model=TokenOut, status_code=201)
def signup(payload: SignupIn, db: Session = Depends(get_db)):
    # the new account inserts its own profile; the role check stops escalation
    user_id = new_id()
    store = PolicyStore(db, actor_from_role(payload.role, user_id))
    try:
        store.insert(Profile(id=user_id, email=payload.email.lower(), role=payload.role))
    except DuplicateRecord as e:
        raise InvalidInput("Email already registered") from e
    return TokenOut(access_token=create_token(user_id, payload.role), user_id=user_id, role=payload.role)

@router.post("/mock-login", response_model=TokenOut)
def mock_login(payload: MockLogin, db: Session = Depends(get_db)):
    profile = db.scalar(select(Profile).where(Profile.email == payload.email.lower()))
    if profile is None:
        raise AuthorizationDenied.not_found("Profile")
    return TokenOut(access_token=create_token(profile.id, profile.role), user_id=profile.id, role=profile.role)

@router.get("/me", response_model=ProfileOut)
def me(actor: Actor = Depends(require_authenticated), store: PolicyStore = Depends(get_store)):
    return store.get(Profile, actor.id)
