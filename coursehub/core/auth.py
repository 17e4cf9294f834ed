from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from typing import Optional
import jwt
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from coursehub.core.config import settings
from coursehub.core.database import get_db
from coursehub.core.errors import InvalidInput
from coursehub.policy.actors import Actor, Anonymous, actor_from_role, role_of
from coursehub.policy.store import PolicyStore

class TokenData(BaseModel):
    sub: str
    role: str

bearer = HTTPBearer(auto_error=False)

def create_token(user_id: str, role: str, ttl_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = ttl_minutes if ttl_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {"sub": user_id, "role": role, "iat": int(now.timestamp()), "exp": int((now + timedelta(minutes=ttl)).timestamp())}
    return jwt.encode(payload, settings.SECRET_KEY.get_secret_value(), algorithm=settings.ALGORITHM)

def decode_token(token: str) -> TokenData:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
        return TokenData(sub=payload["sub"], role=payload["role"])
    except (jwt.PyJWTError, KeyError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

def get_actor(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Actor:
    """No bearer token means an anonymous visitor; a bad one is rejected."""
    if creds is None:
        return Anonymous()
    data = decode_token(creds.credentials)
    try:
        return actor_from_role(data.role, data.sub)
    except InvalidInput:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

def require_authenticated(actor: Actor = Depends(get_actor)) -> Actor:
    if isinstance(actor, Anonymous):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return actor

def get_store(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)) -> PolicyStore:
    return PolicyStore(db, actor)

def require_roles(*required: str):
    def checker(actor: Actor = Depends(require_authenticated)) -> Actor:
        if role_of(actor) not in required:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return actor
    return checker
