"""
Actors: the identity on whose behalf an operation runs.
"""
from dataclasses import dataclass
from typing import Optional, Union
from coursehub.core.errors import InvalidInput
from coursehub.models.orm import Role

@dataclass(frozen=True)
class Anonymous:
    id: None = None

@dataclass(frozen=True)
class Student:
    id: str

@dataclass(frozen=True)
class Instructor:
    id: str

@dataclass(frozen=True)
class Admin:
    id: str

Actor = Union[Anonymous, Student, Instructor, Admin]

_BY_ROLE = {
    Role.STUDENT.value: Student,
    Role.INSTRUCTOR.value: Instructor,
    Role.ADMIN.value: Admin,
}

def actor_from_role(role: Optional[str], user_id: Optional[str]) -> Actor:
    if not user_id:
        return Anonymous()
    try:
        return _BY_ROLE[role](user_id)
    except KeyError:
        raise InvalidInput(f"Unknown role: {role!r}")

def role_of(actor: Actor) -> Optional[str]:
    for role, cls in _BY_ROLE.items():
        if isinstance(actor, cls):
            return role
    return None

def is_authenticated(actor: Actor) -> bool:
    return not isinstance(actor, Anonymous)
