"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between adapters and the web layer.
- Roles are a closed enum so authorization never compares raw strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"

    @classmethod
    def parse(cls, value: object) -> Optional["Role"]:
        """Return the role for `value` (case-insensitive) or None when unknown."""
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset(r.value for r in Role)

# Highest privilege wins when a directory reports several roles for one user.
ROLE_PRIORITY = (Role.ADMIN, Role.TEACHER, Role.STUDENT)


def primary_role(roles: list[str]) -> Optional[Role]:
    parsed = {Role.parse(r) for r in roles or []}
    for role in ROLE_PRIORITY:
        if role in parsed:
            return role
    return None


@dataclass(frozen=True)
class UserRecord:
    sub: str
    role: Role
    name: str = ""


__all__ = ["ALLOWED_ROLES", "ROLE_PRIORITY", "Role", "UserRecord", "primary_role"]
