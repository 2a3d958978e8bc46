"""
Authorization policy for course management.

Pure role/action table without I/O. Every `Action` must have a rule; the
module refuses to import otherwise so a new action cannot silently default to
"allowed" or "denied".
"""
from __future__ import annotations

from enum import Enum
from typing import Mapping, FrozenSet

from identity_access.domain import Role


class Action(str, Enum):
    CREATE_COURSE = "create_course"
    EDIT_COURSE = "edit_course"
    DELETE_COURSE = "delete_course"
    CONFIRM_ENROLLMENT = "confirm_enrollment"
    VIEW_ROSTER = "view_roster"


_STAFF = frozenset({Role.ADMIN, Role.TEACHER})

RULES: Mapping[Action, FrozenSet[Role]] = {
    Action.CREATE_COURSE: _STAFF,
    Action.EDIT_COURSE: _STAFF,
    Action.DELETE_COURSE: frozenset({Role.ADMIN}),
    Action.CONFIRM_ENROLLMENT: _STAFF,
    Action.VIEW_ROSTER: _STAFF,
}

_missing = set(Action) - set(RULES)
if _missing:  # pragma: no cover - guards future edits
    raise RuntimeError(f"authorization rules missing for: {sorted(a.value for a in _missing)}")


class AuthorizationPolicy:
    def __init__(self, rules: Mapping[Action, FrozenSet[Role]] = RULES) -> None:
        self._rules = dict(rules)

    def is_allowed(self, role: Role, action: Action) -> bool:
        if not isinstance(role, Role) or not isinstance(action, Action):
            return False
        return role in self._rules[action]


__all__ = ["Action", "AuthorizationPolicy", "RULES"]
