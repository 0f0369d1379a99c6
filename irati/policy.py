"""
Authorization gate.

Every repository operation that writes or reads scoped data receives the
caller as an explicit AuthContext. The whole role -> permission mapping lives
in PERMISSIONS so routes and repositories never compare role strings
themselves.
"""

from typing import Callable, Dict, Optional

from pydantic import BaseModel

from irati.errors import PermissionDeniedError
from irati.schemas import Role

GESTOR = "gestor"
MONITOR = "monitor"
PROFESSOR = "professor"
SOCIO = "socio"


class AuthContext(BaseModel):
    user_id: str
    role: Role = SOCIO

    @property
    def is_manager(self) -> bool:
        return self.role == GESTOR


Rule = Callable[[AuthContext, Optional[str], Optional[str]], bool]


def _manager(ctx, owner_id, instructor_id):
    return ctx.role == GESTOR


def _manager_or_instructor(ctx, owner_id, instructor_id):
    return ctx.role == GESTOR or (instructor_id is not None and instructor_id == ctx.user_id)


def _self_or_manager(ctx, owner_id, instructor_id):
    return ctx.role == GESTOR or (owner_id is not None and owner_id == ctx.user_id)


def _self_manager_or_instructor(ctx, owner_id, instructor_id):
    return _self_or_manager(ctx, owner_id, instructor_id) or _manager_or_instructor(ctx, owner_id, instructor_id)


def _monitor_or_manager(ctx, owner_id, instructor_id):
    return ctx.role in (GESTOR, MONITOR)


def _interview_monitor_or_manager(ctx, owner_id, instructor_id):
    # owner_id is the interview's monitor
    return ctx.role == GESTOR or (owner_id is not None and owner_id == ctx.user_id)


PERMISSIONS: Dict[str, Rule] = {
    "course.create": _manager,
    "course.update": _manager_or_instructor,
    "course.delete": _manager,
    "session.manage": _manager,
    "enrollment.create": _self_or_manager,
    "enrollment.delete": _self_or_manager,
    "enrollment.view": _self_manager_or_instructor,
    "attendance.mark": _manager_or_instructor,
    "attendance.view": _self_manager_or_instructor,
    "user.list": _manager,
    "role.manage": _manager,
    "assignment.manage": _manager,
    "interview.create": _monitor_or_manager,
    "interview.update": _interview_monitor_or_manager,
    "interview.delete": _manager,
}


def can(ctx: AuthContext, action: str, owner_id: Optional[str] = None, instructor_id: Optional[str] = None) -> bool:
    rule = PERMISSIONS.get(action)
    if rule is None:
        raise KeyError(f"Unknown action: {action}")
    return rule(ctx, owner_id, instructor_id)


def require(ctx: AuthContext, action: str, owner_id: Optional[str] = None, instructor_id: Optional[str] = None) -> None:
    if not can(ctx, action, owner_id=owner_id, instructor_id=instructor_id):
        raise PermissionDeniedError(f"Role '{ctx.role}' is not allowed to perform {action}")
