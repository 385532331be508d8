# school_results/core/authorization.py
"""Tenant authorization gate.

Every result operation passes through ``authorize`` before it touches the
store. The decision is a pure function of the caller's tenant context, the
action and the target resource's ownership fields:

* a resource in another school is ``NOT_FOUND`` for every role, so callers
  cannot tell a foreign result from a missing one;
* students only see their own results;
* teachers create and read within their school and change only results they
  own (``teacher_id``);
* admins may do anything within their own school.
"""
import enum
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from .exceptions import ForbiddenError, NotFoundError
from .security import TenantContext
from ..models.tenant_specific.user import UserRole


class Action(str, enum.Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LIST_CLASS = "list_class"
    LIST_TEACHER = "list_teacher"
    LIST_STUDENT = "list_student"
    VIEW_STATISTICS = "view_statistics"
    RECALCULATE = "recalculate"
    VIEW_HISTORY = "view_history"


class Decision(str, enum.Enum):
    ALLOWED = "allowed"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ResourceRef:
    """Ownership fields of the thing being acted on."""
    school_id: UUID
    student_id: Optional[UUID] = None
    teacher_id: Optional[UUID] = None


# Actions a teacher may perform on anything inside the school
_TEACHER_TENANT_WIDE = {
    Action.READ,
    Action.LIST_CLASS,
    Action.LIST_STUDENT,
    Action.VIEW_STATISTICS,
    Action.RECALCULATE,
    Action.VIEW_HISTORY,
}

# Actions a teacher may perform only on resources they own
_TEACHER_OWNED = {Action.CREATE, Action.UPDATE, Action.LIST_TEACHER}

_STUDENT_OWN = {Action.READ, Action.LIST_STUDENT}


def authorize(context: TenantContext, action: Action, resource: ResourceRef) -> Decision:
    if resource.school_id != context.school_id:
        return Decision.NOT_FOUND

    if context.role == UserRole.ADMIN:
        return Decision.ALLOWED

    if context.role == UserRole.TEACHER:
        if action in _TEACHER_TENANT_WIDE:
            return Decision.ALLOWED
        if action in _TEACHER_OWNED and resource.teacher_id == context.user_id:
            return Decision.ALLOWED
        return Decision.FORBIDDEN

    if context.role == UserRole.STUDENT:
        if action in _STUDENT_OWN and resource.student_id == context.user_id:
            return Decision.ALLOWED
        return Decision.FORBIDDEN

    return Decision.FORBIDDEN


_FORBIDDEN_MESSAGES = {
    Action.CREATE: "Teachers can only create results for their own subjects",
    Action.UPDATE: "You can only update your own subject results",
    Action.DELETE: "Admin role required",
    Action.LIST_TEACHER: "You can only view your own subject results",
    Action.READ: "Students can only view their own results",
    Action.LIST_STUDENT: "Students can only view their own results",
}


def enforce(
    context: TenantContext,
    action: Action,
    resource: ResourceRef,
    resource_name: str = "Student result",
):
    """Raise ``NotFoundError`` or ``ForbiddenError`` unless the action is allowed."""
    decision = authorize(context, action, resource)
    if decision == Decision.NOT_FOUND:
        raise NotFoundError(resource_name)
    if decision == Decision.FORBIDDEN:
        raise ForbiddenError(_FORBIDDEN_MESSAGES.get(action, "Admin or teacher role required"))
