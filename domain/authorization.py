"""
Project-level authorization.

Every request resolves the caller's role in the project once and asks
``can_perform`` before handing anything to the ledger.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.project import MemberRole, Project
from models.user import Identity


class Action(str, Enum):
    VIEW_PROJECT = "view_project"
    VIEW_PROJECT_DETAILS = "view_project_details"
    VIEW_EXPENSES = "view_expenses"
    VIEW_REPORTS = "view_reports"
    CREATE_EXPENSE = "create_expense"
    UPDATE_EXPENSE = "update_expense"
    APPROVE_EXPENSE = "approve_expense"
    REJECT_EXPENSE = "reject_expense"
    RECORD_PAYMENT = "record_payment"
    DELETE_EXPENSE = "delete_expense"
    RESTORE_EXPENSE = "restore_expense"
    INVITE_MEMBER = "invite_member"
    CANCEL_INVITATION = "cancel_invitation"
    REMOVE_MEMBER = "remove_member"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"
    MANAGE_PERMISSIONS = "manage_permissions"


_ALL_MEMBERS = {MemberRole.ADMIN, MemberRole.DIRECTOR, MemberRole.LABOUR}
_MANAGERS = {MemberRole.ADMIN, MemberRole.DIRECTOR}
_ADMIN_ONLY = {MemberRole.ADMIN}

_ALLOWED_ROLES = {
    Action.VIEW_PROJECT: _ALL_MEMBERS,
    Action.VIEW_EXPENSES: _ALL_MEMBERS,
    Action.CREATE_EXPENSE: _ALL_MEMBERS,
    Action.VIEW_PROJECT_DETAILS: _MANAGERS,
    Action.VIEW_REPORTS: _MANAGERS,
    Action.UPDATE_EXPENSE: _MANAGERS,
    Action.APPROVE_EXPENSE: _MANAGERS,
    Action.REJECT_EXPENSE: _MANAGERS,
    Action.RECORD_PAYMENT: _MANAGERS,
    Action.INVITE_MEMBER: _MANAGERS,
    Action.CANCEL_INVITATION: _MANAGERS,
    Action.RESTORE_EXPENSE: _ADMIN_ONLY,
    Action.UPDATE_PROJECT: _ADMIN_ONLY,
    Action.DELETE_PROJECT: _ADMIN_ONLY,
    Action.MANAGE_PERMISSIONS: _ADMIN_ONLY,
}


@dataclass(frozen=True)
class Actor:
    user_id: str
    name: str
    role: Optional[MemberRole] = None

    @property
    def is_delegated(self) -> bool:
        """A director acting with power borrowed from the project admin."""
        return self.role == MemberRole.DIRECTOR


def role_of(project: Project, user_id: str) -> Optional[MemberRole]:
    if project.admin_id == user_id:
        return MemberRole.ADMIN
    member = project.get_member(user_id)
    if member is None:
        return None
    return member.role


def actor_for(project: Project, identity: Identity) -> Actor:
    return Actor(
        user_id=identity.user_id,
        name=identity.display_name,
        role=role_of(project, identity.user_id),
    )


def can_perform(actor_id: str, action: Action, project: Project) -> bool:
    role = role_of(project, actor_id)
    if role is None:
        return False

    # Delegated capabilities depend on the per-director permission map
    if action in (Action.DELETE_EXPENSE, Action.REMOVE_MEMBER):
        if role == MemberRole.ADMIN:
            return True
        if role != MemberRole.DIRECTOR:
            return False
        permissions = project.director_permissions.get(actor_id)
        if permissions is None:
            return False
        if action == Action.DELETE_EXPENSE:
            return permissions.can_delete_expenses
        return permissions.can_delete_members

    return role in _ALLOWED_ROLES.get(action, set())


def is_privileged_creator(project: Project, user_id: str) -> bool:
    """Expenses created by the project admin skip the approval queue."""
    return role_of(project, user_id) == MemberRole.ADMIN
