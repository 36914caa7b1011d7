"""
Typed outcomes of the expense rules.

Business rule violations are returned as ``LedgerError`` values rather than
raised, so callers branch on them explicitly. Infrastructure failures live in
``database.store`` and are raised as exceptions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, TypeVar

from models.notification import NotificationType

T = TypeVar("T")


class LedgerErrorKind(str, Enum):
    ALREADY_PROCESSED = "already_processed"
    ALREADY_DELETED = "already_deleted"
    NOT_DELETED = "not_deleted"
    INVITATION_EXPIRED = "invitation_expired"
    NOT_FOUND = "not_found"
    ALREADY_MEMBER = "already_member"
    INVALID_INPUT = "invalid_input"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class LedgerError:
    kind: LedgerErrorKind
    message: str

    @classmethod
    def not_found(cls, what: str, record_id: str) -> "LedgerError":
        return cls(LedgerErrorKind.NOT_FOUND, f"{what} not found: {record_id}")

    @classmethod
    def forbidden(cls, action: str) -> "LedgerError":
        return cls(LedgerErrorKind.FORBIDDEN, f"You do not have permission to {action.replace('_', ' ')}")


class Audience(str, Enum):
    """Who a notification is for, resolved against the project by the caller."""

    PROJECT_ADMIN = "project_admin"
    PROJECT_MANAGERS = "project_managers"
    EXPENSE_OWNER = "expense_owner"


@dataclass(frozen=True)
class NotificationIntent:
    audience: Audience
    type: NotificationType
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerResult(Generic[T]):
    value: T
    recompute_required: bool = False
    notifications: List[NotificationIntent] = field(default_factory=list)

