from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum

class NotificationType(str, Enum):
    EXPENSE_CREATED = "expense_created"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"
    PAYMENT_RECEIVED = "payment_received"
    EXPENSE_DELETED = "expense_deleted"
    MEMBER_REMOVED = "member_removed"
    PROJECT_INVITE = "project_invite"
    BUDGET_WARNING = "budget_warning"

class NotificationBase(BaseModel):
    user_id: str
    type: NotificationType
    title: str
    body: str
    data: Dict[str, Any] = {}
    read: bool = False

class Notification(NotificationBase):
    id: str
    created_at: datetime
