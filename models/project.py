from pydantic import BaseModel, Field, EmailStr, computed_field, field_validator
from typing import Optional, List, Dict
from datetime import datetime, date as date_type
from decimal import Decimal
from enum import Enum

from domain.money import coerce_money

class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"

class MemberRole(str, Enum):
    ADMIN = "admin"
    DIRECTOR = "director"
    LABOUR = "labour"

def _to_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value

class DirectorPermissions(BaseModel):
    can_delete_expenses: bool = False
    can_delete_members: bool = False

class ProjectMember(BaseModel):
    id: str
    user_id: str
    name: str
    email: Optional[EmailStr] = None
    photo_url: Optional[str] = None
    role: MemberRole = MemberRole.LABOUR
    joined_at: datetime

class ProjectBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    budget: Decimal = Field(..., ge=0)
    start_date: date_type = Field(default_factory=date_type.today)
    end_date: Optional[date_type] = None
    image_url: Optional[str] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def dates_from_datetime(cls, v):
        return _to_date(v)

class ProjectCreate(ProjectBase):
    pass

class Project(ProjectBase):
    id: str
    total_spent: Decimal = Decimal("0")
    status: ProjectStatus = ProjectStatus.ACTIVE
    admin_id: str
    admin_name: str
    members: List[ProjectMember] = []
    director_permissions: Dict[str, DirectorPermissions] = {}
    version: int = 0
    created_at: datetime
    updated_at: datetime

    @field_validator("budget", "total_spent", mode="before")
    @classmethod
    def money_to_decimal(cls, v):
        return coerce_money(v)

    @field_validator("members")
    @classmethod
    def dedupe_members(cls, members):
        # First occurrence of a user wins
        seen = set()
        unique = []
        for member in members:
            if member.user_id in seen:
                continue
            seen.add(member.user_id)
            unique.append(member)
        return unique

    @computed_field
    @property
    def remaining_budget(self) -> Decimal:
        return self.budget - self.total_spent

    @computed_field
    @property
    def budget_utilization(self) -> float:
        if self.budget <= 0:
            return 0.0
        return float(self.total_spent / self.budget * 100)

    @computed_field
    @property
    def is_over_budget(self) -> bool:
        return self.total_spent > self.budget

    @computed_field
    @property
    def member_count(self) -> int:
        return len(self.members) + 1

    def get_member(self, user_id: str) -> Optional[ProjectMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def director_ids(self) -> List[str]:
        return [m.user_id for m in self.members if m.role == MemberRole.DIRECTOR]

class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    budget: Optional[Decimal] = Field(None, ge=0)
    status: Optional[ProjectStatus] = None
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    image_url: Optional[str] = None

class DirectorPermissionsUpdate(BaseModel):
    can_delete_expenses: Optional[bool] = None
    can_delete_members: Optional[bool] = None

class MemberRoleUpdate(BaseModel):
    role: MemberRole

    @field_validator("role")
    @classmethod
    def not_admin(cls, v):
        if v == MemberRole.ADMIN:
            raise ValueError("The admin role belongs to the project owner")
        return v

class ProjectBudget(BaseModel):
    budget: Decimal
    total_spent: Decimal
    remaining_budget: Decimal
    budget_utilization: float
    is_over_budget: bool
