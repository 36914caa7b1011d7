from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict
from datetime import datetime, date as date_type
from decimal import Decimal
from enum import Enum

from domain.money import coerce_money

class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class PaymentStatus(str, Enum):
    PAID = "paid"
    PARTIAL = "partial"
    CREDIT = "credit"

EXPENSE_CATEGORIES = [
    "Materials",
    "Labor",
    "Equipment",
    "Transport",
    "Utilities",
    "Permits & Fees",
    "Contractors",
    "Food",
    "Miscellaneous",
]

PAYMENT_METHODS = [
    "Cash",
    "Bank Transfer",
    "Cheque",
    "Card",
    "Mobile Money",
    "Other",
]

def _to_date(value):
    # The document store keeps dates as midnight datetimes
    if isinstance(value, datetime):
        return value.date()
    return value

class StatusTransition(BaseModel):
    """Who moved an expense out of pending, and when."""
    actor_id: str
    actor_name: str
    at: datetime

class DeletionMark(BaseModel):
    deleted_by: str
    deleted_by_name: str
    deleted_at: datetime

class ExpenseBase(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    category: str = "Miscellaneous"
    payment_method: str = "Cash"
    receipt_url: Optional[str] = None
    expense_date: date_type = Field(default_factory=date_type.today)

    @field_validator("expense_date", mode="before")
    @classmethod
    def expense_date_from_datetime(cls, v):
        return _to_date(v)

    @field_validator("amount", mode="before")
    @classmethod
    def amount_to_decimal(cls, v):
        return coerce_money(v)

class ExpenseCreate(ExpenseBase):
    project_id: str
    payment_status: PaymentStatus = PaymentStatus.PAID
    paid_amount: Decimal = Field(Decimal("0"), ge=0)

class Expense(ExpenseBase):
    id: str
    project_id: str
    status: ExpenseStatus = ExpenseStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PAID
    paid_amount: Decimal = Decimal("0")
    created_by: str
    created_by_name: str
    status_change: Optional[StatusTransition] = None
    rejection_reason: Optional[str] = None
    is_deleted: bool = False
    deletion: Optional[DeletionMark] = None
    version: int = 0
    created_at: datetime
    updated_at: datetime

    @field_validator("paid_amount", mode="before")
    @classmethod
    def paid_amount_to_decimal(cls, v):
        return coerce_money(v)

    @property
    def pending_amount(self) -> Decimal:
        return self.amount - self.paid_amount

    @property
    def is_fully_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID or self.paid_amount >= self.amount

class ExpenseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    category: Optional[str] = None
    payment_method: Optional[str] = None
    receipt_url: Optional[str] = None
    expense_date: Optional[date_type] = None

class ExpenseReject(BaseModel):
    reason: str

class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)

class ExpenseSummary(BaseModel):
    total_amount: Decimal
    count: int
    count_by_status: Dict[str, int]
    count_by_category: Dict[str, int]
    amount_by_category: Dict[str, Decimal]
    # Keyed by the submitting member's user id
    amount_by_member: Dict[str, Decimal]
    monthly_totals: Dict[str, Decimal]
