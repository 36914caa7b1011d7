"""
Expense state transitions.

Pure functions over ``Expense`` values. Each returns a ``LedgerResult`` with
the new expense, whether the owning project's total must be recomputed, and
the notifications the caller should send; or a ``LedgerError`` when the
transition is not allowed. Nothing here reads or writes the store, and the
project total is never touched directly.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from domain.authorization import Actor
from domain.errors import (
    Audience,
    LedgerError,
    LedgerErrorKind,
    LedgerResult,
    NotificationIntent,
)
from domain.money import ZERO, clamp, format_money
from models.expense import (
    DeletionMark,
    Expense,
    ExpenseCreate,
    ExpenseStatus,
    ExpenseUpdate,
    PaymentStatus,
    StatusTransition,
)
from models.notification import NotificationType


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _payment_status_for(paid_amount: Decimal, amount: Decimal, requested: PaymentStatus) -> PaymentStatus:
    if paid_amount >= amount:
        return PaymentStatus.PAID
    return requested


def initial_paid_amount(data: ExpenseCreate) -> Decimal:
    if data.payment_status == PaymentStatus.PAID:
        return data.amount
    if data.payment_status == PaymentStatus.CREDIT:
        return ZERO
    return clamp(data.paid_amount, ZERO, data.amount)


def _expense_data(expense: Expense, **extra) -> dict:
    data = {
        "project_id": expense.project_id,
        "expense_id": expense.id,
    }
    data.update(extra)
    return data


def create(
    data: ExpenseCreate,
    creator: Actor,
    creator_is_privileged: bool,
    expense_id: str,
    now: Optional[datetime] = None,
) -> LedgerResult:
    now = _now(now)
    paid_amount = initial_paid_amount(data)

    payment_status = _payment_status_for(paid_amount, data.amount, data.payment_status)

    status_change = None
    status = ExpenseStatus.PENDING
    if creator_is_privileged:
        status = ExpenseStatus.APPROVED
        status_change = StatusTransition(actor_id=creator.user_id, actor_name=creator.name, at=now)

    expense = Expense(
        id=expense_id,
        project_id=data.project_id,
        title=data.title,
        description=data.description,
        amount=data.amount,
        category=data.category,
        payment_method=data.payment_method,
        receipt_url=data.receipt_url,
        expense_date=data.expense_date,
        status=status,
        payment_status=payment_status,
        paid_amount=paid_amount,
        created_by=creator.user_id,
        created_by_name=creator.name,
        status_change=status_change,
        created_at=now,
        updated_at=now,
    )

    notification = NotificationIntent(
        audience=Audience.PROJECT_MANAGERS,
        type=NotificationType.EXPENSE_CREATED,
        title="New Expense Added",
        body=f'{creator.name} added "{expense.title}" ({format_money(expense.amount)})',
        data=_expense_data(expense),
    )
    return LedgerResult(expense, recompute_required=creator_is_privileged, notifications=[notification])


def _already_processed(expense: Expense) -> LedgerError:
    return LedgerError(LedgerErrorKind.ALREADY_PROCESSED, f"Expense is already {expense.status.value}")


def approve(expense: Expense, approver: Actor, now: Optional[datetime] = None):
    if expense.status != ExpenseStatus.PENDING:
        return _already_processed(expense)

    now = _now(now)
    approved = expense.model_copy(update={
        "status": ExpenseStatus.APPROVED,
        "status_change": StatusTransition(actor_id=approver.user_id, actor_name=approver.name, at=now),
        "updated_at": now,
    })
    notification = NotificationIntent(
        audience=Audience.EXPENSE_OWNER,
        type=NotificationType.EXPENSE_APPROVED,
        title="Expense Approved",
        body=f'Your expense "{expense.title}" has been approved',
        data=_expense_data(expense),
    )
    return LedgerResult(approved, recompute_required=True, notifications=[notification])


def reject(expense: Expense, rejecter: Actor, reason: str, now: Optional[datetime] = None):
    if expense.status != ExpenseStatus.PENDING:
        return _already_processed(expense)
    if not reason or not reason.strip():
        return LedgerError(LedgerErrorKind.INVALID_INPUT, "A rejection reason is required")

    now = _now(now)
    reason = reason.strip()
    rejected = expense.model_copy(update={
        "status": ExpenseStatus.REJECTED,
        "status_change": StatusTransition(actor_id=rejecter.user_id, actor_name=rejecter.name, at=now),
        "rejection_reason": reason,
        "updated_at": now,
    })
    notification = NotificationIntent(
        audience=Audience.EXPENSE_OWNER,
        type=NotificationType.EXPENSE_REJECTED,
        title="Expense Rejected",
        body=f'Your expense "{expense.title}" was rejected: {reason}',
        data=_expense_data(expense),
    )
    # Rejected expenses never count toward the total
    return LedgerResult(rejected, recompute_required=False, notifications=[notification])


def record_payment(expense: Expense, payment_amount: Decimal, now: Optional[datetime] = None):
    if payment_amount <= ZERO:
        return LedgerError(LedgerErrorKind.INVALID_INPUT, "Payment amount must be greater than zero")

    now = _now(now)
    new_paid_amount = clamp(expense.paid_amount + payment_amount, ZERO, expense.amount)
    new_status = PaymentStatus.PAID if new_paid_amount >= expense.amount else PaymentStatus.PARTIAL

    updated = expense.model_copy(update={
        "paid_amount": new_paid_amount,
        "payment_status": new_status,
        "updated_at": now,
    })
    notification = NotificationIntent(
        audience=Audience.EXPENSE_OWNER,
        type=NotificationType.PAYMENT_RECEIVED,
        title="Payment Recorded",
        body=f'Payment of {format_money(new_paid_amount - expense.paid_amount)} recorded for "{expense.title}"',
        data=_expense_data(expense),
    )
    return LedgerResult(updated, recompute_required=False, notifications=[notification])


def mark_paid(expense: Expense, now: Optional[datetime] = None):
    if expense.paid_amount >= expense.amount:
        now = _now(now)
        settled = expense.model_copy(update={"payment_status": PaymentStatus.PAID, "updated_at": now})
        return LedgerResult(settled)
    return record_payment(expense, expense.pending_amount, now)


def soft_delete(expense: Expense, deleter: Actor, now: Optional[datetime] = None):
    if expense.is_deleted:
        return LedgerError(LedgerErrorKind.ALREADY_DELETED, "Expense is already deleted")

    now = _now(now)
    deleted = expense.model_copy(update={
        "is_deleted": True,
        "deletion": DeletionMark(deleted_by=deleter.user_id, deleted_by_name=deleter.name, deleted_at=now),
        "updated_at": now,
    })

    notifications = []
    if deleter.is_delegated:
        notifications.append(NotificationIntent(
            audience=Audience.PROJECT_ADMIN,
            type=NotificationType.EXPENSE_DELETED,
            title="Expense Deleted",
            body=f'{deleter.name} (Director) deleted expense "{expense.title}". You can restore it if needed.',
            data=_expense_data(expense, deleted_by=deleter.name, can_restore=True),
        ))

    return LedgerResult(
        deleted,
        recompute_required=expense.status == ExpenseStatus.APPROVED,
        notifications=notifications,
    )


def restore(expense: Expense, now: Optional[datetime] = None):
    if not expense.is_deleted:
        return LedgerError(LedgerErrorKind.NOT_DELETED, "Expense is not deleted")

    now = _now(now)
    restored = expense.model_copy(update={
        "is_deleted": False,
        "deletion": None,
        "updated_at": now,
    })
    return LedgerResult(restored, recompute_required=expense.status == ExpenseStatus.APPROVED)


def update(expense: Expense, changes: ExpenseUpdate, now: Optional[datetime] = None):
    if expense.is_deleted:
        return LedgerError(LedgerErrorKind.ALREADY_DELETED, "Deleted expenses cannot be edited")

    fields = changes.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        return LedgerResult(expense)

    amount_changed = "amount" in fields and fields["amount"] != expense.amount
    if amount_changed:
        new_amount = fields["amount"]
        paid_amount = clamp(expense.paid_amount, ZERO, new_amount)
        if expense.payment_status == PaymentStatus.PAID:
            # A settled expense stays settled at its new amount
            paid_amount = new_amount
        fields["paid_amount"] = paid_amount
        if new_amount == ZERO or paid_amount >= new_amount:
            fields["payment_status"] = PaymentStatus.PAID
        elif paid_amount > ZERO:
            fields["payment_status"] = PaymentStatus.PARTIAL
        else:
            fields["payment_status"] = PaymentStatus.CREDIT

    fields["updated_at"] = _now(now)
    updated = expense.model_copy(update=fields)
    return LedgerResult(
        updated,
        recompute_required=amount_changed and expense.status == ExpenseStatus.APPROVED,
    )
