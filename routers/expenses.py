from fastapi import APIRouter, Depends, Body, Query, status
from typing import Annotated, Dict, List, Optional
from datetime import date
from decimal import Decimal

from models.expense import (
    Expense,
    ExpenseCreate,
    ExpenseReject,
    ExpenseStatus,
    ExpenseSummary,
    ExpenseUpdate,
    PaymentCreate,
)
from models.user import Identity
from database import operations
from database.db import get_store
from database.store import RecordStore
from routers.auth import get_current_user, get_verified_user
from routers.errors import unwrap
from logging_config import logger

router = APIRouter()

Store = Annotated[RecordStore, Depends(get_store)]
CurrentUser = Annotated[Identity, Depends(get_current_user)]
VerifiedUser = Annotated[Identity, Depends(get_verified_user)]

# Add expense (any project member)
@router.post(
    "",
    response_model=Expense,
    status_code=status.HTTP_201_CREATED,
    summary="Add an expense to a project",
    description="""
    Add a new expense to a project.

    Expenses created by the project **admin** are approved immediately and
    counted in the project's total spent. Everyone else's expenses wait in
    the **pending** state for an admin or director to approve or reject.

    The initial paid amount follows the payment status:
    - **paid**: the full amount
    - **credit**: nothing paid yet
    - **partial**: the supplied `paid_amount`, capped at the expense amount
    """,
    response_description="Returns the created expense",
)
async def add_expense(
    store: Store,
    current_user: VerifiedUser,
    expense: ExpenseCreate = Body(
        ...,
        examples=[{
            "project_id": "61a23c4567d0d8992e610d96",
            "title": "Cement for foundation",
            "amount": "1000",
            "category": "Materials",
            "payment_method": "Cash",
            "payment_status": "credit",
            "expense_date": "2024-05-02",
        }],
    ),
):
    logger.info(f"Adding expense for project: {expense.project_id}, amount: {expense.amount}")
    return unwrap(await operations.create_expense(store, current_user, expense))

# List expenses for a project
@router.get(
    "/project/{project_id}",
    response_model=List[Expense],
    summary="List a project's expenses",
    description="""
    List non-deleted expenses of a project, newest expense date first.

    Labour members only see the expenses they submitted. Pass `created_by`
    to list one member's expenses.
    """,
)
async def get_project_expenses(
    project_id: str,
    store: Store,
    current_user: CurrentUser,
    status: Optional[ExpenseStatus] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = Query(None, gt=0),
    created_by: Optional[str] = Query(None, description="Only expenses submitted by this user id"),
):
    return unwrap(await operations.list_expenses(
        store,
        current_user,
        project_id,
        status=status,
        category=category,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        created_by=created_by,
    ))

@router.get("/project/{project_id}/pending", response_model=List[Expense], summary="Expenses awaiting approval")
async def get_pending_expenses(project_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.list_pending_expenses(store, current_user, project_id))

@router.get("/project/{project_id}/deleted", response_model=List[Expense], summary="Deleted expenses (Admin only)")
async def get_deleted_expenses(project_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.list_deleted_expenses(store, current_user, project_id))

@router.get("/project/{project_id}/credit", response_model=List[Expense], summary="Expenses with an outstanding balance")
async def get_credit_expenses(project_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.list_credit_expenses(store, current_user, project_id))

@router.get(
    "/project/{project_id}/summary",
    response_model=ExpenseSummary,
    summary="Approved expense summary",
    description="Totals and breakdowns of approved, non-deleted expenses, optionally within a date range.",
)
async def get_expense_summary(
    project_id: str,
    store: Store,
    current_user: CurrentUser,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
):
    return unwrap(await operations.get_expense_summary(
        store, current_user, project_id, start_date=start_date, end_date=end_date,
    ))

@router.get(
    "/project/{project_id}/monthly",
    response_model=Dict[str, Decimal],
    summary="Monthly approved totals",
    description="Approved totals keyed by `YYYY-MM` for the trailing months, current month included.",
)
async def get_monthly_totals(
    project_id: str,
    store: Store,
    current_user: CurrentUser,
    months: int = Query(6, gt=0, le=60),
):
    return unwrap(await operations.get_monthly_totals(store, current_user, project_id, months=months))

@router.get("/{expense_id}", response_model=Expense, summary="Get an expense")
async def get_expense(expense_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.get_expense(store, current_user, expense_id))

@router.patch(
    "/{expense_id}",
    response_model=Expense,
    summary="Edit an expense",
    description="""
    Edit expense details. Admins and directors can edit any expense; the
    creator can edit their own while it is still pending. Changing the
    amount of an approved expense updates the project's total spent.
    """,
)
async def edit_expense(expense_id: str, changes: ExpenseUpdate, store: Store, current_user: VerifiedUser):
    return unwrap(await operations.update_expense(store, current_user, expense_id, changes))

@router.post(
    "/{expense_id}/approve",
    response_model=Expense,
    summary="Approve an expense (Admin & Director)",
    description="Approve a pending expense. Approving an already approved or rejected expense returns 409.",
)
async def approve_expense(expense_id: str, store: Store, current_user: VerifiedUser):
    logger.info(f"Approving expense: {expense_id}")
    return unwrap(await operations.approve_expense(store, current_user, expense_id))

@router.post(
    "/{expense_id}/reject",
    response_model=Expense,
    summary="Reject an expense (Admin & Director)",
    description="Reject a pending expense with a mandatory reason.",
)
async def reject_expense(
    expense_id: str,
    store: Store,
    current_user: VerifiedUser,
    rejection: ExpenseReject = Body(..., examples=[{"reason": "Duplicate receipt"}]),
):
    logger.info(f"Rejecting expense: {expense_id}")
    return unwrap(await operations.reject_expense(store, current_user, expense_id, rejection.reason))

@router.post(
    "/{expense_id}/payments",
    response_model=Expense,
    summary="Record a payment (Admin & Director)",
    description="""
    Add a payment towards an expense. The paid amount never exceeds the
    expense amount; once it reaches it the expense is marked **paid**,
    otherwise **partial**.
    """,
)
async def add_payment(
    expense_id: str,
    store: Store,
    current_user: VerifiedUser,
    payment: PaymentCreate = Body(..., examples=[{"amount": "400"}]),
):
    return unwrap(await operations.record_payment(store, current_user, expense_id, payment.amount))

@router.post("/{expense_id}/mark-paid", response_model=Expense, summary="Settle the remaining balance")
async def mark_paid(expense_id: str, store: Store, current_user: VerifiedUser):
    return unwrap(await operations.mark_expense_paid(store, current_user, expense_id))

@router.delete(
    "/{expense_id}",
    response_model=Expense,
    summary="Delete an expense",
    description="""
    Soft-delete an expense. Admins can always delete; directors need the
    delete-expenses permission, and the admin is notified when they use it.
    """,
)
async def delete_expense(expense_id: str, store: Store, current_user: VerifiedUser):
    logger.info(f"Deleting expense: {expense_id}")
    return unwrap(await operations.delete_expense(store, current_user, expense_id))

@router.post("/{expense_id}/restore", response_model=Expense, summary="Restore a deleted expense (Admin only)")
async def restore_expense(expense_id: str, store: Store, current_user: VerifiedUser):
    logger.info(f"Restoring expense: {expense_id}")
    return unwrap(await operations.restore_expense(store, current_user, expense_id))
