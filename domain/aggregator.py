"""
Project totals and expense breakdowns.

``recompute_total_spent`` is the single source of truth for a project's
``total_spent``: it is always re-run over the full expense set, never
patched incrementally.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from domain.money import ZERO
from models.expense import Expense, ExpenseStatus, ExpenseSummary
from models.project import ProjectBudget


def counts_toward_total(expense: Expense) -> bool:
    return expense.status == ExpenseStatus.APPROVED and not expense.is_deleted


def approved_expenses(expenses: Iterable[Expense]) -> List[Expense]:
    return [e for e in expenses if counts_toward_total(e)]


def recompute_total_spent(expenses: Iterable[Expense]) -> Decimal:
    return sum((e.amount for e in approved_expenses(expenses)), ZERO)


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def count_by_status(expenses: Iterable[Expense]) -> Dict[str, int]:
    counts: Dict[str, int] = defaultdict(int)
    for expense in expenses:
        counts[expense.status.value] += 1
    return dict(counts)


def count_by_category(expenses: Iterable[Expense]) -> Dict[str, int]:
    counts: Dict[str, int] = defaultdict(int)
    for expense in expenses:
        counts[expense.category] += 1
    return dict(counts)


def amount_by_category(expenses: Iterable[Expense]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        totals[expense.category] += expense.amount
    return dict(totals)


def amount_by_member(expenses: Iterable[Expense]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        totals[expense.created_by] += expense.amount
    return dict(totals)


def totals_by_month(expenses: Iterable[Expense]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        totals[month_key(expense.expense_date)] += expense.amount
    return dict(sorted(totals.items()))


def compute_summary(expenses: Iterable[Expense]) -> ExpenseSummary:
    counted = approved_expenses(expenses)
    return ExpenseSummary(
        total_amount=sum((e.amount for e in counted), ZERO),
        count=len(counted),
        count_by_status=count_by_status(counted),
        count_by_category=count_by_category(counted),
        amount_by_category=amount_by_category(counted),
        amount_by_member=amount_by_member(counted),
        monthly_totals=totals_by_month(counted),
    )


def filter_expenses(
    expenses: Iterable[Expense],
    status: Optional[ExpenseStatus] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    include_deleted: bool = False,
    limit: Optional[int] = None,
    created_by: Optional[str] = None,
) -> List[Expense]:
    """Listing filter; newest ``expense_date`` first, limit applied last."""
    selected = []
    for expense in expenses:
        if expense.is_deleted and not include_deleted:
            continue
        if status is not None and expense.status != status:
            continue
        if created_by is not None and expense.created_by != created_by:
            continue
        if category is not None and expense.category != category:
            continue
        if start_date is not None and expense.expense_date < start_date:
            continue
        if end_date is not None and expense.expense_date > end_date:
            continue
        selected.append(expense)

    selected.sort(key=lambda e: (e.expense_date, e.created_at), reverse=True)
    if limit is not None:
        selected = selected[:limit]
    return selected


def first_day_of_window(today: date, months: int) -> date:
    month_index = today.year * 12 + (today.month - 1) - (months - 1)
    return date(month_index // 12, month_index % 12 + 1, 1)


def monthly_totals(expenses: Iterable[Expense], months: int, today: date) -> Dict[str, Decimal]:
    """Approved totals for the trailing ``months`` calendar months, current month included."""
    start = first_day_of_window(today, months)
    window = [e for e in approved_expenses(expenses) if start <= e.expense_date <= today]
    return totals_by_month(window)


def budget_snapshot(budget: Decimal, total_spent: Decimal) -> ProjectBudget:
    utilization = float(total_spent / budget * 100) if budget > 0 else 0.0
    return ProjectBudget(
        budget=budget,
        total_spent=total_spent,
        remaining_budget=budget - total_spent,
        budget_utilization=utilization,
        is_over_budget=total_spent > budget,
    )
