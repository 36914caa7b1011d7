#!/usr/bin/env python3
"""
Demo Data Generator Script for Costify

This script populates the MongoDB database with demonstration projects,
members and expenses, going through the same operations the API uses so
that totals, approvals and notifications come out consistent. It prints a
bearer token for every demo user at the end.
"""

import asyncio
import sys
import itertools
import random
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

# Add parent directory to path so we can import from the main application
sys.path.append(str(Path(__file__).parent.parent))

from database.db import init_db, get_store
from database import operations
from domain.errors import LedgerError
from models.expense import EXPENSE_CATEGORIES, PAYMENT_METHODS, ExpenseCreate, ExpenseStatus, PaymentStatus
from models.project import DirectorPermissionsUpdate, MemberRole, ProjectCreate
from models.user import Identity
from routers.auth import create_access_token

# Configuration
NUM_PROJECTS = 2
NUM_DIRECTORS_PER_PROJECT = 1
NUM_LABOUR_PER_PROJECT = 3
NUM_EXPENSES_PER_PROJECT = 12

# Demo data
NAMES = {
    "first": ["Ahmed", "Ayesha", "Bilal", "Fatima", "Hassan", "Zainab", "Usman", "Sana", "Imran", "Hira"],
    "last": ["Khan", "Malik", "Hussain", "Qureshi", "Butt", "Sheikh", "Chaudhry", "Raza", "Iqbal", "Mirza"],
}

PROJECT_NAMES = [
    "Residential Building", "Commercial Plaza", "Farm House", "School Extension",
    "Warehouse", "Apartment Block",
]

EXPENSE_TITLES = {
    "Materials": ["Cement bags", "Steel bars", "Bricks", "Sand delivery", "Tiles"],
    "Labor": ["Mason wages", "Carpenter wages", "Daily labour"],
    "Equipment": ["Mixer rental", "Scaffolding rental"],
    "Transport": ["Truck hire", "Fuel for loader"],
    "Utilities": ["Site electricity", "Water tanker"],
    "Permits & Fees": ["Building approval fee", "Inspection fee"],
    "Contractors": ["Plumbing contractor", "Electrical contractor"],
    "Food": ["Lunch for workers", "Tea and snacks"],
    "Miscellaneous": ["Safety gear", "Site stationery"],
}

_user_numbers = itertools.count(1)

# Helper functions
def random_name():
    """Generate a random full name."""
    return f"{random.choice(NAMES['first'])} {random.choice(NAMES['last'])}"

def random_identity():
    index = next(_user_numbers)
    name = random_name()
    email = f"{name.lower().replace(' ', '.')}{index}@example.com"
    return Identity(user_id=f"demo-user-{index}", display_name=name, email=email, email_verified=True)

def random_date_between(start_date, end_date):
    """Generate a random date between two dates."""
    days_between = (end_date - start_date).days
    return start_date + timedelta(days=random.randint(0, days_between))

def check(outcome, what):
    if isinstance(outcome, LedgerError):
        raise RuntimeError(f"Could not {what}: {outcome.message}")
    return outcome

# Main data generation functions
async def create_demo_project(store, admin, number):
    """Create a project and fill it with directors and labour through invitations."""
    data = ProjectCreate(
        name=f"{random.choice(PROJECT_NAMES)} {number}",
        description="Demo project",
        budget=Decimal(random.randrange(2_000_000, 10_000_000, 100_000)),
        start_date=date.today() - timedelta(days=150),
    )
    project = await operations.create_project(store, admin, data)
    print(f"  Created project: {project.name} (budget {project.budget}) for admin {admin.display_name}")

    members = {"directors": [], "labour": []}
    for role, count in ((MemberRole.DIRECTOR, NUM_DIRECTORS_PER_PROJECT), (MemberRole.LABOUR, NUM_LABOUR_PER_PROJECT)):
        for _ in range(count):
            person = random_identity()
            invitation = check(await operations.create_invitation(store, admin, project.id), "invite member")
            check(await operations.accept_invitation(store, person, invitation.id), "accept invitation")
            if role == MemberRole.DIRECTOR:
                check(await operations.update_member_role(store, admin, project.id, person.user_id, role), "promote director")
                members["directors"].append(person)
            else:
                members["labour"].append(person)
            print(f"    Added {role.value}: {person.display_name}")

    for director in members["directors"]:
        check(await operations.update_director_permissions(
            store, admin, project.id, director.user_id,
            DirectorPermissionsUpdate(can_delete_expenses=True),
        ), "grant permissions")

    return project, members

async def create_demo_expenses(store, project, admin, members):
    """Create expenses from every kind of member and walk some through approval and payment."""
    expenses = []
    submitters = [admin] + members["directors"] + members["labour"]
    reviewers = [admin] + members["directors"]

    for _ in range(NUM_EXPENSES_PER_PROJECT):
        submitter = random.choice(submitters)
        category = random.choice(EXPENSE_CATEGORIES)
        amount = Decimal(random.randrange(5_000, 250_000, 500))
        payment_status = random.choice(list(PaymentStatus))
        data = ExpenseCreate(
            project_id=project.id,
            title=random.choice(EXPENSE_TITLES[category]),
            amount=amount,
            category=category,
            payment_method=random.choice(PAYMENT_METHODS),
            payment_status=payment_status,
            paid_amount=(amount / 2).quantize(Decimal("1")) if payment_status == PaymentStatus.PARTIAL else Decimal("0"),
            expense_date=random_date_between(date.today() - timedelta(days=150), date.today()),
        )
        expense = check(await operations.create_expense(store, submitter, data), "create expense")

        # Review most of what is waiting
        roll = random.random()
        if expense.status == ExpenseStatus.PENDING and roll < 0.6:
            expense = check(await operations.approve_expense(store, random.choice(reviewers), expense.id), "approve")
        elif expense.status == ExpenseStatus.PENDING and roll < 0.75:
            expense = check(await operations.reject_expense(
                store, random.choice(reviewers), expense.id, "Receipt missing",
            ), "reject")

        if expense.payment_status != PaymentStatus.PAID and random.random() < 0.3:
            expense = check(await operations.record_payment(
                store, random.choice(reviewers), expense.id, expense.pending_amount / 2,
            ), "record payment")

        expenses.append(expense)
        print(f"    Created expense: {expense.title} {expense.amount} [{expense.status.value}/{expense.payment_status.value}]"
              f" by {submitter.display_name}")

    return expenses

async def main():
    """Main function to create all demo data."""
    print("Initializing database connection...")
    await init_db()
    store = get_store()

    print("\n=== COSTIFY DEMO DATA GENERATOR ===\n")

    admins = [random_identity() for _ in range(NUM_PROJECTS)]
    everyone = list(admins)
    expense_count = 0

    for number, admin in enumerate(admins, start=1):
        project, members = await create_demo_project(store, admin, number)
        expenses = await create_demo_expenses(store, project, admin, members)
        expense_count += len(expenses)
        everyone += members["directors"] + members["labour"]

        budget = await operations.get_project_budget(store, admin, project.id)
        print(f"  {project.name}: spent {budget.total_spent} of {budget.budget}")

    print("\n=== DEMO DATA GENERATION COMPLETE ===\n")
    print(f"Created {len(admins)} projects with {len(everyone)} users and {expense_count} expenses")

    print("\nDemo bearer tokens:")
    for person in everyone:
        print(f"  {person.display_name} ({person.user_id}): {create_access_token(person)}")

if __name__ == "__main__":
    asyncio.run(main())
