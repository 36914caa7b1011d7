from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union

from config import INVITATION_EXPIRY_DAYS, RECOMPUTE_MAX_RETRIES
from database.db import PROJECTS, EXPENSES, INVITATIONS, NOTIFICATIONS
from database.store import ConcurrencyConflict, RecordStore, StoreError
from domain import aggregator, invitations, ledger
from domain.authorization import Action, actor_for, can_perform, is_privileged_creator, role_of
from domain.errors import Audience, LedgerError, LedgerErrorKind, LedgerResult, NotificationIntent
from domain.money import format_money
from logging_config import logger
from models.expense import (
    Expense,
    ExpenseCreate,
    ExpenseStatus,
    ExpenseSummary,
    ExpenseUpdate,
    PaymentStatus,
)
from models.invitation import Invitation, InvitationStatus
from models.notification import Notification, NotificationType
from models.project import (
    DirectorPermissions,
    DirectorPermissionsUpdate,
    MemberRole,
    Project,
    ProjectBudget,
    ProjectCreate,
    ProjectUpdate,
)
from models.user import Identity

# Fields derived on read, never persisted
_COMPUTED_PROJECT_FIELDS = {"remaining_budget", "budget_utilization", "is_over_budget", "member_count"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _document(model, exclude=None) -> Dict[str, Any]:
    return model.model_dump(exclude={"id"} | set(exclude or ()))


def _project_document(project: Project) -> Dict[str, Any]:
    return _document(project, exclude=_COMPUTED_PROJECT_FIELDS)


# Loading helpers
async def _load_project(store: RecordStore, project_id: str) -> Union[Project, LedgerError]:
    doc = await store.get(PROJECTS, project_id)
    if doc is None:
        logger.warning(f"Project not found: {project_id}")
        return LedgerError.not_found("Project", project_id)
    return Project(**doc)


async def _load_expense(store: RecordStore, expense_id: str) -> Union[Expense, LedgerError]:
    doc = await store.get(EXPENSES, expense_id)
    if doc is None:
        logger.warning(f"Expense not found: {expense_id}")
        return LedgerError.not_found("Expense", expense_id)
    return Expense(**doc)


async def _load_invitation(store: RecordStore, invitation_id: str) -> Union[Invitation, LedgerError]:
    doc = await store.get(INVITATIONS, invitation_id)
    if doc is None:
        logger.warning(f"Invitation not found: {invitation_id}")
        return LedgerError.not_found("Invitation", invitation_id)
    return Invitation(**doc)


def _authorize(project: Project, identity: Identity, action: Action) -> Optional[LedgerError]:
    if can_perform(identity.user_id, action, project):
        return None
    logger.warning(f"User {identity.user_id} may not {action.value} in project {project.id}")
    return LedgerError.forbidden(action.value)


async def _project_expenses(store: RecordStore, project_id: str) -> List[Expense]:
    docs = await store.query(EXPENSES, {"project_id": project_id})
    return [Expense(**doc) for doc in docs]


# Notification operations
def _recipients(project: Project, audience: Audience, expense_owner_id: Optional[str]) -> List[str]:
    if audience == Audience.PROJECT_ADMIN:
        return [project.admin_id]
    if audience == Audience.PROJECT_MANAGERS:
        return [project.admin_id] + project.director_ids()
    if audience == Audience.EXPENSE_OWNER and expense_owner_id:
        return [expense_owner_id]
    return []


async def dispatch_notifications(
    store: RecordStore,
    project: Project,
    intents: List[NotificationIntent],
    actor_id: str,
    expense_owner_id: Optional[str] = None,
) -> int:
    """Write one notification per recipient, skipping the acting user.

    Delivery problems are logged and never undo the operation that caused them.
    """
    sent = 0
    for intent in intents:
        recipients = []
        for user_id in _recipients(project, intent.audience, expense_owner_id):
            if user_id != actor_id and user_id not in recipients:
                recipients.append(user_id)

        for user_id in recipients:
            notification = Notification(
                id=store.new_id(),
                user_id=user_id,
                type=intent.type,
                title=intent.title,
                body=f"{intent.body} ({project.name})",
                data={**intent.data, "project_name": project.name},
                created_at=_utcnow(),
            )
            try:
                await store.put(NOTIFICATIONS, notification.id, _document(notification))
                sent += 1
            except StoreError as e:
                logger.error(f"Failed to notify {user_id} about {intent.type.value}: {str(e)}")
    if sent:
        logger.debug(f"Dispatched {sent} notifications for project {project.id}")
    return sent


async def get_notifications(store: RecordStore, identity: Identity) -> List[Notification]:
    docs = await store.query(NOTIFICATIONS, {"user_id": identity.user_id})
    notifications = [Notification(**doc) for doc in docs]
    notifications.sort(key=lambda n: n.created_at, reverse=True)
    return notifications


async def mark_notification_read(store: RecordStore, identity: Identity, notification_id: str):
    doc = await store.get(NOTIFICATIONS, notification_id)
    if doc is None:
        return LedgerError.not_found("Notification", notification_id)
    notification = Notification(**doc)
    if notification.user_id != identity.user_id:
        return LedgerError.forbidden("read other users' notifications")
    await store.update(NOTIFICATIONS, notification_id, {"read": True})
    return notification.model_copy(update={"read": True})


# Project total
async def recalculate_project_total_spent(store: RecordStore, project_id: str) -> Optional[Decimal]:
    """Recompute ``total_spent`` from every expense of the project.

    The write is conditional on the project ``version`` read at the start; a
    concurrent writer makes it fail and the whole read-sum-write is retried.
    """
    for attempt in range(1, RECOMPUTE_MAX_RETRIES + 1):
        doc = await store.get(PROJECTS, project_id)
        if doc is None:
            logger.warning(f"Cannot recompute total, project not found: {project_id}")
            return None
        project = Project(**doc)
        expenses = await _project_expenses(store, project_id)
        total = aggregator.recompute_total_spent(expenses)

        written = await store.update(
            PROJECTS,
            project_id,
            {"total_spent": total, "updated_at": _utcnow()},
            expected_version=project.version,
        )
        if written:
            logger.info(f"Project {project_id} total spent recomputed: {total}")
            if total > project.budget and not project.is_over_budget:
                warning = NotificationIntent(
                    audience=Audience.PROJECT_ADMIN,
                    type=NotificationType.BUDGET_WARNING,
                    title="Budget Exceeded",
                    body=f"Spending reached {format_money(total)} against a budget of {format_money(project.budget)}",
                    data={"project_id": project_id},
                )
                await dispatch_notifications(store, project, [warning], actor_id="")
            return total

        logger.warning(f"Concurrent update on project {project_id}, retrying total recompute (attempt {attempt})")

    logger.error(f"Giving up recomputing total for project {project_id} after {RECOMPUTE_MAX_RETRIES} attempts")
    raise ConcurrencyConflict(f"Project {project_id} is being modified concurrently")


async def _update_project_versioned(
    store: RecordStore,
    project_id: str,
    mutate: Callable[[Project], Union[Dict[str, Any], LedgerError]],
):
    """Read-modify-write on a project guarded by its version token."""
    for attempt in range(1, RECOMPUTE_MAX_RETRIES + 1):
        project = await _load_project(store, project_id)
        if isinstance(project, LedgerError):
            return project
        fields = mutate(project)
        if isinstance(fields, LedgerError):
            return fields
        fields["updated_at"] = _utcnow()
        if await store.update(PROJECTS, project_id, fields, expected_version=project.version):
            return await _load_project(store, project_id)
        logger.warning(f"Concurrent update on project {project_id} (attempt {attempt})")
    raise ConcurrencyConflict(f"Project {project_id} is being modified concurrently")


# Expense operations
async def _finish(
    store: RecordStore,
    project: Project,
    identity: Identity,
    result: LedgerResult,
    expected_version: Optional[int] = None,
) -> Optional[Expense]:
    """Persist an expense, then recompute the total and notify.

    With ``expected_version`` the write only lands if the expense is
    unchanged since it was read; ``None`` means another writer got there first.
    """
    expense = result.value
    if expected_version is None:
        await store.put(EXPENSES, expense.id, _document(expense))
    else:
        written = await store.update(
            EXPENSES,
            expense.id,
            _document(expense, exclude={"version"}),
            expected_version=expected_version,
        )
        if not written:
            return None
        expense = expense.model_copy(update={"version": expected_version + 1})
    if result.recompute_required:
        await recalculate_project_total_spent(store, project.id)
    await dispatch_notifications(
        store,
        project,
        result.notifications,
        actor_id=identity.user_id,
        expense_owner_id=expense.created_by,
    )
    return expense


async def create_expense(store: RecordStore, identity: Identity, data: ExpenseCreate):
    logger.info(f"Creating expense for project {data.project_id} by {identity.user_id}, amount: {data.amount}")
    project = await _load_project(store, data.project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.CREATE_EXPENSE)
    if denied:
        return denied

    result = ledger.create(
        data,
        actor_for(project, identity),
        is_privileged_creator(project, identity.user_id),
        expense_id=store.new_id(),
    )
    expense = await _finish(store, project, identity, result)
    logger.info(f"Expense created: {expense.id}, status: {expense.status.value}")
    return expense


async def _transition(
    store: RecordStore,
    identity: Identity,
    expense_id: str,
    action: Action,
    apply: Callable,
    permitted: Optional[Callable[[Expense], bool]] = None,
):
    """Load, check and apply one expense transition as a conditional write.

    A lost race re-reads the expense, so a transition that is no longer
    allowed (approving what was just rejected) fails the normal way.
    """
    for attempt in range(1, RECOMPUTE_MAX_RETRIES + 1):
        expense = await _load_expense(store, expense_id)
        if isinstance(expense, LedgerError):
            return expense
        project = await _load_project(store, expense.project_id)
        if isinstance(project, LedgerError):
            return project
        if permitted is None or not permitted(expense):
            denied = _authorize(project, identity, action)
            if denied:
                return denied

        outcome = apply(expense, actor_for(project, identity))
        if isinstance(outcome, LedgerError):
            logger.warning(f"{action.value} rejected for expense {expense_id}: {outcome.message}")
            return outcome
        updated = await _finish(store, project, identity, outcome, expected_version=expense.version)
        if updated is not None:
            logger.info(f"{action.value} applied to expense {expense_id}")
            return updated
        logger.warning(f"Expense {expense_id} changed during {action.value}, re-reading (attempt {attempt})")

    raise ConcurrencyConflict(f"Expense {expense_id} is being modified concurrently")


async def approve_expense(store: RecordStore, identity: Identity, expense_id: str):
    return await _transition(
        store, identity, expense_id, Action.APPROVE_EXPENSE,
        lambda expense, actor: ledger.approve(expense, actor),
    )


async def reject_expense(store: RecordStore, identity: Identity, expense_id: str, reason: str):
    return await _transition(
        store, identity, expense_id, Action.REJECT_EXPENSE,
        lambda expense, actor: ledger.reject(expense, actor, reason),
    )


async def record_payment(store: RecordStore, identity: Identity, expense_id: str, amount: Decimal):
    return await _transition(
        store, identity, expense_id, Action.RECORD_PAYMENT,
        lambda expense, actor: ledger.record_payment(expense, amount),
    )


async def mark_expense_paid(store: RecordStore, identity: Identity, expense_id: str):
    return await _transition(
        store, identity, expense_id, Action.RECORD_PAYMENT,
        lambda expense, actor: ledger.mark_paid(expense),
    )


async def delete_expense(store: RecordStore, identity: Identity, expense_id: str):
    return await _transition(
        store, identity, expense_id, Action.DELETE_EXPENSE,
        lambda expense, actor: ledger.soft_delete(expense, actor),
    )


async def restore_expense(store: RecordStore, identity: Identity, expense_id: str):
    return await _transition(
        store, identity, expense_id, Action.RESTORE_EXPENSE,
        lambda expense, actor: ledger.restore(expense),
    )


async def update_expense(store: RecordStore, identity: Identity, expense_id: str, changes: ExpenseUpdate):
    # Creators may still correct their own expense while it waits for approval
    def own_pending(expense: Expense) -> bool:
        return expense.created_by == identity.user_id and expense.status == ExpenseStatus.PENDING

    return await _transition(
        store, identity, expense_id, Action.UPDATE_EXPENSE,
        lambda expense, actor: ledger.update(expense, changes),
        permitted=own_pending,
    )


def _only_own(project: Project, identity: Identity, expenses: List[Expense]) -> List[Expense]:
    # Labour members only ever see what they submitted
    if can_perform(identity.user_id, Action.VIEW_PROJECT_DETAILS, project):
        return expenses
    return [e for e in expenses if e.created_by == identity.user_id]


async def get_expense(store: RecordStore, identity: Identity, expense_id: str):
    expense = await _load_expense(store, expense_id)
    if isinstance(expense, LedgerError):
        return expense
    project = await _load_project(store, expense.project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.VIEW_EXPENSES)
    if denied:
        return denied
    if not _only_own(project, identity, [expense]):
        return LedgerError.forbidden(Action.VIEW_EXPENSES.value)
    return expense


async def list_expenses(
    store: RecordStore,
    identity: Identity,
    project_id: str,
    status: Optional[ExpenseStatus] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = None,
    created_by: Optional[str] = None,
):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.VIEW_EXPENSES)
    if denied:
        return denied

    expenses = _only_own(project, identity, await _project_expenses(store, project_id))
    return aggregator.filter_expenses(
        expenses,
        status=status,
        category=category,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        created_by=created_by,
    )


async def list_pending_expenses(store: RecordStore, identity: Identity, project_id: str):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.APPROVE_EXPENSE)
    if denied:
        return denied
    expenses = aggregator.filter_expenses(await _project_expenses(store, project_id), status=ExpenseStatus.PENDING)
    expenses.sort(key=lambda e: e.created_at, reverse=True)
    return expenses


async def list_deleted_expenses(store: RecordStore, identity: Identity, project_id: str):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.RESTORE_EXPENSE)
    if denied:
        return denied
    expenses = [e for e in await _project_expenses(store, project_id) if e.is_deleted]
    expenses.sort(key=lambda e: e.deletion.deleted_at if e.deletion else e.updated_at, reverse=True)
    return expenses


async def list_credit_expenses(store: RecordStore, identity: Identity, project_id: str):
    """Expenses with money still owed: on credit or partially paid."""
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.VIEW_REPORTS)
    if denied:
        return denied
    owed = (PaymentStatus.CREDIT, PaymentStatus.PARTIAL)
    expenses = [
        e for e in aggregator.filter_expenses(await _project_expenses(store, project_id))
        if e.payment_status in owed
    ]
    expenses.sort(key=lambda e: e.created_at, reverse=True)
    return expenses


async def get_expense_summary(
    store: RecordStore,
    identity: Identity,
    project_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Union[ExpenseSummary, LedgerError]:
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.VIEW_REPORTS)
    if denied:
        return denied

    expenses = aggregator.filter_expenses(
        await _project_expenses(store, project_id),
        start_date=start_date,
        end_date=end_date,
    )
    return aggregator.compute_summary(expenses)


async def get_monthly_totals(
    store: RecordStore,
    identity: Identity,
    project_id: str,
    months: int = 6,
    today: Optional[date] = None,
):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.VIEW_REPORTS)
    if denied:
        return denied
    today = today or _utcnow().date()
    return aggregator.monthly_totals(await _project_expenses(store, project_id), months, today)


# Project operations
async def create_project(store: RecordStore, identity: Identity, data: ProjectCreate) -> Project:
    logger.info(f"Creating project {data.name} for admin {identity.user_id}")
    now = _utcnow()
    project = Project(
        **data.model_dump(),
        id=store.new_id(),
        admin_id=identity.user_id,
        admin_name=identity.display_name,
        created_at=now,
        updated_at=now,
    )
    await store.put(PROJECTS, project.id, _project_document(project))
    logger.info(f"Project created successfully, ID: {project.id}")
    return project


async def get_project(store: RecordStore, identity: Identity, project_id: str):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.VIEW_PROJECT)
    if denied:
        return denied
    return project


async def list_projects_for_user(store: RecordStore, identity: Identity) -> List[Project]:
    owned = await store.query(PROJECTS, {"admin_id": identity.user_id})
    joined = await store.query(PROJECTS, {"members.user_id": identity.user_id})

    projects = {}
    for doc in owned + joined:
        projects.setdefault(doc["id"], Project(**doc))
    return sorted(projects.values(), key=lambda p: p.created_at, reverse=True)


async def update_project(store: RecordStore, identity: Identity, project_id: str, changes: ProjectUpdate):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.UPDATE_PROJECT)
    if denied:
        return denied

    # Explicit nulls mean "leave unchanged"; every stored field is required
    fields = changes.model_dump(exclude_unset=True, exclude_none=True)
    if not fields:
        return project
    logger.debug(f"Update data for project {project_id}: {fields}")
    return await _update_project_versioned(store, project_id, lambda current: dict(fields))


async def delete_project(store: RecordStore, identity: Identity, project_id: str):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.DELETE_PROJECT)
    if denied:
        return denied

    expenses_removed = await store.delete_many(EXPENSES, {"project_id": project_id})
    invitations_removed = await store.delete_many(INVITATIONS, {"project_id": project_id})
    await store.delete(PROJECTS, project_id)
    logger.info(
        f"Project {project_id} deleted with {expenses_removed} expenses and {invitations_removed} invitations"
    )
    return project


async def get_project_budget(store: RecordStore, identity: Identity, project_id: str) -> Union[ProjectBudget, LedgerError]:
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.VIEW_PROJECT_DETAILS)
    if denied:
        return denied
    return aggregator.budget_snapshot(project.budget, project.total_spent)


async def refresh_project_total(store: RecordStore, identity: Identity, project_id: str):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.UPDATE_PROJECT)
    if denied:
        return denied
    total = await recalculate_project_total_spent(store, project_id)
    return aggregator.budget_snapshot(project.budget, total)


async def update_director_permissions(
    store: RecordStore,
    identity: Identity,
    project_id: str,
    director_user_id: str,
    changes: DirectorPermissionsUpdate,
):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.MANAGE_PERMISSIONS)
    if denied:
        return denied

    def mutate(current: Project):
        if role_of(current, director_user_id) != MemberRole.DIRECTOR:
            return LedgerError(LedgerErrorKind.INVALID_INPUT, "Permissions can only be granted to directors")
        permissions = current.director_permissions.get(director_user_id, DirectorPermissions())
        permissions = permissions.model_copy(update=changes.model_dump(exclude_none=True))
        updated = {k: v.model_dump() for k, v in current.director_permissions.items()}
        updated[director_user_id] = permissions.model_dump()
        return {"director_permissions": updated}

    return await _update_project_versioned(store, project_id, mutate)


async def update_member_role(
    store: RecordStore,
    identity: Identity,
    project_id: str,
    member_user_id: str,
    role: MemberRole,
):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.MANAGE_PERMISSIONS)
    if denied:
        return denied

    def mutate(current: Project):
        if current.get_member(member_user_id) is None:
            return LedgerError.not_found("Member", member_user_id)
        members = []
        for member in current.members:
            if member.user_id == member_user_id:
                member = member.model_copy(update={"role": role})
            members.append(member.model_dump())
        permissions = {k: v.model_dump() for k, v in current.director_permissions.items()}
        if role != MemberRole.DIRECTOR:
            permissions.pop(member_user_id, None)
        return {"members": members, "director_permissions": permissions}

    return await _update_project_versioned(store, project_id, mutate)


async def remove_member(store: RecordStore, identity: Identity, project_id: str, member_user_id: str):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.REMOVE_MEMBER)
    if denied:
        return denied
    removed = project.get_member(member_user_id)
    if removed is None:
        return LedgerError.not_found("Member", member_user_id)

    def mutate(current: Project):
        if current.get_member(member_user_id) is None:
            return LedgerError.not_found("Member", member_user_id)
        members = [m.model_dump() for m in current.members if m.user_id != member_user_id]
        permissions = {k: v.model_dump() for k, v in current.director_permissions.items() if k != member_user_id}
        return {"members": members, "director_permissions": permissions}

    updated = await _update_project_versioned(store, project_id, mutate)
    if isinstance(updated, LedgerError):
        return updated

    actor = actor_for(project, identity)
    if actor.is_delegated:
        notice = NotificationIntent(
            audience=Audience.PROJECT_ADMIN,
            type=NotificationType.MEMBER_REMOVED,
            title="Member Removed",
            body=f"{actor.name} (Director) removed {removed.name}. You can restore them if needed.",
            data={
                "project_id": project_id,
                "member_id": removed.id,
                "removed_by": actor.name,
                "can_restore": True,
            },
        )
        await dispatch_notifications(store, updated, [notice], actor_id=identity.user_id)
    logger.info(f"Member {member_user_id} removed from project {project_id}")
    return updated


# Invitation operations
async def create_invitation(
    store: RecordStore,
    identity: Identity,
    project_id: str,
    invited_email: Optional[str] = None,
    expiry_days: Optional[int] = None,
):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.INVITE_MEMBER)
    if denied:
        return denied

    invitation = invitations.new_invitation(
        project,
        actor_for(project, identity),
        invitation_id=store.new_id(),
        invited_email=invited_email,
        expiry_days=expiry_days or INVITATION_EXPIRY_DAYS,
    )
    await store.put(INVITATIONS, invitation.id, _document(invitation))
    logger.info(f"Invitation {invitation.id} created for project {project_id}, expires {invitation.expires_at}")
    return invitation


async def get_invitation(store: RecordStore, invitation_id: str):
    return await _load_invitation(store, invitation_id)


async def _claim_invitation(store: RecordStore, identity: Identity, invitation_id: str):
    """Flip a pending invitation to accepted for ``identity``.

    The flip is conditional on the stored status still being pending, so
    only one caller can ever win it. Returns the new member on success.
    """
    for attempt in range(1, RECOMPUTE_MAX_RETRIES + 1):
        invitation = await _load_invitation(store, invitation_id)
        if isinstance(invitation, LedgerError):
            return invitation
        project = await _load_project(store, invitation.project_id)
        if isinstance(project, LedgerError):
            return project
        outcome = invitations.accept(invitation, project, identity)
        if isinstance(outcome, LedgerError):
            return outcome

        accepted, member = outcome.value
        claimed = await store.update(
            INVITATIONS,
            invitation_id,
            {"status": accepted.status, "accepted_by": accepted.accepted_by, "accepted_at": accepted.accepted_at},
            conditions={"status": InvitationStatus.PENDING},
        )
        if claimed:
            return LedgerResult((invitation.project_id, member))
        logger.warning(f"Invitation {invitation_id} changed while being accepted (attempt {attempt})")
    raise ConcurrencyConflict(f"Invitation {invitation_id} is being modified concurrently")


async def _release_invitation(store: RecordStore, identity: Identity, invitation_id: str):
    await store.update(
        INVITATIONS,
        invitation_id,
        {"status": InvitationStatus.PENDING, "accepted_by": None, "accepted_at": None},
        conditions={"status": InvitationStatus.ACCEPTED, "accepted_by": identity.user_id},
    )


async def accept_invitation(store: RecordStore, identity: Identity, invitation_id: str):
    claim = await _claim_invitation(store, identity, invitation_id)
    if isinstance(claim, LedgerError):
        logger.warning(f"Invitation {invitation_id} not accepted: {claim.message}")
        return claim
    project_id, member = claim.value

    def mutate(current: Project):
        if role_of(current, identity.user_id) is not None:
            return LedgerError(LedgerErrorKind.ALREADY_MEMBER, "You are already a member of this project")
        return {"members": [m.model_dump() for m in current.members] + [member.model_dump()]}

    try:
        project = await _update_project_versioned(store, project_id, mutate)
    except StoreError:
        await _release_invitation(store, identity, invitation_id)
        raise
    if isinstance(project, LedgerError):
        # The link stays usable when joining failed after the claim
        await _release_invitation(store, identity, invitation_id)
        logger.warning(f"Invitation {invitation_id} not accepted: {project.message}")
        return project

    logger.info(f"User {identity.user_id} joined project {project.id} via invitation {invitation_id}")
    return project


async def cancel_invitation(store: RecordStore, identity: Identity, invitation_id: str):
    invitation = await _load_invitation(store, invitation_id)
    if isinstance(invitation, LedgerError):
        return invitation
    project = await _load_project(store, invitation.project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.CANCEL_INVITATION)
    if denied:
        return denied

    outcome = invitations.cancel(invitation)
    if isinstance(outcome, LedgerError):
        return outcome
    cancelled = await store.update(
        INVITATIONS,
        invitation_id,
        {"status": InvitationStatus.CANCELLED},
        conditions={"status": InvitationStatus.PENDING},
    )
    if not cancelled:
        logger.warning(f"Invitation {invitation_id} was used or cancelled before it could be cancelled")
        return LedgerError(LedgerErrorKind.ALREADY_PROCESSED, "Invitation is no longer pending")
    logger.info(f"Invitation {invitation_id} cancelled")
    return outcome.value


async def list_pending_invitations(store: RecordStore, identity: Identity, project_id: str):
    project = await _load_project(store, project_id)
    if isinstance(project, LedgerError):
        return project
    denied = _authorize(project, identity, Action.INVITE_MEMBER)
    if denied:
        return denied

    docs = await store.query(INVITATIONS, {"project_id": project_id, "status": InvitationStatus.PENDING})
    now = _utcnow()
    pending = [inv for inv in (Invitation(**doc) for doc in docs) if invitations.is_valid(inv, now)]
    pending.sort(key=lambda inv: inv.created_at, reverse=True)
    return pending
