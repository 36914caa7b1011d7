from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

from domain.authorization import Actor, role_of
from domain.errors import LedgerError, LedgerErrorKind, LedgerResult
from models.invitation import Invitation, InvitationStatus
from models.project import MemberRole, Project, ProjectMember
from models.user import Identity

DEFAULT_EXPIRY_DAYS = 7


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def new_invitation(
    project: Project,
    inviter: Actor,
    invitation_id: str,
    invited_email: Optional[str] = None,
    now: Optional[datetime] = None,
    expiry_days: int = DEFAULT_EXPIRY_DAYS,
) -> Invitation:
    now = _now(now)
    return Invitation(
        id=invitation_id,
        project_id=project.id,
        project_name=project.name,
        invited_by=inviter.user_id,
        invited_by_name=inviter.name,
        invited_email=invited_email,
        created_at=now,
        expires_at=now + timedelta(days=expiry_days),
    )


def is_valid(invitation: Invitation, now: Optional[datetime] = None) -> bool:
    return invitation.status == InvitationStatus.PENDING and _now(now) < invitation.expires_at


def accept(invitation: Invitation, project: Project, identity: Identity, now: Optional[datetime] = None):
    """Turn a still-valid invitation into a labour membership.

    Validity is checked here, at the moment of acceptance.
    """
    now = _now(now)
    if not is_valid(invitation, now):
        return LedgerError(LedgerErrorKind.INVITATION_EXPIRED, "This invitation has expired")
    if role_of(project, identity.user_id) is not None:
        return LedgerError(LedgerErrorKind.ALREADY_MEMBER, "You are already a member of this project")

    member = ProjectMember(
        id=str(uuid.uuid4()),
        user_id=identity.user_id,
        name=identity.display_name,
        email=identity.email,
        role=MemberRole.LABOUR,
        joined_at=now,
    )
    accepted = invitation.model_copy(update={
        "status": InvitationStatus.ACCEPTED,
        "accepted_by": identity.user_id,
        "accepted_at": now,
    })
    return LedgerResult((accepted, member))


def cancel(invitation: Invitation):
    if invitation.status != InvitationStatus.PENDING:
        return LedgerError(LedgerErrorKind.ALREADY_PROCESSED, f"Invitation is already {invitation.status.value}")
    return LedgerResult(invitation.model_copy(update={"status": InvitationStatus.CANCELLED}))
