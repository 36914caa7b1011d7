"""Tests for invitation validity and acceptance."""

from datetime import timedelta

from conftest import ADMIN_ACTOR, NOW, make_project
from domain import invitations
from domain.errors import LedgerErrorKind, LedgerResult
from models.invitation import InvitationStatus
from models.project import MemberRole, ProjectMember
from models.user import Identity

NEWCOMER = Identity(user_id="new-1", display_name="Nia Newcomer", email="nia@example.com", email_verified=True)


def fresh_invitation(project=None, **kwargs):
    return invitations.new_invitation(project or make_project(), ADMIN_ACTOR, "inv-1", now=NOW, **kwargs)


class TestValidity:
    def test_expires_seven_days_after_creation(self):
        invitation = fresh_invitation()
        assert invitation.expires_at == NOW + timedelta(days=7)
        assert invitation.status == InvitationStatus.PENDING
        assert invitation.project_name == "Kindaruma Heights"

    def test_custom_expiry(self):
        assert fresh_invitation(expiry_days=2).expires_at == NOW + timedelta(days=2)

    def test_valid_until_expiry(self):
        invitation = fresh_invitation()
        assert invitations.is_valid(invitation, NOW + timedelta(days=6, hours=23))
        assert not invitations.is_valid(invitation, NOW + timedelta(days=7))
        assert not invitations.is_valid(invitation, NOW + timedelta(days=8))

    def test_used_invitation_is_invalid(self):
        invitation = fresh_invitation().model_copy(update={"status": InvitationStatus.ACCEPTED})
        assert not invitations.is_valid(invitation, NOW)


class TestAccept:
    def test_accept_after_expiry_fails(self):
        project = make_project()
        outcome = invitations.accept(fresh_invitation(project), project, NEWCOMER, now=NOW + timedelta(days=8))
        assert outcome.kind == LedgerErrorKind.INVITATION_EXPIRED

    def test_accept_adds_labour_member(self):
        project = make_project()
        outcome = invitations.accept(fresh_invitation(project), project, NEWCOMER, now=NOW + timedelta(days=1))

        assert isinstance(outcome, LedgerResult)
        accepted, member = outcome.value
        assert accepted.status == InvitationStatus.ACCEPTED
        assert accepted.accepted_by == NEWCOMER.user_id
        assert member.user_id == NEWCOMER.user_id
        assert member.role == MemberRole.LABOUR
        assert member.name == "Nia Newcomer"

    def test_existing_member_cannot_join_again(self):
        member = ProjectMember(id="m1", user_id=NEWCOMER.user_id, name="Nia Newcomer", joined_at=NOW)
        project = make_project(members=[member])
        outcome = invitations.accept(fresh_invitation(project), project, NEWCOMER, now=NOW)
        assert outcome.kind == LedgerErrorKind.ALREADY_MEMBER

    def test_admin_cannot_join_own_project(self):
        project = make_project()
        admin = Identity(user_id=project.admin_id, display_name="Amina Admin")
        outcome = invitations.accept(fresh_invitation(project), project, admin, now=NOW)
        assert outcome.kind == LedgerErrorKind.ALREADY_MEMBER


class TestCancel:
    def test_cancel_pending(self):
        outcome = invitations.cancel(fresh_invitation())
        assert outcome.value.status == InvitationStatus.CANCELLED

    def test_cancel_twice(self):
        cancelled = invitations.cancel(fresh_invitation()).value
        assert invitations.cancel(cancelled).kind == LedgerErrorKind.ALREADY_PROCESSED
