"""Tests for the project role and permission checks."""

import pytest

from conftest import NOW, make_project
from domain.authorization import Action, can_perform, is_privileged_creator, role_of
from models.project import DirectorPermissions, MemberRole, ProjectMember


def project_with(director_permissions=None):
    members = [
        ProjectMember(id="m1", user_id="director-1", name="Dawit Director", role=MemberRole.DIRECTOR, joined_at=NOW),
        ProjectMember(id="m2", user_id="labour-1", name="Luka Labour", role=MemberRole.LABOUR, joined_at=NOW),
    ]
    permissions = {}
    if director_permissions is not None:
        permissions["director-1"] = director_permissions
    return make_project(members=members, director_permissions=permissions)


def test_roles_resolve_from_project():
    project = project_with()
    assert role_of(project, "admin-1") == MemberRole.ADMIN
    assert role_of(project, "director-1") == MemberRole.DIRECTOR
    assert role_of(project, "labour-1") == MemberRole.LABOUR
    assert role_of(project, "stranger") is None


@pytest.mark.parametrize("action", list(Action))
def test_admin_can_do_everything(action):
    assert can_perform("admin-1", action, project_with())


@pytest.mark.parametrize("action", list(Action))
def test_outsiders_can_do_nothing(action):
    assert not can_perform("stranger", action, project_with())


@pytest.mark.parametrize("action,allowed", [
    (Action.VIEW_EXPENSES, True),
    (Action.CREATE_EXPENSE, True),
    (Action.APPROVE_EXPENSE, False),
    (Action.RECORD_PAYMENT, False),
    (Action.VIEW_REPORTS, False),
    (Action.DELETE_EXPENSE, False),
    (Action.INVITE_MEMBER, False),
])
def test_labour_permissions(action, allowed):
    assert can_perform("labour-1", action, project_with()) is allowed


@pytest.mark.parametrize("action,allowed", [
    (Action.APPROVE_EXPENSE, True),
    (Action.REJECT_EXPENSE, True),
    (Action.RECORD_PAYMENT, True),
    (Action.INVITE_MEMBER, True),
    (Action.RESTORE_EXPENSE, False),
    (Action.UPDATE_PROJECT, False),
    (Action.MANAGE_PERMISSIONS, False),
])
def test_director_permissions(action, allowed):
    assert can_perform("director-1", action, project_with()) is allowed


def test_director_deletes_only_when_delegated():
    assert not can_perform("director-1", Action.DELETE_EXPENSE, project_with())
    assert not can_perform("director-1", Action.REMOVE_MEMBER, project_with())

    delegated = project_with(DirectorPermissions(can_delete_expenses=True))
    assert can_perform("director-1", Action.DELETE_EXPENSE, delegated)
    assert not can_perform("director-1", Action.REMOVE_MEMBER, delegated)

    members_only = project_with(DirectorPermissions(can_delete_members=True))
    assert can_perform("director-1", Action.REMOVE_MEMBER, members_only)
    assert not can_perform("director-1", Action.DELETE_EXPENSE, members_only)


def test_only_admin_expenses_skip_approval():
    project = project_with()
    assert is_privileged_creator(project, "admin-1")
    assert not is_privileged_creator(project, "director-1")
    assert not is_privileged_creator(project, "labour-1")
