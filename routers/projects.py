from fastapi import APIRouter, Depends, Body, status
from typing import Annotated, List, Optional

from models.project import (
    DirectorPermissionsUpdate,
    MemberRoleUpdate,
    Project,
    ProjectBudget,
    ProjectCreate,
    ProjectUpdate,
)
from models.invitation import Invitation, InvitationCreate
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

# Create a new project
@router.post(
    "",
    response_model=Project,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new project",
    description="""
    Create a new construction project. The caller becomes the project's
    **admin**.

    ### Response Format

    ```json
    {
      "id": "61a23c4567d0d8992e610d96",
      "name": "Kindaruma Heights",
      "budget": "150000000",
      "total_spent": "0",
      "remaining_budget": "150000000",
      "status": "active",
      "admin_id": "60d21b4667d0d8992e610c85",
      "members": []
    }
    ```
    """,
    response_description="Returns the newly created project",
)
async def create_project(
    store: Store,
    current_user: VerifiedUser,
    project: ProjectCreate = Body(
        ...,
        examples=[{
            "name": "Kindaruma Heights",
            "description": "Construction of a 15-floor apartment building",
            "budget": "150000000",
            "start_date": "2024-01-15",
        }],
    ),
):
    logger.info(f"Creating new project: {project.name} by user {current_user.user_id}")
    return await operations.create_project(store, current_user, project)

# Get the caller's projects
@router.get(
    "",
    response_model=List[Project],
    summary="List my projects",
    description="Projects the caller administers or is a member of, newest first.",
)
async def get_projects(store: Store, current_user: CurrentUser):
    logger.info(f"Getting projects list for user {current_user.user_id}")
    return await operations.list_projects_for_user(store, current_user)

@router.get("/{project_id}", response_model=Project, summary="Get a project")
async def get_project_by_id(project_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.get_project(store, current_user, project_id))

@router.put(
    "/{project_id}",
    response_model=Project,
    summary="Update a project (Admin only)",
    description="Any field that is not provided remains unchanged.",
)
async def update_project_details(
    project_id: str,
    project_update: ProjectUpdate,
    store: Store,
    current_user: VerifiedUser,
):
    logger.info(f"Updating project: {project_id} by user {current_user.user_id}")
    return unwrap(await operations.update_project(store, current_user, project_id, project_update))

@router.delete(
    "/{project_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete a project (Admin only)",
    description="Deletes the project together with its expenses and invitations.",
)
async def remove_project(project_id: str, store: Store, current_user: VerifiedUser):
    logger.info(f"Deleting project: {project_id} by user {current_user.user_id}")
    unwrap(await operations.delete_project(store, current_user, project_id))
    return {"message": "Project deleted successfully"}

@router.get(
    "/{project_id}/budget",
    response_model=ProjectBudget,
    summary="Budget position (Admin & Director)",
    description="Budget, total spent and remaining budget. Remaining budget is negative when over budget.",
)
async def get_project_budget(project_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.get_project_budget(store, current_user, project_id))

@router.post(
    "/{project_id}/recalculate",
    response_model=ProjectBudget,
    summary="Recompute total spent (Admin only)",
    description="Recompute the project's total spent from its approved, non-deleted expenses.",
)
async def recalculate_total(project_id: str, store: Store, current_user: VerifiedUser):
    return unwrap(await operations.refresh_project_total(store, current_user, project_id))

@router.patch(
    "/{project_id}/members/{user_id}/permissions",
    response_model=Project,
    summary="Set a director's permissions (Admin only)",
)
async def set_director_permissions(
    project_id: str,
    user_id: str,
    permissions: DirectorPermissionsUpdate,
    store: Store,
    current_user: VerifiedUser,
):
    return unwrap(await operations.update_director_permissions(store, current_user, project_id, user_id, permissions))

@router.patch(
    "/{project_id}/members/{user_id}/role",
    response_model=Project,
    summary="Change a member's role (Admin only)",
)
async def set_member_role(
    project_id: str,
    user_id: str,
    role_update: MemberRoleUpdate,
    store: Store,
    current_user: VerifiedUser,
):
    return unwrap(await operations.update_member_role(store, current_user, project_id, user_id, role_update.role))

@router.delete(
    "/{project_id}/members/{user_id}",
    response_model=Project,
    summary="Remove a member",
    description="Admins can always remove members; directors need the delete-members permission.",
)
async def delete_member(project_id: str, user_id: str, store: Store, current_user: VerifiedUser):
    logger.info(f"Removing member {user_id} from project {project_id}")
    return unwrap(await operations.remove_member(store, current_user, project_id, user_id))

@router.post(
    "/{project_id}/invitations",
    response_model=Invitation,
    status_code=status.HTTP_201_CREATED,
    summary="Invite someone to the project (Admin & Director)",
    description="Creates a single-use invitation valid for 7 days unless `expiry_days` is given.",
)
async def invite_member(
    project_id: str,
    store: Store,
    current_user: VerifiedUser,
    invitation: Optional[InvitationCreate] = None,
):
    invitation = invitation or InvitationCreate()
    return unwrap(await operations.create_invitation(
        store,
        current_user,
        project_id,
        invited_email=invitation.invited_email,
        expiry_days=invitation.expiry_days,
    ))

@router.get("/{project_id}/invitations", response_model=List[Invitation], summary="Pending invitations")
async def get_pending_invitations(project_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.list_pending_invitations(store, current_user, project_id))
