from fastapi import APIRouter, Depends
from typing import Annotated

from models.invitation import Invitation
from models.project import Project
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

# Look up an invitation before joining
@router.get(
    "/{invitation_id}",
    response_model=Invitation,
    summary="Get an invitation",
    description="Anyone holding the invitation id may look it up to see which project it is for.",
)
async def get_invitation(invitation_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.get_invitation(store, invitation_id))

@router.post(
    "/{invitation_id}/accept",
    response_model=Project,
    summary="Join a project",
    description="""
    Accept an invitation and join its project as a **labour** member.

    - `410` when the invitation has expired, was cancelled or was already used
    - `409` when the caller is already part of the project
    """,
)
async def accept_invitation(invitation_id: str, store: Store, current_user: VerifiedUser):
    logger.info(f"User {current_user.user_id} accepting invitation {invitation_id}")
    return unwrap(await operations.accept_invitation(store, current_user, invitation_id))

@router.post(
    "/{invitation_id}/cancel",
    response_model=Invitation,
    summary="Cancel an invitation (Admin & Director)",
)
async def cancel_invitation(invitation_id: str, store: Store, current_user: VerifiedUser):
    logger.info(f"Cancelling invitation {invitation_id}")
    return unwrap(await operations.cancel_invitation(store, current_user, invitation_id))
