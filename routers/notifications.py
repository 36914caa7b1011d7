from fastapi import APIRouter, Depends
from typing import Annotated, List

from models.notification import Notification
from models.user import Identity
from database import operations
from database.db import get_store
from database.store import RecordStore
from routers.auth import get_current_user
from routers.errors import unwrap

router = APIRouter()

Store = Annotated[RecordStore, Depends(get_store)]
CurrentUser = Annotated[Identity, Depends(get_current_user)]

# Get notifications for the current user
@router.get(
    "",
    response_model=List[Notification],
    summary="My notifications",
    description="Notifications addressed to the caller, newest first.",
)
async def get_my_notifications(store: Store, current_user: CurrentUser):
    return await operations.get_notifications(store, current_user)

# Mark notification as read
@router.patch("/{notification_id}/read", response_model=Notification, summary="Mark a notification as read")
async def mark_notification_as_read(notification_id: str, store: Store, current_user: CurrentUser):
    return unwrap(await operations.mark_notification_read(store, current_user, notification_id))
