"""Notification inbox endpoints. Every route is scoped to the caller."""
from fastapi import APIRouter, Depends, status

from ..auth import get_current_identity
from ..database import Database, get_db
from ..schemas import MarkAllReadResult, NotificationFilters, NotificationList, NotificationOut
from ..security import Identity
from ..use_cases.notifications import (
    archive_notification_use_case,
    delete_notification_use_case,
    get_notifications_use_case,
    get_unread_count_use_case,
    mark_all_as_read_use_case,
    mark_as_read_use_case,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
async def list_notifications(
    filters: NotificationFilters = Depends(),
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await get_notifications_use_case(db=db, user_id=identity.emp_id, filters=filters)


@router.get("/unread-count")
async def unread_count(
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return {"unread_count": await get_unread_count_use_case(db=db, user_id=identity.emp_id)}


@router.put("/read-all", response_model=MarkAllReadResult)
async def mark_all_read(
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    updated = await mark_all_as_read_use_case(db=db, user_id=identity.emp_id)
    return MarkAllReadResult(updated=updated)


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await mark_as_read_use_case(db=db, notification_id=notification_id, user_id=identity.emp_id)


@router.put("/{notification_id}/archive", response_model=NotificationOut)
async def archive(
    notification_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await archive_notification_use_case(db=db, notification_id=notification_id, user_id=identity.emp_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete(
    notification_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    await delete_notification_use_case(db=db, notification_id=notification_id, user_id=identity.emp_id)
