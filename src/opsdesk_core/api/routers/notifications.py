"""Notification inbox API endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from opsdesk_core import incident_tasks, notifications, schemas

from ...database import get_db
from ..dependencies import get_current_user_email

logger = logging.getLogger("opsdesk-core.api.notifications")

router = APIRouter(tags=["notifications"])


@router.get("/", response_model=list[schemas.NotificationResponse])
def list_notifications(
    only_unread: bool = Query(False),
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """List the caller's notifications, newest first.

    Loading the inbox also runs the overdue check so overdue alerts show up
    without a separate scheduler.
    """
    incident_tasks.check_for_overdue_tasks(db)
    return notifications.list_notifications(db, user_email, only_unread=only_unread)


@router.get("/unread-count")
def get_unread_count(
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """Count the caller's unread notifications."""
    return {"count": notifications.unread_count(db, user_email)}


@router.post("/read-all")
def mark_all_as_read(
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """Mark all of the caller's notifications read."""
    return {"updated": notifications.mark_all_as_read(db, user_email)}


@router.post("/{notification_id}/read", response_model=schemas.NotificationResponse)
def mark_as_read(notification_id: str, db: Session = Depends(get_db)):
    """Mark one notification read."""
    notification = notifications.mark_as_read(db, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail=f"Notification not found: {notification_id}")
    return notification
