"""In-app notifications for task assignment and overdue tasks.

Delivery (email, push) is handled elsewhere; this module only records
notifications and answers whether one already exists.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger("opsdesk-core.notifications")


def create_notification(
    db: Session,
    data: schemas.NotificationCreate,
    commit: bool = True,
) -> models.Notification:
    """Create a notification.

    Args:
        db: Database session
        data: Notification content
        commit: Commit immediately; pass False to join the caller's transaction

    Returns:
        Created Notification
    """
    notification = models.Notification(
        user_email=data.user_email,
        type=data.type,
        title=data.title,
        message=data.message,
        entity_type=data.entity_type,
        entity_id=data.entity_id,
        severity=data.severity,
    )
    db.add(notification)

    if commit:
        db.commit()
        db.refresh(notification)
    else:
        db.flush()

    logger.info(f"Notification {data.type.value} for {data.user_email} on {data.entity_type} {data.entity_id}")
    return notification


def notification_exists(
    db: Session,
    user_email: str,
    notification_type: models.NotificationType,
    entity_id: str,
) -> bool:
    """Check whether a user already got a notification of this type for an entity."""
    return db.query(models.Notification.id).filter(
        models.Notification.user_email == user_email,
        models.Notification.type == notification_type,
        models.Notification.entity_id == entity_id,
    ).first() is not None


def list_notifications(
    db: Session,
    user_email: str,
    only_unread: bool = False,
) -> list[models.Notification]:
    """List a user's notifications, newest first."""
    query = db.query(models.Notification).filter(models.Notification.user_email == user_email)
    if only_unread:
        query = query.filter(models.Notification.read_at.is_(None))
    return query.order_by(models.Notification.created_at.desc()).all()


def unread_count(db: Session, user_email: str) -> int:
    """Count a user's unread notifications."""
    return db.query(models.Notification).filter(
        models.Notification.user_email == user_email,
        models.Notification.read_at.is_(None),
    ).count()


def mark_as_read(db: Session, notification_id: str) -> Optional[models.Notification]:
    """Mark one notification read. Returns None if it does not exist."""
    notification = db.query(models.Notification).filter(
        models.Notification.id == notification_id
    ).first()
    if not notification:
        return None

    if notification.read_at is None:
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, user_email: str) -> int:
    """Mark every unread notification of a user read.

    Returns:
        Number of notifications updated
    """
    now = datetime.utcnow()
    unread = db.query(models.Notification).filter(
        models.Notification.user_email == user_email,
        models.Notification.read_at.is_(None),
    ).all()
    for notification in unread:
        notification.read_at = now

    if unread:
        db.commit()
    return len(unread)


# ============================================================================
# Task notification builders
# ============================================================================


def task_assigned(task: models.IncidentTask, user_email: str, delegated: bool = False) -> schemas.NotificationCreate:
    """Build the notification sent when a task is assigned to a user."""
    if delegated:
        title = "Task assigned"
        message = f'The task "{task.title}" was delegated to you.'
    else:
        title = "New task"
        message = f'The task "{task.title}" was assigned to you.'
    return schemas.NotificationCreate(
        user_email=user_email,
        type=models.NotificationType.TASK_ASSIGNED,
        title=title,
        message=message,
        entity_type="task",
        entity_id=task.id,
        severity=models.NotificationSeverity.INFO,
    )


def task_overdue(task: models.IncidentTask) -> schemas.NotificationCreate:
    """Build the notification sent when a task passes its due date."""
    return schemas.NotificationCreate(
        user_email=task.assigned_to,
        type=models.NotificationType.TASK_OVERDUE,
        title="Task overdue",
        message=f'The deadline for "{task.title}" has passed.',
        entity_type="task",
        entity_id=task.id,
        severity=models.NotificationSeverity.DANGER,
    )
