"""Incident task lifecycle tracking.

Handles status transitions with timestamp bookkeeping, assignment
notifications, the overdue poll, and the follow-up of the parent incident's
status as its tasks progress.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from . import models, schemas, notifications
from .config import get_settings
from .exceptions import NotFoundError
from .task_state_machine import validate_transition, next_status

logger = logging.getLogger("opsdesk-core.incident_tasks")


def is_overdue(task: models.IncidentTask, now: Optional[datetime] = None) -> bool:
    """True if the task is past its due date and not done."""
    now = now or datetime.utcnow()
    return (
        task.due_at is not None
        and task.due_at < now
        and task.status != models.TaskStatus.DONE
    )


def get_task(db: Session, task_id: str) -> Optional[models.IncidentTask]:
    """Get a task by ID."""
    return db.query(models.IncidentTask).filter(
        models.IncidentTask.id == task_id
    ).first()


def _require_task(db: Session, task_id: str) -> models.IncidentTask:
    task = get_task(db, task_id)
    if not task:
        raise NotFoundError("IncidentTask", task_id)
    return task


def list_tasks_by_incident(db: Session, incident_id: str) -> list[models.IncidentTask]:
    """List an incident's tasks in ``step_order`` order."""
    return db.query(models.IncidentTask).filter(
        models.IncidentTask.incident_id == incident_id
    ).order_by(
        models.IncidentTask.step_order.asc(),
        models.IncidentTask.created_at.asc(),
    ).all()


def list_tasks(
    db: Session,
    incident_id: Optional[str] = None,
    assigned_to: Optional[str] = None,
    status: Optional[models.TaskStatus] = None,
    overdue_only: bool = False,
    include_done: bool = True,
) -> list[models.IncidentTask]:
    """
    List tasks with filtering.

    Args:
        db: Database session
        incident_id: Filter by incident
        assigned_to: Filter by assignee email
        status: Filter by status
        overdue_only: Only return overdue tasks
        include_done: Include done tasks (ignored when status is given)

    Returns:
        Tasks ordered by due date (earliest first, undated last)
    """
    query = db.query(models.IncidentTask)

    if incident_id:
        query = query.filter(models.IncidentTask.incident_id == incident_id)
    if assigned_to:
        query = query.filter(models.IncidentTask.assigned_to == assigned_to)
    if status:
        query = query.filter(models.IncidentTask.status == status)
    elif not include_done:
        query = query.filter(models.IncidentTask.status != models.TaskStatus.DONE)
    if overdue_only:
        query = query.filter(
            models.IncidentTask.due_at < datetime.utcnow(),
            models.IncidentTask.status != models.TaskStatus.DONE,
        )

    return query.order_by(
        models.IncidentTask.due_at.is_(None),
        models.IncidentTask.due_at.asc(),
        models.IncidentTask.created_at.asc(),
    ).all()


def insert_task(db: Session, **fields) -> models.IncidentTask:
    """Insert a task and fire the assignment notification if it has an assignee.

    Tasks always start pending. Does not commit.
    """
    task = models.IncidentTask(status=models.TaskStatus.PENDING, **fields)
    db.add(task)
    db.flush()

    if task.assigned_to:
        notifications.create_notification(
            db, notifications.task_assigned(task, task.assigned_to), commit=False
        )
    return task


def create_task(
    db: Session,
    task_data: schemas.IncidentTaskCreate,
    created_by: Optional[str] = None,
) -> models.IncidentTask:
    """
    Create an ad-hoc task on an incident.

    Args:
        db: Database session
        task_data: Task creation data
        created_by: Email of the user creating the task

    Returns:
        Created IncidentTask

    Raises:
        NotFoundError: If the incident does not exist
    """
    if not db.query(models.Incident.id).filter(models.Incident.id == task_data.incident_id).first():
        raise NotFoundError("Incident", task_data.incident_id)

    step_order = task_data.step_order
    if step_order is None:
        step_order = db.query(models.IncidentTask).filter(
            models.IncidentTask.incident_id == task_data.incident_id
        ).count() + 1

    due_at = task_data.due_at
    if due_at is None and task_data.sla_value is not None:
        from .task_generation import compute_due_at
        due_at = compute_due_at(datetime.utcnow(), task_data.sla_value, task_data.sla_unit or models.SlaUnit.DAYS)

    task = insert_task(
        db,
        incident_id=task_data.incident_id,
        step_order=step_order,
        title=task_data.title,
        department_id=task_data.department_id,
        sla_value=task_data.sla_value,
        sla_unit=models.SlaUnit(task_data.sla_unit) if task_data.sla_unit else None,
        due_at=due_at,
        assigned_to=task_data.assigned_to,
    )
    db.commit()
    db.refresh(task)

    logger.info(f"Created task '{task.title}' on incident {task.incident_id} (by {created_by or 'unknown'})")
    return task


def _apply_status(task: models.IncidentTask, new_status: models.TaskStatus, now: datetime) -> None:
    """Set the status and its timestamps."""
    task.status = new_status
    task.last_status_change_at = now

    if new_status == models.TaskStatus.IN_PROGRESS:
        if task.started_at is None:
            task.started_at = now
    elif new_status == models.TaskStatus.DONE:
        task.completed_at = now
        if task.started_at is None:
            task.started_at = now


def _sync_incident_status(db: Session, task: models.IncidentTask, now: datetime) -> None:
    """Move the parent incident forward after one of its tasks changed status.

    An open incident becomes in_progress once any task starts or finishes;
    it becomes resolved when every task is done.
    """
    from . import incidents

    incident = task.incident
    if incident is None:
        return

    system_user = get_settings().system_user
    db.flush()

    if task.status == models.TaskStatus.DONE:
        sibling_statuses = [t.status for t in list_tasks_by_incident(db, incident.id)]
        all_done = all(s == models.TaskStatus.DONE for s in sibling_statuses)
        if all_done and incident.status not in (models.IncidentStatus.RESOLVED, models.IncidentStatus.CLOSED):
            incident.status = models.IncidentStatus.RESOLVED
            incident.closed_at = now
            incident.updated_at = now
            incidents.add_log(
                db, incident.id,
                "Status automatically changed to 'resolved' (all tasks done)",
                system_user, commit=False,
            )
            logger.info(f"Incident {incident.id} resolved: all tasks done")
            return

    if incident.status == models.IncidentStatus.OPEN:
        reason = "task done" if task.status == models.TaskStatus.DONE else "task started"
        incident.status = models.IncidentStatus.IN_PROGRESS
        incident.updated_at = now
        incidents.add_log(
            db, incident.id,
            f"Status automatically changed to 'in_progress' ({reason})",
            system_user, commit=False,
        )
        logger.info(f"Incident {incident.id} moved to in_progress ({reason})")


def update_task(
    db: Session,
    task_id: str,
    task_update: schemas.IncidentTaskUpdate,
    changed_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.IncidentTask:
    """
    Update a task.

    Status changes are validated (forward only) and stamp
    ``last_status_change_at``; entering in_progress sets ``started_at`` once;
    entering done sets ``completed_at`` and backfills ``started_at``.
    Reassigning to a different user sends that user a notification.

    Args:
        db: Database session
        task_id: Task ID
        task_update: Fields to change
        changed_by: Email of the user making the change
        now: Clock override

    Returns:
        Updated IncidentTask

    Raises:
        NotFoundError: If the task does not exist
        TaskStateTransitionError: If the status would move backwards
    """
    now = now or datetime.utcnow()
    task = _require_task(db, task_id)
    update_data = task_update.model_dump(exclude_unset=True)

    new_status = update_data.pop("status", None)
    status_changed = False
    if new_status is not None:
        new_status = models.TaskStatus(new_status)
        validate_transition(task.status, new_status)
        if new_status != task.status:
            old_status = task.status
            _apply_status(task, new_status, now)
            status_changed = True
            logger.info(f"Task {task.id}: {old_status.value} → {new_status.value} (by {changed_by or 'unknown'})")

    if "assigned_to" in update_data:
        new_assignee = update_data.pop("assigned_to")
        if new_assignee != task.assigned_to:
            task.assigned_to = new_assignee
            if new_assignee:
                notifications.create_notification(
                    db, notifications.task_assigned(task, new_assignee, delegated=True), commit=False
                )
                logger.info(f"Task {task.id} assigned to {new_assignee}")

    for field, value in update_data.items():
        if field == "title" and value is None:
            continue
        setattr(task, field, value)

    if status_changed:
        _sync_incident_status(db, task, now)

    db.commit()
    db.refresh(task)
    return task


def advance_task(
    db: Session,
    task_id: str,
    changed_by: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.IncidentTask:
    """Move a task one step forward. Advancing a done task changes nothing.

    Raises:
        NotFoundError: If the task does not exist
    """
    task = _require_task(db, task_id)
    target = next_status(task.status)
    if target is None:
        logger.debug(f"Task {task.id} already {task.status.value}; advance is a no-op")
        return task

    return update_task(db, task_id, schemas.IncidentTaskUpdate(status=target), changed_by, now)


def assign_task(
    db: Session,
    task_id: str,
    user_email: str,
    changed_by: Optional[str] = None,
) -> models.IncidentTask:
    """Assign a task to a user (notifies when the assignee changes)."""
    return update_task(db, task_id, schemas.IncidentTaskUpdate(assigned_to=user_email), changed_by)


def check_for_overdue_tasks(db: Session, now: Optional[datetime] = None) -> list[models.Notification]:
    """Notify assignees of overdue tasks, at most once per task and user.

    Safe to call repeatedly (e.g. on every inbox load).

    Returns:
        Notifications created by this call
    """
    now = now or datetime.utcnow()
    overdue = db.query(models.IncidentTask).filter(
        models.IncidentTask.status != models.TaskStatus.DONE,
        models.IncidentTask.due_at.isnot(None),
        models.IncidentTask.due_at < now,
        models.IncidentTask.assigned_to.isnot(None),
    ).all()

    created = []
    for task in overdue:
        if notifications.notification_exists(
            db, task.assigned_to, models.NotificationType.TASK_OVERDUE, task.id
        ):
            continue
        created.append(
            notifications.create_notification(db, notifications.task_overdue(task), commit=False)
        )

    if created:
        db.commit()
        logger.info(f"Sent {len(created)} overdue notifications")
    return created
