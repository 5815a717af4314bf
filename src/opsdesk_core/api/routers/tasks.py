"""Incident task API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from opsdesk_core import incident_tasks, models, schemas
from opsdesk_core.models import TaskStatus

from ...database import get_db
from ..dependencies import get_current_user_email

logger = logging.getLogger("opsdesk-core.api.tasks")

router = APIRouter(tags=["tasks"])


def task_to_response(task: models.IncidentTask) -> schemas.IncidentTaskResponse:
    """Convert a task to its response with ``is_overdue`` computed."""
    response = schemas.IncidentTaskResponse.model_validate(task)
    response.is_overdue = incident_tasks.is_overdue(task)
    return response


@router.get("/", response_model=list[schemas.IncidentTaskResponse])
def list_tasks(
    incident_id: Optional[str] = Query(None),
    assigned_to: Optional[str] = Query(None, description="Assignee email; use 'me' for the caller"),
    status: Optional[TaskStatus] = Query(None),
    overdue_only: bool = Query(False),
    include_done: bool = Query(True),
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """List tasks ordered by due date."""
    if assigned_to == "me":
        assigned_to = user_email
    tasks = incident_tasks.list_tasks(
        db,
        incident_id=incident_id,
        assigned_to=assigned_to,
        status=status,
        overdue_only=overdue_only,
        include_done=include_done,
    )
    return [task_to_response(task) for task in tasks]


@router.post("/check-overdue", response_model=list[schemas.NotificationResponse])
def check_overdue(db: Session = Depends(get_db)):
    """Notify assignees of overdue tasks. Repeated calls do not duplicate notifications."""
    return incident_tasks.check_for_overdue_tasks(db)


@router.get("/{task_id}", response_model=schemas.IncidentTaskResponse)
def get_task(task_id: str, db: Session = Depends(get_db)):
    """Get a task."""
    task = incident_tasks.get_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return task_to_response(task)


@router.patch("/{task_id}", response_model=schemas.IncidentTaskResponse)
def update_task(
    task_id: str,
    data: schemas.IncidentTaskUpdate,
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """Update a task. Status may only move forward."""
    task = incident_tasks.update_task(db, task_id, data, changed_by=user_email)
    return task_to_response(task)


@router.post("/{task_id}/advance", response_model=schemas.IncidentTaskResponse)
def advance_task(
    task_id: str,
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """Move a task to its next status (pending -> in_progress -> done)."""
    task = incident_tasks.advance_task(db, task_id, changed_by=user_email)
    return task_to_response(task)
