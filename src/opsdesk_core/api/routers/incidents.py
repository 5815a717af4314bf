"""Incident API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from opsdesk_core import incidents, incident_tasks, schemas
from opsdesk_core.models import IncidentStatus, IncidentImpact, SlaUnit

from ...database import get_db
from ..dependencies import get_current_user_email
from .tasks import task_to_response

logger = logging.getLogger("opsdesk-core.api.incidents")

router = APIRouter(tags=["incidents"])


class IncidentListResponse(BaseModel):
    """Paginated incident list."""

    items: list[schemas.IncidentResponse]
    total: int
    skip: int
    limit: int


class AdHocTaskCreate(BaseModel):
    """Task fields accepted on ``POST /incidents/{id}/tasks``."""

    title: str
    department_id: Optional[str] = None
    sla_value: Optional[int] = None
    sla_unit: Optional[SlaUnit] = None
    assigned_to: Optional[str] = None


def _get_or_404(db: Session, incident_id: str):
    incident = incidents.get_incident(db, incident_id)
    if not incident:
        raise HTTPException(status_code=404, detail=f"Incident not found: {incident_id}")
    return incident


@router.post("/", response_model=schemas.IncidentResponse, status_code=status.HTTP_201_CREATED)
def create_incident(
    data: schemas.IncidentCreate,
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """Open an incident. Its playbook's steps become tasks in the same transaction."""
    return incidents.create_incident(db, data, created_by=user_email)


@router.get("/", response_model=IncidentListResponse)
def list_incidents(
    status_filter: Optional[IncidentStatus] = Query(None, alias="status"),
    impact: Optional[IncidentImpact] = Query(None),
    incident_type: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """List incidents, newest first."""
    items, total = incidents.list_incidents(
        db,
        status=status_filter,
        impact=impact,
        incident_type=incident_type,
        skip=skip,
        limit=limit,
    )
    return IncidentListResponse(
        items=[schemas.IncidentResponse.model_validate(i) for i in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/{incident_id}", response_model=schemas.IncidentResponse)
def get_incident(incident_id: str, db: Session = Depends(get_db)):
    """Get an incident."""
    return _get_or_404(db, incident_id)


@router.patch("/{incident_id}", response_model=schemas.IncidentResponse)
def update_incident(incident_id: str, data: schemas.IncidentUpdate, db: Session = Depends(get_db)):
    """Patch an incident."""
    return incidents.update_incident(db, incident_id, data)


@router.get("/{incident_id}/tasks", response_model=list[schemas.IncidentTaskResponse])
def list_incident_tasks(incident_id: str, db: Session = Depends(get_db)):
    """List an incident's tasks in step order."""
    _get_or_404(db, incident_id)
    return [task_to_response(task) for task in incident_tasks.list_tasks_by_incident(db, incident_id)]


@router.post(
    "/{incident_id}/tasks",
    response_model=schemas.IncidentTaskResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_incident_task(
    incident_id: str,
    data: AdHocTaskCreate,
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """Add an ad-hoc task that did not come from the playbook."""
    task_data = schemas.IncidentTaskCreate(incident_id=incident_id, **data.model_dump())
    task = incident_tasks.create_task(db, task_data, created_by=user_email)
    return task_to_response(task)


@router.get("/{incident_id}/logs", response_model=list[schemas.IncidentLogResponse])
def list_logs(incident_id: str, db: Session = Depends(get_db)):
    """List the incident log, newest first."""
    _get_or_404(db, incident_id)
    return incidents.list_logs(db, incident_id)


@router.post(
    "/{incident_id}/logs",
    response_model=schemas.IncidentLogResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_log(
    incident_id: str,
    data: schemas.IncidentLogCreate,
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email),
):
    """Append a message to the incident log."""
    return incidents.add_log(db, incident_id, data.message, user_email)
