"""Incident CRUD and incident log."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from . import models, schemas
from .exceptions import NotFoundError
from .task_generation import generate_tasks_from_playbook

logger = logging.getLogger("opsdesk-core.incidents")

CLOSING_STATUSES = (models.IncidentStatus.RESOLVED, models.IncidentStatus.CLOSED)


def create_incident(
    db: Session,
    incident_data: schemas.IncidentCreate,
    created_by: Optional[str] = None,
) -> models.Incident:
    """
    Create an incident and, if it references a playbook, its tasks.

    The incident row and its generated tasks are committed together.

    Args:
        db: Database session
        incident_data: Incident creation data
        created_by: Email of the reporting user

    Returns:
        Created Incident

    Raises:
        NotFoundError: If ``playbook_id`` does not exist
    """
    if incident_data.playbook_id and not db.query(models.Playbook.id).filter(
        models.Playbook.id == incident_data.playbook_id
    ).first():
        raise NotFoundError("Playbook", incident_data.playbook_id)

    now = datetime.utcnow()
    incident = models.Incident(
        title=incident_data.title,
        description=incident_data.description,
        status=models.IncidentStatus.OPEN,
        incident_type=incident_data.incident_type,
        impact=models.IncidentImpact(incident_data.impact),
        playbook_id=incident_data.playbook_id,
        origin_type=incident_data.origin_type,
        context=incident_data.context,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )

    try:
        db.add(incident)
        db.flush()
        if incident.playbook_id:
            generate_tasks_from_playbook(db, incident.id, incident.playbook_id, now=now, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(incident)
    logger.info(f"Created incident {incident.id}: {incident.title}")
    return incident


def get_incident(db: Session, incident_id: str) -> Optional[models.Incident]:
    """Get an incident by ID."""
    return db.query(models.Incident).filter(
        models.Incident.id == incident_id
    ).first()


def list_incidents(
    db: Session,
    status: Optional[models.IncidentStatus] = None,
    impact: Optional[models.IncidentImpact] = None,
    incident_type: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[models.Incident], int]:
    """
    List incidents with filtering and pagination, newest first.

    Returns:
        Tuple of (incidents, total_count)
    """
    query = db.query(models.Incident)

    if status:
        query = query.filter(models.Incident.status == status)
    if impact:
        query = query.filter(models.Incident.impact == impact)
    if incident_type:
        query = query.filter(models.Incident.incident_type == incident_type)

    total = query.count()
    incidents = query.order_by(models.Incident.created_at.desc()).offset(skip).limit(limit).all()
    return incidents, total


def update_incident(
    db: Session,
    incident_id: str,
    incident_update: schemas.IncidentUpdate,
) -> models.Incident:
    """
    Patch an incident.

    Moving to resolved or closed stamps ``closed_at`` (once).

    Raises:
        NotFoundError: If the incident does not exist
    """
    incident = get_incident(db, incident_id)
    if not incident:
        raise NotFoundError("Incident", incident_id)

    now = datetime.utcnow()
    update_data = incident_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field in ("title", "status", "impact"):
            continue
        if field == "status":
            value = models.IncidentStatus(value)
            if value in CLOSING_STATUSES and incident.closed_at is None:
                incident.closed_at = now
        elif field == "impact":
            value = models.IncidentImpact(value)
        setattr(incident, field, value)

    incident.updated_at = now
    db.commit()
    db.refresh(incident)

    logger.info(f"Updated incident {incident.id}")
    return incident


# ============================================================================
# Incident Log
# ============================================================================


def add_log(
    db: Session,
    incident_id: str,
    message: str,
    author: str,
    commit: bool = True,
) -> models.IncidentLog:
    """Append a log entry to an incident.

    Raises:
        NotFoundError: If the incident does not exist
    """
    if not db.query(models.Incident.id).filter(models.Incident.id == incident_id).first():
        raise NotFoundError("Incident", incident_id)

    entry = models.IncidentLog(incident_id=incident_id, message=message, author=author)
    db.add(entry)
    if commit:
        db.commit()
        db.refresh(entry)
    else:
        db.flush()
    return entry


def list_logs(db: Session, incident_id: str) -> list[models.IncidentLog]:
    """List an incident's log entries, newest first."""
    return db.query(models.IncidentLog).filter(
        models.IncidentLog.incident_id == incident_id
    ).order_by(models.IncidentLog.created_at.desc()).all()
