"""Task generation from playbooks.

Expands a playbook version into concrete incident tasks: one task per step,
in ``step_order`` order, with the step's effective title, department and SLA,
a due date computed from the SLA, and the department leader as assignee.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from . import models, departments, incident_tasks, playbook_steps
from .config import get_settings
from .exceptions import NotFoundError
from .playbooks import playbook_lock

logger = logging.getLogger("opsdesk-core.task_generation")


def compute_due_at(start: datetime, sla_value: int, sla_unit: models.SlaUnit) -> datetime:
    """Due date for an SLA counted from ``start``.

    Args:
        start: Generation time
        sla_value: Amount of time allotted
        sla_unit: Whether ``sla_value`` counts hours or days

    Returns:
        ``start`` plus the SLA
    """
    if models.SlaUnit(sla_unit) == models.SlaUnit.HOURS:
        return start + timedelta(hours=sla_value)
    return start + timedelta(days=sla_value)


def generate_tasks_from_playbook(
    db: Session,
    incident_id: str,
    playbook_id: str,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> list[models.IncidentTask]:
    """
    Create one pending task per playbook step for an incident.

    Steps whose template or department cannot be resolved still produce a
    task with fallback values; generation never stops halfway through the
    checklist.

    Args:
        db: Database session
        incident_id: Incident receiving the tasks
        playbook_id: Playbook version to expand
        now: Generation time (defaults to now, UTC)
        commit: Commit when done; pass False to join the caller's transaction

    Returns:
        Created tasks in ``step_order`` order

    Raises:
        NotFoundError: If the incident or playbook does not exist
    """
    now = now or datetime.utcnow()
    settings = get_settings()

    if not db.query(models.Incident.id).filter(models.Incident.id == incident_id).first():
        raise NotFoundError("Incident", incident_id)
    playbook = db.query(models.Playbook).filter(models.Playbook.id == playbook_id).first()
    if not playbook:
        raise NotFoundError("Playbook", playbook_id)

    tasks = []
    with playbook_lock(playbook.lineage_id):
        for step in playbook_steps.list_by_playbook(db, playbook_id):
            department_id = step.effective_department_id
            if department_id and not departments.get_department(db, department_id):
                logger.warning(f"Step {step.id} references unknown department {department_id}")
                department_id = None
            department_id = department_id or settings.fallback_department_id

            leader = departments.get_leader(db, department_id)
            assigned_to = leader.user_email if leader else None

            task = incident_tasks.insert_task(
                db,
                incident_id=incident_id,
                step_order=step.step_order,
                title=step.effective_title,
                department_id=department_id,
                sla_value=step.effective_sla_value,
                sla_unit=models.SlaUnit(step.effective_sla_unit),
                due_at=compute_due_at(now, step.effective_sla_value, step.effective_sla_unit),
                assigned_to=assigned_to,
            )
            tasks.append(task)

    if commit:
        db.commit()

    logger.info(
        f"Generated {len(tasks)} tasks for incident {incident_id} "
        f"from playbook '{playbook.name}' v{playbook.version}"
    )
    return tasks
