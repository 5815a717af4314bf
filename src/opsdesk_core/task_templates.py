"""Task template catalog."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models, schemas
from .exceptions import NotFoundError

logger = logging.getLogger("opsdesk-core.task_templates")


def create_template(db: Session, data: schemas.TaskTemplateCreate) -> models.TaskTemplate:
    """Create an active task template."""
    template = models.TaskTemplate(
        title=data.title,
        description=data.description,
        default_department_id=data.default_department_id,
        default_sla_value=data.default_sla_value,
        default_sla_unit=models.SlaUnit(data.default_sla_unit),
        active=True,
    )
    db.add(template)
    db.commit()
    db.refresh(template)

    logger.info(f"Created task template '{template.title}'")
    return template


def get_template(db: Session, template_id: Optional[str]) -> Optional[models.TaskTemplate]:
    """Get a template by ID, active or not."""
    if not template_id:
        return None
    return db.query(models.TaskTemplate).filter(
        models.TaskTemplate.id == template_id
    ).first()


def list_templates(db: Session, include_inactive: bool = False) -> list[models.TaskTemplate]:
    """List templates ordered by title. Inactive ones are hidden by default."""
    query = db.query(models.TaskTemplate)
    if not include_inactive:
        query = query.filter(models.TaskTemplate.active == True)  # noqa: E712
    return query.order_by(models.TaskTemplate.title.asc()).all()


def update_template(
    db: Session,
    template_id: str,
    template_update: schemas.TaskTemplateUpdate,
) -> models.TaskTemplate:
    """Patch a template.

    Raises:
        NotFoundError: If the template does not exist
    """
    template = get_template(db, template_id)
    if not template:
        raise NotFoundError("TaskTemplate", template_id)

    update_data = template_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field == "default_sla_unit" and value:
            value = models.SlaUnit(value)
        setattr(template, field, value)

    db.commit()
    db.refresh(template)

    logger.info(f"Updated task template '{template.title}'")
    return template


def deactivate_template(db: Session, template_id: str) -> models.TaskTemplate:
    """Hide a template from step pickers; steps built from it keep working."""
    return update_template(db, template_id, schemas.TaskTemplateUpdate(active=False))
