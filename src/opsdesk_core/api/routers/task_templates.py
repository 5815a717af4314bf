"""Task template catalog API endpoints."""
import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from opsdesk_core import schemas, task_templates

from ...database import get_db

logger = logging.getLogger("opsdesk-core.api.task_templates")

router = APIRouter(tags=["task-templates"])


@router.get("/", response_model=list[schemas.TaskTemplateResponse])
def list_templates(
    include_inactive: bool = Query(False, description="Include templates hidden from pickers"),
    db: Session = Depends(get_db),
):
    """List task templates ordered by title."""
    return task_templates.list_templates(db, include_inactive=include_inactive)


@router.post("/", response_model=schemas.TaskTemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(data: schemas.TaskTemplateCreate, db: Session = Depends(get_db)):
    """Create a task template."""
    return task_templates.create_template(db, data)


@router.patch("/{template_id}", response_model=schemas.TaskTemplateResponse)
def update_template(template_id: str, data: schemas.TaskTemplateUpdate, db: Session = Depends(get_db)):
    """Update a task template. Existing steps pick up the new defaults."""
    return task_templates.update_template(db, template_id, data)


@router.delete("/{template_id}", response_model=schemas.TaskTemplateResponse)
def deactivate_template(template_id: str, db: Session = Depends(get_db)):
    """Hide a template from step pickers."""
    return task_templates.deactivate_template(db, template_id)
