"""Playbook API endpoints.

Step edits return a ``PlaybookEditResponse``. When the playbook was already
used by an incident the edit forks a new version; clients must switch to the
returned ``playbook.id`` for further edits.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from opsdesk_core import playbooks, playbook_steps, schemas

from ...database import get_db

logger = logging.getLogger("opsdesk-core.api.playbooks")

router = APIRouter(tags=["playbooks"])


def _get_or_404(db: Session, playbook_id: str):
    playbook = playbooks.get_playbook(db, playbook_id)
    if not playbook:
        raise HTTPException(status_code=404, detail=f"Playbook not found: {playbook_id}")
    return playbook


def _edit_response(db: Session, target: playbooks.EditTarget) -> schemas.PlaybookEditResponse:
    return schemas.PlaybookEditResponse(
        forked=target.forked,
        previous_playbook_id=target.previous.id if target.forked else None,
        playbook=schemas.PlaybookResponse.model_validate(target.playbook),
        steps=playbook_steps.list_by_playbook(db, target.playbook.id),
    )


@router.get("/", response_model=list[schemas.PlaybookResponse])
def list_playbooks(
    active_only: bool = Query(True, description="Only the active version of each playbook"),
    incident_type: Optional[str] = Query(None, description="Filter active playbooks by incident type"),
    db: Session = Depends(get_db),
):
    """List playbooks."""
    if active_only:
        return playbooks.list_active_playbooks(db, incident_type=incident_type)
    return playbooks.list_playbooks(db)


@router.post("/", response_model=schemas.PlaybookResponse, status_code=status.HTTP_201_CREATED)
def create_playbook(data: schemas.PlaybookSave, db: Session = Depends(get_db)):
    """Create a playbook at version 1."""
    return playbooks.save_playbook(db, data.model_copy(update={"id": None}))


@router.get("/{playbook_id}", response_model=schemas.PlaybookResponse)
def get_playbook(playbook_id: str, db: Session = Depends(get_db)):
    """Get one playbook version."""
    return _get_or_404(db, playbook_id)


@router.patch("/{playbook_id}", response_model=schemas.PlaybookResponse)
def update_playbook(playbook_id: str, data: schemas.PlaybookSave, db: Session = Depends(get_db)):
    """Update playbook metadata in place. Metadata edits never fork."""
    data = data.model_copy(update={"id": playbook_id})
    return playbooks.save_playbook(db, data)


@router.post("/{playbook_id}/activate", response_model=schemas.PlaybookResponse)
def activate_playbook(playbook_id: str, db: Session = Depends(get_db)):
    """Make this version the only active version of its lineage."""
    return playbooks.activate_playbook(db, playbook_id)


@router.get("/{playbook_id}/versions", response_model=list[schemas.PlaybookResponse])
def list_versions(playbook_id: str, db: Session = Depends(get_db)):
    """List every version in this playbook's lineage, oldest first."""
    playbook = _get_or_404(db, playbook_id)
    return playbooks.list_versions(db, playbook.lineage_id)


@router.get("/{playbook_id}/steps", response_model=list[schemas.ExpandedStep])
def list_steps(playbook_id: str, db: Session = Depends(get_db)):
    """List steps with their effective title, department and SLA."""
    _get_or_404(db, playbook_id)
    return playbook_steps.list_by_playbook(db, playbook_id)


@router.post(
    "/{playbook_id}/steps",
    response_model=schemas.PlaybookEditResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_step(playbook_id: str, data: schemas.PlaybookStepCreate, db: Session = Depends(get_db)):
    """Append a step from a template."""
    target, step = playbooks.add_playbook_step(db, playbook_id, data.task_template_id, data.overrides)
    logger.info(f"Added step {step.step_order} to playbook {target.playbook.id}")
    return _edit_response(db, target)


@router.delete("/{playbook_id}/steps/{step_id}", response_model=schemas.PlaybookEditResponse)
def delete_step(playbook_id: str, step_id: str, db: Session = Depends(get_db)):
    """Delete a step; remaining steps are renumbered."""
    target = playbooks.delete_playbook_step(db, playbook_id, step_id)
    return _edit_response(db, target)


@router.post("/{playbook_id}/steps/reorder", response_model=schemas.PlaybookEditResponse)
def reorder_steps(playbook_id: str, data: schemas.PlaybookStepReorder, db: Session = Depends(get_db)):
    """Move a step from one 0-based position to another."""
    target = playbooks.reorder_playbook_steps(db, playbook_id, data.from_index, data.to_index)
    return _edit_response(db, target)
