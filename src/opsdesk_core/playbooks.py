"""Playbook versioning service.

A playbook version that any incident references is immutable history.
Editing the steps of such a version transparently forks a new version
(copy-on-write): the old version is deactivated, a copy with
``version = latest + 1`` becomes the active one, and all steps are cloned.

Step edits must go through ``add_playbook_step``, ``delete_playbook_step``
and ``reorder_playbook_steps``. They call ``ensure_editable`` first and apply
the change only to the version it returns. When the edit forked, any step id
or position the caller held refers to the old version, so deletes and
reorders are aborted with ``StaleVersionReferenceError`` instead of being
applied to the wrong version.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models, schemas, playbook_steps, task_templates
from .exceptions import NotFoundError, StaleVersionReferenceError, InvalidReorderError

logger = logging.getLogger("opsdesk-core.playbooks")


# =============================================================================
# Per-lineage locking
# =============================================================================

LOCK_STRIPES = 64

# Fixed pool: lineages share stripes, so memory stays bounded however many
# lineages a process touches. Never hold two lineage locks at once.
_lock_stripes: tuple[threading.RLock, ...] = tuple(threading.RLock() for _ in range(LOCK_STRIPES))


def _lock_for(lineage_id: str) -> threading.RLock:
    return _lock_stripes[hash(lineage_id) % LOCK_STRIPES]


@contextmanager
def playbook_lock(lineage_id: str) -> Iterator[None]:
    """Serialize edits and task generation for one playbook lineage in-process."""
    with _lock_for(lineage_id):
        yield


# =============================================================================
# Edit targets
# =============================================================================

@dataclass(frozen=True)
class Unchanged:
    """The playbook was not in use; edits apply to it directly."""

    playbook: models.Playbook
    forked: bool = False


@dataclass(frozen=True)
class Forked:
    """The playbook was in use; ``playbook`` is the freshly created version."""

    previous: models.Playbook
    playbook: models.Playbook
    forked: bool = True


EditTarget = Union[Unchanged, Forked]


# =============================================================================
# Playbook CRUD
# =============================================================================

def get_playbook(db: Session, playbook_id: Optional[str]) -> Optional[models.Playbook]:
    """Get a playbook version by ID."""
    if not playbook_id:
        return None
    return db.query(models.Playbook).filter(
        models.Playbook.id == playbook_id
    ).first()


def _require_playbook(db: Session, playbook_id: str) -> models.Playbook:
    playbook = get_playbook(db, playbook_id)
    if not playbook:
        raise NotFoundError("Playbook", playbook_id)
    return playbook


def list_playbooks(db: Session) -> list[models.Playbook]:
    """List every playbook version ordered by name, then version."""
    return db.query(models.Playbook).order_by(
        models.Playbook.name.asc(),
        models.Playbook.version.asc(),
    ).all()


def list_active_playbooks(db: Session, incident_type: Optional[str] = None) -> list[models.Playbook]:
    """List active playbook versions, optionally for one incident type."""
    query = db.query(models.Playbook).filter(models.Playbook.active == True)  # noqa: E712
    if incident_type:
        query = query.filter(models.Playbook.incident_type == incident_type)
    return query.order_by(models.Playbook.name.asc()).all()


def list_versions(db: Session, lineage_id: str) -> list[models.Playbook]:
    """List all versions of one logical playbook, oldest first."""
    return db.query(models.Playbook).filter(
        models.Playbook.lineage_id == lineage_id
    ).order_by(models.Playbook.version.asc()).all()


def save_playbook(db: Session, data: schemas.PlaybookSave) -> models.Playbook:
    """Create or update a playbook.

    Without ``id`` a new lineage starts at version 1. With ``id`` the given
    fields are patched in place; metadata edits never fork. Plain saves do
    not enforce the single-active-version rule; use ``activate_playbook``.

    Raises:
        NotFoundError: If ``id`` is given but does not exist
    """
    if data.id:
        playbook = _require_playbook(db, data.id)
        update_data = data.model_dump(exclude_unset=True, exclude={"id"})
        for field, value in update_data.items():
            if value is None and field in ("name", "incident_type", "active"):
                continue
            setattr(playbook, field, value)
        db.commit()
        db.refresh(playbook)
        logger.info(f"Updated playbook '{playbook.name}' v{playbook.version}")
        return playbook

    playbook_id = models.new_id()
    playbook = models.Playbook(
        id=playbook_id,
        lineage_id=playbook_id,
        name=data.name or "New playbook",
        incident_type=data.incident_type or "General",
        description=data.description or "",
        active=True if data.active is None else data.active,
        version=1,
    )
    db.add(playbook)
    db.commit()
    db.refresh(playbook)

    logger.info(f"Created playbook '{playbook.name}' v1")
    return playbook


def activate_playbook(db: Session, playbook_id: str) -> models.Playbook:
    """Make one version the single active version of its lineage."""
    playbook = _require_playbook(db, playbook_id)
    db.query(models.Playbook).filter(
        models.Playbook.lineage_id == playbook.lineage_id,
        models.Playbook.id != playbook.id,
    ).update({models.Playbook.active: False}, synchronize_session="fetch")
    playbook.active = True
    db.commit()
    db.refresh(playbook)

    logger.info(f"Activated playbook '{playbook.name}' v{playbook.version}")
    return playbook


# =============================================================================
# Versioning
# =============================================================================

def is_playbook_used(db: Session, playbook_id: str) -> bool:
    """True iff any incident references this exact playbook version."""
    return db.query(models.Incident.id).filter(
        models.Incident.playbook_id == playbook_id
    ).first() is not None


def get_next_version_number(db: Session, lineage_id: str) -> int:
    """Next version number for a lineage (max + 1)."""
    max_version = db.query(func.max(models.Playbook.version)).filter(
        models.Playbook.lineage_id == lineage_id
    ).scalar() or 0
    return max_version + 1


def create_next_version(db: Session, playbook_id: str) -> models.Playbook:
    """Fork a playbook into a new active version with cloned steps.

    Deactivation of the lineage, the new playbook row and the cloned steps
    are committed in one transaction; on failure nothing is persisted.

    Args:
        db: Database session
        playbook_id: Version being forked

    Returns:
        The new Playbook version

    Raises:
        NotFoundError: If the playbook does not exist
    """
    current = db.query(models.Playbook).filter(
        models.Playbook.id == playbook_id
    ).with_for_update().first()
    if not current:
        raise NotFoundError("Playbook", playbook_id)

    try:
        db.query(models.Playbook).filter(
            models.Playbook.lineage_id == current.lineage_id,
            models.Playbook.active == True,  # noqa: E712
        ).update({models.Playbook.active: False}, synchronize_session="fetch")

        new_version = models.Playbook(
            id=models.new_id(),
            lineage_id=current.lineage_id,
            name=current.name,
            incident_type=current.incident_type,
            description=current.description,
            active=True,
            version=get_next_version_number(db, current.lineage_id),
        )
        db.add(new_version)
        db.flush()

        cloned = playbook_steps.clone_steps(db, current.id, new_version.id)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Failed to fork playbook {playbook_id}; rolled back", exc_info=True)
        raise

    db.refresh(new_version)
    logger.info(
        f"Forked playbook '{new_version.name}' v{current.version} -> v{new_version.version} "
        f"({len(cloned)} steps cloned)"
    )
    return new_version


def ensure_editable(db: Session, playbook_id: str) -> EditTarget:
    """Return the playbook version that edits must be applied to.

    Unused playbooks are returned unchanged (idempotent, no fork). A playbook
    referenced by any incident is forked via ``create_next_version``.

    Raises:
        NotFoundError: If the playbook does not exist
    """
    playbook = _require_playbook(db, playbook_id)

    if not is_playbook_used(db, playbook.id):
        logger.debug(f"Playbook {playbook.id} not in use, editing in place")
        return Unchanged(playbook=playbook)

    logger.info(f"Playbook '{playbook.name}' v{playbook.version} is in use by incidents; forking")
    new_version = create_next_version(db, playbook.id)
    return Forked(previous=playbook, playbook=new_version)


# =============================================================================
# Guarded step mutations
# =============================================================================

def _stale(requested_playbook_id: str, target: Forked) -> StaleVersionReferenceError:
    message = (
        f"Playbook {requested_playbook_id} is in use, so version {target.playbook.version} "
        f"({target.playbook.id}) was created. Reload its steps and repeat the change there."
    )
    logger.warning(message)
    return StaleVersionReferenceError(
        message,
        requested_playbook_id=requested_playbook_id,
        current_playbook=target.playbook,
    )


def add_playbook_step(
    db: Session,
    playbook_id: str,
    template_id: str,
    overrides: Optional[schemas.StepOverrides] = None,
) -> tuple[EditTarget, models.PlaybookStep]:
    """Append a step, forking first if the playbook is in use.

    Appending holds no reference to existing steps, so it is applied to the
    returned version even after a fork.

    The template is checked before any fork so a bad request never creates
    a version.

    Returns:
        Tuple of (edit target, created step)

    Raises:
        NotFoundError: If the playbook or template does not exist
    """
    playbook = _require_playbook(db, playbook_id)
    if not task_templates.get_template(db, template_id):
        raise NotFoundError("TaskTemplate", template_id)

    with playbook_lock(playbook.lineage_id):
        target = ensure_editable(db, playbook_id)
        step = playbook_steps.add_step(db, target.playbook.id, template_id, overrides)
    return target, step


def delete_playbook_step(db: Session, playbook_id: str, step_id: str) -> EditTarget:
    """Delete a step, forking first if the playbook is in use.

    Raises:
        NotFoundError: If the playbook or step does not exist, or the step is not part of ``playbook_id``
        StaleVersionReferenceError: If editing forked a new version (the step
            id is then stale)
    """
    playbook = _require_playbook(db, playbook_id)
    step = playbook_steps.get_step(db, step_id)
    if not step:
        raise NotFoundError("PlaybookStep", step_id)
    if step.playbook_id != playbook.id:
        logger.warning(f"Step {step_id} belongs to playbook {step.playbook_id}, not {playbook_id}")
        raise NotFoundError("PlaybookStep", step_id)

    with playbook_lock(playbook.lineage_id):
        target = ensure_editable(db, playbook_id)
        if target.forked:
            raise _stale(playbook_id, target)
        playbook_steps.delete_step(db, step_id)
    return target


def reorder_playbook_steps(
    db: Session,
    playbook_id: str,
    from_index: int,
    to_index: int,
) -> EditTarget:
    """Move a step, forking first if the playbook is in use.

    Indices are validated before any fork so a bad request never creates a
    version.

    Raises:
        NotFoundError: If the playbook does not exist
        InvalidReorderError: If either index is out of range
        StaleVersionReferenceError: If editing forked a new version
    """
    playbook = _require_playbook(db, playbook_id)
    count = playbook_steps.count_steps(db, playbook_id)
    if not (0 <= from_index < count and 0 <= to_index < count):
        raise InvalidReorderError(
            f"Cannot move step {from_index} -> {to_index}: playbook has {count} steps",
            from_index=from_index,
            to_index=to_index,
            step_count=count,
        )

    with playbook_lock(playbook.lineage_id):
        target = ensure_editable(db, playbook_id)
        if target.forked:
            raise _stale(playbook_id, target)
        playbook_steps.reorder(db, playbook_id, from_index, to_index)
    return target
