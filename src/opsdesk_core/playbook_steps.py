"""Playbook step store.

Steps are kept in a dense 1..N ``step_order`` sequence per playbook. Every
operation that changes membership or position renumbers the whole list, so
task generation can rely on reading steps in exactly that order.

Override resolution (``override ?? template default ?? configured fallback``)
lives in ``resolve_effective`` and nowhere else.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models, schemas
from .config import get_settings
from .exceptions import NotFoundError, InvalidReorderError

logger = logging.getLogger("opsdesk-core.playbook_steps")


def resolve_effective(
    step: models.PlaybookStep,
    template: Optional[models.TaskTemplate],
    department_names: Optional[dict[str, str]] = None,
) -> schemas.EffectiveStep:
    """Resolve what a step actually does.

    Each field takes the step override when set, otherwise the template
    default, otherwise the configured fallback. A missing template or
    department degrades to fallback labels instead of failing.

    Args:
        step: The playbook step
        template: The step's template (None if deleted or unknown)
        department_names: Department id -> display name lookup

    Returns:
        EffectiveStep with resolved title, department, and SLA
    """
    settings = get_settings()
    department_names = department_names or {}

    department_id = step.override_department_id or (template.default_department_id if template else None)

    if step.override_sla_value is not None:
        sla_value = step.override_sla_value
    elif template is not None and template.default_sla_value is not None:
        sla_value = template.default_sla_value
    else:
        sla_value = settings.default_sla_value

    if step.override_sla_unit is not None:
        sla_unit = step.override_sla_unit
    elif template is not None and template.default_sla_unit is not None:
        sla_unit = template.default_sla_unit
    else:
        sla_unit = settings.default_sla_unit

    return schemas.EffectiveStep(
        title=step.override_title or (template.title if template else None) or settings.fallback_task_title,
        department_id=department_id,
        department_name=department_names.get(department_id) or settings.fallback_department_name,
        sla_value=sla_value,
        sla_unit=models.SlaUnit(sla_unit),
        template_title=template.title if template else None,
    )


def get_step(db: Session, step_id: str) -> Optional[models.PlaybookStep]:
    """Get a step by ID."""
    return db.query(models.PlaybookStep).filter(
        models.PlaybookStep.id == step_id
    ).first()


def get_steps(db: Session, playbook_id: str) -> list[models.PlaybookStep]:
    """Raw steps of a playbook in ``step_order`` order."""
    return db.query(models.PlaybookStep).filter(
        models.PlaybookStep.playbook_id == playbook_id
    ).order_by(
        models.PlaybookStep.step_order.asc(),
        models.PlaybookStep.created_at.asc(),
    ).all()


def count_steps(db: Session, playbook_id: str) -> int:
    """Number of steps in a playbook."""
    return db.query(models.PlaybookStep).filter(
        models.PlaybookStep.playbook_id == playbook_id
    ).count()


def list_by_playbook(db: Session, playbook_id: str) -> list[schemas.ExpandedStep]:
    """List a playbook's steps with their effective values.

    Args:
        db: Database session
        playbook_id: Playbook UUID

    Returns:
        Steps sorted by ``step_order`` ascending
    """
    steps = get_steps(db, playbook_id)
    if not steps:
        return []

    template_ids = {s.task_template_id for s in steps if s.task_template_id}
    templates = {
        t.id: t for t in db.query(models.TaskTemplate).filter(
            models.TaskTemplate.id.in_(template_ids)
        ).all()
    } if template_ids else {}
    department_names = {d.id: d.name for d in db.query(models.Department).all()}

    expanded = []
    for step in steps:
        effective = resolve_effective(step, templates.get(step.task_template_id), department_names)
        expanded.append(schemas.ExpandedStep(
            id=step.id,
            playbook_id=step.playbook_id,
            step_order=step.step_order,
            task_template_id=step.task_template_id,
            override_title=step.override_title,
            override_department_id=step.override_department_id,
            override_sla_value=step.override_sla_value,
            override_sla_unit=step.override_sla_unit,
            active=step.active,
            effective_title=effective.title,
            effective_department_id=effective.department_id,
            effective_department_name=effective.department_name,
            effective_sla_value=effective.sla_value,
            effective_sla_unit=effective.sla_unit,
            template_title=effective.template_title,
        ))
    return expanded


def add_step(
    db: Session,
    playbook_id: str,
    template_id: str,
    overrides: Optional[schemas.StepOverrides] = None,
    order: Optional[int] = None,
) -> models.PlaybookStep:
    """Append a step to the end of a playbook.

    Inserting mid-sequence is not supported; append then ``reorder`` instead.

    Args:
        db: Database session
        playbook_id: Target playbook
        template_id: Template the step is built from
        overrides: Optional title/department/SLA overrides
        order: Expected position; defaults to the next free slot

    Returns:
        Created PlaybookStep

    Raises:
        NotFoundError: If the playbook or template does not exist
        ValueError: If ``order`` is not the next free slot
    """
    if not db.query(models.Playbook.id).filter(models.Playbook.id == playbook_id).first():
        raise NotFoundError("Playbook", playbook_id)
    if not db.query(models.TaskTemplate.id).filter(models.TaskTemplate.id == template_id).first():
        raise NotFoundError("TaskTemplate", template_id)

    next_order = count_steps(db, playbook_id) + 1
    if order is not None and order != next_order:
        raise ValueError(
            f"Steps can only be appended: expected order {next_order}, got {order}. "
            f"Append the step, then reorder it."
        )

    overrides = overrides or schemas.StepOverrides()
    step = models.PlaybookStep(
        playbook_id=playbook_id,
        step_order=next_order,
        task_template_id=template_id,
        override_title=overrides.title,
        override_department_id=overrides.department_id,
        override_sla_value=overrides.sla_value,
        override_sla_unit=models.SlaUnit(overrides.sla_unit) if overrides.sla_unit else None,
        active=True,
    )
    db.add(step)
    db.commit()
    db.refresh(step)

    logger.info(f"Added step {step.step_order} (template {template_id}) to playbook {playbook_id}")
    return step


def normalize_step_order(db: Session, playbook_id: str) -> list[models.PlaybookStep]:
    """Renumber a playbook's steps to 1..N keeping their relative order.

    Does not commit.
    """
    steps = get_steps(db, playbook_id)
    for index, step in enumerate(steps):
        step.step_order = index + 1
    db.flush()
    return steps


def delete_step(db: Session, step_id: str) -> None:
    """Remove a step and close the gap it leaves in ``step_order``.

    Raises:
        NotFoundError: If the step does not exist
    """
    step = get_step(db, step_id)
    if not step:
        raise NotFoundError("PlaybookStep", step_id)

    playbook_id = step.playbook_id
    db.delete(step)
    db.flush()
    normalize_step_order(db, playbook_id)
    db.commit()

    logger.info(f"Deleted step {step_id} from playbook {playbook_id}")


def reorder(
    db: Session,
    playbook_id: str,
    from_index: int,
    to_index: int,
) -> list[models.PlaybookStep]:
    """Move a step between 0-based positions and renumber every step.

    This is a full renumbering pass, not a swap: moving position 0 to
    position 5 shifts every step in between by one.

    Args:
        db: Database session
        playbook_id: Playbook UUID
        from_index: Current 0-based position in the sorted list
        to_index: Target 0-based position

    Returns:
        Steps in their new order

    Raises:
        InvalidReorderError: If either index is out of range (nothing changes)
    """
    steps = get_steps(db, playbook_id)
    count = len(steps)

    if not (0 <= from_index < count and 0 <= to_index < count):
        logger.warning(
            f"Rejected reorder {from_index} -> {to_index} on playbook {playbook_id} with {count} steps"
        )
        raise InvalidReorderError(
            f"Cannot move step {from_index} -> {to_index}: playbook has {count} steps",
            from_index=from_index,
            to_index=to_index,
            step_count=count,
        )

    moved = steps.pop(from_index)
    steps.insert(to_index, moved)
    for index, step in enumerate(steps):
        step.step_order = index + 1

    db.commit()
    logger.info(f"Moved step {moved.id} of playbook {playbook_id} from {from_index} to {to_index}")
    return steps


def clone_steps(db: Session, from_playbook_id: str, to_playbook_id: str) -> list[models.PlaybookStep]:
    """Copy every step of one playbook to another with fresh IDs.

    Order, template, overrides and active flag are preserved. Does not
    commit: the versioning fork commits the clone together with the new
    playbook row.
    """
    clones = []
    for source in get_steps(db, from_playbook_id):
        clone = models.PlaybookStep(
            id=models.new_id(),
            playbook_id=to_playbook_id,
            step_order=source.step_order,
            task_template_id=source.task_template_id,
            override_title=source.override_title,
            override_department_id=source.override_department_id,
            override_sla_value=source.override_sla_value,
            override_sla_unit=source.override_sla_unit,
            active=source.active,
        )
        db.add(clone)
        clones.append(clone)

    db.flush()
    logger.debug(f"Cloned {len(clones)} steps from playbook {from_playbook_id} to {to_playbook_id}")
    return clones
