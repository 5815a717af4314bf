"""Department directory and leadership resolution.

Departments are the routing target for incident tasks. Each department may
designate a leader, who becomes the default assignee of generated tasks.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .exceptions import NotFoundError

logger = logging.getLogger("opsdesk-core.departments")


# =============================================================================
# Department Directory
# =============================================================================

def create_department(db: Session, name: str) -> models.Department:
    """Create an active department."""
    department = models.Department(name=name, active=True)
    db.add(department)
    db.commit()
    db.refresh(department)

    logger.info(f"Created department '{department.name}'")
    return department


def get_department(db: Session, department_id: Optional[str]) -> Optional[models.Department]:
    """Get a department by ID, active or not."""
    if not department_id:
        return None
    return db.query(models.Department).filter(
        models.Department.id == department_id
    ).first()


def list_departments(db: Session, include_inactive: bool = False) -> list[models.Department]:
    """List departments ordered by name."""
    query = db.query(models.Department)
    if not include_inactive:
        query = query.filter(models.Department.active == True)  # noqa: E712
    return query.order_by(models.Department.name.asc()).all()


def deactivate_department(db: Session, department_id: str) -> models.Department:
    """Soft-delete a department.

    Raises:
        NotFoundError: If the department does not exist
    """
    department = get_department(db, department_id)
    if not department:
        raise NotFoundError("Department", department_id)

    department.active = False
    db.commit()
    db.refresh(department)

    logger.info(f"Deactivated department '{department.name}'")
    return department


def get_department_name(db: Session, department_id: Optional[str]) -> str:
    """Display name of a department, or the fallback label when unknown."""
    department = get_department(db, department_id)
    if department:
        return department.name
    return get_settings().fallback_department_name


# =============================================================================
# Membership & Leadership
# =============================================================================

def add_member(
    db: Session,
    department_id: str,
    user_email: str,
    role: models.MemberRole = models.MemberRole.MEMBER,
) -> models.DepartmentMember:
    """Add a user to a department.

    Raises:
        NotFoundError: If the department does not exist
    """
    if not get_department(db, department_id):
        raise NotFoundError("Department", department_id)

    member = models.DepartmentMember(
        department_id=department_id,
        user_email=user_email,
        role=models.MemberRole(role),
        active=True,
    )
    db.add(member)
    db.commit()
    db.refresh(member)

    logger.info(f"Added {user_email} to department {department_id} as {member.role.value}")
    return member


def list_members(db: Session, department_id: str) -> list[models.DepartmentMember]:
    """List active members of a department."""
    return db.query(models.DepartmentMember).filter(
        models.DepartmentMember.department_id == department_id,
        models.DepartmentMember.active == True,  # noqa: E712
    ).order_by(models.DepartmentMember.created_at.asc()).all()


def deactivate_member(db: Session, member_id: str) -> models.DepartmentMember:
    """Deactivate a department membership.

    Raises:
        NotFoundError: If the membership does not exist
    """
    member = db.query(models.DepartmentMember).filter(
        models.DepartmentMember.id == member_id
    ).first()
    if not member:
        raise NotFoundError("DepartmentMember", member_id)

    member.active = False
    db.commit()
    db.refresh(member)
    return member


def get_leader(db: Session, department_id: Optional[str]) -> Optional[models.DepartmentMember]:
    """Resolve the active leader of a department.

    When several active leaders exist, the most recently added one wins.

    Args:
        db: Database session
        department_id: Department to look up (None resolves to no leader)

    Returns:
        Leader membership or None
    """
    if not department_id:
        return None

    return db.query(models.DepartmentMember).filter(
        models.DepartmentMember.department_id == department_id,
        models.DepartmentMember.role == models.MemberRole.LEADER,
        models.DepartmentMember.active == True,  # noqa: E712
    ).order_by(
        models.DepartmentMember.created_at.desc(),
        models.DepartmentMember.id.desc(),
    ).first()
