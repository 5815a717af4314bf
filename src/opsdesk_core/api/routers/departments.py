"""Department directory API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from opsdesk_core import departments, schemas

from ...database import get_db

logger = logging.getLogger("opsdesk-core.api.departments")

router = APIRouter(tags=["departments"])


@router.get("/", response_model=list[schemas.DepartmentResponse])
def list_departments(
    include_inactive: bool = Query(False, description="Include deactivated departments"),
    db: Session = Depends(get_db),
):
    """List departments ordered by name."""
    return departments.list_departments(db, include_inactive=include_inactive)


@router.post("/", response_model=schemas.DepartmentResponse, status_code=status.HTTP_201_CREATED)
def create_department(data: schemas.DepartmentCreate, db: Session = Depends(get_db)):
    """Create a department."""
    return departments.create_department(db, data.name)


@router.delete("/{department_id}", response_model=schemas.DepartmentResponse)
def deactivate_department(department_id: str, db: Session = Depends(get_db)):
    """Deactivate a department. Departments are never hard-deleted."""
    return departments.deactivate_department(db, department_id)


@router.get("/{department_id}/members", response_model=list[schemas.DepartmentMemberResponse])
def list_members(department_id: str, db: Session = Depends(get_db)):
    """List active members of a department."""
    return departments.list_members(db, department_id)


@router.post(
    "/{department_id}/members",
    response_model=schemas.DepartmentMemberResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_member(department_id: str, data: schemas.DepartmentMemberCreate, db: Session = Depends(get_db)):
    """Add a member (or leader) to a department."""
    return departments.add_member(db, department_id, data.user_email, data.role)


@router.get("/{department_id}/leader", response_model=Optional[schemas.DepartmentMemberResponse])
def get_leader(department_id: str, db: Session = Depends(get_db)):
    """Get the department leader used as default task assignee."""
    if not departments.get_department(db, department_id):
        raise HTTPException(status_code=404, detail=f"Department not found: {department_id}")
    return departments.get_leader(db, department_id)
