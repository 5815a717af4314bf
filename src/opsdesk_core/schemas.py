"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ConfigDict

from .models import (
    SlaUnit,
    MemberRole,
    IncidentStatus,
    IncidentImpact,
    TaskStatus,
    NotificationType,
    NotificationSeverity,
)


# ============================================================================
# Department Schemas
# ============================================================================


class DepartmentCreate(BaseModel):
    """Schema for creating a department."""

    name: str = Field(..., min_length=1, max_length=200)


class DepartmentResponse(BaseModel):
    """Schema for department response."""

    id: str
    name: str
    active: bool

    model_config = ConfigDict(from_attributes=True)


class DepartmentMemberCreate(BaseModel):
    """Schema for adding a member to a department."""

    user_email: str = Field(..., min_length=3, max_length=255)
    role: MemberRole = MemberRole.MEMBER


class DepartmentMemberResponse(BaseModel):
    """Schema for department member response."""

    id: str
    department_id: str
    user_email: str
    role: MemberRole
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Task Template Schemas
# ============================================================================


class TaskTemplateCreate(BaseModel):
    """Schema for creating a task template."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    default_department_id: Optional[str] = None
    default_sla_value: int = Field(1, ge=0)
    default_sla_unit: SlaUnit = SlaUnit.DAYS


class TaskTemplateUpdate(BaseModel):
    """Schema for updating a task template."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    default_department_id: Optional[str] = None
    default_sla_value: Optional[int] = Field(None, ge=0)
    default_sla_unit: Optional[SlaUnit] = None
    active: Optional[bool] = None


class TaskTemplateResponse(BaseModel):
    """Schema for task template response."""

    id: str
    title: str
    description: Optional[str] = None
    default_department_id: Optional[str] = None
    default_sla_value: int
    default_sla_unit: SlaUnit
    active: bool

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Playbook Schemas
# ============================================================================


class PlaybookSave(BaseModel):
    """Schema for creating (no id) or updating (with id) a playbook."""

    id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    incident_type: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    active: Optional[bool] = None


class PlaybookResponse(BaseModel):
    """Schema for playbook response."""

    id: str
    lineage_id: str
    name: str
    incident_type: str
    description: Optional[str] = None
    active: bool
    version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StepOverrides(BaseModel):
    """Per-step overrides of the template defaults. Unset fields inherit."""

    title: Optional[str] = Field(None, max_length=200)
    department_id: Optional[str] = None
    sla_value: Optional[int] = Field(None, ge=0)
    sla_unit: Optional[SlaUnit] = None


class PlaybookStepCreate(BaseModel):
    """Schema for appending a step to a playbook."""

    task_template_id: str
    overrides: StepOverrides = Field(default_factory=StepOverrides)


class PlaybookStepReorder(BaseModel):
    """Schema for moving a step between 0-based positions."""

    from_index: int
    to_index: int


class EffectiveStep(BaseModel):
    """What a step actually does once overrides and defaults are resolved."""

    title: str
    department_id: Optional[str] = None
    department_name: str
    sla_value: int
    sla_unit: SlaUnit
    template_title: Optional[str] = None


class ExpandedStep(BaseModel):
    """Playbook step enriched with its effective values."""

    id: str
    playbook_id: str
    step_order: int
    task_template_id: Optional[str] = None
    override_title: Optional[str] = None
    override_department_id: Optional[str] = None
    override_sla_value: Optional[int] = None
    override_sla_unit: Optional[SlaUnit] = None
    active: bool
    effective_title: str
    effective_department_id: Optional[str] = None
    effective_department_name: str
    effective_sla_value: int
    effective_sla_unit: SlaUnit
    template_title: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class PlaybookEditResponse(BaseModel):
    """Result of a guarded playbook edit.

    ``forked`` is true when the edit created a new version; ``playbook`` is
    always the version the edit was applied to.
    """

    forked: bool
    previous_playbook_id: Optional[str] = None
    playbook: PlaybookResponse
    steps: list[ExpandedStep]


# ============================================================================
# Incident Schemas
# ============================================================================


class IncidentCreate(BaseModel):
    """Schema for creating an incident."""

    title: str = Field(..., min_length=1, max_length=300)
    description: Optional[str] = None
    incident_type: str = Field(..., min_length=1, max_length=100)
    impact: IncidentImpact = IncidentImpact.MEDIUM
    playbook_id: Optional[str] = None
    origin_type: str = Field("manual", max_length=50)
    context: Optional[dict[str, Any]] = None


class IncidentUpdate(BaseModel):
    """Schema for updating an incident."""

    title: Optional[str] = Field(None, min_length=1, max_length=300)
    description: Optional[str] = None
    status: Optional[IncidentStatus] = None
    impact: Optional[IncidentImpact] = None
    context: Optional[dict[str, Any]] = None


class IncidentResponse(BaseModel):
    """Schema for incident response."""

    id: str
    title: str
    description: Optional[str] = None
    status: IncidentStatus
    incident_type: str
    impact: IncidentImpact
    playbook_id: Optional[str] = None
    origin_type: str
    context: Optional[dict[str, Any]] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class IncidentLogCreate(BaseModel):
    """Schema for adding an incident log entry."""

    message: str = Field(..., min_length=1)


class IncidentLogResponse(BaseModel):
    """Schema for incident log entry."""

    id: str
    incident_id: str
    message: str
    author: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Incident Task Schemas
# ============================================================================


class IncidentTaskCreate(BaseModel):
    """Schema for creating an ad-hoc incident task."""

    incident_id: str
    title: str = Field(..., min_length=1, max_length=200)
    department_id: Optional[str] = None
    sla_value: Optional[int] = Field(None, ge=0)
    sla_unit: Optional[SlaUnit] = None
    due_at: Optional[datetime] = None
    assigned_to: Optional[str] = None
    step_order: Optional[int] = Field(None, ge=1)


class IncidentTaskUpdate(BaseModel):
    """Schema for updating an incident task."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    status: Optional[TaskStatus] = None
    assigned_to: Optional[str] = None
    evidence: Optional[str] = None
    due_at: Optional[datetime] = None


class IncidentTaskResponse(BaseModel):
    """Schema for incident task response."""

    id: str
    incident_id: str
    step_order: int
    title: str
    department_id: Optional[str] = None
    sla_value: Optional[int] = None
    sla_unit: Optional[SlaUnit] = None
    due_at: Optional[datetime] = None
    status: TaskStatus
    assigned_to: Optional[str] = None
    evidence: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_status_change_at: Optional[datetime] = None
    is_overdue: bool = Field(False, description="True if due_at is past and status is not done")

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Notification Schemas
# ============================================================================


class NotificationCreate(BaseModel):
    """Schema for creating a notification."""

    user_email: str
    type: NotificationType
    title: str = Field(..., max_length=200)
    message: str
    entity_type: str = Field(..., max_length=20)
    entity_id: str
    severity: NotificationSeverity = NotificationSeverity.INFO


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    id: str
    user_email: str
    type: NotificationType
    title: str
    message: str
    entity_type: str
    entity_id: str
    severity: NotificationSeverity
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)
