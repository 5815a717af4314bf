"""SQLAlchemy database models."""
from datetime import datetime
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    Boolean,
    UniqueConstraint,
    JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()

# Structured columns use JSONB on PostgreSQL and plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    """Generate an opaque string identifier."""
    return str(uuid4())


def _enum_values(enum_cls):
    # Persist enum values (lowercase) instead of names (UPPERCASE)
    return [e.value for e in enum_cls]


class SlaUnit(str, enum.Enum):
    """Unit an SLA value is expressed in."""

    HOURS = "hours"
    DAYS = "days"


class MemberRole(str, enum.Enum):
    """Department member role enum."""

    LEADER = "leader"
    MEMBER = "member"


class IncidentStatus(str, enum.Enum):
    """Incident lifecycle status enum."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class IncidentImpact(str, enum.Enum):
    """Incident impact level enum."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskStatus(str, enum.Enum):
    """Incident task lifecycle status enum.

    Tasks move forward only: pending -> in_progress -> done.
    """

    PENDING = "pending"  # Not yet started
    IN_PROGRESS = "in_progress"  # Currently being worked on
    DONE = "done"  # Terminal


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    TASK_ASSIGNED = "task_assigned"
    TASK_OVERDUE = "task_overdue"
    INCIDENT_UPDATE = "incident_update"
    SYSTEM = "system"


class NotificationSeverity(str, enum.Enum):
    """Notification severity enum."""

    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"
    SUCCESS = "success"


# ============================================================================
# Directory Models
# ============================================================================


class Department(Base):
    """Department that owns tasks and templates.

    Departments are soft-deactivated, never hard-deleted: historical tasks
    and playbook steps keep referencing inactive departments.
    """

    __tablename__ = "departments"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    members = relationship("DepartmentMember", back_populates="department")

    def __repr__(self) -> str:
        return f"<Department {self.name}>"


class DepartmentMember(Base):
    """Membership of a user (by email) in a department."""

    __tablename__ = "department_members"

    id = Column(String(36), primary_key=True, default=new_id)
    department_id = Column(
        String(36),
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_email = Column(String(255), nullable=False)
    role = Column(Enum(MemberRole, values_callable=_enum_values), nullable=False, default=MemberRole.MEMBER)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    department = relationship("Department", back_populates="members")

    def __repr__(self) -> str:
        return f"<DepartmentMember {self.user_email} ({self.role.value})>"


# ============================================================================
# Playbook Models
# ============================================================================


class TaskTemplate(Base):
    """Reusable task definition referenced by playbook steps.

    Deactivating a template hides it from step pickers but steps already
    built from it keep resolving against it.
    """

    __tablename__ = "task_templates"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    default_department_id = Column(
        String(36),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True
    )
    default_sla_value = Column(Integer, nullable=False, default=1)
    default_sla_unit = Column(Enum(SlaUnit, values_callable=_enum_values), nullable=False, default=SlaUnit.DAYS)
    active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    default_department = relationship("Department")

    __table_args__ = (
        CheckConstraint("default_sla_value >= 0", name="ck_task_template_sla_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<TaskTemplate {self.title}>"


class Playbook(Base):
    """Versioned, ordered template of tasks spawned for an incident.

    All versions of one logical playbook share ``lineage_id`` (the id of
    version 1). At most one version per lineage is active after a fork.
    A version referenced by any incident is immutable history.
    """

    __tablename__ = "playbooks"

    id = Column(String(36), primary_key=True, default=new_id)
    lineage_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    incident_type = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    steps = relationship(
        "PlaybookStep",
        back_populates="playbook",
        cascade="all, delete-orphan",
        order_by="PlaybookStep.step_order",
    )

    __table_args__ = (
        UniqueConstraint("lineage_id", "version", name="uq_playbook_lineage_version"),
        CheckConstraint("version >= 1", name="ck_playbook_version_positive"),
    )

    def __repr__(self) -> str:
        return f"<Playbook {self.name} v{self.version}>"


class PlaybookStep(Base):
    """One entry in a playbook's ordered task list.

    ``step_order`` is dense (1..N) within a playbook. Override columns win
    over the template defaults when set.
    """

    __tablename__ = "playbook_steps"

    id = Column(String(36), primary_key=True, default=new_id)
    playbook_id = Column(
        String(36),
        ForeignKey("playbooks.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    step_order = Column(Integer, nullable=False)
    task_template_id = Column(
        String(36),
        ForeignKey("task_templates.id", ondelete="SET NULL"),
        nullable=True
    )
    override_title = Column(String(200), nullable=True)
    override_department_id = Column(
        String(36),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True
    )
    override_sla_value = Column(Integer, nullable=True)
    override_sla_unit = Column(Enum(SlaUnit, values_callable=_enum_values), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    playbook = relationship("Playbook", back_populates="steps")
    template = relationship("TaskTemplate")

    __table_args__ = (
        CheckConstraint("step_order >= 1", name="ck_playbook_step_order_positive"),
    )

    def __repr__(self) -> str:
        return f"<PlaybookStep {self.playbook_id}#{self.step_order}>"


# ============================================================================
# Incident Models
# ============================================================================


class Incident(Base):
    """Operational incident, optionally driven by a playbook.

    Once ``playbook_id`` is set, that playbook version is load-bearing
    history and must never be edited in place.
    """

    __tablename__ = "incidents"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(IncidentStatus, values_callable=_enum_values),
        nullable=False,
        default=IncidentStatus.OPEN,
        index=True
    )
    incident_type = Column(String(100), nullable=False)
    impact = Column(
        Enum(IncidentImpact, values_callable=_enum_values),
        nullable=False,
        default=IncidentImpact.MEDIUM
    )
    playbook_id = Column(
        String(36),
        ForeignKey("playbooks.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    origin_type = Column(String(50), nullable=False, default="manual")
    context = Column(JSONType, nullable=True)  # Opaque origin data
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    closed_at = Column(DateTime, nullable=True)

    playbook = relationship("Playbook")
    tasks = relationship(
        "IncidentTask",
        back_populates="incident",
        cascade="all, delete-orphan",
        order_by="IncidentTask.step_order",
    )
    logs = relationship("IncidentLog", back_populates="incident", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Incident {self.title[:30]}>"


class IncidentTask(Base):
    """Concrete task attached to an incident."""

    __tablename__ = "incident_tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    incident_id = Column(
        String(36),
        ForeignKey("incidents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    step_order = Column(Integer, nullable=False)
    title = Column(String(200), nullable=False)
    department_id = Column(
        String(36),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True
    )
    sla_value = Column(Integer, nullable=True)
    sla_unit = Column(Enum(SlaUnit, values_callable=_enum_values), nullable=True)
    due_at = Column(DateTime, nullable=True, index=True)
    status = Column(
        Enum(TaskStatus, values_callable=_enum_values),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True
    )
    assigned_to = Column(String(255), nullable=True, index=True)
    evidence = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    last_status_change_at = Column(DateTime, nullable=True)

    incident = relationship("Incident", back_populates="tasks")
    department = relationship("Department")

    def __repr__(self) -> str:
        return f"<IncidentTask {self.step_order}: {self.title[:30]}>"


class IncidentLog(Base):
    """Free-text audit entry on an incident."""

    __tablename__ = "incident_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    incident_id = Column(
        String(36),
        ForeignKey("incidents.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    message = Column(Text, nullable=False)
    author = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    incident = relationship("Incident", back_populates="logs")

    def __repr__(self) -> str:
        return f"<IncidentLog {self.incident_id}: {self.message[:30]}>"


# ============================================================================
# Notification Models
# ============================================================================


class Notification(Base):
    """In-app notification addressed to a user email."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_email = Column(String(255), nullable=False, index=True)
    type = Column(Enum(NotificationType, values_callable=_enum_values), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    entity_type = Column(String(20), nullable=False)  # 'task' or 'incident'
    entity_id = Column(String(36), nullable=False, index=True)
    severity = Column(
        Enum(NotificationSeverity, values_callable=_enum_values),
        nullable=False,
        default=NotificationSeverity.INFO
    )
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    read_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Notification {self.type.value} -> {self.user_email}>"
