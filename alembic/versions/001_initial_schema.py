"""Initial schema: directory, playbooks, incidents, tasks and notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enums are created once up front; slaunit is shared by several tables
sla_unit = postgresql.ENUM('hours', 'days', name='slaunit', create_type=False)
member_role = postgresql.ENUM('leader', 'member', name='memberrole', create_type=False)
incident_status = postgresql.ENUM('open', 'in_progress', 'resolved', 'closed', name='incidentstatus', create_type=False)
incident_impact = postgresql.ENUM('low', 'medium', 'high', 'critical', name='incidentimpact', create_type=False)
task_status = postgresql.ENUM('pending', 'in_progress', 'done', name='taskstatus', create_type=False)
notification_type = postgresql.ENUM(
    'task_assigned', 'task_overdue', 'incident_update', 'system',
    name='notificationtype', create_type=False
)
notification_severity = postgresql.ENUM(
    'info', 'warning', 'danger', 'success',
    name='notificationseverity', create_type=False
)

ALL_ENUMS = (
    sla_unit,
    member_role,
    incident_status,
    incident_impact,
    task_status,
    notification_type,
    notification_severity,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    # Directory
    op.create_table(
        'departments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_departments_active', 'departments', ['active'])

    op.create_table(
        'department_members',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('department_id', sa.String(36), sa.ForeignKey('departments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('role', member_role, nullable=False, server_default='member'),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_department_members_department', 'department_members', ['department_id'])

    # Playbooks
    op.create_table(
        'task_templates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('default_department_id', sa.String(36), sa.ForeignKey('departments.id', ondelete='SET NULL')),
        sa.Column('default_sla_value', sa.Integer, nullable=False, server_default='1'),
        sa.Column('default_sla_unit', sla_unit, nullable=False, server_default='days'),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('default_sla_value >= 0', name='ck_task_template_sla_non_negative'),
    )
    op.create_index('idx_task_templates_active', 'task_templates', ['active'])

    op.create_table(
        'playbooks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('lineage_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('incident_type', sa.String(100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('lineage_id', 'version', name='uq_playbook_lineage_version'),
        sa.CheckConstraint('version >= 1', name='ck_playbook_version_positive'),
    )
    op.create_index('idx_playbooks_lineage', 'playbooks', ['lineage_id'])
    op.create_index('idx_playbooks_active', 'playbooks', ['active'])

    op.create_table(
        'playbook_steps',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('playbook_id', sa.String(36), sa.ForeignKey('playbooks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_order', sa.Integer, nullable=False),
        sa.Column('task_template_id', sa.String(36), sa.ForeignKey('task_templates.id', ondelete='SET NULL')),
        sa.Column('override_title', sa.String(200)),
        sa.Column('override_department_id', sa.String(36), sa.ForeignKey('departments.id', ondelete='SET NULL')),
        sa.Column('override_sla_value', sa.Integer),
        sa.Column('override_sla_unit', sla_unit),
        sa.Column('active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('step_order >= 1', name='ck_playbook_step_order_positive'),
    )
    op.create_index('idx_playbook_steps_playbook', 'playbook_steps', ['playbook_id'])

    # Incidents
    op.create_table(
        'incidents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('status', incident_status, nullable=False, server_default='open'),
        sa.Column('incident_type', sa.String(100), nullable=False),
        sa.Column('impact', incident_impact, nullable=False, server_default='medium'),
        sa.Column('playbook_id', sa.String(36), sa.ForeignKey('playbooks.id', ondelete='RESTRICT')),
        sa.Column('origin_type', sa.String(50), nullable=False, server_default='manual'),
        sa.Column('context', postgresql.JSONB),
        sa.Column('created_by', sa.String(255)),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('closed_at', sa.DateTime),
    )
    op.create_index('idx_incidents_status', 'incidents', ['status'])
    op.create_index('idx_incidents_playbook', 'incidents', ['playbook_id'])
    op.create_index('idx_incidents_created_at', 'incidents', ['created_at'], postgresql_ops={'created_at': 'DESC'})

    op.create_table(
        'incident_tasks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('incident_id', sa.String(36), sa.ForeignKey('incidents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('step_order', sa.Integer, nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('department_id', sa.String(36), sa.ForeignKey('departments.id', ondelete='SET NULL')),
        sa.Column('sla_value', sa.Integer),
        sa.Column('sla_unit', sla_unit),
        sa.Column('due_at', sa.DateTime),
        sa.Column('status', task_status, nullable=False, server_default='pending'),
        sa.Column('assigned_to', sa.String(255)),
        sa.Column('evidence', sa.Text),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('started_at', sa.DateTime),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('last_status_change_at', sa.DateTime),
    )
    op.create_index('idx_incident_tasks_incident', 'incident_tasks', ['incident_id'])
    op.create_index('idx_incident_tasks_status', 'incident_tasks', ['status'])
    op.create_index('idx_incident_tasks_assigned_to', 'incident_tasks', ['assigned_to'])
    op.create_index('idx_incident_tasks_due_at', 'incident_tasks', ['due_at'])

    op.create_table(
        'incident_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('incident_id', sa.String(36), sa.ForeignKey('incidents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('author', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_incident_logs_incident', 'incident_logs', ['incident_id'])
    op.create_index('idx_incident_logs_created_at', 'incident_logs', ['created_at'], postgresql_ops={'created_at': 'DESC'})

    # Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_email', sa.String(255), nullable=False),
        sa.Column('type', notification_type, nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('entity_type', sa.String(20), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('severity', notification_severity, nullable=False, server_default='info'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('read_at', sa.DateTime),
    )
    op.create_index('idx_notifications_user_email', 'notifications', ['user_email'])
    op.create_index('idx_notifications_entity', 'notifications', ['entity_id'])
    op.create_index('idx_notifications_created_at', 'notifications', ['created_at'], postgresql_ops={'created_at': 'DESC'})


def downgrade() -> None:
    # Drop tables (children first)
    op.drop_table('notifications')
    op.drop_table('incident_logs')
    op.drop_table('incident_tasks')
    op.drop_table('incidents')
    op.drop_table('playbook_steps')
    op.drop_table('playbooks')
    op.drop_table('task_templates')
    op.drop_table('department_members')
    op.drop_table('departments')

    # Drop enums
    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
