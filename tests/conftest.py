"""Shared fixtures: in-memory database, seeded directory and playbook."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from opsdesk_core import departments, playbooks, playbook_steps, schemas, task_templates
from opsdesk_core.config import get_settings
from opsdesk_core.models import Base, MemberRole, SlaUnit


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Database session bound to the test engine."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings_override(monkeypatch):
    """Override settings through environment variables for one test."""
    def apply(**values):
        for key, value in values.items():
            monkeypatch.setenv(f"OPSDESK_{key.upper()}", str(value))
        get_settings.cache_clear()

    yield apply
    get_settings.cache_clear()


@pytest.fixture
def security(db):
    """Security department led by sec.lead@example.com."""
    department = departments.create_department(db, "Security")
    departments.add_member(db, department.id, "sec.lead@example.com", MemberRole.LEADER)
    departments.add_member(db, department.id, "analyst@example.com", MemberRole.MEMBER)
    return department


@pytest.fixture
def hr(db):
    """HR department led by hr.lead@example.com."""
    department = departments.create_department(db, "HR")
    departments.add_member(db, department.id, "hr.lead@example.com", MemberRole.LEADER)
    return department


@pytest.fixture
def report_template(db, security):
    """Template: 'Issue report', Security, 1 day."""
    return task_templates.create_template(db, schemas.TaskTemplateCreate(
        title="Issue report",
        default_department_id=security.id,
        default_sla_value=1,
        default_sla_unit=SlaUnit.DAYS,
    ))


@pytest.fixture
def insurer_template(db, hr):
    """Template: 'Notify insurer', HR, 2 days."""
    return task_templates.create_template(db, schemas.TaskTemplateCreate(
        title="Notify insurer",
        default_department_id=hr.id,
        default_sla_value=2,
        default_sla_unit=SlaUnit.DAYS,
    ))


@pytest.fixture
def playbook(db, report_template, insurer_template):
    """Unused playbook v1 with two steps: report (Security, 1d), insurer (HR, 2d)."""
    pb = playbooks.save_playbook(db, schemas.PlaybookSave(name="Data breach", incident_type="Security"))
    playbook_steps.add_step(db, pb.id, report_template.id)
    playbook_steps.add_step(db, pb.id, insurer_template.id)
    return pb


@pytest.fixture
def client(db):
    """API test client sharing the test session."""
    from fastapi.testclient import TestClient

    from opsdesk_core.api.main import app
    from opsdesk_core.database import get_db

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
