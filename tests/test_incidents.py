"""Tests for incident CRUD and the incident log."""
import pytest

from opsdesk_core import incidents, models, schemas
from opsdesk_core.exceptions import NotFoundError
from opsdesk_core.models import IncidentImpact, IncidentStatus


def _create(db, **overrides):
    data = {"title": "Phishing wave", "incident_type": "Security"}
    data.update(overrides)
    return incidents.create_incident(db, schemas.IncidentCreate(**data))


class TestCreateIncident:
    """Incident creation."""

    def test_defaults(self, db):
        incident = _create(db, context={"source": "mail-gateway"})

        assert incident.status == IncidentStatus.OPEN
        assert incident.impact == IncidentImpact.MEDIUM
        assert incident.origin_type == "manual"
        assert incident.context == {"source": "mail-gateway"}
        assert incident.closed_at is None
        assert incident.tasks == []

    def test_unknown_playbook_creates_nothing(self, db):
        """Test that a bad playbook reference leaves no incident behind."""
        with pytest.raises(NotFoundError):
            _create(db, playbook_id="missing")

        assert db.query(models.Incident).count() == 0

    def test_failed_generation_rolls_back_incident(self, db, playbook, monkeypatch):
        """Test that the incident and its tasks are committed together or not at all."""
        def explode(*args, **kwargs):
            raise RuntimeError("generation failed")

        monkeypatch.setattr(incidents, "generate_tasks_from_playbook", explode)

        with pytest.raises(RuntimeError):
            _create(db, playbook_id=playbook.id)

        assert db.query(models.Incident).count() == 0
        assert db.query(models.IncidentTask).count() == 0


class TestUpdateIncident:
    """Incident patches."""

    def test_resolve_stamps_closed_at_once(self, db):
        incident = _create(db)

        resolved = incidents.update_incident(db, incident.id, schemas.IncidentUpdate(status=IncidentStatus.RESOLVED))
        first_closed_at = resolved.closed_at
        assert first_closed_at is not None

        closed = incidents.update_incident(db, incident.id, schemas.IncidentUpdate(status=IncidentStatus.CLOSED))
        assert closed.status == IncidentStatus.CLOSED
        assert closed.closed_at == first_closed_at

    def test_impact_change(self, db):
        incident = _create(db)
        updated = incidents.update_incident(db, incident.id, schemas.IncidentUpdate(impact=IncidentImpact.CRITICAL))

        assert updated.impact == IncidentImpact.CRITICAL
        assert updated.status == IncidentStatus.OPEN

    def test_unknown_incident(self, db):
        with pytest.raises(NotFoundError):
            incidents.update_incident(db, "missing", schemas.IncidentUpdate(title="x"))


class TestListIncidents:
    """Filtering and pagination."""

    def test_filters_and_total(self, db):
        _create(db, title="One", impact=IncidentImpact.HIGH)
        _create(db, title="Two", impact=IncidentImpact.LOW)
        _create(db, title="Three", impact=IncidentImpact.HIGH, incident_type="Infra")

        high, total = incidents.list_incidents(db, impact=IncidentImpact.HIGH)
        assert total == 2
        assert {i.title for i in high} == {"One", "Three"}

        infra, total = incidents.list_incidents(db, incident_type="Infra")
        assert [i.title for i in infra] == ["Three"]

        page, total = incidents.list_incidents(db, limit=1)
        assert total == 3
        assert len(page) == 1


class TestIncidentLog:
    """Free-text log entries."""

    def test_add_and_list(self, db):
        incident = _create(db)
        entry = incidents.add_log(db, incident.id, "Blocked sender domain", "analyst@example.com")

        assert entry.author == "analyst@example.com"
        assert [log.message for log in incidents.list_logs(db, incident.id)] == ["Blocked sender domain"]

    def test_unknown_incident(self, db):
        with pytest.raises(NotFoundError):
            incidents.add_log(db, "missing", "hello", "someone@example.com")
