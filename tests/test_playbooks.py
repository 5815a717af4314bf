"""Tests for copy-on-write playbook versioning."""
import pytest

from opsdesk_core import incidents, models, playbooks, playbook_steps, schemas
from opsdesk_core.exceptions import NotFoundError, StaleVersionReferenceError, InvalidReorderError


def _use(db, playbook):
    """Reference the playbook from an incident so it becomes history."""
    return incidents.create_incident(db, schemas.IncidentCreate(
        title="Laptop stolen", incident_type="Security", playbook_id=playbook.id
    ))


def _version_count(db, lineage_id):
    return db.query(models.Playbook).filter(models.Playbook.lineage_id == lineage_id).count()


def _titles(db, playbook_id):
    return [s.effective_title for s in playbook_steps.list_by_playbook(db, playbook_id)]


class TestSavePlaybook:
    """Create and metadata update."""

    def test_create_starts_lineage_at_version_1(self, db):
        """Test that a new playbook is its own lineage root."""
        pb = playbooks.save_playbook(db, schemas.PlaybookSave(name="Phishing", incident_type="Security"))

        assert pb.version == 1
        assert pb.lineage_id == pb.id
        assert pb.active is True

    def test_create_uses_defaults(self, db):
        """Test default name and incident type."""
        pb = playbooks.save_playbook(db, schemas.PlaybookSave())

        assert pb.name == "New playbook"
        assert pb.incident_type == "General"

    def test_metadata_update_never_forks(self, db, playbook):
        """Test that renaming a used playbook edits it in place."""
        _use(db, playbook)
        updated = playbooks.save_playbook(db, schemas.PlaybookSave(id=playbook.id, name="Data breach (GDPR)"))

        assert updated.id == playbook.id
        assert updated.name == "Data breach (GDPR)"
        assert updated.version == 1
        assert _version_count(db, playbook.lineage_id) == 1

    def test_update_unknown_playbook(self, db):
        """Test that updating a missing id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            playbooks.save_playbook(db, schemas.PlaybookSave(id="missing", name="x"))

    def test_activate_leaves_single_active_version(self, db, playbook):
        """Test that activating an old version deactivates the others."""
        _use(db, playbook)
        v2 = playbooks.ensure_editable(db, playbook.id).playbook

        playbooks.activate_playbook(db, playbook.id)
        db.refresh(v2)

        versions = playbooks.list_versions(db, playbook.lineage_id)
        assert [(v.version, v.active) for v in versions] == [(1, True), (2, False)]


class TestEnsureEditable:
    """Fork on first edit of a used playbook."""

    def test_unused_playbook_is_returned_unchanged(self, db, playbook):
        """Test that an unused playbook is edited in place."""
        target = playbooks.ensure_editable(db, playbook.id)

        assert isinstance(target, playbooks.Unchanged)
        assert target.forked is False
        assert target.playbook.id == playbook.id
        assert _version_count(db, playbook.lineage_id) == 1

    def test_unused_playbook_is_idempotent(self, db, playbook):
        """Test that repeated calls never create versions."""
        first = playbooks.ensure_editable(db, playbook.id)
        second = playbooks.ensure_editable(db, playbook.id)

        assert first.playbook.id == second.playbook.id == playbook.id
        assert _version_count(db, playbook.lineage_id) == 1

    def test_used_playbook_forks(self, db, playbook):
        """Test that a used playbook yields a new active version with cloned steps."""
        old_steps = playbook_steps.get_steps(db, playbook.id)
        old_ids = {s.id for s in old_steps}
        _use(db, playbook)

        target = playbooks.ensure_editable(db, playbook.id)
        db.refresh(playbook)

        assert isinstance(target, playbooks.Forked)
        assert target.forked is True
        assert target.previous.id == playbook.id
        assert target.playbook.version == 2
        assert target.playbook.active is True
        assert target.playbook.lineage_id == playbook.lineage_id
        assert playbook.active is False

        new_steps = playbook_steps.list_by_playbook(db, target.playbook.id)
        assert [s.effective_title for s in new_steps] == ["Issue report", "Notify insurer"]
        assert [s.step_order for s in new_steps] == [1, 2]
        assert old_ids.isdisjoint({s.id for s in new_steps})

    def test_fork_leaves_history_untouched(self, db, playbook):
        """Test that the used version keeps its steps."""
        _use(db, playbook)
        playbooks.ensure_editable(db, playbook.id)

        assert _titles(db, playbook.id) == ["Issue report", "Notify insurer"]

    def test_forking_an_old_version_uses_next_free_number(self, db, playbook):
        """Test that version numbers keep increasing across the lineage."""
        _use(db, playbook)
        v2 = playbooks.ensure_editable(db, playbook.id).playbook
        v3 = playbooks.ensure_editable(db, playbook.id).playbook
        db.refresh(v2)

        assert v3.version == 3
        assert v2.active is False
        active = [v for v in playbooks.list_versions(db, playbook.lineage_id) if v.active]
        assert [v.id for v in active] == [v3.id]

    def test_new_version_is_editable_in_place(self, db, playbook):
        """Test that the forked version is unused, so editing it does not fork again."""
        _use(db, playbook)
        v2 = playbooks.ensure_editable(db, playbook.id).playbook

        target = playbooks.ensure_editable(db, v2.id)
        assert target.forked is False
        assert target.playbook.id == v2.id

    def test_unknown_playbook(self, db):
        """Test that a missing id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            playbooks.ensure_editable(db, "missing")

    def test_get_next_version_number(self, db, playbook):
        """Test max + 1 over the lineage."""
        assert playbooks.get_next_version_number(db, playbook.lineage_id) == 2
        assert playbooks.get_next_version_number(db, "unknown-lineage") == 1


class TestGuardedMutations:
    """Step edits go through ensure_editable."""

    def test_add_step_to_unused_playbook(self, db, playbook, report_template):
        """Test appending in place."""
        target, step = playbooks.add_playbook_step(db, playbook.id, report_template.id)

        assert target.forked is False
        assert step.playbook_id == playbook.id
        assert step.step_order == 3

    def test_add_step_to_used_playbook_lands_on_new_version(self, db, playbook, report_template):
        """Test that appending after a fork edits the new version only."""
        _use(db, playbook)
        target, step = playbooks.add_playbook_step(
            db, playbook.id, report_template.id, schemas.StepOverrides(title="Brief management")
        )

        assert target.forked is True
        assert step.playbook_id == target.playbook.id
        assert _titles(db, target.playbook.id) == ["Issue report", "Notify insurer", "Brief management"]
        assert _titles(db, playbook.id) == ["Issue report", "Notify insurer"]

    def test_delete_step_on_unused_playbook(self, db, playbook):
        """Test deleting in place."""
        first = playbook_steps.get_steps(db, playbook.id)[0]
        target = playbooks.delete_playbook_step(db, playbook.id, first.id)

        assert target.forked is False
        assert _titles(db, playbook.id) == ["Notify insurer"]

    def test_delete_step_on_used_playbook_is_stale(self, db, playbook):
        """Test that a delete addressed to a used version is not applied anywhere."""
        first = playbook_steps.get_steps(db, playbook.id)[0]
        _use(db, playbook)

        with pytest.raises(StaleVersionReferenceError) as exc_info:
            playbooks.delete_playbook_step(db, playbook.id, first.id)

        error = exc_info.value
        assert error.requested_playbook_id == playbook.id
        assert error.current_playbook.version == 2
        assert _titles(db, playbook.id) == ["Issue report", "Notify insurer"]
        assert _titles(db, error.current_playbook.id) == ["Issue report", "Notify insurer"]

    def test_delete_step_of_another_playbook(self, db, playbook):
        """Test that a step id from a different version is rejected."""
        other = playbooks.save_playbook(db, schemas.PlaybookSave(name="Other"))
        step = playbook_steps.get_steps(db, playbook.id)[0]

        with pytest.raises(NotFoundError):
            playbooks.delete_playbook_step(db, other.id, step.id)
        assert playbook_steps.count_steps(db, playbook.id) == 2

    def test_delete_unknown_step(self, db, playbook):
        """Test that an unknown step raises NotFoundError."""
        with pytest.raises(NotFoundError):
            playbooks.delete_playbook_step(db, playbook.id, "missing")

    def test_reorder_unused_playbook(self, db, playbook):
        """Test reordering in place."""
        target = playbooks.reorder_playbook_steps(db, playbook.id, 1, 0)

        assert target.forked is False
        assert _titles(db, playbook.id) == ["Notify insurer", "Issue report"]

    def test_reorder_used_playbook_is_stale(self, db, playbook):
        """Test that positions from a used version are not applied after the fork."""
        _use(db, playbook)

        with pytest.raises(StaleVersionReferenceError) as exc_info:
            playbooks.reorder_playbook_steps(db, playbook.id, 1, 0)

        new_id = exc_info.value.current_playbook.id
        assert _titles(db, playbook.id) == ["Issue report", "Notify insurer"]
        assert _titles(db, new_id) == ["Issue report", "Notify insurer"]

    def test_invalid_reorder_never_forks(self, db, playbook):
        """Test that bad indices are rejected before any version is created."""
        _use(db, playbook)

        with pytest.raises(InvalidReorderError):
            playbooks.reorder_playbook_steps(db, playbook.id, 0, 5)
        assert _version_count(db, playbook.lineage_id) == 1

    def test_unknown_template_never_forks(self, db, playbook):
        """Test that an unknown template is rejected before any version is created."""
        _use(db, playbook)

        with pytest.raises(NotFoundError):
            playbooks.add_playbook_step(db, playbook.id, "no-such-template")

        assert _version_count(db, playbook.lineage_id) == 1
        db.refresh(playbook)
        assert playbook.active is True
        assert _titles(db, playbook.id) == ["Issue report", "Notify insurer"]


class TestPlaybookQueries:
    """Listing helpers."""

    def test_list_active_filters_by_incident_type(self, db, playbook):
        """Test incident type filter on active playbooks."""
        playbooks.save_playbook(db, schemas.PlaybookSave(name="Outage", incident_type="Infrastructure"))

        names = [p.name for p in playbooks.list_active_playbooks(db, incident_type="Security")]
        assert names == ["Data breach"]

    def test_list_versions_oldest_first(self, db, playbook):
        """Test lineage listing after a fork."""
        _use(db, playbook)
        playbooks.ensure_editable(db, playbook.id)

        assert [v.version for v in playbooks.list_versions(db, playbook.lineage_id)] == [1, 2]

    def test_is_playbook_used(self, db, playbook):
        """Test usage detection."""
        assert playbooks.is_playbook_used(db, playbook.id) is False
        _use(db, playbook)
        assert playbooks.is_playbook_used(db, playbook.id) is True


class TestPlaybookLock:
    """In-process lineage locking."""

    def test_same_lineage_shares_a_lock(self):
        assert playbooks._lock_for("lineage-a") is playbooks._lock_for("lineage-a")

    def test_pool_stays_bounded(self):
        """Test that touching many lineages never allocates new locks."""
        locks = {id(playbooks._lock_for(f"lineage-{n}")) for n in range(1000)}

        assert len(locks) <= playbooks.LOCK_STRIPES
        assert len(playbooks._lock_stripes) == playbooks.LOCK_STRIPES

    def test_lock_is_reentrant(self):
        """Test that nested edits on one lineage do not deadlock."""
        entered = []
        with playbooks.playbook_lock("lineage-a"):
            with playbooks.playbook_lock("lineage-a"):
                entered.append("inner")
        assert entered == ["inner"]
