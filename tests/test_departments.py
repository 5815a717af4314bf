"""Tests for the department directory and leader resolution."""
from datetime import datetime, timedelta

import pytest

from opsdesk_core import departments
from opsdesk_core.exceptions import NotFoundError
from opsdesk_core.models import MemberRole


class TestDirectory:
    """Department CRUD."""

    def test_list_hides_inactive(self, db, security, hr):
        departments.deactivate_department(db, hr.id)

        assert [d.name for d in departments.list_departments(db)] == ["Security"]
        assert [d.name for d in departments.list_departments(db, include_inactive=True)] == ["HR", "Security"]

    def test_inactive_department_still_resolves(self, db, hr):
        """Test that historical references to a deactivated department keep their name."""
        departments.deactivate_department(db, hr.id)

        assert departments.get_department(db, hr.id).name == "HR"
        assert departments.get_department_name(db, hr.id) == "HR"

    def test_unknown_department_name_falls_back(self, db):
        assert departments.get_department_name(db, "missing") == "General"
        assert departments.get_department_name(db, None) == "General"

    def test_deactivate_unknown(self, db):
        with pytest.raises(NotFoundError):
            departments.deactivate_department(db, "missing")


class TestLeadership:
    """Leader resolution for default task assignment."""

    def test_leader_is_found(self, db, security):
        leader = departments.get_leader(db, security.id)
        assert leader.user_email == "sec.lead@example.com"

    def test_plain_members_are_not_leaders(self, db):
        department = departments.create_department(db, "Legal")
        departments.add_member(db, department.id, "clerk@example.com", MemberRole.MEMBER)

        assert departments.get_leader(db, department.id) is None

    def test_most_recent_leader_wins(self, db, security):
        """Test the tie-break when several active leaders exist."""
        newer = departments.add_member(db, security.id, "new.lead@example.com", MemberRole.LEADER)
        newer.created_at = datetime.utcnow() + timedelta(minutes=1)
        db.commit()

        assert departments.get_leader(db, security.id).user_email == "new.lead@example.com"

    def test_inactive_leader_is_ignored(self, db, security):
        leader = departments.get_leader(db, security.id)
        departments.deactivate_member(db, leader.id)

        assert departments.get_leader(db, security.id) is None
        assert [m.user_email for m in departments.list_members(db, security.id)] == ["analyst@example.com"]

    def test_no_department_means_no_leader(self, db):
        assert departments.get_leader(db, None) is None

    def test_add_member_to_unknown_department(self, db):
        with pytest.raises(NotFoundError):
            departments.add_member(db, "missing", "someone@example.com")

    def test_deactivate_unknown_member(self, db):
        with pytest.raises(NotFoundError):
            departments.deactivate_member(db, "missing")
