"""
TalentDesk Backend: Permission Table Tests
==========================================

The role → permission table is the whole authorisation model, so every
row that differs between roles is pinned here.
"""

import pytest

from talentdesk.permissions import (
    Permission,
    Role,
    has_minimum_role,
    has_permission,
    is_admin,
    permissions_for,
)


class TestPermissionTable:
    def test_owner_has_every_permission(self):
        assert permissions_for(Role.OWNER) == frozenset(Permission)

    def test_admin_lacks_only_user_delete(self):
        assert frozenset(Permission) - permissions_for(Role.ADMIN) == {Permission.USER_DELETE}

    @pytest.mark.parametrize(
        "permission",
        [
            Permission.CANDIDATE_CREATE,
            Permission.CANDIDATE_MOVE,
            Permission.IMPORT_CREATE,
            Permission.TEMPLATE_SEND,
            Permission.NOTE_UPDATE,
            Permission.TAG_ASSIGN,
        ],
    )
    def test_recruiter_day_to_day_work(self, permission):
        assert has_permission(Role.RECRUITER, permission)

    @pytest.mark.parametrize(
        "permission",
        [
            Permission.CANDIDATE_MERGE,
            Permission.CANDIDATE_DELETE,
            Permission.NOTE_DELETE,
            Permission.TEMPLATE_CREATE,
            Permission.USER_INVITE,
            Permission.AUDIT_VIEW,
        ],
    )
    def test_recruiter_denied_admin_work(self, permission):
        assert not has_permission(Role.RECRUITER, permission)

    def test_viewer_is_read_only(self):
        assert permissions_for(Role.VIEWER) == {
            Permission.PIPELINE_VIEW,
            Permission.CANDIDATE_VIEW,
            Permission.NOTE_VIEW,
        }

    def test_string_roles_accepted(self):
        assert has_permission("ADMIN", "CANDIDATE_MERGE")

    def test_unknown_role_or_permission_denied(self):
        assert not has_permission("SUPERUSER", Permission.CANDIDATE_VIEW)
        assert not has_permission(Role.OWNER, "LAUNCH_ROCKETS")
        assert permissions_for("SUPERUSER") == frozenset()


class TestRoleHelpers:
    def test_hierarchy(self):
        assert has_minimum_role(Role.OWNER, Role.ADMIN)
        assert has_minimum_role("RECRUITER", "RECRUITER")
        assert not has_minimum_role(Role.VIEWER, Role.RECRUITER)

    def test_is_admin(self):
        assert is_admin("OWNER")
        assert is_admin(Role.ADMIN)
        assert not is_admin("RECRUITER")
        assert not is_admin("VIEWER")
