"""
TalentDesk Backend: Role-Based Access Control
=============================================

What:  The static role → permission table and the helpers that query it.
How:   Pure functions over string enums; no database access. The request
       dependencies in `talentdesk.dependencies` call `has_permission` for
       every guarded endpoint.

Role hierarchy (lowest → highest):
    VIEWER < RECRUITER < ADMIN < OWNER

    OWNER      Everything, including deleting users and managing other owners
    ADMIN      Everything except USER_DELETE
    RECRUITER  Day-to-day candidate work inside assigned pipelines
    VIEWER     Read-only access to assigned pipelines

The table is intentionally explicit per permission rather than derived from
the hierarchy: a few permissions (e.g. NOTE_DELETE) skip a level.
"""

from enum import Enum
from typing import Dict, FrozenSet, Iterable


class Role(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    RECRUITER = "RECRUITER"
    VIEWER = "VIEWER"


class Permission(str, Enum):
    # Users
    USER_INVITE = "USER_INVITE"
    USER_UPDATE = "USER_UPDATE"
    USER_DELETE = "USER_DELETE"
    USER_VIEW = "USER_VIEW"

    # Pipelines and stages
    PIPELINE_CREATE = "PIPELINE_CREATE"
    PIPELINE_UPDATE = "PIPELINE_UPDATE"
    PIPELINE_DELETE = "PIPELINE_DELETE"
    PIPELINE_VIEW = "PIPELINE_VIEW"
    STAGE_CREATE = "STAGE_CREATE"
    STAGE_UPDATE = "STAGE_UPDATE"
    STAGE_DELETE = "STAGE_DELETE"

    # Candidates
    CANDIDATE_CREATE = "CANDIDATE_CREATE"
    CANDIDATE_UPDATE = "CANDIDATE_UPDATE"
    CANDIDATE_DELETE = "CANDIDATE_DELETE"
    CANDIDATE_VIEW = "CANDIDATE_VIEW"
    CANDIDATE_MOVE = "CANDIDATE_MOVE"
    CANDIDATE_MERGE = "CANDIDATE_MERGE"

    # Imports
    IMPORT_CREATE = "IMPORT_CREATE"
    IMPORT_VIEW = "IMPORT_VIEW"

    # Email templates
    TEMPLATE_CREATE = "TEMPLATE_CREATE"
    TEMPLATE_UPDATE = "TEMPLATE_UPDATE"
    TEMPLATE_DELETE = "TEMPLATE_DELETE"
    TEMPLATE_VIEW = "TEMPLATE_VIEW"
    TEMPLATE_SEND = "TEMPLATE_SEND"

    # Notes
    NOTE_CREATE = "NOTE_CREATE"
    NOTE_UPDATE = "NOTE_UPDATE"
    NOTE_DELETE = "NOTE_DELETE"
    NOTE_VIEW = "NOTE_VIEW"

    # Tags
    TAG_CREATE = "TAG_CREATE"
    TAG_UPDATE = "TAG_UPDATE"
    TAG_DELETE = "TAG_DELETE"
    TAG_ASSIGN = "TAG_ASSIGN"

    AUDIT_VIEW = "AUDIT_VIEW"


ROLE_HIERARCHY = [Role.VIEWER, Role.RECRUITER, Role.ADMIN, Role.OWNER]

_OWNER_ONLY = frozenset({Role.OWNER})
_ADMINS = frozenset({Role.OWNER, Role.ADMIN})
_STAFF = frozenset({Role.OWNER, Role.ADMIN, Role.RECRUITER})
_EVERYONE = frozenset(ROLE_HIERARCHY)

PERMISSION_ROLES: Dict[Permission, FrozenSet[Role]] = {
    Permission.USER_INVITE: _ADMINS,
    Permission.USER_UPDATE: _ADMINS,
    Permission.USER_DELETE: _OWNER_ONLY,
    Permission.USER_VIEW: _ADMINS,

    Permission.PIPELINE_CREATE: _ADMINS,
    Permission.PIPELINE_UPDATE: _ADMINS,
    Permission.PIPELINE_DELETE: _ADMINS,
    Permission.PIPELINE_VIEW: _EVERYONE,
    Permission.STAGE_CREATE: _ADMINS,
    Permission.STAGE_UPDATE: _ADMINS,
    Permission.STAGE_DELETE: _ADMINS,

    Permission.CANDIDATE_CREATE: _STAFF,
    Permission.CANDIDATE_UPDATE: _STAFF,
    Permission.CANDIDATE_DELETE: _ADMINS,
    Permission.CANDIDATE_VIEW: _EVERYONE,
    Permission.CANDIDATE_MOVE: _STAFF,
    Permission.CANDIDATE_MERGE: _ADMINS,

    Permission.IMPORT_CREATE: _STAFF,
    Permission.IMPORT_VIEW: _STAFF,

    Permission.TEMPLATE_CREATE: _ADMINS,
    Permission.TEMPLATE_UPDATE: _ADMINS,
    Permission.TEMPLATE_DELETE: _ADMINS,
    Permission.TEMPLATE_VIEW: _STAFF,
    Permission.TEMPLATE_SEND: _STAFF,

    Permission.NOTE_CREATE: _STAFF,
    Permission.NOTE_UPDATE: _STAFF,
    Permission.NOTE_DELETE: _ADMINS,
    Permission.NOTE_VIEW: _EVERYONE,

    Permission.TAG_CREATE: _ADMINS,
    Permission.TAG_UPDATE: _ADMINS,
    Permission.TAG_DELETE: _ADMINS,
    Permission.TAG_ASSIGN: _STAFF,

    Permission.AUDIT_VIEW: _ADMINS,
}


def _as_role(role) -> Role:
    """Accepts Role members or their string values; unknown strings raise ValueError."""
    return role if isinstance(role, Role) else Role(role)


def has_permission(role, permission) -> bool:
    """
    Returns True if `role` is granted `permission` by the static table.

    Unknown roles and unknown permissions are denied rather than raising,
    so a stale session role can never escalate.
    """
    try:
        role = _as_role(role)
        permission = permission if isinstance(permission, Permission) else Permission(permission)
    except ValueError:
        return False
    return role in PERMISSION_ROLES.get(permission, frozenset())


def has_minimum_role(role, minimum) -> bool:
    """True when `role` sits at or above `minimum` in the hierarchy."""
    try:
        return ROLE_HIERARCHY.index(_as_role(role)) >= ROLE_HIERARCHY.index(_as_role(minimum))
    except ValueError:
        return False


def has_role(role, allowed: Iterable) -> bool:
    allowed_values = {_as_role(r).value for r in allowed}
    value = role.value if isinstance(role, Role) else role
    return value in allowed_values


def is_admin(role) -> bool:
    """OWNER and ADMIN see every pipeline and may act on other users' notes/files."""
    return has_role(role, (Role.OWNER, Role.ADMIN))


def permissions_for(role) -> FrozenSet[Permission]:
    """All permissions granted to `role` (used by GET /api/auth/me)."""
    try:
        role = _as_role(role)
    except ValueError:
        return frozenset()
    return frozenset(p for p, roles in PERMISSION_ROLES.items() if role in roles)
