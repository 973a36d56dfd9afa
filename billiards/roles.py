from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .models import Role

# At most this many co-leaders may hold office at once
MAX_CO_LEADERS = 2

ROLE_HIERARCHY: Dict[Role, int] = {
    Role.MEMBER: 0,
    Role.OFFICER: 1,
    Role.CO_LEADER: 2,
    Role.LEADER: 3,
}

NO_PERMISSION_CHANGE = "You do not have permission to make this role change"
NO_PERMISSION_REMOVE = "You do not have permission to remove this user"
LAST_LEADER = "Cannot remove the last leader"
LAST_ADMIN = "Cannot remove the last admin"
CO_LEADER_LIMIT = f"Maximum number of co-leaders reached ({MAX_CO_LEADERS})"


@dataclass(frozen=True)
class RolePermissions:
    can_manage_matches: bool = False
    can_manage_members: bool = False
    can_manage_officers: bool = False
    can_manage_co_leaders: bool = False
    can_manage_settings: bool = False
    can_delete_club: bool = False


ROLE_PERMISSIONS: Dict[Role, RolePermissions] = {
    Role.MEMBER: RolePermissions(),
    Role.OFFICER: RolePermissions(
        can_manage_matches=True,
        can_manage_members=True,
    ),
    Role.CO_LEADER: RolePermissions(
        can_manage_matches=True,
        can_manage_members=True,
        can_manage_officers=True,
        can_manage_settings=True,
    ),
    Role.LEADER: RolePermissions(
        can_manage_matches=True,
        can_manage_members=True,
        can_manage_officers=True,
        can_manage_co_leaders=True,
        can_manage_settings=True,
        can_delete_club=True,
    ),
}


@dataclass(frozen=True)
class RoleChangeVerdict:
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class RemovalVerdict:
    can_remove: bool
    error: Optional[str] = None


def rank(role: Role | str) -> int:
    return ROLE_HIERARCHY[Role(role)]


def is_admin(role: Role | str) -> bool:
    """Officers and above count as club admins."""
    return rank(role) >= ROLE_HIERARCHY[Role.OFFICER]


def can_manage_user(manager_role: Role | str, target_role: Role | str) -> bool:
    """Return True if ``manager_role`` strictly outranks ``target_role``."""
    return rank(manager_role) > rank(target_role)


def permissions_for(role: Role | str) -> RolePermissions:
    return ROLE_PERMISSIONS[Role(role)]


def validate_role_change(
    current_leader_count: int,
    current_co_leader_count: int,
    old_role: Role | str,
    new_role: Role | str,
    manager_role: Role | str,
) -> RoleChangeVerdict:
    """Decide whether ``manager_role`` may move a user from ``old_role`` to ``new_role``.

    Checks run in order and the first failure is reported: the manager must
    outrank both roles, the last leader cannot be demoted, and the co-leader
    cap applies unless the user already is a co-leader.
    """
    old_role, new_role = Role(old_role), Role(new_role)

    if not can_manage_user(manager_role, old_role) or not can_manage_user(manager_role, new_role):
        return RoleChangeVerdict(is_valid=False, error=NO_PERMISSION_CHANGE)

    if old_role == Role.LEADER and current_leader_count <= 1:
        return RoleChangeVerdict(is_valid=False, error=LAST_LEADER)

    if (
        new_role == Role.CO_LEADER
        and current_co_leader_count >= MAX_CO_LEADERS
        and old_role != Role.CO_LEADER
    ):
        return RoleChangeVerdict(is_valid=False, error=CO_LEADER_LIMIT)

    return RoleChangeVerdict(is_valid=True)


def can_remove_user(
    target_role: Role | str,
    manager_role: Role | str,
    current_leader_count: int,
    is_last_admin: bool,
) -> RemovalVerdict:
    """Decide whether ``manager_role`` may remove a user holding ``target_role``."""
    target_role = Role(target_role)

    if not can_manage_user(manager_role, target_role):
        return RemovalVerdict(can_remove=False, error=NO_PERMISSION_REMOVE)

    if target_role == Role.LEADER and current_leader_count <= 1:
        return RemovalVerdict(can_remove=False, error=LAST_LEADER)

    if is_last_admin and is_admin(target_role):
        return RemovalVerdict(can_remove=False, error=LAST_ADMIN)

    return RemovalVerdict(can_remove=True)
