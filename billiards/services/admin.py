from __future__ import annotations
import dataclasses
import logging
from .exceptions import ServiceError
from .helpers import get_user_or_404
from .users import user_summary
from .. import storage
from ..models import Match, MatchStatus, Role
from ..roles import (
    LAST_LEADER,
    NO_PERMISSION_CHANGE,
    NO_PERMISSION_REMOVE,
    can_remove_user,
    is_admin,
    permissions_for,
    validate_role_change,
)

logger = logging.getLogger(__name__)

# role changes and removals read club-wide counts, so they share one lock
_ROLES_LOCK = "roles"

# matches a removed user still has a seat in
_ACTIVE_STATUSES = (MatchStatus.OPEN, MatchStatus.FILLED)


def _player_keys(*user_ids: str) -> list[str]:
    return [f"player:{uid}" for uid in user_ids]


def permissions(user_id: str) -> dict[str, object]:
    user = get_user_or_404(user_id)
    return {"role": user.role.value, **dataclasses.asdict(permissions_for(user.role))}


def change_role(actor_id: str, target_id: str, new_role: Role | str) -> dict[str, object]:
    """Move ``target_id`` to ``new_role`` on behalf of ``actor_id``."""
    try:
        new_role = Role(new_role)
    except ValueError:
        raise ServiceError("Invalid role", 400)

    with storage.locked(_ROLES_LOCK, *_player_keys(actor_id, target_id)) as conn:
        actor = get_user_or_404(actor_id, conn=conn)
        target = get_user_or_404(target_id, conn=conn)
        counts = storage.count_users_by_role(conn=conn)
        verdict = validate_role_change(
            counts[Role.LEADER],
            counts[Role.CO_LEADER],
            target.role,
            new_role,
            actor.role,
        )
        if not verdict.is_valid:
            status = 403 if verdict.error == NO_PERMISSION_CHANGE else 400
            raise ServiceError(verdict.error, status)
        old_role = target.role
        target.role = new_role
        storage.update_user_role(target_id, new_role, conn=conn)
    logger.info("%s changed role of %s: %s -> %s", actor_id, target_id, old_role.value, new_role.value)
    return user_summary(target)


def _active_matches_of(user_id: str, conn=None) -> list[Match]:
    return [m for m in storage.list_matches(statuses=_ACTIVE_STATUSES, conn=conn) if user_id in m.players]


def _vacate_seats(user_id: str, matches: list[Match], conn) -> None:
    """Cancel the user's own upcoming matches and free their seat in the rest."""
    for match in matches:
        if match.creator == user_id:
            match.status = MatchStatus.CANCELLED
        else:
            match.players = [p for p in match.players if p != user_id]
            match.status = MatchStatus.OPEN
        storage.update_match_record(match, conn=conn)


def remove_user(actor_id: str, target_id: str) -> None:
    """Delete ``target_id``'s account on behalf of ``actor_id``.

    Upcoming matches the user created are cancelled and any seat they hold
    elsewhere is given up, in the same transaction as the deletion.
    """
    while True:
        seen = {m.id for m in _active_matches_of(target_id)}
        keys = [_ROLES_LOCK, *_player_keys(actor_id, target_id), *(f"match:{i}" for i in seen)]
        with storage.locked(*keys) as conn:
            # holding the player lock stops new joins, but one may have
            # landed before it was taken
            matches = _active_matches_of(target_id, conn=conn)
            if {m.id for m in matches} - seen:
                continue

            actor = get_user_or_404(actor_id, conn=conn)
            target = get_user_or_404(target_id, conn=conn)
            counts = storage.count_users_by_role(conn=conn)
            admin_count = sum(n for role, n in counts.items() if is_admin(role))
            verdict = can_remove_user(
                target.role,
                actor.role,
                counts[Role.LEADER],
                is_last_admin=is_admin(target.role) and admin_count <= 1,
            )
            if not verdict.can_remove:
                status = 403 if verdict.error == NO_PERMISSION_REMOVE else 400
                raise ServiceError(verdict.error, status)
            _vacate_seats(target_id, matches, conn)
            storage.delete_user(target_id, conn=conn)
        break
    logger.info("%s removed user %s", actor_id, target_id)


def set_role_unchecked(target_id: str, new_role: Role | str) -> dict[str, object]:
    """Assign a role outside the hierarchy checks, for bootstrap scripts.

    The last leader still cannot be demoted.
    """
    new_role = Role(new_role)
    with storage.locked(_ROLES_LOCK, *_player_keys(target_id)) as conn:
        target = get_user_or_404(target_id, conn=conn)
        counts = storage.count_users_by_role(conn=conn)
        if target.role == Role.LEADER and new_role != Role.LEADER and counts[Role.LEADER] <= 1:
            raise ServiceError(LAST_LEADER, 400)
        target.role = new_role
        storage.update_user_role(target_id, new_role, conn=conn)
    logger.info("role of %s set to %s", target_id, new_role.value)
    return user_summary(target)
