from __future__ import annotations
import datetime
import logging
from typing import Iterable
from .exceptions import ServiceError
from .helpers import get_user_or_404, get_match_or_404
from .. import storage
from ..booking import validate_booking, candidate_window
from ..config import get_booking_config, get_elo_config
from ..models import (
    Match,
    MatchResult,
    MatchSnapshot,
    MatchStatus,
    MatchType,
    User,
    MIN_DURATION_MINUTES,
    MAX_DURATION_MINUTES,
)
from ..rating import (
    RatingInput,
    apply_result,
    apply_team_result,
    preview_both_outcomes,
    rating_inputs,
)
from ..roles import permissions_for

logger = logging.getLogger(__name__)

BOOKING = get_booking_config()
ELO = get_elo_config()

# statuses that still occupy a table
_BLOCKING_STATUSES = (MatchStatus.OPEN, MatchStatus.FILLED, MatchStatus.COMPLETED)


def normalize_datetime(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as naive UTC with second precision."""
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0)


def _booking_keys(snapshot: MatchSnapshot) -> list[str]:
    return [f"location:{snapshot.location}", *(f"player:{p}" for p in snapshot.players)]


def _candidates(snapshot: MatchSnapshot, conn) -> list[MatchSnapshot]:
    start, end = candidate_window(
        snapshot.datetime, snapshot.duration_minutes, MAX_DURATION_MINUTES, BOOKING
    )
    existing = storage.list_matches(statuses=_BLOCKING_STATUSES, start=start, end=end, conn=conn)
    return [m.snapshot() for m in existing]


def _ensure_bookable(snapshot: MatchSnapshot, conn) -> None:
    verdict = validate_booking(snapshot, _candidates(snapshot, conn), BOOKING)
    if verdict.is_valid:
        return
    conflict_id = verdict.conflicting_match.id if verdict.conflicting_match else None
    logger.info("booking rejected at %s (%s): %s", snapshot.location, snapshot.datetime, verdict.errors)
    raise ServiceError(
        "; ".join(verdict.errors),
        400,
        errors=verdict.errors,
        extra={"conflicting_match_id": conflict_id},
    )


def _can_manage_matches(user: User) -> bool:
    return permissions_for(user.role).can_manage_matches


def match_to_dict(match: Match, users: dict[str, User] | None = None) -> dict[str, object]:
    """Serialize a match, attaching player names where known."""
    users = users or {}

    def _ref(uid: str) -> dict[str, object]:
        u = users.get(uid)
        return {"user_id": uid, "name": u.name if u else None}

    result = None
    if match.result:
        result = {
            "winners": [_ref(uid) for uid in match.result.winners],
            "losers": [_ref(uid) for uid in match.result.losers],
            "score": match.result.score,
            "recorded_by": match.result.recorded_by,
            "recorded_at": match.result.recorded_at.isoformat(),
        }
    return {
        "id": match.id,
        "type": MatchType(match.type).value,
        "datetime": match.datetime.isoformat(),
        "duration_minutes": match.duration_minutes,
        "location": match.location,
        "creator": _ref(match.creator),
        "players": [_ref(uid) for uid in match.players],
        "status": MatchStatus(match.status).value,
        "is_ranked": match.is_ranked,
        "is_deleted": match.is_deleted,
        "result": result,
    }


def _users_for(ids: Iterable[str], conn=None) -> dict[str, User]:
    found = {}
    for uid in set(ids):
        u = storage.get_user(uid, conn=conn)
        if u:
            found[uid] = u
    return found


def create_match(
    user_id: str,
    match_type: MatchType | str,
    when: datetime.datetime,
    location: str,
    duration_minutes: int,
    is_ranked: bool = False,
) -> dict[str, object]:
    """Schedule a new match with its creator as the first player."""
    location = location.strip()
    if not location:
        raise ServiceError("Location is required", 400)
    if not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
        raise ServiceError(
            f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes", 400
        )
    when = normalize_datetime(when)
    if when <= storage.utcnow():
        raise ServiceError("Match must be scheduled in the future", 400)

    match = Match(
        type=MatchType(match_type),
        datetime=when,
        location=location,
        creator=user_id,
        players=[user_id],
        duration_minutes=duration_minutes,
        is_ranked=is_ranked,
    )
    snapshot = match.snapshot()
    with storage.locked(*_booking_keys(snapshot)) as conn:
        creator = get_user_or_404(user_id, conn=conn)
        _ensure_bookable(snapshot, conn)
        storage.create_match(match, conn=conn)
    logger.info("match %s created by %s at %s", match.id, user_id, match.datetime)
    return match_to_dict(match, {creator.user_id: creator})


def join_match(user_id: str, match_id: int) -> dict[str, object]:
    """Add ``user_id`` to an open match, filling it when the last seat is taken."""
    match = get_match_or_404(match_id)
    keys = [f"match:{match_id}", *_booking_keys(match.snapshot(match.players + [user_id]))]
    with storage.locked(*keys) as conn:
        get_user_or_404(user_id, conn=conn)
        match = get_match_or_404(match_id, conn=conn)
        if match.status != MatchStatus.OPEN:
            raise ServiceError("Match is not open for joining", 400)
        if user_id in match.players:
            raise ServiceError("You are already in this match", 400)

        roster = match.players + [user_id]
        _ensure_bookable(match.snapshot(roster), conn)

        match.players = roster
        if match.is_full:
            match.status = MatchStatus.FILLED
        storage.update_match_record(match, conn=conn)
        users = _users_for(match.players, conn=conn)
    logger.info("user %s joined match %s", user_id, match_id)
    return match_to_dict(match, users)


def leave_match(user_id: str, match_id: int) -> dict[str, object]:
    """Remove ``user_id`` from a match that has not been played or cancelled."""
    with storage.locked(f"match:{match_id}") as conn:
        match = get_match_or_404(match_id, conn=conn)
        if match.status not in (MatchStatus.OPEN, MatchStatus.FILLED):
            raise ServiceError("Can only leave open matches", 400)
        if user_id not in match.players:
            raise ServiceError("You are not in this match", 400)
        if match.creator == user_id:
            raise ServiceError("Match creator must cancel the match instead of leaving", 400)

        match.players = [p for p in match.players if p != user_id]
        match.status = MatchStatus.OPEN
        storage.update_match_record(match, conn=conn)
        users = _users_for(match.players, conn=conn)
    return match_to_dict(match, users)


def cancel_match(user_id: str, match_id: int) -> dict[str, object]:
    """Cancel a match. Allowed for its creator and for match managers."""
    with storage.locked(f"match:{match_id}") as conn:
        actor = get_user_or_404(user_id, conn=conn)
        match = get_match_or_404(match_id, conn=conn)
        if match.creator != user_id and not _can_manage_matches(actor):
            raise ServiceError("Only the creator can cancel this match", 403)
        if match.status == MatchStatus.COMPLETED:
            raise ServiceError("Completed matches cannot be cancelled", 400)
        match.status = MatchStatus.CANCELLED
        storage.update_match_record(match, conn=conn)
        users = _users_for(match.players, conn=conn)
    logger.info("match %s cancelled by %s", match_id, user_id)
    return match_to_dict(match, users)


def _validate_teams(match: Match, winners: list[str], losers: list[str]) -> None:
    team_size = match.capacity // 2
    if len(set(winners)) != len(winners) or len(set(losers)) != len(losers):
        raise ServiceError("Duplicate players in result", 400)
    if set(winners) & set(losers):
        raise ServiceError("A player cannot both win and lose", 400)
    if len(winners) != team_size or len(losers) != team_size:
        raise ServiceError(f"Each side must have {team_size} player(s)", 400)
    if set(winners) | set(losers) != set(match.players):
        raise ServiceError("Result must list exactly the match players", 400)


def record_result(
    user_id: str,
    match_id: int,
    winners: list[str],
    losers: list[str],
    score: str | None = None,
) -> dict[str, object]:
    """Complete a match and update the players' stats.

    Ranked results also move ELO ratings. The match and every player record
    are written in a single transaction.
    """
    match = get_match_or_404(match_id)
    keys = [f"match:{match_id}", *(f"player:{p}" for p in match.players)]
    with storage.locked(*keys) as conn:
        actor = get_user_or_404(user_id, conn=conn)
        match = get_match_or_404(match_id, conn=conn)

        if match.is_ranked and not _can_manage_matches(actor):
            raise ServiceError("Only admins can record ranked match results", 403)
        if not match.is_ranked and match.creator != user_id and not _can_manage_matches(actor):
            raise ServiceError("Only the match creator or admins can record casual match results", 403)
        if match.status != MatchStatus.FILLED:
            raise ServiceError("Only filled matches can be completed", 400)
        _validate_teams(match, winners, losers)

        players = _users_for(match.players, conn=conn)
        missing = set(match.players) - set(players)
        if missing:
            raise ServiceError("Player not found", 404)

        changes: dict[str, dict[str, int]] = {}
        if match.is_ranked:
            stats = {uid: u.stats for uid, u in players.items()}
            if len(winners) == 1:
                update = apply_result(
                    RatingInput(stats[winners[0]].elo, stats[winners[0]].games_played),
                    RatingInput(stats[losers[0]].elo, stats[losers[0]].games_played),
                    ELO,
                )
                new_ratings = {winners[0]: update.winner_new_rating, losers[0]: update.loser_new_rating}
            else:
                new_ratings = apply_team_result(
                    rating_inputs(stats, winners), rating_inputs(stats, losers), ELO
                )
            for uid, rating in new_ratings.items():
                changes[uid] = {"before": players[uid].stats.elo, "after": rating}
                players[uid].stats.elo = rating
                players[uid].stats.games_played += 1

        for uid in winners:
            players[uid].stats.wins += 1
        for uid in losers:
            players[uid].stats.losses += 1

        match.result = MatchResult(
            winners=list(winners),
            losers=list(losers),
            score=score,
            recorded_by=user_id,
            recorded_at=storage.utcnow(),
        )
        match.status = MatchStatus.COMPLETED
        storage.update_match_record(match, conn=conn)
        for uid, u in players.items():
            storage.update_user_stats(uid, u.stats, conn=conn)
    logger.info("result recorded for match %s by %s (ranked=%s)", match_id, user_id, match.is_ranked)
    data = match_to_dict(match, players)
    data["rating_changes"] = changes
    return data


def rating_preview(match_id: int) -> dict[str, object]:
    """Show how a 1v1 match would move both players' ratings."""
    match = get_match_or_404(match_id)
    if MatchType(match.type) != MatchType.SINGLES or len(match.players) != 2:
        raise ServiceError("Rating preview needs a 1v1 match with two players", 400)
    a = get_user_or_404(match.players[0])
    b = get_user_or_404(match.players[1])
    preview = preview_both_outcomes(
        RatingInput(a.stats.elo, a.stats.games_played),
        RatingInput(b.stats.elo, b.stats.games_played),
        ELO,
    )
    return {
        "player_a": a.user_id,
        "player_b": b.user_id,
        "if_a_wins": {"a_change": preview.if_a_wins.a_change, "b_change": preview.if_a_wins.b_change},
        "if_b_wins": {"a_change": preview.if_b_wins.a_change, "b_change": preview.if_b_wins.b_change},
    }


def list_matches(user_id: str) -> list[dict[str, object]]:
    """Matches visible to ``user_id`` in start-time order.

    Admins see everything; others do not see deleted matches unless they
    played in them.
    """
    viewer = get_user_or_404(user_id)
    users = storage.load_users()
    result = []
    for m in storage.list_matches():
        if m.is_deleted and not viewer.is_admin and user_id not in m.players:
            continue
        result.append(match_to_dict(m, users))
    return result


def cleanup_expired_matches(now: datetime.datetime | None = None) -> int:
    """Cancel open or filled matches whose start time has passed."""
    now = normalize_datetime(now) if now else storage.utcnow()
    count = storage.expire_matches(now)
    if count:
        logger.info("expired %d stale matches", count)
    return count
