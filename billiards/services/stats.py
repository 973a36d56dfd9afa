from __future__ import annotations
import datetime
from .exceptions import ServiceError
from .helpers import get_user_or_404
from .. import storage
from ..models import Match, MatchStatus, MatchType

TIMEFRAMES = ("week", "month", "year", "all")


def timeframe_start(timeframe: str, now: datetime.datetime) -> datetime.datetime:
    """Return the first moment counted for ``timeframe``.

    Weeks start on Sunday.
    """
    today = datetime.datetime(now.year, now.month, now.day)
    if timeframe == "week":
        return today - datetime.timedelta(days=(today.weekday() + 1) % 7)
    if timeframe == "month":
        return today.replace(day=1)
    if timeframe == "year":
        return today.replace(month=1, day=1)
    if timeframe == "all":
        return datetime.datetime.min
    raise ServiceError(f"Unknown timeframe '{timeframe}'", 400)


def _won(match: Match, user_id: str) -> bool | None:
    """True/False for a win/loss by ``user_id``; None if they have no result."""
    if not match.result:
        return None
    if user_id in match.result.winners:
        return True
    if user_id in match.result.losers:
        return False
    return None


def user_stats(user_id: str, timeframe: str = "all", now: datetime.datetime | None = None) -> dict[str, object]:
    """Win/loss summary, history and monthly form for one player."""
    get_user_or_404(user_id)
    now = now or storage.utcnow()
    start = timeframe_start(timeframe, now)

    matches = [
        m
        for m in storage.list_matches(statuses=[MatchStatus.COMPLETED])
        if m.datetime >= start and _won(m, user_id) is not None
    ]
    matches.sort(key=lambda m: m.datetime, reverse=True)
    users = storage.load_users()

    wins = losses = 0
    monthly: dict[datetime.date, dict[str, int]] = {}
    history = []
    for m in matches:
        won = _won(m, user_id)
        if won:
            wins += 1
        else:
            losses += 1

        month = datetime.date(m.datetime.year, m.datetime.month, 1)
        bucket = monthly.setdefault(month, {"wins": 0, "losses": 0})
        bucket["wins" if won else "losses"] += 1

        opponents = ", ".join(
            users[p].name if p in users else p for p in m.players if p != user_id
        )
        history.append(
            {
                "date": m.datetime.isoformat(),
                "type": MatchType(m.type).value,
                "result": "win" if won else "loss",
                "opponent": opponents,
                "score": m.result.score,
                "is_ranked": m.is_ranked,
            }
        )

    performance = [
        {
            "month": month.strftime("%b %Y"),
            "wins": b["wins"],
            "losses": b["losses"],
            "win_rate": b["wins"] / (b["wins"] + b["losses"]),
        }
        for month, b in sorted(monthly.items())
    ]

    return {
        "total_matches": wins + losses,
        "wins": wins,
        "losses": losses,
        "win_rate": wins / ((wins + losses) or 1),
        "match_history": history,
        "performance_by_month": performance,
    }


def _rate(wins: int, losses: int) -> float:
    total = wins + losses
    return wins / total if total else 0.0


def leaderboard() -> list[dict[str, object]]:
    """Every player with casual and ranked records, best rating first."""
    cached = storage.get_cached_leaderboard()
    if cached is not None:
        return cached

    users = storage.load_users()
    tally = {uid: {"wins": 0, "losses": 0, "ranked_wins": 0, "ranked_losses": 0} for uid in users}
    for m in storage.list_matches(statuses=[MatchStatus.COMPLETED]):
        for uid in m.players:
            won = _won(m, uid)
            if won is None or uid not in tally:
                continue
            prefix = "ranked_" if m.is_ranked else ""
            tally[uid][prefix + ("wins" if won else "losses")] += 1

    entries = []
    for uid, u in users.items():
        t = tally[uid]
        entries.append(
            {
                "user_id": uid,
                "name": u.name,
                "stats": {
                    **t,
                    "win_rate": _rate(t["wins"], t["losses"]),
                    "ranked_win_rate": _rate(t["ranked_wins"], t["ranked_losses"]),
                    "elo": u.stats.elo,
                    "games_played": u.stats.games_played,
                },
            }
        )
    entries.sort(key=lambda e: (-e["stats"]["elo"], e["name"]))
    storage.set_cached_leaderboard(entries)
    return entries
