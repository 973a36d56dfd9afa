from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence

from .models import DEFAULT_RATING, PlayerStats

K_FACTOR = 32
PROVISIONAL_K_FACTOR = 64
# Players with fewer ranked games than this are still provisional
PROVISIONAL_GAMES = 10
MIN_RATING = 100
MAX_RATING = 3000
HIGH_RATING_THRESHOLD = 2400
HIGH_RATING_K_FACTOR = 16


@dataclass(frozen=True)
class EloConfig:
    k_factor: float = K_FACTOR
    min_rating: int = MIN_RATING
    max_rating: int = MAX_RATING
    provisional_games: int = PROVISIONAL_GAMES
    provisional_k_factor: float = PROVISIONAL_K_FACTOR
    high_rating_threshold: float = HIGH_RATING_THRESHOLD
    high_rating_k_factor: float = HIGH_RATING_K_FACTOR


DEFAULT_CONFIG = EloConfig()


@dataclass(frozen=True)
class RatingInput:
    rating: float = DEFAULT_RATING
    games_played: int = 0


@dataclass(frozen=True)
class RatingUpdate:
    winner_new_rating: int
    loser_new_rating: int


@dataclass(frozen=True)
class RatingChange:
    a_change: float
    b_change: float


@dataclass(frozen=True)
class RatingPreview:
    if_a_wins: RatingChange
    if_b_wins: RatingChange


def expected_score(rating_a: float, rating_b: float) -> float:
    """Return the probability that ``rating_a`` beats ``rating_b``."""
    return 1 / (1 + 10 ** ((rating_b - rating_a) / 400))


def effective_k_factor(rating: float, games_played: int, config: EloConfig = DEFAULT_CONFIG) -> float:
    """Return the K-factor for a player.

    Provisional players always get the provisional factor, even when their
    rating is above the high-rating threshold.
    """
    if games_played < config.provisional_games:
        return config.provisional_k_factor
    if rating > config.high_rating_threshold:
        return config.high_rating_k_factor
    return config.k_factor


def _round(value: float) -> int:
    # half-up, not Python's round-half-even
    return int(math.floor(value + 0.5))


def _clamp(rating: int, config: EloConfig) -> int:
    return min(max(rating, config.min_rating), config.max_rating)


def apply_result(winner: RatingInput, loser: RatingInput, config: EloConfig = DEFAULT_CONFIG) -> RatingUpdate:
    """Return the new ratings after ``winner`` beats ``loser``.

    Ratings are rounded after the logistic update and then clamped to the
    configured bounds.
    """
    expected_winner = expected_score(winner.rating, loser.rating)
    expected_loser = expected_score(loser.rating, winner.rating)

    k_winner = effective_k_factor(winner.rating, winner.games_played, config)
    k_loser = effective_k_factor(loser.rating, loser.games_played, config)

    winner_new = _round(winner.rating + k_winner * (1 - expected_winner))
    loser_new = _round(loser.rating + k_loser * (0 - expected_loser))

    return RatingUpdate(
        winner_new_rating=_clamp(winner_new, config),
        loser_new_rating=_clamp(loser_new, config),
    )


def preview_both_outcomes(
    player_a: RatingInput, player_b: RatingInput, config: EloConfig = DEFAULT_CONFIG
) -> RatingPreview:
    """Return the rating deltas for both possible results of a match."""
    a_wins = apply_result(player_a, player_b, config)
    b_wins = apply_result(player_b, player_a, config)
    return RatingPreview(
        if_a_wins=RatingChange(
            a_change=a_wins.winner_new_rating - player_a.rating,
            b_change=a_wins.loser_new_rating - player_b.rating,
        ),
        if_b_wins=RatingChange(
            a_change=b_wins.loser_new_rating - player_a.rating,
            b_change=b_wins.winner_new_rating - player_b.rating,
        ),
    )


def _team_average(team: Sequence[RatingInput]) -> float:
    return sum(p.rating for p in team) / len(team)


def apply_team_result(
    winners: Dict[str, RatingInput],
    losers: Dict[str, RatingInput],
    config: EloConfig = DEFAULT_CONFIG,
) -> Dict[str, int]:
    """Update ratings for a team match.

    Every player is rated against the average rating of the opposing team
    with their own K-factor. Returns the new rating for each player id.
    """
    if not winners or not losers:
        raise ValueError("Both teams need at least one player")

    winner_avg = _team_average(list(winners.values()))
    loser_avg = _team_average(list(losers.values()))

    new_ratings: Dict[str, int] = {}
    for pid, player in winners.items():
        opponent = RatingInput(rating=loser_avg, games_played=config.provisional_games)
        new_ratings[pid] = apply_result(player, opponent, config).winner_new_rating
    for pid, player in losers.items():
        opponent = RatingInput(rating=winner_avg, games_played=config.provisional_games)
        new_ratings[pid] = apply_result(opponent, player, config).loser_new_rating
    return new_ratings


def rating_inputs(stats_by_player: Dict[str, PlayerStats], ids: List[str]) -> Dict[str, RatingInput]:
    """Build :class:`RatingInput` values for ``ids`` from stored stats."""
    return {
        pid: RatingInput(rating=stats_by_player[pid].elo, games_played=stats_by_player[pid].games_played)
        for pid in ids
    }
