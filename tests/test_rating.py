import pytest

from billiards.rating import (
    EloConfig,
    RatingInput,
    apply_result,
    apply_team_result,
    effective_k_factor,
    expected_score,
    preview_both_outcomes,
)

ESTABLISHED = 10


def test_expected_score_equal_and_complementary():
    assert expected_score(1500, 1500) == pytest.approx(0.5)
    assert expected_score(1400, 1000) + expected_score(1000, 1400) == pytest.approx(1.0)
    assert expected_score(1000, 1400) == pytest.approx(1 / 11)


def test_effective_k_factor_tiers():
    assert effective_k_factor(1500, 5) == 64
    assert effective_k_factor(1500, 10) == 32
    assert effective_k_factor(2400, 20) == 32
    assert effective_k_factor(2401, 20) == 16
    # provisional beats the high-rating tier
    assert effective_k_factor(2600, 3) == 64


def test_equal_established_players():
    update = apply_result(RatingInput(1200, ESTABLISHED), RatingInput(1200, ESTABLISHED))
    assert update.winner_new_rating == 1216
    assert update.loser_new_rating == 1184


def test_provisional_players_move_faster():
    update = apply_result(RatingInput(1200, 0), RatingInput(1200, 0))
    assert (update.winner_new_rating, update.loser_new_rating) == (1232, 1168)


def test_high_rated_players_move_slower():
    update = apply_result(RatingInput(2500, 50), RatingInput(2500, 50))
    assert (update.winner_new_rating, update.loser_new_rating) == (2508, 2492)


def test_upset_moves_more_than_expected_win():
    upset = apply_result(RatingInput(1000, ESTABLISHED), RatingInput(1400, ESTABLISHED))
    assert (upset.winner_new_rating, upset.loser_new_rating) == (1029, 1371)

    favourite = apply_result(RatingInput(1400, ESTABLISHED), RatingInput(1000, ESTABLISHED))
    assert (favourite.winner_new_rating, favourite.loser_new_rating) == (1403, 997)


def test_ratings_are_clamped():
    config = EloConfig(min_rating=1190, max_rating=1210)
    update = apply_result(RatingInput(1200, ESTABLISHED), RatingInput(1200, ESTABLISHED), config)
    assert update.winner_new_rating == 1210
    assert update.loser_new_rating == 1190


def test_rounding_is_half_up():
    config = EloConfig(k_factor=1)
    update = apply_result(RatingInput(1200, ESTABLISHED), RatingInput(1200, ESTABLISHED), config)
    # 1200.5 -> 1201 and 1199.5 -> 1200
    assert update.winner_new_rating == 1201
    assert update.loser_new_rating == 1200


def test_preview_both_outcomes():
    preview = preview_both_outcomes(RatingInput(1200, ESTABLISHED), RatingInput(1200, ESTABLISHED))
    assert (preview.if_a_wins.a_change, preview.if_a_wins.b_change) == (16, -16)
    assert (preview.if_b_wins.a_change, preview.if_b_wins.b_change) == (-16, 16)


def test_preview_uses_each_players_k():
    preview = preview_both_outcomes(RatingInput(1200, 0), RatingInput(1200, ESTABLISHED))
    assert preview.if_a_wins.a_change == 32
    assert preview.if_a_wins.b_change == -16


def test_team_result_against_opponent_average():
    winners = {"a": RatingInput(1200, ESTABLISHED), "b": RatingInput(1200, ESTABLISHED)}
    losers = {"c": RatingInput(1100, ESTABLISHED), "d": RatingInput(1300, ESTABLISHED)}
    result = apply_team_result(winners, losers)
    assert result == {"a": 1216, "b": 1216, "c": 1088, "d": 1280}


def test_team_result_needs_players():
    with pytest.raises(ValueError):
        apply_team_result({}, {"c": RatingInput()})
