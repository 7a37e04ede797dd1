"""Stars, eval score, experience and levels."""
import pytest

from trialcore.scoring import calculate_eval_score, calculate_exp, calculate_level, calculate_stars


def test_perfect_score_with_time_left_earns_three_stars():
    stars = calculate_stars(10, 10, 60, 25)
    assert (stars.star1, stars.star2, stars.star3) == (True, True, True)
    assert stars.count == 3
    assert calculate_eval_score(10, 10, 60, 25) == 82.5


@pytest.mark.parametrize("remaining", [0, 10, 30, 60])
def test_sixty_percent_earns_one_star(remaining):
    stars = calculate_stars(6, 10, 60, remaining)
    assert (stars.star1, stars.star2, stars.star3) == (True, False, False)
    assert stars.count == 1


def test_seventy_percent_is_enough_for_second_star():
    assert calculate_stars(7, 10, 60, 0).count == 2


def test_third_star_needs_35_percent_of_time():
    assert calculate_stars(10, 10, 100, 35).count == 3
    assert calculate_stars(10, 10, 100, 34).count == 2


def test_time_alone_never_gives_third_star():
    stars = calculate_stars(0, 10, 60, 60)
    assert stars.star3 is False
    assert stars.count == 1


def test_star_monotonicity():
    for total in range(0, 11):
        for remaining in range(0, 61, 5):
            s = calculate_stars(total, 10, 60, remaining)
            assert not s.star2 or s.star1
            assert not s.star3 or s.star2


def test_zero_denominators_are_guarded():
    stars = calculate_stars(5, 0, 0, 10)
    assert stars.count == 1
    assert calculate_eval_score(5, 0, 0, 10) == 0.0
    assert calculate_eval_score(10, 10, 0, 0) == 70.0


def test_eval_rounds_to_one_decimal():
    assert calculate_eval_score(1, 3, 60, 20) == round((1 / 3 * 0.7 + 20 / 60 * 0.3) * 100, 1)


def test_first_attempt_adds_bonus():
    exp = calculate_exp(3, exp_gain=30, first_exp=20, first_attempt=True)
    assert exp["star_exp"] == 30
    assert exp["bonus_exp"] == 20
    assert exp["total_exp"] == 50


def test_later_attempts_get_star_share_only():
    exp = calculate_exp(2, exp_gain=30, first_exp=20, first_attempt=False)
    assert exp["total_exp"] == pytest.approx(20)


def test_exp_never_negative():
    exp = calculate_exp(1, exp_gain=-30, first_exp=-5, first_attempt=True)
    assert exp["total_exp"] == 0


@pytest.mark.parametrize(
    "exp,level,current,needed",
    [
        (None, 1, 0, 100),
        (0, 1, 0, 100),
        (99, 1, 99, 100),
        (100, 2, 0, 150),
        (260, 3, 10, 200),
    ],
)
def test_levels(exp, level, current, needed):
    assert calculate_level(exp) == {"level": level, "current_exp": current, "next_exp": needed}


def test_level_is_capped():
    assert calculate_level(10 ** 9)["level"] == 100
