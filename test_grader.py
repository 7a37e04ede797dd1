"""Per-type grading rules."""
import random

import pytest

from trialcore.models import Question
from trialcore.scoring import score_answer

SINGLE = Question(id="s", content="", qtype="Single", options=["a", "b", "c"], correct_answers=["b", "c"], points=3)
MULTI = Question(id="m", content="", qtype="Multiple", options=["A", "B", "C", "D"], correct_answers=["A", "C"], points=5)
INPUT = Question(id="i", content="", qtype="Input", correct_answers=["Paris", "paris, france"], points=2)


def test_single_full_points_for_any_correct_answer():
    assert score_answer(SINGLE, "b") == 3
    assert score_answer(SINGLE, "c") == 3


def test_single_wrong_or_wrong_shape_scores_zero():
    assert score_answer(SINGLE, "a") == 0
    assert score_answer(SINGLE, ["b"]) == 0
    assert score_answer(SINGLE, " b") == 0


def test_multiple_counts_matches_not_points():
    # Example: correct {A, C}, submitted [A, B] -> 1
    assert score_answer(MULTI, ["A", "B"]) == 1
    assert score_answer(MULTI, ["A", "C"]) == 2
    assert score_answer(MULTI, ["B", "D"]) == 0


def test_multiple_is_order_independent_and_bounded():
    k = len(MULTI.correct_answers)
    rng = random.Random(7)
    for _ in range(50):
        picked = rng.sample(MULTI.options, rng.randint(0, len(MULTI.options)))
        points = score_answer(MULTI, picked)
        assert 0 <= points <= k
        assert points == len([p for p in picked if p in MULTI.correct_answers])
        assert score_answer(MULTI, list(reversed(picked))) == points


def test_multiple_duplicates_do_not_add_points():
    assert score_answer(MULTI, ["A", "A", "A"]) == 1


def test_multiple_requires_a_list():
    assert score_answer(MULTI, "A") == 0


@pytest.mark.parametrize("answer", ["Paris", "  paris ", "PARIS", "Paris, France"])
def test_input_trimmed_case_insensitive(answer):
    assert score_answer(INPUT, answer) == 2


def test_input_wrong_answer():
    assert score_answer(INPUT, "Lyon") == 0
    assert score_answer(INPUT, "") == 0


@pytest.mark.parametrize("question", [SINGLE, MULTI, INPUT])
def test_unanswered_scores_zero(question):
    assert score_answer(question, None) == 0


@pytest.mark.parametrize("question,answer", [(SINGLE, "b"), (SINGLE, "a"), (INPUT, "paris"), (INPUT, "x")])
def test_grading_is_repeatable(question, answer):
    assert score_answer(question, answer) == score_answer(question, answer)


def test_unknown_type_scores_zero():
    odd = Question(id="o", content="", qtype="Essay", correct_answers=["x"], points=9)
    assert score_answer(odd, "x") == 0
