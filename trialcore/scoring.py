"""
Grading and rewards: per-question points, star rating, eval score, experience and levels.
All functions are pure; persistence happens in the session controller.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from engine import (
    QTYPE_SINGLE, QTYPE_MULTIPLE, QTYPE_INPUT,
    STAR2_SCORE_RATIO, STAR3_TIME_RATIO, MAX_STARS,
    EVAL_SCORE_WEIGHT, EVAL_TIME_WEIGHT,
    LEVEL_BASE_EXP, LEVEL_EXP_STEP, MAX_LEVEL,
)
from trialcore.models import AnswerValue, Question

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    return text.strip().lower()


def score_answer(question: Question, answer: Optional[AnswerValue]) -> float:
    """
    Points awarded for one answer.

    Single:   full points if the answer equals any correct answer
    Multiple: number of distinct selected options that are correct (not scaled to points)
    Input:    full points on a trimmed, case-insensitive match with any correct answer
    Missing or wrongly shaped answers score 0.
    """
    if answer is None:
        return 0.0

    if question.qtype == QTYPE_SINGLE:
        if isinstance(answer, str) and answer in question.correct_answers:
            return question.points
        return 0.0

    if question.qtype == QTYPE_MULTIPLE:
        if not isinstance(answer, (list, tuple)):
            return 0.0
        correct = set(question.correct_answers)
        return float(sum(1 for ans in set(answer) if ans in correct))

    if question.qtype == QTYPE_INPUT:
        if not isinstance(answer, str):
            return 0.0
        submitted = _normalize(answer)
        if any(_normalize(c) == submitted for c in question.correct_answers):
            return question.points
        return 0.0

    logger.warning(f"Question {question.id}: cannot grade type {question.qtype!r}")
    return 0.0


@dataclass(frozen=True)
class StarRating:
    star1: bool
    star2: bool
    star3: bool

    @property
    def count(self) -> int:
        return int(self.star1) + int(self.star2) + int(self.star3)


def _ratio(part: float, whole: float) -> float:
    return part / whole if whole > 0 else 0.0


def calculate_stars(total_score: float, all_score: float, allocated_time: int, remaining_time: int) -> StarRating:
    """Finishing earns star 1; star 2 needs 70% of the score; star 3 also needs 35% of the time left."""
    star1 = True
    star2 = star1 and all_score > 0 and _ratio(total_score, all_score) >= STAR2_SCORE_RATIO
    star3 = star2 and allocated_time > 0 and _ratio(remaining_time, allocated_time) >= STAR3_TIME_RATIO
    return StarRating(star1, star2, star3)


def calculate_eval_score(total_score: float, all_score: float, allocated_time: int, remaining_time: int) -> float:
    """Blend of score ratio (70%) and time-remaining ratio (30%) on a 0-100 scale, one decimal."""
    raw = (
        _ratio(total_score, all_score) * EVAL_SCORE_WEIGHT
        + _ratio(remaining_time, allocated_time) * EVAL_TIME_WEIGHT
    ) * 100
    return round(raw, 1)


def calculate_exp(star_count: int, exp_gain: float, first_exp: float, first_attempt: bool) -> Dict[str, float]:
    """Star-based share of the trial's exp, plus the first-attempt bonus."""
    star_exp = (star_count / MAX_STARS) * max(0.0, exp_gain)
    bonus_exp = max(0.0, first_exp) if first_attempt else 0.0
    return {
        "star_exp": star_exp,
        "bonus_exp": bonus_exp,
        "total_exp": star_exp + bonus_exp,
    }


def calculate_level(exp: Optional[float]) -> Dict[str, float]:
    """
    Level progression: level 2 needs 100 exp, every later level 50 more than the last.

    Returns:
        {level, current_exp (exp into the level), next_exp (exp the level needs)}
    """
    if not exp or exp <= 0:
        return {"level": 1, "current_exp": 0, "next_exp": LEVEL_BASE_EXP}
    level = 1
    needed = LEVEL_BASE_EXP
    while exp >= needed and level < MAX_LEVEL:
        exp -= needed
        level += 1
        needed += LEVEL_EXP_STEP
    return {"level": level, "current_exp": exp, "next_exp": needed}
