"""
Trial data model: trials, questions, attempts and answer records.
Rows come from Supabase as plain dicts; from_row() tolerates missing/NULL columns.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from engine import QTYPE_SINGLE, QTYPE_MULTIPLE, QTYPE_INPUT, STATUS_FINISHED, STATUS_ONGOING

logger = logging.getLogger(__name__)

AnswerValue = Union[str, List[str]]

QUESTION_TYPES = (QTYPE_SINGLE, QTYPE_MULTIPLE, QTYPE_INPUT)


def _as_list(value) -> List[str]:
    """Coerce a JSONB/text column into a list of strings. Plain text stays one verbatim entry."""
    if value is None:
        return []
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return [value]
        if not isinstance(parsed, list):
            return [value]
        value = parsed
    if not isinstance(value, (list, tuple)):
        return [str(value)]
    return [str(v) for v in value]


def _as_number(value, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric value {value!r}, using {default}")
        return default


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are taken as UTC. Returns None if malformed."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Malformed timestamp {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Question:
    id: str
    content: str
    qtype: str
    options: List[str] = field(default_factory=list)
    correct_answers: List[str] = field(default_factory=list)
    points: float = 0.0

    @property
    def selection_limit(self) -> int:
        """How many options a Multiple answer may select."""
        return len(self.correct_answers)

    @classmethod
    def from_row(cls, row: Dict) -> "Question":
        qtype = row.get("qtype") or QTYPE_SINGLE
        if qtype not in QUESTION_TYPES:
            logger.warning(f"Question {row.get('id')}: unknown type {qtype!r}")
        return cls(
            id=str(row["id"]),
            content=row.get("qcontent") or "",
            qtype=qtype,
            options=[] if qtype == QTYPE_INPUT else _as_list(row.get("qselection")),
            correct_answers=_as_list(row.get("qcorrectanswer")),
            points=max(0.0, _as_number(row.get("qpoints"))),
        )


@dataclass(frozen=True)
class Trial:
    id: str
    title: str
    time_budget: int
    all_score: float
    exp_gain: float = 0.0
    first_exp: float = 0.0
    hd_condition: Optional[str] = None
    hd_achv_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict) -> "Trial":
        return cls(
            id=str(row["id"]),
            title=row.get("trial_title") or "Trial",
            time_budget=int(_as_number(row.get("time"))),
            all_score=_as_number(row.get("allscore")),
            exp_gain=_as_number(row.get("exp_gain")),
            first_exp=_as_number(row.get("first_exp")),
            hd_condition=row.get("hd_condition") or None,
            hd_achv_id=row.get("hd_achv_id") or None,
        )


@dataclass
class Attempt:
    id: str
    user_id: str
    trial_id: str
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    status: str = STATUS_ONGOING
    score: Optional[float] = None
    time_concluded: Optional[int] = None
    star: Optional[int] = None
    eval_score: Optional[float] = None
    question_order: List[str] = field(default_factory=list)
    draft_answers: Dict[str, AnswerValue] = field(default_factory=dict)

    @property
    def is_finished(self) -> bool:
        return self.status == STATUS_FINISHED

    @classmethod
    def from_row(cls, row: Dict) -> "Attempt":
        draft = row.get("draft_answers") or {}
        if isinstance(draft, str):
            try:
                draft = json.loads(draft)
            except ValueError:
                draft = {}
        eval_score = row.get("eval_score")
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id")),
            trial_id=str(row.get("trial_id")),
            start_time=parse_timestamp(row.get("start_time")),
            end_time=parse_timestamp(row.get("end_time")),
            status=row.get("status") or STATUS_ONGOING,
            score=row.get("score"),
            time_concluded=row.get("time_concluded"),
            star=row.get("star"),
            eval_score=None if eval_score in (None, "") else _as_number(eval_score),
            question_order=_as_list(row.get("question_order")),
            draft_answers=dict(draft),
        )


@dataclass(frozen=True)
class TrialResult:
    """Summary shown once an attempt is finished."""
    attempt_id: str
    score: float
    all_score: float
    remaining: int
    allocated: int
    stars: int
    eval_score: float
    exp_gained: float
    message: str
    expired: bool = False
    level_before: int = 1
    level_after: int = 1
    achievement: Optional[Dict] = None
    question_points: Dict[str, float] = field(default_factory=dict)

    @property
    def leveled_up(self) -> bool:
        return self.level_after > self.level_before
