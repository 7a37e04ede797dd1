"""In-memory answers for one attempt, keyed by question id."""
from typing import Dict, List, Optional

from engine import QTYPE_MULTIPLE
from trialcore.errors import AnswerRejected
from trialcore.models import AnswerValue, Question


class AnswerLedger:
    """Current answer per question. Survives navigation; cleared only with the session."""

    def __init__(self, initial: Optional[Dict[str, AnswerValue]] = None):
        self._answers: Dict[str, AnswerValue] = dict(initial or {})
        self.changes = 0

    def set_answer(self, question: Question, value: Optional[AnswerValue]):
        """Record an answer. Multiple takes a list capped at len(correct answers); others a string."""
        if value is None:
            self._answers.pop(question.id, None)
            self.changes += 1
            return
        if question.qtype == QTYPE_MULTIPLE:
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise AnswerRejected(f"Question {question.id} expects a list of options")
            selected: List[str] = list(dict.fromkeys(str(v) for v in value))
            if len(selected) > question.selection_limit:
                raise AnswerRejected(
                    f"Question {question.id} allows at most {question.selection_limit} selections"
                )
            if question.options:
                unknown = [v for v in selected if v not in question.options]
                if unknown:
                    raise AnswerRejected(f"Question {question.id}: unknown options {unknown}")
            self._answers[question.id] = selected
        else:
            if not isinstance(value, str):
                raise AnswerRejected(f"Question {question.id} expects a single text answer")
            self._answers[question.id] = value
        self.changes += 1

    def get(self, question_id: str) -> Optional[AnswerValue]:
        return self._answers.get(question_id)

    def answered_count(self) -> int:
        return sum(1 for v in self._answers.values() if v not in ("", []))

    def snapshot(self) -> Dict[str, AnswerValue]:
        return {k: (list(v) if isinstance(v, list) else v) for k, v in self._answers.items()}

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._answers

    def __len__(self) -> int:
        return len(self._answers)
