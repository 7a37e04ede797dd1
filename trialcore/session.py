"""
Trial session controller: one user taking one attempt of a timed trial.

States: LOADING -> ACTIVE -> SUBMITTING -> FINISHED, or EXPIRED when the timer ends the attempt.
A failed submission rolls back what it wrote and moves to FAILED, from which finish() may be retried.
"""
import logging
import random
from enum import Enum
from typing import Callable, Dict, List, Optional

from engine import AUTO_SAVE_INTERVAL, STATUS_FINISHED, STATUS_ONGOING, MSG_COMPLETED, MSG_FIRST_ATTEMPT
from trialcore.achievements import check_hidden_achievement
from trialcore.errors import DataStoreError, InvalidTransition, SubmissionError, TrialAccessError
from trialcore.ledger import AnswerLedger
from trialcore.models import AnswerValue, Attempt, Question, Trial, TrialResult
from trialcore.reconciler import reconcile_attempts
from trialcore.scoring import calculate_eval_score, calculate_exp, calculate_level, calculate_stars, score_answer
from trialcore.timer import TrialTimer, now_local

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    FINISHED = "finished"
    EXPIRED = "expired"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    SessionState.LOADING: {SessionState.ACTIVE},
    SessionState.ACTIVE: {SessionState.SUBMITTING},
    SessionState.SUBMITTING: {SessionState.FINISHED, SessionState.EXPIRED, SessionState.FAILED},
    SessionState.FAILED: {SessionState.SUBMITTING},
    SessionState.FINISHED: set(),
    SessionState.EXPIRED: set(),
}


class TrialSession:
    """Loads an attempt, drives navigation and the countdown, and grades/persists on finish."""

    def __init__(
        self,
        store,
        attempt_id: str,
        user_id: str,
        trial_id: Optional[str] = None,
        clock: Callable = now_local,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.attempt_id = str(attempt_id)
        self.user_id = str(user_id)
        self.expected_trial_id = str(trial_id) if trial_id is not None else None
        self.clock = clock
        self.rng = rng or random.Random()

        self.state = SessionState.LOADING
        self.trial: Optional[Trial] = None
        self.attempt: Optional[Attempt] = None
        self.questions: List[Question] = []
        self.ledger = AnswerLedger()
        self.timer: Optional[TrialTimer] = None
        self.current_index = 0
        self.result: Optional[TrialResult] = None
        self._expired = False
        self._saved_changes = 0

    # ============= State machine =============

    def _transition(self, new_state: SessionState):
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(f"Cannot go from {self.state.value} to {new_state.value}")
        logger.info(f"Attempt {self.attempt_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _require_active(self):
        if self.state != SessionState.ACTIVE:
            raise InvalidTransition(f"Attempt {self.attempt_id} is {self.state.value}, not active")

    @property
    def is_done(self) -> bool:
        return self.state in (SessionState.FINISHED, SessionState.EXPIRED)

    # ============= Loading =============

    def load(self) -> "TrialSession":
        """Fetch attempt, trial and questions. Raises TrialAccessError when the session must be abandoned."""
        if self.state != SessionState.LOADING:
            raise InvalidTransition(f"Attempt {self.attempt_id} is already loaded")

        attempt = self.store.get_attempt(self.attempt_id)
        if attempt is None or attempt.user_id != self.user_id:
            raise TrialAccessError(f"Attempt {self.attempt_id} not found for this user")
        if self.expected_trial_id and attempt.trial_id != self.expected_trial_id:
            raise TrialAccessError(f"Attempt {self.attempt_id} does not belong to trial {self.expected_trial_id}")
        if attempt.is_finished:
            raise TrialAccessError(f"Attempt {self.attempt_id} is already finished")

        trial = self.store.get_trial(attempt.trial_id)
        if trial is None:
            raise TrialAccessError(f"Trial {attempt.trial_id} not found")
        questions = self.store.get_questions(trial.id)
        if not questions:
            raise TrialAccessError(f"No questions found for trial {trial.id}")

        self.attempt = attempt
        self.trial = trial
        self.questions = self._ordered_questions(questions)
        known = {q.id for q in self.questions}
        self.ledger = AnswerLedger({k: v for k, v in attempt.draft_answers.items() if k in known})
        self.timer = TrialTimer(attempt.start_time, trial.time_budget, on_expire=self._on_expire, clock=self.clock)

        self._transition(SessionState.ACTIVE)
        self.timer.start()
        logger.info(
            f"Attempt {self.attempt_id}: {len(self.questions)} questions, {self.timer.remaining}s remaining"
        )
        return self

    def _ordered_questions(self, questions: List[Question]) -> List[Question]:
        """Reuse the order saved on the attempt; otherwise shuffle once and save it."""
        by_id = {q.id: q for q in questions}
        saved = self.attempt.question_order
        if saved and set(saved) == set(by_id):
            return [by_id[qid] for qid in saved]

        ordered = list(questions)
        self.rng.shuffle(ordered)
        order = [q.id for q in ordered]
        try:
            self.store.update_attempt(self.attempt_id, {"question_order": order})
            self.attempt.question_order = order
        except DataStoreError as e:
            logger.warning(f"Attempt {self.attempt_id}: question order not saved, a reload will reshuffle: {e}")
        return ordered

    # ============= Active: navigation and answers =============

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if not self.questions:
            return None
        return self.questions[self.current_index]

    def go_to(self, index: int) -> Question:
        self._require_active()
        self.current_index = max(0, min(index, self.question_count - 1))
        self.save_draft()
        return self.current_question

    def next_question(self) -> Question:
        return self.go_to(self.current_index + 1)

    def previous_question(self) -> Question:
        return self.go_to(self.current_index - 1)

    def answer(self, question_id: str, value: Optional[AnswerValue]):
        self._require_active()
        question = next((q for q in self.questions if q.id == str(question_id)), None)
        if question is None:
            raise TrialAccessError(f"Question {question_id} is not part of this trial")
        self.ledger.set_answer(question, value)
        if self.ledger.changes - self._saved_changes >= AUTO_SAVE_INTERVAL:
            self.save_draft()

    def save_draft(self):
        """Autosave the ledger on the attempt row so a reload keeps the answers. Best effort."""
        if self.ledger.changes == self._saved_changes:
            return
        try:
            self.store.update_attempt(self.attempt_id, {"draft_answers": self.ledger.snapshot()})
            self._saved_changes = self.ledger.changes
        except DataStoreError as e:
            logger.warning(f"Attempt {self.attempt_id}: draft autosave failed: {e}")

    # ============= Clock =============

    @property
    def remaining(self) -> int:
        if self.result is not None:
            return self.result.remaining
        return self.timer.remaining if self.timer else 0

    def tick(self) -> int:
        """Advance the countdown. Reaching zero submits the attempt (may raise SubmissionError)."""
        if self.state == SessionState.ACTIVE:
            self.timer.tick()
        return self.remaining

    def _on_expire(self):
        logger.warning(f"Attempt {self.attempt_id}: time is up, submitting")
        self._expired = True
        try:
            self.store.update_attempt(self.attempt_id, {"status": STATUS_FINISHED, "time_concluded": 0})
        except DataStoreError as e:
            logger.error(f"Attempt {self.attempt_id}: could not mark expired attempt finished: {e}")
        self._submit(0)

    # ============= Submitting =============

    def finish(self, override_remaining: Optional[int] = None) -> TrialResult:
        """
        Grade and persist the attempt. A second call after success returns the same result.

        Raises:
            InvalidTransition: while loading or already submitting
            SubmissionError: persistence failed; state is FAILED and finish() may be called again
        """
        if self.is_done:
            return self.result
        if self.state not in (SessionState.ACTIVE, SessionState.FAILED):
            raise InvalidTransition(f"Attempt {self.attempt_id} cannot finish while {self.state.value}")
        if self._expired:
            override_remaining = 0
        elif override_remaining is None:
            self.timer.tick()
            if self.is_done:
                return self.result
            override_remaining = self.timer.remaining
        return self._submit(override_remaining)

    def _submit(self, remaining: int) -> TrialResult:
        self._transition(SessionState.SUBMITTING)
        self.timer.stop()
        remaining = max(0, int(remaining or 0))
        try:
            result = self._persist(remaining)
        except DataStoreError as e:
            logger.error(f"Attempt {self.attempt_id}: submission failed, rolling back: {e}")
            self._roll_back()
            self._transition(SessionState.FAILED)
            raise SubmissionError(f"Your answers for attempt {self.attempt_id} could not be saved") from e
        self.result = result
        self._transition(SessionState.EXPIRED if self._expired else SessionState.FINISHED)
        return result

    def grade(self) -> Dict[str, float]:
        """Points per question for every question in the trial, answered or not."""
        return {q.id: score_answer(q, self.ledger.get(q.id)) for q in self.questions}

    def _persist(self, remaining: int) -> TrialResult:
        trial = self.trial
        points = self.grade()
        total = sum(points.values())
        stars = calculate_stars(total, trial.all_score, trial.time_budget, remaining)
        eval_score = calculate_eval_score(total, trial.all_score, trial.time_budget, remaining)

        # Leftovers of an earlier failed submission
        self.store.delete_answer_records(self.attempt_id)
        for question in self.questions:
            self.store.insert_answer_record(
                self.attempt_id, question.id, self.ledger.get(question.id), points[question.id]
            )

        self.store.update_attempt(
            self.attempt_id,
            {
                "score": total,
                "status": STATUS_FINISHED,
                "time_concluded": remaining,
                "star": stars.count,
                "eval_score": eval_score,
            },
        )

        prior = self.store.count_prior_attempts(trial.id, self.user_id)
        exp = calculate_exp(stars.count, trial.exp_gain, trial.first_exp, first_attempt=prior == 0)
        exp_before = self.store.get_user_experience(self.user_id)
        exp_after = exp_before + exp["total_exp"]
        self.store.set_user_experience(self.user_id, exp_after)
        logger.info(
            f"Attempt {self.attempt_id} finished: score={total}/{trial.all_score}, stars={stars.count}, "
            f"eval={eval_score}, exp+{exp['total_exp']:.1f}"
        )

        # Committed. Nothing below may fail the submission.
        achievement = check_hidden_achievement(
            self.store, trial, self.user_id, self.clock(),
            score=total, timeRemaining=remaining, timeAllocated=trial.time_budget,
            allScoreVal=trial.all_score, attemptCount=prior + 1,
        )
        message = MSG_FIRST_ATTEMPT if prior == 0 else MSG_COMPLETED
        try:
            outcome = reconcile_attempts(self.store, trial.id, self.user_id, current_attempt_id=self.attempt_id)
            if prior > 0:
                message = outcome.message
        except DataStoreError as e:
            logger.warning(f"Attempt {self.attempt_id}: reconciliation skipped: {e}")

        return TrialResult(
            attempt_id=self.attempt_id,
            score=total,
            all_score=trial.all_score,
            remaining=remaining,
            allocated=trial.time_budget,
            stars=stars.count,
            eval_score=eval_score,
            exp_gained=exp["total_exp"],
            message=message,
            expired=self._expired,
            level_before=calculate_level(exp_before)["level"],
            level_after=calculate_level(exp_after)["level"],
            achievement=achievement,
            question_points=points,
        )

    def _roll_back(self):
        """Undo a partial submission: drop answer records and reopen the attempt row."""
        try:
            self.store.delete_answer_records(self.attempt_id)
            self.store.update_attempt(
                self.attempt_id,
                {"status": STATUS_ONGOING, "score": None, "time_concluded": None, "star": None, "eval_score": None},
            )
        except DataStoreError as e:
            logger.error(f"Attempt {self.attempt_id}: rollback incomplete, row may stay Finished unscored: {e}")
