"""Shared fixtures: an in-memory data store with the DatabaseClient interface and a fixed clock."""
import itertools
from datetime import datetime, timedelta

import pytest

from engine import STATUS_FINISHED, STATUS_ONGOING
from trialcore.errors import DataStoreError
from trialcore.models import Attempt, Question, Trial
from trialcore.timer import APP_TZ

T0 = datetime(2025, 3, 1, 9, 0, 0, tzinfo=APP_TZ)


class FixedClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryStore:
    """Dict-backed stand-in for trialcore.database.DatabaseClient."""

    def __init__(self):
        self.trials = {}
        self.questions = {}  # trial_id -> [Question]
        self.attempts = {}  # attempt_id -> row dict
        self.answers = []  # q_data rows
        self.users = {}
        self.progress = {}  # (user_id, trial_id) -> attempts started
        self.achievements = {}
        self.user_acv = []
        self.fail_on = set()
        self.calls = []
        self._ids = itertools.count(1)

    def _call(self, name: str):
        self.calls.append(name)
        if name in self.fail_on:
            raise DataStoreError(f"{name} failed")

    # --- seeding helpers ---

    def add_trial(self, trial: Trial, questions):
        self.trials[trial.id] = trial
        self.questions[trial.id] = list(questions)

    def add_user(self, user_id: str, exp: float = 0.0, username: str = "student"):
        self.users[user_id] = {"id": user_id, "username": username, "exp": exp}

    def add_attempt(self, user_id, trial_id, start_time, budget, status=STATUS_ONGOING, eval_score=None, **extra):
        attempt_id = f"a{next(self._ids)}"
        row = {
            "id": attempt_id,
            "user_id": user_id,
            "trial_id": trial_id,
            "start_time": start_time.isoformat(),
            "end_time": (start_time + timedelta(seconds=budget)).isoformat(),
            "status": status,
            "eval_score": eval_score,
        }
        row.update(extra)
        self.attempts[attempt_id] = row
        return attempt_id

    # --- DatabaseClient interface ---

    def get_trial(self, trial_id):
        self._call("get_trial")
        return self.trials.get(str(trial_id))

    def list_trials(self):
        self._call("list_trials")
        return list(self.trials.values())

    def get_questions(self, trial_id):
        self._call("get_questions")
        return list(self.questions.get(str(trial_id), []))

    def get_attempt(self, attempt_id):
        self._call("get_attempt")
        row = self.attempts.get(str(attempt_id))
        return Attempt.from_row(dict(row)) if row else None

    def create_attempt(self, user_id, trial_id, start_time, end_time):
        self._call("create_attempt")
        attempt_id = f"a{next(self._ids)}"
        self.attempts[attempt_id] = {
            "id": attempt_id,
            "user_id": user_id,
            "trial_id": trial_id,
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "status": STATUS_ONGOING,
        }
        return Attempt.from_row(dict(self.attempts[attempt_id]))

    def update_attempt(self, attempt_id, fields):
        self._call("update_attempt")
        self.attempts[str(attempt_id)].update(fields)

    def list_attempts(self, trial_id, user_id):
        self._call("list_attempts")
        rows = [
            {k: row.get(k) for k in ("id", "eval_score", "start_time", "star", "score", "time_concluded")}
            for row in self.attempts.values()
            if row["trial_id"] == trial_id and row["user_id"] == user_id and row["status"] == STATUS_FINISHED
        ]
        return sorted(rows, key=lambda r: r["start_time"])

    def list_ongoing_attempts(self, user_id=None):
        self._call("list_ongoing_attempts")
        return [
            Attempt.from_row(dict(row))
            for row in self.attempts.values()
            if row["status"] == STATUS_ONGOING and (user_id is None or row["user_id"] == user_id)
        ]

    def list_attempt_keys(self):
        self._call("list_attempt_keys")
        keys = {(r["user_id"], r["trial_id"]) for r in self.attempts.values() if r["status"] == STATUS_FINISHED}
        return [{"user_id": u, "trial_id": t} for u, t in sorted(keys)]

    def delete_attempt(self, attempt_id):
        self._call("delete_attempt")
        self.attempts.pop(str(attempt_id), None)

    def insert_answer_record(self, attempt_id, question_id, answer, points):
        self._call("insert_answer_record")
        self.answers.append({"t_dataid": attempt_id, "q_id": question_id, "uanswer": answer, "upoints": points})

    def get_answer_records(self, attempt_id):
        self._call("get_answer_records")
        return [r for r in self.answers if r["t_dataid"] == attempt_id]

    def delete_answer_records(self, attempt_id):
        self._call("delete_answer_records")
        self.answers = [r for r in self.answers if r["t_dataid"] != attempt_id]

    def get_user(self, user_id):
        self._call("get_user")
        return self.users.get(str(user_id))

    def get_user_experience(self, user_id):
        self._call("get_user_experience")
        return float(self.users[user_id].get("exp") or 0)

    def set_user_experience(self, user_id, exp):
        self._call("set_user_experience")
        self.users[user_id]["exp"] = exp

    def get_attempts_started(self, trial_id, user_id):
        self._call("get_attempts_started")
        return self.progress.get((user_id, trial_id), 0)

    def count_prior_attempts(self, trial_id, user_id):
        self._call("count_prior_attempts")
        return max(0, self.progress.get((user_id, trial_id), 0) - 1)

    def record_attempt_started(self, trial_id, user_id):
        self._call("record_attempt_started")
        self.progress[(user_id, trial_id)] = self.progress.get((user_id, trial_id), 0) + 1
        return self.progress[(user_id, trial_id)]

    def has_achievement(self, user_id, achv_id):
        self._call("has_achievement")
        return any(r["user_id"] == user_id and r["achv_id"] == achv_id for r in self.user_acv)

    def award_achievement(self, user_id, achv_id, awarded_at):
        self._call("award_achievement")
        self.user_acv.append({"user_id": user_id, "achv_id": achv_id, "time_date": awarded_at.isoformat()})

    def get_achievement(self, achv_id):
        self._call("get_achievement")
        return self.achievements.get(achv_id)


def make_questions():
    return [
        Question(id="q1", content="<p>2 + 2?</p>", qtype="Single", options=["3", "4", "5"], correct_answers=["4"], points=4),
        Question(id="q2", content="<p>Primes?</p>", qtype="Multiple", options=["A", "B", "C", "D"], correct_answers=["A", "C"], points=2),
        Question(id="q3", content="<p>Capital of France?</p>", qtype="Input", correct_answers=["Paris"], points=4),
    ]


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def trial():
    return Trial(id="t1", title="Basics", time_budget=60, all_score=10, exp_gain=30, first_exp=20)


@pytest.fixture
def store(trial):
    s = InMemoryStore()
    s.add_trial(trial, make_questions())
    s.add_user("u1", exp=0)
    return s


@pytest.fixture
def attempt_id(store, trial, clock):
    """A freshly started attempt for u1 (counted in trial_progress)."""
    store.record_attempt_started(trial.id, "u1")
    return store.add_attempt("u1", trial.id, clock(), trial.time_budget)
