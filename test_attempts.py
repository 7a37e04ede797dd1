"""Starting attempts: attempt cap, one ongoing attempt at a time, overdue attempts."""
from datetime import timedelta

import pytest

from engine import MAX_ATTEMPTS, STATUS_FINISHED, STATUS_ONGOING
from trialcore.attempts import expire_overdue_attempts, is_overdue, start_attempt
from trialcore.errors import AttemptInProgress, AttemptLimitError, DataStoreError, TrialAccessError
from trialcore.session import TrialSession


def test_start_creates_ongoing_attempt(store, clock):
    attempt = start_attempt(store, "t1", "u1", clock=clock)

    assert attempt.status == STATUS_ONGOING
    assert attempt.start_time == clock()
    assert attempt.end_time == clock() + timedelta(seconds=60)
    assert store.progress[("u1", "t1")] == 1


def test_unknown_trial(store, clock):
    with pytest.raises(TrialAccessError):
        start_attempt(store, "t404", "u1", clock=clock)


def test_running_attempt_blocks_a_new_one(store, clock):
    running = start_attempt(store, "t1", "u1", clock=clock)
    clock.advance(10)

    with pytest.raises(AttemptInProgress) as exc:
        start_attempt(store, "t1", "u1", clock=clock)

    assert exc.value.attempt_id == running.id
    assert exc.value.trial_id == "t1"
    assert store.progress[("u1", "t1")] == 1


def test_attempt_cap(store, clock):
    store.progress[("u1", "t1")] = MAX_ATTEMPTS
    with pytest.raises(AttemptLimitError):
        start_attempt(store, "t1", "u1", clock=clock)
    assert not store.attempts


def test_cap_counts_attempts_removed_by_reconciliation(store, clock):
    for _ in range(MAX_ATTEMPTS):
        attempt = start_attempt(store, "t1", "u1", clock=clock)
        store.attempts[attempt.id]["status"] = STATUS_FINISHED
        clock.advance(3600)
    store.attempts.clear()

    with pytest.raises(AttemptLimitError):
        start_attempt(store, "t1", "u1", clock=clock)


def test_overdue_attempt_is_finished_before_starting(store, clock):
    store.record_attempt_started("t1", "u1")
    stale = store.add_attempt("u1", "t1", clock() - timedelta(seconds=120), 60, draft_answers={"q1": "4"})

    fresh = start_attempt(store, "t1", "u1", clock=clock)

    row = store.attempts[stale]
    assert row["status"] == STATUS_FINISHED
    assert row["time_concluded"] == 0
    assert row["score"] == 4
    assert fresh.id != stale
    assert store.progress[("u1", "t1")] == 2


def test_expire_overdue_attempts_for_all_users(store, clock):
    store.add_user("u2")
    store.record_attempt_started("t1", "u1")
    store.record_attempt_started("t1", "u2")
    late_u1 = store.add_attempt("u1", "t1", clock() - timedelta(seconds=300), 60)
    late_u2 = store.add_attempt("u2", "t1", clock() - timedelta(seconds=90), 60)
    live = store.add_attempt("u2", "t1", clock() - timedelta(seconds=10), 60)

    results = expire_overdue_attempts(store, clock=clock)

    assert sorted(r.attempt_id for r in results) == sorted([late_u1, late_u2])
    assert all(r.expired for r in results)
    assert store.attempts[live]["status"] == STATUS_ONGOING


def test_failed_expiry_is_skipped(store, clock):
    store.record_attempt_started("t1", "u1")
    late = store.add_attempt("u1", "t1", clock() - timedelta(seconds=300), 60)
    store.fail_on.add("insert_answer_record")

    assert expire_overdue_attempts(store, "u1", clock=clock) == []
    assert store.attempts[late]["status"] == STATUS_ONGOING


def test_is_overdue(store, clock):
    attempt_id = store.add_attempt("u1", "t1", clock(), 60)
    attempt = store.get_attempt(attempt_id)
    assert not is_overdue(attempt, clock())
    assert is_overdue(attempt, clock() + timedelta(seconds=60))


def test_uncounted_attempt_is_removed(store, clock):
    store.fail_on.add("record_attempt_started")

    with pytest.raises(DataStoreError):
        start_attempt(store, "t1", "u1", clock=clock)

    assert store.attempts == {}
    assert store.progress.get(("u1", "t1"), 0) == 0


def test_failed_counter_write_cannot_earn_a_second_bonus(store, clock):
    first = start_attempt(store, "t1", "u1", clock=clock)
    result = TrialSession(store, first.id, "u1", clock=clock).load().finish()
    assert result.exp_gained == pytest.approx(30)  # 1/3 * 30 + 20 first-attempt bonus

    clock.advance(3600)
    store.fail_on.add("record_attempt_started")
    with pytest.raises(DataStoreError):
        start_attempt(store, "t1", "u1", clock=clock)
    store.fail_on.clear()

    second = start_attempt(store, "t1", "u1", clock=clock)
    result = TrialSession(store, second.id, "u1", clock=clock).load().finish()
    assert result.exp_gained == pytest.approx(10)
    assert store.progress[("u1", "t1")] == 2
