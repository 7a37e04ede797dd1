"""
Starting attempts and finishing overdue ones.
Enforces the attempt cap and the one-ongoing-attempt rule for every caller.
"""
import logging
from datetime import timedelta
from typing import Callable, List, Optional

from engine import MAX_ATTEMPTS
from trialcore.errors import AttemptInProgress, AttemptLimitError, DataStoreError, SubmissionError, TrialAccessError
from trialcore.models import Attempt, TrialResult
from trialcore.session import TrialSession
from trialcore.timer import now_local

logger = logging.getLogger(__name__)


def is_overdue(attempt: Attempt, now) -> bool:
    return attempt.end_time is None or attempt.end_time <= now


def expire_attempt(store, attempt: Attempt, clock: Callable = now_local) -> Optional[TrialResult]:
    """Finish an overdue attempt through the timer's expiry path, grading its autosaved draft."""
    session = TrialSession(store, attempt.id, attempt.user_id, clock=clock)
    try:
        session.load()
    except TrialAccessError as e:
        logger.warning(f"Skipping overdue attempt {attempt.id}: {e}")
        return None
    session.tick()
    if not session.is_done:
        logger.info(f"Attempt {attempt.id} still has {session.remaining}s left, not expired")
        return None
    return session.result


def expire_overdue_attempts(store, user_id: Optional[str] = None, clock: Callable = now_local) -> List[TrialResult]:
    """Finish every overdue ongoing attempt (for one user, or all users). Failures are logged and skipped."""
    now = clock()
    results = []
    for attempt in store.list_ongoing_attempts(user_id):
        if not is_overdue(attempt, now):
            continue
        try:
            result = expire_attempt(store, attempt, clock=clock)
        except SubmissionError as e:
            logger.error(f"Could not finish overdue attempt {attempt.id}: {e}")
            continue
        if result is not None:
            results.append(result)
    return results


def start_attempt(store, trial_id: str, user_id: str, clock: Callable = now_local) -> Attempt:
    """
    Create a new ongoing attempt for the user.

    Raises:
        TrialAccessError: trial does not exist
        AttemptInProgress: the user has an unexpired attempt on any trial
        AttemptLimitError: every allowed attempt on this trial has been used
        DataStoreError: the attempt could not be created and counted
    """
    trial = store.get_trial(trial_id)
    if trial is None:
        raise TrialAccessError(f"Trial {trial_id} not found")

    expire_overdue_attempts(store, user_id, clock=clock)
    now = clock()
    for attempt in store.list_ongoing_attempts(user_id):
        if not is_overdue(attempt, now):
            raise AttemptInProgress(
                f"Attempt {attempt.id} is still in progress", attempt_id=attempt.id, trial_id=attempt.trial_id
            )

    started = store.get_attempts_started(trial.id, user_id)
    if started >= MAX_ATTEMPTS:
        raise AttemptLimitError(f"All {MAX_ATTEMPTS} attempts on trial {trial.id} have been used")

    attempt = store.create_attempt(user_id, trial.id, now, now + timedelta(seconds=trial.time_budget))
    try:
        store.record_attempt_started(trial.id, user_id)
    except DataStoreError:
        # Every attempt row must be counted in trial_progress
        logger.error(f"Attempt {attempt.id} not counted for trial {trial.id}, removing it")
        try:
            store.delete_attempt(attempt.id)
        except DataStoreError as e:
            logger.error(f"Could not remove uncounted attempt {attempt.id}: {e}")
        raise
    logger.info(f"User {user_id} started attempt {attempt.id} ({started + 1}/{MAX_ATTEMPTS}) on trial {trial.id}")
    return attempt
