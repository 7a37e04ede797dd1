"""
Attempt reconciliation: keep only the best finished attempt per (user, trial).
Best = highest eval_score; ties go to the first attempt in listing order (oldest).
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from engine import MSG_BEAT_PREVIOUS, MSG_FIRST_ATTEMPT, MSG_TRY_AGAIN
from trialcore.errors import DataStoreError

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    kept_id: Optional[str]
    deleted_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    survived: Optional[bool] = None  # None when there was nothing to compare against
    message: str = MSG_FIRST_ATTEMPT


def _is_scored(row: Dict) -> bool:
    return row.get("eval_score") not in (None, "")


def select_losers(attempts: List[Dict]) -> List[Dict]:
    """Every scored attempt except the first one holding the maximum eval. Unscored rows are never losers."""
    scored = [a for a in attempts if _is_scored(a)]
    if len(scored) < 2:
        return []
    max_eval = max(float(a["eval_score"]) for a in scored)
    best = next(a for a in scored if float(a["eval_score"]) == max_eval)
    return [a for a in scored if a is not best]


def reconcile_attempts(store, trial_id: str, user_id: str, current_attempt_id: Optional[str] = None) -> ReconcileOutcome:
    """
    Delete inferior attempts (answer records first, then the attempt row).

    Finished rows without an eval (a submission whose rollback also failed) are left in place and logged.

    Args:
        store: DatabaseClient-like data store
        current_attempt_id: the attempt that just finished, for the result message

    Returns:
        ReconcileOutcome. Deletion failures are logged and listed in failed_ids; a later pass retries them.
    """
    attempts = store.list_attempts(trial_id, user_id)
    for row in attempts:
        if not _is_scored(row):
            logger.error(f"Attempt {row['id']} is finished but has no eval score; left for manual repair")
    attempts = [a for a in attempts if _is_scored(a)]
    if len(attempts) < 2:
        kept = str(attempts[0]["id"]) if attempts else None
        return ReconcileOutcome(kept_id=kept)

    losers = select_losers(attempts)
    loser_ids = {str(a["id"]) for a in losers}
    kept_id = next(str(a["id"]) for a in attempts if str(a["id"]) not in loser_ids)

    outcome = ReconcileOutcome(kept_id=kept_id)
    for attempt in losers:
        attempt_id = str(attempt["id"])
        try:
            store.delete_answer_records(attempt_id)
            store.delete_attempt(attempt_id)
            outcome.deleted_ids.append(attempt_id)
        except DataStoreError as e:
            logger.warning(f"Could not prune attempt {attempt_id}, leaving it for a later pass: {e}")
            outcome.failed_ids.append(attempt_id)

    if current_attempt_id is not None:
        outcome.survived = str(current_attempt_id) == kept_id
        outcome.message = MSG_BEAT_PREVIOUS if outcome.survived else MSG_TRY_AGAIN

    logger.info(
        f"Reconciled trial {trial_id} for user {user_id}: kept {kept_id}, "
        f"deleted {len(outcome.deleted_ids)}, failed {len(outcome.failed_ids)}"
    )
    return outcome
