"""
Housekeeping for trial attempts:
  1. finish overdue "Ongoing" attempts (graded from their autosaved answers, time_concluded = 0)
  2. reconcile every (user, trial): keep only the best finished attempt (retries failed prunes)

Run: python maintenance.py [--dry-run] [--user USER_ID] [--skip-expire] [--skip-reconcile]
"""
import argparse
import logging
import sys
from pathlib import Path

path = Path(__file__).resolve().parent
if str(path) not in sys.path:
    sys.path.insert(0, str(path))

from dotenv import load_dotenv
load_dotenv()

from trialcore.attempts import expire_overdue_attempts, is_overdue
from trialcore.errors import DataStoreError
from trialcore.reconciler import reconcile_attempts, select_losers
from trialcore.timer import now_local

logger = logging.getLogger("maintenance")


def run_expire(store, user_id, dry_run: bool) -> int:
    if dry_run:
        now = now_local()
        overdue = [a for a in store.list_ongoing_attempts(user_id) if is_overdue(a, now)]
        for a in overdue:
            print(f"  would finish attempt {a.id} (user {a.user_id}, trial {a.trial_id}, ended {a.end_time})")
        return len(overdue)
    results = expire_overdue_attempts(store, user_id)
    for r in results:
        print(f"  finished attempt {r.attempt_id}: score {r.score}/{r.all_score}, {r.stars} stars")
    return len(results)


def run_reconcile(store, user_id, dry_run: bool) -> int:
    pruned = 0
    for key in store.list_attempt_keys():
        if user_id and key["user_id"] != str(user_id):
            continue
        if dry_run:
            losers = select_losers(store.list_attempts(key["trial_id"], key["user_id"]))
            for a in losers:
                print(f"  would delete attempt {a['id']} (eval {a.get('eval_score')})")
            pruned += len(losers)
            continue
        outcome = reconcile_attempts(store, key["trial_id"], key["user_id"])
        pruned += len(outcome.deleted_ids)
        for attempt_id in outcome.failed_ids:
            print(f"  could not delete attempt {attempt_id}; will retry next run")
    return pruned


def main():
    parser = argparse.ArgumentParser(description="Finish overdue attempts and prune inferior ones.")
    parser.add_argument("--dry-run", action="store_true", help="Only print what would change")
    parser.add_argument("--user", default=None, help="Limit to one user id")
    parser.add_argument("--skip-expire", action="store_true", help="Do not finish overdue attempts")
    parser.add_argument("--skip-reconcile", action="store_true", help="Do not prune inferior attempts")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    from db import get_store_uncached
    try:
        store = get_store_uncached()
    except ValueError as e:
        print(f"{e} (set them in .env)")
        sys.exit(1)

    try:
        if not args.skip_expire:
            print("Overdue attempts:")
            n = run_expire(store, args.user, args.dry_run)
            print(f"  {n} attempt(s) {'to finish' if args.dry_run else 'finished'}")
        if not args.skip_reconcile:
            print("Reconciliation:")
            n = run_reconcile(store, args.user, args.dry_run)
            print(f"  {n} attempt(s) {'to delete' if args.dry_run else 'deleted'}")
    except DataStoreError as e:
        logger.error(f"Maintenance aborted: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
