"""
Database operations for the trial engine.
Handles Supabase CRUD for trials, questions, attempts (trial_data), answer records (q_data),
users, attempt counters and hidden achievements.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from supabase import Client

from engine import STATUS_FINISHED, STATUS_ONGOING
from trialcore.errors import DataStoreError
from trialcore.models import AnswerValue, Attempt, Question, Trial

logger = logging.getLogger(__name__)


class DatabaseClient:
    """Wrapper around a Supabase client with the reads/writes the trial engine needs."""

    def __init__(self, client: Client):
        self.client = client

    def _first(self, response) -> Optional[Dict]:
        data = response.data if response is not None else None
        if not data:
            return None
        return data[0] if isinstance(data, list) else data

    # ============= Trials & questions =============

    def get_trial(self, trial_id: str) -> Optional[Trial]:
        try:
            response = (
                self.client.table("trials")
                .select("id, trial_title, time, allscore, exp_gain, first_exp, hd_condition, hd_achv_id")
                .eq("id", str(trial_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching trial {trial_id}: {e}")
            raise DataStoreError(f"Could not load trial {trial_id}") from e
        row = self._first(response)
        return Trial.from_row(row) if row else None

    def list_trials(self) -> List[Trial]:
        try:
            response = self.client.table("trials").select("*").order("trial_title").execute()
        except Exception as e:
            logger.error(f"Error listing trials: {e}")
            raise DataStoreError("Could not list trials") from e
        return [Trial.from_row(r) for r in (response.data or [])]

    def get_questions(self, trial_id: str) -> List[Question]:
        try:
            response = (
                self.client.table("questions")
                .select("id, qcontent, qtype, qcorrectanswer, qselection, qpoints")
                .eq("trial_id", str(trial_id))
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching questions for trial {trial_id}: {e}")
            raise DataStoreError(f"Could not load questions for trial {trial_id}") from e
        return [Question.from_row(r) for r in (response.data or [])]

    # ============= Attempts (trial_data) =============

    def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        try:
            response = (
                self.client.table("trial_data")
                .select("*")
                .eq("id", str(attempt_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching attempt {attempt_id}: {e}")
            raise DataStoreError(f"Could not load attempt {attempt_id}") from e
        row = self._first(response)
        return Attempt.from_row(row) if row else None

    def create_attempt(self, user_id: str, trial_id: str, start_time: datetime, end_time: datetime) -> Attempt:
        row = {
            "user_id": str(user_id),
            "trial_id": str(trial_id),
            "start_time": start_time.isoformat(),
            "end_time": end_time.isoformat(),
            "status": STATUS_ONGOING,
        }
        try:
            response = self.client.table("trial_data").insert(row).execute()
        except Exception as e:
            logger.error(f"Error creating attempt for trial {trial_id}: {e}")
            raise DataStoreError(f"Could not start trial {trial_id}") from e
        created = self._first(response)
        if not created:
            raise DataStoreError(f"Insert into trial_data returned no row for trial {trial_id}")
        return Attempt.from_row(created)

    def update_attempt(self, attempt_id: str, fields: Dict):
        try:
            self.client.table("trial_data").update(fields).eq("id", str(attempt_id)).execute()
        except Exception as e:
            logger.error(f"Error updating attempt {attempt_id}: {e}")
            raise DataStoreError(f"Could not update attempt {attempt_id}") from e

    def list_attempts(self, trial_id: str, user_id: str) -> List[Dict]:
        """Finished attempts of a user on a trial, oldest first: [{id, eval_score, start_time, star, score, time_concluded}]."""
        try:
            response = (
                self.client.table("trial_data")
                .select("id, eval_score, start_time, star, score, time_concluded")
                .eq("trial_id", str(trial_id))
                .eq("user_id", str(user_id))
                .eq("status", STATUS_FINISHED)
                .order("start_time")
                .execute()
            )
        except Exception as e:
            logger.error(f"Error listing attempts for trial {trial_id}: {e}")
            raise DataStoreError(f"Could not list attempts for trial {trial_id}") from e
        return response.data or []

    def list_ongoing_attempts(self, user_id: Optional[str] = None) -> List[Attempt]:
        try:
            query = self.client.table("trial_data").select("*").eq("status", STATUS_ONGOING)
            if user_id is not None:
                query = query.eq("user_id", str(user_id))
            response = query.order("start_time").execute()
        except Exception as e:
            logger.error(f"Error listing ongoing attempts: {e}")
            raise DataStoreError("Could not list ongoing attempts") from e
        return [Attempt.from_row(r) for r in (response.data or [])]

    def list_attempt_keys(self) -> List[Dict]:
        """Distinct (user_id, trial_id) pairs with finished attempts, for bulk reconciliation."""
        rows = []
        page_size = 1000
        offset = 0
        try:
            while True:
                r = (
                    self.client.table("trial_data")
                    .select("user_id", "trial_id")
                    .eq("status", STATUS_FINISHED)
                    .range(offset, offset + page_size - 1)
                    .execute()
                )
                data = r.data or []
                rows.extend(data)
                if len(data) < page_size:
                    break
                offset += page_size
        except Exception as e:
            logger.error(f"Error listing attempt keys: {e}")
            raise DataStoreError("Could not list attempts") from e
        seen = {(str(r["user_id"]), str(r["trial_id"])) for r in rows}
        return [{"user_id": u, "trial_id": t} for u, t in sorted(seen)]

    def delete_attempt(self, attempt_id: str):
        try:
            self.client.table("trial_data").delete().eq("id", str(attempt_id)).execute()
        except Exception as e:
            logger.error(f"Error deleting attempt {attempt_id}: {e}")
            raise DataStoreError(f"Could not delete attempt {attempt_id}") from e

    # ============= Answer records (q_data) =============

    def insert_answer_record(self, attempt_id: str, question_id: str, answer: Optional[AnswerValue], points: float):
        row = {
            "q_id": str(question_id),
            "t_dataid": str(attempt_id),
            "uanswer": answer,
            "upoints": points,
        }
        try:
            self.client.table("q_data").insert(row).execute()
        except Exception as e:
            logger.error(f"Error saving answer for question {question_id}: {e}")
            raise DataStoreError(f"Could not save answer for question {question_id}") from e

    def get_answer_records(self, attempt_id: str) -> List[Dict]:
        try:
            response = self.client.table("q_data").select("*").eq("t_dataid", str(attempt_id)).execute()
        except Exception as e:
            logger.error(f"Error fetching answers for attempt {attempt_id}: {e}")
            raise DataStoreError(f"Could not load answers for attempt {attempt_id}") from e
        return response.data or []

    def delete_answer_records(self, attempt_id: str):
        try:
            self.client.table("q_data").delete().eq("t_dataid", str(attempt_id)).execute()
        except Exception as e:
            logger.error(f"Error deleting answers of attempt {attempt_id}: {e}")
            raise DataStoreError(f"Could not delete answers of attempt {attempt_id}") from e

    # ============= Users & progress =============

    def get_user(self, user_id: str) -> Optional[Dict]:
        try:
            response = (
                self.client.table("users")
                .select("id, username, exp")
                .eq("id", str(user_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching user {user_id}: {e}")
            raise DataStoreError(f"Could not load user {user_id}") from e
        return self._first(response)

    def get_user_experience(self, user_id: str) -> float:
        user = self.get_user(user_id)
        if not user or not user.get("exp"):
            return 0.0
        return float(user["exp"])

    def set_user_experience(self, user_id: str, exp: float):
        try:
            self.client.table("users").update({"exp": exp}).eq("id", str(user_id)).execute()
        except Exception as e:
            logger.error(f"Error updating exp of user {user_id}: {e}")
            raise DataStoreError(f"Could not update experience of user {user_id}") from e

    def get_attempts_started(self, trial_id: str, user_id: str) -> int:
        try:
            response = (
                self.client.table("trial_progress")
                .select("attempts")
                .eq("trial_id", str(trial_id))
                .eq("user_id", str(user_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching progress for trial {trial_id}: {e}")
            raise DataStoreError(f"Could not load progress for trial {trial_id}") from e
        row = self._first(response)
        return int(row.get("attempts") or 0) if row else 0

    def count_prior_attempts(self, trial_id: str, user_id: str) -> int:
        """Attempts started before the current one (0 means the current attempt is the first)."""
        return max(0, self.get_attempts_started(trial_id, user_id) - 1)

    def record_attempt_started(self, trial_id: str, user_id: str) -> int:
        attempts = self.get_attempts_started(trial_id, user_id) + 1
        row = {"trial_id": str(trial_id), "user_id": str(user_id), "attempts": attempts}
        try:
            self.client.table("trial_progress").upsert(row, on_conflict="user_id,trial_id").execute()
        except Exception as e:
            logger.error(f"Error recording attempt for trial {trial_id}: {e}")
            raise DataStoreError(f"Could not record attempt for trial {trial_id}") from e
        return attempts

    # ============= Hidden achievements =============

    def has_achievement(self, user_id: str, achv_id: str) -> bool:
        try:
            response = (
                self.client.table("user_acv")
                .select("id")
                .eq("user_id", str(user_id))
                .eq("achv_id", str(achv_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error checking achievement {achv_id}: {e}")
            raise DataStoreError(f"Could not check achievement {achv_id}") from e
        return bool(response.data)

    def award_achievement(self, user_id: str, achv_id: str, awarded_at: datetime):
        row = {"user_id": str(user_id), "achv_id": str(achv_id), "time_date": awarded_at.isoformat()}
        try:
            self.client.table("user_acv").insert(row).execute()
        except Exception as e:
            logger.error(f"Error awarding achievement {achv_id}: {e}")
            raise DataStoreError(f"Could not award achievement {achv_id}") from e

    def get_achievement(self, achv_id: str) -> Optional[Dict]:
        try:
            response = (
                self.client.table("achievements")
                .select("name, description, image")
                .eq("id", str(achv_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching achievement {achv_id}: {e}")
            raise DataStoreError(f"Could not load achievement {achv_id}") from e
        return self._first(response)
