"""Exceptions raised by the trial engine and its Supabase data store."""


class TrialError(Exception):
    """Base class for trial engine errors."""


class NotAuthenticated(TrialError):
    """No valid session cookie; the caller must redirect to login."""


class TrialAccessError(TrialError):
    """Missing trial/attempt, attempt owned by someone else, or already finished.

    Fatal for the session: abort and redirect, never retry.
    """


class AttemptLimitError(TrialError):
    """User has used every allowed attempt or already has one in progress."""


class InvalidTransition(TrialError):
    """Session state machine rejected the requested action."""


class AnswerRejected(TrialError):
    """Answer does not fit the question (wrong shape or too many selections)."""


class DataStoreError(TrialError):
    """A Supabase read or write failed."""


class SubmissionError(TrialError):
    """Finishing the attempt could not be persisted; the result is not final."""


class AttemptInProgress(AttemptLimitError):
    """User already has an unexpired attempt; it must be resumed or finished first."""

    def __init__(self, message: str, attempt_id: str, trial_id: str):
        super().__init__(message)
        self.attempt_id = attempt_id
        self.trial_id = trial_id
