"""TrialMaster: timed trials with stars, experience and best-attempt ranking."""
import logging
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import get_store
from engine import MAX_ATTEMPTS, MAX_STARS, QTYPE_MULTIPLE, QTYPE_SINGLE, TICK_SECONDS
from trialcore.attempts import start_attempt
from trialcore.auth import get_current_user
from trialcore.errors import (
    AnswerRejected, AttemptInProgress, AttemptLimitError, DataStoreError,
    NotAuthenticated, SubmissionError, TrialAccessError,
)
from trialcore.scoring import calculate_level
from trialcore.session import SessionState, TrialSession
from trialcore.timer import format_time

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("app")

st.set_page_config(page_title="TrialMaster", layout="wide")
st.sidebar.title("TrialMaster")


def open_page(page: str, **params):
    st.query_params.clear()
    st.query_params["page"] = page
    for k, v in params.items():
        st.query_params[k] = str(v)
    st.rerun()


def star_line(stars: int) -> str:
    stars = max(0, min(MAX_STARS, int(stars or 0)))
    return "★" * stars + "☆" * (MAX_STARS - stars)


store = get_store()
try:
    user = get_current_user(store, st.context.cookies)
except NotAuthenticated as e:
    st.warning(f"{e}. Please log in to take trials.")
    st.stop()

level = calculate_level(user.get("exp"))
st.sidebar.metric("Level", level["level"])
st.sidebar.progress(min(1.0, level["current_exp"] / level["next_exp"]) if level["next_exp"] else 0.0)
st.sidebar.caption(f"{level['current_exp']:.0f} / {level['next_exp']} exp to next level")

page = st.query_params.get("page", "Dashboard")
if page not in ("Dashboard", "Trial"):
    page = "Dashboard"

# ----- Dashboard -----
if page == "Dashboard":
    st.header(f"Trials for {user.get('username', 'you')}")
    try:
        trials = store.list_trials()
    except DataStoreError as e:
        st.error(f"Could not load trials. Check DB and .env (SUPABASE_URL, SUPABASE_KEY). {e}")
        st.stop()

    if not trials:
        st.info("No trials yet.")

    for trial in trials:
        with st.container(border=True):
            col1, col2, col3 = st.columns([3, 2, 1])
            with col1:
                st.subheader(trial.title)
                st.caption(f"{format_time(trial.time_budget)} · {trial.all_score:g} points · {trial.exp_gain:g} exp")
            with col2:
                try:
                    attempts = store.list_attempts(trial.id, user["id"])
                    used = store.get_attempts_started(trial.id, user["id"])
                except DataStoreError:
                    attempts, used = [], 0
                if attempts:
                    best = max(attempts, key=lambda a: float(a.get("eval_score") or 0))
                    st.write(f"Best: {star_line(best.get('star'))}  score {best.get('score')}  eval {best.get('eval_score')}")
                st.caption(f"Attempts used: {used}/{MAX_ATTEMPTS}")
            with col3:
                if st.button("Start", key=f"start_{trial.id}", type="primary", disabled=used >= MAX_ATTEMPTS):
                    try:
                        attempt = start_attempt(store, trial.id, user["id"])
                    except AttemptInProgress as e:
                        st.session_state["resume"] = {"attempt": e.attempt_id, "trial": e.trial_id}
                        st.rerun()
                    except AttemptLimitError as e:
                        st.warning(str(e))
                    except (TrialAccessError, DataStoreError) as e:
                        st.error(f"Could not start trial: {e}")
                    else:
                        open_page("Trial", trial=trial.id, attempt=attempt.id)

    resume = st.session_state.get("resume")
    if resume:
        st.warning("You have a trial in progress. Finish it before starting another one.")
        if st.button("Resume trial", type="primary"):
            st.session_state.pop("resume", None)
            open_page("Trial", **resume)

# ----- Trial -----
elif page == "Trial":
    attempt_id = st.query_params.get("attempt")
    if not attempt_id:
        open_page("Dashboard")

    key = f"trial_session_{attempt_id}"
    session = st.session_state.get(key)
    if session is None:
        session = TrialSession(store, attempt_id, user["id"], trial_id=st.query_params.get("trial"))
        try:
            session.load()
        except (TrialAccessError, DataStoreError) as e:
            logger.warning(f"Leaving trial page: {e}")
            open_page("Dashboard")
        st.session_state[key] = session

    def leave():
        st.session_state.pop(key, None)
        open_page("Dashboard")

    st.header(session.trial.title)

    if session.is_done:
        result = session.result
        if result.expired:
            st.warning("Time is up! Your answers were submitted automatically.")
        st.success(result.message)
        col1, col2, col3, col4 = st.columns(4)
        col1.metric("Score", f"{result.score:g} / {result.all_score:g}")
        col2.metric("Remaining time", format_time(result.remaining))
        col3.metric("Stars", star_line(result.stars))
        col4.metric("Exp gained", f"+{result.exp_gained:.1f}")
        if result.leveled_up:
            st.balloons()
            st.info(f"Level up! You are now level {result.level_after}.")
        if result.achievement:
            st.info(f"Hidden achievement: **{result.achievement.get('name')}**: {result.achievement.get('description') or ''}")
        if st.button("Back to trials", type="primary"):
            leave()
        st.stop()

    if session.state == SessionState.FAILED:
        st.error("Your answers could not be saved. Nothing was recorded yet; please try again.")
        if st.button("Retry submission", type="primary"):
            try:
                session.finish()
            except SubmissionError as e:
                st.error(str(e))
            else:
                st.rerun()
        st.stop()

    @st.fragment(run_every=TICK_SECONDS)
    def countdown():
        try:
            session.tick()
        except SubmissionError as e:
            logger.error(str(e))
        if session.state != SessionState.ACTIVE:
            st.rerun()
        st.metric("Remaining time", format_time(session.remaining))

    countdown()

    idx = session.current_index
    q = session.current_question
    n = session.question_count
    st.progress(session.ledger.answered_count() / n if n else 0.0)
    st.subheader(f"Question {idx + 1} of {n}")
    st.markdown(q.content, unsafe_allow_html=True)

    current = session.ledger.get(q.id)
    widget_key = f"a_{attempt_id}_{q.id}"
    if q.qtype == QTYPE_SINGLE:
        value = st.radio(
            "Choose one:",
            q.options,
            index=q.options.index(current) if current in q.options else None,
            key=widget_key,
        )
    elif q.qtype == QTYPE_MULTIPLE:
        value = st.multiselect(
            f"Choose up to {q.selection_limit}:",
            q.options,
            default=[v for v in (current or []) if v in q.options],
            max_selections=q.selection_limit,
            key=widget_key,
        )
    else:
        value = st.text_input("Your answer:", value=current or "", key=widget_key)

    untouched = current is None and value in (None, "", [])
    if not untouched and value != current:
        try:
            session.answer(q.id, value)
        except AnswerRejected as e:
            st.warning(str(e))

    col1, col2, col3 = st.columns([1, 1, 2])
    with col1:
        if st.button("Previous", disabled=idx == 0):
            session.previous_question()
            st.rerun()
    with col2:
        if st.button("Next", disabled=idx >= n - 1):
            session.next_question()
            st.rerun()
    with col3:
        if st.button("Finish trial", type="primary"):
            try:
                session.finish()
            except SubmissionError as e:
                st.error(str(e))
            st.rerun()
