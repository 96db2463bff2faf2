"""ExamPrep — JAMB/WAEC practice and exam simulation."""
import logging
from functools import partial
from datetime import date
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import streamlit as st

from db import get_configured_user_id, get_exam_type_priority, get_log_level, get_supabase
from engine import MIN_EXAM_YEAR
from examprep.database import QuestionStore, QuestionStoreError, SubjectCache
from examprep.models import ClassCategory, ExamType, QuizMode, SelectionMethod
from examprep.navigation import parse_legacy_params, parse_priority, resolve_legacy_route
from examprep.quiz_config import (
    QuizConfig,
    get_mode_label,
    is_exam_mode,
    is_subject_based,
    validate_config,
)
from examprep.retrieval import QuestionRetriever
from examprep.session import QuizSession
from examprep.timer import DeadlineCountdown, format_time, resolve_duration

logging.basicConfig(level=get_log_level(), format="%(asctime)s | %(levelname)s | %(name)s | %(message)s")
logger = logging.getLogger("app")

st.set_page_config(page_title="ExamPrep", layout="wide")
st.sidebar.title("ExamPrep")

PAGES = ("configure", "quiz", "practice", "exam")


def get_store() -> QuestionStore:
    if "subject_cache" not in st.session_state:
        st.session_state["subject_cache"] = SubjectCache()
    return QuestionStore(get_supabase(), cache=st.session_state["subject_cache"])


def go_to(page: str):
    st.query_params.clear()
    st.query_params["page"] = page
    st.rerun()


def launch_quiz(config: QuizConfig):
    """Validate, load questions, and replace any running session."""
    error = validate_config(config)
    if error:
        st.error(error)
        return
    st.session_state["subject_cache"] = SubjectCache()
    store = get_store()
    questions = QuestionRetriever(store).get_questions(config)
    timer = st.session_state.get("quiz_timer") or DeadlineCountdown()
    session = QuizSession.replace(st.session_state.get("quiz_session"), config, questions, timer=timer)
    if questions and is_exam_mode(config):
        session.start_timer(resolve_duration(store, config))
    st.session_state["quiz_timer"] = timer
    st.session_state["quiz_session"] = session
    st.session_state["quiz_config"] = config
    st.session_state.pop("quiz_outcome", None)
    go_to("quiz")


def current_user_id(store: QuestionStore):
    return get_configured_user_id() or store.current_user_id()


def submit_quiz(session: QuizSession):
    store = get_store()
    subject_id = None
    if is_subject_based(session.config):
        try:
            subject = store.find_subject_by_slug(session.config.subject_slug)
            subject_id = subject.id if subject else None
        except QuestionStoreError as e:
            logger.warning(f"Attempt saved without subject: {e}")
    persist = partial(store.save_quiz_attempt, user_id=current_user_id(store))
    st.session_state["quiz_outcome"] = session.submit(persist, subject_id=subject_id)


def show_history(store: QuestionStore):
    user_id = current_user_id(store)
    if not user_id:
        return
    try:
        stats = store.get_quiz_mode_stats(user_id)
        recent = store.get_recent_attempts(user_id, limit=10)
    except QuestionStoreError as e:
        st.caption(f"History unavailable: {e}")
        return
    if not recent:
        return
    st.subheader("Your history")
    cols = st.columns(max(1, len(stats)))
    for col, s in zip(cols, stats):
        with col:
            st.metric(s.quiz_mode, f"{s.average_score:.0f}%", help=f"{s.attempts} attempts, {s.correct_answers}/{s.total_questions} correct")
    st.dataframe(
        [
            {
                "Completed": a.completed_at,
                "Mode": a.quiz_mode,
                "Exam": a.exam_type,
                "Score": f"{a.score_percentage:.0f}%",
                "Correct": f"{a.correct_answers}/{a.total_questions}",
                "Time": format_time(a.time_taken_seconds),
            }
            for a in recent
        ],
        use_container_width=True,
        hide_index=True,
    )


default_page = st.query_params.get("page", "configure")
if default_page not in PAGES:
    default_page = "configure"

# ----- Legacy routes: ?page=practice|exam&subject=...&year=...&type=... -----
if default_page in ("practice", "exam"):
    mode = QuizMode.PRACTICE if default_page == "practice" else QuizMode.EXAM
    params = parse_legacy_params(st.query_params.to_dict())
    try:
        decision = resolve_legacy_route(mode, params, get_store(), parse_priority(get_exam_type_priority()))
    except ValueError as e:
        # Missing Supabase settings
        logger.error(f"Legacy route unavailable: {e}")
        decision = None
    if decision is not None and decision.proceed:
        launch_quiz(decision.config)
    else:
        st.session_state["wizard_mode"] = mode.value
        go_to("configure")

# ----- Manual configuration -----
elif default_page == "configure":
    st.header("Configure your quiz")
    try:
        subjects = get_store().get_subjects()
    except (QuestionStoreError, ValueError) as e:
        st.error(f"Could not load subjects. Check DB and .env (SUPABASE_URL, SUPABASE_KEY). {e}")
        st.stop()

    modes = [m.value for m in QuizMode]
    exam_type = st.radio("Exam type", [t.value for t in ExamType], horizontal=True)
    mode = st.radio(
        "Mode",
        modes,
        index=modes.index(st.session_state.get("wizard_mode", QuizMode.PRACTICE.value)),
        format_func=get_mode_label,
        horizontal=True,
    )
    method = st.radio("Select questions by", [s.value for s in SelectionMethod], horizontal=True)

    offered = [s for s in subjects if exam_type in s.supported_exam_types()]
    slugs = [s.slug for s in offered]
    names = {s.slug: s.name for s in offered}
    year_choice = st.selectbox("Exam year", ["Any"] + list(range(date.today().year, MIN_EXAM_YEAR - 1, -1)))
    year = None if year_choice == "Any" else int(year_choice)

    subject_slug = None
    class_category = None
    subject_slugs = []
    if method == SelectionMethod.SUBJECT:
        subject_slug = st.selectbox("Subject", slugs, format_func=lambda s: names.get(s, s)) if slugs else None
    elif method == SelectionMethod.CATEGORY:
        class_category = st.radio("Class category", [c.value for c in ClassCategory], horizontal=True)
        subject_slugs = st.multiselect("Subjects", slugs, format_func=lambda s: names.get(s, s))

    if st.button("Start quiz", type="primary", use_container_width=True):
        launch_quiz(
            QuizConfig(
                exam_type=exam_type,
                mode=mode,
                selection_method=method,
                subject_slug=subject_slug,
                year=year,
                class_category=class_category,
                subject_slugs=tuple(subject_slugs),
            )
        )

# ----- Quiz -----
elif default_page == "quiz":
    session = st.session_state.get("quiz_session")
    if session is None:
        go_to("configure")

    config = session.config
    st.header(f"{config.exam_type} · {get_mode_label(config.mode)}")

    if not session.questions:
        st.warning("No questions available for this selection.")
        col1, col2 = st.columns(2)
        with col1:
            if st.button("Retry"):
                launch_quiz(config)
        with col2:
            if st.button("Choose another quiz"):
                go_to("configure")
        st.stop()

    timer = st.session_state.get("quiz_timer")
    if timer is not None and session.state.timer_handle is not None:
        timer.poll(session.state.timer_handle)

    if session.completed:
        if "quiz_outcome" not in st.session_state:
            submit_quiz(session)
        outcome = st.session_state["quiz_outcome"]
        result = outcome.result
        if session.state.auto_submitted:
            st.info("Time is up. Your answers were submitted automatically.")
        if outcome.error:
            st.warning(f"Your result could not be saved: {outcome.error}")
        col1, col2, col3 = st.columns(3)
        with col1:
            st.metric("Score", f"{result.score_percentage:.0f}%")
        with col2:
            st.metric("Correct", f"{result.correct} / {result.total}")
        with col3:
            st.metric("Time", format_time(result.time_taken_seconds))
        for i, q in enumerate(session.questions):
            answer = session.state.answers.get(q.id)
            with st.expander(f"Q{i + 1}. {q.text[:80]}", expanded=False):
                for option in q.options:
                    label = f"{option.key}. {option.text}"
                    if option.key == q.correct:
                        st.success(f"✓ {label}")
                    elif option.key == answer:
                        st.error(f"✗ {label} (your answer)")
                    else:
                        st.write(f"○ {label}")
                if q.explanation:
                    st.info(q.explanation)
        show_history(get_store())
        if st.button("Start another quiz", type="primary"):
            st.session_state.pop("quiz_session", None)
            st.session_state.pop("quiz_outcome", None)
            go_to("configure")
        st.stop()

    state = session.state
    n = len(session.questions)
    if state.time_remaining is not None:
        st.sidebar.metric("Time left", format_time(state.time_remaining))
    if state.timer_handle is not None:
        if state.paused:
            if st.sidebar.button("Resume", use_container_width=True):
                session.resume_timer()
                st.rerun()
        elif st.sidebar.button("Pause", use_container_width=True):
            session.pause_timer()
            st.rerun()
    st.sidebar.progress(len(state.answers) / n)
    st.sidebar.caption(f"{len(state.answers)}/{n} answered")
    if state.paused:
        st.info("Paused. Resume from the sidebar to continue.")
        st.stop()

    q = session.current_question
    st.subheader(f"Question {state.current_index + 1} of {n}")
    if q.subject_name:
        st.caption(q.subject_name)
    st.write(q.text)

    keys = [o.key for o in q.options]
    current = state.answers.get(q.id)
    choice = st.radio(
        "Choose one:",
        keys,
        index=keys.index(current) if current in keys else None,
        format_func=lambda k: f"{k}. {q.option_text(k)}",
        key=f"answer_{q.id}",
    )
    if choice is not None and choice != current:
        session.record_answer(q.id, choice)

    if state.show_explanations and choice is not None:
        if choice == q.correct:
            st.success("✓ Correct!")
        else:
            st.error(f"✗ Incorrect. The correct answer is {q.correct}.")
        if q.explanation:
            st.info(q.explanation)

    col1, col2, col3 = st.columns([1, 1, 2])
    with col1:
        if st.button("← Previous", disabled=state.current_index == 0):
            session.go_back()
            st.rerun()
    with col2:
        if st.button("Next →", disabled=session.is_last_question()):
            session.advance()
            st.rerun()
    with col3:
        if st.button("Finish quiz", type="primary"):
            session.complete(manual=True)
            st.rerun()
