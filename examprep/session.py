"""
Quiz session: the lifecycle of one active quiz.
Tracks the current question, recorded answers, the exam countdown and completion,
and derives the score and attempt record once the quiz is finished.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from examprep.database import AttemptPersistenceError
from examprep.models import OPTION_KEYS, QuestionAttempt, QuizAttempt, QuizQuestion
from examprep.quiz_config import QuizConfig, create_initial_state, get_quiz_mode_identifier, is_exam_mode

logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised in strict mode when a transition is not allowed in the current state."""
    pass


@dataclass(frozen=True)
class QuizResult:
    total: int
    correct: int
    incorrect: int
    unanswered: int
    score_percentage: float
    time_taken_seconds: int


@dataclass(frozen=True)
class SubmitOutcome:
    """Result of submitting a completed quiz. error is set when saving failed; result stays valid."""
    result: QuizResult
    attempt: QuizAttempt
    attempt_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def saved(self) -> bool:
        return self.attempt_id is not None


def _now_ms() -> int:
    return int(time.time() * 1000)


class QuizSession:
    """
    State machine over a QuizState.

    active -> completed (terminal). Once completed, answers, position and the timer
    are frozen. Transitions that are not allowed are ignored with a warning, or raise
    InvalidTransitionError when the session is strict.
    """

    def __init__(
        self,
        config: QuizConfig,
        questions: List[QuizQuestion],
        timer=None,
        clock: Callable[[], int] = _now_ms,
        strict: bool = False,
    ):
        self.state = create_initial_state(config)
        self.state.questions = list(questions)
        self.state.start_time = clock()
        self.timer = timer
        self.clock = clock
        self.strict = strict
        self.duration: Optional[int] = None
        self._timer_started_at: Optional[int] = None
        self._paused_at: Optional[int] = None
        self._paused_ms = 0
        self._listeners: List[Callable[["QuizSession"], None]] = []
        self._lock = threading.RLock()
        logger.info(f"Quiz session started: {get_quiz_mode_identifier(config)} with {len(questions)} questions")

    @classmethod
    def replace(cls, previous: Optional["QuizSession"], config: QuizConfig, questions: List[QuizQuestion], **kwargs) -> "QuizSession":
        """Start a new session, releasing the previous session's countdown first."""
        if previous is not None:
            previous.release_timer()
        return cls(config, questions, **kwargs)

    # ============= Read access =============

    @property
    def config(self) -> QuizConfig:
        return self.state.config

    @property
    def questions(self) -> List[QuizQuestion]:
        return self.state.questions

    @property
    def completed(self) -> bool:
        return self.state.completed

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        return self.state.current_question

    def is_last_question(self) -> bool:
        return self.state.current_index >= len(self.state.questions) - 1

    # ============= Observers =============

    def subscribe(self, listener: Callable[["QuizSession"], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[["QuizSession"], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self):
        for listener in list(self._listeners):
            listener(self)

    def _reject(self, message: str) -> bool:
        if self.strict:
            raise InvalidTransitionError(message)
        logger.warning(f"Ignored transition: {message}")
        return False

    # ============= Transitions =============

    def start_timer(self, duration: int) -> bool:
        """Start the exam countdown. Exam mode only; at most one countdown per session."""
        with self._lock:
            if not is_exam_mode(self.config):
                return self._reject("practice quizzes are untimed")
            if self.state.completed:
                return self._reject("quiz already completed")
            if self.timer is None:
                return self._reject("no timer configured")
            self.release_timer()
            self.duration = duration
            self._timer_started_at = self.clock()
            self.state.time_remaining = duration
            self.state.paused = False
            self.state.timer_handle = self.timer.start_countdown(duration, self._on_tick, self._on_expire)
        logger.info(f"Exam countdown started: {duration}s")
        self._notify()
        return True

    def pause_timer(self) -> bool:
        """Freeze the exam countdown. Elapsed time stops accruing until resume_timer()."""
        with self._lock:
            if self.state.completed:
                return self._reject("pause after completion")
            if self.state.timer_handle is None:
                return self._reject("no running countdown to pause")
            if self.state.paused:
                return self._reject("countdown already paused")
            self.timer.pause(self.state.timer_handle)
            if self.state.completed:
                # Pausing delivered the last pending ticks and the quiz ran out
                return False
            self.state.paused = True
            self._paused_at = self.clock()
        logger.info(f"Exam countdown paused with {self.state.time_remaining}s left")
        self._notify()
        return True

    def resume_timer(self) -> bool:
        with self._lock:
            if self.state.completed:
                return self._reject("resume after completion")
            if not self.state.paused or self.state.timer_handle is None:
                return self._reject("countdown is not paused")
            self.timer.resume(self.state.timer_handle)
            self.state.paused = False
            self._paused_ms += max(0, self.clock() - self._paused_at)
            self._paused_at = None
        logger.info("Exam countdown resumed")
        self._notify()
        return True

    def record_answer(self, question_id: str, option_key: str) -> bool:
        """Store (or overwrite) the answer for a question. Does not move the current position."""
        with self._lock:
            if self.state.completed:
                return self._reject(f"answer for {question_id} after completion")
            if option_key not in OPTION_KEYS:
                return self._reject(f"invalid option key {option_key!r}")
            if not any(q.id == question_id for q in self.state.questions):
                return self._reject(f"unknown question {question_id}")
            self.state.answers[question_id] = option_key
        self._notify()
        return True

    def advance(self) -> bool:
        """Move to the next question, stopping at the last one. Never completes the quiz."""
        with self._lock:
            if self.state.completed:
                return self._reject("navigation after completion")
            last = max(0, len(self.state.questions) - 1)
            self.state.current_index = min(self.state.current_index + 1, last)
        self._notify()
        return True

    def go_back(self) -> bool:
        with self._lock:
            if self.state.completed:
                return self._reject("navigation after completion")
            self.state.current_index = max(self.state.current_index - 1, 0)
        self._notify()
        return True

    def tick(self) -> bool:
        """One second of exam time elapsed. Auto-submits when time runs out."""
        with self._lock:
            if self.state.completed or self.state.timer_handle is None or self.state.paused:
                return False
            self.state.time_remaining = max(0, self.state.time_remaining - 1)
            logger.debug(f"Tick: {self.state.time_remaining}s remaining")
            expired = self.state.time_remaining == 0
        if expired:
            self.complete(manual=False)
        else:
            self._notify()
        return True

    def complete(self, manual: bool = True) -> bool:
        """Finish the quiz: release the countdown and allow review of explanations."""
        with self._lock:
            if self.state.completed:
                return self._reject("quiz already completed")
            now = self.clock()
            if self._paused_at is not None:
                self._paused_ms += max(0, now - self._paused_at)
                self._paused_at = None
            end = now
            if not manual and self.duration is not None and self._timer_started_at is not None:
                # Elapsed never exceeds the allowance, even when expiry is noticed late
                end = min(now, self._timer_started_at + self._paused_ms + self.duration * 1000)
            self.release_timer()
            self.state.end_time = end
            self.state.paused = False
            self.state.completed = True
            self.state.auto_submitted = not manual
            self.state.show_explanations = True
        logger.info(
            f"Quiz completed ({'manual' if manual else 'auto-submitted'}): "
            f"{len(self.state.answers)}/{len(self.state.questions)} answered"
        )
        self._notify()
        return True

    def release_timer(self) -> None:
        with self._lock:
            handle = self.state.timer_handle
            if handle is None:
                return
            if self.timer is not None:
                self.timer.cancel(handle)
            self.state.timer_handle = None

    def _on_tick(self, remaining: int) -> None:
        self.tick()

    def _on_expire(self) -> None:
        if not self.state.completed:
            self.complete(manual=False)

    # ============= Scoring =============

    def is_correct(self, question: QuizQuestion) -> bool:
        answer = self.state.answers.get(question.id)
        return answer is not None and question.correct is not None and answer == question.correct

    def score(self) -> QuizResult:
        """Unanswered questions count against the score: percentage is over all questions."""
        total = len(self.state.questions)
        correct = sum(1 for q in self.state.questions if self.is_correct(q))
        answered = sum(1 for q in self.state.questions if q.id in self.state.answers)
        return QuizResult(
            total=total,
            correct=correct,
            incorrect=total - correct,
            unanswered=total - answered,
            score_percentage=(100 * correct / total) if total else 0.0,
            time_taken_seconds=self.elapsed_seconds(),
        )

    def elapsed_seconds(self) -> int:
        """Whole seconds spent on the quiz, excluding pauses. Frozen once completed."""
        with self._lock:
            end = self.state.end_time if self.state.end_time is not None else self.clock()
            paused = self._paused_ms
            if self._paused_at is not None:
                paused += max(0, end - self._paused_at)
            return max(0, (end - self.state.start_time - paused) // 1000)

    def build_attempt(self, subject_id: Optional[str] = None, result: Optional[QuizResult] = None) -> QuizAttempt:
        result = result or self.score()
        return QuizAttempt(
            quiz_mode=get_quiz_mode_identifier(self.config),
            total_questions=result.total,
            correct_answers=result.correct,
            time_taken_seconds=result.time_taken_seconds,
            subject_id=subject_id,
            exam_type=self.config.exam_type,
            exam_year=self.config.year,
            is_auto_submitted=self.state.auto_submitted,
            questions_data=[
                QuestionAttempt(
                    question_id=q.id,
                    user_answer=self.state.answers.get(q.id),
                    correct_answer=q.correct,
                    is_correct=self.is_correct(q),
                )
                for q in self.state.questions
            ],
        )

    def submit(self, persist: Callable[[QuizAttempt], str], subject_id: Optional[str] = None) -> SubmitOutcome:
        """
        Hand the attempt to persist(). Completes the quiz first if still active.

        A failing persist() is reported in the outcome; the completed state is untouched.
        """
        if not self.state.completed:
            self.complete(manual=True)
        result = self.score()
        attempt = self.build_attempt(subject_id, result=result)
        try:
            attempt_id = persist(attempt)
        except AttemptPersistenceError as e:
            logger.error(f"Quiz attempt not saved: {e}")
            return SubmitOutcome(result=result, attempt=attempt, error=str(e))
        return SubmitOutcome(result=result, attempt=attempt, attempt_id=attempt_id)
