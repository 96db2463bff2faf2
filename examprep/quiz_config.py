"""
Quiz configuration: the value object describing a requested quiz, its validation,
and derivation of a fresh quiz state.
"""
import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from engine import MIN_EXAM_YEAR
from examprep.models import ClassCategory, ExamType, QuizMode, QuizQuestion, SelectionMethod

EXAM_TYPES = tuple(t.value for t in ExamType)
QUIZ_MODES = tuple(m.value for m in QuizMode)
SELECTION_METHODS = tuple(s.value for s in SelectionMethod)
CLASS_CATEGORIES = tuple(c.value for c in ClassCategory)

MODE_LABELS = {
    QuizMode.PRACTICE.value: "Practice",
    QuizMode.EXAM.value: "Exam Simulation",
}


def _raw(value):
    return value.value if isinstance(value, Enum) else value


@dataclass(frozen=True)
class QuizConfig:
    """
    Parameters of one quiz launch.

    Which optional fields are required depends on selection_method:
    subject -> subject_slug, year -> year, category -> class_category and subject_slugs.
    Enum members are stored as their string values.
    """
    exam_type: str
    mode: str
    selection_method: str
    subject_slug: Optional[str] = None
    year: Optional[int] = None
    class_category: Optional[str] = None
    subject_slugs: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "exam_type", _raw(self.exam_type))
        object.__setattr__(self, "mode", _raw(self.mode))
        object.__setattr__(self, "selection_method", _raw(self.selection_method))
        object.__setattr__(self, "class_category", _raw(self.class_category))
        object.__setattr__(self, "subject_slugs", tuple(self.subject_slugs or ()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exam_type": self.exam_type,
            "mode": self.mode,
            "selection_method": self.selection_method,
            "subject_slug": self.subject_slug,
            "year": self.year,
            "class_category": self.class_category,
            "subject_slugs": list(self.subject_slugs),
        }


@dataclass
class QuizState:
    """Mutable state of one active quiz. Owned by a single QuizSession."""
    config: QuizConfig
    questions: list = field(default_factory=list)
    current_index: int = 0
    answers: Dict[str, str] = field(default_factory=dict)
    time_remaining: Optional[int] = None
    show_explanations: bool = False
    completed: bool = False
    auto_submitted: bool = False
    timer_handle: Any = None
    start_time: int = 0
    end_time: Optional[int] = None
    paused: bool = False

    @property
    def current_question(self) -> Optional[QuizQuestion]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None


def validate_config(config: QuizConfig, today: Optional[date] = None) -> Optional[str]:
    """
    Validate a quiz configuration.

    Returns a human-readable message for the first violated rule, or None if valid.
    `today` pins the upper year bound; defaults to the current date.
    """
    if config.exam_type not in EXAM_TYPES:
        return "Invalid exam type. Must be JAMB or WAEC."

    if config.mode not in QUIZ_MODES:
        return "Invalid mode. Must be practice or exam."

    if config.selection_method not in SELECTION_METHODS:
        return "Invalid selection method. Must be subject, year, or category."

    if config.selection_method == SelectionMethod.SUBJECT and not config.subject_slug:
        return "Subject slug is required for subject-based quizzes."

    if config.selection_method == SelectionMethod.YEAR and config.year is None:
        return "Year is required for year-based quizzes."

    if config.selection_method == SelectionMethod.CATEGORY:
        if not config.class_category:
            return "Class category is required for category-based quizzes."
        if config.class_category not in CLASS_CATEGORIES:
            return "Invalid class category. Must be SCIENCE, ARTS, or COMMERCIAL."
        if not config.subject_slugs:
            return "Subject slugs are required for category-based quizzes."

    if config.year is not None:
        current_year = (today or date.today()).year
        if not isinstance(config.year, int) or not MIN_EXAM_YEAR <= config.year <= current_year:
            return f"Invalid year. Must be between {MIN_EXAM_YEAR} and {current_year}."

    return None


def is_practice_mode(config: QuizConfig) -> bool:
    return config.mode == QuizMode.PRACTICE


def is_exam_mode(config: QuizConfig) -> bool:
    return config.mode == QuizMode.EXAM


def is_subject_based(config: QuizConfig) -> bool:
    return config.selection_method == SelectionMethod.SUBJECT


def is_year_based(config: QuizConfig) -> bool:
    return config.selection_method == SelectionMethod.YEAR


def is_category_based(config: QuizConfig) -> bool:
    return config.selection_method == SelectionMethod.CATEGORY


def get_mode_label(mode) -> str:
    """Display label only; never branch on it."""
    return MODE_LABELS.get(_raw(mode), str(_raw(mode)))


def get_exam_type_label(exam_type) -> str:
    return str(_raw(exam_type))


def get_quiz_mode_identifier(config: QuizConfig) -> str:
    """Analytics key, e.g. "practice-subject" or "exam-year"."""
    return f"{config.mode}-{config.selection_method}"


def create_initial_state(config: QuizConfig) -> QuizState:
    """
    Fresh state for a quiz, without questions.

    Exam mode gets time_remaining=0; the real duration is assigned when the timer starts.
    """
    exam = is_exam_mode(config)
    return QuizState(
        config=config,
        current_index=0,
        answers={},
        time_remaining=0 if exam else None,
        show_explanations=is_practice_mode(config),
        completed=False,
        timer_handle=None,
        start_time=int(time.time() * 1000),
    )


def _create_config(
    mode: QuizMode,
    exam_type,
    selection_method,
    subject_slug: Optional[str] = None,
    year: Optional[int] = None,
    class_category=None,
    subject_slugs: Optional[Sequence[str]] = None,
) -> QuizConfig:
    return QuizConfig(
        exam_type=exam_type,
        mode=mode,
        selection_method=selection_method,
        subject_slug=subject_slug,
        year=year,
        class_category=class_category,
        subject_slugs=tuple(subject_slugs or ()),
    )


def create_practice_config(exam_type, selection_method, **options) -> QuizConfig:
    """Practice (untimed) config; options: subject_slug, year, class_category, subject_slugs."""
    return _create_config(QuizMode.PRACTICE, exam_type, selection_method, **options)


def create_exam_config(exam_type, selection_method, **options) -> QuizConfig:
    """Exam simulation (timed) config; same options as create_practice_config."""
    return _create_config(QuizMode.EXAM, exam_type, selection_method, **options)
