"""
Core data models for the exam-prep quiz.
Store rows (Subject, QuestionRecord), the normalized QuizQuestion, and attempt records.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ExamType(str, Enum):
    JAMB = "JAMB"
    WAEC = "WAEC"


class QuizMode(str, Enum):
    PRACTICE = "practice"
    EXAM = "exam"


class SelectionMethod(str, Enum):
    SUBJECT = "subject"
    YEAR = "year"
    CATEGORY = "category"


class ClassCategory(str, Enum):
    SCIENCE = "SCIENCE"
    ARTS = "ARTS"
    COMMERCIAL = "COMMERCIAL"


OPTION_KEYS = ("A", "B", "C", "D")

# Subjects may be offered under both examination bodies
SUBJECT_EXAM_TYPE_BOTH = "BOTH"


@dataclass(frozen=True)
class Subject:
    """Row of the subjects table."""
    id: str
    name: str
    slug: str
    exam_type: str
    subject_category: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Subject":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or row.get("slug") or "",
            slug=row.get("slug") or "",
            exam_type=(row.get("exam_type") or SUBJECT_EXAM_TYPE_BOTH).upper(),
            subject_category=row.get("subject_category"),
            sort_order=row.get("sort_order") or 0,
            is_active=row.get("is_active", True),
        )

    def supported_exam_types(self) -> List[str]:
        if self.exam_type == SUBJECT_EXAM_TYPE_BOTH:
            return [t.value for t in ExamType]
        return [self.exam_type]


@dataclass(frozen=True)
class QuestionRecord:
    """
    Row of the questions table.

    Either subject_id or topic_id (or both) is set; the store enforces at least one.
    """
    id: str
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_answer: str
    subject_id: Optional[str] = None
    topic_id: Optional[str] = None
    explanation: Optional[str] = None
    exam_year: Optional[int] = None
    exam_type: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QuestionRecord":
        return cls(
            id=str(row["id"]),
            question_text=row.get("question_text") or "",
            option_a=row.get("option_a") or "",
            option_b=row.get("option_b") or "",
            option_c=row.get("option_c") or "",
            option_d=row.get("option_d") or "",
            correct_answer=(row.get("correct_answer") or "").upper(),
            subject_id=row.get("subject_id"),
            topic_id=row.get("topic_id"),
            explanation=row.get("explanation"),
            exam_year=row.get("exam_year"),
            exam_type=row.get("exam_type"),
        )


@dataclass(frozen=True)
class QuizOption:
    key: str
    text: str


@dataclass(frozen=True)
class QuizQuestion:
    """Normalized, read-only question as presented in a quiz."""
    id: str
    text: str
    options: Tuple[QuizOption, ...]
    correct: Optional[str] = None
    explanation: Optional[str] = None
    exam_year: Optional[int] = None
    exam_type: Optional[str] = None
    subject_slug: Optional[str] = None
    subject_name: Optional[str] = None

    def option_text(self, key: str) -> Optional[str]:
        for option in self.options:
            if option.key == key:
                return option.text
        return None


@dataclass
class QuestionAttempt:
    question_id: str
    is_correct: bool
    user_answer: Optional[str] = None
    correct_answer: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "user_answer": self.user_answer,
            "correct_answer": self.correct_answer,
            "is_correct": self.is_correct,
        }


@dataclass
class QuizAttempt:
    """Outcome of one completed quiz, as handed to (and read back from) the attempts table."""
    quiz_mode: str
    total_questions: int
    correct_answers: int
    time_taken_seconds: int
    subject_id: Optional[str] = None
    exam_type: Optional[str] = None
    exam_year: Optional[int] = None
    is_auto_submitted: bool = False
    questions_data: List[QuestionAttempt] = field(default_factory=list)
    # Set by the store on rows read back
    id: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QuizAttempt":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            quiz_mode=row.get("quiz_mode") or "",
            total_questions=int(row.get("total_questions") or 0),
            correct_answers=int(row.get("correct_answers") or 0),
            time_taken_seconds=int(row.get("time_taken_seconds") or 0),
            subject_id=row.get("subject_id"),
            exam_type=row.get("exam_type"),
            exam_year=row.get("exam_year"),
            is_auto_submitted=bool(row.get("is_auto_submitted")),
            questions_data=[
                QuestionAttempt(
                    question_id=str(q.get("question_id")),
                    is_correct=bool(q.get("is_correct")),
                    user_answer=q.get("user_answer"),
                    correct_answer=q.get("correct_answer"),
                )
                for q in row.get("questions_data") or []
            ],
            completed_at=row.get("completed_at"),
        )

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers

    @property
    def score_percentage(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return 100 * self.correct_answers / self.total_questions

    def to_row(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "quiz_mode": self.quiz_mode,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "incorrect_answers": self.incorrect_answers,
            "score_percentage": self.score_percentage,
            "time_taken_seconds": self.time_taken_seconds,
            "exam_type": self.exam_type,
            "exam_year": self.exam_year,
            "is_auto_submitted": self.is_auto_submitted,
            "questions_data": [q.to_dict() for q in self.questions_data],
        }


@dataclass(frozen=True)
class QuizModeStats:
    """Aggregate of a user's attempts for one quiz mode identifier."""
    quiz_mode: str
    attempts: int
    average_score: float
    total_questions: int
    correct_answers: int
