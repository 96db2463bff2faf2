"""
Question retrieval: turns a validated QuizConfig into the list of QuizQuestion to present.
Subject quizzes read one subject; year and category quizzes aggregate several subjects,
fetched concurrently, skipping any subject whose fetch fails.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence

from engine import (
    CATEGORY_QUESTIONS_PER_SUBJECT,
    MAX_FETCH_WORKERS,
    SUBJECT_QUESTION_LIMIT,
    YEAR_QUESTIONS_PER_SUBJECT,
)
from examprep.database import QuestionStore, QuestionStoreError
from examprep.models import OPTION_KEYS, QuestionRecord, QuizOption, QuizQuestion, SelectionMethod, Subject
from examprep.quiz_config import QuizConfig

logger = logging.getLogger(__name__)


def normalize_question(record: QuestionRecord, subject: Optional[Subject] = None) -> QuizQuestion:
    """
    Map a store row to a QuizQuestion.

    The row may reach its subject through topic_id, subject_id or both; the effective
    subject is the one it was queried under, so the result has the same shape either way.
    """
    texts = (record.option_a, record.option_b, record.option_c, record.option_d)
    options = tuple(QuizOption(key=key, text=text) for key, text in zip(OPTION_KEYS, texts))
    return QuizQuestion(
        id=record.id,
        text=record.question_text,
        options=options,
        correct=record.correct_answer if record.correct_answer in OPTION_KEYS else None,
        explanation=record.explanation or None,
        exam_year=record.exam_year,
        exam_type=record.exam_type,
        subject_slug=subject.slug if subject else None,
        subject_name=subject.name if subject else None,
    )


def normalize_questions(records: Iterable[QuestionRecord], subject: Optional[Subject] = None) -> List[QuizQuestion]:
    return [normalize_question(record, subject) for record in records]


class QuestionRetriever:
    """Fetches and normalizes the questions for a quiz configuration."""

    def __init__(self, store: QuestionStore, max_workers: int = MAX_FETCH_WORKERS):
        self.store = store
        self.max_workers = max_workers

    def get_questions(self, config: QuizConfig) -> List[QuizQuestion]:
        """
        Questions for a validated config.

        Returns an empty list when nothing matches or the store is unreachable;
        presenting "no questions available" is the caller's job.
        """
        if config.selection_method == SelectionMethod.SUBJECT:
            questions = self.get_subject_questions(
                config.subject_slug,
                exam_type=config.exam_type,
                exam_year=config.year,
                limit=SUBJECT_QUESTION_LIMIT,
            )
        elif config.selection_method == SelectionMethod.YEAR:
            questions = self.get_year_questions(config.exam_type, config.year)
        elif config.selection_method == SelectionMethod.CATEGORY:
            questions = self.get_category_questions(config.exam_type, config.subject_slugs, exam_year=config.year)
        else:
            logger.error(f"Unknown selection method: {config.selection_method}")
            questions = []

        logger.info(
            f"Loaded {len(questions)} questions for {config.mode}-{config.selection_method} "
            f"({config.exam_type}, subject={config.subject_slug}, year={config.year})"
        )
        return questions

    def get_subject_questions(
        self,
        subject_slug: str,
        exam_type: Optional[str] = None,
        exam_year: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[QuizQuestion]:
        try:
            subject = self.store.find_subject_by_slug(subject_slug)
            if subject is None:
                logger.warning(f"Subject not found: {subject_slug}")
                return []
            return self._fetch_for_subject(subject, exam_type, exam_year, limit)
        except QuestionStoreError as e:
            logger.error(f"Failed to load questions for {subject_slug}: {e}")
            return []

    def get_year_questions(self, exam_type: str, exam_year: int) -> List[QuizQuestion]:
        """Up to YEAR_QUESTIONS_PER_SUBJECT questions of exam_year from every subject of exam_type."""
        try:
            subjects = self.store.get_subjects_by_exam_type(exam_type)
        except QuestionStoreError as e:
            logger.error(f"Failed to list subjects for {exam_type}: {e}")
            return []
        return self._aggregate(subjects, exam_type, exam_year, YEAR_QUESTIONS_PER_SUBJECT)

    def get_category_questions(
        self,
        exam_type: str,
        subject_slugs: Sequence[str],
        exam_year: Optional[int] = None,
    ) -> List[QuizQuestion]:
        """Up to CATEGORY_QUESTIONS_PER_SUBJECT questions from each listed subject."""
        subjects = []
        for slug in subject_slugs:
            try:
                subject = self.store.find_subject_by_slug(slug)
            except QuestionStoreError as e:
                logger.warning(f"Skipping subject {slug}: {e}")
                continue
            if subject is None:
                logger.warning(f"Skipping unknown subject {slug}")
                continue
            subjects.append(subject)
        return self._aggregate(subjects, exam_type, exam_year, CATEGORY_QUESTIONS_PER_SUBJECT)

    def _fetch_for_subject(
        self,
        subject: Subject,
        exam_type: Optional[str],
        exam_year: Optional[int],
        limit: Optional[int],
    ) -> List[QuizQuestion]:
        records = self.store.list_questions(
            subject_id=subject.id,
            exam_type=exam_type,
            exam_year=exam_year,
            limit=limit,
        )
        return normalize_questions(records, subject)

    def _aggregate(
        self,
        subjects: Sequence[Subject],
        exam_type: Optional[str],
        exam_year: Optional[int],
        per_subject: int,
    ) -> List[QuizQuestion]:
        """Fetch every subject concurrently; concatenate in subject order once all have settled."""
        if not subjects:
            return []
        workers = max(1, min(self.max_workers, len(subjects)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self._fetch_for_subject, subject, exam_type, exam_year, per_subject)
                for subject in subjects
            ]
            questions: List[QuizQuestion] = []
            failed = 0
            for subject, future in zip(subjects, futures):
                try:
                    questions.extend(future.result())
                except Exception as e:
                    failed += 1
                    logger.warning(f"Skipping subject {subject.slug}: {e}")

        if failed:
            logger.warning(f"{failed}/{len(subjects)} subject fetches failed; returning partial results")
        return questions
