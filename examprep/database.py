"""
Question Store operations for the exam-prep quiz.
Read access to subjects, topics, questions and timer configurations in Supabase,
plus persistence and read-back of completed quiz attempts.
"""
import logging
from typing import Dict, List, Optional

from supabase import Client

from examprep.models import QuestionRecord, QuizAttempt, QuizModeStats, Subject, SUBJECT_EXAM_TYPE_BOTH

logger = logging.getLogger(__name__)


class QuestionStoreError(Exception):
    """Raised when a read against the Question Store fails (network, RLS, bad query)."""
    pass


class AttemptPersistenceError(Exception):
    """Raised when a completed quiz attempt could not be saved."""
    pass


class SubjectCache:
    """
    Slug -> Subject memo owned by the caller.

    Create one per quiz session (or per process) and call clear() to invalidate;
    nothing is shared implicitly between sessions.
    """

    def __init__(self):
        self._by_slug: Dict[str, Optional[Subject]] = {}

    def __contains__(self, slug: str) -> bool:
        return slug in self._by_slug

    def get(self, slug: str) -> Optional[Subject]:
        return self._by_slug.get(slug)

    def put(self, slug: str, subject: Optional[Subject]) -> None:
        self._by_slug[slug] = subject

    def clear(self) -> None:
        self._by_slug.clear()


class QuestionStore:
    """Wrapper around the Supabase client with quiz-specific reads and the attempt insert."""

    def __init__(self, client: Client, cache: Optional[SubjectCache] = None):
        self.client = client
        self.cache = cache

    # ============= Subjects =============

    def find_subject_by_slug(self, slug: str) -> Optional[Subject]:
        """
        Look up an active subject by slug.

        Returns:
            Subject, or None if no active subject has that slug

        Raises:
            QuestionStoreError: if the query itself fails
        """
        if self.cache is not None and slug in self.cache:
            return self.cache.get(slug)
        try:
            response = (
                self.client.table("subjects")
                .select("*")
                .eq("slug", slug)
                .eq("is_active", True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching subject by slug {slug}: {e}")
            raise QuestionStoreError(f"subject lookup failed for {slug!r}") from e
        rows = response.data or []
        subject = Subject.from_row(rows[0]) if rows else None
        if self.cache is not None:
            self.cache.put(slug, subject)
        return subject

    def get_subjects_by_exam_type(self, exam_type: str) -> List[Subject]:
        """Active subjects offered for exam_type (including those marked BOTH), in sort order."""
        try:
            response = (
                self.client.table("subjects")
                .select("*")
                .eq("is_active", True)
                .or_(f"exam_type.eq.{exam_type},exam_type.eq.{SUBJECT_EXAM_TYPE_BOTH}")
                .order("sort_order")
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching subjects by exam type {exam_type}: {e}")
            raise QuestionStoreError(f"subject listing failed for {exam_type}") from e
        subjects = [Subject.from_row(row) for row in response.data or []]
        if self.cache is not None:
            for subject in subjects:
                self.cache.put(subject.slug, subject)
        return subjects

    def get_subjects(self) -> List[Subject]:
        """All active subjects, in sort order (for the configuration wizard)."""
        try:
            response = (
                self.client.table("subjects")
                .select("*")
                .eq("is_active", True)
                .order("sort_order")
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching subjects: {e}")
            raise QuestionStoreError("subject listing failed") from e
        return [Subject.from_row(row) for row in response.data or []]

    def get_topic_ids(self, subject_id: str) -> List[str]:
        try:
            response = (
                self.client.table("topics")
                .select("id")
                .eq("subject_id", subject_id)
                .eq("is_active", True)
                .execute()
            )
        except Exception as e:
            logger.error(f"Error fetching topics for subject {subject_id}: {e}")
            raise QuestionStoreError(f"topic listing failed for {subject_id}") from e
        return [str(row["id"]) for row in response.data or []]

    # ============= Questions =============

    def list_questions(
        self,
        subject_id: Optional[str] = None,
        exam_type: Optional[str] = None,
        exam_year: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[QuestionRecord]:
        """
        Fetch active questions, newest first.

        A question belongs to subject_id when it references the subject directly
        or through one of the subject's topics. exam_type, exam_year and limit are
        applied by the database.

        Raises:
            QuestionStoreError: if any query fails
        """
        query = self.client.table("questions").select("*").eq("is_active", True)
        if subject_id is not None:
            topic_ids = self.get_topic_ids(subject_id)
            if topic_ids:
                query = query.or_(f"subject_id.eq.{subject_id},topic_id.in.({','.join(topic_ids)})")
            else:
                query = query.eq("subject_id", subject_id)
        if exam_type:
            query = query.eq("exam_type", exam_type)
        if exam_year is not None:
            query = query.eq("exam_year", exam_year)
        query = query.order("created_at", desc=True)
        if limit:
            query = query.limit(limit)
        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error fetching questions (subject={subject_id}, type={exam_type}, year={exam_year}): {e}")
            raise QuestionStoreError(f"question listing failed for subject {subject_id}") from e
        return [QuestionRecord.from_row(row) for row in response.data or []]

    # ============= Timer configurations =============

    def get_timer_duration(
        self,
        exam_type: str,
        subject_slug: Optional[str] = None,
        year: Optional[int] = None,
    ) -> Optional[int]:
        """
        Most specific configured exam duration in seconds, or None if nothing matches.

        Priority: type+subject+year > type+subject > type+year > type.
        """
        candidates = []
        if subject_slug and year is not None:
            candidates.append((subject_slug, year))
        if subject_slug:
            candidates.append((subject_slug, None))
        if year is not None:
            candidates.append((None, year))
        candidates.append((None, None))

        for slug, yr in candidates:
            query = (
                self.client.table("timer_configurations")
                .select("duration_seconds")
                .eq("exam_type", exam_type)
            )
            query = query.eq("subject_slug", slug) if slug else query.is_("subject_slug", "null")
            query = query.eq("year", yr) if yr is not None else query.is_("year", "null")
            try:
                response = query.limit(1).execute()
            except Exception as e:
                logger.error(f"Error fetching timer duration for {exam_type}/{slug}/{yr}: {e}")
                raise QuestionStoreError("timer configuration lookup failed") from e
            rows = response.data or []
            if rows:
                return int(rows[0]["duration_seconds"])
        return None

    # ============= Attempts =============

    def current_user_id(self) -> Optional[str]:
        """Id of the user signed in on the client, or None when there is no session."""
        try:
            response = self.client.auth.get_user()
        except Exception as e:
            logger.warning(f"Could not read signed-in user: {e}")
            return None
        user = getattr(response, "user", None) if response is not None else None
        return str(user.id) if user is not None else None

    def save_quiz_attempt(self, attempt: QuizAttempt, user_id: Optional[str] = None) -> str:
        """
        Insert a completed attempt into quiz_attempts, owned by user_id.

        Returns:
            id of the inserted row

        Raises:
            AttemptPersistenceError: if there is no user, or the insert fails or returns no row
        """
        if not user_id:
            raise AttemptPersistenceError("User not authenticated")
        row = attempt.to_row()
        row["user_id"] = str(user_id)
        try:
            response = self.client.table("quiz_attempts").insert(row).execute()
        except Exception as e:
            logger.error(f"Error saving quiz attempt: {e}")
            raise AttemptPersistenceError(str(e)) from e
        if not response.data:
            raise AttemptPersistenceError("insert returned no row")
        attempt_id = str(response.data[0]["id"])
        logger.info(f"Saved quiz attempt {attempt_id}: {attempt.correct_answers}/{attempt.total_questions}")
        return attempt_id

    def _user_attempt_rows(self, user_id: str, limit: Optional[int] = None) -> List[Dict]:
        query = (
            self.client.table("quiz_attempts")
            .select("*")
            .eq("user_id", str(user_id))
            .order("completed_at", desc=True)
        )
        if limit:
            query = query.limit(limit)
        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error fetching quiz attempts for user {user_id}: {e}")
            raise QuestionStoreError("quiz attempt listing failed") from e
        return response.data or []

    def get_recent_attempts(self, user_id: str, limit: int = 10) -> List[QuizAttempt]:
        """The user's latest attempts, newest first."""
        return [QuizAttempt.from_row(row) for row in self._user_attempt_rows(user_id, limit)]

    def get_quiz_mode_stats(self, user_id: str) -> List[QuizModeStats]:
        """Per quiz mode: attempt count, mean score (2 dp) and question totals, in first-seen order."""
        grouped: Dict[str, List[Dict]] = {}
        for row in self._user_attempt_rows(user_id):
            grouped.setdefault(row.get("quiz_mode") or "", []).append(row)
        stats = []
        for mode, rows in grouped.items():
            scores = [float(r.get("score_percentage") or 0) for r in rows]
            stats.append(
                QuizModeStats(
                    quiz_mode=mode,
                    attempts=len(rows),
                    average_score=round(sum(scores) / len(rows), 2),
                    total_questions=sum(int(r.get("total_questions") or 0) for r in rows),
                    correct_answers=sum(int(r.get("correct_answers") or 0) for r in rows),
                )
            )
        return stats
