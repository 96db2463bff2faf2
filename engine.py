"""Quiz tuning constants. No UI, no I/O."""
# Question caps per quiz shape
SUBJECT_QUESTION_LIMIT = 60
YEAR_QUESTIONS_PER_SUBJECT = 10
CATEGORY_QUESTIONS_PER_SUBJECT = 15

# Exam years accepted by validation: MIN_EXAM_YEAR..current year
MIN_EXAM_YEAR = 2000

# Fallback countdowns (seconds) when timer_configurations has no row
DEFAULT_EXAM_DURATIONS = {"JAMB": 2100, "WAEC": 3600}

# Subjects marked BOTH resolve to the first exam type listed here
DEFAULT_EXAM_TYPE_PRIORITY = ("JAMB", "WAEC")

# Concurrent per-subject fetches for year/category quizzes
MAX_FETCH_WORKERS = 4
