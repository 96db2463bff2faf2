"""
Shared pytest fixtures: an in-memory stand-in for the Supabase query builder
and a manual countdown whose ticks are fired by the test.
"""
import itertools
import re
from types import SimpleNamespace

import pytest

from examprep.timer import CountdownHandle

SUBJECT_ROWS = [
    {"id": "s-math", "name": "Mathematics", "slug": "mathematics", "exam_type": "BOTH", "sort_order": 1, "is_active": True},
    {"id": "s-phy", "name": "Physics", "slug": "physics", "exam_type": "JAMB", "sort_order": 2, "is_active": True},
    {"id": "s-chem", "name": "Chemistry", "slug": "chemistry", "exam_type": "BOTH", "sort_order": 3, "is_active": True},
    {"id": "s-bio", "name": "Biology", "slug": "biology", "exam_type": "JAMB", "sort_order": 4, "is_active": True},
    {"id": "s-lit", "name": "Literature", "slug": "literature", "exam_type": "WAEC", "sort_order": 5, "is_active": True},
    {"id": "s-old", "name": "Shorthand", "slug": "shorthand", "exam_type": "JAMB", "sort_order": 6, "is_active": False},
]

TOPIC_ROWS = [
    {"id": "t-algebra", "subject_id": "s-math", "name": "Algebra", "is_active": True},
    {"id": "t-optics", "subject_id": "s-phy", "name": "Optics", "is_active": True},
]

_ids = itertools.count(1)


def question_row(qid, subject_id=None, topic_id=None, correct="A", exam_year=2023, exam_type="JAMB", **extra):
    row = {
        "id": qid,
        "question_text": f"Question {qid}?",
        "option_a": "alpha",
        "option_b": "beta",
        "option_c": "gamma",
        "option_d": "delta",
        "correct_answer": correct,
        "subject_id": subject_id,
        "topic_id": topic_id,
        "explanation": None,
        "exam_year": exam_year,
        "exam_type": exam_type,
        "is_active": True,
        "created_at": f"2024-01-{next(_ids) % 28 + 1:02d}T00:00:00Z",
    }
    row.update(extra)
    return row


def _coerce(value):
    if value == "null":
        return None
    if isinstance(value, str) and re.fullmatch(r"-?\d+", value):
        return int(value)
    if value == "true":
        return True
    if value == "false":
        return False
    return value


def _parse_or(expr):
    """Parse a PostgREST or= filter such as "a.eq.1,b.in.(x,y)" into predicates."""
    parts = re.findall(r"[^,()]+\.in\.\([^)]*\)|[^,]+", expr)
    predicates = []
    for part in parts:
        column, op, value = part.split(".", 2)
        if op == "in":
            values = [_coerce(v) for v in value.strip("()").split(",") if v]
            predicates.append(lambda row, c=column, vs=values: row.get(c) in vs)
        elif op == "eq":
            predicates.append(lambda row, c=column, v=_coerce(value): row.get(c) == v)
        else:
            raise ValueError(f"unsupported or_ operator {op}")
    return lambda row: any(p(row) for p in predicates)


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.filters = []
        self.calls = []
        self._order = None
        self._limit = None
        self._insert = None

    def select(self, *columns, **kwargs):
        self.calls.append(("select", columns))
        return self

    def eq(self, column, value):
        self.calls.append(("eq", column, value))
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        self.calls.append(("in", column, tuple(values)))
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def is_(self, column, value):
        self.calls.append(("is", column, value))
        expected = None if value == "null" else value
        self.filters.append(lambda row: row.get(column) is expected)
        return self

    def or_(self, expr):
        self.calls.append(("or", expr))
        self.filters.append(_parse_or(expr))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, n):
        self.calls.append(("limit", n))
        self._limit = n
        return self

    def insert(self, row):
        self._insert = row
        return self

    def execute(self):
        self.db.queries.append(self)
        if self.db.fail is not None:
            self.db.fail(self)
        if self._insert is not None:
            row = dict(self._insert, id=f"attempt-{len(self.db.tables.setdefault(self.table, [])) + 1}")
            self.db.tables[self.table].append(row)
            return SimpleNamespace(data=[row])
        rows = [r for r in self.db.tables.get(self.table, []) if all(f(r) for f in self.filters)]
        if self._order:
            column, desc = self._order
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self._limit is not None:
            rows = rows[: self._limit]
        return SimpleNamespace(data=[dict(r) for r in rows])

    def has_call(self, *call):
        return call in self.calls


class FakeAuth:
    """supabase.Client.auth subset: get_user() returns None without a session."""

    def __init__(self, user_id=None, error=None):
        self.user_id = user_id
        self.error = error

    def get_user(self):
        if self.error is not None:
            raise self.error
        if self.user_id is None:
            return None
        return SimpleNamespace(user=SimpleNamespace(id=self.user_id))


class FakeSupabase:
    """Just enough of supabase.Client for QuestionStore."""

    def __init__(self, tables=None):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.queries = []
        self.fail = None
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)


class ManualCountdown:
    """Countdown whose ticks are fired explicitly by the test."""

    def __init__(self):
        self.started = []
        self.cancelled = []
        self._callbacks = {}

    def start_countdown(self, duration, on_tick, on_expire):
        handle = CountdownHandle(duration=duration)
        self.started.append(handle)
        self._callbacks[handle.id] = (on_tick, on_expire)
        return handle

    def cancel(self, handle):
        handle.cancelled = True
        self.cancelled.append(handle)
        self._callbacks.pop(handle.id, None)

    def pause(self, handle):
        handle.paused = True

    def resume(self, handle):
        handle.paused = False

    def fire_tick(self, handle, remaining=0):
        if handle.id in self._callbacks:
            self._callbacks[handle.id][0](remaining)

    def fire_expire(self, handle):
        if handle.id in self._callbacks:
            self._callbacks[handle.id][1]()

    @property
    def active(self):
        return [h for h in self.started if h.id in self._callbacks]


@pytest.fixture
def supabase():
    return FakeSupabase(
        {
            "subjects": SUBJECT_ROWS,
            "topics": TOPIC_ROWS,
            "questions": [
                question_row("q-direct", subject_id="s-math"),
                question_row("q-topic", topic_id="t-algebra"),
                question_row("q-both", subject_id="s-math", topic_id="t-algebra", exam_year=2022),
                question_row("q-waec", subject_id="s-math", exam_type="WAEC"),
                question_row("q-phy-1", subject_id="s-phy"),
                question_row("q-phy-2", topic_id="t-optics"),
                question_row("q-chem-1", subject_id="s-chem"),
                question_row("q-chem-old", subject_id="s-chem", exam_year=2019),
                question_row("q-bio-1", subject_id="s-bio"),
                question_row("q-inactive", subject_id="s-math", is_active=False),
            ],
            "timer_configurations": [
                {"exam_type": "JAMB", "subject_slug": None, "year": None, "duration_seconds": 9000},
                {"exam_type": "JAMB", "subject_slug": "mathematics", "year": None, "duration_seconds": 2400},
                {"exam_type": "JAMB", "subject_slug": "mathematics", "year": 2023, "duration_seconds": 1800},
                {"exam_type": "WAEC", "subject_slug": None, "year": 2022, "duration_seconds": 5000},
            ],
            "quiz_attempts": [],
        }
    )


@pytest.fixture
def countdown():
    return ManualCountdown()
